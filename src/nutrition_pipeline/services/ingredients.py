"""Ingredient key normalization and de-duplication."""

import re
from collections.abc import Sequence

from nutrition_pipeline.domain.items import Meal

SYNONYMS: dict[str, str] = {
    "greek_yogurt": "yogurt",
    "plain_yogurt": "yogurt",
    "salted_butter": "butter",
    "unsalted_butter": "butter",
    "granny_smith_apple": "apple",
    "pink_lady_apple": "apple",
    "green_apple": "apple",
    "red_apple": "apple",
    "beef_mince": "ground_beef",
    "lean_beef_mince": "ground_beef",
    "minced_beef": "ground_beef",
    "lean_mince": "ground_beef",
    "chicken_drumstick": "chicken_leg",
    "whole_chicken": "chicken",
    "full_cream_milk": "whole_milk",
    "2pct_milk": "low_fat_milk",
    "lactose_free_milk": "milk",
    "wholemeal_bread": "whole_wheat_bread",
    "multigrain_bread": "whole_grain_bread",
    "sourdough": "sourdough_bread",
    "cheddar_cheese": "cheddar",
    "tasty_cheese": "cheddar",
    "mozzarella_cheese": "mozzarella",
    "parmesan_cheese": "parmesan",
    "jasmine_rice": "white_rice",
    "basmati_rice": "white_rice",
    "long_grain_rice": "white_rice",
    "spaghetti": "pasta",
    "penne": "pasta",
    "fusilli": "pasta",
    "macaroni": "pasta",
    "linguine": "pasta",
    "fettuccine": "pasta",
    "oats": "rolled_oats",
    "oat": "rolled_oats",
    "porridge_oat": "rolled_oats",
    "whey_protein": "whey_protein_isolate",
    "protein_powder": "whey_protein_isolate",
    "white_sugar": "sugar",
    "caster_sugar": "sugar",
    "brown_sugar": "sugar",
    "cherry_tomato": "tomato",
    "iceberg_lettuce": "lettuce",
    "baby_spinach": "spinach",
    "brown_onion": "onion",
    "red_onion": "onion",
    "sparkling_water": "soda_water",
    "bacon_rasher": "bacon",
    "large_egg": "egg",
    "fried_rice": "fried_rice",
}

STRIP_PREFIXES = (
    "coles_",
    "woolworths_",
    "no_added_hormone_",
    "free_range_",
    "organic_",
    "premium_",
    "fresh_",
    "australian_",
    "gourmet_",
    "traditional_",
)

STRIP_SUFFIXES = (
    "_value_pack",
    "_family_pack",
    "_multipack",
    "_pack",
    "_bulk",
)

QUALITY_WORDS = frozenset(
    {
        "premium",
        "organic",
        "fresh",
        "natural",
        "pure",
        "traditional",
        "gourmet",
        "artisan",
        "australian",
        "local",
        "farm",
        "extra",
        "super",
        "ultra",
        "best",
        "quality",
        "choice",
        "select",
        "mild",
        "strong",
        "medium",
        "light",
        "dark",
        "bold",
        "virgin",
        "refined",
        "unrefined",
    }
)

COOKING_WORDS = frozenset(
    {
        "cooked",
        "uncooked",
        "raw",
        "dry",
        "dried",
        "boiled",
        "steamed",
        "grilled",
        "baked",
        "roasted",
        "fried",
        "pan",
        "stir",
        "sauteed",
        "poached",
        "braised",
        "toasted",
    }
)

_PLURAL_EXCEPTIONS = frozenset({"oats", "hummus", "couscous", "asparagus", "lentils"})
_CANONICAL_KEYS = frozenset(SYNONYMS.values())


def normalize_key(name: object) -> str:
    """Turn a human-readable ingredient name into a snake_case lookup key."""
    if not isinstance(name, str) or not name.strip():
        return "unknown"
    key = name.lower().strip()
    key = re.sub(r"%|\bpercent\b", "pct", key)
    key = key.replace("yoghurt", "yogurt").replace("sautéed", "sauteed")
    key = re.sub(r"[\s&/-]+", "_", key)
    key = re.sub(r"[^a-z0-9_]", "", key)
    key = _trim(key)

    for prefix in STRIP_PREFIXES:
        if key.startswith(prefix):
            key = key[len(prefix) :]
            break
    for suffix in STRIP_SUFFIXES:
        if key.endswith(suffix):
            key = key[: -len(suffix)]
            break

    key = _drop_words(key, QUALITY_WORDS)
    if key not in SYNONYMS:
        key = _drop_words(key, COOKING_WORDS)
    key = SYNONYMS.get(key, key)
    key = _singular(key)
    key = SYNONYMS.get(key, key)
    return _trim(key) or "unknown"


def extract_unique_ingredients(meals: Sequence[Meal]) -> list[str]:
    """Distinct normalized keys across all meals, in first-seen order."""
    seen: dict[str, None] = {}
    for meal in meals:
        for item in meal.items:
            seen.setdefault(normalize_key(item.key), None)
    return list(seen)


def _drop_words(key: str, words: frozenset[str]) -> str:
    parts = key.split("_")
    kept = [part for part in parts if part not in words]
    if kept and len(kept) < len(parts):
        return "_".join(kept)
    return key


def _singular(key: str) -> str:
    if key in _PLURAL_EXCEPTIONS or key in SYNONYMS or key in _CANONICAL_KEYS:
        return key
    if key.endswith("ies") and len(key) > 3:
        return key[:-3] + "y"
    if key.endswith("oes") and len(key) > 3:
        return key[:-2]
    if key.endswith("s") and not key.endswith("ss") and len(key) > 2:
        return key[:-1]
    return key


def _trim(key: str) -> str:
    return re.sub(r"_+", "_", key).strip("_")
