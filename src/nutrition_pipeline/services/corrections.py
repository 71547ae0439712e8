"""Deterministic auto-correction rules for generated items."""

import math
import re
from collections.abc import Callable

from nutrition_pipeline.domain.items import VALID_METHODS, VALID_STATES
from nutrition_pipeline.domain.validation import Correction, CorrectionRule

SIZE_DESCRIPTORS = ("small", "medium", "large", "extra large", "xl", "jumbo")

_SIZE_ALIASES = {"xl": "extra large", "jumbo": "extra large"}

SIZE_DEFAULTS_G: dict[str, float] = {
    "small egg": 45,
    "medium egg": 50,
    "large egg": 55,
    "extra large egg": 60,
    "small potato": 120,
    "medium potato": 170,
    "large potato": 280,
    "small onion": 70,
    "medium onion": 110,
    "large onion": 150,
    "small tomato": 75,
    "medium tomato": 120,
    "large tomato": 180,
    "small carrot": 50,
    "medium carrot": 70,
    "large carrot": 100,
    "small apple": 100,
    "medium apple": 150,
    "large apple": 200,
    "small banana": 80,
    "medium banana": 120,
    "large banana": 150,
    "small": 75,
    "medium": 120,
    "large": 180,
}
_SIZE_FALLBACK_G = 100.0

CANONICAL_UNITS: dict[str, str] = {
    "g": "g",
    "gram": "g",
    "grams": "g",
    "gr": "g",
    "kg": "kg",
    "kilogram": "kg",
    "kilograms": "kg",
    "ml": "ml",
    "milliliter": "ml",
    "milliliters": "ml",
    "millilitre": "ml",
    "millilitres": "ml",
    "l": "l",
    "liter": "l",
    "liters": "l",
    "litre": "l",
    "litres": "l",
    "oz": "oz",
    "ounce": "oz",
    "ounces": "oz",
    "lb": "lb",
    "lbs": "lb",
    "pound": "lb",
    "pounds": "lb",
    "fl oz": "fl oz",
    "fluid ounce": "fl oz",
    "fluid ounces": "fl oz",
    "cup": "cup",
    "cups": "cup",
    "tbsp": "tbsp",
    "tablespoon": "tbsp",
    "tablespoons": "tbsp",
    "tsp": "tsp",
    "teaspoon": "tsp",
    "teaspoons": "tsp",
    "piece": "piece",
    "pieces": "piece",
    "slice": "slice",
    "slices": "slice",
    "whole": "whole",
    "clove": "clove",
    "cloves": "clove",
    "stalk": "stalk",
    "stalks": "stalk",
    "sprig": "sprig",
    "sprigs": "sprig",
    "bunch": "bunch",
    "bunches": "bunch",
    "head": "head",
    "heads": "head",
    "leaf": "leaf",
    "leaves": "leaf",
    "fillet": "fillet",
    "fillets": "fillet",
    "breast": "breast",
    "breasts": "breast",
    "thigh": "thigh",
    "thighs": "thigh",
    "rasher": "rasher",
    "rashers": "rasher",
    "strip": "strip",
    "strips": "strip",
    "can": "can",
    "cans": "can",
    "tin": "tin",
    "tins": "tin",
    "jar": "jar",
    "jars": "jar",
    "packet": "packet",
    "packets": "packet",
    "sachet": "sachet",
    "sachets": "sachet",
    "serve": "serving",
    "serves": "serving",
    "serving": "serving",
    "servings": "serving",
    "egg": "egg",
    "eggs": "egg",
    "small egg": "small egg",
    "small eggs": "small egg",
    "medium egg": "medium egg",
    "medium eggs": "medium egg",
    "large egg": "large egg",
    "large eggs": "large egg",
}
ALLOWED_UNITS = frozenset(CANONICAL_UNITS.values())

QUANTITY_BOUNDS: dict[str, tuple[float, float]] = {
    "g": (1.0, 2000.0),
    "ml": (5.0, 1000.0),
}

_STATE_ALIASES = {
    "dried": "dry",
    "uncooked": "raw",
    "fresh": "raw",
    "packaged": "as_pack",
    "packed": "as_pack",
    "as-pack": "as_pack",
    "as pack": "as_pack",
    "aspack": "as_pack",
}

_METHOD_ALIASES = {
    "sautéed": "sauteed",
    "sauteed": "sauteed",
    "pan fried": "fried",
    "pan-fried": "fried",
    "pan_fried": "fried",
    "stir fried": "fried",
    "stir-fried": "fried",
    "deep fried": "fried",
    "deep-fried": "fried",
    "bbq": "grilled",
    "barbecued": "grilled",
    "chargrilled": "grilled",
    "char-grilled": "grilled",
}

_MIXED_FRACTION = re.compile(r"^(\d+)\s+(\d+)\s*/\s*(\d+)")
_FRACTION = re.compile(r"^(\d+)\s*/\s*(\d+)")
_LEADING_NUMBER = re.compile(r"^(\d+(?:\.\d+)?|\.\d+)")

ItemRule = Callable[[dict[str, object]], Correction | None]


def parse_quantity(raw: str) -> float | None:
    """Parse a numeric-looking quantity string such as ``"1 1/2"`` or ``"2 cups"``."""
    text = raw.strip().replace(",", ".")
    mixed = _MIXED_FRACTION.match(text)
    if mixed:
        whole, numerator, denominator = (int(part) for part in mixed.groups())
        if denominator == 0:
            return None
        return whole + numerator / denominator
    fraction = _FRACTION.match(text)
    if fraction:
        numerator, denominator = (int(part) for part in fraction.groups())
        if denominator == 0:
            return None
        return numerator / denominator
    leading = _LEADING_NUMBER.match(text)
    if leading:
        return float(leading.group(1))
    return None


def size_grams(size: str, key: str) -> float:
    """Grams per unit for a size descriptor applied to an ingredient key."""
    size = _SIZE_ALIASES.get(size, size)
    key = key.strip().lower()
    exact = SIZE_DEFAULTS_G.get(f"{size} {key}")
    if exact is not None:
        return float(exact)
    prefix = f"{size} "
    for name, grams in SIZE_DEFAULTS_G.items():
        if not name.startswith(prefix):
            continue
        ingredient = name[len(prefix) :]
        if ingredient in key or (key and key in ingredient):
            return float(grams)
    return float(SIZE_DEFAULTS_G.get(size, _SIZE_FALLBACK_G))


def correct_string_to_number(item: dict[str, object]) -> Correction | None:
    value = item.get("quantityValue")
    if not isinstance(value, str):
        return None
    parsed = parse_quantity(value)
    if parsed is None:
        return None
    item["quantityValue"] = parsed
    return Correction(
        field="quantityValue",
        original_value=value,
        corrected_value=parsed,
        rule=CorrectionRule.STRING_TO_NUMBER.value,
    )


def correct_size_descriptor(item: dict[str, object]) -> Correction | None:
    unit = item.get("quantityUnit")
    value = item.get("quantityValue")
    if not isinstance(unit, str) or not _is_number(value):
        return None
    size = unit.strip().lower()
    if size not in SIZE_DESCRIPTORS:
        return None
    key = item.get("key") if isinstance(item.get("key"), str) else ""
    per_unit = size_grams(size, str(key))
    grams = round(float(value) * per_unit, 2)
    item["quantityValue"] = grams
    item["quantityUnit"] = "g"
    return Correction(
        field="quantityValue",
        original_value=f"{_format_number(float(value))} {size}",
        corrected_value=f"{_format_number(grams)}g",
        rule=CorrectionRule.SIZE_DESCRIPTOR_TO_GRAMS.value,
        details=f"{_format_number(per_unit)}g per {size} {key}".strip(),
    )


def correct_unit_spelling(item: dict[str, object]) -> Correction | None:
    unit = item.get("quantityUnit")
    if not isinstance(unit, str):
        return None
    canonical = CANONICAL_UNITS.get(" ".join(unit.strip().lower().split()))
    if canonical is None or canonical == unit:
        return None
    item["quantityUnit"] = canonical
    return Correction(
        field="quantityUnit",
        original_value=unit,
        corrected_value=canonical,
        rule=CorrectionRule.UNIT_NORMALIZATION.value,
    )


def correct_state_hint(item: dict[str, object]) -> Correction | None:
    return _correct_hint(
        item,
        field="stateHint",
        aliases=_STATE_ALIASES,
        vocabulary=VALID_STATES,
        normalized_rule=CorrectionRule.STATE_HINT_NORMALIZATION,
        cleared_rule=CorrectionRule.INVALID_STATE_HINT_CLEARED,
    )


def correct_method_hint(item: dict[str, object]) -> Correction | None:
    return _correct_hint(
        item,
        field="methodHint",
        aliases=_METHOD_ALIASES,
        vocabulary=VALID_METHODS,
        normalized_rule=CorrectionRule.METHOD_HINT_NORMALIZATION,
        cleared_rule=CorrectionRule.INVALID_METHOD_HINT_CLEARED,
    )


def correct_quantity_bounds(item: dict[str, object]) -> Correction | None:
    unit = item.get("quantityUnit")
    value = item.get("quantityValue")
    if unit not in QUANTITY_BOUNDS or not _is_number(value):
        return None
    number = float(value)
    low, high = QUANTITY_BOUNDS[str(unit)]
    clamped = min(max(number, low), high)
    if clamped == number:
        return None
    item["quantityValue"] = clamped
    return Correction(
        field="quantityValue",
        original_value=value,
        corrected_value=clamped,
        rule=CorrectionRule.QUANTITY_BOUNDS_CLAMPED.value,
        details=f"{unit} bounds {low:g}-{high:g}",
    )


ITEM_RULES: tuple[ItemRule, ...] = (
    correct_string_to_number,
    correct_size_descriptor,
    correct_unit_spelling,
    correct_state_hint,
    correct_method_hint,
    correct_quantity_bounds,
)


def correct_item(
    item: dict[str, object],
) -> tuple[dict[str, object], list[Correction]]:
    """Apply every rule in order to a copy of ``item``."""
    corrected = dict(item)
    corrections = []
    for rule in ITEM_RULES:
        correction = rule(corrected)
        if correction is not None:
            corrections.append(correction)
    return corrected, corrections


def _correct_hint(  # noqa: PLR0913
    item: dict[str, object],
    *,
    field: str,
    aliases: dict[str, str],
    vocabulary: frozenset[str],
    normalized_rule: CorrectionRule,
    cleared_rule: CorrectionRule,
) -> Correction | None:
    if field not in item:
        return None
    value = item[field]
    if value is None or value == "":
        return None
    if isinstance(value, str):
        normalized = " ".join(value.strip().lower().split())
        mapped = aliases.get(normalized, normalized)
        if mapped in vocabulary:
            if mapped == value:
                return None
            item[field] = mapped
            return Correction(
                field=field,
                original_value=value,
                corrected_value=mapped,
                rule=normalized_rule.value,
            )
    item[field] = None
    return Correction(
        field=field,
        original_value=value,
        corrected_value=None,
        rule=cleared_rule.value,
        details=f"{value!r} is not a recognised {field}",
    )


def _is_number(value: object) -> bool:
    return (
        isinstance(value, int | float)
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _format_number(value: float) -> str:
    return f"{value:g}"
