"""Deterministic item state resolution.

Resolution order, first match wins:

1. a cooking keyword in the key (``grilled chicken``) -> cooked, high confidence
2. a valid upstream ``stateHint`` -> hint, high confidence
3. compound and category rules -> medium confidence
4. key-based inference from the transform engine -> low confidence

Empty keys resolve to no state with ``none`` confidence.
"""

import re
from dataclasses import dataclass, replace

from nutrition_pipeline.domain.items import VALID_STATES, Item, StateResolution
from nutrition_pipeline.services.transforms import infer_state


@dataclass(frozen=True)
class StateRule:
    """One ordered resolution rule."""

    rule_id: str
    pattern: re.Pattern[str]
    state: str
    method: str | None = None


def _rule(
    rule_id: str, pattern: str, state: str, method: str | None = None
) -> StateRule:
    return StateRule(rule_id, re.compile(pattern), state, method)


COOKING_KEYWORDS: tuple[tuple[re.Pattern[str], str | None], ...] = tuple(
    (re.compile(rf"\b{pattern}\b"), method)
    for pattern, method in (
        (r"(?:pan|stir|deep)[\s-]?fried", "fried"),
        (r"(?:hard|soft)[\s-]?boiled", "boiled"),
        (r"cooked", None),
        (r"fried", "fried"),
        (r"baked", "baked"),
        (r"steamed", "steamed"),
        (r"boiled", "boiled"),
        (r"grilled", "grilled"),
        (r"roasted", "roasted"),
        (r"saut[eé]ed", "sauteed"),
        (r"poached", "poached"),
        (r"braised", "braised"),
        (r"toasted", "baked"),
        (r"charred", "grilled"),
        (r"carameli[sz]ed", "sauteed"),
        (r"scrambled", "fried"),
    )
)

STATE_RULES: tuple[StateRule, ...] = (
    _rule("COMPOUND_FRIED_RICE", r"fried\s*rice", "cooked", "fried"),
    _rule("COMPOUND_RICE_PAPER", r"rice\s*paper", "as_pack"),
    _rule("COMPOUND_RICE_NOODLES", r"rice\s*noodle", "dry"),
    _rule("COMPOUND_RICE_CRACKER", r"rice\s*cracker", "as_pack"),
    _rule("COMPOUND_RICE_CAKE", r"rice\s*cake", "as_pack"),
    _rule("COMPOUND_RICE_PUDDING", r"rice\s*pudding", "cooked"),
    _rule(
        "COMPOUND_PLANT_MILK", r"\b(?:rice|oat|almond|soy|coconut)\s*milk", "as_pack"
    ),
    _rule("COMPOUND_GOAT_DAIRY", r"goat'?s?\s*(?:cheese|milk)", "as_pack"),
    _rule("COMPOUND_NUT_BUTTER", r"(?:peanut|almond|cashew)\s*butter", "as_pack"),
    _rule("COMPOUND_COCONUT_CREAM", r"coconut\s*cream", "as_pack"),
    _rule(
        "COMPOUND_NAMED_OIL",
        r"(?:olive|coconut|sesame|vegetable|canola)\s*oil",
        "as_pack",
    ),
    _rule("COMPOUND_CANNED", r"\b(?:canned|tinned)\b", "as_pack"),
    _rule("COMPOUND_SMOKED_SALMON", r"smoked\s*salmon", "as_pack"),
    _rule("COMPOUND_DELI_MEAT", r"\b(?:ham|salami|prosciutto|deli)\b", "as_pack"),
    _rule("COMPOUND_TOMATO_PRODUCT", r"tomato\s*(?:paste|sauce|puree)", "as_pack"),
    _rule("COMPOUND_INSTANT_NOODLES", r"instant\s*noodle", "dry"),
    _rule("COMPOUND_BREAD", r"\b(?:bread|tortilla|wrap|bagel|pita)s?\b", "as_pack"),
    _rule(
        "GRAINS",
        r"\b(?:rice|pasta|spaghetti|penne|macaroni|fusilli|fettuccine|noodles?"
        r"|oats?|quinoa|couscous|barley)\b",
        "dry",
    ),
    _rule(
        "LEGUMES",
        r"\b(?:lentils?|chickpeas?|black\s*beans?|kidney\s*beans?|split\s*peas?)\b",
        "dry",
    ),
    _rule(
        "PROTEINS",
        r"\b(?:chicken|beef|steak|mince|pork|lamb|salmon|tuna|cod|fish|prawns?"
        r"|shrimps?|eggs?|tofu|tempeh|bacon|turkey)\b",
        "raw",
    ),
    _rule(
        "DAIRY",
        r"\b(?:milk|cheese|cheddar|mozzarella|parmesan|feta|yogh?urt|butter|cream)\b",
        "as_pack",
    ),
    _rule(
        "NUTS_SEEDS",
        r"\b(?:almonds?|walnuts?|cashews?|peanuts?|macadamias?|chia|flax(?:seed)?"
        r"|seeds?)\b",
        "as_pack",
    ),
    _rule(
        "CONDIMENTS",
        r"\b(?:sauce|vinegar|mustard|mayonnaise|ketchup|honey|syrup|oil|stock|broth)\b",
        "as_pack",
    ),
    _rule("BEVERAGES", r"\b(?:juice|coffee|tea|water)\b", "as_pack"),
    _rule(
        "PRODUCE",
        r"\b(?:onions?|garlic|tomato(?:es)?|potato(?:es)?|carrots?|broccoli|spinach"
        r"|kale"
        r"|capsicums?|peppers?|zucchinis?|cucumbers?|lettuce|mushrooms?|avocados?"
        r"|celery|asparagus|green\s*beans?|corn|eggplants?|cauliflower|cabbage|peas"
        r"|ginger|apples?|bananas?|oranges?|lemons?|limes?|berries|strawberr(?:y|ies)"
        r"|blueberr(?:y|ies)|mangoe?s?|pineapples?|grapes?|melons?|peach(?:es)?"
        r"|pears?|kiwis?)\b",
        "raw",
    ),
)


@dataclass(frozen=True)
class StateResolver:
    """Resolves every item to a state from the closed vocabulary."""

    rules: tuple[StateRule, ...] = STATE_RULES

    def resolve(self, item: Item) -> StateResolution:
        key = _match_text(item.key)
        if not key:
            return StateResolution(
                state=None,
                method=None,
                confidence="none",
                rule_id="EMPTY_KEY",
                source="none",
            )
        for pattern, method in COOKING_KEYWORDS:
            match = pattern.search(key)
            if match:
                keyword = re.sub(r"[^A-Z]", "_", match.group(0).upper())
                return StateResolution(
                    state="cooked",
                    method=method or item.method_hint,
                    confidence="high",
                    rule_id=f"COOKING_KEYWORD_{keyword}",
                    source="keyword",
                )
        if item.state_hint in VALID_STATES:
            return StateResolution(
                state=item.state_hint,
                method=item.method_hint,
                confidence="high",
                rule_id="UPSTREAM_HINT",
                source="hint",
            )
        for rule in self.rules:
            if rule.pattern.search(key):
                return StateResolution(
                    state=rule.state,
                    method=rule.method or item.method_hint,
                    confidence="medium",
                    rule_id=rule.rule_id,
                    source="rule",
                )
        state, method = infer_state(item.key)
        return StateResolution(
            state=state,
            method=item.method_hint or method,
            confidence="low",
            rule_id="INFERRED_FROM_KEY",
            source="inferred",
        )

    def apply(self, item: Item) -> Item:
        """Return a copy of the item carrying its resolution."""
        return replace(item, resolution=self.resolve(item))


def hint_disagrees(item: Item) -> bool:
    """The upstream hint was valid but a cooking keyword overrode it."""
    resolution = item.resolution
    return (
        resolution is not None
        and resolution.source == "keyword"
        and item.state_hint in VALID_STATES
        and item.state_hint != resolution.state
    )


def _match_text(key: str) -> str:
    return " ".join(key.lower().replace("_", " ").split())
