"""Unit, cooking-yield and oil-absorption transforms.

Every classification here is an ordered table of ``(predicate, value)`` pairs
evaluated top to bottom, so the first matching rule wins.
"""

import logging
import math
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from nutrition_pipeline.domain.errors import TransformError
from nutrition_pipeline.domain.items import VALID_STATES, Item, ItemState

_logger = logging.getLogger(__name__)

OIL_DENSITY_G_PER_ML = 0.92

KeyPredicate = Callable[[str], bool]
T = TypeVar("T")


def _contains(*needles: str) -> KeyPredicate:
    return lambda key: any(needle in key for needle in needles)


# Whole word, so "boiled" and "broiled" are not oils. Underscores separate words.
_OIL_PATTERN = re.compile(r"(?<![a-z])oils?(?![a-z])")


def is_oil(key: str) -> bool:
    return _OIL_PATTERN.search(key.lower()) is not None


@dataclass(frozen=True)
class YieldFactor:
    """Weight ratio between an ingredient's as-sold and cooked forms."""

    category: str
    factor: float
    factor_type: str


@dataclass(frozen=True)
class NormalizedQuantity:
    """A quantity expressed in grams or millilitres."""

    value: float
    unit: str
    heuristic: bool = False


@dataclass(frozen=True)
class AsSoldResult:
    """As-sold grams for one item and the state used to derive them."""

    grams_as_sold: float
    resolved_state: str
    resolved_method: str | None
    yield_factor: YieldFactor | None = None
    state_inferred: bool = False
    error: str | None = None


_MASS_UNITS_G: dict[str, float] = {
    "g": 1.0,
    "kg": 1000.0,
    "oz": 28.35,
    "lb": 453.6,
}

_VOLUME_UNITS_ML: dict[str, float] = {
    "ml": 1.0,
    "l": 1000.0,
    "fl oz": 29.57,
    "cup": 240.0,
    "tbsp": 15.0,
    "tsp": 5.0,
}

_COUNT_UNITS_G: dict[str, float] = {
    "egg": 50.0,
    "small egg": 45.0,
    "medium egg": 50.0,
    "large egg": 55.0,
    "slice": 35.0,
    "piece": 150.0,
    "whole": 150.0,
    "clove": 5.0,
    "stalk": 40.0,
    "sprig": 1.0,
    "bunch": 100.0,
    "head": 500.0,
    "leaf": 2.0,
    "fillet": 150.0,
    "breast": 200.0,
    "thigh": 120.0,
    "rasher": 25.0,
    "strip": 25.0,
    "can": 400.0,
    "tin": 400.0,
    "jar": 300.0,
    "packet": 100.0,
    "sachet": 10.0,
    "serving": 100.0,
}

_KEY_UNIT_WEIGHTS_G: tuple[tuple[KeyPredicate, float], ...] = (
    (_contains("egg"), 50.0),
    (_contains("bread", "toast"), 35.0),
    (_contains("banana"), 120.0),
    (_contains("potato"), 200.0),
)
_DEFAULT_UNIT_WEIGHT_G = 150.0

_DENSITIES: tuple[tuple[KeyPredicate, float], ...] = (
    (is_oil, OIL_DENSITY_G_PER_ML),
    (_contains("milk"), 1.03),
    (_contains("cream"), 1.01),
    (_contains("yogurt", "yoghurt"), 1.05),
    (_contains("sauce"), 1.05),
    (_contains("juice"), 1.04),
    (_contains("wine"), 0.98),
    (_contains("beer"), 1.01),
    (_contains("water"), 1.0),
)

_COOKING_WORDS = ("cooked", "baked", "grilled", "steamed", "boiled")

_STATE_INFERENCE: tuple[tuple[KeyPredicate, str], ...] = (
    (_contains(*_COOKING_WORDS), ItemState.COOKED.value),
    (_contains("rice", "pasta", "oats", "quinoa"), ItemState.COOKED.value),
    (
        _contains("chicken", "beef", "pork", "salmon", "fish", "mince", "steak"),
        ItemState.RAW.value,
    ),
)

_METHOD_INFERENCE: tuple[tuple[KeyPredicate, str], ...] = (
    (_contains("baked"), "baked"),
    (_contains("grilled"), "grilled"),
    (_contains("steamed"), "steamed"),
    (_contains("boiled", "rice", "pasta"), "boiled"),
)

_YIELDS: tuple[tuple[KeyPredicate, YieldFactor], ...] = (
    (_contains("rice"), YieldFactor("rice", 3.0, "dry_to_cooked")),
    (_contains("pasta", "noodle"), YieldFactor("pasta", 2.5, "dry_to_cooked")),
    (_contains("oat", "porridge"), YieldFactor("oats", 3.5, "dry_to_cooked")),
    (_contains("quinoa"), YieldFactor("quinoa", 3.0, "dry_to_cooked")),
    (_contains("couscous"), YieldFactor("couscous", 2.5, "dry_to_cooked")),
    (_contains("lentil"), YieldFactor("lentils", 2.8, "dry_to_cooked")),
    (_contains("chicken"), YieldFactor("chicken", 0.75, "raw_to_cooked")),
    (
        lambda key: "lean" in key and _contains("beef", "steak", "mince")(key),
        YieldFactor("beef_lean", 0.70, "raw_to_cooked"),
    ),
    (
        _contains("beef", "steak", "mince"),
        YieldFactor("beef_fatty", 0.65, "raw_to_cooked"),
    ),
    (_contains("pork"), YieldFactor("pork", 0.72, "raw_to_cooked")),
    (_contains("salmon"), YieldFactor("salmon", 0.80, "raw_to_cooked")),
    (_contains("fish"), YieldFactor("fish_white", 0.85, "raw_to_cooked")),
    (_contains("potato"), YieldFactor("potato", 0.90, "raw_to_cooked")),
    (
        _contains("spinach", "mushroom"),
        YieldFactor("veg_watery", 0.85, "raw_to_cooked"),
    ),
    (
        _contains("broccoli", "carrot", "bean", "veg"),
        YieldFactor("veg_dense", 0.95, "raw_to_cooked"),
    ),
    (
        _contains("grain", "cereal"),
        YieldFactor("default_grain", 2.8, "dry_to_cooked"),
    ),
    (
        _contains("meat", "poultry"),
        YieldFactor("default_meat", 0.75, "raw_to_cooked"),
    ),
)

_OIL_ABSORPTION: tuple[tuple[KeyPredicate, float], ...] = (
    (_contains("fried", "fry"), 0.30),
    (_contains("roast"), 0.15),
    (_contains("baked", "bake"), 0.05),
)


def normalize_to_grams_or_ml(item: Item) -> NormalizedQuantity:
    """Convert an item's quantity into grams (solids) or millilitres (liquids)."""
    value = item.quantity_value
    if not _positive_finite(value):
        raise TransformError("QUANTITY_INVALID", f"Invalid quantity {value!r}")
    unit = item.quantity_unit.strip().lower()
    key = item.key.lower()
    if unit in _MASS_UNITS_G:
        return NormalizedQuantity(value * _MASS_UNITS_G[unit], "g")
    if unit in _VOLUME_UNITS_ML:
        return NormalizedQuantity(value * _VOLUME_UNITS_ML[unit], "ml")
    if unit in _COUNT_UNITS_G:
        return NormalizedQuantity(value * _COUNT_UNITS_G[unit], "g")
    weight = _first_match(_KEY_UNIT_WEIGHTS_G, key, _DEFAULT_UNIT_WEIGHT_G)
    _logger.debug(
        "Unknown unit %r for %r, using %sg per unit", item.quantity_unit, key, weight
    )
    return NormalizedQuantity(value * weight, "g", heuristic=True)


def ml_to_grams(key: str, ml: float) -> float:
    """Convert a liquid volume to grams using a key-based density."""
    return ml * density_for(key)


def density_for(key: str) -> float:
    return _first_match(_DENSITIES, key.lower(), 1.0)


def infer_state(key: str) -> tuple[str, str | None]:
    """Guess a state and method from the ingredient key alone."""
    lowered = key.lower()
    state = _first_match(_STATE_INFERENCE, lowered, ItemState.AS_PACK.value)
    method = _first_match(_METHOD_INFERENCE, lowered, None)
    _logger.warning(
        "Missing state for %r, inferred state=%s method=%s", key, state, method
    )
    return state, method


def lookup_yield(key: str) -> YieldFactor | None:
    """Return the cooking yield factor for a key, or None when unmapped."""
    return _first_match(_YIELDS, key.lower(), None)


def to_as_sold_grams(item: Item, grams_or_ml: float) -> AsSoldResult:
    """Convert a normalized quantity to its as-sold gram equivalent."""
    if not _positive_finite(grams_or_ml):
        raise TransformError("QUANTITY_INVALID", f"Invalid quantity {grams_or_ml!r}")
    state, method, inferred = resolved_state_and_method(item)
    if state != ItemState.COOKED.value:
        return AsSoldResult(
            grams_as_sold=grams_or_ml,
            resolved_state=state,
            resolved_method=method,
            state_inferred=inferred,
        )
    factor = lookup_yield(item.key)
    if factor is None:
        _logger.warning("No yield factor for cooked %r, using 1:1", item.key)
        return AsSoldResult(
            grams_as_sold=grams_or_ml,
            resolved_state=state,
            resolved_method=method,
            state_inferred=inferred,
            error="YIELD_UNMAPPED",
        )
    grams_as_sold = grams_or_ml / factor.factor
    if not math.isfinite(grams_as_sold):
        raise TransformError(
            "GRAMS_AS_SOLD_INVALID", f"Non-finite as-sold grams for {item.key!r}"
        )
    _logger.debug(
        "%s: %.0f cooked -> %.0f as sold (/%.2f %s)",
        item.key,
        grams_or_ml,
        grams_as_sold,
        factor.factor,
        factor.factor_type,
    )
    return AsSoldResult(
        grams_as_sold=grams_as_sold,
        resolved_state=state,
        resolved_method=method,
        yield_factor=factor,
        state_inferred=inferred,
    )


def resolved_state_and_method(item: Item) -> tuple[str, str | None, bool]:
    """Return ``(state, method, inferred)`` preferring resolver output, then hints."""
    resolution = item.resolution
    if resolution is not None and resolution.state in VALID_STATES:
        return resolution.state, resolution.method or item.method_hint, False
    if item.state_hint in VALID_STATES:
        return item.state_hint, item.method_hint, False
    state, method = infer_state(item.key)
    return state, item.method_hint or method, True


def oil_absorption_rate(method: str | None) -> float:
    """Fraction of the meal's oil a cooking method absorbs."""
    if not method:
        return 0.0
    return _first_match(_OIL_ABSORPTION, method.lower(), 0.0)


def distribute_absorbed_oil(
    items: Sequence[Item], grams_as_sold: Sequence[float]
) -> list[float]:
    """Share a meal's cooking oil across oil-absorbing items by as-sold weight.

    ``grams_as_sold`` is aligned with ``items``. The oil item itself and items
    cooked without oil absorb nothing. A meal with no oil item, or with no
    absorbing weight, absorbs nothing.
    """
    absorbed = [0.0] * len(items)
    oil_index = next(
        (index for index, item in enumerate(items) if is_oil(item.key)), None
    )
    if oil_index is None:
        return absorbed
    oil_grams = _oil_grams(items[oil_index])
    if oil_grams <= 0:
        return absorbed

    rates = [
        0.0 if index == oil_index else oil_absorption_rate(_method_of(item))
        for index, item in enumerate(items)
    ]
    total_weight = sum(
        weight
        for weight, rate in zip(grams_as_sold, rates, strict=True)
        if rate > 0 and _positive_finite(weight)
    )
    if total_weight <= 0:
        return absorbed
    for index, (weight, rate) in enumerate(zip(grams_as_sold, rates, strict=True)):
        if rate > 0 and _positive_finite(weight):
            absorbed[index] = oil_grams * rate * (weight / total_weight)
    return absorbed


def _oil_grams(item: Item) -> float:
    try:
        normalized = normalize_to_grams_or_ml(item)
    except TransformError:
        return 0.0
    if normalized.unit == "ml":
        return normalized.value * OIL_DENSITY_G_PER_ML
    return normalized.value


def _method_of(item: Item) -> str | None:
    if item.resolution is not None and item.resolution.method:
        return item.resolution.method
    return item.method_hint


def _first_match(
    table: Sequence[tuple[KeyPredicate, T]], key: str, default: T
) -> T:
    for predicate, value in table:
        if predicate(key):
            return value
    return default


def _positive_finite(value: object) -> bool:
    return (
        isinstance(value, int | float)
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value > 0
    )
