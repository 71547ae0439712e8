"""Tests for unit, yield and oil transforms."""

import math

import pytest

from nutrition_pipeline.domain.errors import TransformError
from nutrition_pipeline.domain.items import Item
from nutrition_pipeline.services.transforms import (
    distribute_absorbed_oil,
    infer_state,
    is_oil,
    lookup_yield,
    ml_to_grams,
    normalize_to_grams_or_ml,
    oil_absorption_rate,
    to_as_sold_grams,
)


def test_cooked_rice_converts_to_dry_weight() -> None:
    rice = Item("cooked rice", 300, "g", state_hint="cooked")

    result = to_as_sold_grams(rice, 300)

    assert result.grams_as_sold == pytest.approx(100)
    assert result.yield_factor is not None
    assert result.yield_factor.factor_type == "dry_to_cooked"
    assert result.error is None


@pytest.mark.parametrize("key", ["cooked rice", "pasta", "chicken thigh", "salmon"])
def test_cooked_quantity_round_trips_through_yield(key: str) -> None:
    cooked = 240.0
    factor = lookup_yield(key)
    assert factor is not None

    as_sold = to_as_sold_grams(Item(key, cooked, "g", state_hint="cooked"), cooked)

    assert as_sold.grams_as_sold * factor.factor == pytest.approx(cooked)


def test_unmapped_cooked_item_falls_back_one_to_one() -> None:
    stew = Item("mystery stew", 250, "g", state_hint="cooked")

    result = to_as_sold_grams(stew, 250)

    assert result.grams_as_sold == 250
    assert result.error == "YIELD_UNMAPPED"


def test_raw_items_are_not_converted() -> None:
    chicken = Item("chicken breast", 200, "g", state_hint="raw")

    assert to_as_sold_grams(chicken, 200).grams_as_sold == 200


def test_normalize_units() -> None:
    assert normalize_to_grams_or_ml(Item("rice", 1, "kg")).value == 1000
    assert normalize_to_grams_or_ml(Item("milk", 2, "cup")).unit == "ml"
    assert normalize_to_grams_or_ml(Item("olive oil", 1, "tbsp")).value == 15
    assert normalize_to_grams_or_ml(Item("egg", 3, "egg")).value == 150
    heuristic = normalize_to_grams_or_ml(Item("banana", 2, "handful"))
    assert heuristic.value == 240
    assert heuristic.heuristic


@pytest.mark.parametrize("value", [0, -10, math.nan, math.inf])
def test_normalize_rejects_bad_quantities(value: float) -> None:
    with pytest.raises(TransformError) as exc_info:
        normalize_to_grams_or_ml(Item("rice", value, "g"))

    assert exc_info.value.code == "QUANTITY_INVALID"


def test_density_table() -> None:
    assert ml_to_grams("olive oil", 100) == pytest.approx(92)
    assert ml_to_grams("whole milk", 100) == pytest.approx(103)
    assert ml_to_grams("sparkling water", 100) == pytest.approx(100)


def test_infer_state_uses_ordered_table() -> None:
    assert infer_state("baked potato") == ("cooked", "baked")
    assert infer_state("rice")[0] == "cooked"
    assert infer_state("beef mince")[0] == "raw"
    assert infer_state("peanut butter")[0] == "as_pack"


def test_oil_absorption_rates() -> None:
    assert oil_absorption_rate("fried") == 0.30
    assert oil_absorption_rate("roasted") == 0.15
    assert oil_absorption_rate("baked") == 0.05
    assert oil_absorption_rate("steamed") == 0.0
    assert oil_absorption_rate(None) == 0.0


def test_oil_is_shared_by_weight_and_method() -> None:
    items = [
        Item("potato", 300, "g", method_hint="fried"),
        Item("chicken", 100, "g", method_hint="fried"),
        Item("broccoli", 100, "g", method_hint="steamed"),
        Item("olive oil", 20, "ml"),
    ]

    absorbed = distribute_absorbed_oil(items, [300, 100, 100, 18.4])

    oil_grams = 20 * 0.92
    assert absorbed[0] == pytest.approx(oil_grams * 0.30 * 0.75)
    assert absorbed[1] == pytest.approx(oil_grams * 0.30 * 0.25)
    assert absorbed[2] == 0
    assert absorbed[3] == 0


def test_no_oil_item_absorbs_nothing() -> None:
    items = [Item("potato", 300, "g", method_hint="fried")]

    assert distribute_absorbed_oil(items, [300]) == [0.0]


def test_words_containing_oil_are_not_oil() -> None:
    assert is_oil("olive_oil")
    assert is_oil("Coconut Oil")
    assert is_oil("vegetable oils")
    assert not is_oil("boiled")
    assert not is_oil("broiled fish")
    assert not is_oil("oily")
    assert ml_to_grams("boiled water", 100) == 100


def test_boiled_item_is_not_taken_for_the_oil() -> None:
    items = [
        Item("hard boiled eggs", 2, "egg"),
        Item("olive oil", 10, "ml"),
        Item("chicken breast", 200, "g", method_hint="fried"),
    ]

    absorbed = distribute_absorbed_oil(items, [100, 9.2, 200])

    assert absorbed[0] == 0
    assert absorbed[1] == 0
    assert absorbed[2] == pytest.approx(10 * 0.92 * 0.30)
