"""Tests for the invariant engine."""

import math

import pytest

from nutrition_pipeline.config import PipelineConfig
from nutrition_pipeline.domain.errors import (
    InvariantViolationError,
    ReconciliationOutOfBoundsError,
)
from nutrition_pipeline.domain.invariants import InvariantId, Severity
from nutrition_pipeline.domain.items import Item, StateResolution
from nutrition_pipeline.domain.nutrition import MacroResult, MacroTargets, MacroTotals
from nutrition_pipeline.services.invariants import InvariantEngine, expected_kcal
from tests.conftest import STRICT_CONFIG


def _resolved(key: str, state: str | None = "raw") -> Item:
    return Item(
        key,
        100,
        "g",
        resolution=StateResolution(state, None, "medium", "TEST", "rule"),
    )


def test_ten_percent_deviation_is_flagged_not_rejected() -> None:
    engine = InvariantEngine(STRICT_CONFIG)
    expected = expected_kcal(30, 10, 40)

    check = engine.check_macro_consistency(expected * 1.10, 30, 10, 40)

    assert check.severity is Severity.WARNING
    assert check.deviation_pct == pytest.approx(10)
    engine.assert_macro_consistency(expected * 1.10, 30, 10, 40)


def test_critical_deviation_raises_in_hard_mode() -> None:
    engine = InvariantEngine(STRICT_CONFIG)

    with pytest.raises(InvariantViolationError) as exc_info:
        engine.assert_macro_consistency(600, 30, 10, 40, key="bar")

    assert exc_info.value.context["invariantId"] == (
        InvariantId.MACRO_CALORIE_CONSISTENCY
    )
    assert exc_info.value.context["itemKey"] == "bar"


def test_severity_is_monotonic_in_deviation() -> None:
    engine = InvariantEngine(STRICT_CONFIG)
    expected = expected_kcal(20, 5, 30)
    previous = Severity.VALID
    for step in range(0, 60):
        severity = engine.check_macro_consistency(
            expected * (1 + step / 100), 20, 5, 30
        ).severity
        assert severity.rank >= previous.rank
        previous = severity
    assert previous is Severity.CRITICAL


def test_lenient_defaults() -> None:
    engine = InvariantEngine(PipelineConfig())

    assert engine.consistency_severity(20) is Severity.VALID
    assert engine.consistency_severity(30) is Severity.WARNING
    assert engine.consistency_severity(55) is Severity.CRITICAL


def test_zero_energy_is_not_graded() -> None:
    engine = InvariantEngine(STRICT_CONFIG)

    assert engine.check_macro_consistency(0, 10, 10, 10).valid
    assert engine.check_macro_consistency(100, 0, 0, 0).valid


@pytest.mark.parametrize("value", [0, -1, math.nan, math.inf, "3", True])
def test_positive_quantity(value: object) -> None:
    engine = InvariantEngine(PipelineConfig())

    violation = engine.check_positive_quantity(value, "rice")

    assert violation is not None
    assert violation.severity is Severity.CRITICAL
    with pytest.raises(InvariantViolationError):
        engine.assert_positive_quantity(value, "rice")


def test_portion_size_band() -> None:
    engine = InvariantEngine(PipelineConfig())

    assert engine.check_portion_size(None) is None
    assert engine.check_portion_size(250, "rice") is None
    too_big = engine.check_portion_size(1500, "rice")
    assert too_big is not None
    assert too_big.severity is Severity.WARNING


def test_reconciliation_factor_bounds() -> None:
    engine = InvariantEngine(PipelineConfig())

    assert engine.check_reconciliation_factor(1.2) is None
    assert engine.check_reconciliation_factor(None) is None
    assert engine.check_reconciliation_factor(2.5) is not None
    with pytest.raises(ReconciliationOutOfBoundsError):
        engine.assert_reconciliation_factor(0.2)


def test_yield_coverage_and_resolved_state() -> None:
    engine = InvariantEngine(PipelineConfig())

    assert engine.check_yield_coverage("cooked", None, "stew") is not None
    assert engine.check_yield_coverage("raw", None, "apple") is None
    assert engine.check_resolved_state(_resolved("apple")) is None
    assert engine.check_resolved_state(_resolved("", None)) is not None
    assert engine.check_resolved_state(Item("apple", 1, "g")) is not None


def test_day_totals() -> None:
    engine = InvariantEngine(PipelineConfig())

    ids = {
        violation.invariant_id
        for violation in engine.check_day_totals(
            MacroTotals(kcal=300, protein=-1), MacroTargets(kcal=2000)
        )
    }

    assert ids == {
        InvariantId.DAY_TOTALS_NEGATIVE,
        InvariantId.DAY_TOTALS_LOW,
        InvariantId.DAY_TARGET_DEVIATION,
    }
    assert engine.check_day_totals(MacroTotals()) == []
    assert engine.check_day_totals(MacroTotals(kcal=2100), MacroTargets(2000)) == []
    high = engine.check_day_totals(MacroTotals(kcal=12000))
    assert high[0].invariant_id == InvariantId.DAY_TOTALS_HIGH


def test_day_plan_soft_and_hard_modes() -> None:
    engine = InvariantEngine(PipelineConfig())
    meals = [("Lunch", [_resolved("apple")]), ("Dinner", [])]

    violations = engine.check_day_plan(meals, MacroTotals(kcal=1800))

    assert [violation.invariant_id for violation in violations] == [
        InvariantId.MEAL_HAS_ITEMS
    ]
    with pytest.raises(InvariantViolationError):
        engine.check_day_plan(meals, MacroTotals(kcal=1800), soft=False)


def test_check_item_collects_violations() -> None:
    engine = InvariantEngine(PipelineConfig())
    stew = Item(
        "stew",
        100,
        "g",
        resolution=StateResolution("cooked", None, "high", "TEST", "hint"),
    )

    violations = engine.check_item(stew, grams=2, check_yield=True)

    assert {violation.invariant_id for violation in violations} == {
        InvariantId.PORTION_SIZE,
        InvariantId.YIELD_COVERAGE,
    }


def test_item_calorie_cap_exempts_cooking_fats() -> None:
    engine = InvariantEngine(PipelineConfig())

    violation = engine.check_item_calories(1500, "pizza")

    assert violation is not None
    assert violation.invariant_id == InvariantId.ITEM_CALORIES_HIGH
    assert violation.severity is Severity.CRITICAL
    assert engine.check_item_calories(1200, "pizza") is None
    assert engine.check_item_calories(1500, "olive_oil") is None
    assert engine.check_item_calories(1500, "butter") is None
    with pytest.raises(InvariantViolationError):
        engine.assert_item_calories(1500, "pizza")


def test_day_target_deviation_warns_before_it_fails() -> None:
    engine = InvariantEngine(PipelineConfig())

    warning = engine.check_day_totals(MacroTotals(kcal=1600), MacroTargets(2000))
    critical = engine.check_day_totals(MacroTotals(kcal=900), MacroTargets(2000))

    assert [item.severity for item in warning] == [Severity.WARNING]
    assert warning[0].invariant_id == InvariantId.DAY_TARGET_DEVIATION
    assert warning[0].context["deviationPct"] == 20.0
    assert [item.severity for item in critical] == [Severity.CRITICAL]


def test_day_plan_checks_item_calories_and_yield() -> None:
    engine = InvariantEngine(PipelineConfig())
    pizza = _resolved("pizza")
    stew = _resolved("mystery stew", state="cooked")
    macros = {
        pizza: MacroResult(1500, 60, 70, 150, grams_as_sold=400),
        stew: MacroResult(300, 20, 10, 30, grams_as_sold=300),
    }

    violations = engine.check_day_plan(
        [("Dinner", [pizza, stew])], MacroTotals(kcal=1800), item_macros=macros.get
    )

    assert [item.invariant_id for item in violations] == [
        InvariantId.ITEM_CALORIES_HIGH,
        InvariantId.YIELD_COVERAGE,
    ]
