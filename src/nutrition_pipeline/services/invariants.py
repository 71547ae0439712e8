"""Invariant checks over items, macros, reconciliation factors and day plans.

Each rule comes as a ``check_*`` method that returns a ``Violation`` (or
``None``) and an ``assert_*`` method that raises it instead.
"""

import math
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from nutrition_pipeline.config import PipelineConfig
from nutrition_pipeline.domain.errors import (
    InvariantViolationError,
    ReconciliationOutOfBoundsError,
)
from nutrition_pipeline.domain.invariants import (
    ConsistencyCheck,
    InvariantId,
    Severity,
    Violation,
)
from nutrition_pipeline.domain.items import VALID_STATES, Item
from nutrition_pipeline.domain.nutrition import (
    MacroResult,
    MacroTargets,
    MacroTotals,
    finite_or_zero,
)
from nutrition_pipeline.services.transforms import YieldFactor, is_oil, lookup_yield

_CALORIE_CAP_EXEMPT = ("butter", "ghee", "lard", "fat", "dripping")


def expected_kcal(protein: float, fat: float, carbs: float) -> float:
    """Atwater energy estimate from macros."""
    return protein * 4 + carbs * 4 + fat * 9


@dataclass(frozen=True)
class InvariantEngine:
    """Stateless invariant checks parameterised by pipeline configuration."""

    config: PipelineConfig

    def check_macro_consistency(
        self, kcal: float, protein: float, fat: float, carbs: float
    ) -> ConsistencyCheck:
        """Grade how far reported calories drift from the macro estimate."""
        reported = finite_or_zero(kcal)
        expected = expected_kcal(
            finite_or_zero(protein), finite_or_zero(fat), finite_or_zero(carbs)
        )
        if reported == 0 or expected == 0:
            return ConsistencyCheck(Severity.VALID, reported, expected, 0.0)
        deviation = abs(reported - expected) / expected * 100
        return ConsistencyCheck(
            self.consistency_severity(deviation), reported, expected, deviation
        )

    def consistency_severity(self, deviation_pct: float) -> Severity:
        if deviation_pct > self.config.consistency_block_threshold_pct:
            return Severity.CRITICAL
        if deviation_pct > self.config.consistency_flag_threshold_pct:
            return Severity.WARNING
        return Severity.VALID

    def check_consistency(
        self, kcal: float, protein: float, fat: float, carbs: float, key: str = ""
    ) -> Violation | None:
        result = self.check_macro_consistency(kcal, protein, fat, carbs)
        if result.valid:
            return None
        return Violation(
            invariant_id=InvariantId.MACRO_CALORIE_CONSISTENCY,
            message=(
                f"Calories for '{key}' deviate {result.deviation_pct:.1f}% "
                "from macro estimate"
            ),
            severity=result.severity,
            context={
                "itemKey": key,
                "reportedKcal": result.reported_kcal,
                "expectedKcal": round(result.expected_kcal, 2),
                "deviationPct": round(result.deviation_pct, 2),
                "flagThresholdPct": self.config.consistency_flag_threshold_pct,
                "blockThresholdPct": self.config.consistency_block_threshold_pct,
            },
        )

    def assert_macro_consistency(
        self, kcal: float, protein: float, fat: float, carbs: float, key: str = ""
    ) -> ConsistencyCheck:
        """Raise when the deviation is critical; return the check otherwise."""
        result = self.check_macro_consistency(kcal, protein, fat, carbs)
        if result.severity is Severity.CRITICAL:
            violation = self.check_consistency(kcal, protein, fat, carbs, key)
            if violation is not None:
                raise InvariantViolationError(violation)
        return result

    def check_positive_quantity(self, value: object, key: str = "") -> Violation | None:
        if (
            isinstance(value, int | float)
            and not isinstance(value, bool)
            and math.isfinite(value)
            and value > 0
        ):
            return None
        return Violation(
            invariant_id=InvariantId.POSITIVE_QUANTITY,
            message=f"Quantity for '{key}' must be a positive finite number",
            severity=Severity.CRITICAL,
            context={"itemKey": key, "quantityValue": repr(value)},
        )

    def assert_positive_quantity(self, value: object, key: str = "") -> None:
        _raise_if(self.check_positive_quantity(value, key))

    def check_portion_size(
        self, grams: float | None, key: str = ""
    ) -> Violation | None:
        """Check a gram quantity against the portion band; skipped without grams."""
        if grams is None or not math.isfinite(grams):
            return None
        low = self.config.portion_min_grams
        high = self.config.portion_max_grams
        if low <= grams <= high:
            return None
        relation = "below minimum" if grams < low else "above maximum"
        return Violation(
            invariant_id=InvariantId.PORTION_SIZE,
            message=f"Portion {grams:g}g for '{key}' is {relation}",
            severity=Severity.WARNING,
            context={"itemKey": key, "grams": grams, "minGrams": low, "maxGrams": high},
        )

    def assert_portion_size(self, grams: float | None, key: str = "") -> None:
        _raise_if(self.check_portion_size(grams, key))

    def check_reconciliation_factor(self, factor: float | None) -> Violation | None:
        if factor is None:
            return None
        low = self.config.reconciliation_factor_min
        high = self.config.reconciliation_factor_max
        if math.isfinite(factor) and low <= factor <= high:
            return None
        return Violation(
            invariant_id=InvariantId.RECONCILIATION_FACTOR,
            message=f"Reconciliation factor {factor:.3f} outside {low:g}-{high:g}",
            severity=Severity.WARNING,
            context={"factor": factor, "minFactor": low, "maxFactor": high},
        )

    def assert_reconciliation_factor(self, factor: float | None) -> None:
        violation = self.check_reconciliation_factor(factor)
        if violation is not None:
            raise ReconciliationOutOfBoundsError(violation)

    def check_yield_coverage(
        self, state: str | None, yield_factor: YieldFactor | None, key: str = ""
    ) -> Violation | None:
        if state != "cooked" or yield_factor is not None:
            return None
        return Violation(
            invariant_id=InvariantId.YIELD_COVERAGE,
            message=f"Cooked item '{key}' has no yield factor",
            severity=Severity.WARNING,
            context={"itemKey": key, "state": state},
        )

    def assert_yield_coverage(
        self, state: str | None, yield_factor: YieldFactor | None, key: str = ""
    ) -> None:
        _raise_if(self.check_yield_coverage(state, yield_factor, key))

    def check_resolved_state(self, item: Item) -> Violation | None:
        resolution = item.resolution
        state = resolution.state if resolution is not None else item.state_hint
        problem = None
        if not state:
            problem = "has no resolved state"
        elif state not in VALID_STATES:
            problem = f"has invalid state '{state}'"
        elif resolution is not None and resolution.confidence == "none":
            problem = "state resolution has no confidence"
        if problem is None:
            return None
        return Violation(
            invariant_id=InvariantId.RESOLVED_STATE,
            message=f"Item '{item.key}' {problem}",
            severity=Severity.CRITICAL,
            context={"itemKey": item.key, "state": state},
        )

    def assert_resolved_state(self, item: Item) -> None:
        _raise_if(self.check_resolved_state(item))

    def check_meal_has_items(
        self, name: str, items: Sequence[object]
    ) -> Violation | None:
        if items:
            return None
        return Violation(
            invariant_id=InvariantId.MEAL_HAS_ITEMS,
            message=f"Meal '{name}' has no items",
            severity=Severity.CRITICAL,
            context={"meal": name},
        )

    def assert_meal_has_items(self, name: str, items: Sequence[object]) -> None:
        _raise_if(self.check_meal_has_items(name, items))

    def check_day_totals(
        self, totals: MacroTotals, targets: MacroTargets | None = None
    ) -> list[Violation]:
        """Negative totals, absolute calorie band and target deviation."""
        violations: list[Violation | None] = []
        values = {
            "kcal": totals.kcal,
            "protein": totals.protein,
            "fat": totals.fat,
            "carbs": totals.carbs,
        }
        negative = {name: value for name, value in values.items() if value < 0}
        if negative:
            violations.append(
                Violation(
                    invariant_id=InvariantId.DAY_TOTALS_NEGATIVE,
                    message=f"Day totals contain negative values: {sorted(negative)}",
                    context={"totals": values},
                )
            )
        if 0 < totals.kcal < self.config.day_min_kcal:
            violations.append(
                Violation(
                    invariant_id=InvariantId.DAY_TOTALS_LOW,
                    message=f"Day calories {totals.kcal:.0f} below minimum",
                    context={"kcal": totals.kcal, "minKcal": self.config.day_min_kcal},
                )
            )
        if totals.kcal > self.config.day_max_kcal:
            violations.append(
                Violation(
                    invariant_id=InvariantId.DAY_TOTALS_HIGH,
                    message=f"Day calories {totals.kcal:.0f} above maximum",
                    context={"kcal": totals.kcal, "maxKcal": self.config.day_max_kcal},
                )
            )
        if targets is not None and targets.kcal > 0:
            violations.append(self._check_target_deviation(totals, targets))
        return [violation for violation in violations if violation is not None]

    def _check_target_deviation(
        self, totals: MacroTotals, targets: MacroTargets
    ) -> Violation | None:
        deviation = abs(totals.kcal - targets.kcal) / targets.kcal * 100
        if deviation > self.config.day_target_tolerance_pct:
            severity = Severity.CRITICAL
        elif deviation > self.config.day_target_warning_pct:
            severity = Severity.WARNING
        else:
            return None
        return Violation(
            invariant_id=InvariantId.DAY_TARGET_DEVIATION,
            message=f"Day calories deviate {deviation:.1f}% from target",
            severity=severity,
            context={
                "kcal": totals.kcal,
                "targetKcal": targets.kcal,
                "deviationPct": round(deviation, 2),
                "warningPct": self.config.day_target_warning_pct,
                "tolerancePct": self.config.day_target_tolerance_pct,
            },
        )

    def assert_day_totals(
        self, totals: MacroTotals, targets: MacroTargets | None = None
    ) -> None:
        violations = self.check_day_totals(totals, targets)
        if violations:
            raise InvariantViolationError(violations[0])

    def check_item_calories(
        self, kcal: float | None, key: str = ""
    ) -> Violation | None:
        """Per-item calorie cap; cooking fats are exempt."""
        if kcal is None or kcal <= self.config.max_item_kcal:
            return None
        lowered = key.lower()
        if is_oil(lowered) or any(word in lowered for word in _CALORIE_CAP_EXEMPT):
            return None
        return Violation(
            invariant_id=InvariantId.ITEM_CALORIES_HIGH,
            message=f"Item '{key}' exceeds max calories ({kcal:.0f})",
            severity=Severity.CRITICAL,
            context={
                "itemKey": key,
                "kcal": kcal,
                "maxKcal": self.config.max_item_kcal,
            },
        )

    def assert_item_calories(self, kcal: float | None, key: str = "") -> None:
        _raise_if(self.check_item_calories(kcal, key))

    def check_item(  # noqa: PLR0913
        self,
        item: Item,
        *,
        grams: float | None = None,
        kcal: float | None = None,
        yield_factor: YieldFactor | None = None,
        check_yield: bool = False,
        soft: bool = True,
    ) -> list[Violation]:
        """Run every item-level rule; in hard mode raise the first violation."""
        state = item.resolution.state if item.resolution else item.state_hint
        checks = [
            self.check_positive_quantity(item.quantity_value, item.key),
            self.check_portion_size(grams, item.key),
            self.check_item_calories(kcal, item.key),
            self.check_resolved_state(item),
        ]
        if check_yield:
            checks.append(self.check_yield_coverage(state, yield_factor, item.key))
        return _collect(checks, soft=soft)

    def check_day_plan(
        self,
        meals: Iterable[tuple[str, Sequence[Item]]],
        totals: MacroTotals,
        targets: MacroTargets | None = None,
        *,
        item_macros: Callable[[Item], MacroResult | None] | None = None,
        soft: bool = True,
    ) -> list[Violation]:
        """Day totals, then every meal and its items.

        With ``item_macros``, items are also checked for portion size and the
        calorie cap. Items without as-sold grams skip the portion check.
        """
        violations: list[Violation | None] = list(
            self.check_day_totals(totals, targets)
        )
        for name, items in meals:
            violations.append(self.check_meal_has_items(name, items))
            for item in items:
                macros = item_macros(item) if item_macros else None
                grams = macros.grams_as_sold if macros else None
                violations.extend(
                    self.check_item(
                        item,
                        grams=grams if grams else None,
                        kcal=macros.kcal if macros else None,
                        yield_factor=lookup_yield(item.key),
                        check_yield=True,
                    )
                )
        return _collect(violations, soft=soft)


def _collect(checks: Iterable[Violation | None], *, soft: bool) -> list[Violation]:
    violations = [violation for violation in checks if violation is not None]
    if violations and not soft:
        raise InvariantViolationError(violations[0])
    return violations


def _raise_if(violation: Violation | None) -> None:
    if violation is not None:
        raise InvariantViolationError(violation)
