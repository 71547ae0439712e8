"""Proportional calorie reconciliation for meals and days."""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace

from nutrition_pipeline.config import PipelineConfig
from nutrition_pipeline.domain.invariants import Violation
from nutrition_pipeline.domain.items import Item, Meal
from nutrition_pipeline.domain.nutrition import MacroResult, MacroTargets
from nutrition_pipeline.services.invariants import InvariantEngine

_logger = logging.getLogger(__name__)

ItemMacros = Callable[[Item], MacroResult]


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of one reconciliation pass."""

    meals: tuple[Meal, ...] | None
    meal: Meal | None
    adjusted: bool
    factor: float | None
    within_bounds: bool = True
    violation: Violation | None = None
    before_kcal: float = 0.0
    reason: str | None = None

    def to_dict(self, scope: str) -> dict[str, object]:
        return {
            "scope": scope,
            "adjusted": self.adjusted,
            "factor": self.factor,
            "withinBounds": self.within_bounds,
            "beforeKcal": round(self.before_kcal, 2),
            "reason": self.reason,
        }


def is_protein_dominant(macros: MacroResult) -> bool:
    """Protein supplies at least as much energy as carbs or fat."""
    protein_kcal = macros.protein * 4
    return macros.kcal > 0 and protein_kcal >= max(macros.carbs * 4, macros.fat * 9)


def round_quantity(value: float, unit: str) -> float:
    """Round a scaled quantity to the unit's natural step, never below the floor."""
    if unit == "g":
        return float(max(round(value), 1))
    if unit == "ml":
        return float(max(round(value / 5) * 5, 1))
    return max(round(value, 2), 0.01)


def reconcile(  # noqa: PLR0913
    scope: Meal | Sequence[Meal],
    target: MacroTargets,
    get_item_macros: ItemMacros,
    tolerance_pct: float,
    allow_protein_scaling: bool,
    config: PipelineConfig,
) -> ReconciliationResult:
    """Scale the scope's scalable items so total calories approach the target.

    Protein-dominant items are locked unless protein scaling is allowed. The
    reported factor is the multiplier applied to the scalable items, so when
    nothing is locked it equals ``target / current``. An out-of-bounds factor
    is reported through ``violation`` but the scaled scope is still returned.
    """
    single = isinstance(scope, Meal)
    meals: tuple[Meal, ...] = (scope,) if single else tuple(scope)

    def result(
        adjusted_meals: tuple[Meal, ...], **values: object
    ) -> ReconciliationResult:
        return ReconciliationResult(
            meals=None if single else adjusted_meals,
            meal=adjusted_meals[0] if single else None,
            **values,
        )

    macros = [[get_item_macros(item) for item in meal.items] for meal in meals]
    flat = [item_macros for meal_macros in macros for item_macros in meal_macros]
    current = sum(item.kcal for item in flat)
    if target.kcal <= 0 or current <= 0:
        return result(meals, adjusted=False, factor=None, reason="no_energy")
    if abs(current - target.kcal) <= target.kcal * tolerance_pct / 100:
        return result(
            meals,
            adjusted=False,
            factor=None,
            before_kcal=current,
            reason="within_tolerance",
        )

    locked = [
        not allow_protein_scaling and is_protein_dominant(item_macros)
        for item_macros in flat
    ]
    locked_kcal = sum(
        item.kcal for item, is_locked in zip(flat, locked, strict=True) if is_locked
    )
    scalable_kcal = current - locked_kcal
    if scalable_kcal <= 0:
        _logger.info("Nothing to scale: every item in scope is protein-locked")
        return result(
            meals,
            adjusted=False,
            factor=None,
            before_kcal=current,
            reason="all_locked",
        )

    factor = (target.kcal - locked_kcal) / scalable_kcal
    if allow_protein_scaling and factor < 1 and target.protein > 0:
        current_protein = sum(item.protein for item in flat)
        floor = target.protein * config.min_protein_ratio
        if current_protein * factor < floor:
            _logger.warning(
                "Skipped scaling by %.2f: protein %.1fg would fall below %.1fg",
                factor,
                current_protein * factor,
                floor,
            )
            return result(
                meals,
                adjusted=False,
                factor=None,
                before_kcal=current,
                reason="protein_floor",
            )

    violation = InvariantEngine(config).check_reconciliation_factor(factor)
    if violation is not None:
        _logger.warning("%s", violation.message)
    applied = max(factor, 0.0)
    adjusted_meals = []
    index = 0
    for meal in meals:
        items = []
        for item in meal.items:
            if locked[index]:
                items.append(item)
            else:
                items.append(
                    replace(
                        item,
                        quantity_value=round_quantity(
                            item.quantity_value * applied, item.quantity_unit
                        ),
                    )
                )
            index += 1
        adjusted_meals.append(replace(meal, items=tuple(items)))
    _logger.debug("Scaled %s meal(s) by %.3f", len(meals), factor)
    return result(
        tuple(adjusted_meals),
        adjusted=True,
        factor=factor,
        within_bounds=violation is None,
        violation=violation,
        before_kcal=current,
    )


def reconcile_meal(
    meal: Meal,
    target: MacroTargets,
    get_item_macros: ItemMacros,
    config: PipelineConfig,
) -> ReconciliationResult:
    return reconcile(
        meal,
        target,
        get_item_macros,
        config.meal_tolerance_pct,
        config.allow_protein_scaling,
        config,
    )


def reconcile_day(
    meals: Sequence[Meal],
    target: MacroTargets,
    get_item_macros: ItemMacros,
    config: PipelineConfig,
) -> ReconciliationResult:
    return reconcile(
        meals,
        target,
        get_item_macros,
        config.day_tolerance_pct,
        config.allow_protein_scaling,
        config,
    )
