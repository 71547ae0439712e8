"""Nutrition domain models."""

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class NutritionRecord:
    """Per-100g reference values for a normalized ingredient key."""

    calories: float
    protein: float
    fat: float
    carbs: float
    source: str
    confidence: str = "medium"

    @property
    def is_fallback(self) -> bool:
        return self.source == "fallback"


@dataclass(frozen=True)
class MacroResult:
    """Computed macros for one item. Every numeric field is finite."""

    kcal: float
    protein: float
    fat: float
    carbs: float
    grams_as_sold: float
    flagged: bool = False
    source: str | None = None
    deviation_pct: float | None = None
    severity: str = "valid"
    error: str | None = None
    absorbed_oil_g: float = 0.0

    @classmethod
    def zero(
        cls, error: str, grams_as_sold: float = 0.0, *, flagged: bool = False
    ) -> "MacroResult":
        """Return a zero-macro result tagged with an error code."""
        return cls(
            kcal=0.0,
            protein=0.0,
            fat=0.0,
            carbs=0.0,
            grams_as_sold=finite_or_zero(grams_as_sold),
            flagged=flagged,
            error=error,
        )


@dataclass(frozen=True)
class MacroTotals:
    """Aggregated macros for a meal or a day."""

    kcal: float = 0.0
    protein: float = 0.0
    fat: float = 0.0
    carbs: float = 0.0

    def add(self, macros: MacroResult) -> "MacroTotals":
        return MacroTotals(
            kcal=self.kcal + macros.kcal,
            protein=self.protein + macros.protein,
            fat=self.fat + macros.fat,
            carbs=self.carbs + macros.carbs,
        )

    def rounded(self) -> "MacroTotals":
        return MacroTotals(
            kcal=float(round(self.kcal)),
            protein=round(self.protein, 1),
            fat=round(self.fat, 1),
            carbs=round(self.carbs, 1),
        )


@dataclass(frozen=True)
class MacroTargets:
    """Caller-supplied daily targets."""

    kcal: float
    protein: float = 0.0
    fat: float = 0.0
    carbs: float = 0.0

    def per_meal(self, meal_count: int) -> "MacroTargets":
        """Split the daily targets evenly across meals."""
        count = max(meal_count, 1)
        return MacroTargets(
            kcal=self.kcal / count,
            protein=self.protein / count,
            fat=self.fat / count,
            carbs=self.carbs / count,
        )


def finite_or_zero(value: object) -> float:
    """Coerce a value to a finite float, defaulting to zero."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float) and math.isfinite(value):
        return float(value)
    return 0.0
