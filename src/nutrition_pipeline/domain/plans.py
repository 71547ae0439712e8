"""Day plan, trace and pipeline result models."""

from dataclasses import dataclass, field

from nutrition_pipeline.domain.invariants import Violation
from nutrition_pipeline.domain.items import Item
from nutrition_pipeline.domain.nutrition import MacroResult, MacroTargets, MacroTotals
from nutrition_pipeline.domain.validation import Correction


@dataclass(frozen=True)
class PlanItem:
    """An emitted item with its computed macros."""

    item: Item
    macros: MacroResult

    def to_dict(self) -> dict[str, object]:
        payload = self.item.to_payload()
        resolution = self.item.resolution
        payload.update(
            {
                "resolvedState": resolution.state if resolution else None,
                "resolvedMethod": resolution.method if resolution else None,
                "kcal": self.macros.kcal,
                "protein": self.macros.protein,
                "fat": self.macros.fat,
                "carbs": self.macros.carbs,
                "gramsAsSold": self.macros.grams_as_sold,
                "flagged": self.macros.flagged,
                "source": self.macros.source,
                "deviationPct": self.macros.deviation_pct,
                "severity": self.macros.severity,
                "error": self.macros.error,
                "absorbedOilG": self.macros.absorbed_oil_g,
            }
        )
        return payload


@dataclass(frozen=True)
class PlanMeal:
    """An emitted meal with per-meal totals."""

    type: str
    name: str
    items: tuple[PlanItem, ...]
    totals: MacroTotals
    excluded: bool = False
    exclusion_reason: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "type": self.type,
            "name": self.name,
            "items": [item.to_dict() for item in self.items],
            "totals": _totals_dict(self.totals),
            "excluded": self.excluded,
            "exclusionReason": self.exclusion_reason,
        }


@dataclass(frozen=True)
class DayPlan:
    """Final plan owned by the orchestrator until emission."""

    meals: tuple[PlanMeal, ...]
    day_totals: MacroTotals
    targets: MacroTargets | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "meals": [meal.to_dict() for meal in self.meals],
            "dayTotals": _totals_dict(self.day_totals),
            "targets": _targets_dict(self.targets),
        }


@dataclass(frozen=True)
class PlanValidation:
    """Warnings and criticals found by final plan validation."""

    valid: bool
    warnings: list[Violation] = field(default_factory=list)
    criticals: list[Violation] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "valid": self.valid,
            "warnings": [violation_dict(item) for item in self.warnings],
            "criticals": [violation_dict(item) for item in self.criticals],
        }


@dataclass
class PipelineTrace:
    """Per-run trace written only by the orchestrator."""

    trace_id: str
    stages: list[str] = field(default_factory=list)
    timings: dict[str, float] = field(default_factory=dict)
    invariant_stats: dict[str, int] = field(default_factory=dict)
    sanitization_stats: dict[str, int] = field(default_factory=dict)
    nutrition_stats: dict[str, int] = field(default_factory=dict)
    reconciliation: list[dict[str, object]] = field(default_factory=list)

    def record_stage(self, stage: str, elapsed_ms: float) -> None:
        self.stages.append(stage)
        self.timings[stage] = round(elapsed_ms, 3)

    def bump(self, bucket: dict[str, int], name: str, amount: int = 1) -> None:
        bucket[name] = bucket.get(name, 0) + amount

    def to_dict(self) -> dict[str, object]:
        return {
            "traceId": self.trace_id,
            "stages": list(self.stages),
            "timings": dict(self.timings),
            "invariantStats": dict(self.invariant_stats),
            "sanitizationStats": dict(self.sanitization_stats),
            "nutritionStats": dict(self.nutrition_stats),
            "reconciliation": list(self.reconciliation),
        }


@dataclass(frozen=True)
class ExcludedMeal:
    """A meal dropped from computation by the structure guard."""

    index: int
    name: str
    reason: str


@dataclass(frozen=True)
class PipelineResult:
    """Everything a caller receives from one pipeline run."""

    trace_id: str
    plan: DayPlan
    validation: PlanValidation
    trace: PipelineTrace
    corrections: list[Correction] = field(default_factory=list)
    excluded_meals: list[ExcludedMeal] = field(default_factory=list)
    violations: list[Violation] = field(default_factory=list)

    @property
    def meals(self) -> tuple[PlanMeal, ...]:
        return self.plan.meals

    @property
    def day_totals(self) -> MacroTotals:
        return self.plan.day_totals

    def to_dict(self) -> dict[str, object]:
        plan = self.plan.to_dict()
        return {
            "traceId": self.trace_id,
            "meals": plan["meals"],
            "dayTotals": plan["dayTotals"],
            "targets": plan["targets"],
            "validation": self.validation.to_dict(),
            "trace": self.trace.to_dict(),
            "corrections": [correction.to_dict() for correction in self.corrections],
            "excludedMeals": [
                {"index": meal.index, "name": meal.name, "reason": meal.reason}
                for meal in self.excluded_meals
            ],
            "violations": [violation_dict(item) for item in self.violations],
        }


def violation_dict(violation: Violation) -> dict[str, object]:
    return {
        "invariantId": violation.invariant_id,
        "message": violation.message,
        "severity": violation.severity.value,
        "context": dict(violation.context),
    }


def _totals_dict(totals: MacroTotals) -> dict[str, float]:
    return {
        "kcal": totals.kcal,
        "protein": totals.protein,
        "fat": totals.fat,
        "carbs": totals.carbs,
    }


def _targets_dict(targets: MacroTargets | None) -> dict[str, float] | None:
    if targets is None:
        return None
    return {
        "kcal": targets.kcal,
        "protein": targets.protein,
        "fat": targets.fat,
        "carbs": targets.carbs,
    }
