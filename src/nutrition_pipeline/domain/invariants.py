"""Invariant check results."""

from dataclasses import dataclass, field
from enum import StrEnum


class Severity(StrEnum):
    """Ordered severity tiers: valid < warning < critical."""

    VALID = "valid"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.VALID: 0, Severity.WARNING: 1, Severity.CRITICAL: 2}


class InvariantId(StrEnum):
    """Identifiers of the rules enforced by the invariant engine."""

    MACRO_CALORIE_CONSISTENCY = "macro_calorie_consistency"
    POSITIVE_QUANTITY = "positive_quantity"
    PORTION_SIZE = "portion_size"
    RECONCILIATION_FACTOR = "reconciliation_factor"
    YIELD_COVERAGE = "yield_coverage"
    RESOLVED_STATE = "resolved_state"
    MEAL_HAS_ITEMS = "meal_has_items"
    DAY_TOTALS_NEGATIVE = "day_totals_negative"
    DAY_TOTALS_LOW = "day_totals_low"
    DAY_TOTALS_HIGH = "day_totals_high"
    DAY_TARGET_DEVIATION = "day_target_deviation"
    ITEM_CALORIES_HIGH = "item_calories_high"
    RESPONSE_FLAGGED_RATE = "response_flagged_rate"


@dataclass(frozen=True)
class Violation:
    """A single invariant violation with reproduction context."""

    invariant_id: str
    message: str
    severity: Severity = Severity.CRITICAL
    context: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class ConsistencyCheck:
    """Outcome of the macro-to-calorie consistency rule."""

    severity: Severity
    reported_kcal: float
    expected_kcal: float
    deviation_pct: float

    @property
    def valid(self) -> bool:
        return self.severity is Severity.VALID
