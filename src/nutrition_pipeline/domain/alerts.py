"""Alert event models."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum


class AlertLevel(StrEnum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertType(StrEnum):
    ELEVATED_FALLBACK_RATE = "elevated_fallback_rate"
    HIGH_FALLBACK_RATE = "high_fallback_rate"
    YIELD_UNMAPPED = "yield_unmapped"
    MACRO_INCONSISTENCY = "macro_inconsistency"
    RECONCILIATION_OUT_OF_BOUNDS = "reconciliation_out_of_bounds"
    RESPONSE_BLOCKED = "response_blocked"
    PIPELINE_FAILURE = "pipeline_failure"
    QUANTITY_INVALID = "quantity_invalid"
    LLM_VALIDATION_FAILED = "llm_validation_failed"
    VALIDATION_CRITICAL = "validation_critical"
    STATE_DISAGREEMENT = "state_disagreement"


@dataclass(frozen=True)
class AlertEvent:
    """Fire-and-forget alert produced during a pipeline run."""

    level: AlertLevel
    type: AlertType
    payload: dict[str, object]
    trace_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def to_row(self) -> dict[str, object]:
        return {
            "level": self.level.value,
            "type": self.type.value,
            "payload": self.payload,
            "trace_id": self.trace_id,
            "created_at": self.timestamp.isoformat(),
        }
