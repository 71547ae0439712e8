"""Alert fan-out to best-effort sinks."""

import logging
from dataclasses import dataclass, field
from typing import Protocol

from nutrition_pipeline.domain.alerts import AlertEvent, AlertLevel, AlertType

_logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    AlertLevel.INFO: logging.INFO,
    AlertLevel.WARNING: logging.WARNING,
    AlertLevel.CRITICAL: logging.ERROR,
}


class AlertSink(Protocol):
    """Destination for alert events."""

    def send(self, event: AlertEvent) -> None:
        """Deliver one alert event."""


@dataclass
class LoggingAlertSink(AlertSink):
    """Writes alerts to the standard logger."""

    logger: logging.Logger = field(
        default_factory=lambda: logging.getLogger("nutrition_pipeline.alerts")
    )

    def send(self, event: AlertEvent) -> None:
        self.logger.log(
            _LOG_LEVELS[event.level],
            "ALERT %s [%s] trace=%s payload=%s",
            event.type.value,
            event.level.value,
            event.trace_id,
            event.payload,
        )


@dataclass
class InMemoryAlertSink(AlertSink):
    """Keeps alerts in memory for diagnostics."""

    events: list[AlertEvent] = field(default_factory=list)

    def send(self, event: AlertEvent) -> None:
        self.events.append(event)

    def of_type(self, alert_type: AlertType) -> list[AlertEvent]:
        return [event for event in self.events if event.type == alert_type]


@dataclass
class AlertService:
    """Fans alerts out to every sink; a failing sink never breaks the caller."""

    sinks: list[AlertSink] = field(default_factory=list)

    def emit(
        self,
        level: AlertLevel,
        alert_type: AlertType,
        payload: dict[str, object] | None = None,
        trace_id: str | None = None,
    ) -> AlertEvent:
        event = AlertEvent(
            level=level, type=alert_type, payload=payload or {}, trace_id=trace_id
        )
        for sink in self.sinks:
            try:
                sink.send(event)
            except Exception:
                _logger.exception(
                    "Alert sink %s failed for %s", type(sink).__name__, alert_type
                )
        return event
