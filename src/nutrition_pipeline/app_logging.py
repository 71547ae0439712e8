"""Logging configuration helpers and per-run structured logging."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime


def configure_logging(level: str = "INFO") -> None:
    """Configure application logging with a single stream handler."""
    logger = logging.getLogger("nutrition_pipeline")
    logger.setLevel(level.upper())
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False


@dataclass(frozen=True)
class LogEntry:
    """Structured log record emitted for one pipeline run."""

    timestamp: datetime
    trace_id: str
    level: str
    message: str
    data: dict[str, object] = field(default_factory=dict)


LogSink = Callable[[LogEntry], None]


@dataclass
class TracedLogger:
    """Logger bound to a trace id that also feeds structured sinks."""

    trace_id: str
    logger: logging.Logger
    sinks: list[LogSink] = field(default_factory=list)

    def debug(self, message: str, **data: object) -> None:
        self._emit(logging.DEBUG, message, data)

    def info(self, message: str, **data: object) -> None:
        self._emit(logging.INFO, message, data)

    def warning(self, message: str, **data: object) -> None:
        self._emit(logging.WARNING, message, data)

    def error(self, message: str, **data: object) -> None:
        self._emit(logging.ERROR, message, data)

    def _emit(self, level: int, message: str, data: dict[str, object]) -> None:
        self.logger.log(level, "[%s] %s %s", self.trace_id, message, data or "")
        if not self.sinks:
            return
        entry = LogEntry(
            timestamp=datetime.now(tz=UTC),
            trace_id=self.trace_id,
            level=logging.getLevelName(level).lower(),
            message=message,
            data=dict(data),
        )
        for sink in self.sinks:
            try:
                sink(entry)
            except Exception:
                self.logger.exception("Log sink failed for trace %s", self.trace_id)
