"""Typed pipeline errors."""

from nutrition_pipeline.domain.invariants import Violation


class PipelineError(Exception):
    """Base error raised by the pipeline, carrying reproduction context."""

    default_code = "PIPELINE_EXECUTION_FAILED"

    def __init__(  # noqa: PLR0913
        self,
        message: str,
        *,
        code: str | None = None,
        trace_id: str | None = None,
        stage: str | None = None,
        context: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.trace_id = trace_id
        self.stage = stage
        self.context = context or {}

    def to_dict(self) -> dict[str, object]:
        """Return a transport-friendly representation."""
        return {
            "code": self.code,
            "message": self.message,
            "traceId": self.trace_id,
            "stage": self.stage,
            "context": self.context,
        }

    @classmethod
    def from_exception(
        cls, exc: Exception, trace_id: str | None, stage: str | None
    ) -> "PipelineError":
        """Wrap an unexpected exception, keeping typed errors intact."""
        if isinstance(exc, PipelineError):
            if exc.trace_id is None:
                exc.trace_id = trace_id
            if exc.stage is None:
                exc.stage = stage
            return exc
        wrapped = cls(
            str(exc) or exc.__class__.__name__,
            trace_id=trace_id,
            stage=stage,
            context={"exception": exc.__class__.__name__},
        )
        wrapped.__cause__ = exc
        return wrapped


class StructuralError(PipelineError):
    """Input shape is unusable: not a list, empty, or every meal invalid."""

    default_code = "STRUCTURAL_INVALID"


class SchemaError(PipelineError):
    """Generated output stayed invalid after correction and retries."""

    default_code = "LLM_VALIDATION_FAILED"

    def __init__(
        self,
        message: str,
        *,
        errors: list[str],
        attempts: int,
        trace_id: str | None = None,
        stage: str | None = None,
    ) -> None:
        super().__init__(
            message,
            trace_id=trace_id,
            stage=stage,
            context={"errors": list(errors), "attempts": attempts},
        )
        self.errors = list(errors)
        self.attempts = attempts


class InvariantViolationError(PipelineError):
    """A hard invariant assertion failed."""

    default_code = "INVARIANT_VIOLATION"

    def __init__(
        self,
        violation: Violation,
        *,
        trace_id: str | None = None,
        stage: str | None = None,
    ) -> None:
        super().__init__(
            violation.message,
            trace_id=trace_id,
            stage=stage,
            context={
                "invariantId": violation.invariant_id,
                "severity": violation.severity.value,
                **violation.context,
            },
        )
        self.violation = violation


class ReconciliationOutOfBoundsError(InvariantViolationError):
    """Reconciliation factor assertion failed."""


class ResponseBlockedError(InvariantViolationError):
    """Too many items were flagged for the plan to be emitted."""

    default_code = "RESPONSE_BLOCKED"


class PlanValidationError(PipelineError):
    """Final plan validation found critical problems."""

    default_code = "VALIDATION_CRITICAL"


class TransformError(Exception):
    """A unit or yield conversion could not produce a finite value."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
