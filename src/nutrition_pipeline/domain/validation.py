"""Validation and auto-correction results."""

from dataclasses import dataclass, field
from enum import StrEnum


class SchemaKind(StrEnum):
    """Shapes accepted by the validator."""

    ITEM = "item"
    MEAL = "meal"
    MEALS_ARRAY = "meals_array"


class CorrectionRule(StrEnum):
    """Deterministic correction rules, in application order."""

    STRING_TO_NUMBER = "STRING_TO_NUMBER"
    SIZE_DESCRIPTOR_TO_GRAMS = "SIZE_DESCRIPTOR_TO_GRAMS"
    UNIT_NORMALIZATION = "UNIT_NORMALIZATION"
    STATE_HINT_NORMALIZATION = "STATE_HINT_NORMALIZATION"
    INVALID_STATE_HINT_CLEARED = "INVALID_STATE_HINT_CLEARED"
    METHOD_HINT_NORMALIZATION = "METHOD_HINT_NORMALIZATION"
    INVALID_METHOD_HINT_CLEARED = "INVALID_METHOD_HINT_CLEARED"
    QUANTITY_BOUNDS_CLAMPED = "QUANTITY_BOUNDS_CLAMPED"


@dataclass(frozen=True)
class Correction:
    """Append-only audit entry for one applied correction."""

    field: str
    original_value: object
    corrected_value: object
    rule: str
    details: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "field": self.field,
            "originalValue": self.original_value,
            "correctedValue": self.corrected_value,
            "rule": self.rule,
            "details": self.details,
        }


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating and correcting generated output."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    corrections: list[Correction] = field(default_factory=list)
    corrected_output: object = None
