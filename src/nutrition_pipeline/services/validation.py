"""Structural validation, auto-correction and constraint checks."""

import logging
import math
from collections.abc import Callable
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from nutrition_pipeline.domain.items import VALID_METHODS, VALID_STATES
from nutrition_pipeline.domain.validation import (
    Correction,
    SchemaKind,
    ValidationResult,
)
from nutrition_pipeline.services.corrections import (
    ALLOWED_UNITS,
    QUANTITY_BOUNDS,
    SIZE_DESCRIPTORS,
    correct_item,
)

_logger = logging.getLogger(__name__)

MealType = Literal[
    "breakfast",
    "lunch",
    "dinner",
    "snack",
    "morning_snack",
    "afternoon_snack",
    "evening_snack",
]


class ItemModel(BaseModel):
    """Wire shape of a generated item."""

    model_config = ConfigDict(strict=True, extra="allow")

    key: str = Field(min_length=1)
    quantityValue: float  # noqa: N815
    quantityUnit: str = Field(min_length=1)  # noqa: N815
    stateHint: str | None = None  # noqa: N815
    methodHint: str | None = None  # noqa: N815


class MealModel(BaseModel):
    """Wire shape of a generated meal; items are checked one by one."""

    model_config = ConfigDict(strict=True, extra="allow")

    type: MealType
    name: str = Field(min_length=1)
    items: list[object] = Field(min_length=1)


def validate(output: object, schema_kind: SchemaKind) -> ValidationResult:
    """Validate generated output, repairing what can be repaired.

    Structural problems in the raw output are logged but do not stop
    correction. Validity is judged on the corrected output: any structural
    error left after correction, or any constraint error, makes it invalid.
    """
    kind = SchemaKind(schema_kind)
    initial_errors = _STRUCTURAL_CHECKS[kind](output)
    if initial_errors:
        _logger.debug("Structural errors before correction: %s", initial_errors)
    corrected, corrections = _CORRECTORS[kind](output)
    errors = _STRUCTURAL_CHECKS[kind](corrected) + _CONSTRAINT_CHECKS[kind](corrected)
    return ValidationResult(
        valid=not errors,
        errors=errors,
        corrections=corrections,
        corrected_output=corrected,
    )


def _item_label(item: object) -> str:
    if isinstance(item, dict) and isinstance(item.get("key"), str) and item["key"]:
        return f"Item '{item['key']}'"
    return "Item '<unknown>'"


def _meal_label(meal: object, index: int | None) -> str:
    if isinstance(meal, dict) and isinstance(meal.get("name"), str) and meal["name"]:
        return f"Meal '{meal['name']}'"
    if index is not None:
        return f"Meal #{index}"
    return "Meal '<unknown>'"


def _format_pydantic(label: str, exc: ValidationError) -> list[str]:
    errors = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "value"
        errors.append(f"{label}: {location}: {error['msg']}")
    return errors


def _item_structure(item: object) -> list[str]:
    if not isinstance(item, dict):
        return [f"{_item_label(item)}: must be an object"]
    try:
        ItemModel.model_validate(item)
    except ValidationError as exc:
        return _format_pydantic(_item_label(item), exc)
    return []


def _meal_structure(meal: object, index: int | None = None) -> list[str]:
    label = _meal_label(meal, index)
    if not isinstance(meal, dict):
        return [f"{label}: must be an object"]
    errors: list[str] = []
    try:
        MealModel.model_validate(meal)
    except ValidationError as exc:
        errors.extend(_format_pydantic(label, exc))
    items = meal.get("items")
    if isinstance(items, list):
        for item in items:
            errors.extend(_item_structure(item))
    return errors


def _meals_structure(meals: object) -> list[str]:
    if not isinstance(meals, list):
        return ["Meals: must be an array"]
    if not meals:
        return ["Meals: must contain at least one meal"]
    errors: list[str] = []
    for index, meal in enumerate(meals):
        errors.extend(_meal_structure(meal, index))
    return errors


def _correct_item_output(item: object) -> tuple[object, list[Correction]]:
    if not isinstance(item, dict):
        return item, []
    return correct_item(item)


def _correct_meal_output(meal: object) -> tuple[object, list[Correction]]:
    if not isinstance(meal, dict):
        return meal, []
    corrected = dict(meal)
    corrections: list[Correction] = []
    items = meal.get("items")
    if isinstance(items, list):
        corrected_items = []
        for item in items:
            fixed, applied = _correct_item_output(item)
            corrected_items.append(fixed)
            corrections.extend(applied)
        corrected["items"] = corrected_items
    return corrected, corrections


def _correct_meals_output(meals: object) -> tuple[object, list[Correction]]:
    if not isinstance(meals, list):
        return meals, []
    corrected = []
    corrections: list[Correction] = []
    for meal in meals:
        fixed, applied = _correct_meal_output(meal)
        corrected.append(fixed)
        corrections.extend(applied)
    return corrected, corrections


def item_constraint_errors(item: object) -> list[str]:
    """Semantic checks on a corrected item."""
    if not isinstance(item, dict):
        return []
    label = _item_label(item)
    errors = []
    unit = item.get("quantityUnit")
    if isinstance(unit, str):
        if unit in SIZE_DESCRIPTORS:
            errors.append(f"{label}: unit '{unit}' is a size descriptor, not a unit")
        elif unit not in ALLOWED_UNITS:
            errors.append(f"{label}: unit '{unit}' is not an allowed unit")
    value = item.get("quantityValue")
    if isinstance(value, int | float) and not isinstance(value, bool):
        if not math.isfinite(value) or value <= 0:
            errors.append(f"{label}: quantity must be a positive finite number")
        elif unit in QUANTITY_BOUNDS:
            low, high = QUANTITY_BOUNDS[str(unit)]
            if not low <= value <= high:
                errors.append(
                    f"{label}: quantity {value:g}{unit} outside {low:g}-{high:g}"
                )
    state = item.get("stateHint")
    if isinstance(state, str) and state and state not in VALID_STATES:
        errors.append(f"{label}: stateHint '{state}' is not recognised")
    method = item.get("methodHint")
    if isinstance(method, str) and method and method not in VALID_METHODS:
        errors.append(f"{label}: methodHint '{method}' is not recognised")
    return errors


def _meal_constraints(meal: object) -> list[str]:
    if not isinstance(meal, dict):
        return []
    items = meal.get("items")
    if not isinstance(items, list):
        return []
    errors: list[str] = []
    for item in items:
        errors.extend(item_constraint_errors(item))
    return errors


def _meals_constraints(meals: object) -> list[str]:
    if not isinstance(meals, list):
        return []
    errors: list[str] = []
    for meal in meals:
        errors.extend(_meal_constraints(meal))
    return errors


_STRUCTURAL_CHECKS: dict[SchemaKind, Callable[[object], list[str]]] = {
    SchemaKind.ITEM: _item_structure,
    SchemaKind.MEAL: _meal_structure,
    SchemaKind.MEALS_ARRAY: _meals_structure,
}

_CORRECTORS: dict[SchemaKind, Callable[[object], tuple[object, list[Correction]]]] = {
    SchemaKind.ITEM: _correct_item_output,
    SchemaKind.MEAL: _correct_meal_output,
    SchemaKind.MEALS_ARRAY: _correct_meals_output,
}

_CONSTRAINT_CHECKS: dict[SchemaKind, Callable[[object], list[str]]] = {
    SchemaKind.ITEM: item_constraint_errors,
    SchemaKind.MEAL: _meal_constraints,
    SchemaKind.MEALS_ARRAY: _meals_constraints,
}
