"""Domain models for generated meal items."""

from dataclasses import dataclass, field
from enum import StrEnum


class ItemState(StrEnum):
    """Closed vocabulary for the state an item quantity refers to."""

    DRY = "dry"
    RAW = "raw"
    COOKED = "cooked"
    AS_PACK = "as_pack"


class CookingMethod(StrEnum):
    """Closed vocabulary for cooking method hints."""

    BOILED = "boiled"
    FRIED = "fried"
    BAKED = "baked"
    STEAMED = "steamed"
    GRILLED = "grilled"
    ROASTED = "roasted"
    SAUTEED = "sauteed"
    POACHED = "poached"
    BRAISED = "braised"


VALID_STATES = frozenset(state.value for state in ItemState)
VALID_METHODS = frozenset(method.value for method in CookingMethod)

MEAL_TYPES = (
    "breakfast",
    "lunch",
    "dinner",
    "snack",
    "morning_snack",
    "afternoon_snack",
    "evening_snack",
)


@dataclass(frozen=True)
class StateResolution:
    """How an item's state was decided during normalization."""

    state: str | None
    method: str | None
    confidence: str
    rule_id: str
    source: str


@dataclass(frozen=True)
class Item:
    """A single generated ingredient line."""

    key: str
    quantity_value: float
    quantity_unit: str
    state_hint: str | None = None
    method_hint: str | None = None
    resolution: StateResolution | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> "Item":
        """Build an item from a corrected wire payload."""
        value = payload.get("quantityValue")
        return cls(
            key=str(payload.get("key") or ""),
            quantity_value=float(value) if isinstance(value, int | float) else 0.0,
            quantity_unit=str(payload.get("quantityUnit") or ""),
            state_hint=_optional_str(payload.get("stateHint")),
            method_hint=_optional_str(payload.get("methodHint")),
        )

    def to_payload(self) -> dict[str, object]:
        """Return the wire representation of the item."""
        return {
            "key": self.key,
            "quantityValue": self.quantity_value,
            "quantityUnit": self.quantity_unit,
            "stateHint": self.state_hint,
            "methodHint": self.method_hint,
        }


@dataclass(frozen=True)
class Meal:
    """A named meal with its items."""

    type: str
    name: str
    items: tuple[Item, ...] = field(default_factory=tuple)

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> "Meal":
        """Build a meal from a corrected wire payload."""
        raw_items = payload.get("items")
        items = tuple(
            Item.from_payload(item)
            for item in (raw_items if isinstance(raw_items, list) else [])
            if isinstance(item, dict)
        )
        return cls(
            type=str(payload.get("type") or ""),
            name=str(payload.get("name") or ""),
            items=items,
        )


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None
