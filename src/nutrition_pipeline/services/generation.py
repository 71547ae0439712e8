"""Meal regeneration through an LLM with structured outputs."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from nutrition_pipeline.domain.items import MEAL_TYPES, VALID_METHODS, VALID_STATES

_logger = logging.getLogger(__name__)

_NULLABLE_STRING = {"anyOf": [{"type": "string"}, {"type": "null"}]}

MEALS_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "meals": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "type": {"type": "string", "enum": list(MEAL_TYPES)},
                    "name": {"type": "string"},
                    "items": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "key": {"type": "string"},
                                "quantityValue": {"type": "number"},
                                "quantityUnit": {"type": "string"},
                                "stateHint": _NULLABLE_STRING,
                                "methodHint": _NULLABLE_STRING,
                            },
                            "required": [
                                "key",
                                "quantityValue",
                                "quantityUnit",
                                "stateHint",
                                "methodHint",
                            ],
                            "additionalProperties": False,
                        },
                    },
                },
                "required": ["type", "name", "items"],
                "additionalProperties": False,
            },
        }
    },
    "required": ["meals"],
    "additionalProperties": False,
}

_INSTRUCTIONS = (
    "Return the day's meals as JSON. Each item needs an ingredient key, "
    "a numeric quantityValue and a quantityUnit (g, ml, cup, tbsp, tsp or a "
    "count unit such as egg or slice). Use stateHint from {states} and "
    "methodHint from {methods}, or null when unknown."
)


class MealGenerationClient(Protocol):
    """Interface for structured meal generation."""

    async def generate(  # noqa: PLR0913
        self,
        *,
        model: str,
        reasoning_effort: str | None,
        store: bool,
        schema: dict[str, object],
        instructions: str,
        prompt: str,
    ) -> dict[str, object]:
        """Return structured output matching the schema."""


@dataclass
class MealGenerationService:
    """Asks the configured model for a fresh meals array."""

    client: MealGenerationClient
    model: str
    reasoning_effort: str | None
    store: bool

    async def generate(self, prompt: str) -> list[object]:
        instructions = _INSTRUCTIONS.format(
            states=", ".join(sorted(VALID_STATES)),
            methods=", ".join(sorted(VALID_METHODS)),
        )
        raw = await self.client.generate(
            model=self.model,
            reasoning_effort=self.reasoning_effort,
            store=self.store,
            schema=MEALS_SCHEMA,
            instructions=instructions,
            prompt=prompt,
        )
        meals = raw.get("meals")
        if not isinstance(meals, list):
            raise RuntimeError("Meal generation returned no meals array")
        _logger.info("Regenerated %s meals", len(meals))
        return meals

    def retry_callback(self, prompt: str) -> Callable[[], Awaitable[list[object]]]:
        """Bind a prompt into a zero-argument regeneration callback."""

        async def regenerate() -> list[object]:
            return await self.generate(prompt)

        return regenerate
