"""Nutrition lookups over USDA FoodData Central."""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Protocol

from nutrition_pipeline.adapters.fdc_client import FdcClient
from nutrition_pipeline.domain.nutrition import NutritionRecord
from nutrition_pipeline.services.cache import Cache

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

_NUTRIENT_IDS = {
    "protein": 1003,
    "fat": 1004,
    "carbs": 1005,
}
# Energy (kcal), then Atwater specific, then Atwater general.
_ENERGY_IDS = (1008, 2048, 2047)

_CANONICAL_DATA_TYPES = ("Foundation", "SR Legacy", "Survey (FNDDS)")

_logger = logging.getLogger(__name__)


class NutritionLookup(Protocol):
    """Resolves a normalized ingredient key to per-100g nutrition."""

    async def lookup(self, normalized_key: str) -> NutritionRecord | None:
        """Return the record for a key, or None when nothing matches."""


@dataclass
class NutritionService(NutritionLookup):
    """FDC-backed nutrition lookup with caching and a short retry."""

    fdc_client: FdcClient
    cache: Cache
    ttl_seconds: int = 86400
    page_size: int = 5
    retry_attempts: int = 1
    retry_delay_seconds: float = 0.3

    async def lookup(self, normalized_key: str) -> NutritionRecord | None:
        cache_key = f"fdc:lookup:{normalized_key}"
        cached = self.cache.get(cache_key)
        if isinstance(cached, NutritionRecord):
            return replace(cached, source="hotpath")

        query = normalized_key.replace("_", " ")
        payload = await self._call_with_retry(
            lambda: self.fdc_client.search_foods(query, page_size=self.page_size),
            action=f"search:{query}",
        )
        food = _pick_food(payload.get("foods") or [])
        if food is None:
            _logger.info("No FDC match for %s", normalized_key)
            return None

        nutrients = food.get("foodNutrients") or []
        if _energy(nutrients) is None and food.get("fdcId") is not None:
            fdc_id = int(food["fdcId"])
            details = await self._call_with_retry(
                lambda: self.fdc_client.get_food(fdc_id),
                action=f"get_food:{fdc_id}",
            )
            nutrients = details.get("foodNutrients") or []

        record = _record_from_nutrients(nutrients, food.get("dataType"))
        if record is None:
            _logger.info("FDC match for %s has no usable nutrients", normalized_key)
            return None
        self.cache.set(cache_key, record, ttl_seconds=self.ttl_seconds)
        _logger.debug(
            "Nutrition lookup %s -> fdc_id=%s source=%s",
            normalized_key,
            food.get("fdcId"),
            record.source,
        )
        return record

    async def _call_with_retry(
        self, func: "Callable[[], Awaitable[dict[str, object]]]", *, action: str
    ) -> dict[str, object]:
        """Call an async function with a short retry."""
        attempt = 0
        while True:
            try:
                return await func()
            except Exception as exc:
                attempt += 1
                _logger.warning(
                    "Nutrition %s failed (attempt %s/%s, status=%s): %s",
                    action,
                    attempt,
                    self.retry_attempts + 1,
                    _status_code_from_exception(exc),
                    exc,
                )
                if attempt > self.retry_attempts:
                    raise
                await asyncio.sleep(self.retry_delay_seconds)


def _status_code_from_exception(exc: Exception) -> str:
    """Extract HTTP status code from an exception, if available."""
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return str(status_code)
    return "n/a"


def _pick_food(foods: list[dict[str, object]]) -> dict[str, object] | None:
    """Prefer reference data types over branded entries."""
    for data_type in _CANONICAL_DATA_TYPES:
        for food in foods:
            if food.get("dataType") == data_type:
                return food
    return foods[0] if foods else None


def _nutrient_values(food_nutrients: list[dict[str, object]]) -> dict[int, float]:
    values: dict[int, float] = {}
    for nutrient in food_nutrients:
        nutrient_info = nutrient.get("nutrient") or {}
        nutrient_id = nutrient_info.get("id") or nutrient.get("nutrientId")
        amount = nutrient.get("amount", nutrient.get("value"))
        if isinstance(nutrient_id, int) and isinstance(amount, int | float):
            values.setdefault(nutrient_id, float(amount))
    return values


def _energy(food_nutrients: list[dict[str, object]]) -> float | None:
    values = _nutrient_values(food_nutrients)
    for nutrient_id in _ENERGY_IDS:
        if nutrient_id in values:
            return values[nutrient_id]
    return None


def _record_from_nutrients(
    food_nutrients: list[dict[str, object]], data_type: object
) -> NutritionRecord | None:
    """Build a per-100g record from FDC nutrients."""
    values = _nutrient_values(food_nutrients)
    calories = _energy(food_nutrients)
    protein = values.get(_NUTRIENT_IDS["protein"], 0.0)
    fat = values.get(_NUTRIENT_IDS["fat"], 0.0)
    carbs = values.get(_NUTRIENT_IDS["carbs"], 0.0)
    if calories is None and not (protein or fat or carbs):
        return None
    canonical = data_type in _CANONICAL_DATA_TYPES
    return NutritionRecord(
        calories=calories or 0.0,
        protein=protein,
        fat=fat,
        carbs=carbs,
        source="canonical" if canonical else "fallback",
        confidence="high" if canonical else "low",
    )
