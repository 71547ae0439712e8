"""Shared test fixtures."""

from dataclasses import dataclass, field

import pytest

from nutrition_pipeline.adapters.fdc_client import FdcClient
from nutrition_pipeline.config import PipelineConfig, Settings
from nutrition_pipeline.containers import AppContainer
from nutrition_pipeline.domain.nutrition import NutritionRecord
from nutrition_pipeline.services.alerts import AlertService, InMemoryAlertSink
from nutrition_pipeline.services.cache import InMemoryCache
from nutrition_pipeline.services.generation import (
    MealGenerationClient,
    MealGenerationService,
)
from nutrition_pipeline.services.nutrition import NutritionLookup, NutritionService
from nutrition_pipeline.services.pipeline import PipelineService

STRICT_CONFIG = PipelineConfig(
    consistency_flag_threshold_pct=5.0,
    consistency_block_threshold_pct=20.0,
    response_block_threshold_pct=80.0,
)


def record(
    calories: float,
    protein: float,
    fat: float,
    carbs: float,
    source: str = "canonical",
) -> NutritionRecord:
    return NutritionRecord(
        calories=calories, protein=protein, fat=fat, carbs=carbs, source=source
    )


DEFAULT_RECORDS: dict[str, NutritionRecord] = {
    "chicken_breast": record(120, 22.5, 2.6, 0),
    "white_rice": record(360, 6.6, 0.6, 80),
    "rice": record(360, 6.6, 0.6, 80),
    "olive_oil": record(884, 0, 100, 0),
    "broccoli": record(34, 2.8, 0.4, 6.6),
    "egg": record(143, 12.6, 9.5, 0.7),
    "rolled_oats": record(379, 13.2, 6.5, 67.7),
    "milk": record(61, 3.2, 3.3, 4.8),
    "banana": record(89, 1.1, 0.3, 22.8),
    "apple": record(52, 0.3, 0.2, 13.8),
}


def item(
    key: str,
    value: object,
    unit: str = "g",
    state: str | None = None,
    method: str | None = None,
) -> dict[str, object]:
    return {
        "key": key,
        "quantityValue": value,
        "quantityUnit": unit,
        "stateHint": state,
        "methodHint": method,
    }


def sample_meals() -> list[dict[str, object]]:
    return [
        {
            "type": "breakfast",
            "name": "Oats with banana",
            "items": [
                item("rolled oats", 80, state="dry"),
                item("milk", 250, unit="ml"),
                item("banana", 1, unit="whole"),
            ],
        },
        {
            "type": "lunch",
            "name": "Chicken and rice",
            "items": [
                item("chicken breast", 200, state="raw", method="grilled"),
                item("white rice", 75, state="dry"),
                item("broccoli", 150),
                item("olive oil", 10, unit="ml"),
            ],
        },
        {
            "type": "dinner",
            "name": "Eggs and apple",
            "items": [
                item("egg", 3, unit="egg"),
                item("apple", 180),
            ],
        },
    ]


@dataclass
class StaticNutritionLookup(NutritionLookup):
    """Nutrition lookup answering from a fixed table."""

    records: dict[str, NutritionRecord] = field(
        default_factory=lambda: dict(DEFAULT_RECORDS)
    )
    failing: set[str] = field(default_factory=set)
    calls: list[str] = field(default_factory=list)

    async def lookup(self, normalized_key: str) -> NutritionRecord | None:
        self.calls.append(normalized_key)
        if normalized_key in self.failing:
            raise RuntimeError(f"lookup failed for {normalized_key}")
        return self.records.get(normalized_key)


@dataclass
class FakeFdcClient(FdcClient):
    """Fake FDC client with in-memory responses."""

    search_payload: dict[str, object] = field(
        default_factory=lambda: {
            "foods": [
                {
                    "fdcId": 111,
                    "description": "Chicken breast, Kirkland",
                    "dataType": "Branded",
                },
                {
                    "fdcId": 171077,
                    "description": "Chicken, broilers or fryers, breast, raw",
                    "dataType": "SR Legacy",
                },
            ]
        }
    )
    food_payload: dict[str, object] = field(
        default_factory=lambda: {
            "fdcId": 171077,
            "description": "Chicken, broilers or fryers, breast, raw",
            "dataType": "SR Legacy",
            "foodNutrients": [
                {"nutrient": {"id": 1008}, "amount": 120},
                {"nutrient": {"id": 1003}, "amount": 22.5},
                {"nutrient": {"id": 1004}, "amount": 2.6},
                {"nutrient": {"id": 1005}, "amount": 0},
            ],
        }
    )
    search_calls: list[str] = field(default_factory=list)
    food_calls: list[int] = field(default_factory=list)

    async def search_foods(self, query: str, page_size: int = 5) -> dict[str, object]:
        self.search_calls.append(query)
        return self.search_payload

    async def get_food(self, fdc_id: int) -> dict[str, object]:
        self.food_calls.append(fdc_id)
        return self.food_payload


@dataclass
class FakeMealGenerationClient(MealGenerationClient):
    """Fake generation client returning a fixed payload."""

    payload: dict[str, object] = field(
        default_factory=lambda: {"meals": sample_meals()}
    )
    prompts: list[str] = field(default_factory=list)

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
        self.prompts.append(prompt)
        return self.payload


@pytest.fixture
def settings() -> Settings:
    return Settings(
        fdc_api_key="fdc-key",
        openai_api_key="openai-key",
        supabase_url=None,
        supabase_service_key=None,
    )


@pytest.fixture
def alert_sink() -> InMemoryAlertSink:
    return InMemoryAlertSink()


@pytest.fixture
def nutrition_lookup() -> StaticNutritionLookup:
    return StaticNutritionLookup()


@pytest.fixture
def pipeline_service(
    nutrition_lookup: StaticNutritionLookup, alert_sink: InMemoryAlertSink
) -> PipelineService:
    return PipelineService(
        nutrition_lookup=nutrition_lookup,
        alert_service=AlertService([alert_sink]),
    )


@pytest.fixture
def generation_client() -> FakeMealGenerationClient:
    return FakeMealGenerationClient()


@pytest.fixture
def container(
    settings: Settings,
    pipeline_service: PipelineService,
    generation_client: FakeMealGenerationClient,
) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        nutrition_service=NutritionService(FakeFdcClient(), InMemoryCache()),
        alert_service=pipeline_service.alert_service,
        generation_service=MealGenerationService(
            client=generation_client,
            model="gpt-5.2",
            reasoning_effort="medium",
            store=False,
        ),
        pipeline_service=pipeline_service,
        close_resources=close_resources,
    )
