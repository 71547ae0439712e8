"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from nutrition_pipeline.adapters.fdc_client import HttpxFdcClient
from nutrition_pipeline.adapters.openai_meal_client import OpenAIMealClient
from nutrition_pipeline.adapters.supabase_alert_repository import (
    SupabaseAlertRepository,
)
from nutrition_pipeline.config import Settings
from nutrition_pipeline.services.alerts import AlertService, AlertSink, LoggingAlertSink
from nutrition_pipeline.services.cache import InMemoryCache
from nutrition_pipeline.services.generation import MealGenerationService
from nutrition_pipeline.services.nutrition import NutritionService
from nutrition_pipeline.services.pipeline import PipelineService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    nutrition_service: NutritionService
    alert_service: AlertService
    generation_service: MealGenerationService | None
    pipeline_service: PipelineService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()

    sinks: list[AlertSink] = [LoggingAlertSink()]
    if resolved_settings.alerts_persisted:
        supabase_client = create_client(
            resolved_settings.supabase_url, resolved_settings.supabase_service_key
        )
        sinks.append(SupabaseAlertRepository(supabase_client))
    alert_service = AlertService(sinks)

    fdc_client = HttpxFdcClient.create(
        api_key=resolved_settings.fdc_api_key,
        base_url=resolved_settings.fdc_base_url,
    )
    nutrition_service = NutritionService(
        fdc_client=fdc_client,
        cache=InMemoryCache(),
    )

    openai_client = None
    generation_service = None
    if resolved_settings.openai_api_key:
        openai_client = OpenAIMealClient.create(resolved_settings.openai_api_key)
        generation_service = MealGenerationService(
            client=openai_client,
            model=resolved_settings.openai_model,
            reasoning_effort=resolved_settings.openai_reasoning_effort,
            store=resolved_settings.openai_store,
        )

    pipeline_service = PipelineService(
        nutrition_lookup=nutrition_service,
        alert_service=alert_service,
        config=resolved_settings.pipeline_config(),
    )

    async def close_resources() -> None:
        await fdc_client.close()
        if openai_client is not None:
            await openai_client.close()

    return AppContainer(
        settings=resolved_settings,
        nutrition_service=nutrition_service,
        alert_service=alert_service,
        generation_service=generation_service,
        pipeline_service=pipeline_service,
        close_resources=close_resources,
    )
