"""Tests for dependency container wiring."""

import asyncio

from nutrition_pipeline.config import Settings
from nutrition_pipeline.containers import build_container
from nutrition_pipeline.services.alerts import LoggingAlertSink


def test_build_container_wires_services(settings: Settings) -> None:
    container = build_container(settings)

    assert container.settings is settings
    assert container.pipeline_service.nutrition_lookup is container.nutrition_service
    assert container.pipeline_service.config == settings.pipeline_config()
    assert container.generation_service is not None
    assert [type(sink) for sink in container.alert_service.sinks] == [
        LoggingAlertSink
    ]

    asyncio.run(container.close_resources())


def test_build_container_without_openai_key() -> None:
    settings = Settings(fdc_api_key="fdc-key", openai_api_key=None)

    container = build_container(settings)

    assert container.generation_service is None
    asyncio.run(container.close_resources())
