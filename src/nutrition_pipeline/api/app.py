"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from nutrition_pipeline.api.models import DayPlanRequest
from nutrition_pipeline.app_logging import configure_logging
from nutrition_pipeline.containers import AppContainer
from nutrition_pipeline.domain.errors import PipelineError, StructuralError
from nutrition_pipeline.services.pipeline import PipelineRequest


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/plans/day", response_model=None)
    async def plan_day(
        payload: DayPlanRequest, request: Request
    ) -> dict[str, object] | JSONResponse:
        """Run the pipeline over a generated meals array."""
        state_container: AppContainer = request.app.state.container
        base_config = state_container.pipeline_service.config
        try:
            config = base_config.with_overrides(**(payload.config or {}))
        except ValueError as exc:
            return JSONResponse(
                status_code=422,
                content={"code": "CONFIG_INVALID", "message": str(exc)},
            )

        retry_callback = None
        generation_service = state_container.generation_service
        if payload.regenerate_prompt and generation_service is not None:
            retry_callback = generation_service.retry_callback(
                payload.regenerate_prompt
            )

        pipeline_request = PipelineRequest(
            raw_meals=payload.meals,
            targets=payload.targets.to_domain() if payload.targets else None,
            retry_callback=retry_callback,
            config=config,
        )
        try:
            result = await state_container.pipeline_service.execute(pipeline_request)
        except StructuralError as exc:
            return JSONResponse(status_code=400, content=exc.to_dict())
        except PipelineError as exc:
            logger.warning("Plan rejected: %s (%s)", exc.code, exc.trace_id)
            return JSONResponse(status_code=422, content=exc.to_dict())
        return result.to_dict()

    return app
