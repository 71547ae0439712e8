"""ASGI entrypoint for the nutrition pipeline API."""

from nutrition_pipeline.api.app import create_app
from nutrition_pipeline.containers import build_container

app = create_app(build_container())
