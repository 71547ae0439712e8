"""Application configuration."""

import os
from dataclasses import dataclass, fields, replace

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable tuning values threaded through every pipeline call."""

    consistency_flag_threshold_pct: float = 25.0
    consistency_block_threshold_pct: float = 50.0
    response_block_threshold_pct: float = 80.0
    enable_consistency_gate: bool = True
    reject_critical_items: bool = True
    portion_min_grams: float = 5.0
    portion_max_grams: float = 1000.0
    reconciliation_factor_min: float = 0.5
    reconciliation_factor_max: float = 2.0
    meal_tolerance_pct: float = 10.0
    day_tolerance_pct: float = 5.0
    allow_protein_scaling: bool = False
    min_protein_ratio: float = 0.8
    day_min_kcal: float = 500.0
    day_max_kcal: float = 10000.0
    day_target_tolerance_pct: float = 50.0
    day_target_warning_pct: float = 15.0
    max_item_kcal: float = 1200.0
    max_validation_retries: int = 2
    fallback_warning_rate_pct: float = 15.0
    fallback_critical_rate_pct: float = 30.0
    block_on_critical_validation: bool = True

    def with_overrides(self, **changes: object) -> "PipelineConfig":
        """Return a copy with the given fields replaced."""
        known = {item.name for item in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ValueError(f"Unknown pipeline config fields: {', '.join(unknown)}")
        return replace(self, **changes)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    fdc_api_key: str
    fdc_base_url: str = "https://api.nal.usda.gov/fdc/v1"
    openai_api_key: str | None = None
    openai_model: str = "gpt-5.2"
    openai_reasoning_effort: str = "medium"
    openai_store: bool = False
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    environment: str = _ENVIRONMENT
    log_level: str = "INFO"
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        env_nested_delimiter="__",
        extra="ignore",
    )

    @property
    def alerts_persisted(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)

    def pipeline_config(self) -> PipelineConfig:
        """Pipeline tuning, overridden through PIPELINE__<FIELD> variables."""
        return self.pipeline
