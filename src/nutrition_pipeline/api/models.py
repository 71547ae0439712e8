"""Pydantic models for the plan endpoint."""

from pydantic import BaseModel, Field

from nutrition_pipeline.domain.nutrition import MacroTargets


class TargetsPayload(BaseModel):
    """Daily macro targets."""

    kcal: float = Field(gt=0)
    protein: float = Field(default=0.0, ge=0)
    fat: float = Field(default=0.0, ge=0)
    carbs: float = Field(default=0.0, ge=0)

    def to_domain(self) -> MacroTargets:
        return MacroTargets(
            kcal=self.kcal, protein=self.protein, fat=self.fat, carbs=self.carbs
        )


class DayPlanRequest(BaseModel):
    """Raw generated meals plus optional targets and tuning overrides."""

    meals: object = None
    targets: TargetsPayload | None = None
    regenerate_prompt: str | None = None
    config: dict[str, float | bool | int] | None = None
