"""Chart plan model produced by the planning stage."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from autodiagram.chart_types import ChartType


class Plan(BaseModel):
    """One planned chart: its type and a free-form natural-language specification."""

    model_config = ConfigDict(frozen=True)

    type: ChartType
    description: str = Field(..., description="Detailed specification used as the generation prompt.")

    @field_validator("description")
    @classmethod
    def _description_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("description must be a non-empty string")
        return value
