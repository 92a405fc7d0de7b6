"""Request/response shapes of the generation and repair calls."""
from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from autodiagram.chart_types import ChartType


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys while keeping snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Message(CamelModel):
    role: MessageRole
    content: str


class GenerationRequest(CamelModel):
    chart_type: ChartType
    original_user_message: Optional[str] = None
    plan_description: Optional[str] = None
    description: Optional[str] = None
    messages: List[Message] = Field(default_factory=list)


class GenerationResult(CamelModel):
    type: ChartType
    description: str
    chart: str


class FixAttempt(CamelModel):
    """Input-context snapshot of one repair attempt: the markup sent, why it failed,
    and the explanation the repair returned (absent when the call itself failed)."""

    chart: str
    error: str
    explanation: Optional[str] = None


class RepairRequest(CamelModel):
    chart_type: ChartType
    chart: str = Field(..., min_length=1)
    error: str
    description: Optional[str] = None
    plan_description: Optional[str] = None
    original_user_message: Optional[str] = None
    previous_attempts: List[FixAttempt] = Field(default_factory=list)


class RepairResult(CamelModel):
    type: ChartType
    description: str
    chart: str
    explanation: str


class BatchItem(CamelModel):
    id: str
    chart: GenerationResult
