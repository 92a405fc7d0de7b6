"""Shapes persisted under the `chart-history` key once a session completes."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from autodiagram.models.contracts import CamelModel, FixAttempt, GenerationResult
from autodiagram.models.plan import Plan
from autodiagram.models.session import utcnow


class HistoryChart(CamelModel):
    plan: Plan
    # Absent when generation never produced markup.
    mermaid: Optional[GenerationResult] = None
    fix_attempts: List[FixAttempt] = Field(default_factory=list)
    final_error: Optional[str] = None


class HistorySession(CamelModel):
    id: str
    prompt: str
    created_at: datetime = Field(default_factory=utcnow)
    charts: List[HistoryChart] = Field(default_factory=list)
