"""Pydantic schemas for API."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import Field

from autodiagram.models.contracts import BatchItem, CamelModel, GenerationRequest, Message
from autodiagram.models.session import ChartStatus
from autodiagram.pipeline.state import ResultRun


class SourceDocument(CamelModel):
    title: Optional[str] = None
    url: Optional[str] = None
    published_date: Optional[str] = None
    content: Optional[str] = None


class PlannerRequest(CamelModel):
    messages: List[Message] = Field(..., min_length=1)
    sources: List[SourceDocument] = Field(default_factory=list)


class BatchGenerationRequest(CamelModel):
    charts: List[GenerationRequest] = Field(..., min_length=1)


class BatchGenerationResponse(CamelModel):
    results: List[BatchItem]


class SessionCreateRequest(CamelModel):
    prompt: str = Field(..., min_length=1)
    session_id: Optional[str] = None
    sources: List[SourceDocument] = Field(default_factory=list)


class SessionCreateResponse(CamelModel):
    session_id: str
    result_id: str


class CurrentVersionUpdate(CamelModel):
    version_index: int


class ChartFixRequest(CamelModel):
    advance: bool = False


class ChartRunStatus(CamelModel):
    id: str
    type: str
    status: ChartStatus
    error: Optional[str] = None
    error_code: Optional[str] = None
    fix_attempts: int = 0


class RunStatusResponse(CamelModel):
    session_id: str
    result_id: Optional[str] = None
    status: ChartStatus
    processing: bool = False
    completed: bool = False
    planning_error: Optional[str] = None
    storage_errors: List[str] = Field(default_factory=list)
    charts: List[ChartRunStatus] = Field(default_factory=list)

    @classmethod
    def from_run(cls, run: ResultRun) -> "RunStatusResponse":
        return cls(
            session_id=run.session_id,
            result_id=run.result_id,
            status=run.status,
            processing=run.processing,
            completed=run.completed,
            planning_error=run.planning_error,
            storage_errors=list(run.storage_errors),
            charts=[
                ChartRunStatus(
                    id=chart.chart_id,
                    type=chart.plan.type.value,
                    status=chart.status,
                    error=chart.error,
                    error_code=chart.error_code,
                    fix_attempts=len(chart.fix_attempts),
                )
                for chart in run.charts
            ],
        )


class ChartCommandResponse(CamelModel):
    command: str
    type: Optional[str] = None
    description: str


class SessionSyncRequest(CamelModel):
    prompt: Optional[str] = None
    results: Optional[List[Dict[str, Any]]] = None
    expected_revision: Optional[int] = None

    def updates(self) -> Dict[str, Any]:
        return self.model_dump(include={"prompt", "results"}, exclude_none=True)
