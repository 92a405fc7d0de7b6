"""Session / result / chart / version data model.

One session owns many results (one per prompt), a result owns many charts (one
per plan), and a chart owns its append-only version history plus the fix
attempts made against it. `current_version` is a read pointer into
`versions`; moving it never removes anything.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List
from uuid import uuid4

from pydantic import Field, model_validator

from autodiagram.models.contracts import CamelModel, FixAttempt
from autodiagram.models.plan import Plan


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChartSource(str, Enum):
    GENERATION = "generation"
    FIX = "fix"


class ChartStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    RENDERED = "rendered"
    RENDER_FAILED = "render_failed"
    FIXING = "fixing"
    COMPLETED = "completed"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (ChartStatus.COMPLETED, ChartStatus.ERRORED)


class ChartVersionData(CamelModel):
    """A new version as supplied by a caller; the store assigns the number."""

    chart: str
    rationale: str = ""
    source: ChartSource
    error: str | None = None
    status: ChartStatus = ChartStatus.COMPLETED


class ChartVersion(ChartVersionData):
    version: int = Field(..., ge=1)
    created_at: datetime = Field(default_factory=utcnow)


class Chart(CamelModel):
    id: str = Field(default_factory=new_id)
    plan: Plan
    versions: List[ChartVersion] = Field(..., min_length=1)
    current_version: int = 0
    fix_attempts: List[FixAttempt] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_versions(self) -> "Chart":
        if not 0 <= self.current_version < len(self.versions):
            raise ValueError("currentVersion must reference an existing version")
        numbers = [v.version for v in self.versions]
        if numbers[0] != 1 or any(b <= a for a, b in zip(numbers, numbers[1:])):
            raise ValueError("version numbers must start at 1 and strictly increase")
        return self

    @property
    def current(self) -> ChartVersion:
        return self.versions[self.current_version]

    @property
    def latest(self) -> ChartVersion:
        return self.versions[-1]


class Result(CamelModel):
    id: str = Field(default_factory=new_id)
    prompt: str
    plans: List[Plan] = Field(default_factory=list)
    charts: List[Chart] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def find_chart(self, chart_id: str) -> Chart | None:
        return next((c for c in self.charts if c.id == chart_id), None)


class Session(CamelModel):
    id: str = Field(default_factory=new_id)
    prompt: str = ""
    results: List[Result] = Field(default_factory=list)
    revision: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def find_result(self, result_id: str) -> Result | None:
        return next((r for r in self.results if r.id == result_id), None)
