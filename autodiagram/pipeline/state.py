"""In-flight bookkeeping for one planning round.

Run records exist from the moment a plan arrives, before any markup does, so a
planned chart that never produces markup is still visible with its error.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from autodiagram.models.contracts import FixAttempt
from autodiagram.models.plan import Plan
from autodiagram.models.session import ChartStatus, new_id


@dataclass
class ChartRun:
    plan: Plan
    chart_id: str = field(default_factory=new_id)
    status: ChartStatus = ChartStatus.PENDING
    stored: bool = False
    markup: Optional[str] = None
    description: str = ""
    error: Optional[str] = None
    error_code: Optional[str] = None
    explanation: Optional[str] = None
    fix_attempts: List[FixAttempt] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


@dataclass
class ResultRun:
    session_id: str
    prompt: str
    result_id: str = field(default_factory=new_id)
    sources: Sequence[Mapping[str, Any]] = ()
    status: ChartStatus = ChartStatus.PENDING
    charts: List[ChartRun] = field(default_factory=list)
    planned: bool = False
    planning_error: Optional[str] = None
    storage_errors: List[str] = field(default_factory=list)
    completed: bool = False
    outstanding: int = 0

    @property
    def processing(self) -> bool:
        return self.outstanding > 0

    @property
    def all_terminal(self) -> bool:
        return self.planned and all(chart.is_terminal for chart in self.charts)

    def find_chart(self, chart_id: str) -> Optional[ChartRun]:
        return next((chart for chart in self.charts if chart.chart_id == chart_id), None)
