"""Data model exports."""
from autodiagram.models.contracts import (
    BatchItem,
    FixAttempt,
    GenerationRequest,
    GenerationResult,
    Message,
    MessageRole,
    RepairRequest,
    RepairResult,
)
from autodiagram.models.history import HistoryChart, HistorySession
from autodiagram.models.plan import Plan
from autodiagram.models.session import Chart, ChartSource, ChartStatus, ChartVersion, ChartVersionData, Result, Session

__all__ = [
    "BatchItem",
    "Chart",
    "ChartSource",
    "ChartStatus",
    "ChartVersion",
    "ChartVersionData",
    "FixAttempt",
    "GenerationRequest",
    "GenerationResult",
    "HistoryChart",
    "HistorySession",
    "Message",
    "MessageRole",
    "Plan",
    "RepairRequest",
    "RepairResult",
    "Result",
    "Session",
]
