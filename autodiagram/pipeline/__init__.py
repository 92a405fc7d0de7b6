from autodiagram.pipeline.orchestrator import PLANNING_FAILURE_MESSAGE, DiagramPipeline
from autodiagram.pipeline.state import ChartRun, ResultRun

__all__ = ["ChartRun", "DiagramPipeline", "PLANNING_FAILURE_MESSAGE", "ResultRun"]
