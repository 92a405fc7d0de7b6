"""Error taxonomy shared by the agents, the store, the pipeline and the API."""
from __future__ import annotations

from typing import Any, Dict, List


GENERIC_FAILURE_MESSAGE = "Something went wrong while generating your charts. Please try again."


class AutoDiagramError(Exception):
    """Base class for every failure the application reports.

    `code` is the stable machine-readable identifier; `user_message` is safe to
    show to end users and never carries raw provider output.
    """

    code = "error"
    user_message: str | None = None

    def __init__(self, message: str = "", *, user_message: str | None = None):
        super().__init__(message)
        if user_message is not None:
            self.user_message = user_message

    @property
    def public_message(self) -> str:
        return self.user_message or str(self) or self.code

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.public_message}


class ConfigurationError(AutoDiagramError):
    code = "configuration_error"


class InvalidRequestError(AutoDiagramError, ValueError):
    code = "invalid_request"


class UnsupportedChartTypeError(InvalidRequestError):
    code = "unsupported_chart_type"

    def __init__(self, value: object):
        super().__init__(f"Unsupported chart type: {value}")
        self.value = value


class PlanValidationError(InvalidRequestError):
    """Raised when planner output is not a list of valid plans."""

    def __init__(self, message: str, issues: List[Dict[str, Any]] | None = None):
        super().__init__(message)
        self.issues = list(issues or [])

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["issues"] = self.issues
        return payload


class UpstreamModelError(AutoDiagramError):
    code = "upstream_model_error"
    user_message = GENERIC_FAILURE_MESSAGE


class SchemaValidationFailedError(UpstreamModelError):
    """The model answered, but not with a value matching the target schema."""

    code = "schema_validation_failed"


class UpstreamTimeoutError(UpstreamModelError):
    code = "upstream_timeout"


class RenderFailedError(AutoDiagramError):
    code = "render_failed"


class RetryExhaustedError(AutoDiagramError):
    code = "retry_exhausted"


class StorageError(AutoDiagramError):
    code = "storage_error"
    user_message = "Your charts were generated but could not be saved."


class SessionNotFoundError(AutoDiagramError, LookupError):
    code = "session_not_found"

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class ResultNotFoundError(AutoDiagramError, LookupError):
    code = "result_not_found"

    def __init__(self, result_id: str):
        super().__init__(f"Result not found: {result_id}")
        self.result_id = result_id


class ChartNotFoundError(AutoDiagramError, LookupError):
    code = "chart_not_found"

    def __init__(self, chart_id: str):
        super().__init__(f"Chart not found: {chart_id}")
        self.chart_id = chart_id


class VersionOutOfRangeError(AutoDiagramError, IndexError):
    code = "version_out_of_range"

    def __init__(self, index: int, length: int):
        super().__init__(f"Version index {index} out of range for {length} version(s)")
        self.index = index
        self.length = length


class ConcurrentUpdateError(AutoDiagramError):
    code = "concurrent_update"

    def __init__(self, session_id: str, expected: int, actual: int):
        super().__init__(
            f"Session {session_id} changed concurrently (expected revision {expected}, found {actual})"
        )
        self.expected = expected
        self.actual = actual
