"""Validation of planner output against the Plan schema."""
from __future__ import annotations

from typing import Any, Dict, List

from pydantic import TypeAdapter, ValidationError

from autodiagram.chart_types import SUPPORTED_CHART_TYPES
from autodiagram.errors import PlanValidationError
from autodiagram.models.plan import Plan


_PLANS_ADAPTER = TypeAdapter(List[Plan])


def _describe(error: Dict[str, Any]) -> Dict[str, Any]:
    loc = list(error.get("loc", ()))
    index = loc[0] if loc and isinstance(loc[0], int) else None
    field = ".".join(str(part) for part in loc[1:]) if index is not None else ".".join(str(p) for p in loc)
    message = error.get("msg", "invalid value")
    if field == "type" and error.get("type") == "enum":
        message = f"type must be one of: {', '.join(SUPPORTED_CHART_TYPES)}"
    return {"index": index, "field": field or None, "message": message}


def validate_plans(data: Any) -> List[Plan]:
    """Validate untyped model output as a list of plans.

    Any invalid element invalidates the whole list; the raised
    `PlanValidationError` lists which element and field failed and why.
    """
    if not isinstance(data, list):
        raise PlanValidationError(
            "Plan output must be an array of {type, description} objects",
            issues=[{"index": None, "field": None, "message": f"expected array, got {type(data).__name__}"}],
        )
    try:
        return _PLANS_ADAPTER.validate_python(data)
    except ValidationError as exc:
        issues = [_describe(err) for err in exc.errors()]
        summary = "; ".join(
            f"[{issue['index']}].{issue['field']}: {issue['message']}" if issue["index"] is not None else issue["message"]
            for issue in issues
        )
        raise PlanValidationError(f"Invalid plan output: {summary}", issues=issues) from exc
