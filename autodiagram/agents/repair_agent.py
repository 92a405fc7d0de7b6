"""Repair agent: syntax-only fixes for charts that failed to render."""
from __future__ import annotations

import logging

from autodiagram.chart_types import ChartType, is_supported
from autodiagram.errors import SchemaValidationFailedError
from autodiagram.llm.base import StructuredModel, call_with_timeout
from autodiagram.models.contracts import RepairRequest, RepairResult
from autodiagram.prompts import build_repair_user_prompt, fix_system_prompt
from autodiagram.tools.markup import normalize_markup
from autodiagram.utils.config import settings


logger = logging.getLogger(__name__)


class RepairAgent:
    def __init__(self, model: StructuredModel, *, timeout: float | None = None):
        self.model = model
        self.timeout = timeout if timeout is not None else settings.model_timeout_seconds

    async def repair(self, request: RepairRequest) -> RepairResult:
        prompt = build_repair_user_prompt(
            request.chart_type,
            request.chart,
            request.error,
            plan_description=request.plan_description or request.description,
            previous_attempts=request.previous_attempts,
            original_user_message=request.original_user_message,
        )
        logger.info(
            "Repairing chart",
            extra={
                "chart_type": request.chart_type.value,
                "previous_attempts": len(request.previous_attempts),
                "model": self.model.name,
            },
        )
        data = await call_with_timeout(
            self.model.complete_json(fix_system_prompt(), [{"role": "user", "content": prompt}]),
            self.timeout,
            operation=f"{request.chart_type.value} repair",
        )
        if not isinstance(data, dict):
            raise SchemaValidationFailedError(f"Expected a JSON object, got {type(data).__name__}")

        returned = data.get("type")
        if returned is not None and (not is_supported(returned) or ChartType(returned) != request.chart_type):
            raise SchemaValidationFailedError(
                f"Repair returned chart type {returned!r} for a {request.chart_type.value} chart"
            )
        chart = normalize_markup(str(data.get("chart") or ""))
        if not chart:
            raise SchemaValidationFailedError("Repair returned empty chart markup")
        return RepairResult(
            type=request.chart_type,
            description=request.description or request.plan_description or "",
            chart=chart,
            explanation=str(data.get("explanation") or "").strip(),
        )
