"""Generation agent: one chart plan in, one Mermaid chart out."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Sequence

from pydantic import ValidationError

from autodiagram.chart_types import ChartType, is_supported
from autodiagram.errors import SchemaValidationFailedError
from autodiagram.llm.base import StructuredModel, call_with_timeout
from autodiagram.models.contracts import BatchItem, GenerationRequest, GenerationResult
from autodiagram.models.session import new_id
from autodiagram.prompts import build_generation_user_prompt, generation_system_prompt
from autodiagram.tools.markup import normalize_markup
from autodiagram.utils.config import settings


logger = logging.getLogger(__name__)


def coerce_generation_result(data: Any, requested: ChartType) -> GenerationResult:
    """Validate raw model output against the requested chart type.

    A result of any other type is a failure, never a substitution.
    """
    if not isinstance(data, dict):
        raise SchemaValidationFailedError(f"Expected a JSON object, got {type(data).__name__}")
    returned = data.get("type")
    if not is_supported(returned) or ChartType(returned) != requested:
        raise SchemaValidationFailedError(
            f"Model returned chart type {returned!r} for a {requested.value} request"
        )
    chart = normalize_markup(str(data.get("chart") or ""))
    if not chart:
        raise SchemaValidationFailedError("Model returned empty chart markup")
    try:
        return GenerationResult(type=requested, description=str(data.get("description") or ""), chart=chart)
    except ValidationError as exc:
        raise SchemaValidationFailedError(f"Generation output failed validation: {exc}") from exc


class GenerationAgent:
    def __init__(self, model: StructuredModel, *, timeout: float | None = None):
        self.model = model
        self.timeout = timeout if timeout is not None else settings.model_timeout_seconds

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        plan_description = request.plan_description or request.description
        prompt = build_generation_user_prompt(
            request.chart_type,
            original_user_message=request.original_user_message,
            plan_description=plan_description,
        )
        chat = [{"role": m.role.value, "content": m.content} for m in request.messages]
        chat.append({"role": "user", "content": prompt})

        logger.info(
            "Generating chart",
            extra={"chart_type": request.chart_type.value, "model": self.model.name},
        )
        data = await call_with_timeout(
            self.model.complete_json(generation_system_prompt(), chat),
            self.timeout,
            operation=f"{request.chart_type.value} generation",
        )
        return coerce_generation_result(data, request.chart_type)

    async def generate_batch(self, requests: Sequence[GenerationRequest]) -> List[BatchItem]:
        """Generate every request concurrently.

        The first failure cancels the remaining calls and is raised; there is
        no partial result.
        """
        tasks = [asyncio.ensure_future(self.generate(request)) for request in requests]
        try:
            charts = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return [BatchItem(id=new_id(), chart=chart) for chart in charts]
