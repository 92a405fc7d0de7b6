"""Planner agent: decomposes a conversation into chart plans."""
from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Sequence

from autodiagram.chart_types import extract_chart_commands
from autodiagram.errors import InvalidRequestError
from autodiagram.llm.base import StructuredModel, call_with_timeout
from autodiagram.models.contracts import Message, MessageRole
from autodiagram.models.plan import Plan
from autodiagram.prompts import build_planner_user_prompt, planner_system_prompt
from autodiagram.tools.plan_validator import validate_plans
from autodiagram.utils.config import settings


logger = logging.getLogger(__name__)


def _unwrap(data: Any) -> Any:
    # Only the single {"charts": [...]} wrapper is tolerated.
    if isinstance(data, dict) and set(data) == {"charts"}:
        return data["charts"]
    return data


class PlannerAgent:
    def __init__(self, model: StructuredModel, *, timeout: float | None = None):
        self.model = model
        self.timeout = timeout if timeout is not None else settings.model_timeout_seconds

    async def plan(
        self,
        messages: Sequence[Message] | str,
        sources: Iterable[Mapping[str, Any]] | None = None,
    ) -> List[Plan]:
        if isinstance(messages, str):
            messages = [Message(role=MessageRole.USER, content=messages)]
        history = list(messages)
        latest_user = next((m for m in reversed(history) if m.role == MessageRole.USER), None)
        if latest_user is None or not latest_user.content.strip():
            raise InvalidRequestError("A planning request needs at least one non-empty user message")

        prompt = build_planner_user_prompt(
            latest_user.content,
            requested_types=extract_chart_commands(latest_user.content),
            sources=sources,
        )
        chat = [{"role": m.role.value, "content": m.content} for m in history if m is not latest_user]
        chat.append({"role": "user", "content": prompt})

        logger.info("Planning charts", extra={"model": self.model.name, "messages": len(chat)})
        data = await call_with_timeout(
            self.model.complete_json(planner_system_prompt(), chat),
            self.timeout,
            operation="planner call",
        )
        plans = validate_plans(_unwrap(data))
        logger.info("Planner returned %d chart(s)", len(plans), extra={"types": [p.type.value for p in plans]})
        return plans
