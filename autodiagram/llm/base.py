"""The structured-output capability the agents depend on."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Protocol, TypeVar

from autodiagram.errors import AutoDiagramError, UpstreamModelError, UpstreamTimeoutError


logger = logging.getLogger(__name__)

T = TypeVar("T")

ChatMessage = Dict[str, str]


class StructuredModel(Protocol):
    """Given a system prompt and a conversation, return parsed JSON or fail."""

    name: str

    async def complete_json(self, system: str, messages: List[ChatMessage]) -> Any:
        ...


async def call_with_timeout(awaitable: Awaitable[T], seconds: float, *, operation: str = "model call") -> T:
    """Await a provider call under a wall-clock ceiling.

    Timeouts become `UpstreamTimeoutError`; anything outside the error taxonomy
    becomes `UpstreamModelError` with the raw detail kept for logs only.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as exc:
        logger.warning("%s timed out", operation, extra={"timeout_seconds": seconds})
        raise UpstreamTimeoutError(f"{operation} exceeded {seconds:.0f}s") from exc
    except AutoDiagramError:
        raise
    except Exception as exc:
        logger.exception("%s failed", operation)
        raise UpstreamModelError(f"{operation} failed: {exc}") from exc
