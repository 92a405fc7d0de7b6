"""Chat-completions backend for OpenAI and OpenRouter."""
from __future__ import annotations

import logging
from typing import Any, List

from openai import AsyncOpenAI

from autodiagram.llm.base import ChatMessage
from autodiagram.llm.json_output import extract_json


logger = logging.getLogger(__name__)


class OpenAIChatModel:
    def __init__(self, client: AsyncOpenAI, model: str, *, provider: str = "openai"):
        self.client = client
        self.model = model
        self.provider = provider
        self.name = f"{provider}:{model}"

    async def complete_json(self, system: str, messages: List[ChatMessage]) -> Any:
        logger.debug("Chat completion request", extra={"model": self.name, "messages": len(messages)})
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "system", "content": system}, *messages],
        )
        raw = response.choices[0].message.content or ""
        logger.debug("Chat completion response", extra={"model": self.name, "chars": len(raw)})
        return extract_json(raw)
