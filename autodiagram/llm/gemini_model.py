"""Google Gemini backend via the google-genai SDK."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, List

from google import genai
from google.genai import types

from autodiagram.llm.base import ChatMessage
from autodiagram.llm.json_output import extract_json


logger = logging.getLogger(__name__)


def _to_contents(messages: List[ChatMessage]) -> List[types.Content]:
    # Gemini names the assistant role "model".
    return [
        types.Content(
            role="model" if message["role"] == "assistant" else "user",
            parts=[types.Part(text=message["content"])],
        )
        for message in messages
    ]


class GeminiModel:
    def __init__(self, client: genai.Client, model: str):
        self.client = client
        self.model = model
        self.name = f"google:{model}"

    async def complete_json(self, system: str, messages: List[ChatMessage]) -> Any:
        config = types.GenerateContentConfig(
            system_instruction=system,
            response_mime_type="application/json",
        )
        logger.debug("Gemini request", extra={"model": self.name, "messages": len(messages)})
        # The sync client is used from a worker thread so the event loop stays free.
        response = await asyncio.to_thread(
            self.client.models.generate_content,
            model=self.model,
            contents=_to_contents(messages),
            config=config,
        )
        return extract_json(response.text or "")
