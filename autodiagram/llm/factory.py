from __future__ import annotations

from functools import lru_cache

from google import genai

from autodiagram.errors import ConfigurationError
from autodiagram.llm.base import StructuredModel
from autodiagram.llm.gemini_model import GeminiModel
from autodiagram.llm.openai_model import OpenAIChatModel
from autodiagram.utils.config import ModelTier, settings
from autodiagram.utils.openai_client import get_async_client


@lru_cache(maxsize=1)
def _gemini_client() -> genai.Client:
    if not settings.google_api_key:
        raise ConfigurationError("GOOGLE_API_KEY is not set")
    return genai.Client(api_key=settings.google_api_key)


def create_model(tier: ModelTier, provider: str | None = None) -> StructuredModel:
    """Build the structured model for a tier of the given (or configured) provider."""
    provider = provider or settings.ai_provider
    model_id = settings.model_for(tier, provider)
    if provider == "google":
        return GeminiModel(_gemini_client(), model_id)
    return OpenAIChatModel(get_async_client(provider), model_id, provider=provider)
