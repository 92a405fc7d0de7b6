"""Shared async OpenAI-compatible clients (OpenAI and OpenRouter)."""
from __future__ import annotations

from functools import lru_cache

import httpx
from openai import AsyncOpenAI

from autodiagram.errors import ConfigurationError
from autodiagram.utils.config import settings


def _build_httpx_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(connect=10.0, read=120.0, write=120.0, pool=120.0),
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        follow_redirects=True,
    )


@lru_cache(maxsize=2)
def get_async_client(provider: str = "openai") -> AsyncOpenAI:
    """Return a cached AsyncOpenAI client for `openai` or `openrouter`.

    OpenRouter speaks the OpenAI wire protocol, so only the base URL and key differ.
    """
    if provider not in ("openai", "openrouter"):
        raise ConfigurationError(f"No OpenAI-compatible client for provider: {provider}")
    api_key = settings.api_key_for(provider)
    if not api_key:
        raise ConfigurationError(f"{provider.upper()}_API_KEY is not set")
    base_url = settings.openrouter_base_url if provider == "openrouter" else None
    return AsyncOpenAI(api_key=api_key, base_url=base_url, http_client=_build_httpx_client())
