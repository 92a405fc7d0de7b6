"""Application configuration.

Provider credentials and model identifiers are read from `.env` and the
environment. Two model tiers are configured per provider: a fast tier used for
generation and repair, and a reasoning tier used for planning.
"""
from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from autodiagram.errors import ConfigurationError


ModelTier = Literal["fast", "reasoning"]
Provider = Literal["openai", "openrouter", "google"]

PROVIDERS: tuple[str, ...] = ("openai", "openrouter", "google")


class Settings(BaseSettings):
    """Runtime settings loaded from .env and environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    ai_provider: Provider = "openrouter"

    openai_api_key: str = ""
    openai_fast_model: str = "gpt-4o-mini"
    openai_reasoning_model: str = "o4-mini"

    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_fast_model: str = "google/gemini-2.5-flash"
    openrouter_reasoning_model: str = "deepseek/deepseek-r1-0528:free"

    google_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("GOOGLE_API_KEY", "GOOGLE_GENERATIVE_AI_API_KEY"),
    )
    google_fast_model: str = "gemini-2.5-flash"
    google_reasoning_model: str = "gemini-2.5-pro"

    model_timeout_seconds: float = 30.0
    max_fix_retries: int = 3
    advance_on_fix: bool = False

    storage_backend: Literal["memory", "sql"] = "memory"
    database_url: str = Field(
        default="sqlite+pysqlite:///autodiagram.db",
        validation_alias=AliasChoices("DATABASE_URL"),
    )
    storage_quota_bytes: int = 5_000_000
    recent_sessions_limit: int = 10

    render_probe: Literal["header", "mermaid-cli"] = "header"
    mermaid_renderer_image: str = "minlag/mermaid-cli:latest"

    skip_env_validation: bool = False
    log_level: str = "INFO"

    def api_key_for(self, provider: str) -> str:
        if provider not in PROVIDERS:
            raise ConfigurationError(f"Unsupported AI provider: {provider}")
        return getattr(self, f"{provider}_api_key")

    def model_for(self, tier: ModelTier, provider: str | None = None) -> str:
        """Return the model identifier for a tier of the given (or selected) provider."""
        provider = provider or self.ai_provider
        if provider not in PROVIDERS:
            raise ConfigurationError(f"Unsupported AI provider: {provider}")
        if tier not in ("fast", "reasoning"):
            raise ConfigurationError(f"Unknown model tier: {tier}")
        return getattr(self, f"{provider}_{tier}_model")

    def ensure_credentials(self) -> None:
        """Fail fast when no provider can be reached.

        At least one provider credential must be set, and the selected provider
        must be one of them.
        """
        configured = [name for name in PROVIDERS if self.api_key_for(name)]
        if not configured:
            raise ConfigurationError(
                "No AI provider credential configured; set one of "
                "OPENAI_API_KEY, OPENROUTER_API_KEY or GOOGLE_API_KEY"
            )
        if self.ai_provider not in configured:
            raise ConfigurationError(
                f"AI_PROVIDER is '{self.ai_provider}' but its API key is not set "
                f"(configured: {', '.join(configured)})"
            )


settings = Settings()
