from __future__ import annotations

import pytest

from autodiagram.errors import ConfigurationError
from autodiagram.utils.config import Settings


_KEY_VARS = (
    "AI_PROVIDER",
    "OPENAI_API_KEY",
    "OPENROUTER_API_KEY",
    "GOOGLE_API_KEY",
    "GOOGLE_GENERATIVE_AI_API_KEY",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _KEY_VARS:
        monkeypatch.delenv(name, raising=False)


def test_startup_fails_without_any_credential():
    with pytest.raises(ConfigurationError):
        Settings(_env_file=None).ensure_credentials()


def test_selected_provider_must_have_a_key():
    settings = Settings(_env_file=None, ai_provider="openai", openrouter_api_key="or-key")
    with pytest.raises(ConfigurationError) as exc_info:
        settings.ensure_credentials()
    assert "openrouter" in str(exc_info.value)


def test_credentials_ok_for_selected_provider():
    Settings(_env_file=None, ai_provider="openrouter", openrouter_api_key="or-key").ensure_credentials()


def test_google_key_accepts_generative_ai_alias(monkeypatch):
    monkeypatch.setenv("GOOGLE_GENERATIVE_AI_API_KEY", "g-key")
    settings = Settings(_env_file=None, ai_provider="google")
    assert settings.google_api_key == "g-key"
    settings.ensure_credentials()


def test_model_for_tiers():
    settings = Settings(_env_file=None, openai_fast_model="fast-1", openai_reasoning_model="think-1")
    assert settings.model_for("fast", "openai") == "fast-1"
    assert settings.model_for("reasoning", "openai") == "think-1"
    assert settings.model_for("fast") == settings.openrouter_fast_model
    with pytest.raises(ConfigurationError):
        settings.model_for("fast", "anthropic")
    with pytest.raises(ConfigurationError):
        settings.model_for("medium", "openai")
