"""
llm_arrange.config
------------------

Provider settings and environment loading.

Settings are immutable pydantic models built once and injected into an
adapter; nothing here is read again after construction.

Robust .env loading strategy:
1) Honour explicit LLM_ARRANGE_DOTENV if set.
2) Load PACKAGE_ROOT/.env when present (repo layout in dev).
3) Use dotenv discovery from current working directory upwards.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator

from llm_arrange.constants import (
    API_KEY_ENV,
    CHARS_PER_TOKEN,
    DEFAULT_MODELS,
    DOTENV_ENV,
    FALLBACK_CORE_CHARS,
    FALLBACK_WINDOW_LINES,
    MODEL_ENV_TEMPLATE,
    PACKAGE_ROOT,
    PROVIDER_BASE_URLS,
    PROVIDER_TIMEOUTS,
    TOKEN_LIMITS,
    LLMProvider,
)
from llm_arrange.errors import ConfigurationError

_LOG = logging.getLogger(__name__)

__all__ = ["ProviderSettings", "load_env", "load_settings"]


class ProviderSettings(BaseModel):
    """Connection and budget configuration for one provider adapter."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    provider: LLMProvider
    api_key: SecretStr
    model: str
    base_url: str
    request_timeout: float = Field(gt=0)
    total_timeout: float = Field(gt=0)
    token_budget: int = Field(gt=0)
    output_floor: int = Field(gt=0)
    output_ceiling: int = Field(gt=0)
    fallback_output_tokens: int = Field(gt=0)
    chars_per_token: int = Field(default=CHARS_PER_TOKEN, gt=0)
    fallback_window_lines: int = Field(default=FALLBACK_WINDOW_LINES, ge=0)
    fallback_core_chars: int = Field(default=FALLBACK_CORE_CHARS, gt=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "ProviderSettings":
        if self.output_floor > self.output_ceiling:
            raise ValueError("output_floor must not exceed output_ceiling")
        if self.request_timeout > self.total_timeout:
            raise ValueError("request_timeout must not exceed total_timeout")
        return self

    @classmethod
    def defaults(cls, provider: LLMProvider, api_key: str, **overrides: Any) -> "ProviderSettings":
        """Build settings from the per-provider defaults in ``constants``."""
        request_timeout, total_timeout = PROVIDER_TIMEOUTS[provider]
        budget, floor, ceiling, fallback = TOKEN_LIMITS[provider]
        values: dict[str, Any] = {
            "provider": provider,
            "api_key": api_key,
            "model": DEFAULT_MODELS[provider],
            "base_url": PROVIDER_BASE_URLS[provider],
            "request_timeout": request_timeout,
            "total_timeout": total_timeout,
            "token_budget": budget,
            "output_floor": floor,
            "output_ceiling": ceiling,
            "fallback_output_tokens": fallback,
        }
        values.update(overrides)
        return cls(**values)


def load_env() -> Optional[str]:
    """Load the first .env file found; return its path or ``None``."""
    try:
        specific = os.environ.get(DOTENV_ENV)
        if specific and os.path.exists(specific):
            load_dotenv(specific)
            _LOG.debug("Loaded .env from %s: %s", DOTENV_ENV, specific)
            return specific

        env_path = PACKAGE_ROOT / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            _LOG.debug("Loaded .env from project root: %s", env_path)
            return str(env_path)

        discovered = find_dotenv(usecwd=True)
        if discovered:
            load_dotenv(discovered)
            _LOG.debug("Loaded .env via discovery: %s", discovered)
            return discovered
    except OSError as exc:
        _LOG.warning("Failed to load .env file: %s", exc)
        return None

    _LOG.debug("No .env found (checked explicit, repo, discovery).")
    return None


def _api_key_from_env(provider: LLMProvider) -> Optional[str]:
    for name in API_KEY_ENV[provider]:
        value = os.getenv(name)
        if value:
            return value
    return None


def load_settings(provider: LLMProvider, **overrides: Any) -> ProviderSettings:
    """
    Build ``ProviderSettings`` for *provider* from the environment.

    Keyword *overrides* take precedence over environment values.  Raises
    ``ConfigurationError`` when no API key can be found or a value is invalid.
    """
    load_env()

    api_key = overrides.pop("api_key", None) or _api_key_from_env(provider)
    if not api_key:
        raise ConfigurationError(
            f"No API key for {provider.name.lower()}; set one of "
            + ", ".join(API_KEY_ENV[provider])
        )

    model = os.getenv(MODEL_ENV_TEMPLATE.format(provider=provider.name))
    if model and "model" not in overrides:
        overrides["model"] = model

    try:
        return ProviderSettings.defaults(provider, api_key, **overrides)
    except ValueError as exc:
        # pydantic.ValidationError subclasses ValueError
        raise ConfigurationError(str(exc)) from exc
