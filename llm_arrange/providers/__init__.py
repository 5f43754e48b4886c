"""
llm_arrange.providers
---------------------

Map each LLMProvider → adapter class that speaks that provider's
function-calling API.
"""

from __future__ import annotations

from typing import Optional

import aiohttp

from llm_arrange.config import ProviderSettings, load_settings
from llm_arrange.constants import LLMProvider
from llm_arrange.providers.base import ProviderAdapter, check_response, output_token_allowance
from llm_arrange.providers.claude import ClaudeAdapter
from llm_arrange.providers.gemini import GeminiAdapter

__all__ = [
    "ProviderAdapter",
    "GeminiAdapter",
    "ClaudeAdapter",
    "check_response",
    "output_token_allowance",
    "get_adapter",
]

_ADAPTERS: dict[LLMProvider, type[ProviderAdapter]] = {
    LLMProvider.GEMINI: GeminiAdapter,
    LLMProvider.CLAUDE: ClaudeAdapter,
}


def get_adapter(
    provider: LLMProvider,
    settings: Optional[ProviderSettings] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> ProviderAdapter:
    """
    Return a ready adapter for *provider*.

    Settings are loaded from the environment when not supplied.
    """
    try:
        adapter_cls = _ADAPTERS[provider]
    except KeyError as exc:
        raise KeyError(f"No adapter registered for {provider}") from exc
    if settings is None:
        settings = load_settings(provider)
    return adapter_cls(settings, session=session)
