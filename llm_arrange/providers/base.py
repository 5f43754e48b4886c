"""
llm_arrange.providers.base
--------------------------

Shared machinery for provider adapters.

An adapter owns one provider's transport (an ``aiohttp`` session with its
connection pool), its request/response shapes and its tool-schema dialect.
``send`` performs a single attempt; the only retry it does on its own is the
length cut-off fallback: when the provider stops because the output budget
ran out, the request is re-issued once with a shortened system prompt and
the largest output budget.
"""

from __future__ import annotations

import abc
import asyncio
import json
import logging
import math
from dataclasses import replace
from typing import Any, ClassVar, Optional, Sequence

import aiohttp

from llm_arrange.config import ProviderSettings
from llm_arrange.constants import LLMProvider
from llm_arrange.errors import (
    ConfigurationError,
    HTTPError,
    InvalidResponseError,
    NetworkError,
    ProviderAPIError,
)
from llm_arrange.models import GenerationConfig, PromptSections, ProviderResponse, ToolInvocation
from llm_arrange.tools import ToolSpec

_LOG = logging.getLogger(__name__)

__all__ = [
    "ProviderAdapter",
    "check_response",
    "output_token_allowance",
]

# Debug logging limits for request / response bodies.
_LOG_REQUEST_CHARS = 2000
_LOG_RESPONSE_CHARS = 1000


def output_token_allowance(
    prompt_chars: int,
    total_budget: int,
    floor: int,
    ceiling: int,
    chars_per_token: int,
) -> int:
    """
    Output tokens to request for a prompt of *prompt_chars* characters.

    ``max(floor, min(ceiling, total_budget - estimated_prompt_tokens))``
    """
    estimated_prompt_tokens = math.ceil(prompt_chars / chars_per_token)
    return max(floor, min(ceiling, total_budget - estimated_prompt_tokens))


def _error_message(body: str) -> Optional[str]:
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    return None


def check_response(status: int, body: str) -> Any:
    """
    Map an HTTP status + body onto decoded JSON or the matching error.

    2xx with valid JSON → decoded value; 2xx with garbage →
    ``InvalidResponseError``; otherwise ``ProviderAPIError`` when the body
    carries ``{"error": {"message": ...}}`` and ``HTTPError`` when it does not.
    """
    if 200 <= status < 300:
        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise InvalidResponseError(f"Response is not valid JSON: {exc}") from exc

    message = _error_message(body)
    if message:
        raise ProviderAPIError(message, status)
    raise HTTPError(status)


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class ProviderAdapter(abc.ABC):
    """
    One LLM backend.

    Subclasses implement the four provider-specific hooks: ``declare_tools``,
    ``build_request``, ``decode`` and ``parse_invocations``.  Adapters hold
    no per-call state, so one instance may serve concurrent pipelines.

    Example
    -------
    >>> async with GeminiAdapter(settings) as adapter:
    ...     response = await adapter.send(text, prompt, WINDOW_TOOLS, GenerationConfig())
    """

    provider: ClassVar[LLMProvider]

    def __init__(
        self,
        settings: ProviderSettings,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        if settings.provider is not self.provider:
            raise ConfigurationError(
                f"{type(self).__name__} cannot use {settings.provider.name} settings"
            )
        self._settings = settings
        self._session = session
        self._owns_session = session is None

    # ---------------  lifecycle  ------------------------------------------ #

    async def __aenter__(self) -> "ProviderAdapter":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP session if this adapter created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    @property
    def settings(self) -> ProviderSettings:
        return self._settings

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(
                total=self._settings.total_timeout,
                sock_read=self._settings.request_timeout,
            )
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    # ---------------  provider hooks  ------------------------------------- #

    @abc.abstractmethod
    def declare_tools(self, tools: Sequence[ToolSpec]) -> list[dict[str, Any]]:
        """Render the internal catalog in the provider's schema dialect."""

    @abc.abstractmethod
    def build_request(
        self,
        instruction: str,
        system_prompt: str,
        tools: Sequence[ToolSpec],
        temperature: float,
        max_output_tokens: int,
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        """Return ``(url, headers, json_payload)`` for one call."""

    @abc.abstractmethod
    def decode(self, raw: Any) -> ProviderResponse:
        """Validate a decoded JSON body against the provider's response shape."""

    @abc.abstractmethod
    def parse_invocations(self, response: ProviderResponse) -> list[ToolInvocation]:
        """Extract tool calls in order; free text stays on ``response.text``."""

    # ---------------  public API  ----------------------------------------- #

    def output_allowance(self, prompt_chars: int) -> int:
        s = self._settings
        return output_token_allowance(
            prompt_chars, s.token_budget, s.output_floor, s.output_ceiling, s.chars_per_token
        )

    async def send(
        self,
        instruction: str,
        system_prompt: PromptSections | str,
        tools: Sequence[ToolSpec],
        generation: GenerationConfig = GenerationConfig(),
    ) -> ProviderResponse:
        """
        Issue one request and return the decoded response.

        Raises ``NetworkError``, ``ProviderAPIError``, ``HTTPError`` or
        ``InvalidResponseError``.  A length cut-off triggers exactly one
        shortened re-request; if that is cut off too, it is returned with
        ``truncated`` and ``degraded`` set.
        """
        sections = PromptSections.coerce(system_prompt)
        prompt_text = sections.render()
        max_tokens = generation.max_output_tokens or self.output_allowance(
            len(prompt_text) + len(instruction)
        )
        _LOG.debug(
            "%s: prompt %d chars, temperature %.2f, max %d output tokens",
            self.provider.name,
            len(prompt_text),
            generation.temperature,
            max_tokens,
        )

        response = await self._request(
            instruction, prompt_text, tools, generation.temperature, max_tokens
        )
        if not response.truncated:
            return response

        compact = sections.compact(
            self._settings.fallback_window_lines, self._settings.fallback_core_chars
        )
        _LOG.warning(
            "%s output hit the token limit; retrying with shortened prompt (%d → %d chars)",
            self.provider.name,
            len(prompt_text),
            len(compact),
        )
        fallback = await self._request(
            instruction,
            compact,
            tools,
            generation.temperature,
            self._settings.fallback_output_tokens,
        )
        if fallback.truncated:
            _LOG.warning("%s fallback response is still truncated; keeping it as best effort",
                         self.provider.name)
        return replace(fallback, degraded=True)

    # ---------------  transport  ------------------------------------------ #

    async def _request(
        self,
        instruction: str,
        system_prompt: str,
        tools: Sequence[ToolSpec],
        temperature: float,
        max_output_tokens: int,
    ) -> ProviderResponse:
        url, headers, payload = self.build_request(
            instruction, system_prompt, tools, temperature, max_output_tokens
        )
        raw = await self._post_json(url, headers, payload)
        return self.decode(raw)

    async def _post_json(self, url: str, headers: dict[str, str], payload: dict[str, Any]) -> Any:
        if _LOG.isEnabledFor(logging.DEBUG):
            _LOG.debug("%s request: %s", self.provider.name,
                       _clip(json.dumps(payload), _LOG_REQUEST_CHARS))

        session = self._get_session()
        try:
            async with session.post(url, json=payload, headers=headers) as resp:
                status = resp.status
                raw_body = await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise NetworkError(f"{self.provider.name.lower()} request failed: {exc!r}") from exc

        # invalid UTF-8 is replaced rather than raised
        body = raw_body.decode("utf-8", errors="replace")

        _LOG.debug("%s response %d: %s", self.provider.name, status,
                   _clip(body, _LOG_RESPONSE_CHARS))
        return check_response(status, body)
