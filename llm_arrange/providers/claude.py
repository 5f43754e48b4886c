"""
llm_arrange.providers.claude
----------------------------

Anthropic Messages API adapter (``tool_choice = {"type": "any"}``).
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from llm_arrange.constants import ANTHROPIC_VERSION, LLMProvider
from llm_arrange.errors import InvalidResponseError, UnsupportedValueError
from llm_arrange.models import ProviderResponse, ToolInvocation
from llm_arrange.tools import ToolSpec
from llm_arrange.translator import box_args
from llm_arrange.providers.base import ProviderAdapter

_LOG = logging.getLogger(__name__)

__all__ = ["ClaudeAdapter", "ClaudeResponse"]

_MAX_TOKENS = "max_tokens"


class _Wire(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class ClaudeContentBlock(_Wire):
    type: str
    text: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    input: Optional[dict[str, Any]] = None


class ClaudeUsage(_Wire):
    input_tokens: int = 0
    output_tokens: int = 0


class ClaudeResponse(_Wire):
    id: str
    content: list[ClaudeContentBlock]
    model: Optional[str] = None
    role: str = "assistant"
    stop_reason: Optional[str] = None
    usage: Optional[ClaudeUsage] = Field(default=None)


class ClaudeAdapter(ProviderAdapter):
    provider = LLMProvider.CLAUDE

    def declare_tools(self, tools: Sequence[ToolSpec]) -> list[dict[str, Any]]:
        declared = []
        for tool in tools:
            properties: dict[str, Any] = {}
            for param in tool.params:
                schema: dict[str, Any] = {
                    "type": param.type.value,
                    "description": param.description,
                }
                if param.options:
                    schema["enum"] = list(param.options)
                properties[param.name] = schema
            declared.append(
                {
                    "name": tool.name,
                    "description": tool.description,
                    "input_schema": {
                        "type": "object",
                        "properties": properties,
                        "required": list(tool.required),
                    },
                }
            )
        return declared

    def build_request(
        self,
        instruction: str,
        system_prompt: str,
        tools: Sequence[ToolSpec],
        temperature: float,
        max_output_tokens: int,
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.settings.api_key.get_secret_value(),
            "anthropic-version": ANTHROPIC_VERSION,
        }
        payload = {
            "model": self.settings.model,
            "max_tokens": max_output_tokens,
            "temperature": temperature,
            "system": system_prompt,
            "messages": [
                {"role": "user", "content": [{"type": "text", "text": instruction}]}
            ],
            "tools": self.declare_tools(tools),
            "tool_choice": {"type": "any"},
        }
        return self.settings.base_url, headers, payload

    def decode(self, raw: Any) -> ProviderResponse:
        try:
            body = ClaudeResponse.model_validate(raw)
        except ValidationError as exc:
            raise InvalidResponseError(f"Unexpected Claude response shape: {exc}") from exc

        if body.usage is not None:
            _LOG.debug(
                "Claude usage: input=%d output=%d stop=%s",
                body.usage.input_tokens,
                body.usage.output_tokens,
                body.stop_reason,
            )
        text = "".join(b.text for b in body.content if b.type == "text" and b.text)
        return ProviderResponse(
            provider=self.provider,
            body=body,
            text=text,
            truncated=body.stop_reason == _MAX_TOKENS,
        )

    def parse_invocations(self, response: ProviderResponse) -> list[ToolInvocation]:
        body: ClaudeResponse = response.body
        invocations = []
        for block in body.content:
            if block.type != "tool_use":
                continue
            if not block.id or not block.name:
                raise InvalidResponseError("tool_use block without id or name")
            try:
                args = box_args(block.input or {})
            except UnsupportedValueError as exc:
                raise InvalidResponseError(f"{block.name}: {exc}") from exc
            invocations.append(ToolInvocation(id=block.id, name=block.name, args=args))
        return invocations
