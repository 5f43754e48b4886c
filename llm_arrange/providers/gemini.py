"""
llm_arrange.providers.gemini
----------------------------

Google Gemini ``generateContent`` adapter.

Function calling is forced with ``toolConfig.functionCallingConfig.mode =
"ANY"``; schema types use Gemini's upper-case ``Type`` names.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from llm_arrange.constants import LLMProvider, ParamType
from llm_arrange.errors import InvalidResponseError, UnsupportedValueError
from llm_arrange.models import ProviderResponse, ToolInvocation
from llm_arrange.tools import ToolSpec
from llm_arrange.translator import box_args
from llm_arrange.providers.base import ProviderAdapter

_LOG = logging.getLogger(__name__)

__all__ = ["GeminiAdapter", "GeminiResponse"]

_TYPE_NAMES: dict[ParamType, str] = {
    ParamType.STRING: "STRING",
    ParamType.INTEGER: "INTEGER",
    ParamType.NUMBER: "NUMBER",
    ParamType.BOOLEAN: "BOOLEAN",
}

_MAX_TOKENS = "MAX_TOKENS"


# --------------------------------------------------------------------------- #
# Wire model                                                                  #
# --------------------------------------------------------------------------- #


class _Wire(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)


class GeminiFunctionCall(_Wire):
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    id: Optional[str] = None


class GeminiPart(_Wire):
    text: Optional[str] = None
    function_call: Optional[GeminiFunctionCall] = Field(default=None, alias="functionCall")


class GeminiContent(_Wire):
    role: Optional[str] = None
    parts: list[GeminiPart] = Field(default_factory=list)


class GeminiCandidate(_Wire):
    content: Optional[GeminiContent] = None
    finish_reason: Optional[str] = Field(default=None, alias="finishReason")


class GeminiUsage(_Wire):
    prompt_token_count: Optional[int] = Field(default=None, alias="promptTokenCount")
    candidates_token_count: Optional[int] = Field(default=None, alias="candidatesTokenCount")
    total_token_count: Optional[int] = Field(default=None, alias="totalTokenCount")


class GeminiResponse(_Wire):
    candidates: list[GeminiCandidate]
    usage_metadata: Optional[GeminiUsage] = Field(default=None, alias="usageMetadata")

    @property
    def parts(self) -> list[GeminiPart]:
        if not self.candidates or self.candidates[0].content is None:
            return []
        return self.candidates[0].content.parts


# --------------------------------------------------------------------------- #
# Adapter                                                                     #
# --------------------------------------------------------------------------- #


class GeminiAdapter(ProviderAdapter):
    provider = LLMProvider.GEMINI

    def declare_tools(self, tools: Sequence[ToolSpec]) -> list[dict[str, Any]]:
        declarations = []
        for tool in tools:
            properties: dict[str, Any] = {}
            for param in tool.params:
                schema: dict[str, Any] = {
                    "type": _TYPE_NAMES[param.type],
                    "description": param.description,
                }
                if param.options:
                    schema["format"] = "enum"
                    schema["enum"] = list(param.options)
                properties[param.name] = schema
            declarations.append(
                {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": {
                        "type": "OBJECT",
                        "properties": properties,
                        "required": list(tool.required),
                    },
                }
            )
        return [{"functionDeclarations": declarations}]

    def build_request(
        self,
        instruction: str,
        system_prompt: str,
        tools: Sequence[ToolSpec],
        temperature: float,
        max_output_tokens: int,
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        url = f"{self.settings.base_url.rstrip('/')}/{self.settings.model}:generateContent"
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self.settings.api_key.get_secret_value(),
        }
        payload = {
            "contents": [{"role": "user", "parts": [{"text": instruction}]}],
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "tools": self.declare_tools(tools),
            "toolConfig": {"functionCallingConfig": {"mode": "ANY"}},
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_output_tokens,
            },
        }
        return url, headers, payload

    def decode(self, raw: Any) -> ProviderResponse:
        try:
            body = GeminiResponse.model_validate(raw)
        except ValidationError as exc:
            raise InvalidResponseError(f"Unexpected Gemini response shape: {exc}") from exc

        finish_reason = body.candidates[0].finish_reason if body.candidates else None
        text = "".join(part.text for part in body.parts if part.text)
        if body.usage_metadata is not None:
            _LOG.debug(
                "Gemini usage: prompt=%s output=%s finish=%s",
                body.usage_metadata.prompt_token_count,
                body.usage_metadata.candidates_token_count,
                finish_reason,
            )
        return ProviderResponse(
            provider=self.provider,
            body=body,
            text=text,
            truncated=finish_reason == _MAX_TOKENS,
        )

    def parse_invocations(self, response: ProviderResponse) -> list[ToolInvocation]:
        body: GeminiResponse = response.body
        invocations = []
        for part in body.parts:
            call = part.function_call
            if call is None:
                continue
            try:
                args = box_args(call.args)
            except UnsupportedValueError as exc:
                raise InvalidResponseError(f"{call.name}: {exc}") from exc
            # Older Gemini models do not return call ids
            invocations.append(ToolInvocation(id=call.id or uuid4().hex, name=call.name, args=args))
        return invocations
