"""
Tests for the Gemini / Claude provider adapters.

Transport is replaced with ``AsyncMock`` / ``MagicMock`` doubles; no network
access is needed.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from llm_arrange.constants import LLMProvider
from llm_arrange.errors import (
    ConfigurationError,
    HTTPError,
    InvalidResponseError,
    NetworkError,
    ProviderAPIError,
)
from llm_arrange.models import GenerationConfig, PromptSections, StrValue
from llm_arrange.providers import (
    ClaudeAdapter,
    GeminiAdapter,
    check_response,
    get_adapter,
    output_token_allowance,
)
from llm_arrange.tools import WINDOW_TOOLS

pytestmark = pytest.mark.unit


def _gemini_raw(parts, finish_reason="STOP"):
    return {
        "candidates": [
            {"content": {"role": "model", "parts": parts}, "finishReason": finish_reason}
        ],
        "usageMetadata": {"promptTokenCount": 120, "candidatesTokenCount": 30},
    }


def _claude_raw(content, stop_reason="tool_use"):
    return {
        "id": "msg_01",
        "type": "message",
        "role": "assistant",
        "model": "claude-3-5-sonnet-20241022",
        "content": content,
        "stop_reason": stop_reason,
        "usage": {"input_tokens": 100, "output_tokens": 20},
    }


def _session_returning(status, body):
    resp = MagicMock()
    resp.status = status
    resp.read = AsyncMock(return_value=body if isinstance(body, bytes) else body.encode())
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=resp)
    ctx.__aexit__ = AsyncMock(return_value=False)
    session = MagicMock()
    session.closed = False
    session.post.return_value = ctx
    session.close = AsyncMock()
    return session


# --------------------------------------------------------------------------- #
# Token budget + status mapping                                               #
# --------------------------------------------------------------------------- #


def test_output_token_allowance_clamps():
    assert output_token_allowance(4000, 32768, 2000, 8000, 4) == 8000
    assert output_token_allowance(8000, 3000, 2000, 8000, 4) == 2000
    assert output_token_allowance(4 * 27000, 32768, 2000, 8000, 4) == 5768


def test_output_token_allowance_rounds_prompt_up():
    assert output_token_allowance(5, 10, 1, 100, 4) == 8


def test_check_response_success():
    assert check_response(200, '{"ok": true}') == {"ok": True}


def test_check_response_garbage_body():
    with pytest.raises(InvalidResponseError):
        check_response(200, "<html>oops</html>")


def test_check_response_structured_error():
    with pytest.raises(ProviderAPIError) as excinfo:
        check_response(400, json.dumps({"error": {"code": 400, "message": "API key not valid"}}))
    assert excinfo.value.message == "API key not valid"
    assert excinfo.value.status == 400
    assert str(excinfo.value) == "Provider API error: API key not valid"


def test_check_response_unstructured_error():
    with pytest.raises(HTTPError) as excinfo:
        check_response(502, "Bad Gateway")
    assert excinfo.value.code == 502


# --------------------------------------------------------------------------- #
# Gemini                                                                      #
# --------------------------------------------------------------------------- #


def test_gemini_declares_tools(gemini_settings):
    (block,) = GeminiAdapter(gemini_settings).declare_tools(WINDOW_TOOLS)
    declarations = {d["name"]: d for d in block["functionDeclarations"]}
    assert set(declarations) == {t.name for t in WINDOW_TOOLS}

    snap = declarations["snap_window"]["parameters"]
    assert snap["type"] == "OBJECT"
    assert snap["required"] == ["app_name", "position"]
    assert snap["properties"]["position"]["type"] == "STRING"
    assert "custom" in snap["properties"]["position"]["enum"]
    assert snap["properties"]["display"]["type"] == "INTEGER"
    assert "enum" not in snap["properties"]["custom_x"]


def test_gemini_request_shape(gemini_settings):
    adapter = GeminiAdapter(gemini_settings)
    url, headers, payload = adapter.build_request("left half", "SYSTEM", WINDOW_TOOLS, 0.2, 3000)
    assert url.endswith("/gemini-2.5-flash:generateContent")
    assert headers["x-goog-api-key"] == "gemini-test-key"
    assert payload["systemInstruction"] == {"parts": [{"text": "SYSTEM"}]}
    assert payload["contents"][0]["parts"][0]["text"] == "left half"
    assert payload["toolConfig"] == {"functionCallingConfig": {"mode": "ANY"}}
    assert payload["generationConfig"] == {"temperature": 0.2, "maxOutputTokens": 3000}


def test_gemini_decode_mixed_text_and_calls(gemini_settings):
    adapter = GeminiAdapter(gemini_settings)
    response = adapter.decode(
        _gemini_raw(
            [
                {"text": "Arranging now."},
                {"functionCall": {"name": "focus_app", "args": {"app_name": "Safari"}}},
                {"functionCall": {"id": "c2", "name": "minimize_app",
                                  "args": {"app_name": "Slack"}}},
            ]
        )
    )
    assert response.provider is LLMProvider.GEMINI
    assert response.text == "Arranging now."
    assert not response.truncated

    first, second = adapter.parse_invocations(response)
    assert first.name == "focus_app"
    assert len(first.id) == 32
    assert first.args["app_name"] == StrValue("Safari")
    assert second.id == "c2"


def test_gemini_max_tokens_is_truncated(gemini_settings):
    response = GeminiAdapter(gemini_settings).decode(_gemini_raw([], "MAX_TOKENS"))
    assert response.truncated


def test_gemini_shape_mismatch(gemini_settings):
    with pytest.raises(InvalidResponseError):
        GeminiAdapter(gemini_settings).decode({"promptFeedback": {}})


def test_gemini_nested_argument_is_invalid_response(gemini_settings):
    adapter = GeminiAdapter(gemini_settings)
    response = adapter.decode(
        _gemini_raw([{"functionCall": {"name": "focus_app", "args": {"app_name": ["a"]}}}])
    )
    with pytest.raises(InvalidResponseError):
        adapter.parse_invocations(response)


# --------------------------------------------------------------------------- #
# Claude                                                                      #
# --------------------------------------------------------------------------- #


def test_claude_declares_tools(claude_settings):
    declared = {t["name"]: t for t in ClaudeAdapter(claude_settings).declare_tools(WINDOW_TOOLS)}
    schema = declared["flexible_position"]["input_schema"]
    assert schema["type"] == "object"
    assert schema["required"] == ["app_name", "x_position", "y_position", "width", "height"]
    assert schema["properties"]["layer"]["type"] == "integer"
    assert schema["properties"]["focus"]["type"] == "boolean"


def test_claude_request_shape(claude_settings):
    adapter = ClaudeAdapter(claude_settings)
    url, headers, payload = adapter.build_request("tile", "SYSTEM", WINDOW_TOOLS, 0.0, 1500)
    assert url == "https://api.anthropic.com/v1/messages"
    assert headers["x-api-key"] == "claude-test-key"
    assert headers["anthropic-version"] == "2023-06-01"
    assert payload["system"] == "SYSTEM"
    assert payload["max_tokens"] == 1500
    assert payload["tool_choice"] == {"type": "any"}
    assert payload["messages"][0]["content"][0]["text"] == "tile"


def test_claude_decode_and_parse(claude_settings):
    adapter = ClaudeAdapter(claude_settings)
    response = adapter.decode(
        _claude_raw(
            [
                {"type": "text", "text": "Sure."},
                {"type": "tool_use", "id": "toolu_1", "name": "snap_window",
                 "input": {"app_name": "Safari", "position": "left"}},
            ]
        )
    )
    assert response.text == "Sure."
    (invocation,) = adapter.parse_invocations(response)
    assert invocation.id == "toolu_1"
    assert invocation.args["position"] == StrValue("left")


def test_claude_max_tokens_is_truncated(claude_settings):
    response = ClaudeAdapter(claude_settings).decode(_claude_raw([], "max_tokens"))
    assert response.truncated


def test_claude_tool_use_without_id(claude_settings):
    adapter = ClaudeAdapter(claude_settings)
    response = adapter.decode(_claude_raw([{"type": "tool_use", "name": "focus_app", "input": {}}]))
    with pytest.raises(InvalidResponseError):
        adapter.parse_invocations(response)


def test_claude_shape_mismatch(claude_settings):
    with pytest.raises(InvalidResponseError):
        ClaudeAdapter(claude_settings).decode({"content": "not a list"})


# --------------------------------------------------------------------------- #
# send(): budget + length cut-off fallback                                    #
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio
async def test_send_uses_computed_allowance(gemini_settings):
    adapter = GeminiAdapter(gemini_settings)
    adapter._post_json = AsyncMock(return_value=_gemini_raw([{"text": "hi"}]))

    response = await adapter.send("go", "short prompt", WINDOW_TOOLS, GenerationConfig())

    assert not response.degraded
    adapter._post_json.assert_awaited_once()
    payload = adapter._post_json.await_args.args[2]
    assert payload["generationConfig"]["maxOutputTokens"] == 8000


@pytest.mark.asyncio
async def test_send_honours_explicit_output_tokens(claude_settings):
    adapter = ClaudeAdapter(claude_settings)
    adapter._post_json = AsyncMock(return_value=_claude_raw([]))

    await adapter.send("go", "prompt", WINDOW_TOOLS, GenerationConfig(0.1, 4000))

    payload = adapter._post_json.await_args.args[2]
    assert payload["max_tokens"] == 4000
    assert payload["temperature"] == 0.1


@pytest.mark.asyncio
async def test_truncation_triggers_one_shortened_retry(gemini_settings):
    prompt = PromptSections(
        core="CORE",
        geometry="GEOMETRY",
        windows=tuple(f"- App{i}" for i in range(20)),
        extra="PREFERENCES",
    )
    adapter = GeminiAdapter(gemini_settings)
    adapter._post_json = AsyncMock(
        side_effect=[_gemini_raw([], "MAX_TOKENS"), _gemini_raw([{"text": "ok"}])]
    )

    response = await adapter.send("go", prompt, WINDOW_TOOLS, GenerationConfig())

    assert adapter._post_json.await_count == 2
    assert response.degraded
    assert not response.truncated

    retry_payload = adapter._post_json.await_args_list[1].args[2]
    retry_prompt = retry_payload["systemInstruction"]["parts"][0]["text"]
    assert retry_prompt == prompt.compact(8)
    assert "PREFERENCES" not in retry_prompt
    assert "... and 12 more windows" in retry_prompt
    assert retry_payload["generationConfig"]["maxOutputTokens"] == 8192


@pytest.mark.asyncio
async def test_second_truncation_is_returned_not_raised(claude_settings):
    adapter = ClaudeAdapter(claude_settings)
    adapter._post_json = AsyncMock(return_value=_claude_raw([], "max_tokens"))

    response = await adapter.send("go", "prompt", WINDOW_TOOLS, GenerationConfig())

    assert adapter._post_json.await_count == 2
    assert response.truncated
    assert response.degraded


# --------------------------------------------------------------------------- #
# Transport error mapping                                                     #
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio
async def test_transport_failure_is_network_error(gemini_settings):
    session = MagicMock()
    session.closed = False
    session.post.side_effect = aiohttp.ClientConnectionError("connection refused")
    adapter = GeminiAdapter(gemini_settings, session=session)

    with pytest.raises(NetworkError) as excinfo:
        await adapter.send("go", "prompt", WINDOW_TOOLS)
    assert excinfo.value.retryable


@pytest.mark.asyncio
async def test_error_status_through_session(claude_settings):
    session = _session_returning(401, '{"type":"error","error":{"message":"invalid x-api-key"}}')
    adapter = ClaudeAdapter(claude_settings, session=session)

    with pytest.raises(ProviderAPIError) as excinfo:
        await adapter.send("go", "prompt", WINDOW_TOOLS)
    assert excinfo.value.status == 401
    session.post.assert_called_once()
    assert session.post.call_args.kwargs["headers"]["x-api-key"] == "claude-test-key"


@pytest.mark.asyncio
async def test_injected_session_is_not_closed(gemini_settings):
    session = _session_returning(200, json.dumps(_gemini_raw([{"text": "hi"}])))
    async with GeminiAdapter(gemini_settings, session=session) as adapter:
        response = await adapter.send("go", "prompt", WINDOW_TOOLS)
    assert response.text == "hi"
    session.close.assert_not_awaited()


@pytest.mark.asyncio
async def test_plain_string_prompt_is_shortened_after_cut_off(gemini_settings):
    prompt = "\n".join(f"Rule {i}: keep every window partly visible" for i in range(200))
    adapter = GeminiAdapter(gemini_settings)
    adapter._post_json = AsyncMock(
        side_effect=[_gemini_raw([], "MAX_TOKENS"), _gemini_raw([{"text": "ok"}])]
    )

    response = await adapter.send("go", prompt, WINDOW_TOOLS)

    assert response.degraded
    first, retry = (
        call.args[2]["systemInstruction"]["parts"][0]["text"]
        for call in adapter._post_json.await_args_list
    )
    assert first == prompt
    assert len(retry) <= 2000
    assert prompt.startswith(retry)
    assert retry.endswith("partly visible")


def test_compact_cuts_core_when_nothing_else_can_go():
    sections = PromptSections(core="a" * 100)
    assert sections.compact(8) == "a" * 50
    assert sections.compact(8, max_core_chars=10) == "a" * 10


@pytest.mark.asyncio
async def test_invalid_utf8_body_is_invalid_response(gemini_settings):
    session = _session_returning(200, b'{"candidates": "\xff\xfe"}')
    adapter = GeminiAdapter(gemini_settings, session=session)

    with pytest.raises(InvalidResponseError) as excinfo:
        await adapter.send("go", "prompt", WINDOW_TOOLS)
    assert excinfo.value.retryable


@pytest.mark.asyncio
async def test_invalid_utf8_error_body_keeps_status(claude_settings):
    session = _session_returning(502, b"\xff bad gateway")
    adapter = ClaudeAdapter(claude_settings, session=session)

    with pytest.raises(HTTPError) as excinfo:
        await adapter.send("go", "prompt", WINDOW_TOOLS)
    assert excinfo.value.code == 502


# --------------------------------------------------------------------------- #
# Registry                                                                    #
# --------------------------------------------------------------------------- #


def test_get_adapter_registry(gemini_settings, claude_settings):
    assert isinstance(get_adapter(LLMProvider.GEMINI, gemini_settings), GeminiAdapter)
    assert isinstance(get_adapter(LLMProvider.CLAUDE, claude_settings), ClaudeAdapter)


def test_adapter_rejects_foreign_settings(claude_settings):
    with pytest.raises(ConfigurationError):
        GeminiAdapter(claude_settings)
