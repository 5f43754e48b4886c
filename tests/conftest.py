"""Shared pytest fixtures for tests."""

from __future__ import annotations

import pytest

from llm_arrange.config import ProviderSettings
from llm_arrange.constants import LLMProvider
from llm_arrange.models import Display, ProviderResponse


@pytest.fixture
def display():
    """The 1440×900 main display used throughout the scenarios."""
    return Display(0, 1440, 900)


@pytest.fixture
def gemini_settings():
    return ProviderSettings.defaults(LLMProvider.GEMINI, "gemini-test-key")


@pytest.fixture
def claude_settings():
    return ProviderSettings.defaults(LLMProvider.CLAUDE, "claude-test-key")


class ScriptedAdapter:
    """
    Stand-in for a provider adapter that replays scripted replies.

    Each reply is a list of ``ToolInvocation`` (tool calls), a ``str`` (prose
    only) or an exception instance (raised from ``send``).  The last reply
    repeats once the script runs out.
    """

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    async def send(self, instruction, system_prompt, tools, generation):
        self.calls.append(
            {
                "instruction": instruction,
                "prompt": system_prompt,
                "tools": tools,
                "generation": generation,
            }
        )
        reply = self.replies[min(len(self.calls), len(self.replies)) - 1]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            return ProviderResponse(LLMProvider.GEMINI, body=[], text=reply)
        return ProviderResponse(LLMProvider.GEMINI, body=list(reply))

    def parse_invocations(self, response):
        return list(response.body)


@pytest.fixture
def scripted_adapter():
    """Factory: ``scripted_adapter([reply, ...])``."""
    return ScriptedAdapter
