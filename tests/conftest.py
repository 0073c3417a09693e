"""Shared fakes and fixtures for the chat-core tests.

Nothing here touches the network or spawns processes: the transport,
search client and transcript fetcher are replaced by scripted fakes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import pytest

from garefowl.agent.agent_loop import ChatListener, ChatSession
from garefowl.agent.tool_registry import ToolRegistry
from garefowl.memory.store import InMemoryHistoryStore
from garefowl.providers.config import ProviderConfig, ProviderKind
from garefowl.providers.transport import HttpResponse


# =============================================================================
# Fakes
# =============================================================================

@dataclass
class SentRequest:
    method: str
    url: str
    headers: dict[str, str]
    body: Any
    timeout_seconds: float
    params: dict[str, str] | None


class FakeTransport:
    """Replays scripted responses in order; the last one repeats forever.

    Each scripted item may be a dict (sent back as a 200 JSON body), an
    HttpResponse, or an exception instance to raise.
    """

    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.calls: list[SentRequest] = []

    async def send(self, method, url, headers=None, body=None, timeout_seconds=300.0, params=None):
        self.calls.append(SentRequest(method, url, dict(headers or {}), body, timeout_seconds, params))
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, HttpResponse):
            return item
        return HttpResponse(status_code=200, text=json.dumps(item))

    def close(self):
        pass


class FakeSearch:
    def __init__(self, error: Exception | None = None):
        self.queries: list[str] = []
        self.error = error

    async def search(self, query: str) -> str:
        self.queries.append(query)
        if self.error:
            raise self.error
        return (
            "[WEB SEARCH RESULTS - Current time: Monday, October 19, 2026 at 09:00 AM UTC]\n\n"
            f"Search query: \"{query}\"\n\n"
            "1. Forecast\n   Source: https://weather.example\n   Sunny, 21°C\n\n"
            "[END SEARCH RESULTS]"
        )


class FakeTranscripts:
    def __init__(self, error: Exception | None = None):
        self.urls: list[str] = []
        self.error = error

    async def fetch_transcript(self, video_url: str) -> str:
        self.urls.append(video_url)
        if self.error:
            raise self.error
        return "[YOUTUBE VIDEO TRANSCRIPT]\n\nTranscript:\nhello world\n\n[END TRANSCRIPT]"


class RecordingListener(ChatListener):
    def __init__(self):
        self.messages: list[tuple[Any, str]] = []
        self.errors: list[tuple[str, bool]] = []
        self.histories: list[list[Any]] = []
        self.thinking: list[bool] = []

    def message_displayed(self, role, text):
        self.messages.append((role, text))

    def error_displayed(self, message, offer_settings_link):
        self.errors.append((message, offer_settings_link))

    def history_changed(self, turns):
        self.histories.append(list(turns))

    def thinking_changed(self, is_thinking):
        self.thinking.append(is_thinking)


# =============================================================================
# Response builders
# =============================================================================

def openai_text(content: str | None) -> dict[str, Any]:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def openai_tool_call(name: str, arguments: str, content: str | None = None, call_id: str = "call_1") -> dict[str, Any]:
    return {
        "choices": [
            {
                "message": {
                    "role": "assistant",
                    "content": content,
                    "tool_calls": [
                        {"id": call_id, "type": "function", "function": {"name": name, "arguments": arguments}}
                    ],
                }
            }
        ]
    }


def anthropic_text(text: str) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": text}], "stop_reason": "end_turn"}


def anthropic_tool_use(name: str, tool_input: dict[str, Any]) -> dict[str, Any]:
    return {
        "content": [{"type": "tool_use", "id": "toolu_01", "name": name, "input": tool_input}],
        "stop_reason": "tool_use",
    }


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def fake_search() -> FakeSearch:
    return FakeSearch()


@pytest.fixture
def fake_transcripts() -> FakeTranscripts:
    return FakeTranscripts()


@pytest.fixture
def make_config():
    def _make(kind: ProviderKind = ProviderKind.OPENAI, **overrides) -> ProviderConfig:
        values = {"provider_kind": kind, "api_key": "sk-test-secret", "model": "test-model"}
        values.update(overrides)
        return ProviderConfig(**values)

    return _make


@pytest.fixture
def make_session(listener, fake_search, fake_transcripts):
    """Builds a ChatSession wired to a FakeTransport replaying `responses`."""

    def _make(*responses: Any, store=None) -> ChatSession:
        return ChatSession(
            store=store or InMemoryHistoryStore(),
            listener=listener,
            transport=FakeTransport(*responses),
            registry=ToolRegistry(searcher=fake_search, transcripts=fake_transcripts),
        )

    return _make
