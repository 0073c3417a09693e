"""Unit tests for the chat session and its tool-call loop.

Tests for agent/agent_loop.py:
- Plain exchanges and history bookkeeping
- Tool round trips and the depth limit
- Error reporting (message text and settings-link offer)
- Busy/abort/new-conversation handling

Run with: pytest tests/unit/test_agent_loop.py -v
"""

import asyncio
import json
import logging

import pytest

from garefowl.agent.agent_loop import MAX_TOOL_DEPTH, ChatSession, LoopState
from garefowl.agent.prompts import (
    ERROR_API_KEY,
    ERROR_EMPTY_RESPONSE,
    ERROR_GENERIC,
    ERROR_SEARCH_LIMIT,
    ERROR_TOOL_FAILED,
    ERROR_UNKNOWN_TOOL,
    SEARCHING_STATUS,
)
from garefowl.agent.tool_registry import ToolRegistry
from garefowl.config import Settings
from garefowl.errors import (
    ConfigurationError,
    ConversationBusyError,
    EmptyResponseError,
    ParseError,
    ToolExecutionError,
    ToolLoopExceededError,
    TransportError,
    UnknownToolError,
)
from garefowl.memory.conversation import Role, assistant, user
from garefowl.memory.store import InMemoryHistoryStore
from garefowl.providers.config import ProviderKind
from garefowl.providers.transport import HttpResponse
from tests.conftest import (
    FakeSearch,
    FakeTranscripts,
    FakeTransport,
    anthropic_text,
    anthropic_tool_use,
    openai_text,
    openai_tool_call,
)


class BlockingTransport:
    """Never answers; lets a test abort an exchange mid-request."""

    def __init__(self):
        self.started = asyncio.Event()
        self.calls   = 0

    async def send(self, *args, **kwargs):
        self.calls += 1
        self.started.set()
        await asyncio.Event().wait()


class FirstCallBlocksTransport(BlockingTransport):
    """Blocks on the first request, then answers every later one with `reply`."""

    def __init__(self, reply):
        super().__init__()
        self.reply = reply

    async def send(self, *args, **kwargs):
        if self.calls == 0:
            await super().send(*args, **kwargs)
        self.calls += 1
        return HttpResponse(200, json.dumps(self.reply))


class ReadOnlyStore(InMemoryHistoryStore):
    def set_history(self, turns):
        raise PermissionError("read-only history dir")


def _auth_error(status=401):
    return ConfigurationError(
        f"HTTP error {status}",
        kind=TransportError.HTTP_STATUS,
        url="https://api.openai.com/v1/chat/completions",
        status_code=status,
        response_text='{"error": "invalid api key"}',
    )


# =============================================================================
# Plain exchanges
# =============================================================================

class TestPlainExchange:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_text_reply_completes(self, make_session, make_config, listener):
        """A plain answer ends the exchange with two new turns."""
        session = make_session(openai_text("hello"))

        result = await session.send_message("hi", make_config())

        assert result.ok
        assert result.state is LoopState.DONE
        assert result.text == "hello"
        assert session.history == [user("hi"), assistant("hello")]
        assert listener.messages == [(Role.USER, "hi"), (Role.ASSISTANT, "hello")]
        assert listener.errors == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_history_is_persisted_after_each_turn(self, make_session, make_config, listener):
        store   = InMemoryHistoryStore()
        session = make_session(openai_text("hello"), store=store)

        await session.send_message("hi", make_config())

        assert store.get_history() == [user("hi"), assistant("hello")]
        assert listener.histories == [[user("hi")], [user("hi"), assistant("hello")]]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_session_hydrates_from_store(self, make_session, make_config):
        """Earlier turns are loaded on start and sent with the next request."""
        store   = InMemoryHistoryStore([user("first"), assistant("reply")])
        session = make_session(openai_text("second reply"), store=store)

        assert session.history == [user("first"), assistant("reply")]
        await session.send_message("second", make_config())

        body = session.transport.calls[0].body
        assert [m["content"] for m in body["messages"]] == ["first", "reply", "second"]
        assert len(session.history) == 4

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_thinking_indicator_toggles_once(self, make_session, make_config, listener):
        session = make_session(openai_text("hello"))

        await session.send_message("hi", make_config())

        assert listener.thinking == [True, False]
        assert not session.busy

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_config_comes_from_settings_when_not_passed(self, listener, fake_search, fake_transcripts):
        transport = FakeTransport(openai_text("hello"))
        settings  = Settings(
            provider = ProviderKind.OPENAI,
            api_keys = {ProviderKind.OPENAI: "sk-from-settings"},
            models   = {ProviderKind.OPENAI: "gpt-test"},
        )
        session = ChatSession(
            settings  = settings,
            listener  = listener,
            transport = transport,
            registry  = ToolRegistry(fake_search, fake_transcripts),
        )

        result = await session.send_message("hi")

        assert result.ok
        call = transport.calls[0]
        assert "openai.com" in call.url
        assert call.headers["Authorization"] == "Bearer sk-from-settings"
        assert call.body["model"] == "gpt-test"


# =============================================================================
# Tool round trips
# =============================================================================

class TestToolLoop:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_web_search_round_trip(self, make_session, make_config, fake_search, listener):
        """The search block goes back as a user turn before the final answer."""
        session = make_session(
            anthropic_tool_use("web_search", {"query": "weather today"}),
            anthropic_text("It is sunny."),
        )
        config = make_config(ProviderKind.ANTHROPIC, web_search_enabled=True)

        result = await session.send_message("what's the weather today?", config)

        assert result.ok
        assert result.text == "It is sunny."
        assert fake_search.queries == ["weather today"]

        calls = session.transport.calls
        assert len(calls) == 2
        last_message = calls[1].body["messages"][-1]
        assert last_message["role"] == "user"
        assert last_message["content"].startswith("[WEB SEARCH RESULTS")

        roles = [turn.role for turn in session.history]
        assert roles == [Role.USER, Role.USER, Role.ASSISTANT]
        assert (Role.ASSISTANT, SEARCHING_STATUS.format(query="weather today")) in listener.messages

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_tool_results_are_not_displayed_as_chat(self, make_session, make_config, listener):
        session = make_session(
            openai_tool_call("web_search", '{"query": "news"}'),
            openai_text("Here is the news."),
        )

        await session.send_message("news?", make_config(web_search_enabled=True))

        displayed = [text for _, text in listener.messages]
        assert not any(text.startswith("[WEB SEARCH RESULTS") for text in displayed)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_youtube_summary_round_trip(self, make_session, make_config, fake_transcripts):
        url     = "https://youtu.be/dQw4w9WgXcQ"
        session = make_session(
            openai_tool_call("youtube_summary", f'{{"video_url": "{url}"}}'),
            openai_text("The video is about..."),
        )

        result = await session.send_message(f"summarize {url}", make_config(web_search_enabled=True))

        assert result.ok
        assert fake_transcripts.urls == [url]
        assert session.history[1].content.startswith("[YOUTUBE VIDEO TRANSCRIPT]")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_only_first_tool_call_runs(self, make_session, make_config, fake_search, fake_transcripts):
        both = openai_tool_call("web_search", '{"query": "one"}')
        both["choices"][0]["message"]["tool_calls"].append(
            {
                "id": "call_2",
                "type": "function",
                "function": {"name": "youtube_summary", "arguments": '{"video_url": "dQw4w9WgXcQ"}'},
            }
        )
        session = make_session(both, openai_text("done"))

        result = await session.send_message("hi", make_config(web_search_enabled=True))

        assert result.ok
        assert fake_search.queries == ["one"]
        assert fake_transcripts.urls == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_depth_limit_stops_the_loop(self, make_session, make_config, fake_search, listener):
        """A model that keeps asking for tools gets exactly MAX_TOOL_DEPTH of them."""
        session = make_session(openai_tool_call("web_search", '{"query": "again"}'))

        result = await session.send_message("loop forever", make_config(web_search_enabled=True))

        assert result.state is LoopState.FAILED
        assert isinstance(result.error, ToolLoopExceededError)
        assert len(session.transport.calls) == MAX_TOOL_DEPTH + 1
        assert len(fake_search.queries) == MAX_TOOL_DEPTH
        assert len(session.history) == 1 + MAX_TOOL_DEPTH
        assert listener.errors == [(ERROR_SEARCH_LIMIT.format(max_depth=MAX_TOOL_DEPTH), False)]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_text_at_depth_limit_is_final(self, make_session, make_config):
        """Past the limit, any text riding along with a tool call is the answer."""
        session = make_session(
            openai_tool_call("web_search", '{"query": "a"}'),
            openai_tool_call("web_search", '{"query": "b"}'),
            openai_tool_call("web_search", '{"query": "c"}'),
            openai_tool_call("web_search", '{"query": "d"}', content="Best I can do."),
        )

        result = await session.send_message("hi", make_config(web_search_enabled=True))

        assert result.ok
        assert result.text == "Best I can do."
        assert session.history[-1] == assistant("Best I can do.")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_tool_fails_without_running_anything(
        self, make_session, make_config, fake_search, listener
    ):
        session = make_session(openai_tool_call("delete_database", "{}"))

        result = await session.send_message("hi", make_config(web_search_enabled=True))

        assert isinstance(result.error, UnknownToolError)
        assert fake_search.queries == []
        assert listener.errors == [(ERROR_UNKNOWN_TOOL.format(tool="delete_database"), False)]
        assert session.history == [user("hi")]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_tool_failure_is_reported_without_settings_link(self, make_config, listener, fake_transcripts):
        session = ChatSession(
            listener  = listener,
            transport = FakeTransport(openai_tool_call("web_search", '{"query": "q"}')),
            registry  = ToolRegistry(FakeSearch(error=ToolExecutionError("instance unreachable")), fake_transcripts),
        )

        result = await session.send_message("hi", make_config(web_search_enabled=True))

        assert isinstance(result.error, ToolExecutionError)
        assert listener.errors == [
            (ERROR_TOOL_FAILED.format(tool="web_search", error="instance unreachable"), False)
        ]
        assert listener.thinking[-1] is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unparseable_arguments_fail_the_tool(self, make_session, make_config, fake_search):
        session = make_session(openai_tool_call("web_search", "not json at all"))

        result = await session.send_message("hi", make_config(web_search_enabled=True))

        assert isinstance(result.error, ToolExecutionError)
        assert fake_search.queries == []


class TestWebSearchDisabled:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_tool_calls_with_text_use_the_text(self, make_session, make_config, fake_search):
        session = make_session(openai_tool_call("web_search", '{"query": "q"}', content="From memory: 42."))

        result = await session.send_message("hi", make_config(web_search_enabled=False))

        assert result.ok
        assert result.text == "From memory: 42."
        assert fake_search.queries == []
        assert len(session.transport.calls) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_tool_calls_without_text_are_empty(self, make_session, make_config, listener):
        session = make_session(openai_tool_call("web_search", '{"query": "q"}'))

        result = await session.send_message("hi", make_config(web_search_enabled=False))

        assert isinstance(result.error, EmptyResponseError)
        assert listener.errors == [(ERROR_EMPTY_RESPONSE, True)]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_tools_sent_when_disabled(self, make_session, make_config):
        session = make_session(openai_text("ok"))

        await session.send_message("hi", make_config(web_search_enabled=False))

        assert "tools" not in session.transport.calls[0].body


# =============================================================================
# Failures
# =============================================================================

class TestFailures:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_auth_failure_points_at_settings(self, make_session, make_config, listener):
        session = make_session(_auth_error(401))

        result = await session.send_message("hi", make_config())

        assert result.state is LoopState.FAILED
        assert isinstance(result.error, TransportError)
        assert listener.errors == [(ERROR_API_KEY.format(provider="openai"), True)]
        assert session.history == [user("hi")]
        assert listener.thinking == [True, False]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_server_error_shows_details(self, make_session, make_config, listener):
        error   = TransportError("HTTP error 500", kind=TransportError.HTTP_STATUS, url="u", status_code=500)
        session = make_session(error)

        result = await session.send_message("hi", make_config())

        assert result.error is error
        message, offer = listener.errors[0]
        assert message == ERROR_GENERIC.format(error=error)
        assert "HTTP error 500" in message
        assert offer is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_non_json_body_is_a_parse_error(self, make_session, make_config, listener):
        session = make_session(HttpResponse(200, "<html>gateway</html>"))

        result = await session.send_message("hi", make_config())

        assert isinstance(result.error, ParseError)
        assert listener.errors[0][1] is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_blank_text_is_empty_response(self, make_session, make_config, listener):
        session = make_session(openai_text("   "))

        result = await session.send_message("hi", make_config())

        assert isinstance(result.error, EmptyResponseError)
        assert session.history == [user("hi")]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unwritable_store_does_not_break_the_exchange(self, make_session, make_config, listener, caplog):
        """A failed history write is logged; the exchange still completes in memory."""
        session = make_session(openai_text("hello"), store=ReadOnlyStore())

        with caplog.at_level(logging.WARNING, logger="garefowl.agent.agent_loop"):
            result = await session.send_message("hi", make_config())

        assert result.ok
        assert session.history == [user("hi"), assistant("hello")]
        assert listener.thinking == [True, False]
        assert "Could not persist history" in caplog.text

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_provider_kind_given_as_string(self, make_session, make_config, listener):
        session = make_session(_auth_error(401))

        result = await session.send_message("hi", make_config(kind="openai"))

        assert isinstance(result.error, ConfigurationError)
        assert listener.errors == [(ERROR_API_KEY.format(provider="openai"), True)]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_api_key_never_reaches_the_listener(self, make_session, make_config, listener):
        session = make_session(_auth_error(403))

        await session.send_message("hi", make_config(api_key="sk-very-secret"))

        assert all("sk-very-secret" not in message for message, _ in listener.errors)


# =============================================================================
# Concurrency and session management
# =============================================================================

class TestSessionControl:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_second_message_while_busy_is_rejected(self, make_config, listener):
        transport = BlockingTransport()
        session   = ChatSession(listener=listener, transport=transport, registry=ToolRegistry(FakeSearch(), FakeTranscripts()))

        task = asyncio.create_task(session.send_message("first", make_config()))
        await transport.started.wait()

        assert session.busy
        with pytest.raises(ConversationBusyError):
            await session.send_message("second", make_config())

        session.abort()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert transport.calls == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_abort_leaves_history_alone(self, make_config, listener):
        """Nothing after the user's own turn is recorded once aborted."""
        store     = InMemoryHistoryStore()
        transport = BlockingTransport()
        session   = ChatSession(
            store     = store,
            listener  = listener,
            transport = transport,
            registry  = ToolRegistry(FakeSearch(), FakeTranscripts()),
        )

        task = asyncio.create_task(session.send_message("hi", make_config()))
        await transport.started.wait()
        session.abort()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert session.history == [user("hi")]
        assert store.get_history() == [user("hi")]
        assert session.state is LoopState.IDLE
        assert not session.busy
        assert listener.errors == []
        assert listener.thinking[-1] is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_new_conversation_clears_everything(self, make_session, make_config, listener):
        store   = InMemoryHistoryStore()
        session = make_session(openai_text("hello"), store=store)
        await session.send_message("hi", make_config())

        session.new_conversation()

        assert session.history == []
        assert store.get_history() == []
        assert listener.histories[-1] == []
        assert session.state is LoopState.IDLE

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_new_conversation_aborts_in_flight_exchange(self, make_config, listener):
        transport = BlockingTransport()
        session   = ChatSession(listener=listener, transport=transport, registry=ToolRegistry(FakeSearch(), FakeTranscripts()))

        task = asyncio.create_task(session.send_message("hi", make_config()))
        await transport.started.wait()
        session.new_conversation()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert session.history == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_send_right_after_new_conversation(self, make_config, listener):
        """The aborted exchange no longer counts as in flight."""
        store     = InMemoryHistoryStore()
        transport = FirstCallBlocksTransport(openai_text("fresh answer"))
        session   = ChatSession(
            store     = store,
            listener  = listener,
            transport = transport,
            registry  = ToolRegistry(FakeSearch(), FakeTranscripts()),
        )

        stale = asyncio.create_task(session.send_message("old question", make_config()))
        await transport.started.wait()
        session.new_conversation()

        assert not session.busy
        result = await session.send_message("fresh", make_config())

        with pytest.raises(asyncio.CancelledError):
            await stale

        assert result.ok
        assert session.history == [user("fresh"), assistant("fresh answer")]
        assert store.get_history() == [user("fresh"), assistant("fresh answer")]
        assert listener.thinking[-1] is False
