"""
agent/agent_loop.py
===================
The tool-call loop behind every user message.

Loop, step by step:
  1. REASON  → Send the conversation to the configured backend.
  2. ACT     → If the model asked for a tool, WE run it (first call only).
  3. OBSERVE → The tool's block is appended as a user turn.
  4. REPEAT  → Ask the model again, at most MAX_TOOL_DEPTH times.
  5. RESPOND → Plain text comes back → append it as the assistant turn.

States: IDLE → AWAITING_RESPONSE → (DONE | TOOL_PENDING → AWAITING_RESPONSE | FAILED)

Every failure is caught here and nowhere else: the listener gets one
error_displayed() call and the caller gets an ExchangeResult. The
thinking indicator is switched off on every exit path.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol, Sequence

from garefowl.agent.prompts import (
    ERROR_API_KEY,
    ERROR_EMPTY_RESPONSE,
    ERROR_GENERIC,
    ERROR_SEARCH_LIMIT,
    ERROR_TOOL_FAILED,
    ERROR_UNKNOWN_TOOL,
    SEARCHING_STATUS,
    TRANSCRIPT_STATUS,
)
from garefowl.agent.tool_registry import ToolRegistry
from garefowl.errors import (
    ChatError,
    ConversationBusyError,
    EmptyResponseError,
    ToolExecutionError,
    ToolLoopExceededError,
    TransportError,
    UnknownToolError,
)
from garefowl.memory.conversation import ConversationMemory, ConversationTurn, Role
from garefowl.memory.store import HistoryStore, InMemoryHistoryStore
from garefowl.providers.adapters import ProviderAdapter, ToolCall
from garefowl.providers.config import ProviderConfig, ProviderKind
from garefowl.providers.factory import create_adapter
from garefowl.providers.transport import HttpTransport
from garefowl.tools.descriptors import WEB_SEARCH_TOOL, YOUTUBE_SUMMARY_TOOL

logger = logging.getLogger(__name__)

MAX_TOOL_DEPTH = 3   # Tool round-trips allowed per user message


class LoopState(str, Enum):
    IDLE              = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    TOOL_PENDING      = "tool_pending"
    DONE              = "done"
    FAILED            = "failed"


@dataclass
class ExchangeResult:
    state: LoopState
    text:  str | None = None
    error: ChatError | None = None

    @property
    def ok(self) -> bool:
        return self.state is LoopState.DONE


class ChatListener:
    """Presentation hooks. Override what you need; the rest are no-ops."""

    def message_displayed(self, role: Role, text: str): ...

    def error_displayed(self, message: str, offer_settings_link: bool): ...

    def history_changed(self, turns: Sequence[ConversationTurn]): ...

    def thinking_changed(self, is_thinking: bool): ...


class ConfigSource(Protocol):
    def provider_config(self) -> ProviderConfig: ...


class ChatSession:
    """
    Owns one conversation: its history, its in-flight exchange, its tools.

    Usage:
        session = ChatSession(store=JsonHistoryStore(path), settings=Settings.from_env())
        result  = await session.send_message("What is the weather in Oslo today?")
    """

    def __init__(
        self,
        store: HistoryStore | None = None,
        settings: ConfigSource | None = None,
        listener: ChatListener | None = None,
        transport: HttpTransport | None = None,
        registry: ToolRegistry | None = None,
        adapter_factory: Callable[[ProviderConfig], ProviderAdapter] = create_adapter,
        max_tool_depth: int = MAX_TOOL_DEPTH,
    ):
        self.store           = store or InMemoryHistoryStore()
        self.settings        = settings
        self.listener        = listener or ChatListener()
        self.transport       = transport or HttpTransport()
        self.registry        = registry or ToolRegistry()
        self.adapter_factory = adapter_factory
        self.max_tool_depth  = max_tool_depth

        self.memory = ConversationMemory(self.store.get_history())
        self.state  = LoopState.IDLE

        self._task: asyncio.Task | None = None
        self._generation  = 0
        self._active_tool = ""

    @property
    def history(self) -> list[ConversationTurn]:
        return self.memory.turns

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── Main entry point ──────────────────────────────────────────────────────

    async def send_message(self, text: str, config: ProviderConfig | None = None) -> ExchangeResult:
        """
        Runs one full exchange for a new user message.

        Returns:
            ExchangeResult in state DONE (with text) or FAILED (with error).

        Raises:
            ConversationBusyError:  another exchange is still in flight.
            asyncio.CancelledError: abort() was called; history is left as it was.
        """
        if self.busy:
            raise ConversationBusyError("Still waiting for the previous answer")

        task       = asyncio.current_task()
        generation = self._generation
        config     = self._normalize(config or self._provider_config())
        self._task = task

        self.listener.thinking_changed(True)
        try:
            self._record(generation, Role.USER, text, display=True)
            return await self._run_exchange(self.adapter_factory(config), config, generation)
        except ChatError as error:
            return self._fail(error, config)
        except asyncio.CancelledError:
            logger.info("Exchange aborted")
            if generation == self._generation:
                self.state = LoopState.IDLE
            raise
        finally:
            if self._task is task:
                self._task = None
                self._active_tool = ""
            # A newer exchange owns the indicator once this one was aborted.
            if self._task is None:
                self.listener.thinking_changed(False)

    async def _run_exchange(
        self,
        adapter: ProviderAdapter,
        config: ProviderConfig,
        generation: int,
    ) -> ExchangeResult:
        depth = 0
        while True:
            self.state = LoopState.AWAITING_RESPONSE
            reply = await adapter.complete(self.memory.turns, self.transport)
            self._check_generation(generation)

            if reply.has_tool_calls and config.web_search_enabled:
                if depth < self.max_tool_depth:
                    if len(reply.tool_calls) > 1:
                        logger.info("Model asked for %d tools; running only the first", len(reply.tool_calls))
                    self.state = LoopState.TOOL_PENDING
                    block = await self._execute_tool(reply.tool_calls[0])
                    self._check_generation(generation)
                    self._record(generation, Role.USER, block)
                    depth += 1
                    continue
                if not reply.text.strip():
                    raise ToolLoopExceededError(self.max_tool_depth)

            if not reply.text.strip():
                raise EmptyResponseError("Response was empty")

            self._record(generation, Role.ASSISTANT, reply.text, display=True)
            self.state = LoopState.DONE
            logger.info("Exchange done after %d tool call(s)", depth)
            return ExchangeResult(LoopState.DONE, text=reply.text)

    # ── Tool execution ────────────────────────────────────────────────────────

    async def _execute_tool(self, call: ToolCall) -> str:
        if not self.registry.is_known(call.name):
            raise UnknownToolError(call.name)

        self._active_tool = call.name
        if call.name == WEB_SEARCH_TOOL.name:
            status = SEARCHING_STATUS.format(query=call.input.get("query", ""))
        elif call.name == YOUTUBE_SUMMARY_TOOL.name:
            status = TRANSCRIPT_STATUS.format(video_url=call.input.get("video_url", ""))
        else:
            status = ""
        if status:
            self.listener.message_displayed(Role.ASSISTANT, status)

        return await self.registry.execute(call)

    # ── History ───────────────────────────────────────────────────────────────

    def _check_generation(self, generation: int):
        """An abort() since this exchange started means its results are stale."""
        if generation != self._generation:
            raise asyncio.CancelledError()

    def _record(self, generation: int, role: Role, text: str, display: bool = False):
        self._check_generation(generation)
        if role is Role.ASSISTANT:
            self.memory.add_assistant_message(text)
        elif display:
            self.memory.add_user_message(text)
        else:
            self.memory.add_tool_result(text)

        turns = self.memory.turns
        self._persist(turns)
        self.listener.history_changed(turns)
        if display:
            self.listener.message_displayed(role, text)

    def _persist(self, turns: list[ConversationTurn]):
        """The in-memory history stays authoritative when the store cannot be written."""
        try:
            self.store.set_history(turns)
        except OSError as e:
            logger.warning("Could not persist history: %s", e)

    # ── Failures ──────────────────────────────────────────────────────────────

    def _fail(self, error: ChatError, config: ProviderConfig) -> ExchangeResult:
        self.state = LoopState.FAILED
        message, offer_settings_link = self._describe(error, config)
        logger.warning("Exchange failed with %s: %s", type(error).__name__, error.args[0] if error.args else "")
        self.listener.error_displayed(message, offer_settings_link)
        return ExchangeResult(LoopState.FAILED, error=error)

    def _describe(self, error: ChatError, config: ProviderConfig) -> tuple[str, bool]:
        if isinstance(error, TransportError) and error.is_client_error:
            return ERROR_API_KEY.format(provider=config.provider_kind.value), True
        if isinstance(error, EmptyResponseError):
            return ERROR_EMPTY_RESPONSE, True
        if isinstance(error, ToolLoopExceededError):
            return ERROR_SEARCH_LIMIT.format(max_depth=error.max_depth), False
        if isinstance(error, UnknownToolError):
            return ERROR_UNKNOWN_TOOL.format(tool=error.tool_name), False
        if isinstance(error, ToolExecutionError):
            return ERROR_TOOL_FAILED.format(tool=self._active_tool or "Tool", error=error), False
        return ERROR_GENERIC.format(error=error), True

    # ── Session management ────────────────────────────────────────────────────

    @staticmethod
    def _normalize(config: ProviderConfig) -> ProviderConfig:
        kind = ProviderKind.parse(config.provider_kind)
        if kind is config.provider_kind:
            return config
        return dataclasses.replace(config, provider_kind=kind)

    def _provider_config(self) -> ProviderConfig:
        if self.settings is not None:
            return self.settings.provider_config()
        return ProviderConfig()

    def abort(self):
        """Cancels the in-flight exchange; nothing it produces reaches history."""
        self._generation += 1
        if self.busy:
            self._task.cancel()
        self._task        = None
        self._active_tool = ""
        self.state        = LoopState.IDLE

    def new_conversation(self):
        """Wipe history (in memory and in the store) and start fresh."""
        self.abort()
        self.memory.clear()
        self.registry.reset()
        self._persist([])
        self.listener.history_changed([])
        logger.info("New conversation started")
