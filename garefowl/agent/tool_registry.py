"""
agent/tool_registry.py
======================
Routes the model's tool calls to the right executor.

The registry:
  1. Lists the tools that exist (descriptors the adapters send out)
  2. Runs the executor when the model calls one
  3. Returns the formatted block that goes back into the conversation
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from garefowl.errors import ToolExecutionError, UnknownToolError
from garefowl.providers.adapters import ToolCall
from garefowl.tools.descriptors import ALL_TOOLS, WEB_SEARCH_TOOL, YOUTUBE_SUMMARY_TOOL, ToolDescriptor
from garefowl.tools.web_search import WebSearch
from garefowl.tools.youtube_transcript import YouTubeTranscriptFetcher

logger = logging.getLogger(__name__)


class SearchExecutor(Protocol):
    async def search(self, query: str) -> str: ...


class TranscriptExecutor(Protocol):
    async def fetch_transcript(self, video_url: str) -> str: ...


def _required_string(tool_input: dict[str, Any], key: str, tool_name: str) -> str:
    value = tool_input.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ToolExecutionError(f"{tool_name} was called without a '{key}' argument")
    return value.strip()


class ToolRegistry:
    """
    Usage:
        registry = ToolRegistry(searcher, fetcher)
        block    = await registry.execute(ToolCall("id", "web_search", {"query": "..."}))
    """

    def __init__(
        self,
        searcher: SearchExecutor | None = None,
        transcripts: TranscriptExecutor | None = None,
    ):
        self.searcher    = searcher or WebSearch()
        self.transcripts = transcripts or YouTubeTranscriptFetcher()
        self._search_count     = 0
        self._transcript_count = 0

    @property
    def descriptors(self) -> tuple[ToolDescriptor, ...]:
        return ALL_TOOLS

    def is_known(self, tool_name: str) -> bool:
        return any(tool.name == tool_name for tool in ALL_TOOLS)

    # ── Execute a tool call ───────────────────────────────────────────────────

    async def execute(self, call: ToolCall) -> str:
        """
        Returns:
            The bracketed result block for the next user turn.

        Raises:
            UnknownToolError:   no tool by that name.
            ToolExecutionError: the executor failed or the arguments are unusable.
        """
        if call.name == WEB_SEARCH_TOOL.name:
            query = _required_string(call.input, "query", call.name)
            self._search_count += 1
            logger.info("Search #%d: %r", self._search_count, query)
            return await self.searcher.search(query)

        if call.name == YOUTUBE_SUMMARY_TOOL.name:
            video_url = _required_string(call.input, "video_url", call.name)
            self._transcript_count += 1
            logger.info("Transcript #%d: %s", self._transcript_count, video_url)
            return await self.transcripts.fetch_transcript(video_url)

        raise UnknownToolError(call.name)

    # ── Session helpers ───────────────────────────────────────────────────────

    def reset(self):
        self._search_count     = 0
        self._transcript_count = 0

    def summary(self) -> str:
        parts = [f"{self._search_count} search(es)"]
        if self._transcript_count:
            parts.append(f"{self._transcript_count} transcript(s)")
        return ", ".join(parts)
