"""
tools/web_search.py
===================
Web search through a SearXNG instance (public or self-hosted).

SearXNG exposes a JSON API at /search?format=json, so no API key is
needed. The top results are rendered into one bracketed text block that
goes back to the model as a user turn.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from bs4 import BeautifulSoup

from garefowl.errors import ToolExecutionError, TransportError
from garefowl.providers.transport import HttpTransport

logger = logging.getLogger(__name__)

DEFAULT_INSTANCE = "https://searx.be"
MAX_RESULTS      = 5
TIMEOUT_SECS     = 30

REQUEST_HEADERS = {
    "User-Agent":      "GarefowlChatbot/1.0",
    "Accept":          "application/json",
    "X-Forwarded-For": "127.0.0.1",
}


@dataclass(frozen=True)
class SearchResult:
    title:   str
    snippet: str
    url:     str


def _plain(text: Any) -> str:
    """SearXNG sometimes returns highlighted HTML in titles and snippets."""
    if not isinstance(text, str):
        return ""
    if "<" in text and ">" in text:
        text = BeautifulSoup(text, "html.parser").get_text(" ")
    return " ".join(text.split())


def current_time_label(now: datetime | None = None) -> str:
    now = (now or datetime.now()).astimezone()
    return now.strftime("%A, %B %d, %Y at %I:%M %p %Z").strip()


class WebSearch:
    """
    Usage:
        searcher = WebSearch(transport, "https://searx.example.org")
        block    = await searcher.search("weather in Oslo today")
    """

    def __init__(
        self,
        transport: HttpTransport | None = None,
        instance_url: str = DEFAULT_INSTANCE,
        timeout_seconds: float = TIMEOUT_SECS,
    ):
        self.transport       = transport or HttpTransport()
        self.instance_url    = (instance_url or DEFAULT_INSTANCE).rstrip("/")
        self.timeout_seconds = timeout_seconds

    # ── Raw API call ──────────────────────────────────────────────────────────

    async def web_search(self, query: str) -> dict[str, Any]:
        """Returns the raw SearXNG JSON envelope."""
        url = f"{self.instance_url}/search"
        try:
            response = await self.transport.send(
                "GET",
                url,
                headers         = REQUEST_HEADERS,
                timeout_seconds = self.timeout_seconds,
                params          = {"q": query, "format": "json", "categories": "general"},
            )
        except TransportError as e:
            raise ToolExecutionError(
                f"Search failed: {e.args[0]}. Check your SearXNG instance URL ({self.instance_url})."
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise ToolExecutionError(f"SearXNG returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ToolExecutionError("SearXNG returned an unexpected response shape")
        return data

    # ── Formatted output (what the model reads) ───────────────────────────────

    async def search(self, query: str) -> str:
        logger.info("Web search: %r via %s", query, self.instance_url)
        data    = await self.web_search(query)
        results = self.parse_results(data)
        logger.info("Web search returned %d results", len(results))
        return self.format_results(results, query)

    @staticmethod
    def parse_results(data: dict[str, Any]) -> list[SearchResult]:
        raw = data.get("results")
        if not isinstance(raw, list):
            return []

        results = []
        for item in raw[:MAX_RESULTS]:
            if not isinstance(item, dict):
                continue
            title = _plain(item.get("title"))
            url   = item.get("url") if isinstance(item.get("url"), str) else ""
            if title and url:
                results.append(SearchResult(title=title, snippet=_plain(item.get("content")), url=url))
        return results

    @staticmethod
    def format_results(results: list[SearchResult], query: str, now: datetime | None = None) -> str:
        header = f"[WEB SEARCH RESULTS - Current time: {current_time_label(now)}]\n\nSearch query: \"{query}\"\n\n"

        if not results:
            return (
                header
                + "No results found. Please answer based on your general knowledge and inform the "
                "user that you don't have access to current real-time data for this query.\n\n"
                "[END SEARCH RESULTS]"
            )

        lines = []
        for i, result in enumerate(results, start=1):
            lines.append(f"{i}. {result.title}")
            lines.append(f"   Source: {result.url}")
            if result.snippet:
                lines.append(f"   {result.snippet}")
            lines.append("")

        return (
            header
            + "\n".join(lines)
            + "\n[END SEARCH RESULTS]\n\n"
            "Answer the user's question using only the information above."
        )
