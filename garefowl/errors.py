"""
garefowl/errors.py
==================
Every failure the chat core can report.

Transport, adapters and tool executors raise these; the ChatSession in
agent/agent_loop.py is the only place that catches them and decides
what the user sees.
"""

from __future__ import annotations


class ChatError(Exception):
    """Base class for all chat-core failures."""


# ── Provider side ─────────────────────────────────────────────────────────────

class TransportError(ChatError):
    """
    The HTTP exchange itself failed.

    kind is one of CONNECTION, TIMEOUT, EMPTY_BODY or HTTP_STATUS.
    Carries the URL and outbound body for diagnostics, never headers.
    """

    CONNECTION  = "connection"
    TIMEOUT     = "timeout"
    EMPTY_BODY  = "empty_body"
    HTTP_STATUS = "http_status"

    def __init__(
        self,
        message: str,
        *,
        kind: str,
        url: str,
        request_body: str | None = None,
        status_code: int | None = None,
        response_text: str | None = None,
    ):
        self.kind          = kind
        self.url           = url
        self.request_body  = request_body
        self.status_code   = status_code
        self.response_text = response_text
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.args[0], f"URL: {self.url}"]
        if self.request_body:
            parts.append(f"Request: {self.request_body}")
        if self.response_text:
            parts.append(f"Response: {self.response_text}")
        return "\n".join(parts)

    @property
    def is_client_error(self) -> bool:
        return self.status_code is not None and 400 <= self.status_code < 500


class ConfigurationError(TransportError):
    """The backend rejected our credentials or model (HTTP 401/403)."""


class ParseError(ChatError):
    """The response body was not the JSON we expected."""

    def __init__(self, message: str, *, url: str = "", raw: str = ""):
        self.url = url
        self.raw = raw
        super().__init__(message)


class EmptyResponseError(ChatError):
    """Well-formed response that carried no usable text."""


# ── Tool side ─────────────────────────────────────────────────────────────────

class ToolExecutionError(ChatError):
    """A tool executor could not produce its result block."""


class InvalidVideoUrlError(ToolExecutionError):
    pass


class CaptionsUnavailableError(ToolExecutionError):
    """yt-dlp ran but never wrote a subtitle file."""


class ExtractionFailedError(ToolExecutionError):
    """yt-dlp exited non-zero, timed out, or is not installed."""


# ── Loop control ──────────────────────────────────────────────────────────────

class ToolLoopExceededError(ChatError):
    def __init__(self, max_depth: int):
        self.max_depth = max_depth
        super().__init__(f"Search limit reached ({max_depth} tool calls for one message)")


class UnknownToolError(ChatError):
    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool requested: {tool_name}")


class ConversationBusyError(ChatError):
    """send_message() was called while an exchange is still in flight."""
