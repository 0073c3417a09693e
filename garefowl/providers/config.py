"""
providers/config.py
===================
Which backend to talk to, and with what credentials.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 300.0   # Reasoning models can take minutes
DEFAULT_OLLAMA_HOST     = "http://127.0.0.1:11434"

# Local model families known to handle structured tool calls.
DEFAULT_OLLAMA_TOOL_MODELS: tuple[str, ...] = (
    "llama3.1",
    "llama3.2",
    "mistral",
    "qwen2.5",
    "command-r",
)


class ProviderKind(str, Enum):
    ANTHROPIC  = "anthropic"
    OPENAI     = "openai"
    GEMINI     = "gemini"
    OPENROUTER = "openrouter"
    OLLAMA     = "ollama"
    GROQ       = "groq"

    @classmethod
    def parse(cls, value: "str | ProviderKind | None") -> "ProviderKind":
        """Unknown identifiers fall back to Anthropic instead of failing."""
        if isinstance(value, ProviderKind):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            logger.warning("Unknown provider %r, falling back to %s", value, cls.ANTHROPIC.value)
            return cls.ANTHROPIC


DEFAULT_MODELS: dict[ProviderKind, str] = {
    ProviderKind.ANTHROPIC:  "claude-opus-4-5-20251101",
    ProviderKind.OPENAI:     "gpt-4o-mini",
    ProviderKind.GEMINI:     "gemini-2.0-flash",
    ProviderKind.OPENROUTER: "openai/gpt-4o-mini",
    ProviderKind.OLLAMA:     "llama3.2",
    ProviderKind.GROQ:       "llama-3.3-70b-versatile",
}


@dataclass(frozen=True)
class ProviderConfig:
    """Everything one exchange needs to reach a backend. Immutable per exchange."""

    provider_kind:           ProviderKind = ProviderKind.ANTHROPIC
    api_key:                 str = ""
    model:                   str = ""
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT
    web_search_enabled:      bool = False
    ollama_host:             str = DEFAULT_OLLAMA_HOST
    ollama_tool_models:      tuple[str, ...] = DEFAULT_OLLAMA_TOOL_MODELS

    def __repr__(self) -> str:
        # Keep the key out of logs and tracebacks.
        return (
            f"ProviderConfig(provider_kind={getattr(self.provider_kind, 'value', self.provider_kind)!r}, model={self.model!r}, "
            f"request_timeout_seconds={self.request_timeout_seconds}, "
            f"web_search_enabled={self.web_search_enabled})"
        )
