"""
providers/factory.py
====================
ProviderKind → adapter instance.
"""

from __future__ import annotations

import dataclasses
import logging

from garefowl.providers.adapters import (
    AnthropicAdapter,
    GeminiAdapter,
    GroqAdapter,
    OllamaAdapter,
    OpenAIAdapter,
    OpenRouterAdapter,
    ProviderAdapter,
)
from garefowl.providers.config import ProviderConfig, ProviderKind

logger = logging.getLogger(__name__)

ADAPTERS: dict[ProviderKind, type[ProviderAdapter]] = {
    ProviderKind.ANTHROPIC:  AnthropicAdapter,
    ProviderKind.OPENAI:     OpenAIAdapter,
    ProviderKind.GEMINI:     GeminiAdapter,
    ProviderKind.OPENROUTER: OpenRouterAdapter,
    ProviderKind.OLLAMA:     OllamaAdapter,
    ProviderKind.GROQ:       GroqAdapter,
}

DEFAULT_KIND = ProviderKind.ANTHROPIC


def create_adapter(config: ProviderConfig) -> ProviderAdapter:
    """
    Always returns a usable adapter; an unrecognised kind gets the
    Anthropic one.
    """
    kind = ProviderKind.parse(config.provider_kind)
    if kind is not config.provider_kind:
        config = dataclasses.replace(config, provider_kind=kind)

    adapter_cls = ADAPTERS.get(kind, ADAPTERS[DEFAULT_KIND])
    adapter = adapter_cls(config)
    logger.debug("Created %r", adapter)
    return adapter
