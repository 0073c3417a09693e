"""
garefowl/config.py
==================
Settings from the environment (and .env), plus logging setup.

Run-time knobs:
  LLM_PROVIDER        anthropic | openai | gemini | openrouter | ollama | groq
  <PROVIDER>_API_KEY  e.g. ANTHROPIC_API_KEY (not needed for ollama)
  <PROVIDER>_MODEL    e.g. OPENAI_MODEL=gpt-4o-mini
  REQUEST_TIMEOUT     seconds, default 300
  ENABLE_WEB_SEARCH   true/false
  SEARXNG_INSTANCE    search endpoint, default https://searx.be
  OLLAMA_HOST         default http://127.0.0.1:11434
  OLLAMA_TOOL_MODELS  comma-separated model families that can call tools
  HISTORY_FILE        default ~/.garefowl/history.json
  LOG_LEVEL           default WARNING
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping

from dotenv import load_dotenv

from garefowl.providers.config import (
    DEFAULT_MODELS,
    DEFAULT_OLLAMA_HOST,
    DEFAULT_OLLAMA_TOOL_MODELS,
    DEFAULT_REQUEST_TIMEOUT,
    ProviderConfig,
    ProviderKind,
)
from garefowl.tools.web_search import DEFAULT_INSTANCE

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_FILE = "~/.garefowl/history.json"
LOG_FORMAT           = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

TRUE_VALUES = ("true", "1", "yes", "on")


def _env_bool(env: Mapping[str, str], key: str, default: bool = False) -> bool:
    value = env.get(key)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in TRUE_VALUES


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    value = env.get(key, "").strip()
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number", key, value)
        return default
    return parsed if parsed > 0 else default


def _env_list(env: Mapping[str, str], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = env.get(key, "")
    items = tuple(item.strip() for item in value.split(",") if item.strip())
    return items or default


@dataclass(frozen=True)
class Settings:
    provider:           ProviderKind = ProviderKind.ANTHROPIC
    api_keys:           Mapping[ProviderKind, str] = field(default_factory=dict)
    models:             Mapping[ProviderKind, str] = field(default_factory=dict)
    request_timeout:    float = DEFAULT_REQUEST_TIMEOUT
    enable_web_search:  bool = False
    searxng_instance:   str = DEFAULT_INSTANCE
    ollama_host:        str = DEFAULT_OLLAMA_HOST
    ollama_tool_models: tuple[str, ...] = DEFAULT_OLLAMA_TOOL_MODELS
    history_file:       str = DEFAULT_HISTORY_FILE

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        """Reads os.environ (after loading .env) unless an explicit mapping is given."""
        if env is None:
            load_dotenv()
            env = os.environ

        api_keys = {kind: env.get(f"{kind.name}_API_KEY", "").strip() for kind in ProviderKind}
        models   = {
            kind: env.get(f"{kind.name}_MODEL", "").strip() or DEFAULT_MODELS[kind]
            for kind in ProviderKind
        }
        return cls(
            provider           = ProviderKind.parse(env.get("LLM_PROVIDER")),
            api_keys           = api_keys,
            models             = models,
            request_timeout    = _env_float(env, "REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
            enable_web_search  = _env_bool(env, "ENABLE_WEB_SEARCH"),
            searxng_instance   = env.get("SEARXNG_INSTANCE", "").strip() or DEFAULT_INSTANCE,
            ollama_host        = env.get("OLLAMA_HOST", "").strip() or DEFAULT_OLLAMA_HOST,
            ollama_tool_models = _env_list(env, "OLLAMA_TOOL_MODELS", DEFAULT_OLLAMA_TOOL_MODELS),
            history_file       = env.get("HISTORY_FILE", "").strip() or DEFAULT_HISTORY_FILE,
        )

    def api_key(self, kind: ProviderKind | None = None) -> str:
        return self.api_keys.get(kind or self.provider, "")

    def model(self, kind: ProviderKind | None = None) -> str:
        kind = kind or self.provider
        return self.models.get(kind) or DEFAULT_MODELS[kind]

    @property
    def needs_api_key(self) -> bool:
        return self.provider is not ProviderKind.OLLAMA

    def provider_config(self) -> ProviderConfig:
        return ProviderConfig(
            provider_kind           = self.provider,
            api_key                 = self.api_key(),
            model                   = self.model(),
            request_timeout_seconds = self.request_timeout,
            web_search_enabled      = self.enable_web_search,
            ollama_host             = self.ollama_host,
            ollama_tool_models      = self.ollama_tool_models,
        )


def configure_logging(level: str | int | None = None):
    """Root logging for the terminal app; LOG_LEVEL wins when no level is passed."""
    level = level or os.getenv("LOG_LEVEL", "WARNING")
    if isinstance(level, str):
        level = logging.getLevelName(level.strip().upper())
        if not isinstance(level, int):
            level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
