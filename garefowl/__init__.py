"""Multi-provider LLM chat core with a bounded web-search / transcript tool loop."""

from garefowl.agent.agent_loop import ChatListener, ChatSession, ExchangeResult, LoopState
from garefowl.config import Settings, configure_logging
from garefowl.providers import ProviderConfig, ProviderKind, create_adapter

__version__ = "0.1.0"

__all__ = [
    "ChatListener",
    "ChatSession",
    "ExchangeResult",
    "LoopState",
    "Settings",
    "configure_logging",
    "ProviderConfig",
    "ProviderKind",
    "create_adapter",
]
