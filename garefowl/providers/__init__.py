from garefowl.providers.config import ProviderConfig, ProviderKind
from garefowl.providers.transport import HttpResponse, HttpTransport
from garefowl.providers.adapters import ProviderAdapter, ProviderReply, ToolCall
from garefowl.providers.factory import create_adapter

__all__ = [
    "ProviderConfig",
    "ProviderKind",
    "HttpResponse",
    "HttpTransport",
    "ProviderAdapter",
    "ProviderReply",
    "ToolCall",
    "create_adapter",
]
