from garefowl.memory.conversation import ConversationMemory, ConversationTurn, Role, assistant, user
from garefowl.memory.store import HistoryStore, InMemoryHistoryStore, JsonHistoryStore

__all__ = [
    "ConversationMemory",
    "ConversationTurn",
    "Role",
    "assistant",
    "user",
    "HistoryStore",
    "InMemoryHistoryStore",
    "JsonHistoryStore",
]
