"""
memory/conversation.py
======================
The canonical conversation history for one chat session.

Every provider adapter receives the same list of ConversationTurn values
and maps the roles to its own vocabulary (Gemini says "model" where the
others say "assistant").

RULES enforced here:
  - Turns are append-only; nothing already recorded is rewritten
  - Only two roles exist: user and assistant
  - Tool results are recorded as user turns carrying a bracketed block
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Iterator


class Role(str, Enum):
    USER      = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationTurn:
    role:    Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversationTurn":
        """Anything that is not explicitly "user" is treated as assistant."""
        role = Role.USER if data.get("role") == Role.USER.value else Role.ASSISTANT
        return cls(role=role, content=str(data.get("content") or ""))


def user(text: str) -> ConversationTurn:
    return ConversationTurn(Role.USER, text)


def assistant(text: str) -> ConversationTurn:
    return ConversationTurn(Role.ASSISTANT, text)


class ConversationMemory:
    """
    Stores and exposes the ordered turns of one session.
    """

    def __init__(self, turns: Iterable[ConversationTurn] = ()):
        self._turns: list[ConversationTurn] = list(turns)

    # ── Add turns ─────────────────────────────────────────────────────────────

    def add_user_message(self, text: str) -> ConversationTurn:
        return self._append(user(text))

    def add_assistant_message(self, text: str) -> ConversationTurn:
        return self._append(assistant(text))

    def add_tool_result(self, block: str) -> ConversationTurn:
        """Tool output goes back to the model as a plain user turn."""
        return self._append(user(block))

    def _append(self, turn: ConversationTurn) -> ConversationTurn:
        self._turns.append(turn)
        return turn

    # ── Read turns ────────────────────────────────────────────────────────────

    @property
    def turns(self) -> list[ConversationTurn]:
        """A copy; callers cannot rewrite history through it."""
        return list(self._turns)

    @property
    def last(self) -> ConversationTurn | None:
        return self._turns[-1] if self._turns else None

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[ConversationTurn]:
        return iter(list(self._turns))

    # ── Session management ────────────────────────────────────────────────────

    def clear(self):
        self._turns = []

    def __repr__(self) -> str:
        return f"ConversationMemory(turns={len(self._turns)})"
