"""
memory/store.py
===============
Where conversation history lives between sessions.

The chat core only needs get_history()/set_history(); the on-disk format
is a JSON list of {"role": ..., "content": ...} objects.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Protocol

from garefowl.memory.conversation import ConversationTurn

logger = logging.getLogger(__name__)


class HistoryStore(Protocol):
    def get_history(self) -> list[ConversationTurn]: ...

    def set_history(self, turns: Iterable[ConversationTurn]) -> None: ...


class InMemoryHistoryStore:
    """Keeps history for the lifetime of the process only."""

    def __init__(self, turns: Iterable[ConversationTurn] = ()):
        self._turns = list(turns)

    def get_history(self) -> list[ConversationTurn]:
        return list(self._turns)

    def set_history(self, turns: Iterable[ConversationTurn]) -> None:
        self._turns = list(turns)


class JsonHistoryStore:
    """
    Persists history to a JSON file.

    A missing or unreadable file hydrates as an empty conversation rather
    than failing session start.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def get_history(self) -> list[ConversationTurn]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read history from %s: %s", self.path, e)
            return []
        if not isinstance(data, list):
            logger.warning("Ignoring history file %s: expected a JSON list", self.path)
            return []
        return [ConversationTurn.from_dict(item) for item in data if isinstance(item, dict)]

    def set_history(self, turns: Iterable[ConversationTurn]) -> None:
        payload = [turn.to_dict() for turn in turns]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.path)
        logger.debug("Saved %d turns to %s", len(payload), self.path)
