"""Per-session conversation memory, bounded to the most recent turns."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .config import config
from .models import ConversationTurn

if TYPE_CHECKING:
    from collections.abc import MutableMapping

logger = config.get_logger(__name__)


class SessionStore:
    """Maps a session id to its ordered, bounded turn history.

    The backing mapping is injected so tests (or a future shared store) can
    supply their own; by default it is a plain in-process dict. Histories are
    stored as tuples, so a turn list handed out by :meth:`history` can never
    alias the stored one.
    """

    def __init__(
        self,
        storage: MutableMapping[str, tuple[ConversationTurn, ...]] | None = None,
        max_turns: int | None = None,
    ) -> None:
        self._storage = {} if storage is None else storage
        self.max_turns = config.SESSION_MAX_TURNS if max_turns is None else max_turns

    def append(self, session_id: str, turn: ConversationTurn) -> None:
        """Append a turn, evicting the oldest ones beyond ``max_turns``."""
        turns = (*self._storage.get(session_id, ()), turn)
        self._storage[session_id] = turns[-self.max_turns :]

    def record_exchange(self, session_id: str, query: str, reply: str) -> None:
        """Append a user question and the assistant reply to it."""
        self.append(session_id, ConversationTurn(role="user", text=query))
        self.append(session_id, ConversationTurn(role="assistant", text=reply))

    def history(self, session_id: str) -> list[ConversationTurn]:
        """Return a copy of the session's turns, oldest first.

        Returns:
            List of turns; empty for an unknown session.
        """
        return list(self._storage.get(session_id, ()))

    def clear(self, session_id: str) -> None:
        """Forget a session."""
        self._storage.pop(session_id, None)
        logger.info("Session %s cleared", session_id)

    def session_count(self) -> int:
        """Number of sessions currently held.

        Returns:
            Count of session ids in storage.
        """
        return len(self._storage)
