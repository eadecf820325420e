"""Session manager — per-chat scratch state that does not need to survive restarts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Conversation scratch space for one Telegram user.

    Durable conversation state (the draft, its delivery method and
    address) lives in the database; this only holds things like the
    admin panel's unsaved toggles.
    """

    telegram_id: str
    state: dict[str, Any] = field(default_factory=dict)

    @property
    def staged_preferences(self) -> dict[str, bool] | None:
        return self.state.get("staged_preferences")


class SessionManager:
    """In-memory session store keyed by Telegram user id."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def get(self, telegram_id: str) -> Session:
        """Retrieve or create the session for *telegram_id*."""
        if telegram_id not in self._sessions:
            logger.debug("Creating new session for %s", telegram_id)
            self._sessions[telegram_id] = Session(telegram_id=telegram_id)
        return self._sessions[telegram_id]

    def stage_preferences(self, telegram_id: str, values: dict[str, bool]) -> dict[str, bool]:
        staged = dict(values)
        self.get(telegram_id).state["staged_preferences"] = staged
        return staged

    def discard_preferences(self, telegram_id: str) -> None:
        session = self._sessions.get(telegram_id)
        if session is not None:
            session.state.pop("staged_preferences", None)
