"""Admin agent — notification preference panel for configured administrators."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from order_bridge.agents.base import AgentResponse, BaseAgent, Incoming
from order_bridge.config import settings
from order_bridge.database.repository import AdminPreferenceRepository
from order_bridge.models import User
from order_bridge.models.preferences import NOTIFICATION_TYPES
from order_bridge.services import keyboards
from order_bridge.services.i18n import matches_any_language, translate
from order_bridge.services.session_manager import Session, SessionManager
from order_bridge.services.telegram import TelegramChannel

logger = logging.getLogger(__name__)


class AdminAgent(BaseAgent):
    """Lets an admin choose which broadcasts they receive.

    Toggles only change a staged copy held in the ``SessionManager``;
    nothing reaches the database until ``admin:save``.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        channel: TelegramChannel,
        sessions: SessionManager,
        admin_ids: list[str] | None = None,
    ) -> None:
        self._prefs = AdminPreferenceRepository(db_session)
        self._channel = channel
        self._sessions = sessions
        self._admin_ids = settings.admin_ids if admin_ids is None else admin_ids

    @property
    def name(self) -> str:
        return "AdminAgent"

    def accepts(self, incoming: Incoming) -> bool:
        if incoming.command == "/admin":
            return True
        if incoming.callback_data:
            return incoming.callback_data.startswith("admin:")
        return bool(
            incoming.text
            and not incoming.command
            and matches_any_language(incoming.text.strip(), "menu_settings")
        )

    async def handle(self, incoming: Incoming, user: User, session: Session) -> AgentResponse:
        lang = user.language
        if user.telegram_id not in self._admin_ids:
            logger.warning("Non-admin %s tried the admin panel", user.telegram_id)
            return AgentResponse(translate(lang, "not_admin"))

        data = incoming.callback_data
        if data is None:
            current = await self._prefs.get(user.id)
            staged = self._sessions.stage_preferences(user.telegram_id, current)
            return AgentResponse(translate(lang, "admin_title"), inline_keyboard=keyboards.admin_panel(lang, staged))

        if data.startswith("admin:toggle:"):
            return await self._toggle(incoming, user, session, data.removeprefix("admin:toggle:"))
        if data == "admin:save":
            staged = session.staged_preferences
            if staged is None:
                staged = await self._prefs.get(user.id)
            await self._prefs.save(user.id, staged)
            self._sessions.discard_preferences(user.telegram_id)
            logger.info("Admin %s saved preferences %s", user.telegram_id, staged)
            return AgentResponse(translate(lang, "admin_saved"), reply_keyboard=keyboards.main_menu(user))
        if data == "admin:cancel":
            self._sessions.discard_preferences(user.telegram_id)
            return AgentResponse(translate(lang, "admin_discarded"), reply_keyboard=keyboards.main_menu(user))

        logger.warning("Unhandled admin callback %r", data)
        return AgentResponse(None)

    async def _toggle(self, incoming: Incoming, user: User, session: Session, kind: str) -> AgentResponse:
        if kind not in NOTIFICATION_TYPES:
            logger.warning("Unknown notification type %r", kind)
            return AgentResponse(None)

        staged = session.staged_preferences
        if staged is None:
            staged = self._sessions.stage_preferences(user.telegram_id, await self._prefs.get(user.id))
        staged[kind] = not staged.get(kind, False)

        panel = keyboards.admin_panel(user.language, staged)
        if incoming.message_id is not None:
            await self._channel.edit_inline_keyboard(incoming.chat_id, incoming.message_id, panel)
            return AgentResponse(None)
        return AgentResponse(translate(user.language, "admin_title"), inline_keyboard=panel)
