"""Message router — dispatches incoming Telegram updates to the correct agent."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from order_bridge.agents.admin_agent import AdminAgent
from order_bridge.agents.base import AgentResponse, BaseAgent, Incoming
from order_bridge.agents.order_agent import OrderAgent
from order_bridge.agents.registration_agent import RegistrationAgent
from order_bridge.database.repository import UserRepository
from order_bridge.services import keyboards
from order_bridge.services.erp_client import ErpGateway
from order_bridge.services.i18n import translate
from order_bridge.services.order_orchestrator import OrderOrchestrator
from order_bridge.services.session_manager import SessionManager
from order_bridge.services.telegram import TelegramChannel

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from order_bridge.models import User

logger = logging.getLogger(__name__)


def parse_update(update: dict[str, Any]) -> Incoming | None:
    """Flatten a Bot API update; ``None`` for update kinds the bot ignores."""
    callback = update.get("callback_query")
    if callback:
        sender = callback.get("from") or {}
        message = callback.get("message") or {}
        chat = message.get("chat") or {}
        return Incoming(
            telegram_id=str(sender.get("id")),
            chat_id=str(chat.get("id") or sender.get("id")),
            callback_data=callback.get("data"),
            callback_id=callback.get("id"),
            message_id=message.get("message_id"),
            first_name=sender.get("first_name"),
            last_name=sender.get("last_name"),
            username=sender.get("username"),
        )

    message = update.get("message")
    if not message or not message.get("from"):
        return None
    sender = message["from"]
    contact = message.get("contact") or {}
    location = message.get("location") or {}
    return Incoming(
        telegram_id=str(sender["id"]),
        chat_id=str((message.get("chat") or {}).get("id") or sender["id"]),
        text=message.get("text"),
        contact_phone=contact.get("phone_number"),
        contact_user_id=str(contact["user_id"]) if contact.get("user_id") else None,
        latitude=location.get("latitude"),
        longitude=location.get("longitude"),
        message_id=message.get("message_id"),
        first_name=sender.get("first_name"),
        last_name=sender.get("last_name"),
        username=sender.get("username"),
    )


def _allowed_unregistered(incoming: Incoming) -> bool:
    if incoming.command == "/start" or incoming.contact_phone:
        return True
    return bool(incoming.callback_data and incoming.callback_data.startswith("lang:"))


class MessageRouter:
    """Central router that decides which agent handles an update.

    Routing logic
    -------------
    * Unregistered users may only ``/start``, pick a language or share
      their contact; anything else gets the registration prompt.
    * A command or a main-menu button abandons a draft that is waiting
      for an address, so a stray tap never leaves the user stuck.
    * Otherwise the first agent that accepts the update handles it:
      ``AdminAgent``, ``RegistrationAgent``, then ``OrderAgent``.
    """

    def __init__(
        self,
        session_manager: SessionManager,
        gateway: ErpGateway,
        channel: TelegramChannel,
    ) -> None:
        self._session_manager = session_manager
        self._gateway = gateway
        self._channel = channel

    def _agents(self, db_session: AsyncSession) -> list[BaseAgent]:
        return [
            AdminAgent(db_session, self._channel, self._session_manager),
            RegistrationAgent(db_session, self._gateway, self._channel),
            OrderAgent(db_session, self._gateway, self._channel),
        ]

    async def route(self, update: dict[str, Any], db_session: AsyncSession) -> AgentResponse | None:
        """Route one update to its agent and deliver the reply.

        Parameters
        ----------
        update:
            The raw Bot API update body.
        db_session:
            An active async database session; the caller commits.
        """
        incoming = parse_update(update)
        if incoming is None:
            logger.debug("Ignoring update %s", update.get("update_id"))
            return None

        user, created = await UserRepository(db_session).get_or_create(
            incoming.telegram_id,
            first_name=incoming.first_name,
            last_name=incoming.last_name,
            username=incoming.username,
        )
        if created:
            logger.info("New Telegram user %s", incoming.telegram_id)

        try:
            response = await self._dispatch(incoming, user, db_session)
        except Exception:
            logger.exception("Update from %s failed", incoming.telegram_id)
            response = AgentResponse(translate(user.language, "generic_error"))

        await self._deliver(incoming, response)
        return response

    async def _dispatch(self, incoming: Incoming, user: User, db_session: AsyncSession) -> AgentResponse:
        if not user.is_registered and not _allowed_unregistered(incoming):
            logger.info("Unregistered user %s sent %r", user.telegram_id, incoming.text or incoming.callback_data)
            return AgentResponse(
                translate(user.language, "register_prompt"),
                reply_keyboard=keyboards.contact_request(user.language),
            )

        if incoming.command or (incoming.text and keyboards.is_menu_text(incoming.text)):
            orchestrator = OrderOrchestrator(db_session, self._gateway, self._channel)
            if await orchestrator.discard_if_awaiting_address(user):
                logger.info("Draft awaiting address abandoned by %s", user.telegram_id)

        session = self._session_manager.get(user.telegram_id)
        for agent in self._agents(db_session):
            if agent.accepts(incoming):
                logger.info("Routing %s → %s", user.telegram_id, agent.name)
                return await agent.handle(incoming, user, session)

        logger.info("No agent for update from %s", user.telegram_id)
        return AgentResponse(translate(user.language, "menu_hint"), reply_keyboard=keyboards.main_menu(user))

    async def _deliver(self, incoming: Incoming, response: AgentResponse) -> None:
        if incoming.callback_id:
            await self._channel.answer_callback(incoming.callback_id, response.callback_notice)
        if response.reply_text:
            await self._channel.send_text(
                incoming.chat_id,
                response.reply_text,
                parse_mode=response.parse_mode,
                inline_keyboard=response.inline_keyboard,
                reply_keyboard=response.reply_keyboard,
                remove_keyboard=response.remove_keyboard,
            )
