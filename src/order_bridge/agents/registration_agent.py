"""Registration agent — language choice, contact sharing and the account menu."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from order_bridge.agents.base import AgentResponse, BaseAgent, Incoming
from order_bridge.domain.status import localize_status
from order_bridge.exceptions import ErpError
from order_bridge.models import User
from order_bridge.models.user import LANGUAGES
from order_bridge.services import keyboards
from order_bridge.services.admin_notifier import AdminNotifier
from order_bridge.services.erp_client import ErpGateway, parse_moment
from order_bridge.services.i18n import format_money, matches_any_language, translate
from order_bridge.services.order_orchestrator import OrderOrchestrator
from order_bridge.services.registration import RegistrationService
from order_bridge.services.session_manager import Session
from order_bridge.services.telegram import TelegramChannel

logger = logging.getLogger(__name__)

RECENT_ORDERS = 5

# Commands and the main-menu button that triggers the same action.
_ACTIONS = {
    "/help": "menu_help",
    "/balance": "menu_balance",
    "/orders": "menu_orders",
    "/lang": "menu_language",
}


def _menu_action(incoming: Incoming) -> str | None:
    if incoming.command in _ACTIONS:
        return incoming.command
    if incoming.text and not incoming.command:
        for command, key in _ACTIONS.items():
            if matches_any_language(incoming.text.strip(), key):
                return command
    return None


class RegistrationAgent(BaseAgent):
    """Takes a Telegram user from first contact to a linked ERP counterparty.

    Flow
    ----
    1. ``/start`` from an unregistered user shows the language picker.
    2. Picking a language asks for the phone number (contact keyboard).
    3. The shared contact is matched to an ERP counterparty by phone, or
       a new counterparty is created; admins are told about the new user.
    4. A cart saved from the storefront before registration continues
       with its next prompt.

    Registered users get the account actions: help, balance, recent
    orders and language change.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        gateway: ErpGateway,
        channel: TelegramChannel,
    ) -> None:
        self._db = db_session
        self._gateway = gateway
        self._channel = channel
        self._registration = RegistrationService(db_session, gateway, channel)

    @property
    def name(self) -> str:
        return "RegistrationAgent"

    def accepts(self, incoming: Incoming) -> bool:
        if incoming.command == "/start" or incoming.contact_phone:
            return True
        if incoming.callback_data and incoming.callback_data.startswith("lang:"):
            return True
        return _menu_action(incoming) is not None

    async def handle(self, incoming: Incoming, user: User, session: Session) -> AgentResponse:
        if incoming.command == "/start":
            return self._start(user)
        if incoming.callback_data and incoming.callback_data.startswith("lang:"):
            return await self._set_language(user, incoming.callback_data.split(":", 1)[1])
        if incoming.contact_phone:
            return await self._contact(incoming, user)

        action = _menu_action(incoming)
        if action == "/help":
            return AgentResponse(translate(user.language, "help"), reply_keyboard=keyboards.main_menu(user))
        if action == "/balance":
            return await self._balance(user)
        if action == "/orders":
            return await self._orders(user)
        return AgentResponse(translate(user.language, "choose_language"), inline_keyboard=keyboards.language_picker())

    # ── Private helpers ──────────────────────────────────

    def _start(self, user: User) -> AgentResponse:
        if user.is_registered:
            return AgentResponse(
                translate(user.language, "already_registered", name=user.display_name),
                reply_keyboard=keyboards.main_menu(user),
            )
        return AgentResponse(
            translate(user.language, "choose_language"),
            inline_keyboard=keyboards.language_picker(),
        )

    async def _set_language(self, user: User, code: str) -> AgentResponse:
        if code not in LANGUAGES:
            logger.warning("Unknown language code %r from %s", code, user.telegram_id)
            return AgentResponse(None)
        user.language = code
        await self._db.flush()
        if user.is_registered:
            return AgentResponse(
                translate(code, "language_changed"),
                reply_keyboard=keyboards.main_menu(user),
            )
        return AgentResponse(
            translate(code, "welcome", name=user.display_name),
            reply_keyboard=keyboards.contact_request(code),
        )

    async def _contact(self, incoming: Incoming, user: User) -> AgentResponse:
        lang = user.language
        if incoming.contact_user_id and incoming.contact_user_id != incoming.telegram_id:
            return AgentResponse(
                translate(lang, "contact_self_only"),
                reply_keyboard=keyboards.contact_request(lang),
            )

        was_registered = user.is_registered
        try:
            counterparty_id = await self._registration.register_contact(user, incoming.contact_phone)
        except ErpError:
            logger.exception("Counterparty resolution failed for %s", user.telegram_id)
            return AgentResponse(translate(lang, "generic_error"), reply_keyboard=keyboards.contact_request(lang))

        logger.info("User %s registered as counterparty %s", user.telegram_id, counterparty_id)
        if not was_registered:
            await self._notify_admins(user)

        orchestrator = OrderOrchestrator(self._db, self._gateway, self._channel)
        await self._channel.send_text(
            user.telegram_id,
            translate(lang, "registered"),
            reply_keyboard=keyboards.main_menu(user),
        )
        if await orchestrator.get_draft(user) is not None:
            await orchestrator.send_next_prompt(user)
        return AgentResponse(None)

    async def _notify_admins(self, user: User) -> None:
        def compose(admin_lang: str) -> str:
            return "\n".join(
                [
                    translate(admin_lang, "admin_new_user", name=user.display_name),
                    f"{translate(admin_lang, 'label_phone')}: {user.phone_number}",
                ]
            )

        await AdminNotifier(self._db, self._channel).notify("new_user", compose)

    async def _balance(self, user: User) -> AgentResponse:
        lang = user.language
        try:
            balance = await self._gateway.get_balance(user.counterparty_id)
        except ErpError:
            logger.exception("Balance lookup failed for %s", user.telegram_id)
            return AgentResponse(translate(lang, "balance_unavailable"))
        currency = await self._gateway.safe_base_currency()
        return AgentResponse(
            translate(lang, "balance", amount=format_money(balance, currency, lang)),
            reply_keyboard=keyboards.main_menu(user),
        )

    async def _orders(self, user: User) -> AgentResponse:
        lang = user.language
        page = await self._gateway.list_customer_orders(user.counterparty_id, 0, RECENT_ORDERS)
        if not page.rows:
            return AgentResponse(translate(lang, "no_orders"))
        currency = await self._gateway.safe_base_currency()
        lines = [translate(lang, "orders_title")]
        for order in page.rows:
            moment = parse_moment(order.moment)
            date = moment.strftime("%d.%m.%Y") if moment else ""
            total = format_money(order.sum, currency, lang) if order.sum is not None else ""
            lines.append(f"• {order.name} ({date}) {total} | {localize_status(order.state_name, lang)}")
        return AgentResponse("\n".join(lines), reply_keyboard=keyboards.main_menu(user))
