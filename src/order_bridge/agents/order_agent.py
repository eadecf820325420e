"""Order agent — drives a saved cart through delivery, address and confirmation."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from order_bridge.agents.base import AgentResponse, BaseAgent, Incoming
from order_bridge.domain.delivery import DeliveryMethod
from order_bridge.domain.draft_state import DraftState
from order_bridge.domain.geo import GeoPoint
from order_bridge.exceptions import (
    CounterpartyDeletedError,
    DraftIncompleteError,
    ErpError,
    ForeignShipmentError,
    OrderSubmissionError,
)
from order_bridge.models import User
from order_bridge.services import keyboards
from order_bridge.services.erp_client import ErpGateway
from order_bridge.services.i18n import translate
from order_bridge.services.order_orchestrator import OrderOrchestrator
from order_bridge.services.session_manager import Session
from order_bridge.services.shipment_receipts import ShipmentReceipts
from order_bridge.services.telegram import TelegramChannel

logger = logging.getLogger(__name__)

CALLBACK_PREFIXES = ("delivery:", "addr:", "order:", "demand:pdf:")


class OrderAgent(BaseAgent):
    """Bot side of the order flow.

    The cart itself is built in the storefront; this agent collects what
    the storefront left open and submits the order on confirmation.  It
    also serves shipment receipts on request and is the fallback for any
    plain text a registered user sends.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        gateway: ErpGateway,
        channel: TelegramChannel,
        *,
        orchestrator: OrderOrchestrator | None = None,
        receipts: ShipmentReceipts | None = None,
    ) -> None:
        self._channel = channel
        self._orders = orchestrator or OrderOrchestrator(db_session, gateway, channel)
        self._receipts = receipts or ShipmentReceipts(gateway, channel)

    @property
    def name(self) -> str:
        return "OrderAgent"

    def accepts(self, incoming: Incoming) -> bool:
        if incoming.callback_data:
            return incoming.callback_data.startswith(CALLBACK_PREFIXES)
        return incoming.has_location or bool(incoming.text and not incoming.command)

    async def handle(self, incoming: Incoming, user: User, session: Session) -> AgentResponse:
        data = incoming.callback_data
        if data:
            if data.startswith("delivery:"):
                return await self._choose_delivery(user, data.split(":", 1)[1])
            if data == "addr:useSaved":
                return await self._use_saved(user)
            if data == "order:confirm":
                return await self._confirm(user)
            if data == "order:cancel":
                return await self._cancel(user)
            if data.startswith("demand:pdf:"):
                return await self._receipt(user, data.removeprefix("demand:pdf:"))
            logger.warning("Unhandled callback %r from %s", data, user.telegram_id)
            return AgentResponse(None)

        if incoming.has_location:
            return await self._location(user, GeoPoint(incoming.latitude, incoming.longitude))
        return await self._text(user, incoming.text or "")

    # ── Private helpers ──────────────────────────────────

    async def _choose_delivery(self, user: User, value: str) -> AgentResponse:
        try:
            method = DeliveryMethod(value)
        except ValueError:
            logger.warning("Unknown delivery method %r from %s", value, user.telegram_id)
            return AgentResponse(None)
        try:
            await self._orders.choose_delivery(user, method)
        except DraftIncompleteError as exc:
            return AgentResponse(translate(user.language, exc.reason))
        await self._orders.send_next_prompt(user)
        return AgentResponse(None)

    async def _use_saved(self, user: User) -> AgentResponse:
        draft = await self._orders.use_saved_address(user)
        if draft is None:
            await self._orders.send_next_prompt(user)
            return AgentResponse(None)
        return await self._address_recorded(user)

    async def _location(self, user: User, point: GeoPoint) -> AgentResponse:
        draft = await self._orders.set_location(user, point)
        if draft is None:
            return AgentResponse(translate(user.language, "menu_hint"), reply_keyboard=keyboards.main_menu(user))
        return await self._address_recorded(user)

    async def _text(self, user: User, text: str) -> AgentResponse:
        state = await self._orders.state(user)
        if state is not DraftState.AWAITING_ADDRESS:
            return AgentResponse(translate(user.language, "menu_hint"), reply_keyboard=keyboards.main_menu(user))

        if user.default_address and text.strip() == keyboards.saved_address_label(
            user.language, user.default_address
        ):
            return await self._use_saved(user)
        await self._orders.set_address_text(user, text)
        return await self._address_recorded(user)

    async def _address_recorded(self, user: User) -> AgentResponse:
        await self._channel.send_text(
            user.telegram_id,
            translate(user.language, "location_saved"),
            reply_keyboard=keyboards.main_menu(user),
        )
        await self._orders.send_confirmation(user)
        return AgentResponse(None)

    async def _confirm(self, user: User) -> AgentResponse:
        try:
            order = await self._orders.submit(user)
        except DraftIncompleteError as exc:
            if exc.reason == "not_registered":
                return AgentResponse(
                    translate(user.language, "register_prompt"),
                    reply_keyboard=keyboards.contact_request(user.language),
                )
            await self._orders.send_next_prompt(user)
            return AgentResponse(None, callback_notice=translate(user.language, exc.reason))
        except CounterpartyDeletedError:
            # The reset already told the user to register again.
            return AgentResponse(None)
        except OrderSubmissionError:
            return AgentResponse(translate(user.language, "order_failed"))
        logger.info("User %s confirmed order %s", user.telegram_id, order.name)
        return AgentResponse(None)

    async def _cancel(self, user: User) -> AgentResponse:
        await self._orders.cancel(user)
        return AgentResponse(
            translate(user.language, "order_cancelled"),
            reply_keyboard=keyboards.main_menu(user),
        )

    async def _receipt(self, user: User, shipment_id: str) -> AgentResponse:
        try:
            await self._receipts.send_on_demand(user, shipment_id)
        except ForeignShipmentError:
            logger.warning("User %s asked for foreign shipment %s", user.telegram_id, shipment_id)
            return AgentResponse(translate(user.language, "pdf_unavailable"))
        except ErpError:
            logger.exception("Receipt for shipment %s failed", shipment_id)
            return AgentResponse(translate(user.language, "pdf_unavailable"))
        return AgentResponse(None)
