"""Order orchestrator — moves a draft from cart to ERP customer order.

The draft's conversational state is never stored; every step re-derives
it from the draft's fields (``derive_state``), so a flow interrupted
while waiting for an address resumes where it stopped.

Two entry points share this class: the bot (one step per callback or
message, explicit confirm button) and the storefront HTTP API
(``place_from_storefront``, which submits immediately when it has
everything and otherwise hands the user over to the bot).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from order_bridge.config import settings
from order_bridge.database.repository import (
    DraftLine,
    DraftOrderRepository,
    ReminderRepository,
)
from order_bridge.domain.address import AddressExtra
from order_bridge.domain.delivery import DeliveryMethod
from order_bridge.domain.draft_state import DraftState, derive_state, is_confirmable
from order_bridge.domain.geo import GeoPoint
from order_bridge.domain.money import to_major, to_minor
from order_bridge.exceptions import (
    CounterpartyDeletedError,
    DraftIncompleteError,
    ErpError,
    OrderSubmissionError,
)
from order_bridge.models import DraftOrder, User
from order_bridge.services import keyboards
from order_bridge.services.erp_client import (
    CreatedOrder,
    ErpGateway,
    NewOrderLine,
    OrderExtras,
    find_attribute,
)
from order_bridge.services.i18n import format_money, translate
from order_bridge.services.registration import RegistrationService
from order_bridge.services.telegram import TelegramChannel

logger = logging.getLogger(__name__)


@dataclass
class CartItem:
    """A product id and quantity as sent by the storefront."""

    product_id: str
    quantity: float


@dataclass
class PlacementResult:
    draft_id: int | None = None
    order_name: str | None = None
    awaiting_location: bool = False


def _utcnow() -> datetime:
    return datetime.now(UTC)


def format_draft_summary(draft: DraftOrder, lang: str, currency: str | None) -> str:
    """Plain-text summary shown above the confirm / cancel buttons."""
    lines = [translate(lang, "order_summary_title")]
    for item in draft.items:
        line_total = format_money(to_major(item.line_total_minor), currency, lang)
        lines.append(f"• {item.name} ×{item.quantity} — {line_total}")

    total = format_money(to_major(draft.total_minor), currency, lang)
    lines.append(f"\n💰 {translate(lang, 'label_total')}: {total}")
    if draft.delivery_method:
        lines.append(f"🚚 {translate(lang, 'label_delivery')}: {translate(lang, draft.delivery_method)}")
    if draft.address_text:
        lines.append(f"📍 {translate(lang, 'label_address')}: {draft.address_text}")
    if draft.address_extra:
        extra = AddressExtra.parse(draft.address_extra)
        for name, value in extra.labelled():
            label = translate(lang, f"label_{name}") if name else None
            lines.append(f"   {label}: {value}" if label else f"   {value}")
    if draft.location_lat is not None and draft.location_lng is not None:
        lines.append(f"📍 {translate(lang, 'label_location')}: {draft.location_lat}, {draft.location_lng}")
    if draft.order_note:
        lines.append(f"📝 {translate(lang, 'label_note')}: {draft.order_note}")
    lines.append(f"\n{translate(lang, 'confirm_question')}")
    return "\n".join(lines)


class OrderOrchestrator:
    def __init__(
        self,
        db_session: AsyncSession,
        gateway: ErpGateway,
        channel: TelegramChannel,
        *,
        reminder_days: Sequence[int] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db = db_session
        self._drafts = DraftOrderRepository(db_session)
        self._reminders = ReminderRepository(db_session)
        self._registration = RegistrationService(db_session, gateway, channel)
        self._gateway = gateway
        self._channel = channel
        self._reminder_days = list(settings.reminder_days if reminder_days is None else reminder_days)
        self._clock = clock

    # ── Reading ──────────────────────────────────────────

    async def get_draft(self, user: User) -> DraftOrder | None:
        return await self._drafts.get_for_user(user.id)

    async def state(self, user: User) -> DraftState:
        return derive_state(await self.get_draft(user))

    # ── Draft steps ──────────────────────────────────────

    async def _snapshot(self, items: Sequence[CartItem]) -> list[DraftLine]:
        if not items:
            raise DraftIncompleteError("cart_empty")
        products = {
            product.id: product
            for product in await self._gateway.get_products([item.product_id for item in items])
        }
        lines = []
        for item in items:
            product = products.get(item.product_id)
            if product is None:
                continue
            lines.append(
                DraftLine(
                    product_id=product.id,
                    name=product.name,
                    price=to_minor(product.price),
                    quantity=max(1, round(item.quantity)),
                )
            )
        if not lines:
            raise DraftIncompleteError("no_valid_items")
        return lines

    async def save_draft(
        self,
        user: User,
        items: Sequence[CartItem],
        *,
        delivery_method: DeliveryMethod | None = None,
        note: str | None = None,
        location: GeoPoint | None = None,
        address_text: str | None = None,
        address_extra: AddressExtra | None = None,
    ) -> DraftOrder:
        """Create or wholly replace the user's draft.

        Item names and prices are snapshotted from the catalog now, so
        later catalog edits do not change an open cart.
        """
        lines = await self._snapshot(items)
        extra = address_extra.encode() if address_extra and not address_extra.is_empty else None
        draft = await self._drafts.replace(
            user.id,
            lines,
            delivery_method=delivery_method.value if delivery_method else None,
            order_note=(note or "").strip() or None,
            address_text=(address_text or "").strip() or None,
            address_extra=extra,
            location_lat=location.lat if location else None,
            location_lng=location.lng if location else None,
        )
        logger.info("Draft saved for user %s: %d lines", user.telegram_id, len(lines))
        return draft

    async def _require_draft(self, user: User) -> DraftOrder:
        draft = await self.get_draft(user)
        if derive_state(draft) is DraftState.EMPTY:
            raise DraftIncompleteError("cart_empty")
        return draft

    async def choose_delivery(self, user: User, method: DeliveryMethod) -> DraftOrder:
        """Set the delivery method; any address collected earlier is dropped."""
        draft = await self._require_draft(user)
        return await self._drafts.update(
            draft,
            delivery_method=method.value,
            address_text=None,
            location_lat=None,
            location_lng=None,
        )

    async def set_address_text(self, user: User, text: str) -> DraftOrder | None:
        """Record a typed address; ``None`` unless the draft awaits one.

        A typed ``lat,lng`` pair or a pasted map link also fills the
        coordinates.
        """
        draft = await self.get_draft(user)
        if derive_state(draft) is not DraftState.AWAITING_ADDRESS:
            return None
        fields: dict[str, object] = {"address_text": text.strip()}
        point = GeoPoint.parse(text)
        if point is not None:
            fields.update(location_lat=point.lat, location_lng=point.lng)
        return await self._drafts.update(draft, **fields)

    async def set_location(self, user: User, point: GeoPoint) -> DraftOrder | None:
        """Record shared coordinates on a delivery draft."""
        draft = await self.get_draft(user)
        if draft is None or draft.delivery_method != DeliveryMethod.DELIVERY.value:
            return None
        return await self._drafts.update(draft, location_lat=point.lat, location_lng=point.lng)

    async def use_saved_address(self, user: User) -> DraftOrder | None:
        draft = await self.get_draft(user)
        if not user.default_address or derive_state(draft) is not DraftState.AWAITING_ADDRESS:
            return None
        point = GeoPoint.parse(user.default_address)
        if point is None and user.counterparty_id and settings.erp_counterparty_location_attr:
            point = await self._counterparty_location(user.counterparty_id)
        fields: dict[str, object] = {"address_text": user.default_address}
        if point is not None:
            fields.update(location_lat=point.lat, location_lng=point.lng)
        return await self._drafts.update(draft, **fields)

    async def _counterparty_location(self, counterparty_id: str) -> GeoPoint | None:
        try:
            counterparty = await self._gateway.get_counterparty(counterparty_id)
        except ErpError:
            logger.warning("Saved location of counterparty %s unavailable", counterparty_id)
            return None
        attribute = find_attribute(counterparty.attributes, [settings.erp_counterparty_location_attr])
        return GeoPoint.parse(attribute.text) if attribute else None

    async def cancel(self, user: User) -> bool:
        cancelled = await self._drafts.delete_for_user(user.id)
        if cancelled:
            logger.info("Draft cancelled by user %s", user.telegram_id)
        return cancelled

    async def discard_if_awaiting_address(self, user: User) -> bool:
        """Drop a draft stuck waiting for an address (menu or command escape)."""
        if await self.state(user) is DraftState.AWAITING_ADDRESS:
            return await self.cancel(user)
        return False

    # ── Submission ───────────────────────────────────────

    async def submit(self, user: User) -> CreatedOrder:
        """Create the ERP order for the user's confirmable draft.

        Raises
        ------
        DraftIncompleteError
            The draft is not confirmable yet; ``reason`` names the gap.
        CounterpartyDeletedError
            The user's counterparty is gone; registration was reset.
        OrderSubmissionError
            The ERP rejected or never answered; the draft is kept.
        """
        draft = await self.get_draft(user)
        state = derive_state(draft)
        if not is_confirmable(state):
            reason = {
                DraftState.EMPTY: "cart_empty",
                DraftState.ITEMS_SELECTED: "choose_delivery",
                DraftState.AWAITING_ADDRESS: "needs_address",
            }[state]
            raise DraftIncompleteError(reason)

        try:
            counterparty_id = await self._registration.get_or_create_customer(user)
        except CounterpartyDeletedError:
            await self._registration.reset(user)
            raise
        except ErpError as exc:
            raise OrderSubmissionError(f"Counterparty lookup failed: {exc}") from exc

        location = None
        if draft.location_lat is not None and draft.location_lng is not None:
            location = GeoPoint(draft.location_lat, draft.location_lng)
        method = DeliveryMethod(draft.delivery_method)
        lines = [
            NewOrderLine(product_id=item.product_id, quantity=item.quantity, price=to_major(item.price))
            for item in draft.items
        ]
        extras = OrderExtras(
            delivery_method=method,
            note=draft.order_note,
            address_text=draft.address_text,
            address_extra=draft.address_extra,
            location=location,
        )

        try:
            order = await self._gateway.create_customer_order(counterparty_id, lines, extras)
        except ErpError as exc:
            logger.exception("Order submission failed for user %s", user.telegram_id)
            raise OrderSubmissionError(str(exc)) from exc

        await self._after_submit(user, draft, method, location)
        return order

    async def _after_submit(
        self,
        user: User,
        draft: DraftOrder,
        method: DeliveryMethod,
        location: GeoPoint | None,
    ) -> None:
        now = self._clock()
        address_text, address_extra = draft.address_text, draft.address_extra
        await self._drafts.delete_for_user(user.id)

        if method is DeliveryMethod.DELIVERY:
            if location is not None:
                user.default_address = location.encode()
            elif address_text:
                user.default_address = address_text
            try:
                await self._gateway.update_counterparty_address(
                    user.counterparty_id,
                    location=location,
                    address_text=address_text,
                    address_extra=address_extra,
                )
            except ErpError:
                logger.warning("Could not store address on counterparty %s", user.counterparty_id)

        due_times = [now + timedelta(days=days) for days in self._reminder_days]
        await self._reminders.replace_for_user(user.id, due_times)
        user.last_order_at = now
        await self._db.flush()

        await self._channel.send_text(
            user.telegram_id,
            translate(user.language, "order_received"),
            reply_keyboard=keyboards.main_menu(user),
        )

    # ── Prompts pushed through the bot ───────────────────

    async def send_delivery_prompt(self, user: User) -> None:
        await self._channel.send_text(
            user.telegram_id,
            translate(user.language, "draft_ready"),
            inline_keyboard=keyboards.delivery_choice(user.language),
        )

    async def send_address_request(self, user: User) -> None:
        key = "send_address_with_saved" if user.default_address else "send_address"
        await self._channel.send_text(
            user.telegram_id,
            translate(user.language, key),
            reply_keyboard=keyboards.address_request(user.language, user.default_address),
        )

    async def send_confirmation(self, user: User) -> None:
        draft = await self.get_draft(user)
        if derive_state(draft) is DraftState.EMPTY:
            await self._channel.send_text(user.telegram_id, translate(user.language, "cart_empty"))
            return
        currency = await self._gateway.safe_base_currency()
        await self._channel.send_text(
            user.telegram_id,
            format_draft_summary(draft, user.language, currency),
            inline_keyboard=keyboards.confirm_order(user.language),
        )

    async def send_next_prompt(self, user: User) -> None:
        """Ask for whatever the draft is missing."""
        state = await self.state(user)
        if state is DraftState.ITEMS_SELECTED:
            await self.send_delivery_prompt(user)
        elif state is DraftState.AWAITING_ADDRESS:
            await self.send_address_request(user)
        elif is_confirmable(state):
            await self.send_confirmation(user)
        else:
            await self._channel.send_text(user.telegram_id, translate(user.language, "cart_empty"))

    # ── Storefront entry point ───────────────────────────

    async def place_from_storefront(
        self,
        user: User,
        items: Sequence[CartItem],
        *,
        delivery_method: DeliveryMethod | None = None,
        note: str | None = None,
        location: GeoPoint | None = None,
        address_text: str | None = None,
        address_extra: AddressExtra | None = None,
    ) -> PlacementResult:
        """Save the cart and submit it when nothing else is needed.

        Pickup, or delivery with coordinates, is submitted straight away
        for a user with a phone number.  Delivery without coordinates
        continues in the bot with a location request; a cart without a
        delivery method continues with the delivery-method prompt.
        A user without a phone number is asked to register first; the
        saved draft resumes after the contact is shared.  A failed
        submission leaves the saved draft for the bot flow.

        Address text without coordinates is not kept on a delivery draft:
        the draft must wait for the address the customer sends in the bot.
        """
        deferred = delivery_method is DeliveryMethod.DELIVERY and location is None
        draft = await self.save_draft(
            user,
            items,
            delivery_method=delivery_method,
            note=note,
            location=location,
            address_text=None if deferred else address_text,
            address_extra=address_extra,
        )
        result = PlacementResult(draft_id=draft.id)

        if not user.phone_number:
            await self._channel.send_text(
                user.telegram_id,
                translate(user.language, "register_prompt"),
                reply_keyboard=keyboards.contact_request(user.language),
            )
            return result

        ready = delivery_method is DeliveryMethod.PICKUP or (
            delivery_method is DeliveryMethod.DELIVERY and location is not None
        )
        if ready:
            try:
                order = await self.submit(user)
            except OrderSubmissionError:
                await self._channel.send_text(user.telegram_id, translate(user.language, "order_failed"))
                return result
            return PlacementResult(order_name=order.name)

        if deferred:
            await self.send_address_request(user)
            result.awaiting_location = True
        elif delivery_method is None:
            await self.send_delivery_prompt(user)
        return result
