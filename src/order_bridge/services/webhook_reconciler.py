"""Webhook reconciler — turns ERP change notifications into user messages.

The ERP reports every API-level mutation, so one business event (a
shipment being issued) arrives as several notifications: the shipment
create, plus an update of the parent order whose ``demands`` changed,
sometimes in a later delivery.  The reconciler recognizes the side-effect
updates and drops them, so a customer gets one message per real event.

Suppression, checked in this order:

1. field sets known to be side effects (``{applicable}`` alone, payment
   linkage, and for orders the shipment linkage);
2. a short-lived ``shipment_created:<counterparty>`` marker in the shared
   ``TTLCache``, which spans webhook deliveries;
3. the counterparties that had a shipment created earlier in this batch;
4. documents whose ``applicable`` flag is false once fetched.

A missed suppression costs a duplicate message, never a lost one.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from order_bridge.config import settings
from order_bridge.database.repository import UserRepository
from order_bridge.domain.delivery import DeliveryMethod
from order_bridge.domain.geo import GeoPoint
from order_bridge.domain.money import ZERO
from order_bridge.domain.status import localize_status
from order_bridge.exceptions import ErpError
from order_bridge.models import User
from order_bridge.services.admin_notifier import AdminNotifier
from order_bridge.services.erp_client import (
    ErpGateway,
    ErpOrder,
    ErpPosition,
    id_from_href,
    type_from_href,
)
from order_bridge.services.i18n import format_money, format_quantity, translate
from order_bridge.services.order_fields import OrderFieldReader
from order_bridge.services.reconciliation import order_total
from order_bridge.services.registration import RegistrationService
from order_bridge.services.shipment_receipts import ShipmentReceipts
from order_bridge.services.telegram import TelegramChannel, callback_button, url_button
from order_bridge.services.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

VOID_FIELDS = frozenset({"applicable"})
PAYMENT_LINK_FIELDS = frozenset({"payments", "payedsum"})
SHIPMENT_LINK_FIELDS = frozenset({"demands", "shipments"})
PAYMENT_TYPES = ("paymentin", "cashin")
MAX_TABLE_NAME = 40


# ── Event parsing ────────────────────────────────────────


@dataclass(frozen=True)
class WebhookEvent:
    entity_type: str
    action: str
    entity_id: str
    href: str | None = None
    updated_fields: frozenset[str] = frozenset()


@dataclass
class BatchResult:
    received: int = 0
    handled: int = 0
    skipped: int = 0
    failed: int = 0


@dataclass
class _BatchState:
    shipment_customers: set[str] = field(default_factory=set)


def extract_events(payload: Any) -> list[Any]:
    """Accept ``{"events": [...]}``, a bare list, or a single event object."""
    if isinstance(payload, dict) and isinstance(payload.get("events"), list):
        return payload["events"]
    if isinstance(payload, list):
        return payload
    return [payload]


def parse_event(raw: Any) -> WebhookEvent | None:
    """Normalize one raw notification; ``None`` if it cannot be resolved."""
    if not isinstance(raw, dict):
        return None
    meta = raw.get("meta") if isinstance(raw.get("meta"), dict) else {}
    entity = raw.get("entity") if isinstance(raw.get("entity"), dict) else {}
    entity_meta = entity.get("meta") if isinstance(entity.get("meta"), dict) else {}
    href = meta.get("href") or raw.get("href") or entity_meta.get("href")

    entity_type = meta.get("type") or type_from_href(href)
    action = str(raw.get("action") or raw.get("eventType") or "").upper()
    if not entity_type or not action:
        return None

    entity_id = (
        raw.get("entityId")
        or raw.get("orderId")
        or id_from_href(href, f"/entity/{entity_type}/")
        or id_from_href(href)
    )
    if not entity_id:
        return None

    fields = raw.get("updatedFields")
    updated = frozenset(str(name).lower() for name in fields) if isinstance(fields, list) else frozenset()
    return WebhookEvent(
        entity_type=entity_type,
        action=action,
        entity_id=str(entity_id),
        href=href,
        updated_fields=updated,
    )


def is_side_effect_update(event: WebhookEvent) -> bool:
    """Update notifications whose changed fields never mean a user-visible change."""
    if event.action != "UPDATE":
        return False
    fields = event.updated_fields
    if fields == VOID_FIELDS or fields & PAYMENT_LINK_FIELDS:
        return True
    return event.entity_type == "customerorder" and bool(fields & SHIPMENT_LINK_FIELDS)


def suppression_key(counterparty_id: str) -> str:
    return f"shipment_created:{counterparty_id}"


# ── Message helpers ──────────────────────────────────────


def format_positions_table(positions: list[ErpPosition]) -> str:
    """Monospace name / quantity rows, HTML-escaped, without the ``<pre>`` tags."""
    width = min(MAX_TABLE_NAME, max((len(p.name) for p in positions), default=0))
    rows = []
    for position in positions:
        name = position.name
        if len(name) > width:
            name = name[: max(0, width - 3)] + "..."
        rows.append(f"{html.escape(name.ljust(width))}  x{format_quantity(position.quantity)}")
    return "\n".join(rows)


def delivery_label(method: DeliveryMethod | None, lang: str) -> str:
    if method is None:
        return translate(lang, "delivery_unknown")
    return translate(lang, f"delivery_{method.value}")


def _item_lines(positions: list[ErpPosition]) -> str:
    return "\n".join(f"  • {p.name}: {format_quantity(p.quantity)}" for p in positions)


class WebhookReconciler:
    def __init__(
        self,
        db_session: AsyncSession,
        gateway: ErpGateway,
        channel: TelegramChannel,
        cache: TTLCache,
        *,
        fields: OrderFieldReader | None = None,
        receipts: ShipmentReceipts | None = None,
        admin_ids: list[str] | None = None,
        suppression_seconds: int | None = None,
    ) -> None:
        self._users = UserRepository(db_session)
        self._gateway = gateway
        self._channel = channel
        self._cache = cache
        self._fields = fields or OrderFieldReader()
        self._receipts = receipts or ShipmentReceipts(gateway, channel)
        self._admins = AdminNotifier(db_session, channel, admin_ids)
        self._registration = RegistrationService(db_session, gateway, channel)
        self._suppression_seconds = (
            settings.shipment_suppression_seconds
            if suppression_seconds is None
            else suppression_seconds
        )

    async def process_batch(self, payload: Any) -> BatchResult:
        """Handle every event of one webhook delivery, in order.

        Each event is isolated: a failure is logged and counted, and the
        rest of the batch still runs.
        """
        raw_events = extract_events(payload)
        result = BatchResult(received=len(raw_events))
        state = _BatchState()

        for raw in raw_events:
            event = parse_event(raw)
            if event is None:
                logger.warning("Unresolvable webhook event skipped: %s", str(raw)[:200])
                result.skipped += 1
                continue
            try:
                handled = await self._dispatch(event, state)
            except Exception:
                logger.exception(
                    "Webhook event %s %s %s failed", event.entity_type, event.action, event.entity_id
                )
                result.failed += 1
                continue
            if handled:
                result.handled += 1
            else:
                result.skipped += 1

        logger.info(
            "Webhook batch: %d received, %d handled, %d skipped, %d failed",
            result.received, result.handled, result.skipped, result.failed,
        )
        return result

    async def _dispatch(self, event: WebhookEvent, state: _BatchState) -> bool:
        if event.entity_type == "counterparty":
            if event.action == "DELETE":
                return await self._counterparty_deleted(event)
            return False

        if is_side_effect_update(event):
            logger.debug("Side-effect update of %s %s skipped", event.entity_type, event.entity_id)
            return False

        if event.entity_type == "demand":
            if event.action == "DELETE":
                return False
            return await self._shipment(event, state)
        if event.entity_type in PAYMENT_TYPES:
            if event.action != "CREATE":
                return False
            return await self._payment(event)
        if event.entity_type == "customerorder":
            if event.action == "DELETE":
                return False
            return await self._order(event, state)

        logger.debug("Ignoring webhook for entity type %s", event.entity_type)
        return False

    async def _user_for(self, counterparty_id: str | None) -> User | None:
        if not counterparty_id:
            return None
        return await self._users.find_by_counterparty(counterparty_id)

    # ── Counterparties ───────────────────────────────────

    async def _counterparty_deleted(self, event: WebhookEvent) -> bool:
        user = await self._user_for(event.entity_id)
        if user is None:
            return False
        logger.info("Counterparty %s deleted in ERP, resetting user %s", event.entity_id, user.telegram_id)
        await self._registration.reset(user, notify=True)
        return True

    # ── Customer orders ──────────────────────────────────

    async def _order(self, event: WebhookEvent, state: _BatchState) -> bool:
        order = await self._gateway.get_customer_order(event.entity_id)
        counterparty_id = order.agent_id

        if event.action == "UPDATE" and counterparty_id:
            if self._cache.contains(suppression_key(counterparty_id)):
                logger.info("Order %s update suppressed by recent shipment", order.name)
                return False
            if counterparty_id in state.shipment_customers:
                logger.info("Order %s update suppressed by shipment in batch", order.name)
                return False
        if not order.applicable:
            return False

        user = await self._user_for(counterparty_id)
        if user is None:
            return False

        try:
            positions = await self._gateway.list_order_positions(order.id)
        except ErpError:
            logger.warning("Positions of order %s unavailable", order.name)
            positions = []
        currency = await self._gateway.safe_base_currency()

        # The stated sum can still be zero right after creation; the line
        # total stands in until the ERP fills it.
        computed = order_total(positions, order.sum)
        effective_total = computed if computed > 0 else None

        if event.action == "CREATE":
            await self._order_created(user, order, positions, effective_total, currency)
        else:
            await self._order_updated(user, order, effective_total, currency)
        return True

    def _address_lines(self, order: ErpOrder, lang: str, label_key: str) -> list[str]:
        lines = []
        address = self._fields.address_text(order)
        if address:
            lines.append(f"{translate(lang, label_key)}: {address}")
        return lines

    def _extra_lines(self, order: ErpOrder, lang: str) -> list[str]:
        extra = self._fields.address_extra(order.attributes)
        if extra is None:
            return []
        return [
            f"{translate(lang, 'label_' + name)}: {value}" if name else value
            for name, value in extra.labelled()
        ]

    def _map_point(self, order: ErpOrder) -> GeoPoint | None:
        return self._fields.location(order.attributes)

    def _map_keyboard(self, order: ErpOrder, lang: str) -> list[list[dict]] | None:
        point = self._map_point(order)
        if point is None:
            return None
        return [[url_button(translate(lang, "map_button"), point.map_link())]]

    async def _order_created(
        self,
        user: User,
        order: ErpOrder,
        positions: list[ErpPosition],
        effective_total: Decimal | None,
        currency: str | None,
    ) -> None:
        lang = user.language
        method = self._fields.delivery_method(order.attributes)

        address_lines = self._address_lines(order, lang, "label_address") + self._extra_lines(order, lang)
        parts = [
            translate(lang, "order_created", name=order.name),
            "\n" + delivery_label(method, lang),
        ]
        if address_lines:
            parts.append("\n\n" + "\n".join(address_lines))
        total_text = format_money(effective_total or ZERO, currency, lang)
        parts.append(("\n\n" if address_lines else "\n") + f"{translate(lang, 'label_total')}: {total_text}")
        due = order.sum or ZERO
        if due > 0:
            parts.append(f"\n⚠️ {translate(lang, 'label_due')}: {format_money(due, currency, lang)}")

        text = html.escape("".join(parts), quote=False)
        if positions:
            table = format_positions_table(positions)
            text += f"\n\n<pre>{html.escape(translate(lang, 'label_items'))}:\n{table}</pre>"

        await self._channel.send_text(
            user.telegram_id,
            text,
            parse_mode="HTML",
            inline_keyboard=self._map_keyboard(order, lang),
        )

        def compose(admin_lang: str) -> str:
            client = order.agent_name or user.display_name
            lines = [
                translate(admin_lang, "admin_new_order", name=order.name),
                f"{translate(admin_lang, 'label_client')}: {client}",
                f"{translate(admin_lang, 'label_phone')}: {user.phone_number or ''}",
                f"{translate(admin_lang, 'label_delivery')}: {delivery_label(method, admin_lang)}",
                f"{translate(admin_lang, 'label_total')}: "
                f"{format_money(effective_total or ZERO, currency, admin_lang)}",
            ]
            if positions:
                lines.append(_item_lines(positions))
            return "\n".join(lines)

        await self._admins.notify("new_order", compose, location=self._map_point(order))

    async def _order_updated(
        self,
        user: User,
        order: ErpOrder,
        effective_total: Decimal | None,
        currency: str | None,
    ) -> None:
        lang = user.language
        sections = []
        if order.state_name:
            sections.append(f"{translate(lang, 'label_status')}: {localize_status(order.state_name, lang)}")
        method = self._fields.delivery_method(order.attributes)
        if method is not None:
            sections.append(f"{translate(lang, 'label_delivery_type')}: {delivery_label(method, lang)}")

        address_lines = self._address_lines(order, lang, "label_delivery_address")
        driver = self._fields.driver_info(order.attributes)
        if driver is not None and driver.model:
            address_lines.append(f"{translate(lang, 'label_driver_model')}: {driver.model}")
        if driver is not None and driver.number:
            address_lines.append(f"{translate(lang, 'label_driver_number')}: {driver.number}")
        address_lines += self._extra_lines(order, lang)
        if address_lines:
            sections.append("\n".join(address_lines))

        paid = order.payed_sum or ZERO
        due = max(ZERO, (order.sum or ZERO) - paid)
        if paid > 0:
            sections.append(f"💳 {translate(lang, 'label_paid')}: {format_money(paid, currency, lang)}")
        if due > 0:
            sections.append(f"⚠️ {translate(lang, 'label_due')}: {format_money(due, currency, lang)}")

        text = translate(lang, "order_updated", name=order.name)
        if sections:
            text += "\n\n" + "\n\n".join(sections)
        await self._channel.send_text(
            user.telegram_id, text, inline_keyboard=self._map_keyboard(order, lang)
        )

        def compose(admin_lang: str) -> str:
            client = order.agent_name or user.display_name
            return "\n".join(
                [
                    translate(admin_lang, "admin_order_updated", name=order.name),
                    f"{translate(admin_lang, 'label_status')}: "
                    f"{localize_status(order.state_name, admin_lang)}",
                    f"{translate(admin_lang, 'label_client')}: {client}",
                    f"{translate(admin_lang, 'label_phone')}: {user.phone_number or ''}",
                    f"{translate(admin_lang, 'label_total')}: "
                    f"{format_money(effective_total or ZERO, currency, admin_lang)}",
                ]
            )

        await self._admins.notify("order_update", compose)

    # ── Shipments ────────────────────────────────────────

    async def _shipment(self, event: WebhookEvent, state: _BatchState) -> bool:
        shipment = await self._gateway.get_demand(event.entity_id)
        if not shipment.agent_id or not shipment.applicable:
            return False
        user = await self._user_for(shipment.agent_id)
        if user is None:
            return False

        try:
            positions = await self._gateway.list_demand_positions(shipment.id)
        except ErpError:
            logger.warning("Positions of shipment %s unavailable", shipment.name)
            positions = []
        currency = await self._gateway.safe_base_currency()
        lang = user.language
        status = localize_status(shipment.state_name, lang)
        total_text = format_money(shipment.sum, currency, lang) if shipment.sum is not None else None

        if event.action != "CREATE":
            details = []
            if "state" in event.updated_fields:
                details.append(f"{translate(lang, 'label_new_status')}: {status}")
            if "sum" in event.updated_fields and total_text:
                details.append(f"{translate(lang, 'label_total')}: {total_text}")
            text = "\n".join([translate(lang, "shipment_updated", name=shipment.name), *details])
            await self._channel.send_text(
                user.telegram_id,
                text,
                inline_keyboard=[[callback_button(translate(lang, "pdf_button"), f"demand:pdf:{shipment.id}")]],
            )
            return True

        state.shipment_customers.add(shipment.agent_id)
        self._cache.mark(suppression_key(shipment.agent_id), self._suppression_seconds)

        lines = [
            translate(lang, "shipment_created", name=shipment.name),
            f"{translate(lang, 'label_status')}: {status}",
        ]
        if total_text:
            lines.append(f"{translate(lang, 'label_total')}: {total_text}")
        await self._channel.send_text(user.telegram_id, "\n".join(lines))

        try:
            await self._receipts.send(user, shipment, positions, currency)
        except Exception:
            logger.exception("Receipt for shipment %s could not be delivered", shipment.name)

        def compose(admin_lang: str) -> str:
            client = shipment.agent_name or user.display_name
            admin_lines = [
                translate(admin_lang, "admin_new_shipment", name=shipment.name),
                f"{translate(admin_lang, 'label_client')}: {client}",
                f"{translate(admin_lang, 'label_phone')}: {user.phone_number or ''}",
                f"{translate(admin_lang, 'label_status')}: "
                f"{localize_status(shipment.state_name, admin_lang)}",
            ]
            if shipment.sum is not None:
                admin_lines.append(
                    f"{translate(admin_lang, 'label_total')}: "
                    f"{format_money(shipment.sum, currency, admin_lang)}"
                )
            if positions:
                admin_lines.append(_item_lines(positions))
            return "\n".join(admin_lines)

        await self._admins.notify("new_order", compose)
        return True

    # ── Payments ─────────────────────────────────────────

    async def _payment(self, event: WebhookEvent) -> bool:
        payment = await self._gateway.get_payment(event.entity_type, event.entity_id)
        user = await self._user_for(payment.agent_id)
        if user is None:
            return False

        currency = await self._gateway.safe_base_currency()
        try:
            balance = await self._gateway.get_balance(payment.agent_id)
        except ErpError:
            logger.warning("Balance for %s unavailable", payment.agent_id)
            balance = None

        def describe(lang: str) -> list[str]:
            kind = translate(lang, "payment_cash" if payment.is_cash else "payment_bank")
            lines = [f"{translate(lang, 'label_type')}: {kind}"]
            if payment.sum is not None:
                lines.append(f"{translate(lang, 'label_amount')}: {format_money(payment.sum, currency, lang)}")
            return lines

        lang = user.language
        lines = [translate(lang, "payment_received"), *describe(lang)]
        if balance is not None:
            lines.append(f"{translate(lang, 'label_balance')}: {format_money(balance, currency, lang)}")
        await self._channel.send_text(user.telegram_id, "\n".join(lines))

        def compose(admin_lang: str) -> str:
            return "\n".join(
                [
                    translate(admin_lang, "admin_new_payment"),
                    f"{translate(admin_lang, 'label_client')}: {user.display_name}",
                    f"{translate(admin_lang, 'label_phone')}: {user.phone_number or ''}",
                    *describe(admin_lang),
                ]
            )

        await self._admins.notify("payment", compose)
        return True
