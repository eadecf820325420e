"""Tests for the OrderOrchestrator — draft steps, submission and the storefront entry point."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from order_bridge.database.repository import ReminderRepository, ensure_utc
from order_bridge.domain.delivery import DeliveryMethod
from order_bridge.domain.draft_state import DraftState
from order_bridge.domain.geo import GeoPoint
from order_bridge.exceptions import (
    CounterpartyDeletedError,
    DraftIncompleteError,
    ErpError,
    ErpNotFoundError,
    OrderSubmissionError,
)
from order_bridge.models import User
from order_bridge.services.erp_client import CreatedOrder
from order_bridge.services.i18n import translate
from order_bridge.services.order_orchestrator import CartItem, OrderOrchestrator, format_draft_summary

from conftest import sent_texts

NOW = datetime(2024, 6, 3, 9, 0, tzinfo=UTC)
CART = [CartItem("p-a", 1), CartItem("p-b", 1)]


@pytest.fixture
def orchestrator(db_session, gateway, channel):
    return OrderOrchestrator(db_session, gateway, channel, reminder_days=[1, 2, 3, 6], clock=lambda: NOW)


# ──────────────────────────────────────────────────────────
# Test 1: pickup order end to end
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_pickup_submission(orchestrator, registered_user, gateway, channel, db_session):
    gateway.create_customer_order.return_value = CreatedOrder(id="o-1", name="00042")
    await orchestrator.save_draft(registered_user, CART, delivery_method=DeliveryMethod.PICKUP)

    draft = await orchestrator.get_draft(registered_user)
    assert draft.total_minor == 110000
    assert await orchestrator.state(registered_user) is DraftState.PICKUP_CHOSEN

    order = await orchestrator.submit(registered_user)

    assert order.name == "00042"
    counterparty_id, lines, extras = gateway.create_customer_order.await_args.args
    assert counterparty_id == "cp-1"
    assert [(line.product_id, line.quantity, line.price) for line in lines] == [
        ("p-a", 1, Decimal("1000.00")),
        ("p-b", 1, Decimal("100.00")),
    ]
    assert extras.delivery_method is DeliveryMethod.PICKUP
    assert await orchestrator.get_draft(registered_user) is None

    reminders = await ReminderRepository(db_session).list_for_user(registered_user.id)
    assert [ensure_utc(r.due_at) for r in reminders] == [
        NOW + timedelta(days=d) for d in (1, 2, 3, 6)
    ]
    assert registered_user.last_order_at == NOW
    assert translate("uz", "order_received") in sent_texts(channel)
    gateway.update_counterparty_address.assert_not_awaited()


# ──────────────────────────────────────────────────────────
# Test 2: delivery step by step, address saved on success
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_delivery_flow_saves_default_address(orchestrator, registered_user, gateway):
    gateway.create_customer_order.return_value = CreatedOrder(id="o-2", name="00043")
    await orchestrator.save_draft(registered_user, CART)
    assert await orchestrator.state(registered_user) is DraftState.ITEMS_SELECTED

    await orchestrator.choose_delivery(registered_user, DeliveryMethod.DELIVERY)
    assert await orchestrator.state(registered_user) is DraftState.AWAITING_ADDRESS
    with pytest.raises(DraftIncompleteError) as exc:
        await orchestrator.submit(registered_user)
    assert exc.value.reason == "needs_address"

    await orchestrator.set_location(registered_user, GeoPoint(41.3, 69.2))
    assert await orchestrator.state(registered_user) is DraftState.READY_TO_CONFIRM

    await orchestrator.submit(registered_user)

    assert registered_user.default_address == "41.3,69.2"
    kwargs = gateway.update_counterparty_address.await_args.kwargs
    assert kwargs["location"] == GeoPoint(41.3, 69.2)


@pytest.mark.asyncio
async def test_typed_address_with_coordinates(orchestrator, registered_user):
    await orchestrator.save_draft(registered_user, CART, delivery_method=DeliveryMethod.DELIVERY)

    draft = await orchestrator.set_address_text(registered_user, "41.31, 69.24")

    assert draft.location_lat == 41.31
    assert draft.location_lng == 69.24
    # not awaiting any more
    assert await orchestrator.set_address_text(registered_user, "again") is None


@pytest.mark.asyncio
async def test_use_saved_address(orchestrator, registered_user):
    registered_user.default_address = "Chilonzor 9, 14"
    await orchestrator.save_draft(registered_user, CART, delivery_method=DeliveryMethod.DELIVERY)

    draft = await orchestrator.use_saved_address(registered_user)

    assert draft.address_text == "Chilonzor 9, 14"
    assert await orchestrator.state(registered_user) is DraftState.READY_TO_CONFIRM


@pytest.mark.asyncio
async def test_choose_delivery_drops_earlier_address(orchestrator, registered_user):
    await orchestrator.save_draft(
        registered_user, CART, delivery_method=DeliveryMethod.DELIVERY, location=GeoPoint(41.3, 69.2)
    )
    draft = await orchestrator.choose_delivery(registered_user, DeliveryMethod.DELIVERY)
    assert draft.location_lat is None
    assert await orchestrator.state(registered_user) is DraftState.AWAITING_ADDRESS


# ──────────────────────────────────────────────────────────
# Test 3: failures
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_erp_failure_keeps_draft(orchestrator, registered_user, gateway, db_session):
    gateway.create_customer_order.side_effect = ErpError("timeout", 504)
    await orchestrator.save_draft(registered_user, CART, delivery_method=DeliveryMethod.PICKUP)

    with pytest.raises(OrderSubmissionError):
        await orchestrator.submit(registered_user)

    assert await orchestrator.get_draft(registered_user) is not None
    assert await ReminderRepository(db_session).list_for_user(registered_user.id) == []


@pytest.mark.asyncio
async def test_deleted_counterparty_resets_registration(orchestrator, registered_user, gateway, channel):
    gateway.get_counterparty.side_effect = ErpNotFoundError("gone")
    await orchestrator.save_draft(registered_user, CART, delivery_method=DeliveryMethod.PICKUP)

    with pytest.raises(CounterpartyDeletedError):
        await orchestrator.submit(registered_user)

    assert registered_user.phone_number is None
    assert registered_user.counterparty_id is None
    assert await orchestrator.get_draft(registered_user) is None
    gateway.create_customer_order.assert_not_awaited()
    assert translate("uz", "counterparty_deleted") in sent_texts(channel)


@pytest.mark.asyncio
async def test_unknown_products_rejected(orchestrator, registered_user, gateway):
    gateway.get_products.return_value = []
    with pytest.raises(DraftIncompleteError) as exc:
        await orchestrator.save_draft(registered_user, [CartItem("p-x", 1)])
    assert exc.value.reason == "no_valid_items"

    with pytest.raises(DraftIncompleteError) as exc:
        await orchestrator.save_draft(registered_user, [])
    assert exc.value.reason == "cart_empty"


@pytest.mark.asyncio
async def test_discard_only_when_awaiting_address(orchestrator, registered_user):
    await orchestrator.save_draft(registered_user, CART, delivery_method=DeliveryMethod.PICKUP)
    assert not await orchestrator.discard_if_awaiting_address(registered_user)

    await orchestrator.choose_delivery(registered_user, DeliveryMethod.DELIVERY)
    assert await orchestrator.discard_if_awaiting_address(registered_user)
    assert await orchestrator.get_draft(registered_user) is None


# ──────────────────────────────────────────────────────────
# Test 4: storefront placement
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_storefront_pickup_submits_immediately(orchestrator, registered_user, gateway):
    gateway.create_customer_order.return_value = CreatedOrder(id="o-3", name="00044")

    result = await orchestrator.place_from_storefront(
        registered_user, CART, delivery_method=DeliveryMethod.PICKUP
    )

    assert result.order_name == "00044"
    assert result.draft_id is None


@pytest.mark.asyncio
async def test_storefront_delivery_without_location_waits(orchestrator, registered_user, gateway, channel):
    result = await orchestrator.place_from_storefront(
        registered_user, CART, delivery_method=DeliveryMethod.DELIVERY
    )

    assert result.awaiting_location
    assert result.draft_id is not None
    gateway.create_customer_order.assert_not_awaited()
    assert translate("uz", "send_address") in sent_texts(channel)


@pytest.mark.asyncio
async def test_storefront_unregistered_user_asked_to_register(orchestrator, db_session, gateway, channel):
    guest = User(telegram_id="7007", language="ru")
    db_session.add(guest)
    await db_session.flush()

    result = await orchestrator.place_from_storefront(guest, CART, delivery_method=DeliveryMethod.PICKUP)

    assert result.draft_id is not None
    assert result.order_name is None
    assert sent_texts(channel) == [translate("ru", "register_prompt")]
    gateway.create_customer_order.assert_not_awaited()


@pytest.mark.asyncio
async def test_storefront_failure_keeps_draft(orchestrator, registered_user, gateway, channel):
    gateway.create_customer_order.side_effect = ErpError("boom", 500)

    result = await orchestrator.place_from_storefront(
        registered_user, CART, delivery_method=DeliveryMethod.PICKUP
    )

    assert result.order_name is None
    assert result.draft_id is not None
    assert translate("uz", "order_failed") in sent_texts(channel)


@pytest.mark.asyncio
async def test_summary_lists_items_and_total(orchestrator, registered_user):
    draft = await orchestrator.save_draft(
        registered_user, CART, delivery_method=DeliveryMethod.PICKUP, note="by 6pm"
    )
    text = format_draft_summary(draft, "uz", "UZS")
    assert "Product A ×1" in text
    assert "1 100,00 So'm" in text
    assert "by 6pm" in text
