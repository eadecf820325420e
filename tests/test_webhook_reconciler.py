"""Tests for the WebhookReconciler — one customer message per real ERP event."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from order_bridge.database.repository import AdminPreferenceRepository
from order_bridge.models import User
from order_bridge.services.erp_client import ErpAttribute, ErpOrder, ErpPayment, ErpPosition, ErpShipment
from order_bridge.services.i18n import translate
from order_bridge.services.ttl_cache import TTLCache
from order_bridge.services.webhook_reconciler import (
    WebhookReconciler,
    extract_events,
    format_positions_table,
    is_side_effect_update,
    parse_event,
    suppression_key,
)

from conftest import sent_texts

BASE = "https://api.moysklad.ru/api/remap/1.2/entity"


def _event(entity_type, action, entity_id, fields=None):
    raw = {"meta": {"type": entity_type, "href": f"{BASE}/{entity_type}/{entity_id}"}, "action": action}
    if fields is not None:
        raw["updatedFields"] = fields
    return raw


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(clock=clock)


@pytest.fixture
def receipts():
    svc = AsyncMock()
    svc.send.return_value = True
    return svc


@pytest.fixture
def erp(gateway):
    gateway.get_customer_order.return_value = ErpOrder(
        id="o-1", name="00042", sum=Decimal("1100.00"), agent_id="cp-1", state_name="Подтвержден"
    )
    gateway.list_order_positions.return_value = [
        ErpPosition("p-a", "Product A", Decimal(1), Decimal("1000.00")),
        ErpPosition("p-b", "Product B", Decimal(1), Decimal("100.00")),
    ]
    gateway.get_demand.return_value = ErpShipment(
        id="d-1", name="00007", sum=Decimal("1100.00"), agent_id="cp-1", order_id="o-1"
    )
    gateway.list_demand_positions.return_value = []
    gateway.get_balance.return_value = Decimal("-500.00")
    return gateway


@pytest.fixture
def reconciler(db_session, erp, channel, cache, receipts):
    return WebhookReconciler(
        db_session, erp, channel, cache, receipts=receipts, admin_ids=["9001"], suppression_seconds=60
    )


# ──────────────────────────────────────────────────────────
# Event parsing
# ──────────────────────────────────────────────────────────
def test_extract_events_shapes():
    event = _event("demand", "CREATE", "d-1")
    assert extract_events({"events": [event]}) == [event]
    assert extract_events([event, event]) == [event, event]
    assert extract_events(event) == [event]


def test_parse_event_from_href_and_lowercases_fields():
    event = parse_event(
        {"meta": {"href": f"{BASE}/customerorder/o-9"}, "action": "update", "updatedFields": ["State", "Sum"]}
    )
    assert event.entity_type == "customerorder"
    assert event.entity_id == "o-9"
    assert event.action == "UPDATE"
    assert event.updated_fields == frozenset({"state", "sum"})
    assert parse_event({"action": "CREATE"}) is None
    assert parse_event("garbage") is None


@pytest.mark.parametrize(
    ("entity_type", "fields", "expected"),
    [
        ("customerorder", ["applicable"], True),
        ("customerorder", ["payedSum", "state"], True),
        ("customerorder", ["demands"], True),
        ("demand", ["demands"], False),
        ("customerorder", ["state"], False),
        ("customerorder", ["applicable", "state"], False),
    ],
)
def test_side_effect_field_sets(entity_type, fields, expected):
    assert is_side_effect_update(parse_event(_event(entity_type, "UPDATE", "x", fields))) is expected


def test_positions_table_escapes_and_truncates():
    table = format_positions_table(
        [
            ErpPosition(None, "<Tea> & sugar", Decimal(2)),
            ErpPosition(None, "A" * 60, Decimal("1.5")),
        ]
    )
    assert "&lt;Tea&gt; &amp; sugar" in table
    assert "x1.50" in table
    assert ("A" * 37 + "...") in table


# ──────────────────────────────────────────────────────────
# Shipment then order update: one message
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_order_update_after_shipment_in_same_batch(reconciler, registered_user, channel, receipts):
    result = await reconciler.process_batch(
        {
            "events": [
                _event("demand", "CREATE", "d-1"),
                _event("customerorder", "UPDATE", "o-1", ["state"]),
            ]
        }
    )

    assert result.handled == 1
    assert result.skipped == 1
    texts = sent_texts(channel)
    assert len(texts) == 1
    assert texts[0].startswith(translate("uz", "shipment_created", name="00007"))
    receipts.send.assert_awaited_once()


@pytest.mark.asyncio
async def test_order_update_before_shipment_suppressed_by_fields(reconciler, registered_user, channel):
    result = await reconciler.process_batch(
        [
            _event("customerorder", "UPDATE", "o-1", ["demands", "state"]),
            _event("demand", "CREATE", "d-1"),
        ]
    )

    assert result.handled == 1
    assert len(sent_texts(channel)) == 1


@pytest.mark.asyncio
async def test_suppression_marker_spans_deliveries_and_expires(
    reconciler, registered_user, channel, cache, clock
):
    await reconciler.process_batch([_event("demand", "CREATE", "d-1")])
    assert cache.contains(suppression_key("cp-1"))

    clock.now += 30
    result = await reconciler.process_batch([_event("customerorder", "UPDATE", "o-1", ["state"])])
    assert result.skipped == 1
    assert len(sent_texts(channel)) == 1

    clock.now += 31
    result = await reconciler.process_batch([_event("customerorder", "UPDATE", "o-1", ["state"])])
    assert result.handled == 1
    texts = sent_texts(channel)
    assert len(texts) == 2
    assert texts[1].startswith(translate("uz", "order_updated", name="00042"))


@pytest.mark.asyncio
async def test_voided_documents_are_silent(reconciler, registered_user, erp, channel):
    erp.get_customer_order.return_value = ErpOrder(id="o-1", name="00042", agent_id="cp-1", applicable=False)
    erp.get_demand.return_value = ErpShipment(id="d-1", name="00007", agent_id="cp-1", applicable=False)

    result = await reconciler.process_batch(
        [
            _event("customerorder", "UPDATE", "o-1", ["applicable"]),
            _event("customerorder", "CREATE", "o-1"),
            _event("demand", "CREATE", "d-1"),
        ]
    )

    assert result.handled == 0
    assert result.skipped == 3
    channel.send_text.assert_not_awaited()


# ──────────────────────────────────────────────────────────
# Orders, payments, counterparties
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_order_created_message_and_admin_copy(reconciler, registered_user, channel, db_session):
    admin = User(telegram_id="9001", language="ru")
    db_session.add(admin)
    await db_session.flush()
    await AdminPreferenceRepository(db_session).save(admin.id, {"new_order": True})

    result = await reconciler.process_batch([_event("customerorder", "CREATE", "o-1")])

    assert result.handled == 1
    customer_call, admin_call = channel.send_text.await_args_list
    assert customer_call.args[0] == "5001"
    assert customer_call.kwargs["parse_mode"] == "HTML"
    assert "<pre>" in customer_call.args[1]
    assert "1 100,00" in customer_call.args[1]
    assert admin_call.args[0] == "9001"
    assert admin_call.args[1].startswith(translate("ru", "admin_new_order", name="00042"))
    channel.send_location.assert_not_awaited()


@pytest.mark.asyncio
async def test_order_created_pins_location_for_admins(reconciler, registered_user, erp, channel, db_session):
    admin = User(telegram_id="9001", language="uz")
    db_session.add(admin)
    await db_session.flush()
    await AdminPreferenceRepository(db_session).save(admin.id, {"new_order": True})
    erp.get_customer_order.return_value = ErpOrder(
        id="o-1",
        name="00042",
        sum=Decimal("1100.00"),
        agent_id="cp-1",
        attributes=[ErpAttribute(id="a-1", name="Lokatsiya", value="https://yandex.ru/maps/?ll=69.2,41.3&z=16")],
    )

    await reconciler.process_batch([_event("customerorder", "CREATE", "o-1")])

    channel.send_location.assert_awaited_once_with("9001", 41.3, 69.2)
    customer_call = channel.send_text.await_args_list[0]
    assert customer_call.kwargs["inline_keyboard"] is not None


@pytest.mark.asyncio
async def test_shipment_update_offers_pdf_on_demand(reconciler, registered_user, channel, receipts):
    result = await reconciler.process_batch([_event("demand", "UPDATE", "d-1", ["sum"])])

    assert result.handled == 1
    call = channel.send_text.await_args
    assert call.args[1].startswith(translate("uz", "shipment_updated", name="00007"))
    assert "1 100,00" in call.args[1]
    assert call.kwargs["inline_keyboard"][0][0]["callback_data"] == "demand:pdf:d-1"
    receipts.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_payment_message_includes_balance(reconciler, registered_user, erp, channel):
    erp.get_payment.return_value = ErpPayment(
        id="pay-1", name="P1", kind="cashin", sum=Decimal("300.00"), agent_id="cp-1"
    )

    result = await reconciler.process_batch([_event("cashin", "CREATE", "pay-1")])

    assert result.handled == 1
    text = sent_texts(channel)[0]
    assert translate("uz", "payment_cash") in text
    assert "300,00" in text
    assert "-500,00" in text


@pytest.mark.asyncio
async def test_counterparty_delete_resets_user(reconciler, registered_user, channel):
    result = await reconciler.process_batch([_event("counterparty", "DELETE", "cp-1")])

    assert result.handled == 1
    assert registered_user.counterparty_id is None
    assert registered_user.phone_number is None
    assert sent_texts(channel) == [translate("uz", "counterparty_deleted")]


@pytest.mark.asyncio
async def test_unknown_customer_and_failures_isolated(reconciler, registered_user, erp, channel):
    erp.get_demand.side_effect = RuntimeError("unexpected payload")

    result = await reconciler.process_batch(
        [
            _event("demand", "CREATE", "d-1"),
            _event("counterparty", "DELETE", "cp-unknown"),
            {"nonsense": True},
            _event("customerorder", "CREATE", "o-1"),
        ]
    )

    assert result.received == 4
    assert result.failed == 1
    assert result.skipped == 2
    assert result.handled == 1
