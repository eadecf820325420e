"""Tests for the MessageRouter and its agents — full bot conversations."""

from __future__ import annotations

from decimal import Decimal

import pytest

from order_bridge.config import settings
from order_bridge.database.repository import AdminPreferenceRepository, DraftLine, DraftOrderRepository
from order_bridge.domain.draft_state import DraftState
from order_bridge.exceptions import ErpError, ErpNotFoundError
from order_bridge.models import User
from order_bridge.services.erp_client import CreatedOrder, ErpOrder, OrderPage
from order_bridge.services.i18n import translate
from order_bridge.services.message_router import MessageRouter, parse_update
from order_bridge.services.order_orchestrator import OrderOrchestrator
from order_bridge.services.session_manager import SessionManager

from conftest import sent_texts


def message(user_id, text=None, **extra):
    msg = {"message_id": 10, "from": {"id": user_id, "first_name": "Ali"}, "chat": {"id": user_id}}
    if text is not None:
        msg["text"] = text
    msg.update(extra)
    return {"update_id": 1, "message": msg}


def callback(user_id, data, message_id=None):
    query = {"id": "cb-1", "from": {"id": user_id}, "data": data}
    if message_id is not None:
        query["message"] = {"message_id": message_id, "chat": {"id": user_id}}
    return {"update_id": 2, "callback_query": query}


@pytest.fixture
def sessions():
    return SessionManager()


@pytest.fixture
def router(sessions, gateway, channel):
    return MessageRouter(sessions, gateway, channel)


async def _draft(db_session, user, **fields):
    await DraftOrderRepository(db_session).replace(
        user.id, [DraftLine("p-a", "Product A", 100000, 1)], **fields
    )


# ──────────────────────────────────────────────────────────
# Update parsing
# ──────────────────────────────────────────────────────────
def test_parse_update_shapes():
    incoming = parse_update(message(42, "/start@shop_bot ref"))
    assert incoming.telegram_id == "42"
    assert incoming.command == "/start"

    contact = parse_update(message(42, contact={"phone_number": "998901234567", "user_id": 42}))
    assert contact.contact_phone == "998901234567"
    assert contact.contact_user_id == "42"

    location = parse_update(message(42, location={"latitude": 41.3, "longitude": 69.2}))
    assert location.has_location

    press = parse_update(callback(42, "order:confirm", message_id=5))
    assert press.callback_data == "order:confirm"
    assert press.message_id == 5

    assert parse_update({"update_id": 3, "edited_message": {}}) is None


# ──────────────────────────────────────────────────────────
# Registration
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_registration_flow(router, db_session, gateway, channel):
    gateway.find_counterparty_by_phone.return_value = None
    gateway.create_counterparty.return_value = "cp-new"

    response = await router.route(message(42, "/start"), db_session)
    assert response.reply_text == translate("uz", "choose_language")

    response = await router.route(callback(42, "lang:ru"), db_session)
    assert response.reply_text == translate("ru", "welcome", name="Ali")
    channel.answer_callback.assert_awaited_with("cb-1", None)

    await router.route(message(42, contact={"phone_number": "998901234567", "user_id": 42}), db_session)

    user = (await db_session.get(User, 1))
    assert user.phone_number == "+998901234567"
    assert user.counterparty_id == "cp-new"
    assert user.language == "ru"
    assert translate("ru", "registered") in sent_texts(channel)


@pytest.mark.asyncio
async def test_contact_claims_existing_counterparty(router, db_session, gateway):
    gateway.find_counterparty_by_phone.return_value = "cp-old"

    await router.route(message(43, contact={"phone_number": "+998907654321", "user_id": 43}), db_session)

    user = await db_session.get(User, 1)
    assert user.counterparty_id == "cp-old"
    gateway.update_counterparty_identity.assert_awaited_once_with("cp-old", "43", None)
    gateway.create_counterparty.assert_not_awaited()


@pytest.mark.asyncio
async def test_foreign_contact_rejected(router, db_session, gateway):
    response = await router.route(
        message(44, contact={"phone_number": "+998900000000", "user_id": 99}), db_session
    )
    assert response.reply_text == translate("uz", "contact_self_only")
    gateway.find_counterparty_by_phone.assert_not_awaited()


@pytest.mark.asyncio
async def test_unregistered_user_gets_register_prompt(router, db_session):
    response = await router.route(message(45, "/balance"), db_session)
    assert response.reply_text == translate("uz", "register_prompt")


@pytest.mark.asyncio
async def test_contact_resumes_storefront_draft(router, db_session, gateway, channel):
    gateway.find_counterparty_by_phone.return_value = "cp-9"
    user = User(telegram_id="46", language="uz")
    db_session.add(user)
    await db_session.flush()
    await _draft(db_session, user)

    await router.route(message(46, contact={"phone_number": "+998901111111", "user_id": 46}), db_session)

    assert sent_texts(channel)[-1] == translate("uz", "draft_ready")


# ──────────────────────────────────────────────────────────
# Account actions
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_balance_and_orders(router, db_session, registered_user, gateway):
    gateway.get_balance.return_value = Decimal("-120.50")
    response = await router.route(message(5001, "/balance"), db_session)
    assert response.reply_text == translate("uz", "balance", amount="-120,50 So'm")

    gateway.list_customer_orders.return_value = OrderPage(
        rows=[ErpOrder(id="o-1", name="00042", moment="2024-06-03 10:15:00.000", sum=Decimal("1100.00"), state_name="Новый")],
        total=1,
    )
    response = await router.route(message(5001, translate("uz", "menu_orders")), db_session)
    assert "00042 (03.06.2024) 1 100,00 So'm | Yangi" in response.reply_text


@pytest.mark.asyncio
async def test_balance_unavailable(router, db_session, registered_user, gateway):
    gateway.get_balance.side_effect = ErpError("down", 503)
    response = await router.route(message(5001, "/balance"), db_session)
    assert response.reply_text == translate("uz", "balance_unavailable")


@pytest.mark.asyncio
async def test_unexpected_error_becomes_generic_reply(router, db_session, registered_user, gateway):
    gateway.list_customer_orders.side_effect = RuntimeError("bug")
    response = await router.route(message(5001, "/orders"), db_session)
    assert response.reply_text == translate("uz", "generic_error")


# ──────────────────────────────────────────────────────────
# Order flow in the bot
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_delivery_by_typed_address_then_confirm(router, db_session, registered_user, gateway, channel):
    gateway.create_customer_order.return_value = CreatedOrder(id="o-7", name="00077")
    await _draft(db_session, registered_user)

    await router.route(callback(5001, "delivery:delivery"), db_session)
    assert sent_texts(channel)[-1] == translate("uz", "send_address")

    await router.route(message(5001, "Yunusobod 4, 12"), db_session)
    orchestrator = OrderOrchestrator(db_session, gateway, channel)
    assert await orchestrator.state(registered_user) is DraftState.READY_TO_CONFIRM
    assert translate("uz", "location_saved") in sent_texts(channel)

    await router.route(callback(5001, "order:confirm"), db_session)
    extras = gateway.create_customer_order.await_args.args[2]
    assert extras.address_text == "Yunusobod 4, 12"
    assert await orchestrator.get_draft(registered_user) is None


@pytest.mark.asyncio
async def test_shared_location_completes_delivery(router, db_session, registered_user, gateway, channel):
    await _draft(db_session, registered_user, delivery_method="delivery")

    await router.route(message(5001, location={"latitude": 41.3, "longitude": 69.2}), db_session)

    draft = await OrderOrchestrator(db_session, gateway, channel).get_draft(registered_user)
    assert (draft.location_lat, draft.location_lng) == (41.3, 69.2)


@pytest.mark.asyncio
async def test_saved_address_button(router, db_session, registered_user, gateway, channel):
    registered_user.default_address = "41.3,69.2"
    await _draft(db_session, registered_user, delivery_method="delivery")

    label = translate("uz", "use_saved", address="GPS (41.3000, 69.2000)")
    await router.route(message(5001, label), db_session)

    draft = await OrderOrchestrator(db_session, gateway, channel).get_draft(registered_user)
    assert draft.address_text == "41.3,69.2"
    assert draft.location_lat == 41.3


@pytest.mark.asyncio
async def test_menu_tap_abandons_draft_awaiting_address(router, db_session, registered_user, gateway, channel):
    await _draft(db_session, registered_user, delivery_method="delivery")

    await router.route(message(5001, "/help"), db_session)

    assert await OrderOrchestrator(db_session, gateway, channel).get_draft(registered_user) is None


@pytest.mark.asyncio
async def test_confirm_incomplete_draft_reprompts(router, db_session, registered_user, channel):
    await _draft(db_session, registered_user)

    response = await router.route(callback(5001, "order:confirm"), db_session)

    assert response.callback_notice == translate("uz", "choose_delivery")
    channel.answer_callback.assert_awaited_with("cb-1", translate("uz", "choose_delivery"))
    assert sent_texts(channel)[-1] == translate("uz", "draft_ready")


@pytest.mark.asyncio
async def test_confirm_with_deleted_counterparty(router, db_session, registered_user, gateway, channel):
    gateway.get_counterparty.side_effect = ErpNotFoundError("gone")
    await _draft(db_session, registered_user, delivery_method="pickup")

    response = await router.route(callback(5001, "order:confirm"), db_session)

    assert response.reply_text is None
    assert sent_texts(channel) == [translate("uz", "counterparty_deleted")]
    assert not registered_user.is_registered


@pytest.mark.asyncio
async def test_cancel(router, db_session, registered_user, gateway, channel):
    await _draft(db_session, registered_user, delivery_method="pickup")
    response = await router.route(callback(5001, "order:cancel"), db_session)
    assert response.reply_text == translate("uz", "order_cancelled")
    assert await OrderOrchestrator(db_session, gateway, channel).get_draft(registered_user) is None


@pytest.mark.asyncio
async def test_plain_text_without_draft_gets_menu_hint(router, db_session, registered_user):
    response = await router.route(message(5001, "hello"), db_session)
    assert response.reply_text == translate("uz", "menu_hint")


# ──────────────────────────────────────────────────────────
# Admin panel
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_admin_panel_stages_until_save(router, db_session, registered_user, channel, monkeypatch):
    monkeypatch.setattr(settings, "admin_telegram_ids", "5001")
    prefs = AdminPreferenceRepository(db_session)

    response = await router.route(message(5001, "/admin"), db_session)
    assert response.reply_text == translate("uz", "admin_title")

    await router.route(callback(5001, "admin:toggle:payment", message_id=77), db_session)
    channel.edit_inline_keyboard.assert_awaited_once()
    assert (await prefs.get(registered_user.id))["payment"] is False

    await router.route(callback(5001, "admin:save"), db_session)
    assert (await prefs.get(registered_user.id))["payment"] is True


@pytest.mark.asyncio
async def test_admin_cancel_discards(router, db_session, registered_user, sessions, monkeypatch):
    monkeypatch.setattr(settings, "admin_telegram_ids", "5001")

    await router.route(message(5001, "/admin"), db_session)
    await router.route(callback(5001, "admin:toggle:new_user"), db_session)
    response = await router.route(callback(5001, "admin:cancel"), db_session)

    assert response.reply_text == translate("uz", "admin_discarded")
    assert sessions.get("5001").staged_preferences is None
    prefs = await AdminPreferenceRepository(db_session).get(registered_user.id)
    assert prefs["new_user"] is False


@pytest.mark.asyncio
async def test_non_admin_refused(router, db_session, registered_user):
    response = await router.route(message(5001, "/admin"), db_session)
    assert response.reply_text == translate("uz", "not_admin")
