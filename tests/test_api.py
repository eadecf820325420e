"""Tests for the HTTP surface: storefront API and both webhooks."""

from __future__ import annotations

from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select

from order_bridge.config import settings
from order_bridge.database.engine import get_session
from order_bridge.database.repository import UserRepository
from order_bridge.dependencies import (
    get_catalog_cache,
    get_channel,
    get_gateway,
    get_session_manager,
    get_suppression_cache,
)
from order_bridge.domain.draft_state import DraftState
from order_bridge.exceptions import ErpError, ErpNotFoundError
from order_bridge.main import app
from order_bridge.models import User
from order_bridge.services.erp_client import (
    Category,
    CreatedOrder,
    ErpOrder,
    ErpPosition,
    ErpShipment,
    OrderPage,
)
from order_bridge.services.i18n import translate
from order_bridge.services.message_router import MessageRouter
from order_bridge.services.order_orchestrator import OrderOrchestrator
from order_bridge.services.session_manager import SessionManager
from order_bridge.services.ttl_cache import TTLCache

from conftest import sent_texts


@pytest_asyncio.fixture
async def client(session_factory, gateway, channel):
    async def _session():
        async with session_factory() as session:
            yield session

    catalog_cache, suppression_cache, sessions = TTLCache(), TTLCache(), SessionManager()
    app.dependency_overrides.update(
        {
            get_session: _session,
            get_gateway: lambda: gateway,
            get_channel: lambda: channel,
            get_catalog_cache: lambda: catalog_cache,
            get_suppression_cache: lambda: suppression_cache,
            get_session_manager: lambda: sessions,
        }
    )
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def customer(session_factory) -> User:
    async with session_factory() as session:
        user = User(
            telegram_id="5001",
            first_name="Dilshod",
            phone_number="+998901234567",
            counterparty_id="cp-1",
            default_address="41.3,69.2",
        )
        session.add(user)
        await session.commit()
    return user


# ──────────────────────────────────────────────────────────
# Health
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


# ──────────────────────────────────────────────────────────
# Draft orders
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_draft_order_pickup_returns_order_name(client, customer, gateway):
    gateway.create_customer_order.return_value = CreatedOrder(id="o-1", name="00042")

    resp = await client.post(
        "/api/draft-order",
        json={
            "telegramId": "5001",
            "items": [{"id": "p-a", "quantity": 1}, {"id": "p-b", "quantity": 1}],
            "deliveryMethod": "pickup",
        },
    )

    assert resp.status_code == 200
    assert resp.json() == {"orderName": "00042"}


@pytest.mark.asyncio
async def test_draft_order_delivery_without_location(client, customer, gateway):
    resp = await client.post(
        "/api/draft-order",
        json={"telegramId": "5001", "items": [{"id": "p-a", "quantity": 2}], "deliveryMethod": "delivery"},
    )

    body = resp.json()
    assert resp.status_code == 200
    assert body["awaitingLocation"] is True
    assert isinstance(body["draftId"], int)
    gateway.create_customer_order.assert_not_awaited()


@pytest.mark.asyncio
async def test_draft_order_delivery_with_typed_address_continues_in_bot(
    client, customer, gateway, channel, session_factory
):
    resp = await client.post(
        "/api/draft-order",
        json={
            "telegramId": "5001",
            "items": [{"id": "p-a", "quantity": 1}],
            "deliveryMethod": "delivery",
            "addressDetails": "Chilonzor 5",
        },
    )
    assert resp.json()["awaitingLocation"] is True
    assert translate("uz", "send_address") in sent_texts(channel)

    update = {
        "update_id": 1,
        "message": {
            "message_id": 10,
            "from": {"id": 5001, "first_name": "Dilshod"},
            "chat": {"id": 5001},
            "text": "Yunusobod 12",
        },
    }
    async with session_factory() as session:
        await MessageRouter(SessionManager(), gateway, channel).route(update, session)
        user = await UserRepository(session).find_by_telegram_id("5001")
        orchestrator = OrderOrchestrator(session, gateway, channel)
        draft = await orchestrator.get_draft(user)
        assert draft.address_text == "Yunusobod 12"
        assert await orchestrator.state(user) is DraftState.READY_TO_CONFIRM

    texts = sent_texts(channel)
    assert translate("uz", "location_saved") in texts
    assert translate("uz", "menu_hint") not in texts
    assert channel.send_text.await_args.kwargs["inline_keyboard"] is not None
    gateway.create_customer_order.assert_not_awaited()


@pytest.mark.asyncio
async def test_draft_order_erp_failure_returns_502(client, customer, gateway):
    gateway.get_products.side_effect = ErpError("timeout")

    resp = await client.post(
        "/api/draft-order",
        json={"telegramId": "5001", "items": [{"id": "p-a", "quantity": 1}], "deliveryMethod": "pickup"},
    )

    assert resp.status_code == 502
    assert resp.json()["detail"] == "ERP unavailable"
    gateway.create_customer_order.assert_not_awaited()


@pytest.mark.asyncio
async def test_draft_order_keeps_language_chosen_in_bot(client, customer, gateway, session_factory):
    gateway.create_customer_order.return_value = CreatedOrder(id="o-1", name="00042")

    await client.post(
        "/api/draft-order",
        json={
            "telegramId": "5001",
            "language": "ru",
            "items": [{"id": "p-a", "quantity": 1}],
            "deliveryMethod": "pickup",
        },
    )
    await client.post(
        "/api/draft-order",
        json={"telegramId": "6001", "language": "ru", "items": [{"id": "p-a", "quantity": 1}]},
    )

    async with session_factory() as session:
        repo = UserRepository(session)
        assert (await repo.find_by_telegram_id("5001")).language == "uz"
        assert (await repo.find_by_telegram_id("6001")).language == "ru"


@pytest.mark.asyncio
async def test_draft_order_rejects_empty_cart_and_bad_input(client, customer, gateway):
    resp = await client.post("/api/draft-order", json={"telegramId": "5001", "items": []})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "cart_empty"

    gateway.get_products.return_value = []
    resp = await client.post(
        "/api/draft-order", json={"telegramId": "5001", "items": [{"id": "p-x", "quantity": 1}]}
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "no_valid_items"

    resp = await client.post(
        "/api/draft-order", json={"telegramId": "5001", "items": [{"id": "p-a", "quantity": 0}]}
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_draft_order_deleted_counterparty(client, customer, gateway, session_factory):
    gateway.get_counterparty.side_effect = ErpNotFoundError("gone")

    resp = await client.post(
        "/api/draft-order",
        json={"telegramId": "5001", "items": [{"id": "p-a", "quantity": 1}], "deliveryMethod": "pickup"},
    )

    assert resp.status_code == 409
    async with session_factory() as session:
        user = await session.get(User, customer.id)
    assert user.phone_number is None
    assert user.counterparty_id is None


# ──────────────────────────────────────────────────────────
# Orders and receipts
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_list_orders(client, customer, gateway):
    gateway.list_customer_orders.return_value = OrderPage(
        rows=[ErpOrder(id="o-1", name="00042", sum=Decimal("1100.00"), state_name="Новый")], total=1
    )

    resp = await client.get("/api/orders", params={"telegramId": "5001"})

    assert resp.json() == {
        "rows": [{"id": "o-1", "name": "00042", "moment": None, "sum": 1100.0, "state": "Новый"}],
        "total": 1,
    }

    resp = await client.get("/api/orders", params={"telegramId": "unknown"})
    assert resp.json() == {"rows": [], "total": 0}


@pytest.mark.asyncio
async def test_order_positions(client, gateway):
    gateway.get_customer_order.return_value = ErpOrder(
        id="o-1", name="00042", sum=Decimal("1100.00"), payed_sum=Decimal("100.00")
    )
    gateway.list_order_positions.return_value = [
        ErpPosition("p-a", "Product A", Decimal(1), Decimal("1000.00"))
    ]

    resp = await client.get("/api/orders/o-1/positions")

    body = resp.json()
    assert resp.status_code == 200
    assert body["paidAmount"] == 100.0
    assert body["dueAmount"] == 1000.0
    assert body["positions"][0]["name"] == "Product A"

    gateway.get_customer_order.side_effect = ErpNotFoundError("nope")
    assert (await client.get("/api/orders/o-2/positions")).status_code == 404
    gateway.get_customer_order.side_effect = ErpError("down", 503)
    assert (await client.get("/api/orders/o-2/positions")).status_code == 502


@pytest.mark.asyncio
async def test_demand_pdf_ownership(client, customer, gateway, channel):
    gateway.get_demand.return_value = ErpShipment(id="d-9", name="00009", agent_id="cp-other")

    resp = await client.post("/api/demands/d-9/pdf", params={"telegramId": "5001"})
    assert resp.status_code == 403

    resp = await client.post("/api/demands/d-9/pdf", params={"telegramId": "nobody"})
    assert resp.status_code == 404

    gateway.get_demand.side_effect = ErpNotFoundError("missing")
    resp = await client.post("/api/demands/d-1/pdf", params={"telegramId": "5001"})
    assert resp.status_code == 404
    channel.send_document.assert_not_awaited()


# ──────────────────────────────────────────────────────────
# User info and likes
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_user_info(client, customer, gateway):
    gateway.get_balance.return_value = Decimal("-250.00")

    body = (await client.get("/api/user-info", params={"telegramId": "5001"})).json()

    assert body["isRegistered"] is True
    assert body["balance"] == -250.0
    assert body["balanceCurrency"] == "UZS"
    assert body["defaultLat"] == 41.3
    assert body["counterpartyName"] == "Dilshod"

    guest = (await client.get("/api/user-info", params={"telegramId": "404"})).json()
    assert guest == {"isRegistered": False, "language": "uz"}


@pytest.mark.asyncio
async def test_liked_toggle(client, customer):
    resp = await client.post("/api/liked", json={"telegramId": "5001", "productId": "p-a"})
    assert resp.json() == {"liked": True}
    assert (await client.get("/api/liked", params={"telegramId": "5001"})).json() == {
        "productIds": ["p-a"]
    }
    resp = await client.post("/api/liked", json={"telegramId": "5001", "productId": "p-a"})
    assert resp.json() == {"liked": False}

    resp = await client.post("/api/liked", json={"telegramId": "nobody", "productId": "p-a"})
    assert resp.status_code == 404


# ──────────────────────────────────────────────────────────
# Catalog
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_categories_are_cached(client, gateway):
    gateway.list_categories.return_value = [Category(id="c-1", name="Tea")]

    first = await client.get("/api/categories")
    second = await client.get("/api/categories")

    assert first.json() == second.json() == [{"id": "c-1", "name": "Tea"}]
    assert gateway.list_categories.await_count == 1


@pytest.mark.asyncio
async def test_products_erp_failure(client, gateway):
    gateway.list_products.side_effect = ErpError("down", 503)
    assert (await client.get("/api/products")).status_code == 502


# ──────────────────────────────────────────────────────────
# Webhooks
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_erp_webhook_token(client, monkeypatch):
    monkeypatch.setattr(settings, "erp_webhook_secret", "s3cret")

    resp = await client.post("/webhooks/erp", params={"token": "wrong"}, json={"events": []})
    assert resp.status_code == 403

    resp = await client.post("/webhooks/erp", params={"token": "s3cret"}, json={"events": []})
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "received": 0, "handled": 0, "skipped": 0, "failed": 0}

    resp = await client.post(
        "/webhooks/erp", params={"token": "s3cret"}, content=b"not json",
        headers={"Content-Type": "application/json"},
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_telegram_webhook_secret_and_start(client, channel, monkeypatch, session_factory):
    monkeypatch.setattr(settings, "telegram_webhook_secret", "tg-secret")
    update = {
        "update_id": 1,
        "message": {"message_id": 1, "from": {"id": 777, "first_name": "Ali"}, "chat": {"id": 777}, "text": "/start"},
    }

    resp = await client.post("/telegram/webhook", json=update)
    assert resp.status_code == 403

    resp = await client.post(
        "/telegram/webhook", json=update, headers={"X-Telegram-Bot-Api-Secret-Token": "tg-secret"}
    )
    assert resp.json() == {"ok": True}
    channel.send_text.assert_awaited()
    async with session_factory() as session:
        user = (await session.execute(select(User).where(User.telegram_id == "777"))).scalar_one()
    assert user.first_name == "Ali"
