"""Shared fixtures: in-memory database, mocked ERP gateway and Telegram channel."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker

from order_bridge.database.engine import build_engine
from order_bridge.models import Base, User
from order_bridge.services.erp_client import Counterparty, ErpGateway, Product
from order_bridge.services.telegram import TelegramChannel

# ── In-memory test database ─────────────────────────────
_test_engine = build_engine("sqlite+aiosqlite://")
_test_session_factory = async_sessionmaker(_test_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session_factory():
    """Create tables in a fresh in-memory DB and yield the session factory."""
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield _test_session_factory

    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def registered_user(db_session) -> User:
    user = User(
        telegram_id="5001",
        first_name="Dilshod",
        phone_number="+998901234567",
        counterparty_id="cp-1",
        language="uz",
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
def gateway():
    """ERP gateway double; catalog holds two products at 1000.00 and 100.00."""
    gw = AsyncMock(spec=ErpGateway)
    gw.get_products.return_value = [
        Product(id="p-a", name="Product A", price=Decimal("1000.00")),
        Product(id="p-b", name="Product B", price=Decimal("100.00")),
    ]
    gw.get_counterparty.return_value = Counterparty(id="cp-1", name="Dilshod")
    gw.safe_base_currency.return_value = "UZS"
    return gw


@pytest.fixture
def channel():
    """Telegram channel double — records every outbound call."""
    ch = AsyncMock(spec=TelegramChannel)
    ch.send_text.return_value = True
    ch.send_document.return_value = True
    return ch


def sent_texts(channel) -> list[str]:
    return [call.args[1] for call in channel.send_text.await_args_list]
