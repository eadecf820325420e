"""Storefront HTTP API — the Telegram web app's backend.

Endpoints
---------
POST /api/draft-order                  → save the cart, submit when complete
GET  /api/user-info?telegramId=...     → registration, balance, saved address
GET  /api/liked?telegramId=...         → liked product ids
POST /api/liked                        → toggle a liked product
GET  /api/orders?telegramId=...        → the user's ERP orders
GET  /api/orders/{order_id}/positions  → one order with lines and delivery details
POST /api/demands/{id}/pdf?telegramId= → send a shipment receipt to the chat
GET  /api/categories                   → catalog folders (cached)
GET  /api/products?categoryId=...      → catalog with stock (cached)
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from order_bridge.config import settings
from order_bridge.database.engine import get_session
from order_bridge.database.repository import LikedProductRepository, UserRepository
from order_bridge.dependencies import get_catalog_cache, get_channel, get_gateway
from order_bridge.domain.address import AddressExtra
from order_bridge.domain.delivery import DeliveryMethod
from order_bridge.domain.geo import GeoPoint
from order_bridge.domain.money import ZERO
from order_bridge.exceptions import (
    CounterpartyDeletedError,
    DraftIncompleteError,
    ErpError,
    ErpNotFoundError,
    ForeignShipmentError,
)
from order_bridge.models import User
from order_bridge.models.user import DEFAULT_LANGUAGE
from order_bridge.services.erp_client import ErpGateway, find_attribute
from order_bridge.services.order_fields import OrderFieldReader
from order_bridge.services.order_orchestrator import CartItem, OrderOrchestrator
from order_bridge.services.shipment_receipts import ShipmentReceipts
from order_bridge.services.telegram import TelegramChannel
from order_bridge.services.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["storefront"])

CATALOG_TTL_SECONDS = 300
ORDER_LIST_LIMIT = 50


# ── Request / response models ────────────────────────────


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CartItemIn(CamelModel):
    id: str
    quantity: float = Field(gt=0)


class DraftOrderRequest(CamelModel):
    telegram_id: str
    items: list[CartItemIn] = []
    language: str | None = None
    delivery_method: DeliveryMethod | None = None
    order_note: str | None = None
    location_lat: float | None = None
    location_lng: float | None = None
    address_details: str | None = None
    address_extra: str | None = None


class DraftOrderResponse(CamelModel):
    order_name: str | None = None
    draft_id: int | None = None
    awaiting_location: bool | None = None


class UserInfo(CamelModel):
    is_registered: bool
    language: str
    balance: float | None = None
    balance_currency: str | None = None
    first_name: str | None = None
    phone_number: str | None = None
    counterparty_name: str | None = None
    default_lat: float | None = None
    default_lng: float | None = None
    default_address_text: str | None = None
    default_address_extra: str | None = None


class LikedList(CamelModel):
    product_ids: list[str]


class LikeToggle(CamelModel):
    telegram_id: str
    product_id: str


class LikeState(CamelModel):
    liked: bool


class OrderRow(CamelModel):
    id: str
    name: str
    moment: str | None = None
    sum: float | None = None
    state: str | None = None


class OrderList(CamelModel):
    rows: list[OrderRow]
    total: int


class PositionOut(CamelModel):
    assortment_id: str | None = None
    name: str
    quantity: float
    price: float | None = None


class DriverOut(CamelModel):
    model: str | None = None
    number: str | None = None


class OrderDetails(CamelModel):
    order: OrderRow
    positions: list[PositionOut]
    delivery_method: DeliveryMethod | None = None
    driver_info: DriverOut | None = None
    address_text: str | None = None
    address_extra: str | None = None
    paid_amount: float
    due_amount: float


class CategoryOut(CamelModel):
    id: str
    name: str


class ProductOut(CamelModel):
    id: str
    name: str
    price: float
    currency: str | None = None
    article: str | None = None
    stock: int = 0
    image_count: int = 0


# ── Helpers ──────────────────────────────────────────────


async def _require_user(db_session: AsyncSession, telegram_id: str) -> User:
    user = await UserRepository(db_session).find_by_telegram_id(telegram_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _location(lat: float | None, lng: float | None) -> GeoPoint | None:
    if lat is None or lng is None:
        return None
    try:
        return GeoPoint(lat, lng)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid coordinates") from None


# ── Orders ───────────────────────────────────────────────


@router.post(
    "/draft-order",
    response_model=DraftOrderResponse,
    response_model_exclude_none=True,
)
async def create_draft_order(
    body: DraftOrderRequest,
    db_session: AsyncSession = Depends(get_session),
    gateway: ErpGateway = Depends(get_gateway),
    channel: TelegramChannel = Depends(get_channel),
) -> DraftOrderResponse:
    """Save the storefront cart as the user's draft and submit it when complete."""
    user, _ = await UserRepository(db_session).get_or_create(body.telegram_id, language=body.language)
    if not body.items:
        raise HTTPException(status_code=400, detail="cart_empty")

    orchestrator = OrderOrchestrator(db_session, gateway, channel)
    extra = AddressExtra.parse(body.address_extra) if body.address_extra else None
    try:
        result = await orchestrator.place_from_storefront(
            user,
            [CartItem(product_id=item.id, quantity=item.quantity) for item in body.items],
            delivery_method=body.delivery_method,
            note=body.order_note,
            location=_location(body.location_lat, body.location_lng),
            address_text=body.address_details,
            address_extra=extra,
        )
    except DraftIncompleteError as exc:
        raise HTTPException(status_code=400, detail=exc.reason) from None
    except CounterpartyDeletedError:
        # Keep the registration reset even though the request fails.
        await db_session.commit()
        raise HTTPException(status_code=409, detail="registration_required") from None
    except ErpError:
        logger.exception("Draft order for %s failed on the ERP side", body.telegram_id)
        raise HTTPException(status_code=502, detail="ERP unavailable") from None

    await db_session.commit()
    return DraftOrderResponse(
        order_name=result.order_name,
        draft_id=result.draft_id if result.order_name is None else None,
        awaiting_location=True if result.awaiting_location else None,
    )


@router.get("/orders", response_model=OrderList)
async def list_orders(
    telegram_id: str = Query(..., alias="telegramId"),
    db_session: AsyncSession = Depends(get_session),
    gateway: ErpGateway = Depends(get_gateway),
) -> OrderList:
    user = await UserRepository(db_session).find_by_telegram_id(telegram_id)
    if user is None or not user.counterparty_id:
        return OrderList(rows=[], total=0)
    try:
        page = await gateway.list_customer_orders(user.counterparty_id, 0, ORDER_LIST_LIMIT)
    except ErpError:
        logger.exception("Orders of %s unavailable", telegram_id)
        return OrderList(rows=[], total=0)
    rows = [
        OrderRow(
            id=order.id,
            name=order.name,
            moment=order.moment,
            sum=float(order.sum) if order.sum is not None else None,
            state=order.state_name,
        )
        for order in page.rows
    ]
    return OrderList(rows=rows, total=page.total)


@router.get("/orders/{order_id}/positions", response_model=OrderDetails)
async def order_positions(
    order_id: str,
    gateway: ErpGateway = Depends(get_gateway),
) -> OrderDetails:
    try:
        order = await gateway.get_customer_order(order_id)
        positions = await gateway.list_order_positions(order_id)
    except ErpNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found") from None
    except ErpError:
        logger.exception("Order %s unavailable", order_id)
        raise HTTPException(status_code=502, detail="ERP unavailable") from None

    fields = OrderFieldReader()
    driver = fields.driver_info(order.attributes)
    total = order.sum or ZERO
    return OrderDetails(
        order=OrderRow(
            id=order.id,
            name=order.name,
            moment=order.moment,
            sum=float(total),
            state=order.state_name,
        ),
        positions=[
            PositionOut(
                assortment_id=p.assortment_id,
                name=p.name,
                quantity=float(p.quantity),
                price=float(p.price) if p.price is not None else None,
            )
            for p in positions
        ],
        delivery_method=fields.delivery_method(order.attributes),
        driver_info=DriverOut(**asdict(driver)) if driver else None,
        address_text=fields.address_text(order),
        address_extra=fields.raw_address_extra(order.attributes),
        paid_amount=float(order.payed_sum),
        due_amount=float(max(ZERO, total - order.payed_sum)),
    )


@router.post("/demands/{demand_id}/pdf")
async def send_demand_pdf(
    demand_id: str,
    telegram_id: str = Query(..., alias="telegramId"),
    db_session: AsyncSession = Depends(get_session),
    gateway: ErpGateway = Depends(get_gateway),
    channel: TelegramChannel = Depends(get_channel),
) -> dict:
    """Send the receipt of one of the caller's shipments to their chat."""
    user = await _require_user(db_session, telegram_id)
    try:
        await ShipmentReceipts(gateway, channel).send_on_demand(user, demand_id)
    except ForeignShipmentError:
        raise HTTPException(status_code=403, detail="Forbidden") from None
    except ErpNotFoundError:
        raise HTTPException(status_code=404, detail="Shipment not found") from None
    except ErpError:
        logger.exception("Receipt for shipment %s failed", demand_id)
        raise HTTPException(status_code=500, detail="Failed to generate PDF") from None
    return {"ok": True}


# ── User ─────────────────────────────────────────────────


@router.get("/user-info", response_model=UserInfo, response_model_exclude_none=True)
async def user_info(
    telegram_id: str = Query(..., alias="telegramId"),
    db_session: AsyncSession = Depends(get_session),
    gateway: ErpGateway = Depends(get_gateway),
) -> UserInfo:
    """Registration state plus what the checkout form pre-fills."""
    user = await UserRepository(db_session).find_by_telegram_id(telegram_id)
    if user is None or not user.is_registered:
        return UserInfo(is_registered=False, language=user.language if user else DEFAULT_LANGUAGE)

    saved = GeoPoint.parse(user.default_address)
    info = UserInfo(
        is_registered=True,
        language=user.language,
        first_name=user.first_name,
        phone_number=user.phone_number,
        default_lat=saved.lat if saved else None,
        default_lng=saved.lng if saved else None,
    )
    try:
        balance = await gateway.get_balance(user.counterparty_id)
        counterparty = await gateway.get_counterparty(user.counterparty_id)
    except ErpError:
        logger.exception("Account details of %s unavailable", telegram_id)
        info.balance = 0
        return info

    info.balance = float(balance)
    info.balance_currency = await gateway.safe_base_currency()
    info.counterparty_name = counterparty.name
    address = find_attribute(counterparty.attributes, [settings.erp_counterparty_address_attr])
    details = find_attribute(counterparty.attributes, [settings.erp_counterparty_address_details_attr])
    info.default_address_text = address.text if address else None
    info.default_address_extra = details.text if details else None
    return info


@router.get("/liked", response_model=LikedList)
async def liked_products(
    telegram_id: str = Query(..., alias="telegramId"),
    db_session: AsyncSession = Depends(get_session),
) -> LikedList:
    user = await UserRepository(db_session).find_by_telegram_id(telegram_id)
    if user is None:
        return LikedList(product_ids=[])
    return LikedList(product_ids=await LikedProductRepository(db_session).list_product_ids(user.id))


@router.post("/liked", response_model=LikeState)
async def toggle_liked(
    body: LikeToggle,
    db_session: AsyncSession = Depends(get_session),
) -> LikeState:
    user = await _require_user(db_session, body.telegram_id)
    liked = await LikedProductRepository(db_session).toggle(user.id, body.product_id)
    await db_session.commit()
    return LikeState(liked=liked)


# ── Catalog ──────────────────────────────────────────────


@router.get("/categories", response_model=list[CategoryOut])
async def categories(
    gateway: ErpGateway = Depends(get_gateway),
    cache: TTLCache = Depends(get_catalog_cache),
) -> list[CategoryOut]:
    cached = cache.get("categories")
    if cached is not None:
        return cached
    try:
        data = [CategoryOut(id=c.id, name=c.name) for c in await gateway.list_categories()]
    except ErpError:
        logger.exception("Categories unavailable")
        raise HTTPException(status_code=502, detail="ERP unavailable") from None
    cache.set("categories", data, CATALOG_TTL_SECONDS)
    return data


@router.get("/products", response_model=list[ProductOut])
async def products(
    category_id: str | None = Query(None, alias="categoryId"),
    gateway: ErpGateway = Depends(get_gateway),
    cache: TTLCache = Depends(get_catalog_cache),
) -> list[ProductOut]:
    key = f"products:{category_id or 'all'}"
    cached = cache.get(key)
    if cached is not None:
        return cached
    try:
        rows = await gateway.list_products(category_id)
    except ErpError:
        logger.exception("Products unavailable")
        raise HTTPException(status_code=502, detail="ERP unavailable") from None
    data = [
        ProductOut(
            id=p.id,
            name=p.name,
            price=float(p.price),
            currency=p.currency,
            article=p.article,
            stock=p.stock,
            image_count=p.image_count,
        )
        for p in rows
    ]
    cache.set(key, data, CATALOG_TTL_SECONDS)
    return data
