"""ERP gateway — async HTTP client for the MoySklad JSON API.

Every call goes through ``_request`` which turns transport failures and
error statuses into ``ErpError`` (``ErpNotFoundError`` for 404), so
callers decide between retry and surfacing.  Monetary wire values are
hundredths; they are converted to ``Decimal`` major units here and
nowhere else.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

import httpx

from order_bridge.config import settings
from order_bridge.domain.delivery import DeliveryMethod, DeliveryOptionMap
from order_bridge.domain.geo import GeoPoint
from order_bridge.domain.money import ZERO, from_erp, to_decimal, to_erp
from order_bridge.exceptions import ErpError, ErpNotFoundError
from order_bridge.services.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

PAGE_LIMIT = 100
STOCK_TTL_SECONDS = 5 * 60
DEFAULTS_TTL_SECONDS = 10 * 60
SALE_PRICE_NAME = "Цена продажи"


# ── Href helpers ─────────────────────────────────────────


def id_from_href(href: str | None, marker: str | None = None) -> str | None:
    """Extract the entity id from an ERP meta href.

    With *marker* (e.g. ``"/entity/demand/"``) the id must follow it;
    otherwise the last path segment is used.
    """
    if not href:
        return None
    if marker is not None:
        index = href.find(marker)
        if index == -1:
            return None
        tail = href[index + len(marker):]
    else:
        tail = href.rstrip("/").rsplit("/", 1)[-1]
    return tail.split("?")[0].split("/")[0] or None


def type_from_href(href: str | None) -> str | None:
    if not href or "/entity/" not in href:
        return None
    tail = href.split("/entity/", 1)[1]
    return tail.split("?")[0].split("/")[0] or None


def _meta_href(obj: Any) -> str | None:
    if isinstance(obj, dict):
        meta = obj.get("meta")
        if isinstance(meta, dict):
            return meta.get("href")
    return None


def parse_moment(moment: str | None) -> datetime | None:
    """Parse the ERP's ``"YYYY-MM-DD HH:MM:SS.fff"`` timestamps."""
    if not moment:
        return None
    try:
        return datetime.fromisoformat(moment.replace(" ", "T"))
    except ValueError:
        return None


def format_moment(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S")


# ── Records ──────────────────────────────────────────────


@dataclass
class ErpAttribute:
    """One custom attribute value as returned on a document."""

    id: str | None
    name: str
    value: Any
    href: str | None = None

    def matches(self, keys: list[str]) -> bool:
        """True if any of *keys* is this attribute's id, name, or part of its href."""
        for key in keys:
            if key == self.id or key == self.name or (self.href and key in self.href):
                return True
        return False

    @property
    def text(self) -> str | None:
        if self.value is None:
            return None
        if isinstance(self.value, dict):
            name = self.value.get("name")
            return str(name) if name is not None else None
        return str(self.value)

    @property
    def value_href(self) -> str | None:
        return _meta_href(self.value)


def find_attribute(attributes: list[ErpAttribute], keys: list[str]) -> ErpAttribute | None:
    if not keys:
        return None
    for attribute in attributes:
        if attribute.matches(keys):
            return attribute
    return None


@dataclass
class Product:
    id: str
    name: str
    price: Decimal
    currency: str | None = None
    article: str | None = None
    stock: int = 0
    image_count: int = 0


@dataclass
class Category:
    id: str
    name: str


@dataclass
class Counterparty:
    id: str
    name: str | None = None
    phone: str | None = None
    attributes: list[ErpAttribute] = field(default_factory=list)


@dataclass
class ErpPosition:
    """A document line: ordered or shipped goods."""

    assortment_id: str | None
    name: str
    quantity: Decimal
    price: Decimal | None = None


@dataclass
class ErpOrder:
    id: str
    name: str
    moment: str | None = None
    sum: Decimal | None = None
    payed_sum: Decimal = ZERO
    applicable: bool = True
    state_name: str | None = None
    agent_id: str | None = None
    agent_name: str | None = None
    shipment_address: str | None = None
    attributes: list[ErpAttribute] = field(default_factory=list)
    demand_ids: list[str] = field(default_factory=list)


@dataclass
class ErpShipment:
    id: str
    name: str
    moment: str | None = None
    sum: Decimal | None = None
    applicable: bool = True
    state_name: str | None = None
    agent_id: str | None = None
    agent_name: str | None = None
    shipment_address: str | None = None
    order_id: str | None = None
    attributes: list[ErpAttribute] = field(default_factory=list)


@dataclass
class ErpPayment:
    id: str
    name: str
    kind: str  # "paymentin" | "cashin"
    sum: Decimal | None = None
    moment: str | None = None
    agent_id: str | None = None

    @property
    def is_cash(self) -> bool:
        return self.kind == "cashin"


@dataclass
class OrderPage:
    rows: list[ErpOrder]
    total: int


@dataclass
class NewOrderLine:
    product_id: str
    quantity: int
    price: Decimal | None = None


@dataclass
class OrderExtras:
    """Custom fields written on a new customer order."""

    delivery_method: DeliveryMethod | None = None
    note: str | None = None
    address_text: str | None = None
    address_extra: str | None = None
    location: GeoPoint | None = None


@dataclass
class CreatedOrder:
    id: str
    name: str


@dataclass
class SalesRow:
    name: str
    quantity: Decimal


# ── Parsers ──────────────────────────────────────────────


def _parse_attributes(raw: Any) -> list[ErpAttribute]:
    attributes = []
    for item in raw or []:
        if not isinstance(item, dict):
            continue
        attributes.append(
            ErpAttribute(
                id=item.get("id"),
                name=item.get("name") or "",
                value=item.get("value"),
                href=_meta_href(item),
            )
        )
    return attributes


def _state_name(data: dict) -> str | None:
    state = data.get("state")
    if isinstance(state, dict):
        name = (state.get("name") or "").strip()
        return name or None
    return None


def _parse_order(data: dict) -> ErpOrder:
    agent = data.get("agent") or {}
    demands = data.get("demands") or []
    return ErpOrder(
        id=data["id"],
        name=data.get("name") or data["id"],
        moment=data.get("moment"),
        sum=from_erp(data.get("sum")),
        payed_sum=from_erp(data.get("payedSum")) or ZERO,
        applicable=data.get("applicable", True) is not False,
        state_name=_state_name(data),
        agent_id=id_from_href(_meta_href(agent), "/entity/counterparty/"),
        agent_name=agent.get("name"),
        shipment_address=data.get("shipmentAddress") or None,
        attributes=_parse_attributes(data.get("attributes")),
        demand_ids=[
            demand_id
            for demand_id in (
                demand.get("id") or id_from_href(_meta_href(demand), "/entity/demand/")
                for demand in demands
                if isinstance(demand, dict)
            )
            if demand_id
        ],
    )


def _parse_shipment(data: dict) -> ErpShipment:
    agent = data.get("agent") or {}
    return ErpShipment(
        id=data["id"],
        name=data.get("name") or data["id"],
        moment=data.get("moment"),
        sum=from_erp(data.get("sum")),
        applicable=data.get("applicable", True) is not False,
        state_name=_state_name(data),
        agent_id=id_from_href(_meta_href(agent), "/entity/counterparty/"),
        agent_name=agent.get("name"),
        shipment_address=data.get("shipmentAddress") or None,
        order_id=id_from_href(_meta_href(data.get("customerOrder")), "/entity/customerorder/"),
        attributes=_parse_attributes(data.get("attributes")),
    )


def _parse_position(data: dict) -> ErpPosition:
    assortment = data.get("assortment") or {}
    return ErpPosition(
        assortment_id=id_from_href(_meta_href(assortment)),
        name=assortment.get("name") or "Item",
        quantity=to_decimal(data.get("quantity")) or Decimal(0),
        price=from_erp(data.get("price")),
    )


def _pick_sale_price(prices: Any) -> tuple[Decimal, str | None]:
    if not prices:
        return ZERO, None
    preferred = next(
        (p for p in prices if ((p.get("priceType") or {}).get("name") or "") == SALE_PRICE_NAME),
        None,
    ) or next(
        (p for p in prices if "sale" in ((p.get("priceType") or {}).get("name") or "").lower()),
        None,
    )
    price = preferred or prices[0]
    currency = price.get("currency") or {}
    code = currency.get("isoCode") or currency.get("symbol") or currency.get("name")
    return from_erp(price.get("value")) or ZERO, code


class ErpGateway:
    """Typed async wrapper around the ERP's REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        *,
        cache: TTLCache | None = None,
        delivery_options: DeliveryOptionMap | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ) -> None:
        self._base_url = (base_url or settings.erp_base_url).rstrip("/")
        self._token = settings.erp_token if token is None else token
        self._cache = cache or TTLCache()
        self._delivery_options = delivery_options or DeliveryOptionMap(settings.delivery_option_ids)
        self._transport = transport
        self._timeout = timeout or settings.erp_timeout_seconds

    # ── Transport ────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        if not self._token:
            raise ErpError("ERP token is not configured")

        url = path if path.startswith("http") else f"{self._base_url}{path}"
        headers = {
            "Authorization": f"{settings.erp_auth_scheme} {self._token}",
            "Accept-Encoding": "gzip",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                resp = await client.request(method, url, params=params, json=json, headers=headers)
        except httpx.HTTPError as exc:
            logger.exception("ERP %s %s request error: %s", method, path, exc)
            raise ErpError(f"ERP request failed: {exc}") from exc

        if resp.status_code == 404:
            raise ErpNotFoundError(f"ERP {method} {path} → 404")
        if resp.status_code >= 400:
            logger.error("ERP %s %s failed: %s %s", method, path, resp.status_code, resp.text[:500])
            raise ErpError(f"ERP {method} {path} → {resp.status_code}", resp.status_code)
        if not resp.content:
            return {}
        return resp.json()

    async def _fetch_all(self, path: str, params: dict[str, Any] | None = None) -> list[dict]:
        """Follow ``limit``/``offset`` paging until ``meta.size`` rows are read."""
        rows: list[dict] = []
        offset = 0
        while True:
            page_params = dict(params or {}, limit=PAGE_LIMIT, offset=offset)
            data = await self._request("GET", path, params=page_params)
            page = data.get("rows") or []
            rows.extend(page)
            offset += len(page)
            size = (data.get("meta") or {}).get("size") or 0
            if not page or offset >= size:
                return rows

    def _href(self, entity: str, entity_id: str) -> str:
        return f"{self._base_url}/entity/{entity}/{entity_id}"

    def _meta(self, entity: str, entity_id: str) -> dict:
        return {
            "meta": {
                "href": self._href(entity, entity_id),
                "type": entity,
                "mediaType": "application/json",
            }
        }

    def _attribute(self, entity: str, attribute_id: str, value: Any) -> dict:
        return {
            "meta": {
                "href": f"{self._base_url}/entity/{entity}/metadata/attributes/{attribute_id}",
                "type": "attributemetadata",
                "mediaType": "application/json",
            },
            "value": value,
        }

    def _custom_entity_href(self, option: str) -> str:
        option = option.strip()
        if option.startswith(("http://", "https://")):
            return option
        option = option.lstrip("/")
        if option.startswith("entity/"):
            return f"{self._base_url}/{option}"
        if option.startswith("customentity/"):
            return f"{self._base_url}/entity/{option}"
        if "/" in option:
            return f"{self._base_url}/entity/customentity/{option}"
        entity_id = settings.erp_delivery_method_entity_id
        if entity_id:
            return f"{self._base_url}/entity/customentity/{entity_id}/{option}"
        return f"{self._base_url}/entity/customentity/{option}"

    # ── Cached lookups ───────────────────────────────────

    async def _stock_map(self) -> dict[str, int]:
        cached = self._cache.get("erp:stock")
        if cached is not None:
            return cached
        data = await self._request(
            "GET", "/report/stock/all", params={"filter": "stockMode=all", "limit": 1000}
        )
        stock: dict[str, int] = {}
        for row in data.get("rows") or []:
            meta = row.get("meta") or {}
            if meta.get("type") != "product":
                continue
            product_id = id_from_href(meta.get("href"))
            if product_id:
                stock[product_id] = max(0, int(row.get("stock") or 0))
        self._cache.set("erp:stock", stock, STOCK_TTL_SECONDS)
        return stock

    async def base_currency(self) -> str | None:
        """ISO code of the company's base currency (cached)."""
        cached = self._cache.get("erp:currency", default=False)
        if cached is not False:
            return cached
        data = await self._request("GET", "/context/companysettings")
        currency = data.get("currency") or {}
        code = currency.get("isoCode") or currency.get("symbol") or currency.get("name")
        self._cache.set("erp:currency", code, DEFAULTS_TTL_SECONDS)
        return code

    async def safe_base_currency(self) -> str | None:
        try:
            return await self.base_currency()
        except ErpError:
            logger.warning("Base currency unavailable, formatting without a label")
            return None

    async def _first_id(self, entity: str) -> str | None:
        key = f"erp:default:{entity}"
        cached = self._cache.get(key, default=False)
        if cached is not False:
            return cached
        data = await self._request("GET", f"/entity/{entity}", params={"limit": 1})
        rows = data.get("rows") or []
        entity_id = rows[0].get("id") if rows else None
        self._cache.set(key, entity_id, DEFAULTS_TTL_SECONDS)
        return entity_id

    async def default_organization_id(self) -> str | None:
        return settings.erp_organization_id or await self._first_id("organization")

    async def default_store_id(self) -> str | None:
        return settings.erp_store_id or await self._first_id("store")

    # ── Catalog ──────────────────────────────────────────

    def _product(self, row: dict, stock: dict[str, int], base_currency: str | None) -> Product:
        price, currency = _pick_sale_price(row.get("salePrices"))
        return Product(
            id=row["id"],
            name=row.get("name") or "",
            article=row.get("article"),
            price=price,
            currency=currency or base_currency,
            stock=stock.get(row["id"], 0),
            image_count=((row.get("images") or {}).get("meta") or {}).get("size") or 0,
        )

    async def list_products(self, category_id: str | None = None) -> list[Product]:
        params = {"expand": "salePrices.currency"}
        if category_id and category_id != "all":
            params["filter"] = f"productFolder={self._href('productfolder', category_id)}"
        rows, stock, currency = await asyncio.gather(
            self._fetch_all("/entity/product", params),
            self._stock_map(),
            self.safe_base_currency(),
        )
        return [self._product(row, stock, currency) for row in rows]

    async def list_categories(self) -> list[Category]:
        rows = await self._fetch_all("/entity/productfolder")
        if not rows:
            return [Category(id="all", name="All products")]
        return [Category(id=row["id"], name=row.get("name") or "") for row in rows]

    async def get_products(self, product_ids: list[str]) -> list[Product]:
        """Fetch products by id; ids the ERP does not know are skipped."""
        unique_ids = list(dict.fromkeys(pid for pid in product_ids if pid))

        async def fetch(product_id: str) -> dict | None:
            try:
                return await self._request(
                    "GET", f"/entity/product/{product_id}", params={"expand": "salePrices.currency"}
                )
            except ErpNotFoundError:
                logger.warning("Product %s not found in ERP", product_id)
                return None

        rows, stock, currency = await asyncio.gather(
            asyncio.gather(*(fetch(pid) for pid in unique_ids)),
            self._stock_map(),
            self.safe_base_currency(),
        )
        return [self._product(row, stock, currency) for row in rows if row]

    # ── Counterparties ───────────────────────────────────

    async def find_counterparty_by_phone(self, phone: str) -> str | None:
        data = await self._request(
            "GET", "/entity/counterparty", params={"filter": f"phone={phone}"}
        )
        rows = data.get("rows") or []
        return rows[0].get("id") if rows else None

    async def get_counterparty(self, counterparty_id: str) -> Counterparty:
        data = await self._request("GET", f"/entity/counterparty/{counterparty_id}")
        return Counterparty(
            id=data["id"],
            name=data.get("name"),
            phone=data.get("phone"),
            attributes=_parse_attributes(data.get("attributes")),
        )

    def _identity_attributes(self, telegram_id: str, username: str | None) -> list[dict]:
        attributes = []
        if settings.erp_counterparty_telegram_attr:
            attributes.append(
                self._attribute("counterparty", settings.erp_counterparty_telegram_attr, telegram_id)
            )
        if settings.erp_counterparty_username_attr and username:
            attributes.append(
                self._attribute("counterparty", settings.erp_counterparty_username_attr, username)
            )
        return attributes

    async def create_counterparty(
        self, name: str, phone: str, telegram_id: str, username: str | None = None
    ) -> str:
        body: dict[str, Any] = {"name": name, "phone": phone}
        attributes = self._identity_attributes(telegram_id, username)
        if attributes:
            body["attributes"] = attributes
        data = await self._request("POST", "/entity/counterparty", json=body)
        logger.info("Created ERP counterparty %s for telegram user %s", data.get("id"), telegram_id)
        return data["id"]

    async def update_counterparty_identity(
        self, counterparty_id: str, telegram_id: str, username: str | None = None
    ) -> None:
        attributes = self._identity_attributes(telegram_id, username)
        if not attributes:
            return
        await self._request(
            "PUT", f"/entity/counterparty/{counterparty_id}", json={"attributes": attributes}
        )

    async def update_counterparty_address(
        self,
        counterparty_id: str,
        *,
        location: GeoPoint | None = None,
        address_text: str | None = None,
        address_extra: str | None = None,
    ) -> None:
        attributes = []
        if settings.erp_counterparty_location_attr and location is not None:
            attributes.append(
                self._attribute(
                    "counterparty", settings.erp_counterparty_location_attr, location.map_link()
                )
            )
        if settings.erp_counterparty_address_attr and address_text:
            attributes.append(
                self._attribute("counterparty", settings.erp_counterparty_address_attr, address_text)
            )
        if settings.erp_counterparty_address_details_attr and address_extra:
            attributes.append(
                self._attribute(
                    "counterparty", settings.erp_counterparty_address_details_attr, address_extra
                )
            )
        if not attributes:
            return
        await self._request(
            "PUT", f"/entity/counterparty/{counterparty_id}", json={"attributes": attributes}
        )

    async def get_balance(self, counterparty_id: str) -> Decimal:
        """Counterparty balance in major units (negative means the customer owes)."""
        data = await self._request("GET", f"/report/counterparty/{counterparty_id}")
        return from_erp(data.get("balance")) or ZERO

    # ── Customer orders ──────────────────────────────────

    async def list_customer_orders(
        self, counterparty_id: str, offset: int = 0, limit: int = 10
    ) -> OrderPage:
        data = await self._request(
            "GET",
            "/entity/customerorder",
            params={
                "filter": f"agent={self._href('counterparty', counterparty_id)}",
                "order": "moment,desc",
                "limit": limit,
                "offset": offset,
                "expand": "state",
            },
        )
        rows = [_parse_order(row) for row in data.get("rows") or []]
        return OrderPage(rows=rows, total=(data.get("meta") or {}).get("size") or 0)

    async def create_customer_order(
        self, counterparty_id: str, lines: list[NewOrderLine], extras: OrderExtras
    ) -> CreatedOrder:
        organization_id = await self.default_organization_id()
        if not organization_id:
            raise ErpError("No organization available for order creation")
        store_id = await self.default_store_id()

        positions = []
        for line in lines:
            position: dict[str, Any] = {
                "quantity": line.quantity,
                "assortment": self._meta("product", line.product_id),
            }
            if line.price is not None:
                position["price"] = to_erp(line.price)
            positions.append(position)

        body: dict[str, Any] = {
            "organization": self._meta("organization", organization_id),
            "agent": self._meta("counterparty", counterparty_id),
            "positions": positions,
        }
        if store_id:
            body["store"] = self._meta("store", store_id)
        if extras.address_text:
            body["shipmentAddress"] = extras.address_text

        attributes = self._order_attributes(extras)
        if attributes:
            body["attributes"] = attributes

        data = await self._request("POST", "/entity/customerorder", json=body)
        logger.info("Created ERP order %s for counterparty %s", data.get("name"), counterparty_id)
        return CreatedOrder(id=data["id"], name=data.get("name") or data["id"])

    def _order_attributes(self, extras: OrderExtras) -> list[dict]:
        attributes = []
        if settings.erp_order_location_attr and extras.location is not None:
            attributes.append(
                self._attribute(
                    "customerorder", settings.erp_order_location_attr, extras.location.map_link()
                )
            )
        if settings.erp_order_address_attr and extras.address_text:
            attributes.append(
                self._attribute("customerorder", settings.erp_order_address_attr, extras.address_text)
            )
        if settings.erp_order_delivery_method_attr and extras.delivery_method is not None:
            option_id = self._delivery_options.option_id(extras.delivery_method)
            if option_id:
                reference = {
                    "meta": {
                        "href": self._custom_entity_href(option_id),
                        "type": "customentity",
                        "mediaType": "application/json",
                    }
                }
                attributes.append(
                    self._attribute(
                        "customerorder", settings.erp_order_delivery_method_attr, reference
                    )
                )
            else:
                logger.warning("No ERP option configured for delivery method %s", extras.delivery_method)
        note = (extras.note or "").strip()
        if settings.erp_order_note_attr and note:
            attributes.append(self._attribute("customerorder", settings.erp_order_note_attr, note))
        if settings.erp_order_address_details_attr and extras.address_extra:
            attributes.append(
                self._attribute(
                    "customerorder", settings.erp_order_address_details_attr, extras.address_extra
                )
            )
        return attributes

    async def get_customer_order(self, order_id: str) -> ErpOrder:
        data = await self._request(
            "GET",
            f"/entity/customerorder/{order_id}",
            params={"expand": "state,demands,demands.state,agent"},
        )
        return _parse_order(data)

    async def list_order_positions(self, order_id: str) -> list[ErpPosition]:
        rows = await self._fetch_all(
            f"/entity/customerorder/{order_id}/positions", {"expand": "assortment"}
        )
        return [_parse_position(row) for row in rows]

    async def list_order_demands(self, order_id: str) -> list[ErpShipment]:
        rows = await self._fetch_all(f"/entity/customerorder/{order_id}/demands", {"expand": "state"})
        return [_parse_shipment(row) for row in rows]

    # ── Shipments (demands) and payments ─────────────────

    async def get_demand(self, demand_id: str) -> ErpShipment:
        data = await self._request(
            "GET", f"/entity/demand/{demand_id}", params={"expand": "state,agent,customerOrder"}
        )
        return _parse_shipment(data)

    async def list_demand_positions(self, demand_id: str) -> list[ErpPosition]:
        rows = await self._fetch_all(f"/entity/demand/{demand_id}/positions", {"expand": "assortment"})
        return [_parse_position(row) for row in rows]

    async def get_payment(self, kind: str, payment_id: str) -> ErpPayment:
        """Fetch an incoming bank payment (``paymentin``) or cash receipt (``cashin``)."""
        if kind not in ("paymentin", "cashin"):
            raise ValueError(f"Unsupported payment kind {kind!r}")
        data = await self._request("GET", f"/entity/{kind}/{payment_id}", params={"expand": "agent"})
        return ErpPayment(
            id=data["id"],
            name=data.get("name") or data["id"],
            kind=kind,
            sum=from_erp(data.get("sum")),
            moment=data.get("moment"),
            agent_id=id_from_href(_meta_href(data.get("agent")), "/entity/counterparty/"),
        )

    # ── Reports ──────────────────────────────────────────

    async def order_sums_in_range(self, start: datetime, end: datetime) -> list[Decimal]:
        rows = await self._fetch_all(
            "/entity/customerorder",
            {"filter": f"moment>={format_moment(start)};moment<={format_moment(end)}"},
        )
        return [from_erp(row.get("sum")) or ZERO for row in rows]

    async def top_products_in_range(
        self, start: datetime, end: datetime, limit: int = 5
    ) -> list[SalesRow]:
        data = await self._request(
            "GET",
            "/report/sales/byproduct",
            params={"momentFrom": format_moment(start), "momentTo": format_moment(end), "limit": 100},
        )
        rows = [
            SalesRow(
                name=(row.get("assortment") or {}).get("name") or "Item",
                quantity=to_decimal(row.get("sellQuantity")) or Decimal(0),
            )
            for row in data.get("rows") or []
        ]
        rows.sort(key=lambda row: row.quantity, reverse=True)
        return rows[:limit]
