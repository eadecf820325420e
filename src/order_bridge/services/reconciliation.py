"""Order / shipment reconciliation — what is left to ship and to pay.

A customer order can be fulfilled by several shipments (demands).  For a
receipt we need, per order line, what the shipment at hand carries, how much
of the ordered quantity is still outstanding across *all* shipments issued
so far, and how much money is left on the order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from order_bridge.domain.money import ZERO, round2
from order_bridge.exceptions import ErpError
from order_bridge.services.erp_client import ErpGateway, ErpPosition, ErpShipment

logger = logging.getLogger(__name__)


@dataclass
class ReceiptLine:
    """One shipped line as printed on the receipt.

    ``remaining_quantity`` / ``remaining_sum`` are ``None`` when the line
    could not be matched to the order (unknown), and zero when the
    ordered quantity is fully shipped.
    """

    name: str
    quantity: Decimal
    price: Decimal
    total: Decimal
    remaining_quantity: Decimal | None = None
    remaining_sum: Decimal | None = None


@dataclass
class ReconciledReceipt:
    positions: list[ReceiptLine]
    left_to_pay: Decimal | None
    shipped_total: Decimal
    order_total: Decimal | None = None

    @property
    def has_remaining(self) -> bool:
        return any(line.remaining_quantity for line in self.positions)


def normalize_name(name: str | None) -> str:
    return " ".join((name or "").lower().split())


def _match(line: ErpPosition, order_lines: Sequence[ErpPosition]) -> int | None:
    """Index of the order line *line* belongs to: by product id, then by name."""
    if line.assortment_id:
        for index, order_line in enumerate(order_lines):
            if order_line.assortment_id == line.assortment_id:
                return index
    name = normalize_name(line.name)
    if name:
        for index, order_line in enumerate(order_lines):
            if normalize_name(order_line.name) == name:
                return index
    return None


def _unit_price(order_line: ErpPosition | None, line: ErpPosition) -> Decimal:
    if order_line is not None and order_line.price is not None:
        return order_line.price
    return line.price if line.price is not None else ZERO


def order_total(order_lines: Sequence[ErpPosition], stated_sum: Decimal | None) -> Decimal:
    """The stated order sum, or Σ price × quantity when it is zero or missing."""
    if stated_sum is not None and stated_sum > 0:
        return stated_sum
    return round2(sum((line.price or ZERO) * line.quantity for line in order_lines) or ZERO)


def _allocate(capacities: Sequence[Decimal], amount: Decimal) -> list[Decimal]:
    """Spread *amount* over lines in order; overflow lands on the last line."""
    shares = []
    for capacity in capacities:
        share = min(amount, max(capacity, ZERO))
        shares.append(share)
        amount -= share
    if shares:
        shares[-1] += amount
    return shares


def reconcile_shipment(
    shipment_lines: Sequence[ErpPosition],
    order_lines: Sequence[ErpPosition],
    all_shipment_lines: Sequence[Sequence[ErpPosition]],
    order_sum: Decimal | None,
) -> ReconciledReceipt:
    """Reconcile one shipment against its order and every sibling shipment.

    ``all_shipment_lines`` holds the lines of every shipment issued
    against the order, including this one.  The receipt carries one line
    per order line (quantity shipped by *this* shipment, possibly zero)
    followed by shipment lines that match nothing on the order.  Order
    lines for the same product share one shipped pool, filled in order.
    """
    keys = [line.assortment_id or normalize_name(line.name) for line in order_lines]
    groups: dict[str, list[int]] = {}
    for index, key in enumerate(keys):
        groups.setdefault(key, []).append(index)

    shipped_qty: dict[str, Decimal] = {}
    fallback_price: dict[str, Decimal] = {}
    shipped_total = Decimal(0)
    for lines in all_shipment_lines:
        for line in lines:
            index = _match(line, order_lines)
            matched = order_lines[index] if index is not None else None
            if index is not None:
                key = keys[index]
                shipped_qty[key] = shipped_qty.get(key, ZERO) + line.quantity
                if line.price is not None:
                    fallback_price.setdefault(key, line.price)
            shipped_total += line.quantity * _unit_price(matched, line)

    current_qty: dict[str, Decimal] = {}
    unmatched = []
    for line in shipment_lines:
        index = _match(line, order_lines)
        if index is None:
            unmatched.append(line)
            continue
        key = keys[index]
        current_qty[key] = current_qty.get(key, ZERO) + line.quantity

    positions: list[ReceiptLine | None] = [None] * len(order_lines)
    for key, indices in groups.items():
        ordered = [order_lines[i].quantity for i in indices]
        current = current_qty.get(key, ZERO)
        before = _allocate(ordered, max(ZERO, shipped_qty.get(key, ZERO) - current))
        now = _allocate([cap - prior for cap, prior in zip(ordered, before)], current)
        for i, prior, quantity in zip(indices, before, now):
            order_line = order_lines[i]
            price = order_line.price
            if price is None:
                price = fallback_price.get(key, ZERO)
            remaining = max(ZERO, order_line.quantity - prior - quantity)
            positions[i] = ReceiptLine(
                name=order_line.name,
                quantity=quantity,
                price=price,
                total=round2(price * quantity),
                remaining_quantity=remaining,
                remaining_sum=round2(remaining * price),
            )

    receipt_lines = [line for line in positions if line is not None]
    for line in unmatched:
        price = _unit_price(None, line)
        receipt_lines.append(
            ReceiptLine(name=line.name, quantity=line.quantity, price=price, total=round2(price * line.quantity))
        )

    total = order_total(order_lines, order_sum)
    shipped_total = round2(shipped_total)
    return ReconciledReceipt(
        positions=receipt_lines,
        left_to_pay=max(ZERO, round2(total - shipped_total)),
        shipped_total=shipped_total,
        order_total=total,
    )


def unreconciled(shipment: ErpShipment, shipment_lines: Sequence[ErpPosition]) -> ReconciledReceipt:
    """Bare shipment lines, used when the parent order cannot be read."""
    positions = [
        ReceiptLine(
            name=line.name,
            quantity=line.quantity,
            price=line.price or ZERO,
            total=round2((line.price or ZERO) * line.quantity),
        )
        for line in shipment_lines
    ]
    shipped = shipment.sum
    if shipped is None:
        shipped = round2(sum((line.total for line in positions), Decimal(0)))
    return ReconciledReceipt(positions=positions, left_to_pay=None, shipped_total=shipped)


class ReceiptBuilder:
    """Fetches what ``reconcile_shipment`` needs and degrades on ERP failure."""

    def __init__(self, gateway: ErpGateway) -> None:
        self._gateway = gateway

    async def build(
        self, shipment: ErpShipment, shipment_lines: Sequence[ErpPosition]
    ) -> ReconciledReceipt:
        if not shipment.order_id:
            return unreconciled(shipment, shipment_lines)
        try:
            order, order_lines, siblings = await asyncio.gather(
                self._gateway.get_customer_order(shipment.order_id),
                self._gateway.list_order_positions(shipment.order_id),
                self._gateway.list_order_demands(shipment.order_id),
            )
            sibling_ids = [s.id for s in siblings if s.applicable and s.id != shipment.id]
            sibling_lines = await asyncio.gather(
                *(self._gateway.list_demand_positions(sid) for sid in sibling_ids)
            )
        except ErpError:
            logger.exception("Reconciliation for shipment %s failed, using bare lines", shipment.id)
            return unreconciled(shipment, shipment_lines)

        all_lines = [*sibling_lines, list(shipment_lines)]
        return reconcile_shipment(shipment_lines, order_lines, all_lines, order.sum)
