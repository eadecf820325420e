"""Tests for shipment reconciliation and the receipt builder."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from order_bridge.exceptions import ErpError
from order_bridge.services.erp_client import ErpOrder, ErpPosition, ErpShipment
from order_bridge.services.reconciliation import (
    ReceiptBuilder,
    order_total,
    reconcile_shipment,
    unreconciled,
)


def _pos(pid, name, qty, price=None):
    return ErpPosition(
        assortment_id=pid,
        name=name,
        quantity=Decimal(qty),
        price=Decimal(price) if price is not None else None,
    )


ORDER_LINES = [_pos("a", "Product A", 10, "100.00"), _pos("b", "Product B", 5, "200.00")]


# ──────────────────────────────────────────────────────────
# Test 1: partial shipments [(A,4)] then [(A,3),(B,5)]
# ──────────────────────────────────────────────────────────
def test_first_partial_shipment_lists_every_order_line():
    first = [_pos("a", "Product A", 4)]

    receipt = reconcile_shipment(first, ORDER_LINES, [first], Decimal("2000.00"))

    a, b = receipt.positions
    assert (a.name, a.quantity, a.total) == ("Product A", Decimal(4), Decimal("400.00"))
    assert a.remaining_quantity == Decimal(6)
    assert a.remaining_sum == Decimal("600.00")
    assert (b.name, b.quantity, b.total) == ("Product B", Decimal(0), Decimal("0.00"))
    assert b.remaining_quantity == Decimal(5)
    assert b.remaining_sum == Decimal("1000.00")
    assert receipt.shipped_total == Decimal("400.00")
    assert receipt.left_to_pay == Decimal("1600.00")


def test_second_shipment_remaining_and_left_to_pay():
    first = [_pos("a", "Product A", 4)]
    second = [_pos("a", "Product A", 3), _pos("b", "Product B", 5)]

    receipt = reconcile_shipment(second, ORDER_LINES, [first, second], Decimal("2000.00"))

    a, b = receipt.positions
    assert a.quantity == Decimal(3)
    assert a.remaining_quantity == Decimal(3)
    assert a.remaining_sum == Decimal("300.00")
    assert a.price == Decimal("100.00")
    assert b.quantity == Decimal(5)
    assert b.remaining_quantity == Decimal(0)
    assert b.remaining_sum == Decimal("0.00")
    assert b.total == Decimal("1000.00")
    assert receipt.shipped_total == Decimal("1700.00")
    assert receipt.left_to_pay == Decimal("2000.00") - Decimal("1700.00")
    assert receipt.has_remaining


def test_duplicate_order_lines_share_shipped_quantity():
    order = [_pos("a", "Product A", 3, "100.00"), _pos("a", "Product A", 4, "100.00")]
    first = [_pos("a", "Product A", 2)]
    second = [_pos("a", "Product A", 3)]

    receipt = reconcile_shipment(second, order, [first, second], None)

    head, tail = receipt.positions
    assert (head.quantity, head.remaining_quantity) == (Decimal(1), Decimal(0))
    assert (tail.quantity, tail.remaining_quantity) == (Decimal(2), Decimal(2))
    assert tail.remaining_sum == Decimal("200.00")
    assert receipt.left_to_pay == Decimal("200.00")


# ──────────────────────────────────────────────────────────
# Test 2: lines match by normalized name when ids are missing
# ──────────────────────────────────────────────────────────
def test_match_by_name_and_unknown_lines():
    lines = [_pos(None, "  product   a ", 10), _pos("zzz", "Mystery", 1, "50.00")]

    receipt = reconcile_shipment(lines, ORDER_LINES, [lines], None)

    known, untouched, unknown = receipt.positions
    assert known.remaining_quantity == Decimal(0)
    assert untouched.quantity == Decimal(0)
    assert untouched.remaining_quantity == Decimal(5)
    assert unknown.name == "Mystery"
    assert unknown.remaining_quantity is None
    assert unknown.total == Decimal("50.00")


# ──────────────────────────────────────────────────────────
# Test 3: over-shipping never yields negative figures
# ──────────────────────────────────────────────────────────
def test_overshipment_is_clamped():
    lines = [_pos("a", "Product A", 10), _pos("b", "Product B", 8)]
    receipt = reconcile_shipment(lines, ORDER_LINES, [lines], Decimal("2000.00"))
    assert receipt.positions[1].remaining_quantity == Decimal(0)
    assert receipt.shipped_total == Decimal("2600.00")
    assert receipt.left_to_pay == Decimal("0.00")


def test_order_total_falls_back_to_lines():
    assert order_total(ORDER_LINES, Decimal("0")) == Decimal("2000.00")
    assert order_total(ORDER_LINES, Decimal("1500.00")) == Decimal("1500.00")


def test_unreconciled_uses_shipment_sum():
    shipment = ErpShipment(id="d1", name="00001", sum=Decimal("700.00"))
    receipt = unreconciled(shipment, [_pos("a", "Product A", 7, "100.00")])
    assert receipt.left_to_pay is None
    assert receipt.shipped_total == Decimal("700.00")
    assert receipt.positions[0].remaining_quantity is None


# ──────────────────────────────────────────────────────────
# ReceiptBuilder
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_builder_skips_voided_siblings():
    gateway = AsyncMock()
    gateway.get_customer_order.return_value = ErpOrder(id="o1", name="1", sum=Decimal("2000.00"))
    gateway.list_order_positions.return_value = ORDER_LINES
    gateway.list_order_demands.return_value = [
        ErpShipment(id="d0", name="void", applicable=False),
        ErpShipment(id="d1", name="first"),
        ErpShipment(id="d2", name="this"),
    ]
    gateway.list_demand_positions.return_value = [_pos("a", "Product A", 5)]
    current = ErpShipment(id="d2", name="this", order_id="o1")

    receipt = await ReceiptBuilder(gateway).build(
        current, [_pos("a", "Product A", 2), _pos("b", "Product B", 5)]
    )

    gateway.list_demand_positions.assert_awaited_once_with("d1")
    assert receipt.left_to_pay == Decimal("300.00")


@pytest.mark.asyncio
async def test_builder_degrades_on_erp_failure():
    gateway = AsyncMock()
    gateway.get_customer_order.side_effect = ErpError("boom", 503)
    gateway.list_order_positions.return_value = ORDER_LINES
    gateway.list_order_demands.return_value = []
    shipment = ErpShipment(id="d1", name="1", order_id="o1", sum=Decimal("200.00"))

    receipt = await ReceiptBuilder(gateway).build(shipment, [_pos("a", "Product A", 2, "100.00")])

    assert receipt.left_to_pay is None
    assert receipt.shipped_total == Decimal("200.00")
