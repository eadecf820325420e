"""Tests for PDF receipt rendering and delivery."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import Mock

import pytest

from order_bridge.exceptions import ForeignShipmentError
from order_bridge.services.erp_client import ErpPosition, ErpShipment
from order_bridge.services.receipt import ReceiptData, receipt_filename, render_receipt
from order_bridge.services.reconciliation import ReceiptLine
from order_bridge.services.shipment_receipts import ShipmentReceipts


def _line(name, qty, price, remaining=None):
    qty, price = Decimal(qty), Decimal(price)
    return ReceiptLine(
        name=name,
        quantity=qty,
        price=price,
        total=qty * price,
        remaining_quantity=Decimal(remaining) if remaining is not None else None,
        remaining_sum=Decimal(remaining) * price if remaining is not None else None,
    )


def test_receipt_filename_is_safe():
    moment = datetime(2024, 5, 1, 14, 30, tzinfo=UTC)
    assert receipt_filename("00012", moment) == "00012_2024-05-01_14-30.pdf"
    assert receipt_filename("A/B:C", moment) == "A_B_C_2024-05-01_14-30.pdf"


def test_render_receipt_produces_pdf():
    data = ReceiptData(
        shipment_name="00007",
        lines=[_line("Product A", 2, "100.00", remaining=3), _line("Product B", 5, "200.00", remaining=0)],
        total=Decimal("1200.00"),
        currency="UZS",
        lang="uz",
        client_name="Dilshod",
        client_phone="+998901234567",
        delivery_address="Chilonzor 9",
        balance_before=Decimal("700.00"),
        balance_after=Decimal("-500.00"),
        left_to_pay=Decimal("300.00"),
    )
    content = render_receipt(data)
    assert content.startswith(b"%PDF")


def test_render_long_receipt_spans_pages():
    lines = [_line(f"Item number {i} with a fairly long descriptive name", 1, "10.00") for i in range(80)]
    short = render_receipt(ReceiptData(shipment_name="1", lines=lines[:2], total=Decimal("20.00")))
    long = render_receipt(ReceiptData(shipment_name="2", lines=lines, total=Decimal("800.00")))
    assert long.startswith(b"%PDF")
    assert len(long) > len(short)


@pytest.mark.asyncio
async def test_send_renders_and_delivers(gateway, channel, registered_user):
    gateway.get_balance.return_value = Decimal("-500.00")
    renderer = Mock(return_value=b"%PDF-fake")
    receipts = ShipmentReceipts(gateway, channel, renderer=renderer)
    shipment = ErpShipment(id="d-1", name="00007", sum=Decimal("200.00"), agent_id="cp-1")
    positions = [ErpPosition("p-a", "Product A", Decimal(2), Decimal("100.00"))]

    assert await receipts.send(registered_user, shipment, positions, "UZS")

    data = renderer.call_args.args[0]
    assert data.balance_after == Decimal("-500.00")
    assert data.balance_before == Decimal("-300.00")
    assert data.left_to_pay is None
    chat_id, content, filename = channel.send_document.await_args.args
    assert chat_id == "5001"
    assert content == b"%PDF-fake"
    assert filename.startswith("00007_")


@pytest.mark.asyncio
async def test_send_on_demand_rejects_foreign_shipment(gateway, channel, registered_user):
    gateway.get_demand.return_value = ErpShipment(id="d-9", name="00009", agent_id="cp-other")
    receipts = ShipmentReceipts(gateway, channel, renderer=Mock(return_value=b"%PDF"))

    with pytest.raises(ForeignShipmentError):
        await receipts.send_on_demand(registered_user, "d-9")
    channel.send_document.assert_not_awaited()
