"""Builds and delivers PDF receipts for ERP shipments."""

from __future__ import annotations

import logging
from collections.abc import Callable

from order_bridge.domain.status import localize_status
from order_bridge.exceptions import ErpError, ForeignShipmentError
from order_bridge.models import User
from order_bridge.services.erp_client import ErpGateway, ErpPosition, ErpShipment, parse_moment
from order_bridge.services.reconciliation import ReceiptBuilder
from order_bridge.services.receipt import ReceiptData, receipt_filename, render_receipt
from order_bridge.services.telegram import TelegramChannel

logger = logging.getLogger(__name__)


class ShipmentReceipts:
    def __init__(
        self,
        gateway: ErpGateway,
        channel: TelegramChannel,
        renderer: Callable[[ReceiptData], bytes] = render_receipt,
    ) -> None:
        self._gateway = gateway
        self._channel = channel
        self._builder = ReceiptBuilder(gateway)
        self._render = renderer

    async def send(
        self,
        user: User,
        shipment: ErpShipment,
        positions: list[ErpPosition],
        currency: str | None,
    ) -> bool:
        """Reconcile, render and send the receipt for *shipment* to *user*.

        Balance before the shipment is reconstructed as balance after plus
        the shipment sum, since a shipment lowers what the customer has
        on account.
        """
        try:
            balance_after = await self._gateway.get_balance(shipment.agent_id)
        except ErpError:
            logger.warning("Balance for %s unavailable, receipt without balances", shipment.agent_id)
            balance_after = None
        balance_before = None
        if balance_after is not None and shipment.sum is not None:
            balance_before = balance_after + shipment.sum

        reconciled = await self._builder.build(shipment, positions)
        moment = parse_moment(shipment.moment)
        data = ReceiptData(
            shipment_name=shipment.name,
            lines=reconciled.positions,
            total=shipment.sum if shipment.sum is not None else reconciled.shipped_total,
            currency=currency,
            lang=user.language,
            moment=moment,
            status=localize_status(shipment.state_name, user.language),
            client_name=shipment.agent_name or user.display_name,
            client_phone=user.phone_number,
            delivery_address=shipment.shipment_address,
            balance_before=balance_before,
            balance_after=balance_after,
            left_to_pay=reconciled.left_to_pay,
        )
        content = self._render(data)
        return await self._channel.send_document(
            user.telegram_id, content, receipt_filename(shipment.name, moment)
        )

    async def send_on_demand(self, user: User, shipment_id: str) -> bool:
        """Send the receipt for a shipment the user asked for.

        Raises ``ForeignShipmentError`` when the shipment is someone
        else's, ``ErpNotFoundError`` when it does not exist.
        """
        shipment = await self._gateway.get_demand(shipment_id)
        if not user.counterparty_id or shipment.agent_id != user.counterparty_id:
            raise ForeignShipmentError(shipment_id)
        positions = await self._gateway.list_demand_positions(shipment_id)
        currency = await self._gateway.safe_base_currency()
        return await self.send(user, shipment, positions, currency)
