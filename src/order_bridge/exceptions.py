"""Exception types shared across the order flow."""

from __future__ import annotations


class ErpError(Exception):
    """Transient or unexpected ERP failure (network, 5xx, timeout, bad status)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ErpNotFoundError(ErpError):
    """The ERP answered 404 for the requested entity."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=404)


class CounterpartyDeletedError(Exception):
    """The user's linked ERP counterparty no longer exists.

    Never recovered from silently: the user's registration is reset and
    they are asked to register again.
    """

    def __init__(self, counterparty_id: str) -> None:
        super().__init__(f"Counterparty {counterparty_id} was deleted in the ERP")
        self.counterparty_id = counterparty_id


class DraftIncompleteError(Exception):
    """The draft is not in a state that allows the requested step.

    ``reason`` is one of ``cart_empty``, ``choose_delivery``,
    ``needs_address``, ``not_registered`` or
    ``no_valid_items`` and doubles as the translation
    key for the user-facing message.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class OrderSubmissionError(Exception):
    """Creating the ERP order failed; the local draft was kept."""


class ForeignShipmentError(Exception):
    """A user asked for a shipment that belongs to another counterparty."""

    def __init__(self, shipment_id: str) -> None:
        super().__init__(f"Shipment {shipment_id} does not belong to the caller")
        self.shipment_id = shipment_id
