"""Delivery method enum and its mapping from ERP custom-entity options."""

from __future__ import annotations

import enum
import logging

logger = logging.getLogger(__name__)


class DeliveryMethod(str, enum.Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


# Last-resort keywords for option names that are not in the configured table.
_FREE_TEXT_KEYWORDS: tuple[tuple[DeliveryMethod, tuple[str, ...]], ...] = (
    (DeliveryMethod.DELIVERY, ("delivery", "доставка", "етказ", "yetkazib")),
    (DeliveryMethod.PICKUP, ("pickup", "самовывоз", "олиб", "olib")),
)


class DeliveryOptionMap:
    """Maps ERP delivery-method option ids to ``DeliveryMethod`` values.

    The table is built once from configuration.  ``resolve`` tries the
    option's id/href against the table first; substring matching on the
    option's display name is only a fallback for options that were added
    in the ERP without updating configuration.
    """

    def __init__(self, option_ids: dict[str, str]) -> None:
        self._by_id = {
            option_id: DeliveryMethod(method) for option_id, method in option_ids.items()
        }

    def option_id(self, method: DeliveryMethod) -> str | None:
        for option_id, mapped in self._by_id.items():
            if mapped is method:
                return option_id
        return None

    def resolve(self, option_href: str | None, option_name: str | None) -> DeliveryMethod | None:
        if option_href:
            for option_id, method in self._by_id.items():
                if option_href == option_id or option_href.rstrip("/").endswith(option_id):
                    return method
        if option_name:
            lowered = option_name.lower()
            for method, keywords in _FREE_TEXT_KEYWORDS:
                if any(keyword in lowered for keyword in keywords):
                    logger.debug("Delivery option %r resolved by name fallback", option_name)
                    return method
        return None
