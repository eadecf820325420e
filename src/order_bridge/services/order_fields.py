"""Reads the tenant-specific custom fields of ERP orders.

Which attribute holds the delivery method, the address or the driver's
car depends on how the ERP account was set up, so the attribute ids
come from configuration.
"""

from __future__ import annotations

from dataclasses import dataclass

from order_bridge.config import settings
from order_bridge.domain.address import AddressExtra
from order_bridge.domain.delivery import DeliveryMethod, DeliveryOptionMap
from order_bridge.domain.geo import GeoPoint
from order_bridge.services.erp_client import ErpAttribute, ErpOrder, find_attribute


@dataclass
class DriverInfo:
    model: str | None
    number: str | None


def _keys(raw: str) -> list[str]:
    return [raw] if raw else []


class OrderFieldReader:
    def __init__(
        self,
        *,
        delivery_options: DeliveryOptionMap | None = None,
        delivery_method_attrs: list[str] | None = None,
        address_attrs: list[str] | None = None,
        address_extra_attrs: list[str] | None = None,
        location_attrs: list[str] | None = None,
        driver_model_attrs: list[str] | None = None,
        driver_number_attrs: list[str] | None = None,
    ) -> None:
        self._options = delivery_options or DeliveryOptionMap(settings.delivery_option_ids)
        self._delivery_attrs = (
            delivery_method_attrs
            if delivery_method_attrs is not None
            else _keys(settings.erp_order_delivery_method_attr)
        )
        self._address_attrs = (
            address_attrs if address_attrs is not None else _keys(settings.erp_order_address_attr)
        )
        self._extra_attrs = (
            address_extra_attrs
            if address_extra_attrs is not None
            else _keys(settings.erp_order_address_details_attr)
        )
        self._location_attrs = (
            location_attrs if location_attrs is not None else _keys(settings.erp_order_location_attr)
        )
        self._driver_model_attrs = (
            driver_model_attrs if driver_model_attrs is not None else settings.driver_model_attrs
        )
        self._driver_number_attrs = (
            driver_number_attrs if driver_number_attrs is not None else settings.driver_number_attrs
        )

    def delivery_method(self, attributes: list[ErpAttribute]) -> DeliveryMethod | None:
        attribute = find_attribute(attributes, self._delivery_attrs)
        if attribute is None or attribute.value is None:
            return None
        return self._options.resolve(attribute.value_href, attribute.text)

    def address_text(self, order: ErpOrder) -> str | None:
        attribute = find_attribute(order.attributes, self._address_attrs)
        return (attribute.text if attribute else None) or order.shipment_address

    def address_extra(self, attributes: list[ErpAttribute]) -> AddressExtra | None:
        attribute = find_attribute(attributes, self._extra_attrs)
        if attribute is None or not attribute.text:
            return None
        extra = AddressExtra.parse(attribute.text)
        return None if extra.is_empty else extra

    def raw_address_extra(self, attributes: list[ErpAttribute]) -> str | None:
        attribute = find_attribute(attributes, self._extra_attrs)
        return attribute.text if attribute else None

    def location(self, attributes: list[ErpAttribute]) -> GeoPoint | None:
        """Coordinates from the location field, else from any map link among the fields."""
        attribute = find_attribute(attributes, self._location_attrs)
        if attribute is not None and isinstance(attribute.value, str):
            point = GeoPoint.parse(attribute.value)
            if point is not None:
                return point
        for candidate in attributes:
            if isinstance(candidate.value, str) and candidate.value.startswith(("http://", "https://")):
                point = GeoPoint.parse(candidate.value)
                if point is not None:
                    return point
        return None

    def driver_info(self, attributes: list[ErpAttribute]) -> DriverInfo | None:
        model = find_attribute(attributes, self._driver_model_attrs)
        number = find_attribute(attributes, self._driver_number_attrs)
        model_text = model.text if model else None
        number_text = number.text if number else None
        if not model_text and not number_text:
            return None
        return DriverInfo(model=model_text, number=number_text)
