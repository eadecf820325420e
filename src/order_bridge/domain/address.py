"""Structured delivery-address extras and display helpers.

The ERP stores the extras (apartment, entrance, floor, intercom) in a
single text custom field, ``"kv. 12; kirish 2; qavat 5; domofon 34"``.
``AddressExtra.parse`` / ``AddressExtra.encode`` are the only code that
knows this layout.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from order_bridge.domain.geo import GeoPoint

_SEPARATOR = ";"

_FIELDS: tuple[tuple[str, re.Pattern[str], str], ...] = (
    ("apartment", re.compile(r"^kv\.\s*(.+)$", re.IGNORECASE), "kv. {}"),
    ("entrance", re.compile(r"^kirish\s+(.+)$", re.IGNORECASE), "kirish {}"),
    ("floor", re.compile(r"^qavat\s+(.+)$", re.IGNORECASE), "qavat {}"),
    ("intercom", re.compile(r"^domofon\s+(.+)$", re.IGNORECASE), "domofon {}"),
)

MAX_SHORT_ADDRESS = 30


@dataclass(frozen=True)
class AddressExtra:
    """Apartment-level details attached to a delivery address."""

    apartment: str | None = None
    entrance: str | None = None
    floor: str | None = None
    intercom: str | None = None
    other: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def parse(cls, raw: str | None) -> AddressExtra:
        """Split the delimited ERP form into named fields.

        Parts that match none of the known prefixes are kept verbatim in
        ``other`` so nothing the operator typed is lost.
        """
        values: dict[str, str] = {}
        other: list[str] = []
        for part in (raw or "").split(_SEPARATOR):
            part = part.strip()
            if not part:
                continue
            for name, pattern, _ in _FIELDS:
                match = pattern.match(part)
                if match and name not in values:
                    values[name] = match.group(1).strip()
                    break
            else:
                other.append(part)
        return cls(**values, other=tuple(other))

    def encode(self) -> str:
        parts = []
        for name, _, template in _FIELDS:
            value = getattr(self, name)
            if value:
                parts.append(template.format(value))
        parts.extend(self.other)
        return f"{_SEPARATOR} ".join(parts)

    @property
    def is_empty(self) -> bool:
        return not (self.apartment or self.entrance or self.floor or self.intercom or self.other)

    def labelled(self) -> list[tuple[str, str]]:
        """``(field name, value)`` pairs for display, ``other`` as ``("", text)``."""
        pairs = [(name, getattr(self, name)) for name, _, _ in _FIELDS if getattr(self, name)]
        pairs.extend(("", text) for text in self.other)
        return pairs


def short_address(text: str | None) -> str | None:
    """Compact one-line form for keyboard buttons and summaries."""
    if not text:
        return None
    point = GeoPoint.parse(text)
    if point is not None:
        return point.display()
    if len(text) > MAX_SHORT_ADDRESS:
        return text[: MAX_SHORT_ADDRESS - 3] + "..."
    return text
