"""GeoPoint value type — parsing and formatting of coordinate pairs.

Coordinates reach us in several textual shapes: a bare ``"lat,lng"``
pair (the encoding used for a user's saved default address), Google-style
``@lat,lng`` / ``q=lat,lng`` links and Yandex ``ll=lng,lat`` /
``pt=lng,lat`` links (the ERP's location custom field holds a map link).
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_NUM = r"(-?\d+(?:\.\d+)?)"

# (pattern, longitude_first)
_PATTERNS: tuple[tuple[re.Pattern[str], bool], ...] = (
    (re.compile(rf"^\s*{_NUM}\s*,\s*{_NUM}\s*$"), False),
    (re.compile(rf"@{_NUM},{_NUM}"), False),
    (re.compile(rf"[?&]q={_NUM}(?:,|%2C){_NUM}", re.IGNORECASE), False),
    (re.compile(rf"[?&]ll={_NUM}(?:,|%2C){_NUM}", re.IGNORECASE), True),
    (re.compile(rf"[?&]pt={_NUM}(?:,|%2C){_NUM}", re.IGNORECASE), True),
)


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lng: float

    def __post_init__(self) -> None:
        if not (-90 <= self.lat <= 90 and -180 <= self.lng <= 180):
            raise ValueError(f"Coordinates out of range: {self.lat}, {self.lng}")

    @classmethod
    def parse(cls, text: str | None) -> GeoPoint | None:
        """Extract a coordinate pair from free text or a map link.

        Returns ``None`` when nothing parseable (or in range) is found.
        """
        if not text:
            return None
        for pattern, lng_first in _PATTERNS:
            match = pattern.search(text)
            if not match:
                continue
            first, second = float(match.group(1)), float(match.group(2))
            lat, lng = (second, first) if lng_first else (first, second)
            try:
                return cls(lat=lat, lng=lng)
            except ValueError:
                continue
        return None

    def encode(self) -> str:
        """Storage form used for ``User.default_address``."""
        return f"{self.lat},{self.lng}"

    def map_link(self) -> str:
        """Yandex Maps link, the form written into the ERP's text field."""
        return f"https://yandex.ru/maps/?ll={self.lng},{self.lat}&z=16&pt={self.lng},{self.lat}"

    def display(self) -> str:
        return f"GPS ({self.lat:.4f}, {self.lng:.4f})"
