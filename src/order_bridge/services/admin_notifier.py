"""Broadcasts to administrators who opted into a notification type."""

from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from order_bridge.config import settings
from order_bridge.database.repository import AdminPreferenceRepository
from order_bridge.domain.geo import GeoPoint
from order_bridge.services.telegram import TelegramChannel

logger = logging.getLogger(__name__)


class AdminNotifier:
    def __init__(
        self,
        db_session: AsyncSession,
        channel: TelegramChannel,
        admin_ids: list[str] | None = None,
    ) -> None:
        self._prefs = AdminPreferenceRepository(db_session)
        self._channel = channel
        self._admin_ids = settings.admin_ids if admin_ids is None else admin_ids

    async def notify(
        self,
        kind: str,
        compose: Callable[[str], str],
        *,
        parse_mode: str | None = None,
        location: GeoPoint | None = None,
    ) -> int:
        """Send ``compose(lang)`` to every subscriber of *kind*; returns how many.

        A *location* follows each delivered text as a map pin.
        """
        if not self._admin_ids:
            return 0
        recipients = await self._prefs.subscribers(kind, self._admin_ids)
        sent = 0
        for admin in recipients:
            if await self._channel.send_text(
                admin.telegram_id, compose(admin.language), parse_mode=parse_mode
            ):
                sent += 1
                if location is not None:
                    await self._channel.send_location(admin.telegram_id, location.lat, location.lng)
        logger.info("Admin %s notification sent to %d/%d", kind, sent, len(recipients))
        return sent
