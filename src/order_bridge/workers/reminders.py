"""Reminder worker — post-order follow-ups and the weekly debt reminder."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_bridge.config import settings
from order_bridge.database.engine import async_session_factory
from order_bridge.database.repository import ReminderRepository, UserRepository, ensure_utc
from order_bridge.exceptions import ErpError
from order_bridge.services import keyboards
from order_bridge.services.erp_client import ErpGateway
from order_bridge.services.i18n import format_money, translate
from order_bridge.services.telegram import TelegramChannel
from order_bridge.workers.base import PeriodicWorker, utcnow

logger = logging.getLogger(__name__)

FOLLOWUP_BATCH = 100
DEBT_BATCH = 50


def same_iso_week(first: datetime, second: datetime) -> bool:
    return first.isocalendar()[:2] == second.isocalendar()[:2]


class ReminderWorker(PeriodicWorker):
    def __init__(
        self,
        gateway: ErpGateway,
        channel: TelegramChannel,
        *,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        interval: float | None = None,
        lock: asyncio.Lock | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(interval or settings.worker_interval_seconds, lock=lock, clock=clock)
        self._gateway = gateway
        self._channel = channel
        self._session_factory = session_factory
        self._tz = timezone(timedelta(hours=settings.report_timezone_offset))

    @property
    def name(self) -> str:
        return "ReminderWorker"

    async def tick(self, now: datetime) -> None:
        await self.send_followups(now)
        local = now.astimezone(self._tz)
        if local.weekday() == settings.debt_reminder_weekday and local.hour == settings.debt_reminder_hour:
            await self.send_debt_reminders(now)

    async def send_followups(self, now: datetime) -> int:
        """Deliver due follow-ups and purge old sent ones; returns how many were sent."""
        sent = 0
        async with self._session_factory() as session:
            reminders = ReminderRepository(session)
            for reminder, user in await reminders.list_due(now, FOLLOWUP_BATCH):
                if await self._channel.send_text(
                    user.telegram_id,
                    translate(user.language, "reminder_followup"),
                    reply_keyboard=keyboards.main_menu(user),
                ):
                    sent += 1
                await reminders.mark_sent(reminder, now)

            cutoff = now - timedelta(days=settings.reminder_retention_days)
            purged = await reminders.purge_sent_before(cutoff)
            await session.commit()

        if sent or purged:
            logger.info("Follow-ups: %d sent, %d old reminders purged", sent, purged)
        return sent

    async def send_debt_reminders(self, now: datetime) -> int:
        """Remind every registered user with a negative balance, once per ISO week.

        The user's reminder timestamp is stamped even when the balance
        lookup fails, so a broken counterparty is retried next week rather
        than every tick.
        """
        currency = await self._gateway.safe_base_currency()
        local_now = now.astimezone(self._tz)
        reminded = 0
        cursor = 0
        while True:
            async with self._session_factory() as session:
                users = UserRepository(session)
                batch = await users.list_registered(cursor, DEBT_BATCH)
                if not batch:
                    break
                cursor = batch[-1].id

                for user in batch:
                    last = ensure_utc(user.last_debt_reminder_at)
                    if last is not None and same_iso_week(last.astimezone(self._tz), local_now):
                        continue
                    try:
                        balance = await self._gateway.get_balance(user.counterparty_id)
                        if balance < 0:
                            amount = format_money(abs(balance), currency, user.language)
                            await self._channel.send_text(
                                user.telegram_id, translate(user.language, "debt_reminder", amount=amount)
                            )
                            reminded += 1
                    except ErpError:
                        logger.exception("Debt reminder for user %s failed", user.telegram_id)
                    finally:
                        user.last_debt_reminder_at = now
                await session.commit()

        logger.info("Debt reminders sent: %d", reminded)
        return reminded
