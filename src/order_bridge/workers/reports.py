"""Report worker — daily and weekly sales digests for administrators."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta, timezone
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_bridge.config import settings
from order_bridge.database.engine import async_session_factory
from order_bridge.database.repository import UserRepository
from order_bridge.domain.money import ZERO
from order_bridge.exceptions import ErpError
from order_bridge.models.user import DEFAULT_LANGUAGE
from order_bridge.services.email_service import EmailService
from order_bridge.services.erp_client import ErpGateway, SalesRow
from order_bridge.services.i18n import format_money, format_quantity, translate
from order_bridge.services.telegram import TelegramChannel
from order_bridge.workers.base import PeriodicWorker, utcnow

logger = logging.getLogger(__name__)

TOP_PRODUCTS = 5
SUNDAY = 6


@dataclass
class DigestData:
    orders: int = 0
    revenue: Decimal = ZERO
    new_users: int = 0
    currency: str | None = None
    top_products: list[SalesRow] = field(default_factory=list)


def _display(day: date) -> str:
    return day.strftime("%d.%m.%Y")


def build_digest(lang: str, title: str, data: DigestData) -> str:
    lines = [
        title,
        "",
        translate(lang, "report_orders", count=data.orders),
        translate(lang, "report_revenue", amount=format_money(data.revenue, data.currency, lang)),
        translate(lang, "report_new_users", count=data.new_users),
        "",
        translate(lang, "report_top_products"),
    ]
    if data.top_products:
        lines.extend(f"  • {row.name}: {format_quantity(row.quantity)}" for row in data.top_products)
    else:
        lines.append(f"  {translate(lang, 'report_no_sales')}")
    return "\n".join(lines)


class ReportWorker(PeriodicWorker):
    """Sends the digests once the local clock reaches ``REPORT_HOUR``.

    The daily digest goes out once per local date; on Sundays the
    Monday–Sunday weekly digest follows it.
    """

    def __init__(
        self,
        gateway: ErpGateway,
        channel: TelegramChannel,
        *,
        email: EmailService | None = None,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        admin_ids: list[str] | None = None,
        interval: float | None = None,
        lock: asyncio.Lock | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(interval or settings.worker_interval_seconds, lock=lock, clock=clock)
        self._gateway = gateway
        self._channel = channel
        self._email = email or EmailService()
        self._session_factory = session_factory
        self._admin_ids = settings.admin_ids if admin_ids is None else admin_ids
        self._tz = timezone(timedelta(hours=settings.report_timezone_offset))
        self.last_daily: date | None = None
        self.last_weekly: date | None = None

    @property
    def name(self) -> str:
        return "ReportWorker"

    async def tick(self, now: datetime) -> None:
        local = now.astimezone(self._tz)
        if local.hour != settings.report_hour:
            return
        today = local.date()

        if self.last_daily != today:
            await self.send_daily(today)
            self.last_daily = today
        if local.weekday() == SUNDAY and self.last_weekly != today:
            await self.send_weekly(today)
            self.last_weekly = today

    async def send_daily(self, day: date) -> int:
        data = await self.collect(day, day)
        return await self._broadcast(lambda lang: translate(lang, "report_daily_title", date=_display(day)), data)

    async def send_weekly(self, sunday: date) -> int:
        monday = sunday - timedelta(days=sunday.weekday())
        data = await self.collect(monday, sunday)
        return await self._broadcast(
            lambda lang: translate(lang, "report_weekly_title", start=_display(monday), end=_display(sunday)),
            data,
        )

    async def collect(self, first_day: date, last_day: date) -> DigestData:
        """Figures for the local days ``first_day..last_day`` inclusive.

        ERP queries take local wall-clock bounds; the user count is taken
        over the matching UTC interval.
        """
        start_local = datetime.combine(first_day, time.min)
        end_local = datetime.combine(last_day, time.max).replace(microsecond=0)
        start_utc = start_local.replace(tzinfo=self._tz).astimezone(UTC)
        end_utc = datetime.combine(last_day + timedelta(days=1), time.min, tzinfo=self._tz).astimezone(UTC)

        data = DigestData(currency=await self._gateway.safe_base_currency())
        try:
            sums = await self._gateway.order_sums_in_range(start_local, end_local)
            data.orders = len(sums)
            data.revenue = sum(sums, ZERO)
        except ErpError:
            logger.exception("Order figures for %s..%s unavailable", first_day, last_day)
        try:
            data.top_products = await self._gateway.top_products_in_range(start_local, end_local, TOP_PRODUCTS)
        except ErpError:
            logger.exception("Top products for %s..%s unavailable", first_day, last_day)

        async with self._session_factory() as session:
            data.new_users = await UserRepository(session).count_registered_between(start_utc, end_utc)
        return data

    async def _broadcast(self, title: Callable[[str], str], data: DigestData) -> int:
        sent = 0
        async with self._session_factory() as session:
            found = await UserRepository(session).find_by_telegram_ids(self._admin_ids)
        admins = {user.telegram_id: user for user in found}
        for telegram_id in self._admin_ids:
            admin = admins.get(telegram_id)
            lang = admin.language if admin is not None else DEFAULT_LANGUAGE
            if await self._channel.send_text(telegram_id, build_digest(lang, title(lang), data)):
                sent += 1

        default_title = title(DEFAULT_LANGUAGE)
        await self._email.send_digest(default_title, build_digest(DEFAULT_LANGUAGE, default_title, data))
        logger.info("%s sent to %d admin(s)", default_title, sent)
        return sent
