"""Repositories — data access layer for the local store."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from order_bridge.models import (
    AdminNotificationPreference,
    DraftOrder,
    DraftOrderItem,
    LikedProduct,
    Reminder,
    User,
)
from order_bridge.models.preferences import NOTIFICATION_TYPES
from order_bridge.models.user import DEFAULT_LANGUAGE, LANGUAGES


def ensure_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class UserRepository:
    """Encapsulates all database queries related to users."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: int) -> User | None:
        return await self._session.get(User, user_id)

    async def find_by_telegram_id(self, telegram_id: str) -> User | None:
        stmt = select(User).where(User.telegram_id == str(telegram_id))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_counterparty(self, counterparty_id: str) -> User | None:
        """The local user linked to *counterparty_id*, if any."""
        stmt = select(User).where(User.counterparty_id == counterparty_id).order_by(User.id)
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def get_or_create(
        self,
        telegram_id: str,
        *,
        first_name: str | None = None,
        last_name: str | None = None,
        username: str | None = None,
        language: str | None = None,
    ) -> tuple[User, bool]:
        """Fetch the user for *telegram_id*, creating it on first contact.

        Profile fields are refreshed when supplied.  *language* only seeds
        a new user; an existing user keeps the language picked in the bot.
        Returns ``(user, created)``.
        """
        user = await self.find_by_telegram_id(telegram_id)
        created = user is None
        if user is None:
            user = User(telegram_id=str(telegram_id), language=DEFAULT_LANGUAGE)
            self._session.add(user)
        if first_name:
            user.first_name = first_name
        if last_name:
            user.last_name = last_name
        if username:
            user.username = username
        if created and language in LANGUAGES:
            user.language = language
        await self._session.flush()
        return user, created

    async def link_counterparty(self, user: User, counterparty_id: str) -> None:
        """Point *user* at *counterparty_id*, detaching it from anyone else first.

        Phone number is the ERP's practical uniqueness key, so at most one
        local user may hold a given counterparty at a time.
        """
        await self._session.execute(
            update(User)
            .where(User.counterparty_id == counterparty_id, User.id != user.id)
            .values(counterparty_id=None)
            .execution_options(synchronize_session="fetch")
        )
        user.counterparty_id = counterparty_id
        await self._session.flush()

    async def unlink_counterparty(self, user: User) -> None:
        user.counterparty_id = None
        await self._session.flush()

    async def reset_registration(self, user: User) -> None:
        """Clear every registration field; the user must register again."""
        user.counterparty_id = None
        user.phone_number = None
        user.default_address = None
        await self._session.flush()

    async def list_registered(self, after_id: int, limit: int) -> Sequence[User]:
        """Registered users with ``id > after_id``, in id order (cursor paging)."""
        stmt = (
            select(User)
            .where(
                User.id > after_id,
                User.phone_number.is_not(None),
                User.counterparty_id.is_not(None),
            )
            .order_by(User.id)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def count_registered_between(self, start: datetime, end: datetime) -> int:
        stmt = select(func.count(User.id)).where(
            User.counterparty_id.is_not(None),
            User.created_at >= start,
            User.created_at < end,
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def find_by_telegram_ids(self, telegram_ids: Iterable[str]) -> Sequence[User]:
        ids = [str(tid) for tid in telegram_ids]
        if not ids:
            return []
        result = await self._session.execute(select(User).where(User.telegram_id.in_(ids)))
        return result.scalars().all()


# ── Draft orders ─────────────────────────────────────────


@dataclass(frozen=True)
class DraftLine:
    """An item to put in a draft: snapshot of the catalog entry at add-time."""

    product_id: str
    name: str
    price: int
    quantity: int


class DraftOrderRepository:
    """Upsert-style access to the single draft a user may hold."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_for_user(self, user_id: int) -> DraftOrder | None:
        stmt = select(DraftOrder).where(DraftOrder.user_id == user_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def replace(
        self,
        user_id: int,
        lines: Sequence[DraftLine],
        *,
        delivery_method: str | None = None,
        order_note: str | None = None,
        address_text: str | None = None,
        address_extra: str | None = None,
        location_lat: float | None = None,
        location_lng: float | None = None,
    ) -> DraftOrder:
        """Create or overwrite the user's draft with exactly *lines*.

        Every field is last-write-wins and the item list is deleted and
        recreated rather than merged, so repeating the same call leaves
        the same single draft behind.
        """
        draft = await self.get_for_user(user_id)
        if draft is None:
            draft = DraftOrder(user_id=user_id, items=[])
            self._session.add(draft)
        else:
            draft.items.clear()
            await self._session.flush()

        draft.delivery_method = delivery_method
        draft.order_note = order_note
        draft.address_text = address_text
        draft.address_extra = address_extra
        draft.location_lat = location_lat
        draft.location_lng = location_lng
        draft.items.extend(
            DraftOrderItem(
                product_id=line.product_id,
                name=line.name,
                price=line.price,
                quantity=line.quantity,
            )
            for line in lines
        )
        await self._session.flush()
        return draft

    async def update(self, draft: DraftOrder, **fields: object) -> DraftOrder:
        for name, value in fields.items():
            if not hasattr(DraftOrder, name):
                raise AttributeError(f"DraftOrder has no field {name!r}")
            setattr(draft, name, value)
        await self._session.flush()
        return draft

    async def delete_for_user(self, user_id: int) -> bool:
        draft = await self.get_for_user(user_id)
        if draft is None:
            return False
        await self._session.delete(draft)
        await self._session.flush()
        return True


# ── Reminders ────────────────────────────────────────────


class ReminderRepository:
    """Scheduled post-order follow-ups."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def replace_for_user(self, user_id: int, due_times: Iterable[datetime]) -> list[Reminder]:
        """Purge every reminder of *user_id* and schedule a fresh batch."""
        await self._session.execute(delete(Reminder).where(Reminder.user_id == user_id))
        reminders = [Reminder(user_id=user_id, due_at=due) for due in due_times]
        self._session.add_all(reminders)
        await self._session.flush()
        return reminders

    async def list_for_user(self, user_id: int) -> Sequence[Reminder]:
        stmt = select(Reminder).where(Reminder.user_id == user_id).order_by(Reminder.due_at)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def list_due(self, now: datetime, limit: int) -> Sequence[tuple[Reminder, User]]:
        stmt = (
            select(Reminder, User)
            .join(User, User.id == Reminder.user_id)
            .where(Reminder.sent_at.is_(None), Reminder.due_at <= now)
            .order_by(Reminder.due_at)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def mark_sent(self, reminder: Reminder, now: datetime) -> None:
        reminder.sent_at = now
        await self._session.flush()

    async def purge_sent_before(self, cutoff: datetime) -> int:
        result = await self._session.execute(
            delete(Reminder).where(Reminder.sent_at.is_not(None), Reminder.sent_at < cutoff)
        )
        return result.rowcount or 0


# ── Admin notification preferences ───────────────────────


class AdminPreferenceRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: int) -> dict[str, bool]:
        """Current toggles for *user_id*; all off when never saved."""
        pref = await self._find(user_id)
        if pref is None:
            return {name: False for name in NOTIFICATION_TYPES}
        return pref.as_dict()

    async def save(self, user_id: int, values: dict[str, bool]) -> AdminNotificationPreference:
        pref = await self._find(user_id)
        if pref is None:
            pref = AdminNotificationPreference(user_id=user_id)
            self._session.add(pref)
        for name in NOTIFICATION_TYPES:
            setattr(pref, name, bool(values.get(name, False)))
        await self._session.flush()
        return pref

    async def subscribers(self, kind: str, telegram_ids: Iterable[str]) -> Sequence[User]:
        """Users among *telegram_ids* that opted into *kind*."""
        if kind not in NOTIFICATION_TYPES:
            raise ValueError(f"Unknown notification type {kind!r}")
        ids = [str(tid) for tid in telegram_ids]
        if not ids:
            return []
        column = getattr(AdminNotificationPreference, kind)
        stmt = (
            select(User)
            .join(AdminNotificationPreference, AdminNotificationPreference.user_id == User.id)
            .where(User.telegram_id.in_(ids), column.is_(True))
            .order_by(User.id)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def _find(self, user_id: int) -> AdminNotificationPreference | None:
        stmt = select(AdminNotificationPreference).where(
            AdminNotificationPreference.user_id == user_id
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


# ── Liked products ───────────────────────────────────────


class LikedProductRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_product_ids(self, user_id: int) -> list[str]:
        stmt = select(LikedProduct.product_id).where(LikedProduct.user_id == user_id)
        result = await self._session.execute(stmt.order_by(LikedProduct.id))
        return list(result.scalars().all())

    async def toggle(self, user_id: int, product_id: str) -> bool:
        """Like *product_id* if not liked yet, otherwise unlike it.

        Returns the new liked state.
        """
        stmt = select(LikedProduct).where(
            LikedProduct.user_id == user_id, LikedProduct.product_id == product_id
        )
        existing = (await self._session.execute(stmt)).scalar_one_or_none()
        if existing is not None:
            await self._session.delete(existing)
            await self._session.flush()
            return False
        self._session.add(LikedProduct(user_id=user_id, product_id=product_id))
        await self._session.flush()
        return True
