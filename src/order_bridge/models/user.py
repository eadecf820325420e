"""SQLAlchemy User model."""

from datetime import UTC, datetime

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

LANGUAGES = ("uz", "uzc", "ru")
DEFAULT_LANGUAGE = "uz"


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


class User(Base):
    """A storefront customer, anchored on their Telegram identity.

    A user is *fully registered* only once both ``phone_number`` and
    ``counterparty_id`` are set.  When the ERP counterparty is deleted the
    registration fields are cleared; the row itself is kept.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    telegram_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    first_name: Mapped[str | None] = mapped_column(String(256))
    last_name: Mapped[str | None] = mapped_column(String(256))
    username: Mapped[str | None] = mapped_column(String(256))
    phone_number: Mapped[str | None] = mapped_column(String(32))
    language: Mapped[str] = mapped_column(String(8), default=DEFAULT_LANGUAGE, nullable=False)
    counterparty_id: Mapped[str | None] = mapped_column(
        String(64), doc="Linked ERP counterparty; NULL means not yet linked"
    )
    default_address: Mapped[str | None] = mapped_column(
        String(512), doc="Free text, or 'lat,lng' for a shared location"
    )
    last_order_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_debt_reminder_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("ix_users_phone_number", "phone_number"),
        Index("ix_users_counterparty_id", "counterparty_id"),
    )

    @property
    def is_registered(self) -> bool:
        return bool(self.phone_number and self.counterparty_id)

    @property
    def display_name(self) -> str:
        full = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full or self.username or self.phone_number or self.telegram_id

    def __repr__(self) -> str:
        return (
            f"<User id={self.id} telegram_id={self.telegram_id!r} "
            f"counterparty_id={self.counterparty_id!r}>"
        )
