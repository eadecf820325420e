"""SQLAlchemy Reminder model."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from order_bridge.models.user import Base


class Reminder(Base):
    """A scheduled post-order follow-up; ``sent_at`` NULL means pending."""

    __tablename__ = "reminders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    due_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_reminders_user_id", "user_id"),
        Index("ix_reminders_due_at_sent_at", "due_at", "sent_at"),
    )

    def __repr__(self) -> str:
        return f"<Reminder id={self.id} user_id={self.user_id} due_at={self.due_at}>"
