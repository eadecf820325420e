"""SQLAlchemy models for per-user preferences: admin notifications, liked products."""

from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from order_bridge.models.user import Base

NOTIFICATION_TYPES = ("new_user", "new_order", "order_update", "payment")


class AdminNotificationPreference(Base):
    """Which broadcast types an admin has opted into (all off by default)."""

    __tablename__ = "admin_notification_preferences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    new_user: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    new_order: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    order_update: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    payment: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def as_dict(self) -> dict[str, bool]:
        return {name: bool(getattr(self, name)) for name in NOTIFICATION_TYPES}

    def __repr__(self) -> str:
        return f"<AdminNotificationPreference user_id={self.user_id} {self.as_dict()}>"


class LikedProduct(Base):
    """A (user, product) bookmark."""

    __tablename__ = "liked_products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "product_id", name="uq_liked_user_product"),)

    def __repr__(self) -> str:
        return f"<LikedProduct user_id={self.user_id} product_id={self.product_id!r}>"
