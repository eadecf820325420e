"""SQLAlchemy DraftOrder and DraftOrderItem models."""

from datetime import UTC, datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from order_bridge.models.user import Base


class DraftOrder(Base):
    """A user's pre-submission cart (at most one per user).

    The conversational state is not stored; it is derived from which of
    these fields are populated (see ``order_bridge.domain.draft_state``).
    """

    __tablename__ = "draft_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    delivery_method: Mapped[str | None] = mapped_column(String(16))
    order_note: Mapped[str | None] = mapped_column(Text)
    address_text: Mapped[str | None] = mapped_column(String(512))
    address_extra: Mapped[str | None] = mapped_column(
        String(512), doc="Delimited form of AddressExtra"
    )
    location_lat: Mapped[float | None] = mapped_column(Float)
    location_lng: Mapped[float | None] = mapped_column(Float)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    items: Mapped[list["DraftOrderItem"]] = relationship(
        back_populates="draft",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DraftOrderItem.id",
    )

    @property
    def total_minor(self) -> int:
        return sum(item.line_total_minor for item in self.items)

    def __repr__(self) -> str:
        return (
            f"<DraftOrder id={self.id} user_id={self.user_id} "
            f"method={self.delivery_method!r} items={len(self.items)}>"
        )


class DraftOrderItem(Base):
    """One cart line; name and price are snapshots taken when it was added."""

    __tablename__ = "draft_order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    draft_id: Mapped[int] = mapped_column(
        ForeignKey("draft_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False, doc="Unit price, minor units")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    draft: Mapped[DraftOrder] = relationship(back_populates="items")

    @property
    def line_total_minor(self) -> int:
        return self.price * self.quantity

    def __repr__(self) -> str:
        return f"<DraftOrderItem product_id={self.product_id!r} qty={self.quantity}>"
