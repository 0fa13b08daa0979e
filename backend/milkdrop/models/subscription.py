"""Subscription model — one row per purchased milk subscription."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from milkdrop.database import Base, TimestampMixin, UUIDPrimaryKeyMixin
from milkdrop.subscriptions.lifecycle import SubscriptionStatus


class Subscription(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A user's milk-delivery entitlement and its lifecycle dates."""

    __tablename__ = "subscriptions"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Plan
    subscription_type: Mapped[str] = mapped_column(String(50), nullable=False)  # 500ml, 1000ml
    duration: Mapped[str] = mapped_column(String(50), nullable=False)  # 6days, 15days
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, default="inr")

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value, index=True
    )
    start_date: Mapped[date] = mapped_column(nullable=False)
    end_date: Mapped[date] = mapped_column(nullable=False, index=True)
    paused_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resumed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    total_paused_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Delivery address
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    building_name: Mapped[str] = mapped_column(String(255), nullable=False)
    flat_number: Mapped[str] = mapped_column(String(50), nullable=False)
    latitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 7), nullable=True)
    longitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 7), nullable=True)

    # Payment gateway references
    payment_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    checkout_session_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="subscriptions", lazy="selectin")  # type: ignore[name-defined]  # noqa: F821

    def __repr__(self) -> str:
        return (
            f"<Subscription(id={self.id}, user_id={self.user_id}, "
            f"type={self.subscription_type!r}, status={self.status})>"
        )
