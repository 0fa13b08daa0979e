"""Audit trail of subscription status transitions."""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from milkdrop.database import Base, UUIDPrimaryKeyMixin


class SubscriptionStatusHistory(UUIDPrimaryKeyMixin, Base):
    """One row per status change of a subscription."""

    __tablename__ = "subscription_status_history"

    subscription_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    old_status: Mapped[str] = mapped_column(String(20), nullable=False)
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    changed_by: Mapped[str] = mapped_column(String(100), nullable=False)  # username or "system"
    change_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), index=True)

    def __repr__(self) -> str:
        return (
            f"<SubscriptionStatusHistory(subscription_id={self.subscription_id}, "
            f"{self.old_status}->{self.new_status})>"
        )
