"""SQLAlchemy models for MilkDrop.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from milkdrop.models.status_history import SubscriptionStatusHistory
from milkdrop.models.subscription import Subscription
from milkdrop.models.user import User

__all__ = [
    "Subscription",
    "SubscriptionStatusHistory",
    "User",
]
