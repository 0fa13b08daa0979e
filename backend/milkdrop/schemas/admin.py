"""Pydantic v2 schemas for the admin dashboard."""

import uuid
from decimal import Decimal

from pydantic import BaseModel

from milkdrop.schemas.subscription import SubscriptionResponse


class AdminSubscriptionResponse(SubscriptionResponse):
    """Subscription row with its owner, for the dashboard table."""

    user_id: uuid.UUID
    username: str


class AdminSubscriptionListResponse(BaseModel):
    items: list[AdminSubscriptionResponse]
    total: int


class AdminStatsResponse(BaseModel):
    total_subscriptions: int
    active_subscriptions: int
    paused_subscriptions: int
    expired_subscriptions: int
    cancelled_subscriptions: int
    total_revenue: Decimal  # sum of amounts of active subscriptions
    today_subscriptions: int


class ExpireSweepResponse(BaseModel):
    expired: int


class AdminCheckResponse(BaseModel):
    is_admin: bool
    username: str
