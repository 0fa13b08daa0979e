"""Admin API routes — subscription dashboard and maintenance (role=admin)."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from milkdrop.api.deps import get_db, require_admin
from milkdrop.api.v1.subscriptions import run_transition
from milkdrop.models.subscription import Subscription
from milkdrop.models.user import User
from milkdrop.schemas.admin import (
    AdminCheckResponse,
    AdminStatsResponse,
    AdminSubscriptionListResponse,
    AdminSubscriptionResponse,
    ExpireSweepResponse,
)
from milkdrop.schemas.subscription import TransitionRequest
from milkdrop.services import subscription_service
from milkdrop.subscriptions.lifecycle import SubscriptionStatus, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


def _serialize(subscription: Subscription, now) -> AdminSubscriptionResponse:
    return AdminSubscriptionResponse.from_subscription(
        subscription,
        remaining_days=subscription_service.remaining_days(subscription, now),
        username=subscription.user.username,
    )


@router.get("/check", response_model=AdminCheckResponse)
async def check_admin(admin: User = Depends(require_admin)) -> AdminCheckResponse:
    """Confirm the caller holds the admin role."""
    return AdminCheckResponse(is_admin=True, username=admin.username)


@router.get("/subscriptions", response_model=AdminSubscriptionListResponse)
async def list_subscriptions(
    status_filter: SubscriptionStatus | None = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> AdminSubscriptionListResponse:
    """All subscriptions, newest first, optionally filtered by stored status."""
    now = utcnow()
    subscriptions, total = await subscription_service.list_all_subscriptions(
        db,
        now,
        status=status_filter.value if status_filter else None,
        skip=skip,
        limit=limit,
    )
    return AdminSubscriptionListResponse(
        items=[_serialize(s, now) for s in subscriptions],
        total=total,
    )


@router.get("/stats", response_model=AdminStatsResponse)
async def get_stats(
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> AdminStatsResponse:
    """Dashboard counters."""
    stats = await subscription_service.get_admin_stats(db, utcnow())
    return AdminStatsResponse(**stats)


@router.post("/subscriptions/expire", response_model=ExpireSweepResponse)
async def expire_subscriptions(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> ExpireSweepResponse:
    """Run the expiry sweep now."""
    expired = await subscription_service.expire_overdue_subscriptions(db, utcnow())
    logger.info("Admin %s ran expiry sweep: %d expired", admin.username, expired)
    return ExpireSweepResponse(expired=expired)


@router.put("/subscriptions/{subscription_id}/cancel", response_model=AdminSubscriptionResponse)
async def cancel_subscription(
    subscription_id: uuid.UUID,
    body: TransitionRequest | None = None,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> AdminSubscriptionResponse:
    """Cancel any customer's subscription."""
    subscription = await subscription_service.get_subscription(db, subscription_id, for_update=True)
    if subscription is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Subscription not found",
        )

    reason = (body and body.reason) or "Cancelled by admin"
    updated, now = await run_transition(
        subscription_service.cancel_subscription, db, subscription, f"admin:{admin.username}", reason
    )
    return _serialize(updated, now)
