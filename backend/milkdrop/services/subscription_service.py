"""Subscription service — persistence around the lifecycle calculator.

Every mutation goes the same way: lock the row, reconcile lazy expiry, run
the pure transition from ``milkdrop.subscriptions.lifecycle``, write the new
state back and append a status-history row.
"""

import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from milkdrop.billing.verification import VerifiedOrder
from milkdrop.config import settings
from milkdrop.models.status_history import SubscriptionStatusHistory
from milkdrop.models.subscription import Subscription
from milkdrop.models.user import User
from milkdrop.subscriptions import lifecycle
from milkdrop.subscriptions.errors import CorruptState
from milkdrop.subscriptions.lifecycle import SubscriptionState, SubscriptionStatus

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

LIVE_STATUSES = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PAUSED.value)


# ---------------------------------------------------------------------------
# Model <-> lifecycle state
# ---------------------------------------------------------------------------


def to_state(subscription: Subscription) -> SubscriptionState:
    """Build the lifecycle value type from a stored row.

    Raises:
        CorruptState: If the stored status is not a known status.
    """
    try:
        status = SubscriptionStatus(subscription.status)
    except ValueError:
        raise CorruptState(
            f"Subscription {subscription.id} has unknown status {subscription.status!r}"
        ) from None
    return SubscriptionState(
        status=status,
        start_date=subscription.start_date,
        end_date=subscription.end_date,
        paused_at=subscription.paused_at,
        resumed_at=subscription.resumed_at,
        total_paused_days=subscription.total_paused_days or 0,
    )


def _apply_state(subscription: Subscription, state: SubscriptionState) -> None:
    subscription.status = state.status.value
    subscription.end_date = state.end_date
    subscription.paused_at = state.paused_at
    subscription.resumed_at = state.resumed_at
    subscription.total_paused_days = state.total_paused_days


def remaining_days(subscription: Subscription, now: datetime) -> int:
    """Remaining entitlement days of a stored subscription (0 for corrupt rows)."""
    try:
        state = to_state(subscription)
    except CorruptState:
        return 0
    return lifecycle.compute_remaining_days(state, now)


def _record_history(
    db: AsyncSession,
    subscription: Subscription,
    old_status: str,
    changed_by: str,
    reason: str | None,
) -> None:
    db.add(
        SubscriptionStatusHistory(
            subscription_id=subscription.id,
            old_status=old_status,
            new_status=subscription.status,
            changed_by=changed_by,
            change_reason=reason,
        )
    )


def _log_corrupt_state(subscription: Subscription, exc: CorruptState) -> None:
    logger.error("Corrupt subscription state for %s: %s", subscription.id, exc)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_subscription(
    db: AsyncSession,
    subscription_id: uuid.UUID,
    user: User | None = None,
    for_update: bool = False,
) -> Subscription | None:
    """Fetch one subscription, optionally scoped to its owner and row-locked."""
    query = select(Subscription).where(Subscription.id == subscription_id)
    if user is not None:
        query = query.where(Subscription.user_id == user.id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def list_user_subscriptions(db: AsyncSession, user: User, now: datetime) -> list[Subscription]:
    """All of a user's subscriptions, newest first, with lazy expiry applied."""
    result = await db.execute(
        select(Subscription)
        .where(Subscription.user_id == user.id)
        .order_by(Subscription.created_at.desc(), Subscription.start_date.desc())
    )
    subscriptions = list(result.scalars().all())
    await reconcile_expiry_many(db, subscriptions, now)
    return subscriptions


async def get_current_subscription(db: AsyncSession, user: User, now: datetime) -> Subscription | None:
    """The user's latest active or paused subscription, if any."""
    for subscription in await list_user_subscriptions(db, user, now):
        if subscription.status in LIVE_STATUSES:
            return subscription
    return None


async def has_live_subscription_of_type(db: AsyncSession, user_id: uuid.UUID, subscription_type: str) -> bool:
    """True if the user already has an active subscription for this product."""
    result = await db.execute(
        select(func.count())
        .select_from(Subscription)
        .where(
            Subscription.user_id == user_id,
            Subscription.subscription_type == subscription_type,
            Subscription.status == SubscriptionStatus.ACTIVE.value,
        )
    )
    return result.scalar_one() > 0


async def get_status_history(db: AsyncSession, subscription_id: uuid.UUID) -> list[SubscriptionStatusHistory]:
    result = await db.execute(
        select(SubscriptionStatusHistory)
        .where(SubscriptionStatusHistory.subscription_id == subscription_id)
        .order_by(SubscriptionStatusHistory.created_at.desc())
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


async def get_subscription_by_checkout_session(db: AsyncSession, checkout_session_id: str) -> Subscription | None:
    """Look up subscription by Checkout Session ID (purchase idempotency)."""
    result = await db.execute(
        select(Subscription).where(Subscription.checkout_session_id == checkout_session_id)
    )
    return result.scalar_one_or_none()


async def create_subscription_from_order(
    db: AsyncSession, order: VerifiedOrder, now: datetime
) -> tuple[Subscription, bool]:
    """Create the subscription for a verified paid order.

    Idempotent per Checkout Session: the purchase endpoint and the webhook may
    both deliver the same session, possibly at the same time. The insert runs
    in a savepoint so losing that race on the unique ``checkout_session_id``
    returns the winner's row instead of failing the whole transaction.

    Returns:
        ``(subscription, created)`` where ``created`` is False if the session
        had already been turned into a subscription.
    """
    existing = await get_subscription_by_checkout_session(db, order.checkout_session_id)
    if existing is not None:
        logger.info("Checkout session %s already fulfilled as %s", order.checkout_session_id, existing.id)
        return existing, False

    start_date = now.date()
    end_date = lifecycle.compute_end_date(
        start_date, order.plan.duration, default_days=settings.default_duration_days
    )
    subscription = Subscription(
        user_id=order.user_id,
        subscription_type=order.plan.subscription_type,
        duration=order.plan.duration,
        amount=order.amount,
        currency=order.currency,
        status=SubscriptionStatus.ACTIVE.value,
        start_date=start_date,
        end_date=end_date,
        total_paused_days=0,
        address=order.address,
        building_name=order.building_name,
        flat_number=order.flat_number,
        latitude=order.latitude,
        longitude=order.longitude,
        payment_id=order.payment_id,
        checkout_session_id=order.checkout_session_id,
    )
    try:
        async with db.begin_nested():
            db.add(subscription)
    except IntegrityError:
        existing = await get_subscription_by_checkout_session(db, order.checkout_session_id)
        if existing is None:
            raise
        logger.info(
            "Checkout session %s fulfilled concurrently as %s", order.checkout_session_id, existing.id
        )
        return existing, False
    await db.refresh(subscription)

    logger.info(
        "Created subscription %s for user %s: %s/%s until %s",
        subscription.id,
        order.user_id,
        subscription.subscription_type,
        subscription.duration,
        end_date,
    )
    return subscription, True


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


async def reconcile_expiry(
    db: AsyncSession, subscription: Subscription, now: datetime, changed_by: str = SYSTEM_ACTOR
) -> bool:
    """Persist lazy expiry for one subscription. Returns True if it was expired now."""
    try:
        state = to_state(subscription)
    except CorruptState as exc:
        _log_corrupt_state(subscription, exc)
        return False

    if state.status == lifecycle.derive_effective_status(state, now):
        return False

    old_status = subscription.status
    _apply_state(subscription, lifecycle.expire(state, now))
    _record_history(db, subscription, old_status, changed_by, "Subscription period ended")
    logger.info("Subscription %s expired (end_date %s)", subscription.id, subscription.end_date)
    return True


async def reconcile_expiry_many(db: AsyncSession, subscriptions: list[Subscription], now: datetime) -> int:
    changed = 0
    for subscription in subscriptions:
        if await reconcile_expiry(db, subscription, now):
            changed += 1
    if changed:
        await db.flush()
        for subscription in subscriptions:
            await db.refresh(subscription)
    return changed


async def _transition(
    db: AsyncSession,
    subscription: Subscription,
    action: str,
    actor: str,
    reason: str | None,
    now: datetime,
) -> Subscription:
    await reconcile_expiry(db, subscription, now)

    old_status = subscription.status
    try:
        state = to_state(subscription)
        if action == "pause":
            new_state = lifecycle.pause(state, now)
        elif action == "resume":
            new_state = lifecycle.resume(state, now, max_total_paused_days=settings.max_total_paused_days)
        elif action == "cancel":
            new_state = lifecycle.cancel(state, now)
        else:
            raise ValueError(f"Unknown transition: {action}")
    except CorruptState as exc:
        _log_corrupt_state(subscription, exc)
        raise

    _apply_state(subscription, new_state)
    _record_history(db, subscription, old_status, actor, reason)
    await db.flush()
    await db.refresh(subscription)

    logger.info(
        "Subscription %s %s by %s: %s -> %s (end_date %s)",
        subscription.id,
        action,
        actor,
        old_status,
        subscription.status,
        subscription.end_date,
    )
    return subscription


async def pause_subscription(
    db: AsyncSession, subscription: Subscription, actor: str, reason: str | None, now: datetime
) -> Subscription:
    """Pause an active subscription.

    Raises:
        InvalidTransition: If the subscription is not active (including one
            that has just been found expired; that expiry is left in the
            session for the caller to commit).
    """
    return await _transition(db, subscription, "pause", actor, reason or "User requested pause", now)


async def resume_subscription(
    db: AsyncSession, subscription: Subscription, actor: str, reason: str | None, now: datetime
) -> Subscription:
    """Resume a paused subscription, extending its end date by the paused days.

    Raises:
        InvalidTransition: If the subscription is not paused.
        CorruptState: If it is paused without a ``paused_at`` timestamp.
    """
    return await _transition(db, subscription, "resume", actor, reason or "User requested resume", now)


async def cancel_subscription(
    db: AsyncSession, subscription: Subscription, actor: str, reason: str | None, now: datetime
) -> Subscription:
    """Cancel an active or paused subscription."""
    return await _transition(db, subscription, "cancel", actor, reason or "Cancelled", now)


async def expire_overdue_subscriptions(db: AsyncSession, now: datetime) -> int:
    """Batch sweep: flip every overdue active subscription to expired."""
    result = await db.execute(
        select(Subscription)
        .where(
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.end_date < now.date(),
        )
        .with_for_update()
    )
    subscriptions = list(result.scalars().all())
    expired = await reconcile_expiry_many(db, subscriptions, now)
    logger.info("Expiry sweep: %d subscription(s) expired", expired)
    return expired


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


async def list_all_subscriptions(
    db: AsyncSession,
    now: datetime,
    status: str | None = None,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[Subscription], int]:
    """Page through all subscriptions, newest first.

    The expiry sweep runs first so the status filter and ``total`` see
    effective statuses.
    """
    await expire_overdue_subscriptions(db, now)

    base_filter = []
    if status:
        base_filter.append(Subscription.status == status)

    count_query = select(func.count()).select_from(Subscription).where(*base_filter)
    total = (await db.execute(count_query)).scalar_one()

    items_query = (
        select(Subscription)
        .where(*base_filter)
        .order_by(Subscription.created_at.desc(), Subscription.start_date.desc())
        .offset(skip)
        .limit(limit)
    )
    subscriptions = list((await db.execute(items_query)).scalars().all())
    return subscriptions, total


async def get_admin_stats(db: AsyncSession, now: datetime) -> dict:
    """Dashboard counters. Runs the expiry sweep first so counts are current."""
    await expire_overdue_subscriptions(db, now)

    result = await db.execute(
        select(Subscription.status, func.count()).group_by(Subscription.status)
    )
    by_status: dict[str, int] = {status: count for status, count in result.all()}

    revenue_result = await db.execute(
        select(func.coalesce(func.sum(Subscription.amount), 0)).where(
            Subscription.status == SubscriptionStatus.ACTIVE.value
        )
    )
    revenue = Decimal(str(revenue_result.scalar_one()))

    day_start = datetime(now.year, now.month, now.day)
    today_result = await db.execute(
        select(func.count())
        .select_from(Subscription)
        .where(
            Subscription.created_at >= day_start,
            Subscription.created_at < day_start + timedelta(days=1),
        )
    )

    return {
        "total_subscriptions": sum(by_status.values()),
        "active_subscriptions": by_status.get(SubscriptionStatus.ACTIVE.value, 0),
        "paused_subscriptions": by_status.get(SubscriptionStatus.PAUSED.value, 0),
        "expired_subscriptions": by_status.get(SubscriptionStatus.EXPIRED.value, 0),
        "cancelled_subscriptions": by_status.get(SubscriptionStatus.CANCELLED.value, 0),
        "total_revenue": revenue,
        "today_subscriptions": today_result.scalar_one(),
    }
