"""Subscription lifecycle calculator.

Pure functions over :class:`SubscriptionState`. Nothing here touches the
database: callers load a state from storage, run a computation or a
transition, and write the returned state back.

State machine::

    active <-> paused
    active -> expired            (terminal)
    active/paused -> cancelled   (terminal)

All timestamps are naive UTC. Day counts are calendar days, so a pause taken
in the evening and lifted the next morning credits one day.
"""

import logging
import re
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone
from enum import Enum

from milkdrop.subscriptions.errors import CorruptState, InvalidTransition, MalformedDuration

logger = logging.getLogger(__name__)

DEFAULT_DURATION_DAYS = 6
MAX_TOTAL_PAUSED_DAYS = 365

# Promotional bonus: nominal days -> effective days
BONUS_DAYS: dict[int, int] = {
    6: 7,
    15: 17,
}

_DIGITS = re.compile(r"\d+")


class SubscriptionStatus(str, Enum):
    """Stored subscription status."""

    ACTIVE = "active"
    PAUSED = "paused"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    INACTIVE = "inactive"


TERMINAL_STATUSES = frozenset({SubscriptionStatus.EXPIRED, SubscriptionStatus.CANCELLED})


@dataclass(frozen=True)
class SubscriptionState:
    """The lifecycle-relevant fields of a subscription, independent of storage."""

    status: SubscriptionStatus
    start_date: date | None
    end_date: date | None
    paused_at: datetime | None = None
    resumed_at: datetime | None = None
    total_paused_days: int = 0


def utcnow() -> datetime:
    """Current time as naive UTC, matching the database columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def days_between(start: date | datetime, end: date | datetime) -> int:
    """Calendar days from ``start`` to ``end``; negative when ``end`` is earlier."""
    return (_as_date(end) - _as_date(start)).days


def parse_duration_days(duration_code: str | None) -> int:
    """Extract the nominal day count from a duration code (``"6days"`` -> 6).

    Raises:
        MalformedDuration: If the code contains no digits.
    """
    if not duration_code:
        raise MalformedDuration(duration_code)
    match = _DIGITS.search(duration_code)
    if match is None:
        raise MalformedDuration(duration_code)
    return int(match.group())


def effective_duration_days(nominal_days: int) -> int:
    """Apply the promotional bonus table to a nominal day count."""
    return BONUS_DAYS.get(nominal_days, nominal_days)


def compute_end_date(
    start_date: date,
    duration_code: str | None,
    default_days: int = DEFAULT_DURATION_DAYS,
) -> date:
    """Return ``start_date`` plus the effective duration of ``duration_code``.

    An unparsable code falls back to ``default_days`` rather than failing, so a
    paid purchase is never rejected over a malformed label.
    """
    try:
        nominal = parse_duration_days(duration_code)
    except MalformedDuration as exc:
        logger.warning("%s; defaulting to %d days", exc, default_days)
        nominal = default_days
    return start_date + timedelta(days=effective_duration_days(nominal))


def compute_remaining_days(subscription: SubscriptionState, now: datetime) -> int:
    """Entitlement days left, frozen at ``paused_at`` while paused. Never negative."""
    if subscription.status in TERMINAL_STATUSES:
        return 0
    if subscription.end_date is None:
        return 0

    if subscription.status == SubscriptionStatus.PAUSED:
        if subscription.paused_at is None:
            return 0
        reference: date | datetime = subscription.paused_at
    else:
        reference = now

    return max(0, days_between(reference, subscription.end_date))


def is_overdue(subscription: SubscriptionState, now: datetime) -> bool:
    return subscription.end_date is not None and subscription.end_date < _as_date(now)


def derive_effective_status(subscription: SubscriptionState, now: datetime) -> SubscriptionStatus:
    """Lazy expiry: an active subscription past its end date is effectively expired.

    The caller is responsible for persisting the corrected status.
    """
    if subscription.status == SubscriptionStatus.ACTIVE and is_overdue(subscription, now):
        return SubscriptionStatus.EXPIRED
    return subscription.status


def pause(subscription: SubscriptionState, now: datetime) -> SubscriptionState:
    """Freeze an active subscription."""
    if subscription.status != SubscriptionStatus.ACTIVE:
        raise InvalidTransition(
            "pause",
            subscription.status.value,
            f"Cannot pause subscription with status: {subscription.status.value}. "
            "Only active subscriptions can be paused.",
        )
    return replace(subscription, status=SubscriptionStatus.PAUSED, paused_at=now)


def resume(
    subscription: SubscriptionState,
    now: datetime,
    max_total_paused_days: int = MAX_TOTAL_PAUSED_DAYS,
) -> SubscriptionState:
    """Reactivate a paused subscription, pushing ``end_date`` out by the paused days."""
    if subscription.status != SubscriptionStatus.PAUSED:
        raise InvalidTransition(
            "resume",
            subscription.status.value,
            f"Only paused subscriptions can be resumed (current status: {subscription.status.value})",
        )
    if subscription.paused_at is None:
        raise CorruptState("Subscription is paused but has no paused_at timestamp")
    if subscription.end_date is None:
        raise CorruptState("Subscription is paused but has no end_date")

    # A paused_at in the future (clock skew) credits nothing
    elapsed = max(0, days_between(subscription.paused_at, now))
    total = min(max(subscription.total_paused_days + elapsed, 0), max_total_paused_days)

    return replace(
        subscription,
        status=SubscriptionStatus.ACTIVE,
        end_date=subscription.end_date + timedelta(days=elapsed),
        total_paused_days=total,
        paused_at=None,
        resumed_at=now,
    )


def expire(subscription: SubscriptionState, now: datetime) -> SubscriptionState:
    """Mark an overdue active subscription as expired."""
    if subscription.status != SubscriptionStatus.ACTIVE or not is_overdue(subscription, now):
        raise InvalidTransition("expire", subscription.status.value)
    return replace(subscription, status=SubscriptionStatus.EXPIRED)


def cancel(subscription: SubscriptionState, now: datetime) -> SubscriptionState:  # noqa: ARG001
    """Cancel a live subscription. Only the status changes."""
    if subscription.status == SubscriptionStatus.CANCELLED:
        raise InvalidTransition("cancel", subscription.status.value, "Subscription is already cancelled")
    if subscription.status == SubscriptionStatus.EXPIRED:
        raise InvalidTransition("cancel", subscription.status.value)
    return replace(subscription, status=SubscriptionStatus.CANCELLED)
