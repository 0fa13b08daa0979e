"""Stripe webhook event handlers — fulfil paid checkout sessions."""

import logging

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from milkdrop.billing.verification import PaymentVerificationError, verify_checkout_session
from milkdrop.models.subscription import Subscription
from milkdrop.models.user import User
from milkdrop.services.subscription_service import create_subscription_from_order
from milkdrop.subscriptions.lifecycle import utcnow

logger = logging.getLogger(__name__)


async def handle_checkout_session_completed(db: AsyncSession, event: stripe.Event) -> Subscription | None:
    """Handle checkout.session.completed — create the subscription if the browser never confirmed it.

    Delayed payment methods complete with ``payment_status="unpaid"``; those are
    fulfilled later by ``checkout.session.async_payment_succeeded``. Returns the
    subscription this event created, or None.
    """
    session = event.data.object

    if session.mode != "payment":
        logger.info("Checkout session %s is not a one-time payment, skipping", session.id)
        return None
    if session.payment_status != "paid":
        logger.info("Checkout session %s not paid yet (%s), waiting", session.id, session.payment_status)
        return None

    return await _fulfil(db, session)


async def handle_checkout_session_async_payment_succeeded(
    db: AsyncSession, event: stripe.Event
) -> Subscription | None:
    """Handle checkout.session.async_payment_succeeded — delayed payment cleared."""
    return await _fulfil(db, event.data.object)


async def _fulfil(db: AsyncSession, session: stripe.checkout.Session) -> Subscription | None:
    try:
        order = verify_checkout_session(session)
    except PaymentVerificationError as exc:
        # Not retryable: Stripe would redeliver the same session forever
        logger.warning("Rejected checkout session %s: %s", session.id, exc)
        return None

    owner = await db.get(User, order.user_id)
    if owner is None:
        logger.warning("Checkout session %s names unknown user %s", session.id, order.user_id)
        return None

    subscription, created = await create_subscription_from_order(db, order, utcnow())
    if created:
        logger.info("Webhook fulfilled checkout session %s as subscription %s", session.id, subscription.id)
        return subscription
    return None
