"""Stripe webhook endpoint — receives and processes Stripe events."""

import logging

import stripe
from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, status

from milkdrop.billing.stripe_client import construct_webhook_event
from milkdrop.billing.webhooks import (
    handle_checkout_session_async_payment_succeeded,
    handle_checkout_session_completed,
)
from milkdrop.database import async_session_factory
from milkdrop.models.user import User
from milkdrop.services.notification_service import notify_new_subscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])

EVENT_HANDLERS = {
    "checkout.session.completed": handle_checkout_session_completed,
    "checkout.session.async_payment_succeeded": handle_checkout_session_async_payment_succeeded,
}


@router.post("/stripe")
async def stripe_webhook(request: Request, background_tasks: BackgroundTasks) -> dict[str, str]:
    """Receive and process Stripe webhook events."""
    # Signature verification needs the raw bytes
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    try:
        event = construct_webhook_event(payload, sig_header)
    except stripe.SignatureVerificationError as e:
        logger.warning("Webhook signature verification failed")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from e
    except ValueError as e:
        logger.warning("Invalid webhook payload")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid payload",
        ) from e

    handler = EVENT_HANDLERS.get(event.type)
    if handler is None:
        logger.debug("Unhandled webhook event type: %s", event.type)
        return {"status": "ignored"}

    logger.info("Processing webhook event: %s (id=%s)", event.type, event.id)

    # Webhooks carry no auth context, so they open their own session
    async with async_session_factory() as db:
        try:
            created = await handler(db, event)
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.exception("Error processing webhook event %s", event.id)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Webhook processing failed",
            ) from e

        if created is not None:
            owner = await db.get(User, created.user_id)
            background_tasks.add_task(notify_new_subscription, owner.username, created)

    return {"status": "processed"}
