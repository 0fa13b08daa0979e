"""Subscription API routes — plans, checkout, purchase, lifecycle transitions."""

import logging
import uuid

import stripe
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from milkdrop.api.deps import get_current_active_user, get_db
from milkdrop.billing.stripe_client import create_checkout_session, retrieve_checkout_session
from milkdrop.billing.verification import (
    PaymentVerificationError,
    build_order_metadata,
    verify_checkout_session,
)
from milkdrop.config import settings
from milkdrop.models.subscription import Subscription
from milkdrop.models.user import User
from milkdrop.schemas.subscription import (
    CheckoutRequest,
    CheckoutResponse,
    CurrentSubscriptionResponse,
    PlanResponse,
    PlansListResponse,
    PurchaseRequest,
    StatusHistoryEntry,
    StatusHistoryResponse,
    SubscriptionListResponse,
    SubscriptionResponse,
    TransitionRequest,
)
from milkdrop.services import subscription_service
from milkdrop.services.notification_service import notify_new_subscription, notify_operator_alert
from milkdrop.subscriptions.errors import CorruptState, InvalidTransition
from milkdrop.subscriptions.lifecycle import utcnow
from milkdrop.subscriptions.plans import PLANS, get_plan

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/subscriptions", tags=["subscriptions"])


def serialize(subscription: Subscription, now) -> SubscriptionResponse:
    return SubscriptionResponse.from_subscription(
        subscription, remaining_days=subscription_service.remaining_days(subscription, now)
    )


async def _get_owned_subscription(
    db: AsyncSession, subscription_id: uuid.UUID, user: User, for_update: bool = False
) -> Subscription:
    subscription = await subscription_service.get_subscription(
        db, subscription_id, user=user, for_update=for_update
    )
    if subscription is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Subscription not found",
        )
    return subscription


async def run_transition(transition, db: AsyncSession, subscription: Subscription, actor: str, reason: str | None):
    """Apply a lifecycle transition, mapping domain errors to HTTP errors.

    A rejected transition has written nothing except possibly a lazy expiry,
    which is committed before the error response so it is not rolled back.
    The operator alert for corrupt rows goes out after that commit, once the
    row lock is released.
    """
    now = utcnow()
    try:
        updated = await transition(db, subscription, actor, reason, now)
    except InvalidTransition as e:
        await db.commit()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except CorruptState as e:
        await db.commit()
        await notify_operator_alert(f"Subscription {subscription.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Subscription data is inconsistent; support has been notified",
        ) from e
    return updated, now


# ---------------------------------------------------------------------------
# Catalogue and purchase
# ---------------------------------------------------------------------------


@router.get("/plans", response_model=PlansListResponse)
async def list_plans() -> PlansListResponse:
    """List available plans (public — no auth required)."""
    return PlansListResponse(
        plans=[
            PlanResponse(
                code=p.code,
                subscription_type=p.subscription_type,
                duration=p.duration,
                display_name=p.display_name,
                price=p.price,
                nominal_days=p.nominal_days,
                effective_days=p.effective_days,
            )
            for p in PLANS.values()
        ]
    )


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    body: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> CheckoutResponse:
    """Create a Stripe Checkout session for a plan and delivery address."""
    plan = get_plan(body.plan)
    if plan is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid plan. Choose one of: {', '.join(sorted(PLANS))}",
        )

    if await subscription_service.has_live_subscription_of_type(db, current_user.id, plan.subscription_type):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"You already have an active {plan.subscription_type} subscription",
        )

    success_url = (
        body.success_url
        or f"{settings.frontend_url}/subscriptions/success?session_id={{CHECKOUT_SESSION_ID}}"
    )
    cancel_url = body.cancel_url or f"{settings.frontend_url}/plans"

    try:
        session = await create_checkout_session(
            customer_email=current_user.email,
            product_name=plan.display_name,
            amount_minor=plan.price_minor,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=build_order_metadata(
                user_id=current_user.id,
                plan=plan,
                address=body.address,
                building_name=body.building_name,
                flat_number=body.flat_number,
                latitude=body.latitude,
                longitude=body.longitude,
            ),
        )
    except stripe.StripeError as e:
        logger.error("Stripe checkout error: %s", e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e),
        ) from e

    return CheckoutResponse(checkout_url=session.url, session_id=session.id)


@router.post("", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
async def purchase_subscription(
    body: PurchaseRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionResponse:
    """Create the subscription for a completed Checkout session.

    Safe to call more than once for the same session: later calls return the
    existing subscription with status 200.
    """
    try:
        session = await retrieve_checkout_session(body.checkout_session_id)
    except stripe.InvalidRequestError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unknown checkout session",
        ) from e
    except stripe.StripeError as e:
        logger.error("Stripe session retrieval error: %s", e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e),
        ) from e

    try:
        order = verify_checkout_session(session, expected_user_id=current_user.id)
    except PaymentVerificationError as e:
        logger.warning("Payment verification failed for user %s: %s", current_user.id, e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Payment verification failed: {e}",
        ) from e

    now = utcnow()
    subscription, created = await subscription_service.create_subscription_from_order(db, order, now)
    if created:
        # Announce only what is stored
        await db.commit()
        background_tasks.add_task(notify_new_subscription, current_user.username, subscription)
    else:
        response.status_code = status.HTTP_200_OK
    return serialize(subscription, now)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("", response_model=SubscriptionListResponse)
async def list_subscriptions(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionListResponse:
    """All of the current user's subscriptions, newest first."""
    now = utcnow()
    subscriptions = await subscription_service.list_user_subscriptions(db, current_user, now)
    return SubscriptionListResponse(
        items=[serialize(s, now) for s in subscriptions],
        total=len(subscriptions),
    )


@router.get("/current", response_model=CurrentSubscriptionResponse)
async def get_current(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> CurrentSubscriptionResponse:
    """The latest active or paused subscription, if any."""
    now = utcnow()
    subscription = await subscription_service.get_current_subscription(db, current_user, now)
    if subscription is None:
        return CurrentSubscriptionResponse(has_active_subscription=False, remaining_days=0)

    body = serialize(subscription, now)
    return CurrentSubscriptionResponse(
        has_active_subscription=True,
        remaining_days=body.remaining_days,
        subscription=body,
    )


@router.get("/{subscription_id}", response_model=SubscriptionResponse)
async def get_subscription(
    subscription_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionResponse:
    """Retrieve one subscription. Returns 404 if not found or not owned."""
    now = utcnow()
    subscription = await _get_owned_subscription(db, subscription_id, current_user)
    if await subscription_service.reconcile_expiry(db, subscription, now):
        await db.flush()
        await db.refresh(subscription)
    return serialize(subscription, now)


@router.get("/{subscription_id}/history", response_model=StatusHistoryResponse)
async def get_history(
    subscription_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> StatusHistoryResponse:
    """Status changes of one subscription, newest first."""
    subscription = await _get_owned_subscription(db, subscription_id, current_user)
    history = await subscription_service.get_status_history(db, subscription.id)
    return StatusHistoryResponse(history=[StatusHistoryEntry.model_validate(h) for h in history])


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


@router.put("/{subscription_id}/pause", response_model=SubscriptionResponse)
async def pause(
    subscription_id: uuid.UUID,
    body: TransitionRequest | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionResponse:
    """Pause deliveries; remaining days are frozen until resume."""
    subscription = await _get_owned_subscription(db, subscription_id, current_user, for_update=True)
    updated, now = await run_transition(
        subscription_service.pause_subscription, db, subscription, current_user.username, body and body.reason
    )
    return serialize(updated, now)


@router.put("/{subscription_id}/resume", response_model=SubscriptionResponse)
async def resume(
    subscription_id: uuid.UUID,
    body: TransitionRequest | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionResponse:
    """Resume deliveries; the end date moves out by the days spent paused."""
    subscription = await _get_owned_subscription(db, subscription_id, current_user, for_update=True)
    updated, now = await run_transition(
        subscription_service.resume_subscription, db, subscription, current_user.username, body and body.reason
    )
    return serialize(updated, now)


@router.put("/{subscription_id}/cancel", response_model=SubscriptionResponse)
async def cancel(
    subscription_id: uuid.UUID,
    body: TransitionRequest | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionResponse:
    """Cancel the subscription. Cancellation is final."""
    subscription = await _get_owned_subscription(db, subscription_id, current_user, for_update=True)
    updated, now = await run_transition(
        subscription_service.cancel_subscription, db, subscription, current_user.username, body and body.reason
    )
    return serialize(updated, now)
