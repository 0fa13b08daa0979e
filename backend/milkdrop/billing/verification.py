"""Server-side verification of a paid Checkout Session.

The browser only hands us a session ID; everything that decides what the
customer bought (plan, amount, delivery address, owner) is read back from
Stripe and checked here before a subscription is created.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

import stripe

from milkdrop.config import settings
from milkdrop.subscriptions.plans import MilkPlan, get_plan

logger = logging.getLogger(__name__)


class PaymentVerificationError(Exception):
    """A checkout session does not prove payment for the claimed order."""


@dataclass(frozen=True)
class VerifiedOrder:
    """A paid order, ready to become a subscription."""

    user_id: uuid.UUID
    plan: MilkPlan
    address: str
    building_name: str
    flat_number: str
    latitude: Decimal | None
    longitude: Decimal | None
    payment_id: str
    checkout_session_id: str
    amount: Decimal
    currency: str


def build_order_metadata(
    user_id: uuid.UUID,
    plan: MilkPlan,
    address: str,
    building_name: str,
    flat_number: str,
    latitude: float,
    longitude: float,
) -> dict[str, str]:
    """Metadata attached to the Checkout Session (Stripe stores strings only)."""
    return {
        "user_id": str(user_id),
        "plan": plan.code,
        "address": address,
        "building_name": building_name,
        "flat_number": flat_number,
        "latitude": str(latitude),
        "longitude": str(longitude),
    }


def _meta(metadata, key: str) -> str | None:
    """Bracket lookup that works for both StripeObject and plain dicts."""
    if metadata is None or key not in metadata:
        return None
    return metadata[key]


def _to_decimal(value: str | None) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(value)
    except InvalidOperation:
        raise PaymentVerificationError(f"Invalid coordinate in order metadata: {value!r}") from None


def verify_checkout_session(
    session: stripe.checkout.Session,
    expected_user_id: uuid.UUID | None = None,
) -> VerifiedOrder:
    """Check that ``session`` is a paid order for a known plan at the right price.

    Args:
        session: The Checkout Session as retrieved from Stripe (or carried by a
            signature-verified webhook event).
        expected_user_id: When given, the order must belong to this user.

    Raises:
        PaymentVerificationError: On any mismatch.
    """
    metadata = session.metadata

    if session.payment_status != "paid":
        raise PaymentVerificationError(f"Payment status: {session.payment_status}")

    raw_user_id = _meta(metadata, "user_id")
    try:
        user_id = uuid.UUID(raw_user_id) if raw_user_id else None
    except ValueError:
        user_id = None
    if user_id is None:
        raise PaymentVerificationError("Checkout session has no owner")
    if expected_user_id is not None and user_id != expected_user_id:
        raise PaymentVerificationError("Checkout session belongs to another user")

    plan = get_plan(_meta(metadata, "plan") or "")
    if plan is None:
        raise PaymentVerificationError(f"Unknown plan in checkout session: {_meta(metadata, 'plan')!r}")

    if session.amount_total != plan.price_minor:
        raise PaymentVerificationError(
            f"Amount mismatch: expected {plan.price_minor}, got {session.amount_total}"
        )
    currency = (session.currency or "").lower()
    if currency != settings.stripe_currency:
        raise PaymentVerificationError(
            f"Currency mismatch: expected {settings.stripe_currency}, got {currency}"
        )

    address = _meta(metadata, "address")
    building_name = _meta(metadata, "building_name")
    flat_number = _meta(metadata, "flat_number")
    if not (address and building_name and flat_number):
        raise PaymentVerificationError("Checkout session is missing the delivery address")

    payment_id = session.payment_intent or session.id

    logger.info("Verified checkout session %s (payment %s, plan %s)", session.id, payment_id, plan.code)
    return VerifiedOrder(
        user_id=user_id,
        plan=plan,
        address=address,
        building_name=building_name,
        flat_number=flat_number,
        latitude=_to_decimal(_meta(metadata, "latitude")),
        longitude=_to_decimal(_meta(metadata, "longitude")),
        payment_id=payment_id,
        checkout_session_id=session.id,
        amount=plan.price,
        currency=currency,
    )
