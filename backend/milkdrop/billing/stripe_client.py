"""Async Stripe API wrapper for one-time subscription payments."""

import logging

import stripe
from stripe import StripeClient

from milkdrop.config import settings

logger = logging.getLogger(__name__)


def get_stripe_client() -> StripeClient:
    """Create a StripeClient instance with async HTTP support."""
    return StripeClient(
        settings.stripe_secret_key,
        http_client=stripe.HTTPXClient(),
    )


async def create_checkout_session(
    customer_email: str,
    product_name: str,
    amount_minor: int,
    success_url: str,
    cancel_url: str,
    metadata: dict[str, str],
) -> stripe.checkout.Session:
    """Create a one-time-payment Checkout Session for a subscription purchase.

    The order details travel in ``metadata`` so the purchase can be recreated
    from the session alone (see ``milkdrop.billing.verification``).
    """
    client = get_stripe_client()
    logger.info(
        "Creating checkout session for %s: %s (%d %s)",
        customer_email,
        product_name,
        amount_minor,
        settings.stripe_currency,
    )
    return await client.v1.checkout.sessions.create_async(
        params={
            "mode": "payment",
            "customer_email": customer_email,
            "line_items": [
                {
                    "price_data": {
                        "currency": settings.stripe_currency,
                        "unit_amount": amount_minor,
                        "product_data": {"name": product_name},
                    },
                    "quantity": 1,
                }
            ],
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
    )


async def retrieve_checkout_session(session_id: str) -> stripe.checkout.Session:
    """Retrieve a Checkout Session by ID."""
    client = get_stripe_client()
    return await client.v1.checkout.sessions.retrieve_async(session_id)


def construct_webhook_event(payload: bytes, sig_header: str) -> stripe.Event:
    """Verify and construct a Stripe webhook event (synchronous)."""
    client = get_stripe_client()
    return client.construct_event(payload, sig_header, settings.stripe_webhook_secret)
