"""Telegram notifications to the operations chat."""

import html
import logging

import httpx

from milkdrop.config import settings

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


async def send_telegram_message(text: str) -> bool:
    """Post an HTML-formatted message to the configured chat.

    Returns False (after logging) when Telegram is not configured or the
    request fails; notifications never break the calling request.
    """
    if not settings.telegram_enabled:
        logger.debug("Telegram not configured, dropping message")
        return False

    url = f"{TELEGRAM_API_URL}/bot{settings.telegram_bot_token}/sendMessage"
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                url,
                json={"chat_id": settings.telegram_chat_id, "text": text, "parse_mode": "HTML"},
            )
            response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Telegram notification failed: %s", exc)
        return False

    return True


async def notify_new_subscription(username: str, subscription) -> bool:
    """Announce a purchase so the delivery team can schedule it."""
    text = (
        "<b>New subscription</b>\n"
        f"Customer: {html.escape(username)}\n"
        f"Plan: {html.escape(subscription.subscription_type)} / {html.escape(subscription.duration)}\n"
        f"Amount: {subscription.amount} {subscription.currency.upper()}\n"
        f"Delivery: {html.escape(subscription.flat_number)}, "
        f"{html.escape(subscription.building_name)}, {html.escape(subscription.address)}\n"
        f"From {subscription.start_date} to {subscription.end_date}"
    )
    return await send_telegram_message(text)


async def notify_operator_alert(message: str) -> bool:
    """Alert operators about data that needs a human (e.g. corrupt subscription state)."""
    return await send_telegram_message(f"<b>ALERT</b>\n{html.escape(message)}")
