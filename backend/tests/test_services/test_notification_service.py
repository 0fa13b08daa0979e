"""Tests for Telegram notifications with a mocked HTTP transport."""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from milkdrop.config import settings
from milkdrop.services import notification_service


@pytest.fixture
def telegram_configured(monkeypatch):
    monkeypatch.setattr(settings, "telegram_bot_token", "123:abc")
    monkeypatch.setattr(settings, "telegram_chat_id", "-100200")


def _mock_client(post: AsyncMock) -> MagicMock:
    client = MagicMock()
    client.post = post
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


class TestSendTelegramMessage:
    @pytest.mark.asyncio
    async def test_disabled_without_token(self, monkeypatch):
        monkeypatch.setattr(settings, "telegram_bot_token", "")
        with patch("milkdrop.services.notification_service.httpx.AsyncClient") as client_cls:
            assert await notification_service.send_telegram_message("hi") is False
        client_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_posts_to_bot_api(self, telegram_configured):
        response = MagicMock()
        response.raise_for_status = MagicMock()
        post = AsyncMock(return_value=response)

        with patch(
            "milkdrop.services.notification_service.httpx.AsyncClient", return_value=_mock_client(post)
        ):
            assert await notification_service.send_telegram_message("hello") is True

        url = post.await_args.args[0]
        assert url == "https://api.telegram.org/bot123:abc/sendMessage"
        assert post.await_args.kwargs["json"]["chat_id"] == "-100200"
        assert post.await_args.kwargs["json"]["parse_mode"] == "HTML"

    @pytest.mark.asyncio
    async def test_transport_error_is_swallowed_and_logged(self, telegram_configured, caplog):
        post = AsyncMock(side_effect=httpx.ConnectError("unreachable"))

        with patch(
            "milkdrop.services.notification_service.httpx.AsyncClient", return_value=_mock_client(post)
        ):
            with caplog.at_level("WARNING"):
                assert await notification_service.send_telegram_message("hello") is False

        assert "Telegram notification failed" in caplog.text


class TestMessages:
    @pytest.mark.asyncio
    async def test_new_subscription_message_escapes_html(self):
        subscription = SimpleNamespace(
            subscription_type="500ml",
            duration="6days",
            amount=Decimal("300.00"),
            currency="inr",
            flat_number="4B",
            building_name="Lotus <Residency>",
            address="12 MG Road",
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 8),
        )
        with patch.object(notification_service, "send_telegram_message", new_callable=AsyncMock) as send:
            await notification_service.notify_new_subscription("asha", subscription)

        text = send.await_args.args[0]
        assert "Lotus &lt;Residency&gt;" in text
        assert "300.00 INR" in text
        assert "2024-01-08" in text

    @pytest.mark.asyncio
    async def test_operator_alert(self):
        with patch.object(notification_service, "send_telegram_message", new_callable=AsyncMock) as send:
            await notification_service.notify_operator_alert("Subscription x is paused without paused_at")

        assert send.await_args.args[0].startswith("<b>ALERT</b>")
