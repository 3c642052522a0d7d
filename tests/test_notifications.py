"""Tests for webhook fan-out of health alerts."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

from deploywatch.notifications import NotificationManager
from deploywatch.notifications.models import Notification, NotificationType, Severity


def alert() -> Notification:
    return Notification(
        type=NotificationType.HEALTH_ALERT,
        title="Health Check Failed: Lead Intake",
        message="n8n instance is unreachable",
        severity=Severity.ERROR,
        created_at=1,
        related_entity_type="deployment",
        related_entity_id="dep-1",
    )


class TestNotificationManager:
    def test_disabled_without_channels(self) -> None:
        with patch("deploywatch.notifications.settings") as s:
            s.slack_webhook_url = ""
            s.telegram_bot_token = ""
            s.telegram_chat_id = ""
            manager = NotificationManager()
        assert manager.is_enabled is False
        assert manager.status()["slack_configured"] is False

    def test_format(self) -> None:
        text = NotificationManager.format(alert())
        assert "Health Check Failed: Lead Intake" in text
        assert "n8n instance is unreachable" in text
        assert "`dep-1`" in text

    def test_push_goes_to_slack_only(self) -> None:
        manager = NotificationManager(slack_webhook="https://hooks.slack.test/x")
        with patch.object(manager, "_send_slack", new=AsyncMock()) as slack, \
                patch.object(manager, "_send_telegram", new=AsyncMock()) as telegram:
            asyncio.run(manager.push(alert()))
        slack.assert_awaited_once()
        assert "Lead Intake" in slack.await_args.args[0]
        telegram.assert_not_awaited()

    def test_telegram_needs_chat_id(self) -> None:
        with patch("deploywatch.notifications.settings") as s:
            s.slack_webhook_url = ""
            s.telegram_chat_id = ""
            manager = NotificationManager(telegram_token="123:abc")
        assert manager.is_enabled is False
