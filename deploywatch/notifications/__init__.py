"""Notifications: stored in-app records plus Slack / Telegram push.

Health alerts are written to the notifications table by the recorder; when a
webhook is configured the same alert is pushed out. All webhook calls are
fire-and-forget via httpx async: a failed push is logged, never raised.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from deploywatch.config import settings
from deploywatch.notifications.models import Notification, NotificationType, Severity
from deploywatch.notifications.store import NotificationStore

logger = logging.getLogger(__name__)

__all__ = [
    "Notification",
    "NotificationManager",
    "NotificationStore",
    "NotificationType",
    "Severity",
    "get_notifier",
]

_EMOJI = {
    Severity.INFO: "ℹ️",
    Severity.WARNING: "⚠️",
    Severity.ERROR: "🔴",
    Severity.SUCCESS: "✅",
}


class NotificationManager:
    """Central dispatcher for Slack / Telegram notifications."""

    def __init__(
        self,
        slack_webhook: str = "",
        telegram_token: str = "",
        telegram_chat_id: str = "",
    ) -> None:
        self.slack_webhook = slack_webhook or settings.slack_webhook_url
        self.telegram_token = telegram_token or settings.telegram_bot_token
        self.telegram_chat_id = telegram_chat_id or settings.telegram_chat_id
        self._enabled = bool(self.slack_webhook or (self.telegram_token and self.telegram_chat_id))

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    def status(self) -> dict[str, Any]:
        return {
            "enabled": self._enabled,
            "slack_configured": bool(self.slack_webhook),
            "telegram_configured": bool(self.telegram_token and self.telegram_chat_id),
        }

    # -- High-level notification methods ------------------------------------

    @staticmethod
    def format(notification: Notification) -> str:
        text = f"{_EMOJI[notification.severity]} *{notification.title}*\n{notification.message}\n"
        if notification.related_entity_id:
            text += f"{notification.related_entity_type or 'entity'}: `{notification.related_entity_id}`\n"
        return text

    async def push(self, notification: Notification) -> None:
        """Push a stored notification to the configured channels."""
        await self._send(self.format(notification))

    # -- Low-level dispatch -------------------------------------------------

    async def _send(self, text: str) -> None:
        """Dispatch to all configured channels (fire-and-forget)."""
        if not self._enabled:
            return
        tasks = []
        if self.slack_webhook:
            tasks.append(self._send_slack(text))
        if self.telegram_token and self.telegram_chat_id:
            tasks.append(self._send_telegram(text))
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _send_slack(self, text: str) -> None:
        """POST to Slack incoming webhook."""
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.post(
                    self.slack_webhook,
                    json={"text": text, "mrkdwn": True},
                )
                if resp.status_code != 200:
                    logger.warning("Slack webhook returned %d: %s", resp.status_code, resp.text[:200])
        except Exception as exc:
            logger.warning("Slack notification failed: %s", exc)

    async def _send_telegram(self, text: str) -> None:
        """POST to Telegram Bot API."""
        url = f"https://api.telegram.org/bot{self.telegram_token}/sendMessage"
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.post(
                    url,
                    json={
                        "chat_id": self.telegram_chat_id,
                        "text": text,
                        "parse_mode": "Markdown",
                    },
                )
                if resp.status_code != 200:
                    logger.warning("Telegram API returned %d: %s", resp.status_code, resp.text[:200])
        except Exception as exc:
            logger.warning("Telegram notification failed: %s", exc)


# -- Singleton -----------------------------------------------------------------

_notifier: NotificationManager | None = None


def get_notifier() -> NotificationManager:
    """Return the process-level notification manager."""
    global _notifier
    if _notifier is None:
        _notifier = NotificationManager()
    return _notifier
