"""
Reminder delivery adapters.

The scheduler only needs ``send(user_email, notification_type, context)``
returning a ``NotifierResult``; transport failures are reported in the
result instead of raised so one bad send never aborts a batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from timeclock.core.config import settings

logger = logging.getLogger(__name__)

SUBJECTS = {
    "CLOCK_IN_REMINDER": "Time to clock in",
    "CLOCK_OUT_REMINDER": "Don't forget to clock out",
    "BREAK_RETURN_REMINDER": "Time to return from your break",
    "MISSED_PUNCH_REMINDER": "You may have missed a clock-out",
}


@dataclass
class NotifierResult:
    success: bool
    error: str | None = None


class Notifier:
    async def send(
        self, user_email: str, notification_type: str, context: dict[str, Any]
    ) -> NotifierResult:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Writes the reminder to the log; used when no transport is configured."""

    async def send(
        self, user_email: str, notification_type: str, context: dict[str, Any]
    ) -> NotifierResult:
        logger.info(
            "Reminder %s for %s: %s",
            notification_type,
            user_email,
            SUBJECTS.get(notification_type, notification_type),
        )
        return NotifierResult(success=True)


class WebhookNotifier(Notifier):
    """POSTs each reminder as JSON to an outbound webhook (mail relay, chat bot)."""

    def __init__(
        self, url: str, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def send(
        self, user_email: str, notification_type: str, context: dict[str, Any]
    ) -> NotifierResult:
        body = {
            "to": user_email,
            "type": notification_type,
            "subject": SUBJECTS.get(notification_type, notification_type),
            "context": context,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(self.url, json=body)
        except httpx.HTTPError as exc:
            logger.warning("Webhook delivery to %s failed: %s", user_email, exc)
            return NotifierResult(success=False, error=str(exc) or type(exc).__name__)
        if not resp.is_success:
            return NotifierResult(success=False, error=f"Webhook returned HTTP {resp.status_code}")
        return NotifierResult(success=True)


def build_notifier() -> Notifier:
    if settings.NOTIFIER_WEBHOOK_URL:
        return WebhookNotifier(settings.NOTIFIER_WEBHOOK_URL, timeout=settings.NOTIFIER_TIMEOUT_SECONDS)
    return LoggingNotifier()
