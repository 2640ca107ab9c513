"""Best-effort user notifications."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_RETRIES = 2


class Notifier(Protocol):
    def notify(self, user_id: str, summary: str) -> None:
        """Deliver a short summary to the user."""


class LoggingNotifier:
    """Write notifications to the application log."""

    def notify(self, user_id: str, summary: str) -> None:
        logger.info("Notification for %s: %s", user_id, summary)


class NullNotifier:
    def notify(self, user_id: str, summary: str) -> None:
        return None


class WebhookNotifier:
    """POST notifications as JSON to a webhook endpoint."""

    def __init__(
        self,
        *,
        url: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.url = url
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 5.0)),
            transport=transport or httpx.HTTPTransport(retries=max_retries),
        )

    def notify(self, user_id: str, summary: str) -> None:
        response = self._client.post(self.url, json={"user_id": user_id, "summary": summary})
        response.raise_for_status()

    def close(self) -> None:
        self._client.close()


def notify_safely(notifier: Notifier, user_id: str, summary: str) -> bool:
    """Deliver a notification; delivery failures are logged, never raised."""

    try:
        notifier.notify(user_id, summary)
    except Exception:  # noqa: BLE001
        logger.warning("Notification to %s failed", user_id, exc_info=True)
        return False
    return True
