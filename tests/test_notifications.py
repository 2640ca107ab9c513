from __future__ import annotations

import json

import allure
import httpx

from taskguard.config import NotificationSettings, Settings
from taskguard.orchestrator.notifications import (
    LoggingNotifier,
    NullNotifier,
    WebhookNotifier,
    notify_safely,
)
from taskguard.runtime import build_notifier

pytestmark = [
    allure.epic("Notifications"),
    allure.feature("Delivery"),
]


def test_webhook_posts_json_payload() -> None:
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    notifier = WebhookNotifier(
        url="https://hooks.example.com/notify",
        transport=httpx.MockTransport(_handler),
    )
    try:
        assert notify_safely(notifier, "user-1", "Task copy completed") is True
    finally:
        notifier.close()

    assert len(seen) == 1
    assert seen[0].method == "POST"
    assert str(seen[0].url) == "https://hooks.example.com/notify"
    assert json.loads(seen[0].content) == {"user_id": "user-1", "summary": "Task copy completed"}


def test_webhook_failure_is_reported_not_raised() -> None:
    notifier = WebhookNotifier(
        url="https://hooks.example.com/notify",
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )
    try:
        assert notify_safely(notifier, "user-1", "summary") is False
    finally:
        notifier.close()


def test_build_notifier_follows_settings(tmp_path) -> None:
    disabled = Settings(
        db_path=tmp_path / "a.db",
        notifications=NotificationSettings(enabled=False),
    )
    default = Settings(db_path=tmp_path / "b.db")
    webhook = Settings(
        db_path=tmp_path / "c.db",
        notifications=NotificationSettings(webhook_url="https://hooks.example.com/x"),
    )

    assert isinstance(build_notifier(disabled), NullNotifier)
    assert isinstance(build_notifier(default), LoggingNotifier)
    built = build_notifier(webhook)
    try:
        assert isinstance(built, WebhookNotifier)
        assert built.url == "https://hooks.example.com/x"
    finally:
        built.close()
