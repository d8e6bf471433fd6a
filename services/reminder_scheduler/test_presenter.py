"""Unit tests for notification presentation."""

import json

import httpx
import pytest

from services.reminder_scheduler.presenter import NotificationPresenter


def make_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_disabled_presenter_sends_nothing():
    requests = []
    presenter = NotificationPresenter(
        enabled=False,
        webhook_url="http://device.test/notify",
        client=make_client(lambda request: requests.append(request) or httpx.Response(200))
    )

    await presenter.present("Medicine Reminder", "Time to take Paracetamol", {"reminder_id": "r1"})

    assert requests == []


@pytest.mark.asyncio
async def test_enabled_presenter_posts_to_webhook():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200)

    presenter = NotificationPresenter(
        enabled=True,
        webhook_url="http://device.test/notify",
        client=make_client(handler)
    )

    await presenter.present("Medicine Reminder", "Time to take Paracetamol (1 tablet)", {"reminder_id": "r1"})

    assert len(requests) == 1
    assert json.loads(requests[0].content) == {
        "title": "Medicine Reminder",
        "body": "Time to take Paracetamol (1 tablet)",
        "data": {"reminder_id": "r1"},
    }


@pytest.mark.asyncio
async def test_enabled_presenter_without_webhook_only_logs():
    presenter = NotificationPresenter(enabled=True, webhook_url="")

    await presenter.present("Appointment Reminder", "Your appointment with Dr. Rao is in 1 hour")


@pytest.mark.asyncio
async def test_webhook_rejection_raises():
    presenter = NotificationPresenter(
        enabled=True,
        webhook_url="http://device.test/notify",
        client=make_client(lambda request: httpx.Response(500))
    )

    with pytest.raises(httpx.HTTPStatusError):
        await presenter.present("Medicine Reminder", "Time to take Paracetamol")


def test_defaults_from_environment(monkeypatch):
    monkeypatch.setenv("ENABLE_NOTIFICATIONS", "true")
    monkeypatch.setenv("NOTIFICATION_WEBHOOK_URL", "http://device.test/notify")

    presenter = NotificationPresenter()

    assert presenter.notification_enabled is True
    assert presenter.notification_webhook == "http://device.test/notify"
