"""Tests for outbound notification events."""
import json

import httpx
from fastapi import BackgroundTasks

from conftest import RecordingNotifier
from hollyaid.deps import DeferredDispatcher, get_notifier
from hollyaid.services.notifications import NotificationDispatcher, NotificationEvent


def webhook_client(requests: list, status_code: int = 200) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestDispatcher:
    async def test_posts_event_envelope(self):
        requests: list = []
        dispatcher = NotificationDispatcher("https://hooks.test/notify", client=webhook_client(requests))

        assert await dispatcher.dispatch(NotificationEvent.BOOKING_ACCEPTED, {"booking_id": "b1"}) is True

        sent = json.loads(requests[0].content)
        assert sent["event_type"] == "booking.accepted"
        assert sent["payload"] == {"booking_id": "b1"}
        assert sent["event_id"] and sent["occurred_at"]

    async def test_every_event_gets_its_own_id(self):
        requests: list = []
        dispatcher = NotificationDispatcher("https://hooks.test/notify", client=webhook_client(requests))
        await dispatcher.dispatch(NotificationEvent.MESSAGE_CREATED, {})
        await dispatcher.dispatch(NotificationEvent.MESSAGE_CREATED, {})

        ids = {json.loads(r.content)["event_id"] for r in requests}
        assert len(ids) == 2

    async def test_webhook_error_is_swallowed(self):
        dispatcher = NotificationDispatcher("https://hooks.test/notify", client=webhook_client([], 503))
        assert await dispatcher.dispatch(NotificationEvent.BOOKING_DECLINED, {}) is False

    async def test_unset_webhook_only_logs(self):
        assert await NotificationDispatcher(webhook_url="").dispatch(NotificationEvent.BOOKING_EXPIRED, {}) is True


class TestDeferred:
    async def test_events_wait_for_background_tasks(self):
        recorder = RecordingNotifier()
        tasks = BackgroundTasks()
        deferred = DeferredDispatcher(recorder, tasks)

        await deferred.dispatch(NotificationEvent.BOOKING_REQUESTED, {"booking_id": "b1"})
        await deferred.dispatch(NotificationEvent.COMPANY_LOW_MINUTES, {"company_id": "c1"})
        assert recorder.events == []

        await tasks()
        assert recorder.types() == ["booking.requested", "company.low_minutes"]

    def test_request_notifier_is_deferred(self):
        assert isinstance(get_notifier(BackgroundTasks()), DeferredDispatcher)
