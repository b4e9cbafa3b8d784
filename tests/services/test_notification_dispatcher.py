"""
Tests for NotificationDispatcher: best-effort, bounded-time delivery.

Delivery failures and slow senders are logged and counted, never raised.
"""

import threading
from uuid import uuid4

import pytest

from fleet_kernel.domain.notifications import NotificationType, notify
from fleet_services.notification_dispatcher import (
    DispatchReport,
    LoggingNotificationSender,
    NotificationDispatcher,
)


class RecordingSender:

    def __init__(self):
        self.calls = []

    def notify(self, user_id, type, title, body, related_id=None):
        self.notify_many([user_id], type, title, body, related_id)

    def notify_many(self, user_ids, type, title, body, related_id=None):
        self.calls.append((tuple(user_ids), type, related_id))


class ExplodingSender(RecordingSender):

    def notify_many(self, user_ids, type, title, body, related_id=None):
        raise ConnectionError("push gateway down")


class TimingOutSender(RecordingSender):

    def notify_many(self, user_ids, type, title, body, related_id=None):
        raise TimeoutError("smtp timed out")


class BlockingSender(RecordingSender):

    def __init__(self):
        super().__init__()
        self.release = threading.Event()

    def notify_many(self, user_ids, type, title, body, related_id=None):
        self.release.wait(timeout=5)
        super().notify_many(user_ids, type, title, body, related_id)


def _intents(count=1):
    out = ()
    for _ in range(count):
        out += notify([uuid4()], NotificationType.REQUEST_APPROVED, "Approved", "ok", uuid4())
    return out


@pytest.fixture
def make_dispatcher():
    created = []

    def _make(sender, timeout_seconds=2.0):
        dispatcher = NotificationDispatcher(sender, timeout_seconds=timeout_seconds)
        created.append(dispatcher)
        return dispatcher

    yield _make
    for dispatcher in created:
        dispatcher.shutdown()


class TestDispatch:

    def test_every_intent_is_delivered(self, make_dispatcher):
        sender = RecordingSender()
        intents = _intents(3)
        report = make_dispatcher(sender).dispatch(intents)
        assert report == DispatchReport(delivered=3)
        assert {c[2] for c in sender.calls} == {i.related_id for i in intents}

    def test_nothing_to_dispatch(self, make_dispatcher):
        sender = RecordingSender()
        report = make_dispatcher(sender).dispatch(())
        assert report.attempted == 0
        assert sender.calls == []

    def test_sender_failure_is_logged_not_raised(self, make_dispatcher, captured_logs):
        intents = _intents(2)
        report = make_dispatcher(ExplodingSender()).dispatch(intents)
        assert report == DispatchReport(failed=2)
        failures = [r for r in captured_logs() if r["message"] == "notification_delivery_failed"]
        assert len(failures) == 2
        assert failures[0]["exc_type"] == "ConnectionError"
        assert failures[0]["notification_type"] == "request_approved"

    def test_sender_timeout_error_counts_as_failure(self, make_dispatcher, captured_logs):
        report = make_dispatcher(TimingOutSender()).dispatch(_intents())
        assert report == DispatchReport(failed=1)
        messages = [r["message"] for r in captured_logs()]
        assert "notification_delivery_failed" in messages
        assert "notification_delivery_timed_out" not in messages

    def test_slow_sender_is_abandoned(self, make_dispatcher, captured_logs):
        sender = BlockingSender()
        try:
            report = make_dispatcher(sender, timeout_seconds=0.05).dispatch(_intents())
        finally:
            sender.release.set()
        assert report == DispatchReport(timed_out=1)
        assert any(
            r["message"] == "notification_delivery_timed_out" and r["timeout_seconds"] == 0.05
            for r in captured_logs()
        )


class TestLoggingSender:

    def test_one_log_line_per_recipient(self, captured_logs):
        a, b = uuid4(), uuid4()
        LoggingNotificationSender().notify_many(
            [a, b], NotificationType.TRIP_STARTED, "Trip started", "", None,
        )
        sent = [r for r in captured_logs() if r["message"] == "notification_sent"]
        assert [r["recipient"] for r in sent] == [str(a), str(b)]
        assert sent[0]["related_id"] is None
