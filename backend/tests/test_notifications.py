"""
Notification sink and worker job tests
"""

import pytest

from payloom.services.notifications import (
    InMemoryNotificationSink,
    LoggingNotificationSink,
    NotificationEvent,
    RQNotificationSink,
    emit,
)
from payloom.workers.jobs import deliver_notification


class FailingSink:
    def send(self, event):
        raise ConnectionError("redis down")


class FakeQueue:
    def __init__(self):
        self.jobs = []

    def enqueue(self, func, *args, **kwargs):
        self.jobs.append((func, args))


def test_emit_counts_accepted_events():
    sink = InMemoryNotificationSink()
    events = [
        NotificationEvent(transaction_id="TXN-1", event_type="PAYMENT_RECEIVED"),
        None,
        NotificationEvent(transaction_id="TXN-1", event_type="ORDER_ACCEPTED"),
    ]

    assert emit(sink, events) == 2
    assert sink.types() == ["PAYMENT_RECEIVED", "ORDER_ACCEPTED"]


def test_emit_swallows_sink_failures():
    events = [NotificationEvent(transaction_id="TXN-1", event_type="PAYMENT_RECEIVED")]
    assert emit(FailingSink(), events) == 0


def test_logging_sink_accepts_events():
    assert emit(LoggingNotificationSink(), [NotificationEvent("TXN-1", "REMINDER")]) == 1


def test_rq_sink_enqueues_delivery_job():
    sink = RQNotificationSink(queue_name="notifications")
    queue = FakeQueue()
    sink._queue = queue

    sink.send(NotificationEvent(transaction_id="TXN-1", event_type="ITEM_SHIPPED", payload={"tracking_number": "T1"}))

    func, args = queue.jobs[0]
    assert func == "payloom.workers.jobs.deliver_notification"
    assert args[0]["transaction_id"] == "TXN-1"
    assert args[0]["event_type"] == "ITEM_SHIPPED"
    assert args[0]["payload"] == {"tracking_number": "T1"}


def test_event_to_dict_is_json_friendly():
    data = NotificationEvent("TXN-1", "LINK_EXPIRED").to_dict()
    assert isinstance(data["occurred_at"], str)


def test_deliver_notification_job():
    result = deliver_notification({"transaction_id": "TXN-1", "event_type": "REMINDER", "payload": {}})
    assert result == {"transaction_id": "TXN-1", "event_type": "REMINDER", "delivered": True}


def test_deliver_notification_rejects_incomplete_event():
    with pytest.raises(ValueError):
        deliver_notification({"event_type": "REMINDER"})
