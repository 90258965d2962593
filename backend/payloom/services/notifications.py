"""
Notification emission - Fire-and-forget events after a transition commits

A sink failure never rolls back or blocks the transition: emit() logs it,
counts it and moves on.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Protocol

from payloom.infrastructure.settings import get_settings
from payloom.utils.metrics import record_notification_failed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    """(transaction_id, event_type, payload) handed to the sink"""
    transaction_id: str
    event_type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "event_type": self.event_type,
            "payload": self.payload,
            "occurred_at": self.occurred_at.isoformat(),
        }


class NotificationSink(Protocol):
    def send(self, event: NotificationEvent) -> None:
        ...


class LoggingNotificationSink:
    """Sink that only logs (local runs and dry runs)"""

    def send(self, event: NotificationEvent) -> None:
        logger.info(
            "Notification event",
            extra={"transaction_id": event.transaction_id, "event_type": event.event_type},
        )


class RQNotificationSink:
    """Enqueue payloom.workers.jobs.deliver_notification on the notification queue"""

    def __init__(self, queue_name: Optional[str] = None, connection=None):
        self.queue_name = queue_name or get_settings().NOTIFICATION_QUEUE
        self._connection = connection
        self._queue = None

    def _get_queue(self):
        if self._queue is None:
            from payloom.infrastructure.redis_client import get_queue

            self._queue = get_queue(self.queue_name, connection=self._connection)
        return self._queue

    def send(self, event: NotificationEvent) -> None:
        self._get_queue().enqueue(
            "payloom.workers.jobs.deliver_notification",
            event.to_dict(),
        )


class InMemoryNotificationSink:
    """Collects events in a list"""

    def __init__(self):
        self.events: List[NotificationEvent] = []

    def send(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def types(self) -> List[str]:
        return [event.event_type for event in self.events]


def emit(sink: NotificationSink, events: Iterable[Optional[NotificationEvent]]) -> int:
    """
    Hand events to the sink. Call only after db.commit().

    Returns the number of events the sink accepted.
    """
    sent = 0
    for event in events:
        if event is None:
            continue
        try:
            sink.send(event)
            sent += 1
        except Exception:
            record_notification_failed(event.event_type)
            logger.exception(
                "Notification delivery failed",
                extra={"transaction_id": event.transaction_id, "event_type": event.event_type},
            )
    return sent


_default_sink: Optional[NotificationSink] = None


def get_notifier() -> NotificationSink:
    """FastAPI dependency returning the configured sink"""
    global _default_sink
    if _default_sink is None:
        if get_settings().NOTIFICATION_SINK.lower() == "rq":
            _default_sink = RQNotificationSink()
        else:
            _default_sink = LoggingNotificationSink()
    return _default_sink
