"""
RQ Jobs - Background tasks
"""

import logging
from typing import Any, Dict

from payloom.infrastructure.logging_config import trace_id_context

logger = logging.getLogger(__name__)


def deliver_notification(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deliver one escrow notification event.

    SMS/email delivery is owned by the messaging service; this job logs the
    event with its transaction id so delivery can be traced end to end.
    """
    transaction_id = event.get("transaction_id")
    event_type = event.get("event_type")
    if not transaction_id or not event_type:
        raise ValueError("Notification event needs transaction_id and event_type")

    token = trace_id_context.set(f"notify-{transaction_id}")
    try:
        logger.info(
            "Notification delivered",
            extra={
                "transaction_id": transaction_id,
                "event_type": event_type,
                "occurred_at": event.get("occurred_at"),
            },
        )
    finally:
        trace_id_context.reset(token)
    return {"transaction_id": transaction_id, "event_type": event_type, "delivered": True}
