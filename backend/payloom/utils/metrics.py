"""
Prometheus metrics for observability
"""

import re
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client.core import CollectorRegistry

# Create a custom registry to avoid conflicts
metrics_registry = CollectorRegistry()

# HTTP request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["path", "method", "status"],
    registry=metrics_registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["path", "method"],
    registry=metrics_registry,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Escrow metrics
escrow_transitions_total = Counter(
    "escrow_transitions_total",
    "Escrow transitions attempted",
    ["action", "result"],  # result: accepted, invalid, forbidden, conflict
    registry=metrics_registry,
)

notifications_failed_total = Counter(
    "notifications_failed_total",
    "Notification events the sink failed to accept",
    ["event_type"],
    registry=metrics_registry,
)

# Webhook metrics
paystack_webhook_received_total = Counter(
    "paystack_webhook_received_total",
    "Total Paystack webhook requests received",
    registry=metrics_registry,
)

paystack_webhook_rejected_total = Counter(
    "paystack_webhook_rejected_total",
    "Total Paystack webhook requests rejected",
    ["reason"],  # signature_invalid, payload_invalid, ...
    registry=metrics_registry,
)


def record_http_request(
    path: str,
    method: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """
    Record HTTP request metrics.

    Args:
        path: Request path (normalized)
        method: HTTP method
        status_code: Response status code
        duration_seconds: Request duration in seconds
    """
    normalized_path = _normalize_path(path)

    http_requests_total.labels(
        path=normalized_path,
        method=method.upper(),
        status=str(status_code),
    ).inc()

    http_request_duration_seconds.labels(
        path=normalized_path,
        method=method.upper(),
    ).observe(duration_seconds)


def record_transition(action: str, result: str) -> None:
    """Record one escrow transition attempt (accepted, invalid, forbidden, conflict)"""
    escrow_transitions_total.labels(action=action, result=result).inc()


def record_notification_failed(event_type: str) -> None:
    notifications_failed_total.labels(event_type=event_type).inc()


def record_webhook_received() -> None:
    """Record webhook received"""
    paystack_webhook_received_total.inc()


def record_webhook_rejected(reason: str) -> None:
    """Record webhook rejection"""
    paystack_webhook_rejected_total.labels(reason=reason).inc()


def _normalize_path(path: str) -> str:
    """
    Normalize path for metrics (replace ids with placeholders).

    Examples:
        /api/v1/wallet -> /api/v1/wallet
        /api/v1/transactions/TXN-LX2K9A-1F2E3D4C/accept -> /api/v1/transactions/{id}/accept
        /admin/v1/disputes/123e4567-.../resolve -> /admin/v1/disputes/{id}/resolve
    """
    # Replace UUIDs
    path = re.sub(
        r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}',
        '{id}',
        path,
        flags=re.IGNORECASE,
    )

    # Replace transaction ids
    path = re.sub(r'TXN-[0-9A-Z]+-[0-9A-F]+', '{id}', path, flags=re.IGNORECASE)

    # Replace numeric IDs (if any remain)
    path = re.sub(r'/\d+', '/{id}', path)

    return path


def get_metrics_output() -> bytes:
    """Get Prometheus metrics output"""
    return generate_latest(metrics_registry)


__all__ = [
    "CONTENT_TYPE_LATEST",
    "get_metrics_output",
    "record_http_request",
    "record_transition",
    "record_notification_failed",
    "record_webhook_received",
    "record_webhook_rejected",
]
