"""
Trace ID utilities for request tracking

Incoming X-Trace-ID / X-Request-Id values are reused only when they look like
an identifier; anything else (too long, spaces, control characters) is
replaced so it cannot pollute the JSON logs or the audit trail.
"""

import re
import uuid
from typing import Optional
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from payloom.infrastructure.logging_config import trace_id_context

_TRACE_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:\-]{1,64}$")


def generate_trace_id() -> str:
    return str(uuid.uuid4())


def accept_trace_id(value: Optional[str]) -> Optional[str]:
    """Return value if it is usable as a trace id, else None"""
    if value and _TRACE_ID_PATTERN.match(value):
        return value
    return None


class TraceIDMiddleware(BaseHTTPMiddleware):
    """Inject trace_id into request state, logs and the X-Trace-ID response header"""

    async def dispatch(self, request: Request, call_next):
        trace_id = (
            accept_trace_id(request.headers.get("X-Trace-ID"))
            or accept_trace_id(request.headers.get("X-Request-Id"))
            or generate_trace_id()
        )

        request.state.trace_id = trace_id
        token = trace_id_context.set(trace_id)
        try:
            response = await call_next(request)
        finally:
            trace_id_context.reset(token)

        response.headers["X-Trace-ID"] = trace_id
        return response


def get_trace_id(request: Request) -> Optional[str]:
    return getattr(request.state, "trace_id", None)
