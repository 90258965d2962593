"""
Common Pydantic schemas - health probes and the error envelope
"""

from typing import Any, Optional

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str


class ReadyResponse(BaseModel):
    """
    Readiness of the escrow API.

    redis is "not_required" when notifications go to the log sink, so a
    missing Redis only blocks readiness when the RQ sink is configured.
    """
    status: str
    database: str
    redis: str
    notification_sink: str


class ErrorDetail(BaseModel):
    code: str
    message: str
    trace_id: Optional[str] = None
    details: Optional[Any] = None


class ErrorResponse(BaseModel):
    """{"error": {code, message, trace_id}} returned for every failed request"""
    error: ErrorDetail


def error_body(code: str, message: str, trace_id: Optional[str], details: Any = None) -> dict:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, trace_id=trace_id, details=details)).model_dump()
    if details is None:
        del body["error"]["details"]
    return body
