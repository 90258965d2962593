"""
Global exception handlers
"""

import logging
from decimal import Decimal
from typing import Any, Dict
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from payloom.core.escrow.errors import (
    ConcurrencyConflictError,
    EscrowError,
    ExternalDependencyError,
    InsufficientFundsError,
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedActorError,
    ValidationError,
)
from payloom.schemas.common import error_body
from payloom.utils.trace_id import get_trace_id

logger = logging.getLogger(__name__)

# Most specific first
ESCROW_ERROR_STATUS = (
    (UnauthorizedActorError, status.HTTP_403_FORBIDDEN),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (InsufficientFundsError, status.HTTP_409_CONFLICT),
    (ConcurrencyConflictError, status.HTTP_409_CONFLICT),
    (ExternalDependencyError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for_escrow_error(exc: EscrowError) -> int:
    for error_class, status_code in ESCROW_ERROR_STATUS:
        if isinstance(exc, error_class):
            return status_code
    return status.HTTP_400_BAD_REQUEST


async def escrow_exception_handler(request: Request, exc: EscrowError) -> JSONResponse:
    """Map domain errors to HTTP (the endpoint already rolled back)"""
    return JSONResponse(
        status_code=status_for_escrow_error(exc),
        content=error_body(exc.code, exc.message, get_trace_id(request)),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions"""
    trace_id = get_trace_id(request)

    # detail already shaped as {"error": {...}}: keep its code, add the trace id
    if isinstance(exc.detail, dict) and isinstance(exc.detail.get("error"), dict):
        error_response: Dict[str, Any] = {"error": dict(exc.detail["error"])}
        error_response["error"].setdefault("trace_id", trace_id)
    else:
        error_response = error_body(
            f"HTTP_{exc.status_code}",
            exc.detail if isinstance(exc.detail, str) else str(exc.detail),
            trace_id,
        )

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response,
        headers=getattr(exc, "headers", None),
    )


def _convert_non_serializable(obj):
    """Recursively convert non-JSON-serializable objects to strings"""
    if isinstance(obj, (Decimal, Exception)):
        return str(obj)
    elif isinstance(obj, dict):
        return {key: _convert_non_serializable(value) for key, value in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_convert_non_serializable(item) for item in obj]
    return obj


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle validation exceptions"""
    error_response = error_body(
        "VALIDATION_ERROR",
        "Request validation failed",
        get_trace_id(request),
        details=_convert_non_serializable(exc.errors()),
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_response,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle general exceptions"""
    trace_id = get_trace_id(request)
    logger.exception("Unhandled exception", exc_info=exc, extra={"trace_id": trace_id})

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("INTERNAL_ERROR", "An internal error occurred", trace_id),
    )
