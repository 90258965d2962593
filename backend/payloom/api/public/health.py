"""
Health check endpoints
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from payloom.infrastructure.database import get_db, ping_db
from payloom.infrastructure.redis_client import ping_redis
from payloom.infrastructure.settings import get_settings
from payloom.schemas.common import HealthResponse, ReadyResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health():
    """Liveness: the process is up"""
    return {"status": "ok"}


@router.get("/ready", response_model=ReadyResponse)
def ready(db: Session = Depends(get_db)):
    """
    Readiness check

    The database is always required. Redis is required only when
    notifications are delivered through RQ.

    Returns:
    - 200 if ready
    - 503 otherwise
    """
    sink = get_settings().NOTIFICATION_SINK.lower()
    checks = {
        "status": "ok",
        "database": "connected",
        "redis": "not_required",
        "notification_sink": sink,
    }

    database_error = ping_db(db)
    if database_error is not None:
        checks["database"] = f"error: {database_error}"
        checks["status"] = "not_ready"

    if sink == "rq":
        if ping_redis():
            checks["redis"] = "connected"
        else:
            checks["redis"] = "disconnected"
            checks["status"] = "not_ready"

    if checks["status"] != "ok":
        logger.warning("Readiness check failed", extra={"checks": checks})
    status_code = 200 if checks["status"] == "ok" else 503
    return JSONResponse(status_code=status_code, content=checks)
