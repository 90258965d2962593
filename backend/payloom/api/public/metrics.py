"""
Prometheus metrics endpoint
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Header, Request, status
from fastapi.responses import Response

from payloom.infrastructure.settings import get_settings
from payloom.utils.metrics import get_metrics_output, CONTENT_TYPE_LATEST

logger = logging.getLogger(__name__)

router = APIRouter(tags=["metrics"])


async def verify_metrics_access(
    request: Request,
    x_metrics_token: Optional[str] = Header(None, alias="X-Metrics-Token"),
) -> bool:
    """
    Access is granted if:
    - METRICS_PUBLIC=true, OR
    - METRICS_TOKEN is set and matches X-Metrics-Token, OR
    - the bearer token carries the ADMIN role
    """
    settings = get_settings()

    if settings.METRICS_PUBLIC:
        return True

    if settings.METRICS_TOKEN and x_metrics_token and x_metrics_token == settings.METRICS_TOKEN:
        return True

    authorization = request.headers.get("Authorization", "")
    if authorization.startswith("Bearer "):
        from payloom.auth.dependencies import decode_token
        try:
            principal = decode_token(authorization.split(" ", 1)[1])
        except HTTPException:
            principal = None
        if principal is not None and principal.is_admin:
            return True

    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Access to metrics endpoint denied. Set METRICS_PUBLIC=true or provide METRICS_TOKEN or an ADMIN token.",
    )


@router.get(
    "/metrics",
    summary="Prometheus metrics endpoint",
    description="Prometheus exposition format. Protected by default (METRICS_PUBLIC=false).",
)
async def get_metrics(_: bool = Depends(verify_metrics_access)) -> Response:
    return Response(content=get_metrics_output(), media_type=CONTENT_TYPE_LATEST)
