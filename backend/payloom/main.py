"""
FastAPI application entry point
"""

import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from payloom.infrastructure.settings import get_settings
from payloom.infrastructure.logging_config import setup_logging
from payloom.api.exceptions import (
    escrow_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    general_exception_handler,
)
from payloom.api.public.health import router as health_router
from payloom.api.public.metrics import router as metrics_router
from payloom.api.v1 import router as api_v1_router
from payloom.api.admin import router as admin_router
from payloom.api.webhooks import router as webhooks_router
from payloom.core.escrow.errors import EscrowError
from payloom.utils.trace_id import TraceIDMiddleware
from payloom.utils.request_logging import RequestLoggingMiddleware

settings = get_settings()

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="PayLoom Escrow API",
    description="Escrow transaction lifecycle for PayLoom payment links",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

if settings.CORS_ENABLED:
    cors_origins = settings.cors_allow_origins_list
    if not cors_origins:
        logger.warning(
            "CORS_ENABLED=True but CORS_ALLOW_ORIGINS is empty. "
            "Set CORS_ALLOW_ORIGINS (comma-separated) to allow browser clients."
        )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

# Order matters - last added is outermost, so TraceIDMiddleware wraps request logging
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(TraceIDMiddleware)

app.add_exception_handler(EscrowError, escrow_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

app.include_router(health_router)
app.include_router(metrics_router)
app.include_router(api_v1_router)
app.include_router(admin_router)
app.include_router(webhooks_router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": "PayLoom Escrow API",
        "version": "1.0.0",
        "status": "running",
    }
