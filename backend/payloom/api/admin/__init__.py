"""
Admin API routes - INTERNAL ONLY
"""

from fastapi import APIRouter
from payloom.infrastructure.settings import get_settings
from payloom.api.admin.disputes import router as disputes_router

settings = get_settings()
router = APIRouter(prefix=settings.ADMIN_V1_PREFIX, tags=["admin-v1"])

router.include_router(disputes_router, tags=["admin-disputes"])
