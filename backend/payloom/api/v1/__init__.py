"""
API v1 routes - Buyer and seller API
"""

from fastapi import APIRouter
from payloom.infrastructure.settings import get_settings
from payloom.api.v1.transactions import router as transactions_router
from payloom.api.v1.disputes import router as disputes_router
from payloom.api.v1.wallet import router as wallet_router

settings = get_settings()
router = APIRouter(prefix=settings.API_V1_PREFIX, tags=["api-v1"])

router.include_router(transactions_router)
router.include_router(disputes_router)
router.include_router(wallet_router)
