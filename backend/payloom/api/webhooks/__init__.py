"""
Webhook endpoints - Payment gateway callbacks
"""

from fastapi import APIRouter
from payloom.infrastructure.settings import get_settings
from payloom.api.webhooks.paystack import router as paystack_router

settings = get_settings()
router = APIRouter(prefix=settings.WEBHOOKS_V1_PREFIX, tags=["webhooks-v1"])

router.include_router(paystack_router)
