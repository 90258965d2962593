"""
Gateway webhook schemas
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from payloom.core.transactions.models import TransactionStatus


class PaystackWebhookPayload(BaseModel):
    """Paystack event envelope: {"event": "...", "data": {...}}"""
    event: str
    data: Dict[str, Any] = Field(default_factory=dict)


class PaystackWebhookResponse(BaseModel):
    status: str  # processed, duplicate, ignored
    transaction_id: Optional[str] = None
    transaction_status: Optional[TransactionStatus] = None
