"""
Transaction API request/response schemas
"""

from decimal import Decimal
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from payloom.core.transactions.models import Transaction, TransactionStatus


def _money(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


class CreateTransactionRequest(BaseModel):
    """Seller creates a payment link"""
    item_name: str = Field(..., max_length=255, description="Item name")
    item_description: Optional[str] = Field(None, description="Item description")
    item_images: List[str] = Field(default_factory=list, description="Up to 5 http(s) image URLs")
    amount: Decimal = Field(..., description="Price (decimal, major units)")
    currency: Optional[str] = Field(None, description="Currency code (default: settings.DEFAULT_CURRENCY)")
    quantity: int = Field(default=1, description="Quantity")
    expires_at: Optional[datetime] = Field(None, description="Link expiry (default: now + 7 days)")

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        """Normalize currency to uppercase"""
        return v.upper() if v else v

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "item_name": "Leather handbag",
            "amount": "4500.00",
            "currency": "KES",
            "quantity": 1,
            "item_images": ["https://cdn.example.com/bag.jpg"],
        }
    })


class InitiatePaymentRequest(BaseModel):
    """Buyer starts checkout"""
    buyer_name: str = Field(..., description="Buyer full name")
    buyer_phone: str = Field(..., description="Buyer phone number")
    buyer_email: Optional[str] = None
    buyer_address: Optional[str] = None
    payment_method: Optional[str] = Field(None, description="e.g. MPESA, CARD")


class VerifyPaymentRequest(BaseModel):
    reference: str = Field(..., min_length=1, description="Gateway payment reference")


class AcceptOrderRequest(BaseModel):
    payout_contact: Optional[str] = Field(None, description="Where the seller wants to be paid")


class RejectOrderRequest(BaseModel):
    reason: str = Field(..., description="Why the seller rejects the order")


class ShippingInfoRequest(BaseModel):
    courier_name: str
    tracking_number: str
    estimated_delivery_date: Optional[datetime] = None
    shipping_notes: Optional[str] = None


class OpenDisputeRequest(BaseModel):
    reason: str = Field(..., max_length=100, description="Dispute category")
    description: Optional[str] = None
    evidence: List[str] = Field(default_factory=list, description="Evidence URLs")


class TransactionResponse(BaseModel):
    """Transaction as returned to buyers, sellers and admins"""
    id: str
    seller_id: str
    buyer_id: Optional[str] = None
    buyer_name: Optional[str] = None
    buyer_phone: Optional[str] = None
    buyer_email: Optional[str] = None
    item_name: str
    item_description: Optional[str] = None
    item_images: List[str] = Field(default_factory=list)
    amount: str
    currency: str
    quantity: int
    platform_fee: Optional[str] = None
    seller_payout: Optional[str] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    status: TransactionStatus
    expires_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    courier_name: Optional[str] = None
    tracking_number: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None
    shipping_notes: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, transaction: Transaction) -> "TransactionResponse":
        return cls(
            id=transaction.id,
            seller_id=transaction.seller_id,
            buyer_id=transaction.buyer_id,
            buyer_name=transaction.buyer_name,
            buyer_phone=transaction.buyer_phone,
            buyer_email=transaction.buyer_email,
            item_name=transaction.item_name,
            item_description=transaction.item_description,
            item_images=list(transaction.item_images or []),
            amount=_money(transaction.amount),
            currency=transaction.currency,
            quantity=transaction.quantity,
            platform_fee=_money(transaction.platform_fee),
            seller_payout=_money(transaction.seller_payout),
            payment_method=transaction.payment_method,
            payment_reference=transaction.payment_reference,
            status=transaction.status,
            expires_at=transaction.expires_at,
            paid_at=transaction.paid_at,
            accepted_at=transaction.accepted_at,
            shipped_at=transaction.shipped_at,
            delivered_at=transaction.delivered_at,
            completed_at=transaction.completed_at,
            cancelled_at=transaction.cancelled_at,
            refunded_at=transaction.refunded_at,
            rejected_at=transaction.rejected_at,
            rejection_reason=transaction.rejection_reason,
            courier_name=transaction.courier_name,
            tracking_number=transaction.tracking_number,
            estimated_delivery_date=transaction.estimated_delivery_date,
            shipping_notes=transaction.shipping_notes,
            created_at=transaction.created_at,
        )
