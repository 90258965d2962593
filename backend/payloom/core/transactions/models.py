"""
Transaction model - One escrowed purchase created from a seller's payment link
"""

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Numeric,
    DateTime,
    JSON,
    Enum as SQLEnum,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
import enum
from payloom.core.common.base_model import BaseModel


class TransactionStatus(str, enum.Enum):
    """Escrow transaction status"""
    PENDING = "PENDING"  # Payment link created, waiting for the buyer
    PROCESSING = "PROCESSING"  # Buyer started payment, waiting for the gateway
    PAID = "PAID"  # Funds held in escrow
    ACCEPTED = "ACCEPTED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"  # Funds released to the seller wallet
    DISPUTED = "DISPUTED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    EXPIRED = "EXPIRED"


TERMINAL_STATUSES = frozenset({
    TransactionStatus.COMPLETED,
    TransactionStatus.CANCELLED,
    TransactionStatus.REFUNDED,
    TransactionStatus.EXPIRED,
})


class Transaction(BaseModel):
    """
    Transaction model - Escrowed purchase between a seller and a buyer

    The row is mutated only through payloom.services.escrow_service, one
    conditional UPDATE per transition. Rows are never deleted; CANCELLED,
    REFUNDED and EXPIRED transactions stay for audit.

    Each forward timestamp is written exactly once. At most one of
    completed_at / cancelled_at / refunded_at is set.
    """

    __tablename__ = "transactions"

    # Parties (opaque user ids from the auth service)
    seller_id = Column(String(64), nullable=False, index=True)
    buyer_id = Column(String(64), nullable=True, index=True)  # NULL until the buyer starts payment
    buyer_name = Column(String(255), nullable=True)
    buyer_phone = Column(String(50), nullable=True)
    buyer_email = Column(String(255), nullable=True)
    buyer_address = Column(Text, nullable=True)

    # Item
    item_name = Column(String(255), nullable=False)
    item_description = Column(Text, nullable=True)
    item_images = Column(JSON, nullable=False, default=list)

    # Commercial
    amount = Column(Numeric(20, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="KES")
    quantity = Column(Integer, nullable=False, default=1)
    platform_fee = Column(Numeric(20, 2), nullable=True)  # Written once, at completion
    seller_payout = Column(Numeric(20, 2), nullable=True)  # Written once, at completion
    payout_contact = Column(String(255), nullable=True)  # Optional, recorded when the seller accepts

    # Payment
    payment_method = Column(String(50), nullable=True)
    payment_reference = Column(String(255), nullable=True, unique=True, index=True)

    status = Column(
        SQLEnum(TransactionStatus, name="transaction_status", create_constraint=True),
        nullable=False,
        default=TransactionStatus.PENDING,
        index=True,
    )

    # Lifecycle timestamps
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True, index=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # Shipping (written by the SHIPPED transition only)
    courier_name = Column(String(255), nullable=True)
    tracking_number = Column(String(255), nullable=True)
    estimated_delivery_date = Column(DateTime(timezone=True), nullable=True)
    shipping_notes = Column(Text, nullable=True)

    # Relationships
    dispute = relationship("Dispute", back_populates="transaction", uselist=False, lazy="select")

    __table_args__ = (
        CheckConstraint('amount > 0', name='check_transactions_amount_positive'),
        CheckConstraint('quantity > 0', name='check_transactions_quantity_positive'),
        CheckConstraint(
            '(CASE WHEN completed_at IS NOT NULL THEN 1 ELSE 0 END)'
            ' + (CASE WHEN cancelled_at IS NOT NULL THEN 1 ELSE 0 END)'
            ' + (CASE WHEN refunded_at IS NOT NULL THEN 1 ELSE 0 END) <= 1',
            name='check_transactions_single_terminal_timestamp',
        ),
        CheckConstraint(
            'seller_payout IS NULL OR platform_fee IS NOT NULL',
            name='check_transactions_payout_has_fee',
        ),
        Index('ix_transactions_status_expires_at', 'status', 'expires_at'),
        Index('ix_transactions_status_shipped_at', 'status', 'shipped_at'),
    )
