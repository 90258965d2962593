"""
Wallet models - Per-user balances and the money movements that touch them
"""

from sqlalchemy import (
    Column,
    String,
    Text,
    Numeric,
    DateTime,
    ForeignKey,
    Enum as SQLEnum,
    CheckConstraint,
    UniqueConstraint,
)
import enum
from decimal import Decimal
from payloom.core.common.base_model import BaseModel


class Wallet(BaseModel):
    """
    Wallet model - Running balance per user and currency

    Mutated only by:
    - a completed sale crediting the seller (available_balance, total_earned)
    - a buyer refund or top-up crediting available_balance
    - a withdrawal debiting available_balance (total_spent grows)

    Balances are changed with conditional UPDATEs in wallet_service, never
    read-modify-write on the ORM object.
    """

    __tablename__ = "wallets"

    user_id = Column(String(64), nullable=False, index=True)
    currency = Column(String(3), nullable=False, default="KES")
    available_balance = Column(Numeric(20, 2), nullable=False, default=Decimal("0.00"))
    pending_balance = Column(Numeric(20, 2), nullable=False, default=Decimal("0.00"))
    total_earned = Column(Numeric(20, 2), nullable=False, default=Decimal("0.00"))
    total_spent = Column(Numeric(20, 2), nullable=False, default=Decimal("0.00"))

    __table_args__ = (
        CheckConstraint('available_balance >= 0', name='check_wallets_available_non_negative'),
        CheckConstraint('pending_balance >= 0', name='check_wallets_pending_non_negative'),
        UniqueConstraint('user_id', 'currency', name='uq_wallets_user_currency'),
    )


class WithdrawalStatus(str, enum.Enum):
    """Withdrawal status enum"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class Withdrawal(BaseModel):
    """
    Withdrawal model - Gross amount debited from the wallet; net_amount is what the provider sends
    """

    __tablename__ = "withdrawals"

    user_id = Column(String(64), nullable=False, index=True)
    amount = Column(Numeric(20, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    provider = Column(String(50), nullable=False)
    account_number = Column(String(100), nullable=False)
    platform_fee = Column(Numeric(20, 2), nullable=False)
    provider_fee = Column(Numeric(20, 2), nullable=False)
    fee = Column(Numeric(20, 2), nullable=False)
    net_amount = Column(Numeric(20, 2), nullable=False)
    status = Column(
        SQLEnum(WithdrawalStatus, name="withdrawal_status", create_constraint=True),
        nullable=False,
        default=WithdrawalStatus.PENDING,
        index=True,
    )
    reference = Column(String(255), nullable=True)
    failure_reason = Column(Text, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint('amount > 0', name='check_withdrawals_amount_positive'),
        CheckConstraint('net_amount > 0', name='check_withdrawals_net_positive'),
    )


class RefundStatus(str, enum.Enum):
    """Refund status enum"""
    PENDING = "PENDING"  # Scheduled (seller rejected the order)
    COMPLETED = "COMPLETED"  # Buyer wallet credited


class Refund(BaseModel):
    """
    Refund model - Money owed back to the buyer, one per transaction
    """

    __tablename__ = "refunds"

    transaction_id = Column(String(64), ForeignKey("transactions.id", name="fk_refunds_transaction_id"), nullable=False, unique=True, index=True)
    buyer_id = Column(String(64), nullable=False, index=True)
    amount = Column(Numeric(20, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(
        SQLEnum(RefundStatus, name="refund_status", create_constraint=True),
        nullable=False,
        default=RefundStatus.PENDING,
        index=True,
    )
    reason = Column(Text, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)


class Payout(BaseModel):
    """
    Payout model - Record of escrow released to a seller, one per transaction
    """

    __tablename__ = "payouts"

    transaction_id = Column(String(64), ForeignKey("transactions.id", name="fk_payouts_transaction_id"), nullable=False, unique=True, index=True)
    seller_id = Column(String(64), nullable=False, index=True)
    amount = Column(Numeric(20, 2), nullable=False)
    platform_fee = Column(Numeric(20, 2), nullable=False)
    status = Column(String(20), nullable=False, default="COMPLETED")
