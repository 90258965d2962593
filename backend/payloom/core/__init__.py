"""
Core domain models - Export all models for Alembic
"""

from payloom.core.transactions.models import Transaction, TransactionStatus
from payloom.core.disputes.models import Dispute, DisputeMessage, DisputeStatus
from payloom.core.wallets.models import (
    Wallet,
    Withdrawal,
    WithdrawalStatus,
    Refund,
    RefundStatus,
    Payout,
)
from payloom.core.compliance.models import AuditLog

__all__ = [
    "Transaction",
    "TransactionStatus",
    "Dispute",
    "DisputeMessage",
    "DisputeStatus",
    "Wallet",
    "Withdrawal",
    "WithdrawalStatus",
    "Refund",
    "RefundStatus",
    "Payout",
    "AuditLog",
]
