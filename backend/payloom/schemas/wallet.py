"""
Wallet API request/response schemas
"""

from decimal import Decimal
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from payloom.core.wallets.models import Wallet, Withdrawal, WithdrawalStatus


class WalletBalanceResponse(BaseModel):
    """Wallet balances (decimal strings)"""
    user_id: str
    currency: str
    available_balance: str
    pending_balance: str
    total_earned: str
    total_spent: str

    @classmethod
    def from_model(cls, wallet: Wallet) -> "WalletBalanceResponse":
        return cls(
            user_id=wallet.user_id,
            currency=wallet.currency,
            available_balance=str(wallet.available_balance),
            pending_balance=str(wallet.pending_balance),
            total_earned=str(wallet.total_earned),
            total_spent=str(wallet.total_spent),
        )


class TopUpRequest(BaseModel):
    amount: Decimal = Field(..., description="Amount to add to the available balance")
    currency: Optional[str] = None


class WithdrawalRequest(BaseModel):
    amount: Decimal = Field(..., description="Gross amount debited from the wallet")
    provider: str = Field(..., description="Payout provider (MPESA, AIRTEL, BANK)")
    account_number: str = Field(..., description="Phone number or bank account")
    currency: Optional[str] = None

    @field_validator('provider')
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Normalize provider to uppercase"""
        return v.upper()


class WithdrawalResponse(BaseModel):
    id: str
    amount: str
    currency: str
    provider: str
    account_number: str
    platform_fee: str
    provider_fee: str
    fee: str
    net_amount: str
    status: WithdrawalStatus
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, withdrawal: Withdrawal) -> "WithdrawalResponse":
        return cls(
            id=withdrawal.id,
            amount=str(withdrawal.amount),
            currency=withdrawal.currency,
            provider=withdrawal.provider,
            account_number=withdrawal.account_number,
            platform_fee=str(withdrawal.platform_fee),
            provider_fee=str(withdrawal.provider_fee),
            fee=str(withdrawal.fee),
            net_amount=str(withdrawal.net_amount),
            status=withdrawal.status,
            created_at=withdrawal.created_at,
        )
