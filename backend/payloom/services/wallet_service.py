"""
Wallet service - Balance movements with conditional UPDATEs

Balances are never read-modify-written on the ORM object. Every movement is
one UPDATE whose WHERE clause carries the guard (e.g. available_balance >=
amount), so two concurrent debits cannot both pass a stale check.

Callers MUST commit.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payloom.core.compliance.models import AuditLog
from payloom.core.escrow.errors import InsufficientFundsError, ValidationError
from payloom.core.escrow.fees import FeeSchedule, MethodFeeType, compute_fees, normalize_currency, quantize
from payloom.core.security.models import Role
from payloom.core.wallets.models import Wallet, Withdrawal, WithdrawalStatus
from payloom.infrastructure.settings import Settings, get_settings
from payloom.services.notifications import NotificationEvent

logger = logging.getLogger(__name__)

_ZERO = Decimal("0.00")


def _positive_amount(amount) -> Decimal:
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    if not amount.is_finite() or quantize(amount) <= 0:
        raise ValidationError("Amount must be greater than 0")
    return quantize(amount)


def _wallet_currency(currency: Optional[str]) -> str:
    return normalize_currency(currency or get_settings().DEFAULT_CURRENCY)


def get_wallet(db: Session, user_id: str, currency: Optional[str] = None) -> Optional[Wallet]:
    """The user's wallet in currency (DEFAULT_CURRENCY when omitted)"""
    return db.execute(
        select(Wallet).where(Wallet.user_id == user_id, Wallet.currency == _wallet_currency(currency))
    ).scalar_one_or_none()


def get_or_create_wallet(
    *,
    db: Session,
    user_id: str,
    currency: Optional[str] = None,
) -> Wallet:
    """
    Return the user's wallet in currency, creating it with zero balances on
    first use. A user holds one wallet per currency; money never crosses
    currencies.

    A concurrent creation loses on the unique (user_id, currency) and falls
    back to the row the other request inserted.
    """
    currency = _wallet_currency(currency)
    wallet = get_wallet(db, user_id, currency)
    if wallet:
        return wallet

    wallet = Wallet(
        user_id=user_id,
        currency=currency,
        available_balance=_ZERO,
        pending_balance=_ZERO,
        total_earned=_ZERO,
        total_spent=_ZERO,
    )
    try:
        with db.begin_nested():
            db.add(wallet)
            db.flush()
    except IntegrityError:
        wallet = db.execute(
            select(Wallet).where(Wallet.user_id == user_id, Wallet.currency == currency)
        ).scalar_one()
    return wallet


def credit_available(
    *,
    db: Session,
    user_id: str,
    amount: Decimal,
    currency: Optional[str] = None,
    earned: bool = False,
) -> Wallet:
    """
    Add amount to the available_balance of the user's wallet in currency
    (and to total_earned when earned=True).

    Used by escrow release (earned), buyer refunds and top-ups.
    """
    amount = _positive_amount(amount)
    wallet = get_or_create_wallet(db=db, user_id=user_id, currency=currency)

    values = {"available_balance": Wallet.available_balance + amount}
    if earned:
        values["total_earned"] = Wallet.total_earned + amount

    db.execute(
        update(Wallet)
        .where(Wallet.id == wallet.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.refresh(wallet)
    return wallet


def debit_available(
    *,
    db: Session,
    user_id: str,
    amount: Decimal,
    currency: Optional[str] = None,
) -> Wallet:
    """
    Remove amount from the wallet in currency and add it to total_spent.

    Raises:
        InsufficientFundsError: wallet missing or balance below amount
    """
    amount = _positive_amount(amount)
    currency = _wallet_currency(currency)
    result = db.execute(
        update(Wallet)
        .where(
            Wallet.user_id == user_id,
            Wallet.currency == currency,
            Wallet.available_balance >= amount,
        )
        .values(
            available_balance=Wallet.available_balance - amount,
            total_spent=Wallet.total_spent + amount,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InsufficientFundsError("Insufficient available balance")

    wallet = get_wallet(db, user_id, currency)
    db.refresh(wallet)
    return wallet


def top_up(
    *,
    db: Session,
    user_id: str,
    amount: Decimal,
    currency: Optional[str] = None,
) -> Wallet:
    """
    Credit the user's available balance (buyer top-up).

    Creates AuditLog. Caller MUST commit.
    """
    amount = _positive_amount(amount)
    wallet = credit_available(db=db, user_id=user_id, amount=amount, currency=currency)

    db.add(AuditLog(
        actor_user_id=user_id,
        actor_role=Role.BUYER,
        action="WALLET_TOP_UP",
        entity_type="Wallet",
        entity_id=wallet.id,
        before=None,
        after={"amount": str(amount), "available_balance": str(wallet.available_balance)},
    ))
    db.flush()
    return wallet


def build_withdrawal_schedule(
    currency: str,
    provider: str,
    settings: Optional[Settings] = None,
) -> FeeSchedule:
    """
    Withdrawal fee schedule: WITHDRAWAL_FEE_PERCENT clamped per currency,
    plus the payout provider's fee.
    """
    settings = settings or get_settings()
    provider_fee = settings.WITHDRAWAL_PROVIDER_FEES.get(provider.upper())
    if provider_fee is None:
        raise ValidationError(f"Unsupported payout provider: {provider}")
    fee_type, fee_value = provider_fee

    limits = settings.WITHDRAWAL_FEE_LIMITS.get(currency.upper())
    min_fee, max_fee = limits if limits else (None, None)

    return FeeSchedule(
        platform_percent=settings.WITHDRAWAL_FEE_PERCENT,
        method_fee_type=MethodFeeType(fee_type),
        method_fee_value=Decimal(fee_value),
        min_platform_fee=min_fee,
        max_platform_fee=max_fee,
    )


def request_withdrawal(
    *,
    db: Session,
    user_id: str,
    amount: Decimal,
    provider: str,
    account_number: str,
    currency: Optional[str] = None,
) -> Tuple[Withdrawal, NotificationEvent]:
    """
    Request a withdrawal of amount (gross) from the available balance.

    Fees are computed first; nothing is written when they swallow the amount
    or the balance is short. The debit, the Withdrawal row and the AuditLog
    land in the same unit of work. Caller MUST commit.

    Raises:
        ValidationError: bad amount, provider or account
        AmountTooLowError: fees >= amount
        InsufficientFundsError: available balance of the wallet in currency < amount
    """
    amount = _positive_amount(amount)
    if not account_number or not account_number.strip():
        raise ValidationError("Payout account number is required")

    currency = _wallet_currency(currency)
    breakdown = compute_fees(amount, build_withdrawal_schedule(currency, provider))

    wallet = debit_available(db=db, user_id=user_id, amount=amount, currency=currency)

    withdrawal = Withdrawal(
        user_id=user_id,
        amount=amount,
        currency=currency,
        provider=provider.upper(),
        account_number=account_number.strip(),
        platform_fee=breakdown.platform_fee,
        provider_fee=breakdown.method_fee,
        fee=breakdown.total_fees,
        net_amount=breakdown.net_amount,
        status=WithdrawalStatus.PENDING,
    )
    db.add(withdrawal)
    db.flush()

    db.add(AuditLog(
        actor_user_id=user_id,
        actor_role=Role.SELLER,
        action="WITHDRAWAL_REQUESTED",
        entity_type="Withdrawal",
        entity_id=withdrawal.id,
        before=None,
        after={
            "amount": str(amount),
            "fee": str(breakdown.total_fees),
            "net_amount": str(breakdown.net_amount),
            "available_balance": str(wallet.available_balance),
        },
    ))
    db.flush()

    logger.info(
        "Withdrawal requested",
        extra={"withdrawal_id": withdrawal.id, "user_id": user_id, "amount": str(amount)},
    )

    event = NotificationEvent(
        transaction_id=withdrawal.id,
        event_type="WITHDRAWAL_REQUESTED",
        payload={
            "user_id": user_id,
            "amount": str(amount),
            "net_amount": str(breakdown.net_amount),
            "currency": currency,
        },
    )
    return withdrawal, event


def list_withdrawals(db: Session, user_id: str) -> List[Withdrawal]:
    return list(db.execute(
        select(Withdrawal)
        .where(Withdrawal.user_id == user_id)
        .order_by(Withdrawal.created_at.desc())
    ).scalars())
