"""
Wallet API endpoints
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from payloom.api.unit_of_work import commit_and_notify, unit_of_work
from payloom.auth.dependencies import get_current_principal
from payloom.auth.principal import Principal
from payloom.infrastructure.database import get_db
from payloom.schemas.wallet import (
    TopUpRequest,
    WalletBalanceResponse,
    WithdrawalRequest,
    WithdrawalResponse,
)
from payloom.services import wallet_service
from payloom.services.notifications import NotificationSink, get_notifier

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("", response_model=WalletBalanceResponse, summary="Get wallet balances")
def get_wallet(
    currency: Optional[str] = Query(default=None, description="Wallet currency (default: settings.DEFAULT_CURRENCY)"),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> WalletBalanceResponse:
    """
    Balances of the authenticated user's wallet in one currency. The wallet
    is created on first read.
    """
    with unit_of_work(db):
        wallet = wallet_service.get_or_create_wallet(db=db, user_id=principal.user_id, currency=currency)
        db.commit()
    return WalletBalanceResponse.from_model(wallet)


@router.post("/topup", response_model=WalletBalanceResponse, summary="Top up the available balance")
def top_up(
    body: TopUpRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> WalletBalanceResponse:
    with unit_of_work(db):
        wallet = wallet_service.top_up(
            db=db,
            user_id=principal.user_id,
            amount=body.amount,
            currency=body.currency,
        )
        db.commit()
    return WalletBalanceResponse.from_model(wallet)


@router.post(
    "/withdrawals",
    response_model=WithdrawalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a withdrawal",
)
def request_withdrawal(
    body: WithdrawalRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationSink = Depends(get_notifier),
) -> WithdrawalResponse:
    """
    Debits the gross amount. Fees: WITHDRAWAL_FEE_PERCENT (clamped per
    currency) plus the provider fee; 409 AMOUNT_TOO_LOW when they swallow
    the amount, 409 INSUFFICIENT_FUNDS when the balance is short.
    """
    with unit_of_work(db):
        withdrawal, event = wallet_service.request_withdrawal(
            db=db,
            user_id=principal.user_id,
            amount=body.amount,
            provider=body.provider,
            account_number=body.account_number,
            currency=body.currency,
        )
        commit_and_notify(db, notifier, [event])
    return WithdrawalResponse.from_model(withdrawal)


@router.get("/withdrawals", response_model=List[WithdrawalResponse], summary="List my withdrawals")
def list_withdrawals(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> List[WithdrawalResponse]:
    return [WithdrawalResponse.from_model(w) for w in wallet_service.list_withdrawals(db, principal.user_id)]
