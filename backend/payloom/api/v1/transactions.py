"""
Transaction API endpoints - Payment links and the escrow lifecycle

Each POST runs exactly one escrow operation: service call, commit, then
notification. Domain errors roll back and are mapped by the global
EscrowError handler.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from payloom.api.unit_of_work import commit_and_notify, unit_of_work
from payloom.auth.dependencies import buyer_actor, get_current_principal, seller_actor
from payloom.auth.principal import Principal
from payloom.core.escrow.errors import UnauthorizedActorError
from payloom.core.transactions.models import TransactionStatus
from payloom.infrastructure.database import get_db
from payloom.schemas.disputes import DisputeResponse
from payloom.schemas.transactions import (
    AcceptOrderRequest,
    CreateTransactionRequest,
    InitiatePaymentRequest,
    OpenDisputeRequest,
    RejectOrderRequest,
    ShippingInfoRequest,
    TransactionResponse,
    VerifyPaymentRequest,
)
from payloom.services import dispute_service, escrow_service
from payloom.services.notifications import NotificationSink, get_notifier
from payloom.services.payment_gateway import PaymentGateway, get_payment_gateway

router = APIRouter(prefix="/transactions", tags=["transactions"])

_EXPECTED_STATUS = Query(
    default=None,
    description="Reject with 409 CONCURRENCY_CONFLICT unless the transaction is still in this status",
)


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a payment link",
)
def create_transaction(
    body: CreateTransactionRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> TransactionResponse:
    with unit_of_work(db):
        transaction = escrow_service.create_transaction(
            db=db,
            seller_id=principal.user_id,
            item_name=body.item_name,
            item_description=body.item_description,
            item_images=body.item_images,
            amount=body.amount,
            currency=body.currency,
            quantity=body.quantity,
            expires_at=body.expires_at,
        )
        db.commit()
    return TransactionResponse.from_model(transaction)


@router.get("", response_model=List[TransactionResponse], summary="List my transactions (as buyer or seller)")
def list_transactions(
    status_filter: Optional[TransactionStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> List[TransactionResponse]:
    transactions = escrow_service.list_transactions_for_user(
        db, principal.user_id, status=status_filter, limit=limit, offset=offset
    )
    return [TransactionResponse.from_model(t) for t in transactions]


@router.get("/{transaction_id}", response_model=TransactionResponse, summary="Get a transaction")
def get_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> TransactionResponse:
    """
    Parties see the full record. Anyone else may open a PENDING link (the
    checkout page); other transactions are hidden.
    """
    transaction = escrow_service.get_transaction(db, transaction_id)
    is_party = principal.user_id in (transaction.seller_id, transaction.buyer_id)
    if not (is_party or principal.is_admin or transaction.status == TransactionStatus.PENDING):
        raise UnauthorizedActorError("Not a party to this transaction")
    return TransactionResponse.from_model(transaction)


@router.post("/{transaction_id}/pay", response_model=TransactionResponse, summary="Buyer starts payment")
def initiate_payment(
    transaction_id: str,
    body: InitiatePaymentRequest,
    expected_status: Optional[TransactionStatus] = _EXPECTED_STATUS,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationSink = Depends(get_notifier),
) -> TransactionResponse:
    with unit_of_work(db):
        result = escrow_service.initiate_payment(
            db=db,
            transaction_id=transaction_id,
            actor=buyer_actor(principal),
            buyer_name=body.buyer_name,
            buyer_phone=body.buyer_phone,
            buyer_email=body.buyer_email,
            buyer_address=body.buyer_address,
            payment_method=body.payment_method,
            expected_status=expected_status,
        )
        commit_and_notify(db, notifier, result.events)
    return TransactionResponse.from_model(result.transaction)


@router.post(
    "/{transaction_id}/verify-payment",
    response_model=TransactionResponse,
    summary="Verify a gateway reference and confirm payment",
)
def verify_payment(
    transaction_id: str,
    body: VerifyPaymentRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: NotificationSink = Depends(get_notifier),
) -> TransactionResponse:
    with unit_of_work(db):
        result = escrow_service.verify_payment(
            db=db,
            transaction_id=transaction_id,
            reference=body.reference,
            gateway=gateway,
            actor=buyer_actor(principal),
        )
        commit_and_notify(db, notifier, result.events)
    return TransactionResponse.from_model(result.transaction)


@router.post("/{transaction_id}/accept", response_model=TransactionResponse, summary="Seller accepts the order")
def accept_order(
    transaction_id: str,
    body: Optional[AcceptOrderRequest] = None,
    expected_status: Optional[TransactionStatus] = _EXPECTED_STATUS,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationSink = Depends(get_notifier),
) -> TransactionResponse:
    with unit_of_work(db):
        result = escrow_service.accept_order(
            db=db,
            transaction_id=transaction_id,
            actor=seller_actor(principal),
            payout_contact=body.payout_contact if body else None,
            expected_status=expected_status,
        )
        commit_and_notify(db, notifier, result.events)
    return TransactionResponse.from_model(result.transaction)


@router.post("/{transaction_id}/reject", response_model=TransactionResponse, summary="Seller rejects the order")
def reject_order(
    transaction_id: str,
    body: RejectOrderRequest,
    expected_status: Optional[TransactionStatus] = _EXPECTED_STATUS,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationSink = Depends(get_notifier),
) -> TransactionResponse:
    with unit_of_work(db):
        result = escrow_service.reject_order(
            db=db,
            transaction_id=transaction_id,
            actor=seller_actor(principal),
            reason=body.reason,
            expected_status=expected_status,
        )
        commit_and_notify(db, notifier, result.events)
    return TransactionResponse.from_model(result.transaction)


@router.post("/{transaction_id}/ship", response_model=TransactionResponse, summary="Seller adds shipping info")
def add_shipping_info(
    transaction_id: str,
    body: ShippingInfoRequest,
    expected_status: Optional[TransactionStatus] = _EXPECTED_STATUS,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationSink = Depends(get_notifier),
) -> TransactionResponse:
    with unit_of_work(db):
        result = escrow_service.add_shipping_info(
            db=db,
            transaction_id=transaction_id,
            actor=seller_actor(principal),
            courier_name=body.courier_name,
            tracking_number=body.tracking_number,
            estimated_delivery_date=body.estimated_delivery_date,
            shipping_notes=body.shipping_notes,
            expected_status=expected_status,
        )
        commit_and_notify(db, notifier, result.events)
    return TransactionResponse.from_model(result.transaction)


@router.post(
    "/{transaction_id}/confirm-delivery",
    response_model=TransactionResponse,
    summary="Buyer confirms delivery",
)
def confirm_delivery(
    transaction_id: str,
    expected_status: Optional[TransactionStatus] = _EXPECTED_STATUS,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationSink = Depends(get_notifier),
) -> TransactionResponse:
    with unit_of_work(db):
        result = escrow_service.confirm_delivery(
            db=db,
            transaction_id=transaction_id,
            actor=buyer_actor(principal),
            expected_status=expected_status,
        )
        commit_and_notify(db, notifier, result.events)
    return TransactionResponse.from_model(result.transaction)


@router.post(
    "/{transaction_id}/confirm-receipt",
    response_model=TransactionResponse,
    summary="Buyer confirms receipt and releases escrow",
)
def confirm_receipt(
    transaction_id: str,
    expected_status: Optional[TransactionStatus] = _EXPECTED_STATUS,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationSink = Depends(get_notifier),
) -> TransactionResponse:
    with unit_of_work(db):
        result = escrow_service.confirm_receipt(
            db=db,
            transaction_id=transaction_id,
            actor=buyer_actor(principal),
            expected_status=expected_status,
        )
        commit_and_notify(db, notifier, result.events)
    return TransactionResponse.from_model(result.transaction)


@router.post(
    "/{transaction_id}/dispute",
    response_model=DisputeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Buyer or seller opens a dispute",
)
def open_dispute(
    transaction_id: str,
    body: OpenDisputeRequest,
    expected_status: Optional[TransactionStatus] = _EXPECTED_STATUS,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationSink = Depends(get_notifier),
) -> DisputeResponse:
    with unit_of_work(db):
        dispute, result = dispute_service.open_dispute(
            db=db,
            transaction_id=transaction_id,
            user_id=principal.user_id,
            reason=body.reason,
            description=body.description,
            evidence=body.evidence,
            expected_status=expected_status,
        )
        commit_and_notify(db, notifier, result.events)
    return DisputeResponse.from_model(dispute)
