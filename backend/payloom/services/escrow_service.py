"""
Escrow service - Apply state-machine transitions to stored transactions

Every transition is one unit of work:
1. Read the row (status as seen by this session)
2. Ask the transition table whether (status, action, actor) is legal
3. UPDATE transactions ... WHERE id = :id AND status = :read_status
   (zero rows -> ConcurrencyConflictError, nothing else is written)
4. Dependent writes in the same DB transaction: payout + seller credit on
   completion, refund on reject / buyer-wins, AuditLog always

Services flush, callers commit, then hand result.events to the notification
sink. Callers MUST commit.
"""

import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from payloom.core.compliance.models import AuditLog
from payloom.core.escrow.errors import (
    ConcurrencyConflictError,
    EscrowError,
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedActorError,
    ValidationError,
)
from payloom.core.escrow.fees import compute_seller_payout, normalize_currency, quantize
from payloom.core.escrow.state_machine import (
    Actor,
    EscrowAction,
    authorize_actor,
    resolve_transition,
)
from payloom.core.security.models import Role
from payloom.core.transactions.models import Transaction, TransactionStatus
from payloom.core.wallets.models import Payout, Refund, RefundStatus
from payloom.infrastructure.settings import get_settings
from payloom.services.notifications import NotificationEvent
from payloom.services.payment_gateway import GatewayVerification, PaymentGateway
from payloom.services.wallet_service import credit_available
from payloom.utils.clock import as_utc, utcnow
from payloom.utils.metrics import record_transition

logger = logging.getLogger(__name__)

MAX_ITEM_IMAGES = 5

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


@dataclass
class TransitionResult:
    """Outcome of one escrow operation"""
    transaction: Transaction
    events: List[NotificationEvent] = field(default_factory=list)
    changed: bool = True


def generate_transaction_id() -> str:
    """TXN-<base36 epoch millis>-<8 hex>"""
    millis = int(time.time() * 1000)
    encoded = ""
    while millis:
        millis, rem = divmod(millis, 36)
        encoded = _BASE36[rem] + encoded
    return f"TXN-{encoded or '0'}-{secrets.token_hex(4).upper()}"


def get_transaction(db: Session, transaction_id: str) -> Transaction:
    transaction = db.get(Transaction, transaction_id)
    if transaction is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return transaction


def actor_for_party(transaction: Transaction, user_id: str) -> Actor:
    """Actor for a user acting as a party (buyer or seller) of this transaction"""
    if user_id == transaction.seller_id:
        return Actor(role=Role.SELLER, user_id=user_id)
    if transaction.buyer_id and user_id == transaction.buyer_id:
        return Actor(role=Role.BUYER, user_id=user_id)
    raise UnauthorizedActorError("Not a party to this transaction")


def list_transactions_for_user(
    db: Session,
    user_id: str,
    status: Optional[TransactionStatus] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Transaction]:
    stmt = select(Transaction).where(
        (Transaction.seller_id == user_id) | (Transaction.buyer_id == user_id)
    )
    if status is not None:
        stmt = stmt.where(Transaction.status == status)
    stmt = stmt.order_by(Transaction.created_at.desc(), Transaction.id).limit(limit).offset(offset)
    return list(db.execute(stmt).scalars())


def _snapshot(transaction: Transaction) -> Dict[str, Any]:
    return {
        "status": TransactionStatus(transaction.status).value,
        "buyer_id": transaction.buyer_id,
        "platform_fee": str(transaction.platform_fee) if transaction.platform_fee is not None else None,
        "seller_payout": str(transaction.seller_payout) if transaction.seller_payout is not None else None,
    }


def apply_transition(
    *,
    db: Session,
    transaction: Transaction,
    action: EscrowAction,
    actor: Actor,
    values: Optional[Dict[str, Any]] = None,
    expected_status: Optional[TransactionStatus] = None,
    restore_status: Optional[TransactionStatus] = None,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> TransitionResult:
    """
    Apply one table transition with a conditional UPDATE.

    Args:
        values: extra columns written together with the status
        expected_status: caller's view of the status; mismatch is a conflict
        restore_status: target for transitions without a fixed target (CLOSE_DISPUTE)

    Raises:
        InvalidTransitionError / UnauthorizedActorError: rejected by the table
        ConcurrencyConflictError: status moved since it was read
    """
    now = now or utcnow()
    read_status = TransactionStatus(transaction.status)

    try:
        if expected_status is not None and TransactionStatus(expected_status) != read_status:
            raise ConcurrencyConflictError(
                f"Transaction is {read_status.value}, expected {TransactionStatus(expected_status).value}"
            )
        transition = resolve_transition(read_status, action, actor.role)
        authorize_actor(transition, actor, seller_id=transaction.seller_id, buyer_id=transaction.buyer_id)
    except EscrowError as e:
        _record_rejection(transaction, action, actor, e)
        raise

    to_status = transition.to_status or restore_status
    if to_status is None:
        raise ValidationError(f"{action.value} needs a target status")

    updates: Dict[str, Any] = dict(values or {})
    updates["status"] = to_status

    stmt = update(Transaction).where(
        Transaction.id == transaction.id,
        Transaction.status == read_status,
    )
    for column in transition.timestamps:
        # Forward timestamps are written once
        stmt = stmt.where(getattr(Transaction, column).is_(None))
        updates[column] = now

    if transition.releases_escrow:
        platform_fee, seller_payout = compute_seller_payout(
            Decimal(transaction.amount), get_settings().SELLER_PAYOUT_FEE_PERCENT
        )
        updates["platform_fee"] = platform_fee
        updates["seller_payout"] = seller_payout
        stmt = stmt.where(Transaction.seller_payout.is_(None))

    before = _snapshot(transaction)
    result = db.execute(stmt.values(**updates).execution_options(synchronize_session=False))
    if result.rowcount != 1:
        record_transition(action.value, "conflict")
        logger.warning(
            "Escrow transition lost a concurrent update",
            extra={"transaction_id": transaction.id, "action": action.value, "from_status": read_status.value},
        )
        raise ConcurrencyConflictError(
            f"Transaction {transaction.id} changed since it was read as {read_status.value}"
        )
    db.refresh(transaction)

    if transition.releases_escrow:
        _release_escrow(db, transaction)
    if transition.refunds_buyer:
        _refund_buyer(
            db,
            transaction,
            immediate=action == EscrowAction.RESOLVE_FOR_BUYER,
            reason=reason,
            now=now,
        )

    db.add(AuditLog(
        actor_user_id=actor.user_id,
        actor_role=actor.role,
        action=action.value,
        entity_type="Transaction",
        entity_id=transaction.id,
        before=before,
        after=_snapshot(transaction),
        reason=reason,
    ))
    db.flush()

    record_transition(action.value, "accepted")
    logger.info(
        "Escrow transition applied",
        extra={
            "transaction_id": transaction.id,
            "action": action.value,
            "from_status": read_status.value,
            "to_status": to_status.value,
            "actor_role": actor.role.value,
        },
    )

    event_payload = {
        "from_status": read_status.value,
        "to_status": to_status.value,
        "seller_id": transaction.seller_id,
        "buyer_id": transaction.buyer_id,
        "amount": str(transaction.amount),
        "currency": transaction.currency,
    }
    if payload:
        event_payload.update(payload)
    event = NotificationEvent(transaction_id=transaction.id, event_type=transition.event_type, payload=event_payload)
    return TransitionResult(transaction=transaction, events=[event])


def _record_rejection(transaction: Transaction, action: EscrowAction, actor: Actor, error: EscrowError) -> None:
    if isinstance(error, UnauthorizedActorError):
        result = "forbidden"
    elif isinstance(error, ConcurrencyConflictError):
        result = "conflict"
    else:
        result = "invalid"
    record_transition(action.value, result)
    logger.warning(
        "Escrow transition rejected",
        extra={
            "transaction_id": transaction.id,
            "action": action.value,
            "from_status": TransactionStatus(transaction.status).value,
            "actor_role": actor.role.value,
            "error_code": error.code,
        },
    )


def _release_escrow(db: Session, transaction: Transaction) -> None:
    """Credit the seller with seller_payout and record the payout (once per transaction)"""
    credit_available(
        db=db,
        user_id=transaction.seller_id,
        amount=transaction.seller_payout,
        currency=transaction.currency,
        earned=True,
    )
    db.add(Payout(
        transaction_id=transaction.id,
        seller_id=transaction.seller_id,
        amount=transaction.seller_payout,
        platform_fee=transaction.platform_fee,
        status="COMPLETED",
    ))
    db.flush()


def _refund_buyer(
    db: Session,
    transaction: Transaction,
    *,
    immediate: bool,
    reason: Optional[str],
    now: datetime,
) -> Refund:
    """Immediate refunds credit the buyer now; scheduled ones wait for process_pending_refunds"""
    refund = Refund(
        transaction_id=transaction.id,
        buyer_id=transaction.buyer_id,
        amount=transaction.amount,
        currency=transaction.currency,
        status=RefundStatus.COMPLETED if immediate else RefundStatus.PENDING,
        reason=reason,
        processed_at=now if immediate else None,
    )
    db.add(refund)
    if immediate:
        credit_available(
            db=db,
            user_id=transaction.buyer_id,
            amount=transaction.amount,
            currency=transaction.currency,
        )
    db.flush()
    return refund


def _require_text(value: Optional[str], message: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(message)
    return str(value).strip()


def _validate_images(images: Optional[List[str]]) -> List[str]:
    images = list(images or [])
    if len(images) > MAX_ITEM_IMAGES:
        raise ValidationError(f"At most {MAX_ITEM_IMAGES} item images are allowed")
    for url in images:
        parsed = urlparse(str(url))
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError(f"Invalid image URL: {url}")
    return [str(url) for url in images]


def create_transaction(
    *,
    db: Session,
    seller_id: str,
    item_name: str,
    amount: Decimal,
    currency: Optional[str] = None,
    quantity: int = 1,
    item_description: Optional[str] = None,
    item_images: Optional[List[str]] = None,
    expires_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Transaction:
    """
    Create a PENDING transaction (a seller's payment link).

    Caller MUST commit.
    """
    now = now or utcnow()
    item_name = _require_text(item_name, "Item name is required")
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    if not amount.is_finite() or quantize(amount) <= 0:
        raise ValidationError("Amount must be greater than 0")
    if quantity is None or int(quantity) < 1:
        raise ValidationError("Quantity must be at least 1")
    images = _validate_images(item_images)
    currency = normalize_currency(currency or get_settings().DEFAULT_CURRENCY)

    if expires_at is None:
        expires_at = now + timedelta(days=get_settings().PAYMENT_LINK_TTL_DAYS)
    elif as_utc(expires_at) <= as_utc(now):
        raise ValidationError("Expiry must be in the future")

    transaction = Transaction(
        id=generate_transaction_id(),
        seller_id=seller_id,
        item_name=item_name,
        item_description=item_description,
        item_images=images,
        amount=quantize(amount),
        currency=currency,
        quantity=int(quantity),
        status=TransactionStatus.PENDING,
        expires_at=expires_at,
    )
    db.add(transaction)
    db.flush()

    db.add(AuditLog(
        actor_user_id=seller_id,
        actor_role=Role.SELLER,
        action="TRANSACTION_CREATED",
        entity_type="Transaction",
        entity_id=transaction.id,
        before=None,
        after={"status": TransactionStatus.PENDING.value, "amount": str(transaction.amount)},
    ))
    db.flush()

    logger.info(
        "Transaction created",
        extra={"transaction_id": transaction.id, "seller_id": seller_id, "amount": str(transaction.amount)},
    )
    return transaction


def initiate_payment(
    *,
    db: Session,
    transaction_id: str,
    actor: Actor,
    buyer_name: str,
    buyer_phone: str,
    buyer_email: Optional[str] = None,
    buyer_address: Optional[str] = None,
    payment_method: Optional[str] = None,
    expected_status: Optional[TransactionStatus] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    """
    PENDING -> PROCESSING. The acting buyer becomes transaction.buyer_id.

    Buyer contact (name, phone) is required. An expired link cannot be paid
    even before the sweep has marked it EXPIRED.
    """
    now = now or utcnow()
    buyer_name = _require_text(buyer_name, "Buyer name is required")
    buyer_phone = _require_text(buyer_phone, "Buyer phone is required")
    transaction = get_transaction(db, transaction_id)

    expires_at = as_utc(transaction.expires_at)
    if (
        TransactionStatus(transaction.status) == TransactionStatus.PENDING
        and expires_at is not None
        and expires_at <= as_utc(now)
    ):
        raise InvalidTransitionError("Payment link has expired")

    return apply_transition(
        db=db,
        transaction=transaction,
        action=EscrowAction.INITIATE_PAYMENT,
        actor=actor,
        values={
            "buyer_id": actor.user_id,
            "buyer_name": buyer_name,
            "buyer_phone": buyer_phone,
            "buyer_email": buyer_email,
            "buyer_address": buyer_address,
            "payment_method": payment_method,
        },
        expected_status=expected_status,
        now=now,
    )


def _check_charge_matches(transaction: Transaction, verification: GatewayVerification) -> None:
    """The charge must be for this transaction and in its currency"""
    if verification.currency and normalize_currency(verification.currency) != transaction.currency:
        raise ValidationError(
            f"Payment currency {verification.currency} does not match transaction currency {transaction.currency}"
        )
    metadata = verification.metadata or {}
    charged_for = metadata.get("transaction_id")
    if charged_for is not None and str(charged_for) != transaction.id:
        raise ValidationError("Payment reference belongs to another transaction")


def confirm_payment(
    *,
    db: Session,
    transaction_id: str,
    verification: GatewayVerification,
    expected_status: Optional[TransactionStatus] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    """
    PROCESSING -> PAID on a successful gateway verification.

    A repeat confirmation with the reference already stored is a no-op
    (changed=False, no events). Any other reference on a confirmed
    transaction is an invalid transition. The charge must be in the
    transaction currency and, when the gateway reports metadata, for this
    transaction.
    """
    reference = _require_text(verification.reference, "Payment reference is required")
    transaction = get_transaction(db, transaction_id)

    if transaction.payment_reference == reference:
        logger.info(
            "Payment already confirmed",
            extra={"transaction_id": transaction.id, "reference": reference},
        )
        return TransitionResult(transaction=transaction, events=[], changed=False)

    if TransactionStatus(transaction.status) == TransactionStatus.PROCESSING:
        if not verification.success:
            raise ValidationError("Gateway did not confirm the payment")
        _check_charge_matches(transaction, verification)
        if quantize(Decimal(verification.amount)) < Decimal(transaction.amount):
            raise ValidationError(
                f"Paid amount {verification.amount} is less than transaction amount {transaction.amount}"
            )
        if not transaction.buyer_id:
            raise ValidationError("Buyer must be identified before payment is confirmed")
        used_by = db.execute(
            select(Transaction.id).where(
                Transaction.payment_reference == reference,
                Transaction.id != transaction.id,
            )
        ).scalar_one_or_none()
        if used_by is not None:
            raise InvalidTransitionError("Payment reference already used by another transaction")

    return apply_transition(
        db=db,
        transaction=transaction,
        action=EscrowAction.CONFIRM_PAYMENT,
        actor=Actor.system(),
        values={"payment_reference": reference},
        expected_status=expected_status,
        now=now,
        payload={"payment_reference": reference},
    )


def verify_payment(
    *,
    db: Session,
    transaction_id: str,
    reference: str,
    gateway: PaymentGateway,
    actor: Actor,
) -> TransitionResult:
    """
    Buyer-triggered verification: ask the gateway, then confirm.

    Gateway failures raise ExternalDependencyError before anything is written.
    """
    transaction = get_transaction(db, transaction_id)
    if actor.role == Role.BUYER and transaction.buyer_id != actor.user_id:
        raise UnauthorizedActorError("Only the buyer of this transaction may do this")
    verification = gateway.verify(reference)
    return confirm_payment(db=db, transaction_id=transaction_id, verification=verification)


def accept_order(
    *,
    db: Session,
    transaction_id: str,
    actor: Actor,
    payout_contact: Optional[str] = None,
    expected_status: Optional[TransactionStatus] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    values = {"payout_contact": payout_contact.strip()} if payout_contact and payout_contact.strip() else None
    return apply_transition(
        db=db,
        transaction=get_transaction(db, transaction_id),
        action=EscrowAction.ACCEPT_ORDER,
        actor=actor,
        values=values,
        expected_status=expected_status,
        now=now,
    )


def reject_order(
    *,
    db: Session,
    transaction_id: str,
    actor: Actor,
    reason: str,
    expected_status: Optional[TransactionStatus] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    """ACCEPTED -> CANCELLED; schedules a refund of the full amount to the buyer"""
    reason = _require_text(reason, "Rejection reason is required")
    return apply_transition(
        db=db,
        transaction=get_transaction(db, transaction_id),
        action=EscrowAction.REJECT_ORDER,
        actor=actor,
        values={"rejection_reason": reason},
        expected_status=expected_status,
        now=now,
        reason=reason,
        payload={"reason": reason},
    )


def add_shipping_info(
    *,
    db: Session,
    transaction_id: str,
    actor: Actor,
    courier_name: str,
    tracking_number: str,
    estimated_delivery_date: Optional[datetime] = None,
    shipping_notes: Optional[str] = None,
    expected_status: Optional[TransactionStatus] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    courier_name = _require_text(courier_name, "Courier name is required")
    tracking_number = _require_text(tracking_number, "Tracking number is required")
    return apply_transition(
        db=db,
        transaction=get_transaction(db, transaction_id),
        action=EscrowAction.ADD_SHIPPING,
        actor=actor,
        values={
            "courier_name": courier_name,
            "tracking_number": tracking_number,
            "estimated_delivery_date": estimated_delivery_date,
            "shipping_notes": shipping_notes,
        },
        expected_status=expected_status,
        now=now,
        payload={"courier_name": courier_name, "tracking_number": tracking_number},
    )


def confirm_delivery(
    *,
    db: Session,
    transaction_id: str,
    actor: Actor,
    expected_status: Optional[TransactionStatus] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    return apply_transition(
        db=db,
        transaction=get_transaction(db, transaction_id),
        action=EscrowAction.CONFIRM_DELIVERY,
        actor=actor,
        expected_status=expected_status,
        now=now,
    )


def confirm_receipt(
    *,
    db: Session,
    transaction_id: str,
    actor: Actor,
    expected_status: Optional[TransactionStatus] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    """DELIVERED -> COMPLETED; computes the payout and credits the seller"""
    return apply_transition(
        db=db,
        transaction=get_transaction(db, transaction_id),
        action=EscrowAction.CONFIRM_RECEIPT,
        actor=actor,
        expected_status=expected_status,
        now=now,
    )


def expire_transaction(
    *,
    db: Session,
    transaction_id: str,
    now: Optional[datetime] = None,
) -> TransitionResult:
    """PENDING -> EXPIRED once now > expires_at"""
    now = now or utcnow()
    transaction = get_transaction(db, transaction_id)
    expires_at = as_utc(transaction.expires_at)
    if expires_at is None or as_utc(now) <= expires_at:
        raise InvalidTransitionError("Payment link has not expired")
    return apply_transition(
        db=db,
        transaction=transaction,
        action=EscrowAction.EXPIRE,
        actor=Actor.system(),
        now=now,
    )


def auto_release(
    *,
    db: Session,
    transaction_id: str,
    now: Optional[datetime] = None,
) -> TransitionResult:
    """SHIPPED -> COMPLETED once shipped_at is AUTO_RELEASE_DAYS old"""
    now = now or utcnow()
    transaction = get_transaction(db, transaction_id)
    shipped_at = as_utc(transaction.shipped_at)
    release_after = timedelta(days=get_settings().AUTO_RELEASE_DAYS)
    if shipped_at is None or as_utc(now) - shipped_at < release_after:
        raise InvalidTransitionError("Transaction is not due for automatic release")
    return apply_transition(
        db=db,
        transaction=transaction,
        action=EscrowAction.AUTO_RELEASE,
        actor=Actor.system(),
        now=now,
        payload={"automatic": True},
    )
