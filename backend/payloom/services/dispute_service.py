"""
Dispute service - Open, review, resolve and close disputes

A dispute is unique per transaction. Resolving or closing it runs the parent
transaction's transition in the same unit of work. Callers MUST commit.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payloom.core.common.base_model import generate_id
from payloom.core.compliance.models import AuditLog
from payloom.core.disputes.models import Dispute, DisputeMessage, DisputeStatus
from payloom.core.escrow.disputes import (
    TERMINAL_DISPUTE_STATUSES,
    DisputeWinner,
    check_can_append_message,
    check_can_close,
    check_review_move,
    resolution_for,
)
from payloom.core.escrow.errors import (
    ConcurrencyConflictError,
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedActorError,
    ValidationError,
)
from payloom.core.escrow.state_machine import Actor, EscrowAction
from payloom.core.security.models import Role
from payloom.core.transactions.models import TransactionStatus
from payloom.infrastructure.settings import get_settings
from payloom.services.escrow_service import (
    TransitionResult,
    actor_for_party,
    apply_transition,
    get_transaction,
)
from payloom.services.notifications import NotificationEvent
from payloom.utils.clock import as_utc, utcnow

logger = logging.getLogger(__name__)


def get_dispute(db: Session, dispute_id: str) -> Dispute:
    dispute = db.get(Dispute, dispute_id)
    if dispute is None:
        raise NotFoundError(f"Dispute {dispute_id} not found")
    return dispute


def get_dispute_for_transaction(db: Session, transaction_id: str) -> Optional[Dispute]:
    return db.execute(
        select(Dispute).where(Dispute.transaction_id == transaction_id)
    ).scalar_one_or_none()


def list_disputes(
    db: Session,
    status: Optional[DisputeStatus] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Dispute]:
    stmt = select(Dispute)
    if status is not None:
        stmt = stmt.where(Dispute.status == status)
    stmt = stmt.order_by(Dispute.created_at.desc(), Dispute.id).limit(limit).offset(offset)
    return list(db.execute(stmt).scalars())


def _require_admin(actor: Actor) -> None:
    if actor.role != Role.ADMIN:
        raise UnauthorizedActorError("Admin role required")


def _validate_urls(urls: Optional[List[str]], label: str) -> List[str]:
    cleaned = []
    for url in urls or []:
        parsed = urlparse(str(url))
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError(f"Invalid {label} URL: {url}")
        cleaned.append(str(url))
    return cleaned


def _move_dispute(
    db: Session,
    dispute: Dispute,
    values: Dict[str, Any],
) -> None:
    """Conditional UPDATE of the dispute row on the status this session read"""
    read_status = DisputeStatus(dispute.status)
    result = db.execute(
        update(Dispute)
        .where(Dispute.id == dispute.id, Dispute.status == read_status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConcurrencyConflictError(f"Dispute {dispute.id} changed since it was read as {read_status.value}")
    db.refresh(dispute)


def open_dispute(
    *,
    db: Session,
    transaction_id: str,
    user_id: str,
    reason: str,
    description: Optional[str] = None,
    evidence: Optional[List[str]] = None,
    expected_status: Optional[TransactionStatus] = None,
    now: Optional[datetime] = None,
) -> Tuple[Dispute, TransitionResult]:
    """
    Open a dispute (buyer or seller of the transaction).

    Moves the transaction to DISPUTED and remembers the status it
    interrupted. Only one dispute may ever exist per transaction.
    """
    now = now or utcnow()
    if not reason or not reason.strip():
        raise ValidationError("Dispute reason is required")
    evidence = _validate_urls(evidence, "evidence")

    transaction = get_transaction(db, transaction_id)
    actor = actor_for_party(transaction, user_id)

    if get_dispute_for_transaction(db, transaction.id) is not None:
        raise InvalidTransitionError("A dispute already exists for this transaction")

    status_before = TransactionStatus(transaction.status)
    dispute_id = generate_id()
    result = apply_transition(
        db=db,
        transaction=transaction,
        action=EscrowAction.OPEN_DISPUTE,
        actor=actor,
        expected_status=expected_status,
        reason=reason.strip(),
        now=now,
        payload={"dispute_id": dispute_id, "reason": reason.strip(), "opened_by": actor.role.value},
    )

    dispute = Dispute(
        id=dispute_id,
        transaction_id=transaction.id,
        opened_by_id=user_id,
        reason=reason.strip(),
        description=description,
        evidence=evidence,
        status=DisputeStatus.OPEN,
        transaction_status_before=status_before.value,
        deadline=now + timedelta(days=get_settings().DISPUTE_DEADLINE_DAYS),
    )
    db.add(dispute)
    try:
        db.flush()
    except IntegrityError as e:
        raise ConcurrencyConflictError("A dispute was opened concurrently for this transaction") from e

    logger.info(
        "Dispute opened",
        extra={"dispute_id": dispute.id, "transaction_id": transaction.id, "status_before": status_before.value},
    )
    return dispute, result


def update_dispute_status(
    *,
    db: Session,
    dispute_id: str,
    actor: Actor,
    status: DisputeStatus,
    note: Optional[str] = None,
) -> Tuple[Dispute, List[NotificationEvent]]:
    """Admin review move (OPEN / UNDER_REVIEW / AWAITING_SELLER / AWAITING_BUYER)"""
    _require_admin(actor)
    dispute = get_dispute(db, dispute_id)
    before = DisputeStatus(dispute.status)
    check_review_move(before, status)

    _move_dispute(db, dispute, {"status": DisputeStatus(status)})

    db.add(AuditLog(
        actor_user_id=actor.user_id,
        actor_role=actor.role,
        action="DISPUTE_STATUS_CHANGED",
        entity_type="Dispute",
        entity_id=dispute.id,
        before={"status": before.value},
        after={"status": DisputeStatus(dispute.status).value},
        reason=note,
    ))
    db.flush()

    event = NotificationEvent(
        transaction_id=dispute.transaction_id,
        event_type="DISPUTE_UPDATE",
        payload={"dispute_id": dispute.id, "status": DisputeStatus(dispute.status).value, "note": note},
    )
    return dispute, [event]


def resolve_dispute(
    *,
    db: Session,
    dispute_id: str,
    actor: Actor,
    winner: DisputeWinner,
    resolution: str,
    now: Optional[datetime] = None,
) -> Tuple[Dispute, TransitionResult]:
    """
    Admin resolution.

    Buyer wins: transaction REFUNDED, buyer wallet credited with the amount.
    Seller wins: transaction COMPLETED, payout computed and seller credited.
    """
    _require_admin(actor)
    if not resolution or not resolution.strip():
        raise ValidationError("Resolution text is required")
    now = now or utcnow()

    dispute = get_dispute(db, dispute_id)
    dispute_status, action = resolution_for(DisputeStatus(dispute.status), winner)

    _move_dispute(db, dispute, {
        "status": dispute_status,
        "resolution": resolution.strip(),
        "resolved_by_id": actor.user_id,
        "resolved_at": now,
    })

    result = apply_transition(
        db=db,
        transaction=get_transaction(db, dispute.transaction_id),
        action=action,
        actor=actor,
        reason=resolution.strip(),
        now=now,
        payload={"dispute_id": dispute.id, "winner": DisputeWinner(winner).value},
    )

    logger.info(
        "Dispute resolved",
        extra={"dispute_id": dispute.id, "transaction_id": dispute.transaction_id, "winner": DisputeWinner(winner).value},
    )
    return dispute, result


def close_dispute(
    *,
    db: Session,
    dispute_id: str,
    actor: Actor,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[Dispute, TransitionResult]:
    """Admin close without a winner; the transaction returns to the status the dispute interrupted"""
    _require_admin(actor)
    now = now or utcnow()

    dispute = get_dispute(db, dispute_id)
    check_can_close(DisputeStatus(dispute.status))

    _move_dispute(db, dispute, {
        "status": DisputeStatus.CLOSED,
        "resolution": note,
        "resolved_by_id": actor.user_id,
        "resolved_at": now,
    })

    result = apply_transition(
        db=db,
        transaction=get_transaction(db, dispute.transaction_id),
        action=EscrowAction.CLOSE_DISPUTE,
        actor=actor,
        restore_status=TransactionStatus(dispute.transaction_status_before),
        reason=note,
        now=now,
        payload={"dispute_id": dispute.id, "closed": True},
    )
    return dispute, result


def add_message(
    *,
    db: Session,
    dispute_id: str,
    sender_id: str,
    message: str,
    attachments: Optional[List[str]] = None,
    is_admin: bool = False,
) -> Tuple[DisputeMessage, List[NotificationEvent]]:
    """
    Append a message to a non-terminal dispute.

    Non-admin senders must be the buyer or seller of the transaction.
    Messages are never updated.
    """
    if not message or not message.strip():
        raise ValidationError("Message is required")
    attachments = _validate_urls(attachments, "attachment")

    dispute = get_dispute(db, dispute_id)
    check_can_append_message(DisputeStatus(dispute.status))
    if not is_admin:
        actor_for_party(get_transaction(db, dispute.transaction_id), sender_id)

    next_sequence = (db.execute(
        select(func.coalesce(func.max(DisputeMessage.sequence), 0))
        .where(DisputeMessage.dispute_id == dispute.id)
    ).scalar() or 0) + 1

    entry = DisputeMessage(
        dispute_id=dispute.id,
        sequence=next_sequence,
        sender_id=sender_id,
        message=message.strip(),
        attachments=attachments,
        is_admin=is_admin,
    )
    try:
        with db.begin_nested():
            db.add(entry)
            db.flush()
    except IntegrityError as e:
        raise ConcurrencyConflictError("Another message was added concurrently; retry") from e

    event = NotificationEvent(
        transaction_id=dispute.transaction_id,
        event_type="DISPUTE_UPDATE",
        payload={"dispute_id": dispute.id, "message_id": entry.id, "is_admin": is_admin},
    )
    return entry, [event]


def list_messages(db: Session, dispute_id: str) -> List[DisputeMessage]:
    return list(db.execute(
        select(DisputeMessage)
        .where(DisputeMessage.dispute_id == dispute_id)
        .order_by(DisputeMessage.sequence)
    ).scalars())


def find_overdue_disputes(db: Session, now: Optional[datetime] = None) -> List[Dispute]:
    """Non-terminal disputes past their deadline. Reported only, never auto-resolved."""
    now = as_utc(now or utcnow())
    return list(db.execute(
        select(Dispute)
        .where(
            Dispute.status.not_in(list(TERMINAL_DISPUTE_STATUSES)),
            Dispute.deadline.is_not(None),
            Dispute.deadline < now,
        )
        .order_by(Dispute.deadline)
    ).scalars())
