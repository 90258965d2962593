"""
Escrow sweeps - Periodic out-of-band jobs

- expire_pending_transactions: PENDING -> EXPIRED once expires_at has passed
- auto_release_shipped: SHIPPED -> COMPLETED after AUTO_RELEASE_DAYS
- send_delivery_reminders: REMINDER events, no state change
- process_pending_refunds: credit buyers for rejected orders
- report_overdue_disputes: list only, nothing is auto-resolved

Each item is its own unit of work: commit (or rollback on dry_run), then
notify. One failing item never stops the rest (fail-soft); a transaction
that moved on since it was selected counts as skipped.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from payloom.core.compliance.models import AuditLog
from payloom.core.disputes.models import DisputeStatus
from payloom.core.escrow.errors import ConcurrencyConflictError, InvalidTransitionError
from payloom.core.security.models import Role
from payloom.core.transactions.models import Transaction, TransactionStatus
from payloom.core.wallets.models import Refund, RefundStatus
from payloom.infrastructure.settings import get_settings
from payloom.services import escrow_service
from payloom.services.dispute_service import find_overdue_disputes
from payloom.services.notifications import NotificationEvent, NotificationSink, emit
from payloom.services.wallet_service import credit_available
from payloom.utils.clock import as_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 200


class SweepError(Exception):
    """Raised when a sweep cannot run at all (e.g. selecting candidates failed)"""
    pass


def _new_stats() -> Dict[str, Any]:
    return {
        "found": 0,
        "executed_count": 0,
        "skipped_count": 0,
        "errors_count": 0,
        "errors": [],
    }


def _run_items(
    *,
    db: Session,
    name: str,
    ids: List[str],
    handle: Callable[[str], List[NotificationEvent]],
    notifier: Optional[NotificationSink],
    dry_run: bool,
) -> Dict[str, Any]:
    stats = _new_stats()
    stats["found"] = len(ids)

    for item_id in ids:
        try:
            events = handle(item_id)
            if dry_run:
                db.rollback()
            else:
                db.commit()
                if notifier is not None:
                    emit(notifier, events)
            stats["executed_count"] += 1
        except (ConcurrencyConflictError, InvalidTransitionError) as e:
            db.rollback()
            stats["skipped_count"] += 1
            logger.info(f"{name}: skipped {item_id}", extra={"item_id": item_id, "reason": str(e)})
        except Exception as e:
            db.rollback()
            stats["errors"].append(f"Error processing {item_id}: {str(e)}")
            stats["errors_count"] += 1
            logger.exception(f"{name}: failed on {item_id}", extra={"item_id": item_id})

    return stats


def _select_ids(db: Session, stmt, name: str) -> List[str]:
    try:
        return list(db.execute(stmt).scalars())
    except Exception as e:
        db.rollback()
        raise SweepError(f"{name}: could not select candidates: {e}") from e


def expire_pending_transactions(
    *,
    db: Session,
    now: Optional[datetime] = None,
    notifier: Optional[NotificationSink] = None,
    dry_run: bool = False,
    max_items: int = DEFAULT_MAX_ITEMS,
) -> Dict[str, Any]:
    now = as_utc(now or utcnow())
    ids = _select_ids(db, (
        select(Transaction.id)
        .where(
            Transaction.status == TransactionStatus.PENDING,
            Transaction.expires_at.is_not(None),
            Transaction.expires_at < now,
        )
        .order_by(Transaction.expires_at)
        .limit(max_items)
    ), "expire")

    def handle(transaction_id: str) -> List[NotificationEvent]:
        return escrow_service.expire_transaction(db=db, transaction_id=transaction_id, now=now).events

    return _run_items(db=db, name="expire", ids=ids, handle=handle, notifier=notifier, dry_run=dry_run)


def auto_release_shipped(
    *,
    db: Session,
    now: Optional[datetime] = None,
    notifier: Optional[NotificationSink] = None,
    dry_run: bool = False,
    max_items: int = DEFAULT_MAX_ITEMS,
) -> Dict[str, Any]:
    now = as_utc(now or utcnow())
    cutoff = now - timedelta(days=get_settings().AUTO_RELEASE_DAYS)
    ids = _select_ids(db, (
        select(Transaction.id)
        .where(
            Transaction.status == TransactionStatus.SHIPPED,
            Transaction.shipped_at.is_not(None),
            Transaction.shipped_at <= cutoff,
        )
        .order_by(Transaction.shipped_at)
        .limit(max_items)
    ), "auto_release")

    def handle(transaction_id: str) -> List[NotificationEvent]:
        return escrow_service.auto_release(db=db, transaction_id=transaction_id, now=now).events

    return _run_items(db=db, name="auto_release", ids=ids, handle=handle, notifier=notifier, dry_run=dry_run)


def send_delivery_reminders(
    *,
    db: Session,
    now: Optional[datetime] = None,
    notifier: Optional[NotificationSink] = None,
    dry_run: bool = False,
    max_items: int = DEFAULT_MAX_ITEMS,
) -> Dict[str, Any]:
    """REMINDER for transactions shipped between REMINDER_AFTER_DAYS and one day later"""
    now = as_utc(now or utcnow())
    reminder_days = get_settings().REMINDER_AFTER_DAYS
    newest = now - timedelta(days=reminder_days)
    oldest = now - timedelta(days=reminder_days + 1)

    stats = _new_stats()
    rows = db.execute(
        select(Transaction.id, Transaction.buyer_id, Transaction.shipped_at)
        .where(
            Transaction.status == TransactionStatus.SHIPPED,
            Transaction.shipped_at > oldest,
            Transaction.shipped_at <= newest,
        )
        .order_by(Transaction.shipped_at)
        .limit(max_items)
    ).all()
    stats["found"] = len(rows)

    events = []
    for transaction_id, buyer_id, shipped_at in rows:
        auto_release_at = as_utc(shipped_at) + timedelta(days=get_settings().AUTO_RELEASE_DAYS)
        events.append(NotificationEvent(
            transaction_id=transaction_id,
            event_type="REMINDER",
            payload={"buyer_id": buyer_id, "auto_release_at": auto_release_at.isoformat()},
        ))

    if dry_run or notifier is None:
        stats["skipped_count"] = len(events)
    else:
        stats["executed_count"] = emit(notifier, events)
        stats["errors_count"] = len(events) - stats["executed_count"]
    return stats


def _complete_refund(db: Session, refund_id: str, now: datetime) -> List[NotificationEvent]:
    result = db.execute(
        update(Refund)
        .where(Refund.id == refund_id, Refund.status == RefundStatus.PENDING)
        .values(status=RefundStatus.COMPLETED, processed_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConcurrencyConflictError(f"Refund {refund_id} already processed")

    refund = db.get(Refund, refund_id)
    db.refresh(refund)
    credit_available(db=db, user_id=refund.buyer_id, amount=refund.amount, currency=refund.currency)

    db.add(AuditLog(
        actor_user_id=None,
        actor_role=Role.SYSTEM,
        action="REFUND_PROCESSED",
        entity_type="Refund",
        entity_id=refund.id,
        before={"status": RefundStatus.PENDING.value},
        after={"status": RefundStatus.COMPLETED.value, "amount": str(refund.amount)},
        reason=refund.reason,
    ))
    db.flush()

    return [NotificationEvent(
        transaction_id=refund.transaction_id,
        event_type="REFUND_PROCESSED",
        payload={"buyer_id": refund.buyer_id, "amount": str(refund.amount), "currency": refund.currency},
    )]


def process_pending_refunds(
    *,
    db: Session,
    now: Optional[datetime] = None,
    notifier: Optional[NotificationSink] = None,
    dry_run: bool = False,
    max_items: int = DEFAULT_MAX_ITEMS,
) -> Dict[str, Any]:
    now = as_utc(now or utcnow())
    ids = _select_ids(db, (
        select(Refund.id)
        .where(Refund.status == RefundStatus.PENDING)
        .order_by(Refund.created_at, Refund.id)
        .limit(max_items)
    ), "refunds")

    stats = _run_items(
        db=db,
        name="refunds",
        ids=ids,
        handle=lambda refund_id: _complete_refund(db, refund_id, now),
        notifier=notifier,
        dry_run=dry_run,
    )
    return stats


def report_overdue_disputes(*, db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Overdue disputes are reported for admins; their status is left alone"""
    overdue = find_overdue_disputes(db, now)
    items = []
    for dispute in overdue:
        items.append({
            "dispute_id": dispute.id,
            "transaction_id": dispute.transaction_id,
            "status": DisputeStatus(dispute.status).value,
            "deadline": as_utc(dispute.deadline).isoformat(),
        })
        logger.warning(
            "Dispute past deadline",
            extra={"dispute_id": dispute.id, "transaction_id": dispute.transaction_id},
        )
    return {"found": len(items), "disputes": items}


def run_escrow_sweep(
    *,
    db: Session,
    now: Optional[datetime] = None,
    notifier: Optional[NotificationSink] = None,
    dry_run: bool = False,
    max_items: int = DEFAULT_MAX_ITEMS,
) -> Dict[str, Any]:
    """Run every sweep once; errors_count sums the per-sweep errors"""
    now = as_utc(now or utcnow())
    summary: Dict[str, Any] = {
        "expired": expire_pending_transactions(db=db, now=now, notifier=notifier, dry_run=dry_run, max_items=max_items),
        "auto_released": auto_release_shipped(db=db, now=now, notifier=notifier, dry_run=dry_run, max_items=max_items),
        "reminders": send_delivery_reminders(db=db, now=now, notifier=notifier, dry_run=dry_run, max_items=max_items),
        "refunds": process_pending_refunds(db=db, now=now, notifier=notifier, dry_run=dry_run, max_items=max_items),
        "overdue_disputes": report_overdue_disputes(db=db, now=now),
    }
    summary["errors_count"] = sum(
        section.get("errors_count", 0) for section in summary.values() if isinstance(section, dict)
    )
    return summary
