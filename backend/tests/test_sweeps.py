"""
Escrow sweep tests (expiry, auto-release, reminders, refunds, overdue disputes)
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from sqlalchemy import select

from payloom.core.transactions.models import TransactionStatus
from payloom.core.wallets.models import Refund, RefundStatus
from payloom.services import dispute_service, escrow_service, sweep_service
from payloom.services.notifications import InMemoryNotificationSink
from payloom.services.wallet_service import get_wallet
from tests.factories import BUYER_ID, SELLER_ID, advance, make_pending


class ExplodingSink:
    def send(self, event):
        raise RuntimeError("SMS provider down")


def test_expire_only_past_due_links(db_session, now, sink):
    stale = make_pending(db_session, now=now - timedelta(days=10))
    fresh = make_pending(db_session, now=now)

    stats = sweep_service.expire_pending_transactions(db=db_session, now=now, notifier=sink)

    assert stats["found"] == 1
    assert stats["executed_count"] == 1
    assert stats["errors_count"] == 0
    db_session.refresh(stale)
    db_session.refresh(fresh)
    assert stale.status == TransactionStatus.EXPIRED
    assert fresh.status == TransactionStatus.PENDING
    assert sink.types() == ["LINK_EXPIRED"]


def test_dry_run_changes_nothing(db_session, now, sink):
    stale = make_pending(db_session, now=now - timedelta(days=10))

    stats = sweep_service.expire_pending_transactions(db=db_session, now=now, notifier=sink, dry_run=True)

    assert stats["executed_count"] == 1
    db_session.refresh(stale)
    assert stale.status == TransactionStatus.PENDING
    assert sink.events == []


def test_auto_release_after_seven_days(db_session, now, sink):
    shipped_at = now - timedelta(days=8)
    old = advance(db_session, make_pending(db_session, now=shipped_at), "SHIPPED", now=shipped_at)
    recent = advance(
        db_session, make_pending(db_session, now=now - timedelta(days=2)), "SHIPPED",
        reference="PSK-REF-2", now=now - timedelta(days=2),
    )

    stats = sweep_service.auto_release_shipped(db=db_session, now=now, notifier=sink)

    assert stats["executed_count"] == 1
    db_session.refresh(old)
    db_session.refresh(recent)
    assert old.status == TransactionStatus.COMPLETED
    assert old.seller_payout == Decimal("950.00")
    assert recent.status == TransactionStatus.SHIPPED
    assert get_wallet(db_session, SELLER_ID).available_balance == Decimal("950.00")
    assert sink.types() == ["PAYMENT_RELEASED"]


def test_disputed_transaction_is_not_auto_released(db_session, now, sink):
    shipped_at = now - timedelta(days=8)
    transaction = advance(db_session, make_pending(db_session, now=shipped_at), "SHIPPED", now=shipped_at)
    dispute_service.open_dispute(
        db=db_session, transaction_id=transaction.id, user_id=BUYER_ID, reason="Not received", now=now,
    )
    db_session.commit()

    stats = sweep_service.auto_release_shipped(db=db_session, now=now, notifier=sink)

    assert stats["found"] == 0
    db_session.refresh(transaction)
    assert transaction.status == TransactionStatus.DISPUTED


def test_delivery_reminders_window(db_session, now, sink):
    shipped_at = now - timedelta(days=5, hours=6)
    due = advance(db_session, make_pending(db_session, now=shipped_at), "SHIPPED", now=shipped_at)
    advance(
        db_session, make_pending(db_session, now=now - timedelta(days=1)), "SHIPPED",
        reference="PSK-REF-2", now=now - timedelta(days=1),
    )

    stats = sweep_service.send_delivery_reminders(db=db_session, now=now, notifier=sink)

    assert stats["found"] == 1
    assert stats["executed_count"] == 1
    assert sink.types() == ["REMINDER"]
    assert sink.events[0].transaction_id == due.id
    db_session.refresh(due)
    assert due.status == TransactionStatus.SHIPPED


def test_pending_refunds_credit_buyer_once(db_session, seller, sink):
    transaction = advance(db_session, make_pending(db_session), "ACCEPTED")
    escrow_service.reject_order(db=db_session, transaction_id=transaction.id, actor=seller, reason="Sold out")
    db_session.commit()

    stats = sweep_service.process_pending_refunds(db=db_session, notifier=sink)
    again = sweep_service.process_pending_refunds(db=db_session, notifier=sink)

    assert stats["executed_count"] == 1
    assert again["found"] == 0
    refund = db_session.execute(select(Refund)).scalar_one()
    assert refund.status == RefundStatus.COMPLETED
    assert refund.processed_at is not None
    assert get_wallet(db_session, BUYER_ID).available_balance == Decimal("1000.00")
    assert sink.types() == ["REFUND_PROCESSED"]


def test_sink_failure_does_not_undo_the_sweep(db_session, now):
    stale = make_pending(db_session, now=now - timedelta(days=10))

    stats = sweep_service.expire_pending_transactions(db=db_session, now=now, notifier=ExplodingSink())

    assert stats["executed_count"] == 1
    assert stats["errors_count"] == 0
    db_session.refresh(stale)
    assert stale.status == TransactionStatus.EXPIRED


def test_one_failing_item_does_not_stop_the_rest(db_session, now, sink, monkeypatch):
    first = make_pending(db_session, now=now - timedelta(days=11))
    second = make_pending(db_session, now=now - timedelta(days=10))
    original = escrow_service.expire_transaction

    def flaky(*, db, transaction_id, now=None):
        if transaction_id == first.id:
            raise RuntimeError("boom")
        return original(db=db, transaction_id=transaction_id, now=now)

    monkeypatch.setattr(escrow_service, "expire_transaction", flaky)

    stats = sweep_service.expire_pending_transactions(db=db_session, now=now, notifier=sink)

    assert stats["found"] == 2
    assert stats["executed_count"] == 1
    assert stats["errors_count"] == 1
    db_session.refresh(second)
    assert second.status == TransactionStatus.EXPIRED


def test_run_escrow_sweep_summary(db_session, now, sink):
    make_pending(db_session, now=now - timedelta(days=10))
    shipped_at = now - timedelta(days=3)
    transaction = advance(db_session, make_pending(db_session, now=shipped_at), "SHIPPED", now=shipped_at)
    dispute_service.open_dispute(
        db=db_session, transaction_id=transaction.id, user_id=BUYER_ID, reason="Late",
        now=now - timedelta(days=9),
    )
    db_session.commit()

    summary = sweep_service.run_escrow_sweep(db=db_session, now=now, notifier=sink)

    assert summary["expired"]["executed_count"] == 1
    assert summary["auto_released"]["found"] == 0
    assert summary["overdue_disputes"]["found"] == 1
    assert summary["errors_count"] == 0
