"""
Commit-then-notify helper shared by the routers
"""

from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

from sqlalchemy.orm import Session

from payloom.services.notifications import NotificationEvent, NotificationSink, emit


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """Roll back on any exception; the caller commits explicitly"""
    try:
        yield db
    except Exception:
        db.rollback()
        raise


def commit_and_notify(
    db: Session,
    notifier: NotificationSink,
    events: Iterable[Optional[NotificationEvent]],
) -> None:
    """Commit, then hand events to the sink. Sink failures never undo the commit."""
    db.commit()
    emit(notifier, events)
