"""
Dispute models - Dispute attached 1:1 to a Transaction and its message thread
"""

from sqlalchemy import (
    Column,
    String,
    Text,
    Boolean,
    Integer,
    DateTime,
    JSON,
    ForeignKey,
    Enum as SQLEnum,
    Index,
)
from sqlalchemy.orm import relationship
import enum
from payloom.core.common.base_model import BaseModel


class DisputeStatus(str, enum.Enum):
    """Dispute status enum"""
    OPEN = "OPEN"
    UNDER_REVIEW = "UNDER_REVIEW"
    AWAITING_SELLER = "AWAITING_SELLER"
    AWAITING_BUYER = "AWAITING_BUYER"
    RESOLVED_BUYER = "RESOLVED_BUYER"
    RESOLVED_SELLER = "RESOLVED_SELLER"
    CLOSED = "CLOSED"


class Dispute(BaseModel):
    """
    Dispute model - At most one per transaction (unique transaction_id)

    transaction_status_before keeps the status the dispute interrupted so an
    admin close can hand the transaction back where it was.
    """

    __tablename__ = "disputes"

    transaction_id = Column(String(64), ForeignKey("transactions.id", name="fk_disputes_transaction_id"), nullable=False, unique=True, index=True)
    opened_by_id = Column(String(64), nullable=False, index=True)
    reason = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    evidence = Column(JSON, nullable=False, default=list)  # List of URLs
    status = Column(
        SQLEnum(DisputeStatus, name="dispute_status", create_constraint=True),
        nullable=False,
        default=DisputeStatus.OPEN,
        index=True,
    )
    transaction_status_before = Column(String(20), nullable=False)  # TransactionStatus value
    resolution = Column(Text, nullable=True)
    resolved_by_id = Column(String(64), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    deadline = Column(DateTime(timezone=True), nullable=True, index=True)

    # Relationships
    transaction = relationship("Transaction", back_populates="dispute", lazy="select")
    messages = relationship(
        "DisputeMessage",
        back_populates="dispute",
        order_by="DisputeMessage.sequence",
        lazy="select",
    )


class DisputeMessage(BaseModel):
    """
    DisputeMessage model - Append-only thread entry (never updated)
    """

    __tablename__ = "dispute_messages"

    dispute_id = Column(String(64), ForeignKey("disputes.id", name="fk_dispute_messages_dispute_id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)  # 1-based position in the thread
    sender_id = Column(String(64), nullable=False)
    message = Column(Text, nullable=False)
    attachments = Column(JSON, nullable=False, default=list)
    is_admin = Column(Boolean, nullable=False, default=False)

    dispute = relationship("Dispute", back_populates="messages")

    __table_args__ = (
        Index('uq_dispute_messages_sequence', 'dispute_id', 'sequence', unique=True),
    )
