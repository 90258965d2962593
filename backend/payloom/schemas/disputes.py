"""
Dispute API request/response schemas
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from payloom.core.disputes.models import Dispute, DisputeMessage, DisputeStatus
from payloom.core.escrow.disputes import DisputeWinner


class DisputeMessageRequest(BaseModel):
    message: str = Field(..., description="Message text")
    attachments: List[str] = Field(default_factory=list, description="Attachment URLs")


class DisputeStatusRequest(BaseModel):
    """Admin review move"""
    status: DisputeStatus
    note: Optional[str] = None


class ResolveDisputeRequest(BaseModel):
    winner: DisputeWinner
    resolution: str = Field(..., description="Resolution text shown to both parties")


class CloseDisputeRequest(BaseModel):
    note: Optional[str] = None


class DisputeMessageResponse(BaseModel):
    id: str
    sequence: int
    sender_id: str
    message: str
    attachments: List[str] = Field(default_factory=list)
    is_admin: bool
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, message: DisputeMessage) -> "DisputeMessageResponse":
        return cls(
            id=message.id,
            sequence=message.sequence,
            sender_id=message.sender_id,
            message=message.message,
            attachments=list(message.attachments or []),
            is_admin=message.is_admin,
            created_at=message.created_at,
        )


class DisputeResponse(BaseModel):
    id: str
    transaction_id: str
    opened_by_id: str
    reason: str
    description: Optional[str] = None
    evidence: List[str] = Field(default_factory=list)
    status: DisputeStatus
    transaction_status_before: str
    resolution: Optional[str] = None
    resolved_by_id: Optional[str] = None
    resolved_at: Optional[datetime] = None
    deadline: Optional[datetime] = None
    created_at: Optional[datetime] = None
    messages: List[DisputeMessageResponse] = Field(default_factory=list)

    @classmethod
    def from_model(cls, dispute: Dispute, messages: Optional[List[DisputeMessage]] = None) -> "DisputeResponse":
        return cls(
            id=dispute.id,
            transaction_id=dispute.transaction_id,
            opened_by_id=dispute.opened_by_id,
            reason=dispute.reason,
            description=dispute.description,
            evidence=list(dispute.evidence or []),
            status=dispute.status,
            transaction_status_before=dispute.transaction_status_before,
            resolution=dispute.resolution,
            resolved_by_id=dispute.resolved_by_id,
            resolved_at=dispute.resolved_at,
            deadline=dispute.deadline,
            created_at=dispute.created_at,
            messages=[DisputeMessageResponse.from_model(m) for m in (messages or [])],
        )
