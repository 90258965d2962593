"""
Dispute API endpoints - Parties read the dispute and add messages
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from payloom.api.unit_of_work import commit_and_notify, unit_of_work
from payloom.auth.dependencies import get_current_principal
from payloom.auth.principal import Principal
from payloom.infrastructure.database import get_db
from payloom.schemas.disputes import DisputeMessageRequest, DisputeMessageResponse, DisputeResponse
from payloom.services import dispute_service, escrow_service
from payloom.services.notifications import NotificationSink, get_notifier

router = APIRouter(prefix="/disputes", tags=["disputes"])


@router.get("/{dispute_id}", response_model=DisputeResponse, summary="Get a dispute with its messages")
def get_dispute(
    dispute_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> DisputeResponse:
    dispute = dispute_service.get_dispute(db, dispute_id)
    if not principal.is_admin:
        escrow_service.actor_for_party(escrow_service.get_transaction(db, dispute.transaction_id), principal.user_id)
    return DisputeResponse.from_model(dispute, dispute_service.list_messages(db, dispute.id))


@router.post(
    "/{dispute_id}/messages",
    response_model=DisputeMessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Append a message to an open dispute",
)
def add_message(
    dispute_id: str,
    body: DisputeMessageRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationSink = Depends(get_notifier),
) -> DisputeMessageResponse:
    with unit_of_work(db):
        message, events = dispute_service.add_message(
            db=db,
            dispute_id=dispute_id,
            sender_id=principal.user_id,
            message=body.message,
            attachments=body.attachments,
            is_admin=principal.is_admin,
        )
        commit_and_notify(db, notifier, events)
    return DisputeMessageResponse.from_model(message)
