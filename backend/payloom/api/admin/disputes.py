"""
Admin dispute endpoints - Review, resolve and close disputes
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from payloom.api.unit_of_work import commit_and_notify, unit_of_work
from payloom.auth.dependencies import admin_actor, require_admin_role
from payloom.auth.principal import Principal
from payloom.core.disputes.models import DisputeStatus
from payloom.infrastructure.database import get_db
from payloom.schemas.disputes import (
    CloseDisputeRequest,
    DisputeResponse,
    DisputeStatusRequest,
    ResolveDisputeRequest,
)
from payloom.services import dispute_service
from payloom.services.notifications import NotificationSink, get_notifier

router = APIRouter(prefix="/disputes")


@router.get("", response_model=List[DisputeResponse], summary="List disputes")
def list_disputes(
    status_filter: Optional[DisputeStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin_role),
) -> List[DisputeResponse]:
    disputes = dispute_service.list_disputes(db, status=status_filter, limit=limit, offset=offset)
    return [DisputeResponse.from_model(d) for d in disputes]


@router.get(
    "/overdue",
    response_model=List[DisputeResponse],
    summary="Disputes past their deadline (reported, never auto-resolved)",
)
def list_overdue_disputes(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin_role),
) -> List[DisputeResponse]:
    return [DisputeResponse.from_model(d) for d in dispute_service.find_overdue_disputes(db)]


@router.post("/{dispute_id}/status", response_model=DisputeResponse, summary="Move a dispute under review")
def update_dispute_status(
    dispute_id: str,
    body: DisputeStatusRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin_role),
    notifier: NotificationSink = Depends(get_notifier),
) -> DisputeResponse:
    with unit_of_work(db):
        dispute, events = dispute_service.update_dispute_status(
            db=db,
            dispute_id=dispute_id,
            actor=admin_actor(principal),
            status=body.status,
            note=body.note,
        )
        commit_and_notify(db, notifier, events)
    return DisputeResponse.from_model(dispute)


@router.post("/{dispute_id}/resolve", response_model=DisputeResponse, summary="Resolve for buyer or seller")
def resolve_dispute(
    dispute_id: str,
    body: ResolveDisputeRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin_role),
    notifier: NotificationSink = Depends(get_notifier),
) -> DisputeResponse:
    """
    BUYER: transaction REFUNDED and the buyer wallet credited with the amount.
    SELLER: transaction COMPLETED, payout computed once and the seller credited.
    """
    with unit_of_work(db):
        dispute, result = dispute_service.resolve_dispute(
            db=db,
            dispute_id=dispute_id,
            actor=admin_actor(principal),
            winner=body.winner,
            resolution=body.resolution,
        )
        commit_and_notify(db, notifier, result.events)
    return DisputeResponse.from_model(dispute)


@router.post("/{dispute_id}/close", response_model=DisputeResponse, summary="Close without a winner")
def close_dispute(
    dispute_id: str,
    body: Optional[CloseDisputeRequest] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin_role),
    notifier: NotificationSink = Depends(get_notifier),
) -> DisputeResponse:
    with unit_of_work(db):
        dispute, result = dispute_service.close_dispute(
            db=db,
            dispute_id=dispute_id,
            actor=admin_actor(principal),
            note=body.note if body else None,
        )
        commit_and_notify(db, notifier, result.events)
    return DisputeResponse.from_model(dispute)
