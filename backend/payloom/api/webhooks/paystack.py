"""
Paystack webhook endpoint
"""

import json
import logging
from fastapi import APIRouter, Depends, HTTPException, Header, Request, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from payloom.api.unit_of_work import commit_and_notify, unit_of_work
from payloom.infrastructure.database import get_db
from payloom.infrastructure.settings import get_settings
from payloom.schemas.webhooks import PaystackWebhookPayload, PaystackWebhookResponse
from payloom.services import escrow_service
from payloom.services.notifications import NotificationSink, get_notifier
from payloom.services.payment_gateway import parse_paystack_charge
from payloom.utils.metrics import record_webhook_received, record_webhook_rejected
from payloom.utils.webhook_security import verify_paystack_signature

logger = logging.getLogger(__name__)

router = APIRouter()


def _bad_request(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": {"code": code, "message": message}},
    )


@router.post(
    "/paystack",
    response_model=PaystackWebhookResponse,
    summary="Paystack charge webhook",
    description="charge.success confirms payment for data.metadata.transaction_id. HMAC-SHA512 signed.",
)
async def paystack_webhook(
    request: Request,
    db: Session = Depends(get_db),
    notifier: NotificationSink = Depends(get_notifier),
    x_paystack_signature: str = Header(None, alias="x-paystack-signature"),
) -> PaystackWebhookResponse:
    """
    1. Verify the signature over the raw body
    2. Ignore every event except charge.success
    3. Confirm payment (PROCESSING -> PAID); a replay with the stored
       reference is reported as duplicate and changes nothing
    """
    record_webhook_received()
    body_bytes = await request.body()

    is_valid, error_code = verify_paystack_signature(
        body_bytes, x_paystack_signature, get_settings().PAYSTACK_SECRET_KEY
    )
    if not is_valid:
        record_webhook_rejected(reason=error_code.lower())
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": error_code, "message": "Webhook signature verification failed"}},
        )

    try:
        payload = PaystackWebhookPayload(**json.loads(body_bytes.decode("utf-8")))
    except (ValueError, PydanticValidationError):
        record_webhook_rejected(reason="payload_invalid")
        raise _bad_request("INVALID_PAYLOAD", "Webhook body is not a valid Paystack event")

    if payload.event != "charge.success":
        logger.info("Paystack event ignored", extra={"paystack_event": payload.event})
        return PaystackWebhookResponse(status="ignored")

    metadata = payload.data.get("metadata")
    transaction_id = metadata.get("transaction_id") if isinstance(metadata, dict) else None
    if not transaction_id:
        record_webhook_rejected(reason="missing_transaction_id")
        raise _bad_request("INVALID_PAYLOAD", "data.metadata.transaction_id is required")

    verification = parse_paystack_charge(payload.data)
    with unit_of_work(db):
        result = escrow_service.confirm_payment(
            db=db,
            transaction_id=str(transaction_id),
            verification=verification,
        )
        commit_and_notify(db, notifier, result.events)

    return PaystackWebhookResponse(
        status="processed" if result.changed else "duplicate",
        transaction_id=result.transaction.id,
        transaction_status=result.transaction.status,
    )
