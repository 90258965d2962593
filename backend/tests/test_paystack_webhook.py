"""
Paystack webhook tests
"""

import json
import os
import pytest
from fastapi.testclient import TestClient

from payloom.utils.webhook_security import (
    PAYSTACK_SIGNATURE_HEADER,
    compute_paystack_signature,
    verify_paystack_signature,
)
from tests.factories import advance, make_pending

WEBHOOK_URL = "/webhooks/v1/paystack"


def _post(client: TestClient, payload: dict, signature: str = None):
    body = json.dumps(payload).encode("utf-8")
    if signature is None:
        signature = compute_paystack_signature(body, os.environ["PAYSTACK_SECRET_KEY"])
    return client.post(
        WEBHOOK_URL,
        content=body,
        headers={"Content-Type": "application/json", PAYSTACK_SIGNATURE_HEADER: signature},
    )


def _charge(transaction_id: str, reference: str = "PSK-WH-1", amount_minor: int = 100000) -> dict:
    return {
        "event": "charge.success",
        "data": {
            "status": "success",
            "reference": reference,
            "amount": amount_minor,
            "currency": "KES",
            "metadata": {"transaction_id": transaction_id},
        },
    }


class TestSignature:
    def test_valid_signature(self):
        body = b'{"event":"charge.success"}'
        signature = compute_paystack_signature(body, "secret")
        assert verify_paystack_signature(body, signature, "secret") == (True, None)

    def test_missing_signature(self):
        assert verify_paystack_signature(b"{}", None, "secret") == (False, "WEBHOOK_MISSING_SIGNATURE")

    def test_not_configured(self):
        assert verify_paystack_signature(b"{}", "abc", "") == (False, "WEBHOOK_NOT_CONFIGURED")

    def test_tampered_body(self):
        signature = compute_paystack_signature(b'{"amount":1}', "secret")
        assert verify_paystack_signature(b'{"amount":2}', signature, "secret") == (
            False, "WEBHOOK_INVALID_SIGNATURE",
        )


def test_charge_success_confirms_payment(client: TestClient, db_session, sink):
    transaction = advance(db_session, make_pending(db_session), "PROCESSING")

    response = _post(client, _charge(transaction.id))

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["status"] == "processed"
    assert data["transaction_status"] == "PAID"
    assert sink.types() == ["PAYMENT_RECEIVED"]


def test_replayed_webhook_is_duplicate(client: TestClient, db_session, sink):
    transaction = advance(db_session, make_pending(db_session), "PROCESSING")

    _post(client, _charge(transaction.id))
    response = _post(client, _charge(transaction.id))

    assert response.status_code == 200
    assert response.json()["status"] == "duplicate"
    assert sink.types() == ["PAYMENT_RECEIVED"]


def test_invalid_signature_is_401(client: TestClient, db_session):
    transaction = advance(db_session, make_pending(db_session), "PROCESSING")

    response = _post(client, _charge(transaction.id), signature="deadbeef")

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "WEBHOOK_INVALID_SIGNATURE"
    db_session.refresh(transaction)
    assert transaction.status.value == "PROCESSING"


def test_other_events_are_ignored(client: TestClient):
    response = _post(client, {"event": "transfer.success", "data": {}})
    assert response.status_code == 200
    assert response.json()["status"] == "ignored"


def test_missing_transaction_id_is_400(client: TestClient):
    payload = _charge("x")
    payload["data"]["metadata"] = {}
    response = _post(client, payload)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_PAYLOAD"


def test_underpaid_charge_is_rejected(client: TestClient, db_session):
    transaction = advance(db_session, make_pending(db_session), "PROCESSING")

    response = _post(client, _charge(transaction.id, amount_minor=50000))

    assert response.status_code == 400
    db_session.refresh(transaction)
    assert transaction.payment_reference is None
