"""
Transaction API end-to-end tests
"""

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy import select

from payloom.core.compliance.models import AuditLog

from tests.auth_utils import auth_headers
from tests.factories import BUYER_ID, OTHER_ID, SELLER_ID

SELLER = auth_headers(SELLER_ID)
BUYER = auth_headers(BUYER_ID)
STRANGER = auth_headers(OTHER_ID)


def _create(client: TestClient, amount: str = "1000.00") -> dict:
    response = client.post(
        "/api/v1/transactions",
        json={"item_name": "Leather handbag", "amount": amount, "currency": "kes"},
        headers=SELLER,
    )
    assert response.status_code == 201, response.text
    return response.json()


def _pay(client: TestClient, transaction_id: str) -> dict:
    response = client.post(
        f"/api/v1/transactions/{transaction_id}/pay",
        json={"buyer_name": "Jane Buyer", "buyer_phone": "+254700000001"},
        headers=BUYER,
    )
    assert response.status_code == 200, response.text
    response = client.post(
        f"/api/v1/transactions/{transaction_id}/verify-payment",
        json={"reference": f"PSK-{transaction_id}"},
        headers=BUYER,
    )
    assert response.status_code == 200, response.text
    return response.json()


def test_requires_authentication(client: TestClient):
    response = client.post("/api/v1/transactions", json={"item_name": "x", "amount": "1"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTHORIZATION_MISSING"


def test_create_transaction(client: TestClient):
    data = _create(client, "4500")

    assert data["status"] == "PENDING"
    assert data["seller_id"] == SELLER_ID
    assert data["amount"] == "4500.00"
    assert data["currency"] == "KES"
    assert data["expires_at"] is not None


def test_audit_rows_carry_request_trace_id(client: TestClient, db_session):
    response = client.post(
        "/api/v1/transactions",
        json={"item_name": "Sandals", "amount": "300"},
        headers={**SELLER, "X-Trace-ID": "trace-create-1"},
    )
    assert response.status_code == 201

    audit = db_session.execute(
        select(AuditLog).where(AuditLog.entity_id == response.json()["id"])
    ).scalar_one()
    assert audit.action == "TRANSACTION_CREATED"
    assert audit.trace_id == "trace-create-1"


def test_create_rejects_bad_amount(client: TestClient):
    response = client.post(
        "/api/v1/transactions", json={"item_name": "Bag", "amount": "-1"}, headers=SELLER,
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_create_rejects_malformed_currency(client: TestClient):
    response = client.post(
        "/api/v1/transactions",
        json={"item_name": "Bag", "amount": "100", "currency": "KESX"},
        headers=SELLER,
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_full_lifecycle_over_http(client: TestClient, sink):
    transaction_id = _create(client)["id"]
    assert _pay(client, transaction_id)["status"] == "PAID"

    response = client.post(
        f"/api/v1/transactions/{transaction_id}/accept",
        json={"payout_contact": "+254711000000"},
        headers=SELLER,
    )
    assert response.json()["status"] == "ACCEPTED"

    response = client.post(
        f"/api/v1/transactions/{transaction_id}/ship",
        json={"courier_name": "G4S", "tracking_number": "TRK-1"},
        headers=SELLER,
    )
    assert response.json()["status"] == "SHIPPED"

    response = client.post(f"/api/v1/transactions/{transaction_id}/confirm-delivery", headers=BUYER)
    assert response.json()["status"] == "DELIVERED"

    response = client.post(f"/api/v1/transactions/{transaction_id}/confirm-receipt", headers=BUYER)
    data = response.json()
    assert response.status_code == 200
    assert data["status"] == "COMPLETED"
    assert data["platform_fee"] == "50.00"
    assert data["seller_payout"] == "950.00"

    assert sink.types() == [
        "PAYMENT_INITIATED",
        "PAYMENT_RECEIVED",
        "ORDER_ACCEPTED",
        "ITEM_SHIPPED",
        "DELIVERY_CONFIRMED",
        "PAYMENT_RELEASED",
    ]

    wallet = client.get("/api/v1/wallet", headers=SELLER).json()
    assert Decimal(wallet["available_balance"]) == Decimal("950.00")

    # Repeat confirmation is rejected and nothing is credited twice
    response = client.post(f"/api/v1/transactions/{transaction_id}/confirm-receipt", headers=BUYER)
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "INVALID_TRANSITION"
    wallet = client.get("/api/v1/wallet", headers=SELLER).json()
    assert Decimal(wallet["available_balance"]) == Decimal("950.00")


def test_confirm_delivery_before_shipping_is_409(client: TestClient):
    transaction_id = _create(client)["id"]
    _pay(client, transaction_id)
    client.post(f"/api/v1/transactions/{transaction_id}/accept", headers=SELLER)

    response = client.post(f"/api/v1/transactions/{transaction_id}/confirm-delivery", headers=BUYER)

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "INVALID_TRANSITION"
    assert error["trace_id"]


def test_wrong_party_is_403(client: TestClient):
    transaction_id = _create(client)["id"]
    _pay(client, transaction_id)

    response = client.post(f"/api/v1/transactions/{transaction_id}/accept", headers=STRANGER)

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"


def test_expected_status_mismatch_is_409_conflict(client: TestClient):
    transaction_id = _create(client)["id"]
    _pay(client, transaction_id)

    response = client.post(
        f"/api/v1/transactions/{transaction_id}/accept",
        params={"expected_status": "PROCESSING"},
        headers=SELLER,
    )

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "CONCURRENCY_CONFLICT"


def test_missing_buyer_contact_is_rejected(client: TestClient):
    transaction_id = _create(client)["id"]

    response = client.post(
        f"/api/v1/transactions/{transaction_id}/pay",
        json={"buyer_name": "Jane", "buyer_phone": ""},
        headers=BUYER,
    )

    assert response.status_code == 400
    detail = client.get(f"/api/v1/transactions/{transaction_id}", headers=SELLER).json()
    assert detail["status"] == "PENDING"
    assert detail["buyer_id"] is None


def test_gateway_outage_is_503_and_changes_nothing(client: TestClient, gateway):
    from payloom.core.escrow.errors import ExternalDependencyError

    transaction_id = _create(client)["id"]
    client.post(
        f"/api/v1/transactions/{transaction_id}/pay",
        json={"buyer_name": "Jane Buyer", "buyer_phone": "+254700000001"},
        headers=BUYER,
    )
    gateway.error = ExternalDependencyError("Payment gateway unreachable")

    response = client.post(
        f"/api/v1/transactions/{transaction_id}/verify-payment",
        json={"reference": "PSK-1"},
        headers=BUYER,
    )

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "EXTERNAL_DEPENDENCY_FAILURE"
    assert client.get(f"/api/v1/transactions/{transaction_id}", headers=BUYER).json()["status"] == "PROCESSING"


def test_reject_order(client: TestClient, sink):
    transaction_id = _create(client)["id"]
    _pay(client, transaction_id)
    client.post(f"/api/v1/transactions/{transaction_id}/accept", headers=SELLER)

    response = client.post(
        f"/api/v1/transactions/{transaction_id}/reject", json={"reason": "Out of stock"}, headers=SELLER,
    )

    data = response.json()
    assert data["status"] == "CANCELLED"
    assert data["rejection_reason"] == "Out of stock"
    assert sink.types()[-1] == "ORDER_REJECTED"


def test_visibility(client: TestClient):
    transaction_id = _create(client)["id"]

    # Pending links are visible to any signed-in buyer (checkout page)
    assert client.get(f"/api/v1/transactions/{transaction_id}", headers=STRANGER).status_code == 200

    _pay(client, transaction_id)
    assert client.get(f"/api/v1/transactions/{transaction_id}", headers=STRANGER).status_code == 403
    assert client.get(f"/api/v1/transactions/{transaction_id}", headers=BUYER).status_code == 200


def test_list_my_transactions(client: TestClient):
    first = _create(client)["id"]
    second = _create(client)["id"]
    _pay(client, second)

    seller_ids = {t["id"] for t in client.get("/api/v1/transactions", headers=SELLER).json()}
    buyer_ids = {t["id"] for t in client.get("/api/v1/transactions", headers=BUYER).json()}

    assert seller_ids == {first, second}
    assert buyer_ids == {second}


def test_unknown_transaction_is_404(client: TestClient):
    response = client.get("/api/v1/transactions/TXN-NOPE", headers=SELLER)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"
