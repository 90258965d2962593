"""
Builders for escrow test data
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from payloom.core.escrow.state_machine import Actor
from payloom.core.security.models import Role
from payloom.core.transactions.models import Transaction
from payloom.services import escrow_service
from payloom.services.payment_gateway import GatewayVerification

SELLER_ID = "seller-1"
BUYER_ID = "buyer-1"
ADMIN_ID = "admin-1"
OTHER_ID = "stranger-1"

HAPPY_PATH = ["PROCESSING", "PAID", "ACCEPTED", "SHIPPED", "DELIVERED"]


def make_pending(
    db: Session,
    amount: str = "1000.00",
    now: Optional[datetime] = None,
    seller_id: str = SELLER_ID,
    **kwargs,
) -> Transaction:
    """Committed PENDING transaction (a fresh payment link)"""
    transaction = escrow_service.create_transaction(
        db=db,
        seller_id=seller_id,
        item_name=kwargs.pop("item_name", "Leather handbag"),
        amount=Decimal(amount),
        now=now,
        **kwargs,
    )
    db.commit()
    return transaction


def advance(
    db: Session,
    transaction: Transaction,
    to: str,
    reference: str = "PSK-REF-1",
    now: Optional[datetime] = None,
    buyer_id: str = BUYER_ID,
) -> Transaction:
    """
    Drive a transaction along the happy path until it reaches `to`
    (PROCESSING, PAID, ACCEPTED, SHIPPED or DELIVERED), committing each step.
    """
    seller = Actor(role=Role.SELLER, user_id=transaction.seller_id)
    buyer = Actor(role=Role.BUYER, user_id=buyer_id)
    steps = {
        "PROCESSING": lambda: escrow_service.initiate_payment(
            db=db, transaction_id=transaction.id, actor=buyer,
            buyer_name="Jane Buyer", buyer_phone="+254700000001", now=now,
        ),
        "PAID": lambda: escrow_service.confirm_payment(
            db=db, transaction_id=transaction.id,
            verification=GatewayVerification(success=True, amount=Decimal(transaction.amount), reference=reference),
            now=now,
        ),
        "ACCEPTED": lambda: escrow_service.accept_order(
            db=db, transaction_id=transaction.id, actor=seller, now=now,
        ),
        "SHIPPED": lambda: escrow_service.add_shipping_info(
            db=db, transaction_id=transaction.id, actor=seller,
            courier_name="G4S", tracking_number="TRK-001", now=now,
        ),
        "DELIVERED": lambda: escrow_service.confirm_delivery(
            db=db, transaction_id=transaction.id, actor=buyer, now=now,
        ),
    }
    for step in HAPPY_PATH[:HAPPY_PATH.index(to) + 1]:
        steps[step]()
        db.commit()
    return transaction
