"""
Pytest configuration and fixtures
"""

import pytest
import os
from datetime import datetime, timezone
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

# Set test environment variables before importing app
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"  # Use DB 1 for tests
os.environ["JWT_SECRET"] = "test-jwt-secret-min-32-chars-for-testing-only"
os.environ["PAYSTACK_SECRET_KEY"] = "sk_test_paystack_secret_for_testing_only"
os.environ["NOTIFICATION_SINK"] = "log"
os.environ["LOG_LEVEL"] = "DEBUG"

from payloom.infrastructure.database import Base, get_db
from payloom.main import app
from payloom.core.escrow.state_machine import Actor
from payloom.core.security.models import Role
from payloom.services.notifications import InMemoryNotificationSink, get_notifier
from payloom.services.payment_gateway import GatewayVerification, get_payment_gateway

from tests.factories import ADMIN_ID, BUYER_ID, SELLER_ID

# Create test database engine
test_engine = create_engine(
    os.environ["DATABASE_URL"],
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)

TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeGateway:
    """Gateway double: every reference verifies with the configured amount"""

    def __init__(self):
        self.amount = Decimal("1000.00")
        self.success = True
        self.error = None
        self.currency = None
        self.metadata = None
        self.calls = []

    def verify(self, reference: str) -> GatewayVerification:
        self.calls.append(reference)
        if self.error is not None:
            raise self.error
        return GatewayVerification(
            success=self.success,
            amount=self.amount,
            reference=reference,
            currency=self.currency,
            metadata=self.metadata,
        )


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Create a fresh database session for each test.
    Clears all tables before and after each test.
    """
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)

    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def sink() -> InMemoryNotificationSink:
    return InMemoryNotificationSink()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture(scope="function")
def client(db_session: Session, sink: InMemoryNotificationSink, gateway: FakeGateway):
    """
    Create FastAPI test client with dependency overrides.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: sink
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def seller() -> Actor:
    return Actor(role=Role.SELLER, user_id=SELLER_ID)


@pytest.fixture
def buyer() -> Actor:
    return Actor(role=Role.BUYER, user_id=BUYER_ID)


@pytest.fixture
def admin() -> Actor:
    return Actor(role=Role.ADMIN, user_id=ADMIN_ID)


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)

