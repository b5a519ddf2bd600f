"""
Pytest configuration and fixtures.

Every test gets a fresh in-memory SQLite database and a fake payment gateway,
wired into the FastAPI app through dependency overrides.
"""
import json
import os
from typing import Any, Callable, Dict, List, Optional

os.environ.setdefault("POSTGRES_DSN", "sqlite+pysqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from elegance.api.deps import get_db, get_reconciler, get_settings
from elegance.core.config import Settings
from elegance.core.errors import GatewayError, InvalidSignature
from elegance.core.security import Role, create_access_token
from elegance.db.models import Category, Perfume, User
from elegance.db.session import Base
from elegance.main import app
from elegance.payments.gateway import GatewayEvent, IntentRef, IntentStatus
from elegance.services.reconciliation import LineItem, OrderReconciler

VALID_SIGNATURE = "t=1,v1=valid"


class FakeGateway:
    """In-memory stand-in for Stripe."""

    def __init__(self) -> None:
        self.created: List[Dict[str, Any]] = []
        self.statuses: Dict[str, str] = {}
        self.amounts: Dict[str, int] = {}
        self.cancelled: List[str] = []
        self.fail_create = False
        self.on_get_intent: Optional[Callable[[str], None]] = None

    def create_intent(self, amount: int, description: str, metadata: Dict[str, str]) -> IntentRef:
        if self.fail_create:
            raise GatewayError("Payment provider error: card_declined")
        intent_id = f"pi_test_{len(self.created) + 1}"
        self.created.append({"id": intent_id, "amount": amount, "description": description, "metadata": metadata})
        self.statuses[intent_id] = "requires_payment_method"
        self.amounts[intent_id] = amount
        return IntentRef(id=intent_id, client_secret=f"{intent_id}_secret_abc", amount=amount, currency="clp")

    def set_status(self, intent_id: str, status: str) -> None:
        self.statuses[intent_id] = status

    def get_intent(self, intent_id: str) -> IntentStatus:
        if intent_id not in self.statuses:
            raise GatewayError("No such payment_intent")
        if self.on_get_intent is not None:
            hook, self.on_get_intent = self.on_get_intent, None
            hook(intent_id)
        return IntentStatus(id=intent_id, status=self.statuses[intent_id], amount=self.amounts[intent_id], currency="clp")

    def cancel_intent(self, intent_id: str) -> IntentStatus:
        if self.statuses.get(intent_id) == "succeeded":
            raise GatewayError("You cannot cancel this PaymentIntent because it has a status of succeeded.")
        self.statuses[intent_id] = "canceled"
        self.cancelled.append(intent_id)
        return IntentStatus(id=intent_id, status="canceled", amount=self.amounts[intent_id], currency="clp")

    def verify_and_parse_event(self, payload: bytes, signature: Optional[str], secret: str) -> GatewayEvent:
        if signature != VALID_SIGNATURE:
            raise InvalidSignature("Webhook Error: No signatures found matching the expected signature for payload")
        data = json.loads(payload)
        obj = data["data"]["object"]
        return GatewayEvent(id=data["id"], type=data["type"], intent_id=obj.get("id"))


class RecordingPublisher:
    def __init__(self) -> None:
        self.events: List[Dict[str, Any]] = []

    def send(self, key: str, value: dict) -> None:
        self.events.append(value)

    def types(self) -> List[str]:
        return [e["type"] for e in self.events]


def event_payload(event_type: str, intent_id: str, event_id: str = "evt_test_1") -> bytes:
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "data": {"object": {"id": intent_id, "object": "payment_intent", "amount": 149980, "currency": "clp"}},
        }
    ).encode("utf-8")


def stock_of(db, perfume_id: int) -> int:
    return db.execute(select(Perfume.stock).where(Perfume.id == perfume_id)).scalar_one()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        APP_ENV="test",
        JWT_SECRET="test-secret",
        STRIPE_SECRET_KEY="sk_test_fake_key_for_testing",
        STRIPE_WEBHOOK_SECRET="whsec_test_fake_secret",
        CURRENCY="clp",
        KAFKA_BOOTSTRAP="",
    )


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def reconciler(test_settings, gateway, publisher) -> OrderReconciler:
    return OrderReconciler(test_settings, gateway, publisher)


def _user(db, email: str, role: Role = Role.CUSTOMER) -> User:
    user = User(email=email, name=email.split("@")[0], password_hash="not-used", role=role)
    db.add(user); db.commit(); db.refresh(user)
    return user


@pytest.fixture
def customer(db) -> User:
    return _user(db, "salem@example.com")


@pytest.fixture
def other_customer(db) -> User:
    return _user(db, "other@example.com")


@pytest.fixture
def admin(db) -> User:
    return _user(db, "admin@example.com", Role.ADMIN)


@pytest.fixture
def perfume(db) -> Perfume:
    p = Perfume(name="Sauvage", brand="Dior", description="Fresh spicy", price=74990, stock=10, category=Category.HOMBRE)
    db.add(p); db.commit(); db.refresh(p)
    return p


@pytest.fixture
def sauvage_items(perfume) -> List[LineItem]:
    return [LineItem(perfume_id=perfume.id, name="Dior Sauvage", quantity=2, price=74990)]


@pytest.fixture
def auth_headers(test_settings) -> Callable[[User], Dict[str, str]]:
    def _headers(user: User) -> Dict[str, str]:
        token, _ = create_access_token(test_settings, user.id, user.role)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def client(session_factory, reconciler, test_settings):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_reconciler] = lambda: reconciler
    app.dependency_overrides[get_settings] = lambda: test_settings
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
