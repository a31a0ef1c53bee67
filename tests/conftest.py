"""
Test configuration and fixtures for Billflow.

Every test that touches the database gets a fresh in-memory SQLite schema.
The FastAPI app is exercised through httpx's ASGI transport with the
charge gateway and the Razorpay client overridden.
"""

import os

# Settings are read once at import time
os.environ["ENVIRONMENT"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["RAZORPAY_KEY_ID"] = ""
os.environ["RAZORPAY_KEY_SECRET"] = "test-key-secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["SIMULATED_GATEWAY_DELAY_SECONDS"] = "0"

import hashlib
import hmac
import json
from decimal import Decimal
from typing import AsyncGenerator, List, Optional

import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from billflow.infrastructure.db.database import get_db_manager, get_session_context
from billflow.infrastructure.db.models import (
    PaymentMethodModel,
    PlanModel,
    UserModel,
)
from billflow.infrastructure.payments.gateway import ChargeResult, PaymentGateway
from billflow.infrastructure.payments.razorpay_service import RazorpayService
from billflow.infrastructure.services.subscription_service import SubscriptionService


JWT_SECRET = "test-jwt-secret"
KEY_SECRET = "test-key-secret"
WEBHOOK_SECRET = "test-webhook-secret"


def sign(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256, the scheme Razorpay uses for webhook and checkout signatures."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


# =============================================================================
# Gateway Double
# =============================================================================

class StubGateway(PaymentGateway):
    """Returns queued results; succeeds when the queue is empty."""

    def __init__(self):
        self.results: List[ChargeResult] = []
        self.error: Optional[Exception] = None
        self.calls = []

    def succeed(self, external_id: str = "UPI1700000000000ABC123"):
        self.results.append(ChargeResult(success=True, external_transaction_id=external_id))

    def decline(self, reason: str):
        self.results.append(ChargeResult(success=False, failure_reason=reason))

    async def attempt_charge(self, payment_method_type, amount):
        self.calls.append((payment_method_type, amount))
        if self.error is not None:
            raise self.error
        if self.results:
            return self.results.pop(0)
        return ChargeResult(success=True, external_transaction_id=f"TXN{len(self.calls)}")


# =============================================================================
# Database Fixtures
# =============================================================================

class Store:
    """Short-lived sessions for arranging and inspecting rows."""

    async def add(self, *objs):
        async with get_session_context() as session:
            for obj in objs:
                session.add(obj)
            await session.flush()
        return objs[0] if len(objs) == 1 else objs

    async def get(self, model, id):
        async with get_session_context() as session:
            return await session.get(model, id)

    async def list(self, model, *where, order_by=None):
        stmt = select(model)
        if where:
            stmt = stmt.where(*where)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        async with get_session_context() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())


@pytest.fixture
async def database():
    """Fresh schema per test; the in-memory database dies with the engine."""
    db = get_db_manager()
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def store(database) -> Store:
    return Store()


@pytest.fixture
async def plans(store):
    """Default catalogue plus a paid plan without trial that supports recurring billing."""
    async with get_session_context() as session:
        seeded = await SubscriptionService(session).seed_default_plans()
        starter = PlanModel(
            name="Starter",
            description="Paid monthly plan without a trial",
            price=Decimal("199"),
            interval="MONTH",
            interval_count=1,
            trial_period_days=0,
            features=["Up to 20 invoices per month"],
            limits={"maxInvoicesPerMonth": 20},
            sort_order=5,
            gateway_plan_id="plan_starter_monthly",
        )
        session.add(starter)
        await session.flush()
    return {plan.name: plan for plan in [*seeded, starter]}


@pytest.fixture
async def user(store) -> UserModel:
    return await store.add(UserModel(email="asha@example.com", name="Asha Rao"))


@pytest.fixture
async def other_user(store) -> UserModel:
    return await store.add(UserModel(email="vikram@example.com", name="Vikram Shah"))


@pytest.fixture
async def upi_method(store, user) -> PaymentMethodModel:
    return await store.add(
        PaymentMethodModel(
            user_id=user.id,
            type="UPI",
            name="Primary UPI",
            details={"upiId": "asha@okbank"},
            is_default=True,
        )
    )


@pytest.fixture
async def card_method(store, user) -> PaymentMethodModel:
    return await store.add(
        PaymentMethodModel(
            user_id=user.id,
            type="CREDIT_CARD",
            name="Visa ending 4242",
            details={"cardNumber": "4242424242424242"},
        )
    )


# =============================================================================
# Auth Fixtures
# =============================================================================

@pytest.fixture
def make_token():
    def _make(user_id, secret: str = JWT_SECRET, **claims) -> str:
        payload = {"sub": str(user_id), **claims}
        return jwt.encode(payload, secret, algorithm="HS256")
    return _make


@pytest.fixture
def auth_headers(user, make_token) -> dict:
    return {"Authorization": f"Bearer {make_token(user.id)}"}


@pytest.fixture
def other_auth_headers(other_user, make_token) -> dict:
    return {"Authorization": f"Bearer {make_token(other_user.id)}"}


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def razorpay() -> RazorpayService:
    """Mock-mode client (no key id) that still verifies signatures."""
    return RazorpayService(key_id="", key_secret=KEY_SECRET, webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def app(gateway, razorpay):
    """Get the FastAPI application with gateway dependencies overridden."""
    from billflow.main import app
    from billflow.api.dependencies import get_payment_gateway, get_razorpay

    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_razorpay] = lambda: razorpay
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def async_client(app, database) -> AsyncGenerator[AsyncClient, None]:
    """Get async test client."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def post_webhook(async_client):
    """Send a signed webhook delivery."""
    async def _post(
        event: dict,
        secret: str = WEBHOOK_SECRET,
        path: str = "/api/webhooks/gateway",
        header: str = "x-gateway-signature",
    ):
        body = json.dumps(event).encode("utf-8")
        return await async_client.post(
            path,
            content=body,
            headers={header: sign(secret, body), "content-type": "application/json"},
        )
    return _post
