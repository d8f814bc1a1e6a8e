"""Shared test fixtures for all test groups."""

import hashlib
import hmac
import itertools
import json
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import jwt as pyjwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.config import Settings, get_settings
from app.db.models.payment import Payment
from app.db.models.subscription import Subscription
from app.services.billing_store import get_billing_store

WEBHOOK_SECRET = "whsec_test_secret"
TEST_ISSUER = "https://securetoken.google.com/billing-test"
TEST_AUDIENCE = "billing-test"

# ---------------------------------------------------------------------------
# RSA keypair generated once for the whole session
# ---------------------------------------------------------------------------
_private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
_public_key = _private_key.public_key()
_private_pem = _private_key.private_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PrivateFormat.PKCS8,
    encryption_algorithm=serialization.NoEncryption(),
)


@dataclass
class _FakeSigningKey:
    key: object


def sign_identity_token(user_id: str = "user_123", email: str | None = "ada@example.com", **overrides) -> str:
    """Sign an identity token with the test RSA key."""
    now = int(time.time())
    payload = {
        "sub": user_id,
        "iss": TEST_ISSUER,
        "aud": TEST_AUDIENCE,
        "iat": now,
        "exp": now + 3600,
    }
    if email is not None:
        payload["email"] = email
    payload.update(overrides)
    payload = {k: v for k, v in payload.items() if v is not None}
    return pyjwt.encode(payload, _private_pem, algorithm="RS256", headers={"kid": "test-kid"})


def sign_webhook(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a stripe-signature header the way Stripe does (HMAC-SHA256 over "t.payload")."""
    timestamp = timestamp if timestamp is not None else int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


# ---------------------------------------------------------------------------
# In-memory backend store
# ---------------------------------------------------------------------------


class FakeBillingStore:
    """Dict-backed stand-in for BillingStore.

    ``calls`` records every method invoked; ``writes`` counts rows actually
    inserted or changed. Set ``fail_with`` to make every call raise.
    """

    def __init__(self):
        self.payments: list[Payment] = []
        self.subscriptions: dict[str, Subscription] = {}
        self.calls: list[str] = []
        self.writes = 0
        self.fail_with: Exception | None = None
        self._ids = itertools.count(1)

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_with is not None:
            raise self.fail_with

    async def insert_payment(self, checkout):
        self._record("insert_payment")
        payment = Payment(
            id=next(self._ids),
            user_id=checkout.user_id,
            stripe_payment_intent_id=checkout.payment_intent_id,
            amount=checkout.amount,
            currency=checkout.currency,
            status=checkout.status,
            plan=checkout.plan,
            created_at=datetime.now(UTC),
        )
        self.payments.append(payment)
        self.writes += 1
        return payment

    async def upsert_subscription(self, created):
        self._record("upsert_subscription")
        now = datetime.now(UTC)
        subscription = self.subscriptions.get(created.subscription_id)
        if subscription is None:
            subscription = Subscription(
                id=next(self._ids),
                stripe_subscription_id=created.subscription_id,
                created_at=now,
            )
            self.subscriptions[created.subscription_id] = subscription

        subscription.user_id = created.user_id
        subscription.plan = created.plan
        subscription.stripe_customer_id = created.customer_id
        subscription.status = created.status
        subscription.current_period_start = created.current_period_start
        subscription.current_period_end = created.current_period_end
        subscription.cancel_at_period_end = created.cancel_at_period_end
        subscription.updated_at = now
        self.writes += 1
        return subscription

    async def update_subscription(self, stripe_subscription_id, **changes):
        self._record("update_subscription")
        subscription = self.subscriptions.get(stripe_subscription_id)
        if subscription is None:
            return False
        for field, value in changes.items():
            setattr(subscription, field, value)
        subscription.updated_at = datetime.now(UTC)
        self.writes += 1
        return True

    async def get_subscription_for_user(self, user_id):
        self._record("get_subscription_for_user")
        rows = [s for s in self.subscriptions.values() if s.user_id == user_id]
        if not rows:
            return None
        return max(rows, key=lambda s: (s.updated_at, s.id))

    async def list_payments(self, user_id):
        self._record("list_payments")
        rows = [p for p in self.payments if p.user_id == user_id]
        return sorted(rows, key=lambda p: (p.created_at, p.id), reverse=True)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Settings with test credentials; tests may mutate attributes directly."""
    return Settings(
        _env_file=None,
        debug=True,
        frontend_url="https://app.example.com",
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret=WEBHOOK_SECRET,
        stripe_price_standard="price_test_standard",
        stripe_price_premium="price_test_premium",
        auth_required=True,
        auth_issuer=TEST_ISSUER,
        auth_audience=TEST_AUDIENCE,
    )


@pytest.fixture
def fake_store() -> FakeBillingStore:
    return FakeBillingStore()


@pytest.fixture
def jwks_client():
    """Patch the JWKS client so tokens signed by sign_identity_token verify."""
    client = MagicMock()
    client.get_signing_key_from_jwt.return_value = _FakeSigningKey(key=_public_key)
    with patch("app.core.auth.get_jwks_client", return_value=client):
        yield client


@pytest.fixture
def auth_headers(jwks_client) -> dict:
    return {"Authorization": f"Bearer {sign_identity_token()}"}


@pytest.fixture
def api_client(settings, fake_store):
    """FastAPI test client wired to the fake store and test settings.

    No lifespan: the database is never initialized.
    """
    from app.api.routes import api_router
    from app.api.errors import register_exception_handlers
    from app.middleware.correlation import setup_correlation_middleware

    app = FastAPI(title="Subscription Billing - Test Client")
    setup_correlation_middleware(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_billing_store] = lambda: fake_store

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def post_webhook(api_client):
    """POST a signed event to the webhook endpoint."""

    def _post(event: dict, secret: str = WEBHOOK_SECRET):
        payload = json.dumps(event)
        return api_client.post(
            "/api/webhooks/stripe",
            content=payload.encode("utf-8"),
            headers={"stripe-signature": sign_webhook(payload, secret), "Content-Type": "application/json"},
        )

    return _post


@pytest.fixture
def stripe_signature():
    """Return the stripe-signature header builder."""
    return sign_webhook


@pytest.fixture
def identity_token(jwks_client):
    """Return the identity token signer, with the JWKS client patched."""
    return sign_identity_token
