# shopmatch/conftest.py
from typing import Any, Dict, Optional
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from shopmatch.core.config import Settings
from shopmatch.core.database import (
    build_session_factory,
    create_all_tables,
    create_engine_for_url,
    drop_all_tables,
)
from shopmatch.core.metrics import METRICS
from shopmatch.features.billing.provider import BillingProvider, CheckoutSession
from shopmatch.features.identity.claims_store import SqlClaimsStore
from shopmatch.features.users.service import UserDirectory
from shopmatch.main import create_app
from shopmatch.tests.helpers import JWT_SECRET, WEBHOOK_SECRET, FakeTime


@pytest.fixture(autouse=True)
def reset_metrics():
    METRICS.reset()
    yield
    METRICS.reset()


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def fake_now(fake_time):
    return fake_time.as_datetime


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        ENV="test",
        DATABASE_URL="sqlite://",
        STRIPE_SECRET_KEY="sk_test_123",
        STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET,
        STRIPE_PRICE_ID_PRO="price_pro_monthly",
        AUTH_JWT_SECRET=JWT_SECRET,
        AUTH_JWT_ALGORITHMS="HS256",
        APP_BASE_URL="http://localhost:3000",
        RATE_LIMIT_BACKEND="memory",
        EXPORT_RATE_LIMIT_MAX_REQUESTS=5,
        EXPORT_RATE_LIMIT_WINDOW_SECONDS=3600,
    )


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    eng = create_engine_for_url("sqlite://")
    create_all_tables(eng)
    yield eng
    drop_all_tables(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def claims_store(session_factory):
    return SqlClaimsStore(session_factory)


@pytest.fixture
def user_directory(session_factory, fake_now):
    return UserDirectory(session_factory, now_fn=fake_now)


@pytest.fixture
def create_test_user(claims_store, user_directory):
    """Register an identity record plus user document; returns the uid."""

    def _create(
        uid: str,
        *,
        email: Optional[str] = None,
        role: Optional[str] = "owner",
        claims: Optional[Dict[str, Any]] = None,
        stripe_customer_id: Optional[str] = None,
        sub_active: bool = False,
        with_document: bool = True,
    ) -> str:
        email = email or f"{uid}@example.com"
        claims_store.create_user(uid, email=email)
        if claims is None:
            claims = {"role": role, "subActive": sub_active} if role else {}
        if claims:
            claims_store.set_custom_claims(uid, claims)
        if with_document:
            user_directory.create_user(uid, email=email, role=role)
            fields: Dict[str, Any] = {"sub_active": sub_active}
            if stripe_customer_id:
                fields["stripe_customer_id"] = stripe_customer_id
            user_directory.update_document(uid, **fields)
        return uid

    return _create


@pytest.fixture
def mock_provider():
    provider = MagicMock(spec=BillingProvider)
    provider.create_checkout_session.return_value = CheckoutSession(
        url="https://checkout.stripe.com/c/pay/cs_test_123",
        session_id="cs_test_123",
    )
    provider.create_portal_session.return_value = "https://billing.stripe.com/p/session/test_123"
    return provider


@pytest.fixture
def app(test_settings, engine, mock_provider, fake_time, fake_now):
    return create_app(
        test_settings,
        engine=engine,
        billing_provider=mock_provider,
        time_fn=fake_time,
        now_fn=fake_now,
    )


@pytest.fixture
def client(app):
    return TestClient(app)
