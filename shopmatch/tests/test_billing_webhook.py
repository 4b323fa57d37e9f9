"""Tests for POST /api/stripe/webhook: verification gate, fail-open processing, metrics."""

from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from shopmatch.core.metrics import billing_webhook_events_total, billing_webhook_failures_total
from shopmatch.main import create_app
from shopmatch.tests.helpers import sign_webhook, stripe_event


WEBHOOK_URL = "/api/stripe/webhook"


def post_event(client, body, signature):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["stripe-signature"] = signature
    return client.post(WEBHOOK_URL, content=body, headers=headers)


def test_missing_signature_returns_400(client):
    body = stripe_event("customer.subscription.created", {"id": "sub_1"})

    resp = post_event(client, body, None)

    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing signature"}


def test_invalid_signature_never_reaches_state_machine(app, client, monkeypatch):
    spy = MagicMock()
    monkeypatch.setattr(app.state.entitlements, "apply_event", spy)
    body = stripe_event("customer.subscription.created", {"id": "sub_1", "customer": "cus_1", "status": "active"})

    resp = post_event(client, body, sign_webhook(body, secret="whsec_forged"))

    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid signature"}
    spy.assert_not_called()


def test_signed_garbage_is_rejected_as_invalid_payload(app, client, monkeypatch):
    spy = MagicMock()
    monkeypatch.setattr(app.state.entitlements, "apply_event", spy)
    body = b"{not json"

    resp = post_event(client, body, sign_webhook(body))

    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid payload"}
    spy.assert_not_called()


def test_verified_subscription_event_grants_access(client, create_test_user, claims_store, user_directory):
    create_test_user("user_alice", stripe_customer_id="cus_alice")
    body = stripe_event(
        "customer.subscription.created",
        {"id": "sub_1", "customer": "cus_alice", "status": "trialing"},
    )

    resp = post_event(client, body, sign_webhook(body))

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    assert claims_store.get_user("user_alice").custom_claims["subActive"] is True
    assert claims_store.get_user("user_alice").custom_claims["role"] == "owner"
    assert user_directory.get_user("user_alice").sub_active is True
    assert billing_webhook_events_total.value(
        {"event_type": "customer.subscription.created", "outcome": "granted"}
    ) == 1


def test_checkout_then_subscription_flow(client, create_test_user, claims_store, user_directory):
    create_test_user("user_bob")
    checkout = stripe_event(
        "checkout.session.completed",
        {"id": "cs_1", "customer": "cus_bob", "client_reference_id": "user_bob", "metadata": {"userId": "user_bob"}},
        event_id="evt_a",
    )
    subscription = stripe_event(
        "customer.subscription.created",
        {"id": "sub_b", "customer": "cus_bob", "status": "active"},
        event_id="evt_b",
    )

    assert post_event(client, checkout, sign_webhook(checkout)).status_code == 200
    assert user_directory.get_user("user_bob").stripe_customer_id == "cus_bob"
    assert claims_store.get_user("user_bob").custom_claims["subActive"] is False

    assert post_event(client, subscription, sign_webhook(subscription)).status_code == 200
    assert claims_store.get_user("user_bob").custom_claims["subActive"] is True


def test_downstream_failure_is_acknowledged_and_counted(app, client, monkeypatch):
    monkeypatch.setattr(
        app.state.entitlements,
        "apply_event",
        MagicMock(side_effect=RuntimeError("claims store unavailable")),
    )
    body = stripe_event("customer.subscription.deleted", {"id": "sub_1", "customer": "cus_1"})

    resp = post_event(client, body, sign_webhook(body))

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    assert billing_webhook_failures_total.value({"event_type": "customer.subscription.deleted"}) == 1
    assert billing_webhook_events_total.value(
        {"event_type": "customer.subscription.deleted", "outcome": "failed"}
    ) == 1


def test_unknown_customer_is_acknowledged(client):
    body = stripe_event("customer.subscription.updated", {"id": "sub_1", "customer": "cus_nobody", "status": "active"})

    resp = post_event(client, body, sign_webhook(body))

    assert resp.status_code == 200
    assert billing_webhook_events_total.value(
        {"event_type": "customer.subscription.updated", "outcome": "user_not_found"}
    ) == 1


def test_webhook_disabled_without_secret(test_settings, engine):
    settings_obj = test_settings.model_copy(update={"STRIPE_WEBHOOK_SECRET": None})
    client = TestClient(create_app(settings_obj, engine=engine))
    body = stripe_event("customer.subscription.created", {"id": "sub_1"})

    resp = post_event(client, body, sign_webhook(body))

    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "billing_disabled"


def test_webhook_get_reports_readiness(client):
    resp = client.get(WEBHOOK_URL)

    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Stripe webhook endpoint ready"
    assert body["configured"] is True
