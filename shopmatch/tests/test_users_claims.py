"""Tests for POST /api/users/initialize-claims."""

import pytest

from shopmatch.tests.helpers import auth_headers


URL = "/api/users/initialize-claims"


def test_initialize_sets_claims_and_updates_document(client, create_test_user, claims_store, user_directory, fake_now):
    create_test_user("new_user", role=None)

    resp = client.post(URL, json={"role": "seeker"}, headers=auth_headers("new_user"))

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Custom claims initialized successfully"}
    claims = claims_store.get_user("new_user").custom_claims
    assert claims["role"] == "seeker"
    assert claims["subActive"] is False
    assert claims["updatedAt"] == fake_now().isoformat()
    doc = user_directory.get_user("new_user")
    assert doc.role == "seeker"
    assert doc.sub_active is False


def test_initialize_creates_missing_document(client, create_test_user, user_directory):
    create_test_user("new_user", role=None, email="new@example.com", with_document=False)

    resp = client.post(URL, json={"role": "owner"}, headers=auth_headers("new_user"))

    assert resp.status_code == 200
    doc = user_directory.get_user("new_user")
    assert doc.role == "owner"
    assert doc.email == "new@example.com"


@pytest.mark.parametrize(
    "body, message",
    [
        ({}, "Missing role"),
        ({"role": ""}, "Missing role"),
        ({"role": "admin"}, "Invalid role. Must be owner or seeker"),
    ],
)
def test_initialize_rejects_bad_role(client, create_test_user, claims_store, body, message):
    create_test_user("new_user", role=None)

    resp = client.post(URL, json=body, headers=auth_headers("new_user"))

    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == message
    assert claims_store.get_user("new_user").custom_claims == {}


def test_initialize_refuses_to_overwrite_existing_claims(client, create_test_user, claims_store):
    create_test_user("owner_1", role="owner", sub_active=True)

    resp = client.post(URL, json={"role": "seeker"}, headers=auth_headers("owner_1"))

    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "User already has custom claims"
    assert claims_store.get_user("owner_1").custom_claims == {"role": "owner", "subActive": True}


def test_initialize_requires_authentication(client):
    resp = client.post(URL, json={"role": "owner"})

    assert resp.status_code == 401
