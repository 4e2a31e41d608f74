from __future__ import annotations

from fastapi.testclient import TestClient

from app.models.principal import STUDENT, SUBSCRIBER_ADMIN, TEACHER
from tests.conftest import auth, create_system_owner, create_test_org, create_test_user


def test_owner_creates_and_lists_orgs(client: TestClient) -> None:
    owner = auth(create_system_owner())

    resp = client.post(
        "/v1/orgs",
        json={"name": "Acme CPA", "slug": "acme-cpa", "max_users": 5},
        headers=owner,
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["slug"] == "acme-cpa"
    assert body["max_users"] == 5
    assert body["is_active"] is True
    assert body["features"] == ["ai_content_generation"]
    assert [o["slug"] for o in client.get("/v1/orgs", headers=owner).json()] == ["acme-cpa"]


def test_duplicate_slug_is_409(client: TestClient) -> None:
    owner = auth(create_system_owner())
    client.post("/v1/orgs", json={"name": "A", "slug": "dup"}, headers=owner)

    resp = client.post("/v1/orgs", json={"name": "B", "slug": "dup"}, headers=owner)

    assert resp.status_code == 409
    assert resp.json()["reason"] == "AlreadyExists"


def test_bad_slug_is_422(client: TestClient) -> None:
    resp = client.post(
        "/v1/orgs", json={"name": "A", "slug": "Not A Slug"}, headers=auth(create_system_owner())
    )
    assert resp.status_code == 422


def test_subscriber_admin_cannot_create_orgs(client: TestClient) -> None:
    admin = create_test_user(create_test_org(), SUBSCRIBER_ADMIN)
    resp = client.post("/v1/orgs", json={"name": "A", "slug": "a"}, headers=auth(admin))
    assert resp.status_code == 403


def test_deactivated_org_blocks_enrollment_but_not_reads(client: TestClient) -> None:
    owner = auth(create_system_owner())
    org = create_test_org()
    admin = create_test_user(org, SUBSCRIBER_ADMIN)

    resp = client.post(f"/v1/orgs/{org.id}/deactivate", headers=owner)
    assert resp.status_code == 200
    assert resp.json()["is_active"] is False

    assert client.get("/v1/orgs", headers=auth(admin)).status_code == 200

    assert client.post(f"/v1/orgs/{org.id}/activate", headers=owner).json()["is_active"] is True


def test_admin_adds_users_within_quota(client: TestClient) -> None:
    org = create_test_org(max_users=2)
    admin = create_test_user(org, SUBSCRIBER_ADMIN)

    resp = client.post(
        f"/v1/orgs/{org.id}/users",
        json={"email": "New.Hire@Example.com", "tier": TEACHER},
        headers=auth(admin),
    )
    assert resp.status_code == 201
    assert resp.json()["email"] == "new.hire@example.com"
    assert resp.json()["organization_id"] == str(org.id)

    full = client.post(
        f"/v1/orgs/{org.id}/users",
        json={"email": "one.more@example.com"},
        headers=auth(admin),
    )
    assert full.status_code == 409
    assert full.json()["reason"] == "QuotaExceeded"


def test_duplicate_email_is_409(client: TestClient) -> None:
    org = create_test_org()
    admin = create_test_user(org, SUBSCRIBER_ADMIN, email="admin@example.com")

    resp = client.post(
        f"/v1/orgs/{org.id}/users", json={"email": "admin@example.com"}, headers=auth(admin)
    )

    assert resp.status_code == 409
    assert resp.json()["reason"] == "AlreadyExists"


def test_cannot_mint_system_owners(client: TestClient) -> None:
    org = create_test_org()
    admin = create_test_user(org, SUBSCRIBER_ADMIN)
    resp = client.post(
        f"/v1/orgs/{org.id}/users",
        json={"email": "root@example.com", "tier": "system_owner"},
        headers=auth(admin),
    )
    assert resp.status_code == 403
    assert resp.json()["reason"] == "InsufficientTier"


def test_tier_change_applies_on_next_request(client: TestClient) -> None:
    org = create_test_org()
    admin = create_test_user(org, SUBSCRIBER_ADMIN)
    promoted = create_test_user(org, STUDENT)

    assert client.get("/v1/audit", headers=auth(promoted)).status_code == 403

    resp = client.patch(
        f"/v1/users/{promoted.id}", json={"tier": SUBSCRIBER_ADMIN}, headers=auth(admin)
    )
    assert resp.status_code == 204

    assert client.get("/v1/audit", headers=auth(promoted)).status_code == 200


def test_deactivated_user_loses_access(client: TestClient) -> None:
    org = create_test_org()
    admin = create_test_user(org, SUBSCRIBER_ADMIN)
    leaver = create_test_user(org, TEACHER)

    resp = client.patch(f"/v1/users/{leaver.id}", json={"is_active": False}, headers=auth(admin))

    assert resp.status_code == 204
    assert client.get("/v1/enrollments", headers=auth(leaver)).status_code == 401
