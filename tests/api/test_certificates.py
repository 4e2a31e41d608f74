from __future__ import annotations

import asyncio
from dataclasses import replace
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.core.config import SETTINGS
from app.models.principal import STUDENT, SUBSCRIBER_ADMIN, TEACHER
from tests.conftest import (
    NOW,
    auth,
    create_system_owner,
    create_test_course,
    create_test_org,
    create_test_user,
    make_ledger,
)


@pytest.fixture
def issued(repos):
    org = create_test_org()
    admin = create_test_user(org, SUBSCRIBER_ADMIN)
    teacher = create_test_user(org, TEACHER)
    student = create_test_user(org, STUDENT)
    course = create_test_course(org, teacher, generate_certificate=True)
    ledger = make_ledger(repos, hash_secret=SETTINGS.certificate_hash_secret)
    certificate = asyncio.run(
        ledger.issue_certificate(
            student.id, course.id, Decimal("3.00"), organization_id=org.id
        )
    )
    return {"org": org, "admin": admin, "student": student, "certificate": certificate}


def test_verify_is_public(client: TestClient, issued) -> None:
    number = issued["certificate"].certificate_number

    resp = client.get(f"/v1/certificates/{number}/verify")

    assert resp.status_code == 200
    body = resp.json()
    assert body["result"] == "Valid"
    assert body["status"] == "active"
    assert body["valid"] is True
    assert body["cpe_credits_awarded"] == "3.00"
    assert body["issue_date"] == NOW


def test_verify_records_authenticated_verifier(client: TestClient, issued, repos) -> None:
    number = issued["certificate"].certificate_number
    outsider = create_test_user(create_test_org("employer"), STUDENT)

    resp = client.get(f"/v1/certificates/{number}/verify", headers=auth(outsider))

    assert resp.status_code == 200
    last = asyncio.run(repos.audit.list_by_org(issued["org"].id))[-1]
    assert last.action == "verification"
    assert last.recorded_by == outsider.id


def test_tampered_certificate_reports_tampered(client: TestClient, issued, repos) -> None:
    certificate = issued["certificate"]
    repos.certificates._by_number[certificate.certificate_number] = replace(
        certificate, cpe_credits_awarded=Decimal("30.00")
    )

    resp = client.get(f"/v1/certificates/{certificate.certificate_number}/verify")

    assert resp.status_code == 200
    assert resp.json()["result"] == "Tampered"
    assert resp.json()["valid"] is False


def test_verify_unknown_is_404(client: TestClient) -> None:
    assert client.get("/v1/certificates/CPE-NOPE-000000/verify").status_code == 404


def test_holder_and_staff_can_read(client: TestClient, issued) -> None:
    number = issued["certificate"].certificate_number

    assert client.get(f"/v1/certificates/{number}", headers=auth(issued["student"])).status_code == 200
    assert client.get(f"/v1/certificates/{number}", headers=auth(issued["admin"])).status_code == 200

    classmate = create_test_user(issued["org"], STUDENT)
    resp = client.get(f"/v1/certificates/{number}", headers=auth(classmate))
    assert resp.status_code == 403
    assert resp.json()["reason"] == "NotEnrollmentOwner"


def test_other_tenant_cannot_read(client: TestClient, issued) -> None:
    number = issued["certificate"].certificate_number
    stranger = create_test_user(create_test_org("other"), SUBSCRIBER_ADMIN)

    resp = client.get(f"/v1/certificates/{number}", headers=auth(stranger))

    assert resp.status_code == 403
    assert resp.json()["reason"] == "CrossTenantAccess"


def test_admin_revokes_once(client: TestClient, issued) -> None:
    number = issued["certificate"].certificate_number
    admin = auth(issued["admin"])

    resp = client.post(
        f"/v1/certificates/{number}/revoke", json={"reason": "academic misconduct"}, headers=admin
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "revoked"
    assert resp.json()["revocation_reason"] == "academic misconduct"

    again = client.post(f"/v1/certificates/{number}/revoke", json={"reason": "x"}, headers=admin)
    assert again.status_code == 409

    verify = client.get(f"/v1/certificates/{number}/verify").json()
    assert verify["status"] == "revoked"
    assert verify["valid"] is False


def test_students_cannot_revoke(client: TestClient, issued) -> None:
    number = issued["certificate"].certificate_number
    resp = client.post(
        f"/v1/certificates/{number}/revoke",
        json={"reason": "changed my mind"},
        headers=auth(issued["student"]),
    )
    assert resp.status_code == 403
    assert resp.json()["reason"] == "InsufficientTier"


def test_revoke_requires_reason(client: TestClient, issued) -> None:
    number = issued["certificate"].certificate_number
    resp = client.post(
        f"/v1/certificates/{number}/revoke", json={"reason": ""}, headers=auth(issued["admin"])
    )
    assert resp.status_code == 422


def test_expiry_sweep_is_owner_only(client: TestClient, issued) -> None:
    assert client.post("/v1/certificates/expire", headers=auth(issued["admin"])).status_code == 403

    resp = client.post("/v1/certificates/expire", headers=auth(create_system_owner()))

    assert resp.status_code == 200
    assert resp.json() == []
