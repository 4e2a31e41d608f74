"""Demo: walk a CPE course from enrollment to a verified certificate.

Run with:
    python scripts/demo_compliance_flow.py

Uses the in-memory repositories (leave DATABASE_URL unset).
"""

from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from app.api.dependencies import MEMORY_REPOS
from app.main import app
from app.models.principal import SYSTEM_OWNER
from app.models.user import User
from app.services import token_service


def _bearer(user_id: object) -> dict[str, str]:
    token = token_service.create_access_token(sub=str(user_id))
    return {"Authorization": f"Bearer {token}"}


def main() -> None:
    client = TestClient(app)

    # ── Seed a system owner (the only user not created over the API) ──
    owner = User.new(email="owner@example.com", tier=SYSTEM_OWNER)
    asyncio.run(MEMORY_REPOS.users.add(owner))
    as_owner = _bearer(owner.id)

    # ── Step 1: organization, admin, student, course ────────────────
    r = client.post("/v1/orgs", json={"name": "Acme CPA", "slug": "acme"}, headers=as_owner)
    org_id = r.json()["id"]
    print(f"1. POST /v1/orgs                    → {r.status_code}  org={org_id}")

    r = client.post(
        f"/v1/orgs/{org_id}/users",
        json={"email": "admin@acme.test", "tier": "subscriber_admin"},
        headers=as_owner,
    )
    as_admin = _bearer(r.json()["id"])
    admin_id = r.json()["id"]
    r = client.post(
        f"/v1/orgs/{org_id}/users",
        json={"email": "sam@acme.test", "tier": "student"},
        headers=as_admin,
    )
    as_student = _bearer(r.json()["id"])
    print(f"2. POST /v1/orgs/{{id}}/users        → {r.status_code}  admin + student")

    r = client.post(
        f"/v1/orgs/{org_id}/courses",
        json={
            "title": "Ethics for CPAs",
            "instructor_id": admin_id,
            "is_published": True,
            "total_required_items": 4,
            "requires_assessment": True,
            "generate_certificate": True,
            "is_cpe_eligible": True,
        },
        headers=as_admin,
    )
    course_id = r.json()["id"]
    print(f"3. POST /v1/orgs/{{id}}/courses      → {r.status_code}  course={course_id}")

    # ── Step 2: enroll, study, pass ─────────────────────────────────
    r = client.post(f"/v1/courses/{course_id}/enrollments", headers=as_student)
    enrollment_id = r.json()["id"]
    print(f"4. POST enroll (self)               → {r.status_code}  status={r.json()['status']}")

    for done in (2, 4):
        r = client.post(
            f"/v1/enrollments/{enrollment_id}/progress",
            json={"completed_items": done, "minutes_spent": 60},
            headers=as_student,
        )
        print(f"5. POST progress {done}/4              → {r.status_code}  progress={r.json()['progress']}")

    r = client.post(f"/v1/enrollments/{enrollment_id}/complete", headers=as_student)
    print(f"6. POST complete (no score)         → {r.status_code}  {r.json()['reason']}")

    r = client.post(
        f"/v1/enrollments/{enrollment_id}/assessments",
        json={"score": "88"},
        headers=as_admin,
    )
    print(f"7. POST assessment 88               → {r.status_code}")

    r = client.post(f"/v1/enrollments/{enrollment_id}/complete", headers=as_student)
    body = r.json()
    number = body["certificate"]["certificate_number"]
    print(
        f"8. POST complete                    → {r.status_code}  "
        f"credits={body['cpe_credits_earned']}  certificate={number}"
    )

    # ── Step 3: anyone can verify ───────────────────────────────────
    r = client.get(f"/v1/certificates/{number}/verify")
    print(f"9. GET  verify (anonymous)          → {r.status_code}  {r.json()['result']}")

    r = client.get("/v1/audit", headers=as_admin)
    actions = [e["action"] for e in r.json()]
    print(f"10. GET /v1/audit                   → {r.status_code}  {actions}")

    print("\nAll steps completed.")


if __name__ == "__main__":
    main()
