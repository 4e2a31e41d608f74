from __future__ import annotations

from fastapi.testclient import TestClient

from app.models.principal import STUDENT, SUBSCRIBER_ADMIN, TEACHER
from tests.conftest import auth, create_test_course, create_test_org, create_test_user


def test_admin_creates_course(client: TestClient) -> None:
    org = create_test_org()
    admin = create_test_user(org, SUBSCRIBER_ADMIN)
    teacher = create_test_user(org, TEACHER)

    resp = client.post(
        f"/v1/orgs/{org.id}/courses",
        json={
            "title": "Ethics for CPAs",
            "instructor_id": str(teacher.id),
            "total_required_items": 12,
            "requires_assessment": True,
            "minimum_passing_score": 75,
            "generate_certificate": True,
            "is_cpe_eligible": True,
        },
        headers=auth(admin),
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["organization_id"] == str(org.id)
    assert body["instructor_id"] == str(teacher.id)
    assert body["minimum_passing_score"] == 75
    assert body["is_published"] is False


def test_teacher_cannot_create_course(client: TestClient) -> None:
    org = create_test_org()
    teacher = create_test_user(org, TEACHER)
    resp = client.post(
        f"/v1/orgs/{org.id}/courses",
        json={"title": "Mine", "instructor_id": str(teacher.id)},
        headers=auth(teacher),
    )
    assert resp.status_code == 403
    assert resp.json()["reason"] == "InsufficientTier"


def test_course_quota(client: TestClient) -> None:
    org = create_test_org(max_courses=1)
    admin = create_test_user(org, SUBSCRIBER_ADMIN)
    teacher = create_test_user(org, TEACHER)
    create_test_course(org, teacher)

    resp = client.post(
        f"/v1/orgs/{org.id}/courses",
        json={"title": "Second", "instructor_id": str(teacher.id)},
        headers=auth(admin),
    )

    assert resp.status_code == 409
    assert resp.json()["reason"] == "QuotaExceeded"


def test_unknown_instructor_is_404(client: TestClient) -> None:
    org = create_test_org()
    admin = create_test_user(org, SUBSCRIBER_ADMIN)
    resp = client.post(
        f"/v1/orgs/{org.id}/courses",
        json={"title": "Ghost", "instructor_id": "00000000-0000-0000-0000-000000000000"},
        headers=auth(admin),
    )
    assert resp.status_code == 404


def test_students_see_only_published_courses(client: TestClient) -> None:
    org = create_test_org()
    teacher = create_test_user(org, TEACHER)
    student = create_test_user(org, STUDENT)
    published = create_test_course(org, teacher, "Live", is_published=True)
    create_test_course(org, teacher, "Draft")
    create_test_course(org, teacher, "Retired", is_published=True, is_active=False)

    student_view = client.get("/v1/courses", headers=auth(student)).json()
    teacher_view = client.get("/v1/courses", headers=auth(teacher)).json()

    assert [c["id"] for c in student_view] == [str(published.id)]
    assert len(teacher_view) == 3
