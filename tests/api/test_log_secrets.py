"""Bearer tokens and the certificate hash secret must never reach log output."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.core.config import SETTINGS
from app.models.principal import STUDENT, SUBSCRIBER_ADMIN, TEACHER
from tests.conftest import (
    create_test_course,
    create_test_org,
    create_test_user,
    make_ledger,
    mint_token,
)


def test_rejected_token_is_not_logged(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    garbage = "eyJhbGciOiJFUzI1NiJ9.not-a-real-token.sig"

    with caplog.at_level(logging.DEBUG):
        resp = client.get("/v1/enrollments", headers={"Authorization": f"Bearer {garbage}"})

    assert resp.status_code == 401
    assert garbage not in caplog.text


def test_denied_request_does_not_log_token(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    stranger = create_test_user(create_test_org("other"), SUBSCRIBER_ADMIN)
    org = create_test_org()
    teacher = create_test_user(org, TEACHER)
    course = create_test_course(org, teacher)
    token = mint_token(str(stranger.id))

    with caplog.at_level(logging.DEBUG):
        resp = client.post(
            f"/v1/courses/{course.id}/enrollments",
            json={"student_id": str(stranger.id)},
            headers={"Authorization": f"Bearer {token}"},
        )

    assert resp.status_code == 403
    assert token not in caplog.text


def test_certificate_flow_does_not_log_hash_secret(
    client: TestClient, repos, caplog: pytest.LogCaptureFixture
) -> None:
    org = create_test_org()
    teacher = create_test_user(org, TEACHER)
    student = create_test_user(org, STUDENT)
    course = create_test_course(org, teacher, generate_certificate=True)
    ledger = make_ledger(repos, hash_secret=SETTINGS.certificate_hash_secret)

    with caplog.at_level(logging.DEBUG):
        certificate = asyncio.run(
            ledger.issue_certificate(
                student.id, course.id, Decimal("1.00"), organization_id=org.id
            )
        )
        client.get(f"/v1/certificates/{certificate.certificate_number}/verify")

    assert SETTINGS.certificate_hash_secret not in caplog.text
