"""Enrollment lifecycle endpoints.

- POST /v1/courses/{course_id}/enrollments          enroll (self or on behalf)
- GET  /v1/enrollments                              tenant-scoped list
- GET  /v1/enrollments/{id}                         tenant-scoped read
- POST /v1/enrollments/{id}/progress                record content progress
- POST /v1/enrollments/{id}/assessments             record an assessment score
- POST /v1/enrollments/{id}/complete                complete (idempotent)
- POST /v1/enrollments/{id}/fail | drop | suspend | resume | archive

Handlers only translate HTTP to service calls.  Authorization, tenant
scoping and guards all run inside EnrollmentService; its DomainErrors are
mapped to status codes by the handler registered in app/main.py.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from app.api.certificates import CertificateOut, certificate_out
from app.api.dependencies import get_enrollment_service, get_principal
from app.models.enrollment import Enrollment
from app.models.principal import Principal
from app.services.enrollment_service import EnrollmentService

router = APIRouter(tags=["enrollments"])

PrincipalDep = Annotated[Principal, Depends(get_principal)]
ServiceDep = Annotated[EnrollmentService, Depends(get_enrollment_service)]


# --- Pydantic schemas ---


class EnrollIn(BaseModel):
    student_id: UUID | None = None
    enrollment_type: str | None = None


class ProgressIn(BaseModel):
    completed_items: int = Field(ge=0)
    total_required_items: int | None = Field(default=None, ge=0)
    minutes_spent: int = Field(default=0, ge=0)


class AssessmentIn(BaseModel):
    score: Decimal = Field(ge=0, le=100)


class EnrollmentOut(BaseModel):
    id: str
    student_id: str
    course_id: str
    organization_id: str
    status: str
    progress: int
    time_spent: int
    overall_score: Decimal | None
    attempts: int
    enrolled_at: int
    completed_at: int | None
    enrollment_type: str
    enrolled_by: str | None
    lifecycle: str


class CompletionOut(BaseModel):
    enrollment: EnrollmentOut
    audit_entry_id: str | None
    cpe_credits_earned: Decimal | None
    certificate: CertificateOut | None
    already_completed: bool


def enrollment_out(e: Enrollment) -> EnrollmentOut:
    return EnrollmentOut(
        id=str(e.id),
        student_id=str(e.student_id),
        course_id=str(e.course_id),
        organization_id=str(e.organization_id),
        status=e.status,
        progress=e.progress,
        time_spent=e.time_spent,
        overall_score=e.overall_score,
        attempts=e.attempts,
        enrolled_at=e.enrolled_at,
        completed_at=e.completed_at,
        enrollment_type=e.enrollment_type,
        enrolled_by=str(e.enrolled_by) if e.enrolled_by else None,
        lifecycle=e.lifecycle,
    )


# --- Endpoints ---


@router.post(
    "/v1/courses/{course_id}/enrollments",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def enroll(
    course_id: UUID,
    principal: PrincipalDep,
    service: ServiceDep,
    body: EnrollIn | None = None,
) -> EnrollmentOut:
    body = body or EnrollIn()
    enrollment = await service.enroll(
        principal,
        course_id,
        student_id=body.student_id,
        enrollment_type=body.enrollment_type,
    )
    return enrollment_out(enrollment)


@router.get("/v1/enrollments", response_model=list[EnrollmentOut])
async def list_enrollments(
    principal: PrincipalDep,
    service: ServiceDep,
    include_archived: bool = False,
) -> list[EnrollmentOut]:
    rows = await service.list_enrollments(principal, include_archived=include_archived)
    return [enrollment_out(e) for e in rows]


@router.get("/v1/enrollments/{enrollment_id}", response_model=EnrollmentOut)
async def get_enrollment(
    enrollment_id: UUID, principal: PrincipalDep, service: ServiceDep
) -> EnrollmentOut:
    return enrollment_out(await service.get(principal, enrollment_id))


@router.post("/v1/enrollments/{enrollment_id}/progress", response_model=EnrollmentOut)
async def record_progress(
    enrollment_id: UUID,
    body: ProgressIn,
    principal: PrincipalDep,
    service: ServiceDep,
) -> EnrollmentOut:
    enrollment = await service.record_progress(
        principal,
        enrollment_id,
        completed_items=body.completed_items,
        total_required_items=body.total_required_items,
        minutes_spent=body.minutes_spent,
    )
    return enrollment_out(enrollment)


@router.post(
    "/v1/enrollments/{enrollment_id}/assessments", response_model=EnrollmentOut
)
async def record_assessment(
    enrollment_id: UUID,
    body: AssessmentIn,
    principal: PrincipalDep,
    service: ServiceDep,
) -> EnrollmentOut:
    enrollment = await service.record_assessment(principal, enrollment_id, body.score)
    return enrollment_out(enrollment)


@router.post("/v1/enrollments/{enrollment_id}/complete", response_model=CompletionOut)
async def complete(
    enrollment_id: UUID, principal: PrincipalDep, service: ServiceDep
) -> CompletionOut:
    result = await service.complete(principal, enrollment_id)
    entry = result.audit_entry
    return CompletionOut(
        enrollment=enrollment_out(result.enrollment),
        audit_entry_id=str(entry.id) if entry else None,
        cpe_credits_earned=entry.cpe_credits_earned if entry else None,
        certificate=certificate_out(result.certificate) if result.certificate else None,
        already_completed=result.already_completed,
    )


@router.post("/v1/enrollments/{enrollment_id}/fail", response_model=EnrollmentOut)
async def fail(
    enrollment_id: UUID, principal: PrincipalDep, service: ServiceDep
) -> EnrollmentOut:
    return enrollment_out(await service.fail(principal, enrollment_id))


@router.post("/v1/enrollments/{enrollment_id}/drop", response_model=EnrollmentOut)
async def drop(
    enrollment_id: UUID, principal: PrincipalDep, service: ServiceDep
) -> EnrollmentOut:
    return enrollment_out(await service.drop(principal, enrollment_id))


@router.post("/v1/enrollments/{enrollment_id}/suspend", response_model=EnrollmentOut)
async def suspend(
    enrollment_id: UUID, principal: PrincipalDep, service: ServiceDep
) -> EnrollmentOut:
    return enrollment_out(await service.suspend(principal, enrollment_id))


@router.post("/v1/enrollments/{enrollment_id}/resume", response_model=EnrollmentOut)
async def resume(
    enrollment_id: UUID, principal: PrincipalDep, service: ServiceDep
) -> EnrollmentOut:
    return enrollment_out(await service.resume(principal, enrollment_id))


@router.post("/v1/enrollments/{enrollment_id}/archive", response_model=EnrollmentOut)
async def archive(
    enrollment_id: UUID, principal: PrincipalDep, service: ServiceDep
) -> EnrollmentOut:
    return enrollment_out(await service.archive(principal, enrollment_id))
