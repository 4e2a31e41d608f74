"""Course endpoints.

- POST /v1/orgs/{org_id}/courses   create a course in an organization
- GET  /v1/courses                 courses visible to the caller

Enrolling in a course lives in app/api/enrollments.py.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from app.api.dependencies import get_org_service, get_principal
from app.models.course import Course
from app.models.principal import Principal
from app.services.org_service import OrgService

router = APIRouter(tags=["courses"])


class CourseIn(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    instructor_id: UUID
    is_published: bool = False
    requires_enrollment: bool = True
    allow_self_enrollment: bool = True
    max_students: int | None = Field(default=None, ge=0)
    enrollment_deadline: int | None = None
    total_required_items: int = Field(default=0, ge=0)
    requires_assessment: bool = False
    minimum_passing_score: int = Field(default=70, ge=0, le=100)
    max_assessment_attempts: int | None = Field(default=None, ge=1)
    generate_certificate: bool = False
    is_cpe_eligible: bool = False


class CourseOut(BaseModel):
    id: str
    organization_id: str
    instructor_id: str
    title: str
    is_published: bool
    is_active: bool
    requires_enrollment: bool
    allow_self_enrollment: bool
    max_students: int | None
    enrollment_deadline: int | None
    total_required_items: int
    requires_assessment: bool
    minimum_passing_score: int
    max_assessment_attempts: int | None
    generate_certificate: bool
    is_cpe_eligible: bool


def course_out(c: Course) -> CourseOut:
    return CourseOut(
        id=str(c.id),
        organization_id=str(c.organization_id),
        instructor_id=str(c.instructor_id),
        title=c.title,
        is_published=c.is_published,
        is_active=c.is_active,
        requires_enrollment=c.requires_enrollment,
        allow_self_enrollment=c.allow_self_enrollment,
        max_students=c.max_students,
        enrollment_deadline=c.enrollment_deadline,
        total_required_items=c.total_required_items,
        requires_assessment=c.requires_assessment,
        minimum_passing_score=c.minimum_passing_score,
        max_assessment_attempts=c.max_assessment_attempts,
        generate_certificate=c.generate_certificate,
        is_cpe_eligible=c.is_cpe_eligible,
    )


@router.post(
    "/v1/orgs/{org_id}/courses",
    response_model=CourseOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_course(
    org_id: UUID,
    body: CourseIn,
    principal: Annotated[Principal, Depends(get_principal)],
    service: Annotated[OrgService, Depends(get_org_service)],
) -> CourseOut:
    settings = body.model_dump(exclude={"title", "instructor_id"})
    course = await service.create_course(
        principal,
        org_id,
        instructor_id=body.instructor_id,
        title=body.title,
        **settings,
    )
    return course_out(course)


@router.get("/v1/courses", response_model=list[CourseOut])
async def list_courses(
    principal: Annotated[Principal, Depends(get_principal)],
    service: Annotated[OrgService, Depends(get_org_service)],
) -> list[CourseOut]:
    return [course_out(c) for c in await service.list_courses(principal)]
