"""PostgreSQL implementation of CourseRepo."""

from __future__ import annotations

from dataclasses import asdict
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import CourseRow
from app.models.course import Course
from app.services.tenant_scope import scope_query


class PgCourseRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, course_id: UUID) -> Course | None:
        row = await self._session.get(CourseRow, course_id)
        return _row_to_course(row) if row is not None else None

    async def add(self, course: Course) -> None:
        self._session.add(CourseRow(**asdict(course)))
        await self._session.flush()

    async def list_by_org(self, organization_id: UUID | None) -> list[Course]:
        stmt = scope_query(select(CourseRow), CourseRow.organization_id, organization_id)
        rows = (await self._session.execute(stmt)).scalars()
        return [_row_to_course(r) for r in rows]


def _row_to_course(row: CourseRow) -> Course:
    return Course(
        id=row.id,
        organization_id=row.organization_id,
        instructor_id=row.instructor_id,
        title=row.title,
        is_published=row.is_published,
        is_active=row.is_active,
        requires_enrollment=row.requires_enrollment,
        allow_self_enrollment=row.allow_self_enrollment,
        max_students=row.max_students,
        enrollment_deadline=row.enrollment_deadline,
        total_required_items=row.total_required_items,
        requires_assessment=row.requires_assessment,
        minimum_passing_score=row.minimum_passing_score,
        max_assessment_attempts=row.max_assessment_attempts,
        generate_certificate=row.generate_certificate,
        is_cpe_eligible=row.is_cpe_eligible,
    )
