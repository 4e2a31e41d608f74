"""PostgreSQL implementation of EnrollmentRepo.

``compare_and_set`` is a single conditional UPDATE, so two requests
racing on the same enrollment cannot both win and progress can never be
written below its stored value.
"""

from __future__ import annotations

from dataclasses import asdict
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import CourseRow, EnrollmentRow
from app.models.enrollment import DROPPED, Enrollment
from app.repos.enrollment_repo import CapacityReached, DuplicateEnrollment
from app.services.tenant_scope import scope_query

_MUTABLE_FIELDS = (
    "status",
    "progress",
    "time_spent",
    "overall_score",
    "attempts",
    "completed_at",
    "last_accessed_at",
    "suspended_from",
    "lifecycle",
    "version",
)


class PgEnrollmentRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        row = await self._session.get(EnrollmentRow, enrollment_id, populate_existing=True)
        return _row_to_enrollment(row) if row is not None else None

    async def get_for(self, student_id: UUID, course_id: UUID) -> Enrollment | None:
        stmt = select(EnrollmentRow).where(
            EnrollmentRow.student_id == student_id,
            EnrollmentRow.course_id == course_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_enrollment(row) if row is not None else None

    async def add(
        self, enrollment: Enrollment, *, max_students: int | None = None
    ) -> None:
        if max_students is not None:
            # Serialize seat counting per course on the course row lock.
            await self._session.execute(
                select(CourseRow.id)
                .where(CourseRow.id == enrollment.course_id)
                .with_for_update()
            )
            seats_taken = (
                await self._session.execute(
                    select(func.count())
                    .select_from(EnrollmentRow)
                    .where(
                        EnrollmentRow.course_id == enrollment.course_id,
                        EnrollmentRow.status != DROPPED,
                    )
                )
            ).scalar_one()
            if seats_taken >= max_students:
                raise CapacityReached("course is full")

        try:
            async with self._session.begin_nested():
                self._session.add(EnrollmentRow(**asdict(enrollment)))
        except IntegrityError:
            raise DuplicateEnrollment("enrollment already exists") from None

    async def compare_and_set(
        self, updated: Enrollment, *, expected_version: int
    ) -> bool:
        values = {name: getattr(updated, name) for name in _MUTABLE_FIELDS}
        stmt = (
            update(EnrollmentRow)
            .where(
                EnrollmentRow.id == updated.id,
                EnrollmentRow.version == expected_version,
                EnrollmentRow.progress <= updated.progress,
                EnrollmentRow.time_spent <= updated.time_spent,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def list_by_org(self, organization_id: UUID | None) -> list[Enrollment]:
        stmt = scope_query(
            select(EnrollmentRow), EnrollmentRow.organization_id, organization_id
        )
        rows = (await self._session.execute(stmt)).scalars()
        return [_row_to_enrollment(r) for r in rows]


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    return Enrollment(
        id=row.id,
        student_id=row.student_id,
        course_id=row.course_id,
        organization_id=row.organization_id,
        enrolled_at=row.enrolled_at,
        status=row.status,
        progress=row.progress,
        time_spent=row.time_spent,
        overall_score=row.overall_score,
        attempts=row.attempts,
        completed_at=row.completed_at,
        last_accessed_at=row.last_accessed_at,
        enrolled_by=row.enrolled_by,
        enrollment_type=row.enrollment_type,
        suspended_from=row.suspended_from,
        lifecycle=row.lifecycle,
        version=row.version,
    )
