from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

ENROLLED = "enrolled"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
FAILED = "failed"
DROPPED = "dropped"
SUSPENDED = "suspended"

TERMINAL_STATES = frozenset({COMPLETED, FAILED, DROPPED})

# Soft-delete marker shared by every compliance-linked row.
ACTIVE = "active"
ARCHIVED = "archived"


@dataclass(frozen=True, slots=True)
class Enrollment:
    """A student's relationship to one course.

    Only EnrollmentService produces modified copies of this value, and only
    the repo's ``compare_and_set`` persists them.  ``version`` is bumped on
    every accepted write and is the CAS token.
    """

    id: UUID
    student_id: UUID
    course_id: UUID
    organization_id: UUID  # inherited from the course
    enrolled_at: int
    status: str = ENROLLED  # enrolled|in_progress|completed|failed|dropped|suspended
    progress: int = 0  # 0-100, never decreases
    time_spent: int = 0  # minutes, never decreases
    overall_score: Decimal | None = None
    attempts: int = 0
    completed_at: int | None = None
    last_accessed_at: int | None = None
    enrolled_by: UUID | None = None
    enrollment_type: str = "self"  # self|admin|bulk
    suspended_from: str | None = None
    lifecycle: str = ACTIVE  # active|archived
    version: int = 1

    @staticmethod
    def new(
        *,
        student_id: UUID,
        course_id: UUID,
        organization_id: UUID,
        enrolled_at: int,
        enrolled_by: UUID | None = None,
        enrollment_type: str = "self",
    ) -> Enrollment:
        return Enrollment(
            id=uuid4(),
            student_id=student_id,
            course_id=course_id,
            organization_id=organization_id,
            enrolled_at=enrolled_at,
            enrolled_by=enrolled_by,
            enrollment_type=enrollment_type,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    @property
    def is_archived(self) -> bool:
        return self.lifecycle == ARCHIVED
