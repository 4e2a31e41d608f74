from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Course:
    id: UUID
    organization_id: UUID
    instructor_id: UUID
    title: str
    is_published: bool = False
    is_active: bool = True
    requires_enrollment: bool = True
    allow_self_enrollment: bool = True
    max_students: int | None = None
    enrollment_deadline: int | None = None  # epoch seconds
    total_required_items: int = 0
    requires_assessment: bool = False
    minimum_passing_score: int = 70
    max_assessment_attempts: int | None = None
    generate_certificate: bool = False
    is_cpe_eligible: bool = False

    @staticmethod
    def new(
        *,
        organization_id: UUID,
        instructor_id: UUID,
        title: str,
        total_required_items: int = 0,
        **settings: object,
    ) -> Course:
        if total_required_items < 0:
            raise ValueError("total_required_items must be non-negative")
        return Course(
            id=uuid4(),
            organization_id=organization_id,
            instructor_id=instructor_id,
            title=title,
            total_required_items=total_required_items,
            **settings,  # type: ignore[arg-type]
        )
