from __future__ import annotations

from typing import Protocol
from uuid import UUID

from app.models.enrollment import DROPPED, Enrollment


class DuplicateEnrollment(ValueError):
    pass


class CapacityReached(ValueError):
    pass


class EnrollmentRepo(Protocol):
    async def get(self, enrollment_id: UUID) -> Enrollment | None: ...
    async def get_for(self, student_id: UUID, course_id: UUID) -> Enrollment | None: ...
    async def add(
        self, enrollment: Enrollment, *, max_students: int | None = None
    ) -> None: ...
    async def compare_and_set(
        self, updated: Enrollment, *, expected_version: int
    ) -> bool: ...
    async def list_by_org(self, organization_id: UUID | None) -> list[Enrollment]: ...


class InMemoryEnrollmentRepo:
    """Single event loop store.

    Neither ``add`` nor ``compare_and_set`` awaits between its check and
    its write, so each is atomic with respect to other coroutines.
    """

    def __init__(self) -> None:
        self._by_id: dict[UUID, Enrollment] = {}
        self._by_pair: dict[tuple[UUID, UUID], UUID] = {}

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        return self._by_id.get(enrollment_id)

    async def get_for(self, student_id: UUID, course_id: UUID) -> Enrollment | None:
        eid = self._by_pair.get((student_id, course_id))
        return self._by_id.get(eid) if eid is not None else None

    async def add(
        self, enrollment: Enrollment, *, max_students: int | None = None
    ) -> None:
        key = (enrollment.student_id, enrollment.course_id)
        if key in self._by_pair:
            raise DuplicateEnrollment("enrollment already exists")
        if max_students is not None:
            seats_taken = sum(
                1
                for e in self._by_id.values()
                if e.course_id == enrollment.course_id and e.status != DROPPED
            )
            if seats_taken >= max_students:
                raise CapacityReached("course is full")
        self._by_pair[key] = enrollment.id
        self._by_id[enrollment.id] = enrollment

    async def compare_and_set(
        self, updated: Enrollment, *, expected_version: int
    ) -> bool:
        current = self._by_id.get(updated.id)
        if current is None or current.version != expected_version:
            return False
        if updated.progress < current.progress or updated.time_spent < current.time_spent:
            return False
        self._by_id[updated.id] = updated
        return True

    async def list_by_org(self, organization_id: UUID | None) -> list[Enrollment]:
        return [
            e
            for e in self._by_id.values()
            if organization_id is None or e.organization_id == organization_id
        ]
