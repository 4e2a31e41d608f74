from __future__ import annotations

from typing import Protocol
from uuid import UUID

from app.models.course import Course


class CourseRepo(Protocol):
    async def get_by_id(self, course_id: UUID) -> Course | None: ...
    async def add(self, course: Course) -> None: ...
    async def list_by_org(self, organization_id: UUID | None) -> list[Course]: ...


class InMemoryCourseRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Course] = {}

    async def get_by_id(self, course_id: UUID) -> Course | None:
        return self._by_id.get(course_id)

    async def add(self, course: Course) -> None:
        if course.id in self._by_id:
            raise ValueError("course already exists")
        self._by_id[course.id] = course

    async def list_by_org(self, organization_id: UUID | None) -> list[Course]:
        # None = every organization (system owner reads)
        return [
            c
            for c in self._by_id.values()
            if organization_id is None or c.organization_id == organization_id
        ]
