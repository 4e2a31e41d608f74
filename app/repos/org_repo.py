from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from app.models.organization import Organization


class OrgRepo(Protocol):
    async def get_by_id(self, org_id: UUID) -> Organization | None: ...
    async def get_by_slug(self, slug: str) -> Organization | None: ...
    async def add(self, org: Organization) -> None: ...
    async def set_active(self, org_id: UUID, is_active: bool) -> Organization | None: ...
    async def list_all(self) -> list[Organization]: ...


class InMemoryOrgRepo:
    """Organizations are deactivated, never removed: there is no delete."""

    def __init__(self) -> None:
        self._by_id: dict[UUID, Organization] = {}
        self._by_slug: dict[str, Organization] = {}

    async def get_by_id(self, org_id: UUID) -> Organization | None:
        return self._by_id.get(org_id)

    async def get_by_slug(self, slug: str) -> Organization | None:
        return self._by_slug.get(slug)

    async def add(self, org: Organization) -> None:
        if org.slug in self._by_slug:
            raise ValueError("slug already exists")
        self._by_id[org.id] = org
        self._by_slug[org.slug] = org

    async def set_active(self, org_id: UUID, is_active: bool) -> Organization | None:
        org = self._by_id.get(org_id)
        if org is None:
            return None
        updated = replace(org, is_active=is_active)
        self._by_id[org_id] = updated
        self._by_slug[updated.slug] = updated
        return updated

    async def list_all(self) -> list[Organization]:
        return list(self._by_id.values())
