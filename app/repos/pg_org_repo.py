"""PostgreSQL implementation of OrgRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import OrganizationRow
from app.models.organization import Organization


class PgOrgRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, org_id: UUID) -> Organization | None:
        row = await self._session.get(OrganizationRow, org_id)
        return _row_to_org(row) if row is not None else None

    async def get_by_slug(self, slug: str) -> Organization | None:
        stmt = select(OrganizationRow).where(OrganizationRow.slug == slug)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_org(row) if row is not None else None

    async def add(self, org: Organization) -> None:
        self._session.add(
            OrganizationRow(
                id=org.id,
                name=org.name,
                slug=org.slug,
                is_active=org.is_active,
                max_users=org.max_users,
                max_courses=org.max_courses,
                max_storage_mb=org.max_storage_mb,
                features=sorted(org.features),
            )
        )
        await self._session.flush()

    async def set_active(self, org_id: UUID, is_active: bool) -> Organization | None:
        stmt = (
            update(OrganizationRow)
            .where(OrganizationRow.id == org_id)
            .values(is_active=is_active)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get_by_id(org_id)

    async def list_all(self) -> list[Organization]:
        rows = (await self._session.execute(select(OrganizationRow))).scalars()
        return [_row_to_org(r) for r in rows]


def _row_to_org(row: OrganizationRow) -> Organization:
    return Organization(
        id=row.id,
        name=row.name,
        slug=row.slug,
        is_active=row.is_active,
        max_users=row.max_users,
        max_courses=row.max_courses,
        max_storage_mb=row.max_storage_mb,
        features=frozenset(row.features or ()),
    )
