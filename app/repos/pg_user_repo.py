"""PostgreSQL implementation of UserRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import UserRow
from app.models.user import User


class PgUserRepo:
    """Satisfies the UserRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: UUID) -> User | None:
        stmt = select(UserRow).where(UserRow.id == user_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_user(row)

    async def add(self, user: User) -> None:
        row = UserRow(
            id=user.id,
            email=user.email,
            tier=user.tier,
            organization_id=user.organization_id,
            is_system_owner=user.is_system_owner,
            is_active=user.is_active,
        )
        self._session.add(row)
        await self._session.flush()

    async def set_active(self, user_id: UUID, is_active: bool) -> None:
        stmt = update(UserRow).where(UserRow.id == user_id).values(is_active=is_active)
        await self._session.execute(stmt)

    async def set_tier(self, user_id: UUID, tier: str) -> User | None:
        stmt = update(UserRow).where(UserRow.id == user_id).values(tier=tier)
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get_by_id(user_id)

    async def count_by_org(self, organization_id: UUID) -> int:
        stmt = (
            select(func.count())
            .select_from(UserRow)
            .where(UserRow.organization_id == organization_id)
        )
        return (await self._session.execute(stmt)).scalar_one()


def _row_to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        email=row.email,
        tier=row.tier,
        organization_id=row.organization_id,
        is_system_owner=row.is_system_owner,
        is_active=row.is_active,
    )
