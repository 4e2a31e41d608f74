from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from app.models.user import User


class UserRepo(Protocol):
    async def get_by_id(self, user_id: UUID) -> User | None: ...
    async def add(self, user: User) -> None: ...
    async def set_active(self, user_id: UUID, is_active: bool) -> None: ...
    async def set_tier(self, user_id: UUID, tier: str) -> User | None: ...
    async def count_by_org(self, organization_id: UUID) -> int: ...


class InMemoryUserRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, User] = {}
        self._emails: set[str] = set()

    async def get_by_id(self, user_id: UUID) -> User | None:
        return self._by_id.get(user_id)

    async def add(self, user: User) -> None:
        if user.email in self._emails:
            raise ValueError("email already exists")
        self._emails.add(user.email)
        self._by_id[user.id] = user

    async def set_active(self, user_id: UUID, is_active: bool) -> None:
        u = self._by_id.get(user_id)
        if u is None:
            raise KeyError("user not found")
        self._by_id[user_id] = replace(u, is_active=is_active)

    async def set_tier(self, user_id: UUID, tier: str) -> User | None:
        u = self._by_id.get(user_id)
        if u is None:
            return None
        updated = replace(u, tier=tier)
        self._by_id[user_id] = updated
        return updated

    async def count_by_org(self, organization_id: UUID) -> int:
        return sum(1 for u in self._by_id.values() if u.organization_id == organization_id)
