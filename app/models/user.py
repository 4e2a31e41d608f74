from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

from app.models.principal import STUDENT, SYSTEM_OWNER, TIERS


@dataclass(frozen=True, slots=True)
class User:
    id: UUID
    email: str
    tier: str = STUDENT  # system_owner|subscriber_admin|teacher|facilitator|student
    organization_id: UUID | None = None  # None only for system owners
    is_system_owner: bool = False
    is_active: bool = True

    @staticmethod
    def new(
        *,
        email: str,
        tier: str = STUDENT,
        organization_id: UUID | None = None,
    ) -> User:
        if tier not in TIERS:
            raise ValueError(f"unknown tier {tier!r}")
        is_owner = tier == SYSTEM_OWNER
        if not is_owner and organization_id is None:
            raise ValueError("non-system-owner users must belong to an organization")
        return User(
            id=uuid4(),
            email=email.strip().lower(),
            tier=tier,
            organization_id=organization_id,
            is_system_owner=is_owner,
            is_active=True,
        )
