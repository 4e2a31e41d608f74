from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

SYSTEM_OWNER = "system_owner"
SUBSCRIBER_ADMIN = "subscriber_admin"
TEACHER = "teacher"
FACILITATOR = "facilitator"
STUDENT = "student"

TIERS = (SYSTEM_OWNER, SUBSCRIBER_ADMIN, TEACHER, FACILITATOR, STUDENT)
STAFF_TIERS = frozenset({SUBSCRIBER_ADMIN, TEACHER, FACILITATOR})


@dataclass(frozen=True, slots=True)
class Principal:
    """Authoritative identity + tier + tenant for one request.

    Built by PrincipalResolver from the *stored* User record on every
    request.  Nothing here comes from token claims except the user id,
    so a stale or forged tier claim can never widen access.

        user_id: stored User id
        tier: system_owner|subscriber_admin|teacher|facilitator|student
        organization_id: tenant boundary (None only for system owners)
        is_system_owner: bypasses tenant scoping entirely
    """

    user_id: UUID
    tier: str
    organization_id: UUID | None = None
    is_system_owner: bool = False

    def belongs_to(self, organization_id: UUID | None) -> bool:
        return (
            self.organization_id is not None
            and self.organization_id == organization_id
        )

    def is_staff(self) -> bool:
        return self.is_system_owner or self.tier in STAFF_TIERS
