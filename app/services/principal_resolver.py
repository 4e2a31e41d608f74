"""Resolve an authenticated identity to a Principal.

The transport token only tells us *who* is calling (its ``sub``).  Tier,
organization and the system-owner flag are re-read from the stored User
record on every request; whatever a token claims about them is ignored.
"""

from __future__ import annotations

import logging
from uuid import UUID

from app.core.errors import AccountInactive, IdentityNotFound
from app.models.principal import SYSTEM_OWNER, Principal
from app.repos.user_repo import UserRepo

logger = logging.getLogger(__name__)


class PrincipalResolver:
    def __init__(self, users: UserRepo) -> None:
        self._users = users

    async def resolve(self, subject: str | UUID) -> Principal:
        try:
            user_id = subject if isinstance(subject, UUID) else UUID(str(subject))
        except ValueError:
            logger.warning("Rejected non-UUID subject=%r", subject)
            raise IdentityNotFound("token subject is not a user id") from None

        user = await self._users.get_by_id(user_id)
        if user is None:
            logger.warning("No user record for subject=%s", user_id)
            raise IdentityNotFound("user not found")
        if not user.is_active:
            logger.warning("Inactive account rejected user=%s", user_id)
            raise AccountInactive("account is deactivated")

        # Stored flag and stored tier must agree before owner bypass is granted.
        is_owner = user.is_system_owner and user.tier == SYSTEM_OWNER
        return Principal(
            user_id=user.id,
            tier=user.tier,
            organization_id=user.organization_id,
            is_system_owner=is_owner,
        )
