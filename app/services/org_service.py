"""Tenant administration: organizations, their users and their courses.

Platform-wide operations (creating or deactivating an organization) are
authorized against a resource organization of ``None``, which only a
system owner's bypass satisfies.  Everything else is authorized against
the target organization like any other tenant-owned write.
"""

from __future__ import annotations

import logging
from uuid import UUID

from app.core.errors import (
    AlreadyExists,
    AuthorizationDenied,
    NotFound,
    QuotaExceeded,
)
from app.models.course import Course
from app.models.organization import Organization
from app.models.principal import SYSTEM_OWNER, TIERS, Principal
from app.models.user import User
from app.repos.registry import Repositories
from app.services.permissions import (
    DEFAULT_POLICY,
    INSUFFICIENT_TIER,
    MANAGE_COURSES,
    MANAGE_USERS,
    PolicyTable,
    require,
)
from app.services.tenant_scope import (
    TenantScopingGuard,
    check_course_instructor,
    check_write,
)

logger = logging.getLogger(__name__)


class OrgService:
    def __init__(
        self, repos: Repositories, *, policy: PolicyTable = DEFAULT_POLICY
    ) -> None:
        self._repos = repos
        self._policy = policy

    # --- Organizations ---

    async def create_org(
        self,
        principal: Principal,
        *,
        name: str,
        slug: str,
        max_users: int = 25,
        max_courses: int = 10,
        features: frozenset[str] | None = None,
    ) -> Organization:
        require(principal, MANAGE_USERS, None, self._policy)
        if await self._repos.orgs.get_by_slug(slug) is not None:
            raise AlreadyExists(f"slug {slug!r} already taken")
        org = Organization.new(
            name=name,
            slug=slug,
            max_users=max_users,
            max_courses=max_courses,
            features=features,
        )
        await self._repos.orgs.add(org)
        logger.info("Organization created id=%s slug=%s", org.id, slug)
        return org

    async def set_org_active(
        self, principal: Principal, org_id: UUID, is_active: bool
    ) -> Organization:
        """Soft (de)activation.  Organizations are never deleted."""
        require(principal, MANAGE_USERS, None, self._policy)
        org = await self._repos.orgs.set_active(org_id, is_active)
        if org is None:
            raise NotFound("organization not found")
        logger.info("Organization %s active=%s", org_id, is_active)
        return org

    async def list_orgs(self, principal: Principal) -> list[Organization]:
        if principal.is_system_owner:
            return await self._repos.orgs.list_all()
        org = await self._repos.orgs.get_by_id(principal.organization_id)
        return [org] if org is not None else []

    # --- Users ---

    async def add_user(
        self, principal: Principal, org_id: UUID, *, email: str, tier: str
    ) -> User:
        org = await self._org(org_id)
        require(principal, MANAGE_USERS, org.id, self._policy)
        check_write(principal, org.id)
        if tier == SYSTEM_OWNER or tier not in TIERS:
            raise AuthorizationDenied(INSUFFICIENT_TIER, f"cannot assign tier {tier!r}")
        if await self._repos.users.count_by_org(org.id) >= org.max_users:
            raise QuotaExceeded(f"organization {org.slug} is at its user limit")
        user = User.new(email=email, tier=tier, organization_id=org.id)
        try:
            await self._repos.users.add(user)
        except ValueError:
            raise AlreadyExists("email already registered") from None
        logger.info("User %s added to org=%s tier=%s", user.id, org.id, tier)
        return user

    async def set_user_tier(
        self, principal: Principal, user_id: UUID, tier: str
    ) -> User:
        user = await self._user_in_scope(principal, user_id)
        if tier == SYSTEM_OWNER or tier not in TIERS:
            raise AuthorizationDenied(INSUFFICIENT_TIER, f"cannot assign tier {tier!r}")
        updated = await self._repos.users.set_tier(user.id, tier)
        if updated is None:
            raise NotFound("user not found")
        logger.info("User %s tier %s -> %s", user.id, user.tier, tier)
        return updated

    async def set_user_active(
        self, principal: Principal, user_id: UUID, is_active: bool
    ) -> None:
        user = await self._user_in_scope(principal, user_id)
        await self._repos.users.set_active(user.id, is_active)
        logger.info("User %s active=%s", user.id, is_active)

    # --- Courses ---

    async def create_course(
        self,
        principal: Principal,
        org_id: UUID,
        *,
        instructor_id: UUID,
        title: str,
        **settings: object,
    ) -> Course:
        org = await self._org(org_id)
        require(principal, MANAGE_COURSES, org.id, self._policy)
        instructor = await self._repos.users.get_by_id(instructor_id)
        if instructor is None:
            raise NotFound("instructor not found")
        course = Course.new(
            organization_id=org.id,
            instructor_id=instructor.id,
            title=title,
            **settings,
        )
        check_course_instructor(principal, course, instructor)
        if len(await self._repos.courses.list_by_org(org.id)) >= org.max_courses:
            raise QuotaExceeded(f"organization {org.slug} is at its course limit")
        await self._repos.courses.add(course)
        logger.info("Course %s created in org=%s", course.id, org.id)
        return course

    async def list_courses(self, principal: Principal) -> list[Course]:
        """Staff see every course in scope; students only published ones."""
        courses = await TenantScopingGuard(principal, self._repos).courses()
        if principal.is_staff():
            return courses
        return [c for c in courses if c.is_published and c.is_active]

    # --- Internals ---

    async def _org(self, org_id: UUID) -> Organization:
        org = await self._repos.orgs.get_by_id(org_id)
        if org is None:
            raise NotFound("organization not found")
        return org

    async def _user_in_scope(self, principal: Principal, user_id: UUID) -> User:
        user = await self._repos.users.get_by_id(user_id)
        if user is None:
            raise NotFound("user not found")
        require(principal, MANAGE_USERS, user.organization_id, self._policy)
        check_write(principal, user.organization_id)
        if user.is_system_owner:
            raise AuthorizationDenied(INSUFFICIENT_TIER, "system owners are managed out of band")
        return user
