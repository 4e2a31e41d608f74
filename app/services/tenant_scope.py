"""Tenant scoping guard.

Every read or write the CRUD layer performs on org-owned data goes
through here.  Reads are narrowed to the principal's organization (system
owners see every organization); writes whose target organization differs
from the principal's are rejected with ``CrossTenantWrite``.

Two levels:

- plain functions (``read_scope``, ``scope_query``, ``scope_rows``,
  ``check_read``, ``check_write``) usable from repos and routes
- ``TenantScopingGuard``, bound to one principal and one repository
  bundle, which the routes use for record loads
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, TypeVar
from uuid import UUID

from sqlalchemy import Select

from app.core.errors import AuthorizationDenied, CrossTenantWrite, NotFound
from app.core.metrics import AUTHZ_DECISIONS
from app.models.compliance import AuditEntry, Certificate
from app.models.course import Course
from app.models.enrollment import Enrollment
from app.models.principal import Principal
from app.models.user import User
from app.services.permissions import CROSS_TENANT_ACCESS

if TYPE_CHECKING:
    from app.repos.registry import Repositories

logger = logging.getLogger(__name__)

T = TypeVar("T")


def read_scope(principal: Principal) -> UUID | None:
    """Organization a principal's reads are confined to (None = all)."""
    if principal.is_system_owner:
        return None
    if principal.organization_id is None:
        # Non-owner without a tenant sees nothing, never everything.
        raise AuthorizationDenied(CROSS_TENANT_ACCESS, "principal has no organization")
    return principal.organization_id


def scope_query(stmt: Select, column, organization_id: UUID | None) -> Select:
    """Append ``WHERE <column> = :organization_id`` unless unscoped."""
    if organization_id is None:
        return stmt
    return stmt.where(column == organization_id)


def scope_rows(
    principal: Principal,
    rows: Iterable[T],
    *,
    include_archived: bool = False,
) -> list[T]:
    """Filter in-memory records to the principal's organization.

    Rows with a ``lifecycle`` of ``archived`` are dropped unless asked for.
    """
    org_id = read_scope(principal)
    scoped = []
    for row in rows:
        if org_id is not None and getattr(row, "organization_id", None) != org_id:
            continue
        if not include_archived and getattr(row, "lifecycle", None) == "archived":
            continue
        scoped.append(row)
    return scoped


def check_read(principal: Principal, organization_id: UUID | None) -> None:
    if principal.is_system_owner:
        return
    if not principal.belongs_to(organization_id):
        AUTHZ_DECISIONS.labels(result="deny", reason=CROSS_TENANT_ACCESS).inc()
        logger.warning(
            "Cross-tenant read blocked: user=%s org=%s target_org=%s",
            principal.user_id,
            principal.organization_id,
            organization_id,
            extra={"reason": CROSS_TENANT_ACCESS},
        )
        raise AuthorizationDenied(CROSS_TENANT_ACCESS)


def check_write(principal: Principal, organization_id: UUID | None) -> None:
    if principal.is_system_owner:
        return
    if not principal.belongs_to(organization_id):
        logger.warning(
            "Cross-tenant write blocked: user=%s org=%s target_org=%s",
            principal.user_id,
            principal.organization_id,
            organization_id,
            extra={"reason": CrossTenantWrite.code},
        )
        raise CrossTenantWrite(
            f"organization {organization_id} is outside the caller's tenant"
        )


def check_course_instructor(
    principal: Principal, course: Course, instructor: User
) -> None:
    """A course's instructor must share its organization.

    System owners may create a course on behalf of an organization with an
    instructor from elsewhere.
    """
    check_write(principal, course.organization_id)
    if principal.is_system_owner:
        return
    if instructor.organization_id != course.organization_id:
        raise CrossTenantWrite("instructor belongs to a different organization")


class TenantScopingGuard:
    """Org-scoped record access for one principal."""

    def __init__(self, principal: Principal, repos: Repositories) -> None:
        self.principal = principal
        self._repos = repos

    async def course(self, course_id: UUID) -> Course:
        course = await self._repos.courses.get_by_id(course_id)
        if course is None:
            raise NotFound("course not found")
        check_read(self.principal, course.organization_id)
        return course

    async def courses(self) -> list[Course]:
        return await self._repos.courses.list_by_org(read_scope(self.principal))

    async def enrollment(self, enrollment_id: UUID) -> Enrollment:
        enrollment = await self._repos.enrollments.get(enrollment_id)
        if enrollment is None:
            raise NotFound("enrollment not found")
        check_read(self.principal, enrollment.organization_id)
        return enrollment

    async def enrollments(self, *, include_archived: bool = False) -> list[Enrollment]:
        rows = await self._repos.enrollments.list_by_org(read_scope(self.principal))
        return scope_rows(self.principal, rows, include_archived=include_archived)

    async def audit_entries(self) -> list[AuditEntry]:
        # Ledger reads ignore Organization.is_active: retention outlives tenants.
        rows = await self._repos.audit.list_by_org(read_scope(self.principal))
        return sorted(scope_rows(self.principal, rows), key=lambda e: e.sequence or 0)

    async def certificate(self, number: str) -> Certificate:
        certificate = await self._repos.certificates.get_by_number(number)
        if certificate is None:
            raise NotFound("certificate not found")
        check_read(self.principal, certificate.organization_id)
        return certificate

    def check_enrollment_write(self, course: Course) -> None:
        # Enrollments inherit the organization of their course.
        check_write(self.principal, course.organization_id)
