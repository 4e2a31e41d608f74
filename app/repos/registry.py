"""Repository bundles.

Routes never construct repositories themselves; they receive a
``Repositories`` bundle from ``app.api.dependencies.get_repos``, which
picks the PostgreSQL bundle when DATABASE_URL is set and the process-wide
in-memory bundle otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.repos.audit_repo import AuditRepo, InMemoryAuditRepo
from app.repos.certificate_repo import CertificateRepo, InMemoryCertificateRepo
from app.repos.course_repo import CourseRepo, InMemoryCourseRepo
from app.repos.enrollment_repo import EnrollmentRepo, InMemoryEnrollmentRepo
from app.repos.org_repo import InMemoryOrgRepo, OrgRepo
from app.repos.pg_audit_repo import PgAuditRepo
from app.repos.pg_certificate_repo import PgCertificateRepo
from app.repos.pg_course_repo import PgCourseRepo
from app.repos.pg_enrollment_repo import PgEnrollmentRepo
from app.repos.pg_org_repo import PgOrgRepo
from app.repos.pg_user_repo import PgUserRepo
from app.repos.user_repo import InMemoryUserRepo, UserRepo


@dataclass(frozen=True, slots=True)
class Repositories:
    users: UserRepo
    orgs: OrgRepo
    courses: CourseRepo
    enrollments: EnrollmentRepo
    audit: AuditRepo
    certificates: CertificateRepo


def in_memory_repositories() -> Repositories:
    return Repositories(
        users=InMemoryUserRepo(),
        orgs=InMemoryOrgRepo(),
        courses=InMemoryCourseRepo(),
        enrollments=InMemoryEnrollmentRepo(),
        audit=InMemoryAuditRepo(),
        certificates=InMemoryCertificateRepo(),
    )


def pg_repositories(session: AsyncSession) -> Repositories:
    return Repositories(
        users=PgUserRepo(session),
        orgs=PgOrgRepo(session),
        courses=PgCourseRepo(session),
        enrollments=PgEnrollmentRepo(session),
        audit=PgAuditRepo(session),
        certificates=PgCertificateRepo(session),
    )
