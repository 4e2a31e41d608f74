"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in app/models/.
Repos convert between SQLAlchemy rows and domain dataclasses.

Compliance-linked tables (enrollments, audit_entries, certificates) carry
no ON DELETE CASCADE: rows referenced by the ledger must outlive their
course or organization.  Enrollments are archived via ``lifecycle``.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    ForeignKey,
    Identity,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.engine import Base


class OrganizationRow(Base):
    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(63), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_users: Mapped[int] = mapped_column(Integer, nullable=False, default=25)
    max_courses: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    max_storage_mb: Mapped[int] = mapped_column(Integer, nullable=False, default=5120)
    features: Mapped[list[str]] = mapped_column(
        ARRAY(String), nullable=False, default=[]
    )


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    tier: Mapped[str] = mapped_column(
        String(32), nullable=False, default="student"
    )  # system_owner|subscriber_admin|teacher|facilitator|student
    organization_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=True
    )
    is_system_owner: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CourseRow(Base):
    __tablename__ = "courses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    instructor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    requires_enrollment: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    allow_self_enrollment: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    max_students: Mapped[int | None] = mapped_column(Integer, nullable=True)
    enrollment_deadline: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    total_required_items: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    requires_assessment: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    minimum_passing_score: Mapped[int] = mapped_column(
        Integer, nullable=False, default=70
    )
    max_assessment_attempts: Mapped[int | None] = mapped_column(Integer, nullable=True)
    generate_certificate: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    is_cpe_eligible: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )


class EnrollmentRow(Base):
    __tablename__ = "enrollments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    student_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    course_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("courses.id"), nullable=False
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    enrolled_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="enrolled"
    )  # enrolled|in_progress|completed|failed|dropped|suspended
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overall_score: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 2), nullable=True
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    last_accessed_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    enrolled_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    enrollment_type: Mapped[str] = mapped_column(
        String(16), nullable=False, default="self"
    )  # self|admin|bulk
    suspended_from: Mapped[str | None] = mapped_column(String(32), nullable=True)
    lifecycle: Mapped[str] = mapped_column(
        String(16), nullable=False, default="active"
    )  # active|archived
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("student_id", "course_id", name="uq_enrollment_student_course"),
        Index("idx_enrollments_org", "organization_id"),
    )


class AuditEntryRow(Base):
    """Append-only.  Revoke UPDATE/DELETE on this table from the app role."""

    __tablename__ = "audit_entries"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    sequence: Mapped[int] = mapped_column(
        BigInteger, Identity(always=True), unique=True, nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    class_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("courses.id"), nullable=False
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    action: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # enrollment|completion|certificate_issued|verification
    cpe_credits_earned: Mapped[Decimal] = mapped_column(
        Numeric(6, 2), nullable=False, default=Decimal("0")
    )
    completion_date: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    assessment_score: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 2), nullable=True
    )
    time_spent_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    verification_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="pending"
    )  # pending|verified|rejected
    enrollment_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("enrollments.id"), nullable=True
    )
    certificate_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    recorded_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    compensates_entry_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("audit_entries.id"), nullable=True
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("idx_audit_user_class", "user_id", "class_id"),
        Index("idx_audit_org", "organization_id"),
    )


class CertificateRow(Base):
    __tablename__ = "certificates"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    certificate_number: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    class_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("courses.id"), nullable=False
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    cpe_credits_awarded: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    issue_date: Mapped[int] = mapped_column(BigInteger, nullable=False)
    expiration_date: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    verification_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="active"
    )  # active|revoked|expired
    storage_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    revoked_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    revoked_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    revocation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        # At most one active certificate per (user, class).
        Index(
            "uq_certificates_active_user_class",
            "user_id",
            "class_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
        ),
    )
