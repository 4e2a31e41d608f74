"""compliance core: organizations, users, courses, enrollments, ledger

Revision ID: 3b7e1c9d2a40
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b7e1c9d2a40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _uuid(name: str, *fk: str, nullable: bool = False) -> sa.Column:
    args = [sa.ForeignKey(fk[0])] if fk else []
    return sa.Column(name, postgresql.UUID(as_uuid=True), *args, nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(63), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("max_users", sa.Integer, nullable=False, server_default="25"),
        sa.Column("max_courses", sa.Integer, nullable=False, server_default="10"),
        sa.Column("max_storage_mb", sa.Integer, nullable=False, server_default="5120"),
        sa.Column(
            "features",
            postgresql.ARRAY(sa.String),
            nullable=False,
            server_default="{}",
        ),
    )

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("tier", sa.String(32), nullable=False, server_default="student"),
        _uuid("organization_id", "organizations.id", nullable=True),
        sa.Column(
            "is_system_owner", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "courses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _uuid("organization_id", "organizations.id"),
        _uuid("instructor_id", "users.id"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("is_published", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column(
            "requires_enrollment", sa.Boolean, nullable=False, server_default=sa.true()
        ),
        sa.Column(
            "allow_self_enrollment", sa.Boolean, nullable=False, server_default=sa.true()
        ),
        sa.Column("max_students", sa.Integer, nullable=True),
        sa.Column("enrollment_deadline", sa.BigInteger, nullable=True),
        sa.Column(
            "total_required_items", sa.Integer, nullable=False, server_default="0"
        ),
        sa.Column(
            "requires_assessment", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "minimum_passing_score", sa.Integer, nullable=False, server_default="70"
        ),
        sa.Column("max_assessment_attempts", sa.Integer, nullable=True),
        sa.Column(
            "generate_certificate", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "is_cpe_eligible", sa.Boolean, nullable=False, server_default=sa.false()
        ),
    )

    op.create_table(
        "enrollments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _uuid("student_id", "users.id"),
        _uuid("course_id", "courses.id"),
        _uuid("organization_id", "organizations.id"),
        sa.Column("enrolled_at", sa.BigInteger, nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="enrolled"),
        sa.Column("progress", sa.Integer, nullable=False, server_default="0"),
        sa.Column("time_spent", sa.Integer, nullable=False, server_default="0"),
        sa.Column("overall_score", sa.Numeric(5, 2), nullable=True),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("completed_at", sa.BigInteger, nullable=True),
        sa.Column("last_accessed_at", sa.BigInteger, nullable=True),
        _uuid("enrolled_by", "users.id", nullable=True),
        sa.Column(
            "enrollment_type", sa.String(16), nullable=False, server_default="self"
        ),
        sa.Column("suspended_from", sa.String(32), nullable=True),
        sa.Column("lifecycle", sa.String(16), nullable=False, server_default="active"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.UniqueConstraint(
            "student_id", "course_id", name="uq_enrollment_student_course"
        ),
        sa.CheckConstraint("progress BETWEEN 0 AND 100", name="ck_enrollment_progress"),
        sa.CheckConstraint("time_spent >= 0", name="ck_enrollment_time_spent"),
    )
    op.create_index("idx_enrollments_org", "enrollments", ["organization_id"])

    op.create_table(
        "audit_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "sequence",
            sa.BigInteger,
            sa.Identity(always=True),
            nullable=False,
            unique=True,
        ),
        _uuid("user_id", "users.id"),
        _uuid("class_id", "courses.id"),
        _uuid("organization_id", "organizations.id"),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column(
            "cpe_credits_earned", sa.Numeric(6, 2), nullable=False, server_default="0"
        ),
        sa.Column("completion_date", sa.BigInteger, nullable=True),
        sa.Column("assessment_score", sa.Numeric(5, 2), nullable=True),
        sa.Column(
            "time_spent_minutes", sa.Integer, nullable=False, server_default="0"
        ),
        sa.Column(
            "verification_status",
            sa.String(16),
            nullable=False,
            server_default="pending",
        ),
        _uuid("enrollment_id", "enrollments.id", nullable=True),
        sa.Column("certificate_number", sa.String(64), nullable=True),
        _uuid("recorded_by", nullable=True),
        _uuid("compensates_entry_id", "audit_entries.id", nullable=True),
        sa.Column("note", sa.Text, nullable=True),
        sa.Column("created_at", sa.BigInteger, nullable=False),
        sa.CheckConstraint("cpe_credits_earned >= 0", name="ck_audit_credits"),
        sa.CheckConstraint("time_spent_minutes >= 0", name="ck_audit_minutes"),
    )
    op.create_index("idx_audit_user_class", "audit_entries", ["user_id", "class_id"])
    op.create_index("idx_audit_org", "audit_entries", ["organization_id"])

    # The ledger is append-only at the database level too.
    op.execute(
        """
        CREATE FUNCTION audit_entries_append_only() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'audit_entries is append-only';
        END;
        $$ LANGUAGE plpgsql
        """
    )
    op.execute(
        """
        CREATE TRIGGER audit_entries_no_update_delete
        BEFORE UPDATE OR DELETE ON audit_entries
        FOR EACH ROW EXECUTE FUNCTION audit_entries_append_only()
        """
    )

    op.create_table(
        "certificates",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("certificate_number", sa.String(64), nullable=False, unique=True),
        _uuid("user_id", "users.id"),
        _uuid("class_id", "courses.id"),
        _uuid("organization_id", "organizations.id"),
        sa.Column("cpe_credits_awarded", sa.Numeric(6, 2), nullable=False),
        sa.Column("issue_date", sa.BigInteger, nullable=False),
        sa.Column("expiration_date", sa.BigInteger, nullable=True),
        sa.Column("verification_hash", sa.String(128), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("storage_url", sa.Text, nullable=True),
        sa.Column("revoked_at", sa.BigInteger, nullable=True),
        _uuid("revoked_by", nullable=True),
        sa.Column("revocation_reason", sa.Text, nullable=True),
    )
    op.create_index(
        "uq_certificates_active_user_class",
        "certificates",
        ["user_id", "class_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )


def downgrade() -> None:
    op.drop_index("uq_certificates_active_user_class", table_name="certificates")
    op.drop_table("certificates")
    op.execute("DROP TRIGGER IF EXISTS audit_entries_no_update_delete ON audit_entries")
    op.execute("DROP FUNCTION IF EXISTS audit_entries_append_only()")
    op.drop_index("idx_audit_org", table_name="audit_entries")
    op.drop_index("idx_audit_user_class", table_name="audit_entries")
    op.drop_table("audit_entries")
    op.drop_index("idx_enrollments_org", table_name="enrollments")
    op.drop_table("enrollments")
    op.drop_table("courses")
    op.drop_table("users")
    op.drop_table("organizations")
