from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

# AuditEntry.action
ENROLLMENT = "enrollment"
COMPLETION = "completion"
CERTIFICATE_ISSUED = "certificate_issued"
VERIFICATION = "verification"

AUDIT_ACTIONS = frozenset({ENROLLMENT, COMPLETION, CERTIFICATE_ISSUED, VERIFICATION})

# AuditEntry.verification_status
PENDING = "pending"
VERIFIED = "verified"
REJECTED = "rejected"

VERIFICATION_STATUSES = frozenset({PENDING, VERIFIED, REJECTED})

# Certificate.status
CERT_ACTIVE = "active"
CERT_REVOKED = "revoked"
CERT_EXPIRED = "expired"

# Allowed forward moves; nothing ever returns to active.
CERTIFICATE_TRANSITIONS: dict[str, frozenset[str]] = {
    CERT_ACTIVE: frozenset({CERT_REVOKED, CERT_EXPIRED}),
    CERT_REVOKED: frozenset(),
    CERT_EXPIRED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class AuditEntry:
    """One immutable compliance ledger row.

    ``sequence`` is assigned by the repository on append and gives the
    causal read order.  Corrections reference the original through
    ``compensates_entry_id``; the original row is never touched.
    """

    id: UUID
    user_id: UUID
    class_id: UUID
    organization_id: UUID
    action: str  # enrollment|completion|certificate_issued|verification
    created_at: int
    cpe_credits_earned: Decimal = Decimal("0")
    completion_date: int | None = None
    assessment_score: Decimal | None = None
    time_spent_minutes: int = 0
    verification_status: str = PENDING  # pending|verified|rejected
    enrollment_id: UUID | None = None
    certificate_number: str | None = None
    recorded_by: UUID | None = None
    compensates_entry_id: UUID | None = None
    note: str | None = None
    sequence: int | None = None

    @staticmethod
    def new(
        *,
        user_id: UUID,
        class_id: UUID,
        organization_id: UUID,
        action: str,
        created_at: int,
        **fields: object,
    ) -> AuditEntry:
        return AuditEntry(
            id=uuid4(),
            user_id=user_id,
            class_id=class_id,
            organization_id=organization_id,
            action=action,
            created_at=created_at,
            **fields,  # type: ignore[arg-type]
        )


@dataclass(frozen=True, slots=True)
class Certificate:
    id: UUID
    certificate_number: str
    user_id: UUID
    class_id: UUID
    organization_id: UUID
    cpe_credits_awarded: Decimal
    issue_date: int  # epoch seconds
    verification_hash: str
    expiration_date: int | None = None
    status: str = CERT_ACTIVE  # active|revoked|expired
    storage_url: str | None = None
    revoked_at: int | None = None
    revoked_by: UUID | None = None
    revocation_reason: str | None = None
