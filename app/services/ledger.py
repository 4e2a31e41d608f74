"""Compliance ledger: append-only audit trail and certificate issuance.

Nothing in this module updates or deletes an AuditEntry.  A wrong entry
is corrected by appending a compensating entry that points at it.

Certificates move forward only (active -> revoked | expired).  Their
verification hash is recomputed from the stored row on every verify, and
each verification is itself appended to the ledger.

If an audit append keeps failing after an enrollment transition was
already committed, the ledger and enrollment state have diverged.  That
is the one emergency in this core: the entry is parked in the
reconciliation backlog, logged at CRITICAL and ``LedgerConsistencyError``
is raised to the caller.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from decimal import Decimal
from uuid import UUID, uuid4

from app.core.errors import (
    DomainError,
    DuplicateCertificate,
    InvalidAuditEntry,
    InvalidTransition,
    LedgerConsistencyError,
    NotFound,
)
from app.core.metrics import (
    AUDIT_APPEND_FAILURES,
    CERTIFICATE_VERIFICATIONS,
    CERTIFICATES_ISSUED,
)
from app.models.compliance import (
    AUDIT_ACTIONS,
    CERT_ACTIVE,
    CERT_EXPIRED,
    CERT_REVOKED,
    CERTIFICATE_ISSUED,
    REJECTED,
    VERIFICATION,
    VERIFICATION_STATUSES,
    VERIFIED,
    AuditEntry,
    Certificate,
)
from app.repos.audit_repo import AuditRepo
from app.repos.certificate_repo import (
    ActiveCertificateExists,
    CertificateNumberTaken,
    CertificateRepo,
)
from app.services.certificate_hash import compute_verification_hash, hash_matches
from app.services.cpe import generate_certificate_number

logger = logging.getLogger(__name__)

VALID = "Valid"
TAMPERED = "Tampered"

_NUMBER_ATTEMPTS = 5
_SECONDS_PER_DAY = 86_400


def epoch_now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


class ReconciliationBacklog:
    """Audit entries that could not be appended after their transition committed."""

    def __init__(self) -> None:
        self._pending: list[AuditEntry] = []

    def add(self, entry: AuditEntry) -> None:
        self._pending.append(entry)

    def pending(self) -> list[AuditEntry]:
        return list(self._pending)

    def drain(self) -> list[AuditEntry]:
        drained, self._pending = self._pending, []
        return drained


reconciliation_backlog = ReconciliationBacklog()


@dataclass(frozen=True, slots=True)
class VerificationResult:
    certificate_number: str
    result: str  # Valid|Tampered
    status: str  # effective status: active|revoked|expired
    certificate: Certificate

    @property
    def valid(self) -> bool:
        return self.result == VALID and self.status == CERT_ACTIVE


def _validate(entry: AuditEntry) -> None:
    problems = []
    if entry.action not in AUDIT_ACTIONS:
        problems.append(f"unknown action {entry.action!r}")
    if entry.verification_status not in VERIFICATION_STATUSES:
        problems.append(f"unknown verification_status {entry.verification_status!r}")
    if not isinstance(entry.cpe_credits_earned, Decimal) or entry.cpe_credits_earned < 0:
        problems.append("cpe_credits_earned must be a non-negative Decimal")
    if not isinstance(entry.time_spent_minutes, int) or entry.time_spent_minutes < 0:
        problems.append("time_spent_minutes must be a non-negative int")
    if entry.assessment_score is not None and not (
        Decimal(0) <= Decimal(entry.assessment_score) <= Decimal(100)
    ):
        problems.append("assessment_score must be between 0 and 100")
    if entry.completion_date is not None and entry.completion_date < 0:
        problems.append("completion_date must be non-negative")
    if problems:
        raise InvalidAuditEntry("; ".join(problems))


class ComplianceLedger:
    def __init__(
        self,
        audit: AuditRepo,
        certificates: CertificateRepo,
        *,
        hash_secret: str,
        validity_days: int | None = None,
        append_retries: int = 3,
        backoff_ms: int = 50,
        backlog: ReconciliationBacklog = reconciliation_backlog,
        clock: Callable[[], int] = epoch_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._audit = audit
        self._certificates = certificates
        self._secret = hash_secret
        self._validity_days = validity_days
        self._retries = append_retries
        self._backoff_s = backoff_ms / 1000
        self._backlog = backlog
        self._clock = clock
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Audit entries
    # ------------------------------------------------------------------

    async def record_audit(self, entry: AuditEntry) -> AuditEntry:
        """Validate, stamp ``created_at`` and append.  Never updates."""
        _validate(entry)
        return await self._audit.append(replace(entry, created_at=self._clock()))

    async def record_after_commit(self, entry: AuditEntry) -> AuditEntry:
        """Append an entry whose triggering state change is already durable.

        Storage failures are retried with exponential backoff.  Validation
        failures are not retried.
        """
        _validate(entry)
        stamped = replace(entry, created_at=self._clock())
        delay = self._backoff_s
        for attempt in range(1, self._retries + 1):
            try:
                return await self._audit.append(stamped)
            except DomainError:
                raise
            except Exception:
                if attempt == self._retries:
                    break
                logger.warning(
                    "Audit append failed (attempt %d/%d) action=%s user=%s class=%s",
                    attempt,
                    self._retries,
                    stamped.action,
                    stamped.user_id,
                    stamped.class_id,
                    exc_info=True,
                )
                await self._sleep(delay)
                delay *= 2

        AUDIT_APPEND_FAILURES.inc()
        self._backlog.add(stamped)
        logger.critical(
            "Ledger diverged from enrollment state: action=%s user=%s class=%s "
            "entry=%s parked for manual reconciliation",
            stamped.action,
            stamped.user_id,
            stamped.class_id,
            stamped.id,
            extra={
                "user_id": stamped.user_id,
                "organization_id": stamped.organization_id,
                "enrollment_id": stamped.enrollment_id,
            },
        )
        raise LedgerConsistencyError(
            f"audit entry {stamped.id} could not be written; reconciliation required"
        )

    async def compensate(
        self, entry_id: UUID, *, reason: str, recorded_by: UUID | None = None
    ) -> AuditEntry:
        """Append an entry that voids ``entry_id`` without touching it."""
        original = await self._audit.get(entry_id)
        if original is None:
            raise NotFound("audit entry not found")
        correction = AuditEntry.new(
            user_id=original.user_id,
            class_id=original.class_id,
            organization_id=original.organization_id,
            action=original.action,
            created_at=0,
            verification_status=REJECTED,
            enrollment_id=original.enrollment_id,
            certificate_number=original.certificate_number,
            recorded_by=recorded_by,
            compensates_entry_id=original.id,
            note=reason,
        )
        return await self.record_audit(correction)

    async def entries_for(self, user_id: UUID, class_id: UUID) -> list[AuditEntry]:
        entries = await self._audit.list_for(user_id, class_id)
        return sorted(entries, key=lambda e: e.sequence or 0)

    async def effective_credits(self, user_id: UUID, class_id: UUID) -> Decimal:
        """CPE credits earned, excluding compensated entries."""
        entries = await self.entries_for(user_id, class_id)
        voided = {e.compensates_entry_id for e in entries if e.compensates_entry_id}
        return sum(
            (
                e.cpe_credits_earned
                for e in entries
                if e.id not in voided and e.compensates_entry_id is None
            ),
            Decimal("0"),
        )

    # ------------------------------------------------------------------
    # Certificates
    # ------------------------------------------------------------------

    async def issue_certificate(
        self,
        user_id: UUID,
        class_id: UUID,
        credits_awarded: Decimal,
        *,
        organization_id: UUID,
        enrollment_id: UUID | None = None,
        recorded_by: UUID | None = None,
    ) -> Certificate:
        if credits_awarded < 0:
            raise InvalidAuditEntry("credits_awarded must be non-negative")
        if await self._certificates.get_active_for(user_id, class_id) is not None:
            raise DuplicateCertificate(
                f"user {user_id} already holds an active certificate for {class_id}"
            )

        issue_date = self._clock()
        expiration = (
            issue_date + self._validity_days * _SECONDS_PER_DAY
            if self._validity_days
            else None
        )
        credits = Decimal(credits_awarded).quantize(Decimal("0.01"))

        for _ in range(_NUMBER_ATTEMPTS):
            number = generate_certificate_number()
            certificate = Certificate(
                id=uuid4(),
                certificate_number=number,
                user_id=user_id,
                class_id=class_id,
                organization_id=organization_id,
                cpe_credits_awarded=credits,
                issue_date=issue_date,
                expiration_date=expiration,
                verification_hash=compute_verification_hash(
                    self._secret,
                    certificate_number=number,
                    user_id=user_id,
                    class_id=class_id,
                    cpe_credits_awarded=credits,
                    issue_date=issue_date,
                ),
            )
            try:
                await self._certificates.add(certificate)
            except CertificateNumberTaken:
                logger.info("Certificate number collision on %s, regenerating", number)
                continue
            except ActiveCertificateExists:
                raise DuplicateCertificate(
                    f"user {user_id} already holds an active certificate for {class_id}"
                ) from None
            break
        else:
            raise RuntimeError("could not allocate a unique certificate number")

        await self.record_after_commit(
            AuditEntry.new(
                user_id=user_id,
                class_id=class_id,
                organization_id=organization_id,
                action=CERTIFICATE_ISSUED,
                created_at=0,
                cpe_credits_earned=Decimal("0"),
                completion_date=issue_date,
                verification_status=VERIFIED,
                enrollment_id=enrollment_id,
                certificate_number=certificate.certificate_number,
                recorded_by=recorded_by,
            )
        )
        CERTIFICATES_ISSUED.inc()
        logger.info(
            "Certificate %s issued user=%s class=%s credits=%s",
            certificate.certificate_number,
            user_id,
            class_id,
            credits,
            extra={"certificate_number": certificate.certificate_number},
        )
        return certificate

    async def attach_storage_url(self, number: str, url: str) -> Certificate:
        updated = await self._certificates.set_storage_url(number, url)
        if updated is None:
            raise NotFound("certificate not found")
        return updated

    async def verify_certificate(
        self, number: str, *, verifier_id: UUID | None = None
    ) -> VerificationResult:
        """Recompute the hash from the stored row.  Read-only apart from the log entry."""
        certificate = await self._certificates.get_by_number(number)
        if certificate is None:
            raise NotFound("certificate not found")

        result = VALID if hash_matches(self._secret, certificate) else TAMPERED
        status = certificate.status
        now = self._clock()
        if (
            status == CERT_ACTIVE
            and certificate.expiration_date is not None
            and certificate.expiration_date <= now
        ):
            status = CERT_EXPIRED

        await self.record_after_commit(
            AuditEntry.new(
                user_id=certificate.user_id,
                class_id=certificate.class_id,
                organization_id=certificate.organization_id,
                action=VERIFICATION,
                created_at=0,
                verification_status=VERIFIED if result == VALID else REJECTED,
                certificate_number=number,
                recorded_by=verifier_id,
                note=None if result == VALID else "verification hash mismatch",
            )
        )
        CERTIFICATE_VERIFICATIONS.labels(result=result).inc()
        if result == TAMPERED:
            logger.warning(
                "Certificate %s failed verification: hash mismatch",
                number,
                extra={"certificate_number": number, "reason": TAMPERED},
            )
        return VerificationResult(
            certificate_number=number,
            result=result,
            status=status,
            certificate=certificate,
        )

    async def revoke_certificate(
        self, number: str, reason: str, *, revoked_by: UUID | None = None
    ) -> Certificate:
        updated = await self._certificates.transition(
            number,
            CERT_REVOKED,
            revoked_at=self._clock(),
            revoked_by=revoked_by,
            revocation_reason=reason,
        )
        if updated is None:
            existing = await self._certificates.get_by_number(number)
            if existing is None:
                raise NotFound("certificate not found")
            raise InvalidTransition(
                f"certificate {number} is {existing.status} and cannot be revoked"
            )
        logger.info(
            "Certificate %s revoked by=%s reason=%s",
            number,
            revoked_by,
            reason,
            extra={"certificate_number": number},
        )
        return updated

    async def expire_certificates(self, now: int | None = None) -> list[Certificate]:
        """Move every elapsed active certificate to ``expired``."""
        cutoff = self._clock() if now is None else now
        expired = []
        for certificate in await self._certificates.list_active_expiring_before(cutoff):
            updated = await self._certificates.transition(
                certificate.certificate_number, CERT_EXPIRED
            )
            if updated is not None:
                expired.append(updated)
        if expired:
            logger.info("Expired %d certificate(s)", len(expired))
        return expired

    def pending_reconciliation(self) -> list[AuditEntry]:
        return self._backlog.pending()
