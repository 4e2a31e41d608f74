"""Compliance ledger: append-only entries, certificates and verification."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

import pytest
from prometheus_client import REGISTRY

from app.core.errors import (
    DuplicateCertificate,
    InvalidAuditEntry,
    InvalidTransition,
    LedgerConsistencyError,
    NotFound,
)
from app.models.compliance import (
    CERT_ACTIVE,
    CERT_EXPIRED,
    CERT_REVOKED,
    CERTIFICATE_ISSUED,
    COMPLETION,
    ENROLLMENT,
    REJECTED,
    VERIFICATION,
    VERIFIED,
    AuditEntry,
)
from app.repos.audit_repo import InMemoryAuditRepo
from app.repos.registry import in_memory_repositories
from app.services.certificate_hash import SCHEME, compute_verification_hash
from app.services.ledger import TAMPERED, VALID, ReconciliationBacklog
from tests.conftest import NOW, TEST_SECRET, make_ledger

USER = uuid4()
CLASS = uuid4()
ORG = uuid4()


def _sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def _entry(action: str = COMPLETION, **fields: object) -> AuditEntry:
    return AuditEntry.new(
        user_id=USER,
        class_id=CLASS,
        organization_id=ORG,
        action=action,
        created_at=0,
        **fields,
    )


class _FailingAuditRepo(InMemoryAuditRepo):
    """Fails the first ``failures`` appends, then behaves."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.calls = 0

    async def append(self, entry: AuditEntry) -> AuditEntry:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("audit store unreachable")
        return await super().append(entry)


# ---------------------------------------------------------------------------
# Audit entries
# ---------------------------------------------------------------------------


def test_record_audit_stamps_and_sequences() -> None:
    repos = in_memory_repositories()
    ledger = make_ledger(repos)

    first = asyncio.run(ledger.record_audit(_entry(ENROLLMENT)))
    second = asyncio.run(ledger.record_audit(_entry(COMPLETION, cpe_credits_earned=Decimal("1.50"))))

    assert first.created_at == NOW
    assert (first.sequence, second.sequence) == (1, 2)
    entries = asyncio.run(ledger.entries_for(USER, CLASS))
    assert [e.action for e in entries] == [ENROLLMENT, COMPLETION]


@pytest.mark.parametrize(
    "fields",
    [
        {"action": "deleted"},
        {"verification_status": "maybe"},
        {"cpe_credits_earned": Decimal("-1")},
        {"cpe_credits_earned": 1.5},
        {"time_spent_minutes": -5},
        {"assessment_score": Decimal("101")},
        {"completion_date": -1},
    ],
)
def test_invalid_entries_are_rejected(fields: dict) -> None:
    repos = in_memory_repositories()
    ledger = make_ledger(repos)
    fields = dict(fields)
    action = fields.pop("action", COMPLETION)

    with pytest.raises(InvalidAuditEntry):
        asyncio.run(ledger.record_audit(_entry(action, **fields)))
    assert asyncio.run(ledger.entries_for(USER, CLASS)) == []


def test_compensating_entry_leaves_original_untouched() -> None:
    repos = in_memory_repositories()
    ledger = make_ledger(repos)
    original = asyncio.run(
        ledger.record_audit(_entry(COMPLETION, cpe_credits_earned=Decimal("2.00")))
    )
    admin = uuid4()

    correction = asyncio.run(
        ledger.compensate(original.id, reason="credited twice", recorded_by=admin)
    )

    assert correction.compensates_entry_id == original.id
    assert correction.verification_status == REJECTED
    assert correction.note == "credited twice"
    assert correction.recorded_by == admin
    assert asyncio.run(repos.audit.get(original.id)) == original
    assert asyncio.run(ledger.effective_credits(USER, CLASS)) == Decimal("0")


def test_effective_credits_sum_uncompensated_entries() -> None:
    repos = in_memory_repositories()
    ledger = make_ledger(repos)
    asyncio.run(ledger.record_audit(_entry(COMPLETION, cpe_credits_earned=Decimal("1.25"))))
    asyncio.run(ledger.record_audit(_entry(COMPLETION, cpe_credits_earned=Decimal("0.75"))))

    assert asyncio.run(ledger.effective_credits(USER, CLASS)) == Decimal("2.00")


def test_compensate_unknown_entry() -> None:
    ledger = make_ledger(in_memory_repositories())
    with pytest.raises(NotFound):
        asyncio.run(ledger.compensate(uuid4(), reason="x"))


# ---------------------------------------------------------------------------
# Append after commit: retry, backoff, reconciliation
# ---------------------------------------------------------------------------


def test_transient_failures_are_retried_with_backoff() -> None:
    repos = in_memory_repositories()
    audit = _FailingAuditRepo(failures=2)
    delays: list[float] = []

    async def record_sleep(seconds: float) -> None:
        delays.append(seconds)

    ledger = make_ledger(replace(repos, audit=audit), sleep=record_sleep, backoff_ms=10)

    stored = asyncio.run(ledger.record_after_commit(_entry()))

    assert stored.sequence == 1
    assert audit.calls == 3
    assert delays == [0.01, 0.02]


def test_exhausted_retries_park_entry_and_raise(caplog) -> None:
    repos = in_memory_repositories()
    backlog = ReconciliationBacklog()
    ledger = make_ledger(
        replace(repos, audit=_FailingAuditRepo(failures=99)),
        backlog=backlog,
        append_retries=4,
    )
    before = _sample("audit_append_failures_total")
    entry = _entry()

    with pytest.raises(LedgerConsistencyError) as exc:
        asyncio.run(ledger.record_after_commit(entry))

    assert exc.value.http_status == 503
    assert [e.id for e in backlog.pending()] == [entry.id]
    assert [e.id for e in ledger.pending_reconciliation()] == [entry.id]
    assert _sample("audit_append_failures_total") - before == 1
    assert any(r.levelname == "CRITICAL" for r in caplog.records)


def test_validation_errors_are_not_retried() -> None:
    repos = in_memory_repositories()
    audit = _FailingAuditRepo(failures=0)
    backlog = ReconciliationBacklog()
    ledger = make_ledger(replace(repos, audit=audit), backlog=backlog)

    with pytest.raises(InvalidAuditEntry):
        asyncio.run(ledger.record_after_commit(_entry("rewritten")))

    assert audit.calls == 0
    assert backlog.pending() == []


def test_backlog_drain() -> None:
    backlog = ReconciliationBacklog()
    entry = _entry()
    backlog.add(entry)

    assert backlog.drain() == [entry]
    assert backlog.pending() == []


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


def _issue(ledger, credits: str = "2.50"):
    return asyncio.run(
        ledger.issue_certificate(USER, CLASS, Decimal(credits), organization_id=ORG)
    )


def test_issue_certificate() -> None:
    repos = in_memory_repositories()
    ledger = make_ledger(repos)

    certificate = _issue(ledger)

    assert certificate.certificate_number.startswith("CPE-")
    assert certificate.status == CERT_ACTIVE
    assert certificate.issue_date == NOW
    assert certificate.expiration_date is None
    assert certificate.verification_hash.startswith(f"{SCHEME}:")
    assert certificate.verification_hash == compute_verification_hash(
        TEST_SECRET,
        certificate_number=certificate.certificate_number,
        user_id=USER,
        class_id=CLASS,
        cpe_credits_awarded=Decimal("2.50"),
        issue_date=NOW,
    )
    entries = asyncio.run(ledger.entries_for(USER, CLASS))
    assert [e.action for e in entries] == [CERTIFICATE_ISSUED]
    assert entries[0].certificate_number == certificate.certificate_number


def test_validity_days_sets_expiration() -> None:
    ledger = make_ledger(in_memory_repositories(), validity_days=365)
    assert _issue(ledger).expiration_date == NOW + 365 * 86_400


def test_one_active_certificate_per_user_and_class() -> None:
    ledger = make_ledger(in_memory_repositories())
    _issue(ledger)
    with pytest.raises(DuplicateCertificate):
        _issue(ledger)


def test_reissue_after_revocation() -> None:
    ledger = make_ledger(in_memory_repositories())
    first = _issue(ledger)
    asyncio.run(ledger.revoke_certificate(first.certificate_number, "issued in error"))

    second = _issue(ledger)

    assert second.certificate_number != first.certificate_number


def test_negative_credits_rejected() -> None:
    ledger = make_ledger(in_memory_repositories())
    with pytest.raises(InvalidAuditEntry):
        _issue(ledger, "-0.01")


def test_verify_valid_certificate_logs_entry() -> None:
    repos = in_memory_repositories()
    ledger = make_ledger(repos)
    certificate = _issue(ledger)
    verifier = uuid4()
    before = _sample("certificate_verifications_total", {"result": VALID})

    result = asyncio.run(
        ledger.verify_certificate(certificate.certificate_number, verifier_id=verifier)
    )

    assert result.result == VALID
    assert result.status == CERT_ACTIVE
    assert result.valid
    last = asyncio.run(ledger.entries_for(USER, CLASS))[-1]
    assert last.action == VERIFICATION
    assert last.verification_status == VERIFIED
    assert last.recorded_by == verifier
    assert _sample("certificate_verifications_total", {"result": VALID}) - before == 1


@pytest.mark.parametrize(
    "tampered",
    [
        {"user_id": uuid4()},
        {"class_id": uuid4()},
        {"cpe_credits_awarded": Decimal("25.00")},
        {"issue_date": NOW - 86_400},
        {"verification_hash": f"{SCHEME}:{'0' * 64}"},
    ],
)
def test_any_edited_field_is_detected(tampered: dict) -> None:
    repos = in_memory_repositories()
    ledger = make_ledger(repos)
    certificate = _issue(ledger)
    # Edit the stored row behind the ledger's back.
    repos.certificates._by_number[certificate.certificate_number] = replace(
        certificate, **tampered
    )

    result = asyncio.run(ledger.verify_certificate(certificate.certificate_number))

    assert result.result == TAMPERED
    assert not result.valid
    assert asyncio.run(repos.audit.list_by_org(ORG))[-1].verification_status == REJECTED


def test_renumbered_certificate_is_detected() -> None:
    repos = in_memory_repositories()
    ledger = make_ledger(repos)
    certificate = _issue(ledger)
    repos.certificates._by_number["CPE-FORGED-000000"] = replace(
        certificate, certificate_number="CPE-FORGED-000000"
    )

    result = asyncio.run(ledger.verify_certificate("CPE-FORGED-000000"))

    assert result.result == TAMPERED


def test_hash_from_another_secret_is_detected() -> None:
    repos = in_memory_repositories()
    issued = _issue(make_ledger(repos, hash_secret="other-deployment"))

    result = asyncio.run(make_ledger(repos).verify_certificate(issued.certificate_number))

    assert result.result == TAMPERED


def test_verify_unknown_number() -> None:
    with pytest.raises(NotFound):
        asyncio.run(make_ledger(in_memory_repositories()).verify_certificate("CPE-NOPE"))


def test_revoke_is_forward_only() -> None:
    repos = in_memory_repositories()
    ledger = make_ledger(repos)
    certificate = _issue(ledger)
    admin = uuid4()

    revoked = asyncio.run(
        ledger.revoke_certificate(certificate.certificate_number, "fraud", revoked_by=admin)
    )

    assert revoked.status == CERT_REVOKED
    assert revoked.revoked_by == admin
    assert revoked.revoked_at == NOW
    assert revoked.revocation_reason == "fraud"
    with pytest.raises(InvalidTransition):
        asyncio.run(ledger.revoke_certificate(certificate.certificate_number, "again"))

    # Revocation does not break the hash: the certificate is genuine, just not valid.
    result = asyncio.run(ledger.verify_certificate(certificate.certificate_number))
    assert result.result == VALID
    assert result.status == CERT_REVOKED
    assert not result.valid


def test_revoke_unknown_number() -> None:
    with pytest.raises(NotFound):
        asyncio.run(make_ledger(in_memory_repositories()).revoke_certificate("CPE-NOPE", "x"))


def test_expiry() -> None:
    repos = in_memory_repositories()
    ledger = make_ledger(repos, validity_days=30)
    certificate = _issue(ledger)
    later = NOW + 31 * 86_400

    # Verification reports expiry without writing it.
    late = make_ledger(repos, clock=lambda: later)
    assert asyncio.run(late.verify_certificate(certificate.certificate_number)).status == (
        CERT_EXPIRED
    )
    stored = asyncio.run(repos.certificates.get_by_number(certificate.certificate_number))
    assert stored.status == CERT_ACTIVE

    assert asyncio.run(ledger.expire_certificates(now=NOW)) == []
    expired = asyncio.run(ledger.expire_certificates(now=later))

    assert [c.certificate_number for c in expired] == [certificate.certificate_number]
    with pytest.raises(InvalidTransition):
        asyncio.run(ledger.revoke_certificate(certificate.certificate_number, "late"))


def test_attach_storage_url() -> None:
    repos = in_memory_repositories()
    ledger = make_ledger(repos)
    certificate = _issue(ledger)

    updated = asyncio.run(
        ledger.attach_storage_url(certificate.certificate_number, "https://files/c.pdf")
    )

    assert updated.storage_url == "https://files/c.pdf"
    assert updated.verification_hash == certificate.verification_hash
    with pytest.raises(NotFound):
        asyncio.run(ledger.attach_storage_url("CPE-NOPE", "x"))
