"""Principal-facing access to the compliance ledger.

ComplianceLedger knows nothing about callers.  This service puts the
tenant guard and the permission engine in front of it for the audit and
certificate routes.
"""

from __future__ import annotations

import logging
from uuid import UUID

from app.core.errors import AuthorizationDenied, NotFound
from app.models.compliance import AuditEntry, Certificate
from app.models.principal import Principal
from app.repos.registry import Repositories
from app.services.ledger import ComplianceLedger, VerificationResult
from app.services.permissions import (
    CORRECT_LEDGER,
    DEFAULT_POLICY,
    NOT_OWNER,
    REVOKE_CERTIFICATE,
    VIEW_AUDIT_LOG,
    PolicyTable,
    require,
)
from app.services.tenant_scope import TenantScopingGuard, check_write

logger = logging.getLogger(__name__)


class ComplianceService:
    def __init__(
        self,
        repos: Repositories,
        ledger: ComplianceLedger,
        *,
        policy: PolicyTable = DEFAULT_POLICY,
    ) -> None:
        self._repos = repos
        self._ledger = ledger
        self._policy = policy

    async def audit_log(
        self,
        principal: Principal,
        *,
        user_id: UUID | None = None,
        class_id: UUID | None = None,
    ) -> list[AuditEntry]:
        """Ledger entries visible to the principal, in causal order."""
        require(principal, VIEW_AUDIT_LOG, principal.organization_id, self._policy)
        entries = await TenantScopingGuard(principal, self._repos).audit_entries()
        return [
            e
            for e in entries
            if (user_id is None or e.user_id == user_id)
            and (class_id is None or e.class_id == class_id)
        ]

    async def compensate(
        self, principal: Principal, entry_id: UUID, reason: str
    ) -> AuditEntry:
        original = await self._repos.audit.get(entry_id)
        if original is None:
            raise NotFound("audit entry not found")
        require(principal, CORRECT_LEDGER, original.organization_id, self._policy)
        check_write(principal, original.organization_id)
        correction = await self._ledger.compensate(
            entry_id, reason=reason, recorded_by=principal.user_id
        )
        logger.info(
            "Audit entry %s compensated by %s: %s", entry_id, correction.id, reason
        )
        return correction

    async def verify(
        self, number: str, *, verifier: Principal | None = None
    ) -> VerificationResult:
        """Public: anyone holding a certificate number may verify it."""
        return await self._ledger.verify_certificate(
            number, verifier_id=verifier.user_id if verifier else None
        )

    async def certificate(self, principal: Principal, number: str) -> Certificate:
        certificate = await TenantScopingGuard(principal, self._repos).certificate(number)
        if not principal.is_staff() and certificate.user_id != principal.user_id:
            raise AuthorizationDenied(NOT_OWNER, "certificate belongs to another user")
        return certificate

    async def revoke(
        self, principal: Principal, number: str, reason: str
    ) -> Certificate:
        certificate = await TenantScopingGuard(principal, self._repos).certificate(number)
        require(principal, REVOKE_CERTIFICATE, certificate.organization_id, self._policy)
        check_write(principal, certificate.organization_id)
        return await self._ledger.revoke_certificate(
            number, reason, revoked_by=principal.user_id
        )

    async def expire_elapsed(self, principal: Principal) -> list[Certificate]:
        """Platform-wide sweep; only a system owner passes an org of None."""
        require(principal, REVOKE_CERTIFICATE, None, self._policy)
        return await self._ledger.expire_certificates()

    def pending_reconciliation(self, principal: Principal) -> list[AuditEntry]:
        """Entries parked after exhausted append retries.  System owners only."""
        require(principal, VIEW_AUDIT_LOG, None, self._policy)
        return self._ledger.pending_reconciliation()
