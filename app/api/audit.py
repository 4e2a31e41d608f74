"""Compliance ledger read and correction endpoints.

- GET  /v1/audit                          entries visible to the caller
- GET  /v1/audit/reconciliation           entries awaiting manual reconciliation
- POST /v1/audit/{entry_id}/compensate    append a compensating entry

Entries stay readable after their organization is deactivated.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from app.api.dependencies import get_compliance_service, get_principal
from app.models.compliance import AuditEntry
from app.models.principal import Principal
from app.services.compliance_service import ComplianceService

router = APIRouter(prefix="/v1/audit", tags=["audit"])

PrincipalDep = Annotated[Principal, Depends(get_principal)]
ServiceDep = Annotated[ComplianceService, Depends(get_compliance_service)]


class AuditEntryOut(BaseModel):
    id: str
    sequence: int | None
    user_id: str
    class_id: str
    organization_id: str
    action: str
    created_at: int
    cpe_credits_earned: Decimal
    completion_date: int | None
    assessment_score: Decimal | None
    time_spent_minutes: int
    verification_status: str
    enrollment_id: str | None
    certificate_number: str | None
    compensates_entry_id: str | None
    note: str | None


class CompensateIn(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


def _opt(value: object | None) -> str | None:
    return str(value) if value is not None else None


def audit_entry_out(e: AuditEntry) -> AuditEntryOut:
    return AuditEntryOut(
        id=str(e.id),
        sequence=e.sequence,
        user_id=str(e.user_id),
        class_id=str(e.class_id),
        organization_id=str(e.organization_id),
        action=e.action,
        created_at=e.created_at,
        cpe_credits_earned=e.cpe_credits_earned,
        completion_date=e.completion_date,
        assessment_score=e.assessment_score,
        time_spent_minutes=e.time_spent_minutes,
        verification_status=e.verification_status,
        enrollment_id=_opt(e.enrollment_id),
        certificate_number=e.certificate_number,
        compensates_entry_id=_opt(e.compensates_entry_id),
        note=e.note,
    )


@router.get("", response_model=list[AuditEntryOut])
async def list_audit_entries(
    principal: PrincipalDep,
    service: ServiceDep,
    user_id: UUID | None = None,
    class_id: UUID | None = None,
) -> list[AuditEntryOut]:
    entries = await service.audit_log(principal, user_id=user_id, class_id=class_id)
    return [audit_entry_out(e) for e in entries]


@router.get("/reconciliation", response_model=list[AuditEntryOut])
async def pending_reconciliation(
    principal: PrincipalDep, service: ServiceDep
) -> list[AuditEntryOut]:
    return [audit_entry_out(e) for e in service.pending_reconciliation(principal)]


@router.post(
    "/{entry_id}/compensate",
    response_model=AuditEntryOut,
    status_code=status.HTTP_201_CREATED,
)
async def compensate(
    entry_id: UUID,
    body: CompensateIn,
    principal: PrincipalDep,
    service: ServiceDep,
) -> AuditEntryOut:
    return audit_entry_out(await service.compensate(principal, entry_id, body.reason))
