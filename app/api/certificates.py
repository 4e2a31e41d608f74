"""Certificate endpoints.

- GET  /v1/certificates/{number}/verify   public verification
- GET  /v1/certificates/{number}          tenant-scoped read
- POST /v1/certificates/{number}/revoke   revoke (active -> revoked)
- POST /v1/certificates/expire            platform-wide expiry sweep

A tampered certificate is a verification *result*, not an error: verify
answers 200 with ``valid: false`` and ``result: "Tampered"``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.api.dependencies import (
    get_compliance_service,
    get_optional_principal,
    get_principal,
)
from app.models.compliance import Certificate
from app.models.principal import Principal
from app.services.compliance_service import ComplianceService

router = APIRouter(prefix="/v1/certificates", tags=["certificates"])

ServiceDep = Annotated[ComplianceService, Depends(get_compliance_service)]


class CertificateOut(BaseModel):
    certificate_number: str
    user_id: str
    class_id: str
    organization_id: str
    cpe_credits_awarded: Decimal
    issue_date: int
    expiration_date: int | None
    status: str
    verification_hash: str
    storage_url: str | None
    revoked_at: int | None
    revocation_reason: str | None


class CertificateVerifyOut(BaseModel):
    certificate_number: str
    result: str  # Valid | Tampered
    status: str  # active | revoked | expired
    valid: bool
    user_id: str
    class_id: str
    cpe_credits_awarded: Decimal
    issue_date: int
    expiration_date: int | None


class RevokeIn(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


def certificate_out(c: Certificate) -> CertificateOut:
    return CertificateOut(
        certificate_number=c.certificate_number,
        user_id=str(c.user_id),
        class_id=str(c.class_id),
        organization_id=str(c.organization_id),
        cpe_credits_awarded=c.cpe_credits_awarded,
        issue_date=c.issue_date,
        expiration_date=c.expiration_date,
        status=c.status,
        verification_hash=c.verification_hash,
        storage_url=c.storage_url,
        revoked_at=c.revoked_at,
        revocation_reason=c.revocation_reason,
    )


@router.get("/{number}/verify", response_model=CertificateVerifyOut)
async def verify_certificate(
    number: str,
    service: ServiceDep,
    verifier: Annotated[Principal | None, Depends(get_optional_principal)],
) -> CertificateVerifyOut:
    result = await service.verify(number, verifier=verifier)
    c = result.certificate
    return CertificateVerifyOut(
        certificate_number=number,
        result=result.result,
        status=result.status,
        valid=result.valid,
        user_id=str(c.user_id),
        class_id=str(c.class_id),
        cpe_credits_awarded=c.cpe_credits_awarded,
        issue_date=c.issue_date,
        expiration_date=c.expiration_date,
    )


@router.post("/expire", response_model=list[CertificateOut])
async def expire_certificates(
    principal: Annotated[Principal, Depends(get_principal)],
    service: ServiceDep,
) -> list[CertificateOut]:
    return [certificate_out(c) for c in await service.expire_elapsed(principal)]


@router.get("/{number}", response_model=CertificateOut)
async def get_certificate(
    number: str,
    principal: Annotated[Principal, Depends(get_principal)],
    service: ServiceDep,
) -> CertificateOut:
    return certificate_out(await service.certificate(principal, number))


@router.post("/{number}/revoke", response_model=CertificateOut)
async def revoke_certificate(
    number: str,
    body: RevokeIn,
    principal: Annotated[Principal, Depends(get_principal)],
    service: ServiceDep,
) -> CertificateOut:
    return certificate_out(await service.revoke(principal, number, body.reason))
