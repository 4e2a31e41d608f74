"""PostgreSQL implementation of CertificateRepo."""

from __future__ import annotations

from dataclasses import asdict
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import CertificateRow
from app.models.compliance import CERT_ACTIVE, CERTIFICATE_TRANSITIONS, Certificate
from app.repos.certificate_repo import ActiveCertificateExists, CertificateNumberTaken


class PgCertificateRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, certificate: Certificate) -> None:
        if await self.get_by_number(certificate.certificate_number) is not None:
            raise CertificateNumberTaken(certificate.certificate_number)
        try:
            async with self._session.begin_nested():
                self._session.add(CertificateRow(**asdict(certificate)))
        except IntegrityError:
            # partial unique index on (user_id, class_id) WHERE status='active'
            raise ActiveCertificateExists("active certificate already exists") from None

    async def get_by_number(self, number: str) -> Certificate | None:
        stmt = (
            select(CertificateRow)
            .where(CertificateRow.certificate_number == number)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_certificate(row) if row is not None else None

    async def get_active_for(
        self, user_id: UUID, class_id: UUID
    ) -> Certificate | None:
        stmt = select(CertificateRow).where(
            CertificateRow.user_id == user_id,
            CertificateRow.class_id == class_id,
            CertificateRow.status == CERT_ACTIVE,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_certificate(row) if row is not None else None

    async def list_for(self, user_id: UUID, class_id: UUID) -> list[Certificate]:
        stmt = select(CertificateRow).where(
            CertificateRow.user_id == user_id, CertificateRow.class_id == class_id
        )
        return [_row_to_certificate(r) for r in (await self._session.execute(stmt)).scalars()]

    async def transition(
        self, number: str, new_status: str, **fields: object
    ) -> Certificate | None:
        allowed_from = [
            src for src, targets in CERTIFICATE_TRANSITIONS.items() if new_status in targets
        ]
        stmt = (
            update(CertificateRow)
            .where(
                CertificateRow.certificate_number == number,
                CertificateRow.status.in_(allowed_from),
            )
            .values(status=new_status, **fields)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get_by_number(number)

    async def set_storage_url(self, number: str, url: str) -> Certificate | None:
        stmt = (
            update(CertificateRow)
            .where(CertificateRow.certificate_number == number)
            .values(storage_url=url)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get_by_number(number)

    async def list_active_expiring_before(self, ts: int) -> list[Certificate]:
        stmt = select(CertificateRow).where(
            CertificateRow.status == CERT_ACTIVE,
            CertificateRow.expiration_date.is_not(None),
            CertificateRow.expiration_date <= ts,
        )
        return [
            _row_to_certificate(r) for r in (await self._session.execute(stmt)).scalars()
        ]


def _row_to_certificate(row: CertificateRow) -> Certificate:
    return Certificate(
        id=row.id,
        certificate_number=row.certificate_number,
        user_id=row.user_id,
        class_id=row.class_id,
        organization_id=row.organization_id,
        cpe_credits_awarded=row.cpe_credits_awarded,
        issue_date=row.issue_date,
        verification_hash=row.verification_hash,
        expiration_date=row.expiration_date,
        status=row.status,
        storage_url=row.storage_url,
        revoked_at=row.revoked_at,
        revoked_by=row.revoked_by,
        revocation_reason=row.revocation_reason,
    )
