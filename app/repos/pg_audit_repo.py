"""PostgreSQL implementation of AuditRepo (insert and select only)."""

from __future__ import annotations

from dataclasses import asdict
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import AuditEntryRow
from app.models.compliance import AuditEntry
from app.services.tenant_scope import scope_query


class PgAuditRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, entry: AuditEntry) -> AuditEntry:
        """Insert inside a savepoint.

        A failed insert rolls back only the savepoint, so the request's
        enrollment write survives and the ledger can retry on the same session.
        """
        data = asdict(entry)
        data.pop("sequence")  # assigned by the identity column
        row = AuditEntryRow(**data)
        async with self._session.begin_nested():
            self._session.add(row)
            await self._session.flush()
        return _row_to_entry(row)

    async def get(self, entry_id: UUID) -> AuditEntry | None:
        row = await self._session.get(AuditEntryRow, entry_id)
        return _row_to_entry(row) if row is not None else None

    async def list_for(self, user_id: UUID, class_id: UUID) -> list[AuditEntry]:
        stmt = (
            select(AuditEntryRow)
            .where(AuditEntryRow.user_id == user_id, AuditEntryRow.class_id == class_id)
            .order_by(AuditEntryRow.sequence)
        )
        return [_row_to_entry(r) for r in (await self._session.execute(stmt)).scalars()]

    async def list_by_org(self, organization_id: UUID | None) -> list[AuditEntry]:
        stmt = scope_query(
            select(AuditEntryRow), AuditEntryRow.organization_id, organization_id
        ).order_by(AuditEntryRow.sequence)
        return [_row_to_entry(r) for r in (await self._session.execute(stmt)).scalars()]


def _row_to_entry(row: AuditEntryRow) -> AuditEntry:
    return AuditEntry(
        id=row.id,
        user_id=row.user_id,
        class_id=row.class_id,
        organization_id=row.organization_id,
        action=row.action,
        created_at=row.created_at,
        cpe_credits_earned=row.cpe_credits_earned,
        completion_date=row.completion_date,
        assessment_score=row.assessment_score,
        time_spent_minutes=row.time_spent_minutes,
        verification_status=row.verification_status,
        enrollment_id=row.enrollment_id,
        certificate_number=row.certificate_number,
        recorded_by=row.recorded_by,
        compensates_entry_id=row.compensates_entry_id,
        note=row.note,
        sequence=row.sequence,
    )
