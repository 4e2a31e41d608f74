from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from app.models.compliance import AuditEntry


class AuditRepo(Protocol):
    """Append-only.  There is deliberately no update or delete method."""

    async def append(self, entry: AuditEntry) -> AuditEntry: ...
    async def get(self, entry_id: UUID) -> AuditEntry | None: ...
    async def list_for(self, user_id: UUID, class_id: UUID) -> list[AuditEntry]: ...
    async def list_by_org(self, organization_id: UUID | None) -> list[AuditEntry]: ...


class InMemoryAuditRepo:
    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._ids: set[UUID] = set()

    async def append(self, entry: AuditEntry) -> AuditEntry:
        if entry.id in self._ids:
            raise ValueError("audit entry already exists")
        stored = replace(entry, sequence=len(self._entries) + 1)
        self._entries.append(stored)
        self._ids.add(stored.id)
        return stored

    async def get(self, entry_id: UUID) -> AuditEntry | None:
        return next((e for e in self._entries if e.id == entry_id), None)

    async def list_for(self, user_id: UUID, class_id: UUID) -> list[AuditEntry]:
        return [
            e for e in self._entries if e.user_id == user_id and e.class_id == class_id
        ]

    async def list_by_org(self, organization_id: UUID | None) -> list[AuditEntry]:
        return [
            e
            for e in self._entries
            if organization_id is None or e.organization_id == organization_id
        ]
