from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from app.models.compliance import CERT_ACTIVE, CERTIFICATE_TRANSITIONS, Certificate


class ActiveCertificateExists(ValueError):
    pass


class CertificateNumberTaken(ValueError):
    pass


class CertificateRepo(Protocol):
    async def add(self, certificate: Certificate) -> None: ...
    async def get_by_number(self, number: str) -> Certificate | None: ...
    async def get_active_for(
        self, user_id: UUID, class_id: UUID
    ) -> Certificate | None: ...
    async def list_for(self, user_id: UUID, class_id: UUID) -> list[Certificate]: ...
    async def transition(
        self, number: str, new_status: str, **fields: object
    ) -> Certificate | None: ...
    async def set_storage_url(self, number: str, url: str) -> Certificate | None: ...
    async def list_active_expiring_before(self, ts: int) -> list[Certificate]: ...


class InMemoryCertificateRepo:
    def __init__(self) -> None:
        self._by_number: dict[str, Certificate] = {}

    async def add(self, certificate: Certificate) -> None:
        if certificate.certificate_number in self._by_number:
            raise CertificateNumberTaken(certificate.certificate_number)
        if (
            await self.get_active_for(certificate.user_id, certificate.class_id)
            is not None
        ):
            raise ActiveCertificateExists("active certificate already exists")
        self._by_number[certificate.certificate_number] = certificate

    async def get_by_number(self, number: str) -> Certificate | None:
        return self._by_number.get(number)

    async def get_active_for(
        self, user_id: UUID, class_id: UUID
    ) -> Certificate | None:
        return next(
            (
                c
                for c in self._by_number.values()
                if c.user_id == user_id
                and c.class_id == class_id
                and c.status == CERT_ACTIVE
            ),
            None,
        )

    async def list_for(self, user_id: UUID, class_id: UUID) -> list[Certificate]:
        """Every certificate ever issued for the pair, whatever its status."""
        return [
            c
            for c in self._by_number.values()
            if c.user_id == user_id and c.class_id == class_id
        ]

    async def transition(
        self, number: str, new_status: str, **fields: object
    ) -> Certificate | None:
        """Move a certificate forward.  Returns None if the move is not allowed."""
        current = self._by_number.get(number)
        if current is None or new_status not in CERTIFICATE_TRANSITIONS[current.status]:
            return None
        updated = replace(current, status=new_status, **fields)  # type: ignore[arg-type]
        self._by_number[number] = updated
        return updated

    async def set_storage_url(self, number: str, url: str) -> Certificate | None:
        current = self._by_number.get(number)
        if current is None:
            return None
        updated = replace(current, storage_url=url)
        self._by_number[number] = updated
        return updated

    async def list_active_expiring_before(self, ts: int) -> list[Certificate]:
        return [
            c
            for c in self._by_number.values()
            if c.status == CERT_ACTIVE
            and c.expiration_date is not None
            and c.expiration_date <= ts
        ]
