"""Outbound certificate rendering/storage collaborator.

The core only needs a URL back.  Rendering PDFs and storing them is the
job of whatever implements ``CertificateRenderer`` in a deployment.
"""

from __future__ import annotations

import logging
from typing import Protocol

from app.models.compliance import Certificate

logger = logging.getLogger(__name__)


class CertificateRenderer(Protocol):
    async def render(self, certificate: Certificate, metadata: dict) -> str: ...


class LinkCertificateRenderer:
    """Default renderer: points at a verification page under a base URL."""

    def __init__(self, base_url: str) -> None:
        self._base_url = base_url.rstrip("/")

    async def render(self, certificate: Certificate, metadata: dict) -> str:
        url = f"{self._base_url}/{certificate.certificate_number}"
        logger.debug(
            "Certificate %s rendered to %s", certificate.certificate_number, url
        )
        return url
