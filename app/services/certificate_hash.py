"""Certificate verification hashes.

The hash covers the immutable identifying fields of a certificate:
number, user, class, credits and issue date.  It is an HMAC-SHA256 keyed
with CERTIFICATE_HASH_SECRET, so someone who can edit a row but does not
hold the server secret cannot forge a matching hash.  The stored value is
prefixed with its scheme (``hmac-sha256:``) so future readers know how to
recompute it from the row alone plus the deployment secret.
"""

from __future__ import annotations

import hashlib
import hmac
from decimal import Decimal
from uuid import UUID

from app.models.compliance import Certificate

SCHEME = "hmac-sha256"


def canonical_payload(
    certificate_number: str,
    user_id: UUID,
    class_id: UUID,
    cpe_credits_awarded: Decimal,
    issue_date: int,
) -> bytes:
    credits = Decimal(cpe_credits_awarded).quantize(Decimal("0.01"))
    return "|".join(
        (certificate_number, str(user_id), str(class_id), str(credits), str(issue_date))
    ).encode("utf-8")


def compute_verification_hash(
    secret: str,
    *,
    certificate_number: str,
    user_id: UUID,
    class_id: UUID,
    cpe_credits_awarded: Decimal,
    issue_date: int,
) -> str:
    payload = canonical_payload(
        certificate_number, user_id, class_id, cpe_credits_awarded, issue_date
    )
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"{SCHEME}:{digest}"


def hash_matches(secret: str, certificate: Certificate) -> bool:
    """Recompute from the certificate's own fields and compare in constant time."""
    expected = compute_verification_hash(
        secret,
        certificate_number=certificate.certificate_number,
        user_id=certificate.user_id,
        class_id=certificate.class_id,
        cpe_credits_awarded=certificate.cpe_credits_awarded,
        issue_date=certificate.issue_date,
    )
    return hmac.compare_digest(expected, certificate.verification_hash)
