"""Domain error taxonomy.

Every failure the core can report is a ``DomainError`` subclass with a
stable ``code`` (the reason code returned to clients) and the HTTP status
the route layer maps it to.  The mapping lives here, next to the codes,
so the exception handler in app/main.py stays a one-liner.

Only ``LedgerConsistencyError`` is treated as an emergency: it means an
enrollment transition committed but its audit entry could not be written.
"""

from __future__ import annotations

from fastapi import status

# Unprocessable Content (the Starlette constant name changed across releases)
_UNPROCESSABLE = 422


class DomainError(Exception):
    code: str = "DomainError"
    http_status: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.code
        super().__init__(self.message)


# --- Authentication-adjacent (401) ---


class IdentityNotFound(DomainError):
    code = "IdentityNotFound"
    http_status = status.HTTP_401_UNAUTHORIZED


class AccountInactive(DomainError):
    code = "AccountInactive"
    http_status = status.HTTP_401_UNAUTHORIZED


# --- Authorization (403) ---


class AuthorizationDenied(DomainError):
    """Raised by callers that turn a Deny decision into control flow."""

    http_status = status.HTTP_403_FORBIDDEN

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.code = reason
        super().__init__(message or reason)


class CrossTenantWrite(DomainError):
    code = "CrossTenantWrite"
    http_status = status.HTTP_403_FORBIDDEN


# --- Lookups (404) ---


class NotFound(DomainError):
    code = "NotFound"
    http_status = status.HTTP_404_NOT_FOUND


# --- Enrollment lifecycle ---


class EnrollmentFull(DomainError):
    code = "EnrollmentFull"
    http_status = status.HTTP_409_CONFLICT


class EnrollmentClosed(DomainError):
    code = "EnrollmentClosed"
    http_status = status.HTTP_409_CONFLICT


class AlreadyEnrolled(DomainError):
    code = "AlreadyEnrolled"
    http_status = status.HTTP_409_CONFLICT


class SelfEnrollmentNotAllowed(DomainError):
    code = "SelfEnrollmentNotAllowed"
    http_status = status.HTTP_403_FORBIDDEN


class AssessmentNotPassed(DomainError):
    code = "AssessmentNotPassed"
    http_status = _UNPROCESSABLE


class InvalidTransition(DomainError):
    code = "InvalidTransition"
    http_status = status.HTTP_409_CONFLICT


class ConcurrentUpdate(DomainError):
    """Conditional update lost the race after all retries."""

    code = "ConcurrentUpdate"
    http_status = status.HTTP_409_CONFLICT


# --- Compliance ledger ---


class DuplicateCertificate(DomainError):
    code = "DuplicateCertificate"
    http_status = status.HTTP_409_CONFLICT


class InvalidAuditEntry(DomainError):
    code = "InvalidAuditEntry"
    http_status = _UNPROCESSABLE


class LedgerConsistencyError(DomainError):
    code = "LedgerConsistencyError"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE


class InvalidProgress(DomainError):
    code = "InvalidProgress"
    http_status = _UNPROCESSABLE


# --- Tenant administration ---


class AlreadyExists(DomainError):
    code = "AlreadyExists"
    http_status = status.HTTP_409_CONFLICT


class QuotaExceeded(DomainError):
    code = "QuotaExceeded"
    http_status = status.HTTP_409_CONFLICT
