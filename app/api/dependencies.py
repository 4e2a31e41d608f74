"""FastAPI dependencies shared by the routers.

Request flow:

    bearer token -> require_identity (sub only)
                 -> get_principal (stored User re-read every request)
                 -> get_enrollment_service / get_compliance_service (bound to this
                    request's repositories)

Repositories come from ``get_repos``: a session-scoped PostgreSQL bundle
when DATABASE_URL is set, otherwise the process-wide ``MEMORY_REPOS``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from app.core.config import SETTINGS
from app.db.engine import async_session_factory, session_scope
from app.middleware.request_context import bind_principal
from app.models.principal import Principal
from app.repos.registry import Repositories, in_memory_repositories, pg_repositories
from app.services import token_service
from app.services.certificate_renderer import LinkCertificateRenderer
from app.services.compliance_service import ComplianceService
from app.services.enrollment_service import EnrollmentService
from app.services.ledger import ComplianceLedger
from app.services.org_service import OrgService
from app.services.permissions import DEFAULT_POLICY
from app.services.principal_resolver import PrincipalResolver

logger = logging.getLogger(__name__)

# Tokens are issued by the identity provider; tokenUrl only feeds the docs.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/oauth/token")
_optional_bearer = OAuth2PasswordBearer(tokenUrl="/oauth/token", auto_error=False)

MEMORY_REPOS = in_memory_repositories()


async def get_repos() -> AsyncGenerator[Repositories, None]:
    if async_session_factory is None:
        yield MEMORY_REPOS
        return
    async with session_scope() as session:
        yield pg_repositories(session)


def _subject(raw_token: str) -> str:
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    return claims["sub"]


def require_identity(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> str:
    """Validate the bearer token and return its subject.  Nothing else is read."""
    return _subject(raw_token)


async def get_principal(
    subject: Annotated[str, Depends(require_identity)],
    repos: Annotated[Repositories, Depends(get_repos)],
) -> Principal:
    principal = await PrincipalResolver(repos.users).resolve(subject)
    bind_principal(principal)
    logger.debug(
        "Principal resolved user=%s tier=%s org=%s",
        principal.user_id,
        principal.tier,
        principal.organization_id,
    )
    return principal


async def get_optional_principal(
    raw_token: Annotated[str | None, Depends(_optional_bearer)],
    repos: Annotated[Repositories, Depends(get_repos)],
) -> Principal | None:
    """Principal when a bearer token is present, None for anonymous callers."""
    if raw_token is None:
        return None
    principal = await PrincipalResolver(repos.users).resolve(_subject(raw_token))
    bind_principal(principal)
    return principal


def get_ledger(
    repos: Annotated[Repositories, Depends(get_repos)],
) -> ComplianceLedger:
    return ComplianceLedger(
        repos.audit,
        repos.certificates,
        hash_secret=SETTINGS.certificate_hash_secret,
        validity_days=SETTINGS.certificate_validity_days,
        append_retries=SETTINGS.audit_append_retries,
        backoff_ms=SETTINGS.audit_append_backoff_ms,
    )


def get_enrollment_service(
    repos: Annotated[Repositories, Depends(get_repos)],
    ledger: Annotated[ComplianceLedger, Depends(get_ledger)],
) -> EnrollmentService:
    return EnrollmentService(
        repos,
        ledger,
        policy=DEFAULT_POLICY,
        renderer=LinkCertificateRenderer(SETTINGS.certificate_base_url),
        max_minutes_per_report=SETTINGS.progress_max_minutes_per_report,
    )


def get_compliance_service(
    repos: Annotated[Repositories, Depends(get_repos)],
    ledger: Annotated[ComplianceLedger, Depends(get_ledger)],
) -> ComplianceService:
    return ComplianceService(repos, ledger, policy=DEFAULT_POLICY)


def get_org_service(
    repos: Annotated[Repositories, Depends(get_repos)],
) -> OrgService:
    return OrgService(repos, policy=DEFAULT_POLICY)
