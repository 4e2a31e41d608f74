from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.api import dependencies
from app.main import app
from app.models.course import Course
from app.models.organization import Organization
from app.models.principal import STUDENT, SYSTEM_OWNER, Principal
from app.models.user import User
from app.repos.registry import Repositories, in_memory_repositories
from app.services import token_service
from app.services.enrollment_service import EnrollmentService
from app.services.ledger import ComplianceLedger, ReconciliationBacklog, reconciliation_backlog

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

TEST_SECRET = "test-certificate-secret"
NOW = 1_760_000_000  # fixed epoch seconds for deterministic clocks


@pytest.fixture(autouse=True)
def reset_memory_repos(monkeypatch: pytest.MonkeyPatch) -> None:
    """Fresh in-memory repositories for every test."""
    monkeypatch.setattr(dependencies, "MEMORY_REPOS", in_memory_repositories())


@pytest.fixture(autouse=True)
def reset_reconciliation_backlog() -> None:
    reconciliation_backlog.drain()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def repos() -> Repositories:
    """The same bundle the app serves requests from."""
    return dependencies.MEMORY_REPOS


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


def mint_token(sub: object = "test-user", **claims: object) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=str(sub), **claims)


def auth(user: User | Principal) -> dict[str, str]:
    user_id = user.id if isinstance(user, User) else user.user_id
    return {"Authorization": f"Bearer {mint_token(user_id)}"}


# ---------------------------------------------------------------------------
# Seeding helpers (write straight into the app's in-memory repositories)
# ---------------------------------------------------------------------------


def _run(coro):
    return asyncio.run(coro)


def create_test_org(slug: str = "test-org", **quotas: int) -> Organization:
    org = Organization.new(name=slug.replace("-", " ").title(), slug=slug, **quotas)
    _run(dependencies.MEMORY_REPOS.orgs.add(org))
    return org


def create_test_user(
    org: Organization | None, tier: str = STUDENT, email: str | None = None
) -> User:
    user = User.new(
        email=email or f"{tier}-{uuid4().hex[:8]}@example.com",
        tier=tier,
        organization_id=org.id if org is not None else None,
    )
    _run(dependencies.MEMORY_REPOS.users.add(user))
    return user


def create_system_owner() -> User:
    return create_test_user(None, SYSTEM_OWNER)


def create_test_course(
    org: Organization, instructor: User, title: str = "Ethics", **settings: object
) -> Course:
    course = Course.new(
        organization_id=org.id,
        instructor_id=instructor.id,
        title=title,
        **settings,
    )
    _run(dependencies.MEMORY_REPOS.courses.add(course))
    return course


def principal_for(user: User) -> Principal:
    return Principal(
        user_id=user.id,
        tier=user.tier,
        organization_id=user.organization_id,
        is_system_owner=user.is_system_owner,
    )


# ---------------------------------------------------------------------------
# Service builders for async unit tests
# ---------------------------------------------------------------------------


async def _no_sleep(_seconds: float) -> None:
    return None


def make_ledger(repos: Repositories, **overrides: object) -> ComplianceLedger:
    options: dict[str, object] = {
        "hash_secret": TEST_SECRET,
        "backoff_ms": 1,
        "backlog": ReconciliationBacklog(),
        "clock": lambda: NOW,
        "sleep": _no_sleep,
    }
    options.update(overrides)
    return ComplianceLedger(repos.audit, repos.certificates, **options)  # type: ignore[arg-type]


def make_service(
    repos: Repositories, ledger: ComplianceLedger | None = None, **overrides: object
) -> EnrollmentService:
    options: dict[str, object] = {"clock": lambda: NOW}
    options.update(overrides)
    return EnrollmentService(repos, ledger or make_ledger(repos), **options)  # type: ignore[arg-type]
