from __future__ import annotations

import asyncio
from dataclasses import replace
from uuid import uuid4

import pytest

from app.core.errors import AccountInactive, IdentityNotFound
from app.models.principal import STUDENT, SUBSCRIBER_ADMIN, SYSTEM_OWNER
from app.services.principal_resolver import PrincipalResolver
from tests.conftest import create_system_owner, create_test_org, create_test_user


def test_resolves_stored_tier_and_org(repos) -> None:
    org = create_test_org()
    user = create_test_user(org, SUBSCRIBER_ADMIN)

    principal = asyncio.run(PrincipalResolver(repos.users).resolve(str(user.id)))

    assert principal.user_id == user.id
    assert principal.tier == SUBSCRIBER_ADMIN
    assert principal.organization_id == org.id
    assert not principal.is_system_owner


def test_accepts_uuid_subject(repos) -> None:
    user = create_test_user(create_test_org())
    principal = asyncio.run(PrincipalResolver(repos.users).resolve(user.id))
    assert principal.user_id == user.id


def test_tier_change_takes_effect_on_next_resolve(repos) -> None:
    """A demoted admin loses admin rights immediately, whatever an old token said."""
    org = create_test_org()
    user = create_test_user(org, SUBSCRIBER_ADMIN)
    resolver = PrincipalResolver(repos.users)

    asyncio.run(repos.users.set_tier(user.id, STUDENT))

    assert asyncio.run(resolver.resolve(user.id)).tier == STUDENT


def test_system_owner_flag(repos) -> None:
    owner = create_system_owner()
    principal = asyncio.run(PrincipalResolver(repos.users).resolve(owner.id))
    assert principal.is_system_owner
    assert principal.organization_id is None


def test_owner_flag_without_owner_tier_is_not_honoured(repos) -> None:
    org = create_test_org()
    user = replace(create_test_user(org, STUDENT), id=uuid4(), email="x@example.com")
    user = replace(user, is_system_owner=True)
    asyncio.run(repos.users.add(user))

    principal = asyncio.run(PrincipalResolver(repos.users).resolve(user.id))

    assert not principal.is_system_owner
    assert principal.tier == STUDENT


def test_owner_tier_without_flag_is_not_honoured(repos) -> None:
    org = create_test_org()
    user = replace(create_test_user(org), id=uuid4(), email="y@example.com", tier=SYSTEM_OWNER)
    asyncio.run(repos.users.add(user))

    principal = asyncio.run(PrincipalResolver(repos.users).resolve(user.id))

    assert not principal.is_system_owner


def test_unknown_user_is_identity_not_found(repos) -> None:
    with pytest.raises(IdentityNotFound):
        asyncio.run(PrincipalResolver(repos.users).resolve(uuid4()))


@pytest.mark.parametrize("subject", ["", "alice", "12345", "not-a-uuid-at-all"])
def test_non_uuid_subject_is_identity_not_found(repos, subject: str) -> None:
    with pytest.raises(IdentityNotFound):
        asyncio.run(PrincipalResolver(repos.users).resolve(subject))


def test_inactive_user_is_rejected(repos) -> None:
    user = create_test_user(create_test_org())
    asyncio.run(repos.users.set_active(user.id, False))

    with pytest.raises(AccountInactive) as exc:
        asyncio.run(PrincipalResolver(repos.users).resolve(user.id))
    assert exc.value.http_status == 401
