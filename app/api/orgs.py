"""Organization and user administration endpoints.

- POST /v1/orgs                            create (system owner)
- GET  /v1/orgs                            organizations visible to the caller
- POST /v1/orgs/{org_id}/deactivate        soft deactivate (system owner)
- POST /v1/orgs/{org_id}/activate          reactivate (system owner)
- POST /v1/orgs/{org_id}/users             add a user to the organization
- PATCH /v1/users/{user_id}                change tier or active flag

Tier changes take effect on the caller's very next request: the principal
is rebuilt from the stored User every time.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from app.api.dependencies import get_org_service, get_principal
from app.models.organization import Organization
from app.models.principal import STUDENT, Principal
from app.models.user import User
from app.services.org_service import OrgService

router = APIRouter(tags=["orgs"])

PrincipalDep = Annotated[Principal, Depends(get_principal)]
ServiceDep = Annotated[OrgService, Depends(get_org_service)]


# --- Pydantic schemas ---


class OrgCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    slug: str = Field(min_length=1, max_length=100, pattern=r"^[a-z0-9-]+$")
    max_users: int = Field(default=25, ge=0)
    max_courses: int = Field(default=10, ge=0)
    features: list[str] | None = None


class OrgOut(BaseModel):
    id: str
    name: str
    slug: str
    is_active: bool
    max_users: int
    max_courses: int
    max_storage_mb: int
    features: list[str]


class UserCreateIn(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    tier: str = STUDENT


class UserUpdateIn(BaseModel):
    tier: str | None = None
    is_active: bool | None = None


class UserOut(BaseModel):
    id: str
    email: str
    tier: str
    organization_id: str | None
    is_active: bool


def org_out(org: Organization) -> OrgOut:
    return OrgOut(
        id=str(org.id),
        name=org.name,
        slug=org.slug,
        is_active=org.is_active,
        max_users=org.max_users,
        max_courses=org.max_courses,
        max_storage_mb=org.max_storage_mb,
        features=sorted(org.features),
    )


def user_out(user: User) -> UserOut:
    return UserOut(
        id=str(user.id),
        email=user.email,
        tier=user.tier,
        organization_id=str(user.organization_id) if user.organization_id else None,
        is_active=user.is_active,
    )


# --- Endpoints ---


@router.post("/v1/orgs", response_model=OrgOut, status_code=status.HTTP_201_CREATED)
async def create_org(
    body: OrgCreateIn, principal: PrincipalDep, service: ServiceDep
) -> OrgOut:
    org = await service.create_org(
        principal,
        name=body.name,
        slug=body.slug,
        max_users=body.max_users,
        max_courses=body.max_courses,
        features=frozenset(body.features) if body.features is not None else None,
    )
    return org_out(org)


@router.get("/v1/orgs", response_model=list[OrgOut])
async def list_orgs(principal: PrincipalDep, service: ServiceDep) -> list[OrgOut]:
    return [org_out(o) for o in await service.list_orgs(principal)]


@router.post("/v1/orgs/{org_id}/deactivate", response_model=OrgOut)
async def deactivate_org(
    org_id: UUID, principal: PrincipalDep, service: ServiceDep
) -> OrgOut:
    return org_out(await service.set_org_active(principal, org_id, False))


@router.post("/v1/orgs/{org_id}/activate", response_model=OrgOut)
async def activate_org(
    org_id: UUID, principal: PrincipalDep, service: ServiceDep
) -> OrgOut:
    return org_out(await service.set_org_active(principal, org_id, True))


@router.post(
    "/v1/orgs/{org_id}/users",
    response_model=UserOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_user(
    org_id: UUID, body: UserCreateIn, principal: PrincipalDep, service: ServiceDep
) -> UserOut:
    user = await service.add_user(principal, org_id, email=body.email, tier=body.tier)
    return user_out(user)


@router.patch("/v1/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_user(
    user_id: UUID, body: UserUpdateIn, principal: PrincipalDep, service: ServiceDep
) -> None:
    if body.tier is not None:
        await service.set_user_tier(principal, user_id, body.tier)
    if body.is_active is not None:
        await service.set_user_active(principal, user_id, body.is_active)
