"""Identity registration endpoints.

- POST /v1/identities                              register student or organization
- GET  /v1/identities/organizations                public directory
- PUT  /v1/identities/{id}/ledger-registration     self-confirm on-chain registration

Registration is open: the wallet signature proving ownership of the
address is checked by the upstream login service, which then mints the
bearer token this API accepts.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from decertify.api.dependencies import raise_http, require_user
from decertify.models.identity import Identity, Role
from decertify.models.principal import Principal
from decertify.services import identity_service
from decertify.services.errors import DecertifyError

router = APIRouter(prefix="/v1/identities", tags=["identities"])


class RegisterIn(BaseModel):
    wallet_address: str
    name: str
    role: Role
    email: str | None = None


class IdentityOut(BaseModel):
    id: str
    wallet_address: str
    name: str
    role: str
    email: str | None = None
    ledger_registered: bool
    created_at: datetime | None = None


class OrganizationOut(BaseModel):
    id: str
    name: str
    wallet_address: str


def _identity_out(identity: Identity) -> IdentityOut:
    return IdentityOut(
        id=str(identity.id),
        wallet_address=identity.wallet_address,
        name=identity.name,
        role=identity.role.value,
        email=identity.email,
        ledger_registered=identity.ledger_registered,
        created_at=identity.created_at,
    )


@router.post("", response_model=IdentityOut, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterIn) -> IdentityOut:
    try:
        identity = await identity_service.register_identity(
            wallet_address=body.wallet_address,
            name=body.name,
            role=body.role,
            email=body.email,
        )
    except DecertifyError as err:
        raise_http(err)
    return _identity_out(identity)


@router.get("/organizations", response_model=list[OrganizationOut])
async def list_organizations() -> list[OrganizationOut]:
    orgs = await identity_service.list_organizations()
    return [
        OrganizationOut(id=str(o.id), name=o.name, wallet_address=o.wallet_address)
        for o in orgs
    ]


@router.put("/{identity_id}/ledger-registration", response_model=IdentityOut)
async def confirm_ledger_registration(
    identity_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
) -> IdentityOut:
    try:
        identity = await identity_service.mark_ledger_registered(principal, identity_id)
    except DecertifyError as err:
        raise_http(err)
    return _identity_out(identity)
