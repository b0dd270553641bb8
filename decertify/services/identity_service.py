"""Identity registration and lookup.

Authentication itself is external (see token_service); this module only
records who exists, with which role and wallet address.
"""

from __future__ import annotations

import logging
import re
from uuid import UUID

from decertify.models.identity import (
    EMAIL_MAX_LEN,
    NAME_MAX_LEN,
    Identity,
    OrganizationProfile,
    Role,
)
from decertify.models.principal import Principal
from decertify.repos.identity_repo import IdentityRepo, identity_repo
from decertify.repos.org_profile_repo import OrgProfileRepo, org_profile_repo
from decertify.services.errors import (
    IdentityExists,
    InvalidRole,
    NotFound,
    ValidationFailed,
)
from decertify.services.saga import SagaStep, run_saga

logger = logging.getLogger(__name__)

_WALLET_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def normalize_wallet(wallet_address: str) -> str:
    wallet = wallet_address.strip()
    if not _WALLET_RE.match(wallet):
        raise ValidationFailed("wallet address must be 0x followed by 40 hex digits")
    return wallet.lower()


async def register_identity(
    *,
    wallet_address: str,
    name: str,
    role: Role,
    email: str | None = None,
    identities: IdentityRepo = identity_repo,
    profiles: OrgProfileRepo = org_profile_repo,
) -> Identity:
    """Register a student or organization.

    Organizations also get an (empty) profile.  The two writes run as a
    saga: if the profile cannot be created, the identity is deleted
    again before the error propagates.  Nothing else can have seen the
    identity yet, so the delete is a safe compensation.
    """
    wallet = normalize_wallet(wallet_address)
    if not name.strip():
        raise ValidationFailed("name must be non-empty")
    if len(name.strip()) > NAME_MAX_LEN:
        raise ValidationFailed(f"name must be at most {NAME_MAX_LEN} characters")
    if email is not None and len(email) > EMAIL_MAX_LEN:
        raise ValidationFailed(f"email must be at most {EMAIL_MAX_LEN} characters")

    if await identities.get_by_wallet(wallet) is not None:
        logger.warning("Rejected duplicate registration wallet=%s", wallet)
        raise IdentityExists("an identity with this wallet address already exists")

    identity = Identity.new(wallet_address=wallet, name=name, role=role, email=email)

    async def _create_identity() -> None:
        try:
            await identities.add(identity)
        except ValueError:
            raise IdentityExists(
                "an identity with this wallet address already exists"
            ) from None

    async def _delete_identity() -> None:
        await identities.delete(identity.id)

    async def _create_profile() -> None:
        await profiles.add(OrganizationProfile.new(identity_id=identity.id))

    steps = [SagaStep("create_identity", _create_identity, _delete_identity)]
    match role:
        case Role.ORGANIZATION:
            steps.append(SagaStep("create_organization_profile", _create_profile))
        case Role.STUDENT:
            pass

    await run_saga(steps)
    logger.info(
        "Registered %s identity id=%s wallet=%s",
        role.value,
        identity.id,
        wallet,
        extra={"identity_id": str(identity.id)},
    )
    return identity


async def list_organizations(
    *, identities: IdentityRepo = identity_repo
) -> list[Identity]:
    return await identities.list_by_role(Role.ORGANIZATION)


async def mark_ledger_registered(
    caller: Principal,
    identity_id: UUID,
    *,
    identities: IdentityRepo = identity_repo,
) -> Identity:
    """Record that *identity_id* completed its on-chain registration.

    Only the identity itself may confirm this.
    """
    if caller.identity_id != identity_id:
        logger.warning(
            "Access denied: identity=%s tried to confirm ledger registration for %s",
            caller.identity_id,
            identity_id,
        )
        raise InvalidRole("identities can only confirm their own ledger registration")

    updated = await identities.set_ledger_registered(identity_id)
    if updated is None:
        raise NotFound("identity not found")
    logger.info("Ledger registration confirmed identity=%s", identity_id)
    return updated
