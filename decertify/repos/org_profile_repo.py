from __future__ import annotations

from typing import Protocol
from uuid import UUID

from decertify.db.engine import async_session_factory
from decertify.models.identity import OrganizationProfile
from decertify.repos.pg_org_profile_repo import PgOrgProfileRepo


class OrgProfileRepo(Protocol):
    async def get_by_identity(self, identity_id: UUID) -> OrganizationProfile | None: ...
    async def add(self, profile: OrganizationProfile) -> None: ...


class InMemoryOrgProfileRepo:
    def __init__(self) -> None:
        self._by_identity: dict[UUID, OrganizationProfile] = {}

    async def get_by_identity(self, identity_id: UUID) -> OrganizationProfile | None:
        return self._by_identity.get(identity_id)

    async def add(self, profile: OrganizationProfile) -> None:
        if profile.identity_id in self._by_identity:
            raise ValueError("organization profile already exists")
        self._by_identity[profile.identity_id] = profile


if async_session_factory is not None:
    org_profile_repo: OrgProfileRepo = PgOrgProfileRepo(async_session_factory)
else:
    org_profile_repo = InMemoryOrgProfileRepo()
