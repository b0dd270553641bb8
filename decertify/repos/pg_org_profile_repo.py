"""PostgreSQL implementation of OrgProfileRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from decertify.db.tables import OrganizationProfileRow
from decertify.models.identity import OrganizationProfile


class PgOrgProfileRepo:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_by_identity(self, identity_id: UUID) -> OrganizationProfile | None:
        stmt = select(OrganizationProfileRow).where(
            OrganizationProfileRow.identity_id == identity_id
        )
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return OrganizationProfile(
            id=row.id,
            identity_id=row.identity_id,
            description=row.description,
            website=row.website,
        )

    async def add(self, profile: OrganizationProfile) -> None:
        row = OrganizationProfileRow(
            id=profile.id,
            identity_id=profile.identity_id,
            description=profile.description,
            website=profile.website,
        )
        try:
            async with self._session_factory() as session, session.begin():
                session.add(row)
        except IntegrityError:
            raise ValueError("organization profile already exists") from None
