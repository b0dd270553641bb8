"""PostgreSQL implementation of IdentityRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from decertify.db.tables import IdentityRow
from decertify.models.identity import Identity, Role


class PgIdentityRepo:
    """Satisfies the IdentityRepo Protocol using PostgreSQL via SQLAlchemy.

    Each call runs in its own short transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_by_id(self, identity_id: UUID) -> Identity | None:
        async with self._session_factory() as session:
            row = await session.get(IdentityRow, identity_id)
            return None if row is None else _row_to_identity(row)

    async def get_by_wallet(self, wallet_address: str) -> Identity | None:
        stmt = select(IdentityRow).where(
            IdentityRow.wallet_address == wallet_address.lower()
        )
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return None if row is None else _row_to_identity(row)

    async def get_many(self, identity_ids: set[UUID]) -> dict[UUID, Identity]:
        if not identity_ids:
            return {}
        stmt = select(IdentityRow).where(IdentityRow.id.in_(identity_ids))
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return {row.id: _row_to_identity(row) for row in rows}

    async def add(self, identity: Identity) -> None:
        row = IdentityRow(
            id=identity.id,
            wallet_address=identity.wallet_address,
            name=identity.name,
            role=identity.role.value,
            email=identity.email,
            ledger_registered=identity.ledger_registered,
        )
        if identity.created_at is not None:
            row.created_at = identity.created_at
        try:
            async with self._session_factory() as session, session.begin():
                session.add(row)
        except IntegrityError:
            raise ValueError("wallet address already registered") from None

    async def delete(self, identity_id: UUID) -> bool:
        stmt = delete(IdentityRow).where(IdentityRow.id == identity_id)
        async with self._session_factory() as session, session.begin():
            result = await session.execute(stmt)
        return result.rowcount > 0

    async def list_by_role(self, role: Role) -> list[Identity]:
        stmt = (
            select(IdentityRow)
            .where(IdentityRow.role == role.value)
            .order_by(IdentityRow.name)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_identity(row) for row in rows]

    async def set_ledger_registered(self, identity_id: UUID) -> Identity | None:
        stmt = (
            update(IdentityRow)
            .where(IdentityRow.id == identity_id)
            .values(ledger_registered=True)
            .returning(IdentityRow)
        )
        async with self._session_factory() as session, session.begin():
            row = (await session.execute(stmt)).scalar_one_or_none()
            return None if row is None else _row_to_identity(row)


def _row_to_identity(row: IdentityRow) -> Identity:
    return Identity(
        id=row.id,
        wallet_address=row.wallet_address,
        name=row.name,
        role=Role(row.role),
        email=row.email,
        ledger_registered=row.ledger_registered,
        created_at=row.created_at,
    )
