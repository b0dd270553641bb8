from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from decertify.db.engine import async_session_factory
from decertify.models.identity import Identity, Role
from decertify.repos.pg_identity_repo import PgIdentityRepo


class IdentityRepo(Protocol):
    async def get_by_id(self, identity_id: UUID) -> Identity | None: ...
    async def get_by_wallet(self, wallet_address: str) -> Identity | None: ...
    async def get_many(self, identity_ids: set[UUID]) -> dict[UUID, Identity]: ...
    async def add(self, identity: Identity) -> None: ...
    async def delete(self, identity_id: UUID) -> bool: ...
    async def list_by_role(self, role: Role) -> list[Identity]: ...
    async def set_ledger_registered(self, identity_id: UUID) -> Identity | None: ...


class InMemoryIdentityRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Identity] = {}
        self._by_wallet: dict[str, Identity] = {}

    async def get_by_id(self, identity_id: UUID) -> Identity | None:
        return self._by_id.get(identity_id)

    async def get_by_wallet(self, wallet_address: str) -> Identity | None:
        return self._by_wallet.get(wallet_address.lower())

    async def get_many(self, identity_ids: set[UUID]) -> dict[UUID, Identity]:
        return {i: self._by_id[i] for i in identity_ids if i in self._by_id}

    async def add(self, identity: Identity) -> None:
        if identity.wallet_address in self._by_wallet:
            raise ValueError("wallet address already registered")
        self._by_id[identity.id] = identity
        self._by_wallet[identity.wallet_address] = identity

    async def delete(self, identity_id: UUID) -> bool:
        identity = self._by_id.pop(identity_id, None)
        if identity is None:
            return False
        self._by_wallet.pop(identity.wallet_address, None)
        return True

    async def list_by_role(self, role: Role) -> list[Identity]:
        return [i for i in self._by_id.values() if i.role is role]

    async def set_ledger_registered(self, identity_id: UUID) -> Identity | None:
        identity = self._by_id.get(identity_id)
        if identity is None:
            return None
        updated = replace(identity, ledger_registered=True)
        self._by_id[identity_id] = updated
        self._by_wallet[updated.wallet_address] = updated
        return updated


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if async_session_factory is not None:
    identity_repo: IdentityRepo = PgIdentityRepo(async_session_factory)
else:
    identity_repo = InMemoryIdentityRepo()
