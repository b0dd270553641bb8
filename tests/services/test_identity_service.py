"""Tests for identity registration and the saga runner behind it."""

from __future__ import annotations

import asyncio
import logging

import pytest

from decertify.models.identity import Role
from decertify.repos.identity_repo import identity_repo
from decertify.repos.org_profile_repo import InMemoryOrgProfileRepo, org_profile_repo
from decertify.services import identity_service
from decertify.services.errors import (
    IdentityExists,
    InvalidRole,
    NotFound,
    ValidationFailed,
)
from decertify.services.saga import SagaStep, run_saga
from tests.conftest import create_identity, next_wallet, principal_of


class _FailingProfileRepo(InMemoryOrgProfileRepo):
    async def add(self, profile) -> None:
        raise ConnectionError("profile store unavailable")


def _register(role: Role = Role.STUDENT, **kwargs):
    kwargs.setdefault("wallet_address", next_wallet())
    kwargs.setdefault("name", "Someone")
    return asyncio.run(identity_service.register_identity(role=role, **kwargs))


# ---- registration ----


def test_register_student() -> None:
    identity = _register(Role.STUDENT, name="  Asha  ", email="asha@example.com")
    assert identity.role is Role.STUDENT
    assert identity.name == "Asha"
    assert identity.ledger_registered is False
    assert asyncio.run(identity_repo.get_by_id(identity.id)) == identity
    assert asyncio.run(org_profile_repo.get_by_identity(identity.id)) is None


def test_register_organization_creates_profile() -> None:
    identity = _register(Role.ORGANIZATION, name="Example University")
    profile = asyncio.run(org_profile_repo.get_by_identity(identity.id))
    assert profile is not None
    assert profile.identity_id == identity.id


def test_register_lowercases_wallet() -> None:
    wallet = "0x" + "AB" * 20
    identity = _register(wallet_address=wallet)
    assert identity.wallet_address == wallet.lower()


def test_duplicate_wallet_is_rejected_case_insensitively() -> None:
    wallet = "0x" + "ab" * 20
    _register(wallet_address=wallet)
    with pytest.raises(IdentityExists):
        _register(Role.ORGANIZATION, wallet_address=wallet.upper().replace("0X", "0x"))


@pytest.mark.parametrize(
    "wallet",
    ["", "0x123", "ab" * 20, "0x" + "zz" * 20, "0x" + "a" * 41],
    ids=["empty", "short", "no-prefix", "not-hex", "long"],
)
def test_invalid_wallet_is_rejected(wallet: str) -> None:
    with pytest.raises(ValidationFailed):
        _register(wallet_address=wallet)


def test_blank_name_is_rejected() -> None:
    with pytest.raises(ValidationFailed):
        _register(name="   ")


@pytest.mark.parametrize(
    "overrides",
    [{"name": "n" * 256}, {"email": "a" * 310 + "@example.com"}],
    ids=["name", "email"],
)
def test_overlong_fields_are_rejected(overrides: dict) -> None:
    wallet = next_wallet()
    with pytest.raises(ValidationFailed, match="at most"):
        _register(wallet_address=wallet, **overrides)
    assert asyncio.run(identity_repo.get_by_wallet(wallet)) is None


def test_profile_failure_rolls_back_identity(caplog: pytest.LogCaptureFixture) -> None:
    wallet = next_wallet()
    with caplog.at_level(logging.INFO), pytest.raises(ConnectionError):
        asyncio.run(
            identity_service.register_identity(
                wallet_address=wallet,
                name="Doomed College",
                role=Role.ORGANIZATION,
                profiles=_FailingProfileRepo(),
            )
        )

    assert asyncio.run(identity_repo.get_by_wallet(wallet)) is None
    assert "Compensated saga step 'create_identity'" in caplog.text

    # The wallet is free again afterwards.
    identity = _register(Role.ORGANIZATION, wallet_address=wallet)
    assert identity.wallet_address == wallet


# ---- directory and ledger flag ----


def test_list_organizations_only_returns_organizations() -> None:
    org = create_identity(Role.ORGANIZATION, "Org One")
    create_identity(Role.STUDENT)
    assert asyncio.run(identity_service.list_organizations()) == [org]


def test_mark_ledger_registered_self() -> None:
    identity = create_identity(Role.STUDENT)
    updated = asyncio.run(
        identity_service.mark_ledger_registered(principal_of(identity), identity.id)
    )
    assert updated.ledger_registered is True
    assert asyncio.run(identity_repo.get_by_id(identity.id)).ledger_registered is True


def test_mark_ledger_registered_for_someone_else_is_invalid_role() -> None:
    caller = create_identity(Role.ORGANIZATION)
    other = create_identity(Role.STUDENT)
    with pytest.raises(InvalidRole):
        asyncio.run(identity_service.mark_ledger_registered(principal_of(caller), other.id))


def test_mark_ledger_registered_missing_identity() -> None:
    ghost = principal_of(create_identity(Role.STUDENT))
    ghost_id = ghost.identity_id
    asyncio.run(identity_repo.delete(ghost_id))
    with pytest.raises(NotFound):
        asyncio.run(identity_service.mark_ledger_registered(ghost, ghost_id))


# ---- saga runner ----


def test_run_saga_returns_results_in_order() -> None:
    async def one():
        return 1

    async def two():
        return 2

    assert asyncio.run(run_saga([SagaStep("one", one), SagaStep("two", two)])) == [1, 2]


def test_run_saga_unwinds_in_reverse_and_reraises() -> None:
    calls: list[str] = []

    def _step(name: str, fail: bool = False):
        async def action():
            calls.append(f"do {name}")
            if fail:
                raise RuntimeError(f"{name} failed")

        async def compensate():
            calls.append(f"undo {name}")

        return SagaStep(name, action, compensate)

    with pytest.raises(RuntimeError, match="c failed"):
        asyncio.run(run_saga([_step("a"), _step("b"), _step("c", fail=True)]))

    assert calls == ["do a", "do b", "do c", "undo b", "undo a"]


def test_failing_compensation_does_not_mask_original_error(
    caplog: pytest.LogCaptureFixture,
) -> None:
    undone: list[str] = []

    async def ok():
        return None

    async def boom():
        raise ValueError("original")

    async def bad_undo():
        raise RuntimeError("undo broke")

    async def good_undo():
        undone.append("first")

    steps = [
        SagaStep("first", ok, good_undo),
        SagaStep("second", ok, bad_undo),
        SagaStep("third", boom),
    ]
    with pytest.raises(ValueError, match="original"):
        asyncio.run(run_saga(steps))

    assert undone == ["first"]
    assert "Compensation for saga step 'second' failed" in caplog.text

