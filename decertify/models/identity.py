from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID, uuid4


NAME_MAX_LEN = 255
EMAIL_MAX_LEN = 320


class Role(StrEnum):
    """The two kinds of identity the service knows about.

    Closed set: authorization code matches on these members instead of
    comparing free-form strings.
    """

    STUDENT = "student"
    ORGANIZATION = "organization"


@dataclass(frozen=True, slots=True)
class Identity:
    """A registered student or organization.

    ``wallet_address`` is the correlation key with the ledger and is
    stored lower-cased.
    """

    id: UUID
    wallet_address: str
    name: str
    role: Role
    email: str | None = None
    ledger_registered: bool = False
    created_at: datetime | None = None

    @staticmethod
    def new(
        *,
        wallet_address: str,
        name: str,
        role: Role,
        email: str | None = None,
    ) -> Identity:
        return Identity(
            id=uuid4(),
            wallet_address=wallet_address.strip().lower(),
            name=name.strip(),
            role=role,
            email=email,
            created_at=datetime.now(UTC),
        )


@dataclass(frozen=True, slots=True)
class OrganizationProfile:
    id: UUID
    identity_id: UUID
    description: str = ""
    website: str = ""

    @staticmethod
    def new(*, identity_id: UUID) -> OrganizationProfile:
        return OrganizationProfile(id=uuid4(), identity_id=identity_id)
