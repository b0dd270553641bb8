from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID, uuid4


class RequestStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    ISSUED = "issued"


# Valid status transitions.  ``issued`` is only reachable through
# ``accepted``; ``rejected`` and ``issued`` are terminal.
TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.ACCEPTED, RequestStatus.REJECTED}),
    RequestStatus.ACCEPTED: frozenset({RequestStatus.ISSUED}),
    RequestStatus.REJECTED: frozenset(),
    RequestStatus.ISSUED: frozenset(),
}


# Column widths; services validate against these before writing.
# uint256 needs at most 78 decimal digits.
AMOUNT_MAX_DIGITS = 78
USN_MAX_LEN = 64
CERTIFICATE_TYPE_MAX_LEN = 128
CONTENT_ID_MAX_LEN = 128


def can_transition(current: RequestStatus, new: RequestStatus) -> bool:
    return new in TRANSITIONS[current]


@dataclass(frozen=True, slots=True)
class CredentialDetails:
    """Credential metadata fixed when the student files the request."""

    usn: str
    year_of_graduation: int
    certificate_type: str


@dataclass(frozen=True, slots=True)
class CertificateRequest:
    """A student's request for a certificate from one organization.

    Amounts are unsigned integers kept as decimal strings (they round-trip
    to the ledger in wei and must not lose precision).  ``ipfs_hash`` and
    ``issued_at`` are populated together, only on the move to ``issued``.
    """

    id: UUID
    student_id: UUID
    organization_id: UUID
    details: CredentialDetails
    status: RequestStatus = RequestStatus.PENDING
    issuance_amount: str = "0"
    verification_charge: str = "0"
    remarks: str | None = None
    ipfs_hash: str | None = None
    issued_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @staticmethod
    def new(
        *,
        student_id: UUID,
        organization_id: UUID,
        details: CredentialDetails,
        issuance_amount: str = "0",
    ) -> CertificateRequest:
        now = datetime.now(UTC)
        return CertificateRequest(
            id=uuid4(),
            student_id=student_id,
            organization_id=organization_id,
            details=details,
            issuance_amount=issuance_amount,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_issued(self) -> bool:
        return self.status is RequestStatus.ISSUED
