"""Certificate request state machine.

    pending ──► accepted ──► issued
       │
       └──────► rejected

Students create requests; the addressed organization accepts or rejects
them; only the issuance orchestrator moves ``accepted`` to ``issued``.
Every status write goes through ``RequestRepo.transition``, a
compare-and-swap on the current status, so concurrent callers cannot both
win the same transition.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from decertify.core.metrics import REQUEST_TRANSITIONS
from decertify.models.certificate_request import (
    AMOUNT_MAX_DIGITS,
    CERTIFICATE_TYPE_MAX_LEN,
    CONTENT_ID_MAX_LEN,
    USN_MAX_LEN,
    CertificateRequest,
    CredentialDetails,
    RequestStatus,
    can_transition,
)
from decertify.models.identity import Identity, Role
from decertify.models.principal import Principal
from decertify.repos.identity_repo import IdentityRepo, identity_repo
from decertify.repos.request_repo import RequestRepo, request_repo
from decertify.services.errors import (
    DuplicateRequest,
    InvalidRole,
    InvalidTransition,
    NotFound,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

_DECIDABLE = frozenset({RequestStatus.ACCEPTED, RequestStatus.REJECTED})
_UINT256_MAX = 2**256 - 1


@dataclass(frozen=True, slots=True)
class RequestWithParty:
    """A request plus the identity on the other side of it."""

    request: CertificateRequest
    counterpart: Identity | None


def normalize_amount(value: str | int, field: str = "amount") -> str:
    """Validate an unsigned integer amount and return it as a decimal string."""
    if isinstance(value, bool):
        raise ValidationFailed(f"{field} must be an unsigned integer")
    if isinstance(value, int):
        if value < 0:
            raise ValidationFailed(f"{field} must not be negative")
        if value > _UINT256_MAX:
            raise ValidationFailed(f"{field} exceeds the uint256 range")
        return str(value)
    text = value.strip()
    if not text.isascii() or not text.isdigit():
        raise ValidationFailed(f"{field} must be an unsigned integer string")
    # Length first: int() refuses very long digit strings with a ValueError.
    digits = text.lstrip("0") or "0"
    if len(digits) > AMOUNT_MAX_DIGITS or int(digits) > _UINT256_MAX:
        raise ValidationFailed(f"{field} exceeds the uint256 range")
    return digits


def _require_role(caller: Principal, role: Role, action: str) -> None:
    if not caller.has_role(role):
        logger.warning(
            "Access denied: identity=%s role=%s cannot %s",
            caller.identity_id,
            caller.role.value,
            action,
        )
        raise InvalidRole(f"only {role.value}s can {action}")


def _validate_details(details: CredentialDetails) -> CredentialDetails:
    usn = details.usn.strip()
    certificate_type = details.certificate_type.strip()
    if not usn:
        raise ValidationFailed("usn must be non-empty")
    if not certificate_type:
        raise ValidationFailed("certificate type must be non-empty")
    if len(usn) > USN_MAX_LEN:
        raise ValidationFailed(f"usn must be at most {USN_MAX_LEN} characters")
    if len(certificate_type) > CERTIFICATE_TYPE_MAX_LEN:
        raise ValidationFailed(
            f"certificate type must be at most {CERTIFICATE_TYPE_MAX_LEN} characters"
        )
    if not 1900 <= details.year_of_graduation <= 2200:
        raise ValidationFailed("year of graduation is out of range")
    return CredentialDetails(
        usn=usn,
        year_of_graduation=details.year_of_graduation,
        certificate_type=certificate_type,
    )


async def _owned_request(
    requests: RequestRepo, caller: Principal, request_id: UUID
) -> CertificateRequest:
    """Load a request addressed to the calling organization, else NotFound."""
    request = await requests.get(request_id)
    if request is None or request.organization_id != caller.identity_id:
        raise NotFound("certificate request not found")
    return request


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


async def create_request(
    caller: Principal,
    *,
    organization_id: UUID,
    details: CredentialDetails,
    issuance_amount: str | int = "0",
    requests: RequestRepo = request_repo,
    identities: IdentityRepo = identity_repo,
) -> CertificateRequest:
    """File a new ``pending`` request from the calling student."""
    _require_role(caller, Role.STUDENT, "request certificates")

    student = await identities.get_by_id(caller.identity_id)
    if student is None or student.role is not Role.STUDENT:
        raise InvalidRole("caller is not a registered student")

    organization = await identities.get_by_id(organization_id)
    if organization is None:
        raise NotFound("organization not found")
    if organization.role is not Role.ORGANIZATION:
        raise InvalidRole("target identity is not an organization")

    request = CertificateRequest.new(
        student_id=student.id,
        organization_id=organization.id,
        details=_validate_details(details),
        issuance_amount=normalize_amount(issuance_amount, "issuance amount"),
    )
    try:
        await requests.add(request)
    except ValueError:
        logger.warning(
            "Rejected duplicate pending request student=%s organization=%s",
            student.id,
            organization.id,
        )
        raise DuplicateRequest(
            "you already have a pending request with this organization"
        ) from None

    REQUEST_TRANSITIONS.labels(status=RequestStatus.PENDING.value).inc()
    logger.info(
        "Created certificate request id=%s student=%s organization=%s",
        request.id,
        student.id,
        organization.id,
        extra={"certificate_request_id": str(request.id)},
    )
    return request


async def set_status(
    caller: Principal,
    request_id: UUID,
    new_status: RequestStatus,
    *,
    remarks: str | None = None,
    verification_charge: str | int | None = None,
    requests: RequestRepo = request_repo,
) -> CertificateRequest:
    """Accept or reject a ``pending`` request addressed to the caller."""
    _require_role(caller, Role.ORGANIZATION, "update request status")

    if new_status not in _DECIDABLE:
        raise ValidationFailed("status must be 'accepted' or 'rejected'")
    remarks = remarks.strip() if remarks else None
    if remarks and new_status is not RequestStatus.REJECTED:
        raise ValidationFailed("remarks can only be attached when rejecting")
    if verification_charge is not None and new_status is not RequestStatus.ACCEPTED:
        raise ValidationFailed("verification charge can only be set when accepting")

    current = await _owned_request(requests, caller, request_id)
    if not can_transition(current.status, new_status):
        raise InvalidTransition(
            f"request is {current.status.value} and cannot become {new_status.value}"
        )

    changes: dict[str, object] = {}
    if remarks:
        changes["remarks"] = remarks
    if verification_charge is not None:
        changes["verification_charge"] = normalize_amount(
            verification_charge, "verification charge"
        )

    updated = await requests.transition(
        request_id, expected=RequestStatus.PENDING, new=new_status, **changes
    )
    if updated is None:
        # Lost a race with another decision on the same request.
        raise InvalidTransition("request is no longer pending")

    REQUEST_TRANSITIONS.labels(status=new_status.value).inc()
    logger.info(
        "Request %s moved pending -> %s by organization=%s",
        request_id,
        new_status.value,
        caller.identity_id,
        extra={"certificate_request_id": str(request_id)},
    )
    return updated


async def add_remarks(
    caller: Principal,
    request_id: UUID,
    remarks: str,
    *,
    requests: RequestRepo = request_repo,
) -> CertificateRequest:
    """Attach or replace remarks on a rejected request."""
    _require_role(caller, Role.ORGANIZATION, "add remarks")
    remarks = remarks.strip()
    if not remarks:
        raise ValidationFailed("remarks must be non-empty")

    current = await _owned_request(requests, caller, request_id)
    if current.status is not RequestStatus.REJECTED:
        raise InvalidTransition("remarks can only be added to rejected requests")

    updated = await requests.update_remarks(
        request_id, expected=RequestStatus.REJECTED, remarks=remarks
    )
    if updated is None:
        raise InvalidTransition("remarks can only be added to rejected requests")
    return updated


async def mark_issued(
    request_id: UUID,
    content_id: str,
    *,
    requests: RequestRepo = request_repo,
) -> CertificateRequest:
    """Move an ``accepted`` request to ``issued`` with its final content id.

    Internal: only the issuance orchestrator calls this, after both
    uploads succeeded.  Repeating the call with the same content id is a
    no-op that returns the stored record; any other state raises
    InvalidTransition, which callers must not retry blindly.
    """
    if not content_id:
        raise ValidationFailed("content id must be non-empty")
    if len(content_id) > CONTENT_ID_MAX_LEN:
        raise ValidationFailed(
            f"content id must be at most {CONTENT_ID_MAX_LEN} characters"
        )

    updated = await requests.transition(
        request_id,
        expected=RequestStatus.ACCEPTED,
        new=RequestStatus.ISSUED,
        ipfs_hash=content_id,
        issued_at=datetime.now(UTC),
    )
    if updated is not None:
        REQUEST_TRANSITIONS.labels(status=RequestStatus.ISSUED.value).inc()
        logger.info(
            "Request %s issued content_id=%s",
            request_id,
            content_id,
            extra={
                "certificate_request_id": str(request_id),
                "content_id": content_id,
            },
        )
        return updated

    current = await requests.get(request_id)
    if current is None:
        raise NotFound("certificate request not found")
    if current.status is RequestStatus.ISSUED and current.ipfs_hash == content_id:
        logger.info("Request %s already issued with %s, no-op", request_id, content_id)
        return current
    raise InvalidTransition(
        f"request is {current.status.value} and cannot be marked issued"
        + (f" (already issued as {current.ipfs_hash})" if current.ipfs_hash else "")
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_request(
    caller: Principal,
    request_id: UUID,
    *,
    requests: RequestRepo = request_repo,
) -> CertificateRequest:
    """Reconciliation read: either party may fetch status and content id."""
    request = await requests.get(request_id)
    if request is None:
        raise NotFound("certificate request not found")

    match caller.role:
        case Role.STUDENT:
            is_party = request.student_id == caller.identity_id
        case Role.ORGANIZATION:
            is_party = request.organization_id == caller.identity_id
    if not is_party:
        raise NotFound("certificate request not found")
    return request


async def _with_counterparts(
    found: list[CertificateRequest],
    counterpart_of,
    identities: IdentityRepo,
) -> list[RequestWithParty]:
    people = await identities.get_many({counterpart_of(r) for r in found})
    return [RequestWithParty(r, people.get(counterpart_of(r))) for r in found]


async def list_organization_requests(
    caller: Principal,
    *,
    requests: RequestRepo = request_repo,
    identities: IdentityRepo = identity_repo,
) -> list[RequestWithParty]:
    """All requests addressed to the calling organization, with the student."""
    _require_role(caller, Role.ORGANIZATION, "list organization requests")
    found = await requests.list_by_organization(caller.identity_id)
    return await _with_counterparts(found, lambda r: r.student_id, identities)


async def list_student_requests(
    caller: Principal,
    *,
    requests: RequestRepo = request_repo,
    identities: IdentityRepo = identity_repo,
) -> list[RequestWithParty]:
    """All requests filed by the calling student, with the organization."""
    _require_role(caller, Role.STUDENT, "list student requests")
    found = await requests.list_by_student(caller.identity_id)
    return await _with_counterparts(found, lambda r: r.organization_id, identities)


async def list_issued_certificates(
    caller: Principal,
    *,
    requests: RequestRepo = request_repo,
    identities: IdentityRepo = identity_repo,
) -> list[RequestWithParty]:
    _require_role(caller, Role.STUDENT, "list received certificates")
    found = await requests.list_issued_by_student(caller.identity_id)
    return await _with_counterparts(found, lambda r: r.organization_id, identities)


@dataclass(frozen=True, slots=True)
class CertificateLookup:
    request: CertificateRequest
    student: Identity | None
    organization: Identity | None


async def lookup_certificate(
    content_id: str,
    *,
    requests: RequestRepo = request_repo,
    identities: IdentityRepo = identity_repo,
) -> CertificateLookup:
    """Public off-chain lookup of an issued certificate by content id.

    The ledger remains authoritative; this only says what this service
    recorded when it issued the document.
    """
    request = await requests.get_by_content_id(content_id)
    if request is None or not request.is_issued:
        raise NotFound("no issued certificate has this content id")
    people = await identities.get_many({request.student_id, request.organization_id})
    return CertificateLookup(
        request=request,
        student=people.get(request.student_id),
        organization=people.get(request.organization_id),
    )
