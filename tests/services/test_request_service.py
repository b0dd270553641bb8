"""Tests for the certificate request state machine.

Services are async; each test drives them with asyncio.run against the
in-memory repositories that conftest resets between tests.
"""

from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest
from prometheus_client import REGISTRY

from decertify.models.certificate_request import (
    TRANSITIONS,
    CredentialDetails,
    RequestStatus,
    can_transition,
)
from decertify.models.identity import Identity, Role
from decertify.repos.request_repo import request_repo
from decertify.services import request_service
from decertify.services.errors import (
    DuplicateRequest,
    InvalidRole,
    InvalidTransition,
    NotFound,
    ValidationFailed,
)
from tests.conftest import create_identity, principal_of

_DETAILS = CredentialDetails(
    usn="1RV20CS001", year_of_graduation=2024, certificate_type="degree"
)


def _create(student: Identity, organization: Identity, amount: str = "0"):
    return asyncio.run(
        request_service.create_request(
            principal_of(student),
            organization_id=organization.id,
            details=_DETAILS,
            issuance_amount=amount,
        )
    )


def _accept(organization: Identity, request_id):
    return asyncio.run(
        request_service.set_status(
            principal_of(organization), request_id, RequestStatus.ACCEPTED
        )
    )


def _transitions(status: str) -> float:
    value = REGISTRY.get_sample_value(
        "certificate_request_transitions_total", {"status": status}
    )
    return value if value is not None else 0.0


# ---- transition table ----


@pytest.mark.parametrize(
    ("current", "new", "allowed"),
    [
        (RequestStatus.PENDING, RequestStatus.ACCEPTED, True),
        (RequestStatus.PENDING, RequestStatus.REJECTED, True),
        (RequestStatus.ACCEPTED, RequestStatus.ISSUED, True),
        (RequestStatus.PENDING, RequestStatus.ISSUED, False),
        (RequestStatus.REJECTED, RequestStatus.ISSUED, False),
        (RequestStatus.REJECTED, RequestStatus.ACCEPTED, False),
        (RequestStatus.ISSUED, RequestStatus.ACCEPTED, False),
        (RequestStatus.ACCEPTED, RequestStatus.REJECTED, False),
    ],
    ids=lambda v: v.value if isinstance(v, RequestStatus) else str(v),
)
def test_can_transition(current, new, allowed) -> None:
    assert can_transition(current, new) is allowed


def test_terminal_states_have_no_exits() -> None:
    assert TRANSITIONS[RequestStatus.REJECTED] == frozenset()
    assert TRANSITIONS[RequestStatus.ISSUED] == frozenset()


# ---- create ----


def test_create_request_is_pending(student, organization) -> None:
    before = _transitions("pending")
    request = _create(student, organization)
    assert request.status is RequestStatus.PENDING
    assert request.student_id == student.id
    assert request.organization_id == organization.id
    assert request.details == _DETAILS
    assert request.issuance_amount == "0"
    assert request.ipfs_hash is None
    assert request.issued_at is None
    assert _transitions("pending") - before == 1


def test_create_request_rejects_duplicate_pending_pair(student, organization) -> None:
    _create(student, organization)
    with pytest.raises(DuplicateRequest):
        _create(student, organization)


def test_create_request_allowed_again_after_decision(student, organization) -> None:
    first = _create(student, organization)
    _accept(organization, first.id)
    second = _create(student, organization)
    assert second.status is RequestStatus.PENDING
    assert second.id != first.id


def test_same_student_may_have_pending_requests_with_two_organizations(
    student, organization
) -> None:
    other_org = create_identity(Role.ORGANIZATION, "Other College")
    _create(student, organization)
    _create(student, other_org)
    assert len(asyncio.run(request_repo.list_by_student(student.id))) == 2


def test_create_request_requires_student_caller(organization) -> None:
    other_org = create_identity(Role.ORGANIZATION)
    with pytest.raises(InvalidRole):
        _create(other_org, organization)


def test_create_request_rejects_non_organization_target(student) -> None:
    other_student = create_identity(Role.STUDENT)
    with pytest.raises(InvalidRole):
        _create(student, other_student)


def test_create_request_unknown_organization(student) -> None:
    with pytest.raises(NotFound):
        asyncio.run(
            request_service.create_request(
                principal_of(student), organization_id=uuid4(), details=_DETAILS
            )
        )


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("0", "0"),
        ("0007", "7"),
        (" 42 ", "42"),
        ("115792089237316195423570985008687907853269984665640564039457584007913129639935",
         "115792089237316195423570985008687907853269984665640564039457584007913129639935"),
        ("0" * 100 + "5", "5"),
        (15, "15"),
    ],
    ids=["zero", "leading-zeros", "whitespace", "uint256-max", "long-zero-padding", "int"],
)
def test_normalize_amount_accepts(raw, expected) -> None:
    assert request_service.normalize_amount(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "-1",
        "1.5",
        "1e18",
        "abc",
        "١٢",
        -3,
        True,
        "1" * 79,
        "9" * 5000,
        "2" + "0" * 77,
        2**256,
    ],
    ids=[
        "empty",
        "negative",
        "decimal",
        "exponent",
        "letters",
        "non-ascii",
        "neg-int",
        "bool",
        "79-digits",
        "5000-digits",
        "above-uint256",
        "int-above-uint256",
    ],
)
def test_normalize_amount_rejects(raw) -> None:
    with pytest.raises(ValidationFailed):
        request_service.normalize_amount(raw)


def test_create_request_rejects_blank_usn(student, organization) -> None:
    with pytest.raises(ValidationFailed):
        asyncio.run(
            request_service.create_request(
                principal_of(student),
                organization_id=organization.id,
                details=CredentialDetails(
                    usn="  ", year_of_graduation=2024, certificate_type="degree"
                ),
            )
        )


@pytest.mark.parametrize(
    ("usn", "certificate_type"),
    [("U" * 65, "degree"), ("1RV20CS001", "t" * 129)],
    ids=["usn", "certificate-type"],
)
def test_create_request_rejects_overlong_details(
    student, organization, usn, certificate_type
) -> None:
    with pytest.raises(ValidationFailed, match="at most"):
        asyncio.run(
            request_service.create_request(
                principal_of(student),
                organization_id=organization.id,
                details=CredentialDetails(
                    usn=usn, year_of_graduation=2024, certificate_type=certificate_type
                ),
            )
        )
    assert asyncio.run(request_repo.list_by_student(student.id)) == []


def test_create_request_accepts_details_at_column_width(student, organization) -> None:
    request = asyncio.run(
        request_service.create_request(
            principal_of(student),
            organization_id=organization.id,
            details=CredentialDetails(
                usn="U" * 64, year_of_graduation=2024, certificate_type="t" * 128
            ),
        )
    )
    assert len(request.details.usn) == 64


def test_accept_with_out_of_range_charge_is_rejected(student, organization) -> None:
    request = _create(student, organization)
    with pytest.raises(ValidationFailed):
        asyncio.run(
            request_service.set_status(
                principal_of(organization),
                request.id,
                RequestStatus.ACCEPTED,
                verification_charge="9" * 5000,
            )
        )
    assert asyncio.run(request_repo.get(request.id)).status is RequestStatus.PENDING


# ---- set_status ----


def test_accept_moves_pending_to_accepted(student, organization) -> None:
    request = _create(student, organization)
    updated = asyncio.run(
        request_service.set_status(
            principal_of(organization),
            request.id,
            RequestStatus.ACCEPTED,
            verification_charge="0010",
        )
    )
    assert updated.status is RequestStatus.ACCEPTED
    assert updated.verification_charge == "10"
    assert updated.ipfs_hash is None
    assert updated.issued_at is None


def test_reject_with_remarks_then_second_transition_fails(student, organization) -> None:
    request = _create(student, organization)
    org = principal_of(organization)
    rejected = asyncio.run(
        request_service.set_status(
            org, request.id, RequestStatus.REJECTED, remarks="incomplete transcript"
        )
    )
    assert rejected.status is RequestStatus.REJECTED
    assert rejected.remarks == "incomplete transcript"

    with pytest.raises(InvalidTransition):
        asyncio.run(request_service.set_status(org, request.id, RequestStatus.ACCEPTED))
    with pytest.raises(InvalidTransition):
        asyncio.run(request_service.set_status(org, request.id, RequestStatus.REJECTED))


def test_remarks_with_accept_is_rejected(student, organization) -> None:
    request = _create(student, organization)
    with pytest.raises(ValidationFailed):
        asyncio.run(
            request_service.set_status(
                principal_of(organization),
                request.id,
                RequestStatus.ACCEPTED,
                remarks="looks good",
            )
        )
    assert asyncio.run(request_repo.get(request.id)).status is RequestStatus.PENDING


def test_set_status_cannot_target_issued(student, organization) -> None:
    request = _create(student, organization)
    with pytest.raises(ValidationFailed):
        asyncio.run(
            request_service.set_status(
                principal_of(organization), request.id, RequestStatus.ISSUED
            )
        )


def test_set_status_by_other_organization_is_not_found(student, organization) -> None:
    request = _create(student, organization)
    intruder = create_identity(Role.ORGANIZATION)
    with pytest.raises(NotFound):
        asyncio.run(
            request_service.set_status(
                principal_of(intruder), request.id, RequestStatus.ACCEPTED
            )
        )


def test_set_status_by_student_is_invalid_role(student, organization) -> None:
    request = _create(student, organization)
    with pytest.raises(InvalidRole):
        asyncio.run(
            request_service.set_status(
                principal_of(student), request.id, RequestStatus.ACCEPTED
            )
        )


def test_set_status_unknown_request(organization) -> None:
    with pytest.raises(NotFound):
        asyncio.run(
            request_service.set_status(
                principal_of(organization), uuid4(), RequestStatus.ACCEPTED
            )
        )


def test_concurrent_decisions_only_one_wins(student, organization) -> None:
    request = _create(student, organization)
    org = principal_of(organization)

    async def _race():
        return await asyncio.gather(
            request_service.set_status(org, request.id, RequestStatus.ACCEPTED),
            request_service.set_status(org, request.id, RequestStatus.REJECTED),
            return_exceptions=True,
        )

    outcomes = asyncio.run(_race())
    wins = [o for o in outcomes if not isinstance(o, Exception)]
    losses = [o for o in outcomes if isinstance(o, Exception)]
    assert len(wins) == 1
    assert len(losses) == 1
    assert isinstance(losses[0], InvalidTransition)
    assert asyncio.run(request_repo.get(request.id)).status is wins[0].status


# ---- add_remarks ----


def test_add_remarks_on_rejected(student, organization) -> None:
    request = _create(student, organization)
    org = principal_of(organization)
    asyncio.run(request_service.set_status(org, request.id, RequestStatus.REJECTED))
    updated = asyncio.run(request_service.add_remarks(org, request.id, "missing seal"))
    assert updated.remarks == "missing seal"
    assert updated.status is RequestStatus.REJECTED


def test_add_remarks_on_pending_is_invalid_transition(student, organization) -> None:
    request = _create(student, organization)
    with pytest.raises(InvalidTransition):
        asyncio.run(
            request_service.add_remarks(principal_of(organization), request.id, "x")
        )


# ---- mark_issued ----


def test_mark_issued_sets_hash_and_timestamp_together(student, organization) -> None:
    request = _create(student, organization)
    _accept(organization, request.id)
    issued = asyncio.run(request_service.mark_issued(request.id, "bafyfinal"))
    assert issued.status is RequestStatus.ISSUED
    assert issued.ipfs_hash == "bafyfinal"
    assert issued.issued_at is not None


def test_mark_issued_twice_same_id_is_noop(student, organization) -> None:
    request = _create(student, organization)
    _accept(organization, request.id)
    first = asyncio.run(request_service.mark_issued(request.id, "bafyfinal"))
    second = asyncio.run(request_service.mark_issued(request.id, "bafyfinal"))
    assert second == first
    assert second.issued_at == first.issued_at


def test_mark_issued_rejects_overlong_content_id(student, organization) -> None:
    request = _create(student, organization)
    _accept(organization, request.id)
    with pytest.raises(ValidationFailed):
        asyncio.run(request_service.mark_issued(request.id, "b" * 129))
    assert asyncio.run(request_repo.get(request.id)).status is RequestStatus.ACCEPTED


def test_mark_issued_twice_different_id_fails(student, organization) -> None:
    request = _create(student, organization)
    _accept(organization, request.id)
    asyncio.run(request_service.mark_issued(request.id, "bafyfinal"))
    with pytest.raises(InvalidTransition):
        asyncio.run(request_service.mark_issued(request.id, "bafyother"))
    assert asyncio.run(request_repo.get(request.id)).ipfs_hash == "bafyfinal"


@pytest.mark.parametrize("decision", [None, RequestStatus.REJECTED], ids=["pending", "rejected"])
def test_mark_issued_requires_accepted(student, organization, decision) -> None:
    request = _create(student, organization)
    if decision is not None:
        asyncio.run(
            request_service.set_status(principal_of(organization), request.id, decision)
        )
    with pytest.raises(InvalidTransition):
        asyncio.run(request_service.mark_issued(request.id, "bafyfinal"))
    stored = asyncio.run(request_repo.get(request.id))
    assert stored.ipfs_hash is None
    assert stored.issued_at is None


# ---- queries ----


def test_get_request_visible_to_both_parties_only(student, organization) -> None:
    request = _create(student, organization)
    assert asyncio.run(request_service.get_request(principal_of(student), request.id)) == request
    assert (
        asyncio.run(request_service.get_request(principal_of(organization), request.id))
        == request
    )
    stranger = create_identity(Role.STUDENT)
    with pytest.raises(NotFound):
        asyncio.run(request_service.get_request(principal_of(stranger), request.id))


def test_lists_join_counterpart(student, organization) -> None:
    request = _create(student, organization)
    org_rows = asyncio.run(
        request_service.list_organization_requests(principal_of(organization))
    )
    assert [r.request.id for r in org_rows] == [request.id]
    assert org_rows[0].counterpart == student

    student_rows = asyncio.run(
        request_service.list_student_requests(principal_of(student))
    )
    assert student_rows[0].counterpart == organization


def test_list_issued_only_returns_issued(student, organization) -> None:
    issued = _create(student, organization)
    _accept(organization, issued.id)
    asyncio.run(request_service.mark_issued(issued.id, "bafyfinal"))
    _create(student, organization)  # pending

    rows = asyncio.run(request_service.list_issued_certificates(principal_of(student)))
    assert [r.request.id for r in rows] == [issued.id]


def test_lookup_certificate(student, organization) -> None:
    request = _create(student, organization)
    _accept(organization, request.id)
    asyncio.run(request_service.mark_issued(request.id, "bafyfinal"))

    found = asyncio.run(request_service.lookup_certificate("bafyfinal"))
    assert found.request.id == request.id
    assert found.student == student
    assert found.organization == organization

    with pytest.raises(NotFound):
        asyncio.run(request_service.lookup_certificate("bafyunknown"))
