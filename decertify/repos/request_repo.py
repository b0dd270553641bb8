from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from decertify.db.engine import async_session_factory
from decertify.models.certificate_request import CertificateRequest, RequestStatus
from decertify.repos.pg_request_repo import PgRequestRepo


class RequestRepo(Protocol):
    async def get(self, request_id: UUID) -> CertificateRequest | None: ...

    async def add(self, request: CertificateRequest) -> None:
        """Persist a new request.

        Raises ValueError when the (student, organization) pair already has
        a pending request.
        """
        ...

    async def list_by_organization(
        self, organization_id: UUID
    ) -> list[CertificateRequest]: ...

    async def list_by_student(self, student_id: UUID) -> list[CertificateRequest]: ...

    async def list_issued_by_student(
        self, student_id: UUID
    ) -> list[CertificateRequest]: ...

    async def get_by_content_id(self, content_id: str) -> CertificateRequest | None: ...

    async def transition(
        self,
        request_id: UUID,
        *,
        expected: RequestStatus,
        new: RequestStatus,
        **changes: object,
    ) -> CertificateRequest | None:
        """Compare-and-swap on ``status``.

        Applies ``new`` plus ``changes`` only if the stored status is still
        ``expected``.  Returns the updated request, or None when the row is
        missing or its status moved on.
        """
        ...

    async def update_remarks(
        self, request_id: UUID, *, expected: RequestStatus, remarks: str
    ) -> CertificateRequest | None: ...


class InMemoryRequestRepo:
    """Dict-backed store.

    Every mutating method does its check and its write without awaiting
    in between, which makes each one atomic on a single event loop.
    """

    def __init__(self) -> None:
        self._by_id: dict[UUID, CertificateRequest] = {}

    async def get(self, request_id: UUID) -> CertificateRequest | None:
        return self._by_id.get(request_id)

    async def add(self, request: CertificateRequest) -> None:
        if request.id in self._by_id:
            raise ValueError("request id already exists")
        if request.status is RequestStatus.PENDING and any(
            r.student_id == request.student_id
            and r.organization_id == request.organization_id
            and r.status is RequestStatus.PENDING
            for r in self._by_id.values()
        ):
            raise ValueError("pending request already exists for this pair")
        self._by_id[request.id] = request

    async def list_by_organization(
        self, organization_id: UUID
    ) -> list[CertificateRequest]:
        return _ordered(
            r for r in self._by_id.values() if r.organization_id == organization_id
        )

    async def list_by_student(self, student_id: UUID) -> list[CertificateRequest]:
        return _ordered(r for r in self._by_id.values() if r.student_id == student_id)

    async def list_issued_by_student(
        self, student_id: UUID
    ) -> list[CertificateRequest]:
        return _ordered(
            r
            for r in self._by_id.values()
            if r.student_id == student_id
            and r.status is RequestStatus.ISSUED
            and r.ipfs_hash is not None
        )

    async def get_by_content_id(self, content_id: str) -> CertificateRequest | None:
        for r in self._by_id.values():
            if r.ipfs_hash == content_id:
                return r
        return None

    async def transition(
        self,
        request_id: UUID,
        *,
        expected: RequestStatus,
        new: RequestStatus,
        **changes: object,
    ) -> CertificateRequest | None:
        current = self._by_id.get(request_id)
        if current is None or current.status is not expected:
            return None
        updated = replace(
            current,
            status=new,
            updated_at=datetime.now(UTC),
            **changes,  # type: ignore[arg-type]
        )
        self._by_id[request_id] = updated
        return updated

    async def update_remarks(
        self, request_id: UUID, *, expected: RequestStatus, remarks: str
    ) -> CertificateRequest | None:
        current = self._by_id.get(request_id)
        if current is None or current.status is not expected:
            return None
        updated = replace(current, remarks=remarks, updated_at=datetime.now(UTC))
        self._by_id[request_id] = updated
        return updated


def _ordered(requests) -> list[CertificateRequest]:
    return sorted(requests, key=lambda r: r.created_at or datetime.min.replace(tzinfo=UTC))


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if async_session_factory is not None:
    request_repo: RequestRepo = PgRequestRepo(async_session_factory)
else:
    request_repo = InMemoryRequestRepo()
