"""PostgreSQL implementation of RequestRepo.

Status changes are single conditional UPDATE statements
(``WHERE id = :id AND status = :expected``), so two racing callers can
never both win a transition.  The pending-pair invariant is backed by the
partial unique index ``uq_certificate_requests_pending_pair``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import Select, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from decertify.db.tables import CertificateRequestRow
from decertify.models.certificate_request import (
    CertificateRequest,
    CredentialDetails,
    RequestStatus,
)

# Fields a transition may set; domain names match column names.
_MUTABLE_FIELDS = frozenset({"remarks", "verification_charge", "ipfs_hash", "issued_at"})


class PgRequestRepo:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, request_id: UUID) -> CertificateRequest | None:
        async with self._session_factory() as session:
            row = await session.get(CertificateRequestRow, request_id)
            return None if row is None else _row_to_request(row)

    async def add(self, request: CertificateRequest) -> None:
        row = CertificateRequestRow(
            id=request.id,
            student_id=request.student_id,
            organization_id=request.organization_id,
            status=request.status.value,
            issuance_amount=request.issuance_amount,
            verification_charge=request.verification_charge,
            remarks=request.remarks,
            usn=request.details.usn,
            year_of_graduation=request.details.year_of_graduation,
            certificate_type=request.details.certificate_type,
        )
        if request.created_at is not None:
            row.created_at = request.created_at
            row.updated_at = request.updated_at or request.created_at
        try:
            async with self._session_factory() as session, session.begin():
                session.add(row)
        except IntegrityError:
            raise ValueError("pending request already exists for this pair") from None

    async def list_by_organization(
        self, organization_id: UUID
    ) -> list[CertificateRequest]:
        return await self._list(
            select(CertificateRequestRow).where(
                CertificateRequestRow.organization_id == organization_id
            )
        )

    async def list_by_student(self, student_id: UUID) -> list[CertificateRequest]:
        return await self._list(
            select(CertificateRequestRow).where(
                CertificateRequestRow.student_id == student_id
            )
        )

    async def list_issued_by_student(
        self, student_id: UUID
    ) -> list[CertificateRequest]:
        return await self._list(
            select(CertificateRequestRow).where(
                CertificateRequestRow.student_id == student_id,
                CertificateRequestRow.status == RequestStatus.ISSUED.value,
                CertificateRequestRow.ipfs_hash.is_not(None),
            )
        )

    async def get_by_content_id(self, content_id: str) -> CertificateRequest | None:
        stmt = select(CertificateRequestRow).where(
            CertificateRequestRow.ipfs_hash == content_id
        )
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalars().first()
            return None if row is None else _row_to_request(row)

    async def transition(
        self,
        request_id: UUID,
        *,
        expected: RequestStatus,
        new: RequestStatus,
        **changes: object,
    ) -> CertificateRequest | None:
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"fields not settable on transition: {sorted(unknown)}")
        stmt = (
            update(CertificateRequestRow)
            .where(
                CertificateRequestRow.id == request_id,
                CertificateRequestRow.status == expected.value,
            )
            .values(status=new.value, updated_at=datetime.now(UTC), **changes)
            .returning(CertificateRequestRow)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session, session.begin():
            row = (await session.execute(stmt)).scalar_one_or_none()
            return None if row is None else _row_to_request(row)

    async def update_remarks(
        self, request_id: UUID, *, expected: RequestStatus, remarks: str
    ) -> CertificateRequest | None:
        stmt = (
            update(CertificateRequestRow)
            .where(
                CertificateRequestRow.id == request_id,
                CertificateRequestRow.status == expected.value,
            )
            .values(remarks=remarks, updated_at=datetime.now(UTC))
            .returning(CertificateRequestRow)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session, session.begin():
            row = (await session.execute(stmt)).scalar_one_or_none()
            return None if row is None else _row_to_request(row)

    async def _list(self, stmt: Select) -> list[CertificateRequest]:
        stmt = stmt.order_by(CertificateRequestRow.created_at)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_request(row) for row in rows]


def _row_to_request(row: CertificateRequestRow) -> CertificateRequest:
    return CertificateRequest(
        id=row.id,
        student_id=row.student_id,
        organization_id=row.organization_id,
        details=CredentialDetails(
            usn=row.usn,
            year_of_graduation=row.year_of_graduation,
            certificate_type=row.certificate_type,
        ),
        status=RequestStatus(row.status),
        issuance_amount=row.issuance_amount,
        verification_charge=row.verification_charge,
        remarks=row.remarks,
        ipfs_hash=row.ipfs_hash,
        issued_at=row.issued_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
