"""Certificate request endpoints.

- POST /v1/requests                    student files a request
- GET  /v1/requests?role=...           list own requests, counterpart joined
- GET  /v1/requests/{id}               reconciliation read (either party)
- PUT  /v1/requests/{id}/status        organization accepts or rejects
- PUT  /v1/requests/{id}/remarks       organization annotates a rejection
- POST /v1/requests/{id}/issue         organization uploads the document
- PUT  /v1/requests/{id}/issuance      retry the final step after a 500

Handlers only bind the caller and validate input shape; role, ownership
and state checks live in request_service / issuance_service.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from pydantic import BaseModel

from decertify.api.dependencies import raise_http, require_user
from decertify.core.config import SETTINGS
from decertify.models.certificate_request import (
    CertificateRequest,
    CredentialDetails,
    RequestStatus,
)
from decertify.models.identity import Identity, Role
from decertify.models.principal import Principal
from decertify.services import issuance_service, request_service
from decertify.services.errors import DecertifyError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/requests", tags=["requests"])


# --- Pydantic schemas ---


class RequestCreateIn(BaseModel):
    organization_id: UUID
    issuance_amount: str = "0"
    usn: str
    year_of_graduation: int
    certificate_type: str


class PartyOut(BaseModel):
    id: str
    name: str
    wallet_address: str
    email: str | None = None


class RequestOut(BaseModel):
    id: str
    student_id: str
    organization_id: str
    status: str
    issuance_amount: str
    verification_charge: str
    remarks: str | None = None
    ipfs_hash: str | None = None
    issued_at: datetime | None = None
    usn: str
    year_of_graduation: int
    certificate_type: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    student: PartyOut | None = None
    organization: PartyOut | None = None


class StatusUpdateIn(BaseModel):
    status: RequestStatus
    remarks: str | None = None
    verification_charge: str | None = None


class RemarksIn(BaseModel):
    remarks: str


class IssueOut(BaseModel):
    request_id: str
    status: str
    content_id: str
    original_content_id: str
    gateway_url: str


class IssuanceRetryIn(BaseModel):
    content_id: str


def party_out(identity: Identity | None) -> PartyOut | None:
    if identity is None:
        return None
    return PartyOut(
        id=str(identity.id),
        name=identity.name,
        wallet_address=identity.wallet_address,
        email=identity.email,
    )


def request_out(
    request: CertificateRequest,
    *,
    student: Identity | None = None,
    organization: Identity | None = None,
) -> RequestOut:
    return RequestOut(
        id=str(request.id),
        student_id=str(request.student_id),
        organization_id=str(request.organization_id),
        status=request.status.value,
        issuance_amount=request.issuance_amount,
        verification_charge=request.verification_charge,
        remarks=request.remarks,
        ipfs_hash=request.ipfs_hash,
        issued_at=request.issued_at,
        usn=request.details.usn,
        year_of_graduation=request.details.year_of_graduation,
        certificate_type=request.details.certificate_type,
        created_at=request.created_at,
        updated_at=request.updated_at,
        student=party_out(student),
        organization=party_out(organization),
    )


def require_matching_role(principal: Principal, role: Role) -> None:
    """The ``role`` filter must name the caller's own role."""
    if not principal.has_role(role):
        logger.warning(
            "Access denied: identity=%s role=%s asked for role=%s view",
            principal.identity_id,
            principal.role.value,
            role.value,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )


# --- Endpoints ---


@router.post("", response_model=RequestOut, status_code=status.HTTP_201_CREATED)
async def create_request(
    body: RequestCreateIn,
    principal: Annotated[Principal, Depends(require_user)],
) -> RequestOut:
    try:
        request = await request_service.create_request(
            principal,
            organization_id=body.organization_id,
            issuance_amount=body.issuance_amount,
            details=CredentialDetails(
                usn=body.usn,
                year_of_graduation=body.year_of_graduation,
                certificate_type=body.certificate_type,
            ),
        )
    except DecertifyError as err:
        raise_http(err)
    return request_out(request)


@router.get("", response_model=list[RequestOut])
async def list_requests(
    principal: Annotated[Principal, Depends(require_user)],
    role: Annotated[Role, Query()],
) -> list[RequestOut]:
    """Requests where the caller is the party named by ``role``."""
    require_matching_role(principal, role)
    try:
        match role:
            case Role.ORGANIZATION:
                rows = await request_service.list_organization_requests(principal)
                return [request_out(r.request, student=r.counterpart) for r in rows]
            case Role.STUDENT:
                rows = await request_service.list_student_requests(principal)
                return [request_out(r.request, organization=r.counterpart) for r in rows]
    except DecertifyError as err:
        raise_http(err)


@router.get("/{request_id}", response_model=RequestOut)
async def get_request(
    request_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
) -> RequestOut:
    """Current status and content id, for reconciling with the ledger."""
    try:
        request = await request_service.get_request(principal, request_id)
    except DecertifyError as err:
        raise_http(err)
    return request_out(request)


@router.put("/{request_id}/status", response_model=RequestOut)
async def update_status(
    request_id: UUID,
    body: StatusUpdateIn,
    principal: Annotated[Principal, Depends(require_user)],
) -> RequestOut:
    try:
        request = await request_service.set_status(
            principal,
            request_id,
            body.status,
            remarks=body.remarks,
            verification_charge=body.verification_charge,
        )
    except DecertifyError as err:
        raise_http(err)
    return request_out(request)


@router.put("/{request_id}/remarks", response_model=RequestOut)
async def update_remarks(
    request_id: UUID,
    body: RemarksIn,
    principal: Annotated[Principal, Depends(require_user)],
) -> RequestOut:
    try:
        request = await request_service.add_remarks(principal, request_id, body.remarks)
    except DecertifyError as err:
        raise_http(err)
    return request_out(request)


@router.post("/{request_id}/issue", response_model=IssueOut)
async def issue_certificate(
    request_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    document: Annotated[UploadFile, File()],
) -> IssueOut:
    """Embed the verification code, pin both documents, mark issued.

    The returned ``content_id`` is what the caller commits to the ledger.
    """
    limit = SETTINGS.max_document_bytes
    data = await document.read(limit + 1)
    if not data:
        raise HTTPException(status_code=422, detail="document is empty")
    if len(data) > limit:
        raise HTTPException(
            status_code=422, detail=f"document exceeds {limit} bytes"
        )

    try:
        result = await issuance_service.issue_certificate(principal, request_id, data)
    except DecertifyError as err:
        raise_http(err)
    return IssueOut(
        request_id=str(result.request_id),
        status=RequestStatus.ISSUED.value,
        content_id=result.content_id,
        original_content_id=result.original_content_id,
        gateway_url=result.gateway_url,
    )


@router.put("/{request_id}/issuance", response_model=RequestOut)
async def retry_issuance(
    request_id: UUID,
    body: IssuanceRetryIn,
    principal: Annotated[Principal, Depends(require_user)],
) -> RequestOut:
    """Retry only the mark-issued step with the content id from a 500."""
    try:
        request = await issuance_service.retry_mark_issued(
            principal, request_id, body.content_id
        )
    except DecertifyError as err:
        raise_http(err)
    return request_out(request)
