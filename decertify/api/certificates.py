"""Issued certificate endpoints.

- GET /v1/certificates?role=student     the caller's issued certificates
- GET /v1/certificates/{content_id}     public lookup by content id

The lookup is an off-chain convenience for verifiers; the ledger is the
authority on whether a certificate is valid.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from decertify.api.dependencies import raise_http, require_user
from decertify.api.requests import (
    PartyOut,
    RequestOut,
    party_out,
    request_out,
    require_matching_role,
)
from decertify.models.identity import Role
from decertify.models.principal import Principal
from decertify.services import request_service
from decertify.services.content_store import content_store
from decertify.services.errors import DecertifyError

router = APIRouter(prefix="/v1/certificates", tags=["certificates"])


class CertificateOut(BaseModel):
    content_id: str
    gateway_url: str
    request_id: str
    certificate_type: str
    usn: str
    year_of_graduation: int
    issued_at: datetime | None = None
    student: PartyOut | None = None
    organization: PartyOut | None = None


@router.get("", response_model=list[RequestOut])
async def list_certificates(
    principal: Annotated[Principal, Depends(require_user)],
    role: Annotated[Role, Query()] = Role.STUDENT,
) -> list[RequestOut]:
    require_matching_role(principal, role)
    try:
        rows = await request_service.list_issued_certificates(principal)
    except DecertifyError as err:
        raise_http(err)
    return [request_out(r.request, organization=r.counterpart) for r in rows]


@router.get("/{content_id}", response_model=CertificateOut)
async def lookup_certificate(content_id: str) -> CertificateOut:
    try:
        found = await request_service.lookup_certificate(content_id)
    except DecertifyError as err:
        raise_http(err)
    request = found.request
    return CertificateOut(
        content_id=content_id,
        gateway_url=content_store.gateway_url(content_id),
        request_id=str(request.id),
        certificate_type=request.details.certificate_type,
        usn=request.details.usn,
        year_of_graduation=request.details.year_of_graduation,
        issued_at=request.issued_at,
        student=party_out(found.student),
        organization=party_out(found.organization),
    )
