"""Issuance orchestrator: turn an ``accepted`` request into an ``issued`` one.

Steps, strictly sequential (the second upload depends on the first):

  1. authorize        caller is the owning organization, request is accepted
  2. upload_original  pin the document as received
  3. build_payload    gateway URL of the original
  4. transform        embed that URL as a QR code on page 1
  5. upload_final     pin the transformed document
  6. mark_issued      compare-and-swap accepted -> issued

A failure in steps 1-5 leaves the request ``accepted`` and surfaces the
failing step on the raised error.  Uploads are never compensated; a
pinned-but-unused document is harmless waste.  Step 6 is the one partial
failure window: both documents exist but the record did not move, which
is reported as PartialIssuance carrying the final content id so the
caller can retry step 6 alone via :func:`retry_mark_issued`.

The returned content id is the "prepare" half of a two-phase handshake;
committing it to the ledger is the caller's job.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import StrEnum
from uuid import UUID

from decertify.core.metrics import CONTENT_UPLOADS, ISSUANCE_OUTCOMES
from decertify.models.certificate_request import CertificateRequest, RequestStatus
from decertify.models.identity import Role
from decertify.models.principal import Principal
from decertify.repos.request_repo import RequestRepo, request_repo
from decertify.services import request_service
from decertify.services.content_store import ContentStore, content_store
from decertify.services.document_service import embed_verification_code
from decertify.services.errors import (
    DecertifyError,
    InvalidRole,
    InvalidTransition,
    MalformedDocument,
    NotFound,
    PartialIssuance,
)

logger = logging.getLogger(__name__)


class IssuanceStep(StrEnum):
    AUTHORIZE = "authorize"
    UPLOAD_ORIGINAL = "upload_original"
    BUILD_PAYLOAD = "build_payload"
    TRANSFORM = "transform"
    UPLOAD_FINAL = "upload_final"
    MARK_ISSUED = "mark_issued"


@dataclass(frozen=True, slots=True)
class IssuanceResult:
    request_id: UUID
    original_content_id: str
    content_id: str
    gateway_url: str


@contextmanager
def _at_step(request_id: UUID, step: IssuanceStep) -> Iterator[None]:
    """Count, log and tag any failure raised inside the block with *step*.

    Domain errors carry the step on ``exc.step`` (it reaches the HTTP
    detail); anything else gets an exception note and propagates as a 500.
    """
    try:
        yield
    except DecertifyError as exc:
        if exc.step is None:
            exc.step = step.value
        _record_failure(request_id, step, exc.message)
        raise
    except Exception as exc:
        exc.add_note(f"issuance step: {step.value}")
        _record_failure(request_id, step, repr(exc), exc_info=True)
        raise


def _record_failure(
    request_id: UUID, step: IssuanceStep, reason: str, *, exc_info: bool = False
) -> None:
    ISSUANCE_OUTCOMES.labels(outcome="failed", step=step.value).inc()
    logger.warning(
        "Issuance of request %s failed at %s: %s",
        request_id,
        step.value,
        reason,
        exc_info=exc_info,
        extra={
            "certificate_request_id": str(request_id),
            "issuance_step": step.value,
        },
    )


async def _authorize(
    caller: Principal, request_id: UUID, requests: RequestRepo
) -> CertificateRequest:
    if not caller.has_role(Role.ORGANIZATION):
        raise InvalidRole("only organizations can issue certificates")
    request = await requests.get(request_id)
    if request is None or request.organization_id != caller.identity_id:
        raise NotFound("certificate request not found")
    if request.status is not RequestStatus.ACCEPTED:
        raise InvalidTransition(
            f"request is {request.status.value}; only accepted requests can be issued"
        )
    return request


async def _upload(
    store: ContentStore,
    data: bytes,
    *,
    kind: str,
    request: CertificateRequest,
) -> str:
    try:
        content_id = await store.pin(
            data,
            name=f"decertify-{kind}-{request.id}.pdf",
            keyvalues={
                "requestId": str(request.id),
                "organizationId": str(request.organization_id),
                "studentId": str(request.student_id),
                "type": (
                    "original_certificate"
                    if kind == "original"
                    else "embedded_certificate_final"
                ),
            },
        )
    except Exception:
        CONTENT_UPLOADS.labels(kind=kind, result="error").inc()
        raise
    CONTENT_UPLOADS.labels(kind=kind, result="ok").inc()
    return content_id


async def issue_certificate(
    caller: Principal,
    request_id: UUID,
    document: bytes,
    *,
    requests: RequestRepo = request_repo,
    store: ContentStore | None = None,
) -> IssuanceResult:
    """Run the full pipeline for one request and return the final content id.

    Raises the step's own error (with ``step`` set) for failures in steps
    1-5 and PartialIssuance for a failure in step 6.
    """
    store = store or content_store
    log_extra = {"certificate_request_id": str(request_id)}

    with _at_step(request_id, IssuanceStep.AUTHORIZE):
        request = await _authorize(caller, request_id, requests)
        if not document:
            raise MalformedDocument("document is empty")

    with _at_step(request_id, IssuanceStep.UPLOAD_ORIGINAL):
        original_id = await _upload(store, document, kind="original", request=request)
    logger.info("Original pinned as %s", original_id, extra=log_extra)

    with _at_step(request_id, IssuanceStep.BUILD_PAYLOAD):
        payload = store.gateway_url(original_id)

    with _at_step(request_id, IssuanceStep.TRANSFORM):
        # PDF rewriting is CPU-bound; keep it off the event loop.
        final_bytes = await asyncio.to_thread(embed_verification_code, document, payload)

    with _at_step(request_id, IssuanceStep.UPLOAD_FINAL):
        final_id = await _upload(store, final_bytes, kind="final", request=request)
    logger.info("Final document pinned as %s", final_id, extra=log_extra)

    try:
        await request_service.mark_issued(request_id, final_id, requests=requests)
    except Exception as exc:
        ISSUANCE_OUTCOMES.labels(outcome="partial", step=IssuanceStep.MARK_ISSUED.value).inc()
        logger.error(
            "Request %s uploaded as %s but not marked issued: %s",
            request_id,
            final_id,
            exc,
            extra={
                **log_extra,
                "issuance_step": IssuanceStep.MARK_ISSUED.value,
                "content_id": final_id,
            },
        )
        raise PartialIssuance(
            "documents were uploaded but the request was not marked issued; "
            "re-read the request before retrying",
            content_id=final_id,
            original_content_id=original_id,
            step=IssuanceStep.MARK_ISSUED.value,
        ) from exc

    ISSUANCE_OUTCOMES.labels(outcome="issued", step=IssuanceStep.MARK_ISSUED.value).inc()
    logger.info(
        "Issued request %s content_id=%s",
        request_id,
        final_id,
        extra={**log_extra, "content_id": final_id},
    )
    return IssuanceResult(
        request_id=request_id,
        original_content_id=original_id,
        content_id=final_id,
        gateway_url=store.gateway_url(final_id),
    )


async def retry_mark_issued(
    caller: Principal,
    request_id: UUID,
    content_id: str,
    *,
    requests: RequestRepo = request_repo,
) -> CertificateRequest:
    """Re-run only the final step after a PartialIssuance.

    Safe to repeat with the same content id.  An InvalidTransition here
    means the record moved some other way and must be investigated, not
    retried.
    """
    with _at_step(request_id, IssuanceStep.AUTHORIZE):
        if not caller.has_role(Role.ORGANIZATION):
            raise InvalidRole("only organizations can issue certificates")
        request = await requests.get(request_id)
        if request is None or request.organization_id != caller.identity_id:
            raise NotFound("certificate request not found")

    with _at_step(request_id, IssuanceStep.MARK_ISSUED):
        return await request_service.mark_issued(
            request_id, content_id, requests=requests
        )
