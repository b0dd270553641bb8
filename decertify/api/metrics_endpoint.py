"""Prometheus scrape endpoint.

Plain-text exposition format, including the certificate lifecycle
counters from core/metrics.py.  Restrict access at the ingress in
production; the counters reveal issuance volume per outcome.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose all Prometheus metrics in text exposition format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
