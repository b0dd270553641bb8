"""Health and readiness endpoints.

  /health (liveness): the process answers.  Always 200; the body says
    which backing services are configured and whether they respond, so a
    dashboard can show "alive but degraded" without triggering restarts.

  /ready (readiness): 503 while a configured database is unreachable.
    The content store is not probed here: Pinata outages only affect
    issuance, which reports UploadFailed on its own, while every other
    endpoint keeps working.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response

from decertify.db.engine import engine, ping_database
from decertify.services.content_store import PinataContentStore, content_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _database_status() -> str:
    if engine is None:
        return "not_configured"
    try:
        await ping_database()
    except Exception as exc:
        logger.warning("Database ping failed: %s", exc)
        return "degraded"
    return "ok"


def _content_store_status() -> str:
    if isinstance(content_store, PinataContentStore):
        return "pinata"
    return "in_memory"


@router.get("/health")
async def health() -> dict:
    """Liveness probe plus dependency status.

    Returns 200 even when degraded; the ``status`` field carries the
    actual health.
    """
    checks = {
        "database": await _database_status(),
        "content_store": _content_store_status(),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    """Readiness probe: 503 if the configured database is down."""
    if await _database_status() == "degraded":
        return Response(status_code=503)
    return Response(status_code=200)
