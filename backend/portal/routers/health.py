"""Liveness check with a database round trip."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from portal.core.deps import DbSession
from portal.models.types import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(session: DbSession) -> JSONResponse:
    """Report service status; 503 when the database is unreachable."""
    checks = {"status": "ok", "timestamp": utcnow().isoformat()}
    try:
        await session.execute(text("SELECT 1"))
        checks["database"] = "connected"
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        checks["database"] = "disconnected"
        checks["status"] = "degraded"

    return JSONResponse(checks, status_code=200 if checks["status"] == "ok" else 503)
