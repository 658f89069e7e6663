"""
Health endpoints for the MOVIN Earn service.

Lightweight liveness and readiness checks that expose no account data.
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from movin_earn.core.config import settings
from movin_earn.core.database import get_engine, metadata
from movin_earn.features.engine.service import EarnEngine, get_earn_engine

logger = logging.getLogger("movin_earn")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz(engine: EarnEngine = Depends(get_earn_engine)):
    """Readiness: the engine is built and, when a database is configured, its tables exist."""
    payload = {"status": "ok", "paused": engine.is_paused(), "persistent": bool(settings.DATABASE_URL)}
    if not settings.DATABASE_URL:
        return payload

    try:
        inspector = inspect(get_engine())
        missing = [name for name in metadata.tables if not inspector.has_table(name)]
    except Exception as e:
        logger.error(f"[readyz] readiness check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

    if missing:
        detail = f"missing tables: {', '.join(sorted(missing))}"
        logger.warning(f"[readyz] {detail}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": detail})
    return payload
