"""
Health endpoints.

Lightweight and unauthenticated; responses never include secrets.
"""
import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from backend.core.database import get_engine

logger = logging.getLogger("vidify")

router = APIRouter(tags=["health"])

REQUIRED_TABLES = ("app_users", "subscriptions", "video_jobs", "voices")


@router.get("/")
def root():
    return {"message": "Welcome to the Vidify API"}


@router.get("/healthz")
def healthz():
    """Liveness: no dependencies."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    """Readiness: database reachable and required tables present."""
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.exec_driver_sql("SELECT 1")
        inspector = inspect(engine)
        missing = [t for t in REQUIRED_TABLES if not inspector.has_table(t)]
    except (SQLAlchemyError, ValueError):
        logger.error("readyz.failed", exc_info=True)
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

    if missing:
        detail = f"missing tables: {', '.join(missing)}"
        logger.warning("readyz.missing_tables", extra={"event_type": "readyz.missing_tables"})
        return JSONResponse(status_code=503, content={"status": "error", "detail": detail})
    return {"status": "ok"}
