"""
Health and readiness checks
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.deps import get_storage
from app.core.config import settings
from app.core.logger import logger
from app.db.database import get_db

router = APIRouter()


def _check_database(db: Session) -> tuple[str, str]:
    """Returns (status, detail). Status is 'ok' or 'error'."""
    try:
        db.execute(text("SELECT 1"))
        return "ok", "Database reachable"
    except SQLAlchemyError as e:
        logger.error(f"Health check database ping failed: {str(e)}")
        return "error", "Database unreachable"


@router.get("")
def health(
    deep: bool = Query(False, description="Also check document storage"),
    db: Session = Depends(get_db),
    storage=Depends(get_storage)
):
    checks = {"database": dict(zip(("status", "detail"), _check_database(db)))}
    if deep:
        checks["storage"] = dict(zip(("status", "detail"), storage.check_bucket()))

    healthy = all(c["status"] == "ok" for c in checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "healthy" if healthy else "degraded", "app": settings.APP_NAME, "checks": checks},
    )
