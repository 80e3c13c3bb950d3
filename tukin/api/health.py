"""Health check endpoints."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tukin.db.session import get_db

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health():
    """Quick liveness check."""
    return {"status": "ok"}


@router.get("/ready")
async def readiness(request: Request, db: Session = Depends(get_db)):
    """Readiness check covering the database, Redis broadcast and token configuration."""
    db_ok = True
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        db_ok = False

    redis_ok = await request.app.state.invalidator.health_check()
    auth_ok = getattr(request.app.state, "tokens", None) is not None

    return {
        "database": "ok" if db_ok else "error",
        "redis": "disabled" if redis_ok is None else ("ok" if redis_ok else "error"),
        "auth": "ok" if auth_ok else "misconfigured",
        "status": "healthy" if db_ok and auth_ok and redis_ok is not False else "degraded",
    }
