from __future__ import annotations

import logging
import time
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from insights.core.config import settings
from insights.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

DbDep = Annotated[Session, Depends(get_db)]


def database_reachable(db: Session) -> bool:
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Database check failed: %s", exc)
        return False
    return True


def cache_reachable() -> bool:
    """Redis is only a readiness requirement while the query cache is on."""
    if not (settings.CACHE_ENABLED and settings.REDIS_URL):
        return True
    try:
        from insights.db.redis_client import get_redis_client

        return bool(get_redis_client().ping())
    except Exception as exc:  # noqa: BLE001
        logger.warning("Redis check failed: %s", exc)
        return False


@router.get("/healthz")
async def healthz(db: DbDep) -> dict[str, str]:
    if not database_reachable(db):
        raise HTTPException(status_code=503, detail="Database connectivity check failed")
    return {"status": "ok"}


@router.get("/live")
async def live() -> dict[str, str]:
    """Process is up; touches no backend."""
    return {"status": "alive"}


@router.get("/ready")
async def ready(db: DbDep) -> dict[str, object]:
    started = time.perf_counter()
    checks: dict[str, object] = {"db": database_reachable(db), "redis": cache_reachable()}
    checks["latency_ms"] = int((time.perf_counter() - started) * 1000)
    if not (checks["db"] and checks["redis"]):
        raise HTTPException(status_code=503, detail=checks)
    return {"status": "ready", **checks}
