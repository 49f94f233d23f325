"""
Health check endpoints.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import select, text
import redis.asyncio as redis

from config import settings
from database import async_session_maker, engine
from models.sync_run import SyncRun

router = APIRouter()


async def _database_status() -> str:
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    return "up"


async def _redis_status() -> str:
    client = redis.from_url(settings.REDIS_URL)
    try:
        await client.ping()
    finally:
        await client.aclose()
    return "up"


async def _last_sync_run() -> Optional[Dict[str, Any]]:
    async with async_session_maker() as db:
        result = await db.execute(select(SyncRun).order_by(SyncRun.started_at.desc()).limit(1))
        run = result.scalar_one_or_none()
    if run is None:
        return None
    return {
        "status": run.status,
        "trigger": run.trigger,
        "started_at": run.started_at.isoformat() if run.started_at else None,
        "connections_processed": run.connections_processed,
    }


@router.get("/health")
async def health_check():
    """
    Health check endpoint.
    Database and Redis failures degrade the status instead of failing the probe.
    """
    health_status: Dict[str, Any] = {
        "status": "healthy",
        "api": "up",
        "database": "unknown",
        "redis": "unknown",
        "last_sync_run": None,
    }

    try:
        health_status["database"] = await _database_status()
        health_status["last_sync_run"] = await _last_sync_run()
    except Exception as e:
        health_status["database"] = f"down: {e}"
        health_status["status"] = "degraded"

    try:
        health_status["redis"] = await _redis_status()
    except Exception as e:
        health_status["redis"] = f"down: {e}"
        health_status["status"] = "degraded"

    return health_status


@router.get("/health/ready")
async def readiness_check():
    """Ready once the sync pipeline has the secrets it cannot run without."""
    required = {
        "TOKEN_ENCRYPTION_KEY": settings.TOKEN_ENCRYPTION_KEY,
        "GOOGLE_CLIENT_ID": settings.GOOGLE_CLIENT_ID,
        "GOOGLE_CLIENT_SECRET": settings.GOOGLE_CLIENT_SECRET,
    }
    missing = [name for name, value in required.items() if not (value or "").strip()]
    if missing:
        return JSONResponse(status_code=503, content={"ready": False, "missing": missing})
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    return {"alive": True}
