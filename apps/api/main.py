"""
Channel Sync API - FastAPI Backend
Runs the daily YouTube sync and serves funnel analytics over stored snapshots.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import ConfigurationError, settings, validate_security_settings
from database import engine, Base
import models  # noqa: F401
from routers import analytics, health, reporting, sync
from services.sync_queue import recover_stalled_sync_runs

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


async def _bootstrap_schema() -> None:
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        print("🗄️ Database schema verified.")
    except Exception as e:
        print(f"⚠️ Database bootstrap skipped: {e}")


async def _recover_interrupted_runs() -> None:
    try:
        recovered = await recover_stalled_sync_runs()
        if recovered:
            print(f"♻️ Marked {recovered} interrupted sync runs as failed.")
    except Exception as exc:
        print(f"⚠️ Stalled sync run recovery skipped: {exc}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    print(f"🚀 Starting Channel Sync API ({settings.ENVIRONMENT})...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        await _bootstrap_schema()
    await _recover_interrupted_runs()
    yield
    await engine.dispose()
    print("👋 Shutting down API...")


app = FastAPI(
    title="Channel Sync API",
    description="Sync YouTube channel metrics into daily per-video snapshots and funnel insights",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": f"Server misconfigured: {exc}"})


app.include_router(health.router, tags=["Health"])
app.include_router(sync.router, prefix="/cron", tags=["Sync"])
app.include_router(reporting.router, prefix="/reporting", tags=["Reporting"])
app.include_router(analytics.router, prefix="/analytics", tags=["Analytics"])


@app.get("/")
async def root():
    return {
        "name": "Channel Sync API",
        "version": "0.1.0",
        "environment": settings.ENVIRONMENT,
    }
