"""
Daily sync endpoints invoked by the scheduler (or manually from the dashboard).
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from routers.auth_scope import require_cron_auth, require_cron_secret
from services.sync import run_daily_sync_service
from services.sync_queue import enqueue_daily_sync_job

router = APIRouter()
logger = logging.getLogger(__name__)


@router.api_route("/daily-sync", methods=["GET", "POST"])
async def daily_sync(
    manual: bool = Query(False),
    _: None = Depends(require_cron_auth),
):
    """
    Run the daily sync inline.

    Returns 200 with the per-connection report even when every connection
    failed; 500 only when the run itself could not proceed.
    """
    report = await run_daily_sync_service("manual" if manual else "cron")
    if not report.get("success"):
        return JSONResponse(status_code=500, content=report)
    return report


@router.post("/daily-sync/enqueue")
async def enqueue_daily_sync(_: None = Depends(require_cron_secret)):
    """Queue the daily sync on the RQ worker instead of running it in-request."""
    try:
        job = enqueue_daily_sync_job("queue")
    except RedisError as exc:
        logger.warning("Could not enqueue daily sync: %s", exc)
        raise HTTPException(status_code=503, detail="Sync queue unavailable") from exc
    return {"queued": True, "job_id": job.id}
