"""Durable sync job queue helpers (Redis/RQ)."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from redis import Redis
from rq import Queue, Retry
from rq.job import Job

from config import settings
from services.snapshot_store import SnapshotStore


SYNC_QUEUE_NAME = "sync_jobs"
SYNC_JOB_TIMEOUT_SECONDS = 3600


def get_redis_connection() -> Redis:
    """Build Redis connection used by RQ."""
    return Redis.from_url(settings.REDIS_URL)


def get_sync_queue(connection: Optional[Redis] = None) -> Queue:
    """Return the configured sync queue."""
    return Queue(
        name=SYNC_QUEUE_NAME,
        connection=connection or get_redis_connection(),
        default_timeout=SYNC_JOB_TIMEOUT_SECONDS,
    )


def enqueue_daily_sync_job(trigger: str = "queue", queue: Optional[Queue] = None) -> Job:
    """Enqueue one daily sync; keyed by UTC day and trigger."""
    queue = queue or get_sync_queue()
    day = datetime.now(timezone.utc).strftime("%Y%m%d")
    return queue.enqueue(
        "services.sync.process_daily_sync_job",
        trigger,
        job_id=f"daily-sync-{day}-{trigger}",
        retry=Retry(max=2, interval=[60, 300]),
        job_timeout=SYNC_JOB_TIMEOUT_SECONDS,
        result_ttl=86400,
        failure_ttl=86400,
    )


async def recover_stalled_sync_runs(
    max_age_minutes: Optional[int] = None,
    store: Optional[SnapshotStore] = None,
) -> int:
    """Mark stale running sync runs as failed after restarts/worker interruptions."""
    store = store or SnapshotStore()
    minutes = settings.SYNC_STALE_RUN_MINUTES if max_age_minutes is None else max_age_minutes
    return await store.recover_stalled_sync_runs(minutes)
