"""
Daily sync orchestrator.

Per connection: TokenCheck -> Discover -> FetchAnalytics -> FetchReporting ->
Reconcile -> Done. Only a token failure stops a connection early; every
later step records its failure and the pipeline keeps whatever data it has.
Configuration errors abort the whole run.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from analysis.reconcile import ReconciliationEngine
from config import ConfigurationError, settings
from ingestion.adapters import SourceAdapters, build_source_adapters
from ingestion.types import AnalyticsVideoMetrics, DiscoveredVideo, ReportingResult
from services.credentials import CredentialVault, utc_now
from services.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

REPORTING_JOB_NAME = "Daily channel sync"


class SyncStep(str, Enum):
    TOKEN_CHECK = "token_check"
    DISCOVER = "discover"
    FETCH_ANALYTICS = "fetch_analytics"
    FETCH_REPORTING = "fetch_reporting"
    RECONCILE = "reconcile"


class ConnectionStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class StepOutcome(Generic[T]):
    """Result of one step: a value, or the error message that replaced it."""

    step: SyncStep
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ConnectionSyncResult:
    connection_id: str
    channel_title: Optional[str] = None
    status: ConnectionStatus = ConnectionStatus.SUCCESS
    videos_discovered: int = 0
    videos_updated: int = 0
    snapshots_created: int = 0
    errors: List[str] = field(default_factory=list)
    steps: List[StepOutcome] = field(default_factory=list)

    def record(self, outcome: StepOutcome) -> StepOutcome:
        self.steps.append(outcome)
        if not outcome.ok:
            self.errors.append(f"{outcome.step.value}: {outcome.error}")
        return outcome

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connectionId": self.connection_id,
            "channelTitle": self.channel_title,
            "status": self.status.value,
            "videosDiscovered": self.videos_discovered,
            "videosUpdated": self.videos_updated,
            "snapshotsCreated": self.snapshots_created,
            "errors": list(self.errors),
            "steps": [{"step": s.step.value, "ok": s.ok} for s in self.steps],
        }


async def run_step(step: SyncStep, fn: Callable[[], Awaitable[T]]) -> StepOutcome[T]:
    """Run one step, turning any failure except misconfiguration into an outcome."""
    try:
        return StepOutcome(step=step, value=await fn())
    except ConfigurationError:
        raise
    except Exception as e:
        logger.warning("Sync step %s failed: %s", step.value, e)
        return StepOutcome(step=step, error=str(e) or e.__class__.__name__)


class SyncOrchestrator:
    """Runs the daily sync for every active connection."""

    def __init__(
        self,
        store: Optional[SnapshotStore] = None,
        vault: Optional[CredentialVault] = None,
        adapter_factory: Callable[[str], SourceAdapters] = build_source_adapters,
        engine: Optional[ReconciliationEngine] = None,
        clock: Callable[[], datetime] = utc_now,
        batch_size: Optional[int] = None,
        batch_delay_seconds: Optional[float] = None,
    ):
        self.store = store or SnapshotStore()
        self.clock = clock
        self.vault = vault or CredentialVault(self.store, clock=clock)
        self.adapter_factory = adapter_factory
        self.engine = engine or ReconciliationEngine()
        self.batch_size = max(int(batch_size or settings.SYNC_CHANNEL_BATCH_SIZE), 1)
        self.batch_delay_seconds = (
            settings.SYNC_BATCH_DELAY_SECONDS if batch_delay_seconds is None else batch_delay_seconds
        )

    def snapshot_day(self) -> date:
        """Analytics data lags; the latest complete day is yesterday (UTC)."""
        return (self.clock() - timedelta(days=1)).date()

    async def run_daily_sync(self) -> Dict[str, Any]:
        """
        Sync every active connection.

        Returns {success, connectionsProcessed, results, duration_ms}. Raises
        ConfigurationError (and storage errors from listing connections) to
        the caller, which reports them as a failed run.
        """
        started = time.monotonic()
        connections = await self.store.list_active_connections()
        logger.info("Daily sync starting for %d connections", len(connections))

        results: List[ConnectionSyncResult] = []
        for i in range(0, len(connections), self.batch_size):
            batch = connections[i:i + self.batch_size]
            if i > 0 and self.batch_delay_seconds > 0:
                await asyncio.sleep(self.batch_delay_seconds)

            settled = await asyncio.gather(
                *(self.sync_connection(c) for c in batch),
                return_exceptions=True,
            )
            for connection, outcome in zip(batch, settled):
                if isinstance(outcome, ConfigurationError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    logger.exception("Unexpected failure syncing connection %s", connection.id, exc_info=outcome)
                    outcome = ConnectionSyncResult(
                        connection_id=connection.id,
                        channel_title=connection.youtube_channel_title,
                        status=ConnectionStatus.FAILED,
                        errors=[str(outcome)],
                    )
                results.append(outcome)

        duration_ms = int((time.monotonic() - started) * 1000)
        failed = sum(1 for r in results if r.status == ConnectionStatus.FAILED)
        logger.info(
            "Daily sync finished: %d connections, %d failed, %dms",
            len(results),
            failed,
            duration_ms,
        )
        return {
            "success": True,
            "connectionsProcessed": len(results),
            "results": [r.to_dict() for r in results],
            "duration_ms": duration_ms,
        }

    async def sync_connection(self, connection: Any) -> ConnectionSyncResult:
        result = ConnectionSyncResult(
            connection_id=connection.id,
            channel_title=connection.youtube_channel_title,
        )

        token = result.record(
            await run_step(SyncStep.TOKEN_CHECK, lambda: self.vault.ensure_valid_access_token(connection))
        )
        if not token.ok:
            return await self._fail(connection, result)

        channel = await self.store.get_client_channel(connection.youtube_channel_id)
        if channel is None:
            result.errors.append("No matching client channel in database")
            return await self._fail(connection, result)
        result.channel_title = result.channel_title or channel.name

        adapters = self.adapter_factory(token.value)
        day = self.snapshot_day()

        discovered = result.record(await run_step(SyncStep.DISCOVER, lambda: self._discover(adapters, channel)))
        discovered_videos: List[DiscoveredVideo] = discovered.value or []
        result.videos_discovered = len(discovered_videos)

        analytics = result.record(
            await run_step(
                SyncStep.FETCH_ANALYTICS,
                lambda: adapters.analytics.fetch_video_metrics(connection.youtube_channel_id, day, day),
            )
        )
        reporting = result.record(
            await run_step(SyncStep.FETCH_REPORTING, lambda: self._fetch_reporting(adapters, connection))
        )

        persisted = result.record(
            await run_step(
                SyncStep.RECONCILE,
                lambda: self._reconcile_and_persist(
                    channel.id,
                    discovered_videos,
                    analytics.value or {},
                    reporting.value,
                    day,
                ),
            )
        )
        if persisted.ok:
            result.videos_updated, result.snapshots_created = persisted.value

        result.status = ConnectionStatus.PARTIAL if result.errors else ConnectionStatus.SUCCESS
        await self.store.mark_connection_synced(
            connection.id,
            self.clock(),
            error="; ".join(result.errors) or None,
        )
        return result

    async def _fail(self, connection: Any, result: ConnectionSyncResult) -> ConnectionSyncResult:
        result.status = ConnectionStatus.FAILED
        message = "; ".join(result.errors)
        logger.warning("Connection %s failed: %s", connection.id, message)
        await self.store.mark_connection_error(connection.id, message)
        return result

    async def _discover(self, adapters: SourceAdapters, channel: Any) -> List[DiscoveredVideo]:
        videos = await adapters.data.discover_videos(channel.youtube_channel_id)
        await self.store.upsert_discovered_videos(channel.id, videos, content_source=channel.name)
        return videos

    async def _fetch_reporting(self, adapters: SourceAdapters, connection: Any) -> Optional[ReportingResult]:
        """Latest report for the connection's job; creates the job when missing."""
        job_id = connection.reporting_job_id
        if not job_id:
            if not settings.SYNC_AUTO_CREATE_REPORTING_JOB:
                return None
            job = await adapters.reporting.ensure_job(REPORTING_JOB_NAME)
            if job is None:
                return None
            await self.store.set_reporting_job(connection.id, job.job_id, job.report_type_id)
            connection.reporting_job_id = job.job_id
            connection.reporting_job_type = job.report_type_id
            if job.created:
                # A new job's first report appears about a day later.
                return None
            job_id = job.job_id

        report = await adapters.reporting.fetch_latest(job_id)
        if report is not None:
            await self.store.mark_report_downloaded(connection.id, self.clock())
        return report

    async def _reconcile_and_persist(
        self,
        channel_id: str,
        discovered: List[DiscoveredVideo],
        analytics: Dict[str, AnalyticsVideoMetrics],
        reporting: Optional[ReportingResult],
        day: date,
    ):
        by_id = {v.video_id: v for v in discovered}
        reporting_metrics = reporting.video_metrics if reporting else {}

        reconciled = []
        for video in await self.store.list_channel_videos(channel_id):
            vid = video.youtube_video_id
            item = self.engine.reconcile(
                video,
                discovered=by_id.get(vid),
                analytics=analytics.get(vid),
                reporting=reporting_metrics.get(vid),
            )
            if item.video_fields or item.snapshot:
                reconciled.append(item)

        return await self.store.apply_reconciliation(channel_id, reconciled, day, synced_at=self.clock())


async def run_daily_sync_service(
    trigger: str = "cron",
    orchestrator: Optional[SyncOrchestrator] = None,
) -> Dict[str, Any]:
    """Run the daily sync, record it as a sync run, and never raise."""
    orchestrator = orchestrator or SyncOrchestrator()
    store = orchestrator.store
    started = time.monotonic()
    run_id: Optional[str] = None
    try:
        run_id = await store.start_sync_run(trigger)
        report = await orchestrator.run_daily_sync()
    except Exception as e:
        logger.exception("Daily sync (%s) failed", trigger)
        report = {
            "success": False,
            "error": str(e),
            "duration_ms": int((time.monotonic() - started) * 1000),
        }

    if run_id is not None:
        try:
            await store.finish_sync_run(run_id, report)
        except Exception as exc:
            logger.warning("Could not record sync run %s: %s", run_id, exc)
    return report


def process_daily_sync_job(trigger: str = "queue") -> Dict[str, Any]:
    """RQ worker entrypoint for queued daily syncs."""
    return asyncio.run(run_daily_sync_service(trigger))
