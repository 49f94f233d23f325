"""
Persistence for connections, videos, daily snapshots and sync runs.

All writes are upserts keyed by natural keys (channel + YouTube video id,
video + calendar day), so re-running a sync for the same day converges on
the same rows.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from analysis.funnel import aggregate_video_period, sort_by_views
from analysis.models import VideoPeriodAggregate
from analysis.reconcile import ReconciledVideo, discovery_fields, snapshot_from_reporting
from database import async_session_maker
from ingestion.types import DiscoveredVideo, ReportingVideoMetrics
from models.channel import Channel
from models.connection import Connection
from models.sync_run import SyncRun
from models.video import Video
from models.video_snapshot import VideoSnapshot

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_day(value: Any) -> Optional[date]:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except (TypeError, ValueError):
        return None


async def _upsert_snapshot(
    db: AsyncSession,
    video_id: str,
    snapshot_date: date,
    fields: Dict[str, Any],
) -> VideoSnapshot:
    """Insert, or overwrite only the fields that carry a value this time."""
    result = await db.execute(
        select(VideoSnapshot).where(
            VideoSnapshot.video_id == video_id,
            VideoSnapshot.snapshot_date == snapshot_date,
        )
    )
    row = result.scalar_one_or_none()
    values = {k: v for k, v in fields.items() if v is not None}
    if row is None:
        row = VideoSnapshot(video_id=video_id, snapshot_date=snapshot_date, **values)
        db.add(row)
    else:
        for name, value in values.items():
            setattr(row, name, value)
    return row


class SnapshotStore:
    """Async storage gateway used by the sync pipeline and the routers."""

    def __init__(self, session_maker: async_sessionmaker = async_session_maker):
        self.session_maker = session_maker

    # ==================== Connections ====================

    async def list_active_connections(self) -> List[Connection]:
        async with self.session_maker() as db:
            result = await db.execute(
                select(Connection)
                .where(Connection.is_active.is_(True))
                .order_by(Connection.created_at, Connection.id)
            )
            return list(result.scalars().all())

    async def get_connection(self, connection_id: str) -> Optional[Connection]:
        async with self.session_maker() as db:
            return await db.get(Connection, connection_id)

    async def _update_connection(self, connection_id: str, values: Dict[str, Any]) -> None:
        async with self.session_maker() as db:
            await db.execute(
                update(Connection)
                .where(Connection.id == connection_id)
                .values(**values, updated_at=_utc_now())
            )
            await db.commit()

    async def update_connection_tokens(self, connection_id: str, fields: Dict[str, Any]) -> None:
        await self._update_connection(connection_id, fields)

    async def mark_connection_error(self, connection_id: str, message: str) -> None:
        await self._update_connection(connection_id, {"connection_error": message})

    async def mark_connection_synced(
        self,
        connection_id: str,
        synced_at: datetime,
        error: Optional[str] = None,
    ) -> None:
        await self._update_connection(
            connection_id,
            {"last_synced_at": synced_at, "connection_error": error},
        )

    async def set_reporting_job(self, connection_id: str, job_id: str, job_type: str) -> None:
        await self._update_connection(
            connection_id,
            {"reporting_job_id": job_id, "reporting_job_type": job_type},
        )

    async def mark_report_downloaded(self, connection_id: str, downloaded_at: datetime) -> None:
        await self._update_connection(connection_id, {"last_report_downloaded_at": downloaded_at})

    # ==================== Channels & videos ====================

    async def get_channel(self, channel_id: str) -> Optional[Channel]:
        async with self.session_maker() as db:
            return await db.get(Channel, channel_id)

    async def get_client_channel(self, youtube_channel_id: str) -> Optional[Channel]:
        async with self.session_maker() as db:
            result = await db.execute(
                select(Channel).where(
                    Channel.youtube_channel_id == youtube_channel_id,
                    Channel.is_client.is_(True),
                )
            )
            return result.scalar_one_or_none()

    async def list_channel_videos(self, channel_id: str) -> List[Video]:
        async with self.session_maker() as db:
            result = await db.execute(select(Video).where(Video.channel_id == channel_id))
            return list(result.scalars().all())

    async def upsert_discovered_videos(
        self,
        channel_id: str,
        videos: Sequence[DiscoveredVideo],
        content_source: Optional[str] = None,
    ) -> int:
        """
        Insert unseen videos and refresh descriptive columns of known ones.

        Cumulative counters are left to apply_reconciliation so the
        monotonic guard sees the previous values. Returns the insert count.
        """
        if not videos:
            return 0
        async with self.session_maker() as db:
            result = await db.execute(
                select(Video).where(
                    Video.channel_id == channel_id,
                    Video.youtube_video_id.in_([v.video_id for v in videos]),
                )
            )
            existing = {row.youtube_video_id: row for row in result.scalars().all()}

            inserted = 0
            for video in videos:
                fields = discovery_fields(video, content_source)
                row = existing.get(video.video_id)
                if row is None:
                    row = Video(channel_id=channel_id, youtube_video_id=video.video_id, **fields)
                    db.add(row)
                    existing[video.video_id] = row
                    inserted += 1
                else:
                    for name, value in fields.items():
                        if value is not None:
                            setattr(row, name, value)
            await db.commit()
            return inserted

    async def apply_reconciliation(
        self,
        channel_id: str,
        reconciled: Iterable[ReconciledVideo],
        snapshot_date: date,
        synced_at: Optional[datetime] = None,
    ) -> Tuple[int, int]:
        """
        Write merged video columns and daily snapshots in one transaction.

        Returns (videos_updated, snapshots_written).
        """
        synced_at = synced_at or _utc_now()
        reconciled = list(reconciled)
        async with self.session_maker() as db:
            result = await db.execute(
                select(Video).where(
                    Video.channel_id == channel_id,
                    Video.youtube_video_id.in_([r.youtube_video_id for r in reconciled]),
                )
            )
            videos = {row.youtube_video_id: row for row in result.scalars().all()}

            videos_updated = 0
            snapshots_written = 0
            for item in reconciled:
                video = videos.get(item.youtube_video_id)
                if video is None:
                    logger.warning("Skipping reconciliation for unknown video %s", item.youtube_video_id)
                    continue
                if item.video_fields:
                    for name, value in item.video_fields.items():
                        setattr(video, name, value)
                    video.last_synced_at = synced_at
                    videos_updated += 1
                if item.snapshot:
                    await _upsert_snapshot(db, video.id, snapshot_date, item.snapshot)
                    snapshots_written += 1
            await db.commit()
            return videos_updated, snapshots_written

    async def update_video_reach(
        self,
        channel_id: str,
        video_metrics: Dict[str, ReportingVideoMetrics],
    ) -> int:
        """Write Reporting impressions/CTR onto videos that had impressions."""
        reach = {vid: m for vid, m in video_metrics.items() if m.impressions > 0}
        if not reach:
            return 0
        async with self.session_maker() as db:
            result = await db.execute(
                select(Video).where(
                    Video.channel_id == channel_id,
                    Video.youtube_video_id.in_(list(reach)),
                )
            )
            updated = 0
            for video in result.scalars().all():
                metrics = reach[video.youtube_video_id]
                video.impressions = metrics.impressions
                if metrics.ctr is not None:
                    video.ctr = metrics.ctr
                updated += 1
            await db.commit()
            return updated

    async def upsert_backfill_snapshots(
        self,
        channel_id: str,
        daily_metrics: Dict[Tuple[str, Optional[str]], ReportingVideoMetrics],
    ) -> int:
        """Upsert one snapshot per (video, day) found in historical reports."""
        if not daily_metrics:
            return 0
        async with self.session_maker() as db:
            result = await db.execute(select(Video).where(Video.channel_id == channel_id))
            videos = {row.youtube_video_id: row for row in result.scalars().all()}

            written = 0
            for (youtube_video_id, day), metrics in daily_metrics.items():
                video = videos.get(youtube_video_id)
                snapshot_date = _parse_day(day)
                if video is None or snapshot_date is None:
                    continue
                await _upsert_snapshot(db, video.id, snapshot_date, snapshot_from_reporting(metrics))
                written += 1
            await db.commit()
            return written

    async def get_period_aggregates(
        self,
        channel_id: str,
        start_date: date,
        end_date: date,
    ) -> List[VideoPeriodAggregate]:
        """Per-video rollups of the channel's snapshots in [start_date, end_date]."""
        async with self.session_maker() as db:
            videos_result = await db.execute(select(Video).where(Video.channel_id == channel_id))
            videos = {row.id: row for row in videos_result.scalars().all()}
            if not videos:
                return []

            snapshots_result = await db.execute(
                select(VideoSnapshot)
                .where(
                    VideoSnapshot.video_id.in_(list(videos)),
                    VideoSnapshot.snapshot_date >= start_date,
                    VideoSnapshot.snapshot_date <= end_date,
                )
                .order_by(VideoSnapshot.snapshot_date)
            )
            by_video: Dict[str, List[VideoSnapshot]] = {}
            for snapshot in snapshots_result.scalars().all():
                by_video.setdefault(snapshot.video_id, []).append(snapshot)

        aggregates = []
        for video_id, snapshots in by_video.items():
            aggregate = aggregate_video_period(videos[video_id], snapshots)
            if aggregate is not None:
                aggregates.append(aggregate)
        return sort_by_views(aggregates)

    # ==================== Sync runs ====================

    async def start_sync_run(self, trigger: str) -> str:
        async with self.session_maker() as db:
            run = SyncRun(trigger=trigger, status="running", started_at=_utc_now())
            db.add(run)
            await db.commit()
            return run.id

    async def finish_sync_run(
        self,
        run_id: str,
        report: Dict[str, Any],
        error_message: Optional[str] = None,
    ) -> None:
        async with self.session_maker() as db:
            run = await db.get(SyncRun, run_id)
            if run is None:
                return
            run.status = "completed" if report.get("success") else "failed"
            run.connections_processed = int(report.get("connectionsProcessed") or 0)
            run.duration_ms = report.get("duration_ms")
            run.report_json = report
            run.error_message = error_message or report.get("error")
            run.completed_at = _utc_now()
            await db.commit()

    async def recover_stalled_sync_runs(self, max_age_minutes: int = 120) -> int:
        """Mark stale running sync runs as failed after restarts/worker interruptions."""
        cutoff = _utc_now() - timedelta(minutes=max(max_age_minutes, 1))
        async with self.session_maker() as db:
            result = await db.execute(
                select(SyncRun).where(
                    SyncRun.status == "running",
                    SyncRun.started_at < cutoff,
                )
            )
            runs = result.scalars().all()
            for run in runs:
                run.status = "failed"
                run.error_message = "Sync run was interrupted before completing."
                run.completed_at = _utc_now()
            if runs:
                await db.commit()
            return len(runs)
