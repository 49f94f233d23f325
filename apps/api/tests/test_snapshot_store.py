from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from analysis.reconcile import ReconciliationEngine
from conftest import add_client_connection
from ingestion.reporting import aggregate_report_rows, parse_report_csv, resolve_report_columns
from ingestion.types import AnalyticsVideoMetrics, DiscoveredVideo, ReportingVideoMetrics
from models.sync_run import SyncRun
from models.video_snapshot import VideoSnapshot

DAY = date(2026, 3, 14)


def _discovered(video_id="vid1", views=1000):
    return DiscoveredVideo(
        video_id=video_id,
        title=f"Video {video_id}",
        published_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        thumbnail_url=f"https://i.ytimg.com/vi/{video_id}/mqdefault.jpg",
        view_count=views,
        like_count=20,
        comment_count=5,
        duration_seconds=300,
        video_type="long",
    )


async def _reconcile_and_apply(store, channel_id, discovered, analytics=None, reporting=None):
    engine = ReconciliationEngine()
    by_id = {v.video_id: v for v in discovered}
    reconciled = [
        engine.reconcile(
            video,
            discovered=by_id.get(video.youtube_video_id),
            analytics=(analytics or {}).get(video.youtube_video_id),
            reporting=(reporting or {}).get(video.youtube_video_id),
        )
        for video in await store.list_channel_videos(channel_id)
    ]
    return await store.apply_reconciliation(channel_id, reconciled, DAY)


async def _snapshot_rows(session_maker):
    async with session_maker() as session:
        result = await session.execute(select(VideoSnapshot))
        return result.scalars().all()


@pytest.mark.asyncio
async def test_upsert_discovered_videos_is_keyed_by_channel_and_video(store, session_maker):
    _, channel = await add_client_connection(session_maker, "UC_A", "Channel A")

    inserted = await store.upsert_discovered_videos(channel.id, [_discovered("vid1"), _discovered("vid2")], "Channel A")
    again = await store.upsert_discovered_videos(channel.id, [_discovered("vid1")], "Channel A")

    videos = await store.list_channel_videos(channel.id)
    assert inserted == 2
    assert again == 0
    assert sorted(v.youtube_video_id for v in videos) == ["vid1", "vid2"]
    assert {v.content_source for v in videos} == {"Channel A"}
    # counters are written by reconciliation, not discovery
    assert all(v.view_count is None for v in videos)


@pytest.mark.asyncio
async def test_rerun_for_same_day_is_idempotent(store, session_maker):
    _, channel = await add_client_connection(session_maker, "UC_B", "Channel B")
    discovered = [_discovered("vid1")]
    analytics = {"vid1": AnalyticsVideoMetrics(views=90, watch_hours=2.0, avg_view_percentage=0.5, subscribers_gained=1)}
    await store.upsert_discovered_videos(channel.id, discovered)

    first = await _reconcile_and_apply(store, channel.id, discovered, analytics)
    rows_first = [(r.video_id, r.snapshot_date, r.view_count, r.total_view_count) for r in await _snapshot_rows(session_maker)]
    second = await _reconcile_and_apply(store, channel.id, discovered, analytics)
    rows_second = [(r.video_id, r.snapshot_date, r.view_count, r.total_view_count) for r in await _snapshot_rows(session_maker)]

    assert first == second == (1, 1)
    assert len(rows_second) == 1
    assert rows_first == rows_second
    assert rows_second[0][2:] == (90, 1000)


@pytest.mark.asyncio
async def test_late_reporting_data_fills_gaps_without_erasing(store, session_maker):
    _, channel = await add_client_connection(session_maker, "UC_C", "Channel C")
    discovered = [_discovered("vid1")]
    analytics = {"vid1": AnalyticsVideoMetrics(views=90, watch_hours=2.0, avg_view_percentage=0.5, subscribers_gained=1)}
    await store.upsert_discovered_videos(channel.id, discovered)

    await _reconcile_and_apply(store, channel.id, discovered, analytics)
    await _reconcile_and_apply(
        store,
        channel.id,
        discovered,
        reporting={"vid1": ReportingVideoMetrics(impressions=800, ctr=0.04, likes=6)},
    )

    (row,) = await _snapshot_rows(session_maker)
    assert row.view_count == 90
    assert row.impressions == 800
    assert row.ctr == 0.04
    assert row.likes == 6


@pytest.mark.asyncio
async def test_backfill_snapshots_skip_unknown_videos(store, session_maker):
    _, channel = await add_client_connection(session_maker, "UC_D", "Channel D")
    await store.upsert_discovered_videos(channel.id, [_discovered("vid1")])

    written = await store.upsert_backfill_snapshots(
        channel.id,
        {
            ("vid1", "2026-03-10"): ReportingVideoMetrics(impressions=100, ctr=0.05, views=20),
            ("vid1", "2026-03-11"): ReportingVideoMetrics(impressions=200, ctr=0.04, views=30),
            ("ghost", "2026-03-11"): ReportingVideoMetrics(impressions=5),
        },
    )

    rows = await _snapshot_rows(session_maker)
    assert written == 2
    assert sorted(r.snapshot_date for r in rows) == [date(2026, 3, 10), date(2026, 3, 11)]

    aggregates = await store.get_period_aggregates(channel.id, date(2026, 3, 1), date(2026, 3, 31))
    assert len(aggregates) == 1
    assert aggregates[0].views == 50
    assert aggregates[0].impressions == 300
    assert aggregates[0].ctr == pytest.approx((0.05 * 100 + 0.04 * 200) / 300)


@pytest.mark.asyncio
async def test_sync_run_lifecycle_and_stale_recovery(store, session_maker):
    run_id = await store.start_sync_run("manual")
    await store.finish_sync_run(run_id, {"success": True, "connectionsProcessed": 2, "results": [], "duration_ms": 12})

    async with session_maker() as session:
        session.add(SyncRun(trigger="cron", status="running", started_at=datetime.now(timezone.utc) - timedelta(hours=5)))
        await session.commit()

    assert await store.recover_stalled_sync_runs(120) == 1

    async with session_maker() as session:
        statuses = (await session.execute(select(SyncRun.status, func.count()).group_by(SyncRun.status))).all()
    assert dict(statuses) == {"completed": 1, "failed": 1}


@pytest.mark.asyncio
async def test_backfill_without_engagement_columns_keeps_stored_counts(store, session_maker):
    _, channel = await add_client_connection(session_maker, "UC_E", "Channel E")
    discovered = [_discovered("vid1")]
    await store.upsert_discovered_videos(channel.id, discovered)
    await _reconcile_and_apply(
        store,
        channel.id,
        discovered,
        analytics={"vid1": AnalyticsVideoMetrics(views=80, watch_hours=1.0, avg_view_percentage=0.4, subscribers_gained=7)},
        reporting={"vid1": ReportingVideoMetrics(impressions=500, ctr=0.05, likes=6, comments=3)},
    )

    headers, rows = parse_report_csv("date,video_id,views,watch_time_minutes\n20260314,vid1,90,120\n")
    daily = aggregate_report_rows(rows, resolve_report_columns(headers), by_date=True)
    assert await store.upsert_backfill_snapshots(channel.id, daily) == 1

    (row,) = await _snapshot_rows(session_maker)
    assert row.view_count == 90
    assert row.watch_hours == pytest.approx(2.0)
    assert row.likes == 6
    assert row.comments == 3
    assert row.subscribers_gained == 7
    assert row.impressions == 500


@pytest.mark.asyncio
async def test_lower_view_count_on_rerun_keeps_higher_totals(store, session_maker):
    _, channel = await add_client_connection(session_maker, "UC_F", "Channel F")
    await store.upsert_discovered_videos(channel.id, [_discovered("vid1", views=1000)])

    await _reconcile_and_apply(store, channel.id, [_discovered("vid1", views=1000)])
    await _reconcile_and_apply(store, channel.id, [_discovered("vid1", views=940)])

    (video,) = await store.list_channel_videos(channel.id)
    (row,) = await _snapshot_rows(session_maker)
    assert video.view_count == 1000
    assert row.total_view_count == 1000
