from unittest.mock import MagicMock

import httplib2
import httpx
import pytest
from googleapiclient.errors import HttpError

from ingestion.reporting import (
    YouTubeReportingClient,
    aggregate_report_rows,
    parse_report_csv,
    resolve_report_columns,
)

REPORT_CSV = """date,channel_id,video_id,views,likes,comments,shares,subscribers_lost,impressions,AVG_Click_Through_Rate
20260313,UC_X,vid1,100,5,1,2,0,1000,0.04
20260314,UC_X,vid1,50,3,0,1,1,500,0.02
20260314,UC_X,vid2,10,1,1,0,0,0,
"""


def _service(report_types=("channel_basic_a2", "channel_combined_a2"), jobs=None, reports=None):
    service = MagicMock()
    service.reportTypes.return_value.list.return_value.execute.return_value = {
        "reportTypes": [{"id": rt} for rt in report_types]
    }
    service.jobs.return_value.list.return_value.execute.return_value = {"jobs": jobs or []}
    service.jobs.return_value.reports.return_value.list.return_value.execute.return_value = {
        "reports": reports or []
    }
    return service


def _download_transport(bodies):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=bodies[str(request.url)])

    return httpx.MockTransport(handler), seen


def test_mixed_case_ctr_column_is_not_taken_as_impressions():
    headers, _ = parse_report_csv(REPORT_CSV)
    columns = resolve_report_columns(headers)

    assert columns.ctr == "AVG_Click_Through_Rate"
    assert columns.impressions == "impressions"
    assert columns.video_id == "video_id"
    assert columns.date == "date"


def test_thumbnail_impressions_ctr_column_resolves_as_ctr():
    columns = resolve_report_columns(
        ["video_id", "video_thumbnail_impressions", "video_thumbnail_impressions_ctr"]
    )
    assert columns.ctr == "video_thumbnail_impressions_ctr"
    assert columns.impressions == "video_thumbnail_impressions"


def test_aggregate_sums_counts_and_averages_ctr_unweighted():
    headers, rows = parse_report_csv(REPORT_CSV)
    metrics = aggregate_report_rows(rows, resolve_report_columns(headers))

    vid1 = metrics["vid1"]
    assert vid1.impressions == 1500
    assert vid1.views == 150
    assert vid1.likes == 8
    assert vid1.shares == 3
    assert vid1.subscribers_lost == 1
    # plain mean of 0.04 and 0.02, not impression-weighted (which would be 0.0333)
    assert vid1.ctr == pytest.approx(0.03)
    assert metrics["vid2"].impressions == 0
    assert metrics["vid2"].ctr is None


def test_aggregate_by_date_groups_per_day():
    headers, rows = parse_report_csv(REPORT_CSV)
    daily = aggregate_report_rows(rows, resolve_report_columns(headers), by_date=True)

    assert set(daily) == {("vid1", "2026-03-13"), ("vid1", "2026-03-14"), ("vid2", "2026-03-14")}
    assert daily[("vid1", "2026-03-14")].impressions == 500


def test_aggregate_leaves_absent_count_columns_unset():
    headers, rows = parse_report_csv(
        "video_id,video_thumbnail_impressions,video_thumbnail_impressions_ctr\nvid1,400,0.05\nvid1,0,0\n"
    )
    vid1 = aggregate_report_rows(rows, resolve_report_columns(headers))["vid1"]

    assert vid1.impressions == 400
    assert vid1.likes is None
    assert vid1.comments is None
    assert vid1.shares is None
    assert vid1.subscribers_lost is None
    assert vid1.subscribers_gained is None


@pytest.mark.asyncio
async def test_ensure_job_reuses_existing_job():
    service = _service(jobs=[{"id": "job-1", "reportTypeId": "channel_combined_a2"}])
    client = YouTubeReportingClient(access_token="tok", service=service)

    job = await client.ensure_job("sync")

    assert job.job_id == "job-1"
    assert job.report_type_id == "channel_combined_a2"
    assert job.created is False
    service.jobs.return_value.create.assert_not_called()


@pytest.mark.asyncio
async def test_ensure_job_creates_preferred_type_once():
    service = _service()
    service.jobs.return_value.create.return_value.execute.return_value = {
        "id": "job-new",
        "reportTypeId": "channel_combined_a2",
    }
    client = YouTubeReportingClient(access_token="tok", service=service)

    job = await client.ensure_job("sync")

    assert job.created is True
    assert job.job_id == "job-new"
    service.jobs.return_value.create.assert_called_once_with(
        body={"reportTypeId": "channel_combined_a2", "name": "sync"}
    )


@pytest.mark.asyncio
async def test_ensure_job_conflict_returns_existing_job():
    service = _service()
    service.jobs.return_value.list.return_value.execute.side_effect = [
        {"jobs": []},
        {"jobs": [{"id": "job-race", "reportTypeId": "channel_combined_a2"}]},
    ]
    service.jobs.return_value.create.return_value.execute.side_effect = HttpError(
        httplib2.Response({"status": 409}), b'{"error": {"message": "already exists"}}'
    )
    client = YouTubeReportingClient(access_token="tok", service=service)

    job = await client.ensure_job("sync")

    assert job.job_id == "job-race"
    assert job.created is False


@pytest.mark.asyncio
async def test_ensure_job_finds_existing_job_on_later_page():
    service = _service()
    service.jobs.return_value.list.return_value.execute.side_effect = [
        {"jobs": [{"id": "job-other", "reportTypeId": "channel_basic_a2"}], "nextPageToken": "p2"},
        {"jobs": [{"id": "job-2", "reportTypeId": "channel_combined_a2"}]},
    ]
    client = YouTubeReportingClient(access_token="tok", service=service)

    job = await client.ensure_job("sync")

    assert job.job_id == "job-2"
    assert job.created is False
    service.jobs.return_value.list.assert_called_with(pageToken="p2")
    service.jobs.return_value.create.assert_not_called()


@pytest.mark.asyncio
async def test_ensure_job_without_channel_report_types_returns_none():
    service = _service(report_types=("content_owner_basic_a3",))
    client = YouTubeReportingClient(access_token="tok", service=service)

    assert await client.ensure_job("sync") is None


@pytest.mark.asyncio
async def test_fetch_latest_returns_none_when_no_reports_yet():
    client = YouTubeReportingClient(access_token="tok", service=_service(reports=[]))
    assert await client.fetch_latest("job-1") is None


@pytest.mark.asyncio
async def test_fetch_latest_downloads_newest_report_with_bearer_token():
    reports = [
        {"id": "r-old", "createTime": "2026-03-13T08:00:00Z", "downloadUrl": "https://reports.test/old"},
        {"id": "r-new", "createTime": "2026-03-14T08:00:00.123456789Z", "downloadUrl": "https://reports.test/new"},
    ]
    transport, seen = _download_transport({
        "https://reports.test/new": REPORT_CSV,
        "https://reports.test/old": "video_id,impressions\nvid9,1\n",
    })
    client = YouTubeReportingClient(access_token="tok", service=_service(reports=reports), http_transport=transport)

    result = await client.fetch_latest("job-1")

    assert result.report_id == "r-new"
    assert set(result.video_metrics) == {"vid1", "vid2"}
    assert [str(r.url) for r in seen] == ["https://reports.test/new"]
    assert seen[0].headers["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_fetch_latest_without_video_column_returns_none():
    reports = [{"id": "r1", "createTime": "2026-03-14T08:00:00Z", "downloadUrl": "https://reports.test/r1"}]
    transport, _ = _download_transport({"https://reports.test/r1": "date,views\n20260314,5\n"})
    client = YouTubeReportingClient(access_token="tok", service=_service(reports=reports), http_transport=transport)

    assert await client.fetch_latest("job-1") is None


@pytest.mark.asyncio
async def test_backfill_uses_report_date_when_rows_have_none():
    reports = [
        {"id": "r2", "createTime": "2026-03-12T08:00:00Z", "downloadUrl": "https://reports.test/r2"},
        {"id": "r1", "createTime": "2026-03-11T08:00:00Z", "downloadUrl": "https://reports.test/r1"},
    ]
    transport, seen = _download_transport({
        "https://reports.test/r1": "video_id,impressions\nvid1,10\n",
        "https://reports.test/r2": "video_id,impressions\nvid1,20\n",
    })
    client = YouTubeReportingClient(access_token="tok", service=_service(reports=reports), http_transport=transport)

    backfill = await client.fetch_backfill("job-1")

    assert backfill.reports_available == 2
    assert backfill.reports_processed == 2
    assert [str(r.url) for r in seen] == ["https://reports.test/r1", "https://reports.test/r2"]
    assert backfill.daily_metrics[("vid1", "2026-03-11")].impressions == 10
    assert backfill.daily_metrics[("vid1", "2026-03-12")].impressions == 20
