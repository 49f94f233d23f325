"""
YouTube Reporting API client: standing jobs, report listing and CSV aggregation.

Reports are produced asynchronously (roughly daily) by a job that must exist
first. The CSV column set differs per report type, so columns are located by
name rather than position.
"""

from __future__ import annotations

import asyncio
import csv
import io
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import httpx
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from config import settings
from ingestion.types import (
    ReportColumns,
    ReportingBackfill,
    ReportingJob,
    ReportingResult,
    ReportingVideoMetrics,
    SourceUnavailableError,
)

logger = logging.getLogger(__name__)

_FRACTION_RE = re.compile(r"\.(\d{6})\d+")

# Counts left unset unless the report type has the column.
OPTIONAL_COUNT_FIELDS = ("likes", "comments", "shares", "subscribers_lost", "subscribers_gained")


# ==================== CSV parsing ====================

def parse_report_csv(content: str) -> Tuple[List[str], List[Dict[str, str]]]:
    """Parse a comma-separated report with a header row."""
    reader = csv.reader(io.StringIO((content or "").strip()))
    rows_iter = iter(reader)
    try:
        headers = [h.strip() for h in next(rows_iter)]
    except StopIteration:
        return [], []

    rows: List[Dict[str, str]] = []
    for values in rows_iter:
        if not any(v.strip() for v in values):
            continue
        rows.append({header: (values[i].strip() if i < len(values) else "") for i, header in enumerate(headers)})
    return headers, rows


def _find(headers: Sequence[str], predicate, exclude: Iterable[Optional[str]] = ()) -> Optional[str]:
    skipped = {h for h in exclude if h}
    for header in headers:
        if header in skipped:
            continue
        if predicate(header.lower()):
            return header
    return None


def resolve_report_columns(headers: Sequence[str]) -> ReportColumns:
    """Locate the columns we aggregate by case-insensitive name matching."""
    ctr = _find(
        headers,
        lambda h: "click_through_rate" in h or h == "ctr" or h.endswith("_ctr"),
    )
    return ReportColumns(
        video_id=_find(headers, lambda h: "video_id" in h),
        date=_find(headers, lambda h: h == "date"),
        ctr=ctr,
        impressions=_find(
            headers,
            lambda h: h == "impressions" or "thumbnail_impressions" in h,
            exclude=(ctr,),
        ),
        likes=_find(headers, lambda h: h == "likes"),
        comments=_find(headers, lambda h: h == "comments"),
        shares=_find(headers, lambda h: h == "shares"),
        subscribers_lost=_find(headers, lambda h: "subscribers_lost" in h),
        subscribers_gained=_find(headers, lambda h: "subscribers_gained" in h),
        views=_find(headers, lambda h: h == "views"),
        watch_time=_find(headers, lambda h: "watch_time" in h),
        avg_view_duration=_find(headers, lambda h: "average_view_duration" in h),
    )


def _safe_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _safe_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def normalize_report_date(value: Optional[str]) -> Optional[str]:
    """Report dates come as YYYYMMDD; also accept ISO dates and timestamps."""
    text = (value or "").strip()
    if not text:
        return None
    if len(text) == 8 and text.isdigit():
        return f"{text[:4]}-{text[4:6]}-{text[6:]}"
    return text[:10]


@dataclass
class _Accumulator:
    metrics: ReportingVideoMetrics
    ctr_sum: float = 0.0
    ctr_count: int = 0
    duration_sum: float = 0.0
    duration_count: int = 0


def aggregate_report_rows(
    rows: List[Dict[str, str]],
    columns: ReportColumns,
    by_date: bool = False,
    fallback_date: Optional[str] = None,
) -> Dict[Any, ReportingVideoMetrics]:
    """
    Aggregate rows per video (or per (video, date) when by_date).

    Counts are summed. CTR is the plain mean of the per-row values, not
    impression-weighted.
    """
    if not columns.video_id:
        return {}

    buckets: Dict[Any, _Accumulator] = {}
    for row in rows:
        video_id = row.get(columns.video_id)
        if not video_id:
            continue

        if by_date:
            day = normalize_report_date(row.get(columns.date)) if columns.date else None
            key: Any = (video_id, day or normalize_report_date(fallback_date))
        else:
            key = video_id

        acc = buckets.get(key)
        if acc is None:
            acc = buckets[key] = _Accumulator(metrics=ReportingVideoMetrics())
        m = acc.metrics

        def present(col: Optional[str]) -> bool:
            return bool(col) and bool(row.get(col))

        if present(columns.impressions):
            m.impressions += _safe_int(row[columns.impressions])
        if present(columns.ctr):
            acc.ctr_sum += _safe_float(row[columns.ctr])
            acc.ctr_count += 1
        for name in OPTIONAL_COUNT_FIELDS:
            column = getattr(columns, name)
            if present(column):
                setattr(m, name, (getattr(m, name) or 0) + _safe_int(row[column]))
        if present(columns.views):
            m.views += _safe_int(row[columns.views])
        if present(columns.watch_time):
            m.watch_time_minutes += _safe_float(row[columns.watch_time])
        if present(columns.avg_view_duration):
            acc.duration_sum += _safe_float(row[columns.avg_view_duration])
            acc.duration_count += 1

    result: Dict[Any, ReportingVideoMetrics] = {}
    for key, acc in buckets.items():
        if acc.ctr_count:
            acc.metrics.ctr = acc.ctr_sum / acc.ctr_count
        if acc.duration_count:
            acc.metrics.avg_view_duration_seconds = acc.duration_sum / acc.duration_count
        result[key] = acc.metrics
    return result


def _created_at(report: Dict[str, Any]) -> datetime:
    raw = str(report.get("createTime") or "").replace("Z", "+00:00")
    raw = _FRACTION_RE.sub(r".\1", raw)
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def select_report_type(report_type_ids: Sequence[str], preferred: Sequence[str]) -> Optional[str]:
    """Pick the preferred report type, else any channel-level report type."""
    for candidate in preferred:
        if candidate in report_type_ids:
            return candidate
    for report_type_id in report_type_ids:
        if report_type_id.startswith("channel_"):
            return report_type_id
    return None


# ==================== Client ====================

class YouTubeReportingClient:
    """Client for the YouTube Reporting API v1."""

    def __init__(
        self,
        access_token: str,
        credentials: Any = None,
        service: Any = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.http_transport = http_transport
        if service is not None:
            self.reporting = service
        elif credentials:
            self.reporting = build("youtubereporting", "v1", credentials=credentials, cache_discovery=False)
        else:
            raise ValueError("credentials must be provided")

    async def _execute(self, request: Any) -> Dict[str, Any]:
        return await asyncio.to_thread(request.execute)

    async def _list_all(self, resource: Any, key: str, **params: Any) -> List[Dict[str, Any]]:
        """Follow nextPageToken until the listing is exhausted."""
        items: List[Dict[str, Any]] = []
        page_token = None
        while True:
            response = await self._execute(resource.list(pageToken=page_token, **params))
            items.extend(response.get(key, []))
            page_token = response.get("nextPageToken")
            if not page_token:
                return items

    async def list_report_types(self) -> List[str]:
        report_types = await self._list_all(self.reporting.reportTypes(), "reportTypes")
        return [rt["id"] for rt in report_types if rt.get("id")]

    async def list_jobs(self) -> List[Dict[str, Any]]:
        return await self._list_all(self.reporting.jobs(), "jobs")

    async def _find_job(self, report_type_id: str) -> Optional[Dict[str, Any]]:
        for job in await self.list_jobs():
            if job.get("reportTypeId") == report_type_id:
                return job
        return None

    async def ensure_job(self, job_name: str, preferred: Optional[Sequence[str]] = None) -> Optional[ReportingJob]:
        """
        Return the standing job for the chosen report type, creating it once.

        Returns None when no channel report type is available to this grant
        (usually a missing reporting scope).
        """
        preferred = preferred or settings.REPORTING_PREFERRED_REPORT_TYPES
        report_type_id = select_report_type(await self.list_report_types(), preferred)
        if not report_type_id:
            logger.info("No channel report type available for reporting job %r", job_name)
            return None

        existing = await self._find_job(report_type_id)
        if existing:
            return ReportingJob(job_id=existing["id"], report_type_id=report_type_id, created=False)

        try:
            job = await self._execute(
                self.reporting.jobs().create(body={"reportTypeId": report_type_id, "name": job_name})
            )
        except HttpError as e:
            if getattr(e.resp, "status", None) != 409:
                raise
            # Created concurrently elsewhere; the remote side deduplicates.
            existing = await self._find_job(report_type_id)
            if not existing:
                raise
            return ReportingJob(job_id=existing["id"], report_type_id=report_type_id, created=False)

        logger.info("Created reporting job %s (%s)", job.get("id"), report_type_id)
        return ReportingJob(job_id=job["id"], report_type_id=job.get("reportTypeId", report_type_id), created=True)

    async def list_reports(self, job_id: str) -> List[Dict[str, Any]]:
        return await self._list_all(self.reporting.jobs().reports(), "reports", jobId=job_id)

    async def download_report(self, download_url: str) -> str:
        async with httpx.AsyncClient(
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            transport=self.http_transport,
        ) as client:
            response = await client.get(
                download_url,
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
        if response.status_code >= 400:
            raise SourceUnavailableError(f"Failed to download report (HTTP {response.status_code})")
        return response.text

    async def fetch_latest(self, job_id: str) -> Optional[ReportingResult]:
        """
        Download the newest report and aggregate it per video.

        None means nothing to report yet (no reports, or no video column).
        """
        reports = await self.list_reports(job_id)
        if not reports:
            logger.info("Reporting job %s has no reports yet", job_id)
            return None

        latest = sorted(reports, key=_created_at, reverse=True)[0]
        content = await self.download_report(latest["downloadUrl"])
        headers, rows = parse_report_csv(content)
        columns = resolve_report_columns(headers)
        if not columns.video_id:
            logger.warning("Report %s has no video_id column (headers=%s)", latest.get("id"), headers)
            return None

        return ReportingResult(
            report_id=latest.get("id", ""),
            report_created_at=latest.get("createTime"),
            video_metrics=aggregate_report_rows(rows, columns),
        )

    async def fetch_backfill(self, job_id: str) -> ReportingBackfill:
        """Aggregate every available report per (video, day), oldest first."""
        reports = sorted(await self.list_reports(job_id), key=_created_at)
        backfill = ReportingBackfill(reports_available=len(reports))

        for report in reports:
            try:
                content = await self.download_report(report["downloadUrl"])
            except (SourceUnavailableError, httpx.HTTPError) as e:
                backfill.errors.append(f"Failed to download report {report.get('id')}: {e}")
                continue

            headers, rows = parse_report_csv(content)
            columns = resolve_report_columns(headers)
            if not columns.video_id:
                continue

            daily = aggregate_report_rows(
                rows,
                columns,
                by_date=True,
                fallback_date=report.get("createTime"),
            )
            # Newer reports overwrite older ones for the same (video, day).
            backfill.daily_metrics.update(daily)
            backfill.reports_processed += 1

        return backfill
