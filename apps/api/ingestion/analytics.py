"""
YouTube Analytics API client for per-video windowed metrics.
"""

import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from config import settings
from ingestion.types import AnalyticsVideoMetrics, SourceUnavailableError

logger = logging.getLogger(__name__)

# Impressions/CTR are not offered with the `video` dimension; they come from
# the Reporting API instead.
ANALYTICS_METRICS = (
    "views",
    "estimatedMinutesWatched",
    "averageViewPercentage",
    "subscribersGained",
)


def _number(value: Any) -> float:
    try:
        return float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def parse_analytics_rows(rows: Optional[List[List[Any]]]) -> Dict[str, AnalyticsVideoMetrics]:
    """Turn positional report rows (row[0] = video id) into named records."""
    result: Dict[str, AnalyticsVideoMetrics] = {}
    for row in rows or []:
        if not row or not row[0]:
            continue
        values = dict(zip(ANALYTICS_METRICS, row[1:]))
        result[str(row[0])] = AnalyticsVideoMetrics(
            views=int(_number(values.get("views"))),
            watch_hours=_number(values.get("estimatedMinutesWatched")) / 60,
            avg_view_percentage=_number(values.get("averageViewPercentage")) / 100,
            subscribers_gained=int(_number(values.get("subscribersGained"))),
        )
    return result


class YouTubeAnalyticsClient:
    """Client for the YouTube Analytics API v2 reports endpoint."""

    def __init__(self, credentials: Any = None, service: Any = None):
        if service is not None:
            self.analytics = service
        elif credentials:
            self.analytics = build("youtubeAnalytics", "v2", credentials=credentials, cache_discovery=False)
        else:
            raise ValueError("credentials must be provided")

    async def fetch_video_metrics(
        self,
        channel_id: str,
        start_date: date,
        end_date: date,
    ) -> Dict[str, AnalyticsVideoMetrics]:
        """
        Fetch per-video metrics for one explicit date range.

        Returns a mapping of video id to metrics; videos with no activity in
        the window are simply absent.
        """
        request = self.analytics.reports().query(
            ids=f"channel=={channel_id}",
            startDate=start_date.isoformat(),
            endDate=end_date.isoformat(),
            dimensions="video",
            metrics=",".join(ANALYTICS_METRICS),
            sort="-views",
            maxResults=settings.SYNC_ANALYTICS_MAX_RESULTS,
        )
        try:
            response = await asyncio.to_thread(request.execute)
        except HttpError as e:
            raise SourceUnavailableError(f"Analytics API failed: {e}") from e

        metrics = parse_analytics_rows(response.get("rows"))
        logger.info("Analytics %s..%s for %s: %d videos", start_date, end_date, channel_id, len(metrics))
        return metrics
