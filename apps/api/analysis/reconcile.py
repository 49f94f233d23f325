"""
Field-by-field merge of Data, Analytics and Reporting API records.

Each merged field has exactly one authoritative source, with fallbacks listed
in FIELD_SOURCES. Nothing here touches storage.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from ingestion.types import AnalyticsVideoMetrics, DiscoveredVideo, ReportingVideoMetrics

logger = logging.getLogger(__name__)

DATA = "data"
ANALYTICS = "analytics"
REPORTING = "reporting"

# Ordered by priority.
FIELD_SOURCES: Dict[str, Tuple[str, ...]] = {
    "impressions": (REPORTING, ANALYTICS),
    "ctr": (REPORTING, ANALYTICS),
    "view_count": (ANALYTICS,),
    "watch_hours": (ANALYTICS,),
    "avg_view_percentage": (ANALYTICS,),
    "subscribers_gained": (ANALYTICS,),
    "avg_view_duration_seconds": (REPORTING,),
    "likes": (REPORTING,),
    "comments": (REPORTING,),
    "shares": (REPORTING,),
    "subscribers_lost": (REPORTING,),
    "total_view_count": (DATA,),
    "total_like_count": (DATA,),
    "total_comment_count": (DATA,),
}

# Snapshot field -> cumulative video column.
CUMULATIVE_FIELDS = {
    "total_view_count": "view_count",
    "total_like_count": "like_count",
    "total_comment_count": "comment_count",
}

SNAPSHOT_METRIC_FIELDS = tuple(f for f in FIELD_SOURCES if f not in CUMULATIVE_FIELDS)


@dataclass
class ReconciledVideo:
    """Merged output for one video: column updates plus an optional daily row."""

    youtube_video_id: str
    video_fields: Dict[str, Any] = field(default_factory=dict)
    snapshot: Optional[Dict[str, Any]] = None


def engagement_rate(likes: Optional[int], comments: Optional[int], views: Optional[int]) -> float:
    if not views:
        return 0.0
    return ((likes or 0) + (comments or 0)) / views


def merge_cumulative(
    field_name: str,
    stored: Optional[int],
    incoming: Optional[int],
    youtube_video_id: str = "",
) -> Optional[int]:
    """Cumulative counters only move forward; a regression keeps the stored value."""
    if incoming is None:
        return stored
    if stored is None:
        return incoming
    if incoming < stored:
        logger.warning(
            "Cumulative %s regressed for video %s (%s -> %s); keeping stored value",
            field_name,
            youtube_video_id,
            stored,
            incoming,
        )
        return stored
    return incoming


def resolve_reach(
    analytics: Optional[AnalyticsVideoMetrics],
    reporting: Optional[ReportingVideoMetrics],
) -> Tuple[Optional[int], Optional[float]]:
    """Impressions and CTR: Reporting when it saw impressions, else Analytics."""
    if reporting is not None and reporting.impressions > 0:
        ctr = reporting.ctr
        if ctr is None and analytics is not None:
            ctr = analytics.ctr
        return reporting.impressions, ctr
    if analytics is not None:
        return analytics.impressions, analytics.ctr
    return None, None


def snapshot_from_reporting(metrics: ReportingVideoMetrics) -> Dict[str, Any]:
    """Daily row built from Reporting data alone (historical backfill)."""
    return {
        "view_count": metrics.views or None,
        "impressions": metrics.impressions or None,
        "ctr": metrics.ctr,
        "watch_hours": metrics.watch_time_minutes / 60 if metrics.watch_time_minutes else None,
        "avg_view_duration_seconds": metrics.avg_view_duration_seconds,
        "subscribers_gained": metrics.subscribers_gained,
        "subscribers_lost": metrics.subscribers_lost,
        "likes": metrics.likes,
        "comments": metrics.comments,
        "shares": metrics.shares,
    }


def discovery_fields(video: DiscoveredVideo, content_source: Optional[str] = None) -> Dict[str, Any]:
    """Descriptive columns written when a video is discovered."""
    return {
        "title": video.title,
        "published_at": video.published_at,
        "thumbnail_url": video.thumbnail_url,
        "duration_seconds": video.duration_seconds,
        "video_type": video.video_type,
        "content_source": content_source,
    }


class ReconciliationEngine:
    """Applies the priority table to one video's records from all sources."""

    def reconcile(
        self,
        stored: Any,
        discovered: Optional[DiscoveredVideo] = None,
        analytics: Optional[AnalyticsVideoMetrics] = None,
        reporting: Optional[ReportingVideoMetrics] = None,
    ) -> ReconciledVideo:
        """
        Merge sources for a stored video.

        `stored` is anything exposing youtube_video_id and the cumulative
        view_count/like_count/comment_count columns (usually a Video row).
        """
        youtube_video_id = stored.youtube_video_id

        totals = {
            "total_view_count": discovered.view_count if discovered else None,
            "total_like_count": discovered.like_count if discovered else None,
            "total_comment_count": discovered.comment_count if discovered else None,
        }
        for snapshot_field, column in CUMULATIVE_FIELDS.items():
            totals[snapshot_field] = merge_cumulative(
                column,
                getattr(stored, column, None),
                totals[snapshot_field],
                youtube_video_id,
            )

        impressions, ctr = resolve_reach(analytics, reporting)
        metrics: Dict[str, Any] = {
            "impressions": impressions,
            "ctr": ctr,
            "view_count": analytics.views if analytics else None,
            "watch_hours": analytics.watch_hours if analytics else None,
            "avg_view_percentage": analytics.avg_view_percentage if analytics else None,
            "subscribers_gained": analytics.subscribers_gained if analytics else None,
            "avg_view_duration_seconds": reporting.avg_view_duration_seconds if reporting else None,
            "likes": reporting.likes if reporting else None,
            "comments": reporting.comments if reporting else None,
            "shares": reporting.shares if reporting else None,
            "subscribers_lost": reporting.subscribers_lost if reporting else None,
        }

        video_fields: Dict[str, Any] = {}
        if discovered is not None:
            video_fields.update(
                view_count=totals["total_view_count"],
                like_count=totals["total_like_count"],
                comment_count=totals["total_comment_count"],
                engagement_rate=engagement_rate(
                    totals["total_like_count"],
                    totals["total_comment_count"],
                    totals["total_view_count"],
                ),
            )
        for name in ("impressions", "ctr", "avg_view_percentage", "watch_hours", "subscribers_gained"):
            video_fields[name] = metrics[name]
        video_fields = {k: v for k, v in video_fields.items() if v is not None}

        has_metrics = any(metrics[name] is not None for name in SNAPSHOT_METRIC_FIELDS)
        snapshot = None
        if has_metrics or (discovered is not None and totals["total_view_count"] is not None):
            snapshot = {**metrics, **totals}

        return ReconciledVideo(
            youtube_video_id=youtube_video_id,
            video_fields=video_fields,
            snapshot=snapshot,
        )
