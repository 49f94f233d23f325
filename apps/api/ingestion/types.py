"""Normalized records returned by the YouTube source adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Literal, Optional


VideoType = Literal["short", "long"]


class SourceUnavailableError(RuntimeError):
    """Raised when a source call fails in a way the caller should report."""


@dataclass(frozen=True)
class DiscoveredVideo:
    """One video as seen by the Data API, with cumulative counters."""

    video_id: str
    title: str
    published_at: Optional[datetime]
    thumbnail_url: str
    view_count: int
    like_count: int
    comment_count: int
    duration_seconds: int
    video_type: VideoType


@dataclass(frozen=True)
class AnalyticsVideoMetrics:
    """Windowed per-video metrics from the Analytics API."""

    views: int
    watch_hours: float
    avg_view_percentage: float  # 0-1
    subscribers_gained: int
    # Best-effort only; per-video reach comes from the Reporting API.
    impressions: Optional[int] = None
    ctr: Optional[float] = None


@dataclass
class ReportingVideoMetrics:
    """Per-video aggregate of reporting rows (one day or one report)."""

    impressions: int = 0
    ctr: Optional[float] = None
    # None when the report type carries no such column.
    likes: Optional[int] = None
    comments: Optional[int] = None
    shares: Optional[int] = None
    subscribers_lost: Optional[int] = None
    subscribers_gained: Optional[int] = None
    views: int = 0
    watch_time_minutes: float = 0.0
    avg_view_duration_seconds: Optional[float] = None


@dataclass(frozen=True)
class ReportColumns:
    """Reporting CSV header names resolved by case-insensitive matching."""

    video_id: Optional[str] = None
    date: Optional[str] = None
    impressions: Optional[str] = None
    ctr: Optional[str] = None
    likes: Optional[str] = None
    comments: Optional[str] = None
    shares: Optional[str] = None
    subscribers_lost: Optional[str] = None
    subscribers_gained: Optional[str] = None
    views: Optional[str] = None
    watch_time: Optional[str] = None
    avg_view_duration: Optional[str] = None


@dataclass(frozen=True)
class ReportingJob:
    job_id: str
    report_type_id: str
    created: bool = False


@dataclass
class ReportingResult:
    """Latest downloaded report, aggregated per video."""

    report_id: str
    report_created_at: Optional[str]
    video_metrics: Dict[str, ReportingVideoMetrics] = field(default_factory=dict)


@dataclass
class ReportingBackfill:
    """Every available report, aggregated per (video, day)."""

    reports_available: int = 0
    reports_processed: int = 0
    daily_metrics: Dict[tuple, ReportingVideoMetrics] = field(default_factory=dict)
    errors: list = field(default_factory=list)
