"""
Analysis models and schemas.
"""

from datetime import date
from typing import List, Optional
from pydantic import BaseModel
from enum import Enum


class QualityLabel(str, Enum):
    OUTPERFORMING = "outperforming"
    ON_PAR = "on_par"
    BELOW_BENCHMARK = "below_benchmark"
    UNDERPERFORMING = "underperforming"


class FunnelDiagnosis(str, Enum):
    TOP_HEAVY = "top_heavy"    # Low CTR on lots of reach: packaging problem
    LEAKY = "leaky"            # Clicks come in but viewers leave early
    CYLINDER = "cylinder"      # Strong at every stage
    HEALTHY = "healthy"
    INSUFFICIENT_DATA = "insufficient_data"


class RetentionBenchmark(BaseModel):
    """Expected retention for a duration bucket."""
    bucket: str
    max_seconds: Optional[int] = None  # inclusive; None = open-ended
    expected_retention: float


class EngagementQuality(BaseModel):
    """Actual vs. expected engaged viewers for one video."""
    benchmark: Optional[RetentionBenchmark] = None  # None for unknown durations
    engaged_viewers: float
    expected_engaged_viewers: float
    ratio: Optional[float] = None
    label: Optional[QualityLabel] = None


class VideoPeriodAggregate(BaseModel):
    """One video's snapshots rolled up over a date range."""
    video_id: str
    youtube_video_id: str
    title: Optional[str] = None
    duration_seconds: Optional[int] = None
    video_type: Optional[str] = None
    views: int = 0
    impressions: int = 0
    ctr: Optional[float] = None
    avg_view_percentage: Optional[float] = None
    watch_hours: float = 0.0
    subscribers_gained: int = 0
    subscribers_lost: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    snapshot_days: int = 0
    engaged_viewers: float = 0.0
    quality: Optional[EngagementQuality] = None


class FunnelSummary(BaseModel):
    """Channel funnel: impressions -> views -> engaged viewers."""
    video_count: int
    impressions: int
    views: int
    engaged_viewers: float
    ctr: Optional[float] = None
    avg_view_percentage: Optional[float] = None
    qualification_rate: Optional[float] = None  # engaged / views
    diagnosis: FunnelDiagnosis


class FunnelReport(BaseModel):
    channel_id: str
    start_date: date
    end_date: date
    summary: FunnelSummary
    videos: List[VideoPeriodAggregate]
