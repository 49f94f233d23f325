"""
Funnel and engaged-viewer metrics derived from stored daily snapshots.

Averages are always weighted: CTR by impressions, retention by views.
A plain mean over videos would let a 50-view video move the channel CTR as
much as a 50k-view one.
"""

from typing import Any, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .models import (
    EngagementQuality,
    FunnelDiagnosis,
    FunnelSummary,
    QualityLabel,
    RetentionBenchmark,
    VideoPeriodAggregate,
)


ENGAGEMENT_THRESHOLD = 0.50

# Inclusive upper bound in seconds, bucket key, expected retention (0-1).
RETENTION_BENCHMARKS: Tuple[RetentionBenchmark, ...] = (
    RetentionBenchmark(bucket="under_1_min", max_seconds=60, expected_retention=0.70),
    RetentionBenchmark(bucket="1_to_5_min", max_seconds=300, expected_retention=0.50),
    RetentionBenchmark(bucket="5_to_10_min", max_seconds=600, expected_retention=0.42),
    RetentionBenchmark(bucket="10_to_20_min", max_seconds=1200, expected_retention=0.35),
    RetentionBenchmark(bucket="20_to_30_min", max_seconds=1800, expected_retention=0.30),
    RetentionBenchmark(bucket="over_30_min", max_seconds=None, expected_retention=0.25),
)

QUALITY_THRESHOLDS = (
    (1.10, QualityLabel.OUTPERFORMING),
    (0.90, QualityLabel.ON_PAR),
    (0.70, QualityLabel.BELOW_BENCHMARK),
)

# Funnel diagnosis thresholds
TOP_HEAVY_MAX_CTR = 0.03
TOP_HEAVY_MIN_IMPRESSIONS = 10_000
LEAKY_MIN_CTR = 0.04
LEAKY_MAX_QUALIFICATION = 0.35
CYLINDER_MIN_QUALIFICATION = 0.50
CYLINDER_MIN_CTR = 0.05


def benchmark_for_duration(duration_seconds: Optional[int]) -> Optional[RetentionBenchmark]:
    """Bucket for a known duration; unknown (0s) durations have no benchmark."""
    if not duration_seconds or duration_seconds <= 0:
        return None
    for benchmark in RETENTION_BENCHMARKS:
        if benchmark.max_seconds is None or duration_seconds <= benchmark.max_seconds:
            return benchmark
    return RETENTION_BENCHMARKS[-1]


def engaged_viewers(views: Optional[float], retention: Optional[float]) -> float:
    """Viewers who watched at least ENGAGEMENT_THRESHOLD of the video (estimate)."""
    if not views or not retention or retention <= 0:
        return 0.0
    return float(views) * min(float(retention) / ENGAGEMENT_THRESHOLD, 1.0)


def weighted_average(pairs: Iterable[Tuple[Optional[float], Optional[float]]]) -> Optional[float]:
    """Mean of values weighted by their weights; None when no weight is present."""
    values: List[float] = []
    weights: List[float] = []
    for value, weight in pairs:
        if value is None or not weight or weight <= 0:
            continue
        values.append(float(value))
        weights.append(float(weight))
    if not weights:
        return None
    return float(np.average(np.array(values), weights=np.array(weights)))


def impression_weighted_ctr(rows: Iterable[Tuple[Optional[float], Optional[int]]]) -> Optional[float]:
    """rows: (ctr, impressions)."""
    return weighted_average(rows)


def view_weighted_retention(rows: Iterable[Tuple[Optional[float], Optional[int]]]) -> Optional[float]:
    """rows: (avg_view_percentage, views)."""
    return weighted_average(rows)


def quality_label(ratio: Optional[float]) -> Optional[QualityLabel]:
    if ratio is None:
        return None
    for threshold, label in QUALITY_THRESHOLDS:
        if ratio >= threshold:
            return label
    return QualityLabel.UNDERPERFORMING


def engagement_quality(
    views: Optional[int],
    retention: Optional[float],
    duration_seconds: Optional[int],
) -> EngagementQuality:
    """Compare engaged viewers against what the duration benchmark predicts."""
    benchmark = benchmark_for_duration(duration_seconds)
    actual = engaged_viewers(views, retention)
    expected = engaged_viewers(views, benchmark.expected_retention) if benchmark else 0.0
    ratio = actual / expected if expected > 0 else None
    return EngagementQuality(
        benchmark=benchmark,
        engaged_viewers=actual,
        expected_engaged_viewers=expected,
        ratio=ratio,
        label=quality_label(ratio),
    )


def _sum(snapshots: Sequence[Any], name: str) -> float:
    return float(np.sum([getattr(s, name, None) or 0 for s in snapshots])) if snapshots else 0.0


def aggregate_video_period(video: Any, snapshots: Sequence[Any]) -> Optional[VideoPeriodAggregate]:
    """
    Roll a video's daily snapshots up over a period.

    Views are the sum of daily period views; when no day carried period
    views, the growth of the cumulative counter across the window stands in
    (never negative). Returns None when the window shows no activity at all.
    """
    period_views = int(_sum(snapshots, "view_count"))
    if period_views > 0:
        views = period_views
    else:
        totals = [s.total_view_count for s in snapshots if s.total_view_count is not None]
        views = max(max(totals) - min(totals), 0) if totals else 0

    impressions = int(_sum(snapshots, "impressions"))
    if views <= 0 and impressions <= 0:
        return None

    ctr = impression_weighted_ctr((s.ctr, s.impressions) for s in snapshots)
    retention = view_weighted_retention((s.avg_view_percentage, s.view_count) for s in snapshots)
    if retention is None:
        retention = getattr(video, "avg_view_percentage", None)

    quality = engagement_quality(views, retention, video.duration_seconds)

    return VideoPeriodAggregate(
        video_id=video.id,
        youtube_video_id=video.youtube_video_id,
        title=video.title,
        duration_seconds=video.duration_seconds,
        video_type=video.video_type,
        views=views,
        impressions=impressions,
        ctr=ctr,
        avg_view_percentage=retention,
        watch_hours=_sum(snapshots, "watch_hours"),
        subscribers_gained=int(_sum(snapshots, "subscribers_gained")),
        subscribers_lost=int(_sum(snapshots, "subscribers_lost")),
        likes=int(_sum(snapshots, "likes")),
        comments=int(_sum(snapshots, "comments")),
        shares=int(_sum(snapshots, "shares")),
        snapshot_days=len(snapshots),
        engaged_viewers=quality.engaged_viewers,
        quality=quality,
    )


def sort_by_views(aggregates: Iterable[VideoPeriodAggregate]) -> List[VideoPeriodAggregate]:
    return sorted(aggregates, key=lambda a: a.views, reverse=True)


def diagnose_funnel(
    ctr: Optional[float],
    impressions: int,
    qualification_rate: Optional[float],
) -> FunnelDiagnosis:
    if ctr is not None and ctr < TOP_HEAVY_MAX_CTR and impressions > TOP_HEAVY_MIN_IMPRESSIONS:
        return FunnelDiagnosis.TOP_HEAVY
    if qualification_rate is not None and ctr is not None:
        if ctr >= LEAKY_MIN_CTR and qualification_rate < LEAKY_MAX_QUALIFICATION:
            return FunnelDiagnosis.LEAKY
        if qualification_rate >= CYLINDER_MIN_QUALIFICATION and ctr >= CYLINDER_MIN_CTR:
            return FunnelDiagnosis.CYLINDER
    return FunnelDiagnosis.HEALTHY


def build_funnel(aggregates: Sequence[VideoPeriodAggregate]) -> FunnelSummary:
    """Channel-level funnel over the per-video period aggregates."""
    impressions = int(sum(a.impressions for a in aggregates))
    views = int(sum(a.views for a in aggregates))
    engaged = float(sum(a.engaged_viewers for a in aggregates))

    if views <= 0:
        return FunnelSummary(
            video_count=len(aggregates),
            impressions=impressions,
            views=0,
            engaged_viewers=0.0,
            diagnosis=FunnelDiagnosis.INSUFFICIENT_DATA,
        )

    ctr = impression_weighted_ctr((a.ctr, a.impressions) for a in aggregates)
    retention = view_weighted_retention((a.avg_view_percentage, a.views) for a in aggregates)
    qualification_rate = engaged / views

    return FunnelSummary(
        video_count=len(aggregates),
        impressions=impressions,
        views=views,
        engaged_viewers=engaged,
        ctr=ctr,
        avg_view_percentage=retention,
        qualification_rate=qualification_rate,
        diagnosis=diagnose_funnel(ctr, impressions, qualification_rate),
    )
