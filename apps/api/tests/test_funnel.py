from types import SimpleNamespace

import pytest

from analysis.funnel import (
    aggregate_video_period,
    benchmark_for_duration,
    build_funnel,
    engaged_viewers,
    engagement_quality,
    impression_weighted_ctr,
    quality_label,
    view_weighted_retention,
)
from analysis.models import FunnelDiagnosis, QualityLabel, VideoPeriodAggregate


def _snapshot(**values):
    fields = dict(
        view_count=None,
        impressions=None,
        ctr=None,
        avg_view_percentage=None,
        watch_hours=None,
        subscribers_gained=None,
        subscribers_lost=None,
        likes=None,
        comments=None,
        shares=None,
        total_view_count=None,
    )
    fields.update(values)
    return SimpleNamespace(**fields)


def _video(duration_seconds=600, avg_view_percentage=None):
    return SimpleNamespace(
        id="video-1",
        youtube_video_id="vid1",
        title="Video",
        duration_seconds=duration_seconds,
        video_type="long",
        avg_view_percentage=avg_view_percentage,
    )


def test_duration_buckets():
    assert benchmark_for_duration(45).bucket == "under_1_min"
    assert benchmark_for_duration(60).bucket == "under_1_min"
    assert benchmark_for_duration(61).bucket == "1_to_5_min"
    assert benchmark_for_duration(1500).bucket == "20_to_30_min"
    assert benchmark_for_duration(1500).expected_retention == 0.30
    assert benchmark_for_duration(7200).bucket == "over_30_min"
    assert benchmark_for_duration(None) is None
    assert benchmark_for_duration(0) is None


def test_engaged_viewers_caps_at_all_viewers():
    assert engaged_viewers(1000, 0.25) == pytest.approx(500)
    assert engaged_viewers(1000, 0.80) == pytest.approx(1000)
    assert engaged_viewers(1000, None) == 0.0


def test_ctr_is_impression_weighted():
    # plain mean would be 0.055
    assert impression_weighted_ctr([(0.10, 100), (0.01, 900)]) == pytest.approx(0.019)
    assert impression_weighted_ctr([(0.10, 0), (None, 50)]) is None


def test_retention_is_view_weighted():
    assert view_weighted_retention([(0.60, 300), (0.20, 100)]) == pytest.approx(0.50)


@pytest.mark.parametrize(
    "ratio,label",
    [
        (1.10, QualityLabel.OUTPERFORMING),
        (0.95, QualityLabel.ON_PAR),
        (0.70, QualityLabel.BELOW_BENCHMARK),
        (0.69, QualityLabel.UNDERPERFORMING),
        (None, None),
    ],
)
def test_quality_labels(ratio, label):
    assert quality_label(ratio) == label


def test_engagement_quality_against_duration_benchmark():
    # 20-30 min bucket expects 0.30 retention -> 600 of 1000 engaged
    quality = engagement_quality(1000, 0.36, 1500)
    assert quality.expected_engaged_viewers == pytest.approx(600)
    assert quality.engaged_viewers == pytest.approx(720)
    assert quality.ratio == pytest.approx(1.2)
    assert quality.label == QualityLabel.OUTPERFORMING


def test_unknown_duration_gets_no_benchmark_or_label():
    # 0s means the duration could not be parsed
    quality = engagement_quality(1000, 0.36, 0)
    assert quality.benchmark is None
    assert quality.engaged_viewers == pytest.approx(720)
    assert quality.expected_engaged_viewers == 0.0
    assert quality.ratio is None
    assert quality.label is None


def test_period_views_fall_back_to_cumulative_delta():
    snapshots = [
        _snapshot(total_view_count=1000),
        _snapshot(total_view_count=1250),
        _snapshot(total_view_count=1400),
    ]
    aggregate = aggregate_video_period(_video(avg_view_percentage=0.4), snapshots)

    assert aggregate.views == 400
    assert aggregate.snapshot_days == 3
    assert aggregate.avg_view_percentage == 0.4


def test_period_aggregate_weights_and_sums():
    snapshots = [
        _snapshot(view_count=300, impressions=1000, ctr=0.05, avg_view_percentage=0.6, likes=3),
        _snapshot(view_count=100, impressions=3000, ctr=0.01, avg_view_percentage=0.2, likes=1),
    ]
    aggregate = aggregate_video_period(_video(), snapshots)

    assert aggregate.views == 400
    assert aggregate.impressions == 4000
    assert aggregate.ctr == pytest.approx(0.02)
    assert aggregate.avg_view_percentage == pytest.approx(0.5)
    assert aggregate.likes == 4


def test_period_without_activity_is_dropped():
    assert aggregate_video_period(_video(), [_snapshot(total_view_count=50)]) is None


def _aggregate(views, impressions, ctr, retention):
    return VideoPeriodAggregate(
        video_id="v",
        youtube_video_id="v",
        views=views,
        impressions=impressions,
        ctr=ctr,
        avg_view_percentage=retention,
        engaged_viewers=engaged_viewers(views, retention),
    )


def test_funnel_top_heavy():
    summary = build_funnel([_aggregate(500, 50_000, 0.01, 0.4)])
    assert summary.diagnosis == FunnelDiagnosis.TOP_HEAVY


def test_funnel_leaky():
    summary = build_funnel([_aggregate(1000, 20_000, 0.05, 0.10)])
    assert summary.qualification_rate == pytest.approx(0.2)
    assert summary.diagnosis == FunnelDiagnosis.LEAKY


def test_funnel_cylinder():
    summary = build_funnel([_aggregate(1000, 10_000, 0.08, 0.45)])
    assert summary.diagnosis == FunnelDiagnosis.CYLINDER


def test_funnel_without_views():
    assert build_funnel([]).diagnosis == FunnelDiagnosis.INSUFFICIENT_DATA
