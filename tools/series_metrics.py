"""Merge detected series and compute per-series performance metrics."""

from __future__ import annotations

from datetime import datetime
from fractions import Fraction
from typing import Dict, List, Optional, Sequence

import numpy as np

from tools.series_models import SeriesCandidate, SeriesResult, VideoRecord

MAX_OVERLAP_FRACTION = 0.5
MIN_SERIES_VIDEOS = 3
TREND_MIN_VIDEOS = 4
NEW_SERIES_MAX_AGE_DAYS = 180
GROWTH_FACTOR = Fraction(6, 5)
DECLINE_FACTOR = Fraction(4, 5)

TREND_GROWING = "growing"
TREND_DECLINING = "declining"
TREND_STABLE = "stable"
TREND_NEW = "new"


def overlap_fraction(candidate: SeriesCandidate, existing: SeriesCandidate) -> float:
    if not candidate.video_ids:
        return 0.0
    existing_ids = set(existing.video_ids)
    shared = sum(1 for video_id in candidate.video_ids if video_id in existing_ids)
    return shared / len(candidate.video_ids)


def merge_series(
    pattern_series: Sequence[SeriesCandidate],
    semantic_series: Sequence[SeriesCandidate],
) -> List[SeriesCandidate]:
    """
    Append semantic clusters to the pattern series, skipping any cluster
    whose videos are more than half owned by one series already merged.
    """
    merged = list(pattern_series)
    for candidate in semantic_series:
        if any(overlap_fraction(candidate, existing) > MAX_OVERLAP_FRACTION for existing in merged):
            continue
        merged.append(candidate)
    return merged


def _mean_views(videos: Sequence[VideoRecord]) -> Fraction:
    return Fraction(sum(video.view_count for video in videos)) / len(videos)


def classify_trend(videos: Sequence[VideoRecord], now: Optional[datetime] = None) -> str:
    """
    Classify a series by comparing mean views of its chronological halves.

    Thresholds are strict: a second half exactly 20% up is still stable.
    """
    ordered = sorted(videos, key=lambda video: video.published_at)
    if len(ordered) >= TREND_MIN_VIDEOS:
        half = len(ordered) // 2
        first_avg = _mean_views(ordered[:half])
        second_avg = _mean_views(ordered[half:])
        if second_avg > first_avg * GROWTH_FACTOR:
            return TREND_GROWING
        if second_avg < first_avg * DECLINE_FACTOR:
            return TREND_DECLINING
        return TREND_STABLE

    if ordered:
        age_days = ((now or datetime.utcnow()) - ordered[0].published_at).total_seconds() / 86400
        if age_days < NEW_SERIES_MAX_AGE_DAYS:
            return TREND_NEW
    return TREND_STABLE


def cadence_days(dates: Sequence[datetime]) -> Optional[int]:
    if len(dates) < 2:
        return None
    gaps = [(later - earlier).total_seconds() / 86400 for earlier, later in zip(dates, dates[1:])]
    # Half-up, so a 2.5 day mean is 3 days
    return int(np.floor(np.mean(gaps) + 0.5))


def compute_series_metrics(
    candidate: SeriesCandidate,
    video_map: Dict[str, VideoRecord],
    now: Optional[datetime] = None,
) -> Optional[SeriesResult]:
    videos = [video_map[video_id] for video_id in candidate.video_ids if video_id in video_map]
    if len(videos) < MIN_SERIES_VIDEOS:
        return None

    views = [video.view_count for video in videos]
    engagement = [
        (video.like_count + video.comment_count) / max(video.view_count, 1)
        for video in videos
    ]
    dates = sorted(video.published_at for video in videos if video.published_at is not None)

    return SeriesResult(
        name=candidate.name,
        video_ids=tuple(video.external_id for video in videos),
        detection_method=candidate.detection_method,
        pattern_source=candidate.pattern_source,
        confidence=candidate.confidence,
        video_count=len(videos),
        total_views=int(sum(views)),
        avg_views=float(np.mean(views)),
        avg_engagement_rate=float(np.mean(engagement)),
        first_published=dates[0] if dates else None,
        last_published=dates[-1] if dates else None,
        cadence_days=cadence_days(dates),
        performance_trend=classify_trend(videos, now),
    )


def aggregate_series(
    series: Sequence[SeriesCandidate],
    videos: Sequence[VideoRecord],
    now: Optional[datetime] = None,
) -> List[SeriesResult]:
    """Compute metrics for every series, sorted by total views (descending)."""
    video_map = {video.external_id: video for video in videos}
    results = [compute_series_metrics(candidate, video_map, now) for candidate in series]
    kept = [result for result in results if result is not None]
    kept.sort(key=lambda result: result.total_views, reverse=True)
    return kept
