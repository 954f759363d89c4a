import unittest
from datetime import datetime, timedelta

from tools.series_metrics import (
    aggregate_series,
    cadence_days,
    classify_trend,
    compute_series_metrics,
    merge_series,
)
from tools.series_models import SeriesCandidate, VideoRecord

NOW = datetime(2025, 1, 1)


def make_video(video_id, views, days_ago, likes=0, comments=0):
    return VideoRecord(
        external_id=video_id,
        title=f"Title {video_id}",
        published_at=NOW - timedelta(days=days_ago),
        view_count=views,
        like_count=likes,
        comment_count=comments,
    )


def chronological(views, first_days_ago=400, step=7):
    return [
        make_video(f"v{index}", count, first_days_ago - index * step)
        for index, count in enumerate(views)
    ]


class TrendTests(unittest.TestCase):
    def test_exact_growth_boundary_is_stable(self):
        self.assertEqual(classify_trend(chronological([100, 100, 120, 120]), NOW), "stable")

    def test_growing_and_declining(self):
        self.assertEqual(classify_trend(chronological([100, 100, 121, 121]), NOW), "growing")
        self.assertEqual(classify_trend(chronological([100, 100, 79, 79]), NOW), "declining")

    def test_exact_decline_boundary_is_stable(self):
        self.assertEqual(classify_trend(chronological([100, 100, 80, 80]), NOW), "stable")

    def test_odd_count_puts_extra_video_in_second_half(self):
        # halves are [100, 100] and [100, 150, 150] -> 133.3 > 120
        self.assertEqual(classify_trend(chronological([100, 100, 100, 150, 150]), NOW), "growing")

    def test_split_is_chronological_not_input_order(self):
        videos = chronological([100, 100, 200, 200])
        self.assertEqual(classify_trend(list(reversed(videos)), NOW), "growing")

    def test_small_recent_series_is_new(self):
        videos = [make_video("a", 10, 30), make_video("b", 10, 20), make_video("c", 10, 10)]
        self.assertEqual(classify_trend(videos, NOW), "new")

    def test_small_old_series_is_stable(self):
        videos = [make_video("a", 10, 400), make_video("b", 10, 20), make_video("c", 10, 10)]
        self.assertEqual(classify_trend(videos, NOW), "stable")


class CadenceTests(unittest.TestCase):
    def test_mean_gap_in_days(self):
        dates = [datetime(2024, 1, 1), datetime(2024, 1, 8), datetime(2024, 1, 15)]
        self.assertEqual(cadence_days(dates), 7)

    def test_half_day_rounds_up(self):
        dates = [datetime(2024, 1, 1), datetime(2024, 1, 3), datetime(2024, 1, 6)]
        self.assertEqual(cadence_days(dates), 3)

    def test_single_date_has_no_cadence(self):
        self.assertIsNone(cadence_days([datetime(2024, 1, 1)]))
        self.assertIsNone(cadence_days([]))


class MergeTests(unittest.TestCase):
    def setUp(self):
        self.pattern = [SeriesCandidate(name="Gear Review", video_ids=("a1", "a2", "a3", "a4", "a5"))]

    def test_majority_overlap_is_rejected(self):
        cluster = SeriesCandidate(
            name="Camera Talk", video_ids=("a1", "a2", "a3", "b1", "b2"), detection_method="semantic"
        )
        self.assertEqual(merge_series(self.pattern, [cluster]), self.pattern)

    def test_minority_overlap_is_kept(self):
        cluster = SeriesCandidate(
            name="Camera Talk", video_ids=("a1", "a2", "b1", "b2", "b3"), detection_method="semantic"
        )
        merged = merge_series(self.pattern, [cluster])
        self.assertEqual([series.name for series in merged], ["Gear Review", "Camera Talk"])

    def test_overlap_checks_include_earlier_semantic_clusters(self):
        first = SeriesCandidate(name="One", video_ids=("b1", "b2", "b3"), detection_method="semantic")
        second = SeriesCandidate(name="Two", video_ids=("b1", "b2", "c1"), detection_method="semantic")
        merged = merge_series(self.pattern, [first, second])
        self.assertEqual([series.name for series in merged], ["Gear Review", "One"])


class AggregateTests(unittest.TestCase):
    def test_gear_review_metrics(self):
        views = [100 + 50 * index for index in range(10)]
        videos = chronological(views)
        candidate = SeriesCandidate(
            name="Gear Review",
            video_ids=tuple(video.external_id for video in videos),
            pattern_source="episode_trailing",
        )
        (result,) = aggregate_series([candidate], videos, NOW)

        self.assertEqual(result.video_count, 10)
        self.assertEqual(result.total_views, sum(views))
        self.assertAlmostEqual(result.avg_views, 325.0)
        self.assertEqual(result.first_published, videos[0].published_at)
        self.assertEqual(result.last_published, videos[-1].published_at)
        self.assertEqual(result.cadence_days, 7)
        self.assertEqual(result.performance_trend, "growing")

    def test_engagement_rate_guards_zero_views(self):
        videos = [
            make_video("a", 100, 300, likes=8, comments=2),
            make_video("b", 0, 200, likes=1, comments=0),
            make_video("c", 50, 100, likes=0, comments=0),
        ]
        candidate = SeriesCandidate(name="X", video_ids=("a", "b", "c"))
        result = compute_series_metrics(candidate, {v.external_id: v for v in videos}, NOW)
        self.assertAlmostEqual(result.avg_engagement_rate, (0.1 + 1.0 + 0.0) / 3)

    def test_unresolved_series_dropped_and_sorted_by_views(self):
        videos = [make_video(f"v{i}", views, 50 - i) for i, views in enumerate([10, 20, 30, 400, 500, 600])]
        small = SeriesCandidate(name="Small", video_ids=("v0", "v1", "v2"))
        big = SeriesCandidate(name="Big", video_ids=("v3", "v4", "v5"))
        ghost = SeriesCandidate(name="Ghost", video_ids=("v0", "missing1", "missing2"))

        results = aggregate_series([small, ghost, big], videos, NOW)
        self.assertEqual([result.name for result in results], ["Big", "Small"])


if __name__ == "__main__":
    unittest.main()
