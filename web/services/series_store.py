"""SQLAlchemy persistence for runs, sections, videos and detected series."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Sequence

from web.models import DetectedSeries, RunSection, RunVideo, SeriesRun, SeriesVideo
from tools.series_detection import SECTION_SERIES
from tools.series_models import SeriesResult, VideoRecord

SECTION_INGESTION = "ingestion"
SECTION_KEYS = (SECTION_INGESTION, SECTION_SERIES)

FINISHED_STATUSES = {"completed", "failed"}


def video_to_row(run_id: str, video: VideoRecord) -> RunVideo:
    return RunVideo(
        run_id=run_id,
        external_id=video.external_id,
        title=video.title,
        published_at=video.published_at,
        channel=video.channel,
        source_url=video.source_url,
        format=video.format,
        view_count=video.view_count,
        like_count=video.like_count,
        comment_count=video.comment_count,
        duration_seconds=video.duration_seconds,
        watch_hours=video.watch_hours,
        impressions=video.impressions,
        ctr=video.ctr,
        avg_view_percentage=video.avg_view_percentage,
        subscribers_gained=video.subscribers_gained,
    )


def row_to_video(row: RunVideo) -> VideoRecord:
    return VideoRecord(
        external_id=row.external_id,
        title=row.title,
        published_at=row.published_at,
        channel=row.channel or "",
        source_url=row.source_url or "",
        view_count=int(row.view_count or 0),
        like_count=int(row.like_count or 0),
        comment_count=int(row.comment_count or 0),
        duration_seconds=int(row.duration_seconds or 0),
        watch_hours=float(row.watch_hours or 0.0),
        impressions=int(row.impressions or 0),
        ctr=float(row.ctr or 0.0),
        avg_view_percentage=float(row.avg_view_percentage or 0.0),
        subscribers_gained=int(row.subscribers_gained or 0),
        format=row.format,
    )


class SqlSeriesStore:
    """Series store backed by the app database, one session per job."""

    def __init__(self, db_session):
        self.db_session = db_session

    def _commit(self) -> None:
        try:
            self.db_session.commit()
        except Exception:
            self.db_session.rollback()
            raise

    def _run(self, run_id: str) -> SeriesRun:
        return self.db_session.query(SeriesRun).filter(SeriesRun.id == run_id).one()

    def create_sections(self, run_id: str) -> None:
        for key in SECTION_KEYS:
            self.db_session.add(RunSection(run_id=run_id, section_key=key, status="pending"))
        self._commit()

    def store_videos(self, run_id: str, videos: Sequence[VideoRecord]) -> int:
        """Insert videos for a run; repeated external ids keep the first row."""
        seen = set()
        for video in videos:
            if video.external_id in seen:
                continue
            seen.add(video.external_id)
            self.db_session.add(video_to_row(run_id, video))
        self._commit()
        return len(seen)

    def load_videos(self, run_id: str) -> List[VideoRecord]:
        rows = (
            self.db_session.query(RunVideo)
            .filter(RunVideo.run_id == run_id)
            .order_by(RunVideo.published_at)
            .all()
        )
        return [row_to_video(row) for row in rows]

    def upsert_series(self, series: Sequence[SeriesResult], channel_id: str, run_id: str) -> List[DetectedSeries]:
        """Insert or update series keyed by (channel, name)."""
        stored: List[DetectedSeries] = []
        pending: Dict[str, DetectedSeries] = {}
        for result in series:
            row = pending.get(result.name) or (
                self.db_session.query(DetectedSeries)
                .filter(DetectedSeries.channel_id == channel_id, DetectedSeries.name == result.name)
                .one_or_none()
            )
            if row is None:
                row = DetectedSeries(channel_id=channel_id, name=result.name)

            row.run_id = run_id
            row.detection_method = result.detection_method
            row.pattern_source = result.pattern_source
            row.confidence = result.confidence
            row.video_count = result.video_count
            row.total_views = result.total_views
            row.avg_views = result.avg_views
            row.avg_engagement_rate = result.avg_engagement_rate
            row.first_published = result.first_published
            row.last_published = result.last_published
            row.cadence_days = result.cadence_days
            row.performance_trend = result.performance_trend
            self.db_session.add(row)
            pending[result.name] = row
            stored.append(row)

        self._commit()
        return stored

    def assign_videos(self, stored_series_id: str, video_ids: Sequence[str]) -> None:
        """
        Replace the run's member list for a stored series.

        Members live in series_videos, so a video shared by two semantic
        clusters belongs to both. RunVideo.detected_series_id keeps the first
        series a video was assigned to and only marks it as categorized.
        """
        series = self.db_session.query(DetectedSeries).filter(DetectedSeries.id == stored_series_id).one()
        (
            self.db_session.query(SeriesVideo)
            .filter(SeriesVideo.series_id == series.id, SeriesVideo.run_id == series.run_id)
            .delete(synchronize_session=False)
        )

        unique_ids = list(dict.fromkeys(video_ids))
        for position, external_id in enumerate(unique_ids):
            self.db_session.add(
                SeriesVideo(run_id=series.run_id, series_id=series.id, external_id=external_id, position=position)
            )
        if unique_ids:
            (
                self.db_session.query(RunVideo)
                .filter(
                    RunVideo.run_id == series.run_id,
                    RunVideo.external_id.in_(unique_ids),
                    RunVideo.detected_series_id.is_(None),
                )
                .update({RunVideo.detected_series_id: series.id}, synchronize_session=False)
            )
        self._commit()

    def record_cost(self, run_id: str, tokens: int, cost: float) -> None:
        run = self._run(run_id)
        run.total_tokens = (run.total_tokens or 0) + int(tokens)
        run.total_cost = (run.total_cost or 0.0) + float(cost)
        self._commit()

    def update_progress(self, run_id: str, step: str, percent: int, message: str) -> None:
        run = self._run(run_id)
        run.progress_step = step
        run.progress_percent = int(percent)
        run.progress_message = message
        self._commit()

    def update_section_status(
        self,
        run_id: str,
        section: str,
        status: str,
        result_data: Optional[Dict] = None,
        error_message: Optional[str] = None,
    ) -> None:
        row = (
            self.db_session.query(RunSection)
            .filter(RunSection.run_id == run_id, RunSection.section_key == section)
            .one_or_none()
        )
        if row is None:
            row = RunSection(run_id=run_id, section_key=section)

        now = datetime.utcnow()
        row.status = status
        if status == "running":
            row.started_at = now
            row.completed_at = None
        elif status in FINISHED_STATUSES:
            row.completed_at = now
        if result_data is not None:
            row.result_data = result_data
        row.error_message = error_message or ""
        self.db_session.add(row)
        self._commit()
