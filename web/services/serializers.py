"""Serializer helpers for API responses."""

from __future__ import annotations

from web.models import DetectedSeries, RunArtifact, RunSection, SeriesRun


def _iso(value):
    return value.isoformat() if value else None



def run_to_dict(run: SeriesRun) -> dict:
    return {
        "run_id": run.id,
        "requested_by": run.requested_by,
        "source_name": run.source_name,
        "channel_id": run.channel_id,
        "channel_name": run.channel_name,
        "status": run.status,
        "progress": {
            "step": run.progress_step,
            "percent": run.progress_percent,
            "message": run.progress_message,
        },
        "error_message": run.error_message,
        "created_at": _iso(run.created_at),
        "started_at": _iso(run.started_at),
        "finished_at": _iso(run.finished_at),
        "expires_at": _iso(run.expires_at),
        "summary": {
            "videos_ingested": run.videos_ingested,
            "series_detected": run.series_detected,
            "uncategorized_count": run.uncategorized_count,
            "total_tokens": run.total_tokens,
            "total_cost": run.total_cost,
        },
    }



def section_to_dict(section: RunSection) -> dict:
    return {
        "section": section.section_key,
        "status": section.status,
        "result_data": section.result_data,
        "error_message": section.error_message,
        "started_at": _iso(section.started_at),
        "completed_at": _iso(section.completed_at),
    }



def artifact_to_dict(artifact: RunArtifact) -> dict:
    return {
        "id": artifact.id,
        "type": artifact.artifact_type,
        "size_bytes": artifact.size_bytes,
        "created_at": _iso(artifact.created_at),
    }



def series_to_dict(series: DetectedSeries, video_ids=None) -> dict:
    return {
        "id": series.id,
        "name": series.name,
        "channel_id": series.channel_id,
        "detection_method": series.detection_method,
        "pattern_source": series.pattern_source,
        "confidence": series.confidence,
        "video_count": series.video_count,
        "total_views": series.total_views,
        "avg_views": series.avg_views,
        "avg_engagement_rate": series.avg_engagement_rate,
        "first_published": _iso(series.first_published),
        "last_published": _iso(series.last_published),
        "cadence_days": series.cadence_days,
        "performance_trend": series.performance_trend,
        "video_ids": list(video_ids) if video_ids is not None else [],
    }
