"""JSON API routes for export uploads, run status polling, series and artifacts."""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Dict, List

import httpx
from flask import Blueprint, abort, current_app, jsonify, request, send_file
from sqlalchemy import desc, func

from tools.claude_client import estimate_semantic_cost
from tools.youtube_export_parser import PARSE_FAILURE_MESSAGE, ExportArchiveError
from web.auth import require_identity
from web.db import SessionLocal
from web.models import DetectedSeries, RunArtifact, RunVideo, SeriesRun, SeriesVideo
from web.services.serializers import artifact_to_dict, run_to_dict, section_to_dict, series_to_dict
from web.services.series_runner import CatalogFetchError, ExportParseError, channel_slug, ingest_export
from web.services.series_store import SECTION_INGESTION, SqlSeriesStore
from web.services.storage import ArtifactStorage
from web.services.tasks import enqueue_series_run

api_bp = Blueprint("api", __name__)



def _upload_source():
    """Return (payload, filename, url, channel_override) from a multipart or JSON request."""
    upload = request.files.get("file")
    if upload is not None and upload.filename:
        return upload.read(), upload.filename, "", request.form.get("channel_id", "").strip()

    body = request.get_json(silent=True) or {}
    url = str(body.get("url") or request.form.get("url") or "").strip()
    channel_override = str(body.get("channel_id") or request.form.get("channel_id") or "").strip()
    if not url:
        return None, "", "", channel_override
    if not url.startswith(("http://", "https://")):
        abort(400, description="url must be an http(s) link")
    return None, "", url, channel_override



def _apply_filters(query):
    status = request.args.get("status", "").strip()
    q = request.args.get("q", "").strip()
    start_date = request.args.get("start_date", "").strip()
    end_date = request.args.get("end_date", "").strip()

    if status:
        query = query.filter(SeriesRun.status == status)
    if q:
        lowered = q.lower()
        query = query.filter(
            func.lower(SeriesRun.channel_name).contains(lowered)
            | func.lower(SeriesRun.channel_id).contains(lowered)
            | func.lower(SeriesRun.source_name).contains(lowered)
        )
    if start_date:
        try:
            query = query.filter(SeriesRun.created_at >= datetime.fromisoformat(start_date))
        except ValueError:
            pass
    if end_date:
        try:
            end = datetime.fromisoformat(end_date) + timedelta(days=1)
            query = query.filter(SeriesRun.created_at < end)
        except ValueError:
            pass

    return query



def _get_run_or_404(db_session, run_id: str) -> SeriesRun:
    run = db_session.query(SeriesRun).filter(SeriesRun.id == run_id).one_or_none()
    if run is None:
        abort(404)
    return run


@api_bp.post("/api/series-runs")
def create_series_runs():
    identity = require_identity()
    payload, filename, url, channel_override = _upload_source()
    if payload is None and not url:
        return jsonify({"error": "Upload a CSV/ZIP export as 'file' or send a JSON 'url'"}), 400

    try:
        channels = ingest_export(
            payload=payload,
            filename=filename,
            url=url,
            youtube_api_key=current_app.config.get("YOUTUBE_API_KEY", ""),
            max_videos=int(current_app.config.get("MAX_VIDEOS", 0) or 0),
        )
    except (ExportParseError, ExportArchiveError) as exc:
        return jsonify({"error": PARSE_FAILURE_MESSAGE, "detail": str(exc)}), 422
    except CatalogFetchError as exc:
        return jsonify({"error": "Could not fetch channel catalogue", "detail": str(exc)}), exc.status_code
    except httpx.HTTPError as exc:
        return jsonify({"error": "Could not download file", "detail": str(exc)}), 502

    app = current_app._get_current_object()
    db_session = SessionLocal()
    store = SqlSeriesStore(db_session)
    created: List[Dict] = []
    try:
        expires_at = datetime.utcnow() + timedelta(days=int(app.config.get("RETENTION_DAYS", 180)))
        for channel_name, videos in channels.items():
            channel_id = channel_override if channel_override and len(channels) == 1 else channel_slug(channel_name)
            run = SeriesRun(
                requested_by=identity.email,
                source_name=filename or url,
                channel_id=channel_id,
                channel_name=channel_name,
                expires_at=expires_at,
            )
            db_session.add(run)
            db_session.commit()

            store.create_sections(run.id)
            stored_count = store.store_videos(run.id, videos)
            run.videos_ingested = stored_count
            db_session.add(run)
            db_session.commit()
            store.update_section_status(
                run.id,
                SECTION_INGESTION,
                "completed",
                result_data={"channel": channel_name, "videos": stored_count},
            )
            created.append(run)

        items = []
        for run in created:
            task = enqueue_series_run(app, run.id)
            payload_item = run_to_dict(run)
            payload_item["task"] = task
            payload_item["estimated_ai_cost"] = estimate_semantic_cost(run.videos_ingested or 0)
            items.append(payload_item)

        return jsonify({"items": items, "count": len(items)}), 201
    finally:
        db_session.close()


@api_bp.get("/api/series-runs")
def list_series_runs():
    require_identity()
    db_session = SessionLocal()
    try:
        query = _apply_filters(db_session.query(SeriesRun))
        runs = query.order_by(desc(SeriesRun.created_at)).limit(200).all()
        return jsonify({"items": [run_to_dict(run) for run in runs], "count": len(runs)})
    finally:
        db_session.close()


@api_bp.get("/api/series-runs/<run_id>/status")
def series_run_status(run_id: str):
    require_identity()
    db_session = SessionLocal()
    try:
        run = _get_run_or_404(db_session, run_id)

        payload = run_to_dict(run)
        payload["sections"] = [section_to_dict(section) for section in sorted(run.sections, key=lambda s: s.section_key)]
        payload["artifacts"] = [
            artifact_to_dict(artifact)
            for artifact in sorted(run.artifacts, key=lambda item: item.created_at, reverse=True)
        ]
        payload["log_text"] = run.log_text or ""

        return jsonify(payload)
    finally:
        db_session.close()


@api_bp.get("/api/series-runs/<run_id>/series")
def series_run_series(run_id: str):
    require_identity()
    db_session = SessionLocal()
    try:
        _get_run_or_404(db_session, run_id)

        members: "OrderedDict[str, List[str]]" = OrderedDict()
        rows = (
            db_session.query(SeriesVideo.series_id, SeriesVideo.external_id)
            .filter(SeriesVideo.run_id == run_id)
            .order_by(SeriesVideo.series_id, SeriesVideo.position)
            .all()
        )
        for series_id, external_id in rows:
            members.setdefault(series_id, []).append(external_id)

        series_rows = []
        if members:
            series_rows = (
                db_session.query(DetectedSeries)
                .filter(DetectedSeries.id.in_(list(members.keys())))
                .order_by(desc(DetectedSeries.total_views))
                .all()
            )

        uncategorized = (
            db_session.query(func.count(RunVideo.id))
            .filter(RunVideo.run_id == run_id, RunVideo.detected_series_id.is_(None))
            .scalar()
        )
        return jsonify(
            {
                "items": [series_to_dict(series, members.get(series.id, [])) for series in series_rows],
                "count": len(series_rows),
                "uncategorized_count": int(uncategorized or 0),
            }
        )
    finally:
        db_session.close()


@api_bp.get("/api/series-runs/<run_id>/artifacts/<artifact_type>")
def artifact_signed_url(run_id: str, artifact_type: str):
    require_identity()
    db_session = SessionLocal()
    try:
        artifact = (
            db_session.query(RunArtifact)
            .filter(RunArtifact.run_id == run_id, RunArtifact.artifact_type == artifact_type)
            .order_by(desc(RunArtifact.created_at))
            .first()
        )
        if artifact is None:
            abort(404)

        storage = ArtifactStorage(current_app.config)
        url = storage.signed_download_url(artifact, expires_minutes=10)
        return jsonify({"url": url, "expires_in_seconds": 600})
    finally:
        db_session.close()


@api_bp.get("/api/local-artifacts/<artifact_id>/download")
def download_local_artifact(artifact_id: str):
    require_identity()
    db_session = SessionLocal()
    try:
        artifact = db_session.query(RunArtifact).filter(RunArtifact.id == artifact_id).one_or_none()
        if artifact is None:
            abort(404)

        storage = ArtifactStorage(current_app.config)
        local_path = storage.local_path(artifact)
        if not local_path.exists():
            abort(404)

        return send_file(local_path, as_attachment=True, download_name=storage.download_name(artifact))
    finally:
        db_session.close()
