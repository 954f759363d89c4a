"""Series run execution and retention cleanup workflows."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List

from flask import current_app

from tools.series_detection import build_llm_call
from web.db import SessionLocal
from web.models import RunArtifact, SeriesRun
from web.services.series_runner import run_series_pipeline
from web.services.series_store import SqlSeriesStore
from web.services.storage import ArtifactStorage

FINISHED_RUN_STATUSES = {"completed", "failed"}



def _append_log(db_session, run: SeriesRun, message: str) -> None:
    timestamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S UTC")
    existing = run.log_text or ""
    run.log_text = existing + f"[{timestamp}] {message}\n"
    db_session.add(run)
    db_session.commit()



def _artifact_records(result: Dict) -> List[Dict[str, str]]:
    return [
        {"artifact_type": "excel", "path": result["excel_path"]},
        {"artifact_type": "markdown", "path": result["markdown_path"]},
        {"artifact_type": "series", "path": result["series_path"]},
        {"artifact_type": "videos", "path": result["videos_path"]},
    ]



def execute_series_run(run_id: str) -> str:
    """
    Run series detection for one queued run and return its final status.

    Runs that already finished are left alone, so a redelivered task is a no-op.
    """
    db_session = SessionLocal()
    storage = ArtifactStorage(current_app.config)
    store = SqlSeriesStore(db_session)

    try:
        run = db_session.query(SeriesRun).filter(SeriesRun.id == run_id).one_or_none()
        if run is None:
            return "missing"
        if run.status in FINISHED_RUN_STATUSES:
            return "skipped"

        run.status = "running"
        run.progress_step = "Starting series detection"
        run.started_at = datetime.utcnow()
        run.error_message = ""
        db_session.add(run)
        db_session.commit()

        def logger(message: str) -> None:
            refreshed_run = db_session.query(SeriesRun).filter(SeriesRun.id == run_id).one()
            _append_log(db_session, refreshed_run, message)

        _append_log(db_session, run, "Run execution started")

        videos = store.load_videos(run_id)
        _append_log(db_session, run, f"Loaded {len(videos)} videos for {run.channel_name or run.channel_id}")

        llm_call = build_llm_call(
            current_app.config.get("ANTHROPIC_API_KEY", ""),
            current_app.config.get("CLAUDE_MODEL"),
            current_app.config.get("LLM_MONTHLY_BUDGET"),
        )

        result = run_series_pipeline(
            run_id=run.id,
            channel_id=run.channel_id,
            videos=videos,
            store=store,
            llm_call=llm_call,
            output_folder=current_app.config["OUTPUT_FOLDER"],
            logger=logger,
        )

        for artifact in _artifact_records(result):
            stored = storage.upload(artifact["path"], run.id, artifact["artifact_type"])
            db_session.add(
                RunArtifact(
                    run_id=run.id,
                    artifact_type=artifact["artifact_type"],
                    gcs_path=stored.path,
                    size_bytes=stored.size_bytes,
                )
            )

        summary = result["summary"]
        run = db_session.query(SeriesRun).filter(SeriesRun.id == run_id).one()
        run.series_detected = len(summary.series)
        run.uncategorized_count = summary.uncategorized_count
        run.status = "completed"
        run.progress_step = "Completed"
        run.progress_percent = 100
        if summary.messages:
            run.progress_message = summary.messages[0]
        run.finished_at = datetime.utcnow()

        db_session.add(run)
        db_session.commit()
        for message in summary.messages:
            _append_log(db_session, run, message)
        _append_log(db_session, run, "Run completed successfully")
        return "completed"

    except Exception as exc:  # pylint: disable=broad-except
        db_session.rollback()
        failed_run = db_session.query(SeriesRun).filter(SeriesRun.id == run_id).one_or_none()
        if failed_run is not None:
            failed_run.status = "failed"
            failed_run.progress_step = "Failed"
            failed_run.error_message = str(exc)
            failed_run.finished_at = datetime.utcnow()
            db_session.add(failed_run)
            db_session.commit()
            _append_log(db_session, failed_run, f"Run failed: {exc}")
        return "failed"
    finally:
        db_session.close()



def run_retention_cleanup(app) -> Dict[str, int]:
    """Delete expired runs, their rows and their artifacts."""
    with app.app_context():
        db_session = SessionLocal()
        storage = ArtifactStorage(current_app.config)

        deleted_runs = 0
        deleted_artifacts = 0

        try:
            now = datetime.utcnow()
            expired_runs = db_session.query(SeriesRun).filter(SeriesRun.expires_at < now).all()

            for run in expired_runs:
                for artifact in run.artifacts:
                    storage.delete(artifact.gcs_path)
                    deleted_artifacts += 1
                db_session.delete(run)
                deleted_runs += 1

            db_session.commit()
            return {"deleted_runs": deleted_runs, "deleted_artifacts": deleted_artifacts}
        finally:
            db_session.close()
