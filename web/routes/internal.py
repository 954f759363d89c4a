"""Internal endpoints called by Cloud Tasks and Cloud Scheduler."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from web.services.job_executor import execute_series_run, run_retention_cleanup
from web.services.security import verify_internal_request

internal_bp = Blueprint("internal", __name__)


@internal_bp.before_request
def require_internal_caller():
    ok, reason = verify_internal_request()
    if not ok:
        return jsonify({"error": reason}), 403
    return None


@internal_bp.post("/internal/tasks/run-series")
def run_series_task():
    payload = request.get_json(silent=True) or {}
    run_id = str(payload.get("run_id") or "").strip()
    if not run_id:
        return jsonify({"error": "run_id is required"}), 400

    # Always 2xx once the run is handled, otherwise Cloud Tasks redelivers it
    outcome = execute_series_run(run_id)
    return jsonify({"status": outcome, "run_id": run_id})


@internal_bp.post("/internal/cleanup")
def cleanup_retention():
    result = run_retention_cleanup(current_app._get_current_object())
    return jsonify({"status": "ok", **result})
