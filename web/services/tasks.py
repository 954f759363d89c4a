"""Dispatch of series runs to Cloud Tasks, or to a local thread in development."""

from __future__ import annotations

import json
import threading
from typing import Any, Dict

try:
    from google.cloud import tasks_v2
    from google.protobuf import duration_pb2
except Exception:  # pragma: no cover
    tasks_v2 = None
    duration_pb2 = None

# The semantic step waits on a single Claude request, so allow well over the
# default 10 minute HTTP dispatch deadline.
DISPATCH_DEADLINE_SECONDS = 1800


def _run_inline(app, run_id: str) -> None:
    from web.services.job_executor import execute_series_run

    with app.app_context():
        execute_series_run(run_id)


def _series_task(app, queue_name: str, run_id: str) -> Dict[str, Any]:
    handler_url = app.config.get("TASK_HANDLER_URL")
    http_request: Dict[str, Any] = {
        "http_method": tasks_v2.HttpMethod.POST,
        "url": handler_url,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps({"run_id": run_id}).encode("utf-8"),
    }

    service_account = app.config.get("TASK_SERVICE_ACCOUNT_EMAIL")
    if service_account:
        http_request["oidc_token"] = {
            "service_account_email": service_account,
            "audience": app.config.get("INTERNAL_TASK_AUDIENCE") or handler_url,
        }

    return {
        # One task per run: Cloud Tasks rejects a second enqueue of the same run
        "name": f"{queue_name}/tasks/series-run-{run_id}",
        "http_request": http_request,
        "dispatch_deadline": duration_pb2.Duration(seconds=DISPATCH_DEADLINE_SECONDS),
    }


def enqueue_series_run(app, run_id: str) -> Dict[str, Any]:
    """Queue a series run in Cloud Tasks, or run it on a thread in local mode."""
    if app.config.get("USE_CLOUD_TASKS") and tasks_v2 is not None:
        client = tasks_v2.CloudTasksClient()
        queue_name = client.queue_path(
            app.config.get("GOOGLE_CLOUD_PROJECT"),
            app.config.get("TASK_QUEUE_LOCATION"),
            app.config.get("TASK_QUEUE_NAME"),
        )
        response = client.create_task(parent=queue_name, task=_series_task(app, queue_name, run_id))
        return {"mode": "cloud_tasks", "task_name": response.name}

    thread = threading.Thread(
        target=_run_inline,
        args=(app, run_id),
        name=f"series-run-{run_id}",
        daemon=True,
    )
    thread.start()
    return {"mode": "local_thread", "task_name": thread.name}
