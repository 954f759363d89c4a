import io
import json
import os
import tempfile
import unittest
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import patch
from urllib.parse import urlparse

from tools.claude_client import LLMResponse
from tools.series_detection import PARTIAL_DETECTION_MESSAGE
from tools.series_models import VideoRecord
from web.app import create_app
from web.db import SessionLocal
from web.models import DetectedSeries, RunVideo, SeriesRun, SeriesVideo
from web.services.job_executor import execute_series_run


ENV_KEYS = [
    "DATABASE_URL",
    "LOCAL_ARTIFACT_DIR",
    "OUTPUT_FOLDER",
    "AUTO_CREATE_SCHEMA",
    "DEV_AUTH_EMAIL",
    "USE_GCS",
    "USE_CLOUD_TASKS",
    "SECRET_KEY",
    "ANTHROPIC_API_KEY",
    "ALLOW_INSECURE_INTERNAL",
    "YOUTUBE_API_KEY",
]

MISC_TITLES = [
    "Testing the new mirrorless body",
    "Is this lens worth it",
    "Shooting street photos at night",
    "My studio lighting setup",
    "Answering your questions",
]


def overlapping_clusters_llm(prompt, system_prompt, feature_tag, max_output_tokens):
    reply = {
        "series": [
            {"name": "Camera Tests", "videoIndices": [0, 1, 2], "confidence": "high"},
            {"name": "Night Shoots", "videoIndices": [2, 3, 4], "confidence": "medium"},
        ]
    }
    return LLMResponse(text=json.dumps(reply), usage={"input_tokens": 800, "output_tokens": 120}, cost=0.003)


def export_csv() -> bytes:
    lines = ["Content,Video title,Video publish time,Views"]
    for n in range(1, 11):
        lines.append(f"gear{n:07d},Gear Review | Ep {n},2024-01-{n:02d},{100 + 50 * n}")
    for n, title in enumerate(MISC_TITLES, start=1):
        lines.append(f"misc{n:07d},{title},2024-02-{n:02d},{1000 + n}")
    return ("\n".join(lines) + "\n").encode("utf-8")


class AppTestCase(unittest.TestCase):
    def setUp(self):
        self.previous_env = {key: os.environ.get(key) for key in ENV_KEYS}
        self.temp_dir = tempfile.TemporaryDirectory()

        root = Path(self.temp_dir.name)
        os.environ["DATABASE_URL"] = f"sqlite:///{root / 'test.db'}"
        os.environ["LOCAL_ARTIFACT_DIR"] = str(root / "artifacts")
        os.environ["OUTPUT_FOLDER"] = str(root / "output")
        os.environ["AUTO_CREATE_SCHEMA"] = "1"
        os.environ["DEV_AUTH_EMAIL"] = "qa@example.com"
        os.environ["USE_GCS"] = "0"
        os.environ["USE_CLOUD_TASKS"] = "0"
        os.environ["SECRET_KEY"] = "test-secret"
        os.environ["ANTHROPIC_API_KEY"] = ""
        os.environ["ALLOW_INSECURE_INTERNAL"] = "1"
        os.environ["YOUTUBE_API_KEY"] = ""

        self.app = create_app()
        self.client = self.app.test_client()

    def tearDown(self):
        SessionLocal.remove()
        self.temp_dir.cleanup()
        for key, value in self.previous_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value

    def _upload(self, payload: bytes, filename: str, **form):
        data = {"file": (io.BytesIO(payload), filename)}
        data.update(form)
        with patch("web.routes.api.enqueue_series_run", return_value={"mode": "test"}) as enqueue:
            response = self.client.post("/api/series-runs", data=data, content_type="multipart/form-data")
        return response, enqueue


class SeriesRunApiTests(AppTestCase):
    def test_upload_creates_queued_run(self):
        response, enqueue = self._upload(export_csv(), "export.csv", channel_id="my-channel")

        self.assertEqual(response.status_code, 201)
        body = response.get_json()
        self.assertEqual(body["count"], 1)
        item = body["items"][0]
        self.assertEqual(item["channel_id"], "my-channel")
        self.assertEqual(item["channel_name"], "Main Channel")
        self.assertEqual(item["requested_by"], "qa@example.com")
        self.assertEqual(item["status"], "queued")
        self.assertEqual(item["summary"]["videos_ingested"], 15)
        self.assertEqual(item["task"], {"mode": "test"})
        self.assertTrue(item["estimated_ai_cost"].startswith("~$"))
        enqueue.assert_called_once()

        db_session = SessionLocal()
        try:
            self.assertEqual(db_session.query(RunVideo).filter(RunVideo.run_id == item["run_id"]).count(), 15)
        finally:
            db_session.close()

    def test_unparseable_upload_is_422(self):
        response, enqueue = self._upload(b"hello,world\n1,2\n", "junk.csv")
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.get_json()["error"], "Could not parse file")
        enqueue.assert_not_called()

        response, _ = self._upload(b"anything", "notes.txt")
        self.assertEqual(response.status_code, 422)

    def test_missing_input_is_400(self):
        response = self.client.post("/api/series-runs", json={})
        self.assertEqual(response.status_code, 400)

        response = self.client.post("/api/series-runs", json={"url": "ftp://example.com/export.csv"})
        self.assertEqual(response.status_code, 400)

    def test_channel_url_without_youtube_key_is_503(self):
        response = self.client.post("/api/series-runs", json={"url": "https://www.youtube.com/@gearchannel"})
        self.assertEqual(response.status_code, 503)
        self.assertIn("YOUTUBE_API_KEY", response.get_json()["detail"])

    def test_channel_url_fetches_catalogue(self):
        self.app.config["YOUTUBE_API_KEY"] = "test-key"
        self.app.config["MAX_VIDEOS"] = 25
        videos = [
            VideoRecord(
                external_id=f"vid{n:08d}",
                title=f"Gear Review | Ep {n}",
                published_at=datetime(2024, 1, n),
                channel="Gear Channel",
            )
            for n in range(1, 4)
        ]
        with patch("web.services.series_runner.YouTubeCatalogFetcher") as fetcher_cls, patch(
            "web.routes.api.enqueue_series_run", return_value={"mode": "test"}
        ):
            fetcher_cls.return_value.fetch_catalog.return_value = videos
            response = self.client.post("/api/series-runs", json={"url": "https://www.youtube.com/@gearchannel"})

        self.assertEqual(response.status_code, 201)
        fetcher_cls.assert_called_once_with("test-key")
        fetcher_cls.return_value.fetch_catalog.assert_called_once_with("https://www.youtube.com/@gearchannel", 25)
        item = response.get_json()["items"][0]
        self.assertEqual(item["channel_name"], "Gear Channel")
        self.assertEqual(item["channel_id"], "gear-channel")
        self.assertEqual(item["summary"]["videos_ingested"], 3)

    def test_executed_run_exposes_series_and_artifacts(self):
        response, _ = self._upload(export_csv(), "export.csv")
        run_id = response.get_json()["items"][0]["run_id"]

        with self.app.app_context():
            execute_series_run(run_id)

        status = self.client.get(f"/api/series-runs/{run_id}/status").get_json()
        self.assertEqual(status["status"], "completed")
        self.assertEqual(status["progress"]["percent"], 100)
        # No API key configured, so only the pattern pass contributes
        self.assertEqual(status["progress"]["message"], PARTIAL_DETECTION_MESSAGE)
        self.assertEqual(status["summary"]["series_detected"], 1)
        self.assertEqual(status["summary"]["uncategorized_count"], 5)
        self.assertEqual(
            [(section["section"], section["status"]) for section in status["sections"]],
            [("ingestion", "completed"), ("series_detection", "completed")],
        )
        self.assertTrue(status["sections"][1]["result_data"]["ai_step_skipped"])
        self.assertEqual(
            sorted(artifact["type"] for artifact in status["artifacts"]),
            ["excel", "markdown", "series", "videos"],
        )
        self.assertIn("Run completed successfully", status["log_text"])

        series = self.client.get(f"/api/series-runs/{run_id}/series").get_json()
        self.assertEqual(series["count"], 1)
        self.assertEqual(series["uncategorized_count"], 5)
        gear = series["items"][0]
        self.assertEqual(gear["name"], "Gear Review")
        self.assertEqual(gear["channel_id"], "main-channel")
        self.assertEqual(gear["detection_method"], "pattern")
        self.assertEqual(gear["video_ids"], [f"gear{n:07d}" for n in range(1, 11)])
        self.assertEqual(gear["total_views"], sum(100 + 50 * n for n in range(1, 11)))

        signed = self.client.get(f"/api/series-runs/{run_id}/artifacts/excel")
        self.assertEqual(signed.status_code, 200)
        download = self.client.get(urlparse(signed.get_json()["url"]).path)
        self.assertEqual(download.status_code, 200)
        self.assertIn("series_report.xlsx", download.headers.get("Content-Disposition", ""))
        download.close()

    def test_series_sharing_a_video_each_list_it(self):
        response, _ = self._upload(export_csv(), "export.csv")
        run_id = response.get_json()["items"][0]["run_id"]

        with patch("web.services.job_executor.build_llm_call", return_value=overlapping_clusters_llm):
            with self.app.app_context():
                execute_series_run(run_id)

        body = self.client.get(f"/api/series-runs/{run_id}/series").get_json()
        self.assertEqual(body["count"], 3)
        self.assertEqual(body["uncategorized_count"], 0)

        by_name = {item["name"]: item for item in body["items"]}
        self.assertEqual(by_name["Camera Tests"]["video_ids"], ["misc0000001", "misc0000002", "misc0000003"])
        self.assertEqual(by_name["Night Shoots"]["video_ids"], ["misc0000003", "misc0000004", "misc0000005"])
        for item in body["items"]:
            self.assertEqual(len(item["video_ids"]), item["video_count"])

        status = self.client.get(f"/api/series-runs/{run_id}/status").get_json()
        self.assertEqual(status["summary"]["series_detected"], 3)
        self.assertEqual(status["summary"]["uncategorized_count"], 0)

    def test_list_filters(self):
        self._upload(export_csv(), "export.csv")

        self.assertEqual(self.client.get("/api/series-runs").get_json()["count"], 1)
        self.assertEqual(self.client.get("/api/series-runs?q=main").get_json()["count"], 1)
        self.assertEqual(self.client.get("/api/series-runs?q=other").get_json()["count"], 0)
        self.assertEqual(self.client.get("/api/series-runs?status=failed").get_json()["count"], 0)

    def test_unknown_run_is_404(self):
        response = self.client.get("/api/series-runs/does-not-exist/status")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["error"], "Not Found")
        self.assertEqual(self.client.get("/api/series-runs/does-not-exist/series").status_code, 404)
        self.assertEqual(self.client.get("/api/series-runs/does-not-exist/artifacts/excel").status_code, 404)


class InternalRouteTests(AppTestCase):
    def test_run_series_requires_run_id(self):
        response = self.client.post("/internal/tasks/run-series", json={})
        self.assertEqual(response.status_code, 400)

    def test_internal_routes_reject_missing_token(self):
        self.app.config["ALLOW_INSECURE_INTERNAL"] = False
        response = self.client.post("/internal/tasks/run-series", json={"run_id": "x"})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["error"], "Missing bearer token")

    def test_redelivered_task_is_skipped(self):
        response, _ = self._upload(export_csv(), "export.csv")
        run_id = response.get_json()["items"][0]["run_id"]

        first = self.client.post("/internal/tasks/run-series", json={"run_id": run_id}).get_json()
        second = self.client.post("/internal/tasks/run-series", json={"run_id": run_id}).get_json()
        missing = self.client.post("/internal/tasks/run-series", json={"run_id": "nope"}).get_json()

        self.assertEqual(first["status"], "completed")
        self.assertEqual(second["status"], "skipped")
        self.assertEqual(missing["status"], "missing")

    def test_healthz_reports_integrations(self):
        body = self.client.get("/healthz").get_json()
        self.assertEqual(body["status"], "ok")
        self.assertFalse(body["ai_detection"])
        self.assertFalse(body["channel_fetch"])

    def test_cleanup_deletes_expired_runs(self):
        response, _ = self._upload(export_csv(), "export.csv")
        run_id = response.get_json()["items"][0]["run_id"]
        with self.app.app_context():
            execute_series_run(run_id)

        db_session = SessionLocal()
        try:
            run = db_session.query(SeriesRun).filter(SeriesRun.id == run_id).one()
            run.expires_at = datetime.utcnow() - timedelta(days=1)
            db_session.commit()
        finally:
            db_session.close()

        result = self.client.post("/internal/cleanup").get_json()
        self.assertEqual(result["deleted_runs"], 1)
        self.assertEqual(result["deleted_artifacts"], 4)

        db_session = SessionLocal()
        try:
            self.assertIsNone(db_session.query(SeriesRun).filter(SeriesRun.id == run_id).one_or_none())
            self.assertEqual(db_session.query(RunVideo).filter(RunVideo.run_id == run_id).count(), 0)
            self.assertEqual(db_session.query(DetectedSeries).count(), 0)
            self.assertEqual(db_session.query(SeriesVideo).count(), 0)
        finally:
            db_session.close()
        self.assertFalse((Path(self.app.config["LOCAL_ARTIFACT_DIR"]) / run_id).exists())


if __name__ == "__main__":
    unittest.main()
