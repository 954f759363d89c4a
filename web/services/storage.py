"""Run artifact storage on GCS with a local filesystem fallback."""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from flask import url_for

try:
    from google.cloud import storage
except Exception:  # pragma: no cover
    storage = None

ARTIFACT_CONTENT_TYPES = {
    "excel": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "markdown": "text/markdown; charset=utf-8",
    "series": "application/json",
    "videos": "application/json",
}


@dataclass
class StoredArtifact:
    path: str
    size_bytes: int


class ArtifactStorage:
    def __init__(self, app_config):
        self.use_gcs = bool(app_config.get("USE_GCS"))
        self.bucket_name = app_config.get("GCS_BUCKET", "")
        self.local_dir = Path(app_config.get("LOCAL_ARTIFACT_DIR", ".tmp/web_artifacts"))
        self.local_dir.mkdir(parents=True, exist_ok=True)

        self._client = None
        if self.use_gcs and storage is not None and self.bucket_name:
            self._client = storage.Client(project=app_config.get("GOOGLE_CLOUD_PROJECT") or None)

    @property
    def remote(self) -> bool:
        return self.use_gcs and self._client is not None

    def upload(self, local_path: str, run_id: str, artifact_type: str) -> StoredArtifact:
        source = Path(local_path)
        if not source.exists():
            raise FileNotFoundError(f"Artifact not found: {source}")

        if self.remote:
            dest_path = f"series-runs/{run_id}/{source.name}"
            blob = self._client.bucket(self.bucket_name).blob(dest_path)
            blob.upload_from_filename(str(source), content_type=ARTIFACT_CONTENT_TYPES.get(artifact_type))
            return StoredArtifact(path=dest_path, size_bytes=source.stat().st_size)

        dest_dir = self.local_dir / str(run_id)
        dest_dir.mkdir(parents=True, exist_ok=True)
        dest_file = dest_dir / f"{artifact_type}_{source.name}"
        shutil.copy2(source, dest_file)
        relative = str(dest_file.relative_to(self.local_dir))
        return StoredArtifact(path=relative, size_bytes=dest_file.stat().st_size)

    def download_name(self, artifact) -> str:
        """'excel_series_report.xlsx' -> 'series_report.xlsx'."""
        name = Path(artifact.gcs_path).name
        prefix = f"{artifact.artifact_type}_"
        return name[len(prefix):] if name.startswith(prefix) else name

    def signed_download_url(self, artifact, expires_minutes: int = 10) -> str:
        if self.remote:
            blob = self._client.bucket(self.bucket_name).blob(artifact.gcs_path)
            return blob.generate_signed_url(
                version="v4",
                expiration=timedelta(minutes=expires_minutes),
                method="GET",
                response_disposition=f'attachment; filename="{self.download_name(artifact)}"',
            )

        return url_for("api.download_local_artifact", artifact_id=artifact.id, _external=True)

    def local_path(self, artifact) -> Path:
        return self.local_dir / artifact.gcs_path

    def delete(self, artifact_path: str) -> None:
        if self.remote:
            self._client.bucket(self.bucket_name).blob(artifact_path).delete()
            return

        local_path = self.local_dir / artifact_path
        if local_path.exists():
            local_path.unlink()
        run_dir = local_path.parent
        if run_dir != self.local_dir and run_dir.exists() and not any(run_dir.iterdir()):
            run_dir.rmdir()
