"""Series runner wrapper around the ingestion and detection tool modules."""

from __future__ import annotations

import io
import re
from contextlib import redirect_stdout
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from tools.export_series_to_excel import SeriesExcelExporter
from tools.generate_series_report import SeriesReportGenerator
from tools.series_detection import SeriesStore, run_series_detection, save_summary
from tools.series_models import VideoRecord
from tools.youtube_fetch_channel_data import YouTubeCatalogFetcher
from tools.youtube_export_parser import (
    PARSE_FAILURE_MESSAGE,
    group_by_channel,
    load_export_bytes,
    load_export_from_url,
    save_videos,
)

UPLOAD_EXTENSIONS = (".csv", ".zip")
YOUTUBE_CHANNEL_URL = re.compile(r"^https?://(www\.|m\.)?youtube\.com/(@|channel/|c/|user/)", re.IGNORECASE)


class ExportParseError(ValueError):
    """Raised when an uploaded export yields no video rows."""

    def __init__(self, message: str = PARSE_FAILURE_MESSAGE):
        super().__init__(message)


class CatalogFetchError(RuntimeError):
    """Raised when a channel catalogue cannot be pulled from the Data API."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code



def channel_slug(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-")
    return slug or "channel"



def _emit(logger: Optional[Callable[[str], None]], message: str) -> None:
    if logger:
        logger(message)



def _capture_step(logger: Optional[Callable[[str], None]], step_name: str, fn) -> None:
    _emit(logger, f"\n[{step_name}] starting...")
    buffer = io.StringIO()
    with redirect_stdout(buffer):
        fn()
    output = buffer.getvalue().strip()
    if output:
        _emit(logger, output)
    _emit(logger, f"[{step_name}] complete")



def fetch_channel_catalog(channel_url: str, api_key: str, max_videos: int = 0) -> List[VideoRecord]:
    """Pull a channel's public uploads through the YouTube Data API."""
    if not api_key:
        raise CatalogFetchError("YOUTUBE_API_KEY is not configured", status_code=503)

    fetcher = YouTubeCatalogFetcher(api_key)
    try:
        with redirect_stdout(io.StringIO()):
            return fetcher.fetch_catalog(channel_url, max_videos)
    except ValueError as exc:
        raise CatalogFetchError(str(exc), status_code=422) from exc
    except Exception as exc:
        raise CatalogFetchError(str(exc)) from exc


def ingest_export(
    payload: Optional[bytes] = None,
    filename: str = "",
    url: str = "",
    youtube_api_key: str = "",
    max_videos: int = 0,
) -> "Dict[str, List[VideoRecord]]":
    """
    Turn an upload, an export download link or a YouTube channel URL into
    video records grouped by channel label.
    """
    if url and YOUTUBE_CHANNEL_URL.match(url):
        videos = fetch_channel_catalog(url, youtube_api_key, max_videos)
    elif url:
        videos = load_export_from_url(url)
    else:
        if filename and not filename.lower().endswith(UPLOAD_EXTENSIONS):
            raise ExportParseError(f"{PARSE_FAILURE_MESSAGE}: expected a .csv or .zip export")
        videos = load_export_bytes(payload or b"")

    if not videos:
        raise ExportParseError()
    return group_by_channel(videos)



def run_series_pipeline(
    run_id: str,
    channel_id: str,
    videos: Sequence[VideoRecord],
    store: SeriesStore,
    llm_call: Callable[..., Any],
    output_folder: str,
    logger: Optional[Callable[[str], None]] = None,
    now: Optional[datetime] = None,
) -> Dict:
    """Run detection for one channel and write the report artifacts."""
    output_root = Path(output_folder) / run_id
    output_root.mkdir(parents=True, exist_ok=True)
    _emit(logger, f"Running series detection for: {channel_id} ({len(videos)} videos)")

    videos_path = Path(save_videos(videos, output_root))

    summary = run_series_detection(
        run_id=run_id,
        channel_id=channel_id,
        videos=videos,
        store=store,
        llm_call=llm_call,
        logger=logger,
        now=now,
    )
    series_path = Path(save_summary(summary, output_root))
    _emit(logger, f"Series saved: {series_path}")

    video_rows = [video.to_dict() for video in videos]
    detection = summary.to_dict()

    markdown_path = output_root / "series_report.md"

    def do_markdown():
        generator = SeriesReportGenerator(video_rows, detection)
        markdown_path.write_text(generator.generate(), encoding="utf-8")

    _capture_step(logger, "Generate Markdown", do_markdown)

    excel_path = output_root / "series_report.xlsx"

    def do_excel_export():
        SeriesExcelExporter(video_rows, detection).export(excel_path)

    _capture_step(logger, "Export Excel", do_excel_export)

    return {
        "videos_path": str(videos_path),
        "series_path": str(series_path),
        "markdown_path": str(markdown_path),
        "excel_path": str(excel_path),
        "summary": summary,
    }
