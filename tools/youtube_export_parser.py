#!/usr/bin/env python3
"""
YouTube Studio Export Parser
Normalizes YouTube Studio CSV/ZIP exports into uniform video records

Handles two physical layouts:
1. Standard - a single header row followed by one row per video
2. Stacked  - several tables stacked vertically, each preceded by a row
              whose second cell holds the channel name

Usage:
    python3 -m tools.youtube_export_parser path/to/export.(csv|zip) [output_dir]
"""

import csv
import hashlib
import io
import json
import math
import os
import re
import sys
import zipfile
from collections import OrderedDict
from datetime import timezone
from pathlib import Path
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple

import httpx
from dateutil import parser as dateparser
from dotenv import load_dotenv

from tools.series_models import FORMAT_LONG, FORMAT_SHORT, VideoRecord

load_dotenv()

PARSE_FAILURE_MESSAGE = "Could not parse file"

DEFAULT_CHANNEL = "Main Channel"
STACKED_DEFAULT_CHANNEL = "Unknown Channel"
ZIP_DEFAULT_CHANNEL = "Uploaded Channel"
TOTAL_ROW_TITLE = "Total"
HEADER_MARKER = "Video title"
PUBLISH_MARKERS = ("Video publish time", "Publish date")
SHORTS_MAX_SECONDS = 180
PERCENT_SCALE_THRESHOLD = 1.2


class ExportArchiveError(ValueError):
    """Raised when an uploaded archive yields no videos at all."""


class ColumnRule(NamedTuple):
    field: str
    exact_names: Tuple[str, ...]
    fuzzy_keyword_sets: Tuple[Tuple[str, ...], ...] = ()


# Resolution order matters: exact names first, then the first header (in
# header order) containing every keyword of a fuzzy set.
COLUMN_RULES: Tuple[ColumnRule, ...] = (
    ColumnRule("title", ("video title", "title"), (("title",),)),
    ColumnRule(
        "published_at",
        ("video publish time", "publish date", "video publish date"),
        (("publish",), ("date",)),
    ),
    ColumnRule("channel", ("channel name", "channel"), (("channel",),)),
    ColumnRule("duration", ("duration", "video duration")),
    ColumnRule("views", ("views",), (("views",),)),
    ColumnRule("likes", ("likes",)),
    ColumnRule("comments", ("comments added", "comments"), (("comments",),)),
    ColumnRule(
        "watch_hours",
        ("watch time (hours)", "watch time hours", "watch time"),
        (("watch", "time"),),
    ),
    ColumnRule(
        "avg_view_duration",
        ("average view duration", "avg view duration"),
        (("average", "view", "duration"),),
    ),
    ColumnRule(
        "avg_view_percentage",
        ("average percentage viewed (%)", "average percentage viewed"),
        (("average", "percentage", "viewed"), ("percentage", "viewed")),
    ),
    ColumnRule(
        "ctr",
        ("impressions click-through rate (%)", "impressions ctr", "ctr"),
        (("click", "rate"),),
    ),
    ColumnRule("impressions", ("impressions",), (("impressions",),)),
    ColumnRule("subscribers", ("subscribers gained", "subscribers"), (("subscribers",),)),
    ColumnRule("content", ("content", "video id"), (("video id",),)),
    ColumnRule(
        "url",
        ("youtube url", "video url", "url", "link", "youtube link"),
        (("url",), ("link",)),
    ),
    ColumnRule("youtube_id", ("youtube video id", "youtube id", "yt video id", "yt id")),
    ColumnRule("content_type", ("content type", "type"), (("type",),)),
)

VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")
VIDEO_URL_PATTERNS = [
    re.compile(r"youtube\.com/watch\?v=([A-Za-z0-9_-]{11})"),
    re.compile(r"youtu\.be/([A-Za-z0-9_-]{11})"),
    re.compile(r"youtube\.com/embed/([A-Za-z0-9_-]{11})"),
    re.compile(r"youtube\.com/v/([A-Za-z0-9_-]{11})"),
    re.compile(r"youtube\.com/shorts/([A-Za-z0-9_-]{11})"),
]


class FormatSignals(NamedTuple):
    content_type: str
    url: str
    duration_seconds: int


# Evaluated top to bottom, first match wins. A bare /watch?v= URL is not a
# long-form signal: Studio exports Shorts with that URL shape too.
FORMAT_RULES: Tuple[Tuple[Callable[[FormatSignals], bool], str], ...] = (
    (lambda s: "short" in s.content_type.lower(), FORMAT_SHORT),
    (lambda s: "long" in s.content_type.lower(), FORMAT_LONG),
    (lambda s: "/shorts/" in s.url.lower(), FORMAT_SHORT),
    (lambda s: 0 < s.duration_seconds <= SHORTS_MAX_SECONDS, FORMAT_SHORT),
)


def classify_format(content_type: Optional[str], url: Optional[str], duration_seconds: int) -> str:
    signals = FormatSignals(content_type or "", url or "", int(duration_seconds or 0))
    return next((result for predicate, result in FORMAT_RULES if predicate(signals)), FORMAT_LONG)


def parse_number(value) -> float:
    """Parse export numbers like '12,345' or '5.2%'. Anything unparseable is 0."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", "").replace("%", "")
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return 0.0
    return number if math.isfinite(number) else 0.0


def normalize_percentage(value) -> float:
    """Return a 0-1 fraction; values above 1.2 are taken to be on a 0-100 scale."""
    number = parse_number(value)
    return number / 100 if number > PERCENT_SCALE_THRESHOLD else number


def parse_duration_seconds(value) -> int:
    """Parse '754', '12:34' or '1:02:03' into seconds."""
    if value is None:
        return 0
    text = str(value).strip()
    if not text:
        return 0
    if re.fullmatch(r"\d+(?:\.\d+)?", text):
        return int(float(text))

    parts = text.split(":")
    if len(parts) not in (2, 3) or not all(part.strip().isdigit() for part in parts):
        return 0
    numbers = [int(part) for part in parts]
    if len(numbers) == 2:
        return numbers[0] * 60 + numbers[1]
    return numbers[0] * 3600 + numbers[1] * 60 + numbers[2]


def parse_publish_date(value):
    """Parse a publish date into a naive UTC datetime, or None."""
    if value is None:
        return None
    text = str(value).strip()
    if not text or text in {"-", "—"}:
        return None
    try:
        parsed = dateparser.parse(text)
    except (ValueError, OverflowError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def extract_youtube_video_id(value) -> Optional[str]:
    if not value:
        return None
    text = str(value).strip()
    if VIDEO_ID_PATTERN.match(text):
        return text
    for pattern in VIDEO_URL_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def synthetic_video_id(channel: str, title: str, published_iso: str) -> str:
    digest = hashlib.sha1(f"{channel}|{title}|{published_iso}".encode("utf-8")).hexdigest()
    return f"syn-{digest[:12]}"


def resolve_columns(headers: Sequence[str], rules: Sequence[ColumnRule] = COLUMN_RULES) -> Dict[str, int]:
    """Map each logical field to a column index using the rule table."""
    lowered = [str(header or "").strip().lower() for header in headers]
    resolved: Dict[str, int] = {}

    for rule in rules:
        index = next((lowered.index(name) for name in rule.exact_names if name in lowered), None)
        if index is None:
            for keywords in rule.fuzzy_keyword_sets:
                index = next(
                    (idx for idx, header in enumerate(lowered) if header and all(word in header for word in keywords)),
                    None,
                )
                if index is not None:
                    break
        if index is not None:
            resolved[rule.field] = index

    return resolved


def _cell(row: Sequence[str], columns: Dict[str, int], field: str) -> Optional[str]:
    index = columns.get(field)
    if index is None or index >= len(row):
        return None
    return row[index]


def build_video_record(row: Sequence[str], columns: Dict[str, int], default_channel: str) -> Optional[VideoRecord]:
    """Turn one table row into a VideoRecord, or None for rows that should be skipped."""
    title = (_cell(row, columns, "title") or "").strip()
    if not title or title in {TOTAL_ROW_TITLE, HEADER_MARKER}:
        return None

    published_at = parse_publish_date(_cell(row, columns, "published_at"))
    if published_at is None:
        return None

    channel = (_cell(row, columns, "channel") or "").strip() or default_channel
    duration = parse_duration_seconds(_cell(row, columns, "duration"))
    views = int(parse_number(_cell(row, columns, "views")))
    avg_view_percentage = normalize_percentage(_cell(row, columns, "avg_view_percentage"))

    watch_hours = parse_number(_cell(row, columns, "watch_hours"))
    if watch_hours == 0:
        avg_view_duration = parse_duration_seconds(_cell(row, columns, "avg_view_duration"))
        if avg_view_duration > 0:
            watch_hours = views * avg_view_duration / 3600
        else:
            watch_hours = views * duration * avg_view_percentage / 3600

    reference = (
        _cell(row, columns, "content")
        or _cell(row, columns, "url")
        or _cell(row, columns, "youtube_id")
        or ""
    ).strip()
    external_id = extract_youtube_video_id(reference) or synthetic_video_id(
        channel, title, published_at.isoformat()
    )

    return VideoRecord(
        external_id=external_id,
        title=title,
        published_at=published_at,
        channel=channel,
        source_url=reference,
        view_count=views,
        like_count=int(parse_number(_cell(row, columns, "likes"))),
        comment_count=int(parse_number(_cell(row, columns, "comments"))),
        duration_seconds=duration,
        watch_hours=watch_hours,
        impressions=int(parse_number(_cell(row, columns, "impressions"))),
        ctr=normalize_percentage(_cell(row, columns, "ctr")),
        avg_view_percentage=avg_view_percentage,
        subscribers_gained=int(parse_number(_cell(row, columns, "subscribers"))),
        format=classify_format(_cell(row, columns, "content_type"), reference, duration),
    )


def _read_matrix(text: str) -> List[List[str]]:
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    return [row for row in reader if any(cell.strip() for cell in row)]


def parse_standard_format(text: str, default_channel: str = DEFAULT_CHANNEL) -> List[VideoRecord]:
    matrix = _read_matrix(text)
    if not matrix:
        return []

    columns = resolve_columns(matrix[0])
    if "title" not in columns:
        return []

    records = []
    for row in matrix[1:]:
        record = build_video_record(row, columns, default_channel)
        if record is not None:
            records.append(record)
    return records


def _stacked_channel_label(matrix: List[List[str]], header_idx: int, default_channel: str) -> str:
    if header_idx == 0:
        return default_channel
    previous = matrix[header_idx - 1]
    # Only the second cell of a label row names the channel; a "Total,,," row
    # or a blank line leaves the block unlabeled.
    if len(previous) > 1 and previous[1].strip():
        return previous[1].strip()
    return default_channel


def parse_stacked_format(text: str, default_channel: str = STACKED_DEFAULT_CHANNEL) -> List[VideoRecord]:
    matrix = _read_matrix(text)
    start_indices = [
        idx for idx, row in enumerate(matrix)
        if any(HEADER_MARKER in cell for cell in row)
    ]
    if not start_indices:
        return []

    records = []
    for block, header_idx in enumerate(start_indices):
        end_idx = start_indices[block + 1] if block + 1 < len(start_indices) else len(matrix)
        headers = [cell.strip() for cell in matrix[header_idx]]
        # The block's own channel label wins over any channel column.
        columns = {key: value for key, value in resolve_columns(headers).items() if key != "channel"}
        channel = _stacked_channel_label(matrix, header_idx, default_channel)

        for row in matrix[header_idx + 1:end_idx]:
            if len(row) < len(headers):
                continue
            record = build_video_record(row, columns, channel)
            if record is not None:
                records.append(record)

    return records


def parse_export_text(text: str, default_channel: Optional[str] = None) -> List[VideoRecord]:
    """
    Parse export text, trying the standard layout before the stacked one.

    An empty list means the file could not be interpreted, not that the
    channel has no videos.
    """
    try:
        records = parse_standard_format(text, default_channel or DEFAULT_CHANNEL)
        if records:
            return records
    except csv.Error as e:
        print(f"   Warning: standard parse failed: {e}")

    try:
        return parse_stacked_format(text, default_channel or STACKED_DEFAULT_CHANNEL)
    except csv.Error as e:
        print(f"   Warning: stacked parse failed: {e}")
        return []


def _decode(payload: bytes) -> str:
    return payload.decode("utf-8-sig", errors="replace")


def is_channel_export(text: str) -> bool:
    return HEADER_MARKER in text and any(marker in text for marker in PUBLISH_MARKERS)


def load_exports_zip(payload: bytes) -> List[VideoRecord]:
    """Parse every per-channel CSV inside a YouTube Studio exports ZIP."""
    records: List[VideoRecord] = []
    with zipfile.ZipFile(io.BytesIO(payload)) as archive:
        for info in archive.infolist():
            name = info.filename
            if info.is_dir() or not name.lower().endswith(".csv") or "__MACOSX" in name:
                continue

            text = _decode(archive.read(info))
            if not is_channel_export(text):
                continue

            parts = name.split("/")
            channel = parts[-2] if len(parts) > 1 and parts[-2] else ZIP_DEFAULT_CHANNEL
            records.extend(parse_export_text(text, default_channel=channel))

    if not records:
        raise ExportArchiveError("No data found in ZIP.")
    return records


def load_export_bytes(payload: bytes, default_channel: Optional[str] = None) -> List[VideoRecord]:
    if zipfile.is_zipfile(io.BytesIO(payload)):
        return load_exports_zip(payload)
    return parse_export_text(_decode(payload), default_channel=default_channel)


def load_export_file(path) -> List[VideoRecord]:
    return load_export_bytes(Path(path).read_bytes())


def load_export_from_url(url: str, timeout: float = 30.0) -> List[VideoRecord]:
    response = httpx.get(url, timeout=timeout, follow_redirects=True)
    response.raise_for_status()
    return load_export_bytes(response.content)


def load_channel_folder(folder) -> List[VideoRecord]:
    """Read the 'Table data.csv' file of an unpacked export folder."""
    folder_path = Path(folder)
    table = folder_path / "Table data.csv"
    if not table.exists():
        return []
    return parse_export_text(_decode(table.read_bytes()), default_channel=folder_path.name)


def group_by_channel(videos: Sequence[VideoRecord]) -> "OrderedDict[str, List[VideoRecord]]":
    grouped: "OrderedDict[str, List[VideoRecord]]" = OrderedDict()
    for video in videos:
        grouped.setdefault(video.channel, []).append(video)
    return grouped


def save_videos(videos: Sequence[VideoRecord], output_dir) -> str:
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    output_file = output_path / "videos.json"
    with open(output_file, "w", encoding="utf-8") as f:
        json.dump([video.to_dict() for video in videos], f, indent=2, ensure_ascii=False)
    return str(output_file)


def load_videos(path) -> List[VideoRecord]:
    with open(path, "r", encoding="utf-8") as f:
        return [VideoRecord.from_dict(item) for item in json.load(f)]


def _slug(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]+", "_", value).strip("_") or "export"


def main():
    """Main execution function"""
    if len(sys.argv) not in (2, 3):
        print("❌ Error: Missing export path")
        print("\nUsage:")
        print("  python3 -m tools.youtube_export_parser path/to/export.(csv|zip) [output_dir]")
        sys.exit(1)

    source = sys.argv[1]
    output_folder = os.getenv("OUTPUT_FOLDER", ".tmp/series_audits")

    try:
        print("🚀 YouTube Studio Export Parser")
        print("=" * 50)
        print(f"Source: {source}")
        print()

        if source.startswith(("http://", "https://")):
            videos = load_export_from_url(source)
        elif Path(source).is_dir():
            videos = load_channel_folder(source)
        else:
            videos = load_export_file(source)

        if not videos:
            print(f"❌ {PARSE_FAILURE_MESSAGE}: {source}")
            sys.exit(1)

        output_dir = sys.argv[2] if len(sys.argv) == 3 else f"{output_folder}/{_slug(Path(source).stem)}"
        output_file = save_videos(videos, output_dir)

        shorts = sum(1 for video in videos if video.format == FORMAT_SHORT)
        print(f"📹 Videos parsed: {len(videos)}")
        print(f"   Shorts: {shorts}")
        print(f"   Long-form: {len(videos) - shorts}")
        for channel, channel_videos in group_by_channel(videos).items():
            print(f"   Channel: {channel} ({len(channel_videos)} videos)")
        print()
        print("=" * 50)
        print("✅ SUCCESS!")
        print(f"📁 Videos saved to: {output_file}")

    except ExportArchiveError as e:
        print(f"❌ {PARSE_FAILURE_MESSAGE}: {e}")
        sys.exit(1)
    except httpx.HTTPError as e:
        print(f"❌ Download Error: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"❌ Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
