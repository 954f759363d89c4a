#!/usr/bin/env python3
"""
Content Series Detector
Groups a channel's videos into recurring series and scores each series

Two passes:
1. Title pattern matching (deterministic, free)
2. Claude semantic clustering of whatever pass 1 left uncategorized

If the Claude step fails the run still completes with the pattern series.

Usage:
    python3 -m tools.series_detection path/to/videos.json [channel_id]
"""

from __future__ import annotations

import json
import os
import sys
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from dotenv import load_dotenv

from tools.series_metrics import aggregate_series, merge_series
from tools.series_models import SeriesResult, VideoRecord
from tools.series_pattern_matcher import detect_series_by_pattern
from tools.series_semantic_clusterer import detect_series_by_semantic

load_dotenv()

SECTION_SERIES = "series_detection"
PARTIAL_DETECTION_MESSAGE = "Series detection partially completed (AI step skipped)"

STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


class SeriesStore(Protocol):
    def upsert_series(self, series: Sequence[SeriesResult], channel_id: str, run_id: str) -> List[Any]: ...

    def assign_videos(self, stored_series_id: Any, video_ids: Sequence[str]) -> None: ...

    def record_cost(self, run_id: str, tokens: int, cost: float) -> None: ...

    def update_progress(self, run_id: str, step: str, percent: int, message: str) -> None: ...

    def update_section_status(
        self,
        run_id: str,
        section: str,
        status: str,
        result_data: Optional[Dict] = None,
        error_message: Optional[str] = None,
    ) -> None: ...


class InMemorySeriesStore:
    """SeriesStore kept in plain dicts, for CLI runs and tests."""

    def __init__(self):
        self.series: Dict[str, Dict[str, Any]] = {}
        self.assignments: Dict[str, List[str]] = {}
        self.costs: Dict[str, Dict[str, float]] = {}
        self.progress: List[Dict[str, Any]] = []
        self.sections: Dict[str, Dict[str, Any]] = {}

    def upsert_series(self, series, channel_id, run_id):
        stored = []
        for item in series:
            key = f"{channel_id}::{item.name}"
            row = self.series.setdefault(key, {"id": key})
            row.update(item.to_dict())
            row.update({"channelId": channel_id, "runId": run_id})
            stored.append(row)
        return stored

    def assign_videos(self, stored_series_id, video_ids):
        self.assignments[stored_series_id] = list(video_ids)

    def record_cost(self, run_id, tokens, cost):
        totals = self.costs.setdefault(run_id, {"tokens": 0, "cost": 0.0})
        totals["tokens"] += tokens
        totals["cost"] += cost

    def update_progress(self, run_id, step, percent, message):
        self.progress.append({"runId": run_id, "step": step, "percent": percent, "message": message})

    def update_section_status(self, run_id, section, status, result_data=None, error_message=None):
        self.sections[section] = {
            "runId": run_id,
            "status": status,
            "resultData": result_data,
            "errorMessage": error_message,
        }


@dataclass
class SeriesDetectionSummary:
    series: List[SeriesResult] = field(default_factory=list)
    uncategorized_count: int = 0
    ai_step_skipped: bool = False
    ai_skip_reason: str = ""
    persisted: bool = False
    persistence_error: str = ""
    tokens: int = 0
    cost: float = 0.0

    @property
    def messages(self) -> List[str]:
        return [PARTIAL_DETECTION_MESSAGE] if self.ai_step_skipped else []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "series": [item.to_dict() for item in self.series],
            "uncategorized_count": self.uncategorized_count,
            "total_series": len(self.series),
            "ai_step_skipped": self.ai_step_skipped,
            "ai_skip_reason": self.ai_skip_reason,
            "persisted": self.persisted,
            "persistence_error": self.persistence_error,
            "messages": self.messages,
        }


def _emit(logger: Optional[Callable[[str], None]], message: str) -> None:
    if logger:
        logger(message)


def _side_call(logger, description: str, fn, *args, **kwargs) -> None:
    """Run a status/progress write; failures are logged, never raised."""
    try:
        fn(*args, **kwargs)
    except Exception as exc:  # pylint: disable=broad-except
        _emit(logger, f"Warning: could not {description}: {exc}")


def run_series_detection(
    run_id: str,
    channel_id: str,
    videos: Sequence[VideoRecord],
    store: SeriesStore,
    llm_call: Callable[..., Any],
    logger: Optional[Callable[[str], None]] = None,
    now: Optional[datetime] = None,
) -> SeriesDetectionSummary:
    """Run both detection passes, score the series and persist them."""
    _side_call(logger, "mark section running", store.update_section_status, run_id, SECTION_SERIES, STATUS_RUNNING)
    _side_call(logger, "update progress", store.update_progress, run_id, SECTION_SERIES, 17, "Detecting title patterns...")

    try:
        detection = detect_series_by_pattern(videos)
        _emit(logger, f"Pattern pass: {len(detection.pattern_series)} series, {len(detection.uncategorized)} uncategorized")
        _side_call(
            logger,
            "update progress",
            store.update_progress,
            run_id,
            SECTION_SERIES,
            22,
            f"Found {len(detection.pattern_series)} pattern series, "
            f"analyzing {len(detection.uncategorized)} remaining videos...",
        )

        summary = SeriesDetectionSummary()
        existing_names = [series.name for series in detection.pattern_series]
        outcome = detect_series_by_semantic(detection.uncategorized, existing_names, llm_call)

        if outcome.tokens or outcome.cost:
            summary.tokens, summary.cost = outcome.tokens, outcome.cost
            _side_call(logger, "record cost", store.record_cost, run_id, outcome.tokens, outcome.cost)

        if outcome.ok:
            semantic_series = outcome.value or []
            _emit(logger, f"Semantic pass: {len(semantic_series)} candidate series")
        else:
            semantic_series = []
            summary.ai_step_skipped = True
            summary.ai_skip_reason = outcome.reason
            _emit(logger, f"Warning: semantic series detection failed: {outcome.reason}")

        merged = merge_series(detection.pattern_series, semantic_series)
        summary.series = aggregate_series(merged, videos, now)
        # Semantic clusters may share videos, so count the union of members
        claimed = {video_id for series in summary.series for video_id in series.video_ids}
        summary.uncategorized_count = len(videos) - len(claimed)
    except Exception as exc:
        _side_call(
            logger,
            "mark section failed",
            store.update_section_status,
            run_id,
            SECTION_SERIES,
            STATUS_FAILED,
            error_message=str(exc),
        )
        raise

    _side_call(logger, "update progress", store.update_progress, run_id, SECTION_SERIES, 28, "Saving series data...")
    try:
        stored = store.upsert_series(summary.series, channel_id, run_id)
        for stored_row, result in zip(stored, summary.series):
            stored_id = stored_row["id"] if isinstance(stored_row, dict) else getattr(stored_row, "id", stored_row)
            store.assign_videos(stored_id, list(result.video_ids))
        summary.persisted = True
    except Exception as exc:  # pylint: disable=broad-except
        summary.persistence_error = str(exc)
        _emit(logger, f"Warning: could not save series: {exc}")

    _side_call(
        logger,
        "update progress",
        store.update_progress,
        run_id,
        SECTION_SERIES,
        30,
        f"Detected {len(summary.series)} series",
    )
    _side_call(
        logger,
        "mark section finished",
        store.update_section_status,
        run_id,
        SECTION_SERIES,
        STATUS_COMPLETED if summary.persisted else STATUS_FAILED,
        result_data=summary.to_dict(),
        error_message=summary.persistence_error or None,
    )
    return summary


def _unavailable_llm(*_args, **_kwargs):
    raise RuntimeError("ANTHROPIC_API_KEY is not configured")


def build_llm_call(api_key: str, model: Optional[str] = None, monthly_budget: Optional[float] = None):
    """Return a ClaudeClient.call bound method, or a stub that always fails."""
    if not api_key:
        return _unavailable_llm

    from tools.claude_client import DEFAULT_MODEL, ClaudeClient, UsageLedger

    ledger = UsageLedger(monthly_budget=monthly_budget) if monthly_budget else UsageLedger()
    return ClaudeClient(api_key, model=model or DEFAULT_MODEL, ledger=ledger).call


def save_summary(summary: SeriesDetectionSummary, output_dir) -> str:
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    output_file = output_path / "series.json"
    with open(output_file, "w", encoding="utf-8") as f:
        json.dump(summary.to_dict(), f, indent=2, ensure_ascii=False)
    return str(output_file)


def main():
    """Main execution function"""
    if len(sys.argv) not in (2, 3):
        print("❌ Error: Missing videos file")
        print("\nUsage:")
        print("  python3 -m tools.series_detection path/to/videos.json [channel_id]")
        sys.exit(1)

    videos_file = Path(sys.argv[1])
    channel_id = sys.argv[2] if len(sys.argv) == 3 else videos_file.parent.name

    try:
        from tools.youtube_export_parser import load_videos

        videos = load_videos(videos_file)
        print("\n🔎 Content Series Detection")
        print("=" * 50)
        print(f"Channel: {channel_id}")
        print(f"Videos: {len(videos)}")
        print()

        llm_call = build_llm_call(
            os.getenv("ANTHROPIC_API_KEY", ""),
            os.getenv("CLAUDE_MODEL"),
            float(os.getenv("LLM_MONTHLY_BUDGET", "0") or 0),
        )
        summary = run_series_detection(
            run_id=str(uuid.uuid4()),
            channel_id=channel_id,
            videos=videos,
            store=InMemorySeriesStore(),
            llm_call=llm_call,
            logger=lambda message: print(f"   {message}"),
        )
        output_file = save_summary(summary, videos_file.parent)

        print()
        print("=" * 50)
        print("✅ SUCCESS!")
        for message in summary.messages:
            print(f"⚠️  {message}")
        print(f"📚 Series detected: {len(summary.series)}")
        for series in summary.series[:10]:
            print(f"   - {series.name} ({series.video_count} videos, {series.total_views:,} views, {series.performance_trend})")
        print(f"📦 Uncategorized videos: {summary.uncategorized_count}")
        print(f"💰 Claude cost: ${summary.cost:.4f} ({summary.tokens:,} tokens)")
        print(f"📁 Series saved to: {output_file}")

    except FileNotFoundError as e:
        print(f"❌ Error: File not found: {e}")
        sys.exit(1)
    except json.JSONDecodeError as e:
        print(f"❌ Error: Invalid JSON file: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"❌ Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
