"""
Semantic series detection for videos the title patterns could not place.

Sends up to 100 uncategorized titles to Claude and turns the JSON reply
into extra series candidates. The reply parser tolerates code fences and
stray prose around the JSON.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, List, Optional, Sequence

from tools.series_models import METHOD_SEMANTIC, SeriesCandidate, StepResult, VideoRecord

MIN_UNCATEGORIZED_VIDEOS = 5
MAX_PROMPT_VIDEOS = 100
MIN_CLUSTER_VIDEOS = 3
FEATURE_TAG = "audit_series_detection"
MAX_OUTPUT_TOKENS = 2000
CONFIDENCE_LEVELS = {"high", "medium"}

SERIES_DETECTION_SYSTEM_PROMPT = """You are a YouTube content analyst. Given a list of video titles from one channel, identify recurring content series or thematic groupings.

A "series" is 3+ videos that share a common theme, format, or subject that the creator treats as a recurring concept, even if they don't formally name it.

Rules:
- Only include groupings with 3+ videos
- Use clear, descriptive series names
- A video can only belong to one series
- Focus on recurring INTENT, not just keyword overlap
- Return ONLY valid JSON, no other text"""

LEADING_FENCE = re.compile(r"^```(?:json)?\n?")
TRAILING_FENCE = re.compile(r"\n?```$")
ANY_FENCE = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?\s*```")

_MISSING = object()


def _try_json(text: str):
    try:
        return json.loads(text)
    except (ValueError, TypeError):
        return _MISSING


def _first_balanced_span(text: str) -> Optional[str]:
    starts = [idx for idx in (text.find("{"), text.find("[")) if idx != -1]
    if not starts:
        return None
    start = min(starts)
    opener = text[start]
    closer = "}" if opener == "{" else "]"

    depth = 0
    for idx in range(start, len(text)):
        if text[idx] == opener:
            depth += 1
        elif text[idx] == closer:
            depth -= 1
        if depth == 0:
            return text[start:idx + 1]
    return None


def parse_llm_json(raw_text: Optional[str], fallback: Any = None) -> Any:
    """
    Parse JSON out of an LLM reply.

    Tries, in order: the text with a surrounding ``` fence stripped, the
    first fenced block anywhere, and the first balanced {...} or [...]
    span. Returns ``fallback`` when all fail; with no fallback a
    ValueError is raised instead.
    """
    text = (raw_text or "").strip()
    if text.startswith("```"):
        text = TRAILING_FENCE.sub("", LEADING_FENCE.sub("", text, count=1), count=1)

    parsed = _try_json(text)
    if parsed is not _MISSING:
        return parsed

    fence_match = ANY_FENCE.search(text)
    if fence_match:
        parsed = _try_json(fence_match.group(1).strip())
        if parsed is not _MISSING:
            return parsed

    span = _first_balanced_span(text)
    if span is not None:
        parsed = _try_json(span)
        if parsed is not _MISSING:
            return parsed

    if fallback is not None:
        return fallback
    raise ValueError(f"Failed to parse JSON from model response: {text[:200]}")


def build_semantic_prompt(videos: Sequence[VideoRecord], existing_series_names: Sequence[str]) -> str:
    existing = ", ".join(existing_series_names) if existing_series_names else "None"
    lines = "\n".join(
        f'{index}. "{video.title}" ({video.view_count:,} views)'
        for index, video in enumerate(videos)
    )
    return f"""Here are {len(videos)} video titles from a YouTube channel that don't match obvious title patterns.

Already-detected series (via pattern matching): {existing}

Videos:
{lines}

Identify implicit series/themes. For each, provide:
{{
  "series": [
    {{
      "name": "Descriptive Series Name",
      "videoIndices": [0, 3, 7],
      "confidence": "high" | "medium"
    }}
  ]
}}"""


def _valid_indices(raw_indices, batch_size: int) -> List[int]:
    indices: List[int] = []
    if not isinstance(raw_indices, list):
        return indices
    for raw in raw_indices:
        if isinstance(raw, bool):
            continue
        if isinstance(raw, float) and raw.is_integer():
            raw = int(raw)
        if isinstance(raw, int) and 0 <= raw < batch_size and raw not in indices:
            indices.append(raw)
    return indices


def clusters_from_reply(parsed: Any, batch: Sequence[VideoRecord]) -> List[SeriesCandidate]:
    """Keep clusters with 3+ distinct valid indices and map them to video ids."""
    if isinstance(parsed, dict):
        raw_clusters = parsed.get("series") or []
    elif isinstance(parsed, list):
        raw_clusters = parsed
    else:
        raw_clusters = []

    candidates = []
    for cluster in raw_clusters:
        if not isinstance(cluster, dict):
            continue
        name = str(cluster.get("name") or "").strip()
        indices = _valid_indices(cluster.get("videoIndices"), len(batch))
        if not name or len(indices) < MIN_CLUSTER_VIDEOS:
            continue

        video_ids: List[str] = []
        for index in indices:
            video_id = batch[index].external_id
            if video_id not in video_ids:
                video_ids.append(video_id)
        if len(video_ids) < MIN_CLUSTER_VIDEOS:
            continue

        confidence = str(cluster.get("confidence") or "medium").lower()
        candidates.append(
            SeriesCandidate(
                name=name,
                video_ids=tuple(video_ids),
                detection_method=METHOD_SEMANTIC,
                confidence=confidence if confidence in CONFIDENCE_LEVELS else "medium",
            )
        )
    return candidates


def detect_series_by_semantic(
    uncategorized: Sequence[VideoRecord],
    existing_series_names: Sequence[str],
    llm_call: Callable[..., Any],
) -> StepResult:
    """
    Cluster leftover videos with the LLM.

    Returns ``StepResult.success([...])`` (possibly empty) or
    ``StepResult.failure(reason)`` when the LLM call raised. Token and
    dollar usage ride along on the result for the caller to record.
    """
    if len(uncategorized) < MIN_UNCATEGORIZED_VIDEOS:
        return StepResult.success([])

    batch = list(uncategorized[:MAX_PROMPT_VIDEOS])
    prompt = build_semantic_prompt(batch, existing_series_names)

    try:
        response = llm_call(prompt, SERIES_DETECTION_SYSTEM_PROMPT, FEATURE_TAG, MAX_OUTPUT_TOKENS)
    except Exception as exc:  # pylint: disable=broad-except
        return StepResult.failure(str(exc) or exc.__class__.__name__)

    usage = getattr(response, "usage", None) or {}
    tokens = int(usage.get("input_tokens", 0) or 0) + int(usage.get("output_tokens", 0) or 0)
    cost = float(getattr(response, "cost", 0.0) or 0.0)

    parsed = parse_llm_json(getattr(response, "text", ""), {"series": []})
    return StepResult.success(clusters_from_reply(parsed, batch), tokens=tokens, cost=cost)
