"""
Title-pattern series detection.

Groups videos into series using three ordered strategies. A video assigned
by one strategy is never seen by a later one:

1. Explicit episode markers   "Name | Ep 5", "Ep 5 - Name", "Name Part 3"
2. Bracketed prefixes         "[Name] ...", "(Name) ..."
3. Recurring title prefixes   the same 2-5 leading words on 3+ videos

Pure function of its input: no I/O and the same output for the same input.
"""

from __future__ import annotations

import re
from collections import OrderedDict
from typing import Dict, List, NamedTuple, Optional, Pattern, Sequence, Set

from tools.series_models import METHOD_PATTERN, PatternDetection, SeriesCandidate, VideoRecord

MIN_SERIES_VIDEOS = 3
MIN_NAME_LENGTH = 3
PREFIX_MIN_WORDS = 2
PREFIX_MAX_WORDS = 5

EPISODE_TOKEN = r"(?:ep(?:isode)?\.?\s*\d+|part\s*\d+|#\d+)"


class EpisodeRule(NamedTuple):
    label: str
    regex: Pattern


# Tried in order for each title; the first rule yielding a usable name wins.
EPISODE_RULES = (
    EpisodeRule("episode_suffix", re.compile(rf"^(.+?)\s*[|\-–—]\s*{EPISODE_TOKEN}", re.IGNORECASE)),
    EpisodeRule("episode_prefix", re.compile(rf"^{EPISODE_TOKEN}\s*[|\-–—:]\s*(.+)", re.IGNORECASE)),
    EpisodeRule("episode_trailing", re.compile(rf"^(.{{5,}}?)\s+{EPISODE_TOKEN}\s*$", re.IGNORECASE)),
)

BRACKET_PREFIX = re.compile(r"^\[([^\]]{3,})\]|^\(([^)]{3,})\)")


def clean_series_name(raw: str) -> str:
    name = re.sub(r"[:\-–—|]\s*$", "", raw)
    name = re.sub(r"^\s*[:\-–—|]", "", name)
    return re.sub(r"\s+", " ", name).strip()


class _SeriesBook:
    """Accumulates members per cleaned series name, in first-seen order."""

    def __init__(self):
        self.members: "OrderedDict[str, List[str]]" = OrderedDict()
        self.sources: Dict[str, str] = {}
        self.assigned: Set[str] = set()

    def add(self, name: str, source: str, video_id: str) -> None:
        if name not in self.members:
            self.members[name] = []
            self.sources[name] = source
        if video_id not in self.members[name]:
            self.members[name].append(video_id)
        self.assigned.add(video_id)

    def candidates(self) -> List[SeriesCandidate]:
        return [
            SeriesCandidate(
                name=name,
                video_ids=tuple(ids),
                detection_method=METHOD_PATTERN,
                pattern_source=self.sources[name],
            )
            for name, ids in self.members.items()
            if len(ids) >= MIN_SERIES_VIDEOS
        ]


def match_episode_name(title: str) -> Optional[tuple]:
    """Return (series name, rule label) for an explicit episode title, else None."""
    for rule in EPISODE_RULES:
        match = rule.regex.match(title)
        if not match:
            continue
        name = clean_series_name(match.group(1))
        if len(name) >= MIN_NAME_LENGTH:
            return name, rule.label
    return None


def match_bracket_name(title: str) -> Optional[str]:
    match = BRACKET_PREFIX.match(title)
    if not match:
        return None
    name = clean_series_name(match.group(1) or match.group(2))
    return name or None


def title_prefixes(title: str) -> List[str]:
    words = title.split()[:PREFIX_MAX_WORDS + 1]
    upper = min(len(words), PREFIX_MAX_WORDS)
    return [" ".join(words[:length]) for length in range(PREFIX_MIN_WORDS, upper + 1)]


def _assign_episode_markers(videos: Sequence[VideoRecord], book: _SeriesBook) -> None:
    for video in videos:
        found = match_episode_name(video.title)
        if found:
            name, label = found
            book.add(name, label, video.external_id)


def _assign_bracket_prefixes(videos: Sequence[VideoRecord], book: _SeriesBook) -> None:
    for video in videos:
        if video.external_id in book.assigned:
            continue
        name = match_bracket_name(video.title)
        if name:
            book.add(name, "bracket_prefix", video.external_id)


def _assign_recurring_prefixes(videos: Sequence[VideoRecord], book: _SeriesBook) -> None:
    prefix_members: "OrderedDict[str, List[str]]" = OrderedDict()
    for video in videos:
        if video.external_id in book.assigned:
            continue
        for prefix in title_prefixes(video.title):
            members = prefix_members.setdefault(prefix, [])
            if video.external_id not in members:
                members.append(video.external_id)

    # Longer prefixes first, then more videos. sorted() is stable, so ties
    # keep first-seen order.
    ranked = sorted(
        (item for item in prefix_members.items() if len(item[1]) >= MIN_SERIES_VIDEOS),
        key=lambda item: (-len(item[0].split(" ")), -len(item[1])),
    )

    for prefix, video_ids in ranked:
        remaining = [video_id for video_id in video_ids if video_id not in book.assigned]
        if len(remaining) < MIN_SERIES_VIDEOS:
            continue
        name = clean_series_name(prefix)
        for video_id in remaining:
            book.add(name, f'prefix: "{prefix}"', video_id)


def detect_series_by_pattern(videos: Sequence[VideoRecord]) -> PatternDetection:
    """
    Partition videos into pattern series (3+ videos each) and uncategorized.

    Videos of groups that end up smaller than three fall through to
    ``uncategorized`` so every input video lands in exactly one bucket.
    """
    book = _SeriesBook()
    _assign_episode_markers(videos, book)
    _assign_bracket_prefixes(videos, book)
    _assign_recurring_prefixes(videos, book)

    pattern_series = book.candidates()
    claimed = {video_id for series in pattern_series for video_id in series.video_ids}
    uncategorized = [video for video in videos if video.external_id not in claimed]

    return PatternDetection(pattern_series=pattern_series, uncategorized=uncategorized)
