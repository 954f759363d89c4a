"""Shared record types for export ingestion and series detection."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

from dateutil import parser as dateparser

FORMAT_SHORT = "short"
FORMAT_LONG = "long"

METHOD_PATTERN = "pattern"
METHOD_SEMANTIC = "semantic"

T = TypeVar("T")


@dataclass(frozen=True)
class VideoRecord:
    """One ingested video. Built once by the normalizer and never mutated."""

    external_id: str
    title: str
    published_at: datetime
    channel: str = "Main Channel"
    source_url: str = ""
    view_count: int = 0
    like_count: int = 0
    comment_count: int = 0
    duration_seconds: int = 0
    watch_hours: float = 0.0
    impressions: int = 0
    ctr: float = 0.0
    avg_view_percentage: float = 0.0
    subscribers_gained: int = 0
    format: str = FORMAT_LONG

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["published_at"] = self.published_at.isoformat()
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "VideoRecord":
        values = dict(data)
        published = values.get("published_at")
        if isinstance(published, str):
            values["published_at"] = dateparser.parse(published)
        return VideoRecord(**values)


@dataclass(frozen=True)
class SeriesCandidate:
    name: str
    video_ids: Tuple[str, ...]
    detection_method: str = METHOD_PATTERN
    pattern_source: Optional[str] = None
    confidence: Optional[str] = None


@dataclass(frozen=True)
class SeriesResult:
    name: str
    video_ids: Tuple[str, ...]
    detection_method: str
    pattern_source: Optional[str]
    confidence: Optional[str]
    video_count: int
    total_views: int
    avg_views: float
    avg_engagement_rate: float
    first_published: Optional[datetime]
    last_published: Optional[datetime]
    cadence_days: Optional[int]
    performance_trend: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "videoIds": list(self.video_ids),
            "detectionMethod": self.detection_method,
            "patternSource": self.pattern_source,
            "confidence": self.confidence,
            "videoCount": self.video_count,
            "totalViews": self.total_views,
            "avgViews": self.avg_views,
            "avgEngagementRate": self.avg_engagement_rate,
            "firstPublished": self.first_published.isoformat() if self.first_published else None,
            "lastPublished": self.last_published.isoformat() if self.last_published else None,
            "cadenceDays": self.cadence_days,
            "performanceTrend": self.performance_trend,
        }


@dataclass(frozen=True)
class StepResult(Generic[T]):
    """Outcome of a best-effort pipeline step: ``ok`` with a value, or a reason."""

    ok: bool
    value: Optional[T] = None
    reason: str = ""
    tokens: int = 0
    cost: float = 0.0

    @staticmethod
    def success(value: T, tokens: int = 0, cost: float = 0.0) -> "StepResult[T]":
        return StepResult(ok=True, value=value, tokens=tokens, cost=cost)

    @staticmethod
    def failure(reason: str, tokens: int = 0, cost: float = 0.0) -> "StepResult[T]":
        return StepResult(ok=False, reason=reason, tokens=tokens, cost=cost)


@dataclass
class PatternDetection:
    pattern_series: List[SeriesCandidate] = field(default_factory=list)
    uncategorized: List[VideoRecord] = field(default_factory=list)
