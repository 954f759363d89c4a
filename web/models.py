"""ORM models for the series audit app."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from web.db import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class SeriesRun(Base):
    __tablename__ = "series_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    requested_by: Mapped[str] = mapped_column(String(320), nullable=False, default="", index=True)

    source_name: Mapped[str] = mapped_column(Text, default="")
    channel_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    channel_name: Mapped[str] = mapped_column(String(255), default="")

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="queued", index=True)
    progress_step: Mapped[str] = mapped_column(String(255), default="Queued")
    progress_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    progress_message: Mapped[str] = mapped_column(Text, default="")
    error_message: Mapped[str] = mapped_column(Text, default="")
    log_text: Mapped[str] = mapped_column(Text, default="")

    videos_ingested: Mapped[int] = mapped_column(Integer, nullable=True)
    series_detected: Mapped[int] = mapped_column(Integer, nullable=True)
    uncategorized_count: Mapped[int] = mapped_column(Integer, nullable=True)
    total_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    sections = relationship("RunSection", back_populates="run", cascade="all, delete-orphan")
    videos = relationship("RunVideo", back_populates="run", cascade="all, delete-orphan")
    series = relationship("DetectedSeries", back_populates="run", cascade="all, delete-orphan")
    artifacts = relationship("RunArtifact", back_populates="run", cascade="all, delete-orphan")
    series_videos = relationship("SeriesVideo", back_populates="run", cascade="all, delete-orphan")


class RunSection(Base):
    __tablename__ = "run_sections"
    __table_args__ = (UniqueConstraint("run_id", "section_key", name="uq_run_section"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    run_id: Mapped[str] = mapped_column(String(36), ForeignKey("series_runs.id"), nullable=False, index=True)
    section_key: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    result_data: Mapped[dict] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str] = mapped_column(Text, default="")
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)

    run = relationship("SeriesRun", back_populates="sections")


class RunVideo(Base):
    __tablename__ = "run_videos"
    __table_args__ = (UniqueConstraint("run_id", "external_id", name="uq_run_video"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    run_id: Mapped[str] = mapped_column(String(36), ForeignKey("series_runs.id"), nullable=False, index=True)
    external_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    published_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    channel: Mapped[str] = mapped_column(String(255), default="")
    source_url: Mapped[str] = mapped_column(Text, default="")
    format: Mapped[str] = mapped_column(String(16), nullable=False, default="long")

    view_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    like_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    comment_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    watch_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    impressions: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    ctr: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    avg_view_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    subscribers_gained: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    detected_series_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("detected_series.id", ondelete="SET NULL"), nullable=True, index=True
    )

    run = relationship("SeriesRun", back_populates="videos")
    detected_series = relationship("DetectedSeries", back_populates="videos")


class DetectedSeries(Base):
    __tablename__ = "detected_series"
    __table_args__ = (UniqueConstraint("channel_id", "name", name="uq_channel_series_name"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    run_id: Mapped[str] = mapped_column(String(36), ForeignKey("series_runs.id"), nullable=False, index=True)
    channel_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    detection_method: Mapped[str] = mapped_column(String(16), nullable=False, default="pattern")
    pattern_source: Mapped[str] = mapped_column(String(255), nullable=True)
    confidence: Mapped[str] = mapped_column(String(16), nullable=True)

    video_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_views: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    avg_views: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    avg_engagement_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    first_published: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    last_published: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    cadence_days: Mapped[int] = mapped_column(Integer, nullable=True)
    performance_trend: Mapped[str] = mapped_column(String(16), nullable=False, default="stable")

    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    run = relationship("SeriesRun", back_populates="series")
    videos = relationship("RunVideo", back_populates="detected_series")
    members = relationship("SeriesVideo", back_populates="series", cascade="all, delete-orphan")


class SeriesVideo(Base):
    """One video of one detected series within a run. A video may sit in several series."""

    __tablename__ = "series_videos"
    __table_args__ = (UniqueConstraint("run_id", "series_id", "external_id", name="uq_series_video"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    run_id: Mapped[str] = mapped_column(String(36), ForeignKey("series_runs.id"), nullable=False, index=True)
    series_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("detected_series.id", ondelete="CASCADE"), nullable=False, index=True
    )
    external_id: Mapped[str] = mapped_column(String(64), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    run = relationship("SeriesRun", back_populates="series_videos")
    series = relationship("DetectedSeries", back_populates="members")


class RunArtifact(Base):
    __tablename__ = "run_artifacts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    run_id: Mapped[str] = mapped_column(String(36), ForeignKey("series_runs.id"), nullable=False, index=True)
    artifact_type: Mapped[str] = mapped_column(String(32), nullable=False)
    gcs_path: Mapped[str] = mapped_column(Text, nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    run = relationship("SeriesRun", back_populates="artifacts")
