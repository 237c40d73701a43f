"""Pydantic schemas for video projects and provider status updates."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class VideoStatus(str, Enum):
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {VideoStatus.COMPLETED, VideoStatus.FAILED}


def accepts_transition(current: VideoStatus, new: VideoStatus) -> bool:
    """Whether an observed status may replace the stored one.

    Terminal states only move to another terminal state, and a completed
    project stays completed. Late polls and callbacks are dropped.
    """
    if current == VideoStatus.COMPLETED:
        return new == VideoStatus.COMPLETED
    if current == VideoStatus.FAILED:
        return new in TERMINAL_STATUSES
    return True

# Tavus status vocabulary -> ours
_PROVIDER_STATUS = {
    "ready": VideoStatus.COMPLETED,
    "completed": VideoStatus.COMPLETED,
    "error": VideoStatus.FAILED,
    "failed": VideoStatus.FAILED,
    "deleted": VideoStatus.FAILED,
}


def normalize_status(provider_status: str | None) -> VideoStatus:
    """Anything not terminal (queued, generating, unknown) is still generating."""
    return _PROVIDER_STATUS.get((provider_status or "").lower(), VideoStatus.GENERATING)


class VideoCreate(BaseModel):
    script: str = Field(..., min_length=1, max_length=10000)
    title: str | None = Field(None, max_length=300)
    replica_id: str | None = Field(None, max_length=100)
    background: str = Field("office", max_length=100)
    subtitles: bool = True


class VideoProjectRead(BaseModel):
    id: str
    user_id: str
    title: str
    script: str
    replica_id: str
    provider_video_id: str | None = None
    background: str = "office"
    subtitles: bool = True
    status: VideoStatus
    progress: int = 0
    video_url: str | None = None
    thumbnail_url: str | None = None
    error_message: str | None = None
    poll_attempts: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None


class VideoStatusUpdate(BaseModel):
    """One observation of a provider job, from a poll or a callback."""

    status: VideoStatus
    progress: int | None = None
    video_url: str | None = None
    thumbnail_url: str | None = None
    error_message: str | None = None

    @classmethod
    def from_provider(cls, data: dict) -> VideoStatusUpdate:
        status = normalize_status(data.get("status"))
        raw = data.get("progress")
        progress = None if raw is None else max(0, min(int(raw), 100))
        if status == VideoStatus.COMPLETED:
            progress = 100
        return cls(
            status=status,
            progress=progress,
            video_url=data.get("download_url") or data.get("hosted_url"),
            thumbnail_url=data.get("thumbnail_url"),
            error_message=data.get("error_message") or data.get("error"),
        )


class Replica(BaseModel):
    replica_id: str
    name: str | None = None
    status: str | None = None
    thumbnail_url: str | None = None
    description: str | None = None
    training_progress: str | None = None


class ReplicaCreate(BaseModel):
    """Training request for a personal replica."""

    name: str = Field(..., min_length=1, max_length=200)
    train_video_url: str = Field(..., pattern=r"^https://", max_length=2000)


class WeeklyScriptResponse(BaseModel):
    niche: str
    script: str
