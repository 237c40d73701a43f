"""Pydantic schemas for voiceover jobs."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

WORDS_PER_MINUTE = 150


class VoiceoverStatus(str, Enum):
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


def estimate_minutes(script: str) -> float:
    """Spoken duration estimate at 150 words per minute."""
    return len(script.split()) / WORDS_PER_MINUTE


class VoiceoverCreate(BaseModel):
    script: str = Field(..., min_length=1, max_length=20000)
    voice_id: str = Field(..., min_length=1, max_length=100)
    title: str | None = Field(None, max_length=300)


class VoiceoverRead(BaseModel):
    id: str
    user_id: str
    title: str
    script: str
    voice_id: str
    audio_url: str | None = None
    status: VoiceoverStatus
    estimated_minutes: float = 0.0
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class VoiceoverResult(BaseModel):
    """Response of a successful synthesis.

    remaining_minutes is only reported on the free tier.
    """

    voiceover_id: str
    audio_url: str
    estimated_minutes: float
    remaining_minutes: float | None = None


class Voice(BaseModel):
    voice_id: str
    name: str
    category: str | None = None
    preview_url: str | None = None
    labels: dict = Field(default_factory=dict)
