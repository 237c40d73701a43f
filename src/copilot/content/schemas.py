"""Pydantic schemas for AI content generation."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class ContentType(str, Enum):
    SCRIPT = "script"
    CAPTION = "caption"
    HASHTAGS = "hashtags"
    IDEAS = "ideas"


class ContentGenerateRequest(BaseModel):
    """Body of POST /content/generate."""

    type: ContentType
    platform: str = Field(..., min_length=1, max_length=50)
    niche: str = Field(..., min_length=1, max_length=100)
    additional_context: str | None = Field(None, max_length=4000)
    title: str | None = Field(None, max_length=300)


class ContentRead(BaseModel):
    id: str
    user_id: str
    content_type: str
    platform: str
    niche: str
    title: str
    prompt: str
    content: str
    metadata: dict = Field(default_factory=dict)
    created_at: datetime | None = None


class ContentCreate(BaseModel):
    """Internal payload used by the generator to persist a result."""

    content_type: str
    platform: str
    niche: str
    title: str
    prompt: str
    content: str
    metadata: dict = Field(default_factory=dict)


class ContentGenerateResponse(BaseModel):
    content: str
    content_id: str
    title: str
    usage: dict = Field(default_factory=dict)


class TrendingRequest(BaseModel):
    niche: str = Field(..., min_length=1, max_length=100)
    platform: str | None = Field(None, max_length=50)


class TrendingResponse(BaseModel):
    niche: str
    topics: list[str]
