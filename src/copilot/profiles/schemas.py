"""Pydantic schemas for creator profiles and usage summaries."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class ProfileRead(BaseModel):
    """Full profile as stored, minus credentials."""

    id: str
    email: str
    full_name: str | None = None
    avatar_url: str | None = None
    niche: str | None = None
    bio: str | None = None
    social_links: dict = Field(default_factory=dict)
    follower_count: int = 0
    is_active: bool = True
    is_admin: bool = False
    is_pro: bool = False
    subscription_tier: str = "free"
    subscription_status: str = "active"
    subscription_id: str | None = None
    trial_ends_at: datetime | None = None
    usage_limits: dict = Field(default_factory=dict)
    usage_counts: dict = Field(default_factory=dict)
    usage_period_start: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ProfileUpdate(BaseModel):
    """Fields a user may change on their own profile.

    Subscription fields, admin flag, limits and counts are deliberately
    absent; unknown keys are rejected.
    """

    model_config = {"extra": "forbid"}

    full_name: str | None = Field(None, max_length=200)
    avatar_url: str | None = None
    niche: str | None = Field(None, max_length=100)
    bio: str | None = Field(None, max_length=2000)
    social_links: dict[str, str] | None = None
    follower_count: int | None = Field(None, ge=0)

    @field_validator("social_links", "follower_count")
    @classmethod
    def _reject_null(cls, v):
        if v is None:
            raise ValueError("field cannot be null")
        return v


class ProfileCredentials(BaseModel):
    """Login lookup result. Never returned from the API."""

    id: str
    email: str
    hashed_password: str
    is_active: bool


class ResourceUsage(BaseModel):
    limit: float
    used: float
    remaining: float


class UsageSummary(BaseModel):
    """Per-resource usage for the current month. -1 means unlimited."""

    tier: str
    status: str
    is_pro: bool
    period_start: datetime | None = None
    resources: dict[str, ResourceUsage]
