"""Pydantic schemas and rule errors for the campaign marketplace."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class CampaignStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# ── Rule errors ─────────────────────────────────────────────────────────────


class CampaignError(Exception):
    """Base for marketplace rule violations."""


class CampaignNotFoundError(CampaignError):
    pass


class ApplicationNotFoundError(CampaignError):
    pass


class CampaignClosedError(CampaignError):
    """Only active campaigns accept applications."""


class SelfApplicationError(CampaignError):
    """A brand cannot apply to its own campaign."""


class DuplicateApplicationError(CampaignError):
    pass


class InvalidApplicationTransitionError(CampaignError):
    """Applications move from pending to accepted or rejected, once."""


# ── Campaigns ───────────────────────────────────────────────────────────────


class CampaignCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    description: str = Field(..., min_length=1, max_length=10000)
    budget: float = Field(..., ge=0)
    niche: str = Field(..., min_length=1, max_length=100)
    requirements: list[str] = Field(default_factory=list)


class CampaignUpdate(BaseModel):
    model_config = {"extra": "forbid"}

    title: str | None = Field(None, min_length=1, max_length=300)
    description: str | None = Field(None, min_length=1, max_length=10000)
    budget: float | None = Field(None, ge=0)
    niche: str | None = Field(None, min_length=1, max_length=100)
    requirements: list[str] | None = None
    status: CampaignStatus | None = None

    @field_validator("title", "description", "budget", "niche", "requirements", "status")
    @classmethod
    def _reject_null(cls, v):
        """Fields may be omitted but not cleared."""
        if v is None:
            raise ValueError("field cannot be null")
        return v


class CampaignRead(BaseModel):
    id: str
    brand_id: str
    title: str
    description: str
    budget: float
    niche: str
    requirements: list[str] = Field(default_factory=list)
    status: CampaignStatus
    applications_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CampaignFilter(BaseModel):
    niche: str | None = None
    status: CampaignStatus | None = CampaignStatus.ACTIVE
    limit: int = Field(50, ge=1, le=200)


# ── Applications ────────────────────────────────────────────────────────────


class ApplicationCreate(BaseModel):
    proposal: str = Field(..., min_length=1, max_length=5000)


class ApplicationReview(BaseModel):
    status: ApplicationStatus


class ApplicationRead(BaseModel):
    id: str
    campaign_id: str
    creator_id: str
    proposal: str
    status: ApplicationStatus
    created_at: datetime | None = None
    updated_at: datetime | None = None
