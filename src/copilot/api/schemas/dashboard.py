"""Response schema for the dashboard summary."""

from __future__ import annotations

from pydantic import BaseModel

from src.copilot.profiles.schemas import UsageSummary


class DashboardCounts(BaseModel):
    content: int = 0
    voiceovers: int = 0
    videos: int = 0
    campaign_applications: int = 0


class DashboardStats(BaseModel):
    tier: str
    is_pro: bool
    counts: DashboardCounts
    usage: UsageSummary
