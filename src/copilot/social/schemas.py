"""Pydantic schemas for social accounts and analytics."""

from __future__ import annotations

import datetime as dt
from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field


class AnalyticsRange(str, Enum):
    WEEK = "7d"
    MONTH = "30d"
    QUARTER = "90d"
    YEAR = "1y"


RANGE_DAYS = {
    AnalyticsRange.WEEK: 7,
    AnalyticsRange.MONTH: 30,
    AnalyticsRange.QUARTER: 90,
    AnalyticsRange.YEAR: 365,
}


class ExportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"


class ConnectResponse(BaseModel):
    platform: str
    authorize_url: str


class SocialAccountRead(BaseModel):
    """A linked account as shown to its owner. Tokens are never exposed."""

    id: str
    platform: str
    platform_user_id: str | None = None
    username: str | None = None
    avatar_url: str | None = None
    followers: int = 0
    scope: str | None = None
    expires_at: datetime | None = None
    last_synced_at: datetime | None = None
    connected_at: datetime | None = None


class StoredToken(BaseModel):
    """Internal view of a token row, used for syncing."""

    platform: str
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None


class SnapshotRead(BaseModel):
    platform: str
    snapshot_date: date
    followers: int = 0
    engagement_rate: float = 0.0
    reach: int = 0
    impressions: int = 0


class MetricChange(BaseModel):
    current: float
    change: float
    change_percent: float


class ChartPoint(BaseModel):
    date: dt.date
    followers: int
    engagement_rate: float
    reach: int


class PlatformAnalytics(BaseModel):
    platform: str
    metrics: dict[str, MetricChange]
    chart_data: list[ChartPoint] = Field(default_factory=list)


class AnalyticsResponse(BaseModel):
    range: AnalyticsRange
    platforms: list[PlatformAnalytics]


class SyncItem(BaseModel):
    platform: str
    status: str
    followers: int | None = None
    error: str | None = None


class SyncResponse(BaseModel):
    synced: int
    failed: int
    results: list[SyncItem]
