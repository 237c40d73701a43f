"""Plan tiers, per-tier monthly quotas, and the limit arithmetic.

Everything here is pure so it can be shared by the usage service, the
billing webhook (which rewrites a profile's limits when its plan changes)
and the monthly reset script.

A limit of -1 means unlimited.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from src.copilot.config import get_settings

UNLIMITED = -1


class SubscriptionTier(str, Enum):
    FREE = "free"
    PRO = "pro"
    STUDIO = "studio"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"


class Resource(str, Enum):
    """Metered generation actions."""

    CONTENT_GENERATIONS = "content_generations"
    VOICEOVER_MINUTES = "voiceover_minutes"
    VIDEO_GENERATIONS = "video_generations"


TIER_LIMITS: dict[SubscriptionTier, dict[Resource, float]] = {
    SubscriptionTier.FREE: {
        Resource.CONTENT_GENERATIONS: 5,
        Resource.VOICEOVER_MINUTES: 2,
        Resource.VIDEO_GENERATIONS: 0,
    },
    SubscriptionTier.PRO: {
        Resource.CONTENT_GENERATIONS: UNLIMITED,
        Resource.VOICEOVER_MINUTES: 60,
        Resource.VIDEO_GENERATIONS: 10,
    },
    SubscriptionTier.STUDIO: {
        Resource.CONTENT_GENERATIONS: UNLIMITED,
        Resource.VOICEOVER_MINUTES: UNLIMITED,
        Resource.VIDEO_GENERATIONS: UNLIMITED,
    },
}

_PAYING_STATUSES = {SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value}


class UsageLimitExceededError(Exception):
    """Raised before a paid provider call when the plan quota is used up."""

    def __init__(
        self,
        resource: str,
        limit: float,
        usage: float,
        message: str | None = None,
    ):
        self.resource = resource
        self.limit = limit
        self.usage = usage
        self.message = message or (
            f"You've reached your monthly {resource.replace('_', ' ')} limit. "
            "Upgrade your plan for more."
        )
        super().__init__(self.message)

    def to_detail(self) -> dict:
        """Body used for the 403 response."""
        return {
            "error": "Usage limit reached",
            "message": self.message,
            "limit": self.limit,
            "usage": self.usage,
            "resource": self.resource,
        }


# ── Tier helpers ─────────────────────────────────────────────────────────────


def _as_tier(tier: str | SubscriptionTier) -> SubscriptionTier:
    try:
        return SubscriptionTier(tier)
    except ValueError:
        return SubscriptionTier.FREE


def tier_limits(tier: str | SubscriptionTier) -> dict[str, float]:
    """Limits for a tier keyed by resource name (JSON friendly)."""
    return {r.value: v for r, v in TIER_LIMITS[_as_tier(tier)].items()}


def effective_tier(tier: str, status: str) -> SubscriptionTier:
    """Tier whose limits apply: a lapsed paid plan falls back to free."""
    if status not in _PAYING_STATUSES:
        return SubscriptionTier.FREE
    return _as_tier(tier)


def effective_limits(tier: str, status: str) -> dict[str, float]:
    return tier_limits(effective_tier(tier, status))


def is_pro(tier: str, status: str) -> bool:
    return (
        _as_tier(tier) in (SubscriptionTier.PRO, SubscriptionTier.STUDIO)
        and status in _PAYING_STATUSES
    )


def tier_from_price_id(price_id: str | None) -> SubscriptionTier:
    """Map a billing price id onto a tier.

    Configured price ids win; otherwise the id itself is inspected for
    "pro" then "studio".
    """
    if not price_id:
        return SubscriptionTier.FREE
    settings = get_settings()
    if settings.STRIPE_PRO_PRICE_ID and price_id == settings.STRIPE_PRO_PRICE_ID:
        return SubscriptionTier.PRO
    if settings.STRIPE_STUDIO_PRICE_ID and price_id == settings.STRIPE_STUDIO_PRICE_ID:
        return SubscriptionTier.STUDIO
    lowered = price_id.lower()
    if "pro" in lowered:
        return SubscriptionTier.PRO
    if "studio" in lowered:
        return SubscriptionTier.STUDIO
    return SubscriptionTier.FREE


# ── Limit arithmetic ─────────────────────────────────────────────────────────


def exceeds_limit(limit: float, used: float, amount: float = 1) -> bool:
    """True when consuming `amount` more would go over `limit`."""
    if limit == UNLIMITED:
        return False
    return used + amount > limit


def remaining(limit: float, used: float) -> float:
    if limit == UNLIMITED:
        return UNLIMITED
    return max(limit - used, 0)


# ── Billing period ───────────────────────────────────────────────────────────


def current_period_start(now: datetime | None = None) -> datetime:
    """First instant of the current UTC month."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def needs_reset(period_start: datetime | None, now: datetime | None = None) -> bool:
    if period_start is None:
        return True
    if period_start.tzinfo is None:
        period_start = period_start.replace(tzinfo=timezone.utc)
    return period_start < current_period_start(now)
