"""Usage service -- check a quota before a paid call, record it after.

Counters roll over lazily: any read that finds usage_period_start in an
earlier UTC month zeroes the counters first. scripts/reset_usage.py does
the same in bulk.
"""

from __future__ import annotations

import structlog

from src.copilot.core.monitoring import record_usage_rejection
from src.copilot.profiles.repository import ProfileRepository
from src.copilot.profiles.schemas import ProfileRead, ResourceUsage, UsageSummary
from src.copilot.usage.limits import (
    UNLIMITED,
    Resource,
    UsageLimitExceededError,
    current_period_start,
    effective_limits,
    effective_tier,
    exceeds_limit,
    needs_reset,
    remaining,
)

logger = structlog.get_logger(__name__)

LIMIT_MESSAGES: dict[Resource, str] = {
    Resource.CONTENT_GENERATIONS: (
        "You've reached your monthly content generation limit. "
        "Upgrade to Pro for unlimited generations."
    ),
    Resource.VOICEOVER_MINUTES: (
        "You've reached your monthly voiceover minutes limit. "
        "Upgrade to Pro for more minutes."
    ),
    Resource.VIDEO_GENERATIONS: (
        "You've reached your monthly AI video limit. "
        "Upgrade your plan to generate more videos."
    ),
}


class UsageService:
    """Quota checks and counters on top of ProfileRepository."""

    def __init__(self, profile_repository: ProfileRepository) -> None:
        self._profiles = profile_repository

    async def _load(self, user_id: str) -> ProfileRead:
        profile = await self._profiles.get_profile(user_id)
        if profile is None:
            raise LookupError(f"Profile {user_id} not found")
        if needs_reset(profile.usage_period_start):
            reset = await self._profiles.reset_usage(user_id, current_period_start())
            if reset is not None:
                logger.info("usage.period_rolled_over", user_id=user_id)
                profile = reset
        return profile

    async def summary(self, user_id: str) -> UsageSummary:
        profile = await self._load(user_id)
        limits = effective_limits(profile.subscription_tier, profile.subscription_status)
        resources = {}
        for resource in Resource:
            limit = limits[resource.value]
            used = float(profile.usage_counts.get(resource.value, 0) or 0)
            resources[resource.value] = ResourceUsage(
                limit=limit,
                used=used,
                remaining=remaining(limit, used),
            )
        return UsageSummary(
            tier=profile.subscription_tier,
            status=profile.subscription_status,
            is_pro=profile.is_pro,
            period_start=profile.usage_period_start,
            resources=resources,
        )

    async def ensure_within_limit(
        self,
        user_id: str,
        resource: Resource,
        amount: float = 1,
    ) -> ProfileRead:
        """Raise UsageLimitExceededError if `amount` more would exceed the quota.

        Returns:
            The (possibly rolled-over) profile, so callers can report
            remaining allowance without a second read.
        """
        profile = await self._load(user_id)
        limits = effective_limits(profile.subscription_tier, profile.subscription_status)
        limit = limits[resource.value]
        used = float(profile.usage_counts.get(resource.value, 0) or 0)

        if exceeds_limit(limit, used, amount):
            tier = effective_tier(profile.subscription_tier, profile.subscription_status)
            record_usage_rejection(resource.value, tier.value)
            logger.info(
                "usage.limit_reached",
                user_id=user_id,
                resource=resource.value,
                limit=limit,
                used=used,
                requested=amount,
            )
            raise UsageLimitExceededError(
                resource=resource.value,
                limit=limit,
                usage=used,
                message=LIMIT_MESSAGES[resource],
            )
        return profile

    async def record(self, user_id: str, resource: Resource, amount: float = 1) -> dict:
        """Add consumed amount to the user's counter after a successful call."""
        counts = await self._profiles.increment_usage(user_id, resource.value, amount)
        logger.info(
            "usage.recorded",
            user_id=user_id,
            resource=resource.value,
            amount=amount,
            total=counts.get(resource.value),
        )
        return counts

    @staticmethod
    def remaining_for(profile: ProfileRead, resource: Resource, consumed: float = 0) -> float:
        limits = effective_limits(profile.subscription_tier, profile.subscription_status)
        limit = limits[resource.value]
        if limit == UNLIMITED:
            return UNLIMITED
        used = float(profile.usage_counts.get(resource.value, 0) or 0) + consumed
        return remaining(limit, used)
