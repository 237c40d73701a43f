"""Plan limits, tier projection and the usage service.

Quota checks run before any paid provider call; counters are only
incremented after success and roll over at the start of each UTC month.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from src.copilot.models.profile import Profile
from src.copilot.profiles.repository import ProfileRepository
from src.copilot.usage.limits import (
    UNLIMITED,
    Resource,
    SubscriptionTier,
    UsageLimitExceededError,
    current_period_start,
    effective_limits,
    effective_tier,
    exceeds_limit,
    is_pro,
    needs_reset,
    remaining,
    tier_from_price_id,
    tier_limits,
)
from src.copilot.usage.service import UsageService


# ── Limit table ──────────────────────────────────────────────────────────────


def test_free_tier_limits():
    limits = tier_limits("free")
    assert limits == {
        "content_generations": 5,
        "voiceover_minutes": 2,
        "video_generations": 0,
    }


def test_pro_has_unlimited_content():
    limits = tier_limits(SubscriptionTier.PRO)
    assert limits["content_generations"] == UNLIMITED
    assert limits["voiceover_minutes"] == 60
    assert limits["video_generations"] == 10


def test_unknown_tier_falls_back_to_free():
    assert tier_limits("enterprise") == tier_limits("free")


def test_canceled_subscription_gets_free_limits():
    assert effective_tier("pro", "canceled") == SubscriptionTier.FREE
    assert effective_limits("pro", "past_due") == tier_limits("free")
    assert effective_tier("studio", "trialing") == SubscriptionTier.STUDIO


def test_is_pro_requires_paying_status():
    assert is_pro("pro", "active") is True
    assert is_pro("studio", "trialing") is True
    assert is_pro("pro", "canceled") is False
    assert is_pro("free", "active") is False


def test_tier_from_price_id(monkeypatch):
    from src.copilot.config import get_settings

    settings = get_settings()
    monkeypatch.setattr(settings, "STRIPE_PRO_PRICE_ID", "price_abc")
    monkeypatch.setattr(settings, "STRIPE_STUDIO_PRICE_ID", "price_xyz")
    assert tier_from_price_id("price_abc") == SubscriptionTier.PRO
    assert tier_from_price_id("price_xyz") == SubscriptionTier.STUDIO
    assert tier_from_price_id("price_monthly_pro") == SubscriptionTier.PRO
    assert tier_from_price_id("price_studio_annual") == SubscriptionTier.STUDIO
    assert tier_from_price_id("price_other") == SubscriptionTier.FREE
    assert tier_from_price_id(None) == SubscriptionTier.FREE


# ── Arithmetic ───────────────────────────────────────────────────────────────


def test_exceeds_limit():
    assert exceeds_limit(5, 4) is False
    assert exceeds_limit(5, 5) is True
    assert exceeds_limit(2, 1.5, amount=0.6) is True
    assert exceeds_limit(0, 0) is True
    assert exceeds_limit(UNLIMITED, 10_000) is False


def test_remaining_never_negative():
    assert remaining(5, 2) == 3
    assert remaining(5, 9) == 0
    assert remaining(UNLIMITED, 9) == UNLIMITED


def test_period_rollover():
    now = datetime(2026, 3, 15, 12, 30, tzinfo=timezone.utc)
    assert current_period_start(now) == datetime(2026, 3, 1, tzinfo=timezone.utc)
    assert needs_reset(datetime(2026, 2, 1, tzinfo=timezone.utc), now) is True
    assert needs_reset(datetime(2026, 3, 1, tzinfo=timezone.utc), now) is False
    assert needs_reset(None, now) is True


def test_limit_error_detail():
    exc = UsageLimitExceededError("content_generations", 5, 5)
    detail = exc.to_detail()
    assert detail["error"] == "Usage limit reached"
    assert detail["limit"] == 5
    assert detail["usage"] == 5
    assert detail["resource"] == "content_generations"
    assert "content generations" in detail["message"]


# ── UsageService ─────────────────────────────────────────────────────────────


async def test_ensure_within_limit_allows_under_quota(profile_repository, profile_factory):
    profile = profile_repository.add(profile_factory(usage_counts={"content_generations": 4}))
    service = UsageService(profile_repository)
    result = await service.ensure_within_limit(profile.id, Resource.CONTENT_GENERATIONS)
    assert result.id == profile.id


async def test_ensure_within_limit_rejects_at_quota(profile_repository, profile_factory):
    profile = profile_repository.add(profile_factory(usage_counts={"content_generations": 5}))
    service = UsageService(profile_repository)
    with pytest.raises(UsageLimitExceededError) as exc_info:
        await service.ensure_within_limit(profile.id, Resource.CONTENT_GENERATIONS)
    assert exc_info.value.limit == 5
    assert exc_info.value.usage == 5
    assert "Upgrade to Pro" in exc_info.value.message


async def test_free_tier_cannot_generate_videos(profile_repository, profile_factory):
    profile = profile_repository.add(profile_factory())
    service = UsageService(profile_repository)
    with pytest.raises(UsageLimitExceededError):
        await service.ensure_within_limit(profile.id, Resource.VIDEO_GENERATIONS)


async def test_voiceover_minutes_checked_against_requested_amount(profile_repository, profile_factory):
    profile = profile_repository.add(profile_factory(usage_counts={"voiceover_minutes": 1.5}))
    service = UsageService(profile_repository)
    await service.ensure_within_limit(profile.id, Resource.VOICEOVER_MINUTES, amount=0.5)
    with pytest.raises(UsageLimitExceededError):
        await service.ensure_within_limit(profile.id, Resource.VOICEOVER_MINUTES, amount=0.6)


async def test_pro_unlimited_content(profile_repository, profile_factory):
    profile = profile_repository.add(profile_factory(
        subscription_tier="pro",
        subscription_status="active",
        usage_counts={"content_generations": 500},
    ))
    service = UsageService(profile_repository)
    await service.ensure_within_limit(profile.id, Resource.CONTENT_GENERATIONS)


async def test_previous_month_counters_roll_over(profile_repository, profile_factory):
    profile = profile_repository.add(profile_factory(
        usage_counts={"content_generations": 5},
        usage_period_start=datetime(2020, 1, 1, tzinfo=timezone.utc),
    ))
    service = UsageService(profile_repository)
    result = await service.ensure_within_limit(profile.id, Resource.CONTENT_GENERATIONS)
    assert result.usage_counts == {}
    assert result.usage_period_start == current_period_start()


async def test_record_increments_counter(profile_repository, profile_factory):
    profile = profile_repository.add(profile_factory())
    service = UsageService(profile_repository)
    await service.record(profile.id, Resource.VOICEOVER_MINUTES, 0.75)
    counts = await service.record(profile.id, Resource.VOICEOVER_MINUTES, 0.5)
    assert counts["voiceover_minutes"] == pytest.approx(1.25)


async def test_summary_reports_remaining(profile_repository, profile_factory):
    profile = profile_repository.add(profile_factory(usage_counts={"content_generations": 3}))
    service = UsageService(profile_repository)
    summary = await service.summary(profile.id)
    assert summary.tier == "free"
    content = summary.resources["content_generations"]
    assert content.limit == 5
    assert content.used == 3
    assert content.remaining == 2
    assert summary.resources["video_generations"].remaining == 0


async def test_unknown_profile_raises_lookup(profile_repository):
    service = UsageService(profile_repository)
    with pytest.raises(LookupError):
        await service.summary("00000000-0000-0000-0000-000000000000")


def test_remaining_for_counts_consumed_amount(profile_factory):
    profile = profile_factory(usage_counts={"voiceover_minutes": 1})
    assert UsageService.remaining_for(profile, Resource.VOICEOVER_MINUTES, consumed=0.5) == 0.5


# ── Reset against the repository ─────────────────────────────────────────────


def _stored_profile(user_id: uuid.UUID, counts: dict) -> Profile:
    return Profile(
        id=user_id,
        email="sam@example.com",
        is_active=True,
        is_admin=False,
        is_pro=False,
        subscription_tier="free",
        subscription_status="active",
        usage_limits=tier_limits("free"),
        usage_counts=counts,
        usage_period_start=current_period_start(),
    )


def _repository_with(session) -> ProfileRepository:
    async def _sessions():
        yield session
    return ProfileRepository(_sessions, _sessions)


async def test_reset_usage_only_touches_earlier_periods():
    user_id = uuid.uuid4()
    session = MagicMock()
    session.execute = AsyncMock(return_value=MagicMock(rowcount=0))
    session.commit = AsyncMock()
    session.get = AsyncMock(return_value=_stored_profile(user_id, {"content_generations": 1}))

    result = await _repository_with(session).reset_usage(str(user_id), current_period_start())

    sql = str(session.execute.await_args.args[0].compile(dialect=postgresql.dialect()))
    assert sql.startswith("UPDATE creator.profiles")
    assert "usage_period_start IS NULL OR creator.profiles.usage_period_start <" in sql
    assert result.usage_counts == {"content_generations": 1}


async def test_concurrent_rollover_keeps_fresh_usage(profile_repository, profile_factory):
    profile = profile_repository.add(profile_factory(
        usage_counts={"content_generations": 4},
        usage_period_start=datetime(2020, 1, 1, tzinfo=timezone.utc),
    ))
    period = current_period_start()

    await profile_repository.reset_usage(profile.id, period)
    await profile_repository.increment_usage(profile.id, "content_generations", 1)
    second = await profile_repository.reset_usage(profile.id, period)

    assert second.usage_counts == {"content_generations": 1.0}
