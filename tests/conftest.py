"""Shared test fixtures and in-memory doubles.

Provides:
- InMemoryProfileRepository: ProfileRepository double keyed by user id
- RecordingFunctionLogger: FunctionLogger double that keeps rows in memory
- profile_factory: ProfileRead factory with free-tier defaults
- app_factory: minimal FastAPI app with a router, a user override and app.state
- auth_headers: Bearer header builder for a user id

API tests follow the same pattern everywhere: build a minimal app around
the router under test, override get_current_user, and put in-memory
services on app.state. No database or Redis is needed.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import pytest
from fastapi import APIRouter, FastAPI

from src.copilot.core.security import create_access_token
from src.copilot.profiles.repository import ProfileExistsError
from src.copilot.profiles.schemas import ProfileCredentials, ProfileRead, ProfileUpdate
from src.copilot.usage.limits import current_period_start, tier_limits


def make_profile(**overrides: Any) -> ProfileRead:
    """A free-tier profile in the current usage period."""
    values: dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "email": f"creator-{uuid.uuid4().hex[:8]}@example.com",
        "full_name": "Test Creator",
        "niche": "fitness",
        "usage_limits": tier_limits("free"),
        "usage_counts": {},
        "usage_period_start": current_period_start(),
        "created_at": datetime.now(timezone.utc),
    }
    values.update(overrides)
    return ProfileRead(**values)


# ── In-Memory Test Doubles ───────────────────────────────────────────────────


class InMemoryProfileRepository:
    """In-memory ProfileRepository for testing without database."""

    def __init__(self) -> None:
        self.profiles: dict[str, ProfileRead] = {}
        self.passwords: dict[str, str] = {}

    def add(self, profile: ProfileRead, hashed_password: str = "") -> ProfileRead:
        self.profiles[profile.id] = profile
        self.passwords[profile.id] = hashed_password
        return profile

    async def create_profile(
        self,
        email: str,
        hashed_password: str,
        full_name: str | None,
        niche: str | None,
        usage_limits: dict,
        usage_period_start: datetime,
    ) -> ProfileRead:
        normalized = email.strip().lower()
        if any(p.email == normalized for p in self.profiles.values()):
            raise ProfileExistsError(normalized)
        profile = make_profile(
            email=normalized,
            full_name=full_name,
            niche=niche,
            usage_limits=usage_limits,
            usage_period_start=usage_period_start,
        )
        return self.add(profile, hashed_password)

    async def get_credentials(self, email: str) -> ProfileCredentials | None:
        normalized = email.strip().lower()
        for profile in self.profiles.values():
            if profile.email == normalized:
                return ProfileCredentials(
                    id=profile.id,
                    email=profile.email,
                    hashed_password=self.passwords[profile.id],
                    is_active=profile.is_active,
                )
        return None

    async def lookup_profile(self, user_id: str) -> ProfileRead | None:
        return self.profiles.get(user_id)

    async def get_profile(self, user_id: str) -> ProfileRead | None:
        return self.profiles.get(user_id)

    async def update_profile(self, user_id: str, data: ProfileUpdate) -> ProfileRead | None:
        profile = self.profiles.get(user_id)
        if profile is None:
            return None
        updated = profile.model_copy(update=data.model_dump(exclude_unset=True))
        self.profiles[user_id] = updated
        return updated

    async def increment_usage(self, user_id: str, resource: str, amount: float) -> dict:
        profile = self.profiles[user_id]
        counts = dict(profile.usage_counts)
        counts[resource] = float(counts.get(resource, 0) or 0) + amount
        self.profiles[user_id] = profile.model_copy(update={"usage_counts": counts})
        return counts

    async def reset_usage(self, user_id: str, period_start: datetime) -> ProfileRead | None:
        profile = self.profiles.get(user_id)
        if profile is None:
            return None
        if profile.usage_period_start is not None and profile.usage_period_start >= period_start:
            return profile
        reset = profile.model_copy(update={"usage_counts": {}, "usage_period_start": period_start})
        self.profiles[user_id] = reset
        return reset

    async def reset_all_usage(self, period_start: datetime) -> int:
        count = 0
        for user_id, profile in list(self.profiles.items()):
            if profile.usage_period_start is None or profile.usage_period_start < period_start:
                await self.reset_usage(user_id, period_start)
                count += 1
        return count

    async def apply_subscription(
        self,
        user_id: str,
        *,
        tier: str,
        status: str,
        subscription_id: str | None,
        trial_ends_at: datetime | None,
        usage_limits: dict,
    ) -> ProfileRead | None:
        profile = self.profiles.get(user_id)
        if profile is None:
            return None
        updated = profile.model_copy(update={
            "subscription_tier": tier,
            "subscription_status": status,
            "subscription_id": subscription_id,
            "trial_ends_at": trial_ends_at,
            "usage_limits": usage_limits,
            "is_pro": tier in ("pro", "studio") and status in ("active", "trialing"),
        })
        self.profiles[user_id] = updated
        return updated

    async def set_admin(self, user_id: str, is_admin: bool) -> ProfileRead | None:
        profile = self.profiles.get(user_id)
        if profile is None:
            return None
        updated = profile.model_copy(update={"is_admin": is_admin})
        self.profiles[user_id] = updated
        return updated


class RecordingFunctionLogger:
    """FunctionLogger double; rows are kept in `records`."""

    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []

    async def record(self, function_name: str, user_id: str | None, status: str, **kwargs: Any) -> None:
        self.records.append({"function_name": function_name, "user_id": user_id, "status": status, **kwargs})

    @asynccontextmanager
    async def track(self, function_name: str, user_id: str | None, request_data: dict | None = None):
        response_data: dict[str, Any] = {}
        try:
            yield response_data
        except Exception as exc:
            await self.record(function_name, user_id, "error", error_message=str(exc))
            raise
        await self.record(function_name, user_id, "success", response_data=response_data)


# ── App Helpers ──────────────────────────────────────────────────────────────


def make_app(router: APIRouter, user: ProfileRead | None = None, **state: Any) -> FastAPI:
    """Minimal app around one router with get_current_user overridden."""
    from src.copilot.api.deps import get_current_user

    app = FastAPI()
    app.include_router(router)
    if user is not None:
        app.dependency_overrides[get_current_user] = lambda: user
    for name, value in state.items():
        setattr(app.state, name, value)
    return app


def auth_headers(user_id: str, email: str = "creator@example.com") -> dict[str, str]:
    token = create_access_token({"sub": user_id, "email": email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def profile_repository() -> InMemoryProfileRepository:
    return InMemoryProfileRepository()


@pytest.fixture
def function_logger() -> RecordingFunctionLogger:
    return RecordingFunctionLogger()


@pytest.fixture
def creator(profile_repository) -> ProfileRead:
    """A registered free-tier creator."""
    return profile_repository.add(make_profile())


@pytest.fixture
def profile_factory():
    return make_profile


@pytest.fixture
def app_factory():
    return make_app


@pytest.fixture(name="auth_headers")
def auth_headers_fixture():
    return auth_headers
