"""Profile repository -- async CRUD for creator profiles and usage counters.

Uses the session_factory callable pattern. Two factories are injected:
the user-scoped one (RLS identity = current user) for everything a signed-in
user does, and the system one for flows that run before or outside a user
identity (registration, login, token refresh, billing webhooks, resets).
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime

import structlog
from sqlalchemy import func, or_, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.copilot.models.profile import Profile
from src.copilot.profiles.schemas import ProfileCredentials, ProfileRead, ProfileUpdate

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]


class ProfileExistsError(Exception):
    """An account with this email already exists."""


def _model_to_profile(model: Profile) -> ProfileRead:
    """Convert Profile model to ProfileRead schema."""
    return ProfileRead(
        id=str(model.id),
        email=model.email,
        full_name=model.full_name,
        avatar_url=model.avatar_url,
        niche=model.niche,
        bio=model.bio,
        social_links=model.social_links or {},
        follower_count=model.follower_count or 0,
        is_active=model.is_active,
        is_admin=model.is_admin,
        is_pro=model.is_pro,
        subscription_tier=model.subscription_tier,
        subscription_status=model.subscription_status,
        subscription_id=model.subscription_id,
        trial_ends_at=model.trial_ends_at,
        usage_limits=model.usage_limits or {},
        usage_counts=model.usage_counts or {},
        usage_period_start=model.usage_period_start,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


_INCREMENT_USAGE = text(
    """
    UPDATE creator.profiles
    SET usage_counts = jsonb_set(
        COALESCE(usage_counts, '{}'::jsonb),
        ARRAY[CAST(:resource AS text)],
        to_jsonb(COALESCE((usage_counts ->> CAST(:resource AS text))::numeric, 0) + CAST(:amount AS numeric))
    )
    WHERE id = CAST(:user_id AS uuid)
    RETURNING usage_counts
    """
)


def _before_period(period_start: datetime):
    return or_(Profile.usage_period_start.is_(None), Profile.usage_period_start < period_start)


class ProfileRepository:
    """Async CRUD for profiles.

    Args:
        session_factory: Yields user-scoped (RLS) sessions.
        system_session_factory: Yields RLS-bypassing sessions.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        system_session_factory: SessionFactory,
    ) -> None:
        self._session_factory = session_factory
        self._system_session_factory = system_session_factory

    # ── Accounts (system) ───────────────────────────────────────────────────

    async def create_profile(
        self,
        email: str,
        hashed_password: str,
        full_name: str | None,
        niche: str | None,
        usage_limits: dict,
        usage_period_start: datetime,
    ) -> ProfileRead:
        """Create a free-tier profile.

        Raises:
            ProfileExistsError: If the email (case-insensitive) is taken.
        """
        normalized = email.strip().lower()
        async for session in self._system_session_factory():
            existing = await session.execute(
                select(Profile.id).where(func.lower(Profile.email) == normalized)
            )
            if existing.scalar_one_or_none() is not None:
                raise ProfileExistsError(normalized)

            model = Profile(
                email=normalized,
                hashed_password=hashed_password,
                full_name=full_name,
                niche=niche,
                subscription_tier="free",
                subscription_status="active",
                usage_limits=usage_limits,
                usage_counts={},
                usage_period_start=usage_period_start,
            )
            session.add(model)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise ProfileExistsError(normalized)
            await session.refresh(model)
            logger.info("profile.created", user_id=str(model.id))
            return _model_to_profile(model)

    async def get_credentials(self, email: str) -> ProfileCredentials | None:
        async for session in self._system_session_factory():
            result = await session.execute(
                select(Profile).where(func.lower(Profile.email) == email.strip().lower())
            )
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return ProfileCredentials(
                id=str(model.id),
                email=model.email,
                hashed_password=model.hashed_password,
                is_active=model.is_active,
            )

    async def lookup_profile(self, user_id: str) -> ProfileRead | None:
        """Load any profile by id, bypassing RLS (token refresh, webhooks)."""
        async for session in self._system_session_factory():
            model = await session.get(Profile, uuid.UUID(user_id))
            return _model_to_profile(model) if model else None

    # ── Self-service (user scoped) ──────────────────────────────────────────

    async def get_profile(self, user_id: str) -> ProfileRead | None:
        async for session in self._session_factory():
            result = await session.execute(
                select(Profile).where(Profile.id == uuid.UUID(user_id))
            )
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_profile(model)

    async def update_profile(self, user_id: str, data: ProfileUpdate) -> ProfileRead | None:
        """Apply the explicitly set fields of a ProfileUpdate."""
        values = data.model_dump(exclude_unset=True)
        async for session in self._session_factory():
            model = await session.get(Profile, uuid.UUID(user_id))
            if model is None:
                return None
            for field, value in values.items():
                setattr(model, field, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_profile(model)

    # ── Usage counters ──────────────────────────────────────────────────────

    async def increment_usage(self, user_id: str, resource: str, amount: float) -> dict:
        """Atomically add `amount` to usage_counts[resource].

        Returns:
            The updated usage_counts dict.
        """
        async for session in self._session_factory():
            result = await session.execute(
                _INCREMENT_USAGE,
                {"user_id": user_id, "resource": resource, "amount": amount},
            )
            counts = result.scalar_one_or_none()
            await session.commit()
            return dict(counts or {})

    async def reset_usage(self, user_id: str, period_start: datetime) -> ProfileRead | None:
        """Zero a single user's counters and move the period forward.

        Only rows still in an earlier period are reset, so concurrent
        rollovers reset once and keep usage recorded in between. Returns
        the current row either way.
        """
        async for session in self._session_factory():
            result = await session.execute(
                update(Profile)
                .where(Profile.id == uuid.UUID(user_id), _before_period(period_start))
                .values(usage_counts={}, usage_period_start=period_start)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            if result.rowcount:
                logger.info("profile.usage_reset", user_id=user_id)
            model = await session.get(Profile, uuid.UUID(user_id), populate_existing=True)
            return _model_to_profile(model) if model else None

    async def reset_all_usage(self, period_start: datetime) -> int:
        """Zero counters for every profile whose period began before `period_start`."""
        async for session in self._system_session_factory():
            result = await session.execute(
                update(Profile)
                .where(_before_period(period_start))
                .values(usage_counts={}, usage_period_start=period_start)
            )
            await session.commit()
            return result.rowcount or 0

    # ── Subscription (system, billing webhook only) ─────────────────────────

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
        async for session in self._system_session_factory():
            model = await session.get(Profile, uuid.UUID(user_id))
            if model is None:
                return None
            model.subscription_tier = tier
            model.subscription_status = status
            model.subscription_id = subscription_id
            model.trial_ends_at = trial_ends_at
            model.usage_limits = usage_limits
            await session.commit()
            await session.refresh(model)
            logger.info(
                "profile.subscription_applied",
                user_id=user_id,
                tier=tier,
                status=status,
            )
            return _model_to_profile(model)

    # ── Administration (system) ─────────────────────────────────────────────

    async def set_admin(self, user_id: str, is_admin: bool) -> ProfileRead | None:
        async for session in self._system_session_factory():
            model = await session.get(Profile, uuid.UUID(user_id))
            if model is None:
                return None
            model.is_admin = is_admin
            await session.commit()
            await session.refresh(model)
            logger.info("profile.admin_flag_set", user_id=user_id, is_admin=is_admin)
            return _model_to_profile(model)
