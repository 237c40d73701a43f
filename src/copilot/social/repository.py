"""Social repository -- linked accounts and daily analytics snapshots.

All access goes through the user-scoped session. The OAuth callback runs
outside an authenticated request, so the service enters scoped_user()
with the id carried in the verified state before writing.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import date, datetime, timezone

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.copilot.core.database import upsert_statement
from src.copilot.social.models import AnalyticsSnapshotModel, OAuthTokenModel
from src.copilot.social.platforms import AccountProfile
from src.copilot.social.schemas import SnapshotRead, SocialAccountRead, StoredToken

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]


def _model_to_account(model: OAuthTokenModel) -> SocialAccountRead:
    metadata = model.metadata_ or {}
    return SocialAccountRead(
        id=str(model.id),
        platform=model.platform,
        platform_user_id=model.platform_user_id,
        username=model.platform_username,
        avatar_url=metadata.get("avatar_url"),
        followers=int(metadata.get("followers") or 0),
        scope=model.scope,
        expires_at=model.expires_at,
        last_synced_at=model.last_synced_at,
        connected_at=model.created_at,
    )


def _model_to_snapshot(model: AnalyticsSnapshotModel) -> SnapshotRead:
    return SnapshotRead(
        platform=model.platform,
        snapshot_date=model.snapshot_date,
        followers=model.followers or 0,
        engagement_rate=model.engagement_rate or 0.0,
        reach=model.reach or 0,
        impressions=model.impressions or 0,
    )


def _profile_metadata(profile: AccountProfile) -> dict:
    return {
        "display_name": profile.display_name,
        "avatar_url": profile.avatar_url,
        "followers": profile.followers,
        "profile": profile.raw,
    }


class SocialRepository:
    """Async CRUD for OAuth tokens and analytics snapshots."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def upsert_account(
        self,
        user_id: str,
        platform: str,
        tokens: dict,
        profile: AccountProfile,
    ) -> SocialAccountRead:
        stmt = upsert_statement(
            OAuthTokenModel,
            {
                "user_id": uuid.UUID(user_id),
                "platform": platform,
                "access_token": tokens["access_token"],
                "refresh_token": tokens.get("refresh_token"),
                "token_type": tokens.get("token_type"),
                "scope": tokens.get("scope"),
                "expires_at": tokens.get("expires_at"),
                "platform_user_id": profile.platform_user_id,
                "platform_username": profile.username,
                "metadata_": _profile_metadata(profile),
                "last_synced_at": datetime.now(timezone.utc),
            },
            ("user_id", "platform"),
        )
        async for session in self._session_factory():
            await session.execute(stmt)
            await session.commit()
            result = await session.execute(
                select(OAuthTokenModel).where(
                    OAuthTokenModel.user_id == uuid.UUID(user_id),
                    OAuthTokenModel.platform == platform,
                )
            )
            model = result.scalar_one()
            logger.info("social.account_linked", user_id=user_id, platform=platform)
            return _model_to_account(model)

    async def update_tokens(self, user_id: str, platform: str, tokens: dict) -> None:
        async for session in self._session_factory():
            await session.execute(
                update(OAuthTokenModel)
                .where(
                    OAuthTokenModel.user_id == uuid.UUID(user_id),
                    OAuthTokenModel.platform == platform,
                )
                .values(
                    access_token=tokens["access_token"],
                    refresh_token=tokens.get("refresh_token"),
                    expires_at=tokens.get("expires_at"),
                )
            )
            await session.commit()

    async def record_sync(self, user_id: str, platform: str, profile: AccountProfile) -> None:
        async for session in self._session_factory():
            await session.execute(
                update(OAuthTokenModel)
                .where(
                    OAuthTokenModel.user_id == uuid.UUID(user_id),
                    OAuthTokenModel.platform == platform,
                )
                .values({
                    OAuthTokenModel.platform_username: profile.username,
                    OAuthTokenModel.metadata_: _profile_metadata(profile),
                    OAuthTokenModel.last_synced_at: datetime.now(timezone.utc),
                })
            )
            await session.commit()

    async def list_accounts(self, user_id: str) -> list[SocialAccountRead]:
        async for session in self._session_factory():
            result = await session.execute(
                select(OAuthTokenModel)
                .where(OAuthTokenModel.user_id == uuid.UUID(user_id))
                .order_by(OAuthTokenModel.platform)
            )
            return [_model_to_account(m) for m in result.scalars().all()]

    async def list_tokens(self, user_id: str) -> list[StoredToken]:
        async for session in self._session_factory():
            result = await session.execute(
                select(OAuthTokenModel).where(OAuthTokenModel.user_id == uuid.UUID(user_id))
            )
            return [
                StoredToken(
                    platform=m.platform,
                    access_token=m.access_token,
                    refresh_token=m.refresh_token,
                    expires_at=m.expires_at,
                )
                for m in result.scalars().all()
            ]

    async def delete_account(self, user_id: str, platform: str) -> bool:
        async for session in self._session_factory():
            result = await session.execute(
                delete(OAuthTokenModel).where(
                    OAuthTokenModel.user_id == uuid.UUID(user_id),
                    OAuthTokenModel.platform == platform,
                )
            )
            await session.commit()
            return (result.rowcount or 0) > 0

    # ── Snapshots ───────────────────────────────────────────────────────────

    async def upsert_snapshot(
        self,
        user_id: str,
        platform: str,
        profile: AccountProfile,
        snapshot_date: date | None = None,
    ) -> None:
        """One row per account per day; a second sync the same day overwrites it."""
        stmt = upsert_statement(
            AnalyticsSnapshotModel,
            {
                "user_id": uuid.UUID(user_id),
                "platform": platform,
                "snapshot_date": snapshot_date or datetime.now(timezone.utc).date(),
                "followers": profile.followers,
                "engagement_rate": profile.engagement_rate,
                "reach": profile.reach,
                "impressions": profile.impressions,
                "metadata_": {"username": profile.username},
            },
            ("user_id", "platform", "snapshot_date"),
        )
        async for session in self._session_factory():
            await session.execute(stmt)
            await session.commit()

    async def list_snapshots(
        self,
        user_id: str,
        since: date,
        platform: str | None = None,
    ) -> list[SnapshotRead]:
        """Snapshots on or after `since`, oldest first."""
        async for session in self._session_factory():
            stmt = select(AnalyticsSnapshotModel).where(
                AnalyticsSnapshotModel.user_id == uuid.UUID(user_id),
                AnalyticsSnapshotModel.snapshot_date >= since,
            )
            if platform:
                stmt = stmt.where(AnalyticsSnapshotModel.platform == platform)
            stmt = stmt.order_by(
                AnalyticsSnapshotModel.platform, AnalyticsSnapshotModel.snapshot_date
            )
            result = await session.execute(stmt)
            return [_model_to_snapshot(m) for m in result.scalars().all()]
