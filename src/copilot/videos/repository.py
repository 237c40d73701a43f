"""Video project repository -- async CRUD plus status updates from polls and callbacks.

User-scoped methods take user_id as first argument. The two system
methods (find_by_provider_id, list_pending) serve the provider callback
and startup poll resumption, which run without a user identity.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.copilot.videos.models import VideoProjectModel
from src.copilot.videos.schemas import (
    VideoProjectRead,
    VideoStatus,
    VideoStatusUpdate,
    accepts_transition,
)

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]


def _model_to_project(model: VideoProjectModel) -> VideoProjectRead:
    return VideoProjectRead(
        id=str(model.id),
        user_id=str(model.user_id),
        title=model.title,
        script=model.script,
        replica_id=model.replica_id,
        provider_video_id=model.provider_video_id,
        background=model.background,
        subtitles=model.subtitles,
        status=VideoStatus(model.status),
        progress=model.progress or 0,
        video_url=model.video_url,
        thumbnail_url=model.thumbnail_url,
        error_message=model.error_message,
        poll_attempts=model.poll_attempts or 0,
        created_at=model.created_at,
        updated_at=model.updated_at,
        completed_at=model.completed_at,
    )


class VideoRepository:
    """Async CRUD for video_projects.

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

    async def create_project(
        self,
        user_id: str,
        *,
        title: str,
        script: str,
        replica_id: str,
        provider_video_id: str,
        background: str,
        subtitles: bool,
    ) -> VideoProjectRead:
        async for session in self._session_factory():
            model = VideoProjectModel(
                user_id=uuid.UUID(user_id),
                title=title,
                script=script,
                replica_id=replica_id,
                provider_video_id=provider_video_id,
                background=background,
                subtitles=subtitles,
                status=VideoStatus.GENERATING.value,
                progress=0,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_project(model)

    async def get_project(self, user_id: str, project_id: str) -> VideoProjectRead | None:
        async for session in self._session_factory():
            model = await self._load(session, user_id, project_id)
            return _model_to_project(model) if model else None

    async def list_projects(
        self,
        user_id: str,
        status: VideoStatus | None = None,
        limit: int = 50,
    ) -> list[VideoProjectRead]:
        async for session in self._session_factory():
            stmt = select(VideoProjectModel).where(
                VideoProjectModel.user_id == uuid.UUID(user_id),
            )
            if status is not None:
                stmt = stmt.where(VideoProjectModel.status == status.value)
            stmt = stmt.order_by(VideoProjectModel.created_at.desc()).limit(limit)
            result = await session.execute(stmt)
            return [_model_to_project(m) for m in result.scalars().all()]

    async def apply_status(
        self,
        user_id: str,
        project_id: str,
        update: VideoStatusUpdate,
        poll_attempts: int | None = None,
    ) -> VideoProjectRead | None:
        """Write one status observation.

        URLs, progress and error text only overwrite stored values when
        present. Observations that would move a finished project backwards
        only record the poll attempt. completed_at is stamped the first time
        the project completes.
        """
        async for session in self._session_factory():
            model = await self._load(session, user_id, project_id)
            if model is None:
                return None
            if poll_attempts is not None:
                model.poll_attempts = poll_attempts
            if not accepts_transition(VideoStatus(model.status), update.status):
                logger.info(
                    "video.stale_status_ignored",
                    project_id=project_id,
                    stored=model.status,
                    observed=update.status.value,
                )
                await session.commit()
                await session.refresh(model)
                return _model_to_project(model)
            model.status = update.status.value
            if update.progress is not None:
                model.progress = update.progress
            if update.video_url:
                model.video_url = update.video_url
            if update.thumbnail_url:
                model.thumbnail_url = update.thumbnail_url
            if update.error_message:
                model.error_message = update.error_message
            if update.status == VideoStatus.COMPLETED and model.completed_at is None:
                model.completed_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            return _model_to_project(model)

    async def restart_project(
        self, user_id: str, project_id: str, provider_video_id: str
    ) -> VideoProjectRead | None:
        """Point a project at a resubmitted provider job and clear its results."""
        async for session in self._session_factory():
            model = await self._load(session, user_id, project_id)
            if model is None:
                return None
            model.provider_video_id = provider_video_id
            model.status = VideoStatus.GENERATING.value
            model.progress = 0
            model.video_url = None
            model.thumbnail_url = None
            model.error_message = None
            model.poll_attempts = 0
            model.completed_at = None
            await session.commit()
            await session.refresh(model)
            return _model_to_project(model)

    async def record_poll_attempt(self, user_id: str, project_id: str, attempt: int) -> None:
        async for session in self._session_factory():
            model = await self._load(session, user_id, project_id)
            if model is None:
                return
            model.poll_attempts = attempt
            await session.commit()

    async def delete_project(self, user_id: str, project_id: str) -> bool:
        async for session in self._session_factory():
            result = await session.execute(
                delete(VideoProjectModel).where(
                    VideoProjectModel.user_id == uuid.UUID(user_id),
                    VideoProjectModel.id == uuid.UUID(project_id),
                )
            )
            await session.commit()
            return (result.rowcount or 0) > 0

    async def count_projects(self, user_id: str) -> int:
        async for session in self._session_factory():
            result = await session.execute(
                select(func.count()).select_from(VideoProjectModel).where(
                    VideoProjectModel.user_id == uuid.UUID(user_id),
                )
            )
            return result.scalar_one()

    # ── System queries ──────────────────────────────────────────────────────

    async def find_by_provider_id(self, provider_video_id: str) -> VideoProjectRead | None:
        async for session in self._system_session_factory():
            result = await session.execute(
                select(VideoProjectModel).where(
                    VideoProjectModel.provider_video_id == provider_video_id,
                )
            )
            model = result.scalars().first()
            return _model_to_project(model) if model else None

    async def list_pending(self) -> list[VideoProjectRead]:
        """Every project still generating, across all users."""
        async for session in self._system_session_factory():
            result = await session.execute(
                select(VideoProjectModel)
                .where(VideoProjectModel.status == VideoStatus.GENERATING.value)
                .order_by(VideoProjectModel.created_at)
            )
            return [_model_to_project(m) for m in result.scalars().all()]

    @staticmethod
    async def _load(
        session: AsyncSession, user_id: str, project_id: str
    ) -> VideoProjectModel | None:
        result = await session.execute(
            select(VideoProjectModel).where(
                VideoProjectModel.user_id == uuid.UUID(user_id),
                VideoProjectModel.id == uuid.UUID(project_id),
            )
        )
        return result.scalar_one_or_none()
