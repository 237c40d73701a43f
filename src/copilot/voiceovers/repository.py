"""Voiceover repository -- async CRUD for voiceover jobs."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.copilot.voiceovers.models import VoiceoverModel
from src.copilot.voiceovers.schemas import VoiceoverRead, VoiceoverStatus


def _model_to_voiceover(model: VoiceoverModel) -> VoiceoverRead:
    return VoiceoverRead(
        id=str(model.id),
        user_id=str(model.user_id),
        title=model.title,
        script=model.script,
        voice_id=model.voice_id,
        audio_url=model.audio_url,
        status=VoiceoverStatus(model.status),
        estimated_minutes=model.estimated_minutes or 0.0,
        error_message=model.error_message,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class VoiceoverRepository:
    """Async CRUD for voiceovers.

    Args:
        session_factory: Async callable that yields user-scoped AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def create_voiceover(
        self,
        user_id: str,
        title: str,
        script: str,
        voice_id: str,
        estimated_minutes: float,
    ) -> VoiceoverRead:
        """Insert a job in the generating state."""
        async for session in self._session_factory():
            model = VoiceoverModel(
                user_id=uuid.UUID(user_id),
                title=title,
                script=script,
                voice_id=voice_id,
                status=VoiceoverStatus.GENERATING.value,
                estimated_minutes=estimated_minutes,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_voiceover(model)

    async def mark_completed(
        self, user_id: str, voiceover_id: str, audio_url: str
    ) -> VoiceoverRead | None:
        return await self._set_status(
            user_id, voiceover_id, VoiceoverStatus.COMPLETED, audio_url=audio_url
        )

    async def mark_failed(
        self, user_id: str, voiceover_id: str, error_message: str
    ) -> VoiceoverRead | None:
        return await self._set_status(
            user_id, voiceover_id, VoiceoverStatus.FAILED, error_message=error_message
        )

    async def _set_status(
        self,
        user_id: str,
        voiceover_id: str,
        status: VoiceoverStatus,
        audio_url: str | None = None,
        error_message: str | None = None,
    ) -> VoiceoverRead | None:
        async for session in self._session_factory():
            result = await session.execute(
                select(VoiceoverModel).where(
                    VoiceoverModel.user_id == uuid.UUID(user_id),
                    VoiceoverModel.id == uuid.UUID(voiceover_id),
                )
            )
            model = result.scalar_one_or_none()
            if model is None:
                return None
            model.status = status.value
            if audio_url is not None:
                model.audio_url = audio_url
            model.error_message = error_message
            await session.commit()
            await session.refresh(model)
            return _model_to_voiceover(model)

    async def get_voiceover(self, user_id: str, voiceover_id: str) -> VoiceoverRead | None:
        async for session in self._session_factory():
            result = await session.execute(
                select(VoiceoverModel).where(
                    VoiceoverModel.user_id == uuid.UUID(user_id),
                    VoiceoverModel.id == uuid.UUID(voiceover_id),
                )
            )
            model = result.scalar_one_or_none()
            return _model_to_voiceover(model) if model else None

    async def list_voiceovers(self, user_id: str, limit: int = 50) -> list[VoiceoverRead]:
        async for session in self._session_factory():
            result = await session.execute(
                select(VoiceoverModel)
                .where(VoiceoverModel.user_id == uuid.UUID(user_id))
                .order_by(VoiceoverModel.created_at.desc())
                .limit(limit)
            )
            return [_model_to_voiceover(m) for m in result.scalars().all()]

    async def delete_voiceover(self, user_id: str, voiceover_id: str) -> bool:
        async for session in self._session_factory():
            result = await session.execute(
                delete(VoiceoverModel).where(
                    VoiceoverModel.user_id == uuid.UUID(user_id),
                    VoiceoverModel.id == uuid.UUID(voiceover_id),
                )
            )
            await session.commit()
            return (result.rowcount or 0) > 0

    async def count_voiceovers(self, user_id: str) -> int:
        async for session in self._session_factory():
            result = await session.execute(
                select(func.count()).select_from(VoiceoverModel).where(
                    VoiceoverModel.user_id == uuid.UUID(user_id),
                )
            )
            return result.scalar_one()
