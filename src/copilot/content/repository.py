"""Generated content repository -- async CRUD scoped to the owning user."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.copilot.content.models import GeneratedContentModel
from src.copilot.content.schemas import ContentCreate, ContentRead


def _model_to_content(model: GeneratedContentModel) -> ContentRead:
    return ContentRead(
        id=str(model.id),
        user_id=str(model.user_id),
        content_type=model.content_type,
        platform=model.platform,
        niche=model.niche,
        title=model.title,
        prompt=model.prompt,
        content=model.content,
        metadata=model.metadata_ or {},
        created_at=model.created_at,
    )


class ContentRepository:
    """Async CRUD for generated_content.

    Args:
        session_factory: Async callable that yields user-scoped AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def create_content(self, user_id: str, data: ContentCreate) -> ContentRead:
        async for session in self._session_factory():
            model = GeneratedContentModel(
                user_id=uuid.UUID(user_id),
                content_type=data.content_type,
                platform=data.platform,
                niche=data.niche,
                title=data.title,
                prompt=data.prompt,
                content=data.content,
                metadata_=data.metadata,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_content(model)

    async def get_content(self, user_id: str, content_id: str) -> ContentRead | None:
        async for session in self._session_factory():
            result = await session.execute(
                select(GeneratedContentModel).where(
                    GeneratedContentModel.user_id == uuid.UUID(user_id),
                    GeneratedContentModel.id == uuid.UUID(content_id),
                )
            )
            model = result.scalar_one_or_none()
            return _model_to_content(model) if model else None

    async def list_content(
        self,
        user_id: str,
        content_type: str | None = None,
        limit: int = 50,
    ) -> list[ContentRead]:
        """Newest first, optionally filtered by type."""
        async for session in self._session_factory():
            stmt = select(GeneratedContentModel).where(
                GeneratedContentModel.user_id == uuid.UUID(user_id),
            )
            if content_type:
                stmt = stmt.where(GeneratedContentModel.content_type == content_type)
            stmt = stmt.order_by(GeneratedContentModel.created_at.desc()).limit(limit)
            result = await session.execute(stmt)
            return [_model_to_content(m) for m in result.scalars().all()]

    async def delete_content(self, user_id: str, content_id: str) -> bool:
        async for session in self._session_factory():
            result = await session.execute(
                delete(GeneratedContentModel).where(
                    GeneratedContentModel.user_id == uuid.UUID(user_id),
                    GeneratedContentModel.id == uuid.UUID(content_id),
                )
            )
            await session.commit()
            return (result.rowcount or 0) > 0

    async def count_content(self, user_id: str) -> int:
        async for session in self._session_factory():
            result = await session.execute(
                select(func.count()).select_from(GeneratedContentModel).where(
                    GeneratedContentModel.user_id == uuid.UUID(user_id),
                )
            )
            return result.scalar_one()
