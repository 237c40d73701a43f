"""SQLAlchemy model for AI-avatar video projects (owner-only RLS)."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.copilot.core.database import CreatorBase


class VideoProjectModel(CreatorBase):
    """A Tavus video job tracked from submission to completion."""

    __tablename__ = "video_projects"
    __table_args__ = (
        Index("ix_video_projects_user_created", "user_id", "created_at"),
        Index("ix_video_projects_provider_video_id", "provider_video_id"),
        Index("ix_video_projects_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("creator.profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    script: Mapped[str] = mapped_column(Text, nullable=False)
    replica_id: Mapped[str] = mapped_column(String(100), nullable=False)
    provider_video_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    background: Mapped[str] = mapped_column(String(100), default="office", server_default=text("'office'"))
    subtitles: Mapped[bool] = mapped_column(Boolean, default=True, server_default=text("true"))
    status: Mapped[str] = mapped_column(
        String(20), default="generating", server_default=text("'generating'")
    )
    progress: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    video_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    poll_attempts: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
