"""Creator profile -- the account row every other user-owned table points at.

Credentials live on the profile (email + bcrypt hash). Subscription fields
are written only by the billing webhook; is_pro is recomputed by a
database trigger whenever subscription_tier or subscription_status change.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.copilot.core.database import CreatorBase


class Profile(CreatorBase):
    """A creator (or brand) account."""

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    niche: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    social_links: Mapped[dict] = mapped_column(
        JSONB, default=dict, server_default=text("'{}'::jsonb")
    )
    follower_count: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=text("true"))
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))
    is_pro: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))

    subscription_tier: Mapped[str] = mapped_column(
        String(20), default="free", server_default=text("'free'")
    )
    subscription_status: Mapped[str] = mapped_column(
        String(20), default="active", server_default=text("'active'")
    )
    subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    trial_ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    usage_limits: Mapped[dict] = mapped_column(
        JSONB, default=dict, server_default=text("'{}'::jsonb")
    )
    usage_counts: Mapped[dict] = mapped_column(
        JSONB, default=dict, server_default=text("'{}'::jsonb")
    )
    usage_period_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.date_trunc("month", func.now()),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )
