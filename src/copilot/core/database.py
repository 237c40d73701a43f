"""Async SQLAlchemy engine with per-user row-level security.

Provides:
- PlatformBase: Declarative base for system tables (schema="platform")
- CreatorBase: Declarative base for user-owned tables (schema="creator")
- get_user_session(): Session whose RLS identity is the current user
- get_system_session(): Session that bypasses RLS for trusted server jobs
- upsert_statement(): Postgres upsert keyed by ORM attribute names
- Pool checkout event that resets session variables (RESET ALL) to prevent stale identity leaks
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import MetaData, event, text
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.copilot.config import get_settings
from src.copilot.core.identity import get_current_user_context

PLATFORM_SCHEMA = "platform"
CREATOR_SCHEMA = "creator"

# ── Module-level engine (lazy init) ────────────────────────────────────────

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Get or create the async engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.DATABASE_URL,
            pool_size=20,
            max_overflow=10,
            echo=False,
        )

        # Reset session variables on every checkout so a previous request's
        # app.current_user_id / app.rls_bypass never leaks into this one
        @event.listens_for(_engine.sync_engine, "checkout")
        def reset_session_identity(dbapi_conn: Any, connection_record: Any, connection_proxy: Any) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("RESET ALL")
            cursor.close()

    return _engine


# ── Declarative Bases ───────────────────────────────────────────────────────

platform_metadata = MetaData(schema=PLATFORM_SCHEMA)
creator_metadata = MetaData(schema=CREATOR_SCHEMA)


class PlatformBase(DeclarativeBase):
    """Base class for system tables (billing catalog, webhook and function logs)."""

    metadata = platform_metadata


class CreatorBase(DeclarativeBase):
    """Base class for user-owned tables.

    Every table on this base has FORCE ROW LEVEL SECURITY enabled with
    policies keyed on current_setting('app.current_user_id').
    """

    metadata = creator_metadata


def upsert_statement(model: type, values: dict, conflict_keys: tuple[str, ...], keep: tuple[str, ...] = ()):
    """INSERT .. ON CONFLICT DO UPDATE built from mapped attribute names.

    Columns named in conflict_keys and keep are left untouched on update.
    """
    columns = model.__mapper__.columns
    row = {columns[key]: value for key, value in values.items()}
    skip = {columns[key].name for key in (*conflict_keys, *keep)}
    stmt = insert(model.__table__).values(row)
    return stmt.on_conflict_do_update(
        index_elements=[columns[key] for key in conflict_keys],
        set_={col: value for col, value in row.items() if col.name not in skip},
    )


# ── Session Factories ───────────────────────────────────────────────────────


async def get_user_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession scoped to the current user via RLS.

    1. Gets the current user from contextvars
    2. Sets app.current_user_id on the connection and commits the setting
    3. Yields a session bound to that connection
    """
    user = get_current_user_context()
    engine = get_engine()

    async with engine.connect() as conn:
        await conn.execute(
            text("SELECT set_config('app.current_user_id', :user_id, false)"),
            {"user_id": user.user_id},
        )
        await conn.commit()

        async with AsyncSession(bind=conn, expire_on_commit=False) as session:
            yield session


async def get_system_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession that bypasses per-user RLS policies.

    Only for server-side work that has no user identity yet (login lookup,
    billing webhooks, startup poll resumption, usage resets).
    """
    engine = get_engine()

    async with engine.connect() as conn:
        await conn.execute(text("SELECT set_config('app.rls_bypass', 'on', false)"))
        await conn.commit()

        async with AsyncSession(bind=conn, expire_on_commit=False) as session:
            yield session


# ── Database Initialization ─────────────────────────────────────────────────


def _import_models() -> None:
    """Import every model module so both metadata objects are populated."""
    from src.copilot.billing import models as _billing  # noqa: F401
    from src.copilot.campaigns import models as _campaigns  # noqa: F401
    from src.copilot.content import models as _content  # noqa: F401
    from src.copilot.models import platform as _platform  # noqa: F401
    from src.copilot.models import profile as _profile  # noqa: F401
    from src.copilot.social import models as _social  # noqa: F401
    from src.copilot.videos import models as _videos  # noqa: F401
    from src.copilot.voiceovers import models as _voiceovers  # noqa: F401


async def init_db() -> None:
    """Create both schemas, all tables, triggers and RLS policies if missing."""
    from src.copilot.core.rls import row_level_security_statements

    _import_models()
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {PLATFORM_SCHEMA}"))
        await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {CREATOR_SCHEMA}"))
        await conn.run_sync(PlatformBase.metadata.create_all)
        await conn.run_sync(CreatorBase.metadata.create_all)
        for statement in row_level_security_statements():
            await conn.execute(text(statement))


async def close_db() -> None:
    """Dispose of the engine and close all connections."""
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None
