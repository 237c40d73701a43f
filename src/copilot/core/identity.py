"""User identity propagation via Python contextvars.

The UserContext is set by UserAuthMiddleware at the start of each request
and read anywhere in the call stack via get_current_user_context(). Database
sessions use it to set the row-level-security identity, so every query only
sees rows owned by (or shared with) the current user.

Background jobs that act on behalf of a user (video status polling) enter
the same context with scoped_user().
"""

from __future__ import annotations

import contextvars
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# ── User Context ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class UserContext:
    """Immutable identity for the current request or job."""

    user_id: str
    email: str | None = None


_user_context: contextvars.ContextVar[UserContext] = contextvars.ContextVar("user_context")


def get_current_user_context() -> UserContext:
    """Get the user context for the current request.

    Raises RuntimeError if no user context has been set (i.e., the call
    is not within an authenticated request or scoped job).
    """
    try:
        return _user_context.get()
    except LookupError:
        raise RuntimeError("No user context set -- request is not authenticated")


def set_user_context(ctx: UserContext) -> contextvars.Token[UserContext]:
    """Set the user context. Returns a token for reset_user_context()."""
    return _user_context.set(ctx)


def reset_user_context(token: contextvars.Token[UserContext]) -> None:
    """Restore the context that was active before set_user_context()."""
    _user_context.reset(token)


@contextmanager
def scoped_user(user_id: str, email: str | None = None) -> Iterator[UserContext]:
    """Run a block of code as the given user (for background jobs)."""
    ctx = UserContext(user_id=str(user_id), email=email)
    token = set_user_context(ctx)
    try:
        yield ctx
    finally:
        reset_user_context(token)


# ── Paths that skip user resolution ─────────────────────────────────────────

SKIP_AUTH_PATHS = (
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/metrics",
    "/media",
    "/api/v1/auth/login",
    "/api/v1/auth/register",
    "/api/v1/auth/refresh",
    "/api/v1/billing/webhook",
    "/api/v1/videos/webhook",
    "/api/v1/social/callback",
)
