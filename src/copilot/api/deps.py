"""FastAPI dependency injection for the authenticated creator and shared error mapping.

These dependencies are used in endpoint function signatures to inject
the current user's profile. The helpers at the bottom translate domain
exceptions (usage limits, provider failures) into HTTP errors the same
way in every router.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from src.copilot.core.errors import ProviderError
from src.copilot.core.identity import get_current_user_context
from src.copilot.profiles.schemas import ProfileRead
from src.copilot.usage.limits import UsageLimitExceededError


def get_state_service(request: Request, attr: str, label: str) -> Any:
    """Retrieve a service from app.state, 503 if it failed to initialize."""
    service = getattr(request.app.state, attr, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return service


async def get_current_user(request: Request) -> ProfileRead:
    """Load the profile of the user resolved by UserAuthMiddleware.

    Raises:
        HTTPException(401): No user context, or the profile is missing or inactive.
        HTTPException(503): Profile storage not initialized.
    """
    try:
        ctx = get_current_user_context()
    except RuntimeError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    repository = get_state_service(request, "profile_repository", "Profiles")
    profile = await repository.get_profile(ctx.user_id)
    if profile is None or not profile.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return profile


# ── Error mapping ────────────────────────────────────────────────────────────


def usage_limit_error(exc: UsageLimitExceededError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.to_detail())


def provider_error(exc: ProviderError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
