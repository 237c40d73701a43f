"""Creator profile endpoints: read, edit and monthly usage."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.copilot.api.deps import get_current_user, get_state_service
from src.copilot.profiles.schemas import ProfileRead, ProfileUpdate, UsageSummary

router = APIRouter(prefix="/api/v1/profile", tags=["profile"])


@router.get("", response_model=ProfileRead)
async def get_profile(current_user: ProfileRead = Depends(get_current_user)) -> ProfileRead:
    return current_user


@router.patch("", response_model=ProfileRead)
async def update_profile(
    body: ProfileUpdate,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> ProfileRead:
    """Update editable profile fields. Subscription and usage fields are not accepted."""
    repository = get_state_service(request, "profile_repository", "Profiles")
    updated = await repository.update_profile(current_user.id, body)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return updated


@router.get("/usage", response_model=UsageSummary)
async def get_usage(
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> UsageSummary:
    """Per-resource limit, used and remaining for this month (-1 is unlimited)."""
    usage = get_state_service(request, "usage_service", "Usage tracking")
    return await usage.summary(current_user.id)
