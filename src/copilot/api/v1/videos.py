"""AI-avatar video endpoints.

Submitting a video checks the monthly video quota, sends the script to
Tavus and starts the background status poller. The provider may also
push status changes to /webhook, which is public but guarded by a shared
token when TAVUS_WEBHOOK_TOKEN is set.
"""

from __future__ import annotations

import secrets
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from src.copilot.api.deps import (
    get_current_user,
    get_state_service,
    provider_error,
    usage_limit_error,
)
from src.copilot.config import get_settings
from src.copilot.core.errors import ProviderError
from src.copilot.profiles.schemas import ProfileRead
from src.copilot.usage.limits import UsageLimitExceededError
from src.copilot.videos.schemas import (
    Replica,
    ReplicaCreate,
    VideoCreate,
    VideoProjectRead,
    VideoStatus,
    WeeklyScriptResponse,
)
from src.copilot.videos.scripts import weekly_script
from src.copilot.videos.service import MissingReplicaError, VideoNotRetryableError

router = APIRouter(prefix="/api/v1/videos", tags=["videos"])


def _get_service(request: Request):
    return get_state_service(request, "video_service", "Video generation")


def _get_repository(request: Request):
    return get_state_service(request, "video_repository", "Video storage")


# ── Provider callback ────────────────────────────────────────────────────────


@router.post("/webhook")
async def video_webhook(request: Request, token: str | None = Query(None)):
    """Status callback from Tavus. Unknown video ids are acknowledged and ignored."""
    expected = get_settings().TAVUS_WEBHOOK_TOKEN
    if expected and not (token and secrets.compare_digest(token, expected)):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook token")

    service = _get_service(request)
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")

    project = await service.handle_callback(payload)
    return {
        "received": True,
        "project_id": project.id if project else None,
        "status": project.status.value if project else None,
    }


# ── Helpers (static paths before /{project_id}) ──────────────────────────────


@router.get("/weekly-script", response_model=WeeklyScriptResponse)
async def get_weekly_script(
    niche: str | None = Query(None, max_length=100),
    current_user: ProfileRead = Depends(get_current_user),
) -> WeeklyScriptResponse:
    """Weekly message script for a niche, defaulting to the creator's own."""
    chosen = niche or current_user.niche or "general"
    return WeeklyScriptResponse(
        niche=chosen,
        script=weekly_script(chosen, current_user.full_name),
    )


@router.get("/replicas", response_model=list[Replica])
async def list_replicas(
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> list[Replica]:
    service = _get_service(request)
    return await service.list_replicas()


@router.get("/replicas/{replica_id}", response_model=Replica)
async def get_replica(
    replica_id: str,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> Replica:
    service = _get_service(request)
    try:
        return await service.get_replica(replica_id)
    except LookupError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Replica not found")
    except ProviderError as exc:
        raise provider_error(exc)


@router.post("/replicas", response_model=Replica, status_code=status.HTTP_202_ACCEPTED)
async def create_replica(
    body: ReplicaCreate,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> Replica:
    """Start training a personal replica from a training video URL. Paid plans only."""
    if not current_user.is_pro:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Custom replicas require a Pro or Studio plan",
        )
    service = _get_service(request)
    try:
        return await service.create_replica(current_user.id, body)
    except ProviderError as exc:
        raise provider_error(exc)


@router.delete("/replicas/{replica_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_replica(
    replica_id: str,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> None:
    """Delete a personal replica on the Tavus account. Admin only."""
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    service = _get_service(request)
    try:
        await service.delete_replica(replica_id)
    except ProviderError as exc:
        raise provider_error(exc)


# ── Projects ─────────────────────────────────────────────────────────────────


@router.post("", response_model=VideoProjectRead, status_code=status.HTTP_201_CREATED)
async def create_video(
    body: VideoCreate,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> VideoProjectRead:
    service = _get_service(request)
    try:
        return await service.create_video(current_user.id, body)
    except UsageLimitExceededError as exc:
        raise usage_limit_error(exc)
    except MissingReplicaError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except ProviderError as exc:
        raise provider_error(exc)


@router.get("", response_model=list[VideoProjectRead])
async def list_videos(
    request: Request,
    status_filter: VideoStatus | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    current_user: ProfileRead = Depends(get_current_user),
) -> list[VideoProjectRead]:
    repository = _get_repository(request)
    return await repository.list_projects(current_user.id, status_filter, limit)


@router.get("/{project_id}", response_model=VideoProjectRead)
async def get_video(
    project_id: uuid.UUID,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> VideoProjectRead:
    repository = _get_repository(request)
    project = await repository.get_project(current_user.id, str(project_id))
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Video not found")
    return project


@router.post("/{project_id}/refresh", response_model=VideoProjectRead)
async def refresh_video(
    project_id: uuid.UUID,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> VideoProjectRead:
    """Fetch the latest status from Tavus now (e.g. after polling timed out)."""
    service = _get_service(request)
    try:
        project = await service.refresh(current_user.id, str(project_id))
    except ProviderError as exc:
        raise provider_error(exc)
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Video not found")
    return project


@router.post("/{project_id}/retry", response_model=VideoProjectRead)
async def retry_video(
    project_id: uuid.UUID,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> VideoProjectRead:
    service = _get_service(request)
    try:
        project = await service.retry_video(current_user.id, str(project_id))
    except VideoNotRetryableError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except UsageLimitExceededError as exc:
        raise usage_limit_error(exc)
    except ProviderError as exc:
        raise provider_error(exc)
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Video not found")
    return project


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_video(
    project_id: uuid.UUID,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> None:
    service = _get_service(request)
    if not await service.delete_video(current_user.id, str(project_id)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Video not found")
