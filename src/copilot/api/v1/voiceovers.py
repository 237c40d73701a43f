"""Voiceover endpoints: synthesize, list, fetch, delete, and the voice catalog."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from src.copilot.api.deps import (
    get_current_user,
    get_state_service,
    provider_error,
    usage_limit_error,
)
from src.copilot.core.errors import ProviderError
from src.copilot.profiles.schemas import ProfileRead
from src.copilot.usage.limits import UsageLimitExceededError
from src.copilot.voiceovers.schemas import Voice, VoiceoverCreate, VoiceoverRead, VoiceoverResult

router = APIRouter(prefix="/api/v1/voiceovers", tags=["voiceovers"])


def _get_service(request: Request):
    return get_state_service(request, "voiceover_service", "Voiceovers")


def _get_repository(request: Request):
    return get_state_service(request, "voiceover_repository", "Voiceover storage")


@router.post("", response_model=VoiceoverResult)
async def create_voiceover(
    body: VoiceoverCreate,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> VoiceoverResult:
    """Synthesize a script. Minutes are estimated at 150 words per minute."""
    service = _get_service(request)
    try:
        return await service.create_voiceover(current_user.id, body)
    except UsageLimitExceededError as exc:
        raise usage_limit_error(exc)
    except ProviderError as exc:
        raise provider_error(exc)


@router.get("/voices", response_model=list[Voice])
async def list_voices(
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> list[Voice]:
    service = _get_service(request)
    return await service.list_voices()


@router.get("", response_model=list[VoiceoverRead])
async def list_voiceovers(
    request: Request,
    limit: int = Query(50, ge=1, le=200),
    current_user: ProfileRead = Depends(get_current_user),
) -> list[VoiceoverRead]:
    repository = _get_repository(request)
    return await repository.list_voiceovers(current_user.id, limit)


@router.get("/{voiceover_id}", response_model=VoiceoverRead)
async def get_voiceover(
    voiceover_id: uuid.UUID,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> VoiceoverRead:
    repository = _get_repository(request)
    voiceover = await repository.get_voiceover(current_user.id, str(voiceover_id))
    if voiceover is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Voiceover not found")
    return voiceover


@router.delete("/{voiceover_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_voiceover(
    voiceover_id: uuid.UUID,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> None:
    """Delete the voiceover and its stored audio."""
    service = _get_service(request)
    if not await service.delete_voiceover(current_user.id, str(voiceover_id)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Voiceover not found")
