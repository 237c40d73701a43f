"""Content generation endpoints.

POST /generate checks the creator's monthly generation quota, calls the
LLM and stores the result. Limit rejections are 403 with a structured
detail; provider failures are 502.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from src.copilot.api.deps import (
    get_current_user,
    get_state_service,
    provider_error,
    usage_limit_error,
)
from src.copilot.content.schemas import (
    ContentGenerateRequest,
    ContentGenerateResponse,
    ContentRead,
    ContentType,
    TrendingRequest,
    TrendingResponse,
)
from src.copilot.core.errors import ProviderError
from src.copilot.profiles.schemas import ProfileRead
from src.copilot.usage.limits import UsageLimitExceededError

router = APIRouter(prefix="/api/v1/content", tags=["content"])


def _get_generator(request: Request):
    return get_state_service(request, "content_generator", "Content generation")


def _get_repository(request: Request):
    return get_state_service(request, "content_repository", "Content storage")


@router.post("/generate", response_model=ContentGenerateResponse)
async def generate_content(
    body: ContentGenerateRequest,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> ContentGenerateResponse:
    generator = _get_generator(request)
    try:
        return await generator.generate(current_user.id, body)
    except UsageLimitExceededError as exc:
        raise usage_limit_error(exc)
    except ProviderError as exc:
        raise provider_error(exc)


@router.post("/trending", response_model=TrendingResponse)
async def trending_topics(
    body: TrendingRequest,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> TrendingResponse:
    """Trending topics for a niche. Not counted against the generation quota."""
    generator = _get_generator(request)
    try:
        topics = await generator.trending_topics(body.niche, body.platform)
    except ProviderError as exc:
        raise provider_error(exc)
    return TrendingResponse(niche=body.niche, topics=topics)


@router.get("", response_model=list[ContentRead])
async def list_content(
    request: Request,
    type: ContentType | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    current_user: ProfileRead = Depends(get_current_user),
) -> list[ContentRead]:
    repository = _get_repository(request)
    return await repository.list_content(
        current_user.id, type.value if type else None, limit
    )


@router.get("/{content_id}", response_model=ContentRead)
async def get_content(
    content_id: uuid.UUID,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> ContentRead:
    repository = _get_repository(request)
    content = await repository.get_content(current_user.id, str(content_id))
    if content is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Content not found")
    return content


@router.delete("/{content_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_content(
    content_id: uuid.UUID,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> None:
    repository = _get_repository(request)
    if not await repository.delete_content(current_user.id, str(content_id)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Content not found")
