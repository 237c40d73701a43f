"""Campaign marketplace endpoints.

Brands publish campaigns; creators browse active ones and apply. The
calling user acts as the brand for campaigns they created and as the
creator for applications they submit.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from src.copilot.api.deps import get_current_user, get_state_service
from src.copilot.campaigns.schemas import (
    ApplicationCreate,
    ApplicationNotFoundError,
    ApplicationRead,
    ApplicationReview,
    CampaignClosedError,
    CampaignCreate,
    CampaignError,
    CampaignFilter,
    CampaignNotFoundError,
    CampaignRead,
    CampaignStatus,
    CampaignUpdate,
    DuplicateApplicationError,
    InvalidApplicationTransitionError,
    SelfApplicationError,
)
from src.copilot.profiles.schemas import ProfileRead

router = APIRouter(prefix="/api/v1/campaigns", tags=["campaigns"])

_ERROR_STATUS: dict[type[CampaignError], tuple[int, str]] = {
    CampaignNotFoundError: (status.HTTP_404_NOT_FOUND, "Campaign not found"),
    ApplicationNotFoundError: (status.HTTP_404_NOT_FOUND, "Application not found"),
    SelfApplicationError: (status.HTTP_400_BAD_REQUEST, "You cannot apply to your own campaign"),
    CampaignClosedError: (status.HTTP_409_CONFLICT, "Campaign is not accepting applications"),
    DuplicateApplicationError: (status.HTTP_409_CONFLICT, "You have already applied to this campaign"),
    InvalidApplicationTransitionError: (status.HTTP_409_CONFLICT, "Application cannot be changed"),
}


def _get_repository(request: Request):
    return get_state_service(request, "campaign_repository", "Campaign marketplace")


def _campaign_http_error(exc: CampaignError) -> HTTPException:
    code, detail = _ERROR_STATUS.get(type(exc), (status.HTTP_400_BAD_REQUEST, "Invalid request"))
    if isinstance(exc, InvalidApplicationTransitionError) and str(exc):
        detail = str(exc)
    return HTTPException(status_code=code, detail=detail)


# ── Campaigns ────────────────────────────────────────────────────────────────


@router.get("", response_model=list[CampaignRead])
async def list_campaigns(
    request: Request,
    niche: str | None = Query(None, max_length=100),
    status_filter: CampaignStatus | None = Query(CampaignStatus.ACTIVE, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    current_user: ProfileRead = Depends(get_current_user),
) -> list[CampaignRead]:
    """Marketplace listing. Defaults to active campaigns."""
    repository = _get_repository(request)
    return await repository.list_campaigns(
        CampaignFilter(niche=niche, status=status_filter, limit=limit)
    )


@router.post("", response_model=CampaignRead, status_code=status.HTTP_201_CREATED)
async def create_campaign(
    body: CampaignCreate,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> CampaignRead:
    repository = _get_repository(request)
    return await repository.create_campaign(current_user.id, body)


@router.get("/mine", response_model=list[CampaignRead])
async def list_my_campaigns(
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> list[CampaignRead]:
    repository = _get_repository(request)
    return await repository.list_brand_campaigns(current_user.id)


# ── Applications (static paths before /{campaign_id}) ────────────────────────


@router.get("/applications/mine", response_model=list[ApplicationRead])
async def list_my_applications(
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> list[ApplicationRead]:
    repository = _get_repository(request)
    return await repository.list_creator_applications(current_user.id)


@router.patch("/applications/{application_id}", response_model=ApplicationRead)
async def review_application(
    application_id: uuid.UUID,
    body: ApplicationReview,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> ApplicationRead:
    """Accept or reject a pending application on one of your campaigns."""
    repository = _get_repository(request)
    try:
        return await repository.review_application(
            current_user.id, str(application_id), body.status
        )
    except CampaignError as exc:
        raise _campaign_http_error(exc)


@router.get("/{campaign_id}", response_model=CampaignRead)
async def get_campaign(
    campaign_id: uuid.UUID,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> CampaignRead:
    repository = _get_repository(request)
    campaign = await repository.get_campaign(str(campaign_id))
    if campaign is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaign not found")
    return campaign


@router.patch("/{campaign_id}", response_model=CampaignRead)
async def update_campaign(
    campaign_id: uuid.UUID,
    body: CampaignUpdate,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> CampaignRead:
    repository = _get_repository(request)
    try:
        return await repository.update_campaign(current_user.id, str(campaign_id), body)
    except CampaignError as exc:
        raise _campaign_http_error(exc)


@router.post(
    "/{campaign_id}/applications",
    response_model=ApplicationRead,
    status_code=status.HTTP_201_CREATED,
)
async def apply_to_campaign(
    campaign_id: uuid.UUID,
    body: ApplicationCreate,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> ApplicationRead:
    repository = _get_repository(request)
    try:
        return await repository.apply(current_user.id, str(campaign_id), body)
    except CampaignError as exc:
        raise _campaign_http_error(exc)


@router.get("/{campaign_id}/applications", response_model=list[ApplicationRead])
async def list_campaign_applications(
    campaign_id: uuid.UUID,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> list[ApplicationRead]:
    """Applications to one of your campaigns."""
    repository = _get_repository(request)
    try:
        return await repository.list_campaign_applications(current_user.id, str(campaign_id))
    except CampaignError as exc:
        raise _campaign_http_error(exc)
