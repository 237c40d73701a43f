"""Social account endpoints -- OAuth linking, metric sync, analytics.

The OAuth callback is public: the platform redirects the browser there
without our bearer token, so the user is taken from the signed state.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import HTMLResponse

from src.copilot.api.deps import get_current_user, get_state_service, provider_error
from src.copilot.profiles.schemas import ProfileRead
from src.copilot.social.oauth import SocialProviderError
from src.copilot.social.schemas import (
    AnalyticsRange,
    AnalyticsResponse,
    ConnectResponse,
    ExportFormat,
    SocialAccountRead,
    SyncResponse,
)
from src.copilot.social.service import (
    AccountNotFoundError,
    InvalidOAuthStateError,
    PlatformNotConfiguredError,
    UnsupportedPlatformError,
    success_page,
)

router = APIRouter(prefix="/api/v1/social", tags=["social"])


def _get_social_service(request: Request):
    return get_state_service(request, "social_service", "Social service")


def _bad_request(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


# ── Public callback ──────────────────────────────────────────────────────────


@router.get("/callback/{platform}", response_class=HTMLResponse)
async def oauth_callback(
    platform: str,
    request: Request,
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
) -> HTMLResponse:
    """Complete an OAuth link and show a page that closes itself."""
    if error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Authorization failed: {error}",
        )
    if not code or not state:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing authorization code or state",
        )
    service = _get_social_service(request)
    try:
        account = await service.callback(platform, code, state)
    except (UnsupportedPlatformError, PlatformNotConfiguredError, InvalidOAuthStateError) as exc:
        raise _bad_request(exc)
    except SocialProviderError as exc:
        raise provider_error(exc)
    return HTMLResponse(success_page(account.platform))


# ── Accounts ─────────────────────────────────────────────────────────────────


@router.get("/accounts", response_model=list[SocialAccountRead])
async def list_accounts(
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> list[SocialAccountRead]:
    service = _get_social_service(request)
    return await service.list_accounts(current_user.id)


@router.delete("/accounts/{platform}", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_account(
    platform: str,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> None:
    service = _get_social_service(request)
    try:
        await service.disconnect(current_user.id, platform)
    except UnsupportedPlatformError as exc:
        raise _bad_request(exc)
    except AccountNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.post("/sync", response_model=SyncResponse)
async def sync_accounts(
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> SyncResponse:
    """Pull fresh follower and engagement numbers for every linked account."""
    service = _get_social_service(request)
    return await service.sync(current_user.id)


# ── Analytics ────────────────────────────────────────────────────────────────


@router.get("/analytics", response_model=AnalyticsResponse)
async def get_analytics(
    request: Request,
    platform: str = Query("all"),
    range_: AnalyticsRange = Query(AnalyticsRange.MONTH, alias="range"),
    current_user: ProfileRead = Depends(get_current_user),
) -> AnalyticsResponse:
    service = _get_social_service(request)
    try:
        return await service.analytics(current_user.id, platform, range_)
    except UnsupportedPlatformError as exc:
        raise _bad_request(exc)


@router.get("/analytics/export")
async def export_analytics(
    request: Request,
    fmt: ExportFormat = Query(ExportFormat.JSON, alias="format"),
    platform: str = Query("all"),
    range_: AnalyticsRange = Query(AnalyticsRange.MONTH, alias="range"),
    current_user: ProfileRead = Depends(get_current_user),
) -> Response:
    service = _get_social_service(request)
    try:
        body, media_type, filename = await service.export(current_user.id, platform, fmt, range_)
    except UnsupportedPlatformError as exc:
        raise _bad_request(exc)
    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ── Linking ──────────────────────────────────────────────────────────────────


@router.get("/{platform}/connect", response_model=ConnectResponse)
async def connect_account(
    platform: str,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> ConnectResponse:
    """Return the platform authorization URL to redirect the browser to."""
    service = _get_social_service(request)
    try:
        return await service.connect(current_user.id, platform)
    except (UnsupportedPlatformError, PlatformNotConfiguredError) as exc:
        raise _bad_request(exc)
