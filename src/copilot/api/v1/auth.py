"""Authentication API endpoints.

Provides registration, login, token refresh and current user info.
Register, login and refresh run before a user identity exists, so the
profile repository serves them through its system session.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.copilot.api.deps import get_current_user, get_state_service
from src.copilot.api.schemas.auth import (
    LoginRequest,
    RegisterRequest,
    TokenRefreshRequest,
    TokenResponse,
    UserResponse,
)
from src.copilot.core.security import (
    create_access_token,
    create_refresh_token,
    hash_password,
    verify_password,
    verify_token,
)
from src.copilot.profiles.repository import ProfileExistsError
from src.copilot.profiles.schemas import ProfileRead
from src.copilot.usage.limits import SubscriptionTier, current_period_start, tier_limits

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def _get_profile_repository(request: Request):
    return get_state_service(request, "profile_repository", "Profiles")


def _issue_tokens(user_id: str, email: str) -> TokenResponse:
    token_data = {"sub": user_id, "email": email}
    return TokenResponse(
        access_token=create_access_token(token_data),
        refresh_token=create_refresh_token(token_data),
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, request: Request):
    """Create a free-tier account and return JWT tokens."""
    repository = _get_profile_repository(request)
    try:
        profile = await repository.create_profile(
            email=body.email,
            hashed_password=hash_password(body.password),
            full_name=body.full_name,
            niche=body.niche,
            usage_limits=tier_limits(SubscriptionTier.FREE),
            usage_period_start=current_period_start(),
        )
    except ProfileExistsError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )
    return _issue_tokens(profile.id, profile.email)


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, request: Request):
    """Authenticate a user and return JWT tokens."""
    repository = _get_profile_repository(request)
    credentials = await repository.get_credentials(body.email)

    if not credentials or not credentials.hashed_password:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not verify_password(body.password, credentials.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not credentials.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is inactive",
        )

    return _issue_tokens(credentials.id, credentials.email)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(body: TokenRefreshRequest, request: Request):
    """Refresh an expired access token using a valid refresh token."""
    payload = verify_token(body.refresh_token, token_type="refresh")

    repository = _get_profile_repository(request)
    profile = await repository.lookup_profile(payload["sub"])
    if not profile or not profile.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    return _issue_tokens(profile.id, profile.email)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: ProfileRead = Depends(get_current_user)):
    """Return the signed-in creator's account summary."""
    return UserResponse(
        id=current_user.id,
        email=current_user.email,
        full_name=current_user.full_name,
        niche=current_user.niche,
        subscription_tier=current_user.subscription_tier,
        subscription_status=current_user.subscription_status,
        is_pro=current_user.is_pro,
        is_admin=current_user.is_admin,
    )
