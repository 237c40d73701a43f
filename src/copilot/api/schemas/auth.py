"""Pydantic schemas for authentication API endpoints."""

from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    """Request schema for creating a creator account."""

    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=8, max_length=128, description="Account password")
    full_name: str = Field(..., min_length=1, max_length=200)
    niche: str | None = Field(None, max_length=100)


class LoginRequest(BaseModel):
    """Request schema for user login."""

    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=1, description="User password")


class TokenResponse(BaseModel):
    """Response schema with access and refresh tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenRefreshRequest(BaseModel):
    """Request schema to refresh an access token."""

    refresh_token: str = Field(..., description="Valid refresh token")


class UserResponse(BaseModel):
    """Response schema for current user info."""

    id: str
    email: str
    full_name: str | None = None
    niche: str | None = None
    subscription_tier: str
    subscription_status: str
    is_pro: bool
    is_admin: bool
