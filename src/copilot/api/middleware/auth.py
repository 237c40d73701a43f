"""User resolution middleware.

Decodes the Bearer access token and sets the UserContext for the request
scope, which the database layer turns into the row-level-security
identity. Paths in SKIP_AUTH_PATHS (health, docs, login, provider
webhooks and the OAuth callback) run without a user.
"""

from __future__ import annotations

import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from jose import JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.copilot.config import get_settings
from src.copilot.core.identity import (
    SKIP_AUTH_PATHS,
    UserContext,
    reset_user_context,
    set_user_context,
)

logger = logging.getLogger(__name__)


def _unauthorized(detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"detail": detail},
        headers={"WWW-Authenticate": "Bearer"},
    )


class UserAuthMiddleware(BaseHTTPMiddleware):
    """Resolve the calling user from a JWT access token."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if request.method == "OPTIONS" or any(path.startswith(skip) for skip in SKIP_AUTH_PATHS):
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return _unauthorized("Not authenticated")

        settings = get_settings()
        try:
            payload = jwt.decode(
                auth_header[7:],
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM],
            )
        except JWTError:
            logger.info("Rejected token for %s", path)
            return _unauthorized("Could not validate credentials")

        if payload.get("type") != "access" or not payload.get("sub"):
            return _unauthorized("Could not validate credentials")

        token = set_user_context(UserContext(user_id=payload["sub"], email=payload.get("email")))
        try:
            return await call_next(request)
        finally:
            reset_user_context(token)
