"""API middleware package."""

from src.copilot.api.middleware.auth import UserAuthMiddleware
from src.copilot.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware", "UserAuthMiddleware"]
