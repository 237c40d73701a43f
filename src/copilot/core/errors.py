"""Base exception for failed calls to hosted providers.

Each client module subclasses ProviderError; the API layer maps any
ProviderError to 502 Bad Gateway.
"""

from __future__ import annotations


class ProviderError(Exception):
    """A hosted provider (LLM, TTS, video, billing, social) call failed."""

    provider = "provider"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
