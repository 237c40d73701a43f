"""Async HTTP client for the Tavus v2 REST API (AI-avatar video).

Provides TavusClient with retry logic (tenacity, 3 attempts, exponential
backoff 1-10s). Covers video submission and status, and the replica
catalog (list, get, train, delete).
"""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.copilot.core.errors import ProviderError

logger = structlog.get_logger(__name__)

_tavus_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.ConnectError, httpx.TimeoutException)),
    reraise=True,
)

BASE_URL = "https://tavusapi.com/v2"

VIDEO_SETTINGS = {"quality": "high", "resolution": "1080p", "fps": 30}

# Shown in the replica picker when no API key is configured
FALLBACK_REPLICAS: list[dict] = [
    {
        "replica_id": "professional-male",
        "name": "Professional Male",
        "status": "ready",
        "description": "Business professional, clear speech",
    },
    {
        "replica_id": "friendly-female",
        "name": "Friendly Female",
        "status": "ready",
        "description": "Warm, approachable presenter",
    },
    {
        "replica_id": "energetic-male",
        "name": "Energetic Male",
        "status": "ready",
        "description": "Dynamic, enthusiastic delivery",
    },
    {
        "replica_id": "professional-female",
        "name": "Professional Female",
        "status": "ready",
        "description": "Authoritative, confident speaker",
    },
]


class TavusError(ProviderError):
    provider = "tavus"


def default_video_name(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"AI Video - {now.strftime('%Y-%m-%d')}"


class TavusClient:
    """Async client for Tavus.

    Args:
        api_key: Tavus API key (sent as x-api-key).
    """

    TIMEOUT_MUTATE = 30.0
    TIMEOUT_READ = 10.0

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key
        self._headers = {
            "x-api-key": api_key,
            "Content-Type": "application/json",
        }

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(headers=self._headers, timeout=timeout)

    @_tavus_retry
    async def create_video(
        self,
        replica_id: str,
        script: str,
        video_name: str | None = None,
        callback_url: str | None = None,
        background: str = "office",
        subtitles: bool = True,
    ) -> dict:
        """Submit a video job.

        POST /videos. Tavus answers with the new video id (as video_id, or
        id on older accounts) and an initial status.

        Returns:
            Dict with video_id and status.
        """
        body = {
            "replica_id": replica_id,
            "script": script,
            "video_name": video_name or default_video_name(),
            "video_settings": VIDEO_SETTINGS,
            "background": background,
            "subtitles": subtitles,
        }
        if callback_url:
            body["callback_url"] = callback_url

        async with self._client(self.TIMEOUT_MUTATE) as client:
            response = await client.post(f"{BASE_URL}/videos", json=body)
            response.raise_for_status()
            data = response.json()
            video_id = data.get("video_id") or data.get("id")
            logger.info(
                "tavus.video_created",
                video_id=video_id,
                replica_id=replica_id,
                status=data.get("status"),
            )
            return {"video_id": video_id, "status": data.get("status") or "generating"}

    @_tavus_retry
    async def get_video(self, video_id: str) -> dict:
        """GET /videos/{video_id}.

        Returns:
            Dict with status, progress, download_url, thumbnail_url,
            estimated_completion and error_message.
        """
        async with self._client(self.TIMEOUT_READ) as client:
            response = await client.get(f"{BASE_URL}/videos/{video_id}")
            response.raise_for_status()
            data = response.json()
            logger.debug("tavus.video_status", video_id=video_id, status=data.get("status"))
            return {
                "video_id": video_id,
                "status": data.get("status"),
                "progress": data.get("progress"),
                "download_url": data.get("download_url"),
                "thumbnail_url": data.get("thumbnail_url") or data.get("still_image_thumbnail_url"),
                "estimated_completion": data.get("estimated_completion"),
                "error_message": data.get("error_message"),
            }

    @_tavus_retry
    async def list_replicas(self) -> list[dict]:
        async with self._client(self.TIMEOUT_READ) as client:
            response = await client.get(f"{BASE_URL}/replicas")
            response.raise_for_status()
            data = response.json()
            return data.get("replicas") or data.get("data") or []

    @_tavus_retry
    async def get_replica(self, replica_id: str) -> dict:
        async with self._client(self.TIMEOUT_READ) as client:
            response = await client.get(f"{BASE_URL}/replicas/{replica_id}")
            response.raise_for_status()
            return response.json()

    @_tavus_retry
    async def create_replica(
        self,
        replica_name: str,
        train_video_url: str,
        callback_url: str | None = None,
    ) -> dict:
        """Start training a personal replica from a hosted training video.

        POST /replicas. Training takes hours; poll get_replica for status.

        Returns:
            Dict with replica_id and status.
        """
        body = {"replica_name": replica_name, "train_video_url": train_video_url}
        if callback_url:
            body["callback_url"] = callback_url

        async with self._client(self.TIMEOUT_MUTATE) as client:
            response = await client.post(f"{BASE_URL}/replicas", json=body)
            response.raise_for_status()
            data = response.json()
            logger.info(
                "tavus.replica_created",
                replica_id=data.get("replica_id"),
                status=data.get("status"),
            )
            return {
                "replica_id": data.get("replica_id"),
                "replica_name": replica_name,
                "status": data.get("status") or "training",
            }

    @_tavus_retry
    async def delete_replica(self, replica_id: str) -> None:
        async with self._client(self.TIMEOUT_MUTATE) as client:
            response = await client.delete(f"{BASE_URL}/replicas/{replica_id}")
            response.raise_for_status()
            logger.info("tavus.replica_deleted", replica_id=replica_id)
