"""Video service -- quota check, Tavus submission and retry, status tracking, replicas."""

from __future__ import annotations

import httpx
import structlog

from src.copilot.config import get_settings
from src.copilot.core.identity import scoped_user
from src.copilot.core.monitoring import track_provider_call
from src.copilot.core.redis import CatalogCache
from src.copilot.services.function_log import FunctionLogger
from src.copilot.usage.limits import Resource
from src.copilot.usage.service import UsageService
from src.copilot.videos.poller import VideoStatusPoller
from src.copilot.videos.repository import VideoRepository
from src.copilot.videos.schemas import (
    TERMINAL_STATUSES,
    Replica,
    ReplicaCreate,
    VideoCreate,
    VideoProjectRead,
    VideoStatus,
    VideoStatusUpdate,
)
from src.copilot.videos.tavus import (
    FALLBACK_REPLICAS,
    TavusClient,
    TavusError,
    default_video_name,
)

logger = structlog.get_logger(__name__)

REPLICAS_CACHE_KEY = "tavus:replicas"


class MissingReplicaError(ValueError):
    """No replica in the request and no default configured."""


class VideoNotRetryableError(ValueError):
    """Only failed projects can be resubmitted."""


def _to_replica(data: dict) -> Replica:
    return Replica(
        replica_id=data.get("replica_id", ""),
        name=data.get("replica_name") or data.get("name"),
        status=data.get("status"),
        thumbnail_url=data.get("thumbnail_url") or data.get("thumbnail_video_url"),
        description=data.get("description"),
        training_progress=data.get("training_progress"),
    )


def _wrap_http_error(message: str, exc: httpx.HTTPError) -> TavusError:
    status_code = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
    return TavusError(f"{message}: {exc}", status_code)


class VideoService:
    """Orchestrates AI-avatar video projects.

    Args:
        client: TavusClient, or None when no API key is configured.
        repository: VideoRepository.
        poller: VideoStatusPoller (None disables background polling).
        usage_service: Quota checks and counters.
        function_logger: Audit log for paid calls.
        cache: Shared catalog cache for replicas.
    """

    def __init__(
        self,
        client: TavusClient | None,
        repository: VideoRepository,
        poller: VideoStatusPoller | None,
        usage_service: UsageService,
        function_logger: FunctionLogger,
        cache: CatalogCache | None = None,
    ) -> None:
        self._client = client
        self._repository = repository
        self._poller = poller
        self._usage = usage_service
        self._function_logger = function_logger
        self._cache = cache or CatalogCache(None)

    def callback_url(self) -> str:
        settings = get_settings()
        url = f"{settings.API_BASE_URL.rstrip('/')}/api/v1/videos/webhook"
        if settings.TAVUS_WEBHOOK_TOKEN:
            url += f"?token={settings.TAVUS_WEBHOOK_TOKEN}"
        return url

    async def create_video(self, user_id: str, request: VideoCreate) -> VideoProjectRead:
        """Submit a video and start tracking it.

        Raises:
            UsageLimitExceededError: No video generations left this month.
            MissingReplicaError: No replica given and none configured.
            TavusError: Submission failed.
        """
        await self._usage.ensure_within_limit(user_id, Resource.VIDEO_GENERATIONS)

        replica_id = request.replica_id or get_settings().TAVUS_DEFAULT_REPLICA_ID
        if not replica_id:
            raise MissingReplicaError("replica_id is required")
        if self._client is None:
            raise TavusError("Tavus API key not configured")

        title = request.title or default_video_name()
        video_id = await self._submit(
            "create_video",
            user_id,
            replica_id=replica_id,
            script=request.script,
            title=title,
            background=request.background,
            subtitles=request.subtitles,
        )
        project = await self._repository.create_project(
            user_id,
            title=title,
            script=request.script,
            replica_id=replica_id,
            provider_video_id=video_id,
            background=request.background,
            subtitles=request.subtitles,
        )
        await self._usage.record(user_id, Resource.VIDEO_GENERATIONS)

        if self._poller is not None:
            self._poller.schedule(user_id, project.id, video_id)
        logger.info("video.submitted", user_id=user_id, project_id=project.id, video_id=video_id)
        return project

    async def retry_video(self, user_id: str, project_id: str) -> VideoProjectRead | None:
        """Resubmit a failed project's script and replica as a new provider job.

        Counts as a new video generation.

        Returns:
            The reset project, or None when it does not exist.

        Raises:
            VideoNotRetryableError: The project has not failed.
            UsageLimitExceededError: No video generations left this month.
            TavusError: Submission failed.
        """
        project = await self._repository.get_project(user_id, project_id)
        if project is None:
            return None
        if project.status != VideoStatus.FAILED:
            raise VideoNotRetryableError(f"Video is {project.status.value}, only failed videos can be retried")
        await self._usage.ensure_within_limit(user_id, Resource.VIDEO_GENERATIONS)
        if self._client is None:
            raise TavusError("Tavus API key not configured")

        video_id = await self._submit(
            "retry_video",
            user_id,
            replica_id=project.replica_id,
            script=project.script,
            title=project.title,
            background=project.background,
            subtitles=project.subtitles,
        )
        restarted = await self._repository.restart_project(user_id, project_id, video_id)
        if restarted is None:
            return None
        await self._usage.record(user_id, Resource.VIDEO_GENERATIONS)

        if self._poller is not None:
            self._poller.cancel(project_id)
            self._poller.schedule(user_id, project_id, video_id)
        logger.info(
            "video.resubmitted",
            user_id=user_id,
            project_id=project_id,
            previous_video_id=project.provider_video_id,
            video_id=video_id,
        )
        return restarted

    async def _submit(
        self,
        function_name: str,
        user_id: str,
        *,
        replica_id: str,
        script: str,
        title: str,
        background: str,
        subtitles: bool,
    ) -> str:
        try:
            async with self._function_logger.track(
                function_name,
                user_id,
                {"replica_id": replica_id, "title": title, "script": script[:100]},
            ) as log_out:
                async with track_provider_call("tavus", "create_video"):
                    submitted = await self._client.create_video(
                        replica_id=replica_id,
                        script=script,
                        video_name=title,
                        callback_url=self.callback_url(),
                        background=background,
                        subtitles=subtitles,
                    )
                log_out.update(submitted)
        except httpx.HTTPError as exc:
            logger.error("video.submit_failed", user_id=user_id, error=str(exc))
            raise _wrap_http_error("Video submission failed", exc) from exc

        if not submitted.get("video_id"):
            raise TavusError("Tavus returned no video id")
        return submitted["video_id"]

    async def refresh(self, user_id: str, project_id: str) -> VideoProjectRead | None:
        """Fetch the current provider status once and store it."""
        project = await self._repository.get_project(user_id, project_id)
        if project is None:
            return None
        if self._client is None or not project.provider_video_id:
            return project
        try:
            async with track_provider_call("tavus", "get_video"):
                data = await self._client.get_video(project.provider_video_id)
        except httpx.HTTPError as exc:
            raise _wrap_http_error("Status refresh failed", exc) from exc
        return await self._repository.apply_status(
            user_id, project_id, VideoStatusUpdate.from_provider(data)
        )

    async def delete_video(self, user_id: str, project_id: str) -> bool:
        deleted = await self._repository.delete_project(user_id, project_id)
        if deleted and self._poller is not None:
            self._poller.cancel(project_id)
        return deleted

    async def handle_callback(self, payload: dict) -> VideoProjectRead | None:
        """Apply a provider callback to the matching project.

        Returns:
            The updated project, or None when the video id is unknown.
        """
        video_id = payload.get("video_id") or payload.get("id")
        if not video_id:
            return None
        project = await self._repository.find_by_provider_id(str(video_id))
        if project is None:
            logger.warning("video.callback_unknown_video", video_id=video_id)
            return None

        update = VideoStatusUpdate.from_provider(payload)
        with scoped_user(project.user_id):
            updated = await self._repository.apply_status(project.user_id, project.id, update)
        if updated is None:
            return None
        if self._poller is not None and updated.status in TERMINAL_STATUSES:
            self._poller.cancel(project.id)
        logger.info(
            "video.callback_applied",
            project_id=project.id,
            status=updated.status.value,
        )
        return updated

    # ── Replicas ────────────────────────────────────────────────────────────

    async def list_replicas(self) -> list[Replica]:
        """Replica catalog: cached, then live, then the built-in list."""
        cached = await self._cache.get(REPLICAS_CACHE_KEY)
        if cached:
            return [_to_replica(r) for r in cached]
        if self._client is None:
            return [_to_replica(r) for r in FALLBACK_REPLICAS]
        try:
            async with track_provider_call("tavus", "list_replicas"):
                replicas = await self._client.list_replicas()
        except httpx.HTTPError:
            logger.warning("video.replicas_fetch_failed", exc_info=True)
            return [_to_replica(r) for r in FALLBACK_REPLICAS]
        if not replicas:
            return [_to_replica(r) for r in FALLBACK_REPLICAS]
        await self._cache.set(REPLICAS_CACHE_KEY, replicas)
        return [_to_replica(r) for r in replicas]

    async def get_replica(self, replica_id: str) -> Replica:
        if self._client is None:
            for replica in FALLBACK_REPLICAS:
                if replica["replica_id"] == replica_id:
                    return _to_replica(replica)
            raise LookupError(replica_id)
        try:
            async with track_provider_call("tavus", "get_replica"):
                data = await self._client.get_replica(replica_id)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                raise LookupError(replica_id) from exc
            raise _wrap_http_error("Replica lookup failed", exc) from exc
        except httpx.HTTPError as exc:
            raise _wrap_http_error("Replica lookup failed", exc) from exc
        return _to_replica(data)

    async def create_replica(self, user_id: str, request: ReplicaCreate) -> Replica:
        """Start training a personal replica; it shows up in the catalog once Tavus lists it."""
        if self._client is None:
            raise TavusError("Tavus API key not configured")
        try:
            async with self._function_logger.track(
                "create_replica", user_id, {"name": request.name}
            ) as log_out:
                async with track_provider_call("tavus", "create_replica"):
                    data = await self._client.create_replica(request.name, request.train_video_url)
                log_out.update(data)
        except httpx.HTTPError as exc:
            raise _wrap_http_error("Replica training failed", exc) from exc
        await self._cache.set(REPLICAS_CACHE_KEY, [])
        logger.info("video.replica_training", user_id=user_id, replica_id=data.get("replica_id"))
        return _to_replica(data)

    async def delete_replica(self, replica_id: str) -> None:
        if self._client is None:
            raise TavusError("Tavus API key not configured")
        try:
            async with track_provider_call("tavus", "delete_replica"):
                await self._client.delete_replica(replica_id)
        except httpx.HTTPError as exc:
            raise _wrap_http_error("Replica deletion failed", exc) from exc
        await self._cache.set(REPLICAS_CACHE_KEY, [])
