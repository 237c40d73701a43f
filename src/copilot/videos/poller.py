"""VideoStatusPoller -- follows submitted Tavus jobs until they finish.

One asyncio task per project. The first check happens immediately, then
every VIDEO_POLL_INTERVAL_SECONDS, for at most VIDEO_POLL_MAX_ATTEMPTS
attempts. A failed provider call is logged and still counts as an
attempt. When the attempts run out the project is left generating; the
owner can refresh it manually or the provider callback can finish it.

Tasks run inside scoped_user() so every database write goes through the
owner's row-level-security identity.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from src.copilot.core.identity import scoped_user
from src.copilot.core.monitoring import track_provider_call
from src.copilot.videos.schemas import TERMINAL_STATUSES, VideoStatus, VideoStatusUpdate

if TYPE_CHECKING:
    from src.copilot.videos.repository import VideoRepository
    from src.copilot.videos.tavus import TavusClient

logger = structlog.get_logger(__name__)

# ── Constants ────────────────────────────────────────────────────────────────

POLL_INTERVAL_SECONDS = 10.0
MAX_POLL_ATTEMPTS = 60


class VideoStatusPoller:
    """Schedules and tracks per-project status polls.

    Args:
        client: TavusClient for status lookups.
        repository: VideoRepository for status writes.
        interval_seconds: Delay between attempts.
        max_attempts: Attempt cap per project.
    """

    def __init__(
        self,
        client: TavusClient,
        repository: VideoRepository,
        interval_seconds: float = POLL_INTERVAL_SECONDS,
        max_attempts: int = MAX_POLL_ATTEMPTS,
    ) -> None:
        self._client = client
        self._repository = repository
        self._interval = interval_seconds
        self._max_attempts = max_attempts
        self._tasks: dict[str, asyncio.Task] = {}

    def is_polling(self, project_id: str) -> bool:
        return project_id in self._tasks

    def schedule(
        self,
        user_id: str,
        project_id: str,
        provider_video_id: str,
        start_attempt: int = 1,
    ) -> asyncio.Task:
        """Start polling a project; an already running poll is reused."""
        existing = self._tasks.get(project_id)
        if existing is not None and not existing.done():
            return existing

        task = asyncio.create_task(
            self.poll_until_done(user_id, project_id, provider_video_id, start_attempt),
            name=f"video-poll-{project_id}",
        )
        self._tasks[project_id] = task
        task.add_done_callback(lambda t: self._forget(project_id, t))
        logger.info("video_poll.scheduled", project_id=project_id, video_id=provider_video_id)
        return task

    def _forget(self, project_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(project_id) is task:
            del self._tasks[project_id]

    def cancel(self, project_id: str) -> bool:
        task = self._tasks.pop(project_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def poll_until_done(
        self,
        user_id: str,
        project_id: str,
        provider_video_id: str,
        start_attempt: int = 1,
    ) -> VideoStatus | None:
        """Poll until the job is terminal or the attempt cap is reached.

        Returns:
            The final status seen, or None if no poll succeeded or the
            project was deleted meanwhile.
        """
        last_status: VideoStatus | None = None
        with scoped_user(user_id):
            for attempt in range(start_attempt, self._max_attempts + 1):
                try:
                    async with track_provider_call("tavus", "get_video"):
                        data = await self._client.get_video(provider_video_id)
                    update = VideoStatusUpdate.from_provider(data)
                    project = await self._repository.apply_status(
                        user_id, project_id, update, poll_attempts=attempt
                    )
                    if project is None:
                        logger.info("video_poll.project_gone", project_id=project_id)
                        return None
                    last_status = project.status
                    if project.status in TERMINAL_STATUSES:
                        logger.info(
                            "video_poll.finished",
                            project_id=project_id,
                            status=project.status.value,
                            attempts=attempt,
                        )
                        return project.status
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception(
                        "video_poll.attempt_failed",
                        project_id=project_id,
                        attempt=attempt,
                    )
                    try:
                        await self._repository.record_poll_attempt(user_id, project_id, attempt)
                    except Exception:
                        logger.exception("video_poll.attempt_record_failed", project_id=project_id)

                if attempt < self._max_attempts:
                    await asyncio.sleep(self._interval)

        logger.warning(
            "video_poll.timed_out",
            project_id=project_id,
            attempts=self._max_attempts,
            last_status=last_status.value if last_status else None,
        )
        return last_status

    async def resume_pending(self) -> int:
        """Reschedule polls for projects left generating by a previous process.

        Projects that already used every attempt are skipped; they can
        still be refreshed manually.
        """
        resumed = 0
        for project in await self._repository.list_pending():
            if not project.provider_video_id:
                continue
            if project.poll_attempts >= self._max_attempts:
                continue
            self.schedule(
                project.user_id,
                project.id,
                project.provider_video_id,
                start_attempt=project.poll_attempts + 1,
            )
            resumed += 1
        logger.info("video_poll.resumed", count=resumed)
        return resumed

    async def stop(self) -> None:
        """Cancel every running poll and wait for the tasks to unwind."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("video_poll.stopped", cancelled=len(tasks))
