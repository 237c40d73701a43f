"""Voiceover service -- quota check, synthesis, storage, and usage recording."""

from __future__ import annotations

import httpx
import structlog

from src.copilot.core.monitoring import track_provider_call
from src.copilot.core.redis import CatalogCache
from src.copilot.services.function_log import FunctionLogger
from src.copilot.services.storage import MediaStorage
from src.copilot.usage.limits import Resource, SubscriptionTier
from src.copilot.usage.service import UsageService
from src.copilot.voiceovers.elevenlabs import FALLBACK_VOICES, ElevenLabsClient, ElevenLabsError
from src.copilot.voiceovers.repository import VoiceoverRepository
from src.copilot.voiceovers.schemas import (
    Voice,
    VoiceoverCreate,
    VoiceoverResult,
    estimate_minutes,
)

logger = structlog.get_logger(__name__)

VOICES_CACHE_KEY = "elevenlabs:voices"


def audio_key(user_id: str, voiceover_id: str) -> str:
    return f"voiceovers/{user_id}/{voiceover_id}.mp3"


class VoiceoverService:
    """Orchestrates one voiceover job end to end.

    Args:
        client: ElevenLabsClient, or None when no API key is configured.
        repository: VoiceoverRepository.
        storage: MediaStorage for the generated MP3.
        usage_service: Quota checks and counters.
        function_logger: Audit log for paid calls.
        cache: Shared catalog cache for the voices list.
    """

    def __init__(
        self,
        client: ElevenLabsClient | None,
        repository: VoiceoverRepository,
        storage: MediaStorage,
        usage_service: UsageService,
        function_logger: FunctionLogger,
        cache: CatalogCache | None = None,
    ) -> None:
        self._client = client
        self._repository = repository
        self._storage = storage
        self._usage = usage_service
        self._function_logger = function_logger
        self._cache = cache or CatalogCache(None)

    async def create_voiceover(self, user_id: str, request: VoiceoverCreate) -> VoiceoverResult:
        """Synthesize a script and store the audio.

        Raises:
            UsageLimitExceededError: Estimated minutes exceed the remaining quota.
            ElevenLabsError: Synthesis failed (the job is marked failed first).
        """
        minutes = estimate_minutes(request.script)
        profile = await self._usage.ensure_within_limit(
            user_id, Resource.VOICEOVER_MINUTES, minutes
        )
        if self._client is None:
            raise ElevenLabsError("ElevenLabs API key not configured")

        job = await self._repository.create_voiceover(
            user_id,
            title=request.title or "Untitled Voiceover",
            script=request.script,
            voice_id=request.voice_id,
            estimated_minutes=minutes,
        )

        try:
            async with self._function_logger.track(
                "generate_voiceover",
                user_id,
                {"script": request.script[:100], "voice_id": request.voice_id, "title": request.title},
            ) as log_out:
                async with track_provider_call("elevenlabs", "text_to_speech"):
                    audio = await self._client.text_to_speech(request.script, request.voice_id)
                audio_url = await self._storage.save(audio_key(user_id, job.id), audio)
                log_out["voiceover_id"] = job.id
                log_out["audio_url"] = audio_url
        except (httpx.HTTPError, OSError) as exc:
            await self._repository.mark_failed(user_id, job.id, str(exc))
            logger.error(
                "voiceover.generation_failed",
                user_id=user_id,
                voiceover_id=job.id,
                error=str(exc),
            )
            status_code = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
            raise ElevenLabsError(f"Voiceover generation failed: {exc}", status_code) from exc

        await self._repository.mark_completed(user_id, job.id, audio_url)
        await self._usage.record(user_id, Resource.VOICEOVER_MINUTES, minutes)
        logger.info(
            "voiceover.completed",
            user_id=user_id,
            voiceover_id=job.id,
            minutes=round(minutes, 2),
        )

        remaining = None
        if profile.subscription_tier == SubscriptionTier.FREE.value:
            remaining = self._usage.remaining_for(profile, Resource.VOICEOVER_MINUTES, minutes)
        return VoiceoverResult(
            voiceover_id=job.id,
            audio_url=audio_url,
            estimated_minutes=minutes,
            remaining_minutes=remaining,
        )

    async def delete_voiceover(self, user_id: str, voiceover_id: str) -> bool:
        """Delete the row and its stored audio file."""
        job = await self._repository.get_voiceover(user_id, voiceover_id)
        if job is None:
            return False
        await self._repository.delete_voiceover(user_id, voiceover_id)
        await self._storage.delete(audio_key(user_id, voiceover_id))
        return True

    async def list_voices(self) -> list[Voice]:
        """Voice catalog: cached, then live, then the built-in fallback list."""
        cached = await self._cache.get(VOICES_CACHE_KEY)
        if cached:
            return [Voice(**v) for v in cached]

        if self._client is None:
            return [Voice(**v) for v in FALLBACK_VOICES]

        try:
            async with track_provider_call("elevenlabs", "list_voices"):
                voices = await self._client.list_voices()
        except httpx.HTTPError:
            logger.warning("voiceover.voices_fetch_failed", exc_info=True)
            return [Voice(**v) for v in FALLBACK_VOICES]

        voices = [v for v in voices if v.get("voice_id") and v.get("name")]
        await self._cache.set(VOICES_CACHE_KEY, voices)
        return [Voice(**v) for v in voices]
