"""Async HTTP client for the ElevenLabs text-to-speech API.

Provides ElevenLabsClient with retry logic (tenacity, 3 attempts,
exponential backoff 1-10s). Synthesis returns raw MP3 bytes; the caller
decides where to store them.
"""

from __future__ import annotations

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.copilot.core.errors import ProviderError

logger = structlog.get_logger(__name__)

_elevenlabs_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.ConnectError, httpx.TimeoutException)),
    reraise=True,
)

BASE_URL = "https://api.elevenlabs.io/v1"

DEFAULT_VOICE_SETTINGS = {"stability": 0.5, "similarity_boost": 0.5}

# Served when no API key is configured or the catalog call fails
FALLBACK_VOICES: list[dict] = [
    {"voice_id": "rachel", "name": "Rachel", "category": "Female"},
    {"voice_id": "domi", "name": "Domi", "category": "Female"},
    {"voice_id": "bella", "name": "Bella", "category": "Female"},
    {"voice_id": "antoni", "name": "Antoni", "category": "Male"},
    {"voice_id": "elli", "name": "Elli", "category": "Female"},
    {"voice_id": "josh", "name": "Josh", "category": "Male"},
    {"voice_id": "arnold", "name": "Arnold", "category": "Male"},
    {"voice_id": "adam", "name": "Adam", "category": "Male"},
    {"voice_id": "sam", "name": "Sam", "category": "Male"},
]


class ElevenLabsError(ProviderError):
    provider = "elevenlabs"


class ElevenLabsClient:
    """Async client for ElevenLabs.

    Args:
        api_key: ElevenLabs API key (sent as xi-api-key).
        model_id: Synthesis model.
    """

    TIMEOUT_SYNTHESIZE = 60.0
    TIMEOUT_READ = 10.0

    def __init__(self, api_key: str, model_id: str = "eleven_monolingual_v1") -> None:
        self._api_key = api_key
        self._model_id = model_id

    def _client(self, timeout: float, accept: str = "application/json") -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers={
                "xi-api-key": self._api_key,
                "Accept": accept,
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    @_elevenlabs_retry
    async def text_to_speech(self, text: str, voice_id: str) -> bytes:
        """Synthesize `text` with `voice_id`.

        POST /text-to-speech/{voice_id} with Accept: audio/mpeg.

        Returns:
            MP3 audio bytes.
        """
        async with self._client(self.TIMEOUT_SYNTHESIZE, accept="audio/mpeg") as client:
            response = await client.post(
                f"{BASE_URL}/text-to-speech/{voice_id}",
                json={
                    "text": text,
                    "model_id": self._model_id,
                    "voice_settings": DEFAULT_VOICE_SETTINGS,
                },
            )
            response.raise_for_status()
            audio = response.content
            logger.info(
                "elevenlabs.speech_synthesized",
                voice_id=voice_id,
                characters=len(text),
                audio_bytes=len(audio),
            )
            return audio

    @_elevenlabs_retry
    async def list_voices(self) -> list[dict]:
        """GET /voices, reduced to the fields the UI needs."""
        async with self._client(self.TIMEOUT_READ) as client:
            response = await client.get(f"{BASE_URL}/voices")
            response.raise_for_status()
            voices = response.json().get("voices", [])
            return [
                {
                    "voice_id": v.get("voice_id"),
                    "name": v.get("name"),
                    "category": v.get("category"),
                    "preview_url": v.get("preview_url"),
                    "labels": v.get("labels") or {},
                }
                for v in voices
            ]
