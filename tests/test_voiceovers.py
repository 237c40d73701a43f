"""Voiceover pipeline: ElevenLabs client, service, storage and API.

The ElevenLabs client is exercised against httpx.MockTransport; the
service and API use a fake client and an in-memory repository with a
real MediaStorage rooted in tmp_path.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.copilot.core.redis import CatalogCache
from src.copilot.services.storage import MediaStorage
from src.copilot.usage.limits import UsageLimitExceededError
from src.copilot.usage.service import UsageService
from src.copilot.voiceovers.elevenlabs import FALLBACK_VOICES, ElevenLabsClient, ElevenLabsError
from src.copilot.voiceovers.schemas import (
    VoiceoverCreate,
    VoiceoverRead,
    VoiceoverStatus,
    estimate_minutes,
)
from src.copilot.voiceovers.service import VOICES_CACHE_KEY, VoiceoverService, audio_key

MP3 = b"ID3\x03\x00fake-mp3-bytes"


# ── In-Memory Test Doubles ───────────────────────────────────────────────────


class InMemoryVoiceoverRepository:
    """In-memory VoiceoverRepository for testing without database."""

    def __init__(self) -> None:
        self.items: dict[str, VoiceoverRead] = {}

    async def create_voiceover(
        self, user_id: str, title: str, script: str, voice_id: str, estimated_minutes: float
    ) -> VoiceoverRead:
        item = VoiceoverRead(
            id=str(uuid.uuid4()),
            user_id=user_id,
            title=title,
            script=script,
            voice_id=voice_id,
            status=VoiceoverStatus.GENERATING,
            estimated_minutes=estimated_minutes,
            created_at=datetime.now(timezone.utc),
        )
        self.items[item.id] = item
        return item

    async def mark_completed(self, user_id: str, voiceover_id: str, audio_url: str):
        item = self.items[voiceover_id].model_copy(
            update={"status": VoiceoverStatus.COMPLETED, "audio_url": audio_url}
        )
        self.items[voiceover_id] = item
        return item

    async def mark_failed(self, user_id: str, voiceover_id: str, error_message: str):
        item = self.items[voiceover_id].model_copy(
            update={"status": VoiceoverStatus.FAILED, "error_message": error_message}
        )
        self.items[voiceover_id] = item
        return item

    async def get_voiceover(self, user_id: str, voiceover_id: str) -> VoiceoverRead | None:
        item = self.items.get(voiceover_id)
        return item if item and item.user_id == user_id else None

    async def list_voiceovers(self, user_id: str, limit: int = 50) -> list[VoiceoverRead]:
        return [i for i in self.items.values() if i.user_id == user_id][:limit]

    async def delete_voiceover(self, user_id: str, voiceover_id: str) -> bool:
        return self.items.pop(voiceover_id, None) is not None

    async def count_voiceovers(self, user_id: str) -> int:
        return sum(1 for i in self.items.values() if i.user_id == user_id)


class FakeRedis:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        self.data[key] = value


def _fake_client() -> MagicMock:
    client = MagicMock()
    client.text_to_speech = AsyncMock(return_value=MP3)
    client.list_voices = AsyncMock(return_value=[
        {"voice_id": "v1", "name": "Nova", "category": "premade", "preview_url": None, "labels": {}},
        {"voice_id": None, "name": "Broken"},
    ])
    return client


def _script(words: int) -> str:
    return " ".join(["word"] * words)


@pytest.fixture
def voiceover_repository() -> InMemoryVoiceoverRepository:
    return InMemoryVoiceoverRepository()


@pytest.fixture
def storage(tmp_path) -> MediaStorage:
    return MediaStorage(tmp_path, "http://test/media")


@pytest.fixture
def service_factory(voiceover_repository, storage, profile_repository, function_logger):
    def _make(client=None, cache: CatalogCache | None = None) -> VoiceoverService:
        return VoiceoverService(
            client=client,
            repository=voiceover_repository,
            storage=storage,
            usage_service=UsageService(profile_repository),
            function_logger=function_logger,
            cache=cache,
        )
    return _make


# ── Estimation and storage ───────────────────────────────────────────────────


def test_estimate_minutes_at_150_wpm():
    assert estimate_minutes(_script(150)) == 1
    assert estimate_minutes(_script(75)) == 0.5


async def test_storage_save_and_delete(storage):
    url = await storage.save("voiceovers/u/a.mp3", MP3)
    assert url == "http://test/media/voiceovers/u/a.mp3"
    assert (storage.root / "voiceovers/u/a.mp3").read_bytes() == MP3
    assert await storage.delete("voiceovers/u/a.mp3") is True
    assert await storage.delete("voiceovers/u/a.mp3") is False


async def test_storage_rejects_escaping_keys(storage):
    with pytest.raises(ValueError):
        await storage.save("../outside.mp3", MP3)


# ── ElevenLabs client ────────────────────────────────────────────────────────


async def test_client_text_to_speech(monkeypatch):
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=MP3)

    client = ElevenLabsClient("xi-key", model_id="eleven_monolingual_v1")
    monkeypatch.setattr(
        client,
        "_client",
        lambda timeout, accept="application/json": httpx.AsyncClient(
            transport=httpx.MockTransport(handler),
            headers={"xi-api-key": "xi-key", "Accept": accept},
        ),
    )

    audio = await client.text_to_speech("Hello creators", "rachel")
    assert audio == MP3
    assert seen["url"].endswith("/text-to-speech/rachel")
    assert seen["headers"]["accept"] == "audio/mpeg"
    assert seen["body"]["text"] == "Hello creators"
    assert seen["body"]["voice_settings"] == {"stability": 0.5, "similarity_boost": 0.5}


async def test_client_list_voices(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"voices": [
            {"voice_id": "abc", "name": "Nova", "category": "premade", "labels": {"accent": "us"}},
        ]})

    client = ElevenLabsClient("xi-key")
    monkeypatch.setattr(
        client,
        "_client",
        lambda timeout, accept="application/json": httpx.AsyncClient(
            transport=httpx.MockTransport(handler)
        ),
    )
    voices = await client.list_voices()
    assert voices == [{
        "voice_id": "abc",
        "name": "Nova",
        "category": "premade",
        "preview_url": None,
        "labels": {"accent": "us"},
    }]


# ── Service ──────────────────────────────────────────────────────────────────


async def test_create_voiceover_stores_audio_and_counts_minutes(
    service_factory, creator, voiceover_repository, profile_repository, storage
):
    client = _fake_client()
    service = service_factory(client)

    result = await service.create_voiceover(
        creator.id, VoiceoverCreate(script=_script(150), voice_id="rachel", title="Intro")
    )

    assert result.estimated_minutes == 1
    assert result.remaining_minutes == 1
    job = voiceover_repository.items[result.voiceover_id]
    assert job.status == VoiceoverStatus.COMPLETED
    assert job.audio_url == result.audio_url
    assert (storage.root / audio_key(creator.id, job.id)).read_bytes() == MP3
    assert profile_repository.profiles[creator.id].usage_counts["voiceover_minutes"] == 1
    client.text_to_speech.assert_awaited_once_with(_script(150), "rachel")


async def test_over_quota_script_rejected_before_synthesis(
    service_factory, creator, voiceover_repository
):
    client = _fake_client()
    service = service_factory(client)

    with pytest.raises(UsageLimitExceededError) as exc_info:
        await service.create_voiceover(
            creator.id, VoiceoverCreate(script=_script(450), voice_id="rachel")
        )
    assert exc_info.value.resource == "voiceover_minutes"
    client.text_to_speech.assert_not_called()
    assert voiceover_repository.items == {}


async def test_paid_tier_gets_no_remaining_minutes(service_factory, profile_repository, profile_factory):
    profile = profile_repository.add(profile_factory(subscription_tier="pro", subscription_status="active"))
    service = service_factory(_fake_client())
    result = await service.create_voiceover(
        profile.id, VoiceoverCreate(script=_script(300), voice_id="rachel")
    )
    assert result.remaining_minutes is None


async def test_synthesis_failure_marks_job_failed(
    service_factory, creator, voiceover_repository, profile_repository, function_logger
):
    client = _fake_client()
    request = httpx.Request("POST", "https://api.elevenlabs.io/v1/text-to-speech/rachel")
    client.text_to_speech = AsyncMock(side_effect=httpx.HTTPStatusError(
        "quota", request=request, response=httpx.Response(401, request=request)
    ))
    service = service_factory(client)

    with pytest.raises(ElevenLabsError) as exc_info:
        await service.create_voiceover(creator.id, VoiceoverCreate(script="hi", voice_id="rachel"))

    assert exc_info.value.status_code == 401
    (job,) = voiceover_repository.items.values()
    assert job.status == VoiceoverStatus.FAILED
    assert profile_repository.profiles[creator.id].usage_counts == {}
    assert function_logger.records[-1]["status"] == "error"


async def test_unconfigured_client_raises_provider_error(service_factory, creator):
    service = service_factory(None)
    with pytest.raises(ElevenLabsError):
        await service.create_voiceover(creator.id, VoiceoverCreate(script="hi", voice_id="rachel"))


async def test_list_voices_fallback_without_client(service_factory):
    voices = await service_factory(None).list_voices()
    assert [v.voice_id for v in voices] == [v["voice_id"] for v in FALLBACK_VOICES]


async def test_list_voices_cached_after_first_fetch(service_factory):
    client = _fake_client()
    redis = FakeRedis()
    service = service_factory(client, cache=CatalogCache(redis))

    first = await service.list_voices()
    second = await service.list_voices()

    assert [v.name for v in first] == ["Nova"]
    assert [v.name for v in second] == ["Nova"]
    assert client.list_voices.await_count == 1
    assert f"cache:{VOICES_CACHE_KEY}" in redis.data


async def test_list_voices_falls_back_on_http_error(service_factory):
    client = _fake_client()
    client.list_voices = AsyncMock(side_effect=httpx.ConnectError("down"))
    voices = await service_factory(client).list_voices()
    assert len(voices) == len(FALLBACK_VOICES)


async def test_delete_voiceover_removes_file(service_factory, creator, storage, voiceover_repository):
    service = service_factory(_fake_client())
    result = await service.create_voiceover(creator.id, VoiceoverCreate(script="hi", voice_id="rachel"))
    path = storage.root / audio_key(creator.id, result.voiceover_id)
    assert path.exists()

    assert await service.delete_voiceover(creator.id, result.voiceover_id) is True
    assert not path.exists()
    assert await service.delete_voiceover(creator.id, result.voiceover_id) is False


# ── API ──────────────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client(app_factory, creator, service_factory, voiceover_repository):
    from src.copilot.api.v1.voiceovers import router

    app = app_factory(
        router,
        user=creator,
        voiceover_service=service_factory(_fake_client()),
        voiceover_repository=voiceover_repository,
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def test_create_voiceover_endpoint(client):
    response = await client.post(
        "/api/v1/voiceovers", json={"script": _script(30), "voice_id": "rachel"}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["estimated_minutes"] == pytest.approx(0.2)
    assert data["audio_url"].startswith("http://test/media/voiceovers/")


async def test_create_voiceover_endpoint_limit_is_403(client):
    response = await client.post(
        "/api/v1/voiceovers", json={"script": _script(400), "voice_id": "rachel"}
    )
    assert response.status_code == 403
    assert response.json()["detail"]["resource"] == "voiceover_minutes"


async def test_create_voiceover_requires_script(client):
    response = await client.post("/api/v1/voiceovers", json={"script": "", "voice_id": "rachel"})
    assert response.status_code == 422


async def test_voices_endpoint(client):
    response = await client.get("/api/v1/voiceovers/voices")
    assert response.status_code == 200
    assert response.json()[0]["voice_id"] == "v1"


async def test_voiceover_history_and_delete(client):
    created = await client.post("/api/v1/voiceovers", json={"script": "hello", "voice_id": "rachel"})
    voiceover_id = created.json()["voiceover_id"]

    listed = await client.get("/api/v1/voiceovers")
    assert [v["id"] for v in listed.json()] == [voiceover_id]
    assert listed.json()[0]["status"] == "completed"

    assert (await client.get(f"/api/v1/voiceovers/{voiceover_id}")).status_code == 200
    assert (await client.delete(f"/api/v1/voiceovers/{voiceover_id}")).status_code == 204
    assert (await client.get(f"/api/v1/voiceovers/{voiceover_id}")).status_code == 404


async def test_provider_failure_is_502(app_factory, creator, service_factory, voiceover_repository):
    from src.copilot.api.v1.voiceovers import router

    app = app_factory(
        router,
        user=creator,
        voiceover_service=service_factory(None),
        voiceover_repository=voiceover_repository,
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.post("/api/v1/voiceovers", json={"script": "hello", "voice_id": "rachel"})
    assert response.status_code == 502
