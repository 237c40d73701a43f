"""Dashboard stats endpoint."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

from httpx import ASGITransport, AsyncClient

from src.copilot.api.v1.dashboard import router
from src.copilot.usage.service import UsageService


def _counter(method: str, value: int) -> MagicMock:
    repository = MagicMock()
    setattr(repository, method, AsyncMock(return_value=value))
    return repository


async def test_dashboard_stats(app_factory, creator, profile_repository):
    await profile_repository.increment_usage(creator.id, "voiceover_minutes", 1.5)
    app = app_factory(
        router,
        user=creator,
        content_repository=_counter("count_content", 4),
        voiceover_repository=_counter("count_voiceovers", 2),
        video_repository=_counter("count_projects", 0),
        campaign_repository=_counter("count_creator_applications", 3),
        usage_service=UsageService(profile_repository),
    )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/dashboard/stats")

    assert response.status_code == 200
    body = response.json()
    assert body["tier"] == "free"
    assert body["is_pro"] is False
    assert body["counts"] == {"content": 4, "voiceovers": 2, "videos": 0, "campaign_applications": 3}
    assert body["usage"]["resources"]["voiceover_minutes"]["remaining"] == 0.5
    app.state.content_repository.count_content.assert_awaited_once_with(creator.id)


async def test_dashboard_unavailable(app_factory, creator, profile_repository):
    app = app_factory(router, user=creator, usage_service=UsageService(profile_repository))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/dashboard/stats")
    assert response.status_code == 503
