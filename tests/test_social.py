"""Social accounts: platform parsing, OAuth linking, sync, analytics and API."""

from __future__ import annotations

import csv
import io
import json
import uuid
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi import HTTPException
from httpx import ASGITransport, AsyncClient

from src.copilot.config import get_settings
from src.copilot.core.security import verify_oauth_state
from src.copilot.social.analytics import aggregate, export_filename, export_snapshots, range_start
from src.copilot.social.oauth import OAuthClient, SocialProviderError, token_expiry
from src.copilot.social.platforms import AccountProfile, SocialPlatform, get_platform, parse_profile
from src.copilot.social.schemas import (
    AnalyticsRange,
    ExportFormat,
    SnapshotRead,
    SocialAccountRead,
    StoredToken,
)
from src.copilot.social.service import (
    AccountNotFoundError,
    InvalidOAuthStateError,
    PlatformNotConfiguredError,
    SocialService,
    UnsupportedPlatformError,
)


# ── In-Memory Test Doubles ───────────────────────────────────────────────────


class FakeRedis:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        self.data[key] = value

    async def delete(self, key: str) -> int:
        return 1 if self.data.pop(key, None) is not None else 0

    async def getdel(self, key: str) -> str | None:
        return self.data.pop(key, None)


class InMemorySocialRepository:
    """In-memory SocialRepository for testing without database."""

    def __init__(self) -> None:
        self.tokens: dict[tuple[str, str], dict] = {}
        self.accounts: dict[tuple[str, str], SocialAccountRead] = {}
        self.snapshots: dict[tuple[str, str, date], SnapshotRead] = {}

    async def upsert_account(self, user_id, platform, tokens, profile: AccountProfile):
        self.tokens[(user_id, platform)] = dict(tokens)
        account = SocialAccountRead(
            id=str(uuid.uuid4()),
            platform=platform,
            platform_user_id=profile.platform_user_id,
            username=profile.username,
            followers=profile.followers,
            connected_at=datetime.now(timezone.utc),
        )
        self.accounts[(user_id, platform)] = account
        return account

    async def update_tokens(self, user_id, platform, tokens):
        self.tokens[(user_id, platform)].update(tokens)

    async def record_sync(self, user_id, platform, profile: AccountProfile):
        account = self.accounts[(user_id, platform)]
        self.accounts[(user_id, platform)] = account.model_copy(update={
            "followers": profile.followers,
            "last_synced_at": datetime.now(timezone.utc),
        })

    async def list_accounts(self, user_id):
        return [a for (uid, _), a in sorted(self.accounts.items()) if uid == user_id]

    async def list_tokens(self, user_id):
        return [
            StoredToken(platform=platform, **{k: t.get(k) for k in ("access_token", "refresh_token", "expires_at")})
            for (uid, platform), t in self.tokens.items()
            if uid == user_id
        ]

    async def delete_account(self, user_id, platform):
        self.tokens.pop((user_id, platform), None)
        return self.accounts.pop((user_id, platform), None) is not None

    async def upsert_snapshot(self, user_id, platform, profile: AccountProfile, snapshot_date=None):
        day = snapshot_date or datetime.now(timezone.utc).date()
        self.snapshots[(user_id, platform, day)] = SnapshotRead(
            platform=platform,
            snapshot_date=day,
            followers=profile.followers,
            engagement_rate=profile.engagement_rate,
            reach=profile.reach,
            impressions=profile.impressions,
        )

    async def list_snapshots(self, user_id, since, platform=None):
        return [
            s for (uid, p, day), s in sorted(self.snapshots.items())
            if uid == user_id and day >= since and (platform is None or p == platform)
        ]


def snapshot(platform: str, days_ago: int, followers: int, engagement: float = 2.0) -> SnapshotRead:
    return SnapshotRead(
        platform=platform,
        snapshot_date=datetime.now(timezone.utc).date() - timedelta(days=days_ago),
        followers=followers,
        engagement_rate=engagement,
        reach=followers * 3,
        impressions=followers * 10,
    )


@pytest.fixture(autouse=True)
def twitter_credentials(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "TWITTER_CLIENT_ID", "tw-client")
    monkeypatch.setattr(settings, "TWITTER_CLIENT_SECRET", "tw-secret")
    monkeypatch.setattr(settings, "LINKEDIN_CLIENT_ID", "")
    monkeypatch.setattr(settings, "LINKEDIN_CLIENT_SECRET", "")


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def social_repository() -> InMemorySocialRepository:
    return InMemorySocialRepository()


@pytest.fixture
def oauth_client() -> OAuthClient:
    client = OAuthClient()
    client.exchange_code = AsyncMock(return_value={
        "access_token": "at-1",
        "refresh_token": "rt-1",
        "token_type": "bearer",
        "scope": "tweet.read",
        "expires_at": datetime.now(timezone.utc) + timedelta(hours=2),
    })
    client.fetch_profile = AsyncMock(return_value=AccountProfile(
        platform_user_id="42", username="runner", followers=1200, engagement_rate=3.5,
    ))
    client.refresh = AsyncMock(return_value={
        "access_token": "at-2",
        "refresh_token": "rt-2",
        "expires_at": datetime.now(timezone.utc) + timedelta(hours=2),
    })
    return client


@pytest.fixture
def social_service(oauth_client, social_repository, fake_redis) -> SocialService:
    return SocialService(oauth_client, social_repository, fake_redis)


def _state_from(url: str) -> str:
    return parse_qs(urlparse(url).query)["state"][0]


# ── Platforms ────────────────────────────────────────────────────────────────


def test_get_platform_is_case_insensitive():
    assert get_platform("YouTube").platform == SocialPlatform.YOUTUBE
    assert get_platform("myspace") is None


def test_parse_youtube_profile():
    profile = parse_profile(SocialPlatform.YOUTUBE, {"items": [{
        "id": "UC1",
        "snippet": {"title": "Run Club", "customUrl": "@runclub", "thumbnails": {"default": {"url": "https://i/1"}}},
        "statistics": {"subscriberCount": "5400", "viewCount": "120000"},
    }]})
    assert profile.platform_user_id == "UC1"
    assert profile.username == "@runclub"
    assert profile.followers == 5400
    assert profile.impressions == 120000


def test_parse_twitter_profile():
    profile = parse_profile(SocialPlatform.TWITTER, {"data": {
        "id": "99", "username": "runner", "public_metrics": {"followers_count": 310},
    }})
    assert profile.followers == 310


def test_parse_facebook_picture():
    profile = parse_profile(SocialPlatform.FACEBOOK, {
        "id": "7", "name": "Page", "picture": {"data": {"url": "https://p/7"}},
    })
    assert profile.avatar_url == "https://p/7"


@pytest.mark.parametrize("platform,payload", [
    (SocialPlatform.YOUTUBE, {"items": []}),
    (SocialPlatform.TWITTER, {}),
    (SocialPlatform.LINKEDIN, {"name": "x"}),
    (SocialPlatform.INSTAGRAM, {"username": "x"}),
])
def test_parse_profile_without_id(platform, payload):
    with pytest.raises(ValueError):
        parse_profile(platform, payload)


def test_authorize_url_adds_pkce_for_twitter():
    config = get_platform("twitter")
    url = OAuthClient().authorize_url(config, "cid", "https://api/cb", "st", code_challenge="ch")
    query = parse_qs(urlparse(url).query)
    assert query["code_challenge"] == ["ch"]
    assert query["scope"] == ["tweet.read users.read follows.read offline.access"]


def test_authorize_url_youtube_extras():
    url = OAuthClient().authorize_url(get_platform("youtube"), "cid", "https://api/cb", "st", code_challenge="ch")
    query = parse_qs(urlparse(url).query)
    assert query["access_type"] == ["offline"]
    assert "code_challenge" not in query


def test_token_expiry():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert token_expiry(3600, now) == now + timedelta(hours=1)
    assert token_expiry(None, now) is None


# ── Analytics ────────────────────────────────────────────────────────────────


def test_aggregate_change_over_window():
    results = aggregate([
        snapshot("youtube", 10, 1000),
        snapshot("youtube", 0, 1250),
        snapshot("instagram", 0, 500),
    ])

    assert [r.platform for r in results] == ["instagram", "youtube"]
    youtube = results[1]
    assert youtube.metrics["followers"].current == 1250
    assert youtube.metrics["followers"].change == 250
    assert youtube.metrics["followers"].change_percent == 25.0
    assert len(youtube.chart_data) == 2
    assert results[0].metrics["followers"].change_percent == 0.0


def test_aggregate_from_zero_has_no_percent():
    results = aggregate([snapshot("twitter", 5, 0), snapshot("twitter", 0, 40)])
    assert results[0].metrics["followers"].change_percent == 0.0


def test_export_csv_and_json():
    rows = [snapshot("youtube", 0, 100)]

    body, media_type = export_snapshots(rows, ExportFormat.CSV)
    assert media_type == "text/csv"
    parsed = list(csv.DictReader(io.StringIO(body)))
    assert parsed[0]["platform"] == "youtube"
    assert parsed[0]["followers"] == "100"

    body, media_type = export_snapshots(rows, ExportFormat.JSON)
    assert media_type == "application/json"
    assert json.loads(body)[0]["followers"] == 100


def test_range_and_filename():
    today = date(2024, 3, 31)
    assert range_start(AnalyticsRange.WEEK, today) == date(2024, 3, 24)
    assert export_filename("all", ExportFormat.CSV, today) == "all-analytics-2024-03-31.csv"


# ── Service ──────────────────────────────────────────────────────────────────


async def test_connect_and_callback(social_service, creator, fake_redis, social_repository, oauth_client):
    connect = await social_service.connect(creator.id, "twitter")
    state = _state_from(connect.authorize_url)
    payload = verify_oauth_state(state, "twitter")
    assert payload["sub"] == creator.id
    assert f"u:{creator.id}:oauth_state:{payload['nonce']}" in fake_redis.data

    account = await social_service.callback("twitter", "code-1", state)

    assert account.platform == "twitter"
    assert account.followers == 1200
    assert fake_redis.data == {}
    verifier = oauth_client.exchange_code.await_args.kwargs["code_verifier"]
    assert verifier
    assert len(social_repository.snapshots) == 1


async def test_callback_state_is_single_use(social_service, creator):
    connect = await social_service.connect(creator.id, "twitter")
    state = _state_from(connect.authorize_url)
    await social_service.callback("twitter", "code-1", state)

    with pytest.raises(InvalidOAuthStateError):
        await social_service.callback("twitter", "code-1", state)


async def test_callback_rejects_state_for_other_platform(social_service, creator):
    connect = await social_service.connect(creator.id, "twitter")
    with pytest.raises(HTTPException) as exc_info:
        await social_service.callback("youtube", "code-1", _state_from(connect.authorize_url))
    assert exc_info.value.status_code == 400


async def test_connect_unsupported_or_unconfigured(social_service, creator):
    with pytest.raises(UnsupportedPlatformError):
        await social_service.connect(creator.id, "myspace")
    with pytest.raises(PlatformNotConfiguredError):
        await social_service.connect(creator.id, "linkedin")


async def test_disconnect(social_service, creator):
    connect = await social_service.connect(creator.id, "twitter")
    await social_service.callback("twitter", "code-1", _state_from(connect.authorize_url))

    await social_service.disconnect(creator.id, "twitter")

    assert await social_service.list_accounts(creator.id) == []
    with pytest.raises(AccountNotFoundError):
        await social_service.disconnect(creator.id, "twitter")


async def test_sync_refreshes_expired_token(social_service, creator, social_repository, oauth_client):
    profile = AccountProfile(platform_user_id="42", username="runner", followers=1000)
    await social_repository.upsert_account(creator.id, "twitter", {
        "access_token": "old",
        "refresh_token": "rt-1",
        "expires_at": datetime.now(timezone.utc) - timedelta(minutes=1),
    }, profile)

    result = await social_service.sync(creator.id)

    assert result.synced == 1
    assert result.results[0].followers == 1200
    oauth_client.refresh.assert_awaited_once()
    assert oauth_client.fetch_profile.await_args.args[1] == "at-2"
    assert social_repository.tokens[(creator.id, "twitter")]["access_token"] == "at-2"


async def test_sync_reports_failures_per_account(social_service, creator, social_repository, oauth_client):
    profile = AccountProfile(platform_user_id="1")
    await social_repository.upsert_account(creator.id, "twitter", {"access_token": "a"}, profile)
    await social_repository.upsert_account(creator.id, "youtube", {"access_token": "b"}, profile)
    oauth_client.fetch_profile.side_effect = [
        SocialProviderError("twitter profile fetch failed"),
        AccountProfile(platform_user_id="1", followers=80),
    ]

    result = await social_service.sync(creator.id)

    assert (result.synced, result.failed) == (1, 1)
    failed = next(r for r in result.results if r.status == "failed")
    assert "twitter" in failed.error


async def test_analytics_filters_platform(social_service, creator, social_repository):
    for platform in ("twitter", "youtube"):
        await social_repository.upsert_snapshot(
            creator.id, platform, AccountProfile(platform_user_id="1", followers=10)
        )

    everything = await social_service.analytics(creator.id)
    only_youtube = await social_service.analytics(creator.id, "youtube", AnalyticsRange.WEEK)

    assert len(everything.platforms) == 2
    assert [p.platform for p in only_youtube.platforms] == ["youtube"]
    with pytest.raises(UnsupportedPlatformError):
        await social_service.analytics(creator.id, "myspace")


# ── API ──────────────────────────────────────────────────────────────────────


@pytest.fixture
def api_factory(app_factory, social_service):
    from src.copilot.api.v1.social import router

    def _make(user=None) -> AsyncClient:
        app = app_factory(router, user=user, social_service=social_service)
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
    return _make


async def test_connect_and_callback_endpoints(api_factory, creator):
    async with api_factory(creator) as client:
        connect = await client.get("/api/v1/social/twitter/connect")
        assert connect.status_code == 200
        state = _state_from(connect.json()["authorize_url"])

    async with api_factory() as client:
        callback = await client.get(
            "/api/v1/social/callback/twitter", params={"code": "code-1", "state": state}
        )
        replay = await client.get(
            "/api/v1/social/callback/twitter", params={"code": "code-1", "state": state}
        )

    assert callback.status_code == 200
    assert "Twitter account has been connected" in callback.text
    assert replay.status_code == 400

    async with api_factory(creator) as client:
        accounts = await client.get("/api/v1/social/accounts")
    assert [a["platform"] for a in accounts.json()] == ["twitter"]


async def test_callback_error_and_missing_params(api_factory):
    async with api_factory() as client:
        denied = await client.get("/api/v1/social/callback/twitter", params={"error": "access_denied"})
        missing = await client.get("/api/v1/social/callback/twitter", params={"code": "c"})
    assert denied.status_code == 400
    assert "access_denied" in denied.json()["detail"]
    assert missing.status_code == 400


async def test_connect_unknown_platform_400(api_factory, creator):
    async with api_factory(creator) as client:
        response = await client.get("/api/v1/social/myspace/connect")
    assert response.status_code == 400


async def test_disconnect_missing_account_404(api_factory, creator):
    async with api_factory(creator) as client:
        response = await client.delete("/api/v1/social/accounts/twitter")
    assert response.status_code == 404


async def test_export_endpoint(api_factory, creator, social_repository):
    await social_repository.upsert_snapshot(
        creator.id, "twitter", AccountProfile(platform_user_id="1", followers=10)
    )
    async with api_factory(creator) as client:
        response = await client.get("/api/v1/social/analytics/export", params={"format": "csv"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="all-analytics-' in response.headers["content-disposition"]
    assert response.text.splitlines()[0] == "platform,snapshot_date,followers,engagement_rate,reach,impressions"


async def test_analytics_endpoint(api_factory, creator, social_repository):
    await social_repository.upsert_snapshot(
        creator.id, "twitter", AccountProfile(platform_user_id="1", followers=10)
    )
    async with api_factory(creator) as client:
        response = await client.get("/api/v1/social/analytics", params={"range": "7d"})
    body = response.json()
    assert body["range"] == "7d"
    assert body["platforms"][0]["metrics"]["followers"]["current"] == 10


async def test_social_unavailable_503(app_factory, creator):
    from src.copilot.api.v1.social import router

    app = app_factory(router, user=creator)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/api/v1/social/sync")
    assert response.status_code == 503
