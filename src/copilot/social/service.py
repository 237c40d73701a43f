"""Social service -- account linking, metric sync and analytics.

Linking flow:
1. connect() signs a state token (user id, platform, nonce) and stores the
   nonce in Redis under the user's key prefix.
2. The platform redirects to the public callback with code and state.
3. callback() verifies the state signature, consumes the nonce exactly
   once, exchanges the code, fetches the profile, and writes the token and
   a first snapshot as that user.
"""

from __future__ import annotations

import html
import secrets
from datetime import datetime, timezone

import redis.asyncio as aioredis
import structlog

from src.copilot.config import get_settings
from src.copilot.core.identity import scoped_user
from src.copilot.core.redis import UserRedis
from src.copilot.core.security import create_oauth_state, verify_oauth_state
from src.copilot.social.analytics import aggregate, export_filename, export_snapshots, range_start
from src.copilot.social.oauth import OAuthClient, SocialProviderError
from src.copilot.social.platforms import PlatformConfig, get_platform
from src.copilot.social.repository import SocialRepository
from src.copilot.social.schemas import (
    AnalyticsRange,
    AnalyticsResponse,
    ConnectResponse,
    ExportFormat,
    SocialAccountRead,
    StoredToken,
    SyncItem,
    SyncResponse,
)

logger = structlog.get_logger(__name__)


class UnsupportedPlatformError(ValueError):
    pass


class PlatformNotConfiguredError(ValueError):
    pass


class InvalidOAuthStateError(ValueError):
    pass


class AccountNotFoundError(LookupError):
    pass


def _state_key(nonce: str) -> str:
    return f"oauth_state:{nonce}"


def success_page(platform: str) -> str:
    name = html.escape(platform.capitalize())
    return f"""<!DOCTYPE html>
<html>
  <head><title>Authentication Successful</title></head>
  <body style="font-family: sans-serif; text-align: center; padding-top: 15vh;">
    <h1>Authentication Successful!</h1>
    <p>Your {name} account has been connected successfully.</p>
    <p>You can close this window and return to Creator Copilot.</p>
    <script>setTimeout(function () {{ window.close(); }}, 3000);</script>
  </body>
</html>
"""


class SocialService:
    """Links social accounts and keeps their metrics current.

    Args:
        oauth_client: OAuthClient for token and profile calls.
        repository: SocialRepository.
        redis_client: Redis connection used for one-time state nonces.
    """

    def __init__(
        self,
        oauth_client: OAuthClient,
        repository: SocialRepository,
        redis_client: aioredis.Redis,
    ) -> None:
        self._oauth = oauth_client
        self._repository = repository
        self._redis = redis_client

    def _config(self, platform: str) -> PlatformConfig:
        config = get_platform(platform)
        if config is None:
            raise UnsupportedPlatformError(f"Unsupported platform: {platform}")
        return config

    def _credentials(self, config: PlatformConfig) -> tuple[str, str]:
        client_id, client_secret = get_settings().oauth_credentials(config.platform.value)
        if not client_id or not client_secret:
            raise PlatformNotConfiguredError(
                f"{config.platform.value} OAuth is not configured"
            )
        return client_id, client_secret

    # ── Linking ─────────────────────────────────────────────────────────────

    async def connect(self, user_id: str, platform: str) -> ConnectResponse:
        config = self._config(platform)
        client_id, _ = self._credentials(config)
        settings = get_settings()

        state, nonce = create_oauth_state(user_id, config.platform.value)
        verifier = secrets.token_urlsafe(48)
        await UserRedis(self._redis, user_id).set(
            _state_key(nonce),
            verifier,
            ex=settings.OAUTH_STATE_EXPIRE_MINUTES * 60,
        )
        url = self._oauth.authorize_url(
            config,
            client_id,
            settings.oauth_redirect_uri(config.platform.value),
            state,
            code_challenge=verifier,
        )
        logger.info("social.connect_started", user_id=user_id, platform=config.platform.value)
        return ConnectResponse(platform=config.platform.value, authorize_url=url)

    async def callback(self, platform: str, code: str, state: str) -> SocialAccountRead:
        """Finish linking an account.

        Raises:
            UnsupportedPlatformError: Unknown platform.
            HTTPException(400): State signature invalid or expired.
            InvalidOAuthStateError: State nonce already used or unknown.
            SocialProviderError: Code exchange or profile fetch failed.
        """
        config = self._config(platform)
        payload = verify_oauth_state(state, config.platform.value)
        user_id = payload["sub"]

        verifier = await UserRedis(self._redis, user_id).pop(_state_key(payload["nonce"]))
        if verifier is None:
            raise InvalidOAuthStateError("OAuth state already used or expired")

        client_id, client_secret = self._credentials(config)
        tokens = await self._oauth.exchange_code(
            config,
            code,
            client_id,
            client_secret,
            get_settings().oauth_redirect_uri(config.platform.value),
            code_verifier=verifier,
        )
        profile = await self._oauth.fetch_profile(config, tokens["access_token"])

        with scoped_user(user_id):
            account = await self._repository.upsert_account(
                user_id, config.platform.value, tokens, profile
            )
            await self._repository.upsert_snapshot(user_id, config.platform.value, profile)
        return account

    async def list_accounts(self, user_id: str) -> list[SocialAccountRead]:
        return await self._repository.list_accounts(user_id)

    async def disconnect(self, user_id: str, platform: str) -> None:
        config = self._config(platform)
        removed = await self._repository.delete_account(user_id, config.platform.value)
        if not removed:
            raise AccountNotFoundError(f"No {config.platform.value} account connected")
        logger.info("social.account_disconnected", user_id=user_id, platform=config.platform.value)

    # ── Sync ────────────────────────────────────────────────────────────────

    async def _fresh_access_token(self, user_id: str, config: PlatformConfig, token: StoredToken) -> str:
        expired = token.expires_at is not None and token.expires_at <= datetime.now(timezone.utc)
        if not expired or not token.refresh_token:
            return token.access_token
        client_id, client_secret = self._credentials(config)
        tokens = await self._oauth.refresh(config, token.refresh_token, client_id, client_secret)
        await self._repository.update_tokens(user_id, config.platform.value, tokens)
        logger.info("social.token_refreshed", user_id=user_id, platform=config.platform.value)
        return tokens["access_token"]

    async def sync(self, user_id: str) -> SyncResponse:
        """Refresh metrics for every linked account.

        Per-account failures are reported in the response, not raised.
        """
        results: list[SyncItem] = []
        for token in await self._repository.list_tokens(user_id):
            config = get_platform(token.platform)
            if config is None:
                results.append(SyncItem(platform=token.platform, status="failed", error="Unsupported platform"))
                continue
            try:
                access_token = await self._fresh_access_token(user_id, config, token)
                profile = await self._oauth.fetch_profile(config, access_token)
            except (SocialProviderError, PlatformNotConfiguredError) as exc:
                logger.warning(
                    "social.sync_failed",
                    user_id=user_id,
                    platform=token.platform,
                    error=str(exc),
                )
                results.append(SyncItem(platform=token.platform, status="failed", error=str(exc)))
                continue
            await self._repository.record_sync(user_id, token.platform, profile)
            await self._repository.upsert_snapshot(user_id, token.platform, profile)
            results.append(
                SyncItem(platform=token.platform, status="synced", followers=profile.followers)
            )

        synced = sum(1 for r in results if r.status == "synced")
        logger.info("social.sync_completed", user_id=user_id, synced=synced, total=len(results))
        return SyncResponse(synced=synced, failed=len(results) - synced, results=results)

    # ── Analytics ───────────────────────────────────────────────────────────

    def _platform_filter(self, platform: str) -> str | None:
        if platform == "all":
            return None
        return self._config(platform).platform.value

    async def analytics(
        self, user_id: str, platform: str = "all", range_: AnalyticsRange = AnalyticsRange.MONTH
    ) -> AnalyticsResponse:
        snapshots = await self._repository.list_snapshots(
            user_id, range_start(range_), self._platform_filter(platform)
        )
        return AnalyticsResponse(range=range_, platforms=aggregate(snapshots))

    async def export(
        self,
        user_id: str,
        platform: str = "all",
        fmt: ExportFormat = ExportFormat.JSON,
        range_: AnalyticsRange = AnalyticsRange.MONTH,
    ) -> tuple[str, str, str]:
        """Returns (body, media_type, filename)."""
        snapshots = await self._repository.list_snapshots(
            user_id, range_start(range_), self._platform_filter(platform)
        )
        body, media_type = export_snapshots(snapshots, fmt)
        return body, media_type, export_filename(platform, fmt)
