"""Async OAuth 2.0 client shared by all social platforms.

Builds authorize URLs, exchanges authorization codes, refreshes access
tokens and fetches the account profile. Differences between networks
(form vs query token requests, client credentials in the body vs HTTP
basic auth, PKCE) come from PlatformConfig.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.copilot.core.errors import ProviderError
from src.copilot.social.platforms import AccountProfile, PlatformConfig, parse_profile

logger = structlog.get_logger(__name__)

_oauth_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((httpx.ConnectError, httpx.TimeoutException)),
    reraise=True,
)


class SocialProviderError(ProviderError):
    provider = "social"


def token_expiry(expires_in, now: datetime | None = None) -> datetime | None:
    if not expires_in:
        return None
    now = now or datetime.now(timezone.utc)
    return now + timedelta(seconds=int(expires_in))


class OAuthClient:
    """Stateless OAuth helper; credentials are passed per call."""

    TIMEOUT = 15.0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.TIMEOUT, headers={"Accept": "application/json"})

    def authorize_url(
        self,
        config: PlatformConfig,
        client_id: str,
        redirect_uri: str,
        state: str,
        code_challenge: str | None = None,
    ) -> str:
        params = {
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": config.scope,
            "state": state,
            **config.extra_authorize_params,
        }
        if config.pkce and code_challenge:
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = "plain"
        return f"{config.authorize_url}?{urlencode(params)}"

    @_oauth_retry
    async def _token_request(
        self,
        config: PlatformConfig,
        client_id: str,
        client_secret: str,
        data: dict,
    ) -> dict:
        auth = None
        if config.basic_auth:
            auth = httpx.BasicAuth(client_id, client_secret)
            data = {**data, "client_id": client_id}
        else:
            data = {**data, "client_id": client_id, "client_secret": client_secret}

        async with self._client() as client:
            if config.token_method == "get":
                response = await client.get(config.token_url, params=data)
            else:
                response = await client.post(config.token_url, data=data, auth=auth)
            response.raise_for_status()
            payload = response.json()
        if not payload.get("access_token"):
            raise SocialProviderError(f"{config.platform.value} token response has no access_token")
        return {
            "access_token": payload["access_token"],
            "refresh_token": payload.get("refresh_token"),
            "token_type": payload.get("token_type", "bearer"),
            "scope": payload.get("scope"),
            "expires_at": token_expiry(payload.get("expires_in")),
        }

    async def exchange_code(
        self,
        config: PlatformConfig,
        code: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        code_verifier: str | None = None,
    ) -> dict:
        """Trade an authorization code for tokens.

        Returns:
            Dict with access_token, refresh_token, token_type, scope, expires_at.

        Raises:
            SocialProviderError: Exchange rejected or unreachable.
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        }
        if config.pkce and code_verifier:
            data["code_verifier"] = code_verifier
        try:
            tokens = await self._token_request(config, client_id, client_secret, data)
        except httpx.HTTPError as exc:
            status_code = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
            raise SocialProviderError(
                f"{config.platform.value} code exchange failed: {exc}", status_code
            ) from exc
        logger.info("social.code_exchanged", platform=config.platform.value)
        return tokens

    async def refresh(
        self,
        config: PlatformConfig,
        refresh_token: str,
        client_id: str,
        client_secret: str,
    ) -> dict:
        data = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        try:
            tokens = await self._token_request(config, client_id, client_secret, data)
        except httpx.HTTPError as exc:
            status_code = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
            raise SocialProviderError(
                f"{config.platform.value} token refresh failed: {exc}", status_code
            ) from exc
        # Some providers only return a new refresh token on rotation
        tokens["refresh_token"] = tokens["refresh_token"] or refresh_token
        return tokens

    @_oauth_retry
    async def _get_profile(self, config: PlatformConfig, access_token: str) -> dict:
        async with self._client() as client:
            response = await client.get(
                config.profile_url,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            response.raise_for_status()
            return response.json()

    async def fetch_profile(self, config: PlatformConfig, access_token: str) -> AccountProfile:
        try:
            data = await self._get_profile(config, access_token)
            return parse_profile(config.platform, data)
        except httpx.HTTPError as exc:
            status_code = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
            raise SocialProviderError(
                f"{config.platform.value} profile fetch failed: {exc}", status_code
            ) from exc
        except ValueError as exc:
            raise SocialProviderError(str(exc)) from exc
