"""Per-platform OAuth endpoints and profile parsing.

Each supported network is described by a PlatformConfig: where to send
the user to authorize, where to exchange the code, which scopes to ask
for, and which endpoint returns the account profile with its audience
metrics. parse_profile() normalizes the profile payload of each network
into an AccountProfile.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class SocialPlatform(str, Enum):
    INSTAGRAM = "instagram"
    YOUTUBE = "youtube"
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    FACEBOOK = "facebook"


@dataclass(frozen=True)
class PlatformConfig:
    platform: SocialPlatform
    authorize_url: str
    token_url: str
    scopes: tuple[str, ...]
    profile_url: str
    scope_separator: str = " "
    token_method: str = "post"  # "post" form body or "get" query string
    basic_auth: bool = False  # client credentials in Authorization header
    pkce: bool = False
    extra_authorize_params: dict[str, str] = field(default_factory=dict)

    @property
    def scope(self) -> str:
        return self.scope_separator.join(self.scopes)


PLATFORMS: dict[SocialPlatform, PlatformConfig] = {
    SocialPlatform.INSTAGRAM: PlatformConfig(
        platform=SocialPlatform.INSTAGRAM,
        authorize_url="https://api.instagram.com/oauth/authorize",
        token_url="https://api.instagram.com/oauth/access_token",
        scopes=("user_profile", "user_media"),
        profile_url="https://graph.instagram.com/me?fields=id,username,account_type,media_count,followers_count",
        scope_separator=",",
    ),
    SocialPlatform.YOUTUBE: PlatformConfig(
        platform=SocialPlatform.YOUTUBE,
        authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        scopes=("https://www.googleapis.com/auth/youtube.readonly",),
        profile_url="https://www.googleapis.com/youtube/v3/channels?part=snippet,statistics&mine=true",
        extra_authorize_params={"access_type": "offline", "prompt": "consent"},
    ),
    SocialPlatform.TWITTER: PlatformConfig(
        platform=SocialPlatform.TWITTER,
        authorize_url="https://twitter.com/i/oauth2/authorize",
        token_url="https://api.twitter.com/2/oauth2/token",
        scopes=("tweet.read", "users.read", "follows.read", "offline.access"),
        profile_url="https://api.twitter.com/2/users/me?user.fields=public_metrics,profile_image_url",
        basic_auth=True,
        pkce=True,
    ),
    SocialPlatform.LINKEDIN: PlatformConfig(
        platform=SocialPlatform.LINKEDIN,
        authorize_url="https://www.linkedin.com/oauth/v2/authorization",
        token_url="https://www.linkedin.com/oauth/v2/accessToken",
        scopes=("openid", "profile", "email"),
        profile_url="https://api.linkedin.com/v2/userinfo",
    ),
    SocialPlatform.FACEBOOK: PlatformConfig(
        platform=SocialPlatform.FACEBOOK,
        authorize_url="https://www.facebook.com/v18.0/dialog/oauth",
        token_url="https://graph.facebook.com/v18.0/oauth/access_token",
        scopes=("pages_read_engagement", "pages_show_list", "instagram_basic", "instagram_manage_insights"),
        profile_url="https://graph.facebook.com/v18.0/me?fields=id,name,picture",
        scope_separator=",",
        token_method="get",
    ),
}


def get_platform(name: str) -> PlatformConfig | None:
    """Config for a platform name, or None when unsupported."""
    try:
        return PLATFORMS[SocialPlatform(name.lower())]
    except ValueError:
        return None


@dataclass
class AccountProfile:
    """Normalized account profile with audience metrics."""

    platform_user_id: str
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    followers: int = 0
    engagement_rate: float = 0.0
    reach: int = 0
    impressions: int = 0
    raw: dict = field(default_factory=dict)


def _int(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def parse_profile(platform: SocialPlatform, data: dict) -> AccountProfile:
    """Map a platform's profile response onto AccountProfile.

    Raises:
        ValueError: The payload carries no account id.
    """
    if platform == SocialPlatform.YOUTUBE:
        items = data.get("items") or []
        if not items:
            raise ValueError("No YouTube channel on this account")
        channel = items[0]
        snippet = channel.get("snippet") or {}
        stats = channel.get("statistics") or {}
        thumbnails = snippet.get("thumbnails") or {}
        return AccountProfile(
            platform_user_id=str(channel["id"]),
            username=snippet.get("customUrl") or snippet.get("title"),
            display_name=snippet.get("title"),
            avatar_url=(thumbnails.get("default") or {}).get("url"),
            followers=_int(stats.get("subscriberCount")),
            impressions=_int(stats.get("viewCount")),
            raw=channel,
        )

    if platform == SocialPlatform.TWITTER:
        user = data.get("data") or {}
        if not user.get("id"):
            raise ValueError("No user in Twitter profile response")
        metrics = user.get("public_metrics") or {}
        return AccountProfile(
            platform_user_id=str(user["id"]),
            username=user.get("username"),
            display_name=user.get("name"),
            avatar_url=user.get("profile_image_url"),
            followers=_int(metrics.get("followers_count")),
            raw=user,
        )

    if platform == SocialPlatform.LINKEDIN:
        if not data.get("sub"):
            raise ValueError("No subject in LinkedIn userinfo response")
        return AccountProfile(
            platform_user_id=str(data["sub"]),
            username=data.get("email") or data.get("name"),
            display_name=data.get("name"),
            avatar_url=data.get("picture"),
            raw=data,
        )

    if not data.get("id"):
        raise ValueError(f"No account id in {platform.value} profile response")
    picture = data.get("picture")
    if isinstance(picture, dict):
        picture = (picture.get("data") or {}).get("url")
    return AccountProfile(
        platform_user_id=str(data["id"]),
        username=data.get("username") or data.get("name"),
        display_name=data.get("name") or data.get("username"),
        avatar_url=picture,
        followers=_int(data.get("followers_count")),
        raw=data,
    )
