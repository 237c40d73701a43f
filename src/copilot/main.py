"""FastAPI application factory.

Creates the app with user auth middleware, logging middleware, metrics
middleware, CORS, Sentry, lifespan wiring for repositories and provider
services, the local media mount, and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response
from fastapi.staticfiles import StaticFiles

from src.copilot.api.middleware.auth import UserAuthMiddleware
from src.copilot.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.copilot.api.v1.router import router as v1_router
from src.copilot.config import get_settings
from src.copilot.core.database import close_db, get_system_session, get_user_session, init_db
from src.copilot.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.copilot.core.redis import CatalogCache, close_redis, get_redis_pool


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, Sentry and services on startup, close on shutdown."""
    import structlog

    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    # ── Shared infrastructure ────────────────────────────────────────────
    # Each block is wrapped in its own try/except so one failing provider
    # does not prevent the application from starting. Routers answer 503
    # for anything left as None.

    try:
        redis_client = get_redis_pool()
        app.state.redis = redis_client
        app.state.catalog_cache = CatalogCache(redis_client)
    except Exception:
        log.warning("startup.redis_init_failed", exc_info=True)
        app.state.redis = None
        app.state.catalog_cache = CatalogCache(None)

    try:
        from src.copilot.profiles.repository import ProfileRepository
        from src.copilot.services.function_log import FunctionLogger
        from src.copilot.usage.service import UsageService

        profile_repository = ProfileRepository(get_user_session, get_system_session)
        app.state.profile_repository = profile_repository
        app.state.usage_service = UsageService(profile_repository)
        app.state.function_logger = FunctionLogger(get_system_session)
        log.info("startup.profiles_initialized")
    except Exception:
        log.warning("startup.profiles_init_failed", exc_info=True)
        app.state.profile_repository = None
        app.state.usage_service = None
        app.state.function_logger = None

    # ── Content generation (LiteLLM) ─────────────────────────────────────

    try:
        from src.copilot.content.generator import ContentGenerator
        from src.copilot.content.repository import ContentRepository
        from src.copilot.services.llm import get_llm_service

        llm_service = get_llm_service()
        content_repository = ContentRepository(get_user_session)
        app.state.llm_service = llm_service
        app.state.content_repository = content_repository
        app.state.content_generator = ContentGenerator(
            llm_service=llm_service,
            repository=content_repository,
            usage_service=app.state.usage_service,
            function_logger=app.state.function_logger,
        )
        log.info("startup.content_initialized", llm_available=llm_service.router is not None)
    except Exception:
        log.warning("startup.content_init_failed", exc_info=True)
        app.state.llm_service = None
        app.state.content_repository = None
        app.state.content_generator = None

    # ── Voiceovers (ElevenLabs) ──────────────────────────────────────────

    try:
        from src.copilot.services.storage import MediaStorage
        from src.copilot.voiceovers.elevenlabs import ElevenLabsClient
        from src.copilot.voiceovers.repository import VoiceoverRepository
        from src.copilot.voiceovers.service import VoiceoverService

        elevenlabs = None
        if settings.ELEVENLABS_API_KEY:
            elevenlabs = ElevenLabsClient(
                settings.ELEVENLABS_API_KEY, model_id=settings.ELEVENLABS_MODEL_ID
            )
        else:
            log.warning("startup.elevenlabs_not_configured")

        voiceover_repository = VoiceoverRepository(get_user_session)
        app.state.voiceover_repository = voiceover_repository
        app.state.voiceover_service = VoiceoverService(
            client=elevenlabs,
            repository=voiceover_repository,
            storage=MediaStorage(settings.MEDIA_ROOT, settings.MEDIA_BASE_URL),
            usage_service=app.state.usage_service,
            function_logger=app.state.function_logger,
            cache=app.state.catalog_cache,
        )
        log.info("startup.voiceovers_initialized", provider_configured=elevenlabs is not None)
    except Exception:
        log.warning("startup.voiceovers_init_failed", exc_info=True)
        app.state.voiceover_repository = None
        app.state.voiceover_service = None

    # ── Avatar videos (Tavus) ────────────────────────────────────────────

    try:
        from src.copilot.videos.poller import VideoStatusPoller
        from src.copilot.videos.repository import VideoRepository
        from src.copilot.videos.service import VideoService
        from src.copilot.videos.tavus import TavusClient

        video_repository = VideoRepository(get_user_session, get_system_session)
        tavus = None
        poller = None
        if settings.TAVUS_API_KEY:
            tavus = TavusClient(settings.TAVUS_API_KEY)
            poller = VideoStatusPoller(
                tavus,
                video_repository,
                interval_seconds=settings.VIDEO_POLL_INTERVAL_SECONDS,
                max_attempts=settings.VIDEO_POLL_MAX_ATTEMPTS,
            )
        else:
            log.warning("startup.tavus_not_configured")

        app.state.video_repository = video_repository
        app.state.video_poller = poller
        app.state.video_service = VideoService(
            client=tavus,
            repository=video_repository,
            poller=poller,
            usage_service=app.state.usage_service,
            function_logger=app.state.function_logger,
            cache=app.state.catalog_cache,
        )
        if poller is not None:
            resumed = await poller.resume_pending()
            log.info("startup.video_polling_resumed", projects=resumed)
        log.info("startup.videos_initialized", provider_configured=tavus is not None)
    except Exception:
        log.warning("startup.videos_init_failed", exc_info=True)
        app.state.video_repository = None
        app.state.video_poller = None
        app.state.video_service = None

    # ── Campaign marketplace ─────────────────────────────────────────────

    try:
        from src.copilot.campaigns.repository import CampaignRepository

        app.state.campaign_repository = CampaignRepository(get_user_session, get_system_session)
        log.info("startup.campaigns_initialized")
    except Exception:
        log.warning("startup.campaigns_init_failed", exc_info=True)
        app.state.campaign_repository = None

    # ── Billing (Stripe) ─────────────────────────────────────────────────

    try:
        from src.copilot.billing.repository import BillingRepository
        from src.copilot.billing.service import BillingService
        from src.copilot.billing.stripe_gateway import StripeGateway

        gateway = None
        if settings.STRIPE_SECRET_KEY:
            gateway = StripeGateway(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET)
        else:
            log.warning("startup.stripe_not_configured")

        app.state.billing_service = BillingService(
            gateway=gateway,
            repository=BillingRepository(get_user_session, get_system_session),
            profile_repository=app.state.profile_repository,
            function_logger=app.state.function_logger,
        )
        log.info("startup.billing_initialized", provider_configured=gateway is not None)
    except Exception:
        log.warning("startup.billing_init_failed", exc_info=True)
        app.state.billing_service = None

    # ── Social accounts ──────────────────────────────────────────────────

    try:
        from src.copilot.social.oauth import OAuthClient
        from src.copilot.social.repository import SocialRepository
        from src.copilot.social.service import SocialService

        if app.state.redis is None:
            raise RuntimeError("Redis is required for OAuth state")
        app.state.social_service = SocialService(
            oauth_client=OAuthClient(),
            repository=SocialRepository(get_user_session),
            redis_client=app.state.redis,
        )
        log.info("startup.social_initialized")
    except Exception:
        log.warning("startup.social_init_failed", exc_info=True)
        app.state.social_service = None

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    poller = getattr(app.state, "video_poller", None)
    if poller is not None:
        await poller.stop()
        log.info("shutdown.video_poller_stopped")

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Creator Copilot API",
        version="0.1.0",
        description="Content generation, voiceovers, avatar videos and brand campaigns for creators",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # User auth middleware (inner -- resolves user context from the JWT)
    app.add_middleware(UserAuthMiddleware)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    # Generated audio and other media served from local storage
    Path(settings.MEDIA_ROOT).mkdir(parents=True, exist_ok=True)
    app.mount("/media", StaticFiles(directory=settings.MEDIA_ROOT), name="media")

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
