"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready) checks. The
readiness check reports which provider integrations are configured, but
only the database and Redis decide whether the service is ready.
"""

from __future__ import annotations

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from src.copilot.config import get_settings
from src.copilot.core.database import get_engine
from src.copilot.core.redis import get_redis_pool

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check. No external dependencies are checked."""
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


def _provider_checks() -> dict:
    settings = get_settings()
    return {
        "llm": "ok" if settings.ANTHROPIC_API_KEY or settings.OPENAI_API_KEY else "no_keys",
        "elevenlabs": "ok" if settings.ELEVENLABS_API_KEY else "fallback",
        "tavus": "ok" if settings.TAVUS_API_KEY else "disabled",
        "stripe": "ok" if settings.STRIPE_SECRET_KEY else "disabled",
    }


async def _check_dependencies() -> dict:
    """Check database and Redis connectivity. Returns check results dict."""
    checks: dict = {"database": "ok", "redis": "ok"}

    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        checks["database"] = "error"
        checks["database_error"] = str(e)

    try:
        redis = get_redis_pool()
        pong = await redis.ping()
        if not pong:
            checks["redis"] = "error"
            checks["redis_error"] = "PING did not return PONG"
    except Exception as e:
        checks["redis"] = "error"
        checks["redis_error"] = str(e)

    checks.update(_provider_checks())
    return checks


@router.get("/health/ready")
async def readiness_check():
    """Readiness check: 200 when database and Redis respond, 503 otherwise."""
    checks = await _check_dependencies()
    all_healthy = checks.get("database") == "ok" and checks.get("redis") == "ok"

    return JSONResponse(
        status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if all_healthy else "degraded",
            "checks": checks,
        },
    )
