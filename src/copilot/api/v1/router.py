"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.copilot.api.v1 import (
    auth,
    billing,
    campaigns,
    content,
    dashboard,
    health,
    profiles,
    social,
    videos,
    voiceovers,
)

router = APIRouter()

router.include_router(health.router)
router.include_router(auth.router)
router.include_router(profiles.router)
router.include_router(content.router)
router.include_router(voiceovers.router)
router.include_router(videos.router)
router.include_router(campaigns.router)
router.include_router(billing.router)
router.include_router(social.router)
router.include_router(dashboard.router)
