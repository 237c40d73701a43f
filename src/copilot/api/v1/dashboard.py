"""Dashboard summary endpoint."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Request

from src.copilot.api.deps import get_current_user, get_state_service
from src.copilot.api.schemas.dashboard import DashboardCounts, DashboardStats
from src.copilot.profiles.schemas import ProfileRead

router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStats)
async def get_stats(
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> DashboardStats:
    """Totals across the creator's work plus this month's usage."""
    content = get_state_service(request, "content_repository", "Content storage")
    voiceovers = get_state_service(request, "voiceover_repository", "Voiceover storage")
    videos = get_state_service(request, "video_repository", "Video storage")
    campaigns = get_state_service(request, "campaign_repository", "Campaign marketplace")
    usage_service = get_state_service(request, "usage_service", "Usage service")

    user_id = current_user.id
    content_count, voiceover_count, video_count, application_count = await asyncio.gather(
        content.count_content(user_id),
        voiceovers.count_voiceovers(user_id),
        videos.count_projects(user_id),
        campaigns.count_creator_applications(user_id),
    )
    usage = await usage_service.summary(user_id)

    return DashboardStats(
        tier=usage.tier,
        is_pro=usage.is_pro,
        counts=DashboardCounts(
            content=content_count,
            voiceovers=voiceover_count,
            videos=video_count,
            campaign_applications=application_count,
        ),
        usage=usage,
    )
