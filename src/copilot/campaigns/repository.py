"""Campaign repository -- marketplace CRUD with the application rules.

Rules enforced here (and backed by RLS in the database):
- only active campaigns accept applications
- a brand cannot apply to its own campaign
- one application per (campaign, creator)
- only the owning brand updates a campaign or reviews its applications
- reviews move pending -> accepted | rejected, once

applications_count lives on the campaign row, which the applicant cannot
write under RLS, so it is incremented through the system session.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.copilot.campaigns.models import CampaignApplicationModel, CampaignModel
from src.copilot.campaigns.schemas import (
    ApplicationCreate,
    ApplicationNotFoundError,
    ApplicationRead,
    ApplicationStatus,
    CampaignClosedError,
    CampaignCreate,
    CampaignFilter,
    CampaignNotFoundError,
    CampaignRead,
    CampaignStatus,
    CampaignUpdate,
    DuplicateApplicationError,
    InvalidApplicationTransitionError,
    SelfApplicationError,
)

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]


def _model_to_campaign(model: CampaignModel) -> CampaignRead:
    return CampaignRead(
        id=str(model.id),
        brand_id=str(model.brand_id),
        title=model.title,
        description=model.description,
        budget=float(model.budget),
        niche=model.niche,
        requirements=list(model.requirements or []),
        status=CampaignStatus(model.status),
        applications_count=model.applications_count or 0,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_application(model: CampaignApplicationModel) -> ApplicationRead:
    return ApplicationRead(
        id=str(model.id),
        campaign_id=str(model.campaign_id),
        creator_id=str(model.creator_id),
        proposal=model.proposal,
        status=ApplicationStatus(model.status),
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class CampaignRepository:
    """Async CRUD for campaigns and applications.

    Args:
        session_factory: Yields user-scoped (RLS) sessions.
        system_session_factory: Yields RLS-bypassing sessions.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        system_session_factory: SessionFactory,
    ) -> None:
        self._session_factory = session_factory
        self._system_session_factory = system_session_factory

    # ── Campaigns ───────────────────────────────────────────────────────────

    async def create_campaign(self, brand_id: str, data: CampaignCreate) -> CampaignRead:
        async for session in self._session_factory():
            model = CampaignModel(
                brand_id=uuid.UUID(brand_id),
                title=data.title,
                description=data.description,
                budget=data.budget,
                niche=data.niche,
                requirements=data.requirements,
                status=CampaignStatus.ACTIVE.value,
                applications_count=0,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("campaign.created", campaign_id=str(model.id), brand_id=brand_id)
            return _model_to_campaign(model)

    async def get_campaign(self, campaign_id: str) -> CampaignRead | None:
        async for session in self._session_factory():
            model = await session.get(CampaignModel, uuid.UUID(campaign_id))
            return _model_to_campaign(model) if model else None

    async def list_campaigns(self, filters: CampaignFilter) -> list[CampaignRead]:
        """Marketplace listing, newest first."""
        async for session in self._session_factory():
            stmt = select(CampaignModel)
            if filters.status is not None:
                stmt = stmt.where(CampaignModel.status == filters.status.value)
            if filters.niche:
                stmt = stmt.where(func.lower(CampaignModel.niche) == filters.niche.lower())
            stmt = stmt.order_by(CampaignModel.created_at.desc()).limit(filters.limit)
            result = await session.execute(stmt)
            return [_model_to_campaign(m) for m in result.scalars().all()]

    async def list_brand_campaigns(self, brand_id: str) -> list[CampaignRead]:
        async for session in self._session_factory():
            result = await session.execute(
                select(CampaignModel)
                .where(CampaignModel.brand_id == uuid.UUID(brand_id))
                .order_by(CampaignModel.created_at.desc())
            )
            return [_model_to_campaign(m) for m in result.scalars().all()]

    async def update_campaign(
        self, brand_id: str, campaign_id: str, data: CampaignUpdate
    ) -> CampaignRead:
        """Raises CampaignNotFoundError unless brand_id owns the campaign."""
        values = data.model_dump(exclude_unset=True)
        if "status" in values and values["status"] is not None:
            values["status"] = CampaignStatus(values["status"]).value
        async for session in self._session_factory():
            model = await session.get(CampaignModel, uuid.UUID(campaign_id))
            if model is None or str(model.brand_id) != brand_id:
                raise CampaignNotFoundError(campaign_id)
            for field, value in values.items():
                setattr(model, field, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_campaign(model)

    # ── Applications ────────────────────────────────────────────────────────

    async def apply(
        self, creator_id: str, campaign_id: str, data: ApplicationCreate
    ) -> ApplicationRead:
        """Submit an application and bump the campaign's counter."""
        async for session in self._session_factory():
            campaign = await session.get(CampaignModel, uuid.UUID(campaign_id))
            if campaign is None:
                raise CampaignNotFoundError(campaign_id)
            if str(campaign.brand_id) == creator_id:
                raise SelfApplicationError(campaign_id)
            if campaign.status != CampaignStatus.ACTIVE.value:
                raise CampaignClosedError(campaign_id)

            existing = await session.execute(
                select(CampaignApplicationModel.id).where(
                    CampaignApplicationModel.campaign_id == campaign.id,
                    CampaignApplicationModel.creator_id == uuid.UUID(creator_id),
                )
            )
            if existing.scalar_one_or_none() is not None:
                raise DuplicateApplicationError(campaign_id)

            model = CampaignApplicationModel(
                campaign_id=campaign.id,
                creator_id=uuid.UUID(creator_id),
                proposal=data.proposal,
                status=ApplicationStatus.PENDING.value,
            )
            session.add(model)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise DuplicateApplicationError(campaign_id)
            await session.refresh(model)
            application = _model_to_application(model)

        await self._increment_applications(campaign_id)
        logger.info(
            "campaign.application_submitted",
            campaign_id=campaign_id,
            application_id=application.id,
        )
        return application

    async def _increment_applications(self, campaign_id: str) -> None:
        async for session in self._system_session_factory():
            await session.execute(
                update(CampaignModel)
                .where(CampaignModel.id == uuid.UUID(campaign_id))
                .values(applications_count=CampaignModel.applications_count + 1)
            )
            await session.commit()

    async def list_campaign_applications(
        self, brand_id: str, campaign_id: str
    ) -> list[ApplicationRead]:
        async for session in self._session_factory():
            campaign = await session.get(CampaignModel, uuid.UUID(campaign_id))
            if campaign is None or str(campaign.brand_id) != brand_id:
                raise CampaignNotFoundError(campaign_id)
            result = await session.execute(
                select(CampaignApplicationModel)
                .where(CampaignApplicationModel.campaign_id == campaign.id)
                .order_by(CampaignApplicationModel.created_at.desc())
            )
            return [_model_to_application(m) for m in result.scalars().all()]

    async def list_creator_applications(self, creator_id: str) -> list[ApplicationRead]:
        async for session in self._session_factory():
            result = await session.execute(
                select(CampaignApplicationModel)
                .where(CampaignApplicationModel.creator_id == uuid.UUID(creator_id))
                .order_by(CampaignApplicationModel.created_at.desc())
            )
            return [_model_to_application(m) for m in result.scalars().all()]

    async def review_application(
        self, brand_id: str, application_id: str, status: ApplicationStatus
    ) -> ApplicationRead:
        """Accept or reject a pending application on one of brand_id's campaigns."""
        if status == ApplicationStatus.PENDING:
            raise InvalidApplicationTransitionError("Cannot move an application back to pending")
        async for session in self._session_factory():
            application = await session.get(CampaignApplicationModel, uuid.UUID(application_id))
            if application is None:
                raise ApplicationNotFoundError(application_id)
            campaign = await session.get(CampaignModel, application.campaign_id)
            if campaign is None or str(campaign.brand_id) != brand_id:
                raise ApplicationNotFoundError(application_id)
            if application.status != ApplicationStatus.PENDING.value:
                raise InvalidApplicationTransitionError(
                    f"Application already {application.status}"
                )
            application.status = status.value
            await session.commit()
            await session.refresh(application)
            logger.info(
                "campaign.application_reviewed",
                application_id=application_id,
                status=status.value,
            )
            return _model_to_application(application)

    async def count_creator_applications(self, creator_id: str) -> int:
        async for session in self._session_factory():
            result = await session.execute(
                select(func.count()).select_from(CampaignApplicationModel).where(
                    CampaignApplicationModel.creator_id == uuid.UUID(creator_id),
                )
            )
            return result.scalar_one()
