"""Billing repository -- Stripe mirror tables and the webhook event log.

Everything written here comes from Stripe (webhooks or checkout), so
writes use the system session. Per-user reads (subscription, invoices)
use the user session and are filtered by RLS as well as by user_id.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.copilot.billing.models import (
    BillingCustomerModel,
    BillingPriceModel,
    BillingProductModel,
    InvoiceModel,
    SubscriptionModel,
)
from src.copilot.billing.schemas import InvoiceRead, PlanRead, SubscriptionRead
from src.copilot.core.database import upsert_statement
from src.copilot.models.platform import WebhookEvent
from src.copilot.usage.limits import tier_from_price_id, tier_limits

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]


def _model_to_subscription(model: SubscriptionModel) -> SubscriptionRead:
    return SubscriptionRead(
        id=model.id,
        status=model.status,
        price_id=model.price_id,
        tier=tier_from_price_id(model.price_id).value,
        quantity=model.quantity,
        cancel_at_period_end=model.cancel_at_period_end,
        current_period_start=model.current_period_start,
        current_period_end=model.current_period_end,
        cancel_at=model.cancel_at,
        canceled_at=model.canceled_at,
        trial_end=model.trial_end,
    )


def _model_to_invoice(model: InvoiceModel) -> InvoiceRead:
    return InvoiceRead(
        id=model.id,
        subscription_id=model.subscription_id,
        status=model.status,
        currency=model.currency,
        amount_due=model.amount_due,
        amount_paid=model.amount_paid,
        amount_remaining=model.amount_remaining,
        invoice_pdf=model.invoice_pdf,
        hosted_invoice_url=model.hosted_invoice_url,
        created_at=model.created_at,
    )


class BillingRepository:
    """Async persistence for customers, catalog, subscriptions and invoices.

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

    # ── Customers ───────────────────────────────────────────────────────────

    async def get_customer_id(self, user_id: str) -> str | None:
        async for session in self._system_session_factory():
            model = await session.get(BillingCustomerModel, uuid.UUID(user_id))
            return model.customer_id if model else None

    async def find_user_by_customer(self, customer_id: str) -> str | None:
        async for session in self._system_session_factory():
            result = await session.execute(
                select(BillingCustomerModel.user_id).where(
                    BillingCustomerModel.customer_id == customer_id
                )
            )
            user_id = result.scalar_one_or_none()
            return str(user_id) if user_id else None

    async def upsert_customer(self, user_id: str, customer_id: str, email: str | None) -> None:
        stmt = upsert_statement(
            BillingCustomerModel,
            {"user_id": uuid.UUID(user_id), "customer_id": customer_id, "email": email},
            ("user_id",),
        )
        async for session in self._system_session_factory():
            await session.execute(stmt)
            await session.commit()

    # ── Catalog ─────────────────────────────────────────────────────────────

    async def upsert_product(self, values: dict) -> None:
        stmt = upsert_statement(BillingProductModel, values, ("id",))
        async for session in self._system_session_factory():
            await session.execute(stmt)
            await session.commit()

    async def upsert_price(self, values: dict) -> None:
        stmt = upsert_statement(BillingPriceModel, values, ("id",))
        async for session in self._system_session_factory():
            await session.execute(stmt)
            await session.commit()

    async def list_plans(self) -> list[PlanRead]:
        """Active recurring prices joined to their products, cheapest first."""
        async for session in self._system_session_factory():
            result = await session.execute(
                select(BillingPriceModel, BillingProductModel)
                .outerjoin(BillingProductModel, BillingProductModel.id == BillingPriceModel.product_id)
                .where(BillingPriceModel.active.is_(True))
                .order_by(BillingPriceModel.unit_amount.asc())
            )
            plans = []
            for price, product in result.all():
                if product is not None and not product.active:
                    continue
                tier = tier_from_price_id(price.id)
                plans.append(
                    PlanRead(
                        price_id=price.id,
                        product_id=price.product_id,
                        name=product.name if product else None,
                        description=product.description if product else None,
                        unit_amount=price.unit_amount,
                        currency=price.currency,
                        interval=price.interval,
                        interval_count=price.interval_count,
                        trial_period_days=price.trial_period_days,
                        tier=tier.value,
                        limits=tier_limits(tier),
                    )
                )
            return plans

    # ── Subscriptions and invoices ──────────────────────────────────────────

    async def upsert_subscription(self, values: dict) -> None:
        values = {**values, "user_id": uuid.UUID(str(values["user_id"]))}
        stmt = upsert_statement(SubscriptionModel, values, ("id",))
        async for session in self._system_session_factory():
            await session.execute(stmt)
            await session.commit()

    async def upsert_invoice(self, values: dict) -> None:
        values = {**values, "user_id": uuid.UUID(str(values["user_id"]))}
        stmt = upsert_statement(InvoiceModel, values, ("id",), keep=("created_at",))
        async for session in self._system_session_factory():
            await session.execute(stmt)
            await session.commit()

    async def get_latest_subscription(self, user_id: str) -> SubscriptionRead | None:
        async for session in self._session_factory():
            result = await session.execute(
                select(SubscriptionModel)
                .where(SubscriptionModel.user_id == uuid.UUID(user_id))
                .order_by(SubscriptionModel.created_at.desc())
                .limit(1)
            )
            model = result.scalar_one_or_none()
            return _model_to_subscription(model) if model else None

    async def list_invoices(self, user_id: str, limit: int = 24) -> list[InvoiceRead]:
        async for session in self._session_factory():
            result = await session.execute(
                select(InvoiceModel)
                .where(InvoiceModel.user_id == uuid.UUID(user_id))
                .order_by(InvoiceModel.created_at.desc())
                .limit(limit)
            )
            return [_model_to_invoice(m) for m in result.scalars().all()]

    # ── Webhook event log ───────────────────────────────────────────────────

    async def record_event(self, event_id: str, event_type: str, payload: dict) -> str:
        """Insert a received webhook event and return its row id."""
        async for session in self._system_session_factory():
            model = WebhookEvent(
                source="stripe",
                event_id=event_id,
                event_type=event_type,
                payload=payload,
                status="received",
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return str(model.id)

    async def mark_event(self, row_id: str, status: str, error_message: str | None = None) -> None:
        async for session in self._system_session_factory():
            await session.execute(
                update(WebhookEvent)
                .where(WebhookEvent.id == uuid.UUID(row_id))
                .values(
                    status=status,
                    error_message=error_message,
                    processed_at=datetime.now(timezone.utc),
                )
            )
            await session.commit()
