"""Pydantic schemas for billing endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CheckoutRequest(BaseModel):
    price_id: str = Field(..., min_length=1)
    success_url: str | None = None
    cancel_url: str | None = None


class CheckoutResponse(BaseModel):
    session_id: str
    url: str


class PortalRequest(BaseModel):
    return_url: str | None = None


class PortalResponse(BaseModel):
    url: str


class SubscriptionRead(BaseModel):
    id: str
    status: str
    price_id: str | None = None
    tier: str = "free"
    quantity: int | None = None
    cancel_at_period_end: bool = False
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at: datetime | None = None
    canceled_at: datetime | None = None
    trial_end: datetime | None = None


class SubscriptionSummary(BaseModel):
    """Plan state as seen on the profile plus the Stripe subscription, if any."""

    tier: str
    status: str
    is_pro: bool
    trial_ends_at: datetime | None = None
    subscription: SubscriptionRead | None = None


class InvoiceRead(BaseModel):
    id: str
    subscription_id: str | None = None
    status: str | None = None
    currency: str | None = None
    amount_due: int | None = None
    amount_paid: int | None = None
    amount_remaining: int | None = None
    invoice_pdf: str | None = None
    hosted_invoice_url: str | None = None
    created_at: datetime | None = None


class PlanRead(BaseModel):
    price_id: str
    product_id: str | None = None
    name: str | None = None
    description: str | None = None
    unit_amount: int | None = None
    currency: str | None = None
    interval: str | None = None
    interval_count: int | None = None
    trial_period_days: int | None = None
    tier: str
    limits: dict[str, float]


class WebhookResult(BaseModel):
    received: bool = True
    event_type: str
    handled: bool
