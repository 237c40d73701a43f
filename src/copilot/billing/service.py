"""Billing service -- checkout, portal and the Stripe webhook state machine.

Stripe is the source of truth for payment state. The webhook mirrors
customers, catalog, subscriptions and invoices locally and projects the
subscription onto the creator profile (tier, status, limits) so usage
checks never call Stripe.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import structlog

from src.copilot.billing.repository import BillingRepository
from src.copilot.billing.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    SubscriptionSummary,
    WebhookResult,
)
from src.copilot.billing.stripe_gateway import StripeGateway
from src.copilot.config import get_settings
from src.copilot.profiles.repository import ProfileRepository
from src.copilot.profiles.schemas import ProfileRead
from src.copilot.services.function_log import FunctionLogger
from src.copilot.usage.limits import effective_tier, is_pro, tier_from_price_id, tier_limits

logger = structlog.get_logger(__name__)


class NoCustomerError(LookupError):
    """The user has never started a checkout, so there is no Stripe customer."""


class WebhookNotConfiguredError(RuntimeError):
    pass


class WebhookProcessingError(RuntimeError):
    pass


def _timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _subscription_item(subscription: dict) -> dict:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _owns_profile_plan(profile: ProfileRead, subscription_id: str, status: str) -> bool:
    """Whether a subscription event may replace the plan shown on the profile.

    Events for an older subscription still get mirrored but must not
    downgrade a profile that has since moved to another subscription.
    """
    if status in ("active", "trialing"):
        return True
    return not profile.subscription_id or profile.subscription_id == subscription_id


def _invoice_subscription_id(invoice: dict) -> str | None:
    # Newer API versions moved the subscription under parent.subscription_details
    if invoice.get("subscription"):
        return invoice["subscription"]
    parent = invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return details.get("subscription")


class BillingService:
    """Stripe-backed plan purchase and webhook processing.

    Args:
        gateway: StripeGateway, or None when Stripe is not configured.
        repository: BillingRepository.
        profile_repository: Used to project subscriptions onto profiles.
        function_logger: Audit log for checkout sessions.
    """

    def __init__(
        self,
        gateway: StripeGateway | None,
        repository: BillingRepository,
        profile_repository: ProfileRepository,
        function_logger: FunctionLogger,
    ) -> None:
        self._gateway = gateway
        self._repository = repository
        self._profiles = profile_repository
        self._function_logger = function_logger
        self._handlers = {
            "customer.created": self._on_customer,
            "customer.updated": self._on_customer,
            "customer.subscription.created": self._on_subscription,
            "customer.subscription.updated": self._on_subscription,
            "customer.subscription.deleted": self._on_subscription,
            "invoice.paid": self._on_invoice,
            "invoice.payment_failed": self._on_invoice,
            "product.created": self._on_product,
            "product.updated": self._on_product,
            "price.created": self._on_price,
            "price.updated": self._on_price,
        }

    @property
    def repository(self) -> BillingRepository:
        return self._repository

    def _require_gateway(self) -> StripeGateway:
        if self._gateway is None:
            raise WebhookNotConfiguredError("Stripe is not configured")
        return self._gateway

    # ── Checkout and portal ─────────────────────────────────────────────────

    async def _ensure_customer(self, profile: ProfileRead) -> str:
        customer_id = await self._repository.get_customer_id(profile.id)
        if customer_id:
            return customer_id
        gateway = self._require_gateway()
        customer_id = await gateway.create_customer(profile.email, profile.full_name, profile.id)
        await self._repository.upsert_customer(profile.id, customer_id, profile.email)
        return customer_id

    async def create_checkout(self, profile: ProfileRead, request: CheckoutRequest) -> CheckoutResponse:
        settings = get_settings()
        base = settings.APP_BASE_URL.rstrip("/")
        gateway = self._require_gateway()
        async with self._function_logger.track(
            "create_checkout_session", profile.id, {"price_id": request.price_id}
        ) as log_out:
            customer_id = await self._ensure_customer(profile)
            session = await gateway.create_checkout_session(
                customer_id=customer_id,
                price_id=request.price_id,
                success_url=request.success_url or f"{base}/app/dashboard?checkout=success",
                cancel_url=request.cancel_url or f"{base}/app/upgrade?checkout=canceled",
                user_id=profile.id,
            )
            log_out.update(session)
        return CheckoutResponse(**session)

    async def create_portal(self, profile: ProfileRead, return_url: str | None = None) -> str:
        """Raises NoCustomerError when the user has no Stripe customer."""
        gateway = self._require_gateway()
        customer_id = await self._repository.get_customer_id(profile.id)
        if not customer_id:
            raise NoCustomerError(profile.id)
        settings = get_settings()
        return await gateway.create_portal_session(
            customer_id,
            return_url or f"{settings.APP_BASE_URL.rstrip('/')}/app/dashboard",
        )

    async def subscription_summary(self, profile: ProfileRead) -> SubscriptionSummary:
        subscription = await self._repository.get_latest_subscription(profile.id)
        return SubscriptionSummary(
            tier=effective_tier(profile.subscription_tier, profile.subscription_status).value,
            status=profile.subscription_status,
            is_pro=is_pro(profile.subscription_tier, profile.subscription_status),
            trial_ends_at=profile.trial_ends_at,
            subscription=subscription,
        )

    # ── Webhook ─────────────────────────────────────────────────────────────

    async def handle_webhook(self, payload: bytes, signature: str) -> WebhookResult:
        """Verify, record and dispatch one Stripe event.

        Raises:
            WebhookNotConfiguredError: No webhook secret configured.
            WebhookSignatureError: Signature did not verify.
            WebhookProcessingError: A handler failed; the event is marked failed.
        """
        gateway = self._require_gateway()
        if not gateway.webhook_configured:
            raise WebhookNotConfiguredError("Stripe webhook secret is not configured")
        gateway.verify_webhook(payload, signature)

        event = json.loads(payload)
        event_type = event.get("type", "")
        obj = (event.get("data") or {}).get("object") or {}
        row_id = await self._repository.record_event(event.get("id", ""), event_type, event)
        logger.info("billing.webhook_received", event_id=event.get("id"), event_type=event_type)

        handler = self._handlers.get(event_type)
        try:
            if handler is not None:
                await handler(obj, event_type)
            else:
                logger.info("billing.webhook_unhandled", event_type=event_type)
        except Exception as exc:
            await self._repository.mark_event(row_id, "failed", str(exc))
            logger.exception("billing.webhook_failed", event_type=event_type)
            raise WebhookProcessingError(str(exc)) from exc

        await self._repository.mark_event(row_id, "processed")
        return WebhookResult(event_type=event_type, handled=handler is not None)

    async def _on_customer(self, customer: dict, event_type: str) -> None:
        user_id = (customer.get("metadata") or {}).get("user_id")
        if not user_id:
            logger.warning("billing.customer_without_user", customer_id=customer.get("id"))
            return
        await self._repository.upsert_customer(user_id, customer["id"], customer.get("email"))

    async def _resolve_user(self, customer_id: str | None, metadata: dict | None) -> str | None:
        if customer_id:
            user_id = await self._repository.find_user_by_customer(customer_id)
            if user_id:
                return user_id
        return (metadata or {}).get("user_id")

    async def _on_subscription(self, subscription: dict, event_type: str) -> None:
        user_id = await self._resolve_user(subscription.get("customer"), subscription.get("metadata"))
        if not user_id:
            logger.warning(
                "billing.unknown_customer",
                customer_id=subscription.get("customer"),
                event_type=event_type,
            )
            return

        item = _subscription_item(subscription)
        price_id = (item.get("price") or {}).get("id")
        status = subscription.get("status", "canceled")
        if event_type == "customer.subscription.deleted":
            status = "canceled"

        await self._repository.upsert_subscription({
            "id": subscription["id"],
            "user_id": user_id,
            "status": status,
            "price_id": price_id,
            "quantity": item.get("quantity"),
            "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
            "current_period_start": _timestamp(
                subscription.get("current_period_start") or item.get("current_period_start")
            ),
            "current_period_end": _timestamp(
                subscription.get("current_period_end") or item.get("current_period_end")
            ),
            "ended_at": _timestamp(subscription.get("ended_at")),
            "cancel_at": _timestamp(subscription.get("cancel_at")),
            "canceled_at": _timestamp(subscription.get("canceled_at")),
            "trial_start": _timestamp(subscription.get("trial_start")),
            "trial_end": _timestamp(subscription.get("trial_end")),
            "metadata_": subscription.get("metadata") or {},
        })

        profile = await self._profiles.lookup_profile(user_id)
        if profile is None:
            return
        if not _owns_profile_plan(profile, subscription["id"], status):
            logger.info(
                "billing.stale_subscription_ignored",
                user_id=user_id,
                subscription_id=subscription["id"],
                current_subscription_id=profile.subscription_id,
                status=status,
            )
            return

        tier = effective_tier(tier_from_price_id(price_id).value, status)
        await self._profiles.apply_subscription(
            user_id,
            tier=tier.value,
            status=status,
            subscription_id=subscription["id"],
            trial_ends_at=_timestamp(subscription.get("trial_end")),
            usage_limits=tier_limits(tier),
        )
        logger.info(
            "billing.subscription_synced",
            user_id=user_id,
            subscription_id=subscription["id"],
            tier=tier.value,
            status=status,
        )

    async def _on_invoice(self, invoice: dict, event_type: str) -> None:
        user_id = await self._resolve_user(invoice.get("customer"), invoice.get("metadata"))
        if not user_id:
            logger.warning(
                "billing.unknown_customer",
                customer_id=invoice.get("customer"),
                event_type=event_type,
            )
            return
        values = {
            "id": invoice["id"],
            "user_id": user_id,
            "subscription_id": _invoice_subscription_id(invoice),
            "status": invoice.get("status"),
            "currency": invoice.get("currency"),
            "amount_due": invoice.get("amount_due"),
            "amount_paid": invoice.get("amount_paid"),
            "amount_remaining": invoice.get("amount_remaining"),
            "invoice_pdf": invoice.get("invoice_pdf"),
            "hosted_invoice_url": invoice.get("hosted_invoice_url"),
        }
        if invoice.get("created"):
            values["created_at"] = _timestamp(invoice["created"])
        await self._repository.upsert_invoice(values)
        if event_type == "invoice.payment_failed":
            logger.warning("billing.payment_failed", user_id=user_id, invoice_id=invoice["id"])

    async def _on_product(self, product: dict, event_type: str) -> None:
        await self._repository.upsert_product({
            "id": product["id"],
            "active": bool(product.get("active", True)),
            "name": product.get("name"),
            "description": product.get("description"),
            "metadata_": product.get("metadata") or {},
        })

    async def _on_price(self, price: dict, event_type: str) -> None:
        recurring = price.get("recurring") or {}
        await self._repository.upsert_price({
            "id": price["id"],
            "product_id": price.get("product"),
            "active": bool(price.get("active", True)),
            "currency": price.get("currency"),
            "unit_amount": price.get("unit_amount"),
            "type": price.get("type"),
            "interval": recurring.get("interval"),
            "interval_count": recurring.get("interval_count"),
            "trial_period_days": recurring.get("trial_period_days"),
            "metadata_": price.get("metadata") or {},
        })
