"""Billing: Stripe webhook state machine, checkout, portal and API mapping.

Webhook payloads are signed with the same scheme Stripe uses
(t=<timestamp>,v1=<HMAC-SHA256>) so the real stripe library verifies
them. Checkout and portal use a mocked gateway.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from src.copilot.billing.schemas import CheckoutRequest, InvoiceRead, SubscriptionRead
from src.copilot.billing.service import (
    BillingService,
    NoCustomerError,
    WebhookNotConfiguredError,
    WebhookProcessingError,
)
from src.copilot.billing.stripe_gateway import StripeGateway, WebhookSignatureError
from src.copilot.config import get_settings
from src.copilot.usage.limits import tier_limits

WEBHOOK_SECRET = "whsec_test_secret"


def sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + payload
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def event(event_type: str, obj: dict) -> bytes:
    return json.dumps({
        "id": f"evt_{uuid.uuid4().hex[:12]}",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }).encode()


def subscription_obj(customer: str, price_id: str, status: str = "active", **extra) -> dict:
    return {
        "id": "sub_123",
        "object": "subscription",
        "customer": customer,
        "status": status,
        "items": {"data": [{"price": {"id": price_id}, "quantity": 1}]},
        "current_period_start": 1_700_000_000,
        "current_period_end": 1_702_592_000,
        "metadata": {},
        **extra,
    }


# ── In-Memory Test Doubles ───────────────────────────────────────────────────


class InMemoryBillingRepository:
    """In-memory BillingRepository for testing without database."""

    def __init__(self) -> None:
        self.customers: dict[str, str] = {}
        self.subscriptions: dict[str, dict] = {}
        self.invoices: dict[str, dict] = {}
        self.products: dict[str, dict] = {}
        self.prices: dict[str, dict] = {}
        self.events: dict[str, dict] = {}

    async def get_customer_id(self, user_id: str) -> str | None:
        return self.customers.get(user_id)

    async def find_user_by_customer(self, customer_id: str) -> str | None:
        for user_id, known in self.customers.items():
            if known == customer_id:
                return user_id
        return None

    async def upsert_customer(self, user_id: str, customer_id: str, email: str | None) -> None:
        self.customers[user_id] = customer_id

    async def upsert_product(self, values: dict) -> None:
        self.products[values["id"]] = values

    async def upsert_price(self, values: dict) -> None:
        self.prices[values["id"]] = values

    async def list_plans(self):
        return []

    async def upsert_subscription(self, values: dict) -> None:
        self.subscriptions[values["id"]] = values

    async def upsert_invoice(self, values: dict) -> None:
        self.invoices[values["id"]] = values

    async def get_latest_subscription(self, user_id: str) -> SubscriptionRead | None:
        for values in self.subscriptions.values():
            if values["user_id"] == user_id:
                return SubscriptionRead(id=values["id"], status=values["status"], price_id=values["price_id"])
        return None

    async def list_invoices(self, user_id: str, limit: int = 24) -> list[InvoiceRead]:
        return [
            InvoiceRead(id=v["id"], status=v["status"], amount_paid=v["amount_paid"])
            for v in self.invoices.values()
            if v["user_id"] == user_id
        ][:limit]

    async def record_event(self, event_id: str, event_type: str, payload: dict) -> str:
        row_id = str(uuid.uuid4())
        self.events[row_id] = {"event_id": event_id, "event_type": event_type, "status": "received"}
        return row_id

    async def mark_event(self, row_id: str, status: str, error_message: str | None = None) -> None:
        self.events[row_id].update(status=status, error_message=error_message)


@pytest.fixture(autouse=True)
def price_ids(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "STRIPE_PRO_PRICE_ID", "price_monthly_a")
    monkeypatch.setattr(settings, "STRIPE_STUDIO_PRICE_ID", "price_monthly_b")


@pytest.fixture
def billing_repository() -> InMemoryBillingRepository:
    return InMemoryBillingRepository()


@pytest.fixture
def gateway() -> StripeGateway:
    return StripeGateway("sk_test_123", WEBHOOK_SECRET)


@pytest.fixture
def service_factory(billing_repository, profile_repository, function_logger, gateway):
    def _make(gateway=gateway) -> BillingService:
        return BillingService(
            gateway=gateway,
            repository=billing_repository,
            profile_repository=profile_repository,
            function_logger=function_logger,
        )
    return _make


@pytest.fixture
def customer(creator, billing_repository) -> str:
    billing_repository.customers[creator.id] = "cus_abc"
    return "cus_abc"


# ── Signature verification ───────────────────────────────────────────────────


def test_verify_webhook_accepts_valid_signature(gateway):
    payload = event("product.created", {"id": "prod_1"})
    gateway.verify_webhook(payload, sign(payload))


def test_verify_webhook_rejects_wrong_secret(gateway):
    payload = event("product.created", {"id": "prod_1"})
    with pytest.raises(WebhookSignatureError):
        gateway.verify_webhook(payload, sign(payload, secret="whsec_other"))


def test_verify_webhook_rejects_missing_signature(gateway):
    with pytest.raises(WebhookSignatureError):
        gateway.verify_webhook(b"{}", "")


# ── Webhook state machine ────────────────────────────────────────────────────


async def test_subscription_created_upgrades_profile(service_factory, creator, customer, profile_repository):
    payload = event("customer.subscription.created", subscription_obj(customer, "price_monthly_a"))

    result = await service_factory().handle_webhook(payload, sign(payload))

    assert result.handled is True
    profile = profile_repository.profiles[creator.id]
    assert profile.subscription_tier == "pro"
    assert profile.subscription_status == "active"
    assert profile.subscription_id == "sub_123"
    assert profile.usage_limits == tier_limits("pro")


async def test_trialing_studio_subscription(service_factory, creator, customer, profile_repository):
    payload = event(
        "customer.subscription.updated",
        subscription_obj(customer, "price_monthly_b", status="trialing", trial_end=1_701_000_000),
    )

    await service_factory().handle_webhook(payload, sign(payload))

    profile = profile_repository.profiles[creator.id]
    assert profile.subscription_tier == "studio"
    assert profile.trial_ends_at is not None
    assert profile.usage_limits == tier_limits("studio")


async def test_deleted_subscription_falls_back_to_free(
    service_factory, creator, customer, profile_repository, billing_repository
):
    service = service_factory()
    created = event("customer.subscription.created", subscription_obj(customer, "price_monthly_a"))
    await service.handle_webhook(created, sign(created))

    deleted = event("customer.subscription.deleted", subscription_obj(customer, "price_monthly_a"))
    await service.handle_webhook(deleted, sign(deleted))

    profile = profile_repository.profiles[creator.id]
    assert profile.subscription_tier == "free"
    assert profile.subscription_status == "canceled"
    assert profile.usage_limits == tier_limits("free")
    assert billing_repository.subscriptions["sub_123"]["status"] == "canceled"


async def test_late_event_for_old_subscription_keeps_current_plan(
    service_factory, creator, customer, profile_repository, billing_repository
):
    service = service_factory()
    created = event(
        "customer.subscription.created",
        subscription_obj(customer, "price_monthly_b", id="sub_new"),
    )
    await service.handle_webhook(created, sign(created))

    deleted = event(
        "customer.subscription.deleted",
        subscription_obj(customer, "price_monthly_a", id="sub_old"),
    )
    await service.handle_webhook(deleted, sign(deleted))

    profile = profile_repository.profiles[creator.id]
    assert profile.subscription_tier == "studio"
    assert profile.subscription_status == "active"
    assert profile.subscription_id == "sub_new"
    assert billing_repository.subscriptions["sub_old"]["status"] == "canceled"


async def test_new_active_subscription_replaces_old_one(service_factory, creator, customer, profile_repository):
    service = service_factory()
    old = event("customer.subscription.created", subscription_obj(customer, "price_monthly_a", id="sub_old"))
    await service.handle_webhook(old, sign(old))

    new = event("customer.subscription.created", subscription_obj(customer, "price_monthly_b", id="sub_new"))
    await service.handle_webhook(new, sign(new))

    profile = profile_repository.profiles[creator.id]
    assert profile.subscription_id == "sub_new"
    assert profile.subscription_tier == "studio"


async def test_past_due_subscription_gets_free_limits(service_factory, creator, customer, profile_repository):
    payload = event(
        "customer.subscription.updated",
        subscription_obj(customer, "price_monthly_a", status="past_due"),
    )
    await service_factory().handle_webhook(payload, sign(payload))
    assert profile_repository.profiles[creator.id].usage_limits == tier_limits("free")


async def test_subscription_resolved_from_metadata(service_factory, creator, profile_repository):
    payload = event(
        "customer.subscription.created",
        subscription_obj("cus_unlinked", "price_monthly_a", metadata={"user_id": creator.id}),
    )
    await service_factory().handle_webhook(payload, sign(payload))
    assert profile_repository.profiles[creator.id].subscription_tier == "pro"


async def test_unknown_customer_is_ignored(service_factory, billing_repository):
    payload = event("customer.subscription.created", subscription_obj("cus_ghost", "price_monthly_a"))

    result = await service_factory().handle_webhook(payload, sign(payload))

    assert result.handled is True
    assert billing_repository.subscriptions == {}
    assert [e["status"] for e in billing_repository.events.values()] == ["processed"]


async def test_customer_created_links_user(service_factory, creator, billing_repository):
    payload = event("customer.created", {"id": "cus_new", "email": creator.email, "metadata": {"user_id": creator.id}})
    await service_factory().handle_webhook(payload, sign(payload))
    assert billing_repository.customers[creator.id] == "cus_new"


async def test_invoice_paid_is_mirrored(service_factory, creator, customer, billing_repository):
    payload = event("invoice.paid", {
        "id": "in_1",
        "customer": customer,
        "status": "paid",
        "amount_paid": 1900,
        "currency": "usd",
        "created": 1_700_000_000,
        "parent": {"subscription_details": {"subscription": "sub_123"}},
    })

    await service_factory().handle_webhook(payload, sign(payload))

    invoice = billing_repository.invoices["in_1"]
    assert invoice["subscription_id"] == "sub_123"
    assert invoice["amount_paid"] == 1900
    assert invoice["created_at"].year == 2023


async def test_catalog_events_are_mirrored(service_factory, billing_repository):
    service = service_factory()
    product = event("product.created", {"id": "prod_1", "name": "Pro", "active": True})
    price = event("price.created", {
        "id": "price_monthly_a",
        "product": "prod_1",
        "unit_amount": 1900,
        "currency": "usd",
        "type": "recurring",
        "recurring": {"interval": "month", "interval_count": 1},
    })
    await service.handle_webhook(product, sign(product))
    await service.handle_webhook(price, sign(price))

    assert billing_repository.products["prod_1"]["name"] == "Pro"
    assert billing_repository.prices["price_monthly_a"]["interval"] == "month"


async def test_unhandled_event_is_acknowledged(service_factory):
    payload = event("charge.refunded", {"id": "ch_1"})
    result = await service_factory().handle_webhook(payload, sign(payload))
    assert result.handled is False


async def test_handler_failure_marks_event_failed(service_factory, billing_repository):
    payload = event("product.created", {"name": "missing id"})

    with pytest.raises(WebhookProcessingError):
        await service_factory().handle_webhook(payload, sign(payload))

    recorded = list(billing_repository.events.values())
    assert recorded[0]["status"] == "failed"
    assert recorded[0]["error_message"]


async def test_webhook_without_secret(service_factory):
    service = service_factory(StripeGateway("sk_test_123", ""))
    with pytest.raises(WebhookNotConfiguredError):
        await service.handle_webhook(b"{}", "t=1,v1=abc")


async def test_webhook_bad_signature_not_recorded(service_factory, billing_repository):
    payload = event("product.created", {"id": "prod_1"})
    with pytest.raises(WebhookSignatureError):
        await service_factory().handle_webhook(payload, sign(payload, secret="whsec_wrong"))
    assert billing_repository.events == {}


# ── Checkout and portal ──────────────────────────────────────────────────────


def _mock_gateway() -> MagicMock:
    gateway = MagicMock()
    gateway.create_customer = AsyncMock(return_value="cus_created")
    gateway.create_checkout_session = AsyncMock(
        return_value={"session_id": "cs_1", "url": "https://checkout.stripe.test/cs_1"}
    )
    gateway.create_portal_session = AsyncMock(return_value="https://billing.stripe.test/p_1")
    return gateway


async def test_checkout_creates_customer_once(service_factory, creator, billing_repository, function_logger):
    gateway = _mock_gateway()
    service = service_factory(gateway)

    response = await service.create_checkout(creator, CheckoutRequest(price_id="price_monthly_a"))
    await service.create_checkout(creator, CheckoutRequest(price_id="price_monthly_a"))

    assert response.url == "https://checkout.stripe.test/cs_1"
    assert billing_repository.customers[creator.id] == "cus_created"
    gateway.create_customer.assert_awaited_once()
    kwargs = gateway.create_checkout_session.await_args.kwargs
    assert kwargs["customer_id"] == "cus_created"
    assert kwargs["success_url"].endswith("/app/dashboard?checkout=success")
    assert function_logger.records[-1]["function_name"] == "create_checkout_session"


async def test_portal_requires_customer(service_factory, creator):
    with pytest.raises(NoCustomerError):
        await service_factory(_mock_gateway()).create_portal(creator)


async def test_portal_for_existing_customer(service_factory, creator, customer):
    gateway = _mock_gateway()
    url = await service_factory(gateway).create_portal(creator, "https://app.test/back")
    assert url == "https://billing.stripe.test/p_1"
    gateway.create_portal_session.assert_awaited_once_with("cus_abc", "https://app.test/back")


async def test_checkout_without_stripe(service_factory, creator):
    with pytest.raises(WebhookNotConfiguredError):
        await service_factory(None).create_checkout(creator, CheckoutRequest(price_id="price_monthly_a"))


async def test_subscription_summary(service_factory, creator):
    summary = await service_factory().subscription_summary(creator)
    assert summary.tier == "free"
    assert summary.is_pro is False
    assert summary.subscription is None


# ── API ──────────────────────────────────────────────────────────────────────


@pytest.fixture
def api_factory(app_factory):
    from src.copilot.api.v1.billing import router

    def _make(service, user=None) -> AsyncClient:
        app = app_factory(router, user=user, billing_service=service)
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
    return _make


async def test_webhook_endpoint(api_factory, service_factory, creator, customer, profile_repository):
    payload = event("customer.subscription.created", subscription_obj(customer, "price_monthly_a"))
    async with api_factory(service_factory()) as client:
        response = await client.post(
            "/api/v1/billing/webhook",
            content=payload,
            headers={"Stripe-Signature": sign(payload), "Content-Type": "application/json"},
        )
    assert response.status_code == 200
    assert response.json() == {
        "received": True,
        "event_type": "customer.subscription.created",
        "handled": True,
    }
    assert profile_repository.profiles[creator.id].is_pro is True


async def test_webhook_endpoint_status_codes(api_factory, service_factory):
    payload = event("product.created", {"name": "missing id"})
    async with api_factory(service_factory()) as client:
        missing = await client.post("/api/v1/billing/webhook", content=payload)
        forged = await client.post(
            "/api/v1/billing/webhook",
            content=payload,
            headers={"Stripe-Signature": sign(payload, secret="whsec_wrong")},
        )
        failed = await client.post(
            "/api/v1/billing/webhook",
            content=payload,
            headers={"Stripe-Signature": sign(payload)},
        )
    assert missing.status_code == 400
    assert forged.status_code == 400
    assert failed.status_code == 500


async def test_webhook_endpoint_unconfigured_secret(api_factory, service_factory):
    payload = event("product.created", {"id": "prod_1"})
    async with api_factory(service_factory(StripeGateway("sk_test_123", ""))) as client:
        response = await client.post(
            "/api/v1/billing/webhook",
            content=payload,
            headers={"Stripe-Signature": sign(payload)},
        )
    assert response.status_code == 500


async def test_checkout_endpoint(api_factory, service_factory, creator):
    async with api_factory(service_factory(_mock_gateway()), creator) as client:
        response = await client.post("/api/v1/billing/checkout", json={"price_id": "price_monthly_a"})
    assert response.status_code == 200
    assert response.json()["session_id"] == "cs_1"


async def test_checkout_endpoint_without_stripe_503(api_factory, service_factory, creator):
    async with api_factory(service_factory(None), creator) as client:
        response = await client.post("/api/v1/billing/checkout", json={"price_id": "price_monthly_a"})
    assert response.status_code == 503


async def test_portal_endpoint_without_customer_404(api_factory, service_factory, creator):
    async with api_factory(service_factory(_mock_gateway()), creator) as client:
        response = await client.post("/api/v1/billing/portal")
    assert response.status_code == 404


async def test_subscription_and_invoices_endpoints(
    api_factory, service_factory, creator, customer, billing_repository
):
    service = service_factory()
    invoice = event("invoice.paid", {"id": "in_1", "customer": customer, "status": "paid", "amount_paid": 1900})
    await service.handle_webhook(invoice, sign(invoice))

    async with api_factory(service, creator) as client:
        summary = await client.get("/api/v1/billing/subscription")
        invoices = await client.get("/api/v1/billing/invoices")

    assert summary.json()["tier"] == "free"
    assert [i["id"] for i in invoices.json()] == ["in_1"]


async def test_billing_unavailable_503(app_factory, creator):
    from src.copilot.api.v1.billing import router

    app = app_factory(router, user=creator)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/billing/subscription")
    assert response.status_code == 503
