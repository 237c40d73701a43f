"""Billing endpoints -- Stripe checkout, customer portal, subscription state.

The webhook is public (signature-verified) and listed in the auth skip
paths; everything else requires an authenticated creator.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from src.copilot.api.deps import get_current_user, get_state_service, provider_error
from src.copilot.billing.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    InvoiceRead,
    PlanRead,
    PortalRequest,
    PortalResponse,
    SubscriptionSummary,
    WebhookResult,
)
from src.copilot.billing.service import (
    NoCustomerError,
    WebhookNotConfiguredError,
    WebhookProcessingError,
)
from src.copilot.billing.stripe_gateway import BillingProviderError, WebhookSignatureError
from src.copilot.profiles.schemas import ProfileRead

router = APIRouter(prefix="/api/v1/billing", tags=["billing"])


def _get_billing_service(request: Request):
    return get_state_service(request, "billing_service", "Billing service")


def _not_configured() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Billing is not configured",
    )


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    body: CheckoutRequest,
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> CheckoutResponse:
    """Start a subscription checkout for the given price."""
    service = _get_billing_service(request)
    try:
        return await service.create_checkout(current_user, body)
    except WebhookNotConfiguredError:
        raise _not_configured()
    except BillingProviderError as exc:
        raise provider_error(exc)


@router.post("/portal", response_model=PortalResponse)
async def create_portal(
    request: Request,
    body: PortalRequest | None = None,
    current_user: ProfileRead = Depends(get_current_user),
) -> PortalResponse:
    service = _get_billing_service(request)
    try:
        url = await service.create_portal(current_user, body.return_url if body else None)
    except NoCustomerError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No billing account found. Start a subscription first.",
        )
    except WebhookNotConfiguredError:
        raise _not_configured()
    except BillingProviderError as exc:
        raise provider_error(exc)
    return PortalResponse(url=url)


@router.get("/subscription", response_model=SubscriptionSummary)
async def get_subscription(
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> SubscriptionSummary:
    service = _get_billing_service(request)
    return await service.subscription_summary(current_user)


@router.get("/invoices", response_model=list[InvoiceRead])
async def list_invoices(
    request: Request,
    limit: int = Query(24, ge=1, le=100),
    current_user: ProfileRead = Depends(get_current_user),
) -> list[InvoiceRead]:
    service = _get_billing_service(request)
    return await service.repository.list_invoices(current_user.id, limit=limit)


@router.get("/plans", response_model=list[PlanRead])
async def list_plans(
    request: Request,
    current_user: ProfileRead = Depends(get_current_user),
) -> list[PlanRead]:
    """Active prices mirrored from Stripe, with the limits each tier grants."""
    service = _get_billing_service(request)
    return await service.repository.list_plans()


@router.post("/webhook", response_model=WebhookResult)
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
) -> WebhookResult:
    """Receive a Stripe event.

    Signature failures return 400. Processing failures return 500 so
    Stripe retries the delivery.
    """
    service = _get_billing_service(request)
    if not stripe_signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe-Signature header",
        )
    payload = await request.body()
    try:
        return await service.handle_webhook(payload, stripe_signature)
    except WebhookNotConfiguredError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook secret not configured",
        )
    except WebhookSignatureError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook signature",
        )
    except WebhookProcessingError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        )
