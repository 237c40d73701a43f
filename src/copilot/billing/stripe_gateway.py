"""Thin async wrapper over the official stripe library.

The stripe SDK is synchronous, so each call runs in a worker thread via
asyncio.to_thread. The secret key is passed per call rather than through
the global stripe.api_key so tests and multiple gateways do not interfere.
"""

from __future__ import annotations

import asyncio

import stripe
import structlog

from src.copilot.core.errors import ProviderError

logger = structlog.get_logger(__name__)


class BillingProviderError(ProviderError):
    provider = "stripe"


class WebhookSignatureError(Exception):
    """The Stripe-Signature header did not verify against the payload."""


class StripeGateway:
    """Checkout, billing portal and webhook verification.

    Args:
        secret_key: Stripe secret API key.
        webhook_secret: Signing secret of the webhook endpoint ("" disables webhooks).
    """

    def __init__(self, secret_key: str, webhook_secret: str = "") -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret

    @property
    def webhook_configured(self) -> bool:
        return bool(self._webhook_secret)

    def verify_webhook(self, payload: bytes, signature: str) -> None:
        """Check a webhook signature.

        Raises:
            WebhookSignatureError: Missing, malformed or invalid signature.
        """
        if not signature:
            raise WebhookSignatureError("No Stripe signature found")
        try:
            stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except ValueError as exc:
            raise WebhookSignatureError(f"Invalid payload: {exc}") from exc
        except stripe.SignatureVerificationError as exc:
            raise WebhookSignatureError(f"Webhook signature verification failed: {exc}") from exc

    async def create_customer(self, email: str, name: str | None, user_id: str) -> str:
        def _create() -> str:
            customer = stripe.Customer.create(
                api_key=self._secret_key,
                email=email,
                name=name,
                metadata={"user_id": user_id},
            )
            return customer.id

        customer_id = await self._call("create_customer", _create)
        logger.info("stripe.customer_created", user_id=user_id, customer_id=customer_id)
        return customer_id

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        user_id: str,
    ) -> dict:
        """Subscription-mode Checkout Session for one price.

        Returns:
            Dict with session_id and url.
        """
        def _create() -> dict:
            session = stripe.checkout.Session.create(
                api_key=self._secret_key,
                customer=customer_id,
                line_items=[{"price": price_id, "quantity": 1}],
                mode="subscription",
                success_url=success_url,
                cancel_url=cancel_url,
                allow_promotion_codes=True,
                billing_address_collection="required",
                customer_update={"address": "auto", "name": "auto"},
                metadata={"user_id": user_id},
            )
            return {"session_id": session.id, "url": session.url}

        result = await self._call("create_checkout_session", _create)
        logger.info(
            "stripe.checkout_created",
            user_id=user_id,
            session_id=result["session_id"],
            price_id=price_id,
        )
        return result

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        def _create() -> str:
            session = stripe.billing_portal.Session.create(
                api_key=self._secret_key,
                customer=customer_id,
                return_url=return_url,
            )
            return session.url

        return await self._call("create_portal_session", _create)

    async def _call(self, operation: str, fn):
        try:
            return await asyncio.to_thread(fn)
        except stripe.StripeError as exc:
            logger.error("stripe.call_failed", operation=operation, error=str(exc))
            raise BillingProviderError(
                f"Stripe {operation} failed: {exc.user_message or exc}",
                getattr(exc, "http_status", None),
            ) from exc
