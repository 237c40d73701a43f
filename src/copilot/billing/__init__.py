"""Subscription billing on Stripe.

StripeGateway wraps the stripe SDK, BillingRepository mirrors Stripe
objects locally, and BillingService runs checkout, the billing portal
and the webhook that keeps creator profiles on the right tier.
"""
