"""
Stripe billing provider implementation.

Implements BillingProvider protocol using Stripe API. Webhook verification
lives in verifier.py since it needs only the signing secret.
"""
from typing import Dict, Any, Optional
import stripe

from shopmatch.features.billing.provider import (
    BillingProviderError,
    CheckoutSession,
)


class StripeProvider:
    """Stripe implementation of BillingProvider protocol."""

    def __init__(self, secret_key: Optional[str]):
        """
        Initialize Stripe provider.

        Args:
            secret_key: Stripe secret key (STRIPE_SECRET_KEY)
        """
        if not secret_key:
            raise BillingProviderError("STRIPE_SECRET_KEY not configured")

        self.secret_key = secret_key
        stripe.api_key = self.secret_key

    def create_checkout_session(
        self,
        user_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        customer_id: Optional[str] = None,
        customer_email: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> CheckoutSession:
        """Create Stripe subscription checkout session."""
        params: Dict[str, Any] = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": user_id,
            "metadata": metadata or {},
            "subscription_data": {"metadata": metadata or {}},
            "allow_promotion_codes": True,
        }
        # Reuse the linked customer; otherwise let Checkout create one
        if customer_id:
            params["customer"] = customer_id
        elif customer_email:
            params["customer_email"] = customer_email

        try:
            session = stripe.checkout.Session.create(idempotency_key=idempotency_key, **params)
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe checkout session creation failed: {e}") from e

        if not session.url:
            raise BillingProviderError("Stripe checkout session has no URL")
        return CheckoutSession(url=session.url, session_id=session.id)

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        """Create Stripe billing portal session."""
        try:
            session = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=return_url,
            )
            return session.url
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe portal session creation failed: {e}") from e
