"""
Billing service orchestrator.

Coordinates:
- Webhook processing (verify, then hand to the entitlement state machine)
- Checkout and portal session creation

All Stripe API calls are in stripe_provider.py; signature checks in verifier.py.
"""
import time
from typing import Callable, Optional, Tuple

from shopmatch.core.config import Settings
from shopmatch.core.errors import BillingDisabledError, NotFoundError, ValidationError
from shopmatch.core.logging import log_event
from shopmatch.core.metrics import billing_webhook_events_total, billing_webhook_failures_total
from shopmatch.features.billing.entitlements import EntitlementService
from shopmatch.features.billing.provider import (
    BillingEvent,
    BillingProvider,
    CheckoutSession,
)
from shopmatch.features.billing.stripe_provider import StripeProvider
from shopmatch.features.billing.verifier import verify_event
from shopmatch.features.identity.claims_store import ClaimsStore, UserNotFoundError
from shopmatch.features.users.service import UserDirectory


OUTCOME_FAILED = "failed"


class BillingService:
    def __init__(
        self,
        settings_obj: Settings,
        entitlements: EntitlementService,
        user_directory: UserDirectory,
        claims_store: ClaimsStore,
        provider: Optional[BillingProvider] = None,
        time_fn: Callable[[], float] = time.time,
    ):
        self.settings = settings_obj
        self.entitlements = entitlements
        self.user_directory = user_directory
        self.claims_store = claims_store
        self._provider = provider
        self.time_fn = time_fn

    def billing_enabled(self) -> bool:
        """Check if billing is enabled (Stripe configured)."""
        return self._provider is not None or bool(self.settings.STRIPE_SECRET_KEY)

    def webhook_enabled(self) -> bool:
        return bool(self.settings.STRIPE_WEBHOOK_SECRET)

    def get_provider(self) -> Optional[BillingProvider]:
        """Get billing provider if billing is enabled."""
        if self._provider is None and self.settings.STRIPE_SECRET_KEY:
            self._provider = StripeProvider(self.settings.STRIPE_SECRET_KEY)
        return self._provider

    def process_webhook_event(self, body: bytes, signature: Optional[str]) -> Tuple[BillingEvent, str]:
        """
        Verify and apply a billing webhook delivery.

        Verification failures propagate (BillingWebhookError) and nothing is
        applied. Once verified, a failure while applying is logged and counted
        but not raised; the delivery is still acknowledged.

        Returns:
            (event, outcome)

        Raises:
            BillingDisabledError: If no webhook secret is configured
            BillingWebhookError: If signature or payload is invalid
        """
        secret = self.settings.STRIPE_WEBHOOK_SECRET
        if not secret:
            raise BillingDisabledError("Stripe webhook secret is not configured")

        event = verify_event(body, signature, secret, tolerance=self.settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS)
        log_event("info", "billing.webhook.verified", event_id=event.id, event_type=event.type)

        try:
            outcome = self.entitlements.apply_event(event)
        except Exception as exc:
            outcome = OUTCOME_FAILED
            billing_webhook_failures_total.inc({"event_type": event.type})
            log_event(
                "error",
                "billing.webhook.apply_failed",
                event_id=event.id,
                event_type=event.type,
                customer_id=event.customer_id,
                error_code=type(exc).__name__,
                extra={"error": exc},
                exc_info=True,
            )

        billing_webhook_events_total.inc({"event_type": event.type, "outcome": outcome})
        return event, outcome

    def start_checkout(
        self,
        user_id: str,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> CheckoutSession:
        """
        Start a Pro subscription checkout for the user.

        Raises:
            BillingDisabledError: If Stripe or the Pro price is not configured
            BillingProviderError: If checkout creation fails
        """
        provider = self.get_provider()
        if not provider:
            raise BillingDisabledError("Stripe is not configured")

        price_id = self.settings.STRIPE_PRICE_ID_PRO
        if not price_id:
            raise BillingDisabledError("No Stripe price configured for the Pro plan")

        base_url = self.settings.APP_BASE_URL.rstrip("/")
        document = self.user_directory.get_user(user_id)
        customer_id = document.stripe_customer_id if document else None
        email = document.email if document else None
        if not customer_id and not email:
            try:
                email = self.claims_store.get_user(user_id).email
            except UserNotFoundError:
                email = None

        # per-attempt provider idempotency key
        idempotency_key = f"checkout_{user_id}_{int(self.time_fn() * 1000)}"
        session = provider.create_checkout_session(
            user_id=user_id,
            price_id=price_id,
            success_url=success_url or f"{base_url}/dashboard?success=true&session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=cancel_url or f"{base_url}/subscribe?canceled=true",
            customer_id=customer_id,
            customer_email=None if customer_id else email,
            metadata={"userId": user_id, "tier": "pro"},
            idempotency_key=idempotency_key,
        )
        log_event(
            "info",
            "billing.checkout.created",
            user_id=user_id,
            customer_id=customer_id,
            extra={"session_id": session.session_id},
        )
        return session

    def start_portal(self, user_id: str, return_url: Optional[str] = None) -> str:
        """
        Start billing portal session for customer self-service.

        Raises:
            BillingDisabledError: If Stripe is not configured
            NotFoundError: If the user has no document
            ValidationError: If no billing customer is linked yet
            BillingProviderError: If portal creation fails
        """
        provider = self.get_provider()
        if not provider:
            raise BillingDisabledError("Stripe is not configured")

        document = self.user_directory.get_user(user_id)
        if document is None:
            raise NotFoundError("User not found")
        if not document.stripe_customer_id:
            raise ValidationError("No billing account found. Complete checkout first.")

        base_url = self.settings.APP_BASE_URL.rstrip("/")
        return provider.create_portal_session(
            customer_id=document.stripe_customer_id,
            return_url=return_url or f"{base_url}/dashboard",
        )
