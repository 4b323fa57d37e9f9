"""
Billing provider protocol.

Defines the interface for billing providers (Stripe, etc.) and the typed
event handed from webhook verification to the entitlement handlers.
"""
from typing import Protocol, Dict, Any, Optional
from dataclasses import dataclass, field


SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"
CHECKOUT_COMPLETED = "checkout.session.completed"


@dataclass(frozen=True)
class BillingEvent:
    """A verified billing provider event."""
    id: str
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)  # data.object

    @property
    def customer_id(self) -> Optional[str]:
        customer = self.payload.get("customer")
        # expanded customers arrive as objects
        if isinstance(customer, dict):
            return customer.get("id")
        return customer

    @property
    def object_id(self) -> Optional[str]:
        return self.payload.get("id")

    @property
    def status(self) -> Optional[str]:
        return self.payload.get("status")


@dataclass(frozen=True)
class CheckoutSession:
    url: str
    session_id: str


class BillingProvider(Protocol):
    """
    Protocol for billing providers.

    Implementations must handle:
    - Checkout session creation
    - Portal session creation
    """

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
        """
        Create a subscription checkout session for the user.

        Args:
            user_id: Internal user ID (sent as client_reference_id)
            price_id: Provider price ID
            success_url: URL to redirect on success
            cancel_url: URL to redirect on cancellation
            customer_id: Existing provider customer to reuse
            customer_email: Prefill email when no customer exists yet
            metadata: Metadata attached to session and subscription
            idempotency_key: Provider-side idempotency key

        Returns:
            CheckoutSession with hosted URL and session id

        Raises:
            BillingProviderError: If session creation fails
        """
        ...

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        """
        Create a billing portal session for customer self-service.

        Returns:
            Portal session URL

        Raises:
            BillingProviderError: If portal session creation fails
        """
        ...


class BillingProviderError(Exception):
    """Base exception for billing provider errors."""
    pass


class BillingWebhookError(BillingProviderError):
    """Webhook could not be authenticated or decoded. Retrying the same input cannot succeed."""
    message = "Invalid webhook"


class MissingSignatureError(BillingWebhookError):
    message = "Missing signature"


class InvalidSignatureError(BillingWebhookError):
    message = "Invalid signature"


class InvalidPayloadError(BillingWebhookError):
    message = "Invalid payload"
