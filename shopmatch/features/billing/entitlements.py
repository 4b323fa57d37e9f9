"""
Subscription entitlement state machine.

Verified billing events move a user's `subActive` flag:

    created/updated + active|trialing  -> subActive = True
    created/updated + any other status -> unchanged
    deleted                            -> subActive = False
    checkout.session.completed         -> customer linkage only

Each transition writes the claims store first (read, merge, write back the
whole map so unrelated claims such as `role` survive), then mirrors the same
fields onto the user document. The two writes are not atomic; both are
idempotent, so a provider redelivery converges them.
"""
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from shopmatch.core.logging import log_event
from shopmatch.features.billing.linkage import CustomerLinkage, resolve_checkout_user_id
from shopmatch.features.billing.provider import (
    BillingEvent,
    CHECKOUT_COMPLETED,
    SUBSCRIPTION_CREATED,
    SUBSCRIPTION_DELETED,
    SUBSCRIPTION_UPDATED,
)
from shopmatch.features.identity.claims_store import ClaimsStore
from shopmatch.features.users.service import UserDirectory, UserDocument, utc_now


ENTITLING_STATUSES = frozenset({"active", "trialing"})

# apply_event outcomes, used as the metrics label
OUTCOME_GRANTED = "granted"
OUTCOME_REVOKED = "revoked"
OUTCOME_LINKED = "linked"
OUTCOME_IGNORED = "ignored"
OUTCOME_USER_NOT_FOUND = "user_not_found"


def is_entitling(status: Optional[str]) -> bool:
    return status in ENTITLING_STATUSES


class EntitlementService:
    def __init__(
        self,
        claims_store: ClaimsStore,
        user_directory: UserDirectory,
        linkage: Optional[CustomerLinkage] = None,
        now_fn: Callable[[], datetime] = utc_now,
    ):
        self.claims_store = claims_store
        self.user_directory = user_directory
        self.linkage = linkage or CustomerLinkage(user_directory)
        self.now_fn = now_fn

    def apply_event(self, event: BillingEvent) -> str:
        """Route a verified event to its transition and return the outcome."""
        if event.type in (SUBSCRIPTION_CREATED, SUBSCRIPTION_UPDATED):
            return self.handle_subscription_update(event)
        if event.type == SUBSCRIPTION_DELETED:
            return self.handle_subscription_deleted(event)
        if event.type == CHECKOUT_COMPLETED:
            return self.handle_checkout_completed(event)

        log_event("info", "billing.event.unhandled", event_id=event.id, event_type=event.type)
        return OUTCOME_IGNORED

    def handle_subscription_update(self, event: BillingEvent) -> str:
        status = event.status
        if not is_entitling(status):
            log_event(
                "info",
                "billing.subscription.not_entitling",
                event_id=event.id,
                event_type=event.type,
                customer_id=event.customer_id,
                extra={"subscription_id": event.object_id, "subscription_status": status},
            )
            return OUTCOME_IGNORED

        user = self._find_user(event)
        if user is None:
            return OUTCOME_USER_NOT_FOUND

        self._write_claims(
            user.user_id,
            {
                "subActive": True,
                "stripeCustomerId": event.customer_id,
                "subscriptionId": event.object_id,
            },
        )
        self.user_directory.update_document(
            user.user_id,
            sub_active=True,
            stripe_customer_id=event.customer_id,
            subscription_id=event.object_id,
            subscription_status=status,
        )
        log_event(
            "info",
            "billing.subscription.granted",
            user_id=user.user_id,
            customer_id=event.customer_id,
            event_id=event.id,
            event_type=event.type,
            extra={"subscription_status": status},
        )
        return OUTCOME_GRANTED

    def handle_subscription_deleted(self, event: BillingEvent) -> str:
        user = self._find_user(event)
        if user is None:
            return OUTCOME_USER_NOT_FOUND

        self._write_claims(user.user_id, {"subActive": False, "subscriptionId": None})
        self.user_directory.update_document(
            user.user_id,
            sub_active=False,
            subscription_id=None,
            subscription_status="canceled",
        )
        log_event(
            "info",
            "billing.subscription.revoked",
            user_id=user.user_id,
            customer_id=event.customer_id,
            event_id=event.id,
            event_type=event.type,
        )
        return OUTCOME_REVOKED

    def handle_checkout_completed(self, event: BillingEvent) -> str:
        user_id = resolve_checkout_user_id(event.payload)
        if self.linkage.link_customer(user_id, event.customer_id):
            return OUTCOME_LINKED
        return OUTCOME_IGNORED

    def _find_user(self, event: BillingEvent) -> Optional[UserDocument]:
        customer_id = event.customer_id
        user = self.user_directory.find_by_customer_id(customer_id) if customer_id else None
        if user is None:
            # checkout linkage may not have landed yet; the provider retries
            log_event(
                "info",
                "billing.subscription.user_not_found",
                customer_id=customer_id,
                event_id=event.id,
                event_type=event.type,
            )
        return user

    def _write_claims(self, user_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        existing = self.claims_store.get_user(user_id).custom_claims or {}
        merged = {
            **existing,
            **changes,
            "updatedAt": self.now_fn().isoformat(),
        }
        self.claims_store.set_custom_claims(user_id, merged)
        return merged
