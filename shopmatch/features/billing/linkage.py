"""
Customer linkage.

A completed checkout is the only point where the billing customer id and the
internal user id appear together, so it is recorded on the user document for
the subscription handlers to look up later.
"""
from typing import Any, Dict, Optional

from shopmatch.core.logging import log_event
from shopmatch.features.users.service import UserDirectory


def resolve_checkout_user_id(session: Dict[str, Any]) -> Optional[str]:
    """Internal user id of a checkout session: client_reference_id, else metadata.userId."""
    user_id = session.get("client_reference_id")
    if user_id:
        return user_id
    metadata = session.get("metadata") or {}
    return metadata.get("userId") or None


class CustomerLinkage:
    def __init__(self, user_directory: UserDirectory):
        self.user_directory = user_directory

    def link_customer(self, user_id: Optional[str], stripe_customer_id: Optional[str]) -> bool:
        """
        Store stripe_customer_id on the user's document.

        Returns False (and logs) when either id is missing or the user has no
        document; entitlement is never touched here.
        """
        if not user_id or not stripe_customer_id:
            log_event(
                "info",
                "billing.link.skipped",
                user_id=user_id,
                customer_id=stripe_customer_id,
                extra={"reason": "missing_reference"},
            )
            return False

        if not self.user_directory.update_document(user_id, stripe_customer_id=stripe_customer_id):
            log_event(
                "warning",
                "billing.link.user_missing",
                user_id=user_id,
                customer_id=stripe_customer_id,
            )
            return False

        log_event("info", "billing.link.stored", user_id=user_id, customer_id=stripe_customer_id)
        return True
