"""
Entitlement drift report.

The webhook writes the claims store and the user document one after the
other, so a crash between them leaves the copies disagreeing on subActive
until the provider redelivers. This job lists such users. It never writes;
the fix is a provider resend of the latest subscription event.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from shopmatch.core.logging import log_event
from shopmatch.features.identity.claims_store import ClaimsStore, UserNotFoundError
from shopmatch.features.users.service import UserDirectory, utc_now


def run_reconcile_job(
    claims_store: ClaimsStore,
    user_directory: UserDirectory,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    drift = []
    checked = 0

    for document in user_directory.list_users():
        checked += 1
        try:
            claims = claims_store.get_user(document.user_id).custom_claims or {}
        except UserNotFoundError:
            claims = None

        if claims is None:
            issue = {
                "type": "identity_missing",
                "user_id": document.user_id,
                "document_sub_active": document.sub_active,
            }
        elif bool(claims.get("subActive", False)) != document.sub_active:
            issue = {
                "type": "sub_active_mismatch",
                "user_id": document.user_id,
                "claims_sub_active": bool(claims.get("subActive", False)),
                "document_sub_active": document.sub_active,
            }
        else:
            continue

        drift.append(issue)
        log_event(
            "warning",
            "billing.reconcile.drift",
            user_id=document.user_id,
            customer_id=document.stripe_customer_id,
            extra={"type": issue["type"]},
        )

    return {
        "checked": checked,
        "drift": drift,
        "timestamp": (now or utc_now()).isoformat(),
    }
