"""
Billing API routes.

Minimal surface:
- POST /api/stripe/webhook: Handle Stripe webhooks
- GET  /api/stripe/webhook: Endpoint readiness
- POST /api/stripe/checkout: Create checkout session
- POST /api/stripe/portal: Create portal session
"""
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from shopmatch.api.deps import get_auth_context, get_billing_service
from shopmatch.core.auth import AuthContext
from shopmatch.core.errors import AppError
from shopmatch.core.logging import log_event
from shopmatch.features.billing.provider import BillingProviderError, BillingWebhookError
from shopmatch.features.billing.service import BillingService


router = APIRouter(prefix="/stripe", tags=["billing"])


class CheckoutRequest(BaseModel):
    """Optional redirect overrides; defaults derive from APP_BASE_URL."""
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class CheckoutResponse(BaseModel):
    url: str
    session_id: str


class PortalRequest(BaseModel):
    return_url: Optional[str] = None


class PortalResponse(BaseModel):
    url: str


class BillingProviderFailure(AppError):
    code = "billing_provider_error"
    status_code = 500


@router.post("/webhook")
async def stripe_webhook(request: Request, service: BillingService = Depends(get_billing_service)):
    """
    Handle Stripe webhook deliveries.

    The signature is checked over the raw body before anything is parsed.

    Returns:
        200 {"received": true} for every verified event, applied or not
        400 {"error": "Missing signature" | "Invalid signature" | "Invalid payload"}
        503 when no webhook secret is configured
    """
    body = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        event, outcome = await run_in_threadpool(service.process_webhook_event, body, signature)
    except BillingWebhookError as e:
        log_event(
            "warning",
            "billing.webhook.rejected",
            error_code=type(e).__name__,
            extra={"reason": str(e)},
        )
        return JSONResponse(status_code=400, content={"error": e.message})

    log_event(
        "info",
        "billing.webhook.processed",
        event_id=event.id,
        event_type=event.type,
        extra={"outcome": outcome},
    )
    return {"received": True}


@router.get("/webhook")
def stripe_webhook_info(service: BillingService = Depends(get_billing_service)):
    return {
        "message": "Stripe webhook endpoint ready",
        "configured": service.webhook_enabled(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "note": "Use POST method for webhook events",
    }


@router.post("/checkout", response_model=CheckoutResponse)
def create_checkout(
    payload: Optional[CheckoutRequest] = None,
    auth: AuthContext = Depends(get_auth_context),
    service: BillingService = Depends(get_billing_service),
):
    """
    Create a Stripe checkout session for the Pro subscription.

    Errors:
        401: Not authenticated
        503: Billing disabled (STRIPE_SECRET_KEY or price not set)
        500: Stripe API error
    """
    payload = payload or CheckoutRequest()
    try:
        session = service.start_checkout(
            user_id=auth.uid,
            success_url=payload.success_url,
            cancel_url=payload.cancel_url,
        )
    except BillingProviderError as e:
        log_event("error", "billing.checkout.failed", user_id=auth.uid, extra={"error": e})
        raise BillingProviderFailure("Failed to create checkout session")
    return {"url": session.url, "session_id": session.session_id}


@router.post("/portal", response_model=PortalResponse)
def create_portal(
    payload: Optional[PortalRequest] = None,
    auth: AuthContext = Depends(get_auth_context),
    service: BillingService = Depends(get_billing_service),
):
    """
    Create a Stripe billing portal session.

    Errors:
        400: No billing customer linked (checkout never completed)
        404: User document not found
        503: Billing disabled
        500: Stripe API error
    """
    payload = payload or PortalRequest()
    try:
        url = service.start_portal(user_id=auth.uid, return_url=payload.return_url)
    except BillingProviderError as e:
        log_event("error", "billing.portal.failed", user_id=auth.uid, extra={"error": e})
        raise BillingProviderFailure("Failed to create portal session")
    return {"url": url}
