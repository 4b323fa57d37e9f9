"""
Webhook event verification.

Stripe signs `"{timestamp}.{raw body}"` with HMAC-SHA256 and sends
`stripe-signature: t=<ts>,v1=<hex>`. The check must run over the exact bytes
received; parsing happens only once the signature holds, so nothing in an
unverified payload can steer processing.
"""
import json
from typing import Optional

import stripe

from shopmatch.features.billing.provider import (
    BillingEvent,
    InvalidPayloadError,
    InvalidSignatureError,
    MissingSignatureError,
)


DEFAULT_TOLERANCE_SECONDS = 300


def verify_event(
    raw_body: bytes,
    signature_header: Optional[str],
    secret: str,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
) -> BillingEvent:
    """
    Authenticate a webhook delivery and return the typed event.

    Raises:
        MissingSignatureError: signature header absent or blank
        InvalidSignatureError: signature does not match the body, or timestamp outside tolerance
        InvalidPayloadError: body authenticated but is not a decodable event
    """
    if not signature_header:
        raise MissingSignatureError("Missing stripe-signature header")

    try:
        payload = raw_body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidSignatureError(f"Body is not UTF-8: {exc}") from exc

    try:
        stripe.WebhookSignature.verify_header(payload, signature_header, secret, tolerance)
    except stripe.SignatureVerificationError as exc:
        raise InvalidSignatureError(str(exc)) from exc

    try:
        data = json.loads(payload)
    except ValueError as exc:
        raise InvalidPayloadError(f"Invalid payload: {exc}") from exc

    if not isinstance(data, dict) or not data.get("id") or not data.get("type"):
        raise InvalidPayloadError("Event is missing id or type")

    envelope = data.get("data")
    obj = envelope.get("object") if isinstance(envelope, dict) else None
    return BillingEvent(id=data["id"], type=data["type"], payload=obj if isinstance(obj, dict) else {})
