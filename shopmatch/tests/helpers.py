"""Shared test helpers: clock, webhook signing, ID tokens."""

import hashlib
import hmac
import json
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import jwt


JWT_SECRET = "test-jwt-secret-0123456789abcdef-0123456789"
WEBHOOK_SECRET = "whsec_test_secret"
START_TS = 1_700_000_000.0


class FakeTime:
    """Controllable epoch-seconds clock."""

    def __init__(self, start: float = START_TS):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def as_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.now, timezone.utc)


def sign_webhook(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """stripe-signature header for payload, as Stripe computes it."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.".encode() + payload
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def stripe_event(event_type: str, obj: Dict[str, Any], event_id: str = "evt_test_1") -> bytes:
    return json.dumps(
        {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}
    ).encode()


def make_token(uid: str, secret: str = JWT_SECRET, **extra) -> str:
    payload = {"sub": uid, "exp": int(time.time()) + 3600, **extra}
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(uid: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(uid)}"}
