"""
Auth utilities for the ShopMatch API.

Validates identity-platform ID tokens (PyJWT) and loads the caller's current
custom claims from the claims store, so a subscription change applied by the
billing webhook takes effect without waiting for the token to be reissued.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import jwt

from shopmatch.core.config import Settings
from shopmatch.core.errors import PermissionError, SubscriptionRequiredError, UnauthorizedError
from shopmatch.core.logging import log_event
from shopmatch.features.identity.claims_store import ClaimsStore, UserNotFoundError


@dataclass
class AuthContext:
    uid: str
    token: str
    email: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)

    @property
    def role(self) -> Optional[str]:
        return self.claims.get("role")

    @property
    def sub_active(self) -> bool:
        return bool(self.claims.get("subActive", False))


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise UnauthorizedError("Missing or invalid Authorization header")
    token = authorization[len("bearer "):].strip()
    if not token:
        raise UnauthorizedError("Missing or invalid Authorization header")
    return token


def verify_id_token(token: str, settings_obj: Settings) -> Dict[str, Any]:
    """
    Verify an ID token and return its payload.

    Raises:
        UnauthorizedError: Invalid, expired, or unverifiable token
    """
    if not settings_obj.AUTH_JWT_SECRET:
        raise UnauthorizedError("Authentication is not configured")

    try:
        payload = jwt.decode(
            token,
            settings_obj.AUTH_JWT_SECRET,
            algorithms=settings_obj.jwt_algorithms,
            options={"verify_signature": True, "verify_exp": True, "require": ["sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.InvalidTokenError as e:
        log_event("debug", "auth.token.invalid", extra={"error": e})
        raise UnauthorizedError("Invalid token")

    if not payload.get("sub"):
        raise UnauthorizedError("Invalid token")
    return payload


def authenticate(authorization: Optional[str], settings_obj: Settings, claims_store: ClaimsStore) -> AuthContext:
    """Resolve the Authorization header into an AuthContext with fresh claims."""
    token = extract_bearer_token(authorization)
    payload = verify_id_token(token, settings_obj)
    uid = payload["sub"]

    try:
        record = claims_store.get_user(uid)
    except UserNotFoundError:
        raise UnauthorizedError("Unknown user")

    return AuthContext(
        uid=uid,
        token=token,
        email=record.email or payload.get("email"),
        claims=dict(record.custom_claims or {}),
    )


def assert_active_subscription(auth: AuthContext) -> None:
    """Ensures the authenticated user has an active subscription."""
    if not auth.sub_active:
        raise SubscriptionRequiredError("Active subscription required to perform this action")


def assert_role(auth: AuthContext, role: str) -> None:
    """Ensures the authenticated user has a specific role."""
    if auth.role != role:
        raise PermissionError("Insufficient permissions for this resource")
