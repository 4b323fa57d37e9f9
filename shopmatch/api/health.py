"""
Health and diagnostics API.

Provides lightweight endpoints for operational monitoring without exposing secrets.
"""

import logging
from datetime import datetime, timezone
from pydantic import BaseModel

from fastapi import APIRouter, Request

from shopmatch.core.database import check_connection
from shopmatch.core.logging import get_request_id

logger = logging.getLogger("shopmatch")

router = APIRouter(prefix="/api/health", tags=["health"])
root_router = APIRouter(tags=["health"])


class HealthChecks(BaseModel):
    database: bool
    stripe_configured: bool
    webhook_configured: bool
    auth_configured: bool


class HealthResponse(BaseModel):
    """Health check response."""
    ok: bool
    environment: str
    checks: HealthChecks
    computed_at: str  # UTC ISO format


@root_router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("", response_model=HealthResponse)
def health(request: Request):
    """
    Configuration and database status.

    Reports only whether each dependency is configured; never key values.
    """
    settings_obj = request.app.state.settings
    checks = HealthChecks(
        database=check_connection(request.app.state.engine),
        stripe_configured=bool(settings_obj.STRIPE_SECRET_KEY),
        webhook_configured=bool(settings_obj.STRIPE_WEBHOOK_SECRET),
        auth_configured=bool(settings_obj.AUTH_JWT_SECRET),
    )
    ok = all(checks.model_dump().values())
    if not ok:
        logger.warning("health.degraded", extra={"request_id": get_request_id(), **checks.model_dump()})

    return HealthResponse(
        ok=ok,
        environment=settings_obj.ENV,
        checks=checks,
        computed_at=datetime.now(timezone.utc).isoformat(),
    )
