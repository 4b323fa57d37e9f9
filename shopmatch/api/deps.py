"""
Request-scoped accessors for the components built by create_app.

Everything lives on app.state; handlers receive it through Depends so tests
can build an app with their own stores, clock and provider.
"""
from typing import Optional

from fastapi import Depends, Header, Request

from shopmatch.core.auth import AuthContext, assert_active_subscription, authenticate
from shopmatch.core.config import Settings
from shopmatch.core.ratelimit import SlidingWindowRateLimiter
from shopmatch.features.applications.export import ApplicationExporter
from shopmatch.features.billing.service import BillingService
from shopmatch.features.identity.claims_store import ClaimsStore
from shopmatch.features.jobs.service import JobService
from shopmatch.features.users.service import UserDirectory


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_claims_store(request: Request) -> ClaimsStore:
    return request.app.state.claims_store


def get_user_directory(request: Request) -> UserDirectory:
    return request.app.state.user_directory


def get_billing_service(request: Request) -> BillingService:
    return request.app.state.billing_service


def get_job_service(request: Request) -> JobService:
    return request.app.state.job_service


def get_application_exporter(request: Request) -> ApplicationExporter:
    return request.app.state.application_exporter


def get_export_limiter(request: Request) -> SlidingWindowRateLimiter:
    return request.app.state.export_limiter


def get_auth_context(
    request: Request,
    authorization: Optional[str] = Header(None),
    settings_obj: Settings = Depends(get_settings),
    claims_store: ClaimsStore = Depends(get_claims_store),
) -> AuthContext:
    """Authenticated caller with claims read fresh from the claims store."""
    auth = authenticate(authorization, settings_obj, claims_store)
    request.state.user_id = auth.uid
    return auth


def require_active_subscription(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    assert_active_subscription(auth)
    return auth
