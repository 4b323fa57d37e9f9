"""
ShopMatch backend application factory.

Run with:
    uvicorn shopmatch.main:create_app --factory
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI
from starlette.exceptions import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from redis import Redis
from sqlalchemy.engine import Engine

from shopmatch.api import applications, billing, health, jobs, metrics, users
from shopmatch.core.config import Settings, settings as default_settings, validate_config
from shopmatch.core.database import build_session_factory, create_all_tables, create_engine_for_url
from shopmatch.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from shopmatch.core.logging import configure_logging
from shopmatch.core.middleware.metrics import MetricsMiddleware
from shopmatch.core.middleware.request_id import RequestIdMiddleware
from shopmatch.core.ratelimit import build_export_rate_limiter
from shopmatch.features.applications.export import ApplicationExporter
from shopmatch.features.billing.entitlements import EntitlementService
from shopmatch.features.billing.linkage import CustomerLinkage
from shopmatch.features.billing.provider import BillingProvider
from shopmatch.features.billing.service import BillingService
from shopmatch.features.identity.claims_store import SqlClaimsStore
from shopmatch.features.jobs.service import JobService
from shopmatch.features.users.service import UserDirectory, utc_now


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("shopmatch")
    logger.info("Starting ShopMatch backend...")
    app.state.startup_time = time.time()
    try:
        yield
    finally:
        logging.getLogger("shopmatch").info("Stopping ShopMatch backend...")


def create_app(
    settings_obj: Optional[Settings] = None,
    *,
    engine: Optional[Engine] = None,
    billing_provider: Optional[BillingProvider] = None,
    redis_client: Optional[Redis] = None,
    time_fn: Callable[[], float] = time.time,
    now_fn: Callable[[], datetime] = utc_now,
) -> FastAPI:
    """
    Build the API with its components wired onto app.state.

    Tests pass their own engine, provider and clocks; production uses the
    environment-backed settings.
    """
    cfg = settings_obj or default_settings
    configure_logging(cfg.ENV)
    validate_config(strict=cfg.CONFIG_STRICT, settings_obj=cfg)

    engine = engine or create_engine_for_url(cfg.DATABASE_URL)
    create_all_tables(engine)
    session_factory = build_session_factory(engine)

    claims_store = SqlClaimsStore(session_factory)
    user_directory = UserDirectory(session_factory, now_fn=now_fn)
    entitlements = EntitlementService(
        claims_store,
        user_directory,
        linkage=CustomerLinkage(user_directory),
        now_fn=now_fn,
    )

    app = FastAPI(title="ShopMatch Pro - Backend", lifespan=lifespan)

    app.state.settings = cfg
    app.state.engine = engine
    app.state.claims_store = claims_store
    app.state.user_directory = user_directory
    app.state.entitlements = entitlements
    app.state.billing_service = BillingService(
        cfg,
        entitlements,
        user_directory,
        claims_store,
        provider=billing_provider,
        time_fn=time_fn,
    )
    app.state.job_service = JobService(
        session_factory,
        duplicate_window_seconds=cfg.JOB_DUPLICATE_WINDOW_SECONDS,
        now_fn=now_fn,
    )
    app.state.application_exporter = ApplicationExporter(session_factory, now_fn=now_fn)
    app.state.export_limiter = build_export_rate_limiter(cfg, time_fn=time_fn, redis_client=redis_client)

    # Middlewares
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[cfg.APP_BASE_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(billing.router, prefix="/api", tags=["billing"])
    app.include_router(jobs.router, prefix="/api", tags=["jobs"])
    app.include_router(applications.router, prefix="/api", tags=["applications"])
    app.include_router(users.router, prefix="/api", tags=["users"])
    app.include_router(health.router, tags=["health"])
    app.include_router(health.root_router, tags=["health"])
    app.include_router(metrics.router, tags=["metrics"])

    return app
