"""
Applications export routes.

GET /api/applications/export        CSV of every application to the owner's jobs
GET /api/applications/export/quota  remaining exports, without spending one
"""
import math

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from shopmatch.api.deps import get_application_exporter, get_auth_context, get_export_limiter
from shopmatch.core.auth import AuthContext, assert_role
from shopmatch.core.errors import RateLimitError
from shopmatch.core.logging import log_event
from shopmatch.core.metrics import ratelimit_block_total
from shopmatch.core.ratelimit import RateLimitResult, SlidingWindowRateLimiter
from shopmatch.features.applications.export import ApplicationExporter


router = APIRouter(prefix="/applications", tags=["applications"])

EXPORT_SCOPE = "applications_export"


def rate_limit_headers(limiter: SlidingWindowRateLimiter, result: RateLimitResult) -> dict:
    return {
        "X-RateLimit-Limit": str(limiter.config.max_requests),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(math.ceil(result.reset_at)),
    }


@router.get("/export")
def export_applications(
    auth: AuthContext = Depends(get_auth_context),
    limiter: SlidingWindowRateLimiter = Depends(get_export_limiter),
    exporter: ApplicationExporter = Depends(get_application_exporter),
):
    """
    Export applications for the caller's jobs as CSV.

    Errors:
        403: Caller is not a job owner
        404: No jobs, or no applications
        429: Export quota spent; Retry-After and X-RateLimit-* headers set
    """
    assert_role(auth, "owner")

    result = limiter.check(auth.uid)
    headers = rate_limit_headers(limiter, result)
    if not result.allowed:
        retry_after = result.retry_after(limiter.time_fn())
        ratelimit_block_total.inc({"scope": EXPORT_SCOPE})
        log_event("warning", "ratelimit.blocked", user_id=auth.uid, extra={"scope": EXPORT_SCOPE})
        minutes = max(1, math.ceil(retry_after / 60))
        raise RateLimitError(
            f"You can export up to {limiter.config.max_requests} times per window. "
            f"Please try again in {minutes} minutes.",
            details={
                "retry_after": retry_after,
                "limit": limiter.config.max_requests,
                "remaining": result.remaining,
                "reset": math.ceil(result.reset_at),
            },
            headers={"Retry-After": str(retry_after), **headers},
        )

    export = exporter.build_export(auth.uid)
    log_event("info", "applications.exported", user_id=auth.uid, extra={"rows": export.row_count})
    return Response(
        content=export.content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"', **headers},
    )


@router.get("/export/quota")
def export_quota(
    auth: AuthContext = Depends(get_auth_context),
    limiter: SlidingWindowRateLimiter = Depends(get_export_limiter),
):
    result = limiter.status(auth.uid)
    return {
        "allowed": result.allowed,
        "limit": limiter.config.max_requests,
        "remaining": result.remaining,
        "reset": math.ceil(result.reset_at),
    }
