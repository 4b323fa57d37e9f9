import logging
import time
from typing import Iterable, Optional
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from shopmatch.core.logging import request_id_ctx_var, latency_bucket_ms

# Liveness probes hit these every few seconds
DEFAULT_QUIET_PATHS = ("/healthz",)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the duration of a request and log completion.

    The id is taken from the incoming header when the caller (or an edge proxy)
    supplied one, so webhook retries from the billing provider can be traced
    across hops.
    """

    def __init__(self, app, header_name: str = "x-request-id", quiet_paths: Optional[Iterable[str]] = None):
        super().__init__(app)
        self.header_name = header_name
        self.quiet_paths = frozenset(quiet_paths if quiet_paths is not None else DEFAULT_QUIET_PATHS)

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)

        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[self.header_name] = rid
            if request.url.path not in self.quiet_paths:
                logging.getLogger("shopmatch").info(
                    "request.complete",
                    extra={
                        "request_id": rid,
                        "path": request.url.path,
                        "method": request.method,
                        "status": response.status_code,
                        "latency_bucket": latency_bucket_ms((time.perf_counter() - started) * 1000),
                    },
                )
            return response
        finally:
            request_id_ctx_var.reset(token)
