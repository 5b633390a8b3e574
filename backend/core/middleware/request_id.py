import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from backend.core.logging import LOGGER_NAME, latency_bucket_ms, request_id_ctx_var

# Probes hit these every few seconds; keep them out of INFO output
_QUIET_PATHS = frozenset({"/healthz", "/readyz"})


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id (caller-supplied or fresh) for the request and echo it back."""

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[self.header_name] = rid
            level = logging.DEBUG if request.url.path in _QUIET_PATHS else logging.INFO
            logging.getLogger(LOGGER_NAME).log(
                level,
                "request.complete",
                extra={
                    "request_id": rid,
                    "user_id": request.headers.get("x-user-id"),
                    "path": request.url.path,
                    "method": request.method,
                    "status": response.status_code,
                    "latency_bucket": latency_bucket_ms((time.perf_counter() - started) * 1000),
                },
            )
            return response
        finally:
            request_id_ctx_var.reset(token)
