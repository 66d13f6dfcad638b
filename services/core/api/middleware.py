"""
API Middleware Module
CORS origins and request logging
"""
import os
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from logging_config import bind_request_context, clear_request_context, http_request_summary


def get_allowed_origins() -> list:
    """Allowed CORS origins from ALLOWED_ORIGINS (comma separated)"""
    allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000")
    return [origin.strip() for origin in allowed_origins.split(",") if origin.strip()]


class LoggingMiddleware(BaseHTTPMiddleware):
    """Binds request id / owner id to the log context and logs one line per request"""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
        clear_request_context()
        bind_request_context(request_id=request_id, owner_id=request.headers.get("X-User-Id"))

        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)

        http_request_summary(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
        clear_request_context()

        response.headers["X-Request-Id"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)
        return response
