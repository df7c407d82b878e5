"""
Per-request log context: a short request ID and the client session ID are
bound to structlog's context for the duration of each request.
"""
import time
import uuid
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from insitu.core.auth import SESSION_HEADER

logger = structlog.stdlib.get_logger(__name__)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Logger whose lines carry the current request and session IDs"""
    return structlog.stdlib.get_logger(name)


def _bound_session_id() -> str:
    return structlog.contextvars.get_contextvars().get("session_id", "")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = uuid.uuid4().hex[:8]
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            session_id=request.headers.get(SESSION_HEADER, "")[:8],
        )

        started = time.perf_counter()
        logger.info("request_start", method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request_error", duration_ms=round((time.perf_counter() - started) * 1000))
            raise
        finally:
            elapsed = time.perf_counter() - started

        # New sessions only get their ID on the way out
        if not _bound_session_id():
            structlog.contextvars.bind_contextvars(session_id=response.headers.get(SESSION_HEADER, "")[:8])

        log = logger.info if response.status_code < 400 else logger.warning
        log("request_end", status_code=response.status_code, duration_ms=round(elapsed * 1000))

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{elapsed:.3f}"
        return response
