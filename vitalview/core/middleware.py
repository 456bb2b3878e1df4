import time
import uuid
from typing import Awaitable, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from vitalview.core.config import settings

# Polled by load balancers every few seconds
QUIET_PATHS = frozenset({"/health"})


class StructlogMiddleware(BaseHTTPMiddleware):
    """Bind request identifiers into structlog contextvars and log request outcome."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        correlation_id = request.headers.get("X-Correlation-ID") or request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            correlation_id=correlation_id,
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        logger = structlog.get_logger()
        quiet = request.url.path in QUIET_PATHS
        if not quiet and settings.ENVIRONMENT in ["local", "dev"]:
            logger.info("request_started")

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_failed",
                duration=time.perf_counter() - start_time,
            )
            raise

        if not quiet:
            logger.info(
                "request_finished",
                status_code=response.status_code,
                duration=time.perf_counter() - start_time,
            )
        response.headers["X-Request-ID"] = request_id
        return response
