"""Request logging with a per-request structlog context.

Every request gets a ``request_id`` (the caller's ``X-Request-ID`` when it
sends one, a fresh UUID otherwise) and, when a valid bearer token is
present, a ``user_id``. Both are bound into structlog's contextvars for
the lifetime of the request, so pipeline, reconciler and repository log
lines carry them without threading them through every call.

Production renders JSON; every other environment renders console output.
"""

from __future__ import annotations

import logging
import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.meeting_tasks.config import Environment, get_settings
from src.meeting_tasks.core.security import user_id_from_authorization
from src.meeting_tasks.errors import Unauthorized

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128


def configure_structlog() -> None:
    """Configure structlog processors based on environment."""
    settings = get_settings()

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    )

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if settings.ENVIRONMENT == Environment.production:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def resolve_request_id(request: Request) -> str:
    """Reuse a sane inbound request id, otherwise mint one."""
    inbound = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    if inbound and len(inbound) <= MAX_REQUEST_ID_LENGTH and inbound.isprintable():
        return inbound
    return str(uuid.uuid4())


def resolve_log_user(request: Request) -> str | None:
    # Authentication is enforced by the route dependencies, not here.
    try:
        return user_id_from_authorization(request.headers.get("Authorization"))
    except Unauthorized:
        return None


class LoggingMiddleware(BaseHTTPMiddleware):
    """Binds request context, times the request and logs its outcome."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = resolve_request_id(request)
        tokens = structlog.contextvars.bind_contextvars(
            request_id=request_id,
            user_id=resolve_log_user(request),
        )
        start_time = time.monotonic()
        try:
            try:
                response = await call_next(request)
            except Exception:
                self._log_outcome(request, 500, start_time)
                raise
            response.headers[REQUEST_ID_HEADER] = request_id
            self._log_outcome(request, response.status_code, start_time)
            return response
        finally:
            structlog.contextvars.reset_contextvars(**tokens)

    @staticmethod
    def _log_outcome(request: Request, status_code: int, start_time: float) -> None:
        if status_code >= 500:
            log_method = logger.error
        elif status_code >= 400:
            log_method = logger.warning
        else:
            log_method = logger.info
        log_method(
            "http.request_completed",
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=round((time.monotonic() - start_time) * 1000, 2),
        )
