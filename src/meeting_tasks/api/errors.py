"""Exception handlers rendering every failure as ``{success, error, code}``.

Classified pipeline failures use their own status, code, and user-facing
message. The internal detail (and any raw model output) is logged, never
returned.
"""

from __future__ import annotations

from http import HTTPStatus

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.meeting_tasks.errors import BadRequest, PipelineError

logger = structlog.get_logger(__name__)


def error_response(status_code: int, error: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "code": code},
    )


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    logger.info(
        "api.pipeline_error",
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code,
        detail=exc.detail,
    )
    return error_response(exc.status_code, exc.user_message, exc.code)


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    missing = sorted(
        {str(err["loc"][-1]) for err in exc.errors() if err.get("loc")}
    )
    logger.info("api.bad_request", path=request.url.path, fields=missing)
    message = BadRequest.user_message
    if missing:
        message = f"Invalid or missing fields: {', '.join(missing)}"
    return error_response(400, message, BadRequest.code)


async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    try:
        code = HTTPStatus(exc.status_code).name
    except ValueError:
        code = "HTTP_ERROR"
    return error_response(exc.status_code, str(exc.detail), code)


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "api.unexpected_error",
        path=request.url.path,
        error=type(exc).__name__,
        exc_info=exc,
    )
    return error_response(500, PipelineError.user_message, PipelineError.code)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the handlers above to ``app``."""
    app.add_exception_handler(PipelineError, pipeline_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
