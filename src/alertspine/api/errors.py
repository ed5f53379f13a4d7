"""
Error mapping: engine error codes to RFC 7807 problem responses.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from alertspine.api.schemas import ProblemDetail
from alertspine.commands import CommandResult
from alertspine.core.errors import AlertSpineError
from alertspine.core.logging import get_logger

logger = get_logger(__name__)

# ── Error code → HTTP status mapping ─────────────────────────────────────

ERROR_CODE_TO_STATUS: dict[str, int] = {
    "NOT_FOUND": 404,
    "INVALID_TRANSITION": 409,
    "CONFIGURATION": 422,
    "INVALID_SAMPLE": 422,
    "UNSUPPORTED_COMMAND": 400,
    "DELIVERY_FAILED": 502,
    "LOCK_TIMEOUT": 503,
    "INTERNAL": 500,
}


def status_for_error_code(code: str) -> int:
    """Resolve an engine error code to HTTP status, defaulting to 500."""
    return ERROR_CODE_TO_STATUS.get(code, 500)


def problem_response(
    *,
    status: int,
    title: str,
    code: str = "INTERNAL",
    detail: str = "",
    instance: str = "",
    context: dict | None = None,
) -> JSONResponse:
    """Build a RFC 7807 JSON error response."""
    body = ProblemDetail(
        title=title,
        status=status,
        code=code,
        detail=detail,
        instance=instance,
        context=context or {},
    )
    return JSONResponse(status_code=status, content=body.model_dump())


def command_failure(result: CommandResult, instance: str = "") -> JSONResponse:
    """Convert a failed ``CommandResult`` into a problem response."""
    code = result.error.code if result.error else "INTERNAL"
    return problem_response(
        status=status_for_error_code(code),
        title=result.error.message if result.error else "Command failed",
        code=code,
        instance=instance,
        context=result.error.details if result.error else None,
    )


async def alertspine_error_handler(request: Request, exc: AlertSpineError) -> JSONResponse:
    """Typed engine errors raised inside a route."""
    return problem_response(
        status=status_for_error_code(exc.code),
        title=exc.message,
        code=exc.code,
        instance=str(request.url),
        context=exc.context.to_dict(),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions; returns 500 with ProblemDetail."""
    logger.error("api_unhandled_exception", path=request.url.path, error=str(exc), exc_info=exc)
    return problem_response(
        status=500,
        title="Internal Server Error",
        detail="An unexpected error occurred.",
        instance=str(request.url),
    )
