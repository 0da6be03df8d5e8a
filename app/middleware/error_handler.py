"""
Error handling middleware.

Every failure leaves the API in the same envelope as a success:
``{"success": false, "message": ..., "error": ...}`` plus any fields the
exception contributes.
"""

from http import HTTPStatus
from typing import Any

import structlog
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.exceptions import AppException

logger = structlog.get_logger()

_ERROR_LABELS = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    429: "Rate Limited",
    500: "Internal Server Error",
}


def error_label(status_code: int) -> str:
    """Short error label for a status code."""
    if status_code in _ERROR_LABELS:
        return _ERROR_LABELS[status_code]
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def error_envelope(message: str, error: str, **extra: Any) -> dict[str, Any]:
    """Build the failure envelope."""
    return {"success": False, "message": message, "error": error, **extra}


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle custom application exceptions.

    Args:
        request: Request object
        exc: Application exception

    Returns:
        JSON error response
    """
    if exc.status_code >= 500:
        logger.error(
            "request_error",
            path=request.url.path,
            error=exc.error,
            message=exc.message,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(exc.message, exc.error, **exc.payload()),
        headers=exc.headers(),
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Handle HTTP exceptions raised by the framework (404 routes, 405 methods)."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(str(exc.detail), error_label(exc.status_code)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Handle validation errors.

    Malformed bodies are reported as bad requests, with the details attached.
    """
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_envelope(
            "Request validation failed",
            error_label(status.HTTP_400_BAD_REQUEST),
            details=[
                {"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in exc.errors()
            ],
        ),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions.

    Args:
        request: Request object
        exc: Exception

    Returns:
        JSON error response
    """
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_envelope(
            "An unexpected error occurred",
            error_label(status.HTTP_500_INTERNAL_SERVER_ERROR),
        ),
    )
