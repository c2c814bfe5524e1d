"""
Global error handlers for the Onboardflow API.

Every failure leaves the API in the same envelope:

    {"success": false, "error": {"error_code", "error_type", "message",
                                 "user_message", "details", "correlation_id"}}

Custom exceptions keep their own status code, request validation failures
become 422 and anything unexpected becomes a sanitized 500.
"""

import re
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.status import HTTP_422_UNPROCESSABLE_ENTITY, HTTP_500_INTERNAL_SERVER_ERROR

from onboardflow.app.core.exceptions import (
    BaseCustomException,
    ErrorCode,
    get_exception_response_data
)
from onboardflow.app.utils.logging import get_correlation_id, get_logger
from onboardflow.config.settings import get_settings

logger = get_logger(__name__)

_SENSITIVE_PATTERNS = (
    (re.compile(r"mongodb(\+srv)?://[^\s]*"), "[connection_string]"),
    (re.compile(r"[Pp]assword[:\s=]+[^\s]+"), "password=[redacted]"),
    (re.compile(r"[Tt]oken[:\s=]+[^\s]+"), "token=[redacted]"),
)


def sanitize_error_message(message: str) -> str:
    """Remove connection strings and secrets from a message."""
    for pattern, replacement in _SENSITIVE_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


def _correlation_id(request: Request, exc: Optional[BaseCustomException] = None) -> Optional[str]:
    if exc is not None and exc.correlation_id:
        return exc.correlation_id
    return getattr(request.state, "correlation_id", None) or get_correlation_id()


def _error_response(status_code: int, body: Dict[str, Any], correlation_id: Optional[str]) -> JSONResponse:
    headers = {"X-Correlation-ID": correlation_id} if correlation_id else None
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def handle_custom_exception(request: Request, exc: BaseCustomException) -> JSONResponse:
    correlation_id = _correlation_id(request, exc)
    exc.correlation_id = correlation_id
    body = get_exception_response_data(exc)
    body["error"]["user_message"] = sanitize_error_message(body["error"]["user_message"])

    log = logger.error if exc.http_status_code >= 500 else logger.warning
    log(
        "Request failed",
        error_code=exc.error_code.value,
        error_type=exc.error_code.name,
        status_code=exc.http_status_code,
        technical_message=exc.message,
        method=request.method,
        path=request.url.path,
        correlation_id=correlation_id
    )
    return _error_response(exc.http_status_code, body, correlation_id)


def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    correlation_id = _correlation_id(request)
    validation_errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(
        "Request validation failed",
        method=request.method,
        path=request.url.path,
        error_count=len(validation_errors),
        correlation_id=correlation_id
    )
    return _error_response(
        HTTP_422_UNPROCESSABLE_ENTITY,
        {
            "success": False,
            "error": {
                "error_code": ErrorCode.VALIDATION_FAILED.value,
                "error_type": ErrorCode.VALIDATION_FAILED.name,
                "message": "Request validation failed",
                "user_message": "Please check your input and try again",
                "details": {"field_errors": validation_errors},
                "correlation_id": correlation_id,
            },
        },
        correlation_id
    )


def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    correlation_id = _correlation_id(request)
    return _error_response(
        exc.status_code,
        {
            "success": False,
            "error": {
                "error_code": str(exc.status_code),
                "error_type": "HTTP_ERROR",
                "message": str(exc.detail),
                "user_message": sanitize_error_message(str(exc.detail)),
                "details": {},
                "correlation_id": correlation_id,
            },
        },
        correlation_id
    )


def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    correlation_id = _correlation_id(request)
    logger.error(
        "Unexpected error",
        exception_type=type(exc).__name__,
        method=request.method,
        path=request.url.path,
        correlation_id=correlation_id,
        exc_info=True
    )

    details: Dict[str, Any] = {"error_type": type(exc).__name__}
    if get_settings().debug:
        details["exception_message"] = sanitize_error_message(str(exc))

    return _error_response(
        HTTP_500_INTERNAL_SERVER_ERROR,
        {
            "success": False,
            "error": {
                "error_code": ErrorCode.DATABASE_OPERATION_FAILED.value,
                "error_type": "INTERNAL_ERROR",
                "message": "Internal server error",
                "user_message": "An unexpected error occurred. Please try again later.",
                "details": details,
                "correlation_id": correlation_id,
            },
        },
        correlation_id
    )


def setup_error_handlers(app: FastAPI) -> None:
    """
    Register the global exception handlers on an application.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(BaseCustomException)
    async def custom_exception_handler(request: Request, exc: BaseCustomException):
        return handle_custom_exception(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return handle_validation_error(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return handle_http_exception(request, exc)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        return handle_unexpected_error(request, exc)

    logger.info("Global error handlers configured")
