# app/core/exception_handlers.py
"""Map report and gateway errors to HTTP responses.

The specific error kind is logged; clients only see a generic message for
anything raised below the request validation layer.
"""

import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.core.exceptions import BuildError, ConnectionPoolExhausted, GatewayError, ReportError
from app.reporting.registry import ACCESS_DENIED, MISSING_LANDLORD_ID

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Failed to generate report"

REPORT_ERROR_STATUS = {
    ACCESS_DENIED: 403,
    MISSING_LANDLORD_ID: 401,
}


def _path(request: Request) -> str:
    return f"{request.method} {request.url.path}"


async def report_error_handler(request: Request, exc: ReportError):
    status_code = REPORT_ERROR_STATUS.get(exc.code, 400)
    logger.info(f"{_path(request)} rejected with {exc.code}: {exc}")
    return JSONResponse(status_code=status_code, content={"error": str(exc), "code": exc.code})


async def pool_exhausted_handler(request: Request, exc: ConnectionPoolExhausted):
    logger.warning(f"{_path(request)} failed: ConnectionPoolExhausted: {exc}")
    retry_after = max(1, round(exc.retry_after))
    return JSONResponse(
        status_code=503,
        content={"error": "Service busy, please retry", "code": "POOL_EXHAUSTED"},
        headers={"Retry-After": str(retry_after)},
    )


async def gateway_error_handler(request: Request, exc: Exception):
    """GatewayError and BuildError: log the kind, answer with a generic 500."""
    logger.error(f"{_path(request)} failed: {type(exc).__name__}: {exc}")
    return JSONResponse(status_code=500, content={"error": GENERIC_FAILURE, "code": "GENERATION_FAILED"})


def _safe_errors(errors):
    def convert_error(error):
        if isinstance(error, dict):
            return {k: convert_error(v) for k, v in error.items()}
        elif isinstance(error, list):
            return [convert_error(item) for item in error]
        else:
            return str(error)

    return convert_error(errors)


async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors"""
    logger.info(f"{_path(request)} failed request validation")
    return JSONResponse(status_code=422, content={"detail": _safe_errors(exc.errors())})


async def model_validation_exception_handler(request: Request, exc: ValidationError):
    """Filter and option values rejected while building a report request."""
    logger.info(f"{_path(request)} has invalid report filters or options")
    return JSONResponse(status_code=422, content={"detail": _safe_errors(exc.errors())})


async def response_validation_exception_handler(request: Request, exc: ResponseValidationError):
    logger.error(f"{_path(request)} produced an invalid response: {exc.errors()}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error: Response validation failed."},
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    if exc.status_code >= 500:
        logger.error(f"{_path(request)} returned {exc.status_code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def general_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions"""
    logger.exception(f"{_path(request)} raised an unhandled {type(exc).__name__}")
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
