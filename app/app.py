"""FastAPI application entry point for the agency reporting service."""

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from app.core.config import configure_logging
from app.core.exception_handlers import (
    gateway_error_handler,
    general_exception_handler,
    http_exception_handler,
    model_validation_exception_handler,
    pool_exhausted_handler,
    report_error_handler,
    request_validation_exception_handler,
    response_validation_exception_handler,
)
from app.core.exceptions import BuildError, ConnectionPoolExhausted, GatewayError, ReportError
from app.core.router import register_routes
from app.logging.middleware import LoggingMiddleware


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="Agency Reports",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # Add request logger middleware
    app.add_middleware(LoggingMiddleware)

    app.add_exception_handler(ReportError, report_error_handler)
    app.add_exception_handler(ConnectionPoolExhausted, pool_exhausted_handler)
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(BuildError, gateway_error_handler)
    app.add_exception_handler(ValidationError, model_validation_exception_handler)
    app.add_exception_handler(ResponseValidationError, response_validation_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, replace with specific origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)

    return app
