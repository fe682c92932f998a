import time
import logging
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("app.requests")


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and duration for each API request.

    Query strings are not logged; report filters can carry landlord and
    property ids.
    """

    excluded_paths = ("/api/docs", "/api/redoc", "/api/openapi.json")

    async def dispatch(self, request: Request, call_next: Callable):
        if request.url.path.startswith(self.excluded_paths):
            return await call_next(request)

        start_time = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start_time) * 1000

        logger.info(f"{request.method} {request.url.path} {response.status_code} {duration_ms:.1f}ms")
        return response
