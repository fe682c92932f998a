# app/core/exceptions.py
"""Error kinds raised by the query layer, the tenant enforcer and the report framework."""

from typing import Optional


class BuildError(Exception):
    """A built query's placeholder count does not match its parameter list.

    This is a programming defect in the code composing the query and is never
    shown to end users.
    """


class GatewayError(Exception):
    """Base class for failures raised while executing through the gateway."""


class ConnectionPoolExhausted(GatewayError):
    """No connection could be obtained in time. Safe to retry after ``retry_after`` seconds."""

    def __init__(self, message: str, retry_after: float):
        super().__init__(message)
        self.retry_after = retry_after


class QueryExecutionError(GatewayError):
    """The database rejected or failed the statement.

    The message is the engine's own message, unchanged. The driver exception is
    kept on ``orig``.
    """

    def __init__(self, message: str, orig: Optional[BaseException] = None):
        super().__init__(message)
        self.orig = orig


class StatementTimeoutError(QueryExecutionError):
    """The statement ran longer than the configured statement timeout."""


class TenantContextError(GatewayError):
    """The agency context could not be established on the connection.

    The request must be abandoned; no query runs after this is raised.
    """


class ReportError(Exception):
    """A report request failed validation before any query was built."""

    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.code = code
