# app/tenancy/context.py
"""
Tenant context enforcement for pooled connections.

Every scoped call walks the same sequence on one connection::

    ACQUIRE -> BEGIN -> SET_CONTEXT(agency_id) -> EXECUTE -> COMMIT/ROLLBACK -> CLEAR -> RELEASE

``ScopedConnection`` is the only object that can run tenant SQL, and it can
only be created inside ``TenantContextEnforcer.scoped()`` after the context
has been set and read back. A connection whose context cannot be cleared is
invalidated instead of being returned to the pool.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Sequence

from sqlalchemy import exc, text
from sqlalchemy.engine import Connection, Engine

from app.core.exceptions import (
    ConnectionPoolExhausted,
    QueryExecutionError,
    StatementTimeoutError,
    TenantContextError,
)
from app.query.placeholders import to_named_binds
from app.tenancy.row_security import (
    AGENCY_INFO_KEY,
    AGENCY_SETTING,
    SYSTEM_INFO_KEY,
    SYSTEM_SETTING,
    missing_sqlite_views,
)

logger = logging.getLogger(__name__)

_CAPABILITY = object()

# SQLSTATE for query_canceled, raised when statement_timeout fires
STATEMENT_TIMEOUT_SQLSTATE = "57014"


def require_agency_id(agency_id: Any) -> int:
    """Return ``agency_id`` if it is a positive integer, else raise TenantContextError."""
    if isinstance(agency_id, bool) or not isinstance(agency_id, int) or agency_id <= 0:
        raise TenantContextError(f"Invalid agency id: {agency_id!r}")
    return agency_id


def translate_execution_error(error: exc.SQLAlchemyError) -> QueryExecutionError:
    """Wrap a database error without rewriting its message.

    Driver errors keep the driver's own message. Other statement errors, such as
    a bind value SQLAlchemy could not supply, keep SQLAlchemy's.
    """
    orig = getattr(error, "orig", None)
    message = str(orig) if isinstance(error, exc.DBAPIError) and orig is not None else str(error)
    if getattr(orig, "pgcode", None) == STATEMENT_TIMEOUT_SQLSTATE:
        return StatementTimeoutError(message, orig=orig)
    return QueryExecutionError(message, orig=orig)


class PostgresContextSetter:
    """Transaction local ``set_config`` calls checked by reading the value back."""

    def __init__(self, statement_timeout_ms: int = 0):
        self.statement_timeout_ms = statement_timeout_ms

    def _set(self, conn: Connection, name: str, value: str, local: bool = True) -> None:
        conn.execute(
            text("SELECT set_config(:name, :value, :is_local)"),
            {"name": name, "value": value, "is_local": local},
        )

    def _read(self, conn: Connection, name: str) -> Any:
        return conn.execute(text("SELECT current_setting(:name, true)"), {"name": name}).scalar()

    def _apply_timeout(self, conn: Connection) -> None:
        if self.statement_timeout_ms:
            self._set(conn, "statement_timeout", str(self.statement_timeout_ms))

    def apply(self, conn: Connection, agency_id: int) -> None:
        self._set(conn, AGENCY_SETTING, str(agency_id))
        self._set(conn, SYSTEM_SETTING, "off")
        if self._read(conn, AGENCY_SETTING) != str(agency_id):
            raise TenantContextError(f"Agency context did not take effect for agency {agency_id}")
        self._apply_timeout(conn)

    def apply_system(self, conn: Connection) -> None:
        self._set(conn, AGENCY_SETTING, "")
        self._set(conn, SYSTEM_SETTING, "on")
        if self._read(conn, SYSTEM_SETTING) != "on":
            raise TenantContextError("System access context did not take effect")
        self._apply_timeout(conn)

    def clear(self, conn: Connection) -> None:
        self._set(conn, AGENCY_SETTING, "", local=False)
        self._set(conn, SYSTEM_SETTING, "off", local=False)
        conn.commit()


class SqliteContextSetter:
    """Context lives on the pool connection record and is read by the isolation views."""

    def _check_views(self, conn: Connection) -> None:
        missing = missing_sqlite_views(conn)
        if missing:
            raise TenantContextError(f"Tenant isolation is not installed on this connection for: {missing}")

    def apply(self, conn: Connection, agency_id: int) -> None:
        self._check_views(conn)
        conn.info[SYSTEM_INFO_KEY] = False
        conn.info[AGENCY_INFO_KEY] = agency_id
        if conn.exec_driver_sql("SELECT current_agency_id()").scalar() != agency_id:
            raise TenantContextError(f"Agency context did not take effect for agency {agency_id}")

    def apply_system(self, conn: Connection) -> None:
        self._check_views(conn)
        conn.info.pop(AGENCY_INFO_KEY, None)
        conn.info[SYSTEM_INFO_KEY] = True
        if conn.exec_driver_sql("SELECT system_access()").scalar() != 1:
            raise TenantContextError("System access context did not take effect")

    def clear(self, conn: Connection) -> None:
        conn.info.pop(AGENCY_INFO_KEY, None)
        conn.info.pop(SYSTEM_INFO_KEY, None)


def context_setter_for(engine: Engine, statement_timeout_ms: int = 0):
    if engine.dialect.name == "postgresql":
        return PostgresContextSetter(statement_timeout_ms)
    if engine.dialect.name == "sqlite":
        return SqliteContextSetter()
    raise NotImplementedError(f"Tenant context is not supported for {engine.dialect.name}")


class _GuardedConnection:
    def __init__(self, connection: Connection, token: object):
        if token is not _CAPABILITY:
            raise TypeError(f"{type(self).__name__} is only created by TenantContextEnforcer")
        self._connection = connection
        self._open = True

    def execute(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """Run ``sql`` with positional ``?`` params and return rows as dicts."""
        if not self._open:
            raise TenantContextError("Connection scope has already been released")
        statement, binds = to_named_binds(sql, params)
        try:
            result = self._connection.execute(text(statement), binds)
        except exc.StatementError as e:
            raise translate_execution_error(e) from e
        if not result.returns_rows:
            return []
        return [dict(row._mapping) for row in result]

    def _release(self) -> None:
        self._open = False


class ScopedConnection(_GuardedConnection):
    """A connection bound to exactly one agency for the life of one scope."""

    def __init__(self, connection: Connection, agency_id: int, token: object):
        super().__init__(connection, token)
        self.agency_id = agency_id


class SystemConnection(_GuardedConnection):
    """A connection that bypasses tenant isolation. Every use carries an audit reason."""

    def __init__(self, connection: Connection, reason: str, token: object):
        super().__init__(connection, token)
        self.reason = reason


class TenantContextEnforcer:
    """Hands out scoped and system connections from one engine's pool."""

    def __init__(self, engine: Engine, retry_after: float = 0.5, statement_timeout_ms: int = 0):
        self.engine = engine
        self.retry_after = retry_after
        self.setter = context_setter_for(engine, statement_timeout_ms)

    def _acquire(self) -> Connection:
        try:
            return self.engine.connect()
        except exc.TimeoutError as e:
            raise ConnectionPoolExhausted(
                f"Connection pool exhausted: {self.engine.pool.status()}", self.retry_after
            ) from e
        except exc.DBAPIError as e:
            raise ConnectionPoolExhausted(f"Could not connect to database: {e.orig}", self.retry_after) from e

    def _clear(self, conn: Connection) -> None:
        try:
            self.setter.clear(conn)
        except exc.SQLAlchemyError as e:
            logger.error(f"Failed to clear tenant context, invalidating connection: {e}")
            conn.invalidate(e)

    @contextmanager
    def _guarded(self, apply, make) -> Iterator[_GuardedConnection]:
        conn = self._acquire()
        with conn:
            try:
                with conn.begin():
                    try:
                        apply(conn)
                    except TenantContextError:
                        raise
                    except exc.SQLAlchemyError as e:
                        raise TenantContextError(f"Failed to set tenant context: {e}") from e
                    guarded = make(conn)
                    try:
                        yield guarded
                    finally:
                        guarded._release()
            except exc.StatementError as e:
                raise translate_execution_error(e) from e
            finally:
                if not conn.invalidated:
                    self._clear(conn)

    @contextmanager
    def scoped(self, agency_id: int) -> Iterator[ScopedConnection]:
        """Yield a ScopedConnection for ``agency_id``; commit on success, roll back on error."""
        agency_id = require_agency_id(agency_id)
        with self._guarded(
            lambda conn: self.setter.apply(conn, agency_id),
            lambda conn: ScopedConnection(conn, agency_id, _CAPABILITY),
        ) as scoped:
            yield scoped

    @contextmanager
    def system(self, reason: str) -> Iterator[SystemConnection]:
        """Yield a SystemConnection that can read every agency's rows."""
        if not reason or not reason.strip():
            raise ValueError("System access requires an audit reason")
        with self._guarded(
            self.setter.apply_system,
            lambda conn: SystemConnection(conn, reason, _CAPABILITY),
        ) as system:
            yield system
