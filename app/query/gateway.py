"""
Execution gateway: the only way report code talks to the database.

Two surfaces with deliberately different signatures:

- ``scoped_query(sql, params, agency_id)`` runs under one agency's context.
- ``system_query(sql, params, reason=...)`` bypasses tenant isolation and
  must name the platform operation it serves. Every call is logged.

Failures surface as the error kinds in ``app.core.exceptions``. The gateway
never retries; retry policy belongs to the caller.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

from sqlalchemy.engine import Engine

from app.core.config import PoolSettings
from app.core.database import build_engine
from app.tenancy.context import ScopedConnection, TenantContextEnforcer

from .builder import ReportQueryBuilder
from .dialects import SqlDialect, dialect_for
from .schemas import BuiltQuery

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class ExecutionGateway:
    """Owns the connection pool and the scoped and system execution paths."""

    def __init__(self, engine: Engine, settings: Optional[PoolSettings] = None):
        self.engine = engine
        self.settings = settings or PoolSettings.from_env()
        self.dialect: SqlDialect = dialect_for(engine.dialect.name)
        self.enforcer = TenantContextEnforcer(
            engine,
            retry_after=self.settings.retry_after,
            statement_timeout_ms=self.settings.statement_timeout_ms,
        )

    @classmethod
    def from_url(cls, url: str, settings: Optional[PoolSettings] = None) -> "ExecutionGateway":
        settings = settings or PoolSettings.from_env()
        return cls(build_engine(url, settings), settings)

    def builder(self) -> ReportQueryBuilder:
        """A fresh query builder using this engine's SQL dialect."""
        return ReportQueryBuilder(dialect=self.dialect)

    # ===== SCOPED PATH =====

    def scoped_query(self, sql: str, params: Sequence[Any], agency_id: int) -> List[Row]:
        """Run one statement under ``agency_id`` on a freshly checked out connection."""
        with self.enforcer.scoped(agency_id) as conn:
            logger.debug(f"Scoped query for agency {agency_id} with {len(params)} params")
            return conn.execute(sql, params)

    def run(self, query: BuiltQuery, agency_id: int) -> List[Row]:
        return self.scoped_query(query.text, query.params, agency_id)

    def run_one(self, query: BuiltQuery, agency_id: int) -> Optional[Row]:
        rows = self.run(query, agency_id)
        return rows[0] if rows else None

    @contextmanager
    def scoped_connection(self, agency_id: int) -> Iterator[ScopedConnection]:
        """Several statements on one connection and one transaction for ``agency_id``.

        Commits when the block exits normally and rolls back on any error.
        """
        with self.enforcer.scoped(agency_id) as conn:
            yield conn

    # ===== SYSTEM PATH =====

    def system_query(
        self, sql: str, params: Sequence[Any] = (), *, reason: str, routine: bool = False
    ) -> List[Row]:
        """Run a statement without tenant isolation. Platform staff operations only.

        ``routine`` marks bookkeeping that runs on every request, such as the
        execution audit; it is logged at INFO instead of WARNING.
        """
        level = logging.INFO if routine else logging.WARNING
        logger.log(level, f"System query ({reason}) with {len(params)} params")
        with self.enforcer.system(reason) as conn:
            return conn.execute(sql, params)

    # ===== POOL =====

    def pool_status(self) -> str:
        return self.engine.pool.status()

    def checked_out(self) -> int:
        return self.engine.pool.checkedout()

    def dispose(self) -> None:
        self.engine.dispose()
