# app/tenancy/row_security.py
"""
Row level security for tenant owned tables.

PostgreSQL enforces isolation with a FORCE'd policy on every tenant table that
compares ``agency_id`` with the transaction local ``app.agency_id`` setting.

SQLite has no row security, so it is emulated per connection: two SQL
functions read the tenant context stored on the pool's connection record, and
a TEMP view named after each tenant table shadows the real table with the same
agency filter. Unqualified table names resolve to the temp view first.

Either way a connection with no context set sees no tenant rows.
"""

import logging
from typing import Iterable, Sequence

from sqlalchemy import event, text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

TENANT_TABLES: Sequence[str] = (
    "landlords",
    "properties",
    "bedrooms",
    "users",
    "tenancies",
    "tenancy_members",
    "payment_schedules",
    "payments",
)

AGENCY_SETTING = "app.agency_id"
SYSTEM_SETTING = "app.system_access"

# Keys on the pool connection record's ``info`` dict (SQLite emulation)
AGENCY_INFO_KEY = "tenancy.agency_id"
SYSTEM_INFO_KEY = "tenancy.system_access"

POLICY_NAME = "agency_isolation"

_POLICY_PREDICATE = (
    f"agency_id = NULLIF(current_setting('{AGENCY_SETTING}', true), '')::integer "
    f"OR current_setting('{SYSTEM_SETTING}', true) = 'on'"
)


def postgres_policy_statements(table: str) -> list:
    return [
        f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY",
        f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY",
        f"DROP POLICY IF EXISTS {POLICY_NAME} ON {table}",
        f"CREATE POLICY {POLICY_NAME} ON {table} USING ({_POLICY_PREDICATE}) WITH CHECK ({_POLICY_PREDICATE})",
    ]


def sqlite_view_statement(table: str) -> str:
    return (
        f"CREATE TEMP VIEW IF NOT EXISTS {table} AS "
        f"SELECT * FROM main.{table} WHERE agency_id = current_agency_id() OR system_access() = 1"
    )


def _on_sqlite_connect(dbapi_connection, connection_record):
    dbapi_connection.create_function(
        "current_agency_id", 0, lambda: connection_record.info.get(AGENCY_INFO_KEY)
    )
    dbapi_connection.create_function(
        "system_access", 0, lambda: 1 if connection_record.info.get(SYSTEM_INFO_KEY) else 0
    )
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        existing = {row[0] for row in cursor.fetchall()}
        for table in TENANT_TABLES:
            if table in existing:
                cursor.execute(sqlite_view_statement(table))
    finally:
        cursor.close()


def _on_sqlite_checkin(dbapi_connection, connection_record):
    connection_record.info.pop(AGENCY_INFO_KEY, None)
    connection_record.info.pop(SYSTEM_INFO_KEY, None)


def install_row_level_security(engine: Engine, tables: Iterable[str] = TENANT_TABLES) -> None:
    """Enable tenant isolation on ``engine``. Call after the schema exists.

    For SQLite the pool is disposed so every connection handed out afterwards
    is created with the isolation views in place.
    """
    tables = list(tables)
    if engine.dialect.name == "postgresql":
        with engine.begin() as conn:
            for table in tables:
                for statement in postgres_policy_statements(table):
                    conn.execute(text(statement))
        logger.info(f"Row level security policies installed on {len(tables)} tables")
    elif engine.dialect.name == "sqlite":
        if not event.contains(engine, "connect", _on_sqlite_connect):
            event.listen(engine, "connect", _on_sqlite_connect)
            event.listen(engine, "checkin", _on_sqlite_checkin)
        engine.dispose()
        logger.info("SQLite tenant isolation views enabled")
    else:
        raise NotImplementedError(f"Row level security is not supported for {engine.dialect.name}")


def missing_sqlite_views(connection) -> list:
    """Tenant tables present in ``main`` that have no isolating temp view on this connection."""
    tables = set(connection.exec_driver_sql("SELECT name FROM sqlite_master WHERE type = 'table'").scalars())
    views = set(connection.exec_driver_sql("SELECT name FROM sqlite_temp_master WHERE type = 'view'").scalars())
    return [t for t in TENANT_TABLES if t in tables and t not in views]
