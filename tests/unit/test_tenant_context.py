"""
Unit tests for the PostgreSQL tenant context path and error translation.
Connections and engines are mocked; the SQLite path is covered by the functional tests.
"""

from unittest.mock import MagicMock, Mock

import pytest
from sqlalchemy import exc

from app.core.exceptions import QueryExecutionError, StatementTimeoutError, TenantContextError
from app.tenancy.context import (
    _CAPABILITY,
    PostgresContextSetter,
    ScopedConnection,
    TenantContextEnforcer,
    context_setter_for,
    translate_execution_error,
)
from app.tenancy.row_security import POLICY_NAME, postgres_policy_statements


class FakePgError(Exception):
    def __init__(self, message, pgcode=None):
        super().__init__(message)
        self.pgcode = pgcode


def bound_values(conn):
    """The bind dict passed with every ``conn.execute`` call, in call order."""
    return [c.args[1] for c in conn.execute.call_args_list]


def pg_connection(setting_value):
    conn = MagicMock()
    conn.invalidated = False
    conn.execute.return_value.scalar.return_value = setting_value
    return conn


class TestPostgresContextSetter:
    """set_config calls are transaction local and read back before any query runs"""

    def test_apply_sets_agency_then_reads_it_back(self):
        conn = pg_connection("7")

        PostgresContextSetter().apply(conn, 7)

        assert bound_values(conn) == [
            {"name": "app.agency_id", "value": "7", "is_local": True},
            {"name": "app.system_access", "value": "off", "is_local": True},
            {"name": "app.agency_id"},
        ]
        assert str(conn.execute.call_args_list[0].args[0]) == "SELECT set_config(:name, :value, :is_local)"

    def test_apply_sets_statement_timeout_last(self):
        conn = pg_connection("7")

        PostgresContextSetter(statement_timeout_ms=5000).apply(conn, 7)

        assert bound_values(conn)[-1] == {"name": "statement_timeout", "value": "5000", "is_local": True}

    def test_read_back_mismatch_raises(self):
        conn = pg_connection("8")

        with pytest.raises(TenantContextError):
            PostgresContextSetter(statement_timeout_ms=5000).apply(conn, 7)

        # nothing after the failed read back
        assert len(conn.execute.call_args_list) == 3

    def test_unset_setting_raises(self):
        conn = pg_connection(None)

        with pytest.raises(TenantContextError):
            PostgresContextSetter().apply(conn, 7)

    def test_apply_system(self):
        conn = pg_connection("on")

        PostgresContextSetter().apply_system(conn)

        assert bound_values(conn) == [
            {"name": "app.agency_id", "value": "", "is_local": True},
            {"name": "app.system_access", "value": "on", "is_local": True},
            {"name": "app.system_access"},
        ]

    def test_apply_system_mismatch_raises(self):
        with pytest.raises(TenantContextError):
            PostgresContextSetter().apply_system(pg_connection("off"))

    def test_clear_resets_session_values_and_commits(self):
        conn = pg_connection(None)

        PostgresContextSetter().clear(conn)

        assert bound_values(conn) == [
            {"name": "app.agency_id", "value": "", "is_local": False},
            {"name": "app.system_access", "value": "off", "is_local": False},
        ]
        conn.commit.assert_called_once()


class TestEnforcerOnPostgres:
    @pytest.fixture
    def engine(self):
        engine = MagicMock()
        engine.dialect.name = "postgresql"
        return engine

    def test_set_execute_clear_order(self, engine):
        conn = pg_connection("3")
        engine.connect.return_value = conn
        enforcer = TenantContextEnforcer(engine)

        with enforcer.scoped(3) as scoped:
            scoped.execute("SELECT id FROM properties WHERE id = ?", [11])

        values = bound_values(conn)
        assert values[0] == {"name": "app.agency_id", "value": "3", "is_local": True}
        assert values.index({"p0": 11}) == 3
        assert values[-2:] == [
            {"name": "app.agency_id", "value": "", "is_local": False},
            {"name": "app.system_access", "value": "off", "is_local": False},
        ]

    def test_context_failure_aborts_before_query(self, engine):
        conn = pg_connection("99")
        engine.connect.return_value = conn
        enforcer = TenantContextEnforcer(engine)

        with pytest.raises(TenantContextError):
            with enforcer.scoped(3) as scoped:
                scoped.execute("SELECT 1")

        # set, set, read back, then the two clears; the query never ran
        assert len(bound_values(conn)) == 5
        assert {} not in bound_values(conn)

    def test_unsupported_backend(self):
        engine = Mock()
        engine.dialect.name = "mysql"

        with pytest.raises(NotImplementedError):
            context_setter_for(engine)


class TestTranslateExecutionError:
    def test_statement_timeout_is_distinct(self):
        orig = FakePgError("canceling statement due to statement timeout", pgcode="57014")
        error = translate_execution_error(exc.OperationalError("SELECT pg_sleep(60)", {}, orig))

        assert isinstance(error, StatementTimeoutError)
        assert str(error) == "canceling statement due to statement timeout"
        assert error.orig is orig

    def test_other_sqlstate_is_plain_execution_error(self):
        orig = FakePgError('relation "bedrooms" does not exist', pgcode="42P01")
        error = translate_execution_error(exc.ProgrammingError("SELECT * FROM bedrooms", {}, orig))

        assert type(error) is QueryExecutionError
        assert str(error) == 'relation "bedrooms" does not exist'

    def test_timeout_raised_from_scoped_connection(self):
        conn = Mock()
        orig = FakePgError("canceling statement due to statement timeout", pgcode="57014")
        conn.execute.side_effect = exc.OperationalError("SELECT 1", {}, orig)
        scoped = ScopedConnection(conn, 1, _CAPABILITY)

        with pytest.raises(StatementTimeoutError):
            scoped.execute("SELECT 1")

    def test_statement_error_becomes_execution_error(self):
        conn = Mock()
        error = exc.StatementError("A value is required for bind parameter '30'", "SELECT :30", {}, None)
        conn.execute.side_effect = error
        scoped = ScopedConnection(conn, 1, _CAPABILITY)

        with pytest.raises(QueryExecutionError) as exc_info:
            scoped.execute("SELECT 1")

        assert "A value is required for bind parameter" in str(exc_info.value)
        assert exc_info.value.__cause__ is error


class TestPolicyStatements:
    def test_policy_forces_row_security(self):
        statements = postgres_policy_statements("properties")

        assert statements[:3] == [
            "ALTER TABLE properties ENABLE ROW LEVEL SECURITY",
            "ALTER TABLE properties FORCE ROW LEVEL SECURITY",
            f"DROP POLICY IF EXISTS {POLICY_NAME} ON properties",
        ]
        create = statements[3]
        assert create.startswith(f"CREATE POLICY {POLICY_NAME} ON properties USING (")
        assert "agency_id = NULLIF(current_setting('app.agency_id', true), '')::integer" in create
        assert "current_setting('app.system_access', true) = 'on'" in create
        assert "WITH CHECK (" in create
