"""
Unit tests for the report query builder.
Covers placeholder/parameter alignment, immutability, null filters and ordering validation.
"""

from datetime import date

import pytest

from app.core.exceptions import BuildError
from app.query import SQLITE, ReportQueryBuilder
from app.query.factory import (
    CURRENT_OCCUPANT_CTE,
    NEXT_OCCUPANT_CTE,
    QueryBuilderFactory,
    with_current_occupants,
    with_next_occupants,
)
from app.query.placeholders import count_placeholders


def _base() -> ReportQueryBuilder:
    return ReportQueryBuilder().select(["p.id", "p.address_line1"]).from_("properties", "p")


class TestAssembly:
    """Clause layout of the built text"""

    def test_minimal_query(self):
        sql, params = ReportQueryBuilder().from_("properties", "p").build()
        assert sql == "SELECT *\nFROM properties p"
        assert params == ()

    def test_full_clause_order(self):
        qb = (
            _base()
            .with_cte("pay_sum", "SELECT 1 AS x")
            .join("landlords", "l", "p.landlord_id = l.id")
            .where("p.city = ?", "Leeds")
            .group_by(["p.id", "p.address_line1"])
            .having("COUNT(*) > ?", 0)
            .order_by("p.address_line1")
            .limit(10)
        )
        sql = qb.build().text

        positions = [
            sql.index(keyword)
            for keyword in ("WITH", "SELECT p.id", "FROM", "INNER JOIN", "WHERE", "GROUP BY", "HAVING", "ORDER BY", "LIMIT")
        ]
        assert positions == sorted(positions)

    def test_predicates_are_anded_and_parenthesised(self):
        sql = _base().where("p.city = ? OR p.city = ?", "Leeds", "York").where("p.id > ?", 3).build().text
        assert "WHERE (p.city = ? OR p.city = ?)\n  AND (p.id > ?)" in sql

    def test_left_join_kind(self):
        sql = _base().left_join("landlords", "l", "p.landlord_id = l.id").build().text
        assert "LEFT JOIN landlords l ON p.landlord_id = l.id" in sql

    def test_build_without_source_raises(self):
        with pytest.raises(BuildError):
            ReportQueryBuilder().select("1").build()

    def test_from_twice_last_wins(self):
        sql = _base().from_("bedrooms", "b").build().text
        assert "FROM bedrooms b" in sql
        assert "FROM properties p" not in sql

    def test_select_accumulates_without_dedup(self):
        sql = _base().select("p.id").build().text
        assert sql.startswith("SELECT p.id, p.address_line1, p.id\n")


class TestParameterAlignment:
    """Parameter position always matches placeholder position"""

    def test_params_follow_text_order(self):
        qb = (
            ReportQueryBuilder()
            .from_("properties", "p")
            .where("p.id = ?", 1)
            .select("(SELECT COUNT(*) FROM bedrooms WHERE property_id = ?) AS n", "select")
            .with_cte("recent", "SELECT * FROM tenancies WHERE start_date > ?", ["cte"])
            .left_join("landlords", "l", "p.landlord_id = l.id AND l.name <> ?", "join")
            .having("COUNT(*) > ?", "having")
            .limit(5)
        )
        query = qb.build()
        assert query.params == ("cte", "select", "join", 1, "having", 5)
        assert count_placeholders(query.text) == len(query.params)

    def test_cte_registered_after_predicates_still_comes_first(self):
        today = date(2024, 7, 1)
        early = with_current_occupants(ReportQueryBuilder(), today).from_("bedrooms", "b").where_landlord(7)
        late = with_current_occupants(ReportQueryBuilder().from_("bedrooms", "b").where_landlord(7), today)
        assert early.build() == late.build()
        assert late.build().params == ("2024-07-01", 7)

    def test_multiple_ctes_keep_declaration_order(self):
        today = date(2024, 7, 1)
        qb = with_next_occupants(with_current_occupants(_base(), today), today).where("p.id = ?", 9)
        query = qb.build()
        assert query.text.index(CURRENT_OCCUPANT_CTE) < query.text.index(NEXT_OCCUPANT_CTE)
        assert query.params == ("2024-07-01", "2024-07-01", 9)

    def test_replacing_a_cte_keeps_its_position(self):
        qb = (
            _base()
            .with_cte("first", "SELECT ? AS a", ["a"])
            .with_cte("second", "SELECT ? AS b", ["b"])
            .with_cte("first", "SELECT ? AS a2", ["a2"])
        )
        query = qb.build()
        assert query.params == ("a2", "b")
        assert "first AS (SELECT ? AS a2)" in query.text

    def test_mismatched_where_is_a_build_error(self):
        with pytest.raises(BuildError):
            _base().where("p.id = ? AND p.landlord_id = ?", 1).build()

    def test_extra_value_is_a_build_error(self):
        with pytest.raises(BuildError):
            _base().where("p.id = 1", 1).build()

    def test_question_mark_in_literal_is_not_a_placeholder(self):
        query = _base().where("p.address_line1 <> '?'").where("p.id = ?", 3).build()
        assert query.params == (3,)

    def test_every_factory_shape_is_aligned(self):
        factory = QueryBuilderFactory(SQLITE)
        today = date(2024, 7, 1)
        shapes = [
            factory.create_property_query(include_landlord_info=True),
            factory.create_room_occupancy_query(today, include_next_tenant=True, include_landlord_info=True),
            factory.create_payment_query(include_landlord_info=True),
            factory.create_arrears_query(),
            factory.create_tenancy_query(include_landlord_info=True),
        ]
        for qb in shapes:
            query = qb.where_landlord(1).where_property(2).build()
            assert count_placeholders(query.text) == len(query.params)


class TestImmutability:
    """Builders never change after construction"""

    def test_build_is_idempotent(self):
        qb = _base().where("p.id = ?", 1).with_cte("c", "SELECT ?", ["x"])
        assert qb.build() == qb.build()

    def test_branching_does_not_leak(self):
        base = _base()
        mine = base.where_landlord(5)
        everyone = base.where_landlord(None)
        assert mine.params == (5,)
        assert everyone.params == ()
        assert base.predicates == ()


class TestTenantPredicates:
    """Convenience predicates and their null behaviour"""

    def test_null_landlord_and_property_add_nothing(self):
        assert _base().where_landlord(None).where_property(None).build() == _base().build()

    def test_landlord_and_property_predicates(self):
        query = _base().where_landlord(4).where_property(8).build()
        assert "(p.landlord_id = ?)" in query.text
        assert "(p.id = ?)" in query.text
        assert query.params == (4, 8)

    def test_custom_property_alias(self):
        query = ReportQueryBuilder().from_("properties", "prop").where_landlord(4, property_alias="prop").build()
        assert "(prop.landlord_id = ?)" in query.text

    @pytest.mark.parametrize("status", [None, "", "all"])
    def test_tenancy_status_all_adds_nothing(self, status):
        assert _base().where_tenancy_status(status).params == ()

    def test_tenancy_status(self):
        assert _base().where_tenancy_status("active").params == ("active",)

    def test_days_ahead_is_half_open(self):
        query = _base().where_days_ahead("t.end_date", 30, today=date(2024, 7, 1)).build()
        assert "(t.end_date > ? AND t.end_date <= ?)" in query.text
        assert query.params == ("2024-07-01", "2024-07-31")

    def test_days_ahead_none_adds_nothing(self):
        assert _base().where_days_ahead("t.end_date", None).params == ()

    def test_year_month_postgres(self):
        query = _base().where_year_month("ps.due_date", 2024, 6).build()
        assert "CAST(EXTRACT(YEAR FROM ps.due_date) AS INTEGER) = ?" in query.text
        assert "CAST(EXTRACT(MONTH FROM ps.due_date) AS INTEGER) = ?" in query.text
        assert query.params == (2024, 6)

    def test_year_only_sqlite(self):
        query = _base().using_dialect(SQLITE).where_year_month("ps.due_date", 2024).build()
        assert "CAST(strftime('%Y', ps.due_date) AS INTEGER) = ?" in query.text
        assert query.params == (2024,)

    def test_where_if(self):
        assert _base().where_if("p.id = ?", False, 1).params == ()
        assert _base().where_if("p.id = ?", True, 1).params == (1,)

    def test_date_range(self):
        qb = _base().where_date_range("ps.due_date", start=date(2024, 1, 1), end=date(2024, 1, 31))
        assert qb.params == ("2024-01-01", "2024-01-31")


class TestValidation:
    """Identifier and ORDER BY validation at call time"""

    @pytest.mark.parametrize("direction", ["asc", "DESC", "Desc"])
    def test_order_direction_case_insensitive(self, direction):
        sql = _base().order_by("p.id", direction).build().text
        assert f"ORDER BY p.id {direction.upper()}" in sql

    @pytest.mark.parametrize("direction", ["UP", "DESC; DROP TABLE users", ""])
    def test_invalid_direction(self, direction):
        with pytest.raises(ValueError):
            _base().order_by("p.id", direction)

    @pytest.mark.parametrize("column", ["p.id; DELETE FROM users", "1=1 --", "p.id DESC, (SELECT 1)"])
    def test_invalid_order_column(self, column):
        with pytest.raises(ValueError):
            _base().order_by(column)

    def test_aggregate_order_column(self):
        sql = _base().order_by("SUM(ps.amount_due)", "DESC").build().text
        assert "ORDER BY SUM(ps.amount_due) DESC" in sql

    @pytest.mark.parametrize("table,alias", [("properties p", "p"), ("properties", "p;"), ("1abc", "x")])
    def test_invalid_identifiers(self, table, alias):
        with pytest.raises(ValueError):
            ReportQueryBuilder().from_(table, alias)

    @pytest.mark.parametrize("count", [-1, True, "5"])
    def test_invalid_limit(self, count):
        with pytest.raises(ValueError):
            _base().limit(count)
