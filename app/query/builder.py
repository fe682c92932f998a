"""
Immutable fluent builder for parameterized report queries.

Every method returns a new ``ReportQueryBuilder``; the receiver is never
changed. A partially built query can therefore be branched safely::

    base = ReportQueryBuilder().from_("properties", "p")
    mine = base.where_landlord(5)
    everyone = base.where_landlord(None)

Caller supplied values only ever reach the database through the parameter
tuple. Clause text passed to ``select``, ``join``, ``where`` and friends must
be code constants that contain ``?`` markers for any value.
"""

import re
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from app.core.exceptions import BuildError

from .dialects import POSTGRESQL, SqlDialect
from .placeholders import count_placeholders
from .schemas import (
    BuiltQuery,
    CommonTableExpression,
    Fragment,
    JoinClause,
    JoinKind,
    OrderTerm,
    SortDirection,
    TableSource,
)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")
_ORDER_COLUMN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")
_ORDER_AGGREGATE = re.compile(r"^(COUNT|SUM|AVG|MIN|MAX|COALESCE)\([A-Za-z0-9_.*, ()]+\)$", re.IGNORECASE)


def _require_identifier(value: str, what: str, pattern: "re.Pattern[str]" = _IDENTIFIER) -> str:
    if not isinstance(value, str) or not pattern.match(value):
        raise ValueError(f"Invalid {what}: {value!r}")
    return value


def _as_columns(columns: Union[str, Iterable[str]]) -> List[str]:
    if isinstance(columns, str):
        return [columns]
    return list(columns)


@dataclass(frozen=True)
class ReportQueryBuilder:
    """Composable SELECT with CTEs, joins, predicates, grouping and ordering."""

    dialect: SqlDialect = POSTGRESQL
    ctes: Tuple[CommonTableExpression, ...] = ()
    select_columns: Tuple[Fragment, ...] = ()
    source: Optional[TableSource] = None
    joins: Tuple[JoinClause, ...] = ()
    predicates: Tuple[Fragment, ...] = ()
    group_by_columns: Tuple[str, ...] = ()
    having_clauses: Tuple[Fragment, ...] = ()
    order_terms: Tuple[OrderTerm, ...] = ()
    limit_clause: Optional[Fragment] = field(default=None)

    # ===== COMPOSITION =====

    def select(self, columns: Union[str, Iterable[str]], *params: Any) -> "ReportQueryBuilder":
        """Append select expressions. Repeated calls accumulate and are not de-duplicated."""
        cols = _as_columns(columns)
        if not cols:
            return self
        return replace(self, select_columns=self.select_columns + (Fragment(", ".join(cols), params),))

    def from_(self, table: str, alias: str) -> "ReportQueryBuilder":
        """Set the base table. A second call replaces the first."""
        _require_identifier(table, "table name", _TABLE_NAME)
        _require_identifier(alias, "table alias")
        return replace(self, source=TableSource(table, alias))

    def join(
        self,
        table: str,
        alias: str,
        condition: str,
        *params: Any,
        kind: Union[JoinKind, str] = JoinKind.INNER,
    ) -> "ReportQueryBuilder":
        """Add a join. Values needed by ``condition`` are passed as ``params``."""
        _require_identifier(table, "table name", _TABLE_NAME)
        _require_identifier(alias, "table alias")
        clause = JoinClause(table, alias, Fragment(condition, params), JoinKind(kind))
        return replace(self, joins=self.joins + (clause,))

    def left_join(self, table: str, alias: str, condition: str, *params: Any) -> "ReportQueryBuilder":
        return self.join(table, alias, condition, *params, kind=JoinKind.LEFT)

    def where(self, expression: str, *values: Any) -> "ReportQueryBuilder":
        """AND a predicate onto the WHERE clause together with its bound values."""
        return replace(self, predicates=self.predicates + (Fragment(expression, values),))

    def where_if(self, expression: str, should_apply: bool, *values: Any) -> "ReportQueryBuilder":
        if should_apply:
            return self.where(expression, *values)
        return self

    def where_landlord(self, landlord_id: Optional[int], property_alias: str = "p") -> "ReportQueryBuilder":
        """Restrict to one landlord's properties.

        ``None`` adds no predicate at all, which means every landlord inside
        the current agency. Callers that must fail closed for landlord users
        have to check before calling; ``create_report_request`` does this by
        forcing the landlord id from the authenticated context.
        """
        if landlord_id is None:
            return self
        _require_identifier(property_alias, "table alias")
        return self.where(f"{property_alias}.landlord_id = ?", landlord_id)

    def where_property(self, property_id: Optional[int], property_alias: str = "p") -> "ReportQueryBuilder":
        """Restrict to one property; ``None`` means all properties in the agency."""
        if property_id is None:
            return self
        _require_identifier(property_alias, "table alias")
        return self.where(f"{property_alias}.id = ?", property_id)

    def where_tenancy_status(self, status: Optional[str], tenancy_alias: str = "t") -> "ReportQueryBuilder":
        if not status or status == "all":
            return self
        _require_identifier(tenancy_alias, "table alias")
        return self.where(f"{tenancy_alias}.status = ?", status)

    def where_date_range(
        self, column: str, start: Optional[date] = None, end: Optional[date] = None
    ) -> "ReportQueryBuilder":
        builder = self
        if start is not None:
            builder = builder.where(f"{column} >= ?", start.isoformat())
        if end is not None:
            builder = builder.where(f"{column} <= ?", end.isoformat())
        return builder

    def where_days_ahead(
        self, column: str, days: Optional[int], today: Optional[date] = None
    ) -> "ReportQueryBuilder":
        """``column > today AND column <= today + days``, both bounds bound as ISO dates."""
        if days is None:
            return self
        today = today or date.today()
        horizon = today + timedelta(days=int(days))
        return self.where(f"{column} > ? AND {column} <= ?", today.isoformat(), horizon.isoformat())

    def where_year_month(
        self, column: str, year: Optional[int], month: Optional[int] = None
    ) -> "ReportQueryBuilder":
        builder = self
        if year is not None:
            builder = builder.where(f"{self.dialect.year_of(column)} = ?", int(year))
        if month is not None:
            builder = builder.where(f"{self.dialect.month_of(column)} = ?", int(month))
        return builder

    def with_cte(self, name: str, body: str, params: Sequence[Any] = ()) -> "ReportQueryBuilder":
        """Register a named CTE.

        CTEs are emitted in registration order and their parameters come first
        in the final tuple, in that same order. Registering an existing name
        replaces its body but keeps its original position.
        """
        _require_identifier(name, "CTE name")
        cte = CommonTableExpression(name, Fragment(body, tuple(params)))
        existing = [c.name for c in self.ctes]
        if name in existing:
            ctes = list(self.ctes)
            ctes[existing.index(name)] = cte
            return replace(self, ctes=tuple(ctes))
        return replace(self, ctes=self.ctes + (cte,))

    def group_by(self, columns: Union[str, Iterable[str]]) -> "ReportQueryBuilder":
        return replace(self, group_by_columns=self.group_by_columns + tuple(_as_columns(columns)))

    def having(self, expression: str, *values: Any) -> "ReportQueryBuilder":
        return replace(self, having_clauses=self.having_clauses + (Fragment(expression, values),))

    def order_by(self, column: str, direction: Union[SortDirection, str] = SortDirection.ASC) -> "ReportQueryBuilder":
        if isinstance(direction, str):
            direction = direction.upper()
        try:
            direction = SortDirection(direction)
        except ValueError:
            raise ValueError(f"Invalid sort direction: {direction!r}. Must be ASC or DESC") from None
        if not (_ORDER_COLUMN.match(column) or _ORDER_AGGREGATE.match(column)):
            raise ValueError(f"Invalid ORDER BY column: {column!r}")
        return replace(self, order_terms=self.order_terms + (OrderTerm(column, direction),))

    def limit(self, count: int) -> "ReportQueryBuilder":
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise ValueError(f"LIMIT must be a non-negative integer, got {count!r}")
        return replace(self, limit_clause=Fragment("LIMIT ?", (count,)))

    def using_dialect(self, dialect: SqlDialect) -> "ReportQueryBuilder":
        return replace(self, dialect=dialect)

    # ===== ASSEMBLY =====

    def _fragments_in_text_order(self) -> List[Fragment]:
        fragments: List[Fragment] = [cte.body for cte in self.ctes]
        fragments.extend(self.select_columns)
        fragments.extend(join.condition for join in self.joins)
        fragments.extend(self.predicates)
        fragments.extend(self.having_clauses)
        if self.limit_clause is not None:
            fragments.append(self.limit_clause)
        return fragments

    @property
    def params(self) -> Tuple[Any, ...]:
        """All bound values in the order their placeholders appear in ``build().text``."""
        return tuple(value for fragment in self._fragments_in_text_order() for value in fragment.params)

    def to_sql(self) -> str:
        if self.source is None:
            raise BuildError("Query has no source table; call from_() before build()")

        lines: List[str] = []
        if self.ctes:
            lines.append("WITH " + ",\n".join(cte.render() for cte in self.ctes))

        columns = ", ".join(fragment.text for fragment in self.select_columns) or "*"
        lines.append(f"SELECT {columns}")
        lines.append(f"FROM {self.source.table} {self.source.alias}")
        lines.extend(join.render() for join in self.joins)

        if self.predicates:
            lines.append("WHERE " + "\n  AND ".join(f"({p.text})" for p in self.predicates))
        if self.group_by_columns:
            lines.append("GROUP BY " + ", ".join(self.group_by_columns))
        if self.having_clauses:
            lines.append("HAVING " + " AND ".join(f"({h.text})" for h in self.having_clauses))
        if self.order_terms:
            lines.append("ORDER BY " + ", ".join(term.render() for term in self.order_terms))
        if self.limit_clause is not None:
            lines.append(self.limit_clause.text)
        return "\n".join(lines)

    def build(self) -> BuiltQuery:
        """Assemble the final text and parameters.

        Raises BuildError when the number of ``?`` markers in the text differs
        from the number of bound values. Building never changes the builder.
        """
        sql = self.to_sql()
        params = self.params
        placeholder_count = count_placeholders(sql)
        if placeholder_count != len(params):
            raise BuildError(
                f"Query has {placeholder_count} placeholders but {len(params)} parameters:\n{sql}"
            )
        return BuiltQuery(sql, params)
