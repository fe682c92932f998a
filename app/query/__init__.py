"""
Query layer for tenant scoped reporting.

Main Components:
- ReportQueryBuilder: immutable fluent builder producing text + positional params
- QueryBuilderFactory: pre-configured builders and shared window-function CTEs
- ExecutionGateway (app.query.gateway): scoped and system execution paths
"""

from .builder import ReportQueryBuilder
from .dialects import POSTGRESQL, SQLITE, SqlDialect, dialect_for
from .schemas import BuiltQuery, Fragment, JoinKind, SortDirection

__all__ = [
    "ReportQueryBuilder",
    "BuiltQuery",
    "Fragment",
    "JoinKind",
    "SortDirection",
    "SqlDialect",
    "POSTGRESQL",
    "SQLITE",
    "dialect_for",
]
