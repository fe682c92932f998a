"""Engine specific SQL snippets used by the report builder.

Only expressions that genuinely differ between PostgreSQL and SQLite live
here. Column expressions passed in are trusted code constants, never caller
input.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SqlDialect:
    name: str

    def year_of(self, column: str) -> str:
        if self.name == "sqlite":
            return f"CAST(strftime('%Y', {column}) AS INTEGER)"
        return f"CAST(EXTRACT(YEAR FROM {column}) AS INTEGER)"

    def month_of(self, column: str) -> str:
        if self.name == "sqlite":
            return f"CAST(strftime('%m', {column}) AS INTEGER)"
        return f"CAST(EXTRACT(MONTH FROM {column}) AS INTEGER)"

    def string_agg(self, expression: str, separator: str = ", ") -> str:
        # separator is a code constant; it never comes from a request
        quoted = separator.replace("'", "''")
        if self.name == "sqlite":
            return f"GROUP_CONCAT({expression}, '{quoted}')"
        return f"STRING_AGG({expression}, '{quoted}')"


POSTGRESQL = SqlDialect("postgresql")
SQLITE = SqlDialect("sqlite")


def dialect_for(engine_name: str) -> SqlDialect:
    """Map a SQLAlchemy dialect name to the snippet set; unknown engines use PostgreSQL syntax."""
    if engine_name == "sqlite":
        return SQLITE
    return POSTGRESQL
