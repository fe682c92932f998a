"""
Query representation types for the report query builder.

Every clause that can carry bound values is stored as a ``Fragment`` so a
clause's text and its parameters travel together. Flattening the fragments in
the order their text is emitted gives a parameter list that lines up with the
positional placeholders by construction.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Tuple


class JoinKind(str, Enum):
    """Supported join types."""

    INNER = "INNER"
    LEFT = "LEFT"


class SortDirection(str, Enum):
    """ORDER BY directions."""

    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True)
class Fragment:
    """A piece of SQL text with the values for its ``?`` placeholders, in order."""

    text: str
    params: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class TableSource:
    table: str
    alias: str


@dataclass(frozen=True)
class JoinClause:
    table: str
    alias: str
    condition: Fragment
    kind: JoinKind = JoinKind.INNER

    def render(self) -> str:
        return f"{self.kind.value} JOIN {self.table} {self.alias} ON {self.condition.text}"


@dataclass(frozen=True)
class CommonTableExpression:
    name: str
    body: Fragment

    def render(self) -> str:
        return f"{self.name} AS ({self.body.text.strip()})"


@dataclass(frozen=True)
class OrderTerm:
    column: str
    direction: SortDirection = SortDirection.ASC

    def render(self) -> str:
        return f"{self.column} {self.direction.value}"


@dataclass(frozen=True)
class BuiltQuery:
    """Final query text plus the flat parameter tuple backing its placeholders."""

    text: str
    params: Tuple[Any, ...]

    def __iter__(self):
        # Allows ``sql, params = builder.build()``
        yield self.text
        yield self.params
