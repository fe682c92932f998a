"""Positional placeholder handling built on the sqlparse lexer.

Counting goes through the tokenizer rather than a character scan so question
marks inside string literals, quoted identifiers and comments are ignored.
"""

from typing import Any, Dict, Iterator, List, Sequence, Tuple

from sqlparse import lexer
from sqlparse import tokens as T

from app.core.exceptions import BuildError


def _is_placeholder(ttype: Any, value: str) -> bool:
    return ttype in T.Name.Placeholder and value == "?"


def _tokens(sql: str) -> Iterator[Tuple[Any, str]]:
    return lexer.tokenize(sql)


def count_placeholders(sql: str) -> int:
    """Return the number of ``?`` positional markers in ``sql``."""
    return sum(1 for ttype, value in _tokens(sql) if _is_placeholder(ttype, value))


def to_named_binds(sql: str, params: Sequence[Any], prefix: str = "p") -> Tuple[str, Dict[str, Any]]:
    """Rewrite ``?`` markers as ``:p0``, ``:p1``... for SQLAlchemy ``text()``.

    Every other colon is escaped as ``\\:`` so ``text()`` leaves casts
    (``?::integer``) and literals such as ``'10 :30'`` as written.

    Raises BuildError when the marker count differs from ``len(params)``.
    """
    pieces: List[str] = []
    bind_values: Dict[str, Any] = {}
    index = 0
    for ttype, value in _tokens(sql):
        if not _is_placeholder(ttype, value):
            pieces.append(value.replace(":", "\\:"))
            continue
        if index >= len(params):
            raise BuildError(f"Query has more placeholders than parameters ({len(params)} supplied)")
        name = f"{prefix}{index}"
        pieces.append(f":{name}")
        bind_values[name] = params[index]
        index += 1
    if index != len(params):
        raise BuildError(f"Query has {index} placeholders but {len(params)} parameters were supplied")
    return "".join(pieces), bind_values
