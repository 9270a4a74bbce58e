"""
SQL text helpers used by the native client.

- `has_placeholders()` - Check if SQL has DuckDB parameter placeholders
- `returns_rows()` - Check if a statement produces a result set
- `bind_params()` - Turn positional call arguments into engine parameters
"""
import re
from typing import Any

from libb import issequence

# ?, $1, $name
_HAS_PLACEHOLDER = re.compile(r'\?|\$\d+|\$[A-Za-z_]\w*')
_STRING_LITERAL = re.compile(r"'(?:[^']|'')*'")
_LINE_COMMENT = re.compile(r'--[^\n]*')
_BLOCK_COMMENT = re.compile(r'/\*.*?\*/', re.DOTALL)

ROW_KEYWORDS = frozenset({'select', 'with', 'from', 'values', 'table'})


def _strip_literals(sql: str) -> str:
    """Remove comments and string literals so their contents are not scanned."""
    sql = _BLOCK_COMMENT.sub(' ', sql)
    sql = _LINE_COMMENT.sub(' ', sql)
    return _STRING_LITERAL.sub("''", sql)


def has_placeholders(sql: str | None) -> bool:
    """Check if SQL has any parameter placeholders.

    Parameters
        sql: SQL query string

    Returns
        True if SQL contains placeholders outside string literals
    """
    if not sql:
        return False

    if '?' not in sql and '$' not in sql:
        return False

    return bool(_HAS_PLACEHOLDER.search(_strip_literals(sql)))


def returns_rows(sql: str | None) -> bool:
    """Check if the statement is a query that yields a result set.

    >>> returns_rows('SELECT 1')
    True
    >>> returns_rows('  (select 1)')
    True
    >>> returns_rows('CREATE TABLE t (i INT)')
    False
    """
    if not sql:
        return False
    text = _strip_literals(sql).lstrip(' \t\r\n(')
    keyword = re.match(r'[A-Za-z]+', text)
    return bool(keyword) and keyword.group(0).lower() in ROW_KEYWORDS


def bind_params(args: tuple[Any, ...]) -> Any:
    """Turn positional arguments into the parameters the engine expects.

    A single list, tuple or dict is passed through unchanged, so both
    ``all(sql, 1, 2)`` and ``all(sql, [1, 2])`` work, as do named
    parameters via ``all(sql, {'name': 1})``.

    >>> bind_params(())
    >>> bind_params((1, 2))
    [1, 2]
    >>> bind_params(([1, 2],))
    [1, 2]
    >>> bind_params(({'x': 1},))
    {'x': 1}
    """
    if not args:
        return None
    if len(args) == 1 and isinstance(args[0], dict):
        return args[0]
    if len(args) == 1 and issequence(args[0]) and not isinstance(args[0], str | bytes):
        return list(args[0])
    return list(args)


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
