"""
Handle states, column descriptors and row types.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Self

from libb import attrdict

Row = attrdict


class HandleState(Enum):
    """Lifecycle of a Database or Connection handle."""
    CONSTRUCTING = 'constructing'
    READY = 'ready'
    CLOSED = 'closed'


class StatementState(Enum):
    """Lifecycle of a Statement handle."""
    READY = 'ready'
    FINALIZED = 'finalized'


@dataclass(frozen=True, slots=True)
class Column:
    """Result column: name plus declared SQL type."""
    name: str
    type: str

    @classmethod
    def from_description(cls, description: list[tuple] | None) -> list[Self] | None:
        """Build columns from a DB-API cursor description.

        The duckdb package reports the type either as a string or as a
        ``DuckDBPyType``; both render to the SQL type name.
        """
        if description is None:
            return None
        return [cls(str(item[0]), str(item[1])) for item in description]

    @classmethod
    def from_relation(cls, relation: Any) -> list[Self]:
        """Build columns from a lazily bound duckdb relation."""
        return [cls(name, str(type_)) for name, type_ in zip(relation.columns, relation.types)]

    @staticmethod
    def get_names(columns: list['Column'] | None) -> list[str]:
        """Column names in projection order."""
        return [col.name for col in columns or []]


def make_rows(description: list[tuple] | None, records: list[tuple]) -> list[Row]:
    """Pair fetched tuples with column names.
    """
    if description is None:
        return []
    names = [item[0] for item in description]
    return [attrdict(zip(names, record)) for record in records]
