"""Minimal SQL expressions used by projections."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


def quote(identifier: str) -> str:
    """Quote an SQL identifier, doubling embedded quotes."""
    return '"' + identifier.replace('"', '""') + '"'


class QueryExpression:
    """Base class for anything that renders as an SQL expression."""

    def sql(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.sql()


@dataclass(frozen=True)
class ColumnReference(QueryExpression):
    """A possibly table-qualified column: ``"users"."email"``."""

    column: str
    table: str | None = None

    def sql(self) -> str:
        if self.table is None:
            return quote(self.column)
        return f"{quote(self.table)}.{quote(self.column)}"


@dataclass(frozen=True)
class BoundValue(QueryExpression):
    """A literal value inlined into the statement."""

    value: Any

    def sql(self) -> str:
        value = self.value
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, (int, float)):
            return repr(value)
        text = str(value).replace("'", "''")
        return f"'{text}'"


@dataclass(frozen=True)
class RawSQL(QueryExpression):
    """Verbatim SQL text."""

    text: str

    def sql(self) -> str:
        return self.text


NULL = BoundValue(None)


def as_expression(value: Any) -> QueryExpression:
    """Wrap plain Python values as bound literals."""
    if isinstance(value, QueryExpression):
        return value
    return BoundValue(value)
