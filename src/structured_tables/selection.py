"""Projection constructors for partial selections.

A selection takes one expression per exposed column of a record and lays
them out as a flat, ordered list of aliased column expressions whose order
matches the record's decode plan.
"""

from __future__ import annotations

import inspect
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterator, Sequence

from structured_tables.expressions import (
    NULL,
    ColumnReference,
    QueryExpression,
    as_expression,
    quote,
)
from structured_tables.types import Column, ColumnCatalog
from structured_tables.variants import VariantCase, VariantCatalog

logger = logging.getLogger(__name__)


def disambiguate(names: Sequence[str]) -> list[str]:
    """Suffix every colliding name with ``_1``, ``_2``, ... in order.

    Names that occur once are kept as is. A suffix that would clash with any
    other name in the list is skipped.
    """
    counts = Counter(names)
    taken = set(names)
    next_suffix: dict[str, int] = {}
    result: list[str] = []
    for name in names:
        if counts[name] == 1:
            result.append(name)
            continue
        index = next_suffix.get(name, 0)
        while True:
            index += 1
            candidate = f"{name}_{index}"
            if candidate not in taken:
                break
        next_suffix[name] = index
        taken.add(candidate)
        result.append(candidate)
    return result


@dataclass(frozen=True)
class SelectedColumn:
    """One aliased expression of a projection."""

    alias: str
    expression: QueryExpression

    @property
    def sql(self) -> str:
        return f"{self.expression.sql()} AS {quote(self.alias)}"


@dataclass(frozen=True)
class Projection:
    """A flat, ordered list of selected columns."""

    columns: tuple[SelectedColumn, ...]

    @property
    def aliases(self) -> list[str]:
        return [c.alias for c in self.columns]

    @property
    def expressions(self) -> list[QueryExpression]:
        return [c.expression for c in self.columns]

    @property
    def sql(self) -> str:
        return ", ".join(c.sql for c in self.columns)

    def __iter__(self) -> Iterator[SelectedColumn]:
        return iter(self.columns)

    def __len__(self) -> int:
        return len(self.columns)


@dataclass(frozen=True)
class SelectionParameter:
    """A constructor parameter covering one top-level catalog entry."""

    name: str
    column: Column
    default: QueryExpression | None = None

    @property
    def width(self) -> int:
        return self.column.width

    @property
    def is_required(self) -> bool:
        return self.default is None

    def expand(self, value: Any) -> list[QueryExpression]:
        """Turn an argument into one expression per leaf column."""
        if self.column.group is None:
            return [as_expression(value)]
        if value is None:
            if not self.column.is_nullable:
                raise TypeError(f"Column group '{self.name}' is not optional")
            return [NULL] * self.width
        if isinstance(value, Projection):
            expressions: list[QueryExpression] = value.expressions
        elif isinstance(value, (list, tuple)):
            expressions = [as_expression(v) for v in value]
        else:
            raise TypeError(
                f"Column group '{self.name}' takes a projection or a sequence of "
                f"{self.width} expressions"
            )
        if len(expressions) != self.width:
            raise ValueError(
                f"Column group '{self.name}' takes {self.width} expressions, "
                f"got {len(expressions)}"
            )
        return expressions


def _parameter(name: str, column: Column) -> SelectionParameter:
    default = None
    if column.group is None and column.default is not None and column.default.is_evaluable:
        default = as_expression(column.default.evaluate())
    return SelectionParameter(name=name, column=column, default=default)


def _bind(
    type_name: str,
    parameters: Sequence[SelectionParameter],
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
) -> list[QueryExpression]:
    if len(args) > len(parameters):
        raise TypeError(
            f"{type_name}() takes {len(parameters)} arguments but {len(args)} were given"
        )
    values = {p.name: value for p, value in zip(parameters, args)}
    names = {p.name for p in parameters}
    for key, value in kwargs.items():
        if key not in names:
            raise TypeError(f"{type_name}() got an unexpected keyword argument '{key}'")
        if key in values:
            raise TypeError(f"{type_name}() got multiple values for argument '{key}'")
        values[key] = value

    expressions: list[QueryExpression] = []
    missing: list[str] = []
    for p in parameters:
        if p.name in values:
            expressions.extend(p.expand(values[p.name]))
        elif p.default is not None:
            expressions.append(p.default)
        else:
            missing.append(p.name)
    if missing:
        names_text = ", ".join(f"'{m}'" for m in missing)
        raise TypeError(f"{type_name}() missing required arguments: {names_text}")
    return expressions


def _signature(parameters: Sequence[SelectionParameter]) -> inspect.Signature:
    return inspect.Signature(
        [
            inspect.Parameter(
                p.name,
                inspect.Parameter.KEYWORD_ONLY,
                default=p.default if p.default is not None else inspect.Parameter.empty,
            )
            for p in parameters
        ]
    )


class Selection:
    """Projection constructor for a record's columns.

    Calling it with one expression per parameter (positionally or by name)
    returns a Projection. Plain values are bound as literals.
    """

    def __init__(
        self, type_name: str, parameters: Sequence[SelectionParameter], aliases: Sequence[str]
    ) -> None:
        self.type_name = type_name
        self.parameters = tuple(parameters)
        self.aliases = tuple(aliases)

    @property
    def signature(self) -> inspect.Signature:
        return _signature(self.parameters)

    @property
    def width(self) -> int:
        return len(self.aliases)

    def __call__(self, *args: Any, **kwargs: Any) -> Projection:
        expressions = _bind(self.type_name, self.parameters, args, kwargs)
        return Projection(
            tuple(SelectedColumn(alias, e) for alias, e in zip(self.aliases, expressions))
        )

    def __repr__(self) -> str:
        return f"Selection({self.type_name!r}, {list(self.aliases)!r})"


class VariantSelection:
    """Per-case projection constructors for a sum type.

    ``selection.case("photo", ...)`` fills every other case's columns with
    NULL so the projection always spans the whole unified column list.
    """

    def __init__(self, catalog: VariantCatalog, aliases: Sequence[str]) -> None:
        self.catalog = catalog
        self.type_name = catalog.type_name
        self.aliases = tuple(aliases)
        self._parameters: dict[str, tuple[SelectionParameter, ...]] = {}
        for case in catalog.cases:
            payload = case.payload
            if payload is None:
                self._parameters[case.name] = ()
            else:
                self._parameters[case.name] = (_parameter(case.arg_label or case.name, payload),)

    @property
    def cases(self) -> list[str]:
        return [case.name for case in self.catalog.cases]

    @property
    def width(self) -> int:
        return len(self.aliases)

    def signature(self, case: str) -> inspect.Signature:
        return _signature(self._parameters[self._case(case).name])

    def _case(self, name: str) -> VariantCase:
        case = self.catalog.case(name)
        if case is None:
            raise KeyError(f"'{self.type_name}' has no case '{name}'")
        return case

    def case(self, name: str, *args: Any, **kwargs: Any) -> Projection:
        """Build the projection selecting ``name`` with the given payload."""
        selected = self._case(name)
        expressions: list[QueryExpression] = []
        for case in self.catalog.cases:
            if case is selected:
                expressions.extend(
                    _bind(f"{self.type_name}.{name}", self._parameters[name], args, kwargs)
                )
            else:
                expressions.extend([NULL] * case.width)
        return Projection(
            tuple(SelectedColumn(alias, e) for alias, e in zip(self.aliases, expressions))
        )

    def __repr__(self) -> str:
        return f"VariantSelection({self.type_name!r}, {self.cases!r})"


def build_selection(catalog: ColumnCatalog) -> Selection:
    """Derive the projection constructor of a record catalog."""
    parameters = [_parameter(column.field_name, column) for column in catalog.columns]
    aliases = disambiguate([c.name for c in catalog.leaf_columns()])
    logger.debug("Built selection for %s: %s", catalog.type_name, aliases)
    return Selection(catalog.type_name, parameters, aliases)


def build_variant_selection(catalog: VariantCatalog) -> VariantSelection:
    """Derive the per-case projection constructors of a sum type."""
    aliases = disambiguate([c.name for c in catalog.leaf_columns()])
    logger.debug("Built variant selection for %s: %s", catalog.type_name, aliases)
    return VariantSelection(catalog, aliases)


def table_columns(catalog: ColumnCatalog | VariantCatalog, alias: str | None = None) -> Projection:
    """Select every column of a table, qualified by ``alias`` or the table name."""
    table = alias or catalog.table_name
    leaves = catalog.leaf_columns()
    aliases = disambiguate([c.name for c in leaves])
    return Projection(
        tuple(
            SelectedColumn(name, ColumnReference(column.name, table))
            for name, column in zip(aliases, leaves)
        )
    )
