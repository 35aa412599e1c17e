"""Decode plans for reconstructing records from sequential row decoders.

A plan reads every one of its columns before checking any of them, so the
decoder's cursor always advances by the plan's full width even when the
decode ultimately fails. Optional column groups and variant cases rely on
this to stay aligned with the row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterator, Mapping, Sequence

from structured_tables.types import Column, ColumnCatalog, Expression, TypeRef

if TYPE_CHECKING:
    from structured_tables.variants import VariantCatalog

logger = logging.getLogger(__name__)


class QueryDecodingError(Exception):
    """Raised when a row cannot be decoded into a value."""


class MissingRequiredColumnError(QueryDecodingError):
    """Raised when a required column decodes to no value."""

    def __init__(self, columns: Sequence[str], type_name: str | None = None) -> None:
        self.columns = tuple(columns)
        self.type_name = type_name
        names = ", ".join(f"'{c}'" for c in self.columns)
        target = f" for '{type_name}'" if type_name else ""
        super().__init__(f"Missing required column{target}: {names}")


class DecodePolicy(Enum):
    """How many missing required columns a failing decode reports."""

    FAIL_FAST = "fail-fast"
    COLLECT_ALL = "collect-all"


class RowDecoder:
    """Sequential decoder over the column values of a single row.

    Args:
        row: Column values in selection order; ``None`` means SQL NULL.
        converters: Optional conversion functions keyed by type name. The
            column's representation type is looked up first, then its
            semantic type. Converters never see ``None``.
    """

    def __init__(
        self,
        row: Sequence[Any],
        converters: Mapping[str, Callable[[Any], Any]] | None = None,
    ) -> None:
        self._row = row
        self._position = 0
        self._converters = dict(converters or {})

    @property
    def position(self) -> int:
        return self._position

    @property
    def remaining(self) -> int:
        return len(self._row) - self._position

    def decode(self, *type_refs: TypeRef | None) -> Any:
        """Read the next column value, converting it by the first known type."""
        if self._position >= len(self._row):
            raise QueryDecodingError(
                f"Row has {len(self._row)} columns; cannot read column {self._position + 1}"
            )
        value = self._row[self._position]
        self._position += 1
        if value is None:
            return None
        for type_ref in type_refs:
            if type_ref is None:
                continue
            converter = self._converters.get(type_ref.name)
            if converter is not None:
                return converter(value)
        return value


@dataclass(frozen=True)
class DecodeStep:
    """Decoding of one catalog entry.

    ``nested`` is set for column groups: a DecodePlan for record groups or
    the VariantCatalog itself for sum-typed groups.
    """

    column: Column
    required: bool
    default: Expression | None = None
    nested: DecodePlan | VariantCatalog | None = None

    @property
    def field_name(self) -> str:
        return self.column.field_name

    @property
    def width(self) -> int:
        return self.column.width


@dataclass(frozen=True)
class DecodePlan:
    """Ordered decode steps, one per catalog entry, in catalog order."""

    type_name: str
    steps: tuple[DecodeStep, ...]
    factory: Callable[..., Any] | None = field(default=None, compare=False)

    @property
    def width(self) -> int:
        return sum(step.width for step in self.steps)

    @property
    def required_columns(self) -> list[str]:
        return [step.column.name for step in self.steps if step.required]

    def decode(self, decoder: RowDecoder, policy: DecodePolicy = DecodePolicy.FAIL_FAST) -> Any:
        """Decode one value from the decoder's current position.

        Raises:
            MissingRequiredColumnError: When a required column is absent.
        """
        values: dict[str, Any] = {}
        missing: list[str] = []
        for step in self.steps:
            absent: tuple[str, ...] = (step.column.name,)
            if step.nested is not None:
                try:
                    value = step.nested.decode(decoder, policy)
                except MissingRequiredColumnError as error:
                    value = None
                    absent = error.columns or absent
            else:
                value = decoder.decode(step.column.representation_type, step.column.semantic_type)

            if value is None:
                if step.default is not None:
                    value = _evaluate_default(step)
                elif step.required:
                    missing.extend(absent)
                    continue
            values[step.field_name] = value

        if missing:
            if policy is DecodePolicy.FAIL_FAST:
                missing = missing[:1]
            raise MissingRequiredColumnError(missing, self.type_name)

        if self.factory is not None:
            return self.factory(**values)
        return values

    def decode_optional(
        self, decoder: RowDecoder, policy: DecodePolicy = DecodePolicy.FAIL_FAST
    ) -> Any:
        """Decode a value, returning None instead of raising for missing columns."""
        try:
            return self.decode(decoder, policy)
        except MissingRequiredColumnError:
            return None

    def decode_row(
        self,
        row: Sequence[Any],
        *,
        converters: Mapping[str, Callable[[Any], Any]] | None = None,
        policy: DecodePolicy = DecodePolicy.FAIL_FAST,
    ) -> Any:
        """Decode a complete row, which must have exactly the plan's width."""
        if len(row) != self.width:
            raise QueryDecodingError(
                f"Expected {self.width} columns for '{self.type_name}', got {len(row)}"
            )
        return self.decode(RowDecoder(row, converters), policy)

    def __iter__(self) -> Iterator[DecodeStep]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)


def _evaluate_default(step: DecodeStep) -> Any:
    assert step.default is not None
    try:
        return step.default.evaluate()
    except ValueError as e:
        raise QueryDecodingError(
            f"Cannot substitute default for column '{step.column.name}': {e}"
        ) from e


def is_required(column: Column) -> bool:
    """A column is required when it has no default and is not optional."""
    if column.default is not None:
        return False
    return column.semantic_type is None or not column.semantic_type.is_optional


def build_decode_plan(catalog: ColumnCatalog) -> DecodePlan:
    """Compile a catalog into its decode plan."""
    steps: list[DecodeStep] = []
    for column in catalog.columns:
        nested: DecodePlan | VariantCatalog | None = None
        if isinstance(column.group, ColumnCatalog):
            nested = build_decode_plan(column.group)
        elif column.group is not None:
            nested = column.group
        steps.append(
            DecodeStep(
                column=column,
                required=is_required(column),
                default=column.default,
                nested=nested,
            )
        )
    plan = DecodePlan(type_name=catalog.type_name, steps=tuple(steps), factory=catalog.factory)
    logger.debug(
        "Built decode plan for %s: %d steps, required %s",
        catalog.type_name,
        len(steps),
        plan.required_columns,
    )
    return plan
