"""Column catalogs for sum-typed records.

Every case of an enum table owns its own columns; the table stores one wide
row in which only the active case's columns are non-null. Decoding tries the
cases in declaration order and the first one that decodes to a present value
wins. Cases are never checked for mutually exclusive null patterns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterator, Mapping, Sequence

from structured_tables.attributes import resolve_case, resolve_table_options
from structured_tables.catalog import GroupResolver, default_table_name
from structured_tables.config import DEFAULT_OPTIONS, DerivationOptions
from structured_tables.decoding import (
    DecodePlan,
    DecodePolicy,
    MissingRequiredColumnError,
    QueryDecodingError,
    RowDecoder,
    build_decode_plan,
)
from structured_tables.diagnostics import DiagnosticBag, DiagnosticKind
from structured_tables.types import Column, ColumnCatalog, FieldSpec, RecordDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VariantValue:
    """A decoded enum value: the matched case and its payload."""

    case: str
    value: Any = None


@dataclass(frozen=True)
class VariantCase:
    """One case of a sum type and the columns its payload occupies.

    ``catalog`` holds at most one entry: nothing for a case without a
    payload, a scalar column, or a column group for a record payload. The
    entry keeps the payload's own nullability; the enclosing catalog only
    reports it as nullable.
    """

    name: str
    arg_label: str | None
    catalog: ColumnCatalog
    plan: DecodePlan | None = field(default=None, compare=False)

    @property
    def payload(self) -> Column | None:
        return self.catalog.columns[0] if self.catalog.columns else None

    @property
    def width(self) -> int:
        return self.catalog.width

    def leaf_columns(self) -> list[Column]:
        return [c.nullable() for c in self.catalog.leaf_columns()]

    def decode_payload(self, decoder: RowDecoder, policy: DecodePolicy) -> tuple[bool, Any]:
        """Read this case's columns, returning ``(matched, value)``."""
        column = self.payload
        if column is None:
            return True, None
        if self.plan is not None:
            value = self.plan.decode_optional(decoder, policy)
        elif column.group is not None:
            value = column.group.decode_optional(decoder, policy)
        else:
            value = decoder.decode(column.representation_type, column.semantic_type)
        return value is not None, value


@dataclass(frozen=True)
class VariantCatalog:
    """Unified column model of a sum type: every case's columns, in order."""

    type_name: str
    cases: tuple[VariantCase, ...]
    table_name: str | None = None
    schema_name: str | None = None
    factory: Callable[..., Any] | None = field(default=None, compare=False)

    @property
    def columns(self) -> tuple[Column, ...]:
        """Top-level entries of every case, forced nullable."""
        return tuple(case.payload.nullable() for case in self.cases if case.payload is not None)

    @property
    def primary_key(self) -> None:
        return None

    @property
    def width(self) -> int:
        return sum(case.width for case in self.cases)

    def case(self, name: str) -> VariantCase | None:
        for case in self.cases:
            if case.name == name:
                return case
        return None

    def column(self, name: str) -> Column | None:
        for c in self.columns:
            if c.name == name or c.field_name == name:
                return c
        return None

    def leaf_columns(self) -> list[Column]:
        result: list[Column] = []
        for case in self.cases:
            result.extend(case.leaf_columns())
        return result

    def writable_columns(self) -> list[Column]:
        return [c for c in self.leaf_columns() if c.is_writable]

    def as_group(self) -> VariantCatalog:
        return replace(self, table_name=None, schema_name=None)

    def nullable(self) -> VariantCatalog:
        return self

    def decode(self, decoder: RowDecoder, policy: DecodePolicy = DecodePolicy.FAIL_FAST) -> Any:
        """Decode the first matching case; every case's columns are consumed.

        Raises:
            MissingRequiredColumnError: When no case decodes to a value.
        """
        matched: VariantValue | None = None
        for case in self.cases:
            present, value = case.decode_payload(decoder, policy)
            if present and matched is None:
                matched = VariantValue(case.name, value)
        if matched is None:
            missing = [c.name for c in self.leaf_columns()]
            if policy is DecodePolicy.FAIL_FAST:
                missing = missing[:1]
            raise MissingRequiredColumnError(missing, self.type_name)
        logger.debug("Decoded %s as case %r", self.type_name, matched.case)
        if self.factory is not None:
            return self.factory(matched.case, matched.value)
        return matched

    def decode_optional(
        self, decoder: RowDecoder, policy: DecodePolicy = DecodePolicy.FAIL_FAST
    ) -> Any:
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
        if len(row) != self.width:
            raise QueryDecodingError(
                f"Expected {self.width} columns for '{self.type_name}', got {len(row)}"
            )
        return self.decode(RowDecoder(row, converters), policy)

    def __iter__(self) -> Iterator[VariantCase]:
        return iter(self.cases)

    def __len__(self) -> int:
        return len(self.cases)


def _case_column(
    spec: FieldSpec,
    bag: DiagnosticBag,
    resolve_group: GroupResolver | None,
    is_group_type: Callable[[str], bool] | None,
) -> tuple[Column | None, DecodePlan | None, bool]:
    """Build a case's single catalog entry; the flag reports failure."""
    payload_type = spec.declared_type
    if payload_type is None:
        return None, None, False

    name = spec.column_name or spec.arg_label or spec.name
    if (
        resolve_group is not None
        and is_group_type is not None
        and spec.representation_type is None
        and is_group_type(payload_type.name)
    ):
        group = resolve_group(payload_type.name, bag, spec)
        if group is None:
            return None, None, True
        group = group.as_group()
        plan = build_decode_plan(group) if isinstance(group, ColumnCatalog) else None
        column = Column(
            name=name,
            field_name=spec.name,
            semantic_type=payload_type,
            width=group.width,
            group=group,
        )
        return column, plan, False

    column = Column(
        name=name,
        field_name=spec.name,
        semantic_type=spec.semantic_type,
        default=spec.default,
        representation_type=spec.representation_type,
    )
    return column, None, False


def build_variant_catalog(
    record: RecordDescriptor,
    bag: DiagnosticBag,
    *,
    resolve_group: GroupResolver | None = None,
    is_group_type: Callable[[str], bool] | None = None,
    options: DerivationOptions = DEFAULT_OPTIONS,
) -> VariantCatalog | None:
    """Build the unified catalog of an enum record.

    Args:
        record: An ``enum`` declaration.
        bag: Accumulator for diagnostics.
        resolve_group: Looks up the catalog of a record-typed payload.
        is_group_type: Reports whether a payload type names a declared
            record; other payloads become a single scalar column.
        options: Derivation settings.
    """
    macro = record.macro_name
    if not record.is_enum:
        bag.error(
            DiagnosticKind.STRUCTURAL,
            f"'{record.name}' is not an enum",
            span=record.span,
        )
        return None

    for descriptor in record.fields:
        if descriptor.is_static or descriptor.is_computed:
            continue
        bag.error(
            DiagnosticKind.STRUCTURAL,
            f"Enum '{record.name}' cannot declare stored property '{descriptor.name}'",
            span=descriptor.span,
            field_name=descriptor.name,
        )

    table_name, schema_name = resolve_table_options(record, bag)
    if record.is_table and table_name is None:
        table_name = default_table_name(record.name, options)

    cases: list[VariantCase] = []
    seen: dict[str, str] = {}
    case_names: set[str] = set()
    for case_descriptor in record.cases:
        if case_descriptor.name in case_names:
            bag.error(
                DiagnosticKind.ATTRIBUTE_CONFLICT,
                f"Case '{case_descriptor.name}' is declared more than once on '{record.name}'",
                span=case_descriptor.span,
                field_name=case_descriptor.name,
            )
            continue
        case_names.add(case_descriptor.name)
        spec = resolve_case(case_descriptor, bag)
        if spec is None:
            continue
        column, plan, failed = _case_column(spec, bag, resolve_group, is_group_type)
        if failed:
            continue
        if column is not None:
            if column.name in seen:
                bag.error(
                    DiagnosticKind.ATTRIBUTE_CONFLICT,
                    f"Column name '{column.name}' is already used by case '{seen[column.name]}'",
                    span=case_descriptor.span,
                    field_name=case_descriptor.name,
                )
                continue
            seen[column.name] = case_descriptor.name
        cases.append(
            VariantCase(
                name=spec.name,
                arg_label=spec.arg_label,
                catalog=ColumnCatalog(
                    type_name=f"{record.name}.{spec.name}",
                    columns=(column,) if column is not None else (),
                ),
                plan=plan,
            )
        )

    if not record.cases:
        bag.error(
            DiagnosticKind.STRUCTURAL,
            f"'{macro}' requires at least one case to be defined on '{record.name}'",
            span=record.span,
        )

    catalog = VariantCatalog(
        type_name=record.name,
        cases=tuple(cases),
        table_name=table_name,
        schema_name=schema_name,
        factory=record.factory,
    )
    logger.debug(
        "Built variant catalog for %s: %d cases, width %d",
        record.name,
        len(cases),
        catalog.width,
    )
    return catalog
