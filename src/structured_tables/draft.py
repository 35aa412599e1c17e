"""Insertable drafts of primary-keyed tables.

A draft has the same columns as its table except that the primary key is
optional and defaults to absent, so the database can assign it, and that
generated columns are dropped entirely.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, replace
from typing import Any, Mapping

from structured_tables.catalog import CatalogBuild
from structured_tables.decoding import DecodePlan, build_decode_plan
from structured_tables.diagnostics import DiagnosticBag, DiagnosticKind, FixIt
from structured_tables.types import Column, ColumnCatalog, Expression, NilLiteral, Span, TypeRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DraftParameter:
    """One parameter of a draft's memberwise constructor."""

    name: str
    type_ref: TypeRef
    default: Expression | None
    column: Column

    @property
    def is_required(self) -> bool:
        return self.default is None and not self.type_ref.is_optional


@dataclass(frozen=True)
class Draft:
    """Insertable companion of a primary-keyed table."""

    type_name: str
    catalog: ColumnCatalog
    parameters: tuple[DraftParameter, ...]
    primary_key: Column

    @property
    def table_name(self) -> str | None:
        return self.catalog.table_name

    @property
    def schema_name(self) -> str | None:
        return self.catalog.schema_name

    @property
    def decode_plan(self) -> DecodePlan:
        return build_decode_plan(self.catalog)

    @property
    def signature(self) -> inspect.Signature:
        """Keyword-only signature of ``make``, with evaluable defaults shown."""
        params = []
        for p in self.parameters:
            default: Any = inspect.Parameter.empty
            if p.default is not None and p.default.is_evaluable:
                default = p.default.evaluate()
            elif p.default is None and p.type_ref.is_optional:
                default = None
            params.append(
                inspect.Parameter(
                    p.name,
                    inspect.Parameter.KEYWORD_ONLY,
                    default=default,
                    annotation=str(p.type_ref),
                )
            )
        return inspect.Signature(params)

    def parameter(self, name: str) -> DraftParameter | None:
        for p in self.parameters:
            if p.name == name:
                return p
        return None

    def make(self, **kwargs: Any) -> dict[str, Any]:
        """Build draft values memberwise, filling in declared defaults."""
        names = {p.name for p in self.parameters}
        for key in kwargs:
            if key not in names:
                raise TypeError(f"{self.type_name}() got an unexpected keyword argument '{key}'")

        values: dict[str, Any] = {}
        missing: list[str] = []
        for p in self.parameters:
            if p.name in kwargs:
                values[p.name] = kwargs[p.name]
            elif p.default is not None:
                values[p.name] = p.default.evaluate()
            elif p.type_ref.is_optional:
                # Optional members default to None
                values[p.name] = None
            else:
                missing.append(p.name)
        if missing:
            names_text = ", ".join(f"'{m}'" for m in missing)
            raise TypeError(f"{self.type_name}() missing required arguments: {names_text}")
        return values

    def from_record(self, record: Any) -> dict[str, Any]:
        """Copy every non-generated field of a full record into draft values.

        ``record`` may be a mapping keyed by field name or an object whose
        attributes are the fields.
        """
        values: dict[str, Any] = {}
        for p in self.parameters:
            if isinstance(record, Mapping):
                values[p.name] = record[p.name]
            else:
                values[p.name] = getattr(record, p.name)
        return values


def _missing_type(
    column: Column, span: Span | None, name_span: Span | None, bag: DiagnosticBag
) -> None:
    fix_its: tuple[FixIt, ...] = ()
    if name_span is not None:
        fix_its = (
            FixIt(
                message="Insert ': <#Type#>'",
                replacement=": <#Type#>",
                span=Span(name_span.end, name_span.end),
            ),
        )
    bag.error(
        DiagnosticKind.TYPE_INFERENCE,
        f"'@Table' requires '{column.field_name}' to have a type annotation in order to "
        "generate a memberwise initializer",
        span=span,
        field_name=column.field_name,
        fix_its=fix_its,
    )


def synthesize_draft(
    build: CatalogBuild,
    bag: DiagnosticBag,
    *,
    name_spans: Mapping[str, Span] | None = None,
) -> Draft | None:
    """Derive the draft of a primary-keyed catalog.

    Args:
        build: The table's catalog build.
        bag: Accumulator for diagnostics.
        name_spans: Span of each field's name, used to place type-annotation
            fix-its right after it.

    Returns:
        The draft, or None when the catalog has no primary key or a field's
        constructor parameter type cannot be determined.
    """
    catalog = build.catalog
    if catalog.primary_key is None:
        return None

    specs = {spec.name: spec for spec in build.specs}
    columns: list[Column] = []
    parameters: list[DraftParameter] = []
    primary_key: Column | None = None
    failed = False
    for column in catalog.columns:
        if column.generated.is_generated:
            continue
        spec = specs.get(column.field_name)
        declared = spec.declared_type if spec is not None else column.semantic_type
        if declared is None:
            _missing_type(
                column,
                spec.span if spec is not None else None,
                (name_spans or {}).get(column.field_name),
                bag,
            )
            failed = True
            continue

        default = column.default
        if column.is_primary_key:
            declared = declared.optional()
            default = NilLiteral()
            column = replace(
                column,
                semantic_type=column.semantic_type.optional() if column.semantic_type else None,
                default=default,
            )
            primary_key = column
        columns.append(column)
        parameters.append(
            DraftParameter(
                name=column.field_name, type_ref=declared, default=default, column=column
            )
        )

    if failed:
        return None
    if primary_key is None:
        # Generated primary keys are left out of the draft columns
        primary_key = catalog.primary_key.nullable()

    draft = Draft(
        type_name=f"{catalog.type_name}.Draft",
        catalog=replace(
            catalog,
            type_name=f"{catalog.type_name}.Draft",
            columns=tuple(columns),
            factory=None,
        ),
        parameters=tuple(parameters),
        primary_key=primary_key,
    )
    logger.debug(
        "Synthesized draft for %s: %d parameters", catalog.type_name, len(parameters)
    )
    return draft
