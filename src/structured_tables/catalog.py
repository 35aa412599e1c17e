"""Column catalog derivation for record types."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Union

from structured_tables.attributes import (
    ID_FIELD_NAME,
    duplicate_primary_key,
    resolve_field,
    resolve_table_options,
)
from structured_tables.config import DEFAULT_OPTIONS, DerivationOptions
from structured_tables.diagnostics import DiagnosticBag, DiagnosticKind
from structured_tables.types import Column, ColumnCatalog, FieldSpec, RecordDescriptor

if TYPE_CHECKING:
    from structured_tables.variants import VariantCatalog

logger = logging.getLogger(__name__)

# Looks up the catalog for a column group's type, diagnosing into the bag
GroupResolver = Callable[
    [str, DiagnosticBag, FieldSpec], Union[ColumnCatalog, "VariantCatalog", None]
]


def lower_camel_cased(name: str) -> str:
    """Lower-case the leading capital run: ``URLRecord`` -> ``urlRecord``."""
    upper = 0
    while upper < len(name) and name[upper].isupper():
        upper += 1
    if upper == 0:
        return name
    if upper == len(name):
        return name.lower()
    if upper > 1 and name[upper].islower():
        # Keep the capital that starts the next word
        upper -= 1
    return name[:upper].lower() + name[upper:]


def pluralized(word: str) -> str:
    """Return a simple English plural of ``word``."""
    if not word:
        return word
    if word.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    if word.endswith("y") and len(word) > 1 and word[-2].lower() not in "aeiou":
        return word[:-1] + "ies"
    return word + "s"


def default_table_name(type_name: str, options: DerivationOptions = DEFAULT_OPTIONS) -> str:
    name = lower_camel_cased(type_name)
    return pluralized(name) if options.pluralize_table_names else name


@dataclass(frozen=True)
class CatalogBuild:
    """A built catalog together with the resolved specs of its persisted fields."""

    catalog: ColumnCatalog
    specs: tuple[FieldSpec, ...]
    primary_key: FieldSpec | None = None


def _select_primary_key(
    specs: list[FieldSpec],
    bag: DiagnosticBag,
    macro: str,
    options: DerivationOptions,
) -> FieldSpec | None:
    """Apply primary key precedence: explicit claims, then the ``id`` convention."""
    primary: FieldSpec | None = None
    for spec in specs:
        if spec.primary_key_explicit is not True:
            continue
        if primary is None:
            primary = spec
        else:
            duplicate_primary_key(spec, primary, bag, macro=macro)
    if primary is not None or not options.infer_id_primary_key:
        return primary

    for spec in specs:
        if (
            spec.name == ID_FIELD_NAME
            and spec.primary_key_explicit is None
            and not spec.is_column_group
        ):
            return spec
    return None


def _group_column(
    spec: FieldSpec, bag: DiagnosticBag, resolve_group: GroupResolver | None
) -> Column | None:
    if spec.declared_type is None:
        bag.error(
            DiagnosticKind.TYPE_INFERENCE,
            f"Column group '{spec.name}' requires a type annotation",
            span=spec.span,
            field_name=spec.name,
        )
        return None
    if resolve_group is None:
        bag.error(
            DiagnosticKind.STRUCTURAL,
            f"'@Columns' requires '{spec.declared_type.name}' to be a declared record type",
            span=spec.span,
            field_name=spec.name,
        )
        return None
    group = resolve_group(spec.declared_type.name, bag, spec)
    if group is None:
        return None
    group = group.as_group()
    return Column(
        name=spec.resolved_column_name,
        field_name=spec.name,
        semantic_type=spec.declared_type,
        width=group.width,
        default=spec.default,
        group=group,
    )


def build_catalog(
    record: RecordDescriptor,
    bag: DiagnosticBag,
    *,
    resolve_group: GroupResolver | None = None,
    options: DerivationOptions = DEFAULT_OPTIONS,
) -> CatalogBuild | None:
    """Walk a record's fields in declaration order and build its column catalog.

    Ephemeral fields are skipped, column groups are spliced in as one entry
    holding their member catalog, and at most one column is marked as the
    primary key.

    Returns:
        The build result, or None when the record is not a struct. Callers
        must still check ``bag.has_errors`` before using the catalog.
    """
    macro = record.macro_name
    if record.kind != "struct":
        bag.error(
            DiagnosticKind.STRUCTURAL,
            f"'{macro}' can only be applied to struct types",
            span=record.span,
        )
        return None
    for case in record.cases:
        bag.error(
            DiagnosticKind.STRUCTURAL,
            f"Struct '{record.name}' cannot declare enum case '{case.name}'",
            span=case.span,
            field_name=case.name,
        )

    table_name, schema_name = resolve_table_options(record, bag)
    if record.is_table and table_name is None:
        table_name = default_table_name(record.name, options)

    specs: list[FieldSpec] = []
    for descriptor in record.fields:
        spec = resolve_field(descriptor, bag, macro=macro)
        if spec is None or spec.is_ephemeral:
            continue
        specs.append(spec)

    primary = None
    if not record.is_selection:
        primary = _select_primary_key(specs, bag, macro, options)

    columns: list[Column] = []
    seen: dict[str, str] = {}
    for spec in specs:
        if spec.is_column_group:
            column = _group_column(spec, bag, resolve_group)
            if column is None:
                continue
        else:
            column = Column(
                name=spec.resolved_column_name,
                field_name=spec.name,
                semantic_type=spec.semantic_type,
                default=spec.default,
                is_primary_key=spec is primary,
                generated=spec.generated,
                representation_type=spec.representation_type,
            )
        if column.name in seen:
            bag.error(
                DiagnosticKind.ATTRIBUTE_CONFLICT,
                f"Column name '{column.name}' is already used by '{seen[column.name]}'",
                span=spec.span,
                field_name=spec.name,
            )
            continue
        seen[column.name] = spec.name
        columns.append(column)

    if not columns:
        bag.error(
            DiagnosticKind.STRUCTURAL,
            f"'{macro}' requires at least one stored column property to be defined on "
            f"'{record.name}'",
            span=record.span,
        )

    catalog = ColumnCatalog(
        type_name=record.name,
        columns=tuple(columns),
        table_name=table_name,
        schema_name=schema_name,
        factory=record.factory,
    )
    logger.debug(
        "Built catalog for %s: %d columns, width %d, primary key %s",
        record.name,
        len(columns),
        catalog.width,
        primary.name if primary else None,
    )
    return CatalogBuild(catalog=catalog, specs=tuple(specs), primary_key=primary)
