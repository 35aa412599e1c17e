"""Resolution of raw field annotations into canonical field specs.

Every function here is pure apart from appending to the caller's
``DiagnosticBag``; nothing raises on a bad declaration, so one pass can
report every problem in a record at once.
"""

from __future__ import annotations

import logging

from structured_tables.diagnostics import DiagnosticBag, DiagnosticKind, FixIt, Note
from structured_tables.types import (
    Annotation,
    Argument,
    BoolLiteral,
    CaseDescriptor,
    FieldDescriptor,
    FieldSpec,
    GeneratedKind,
    MemberAccess,
    RecordDescriptor,
    StringLiteral,
    TypeLiteral,
)

logger = logging.getLogger(__name__)

GENERATED_KINDS: dict[str, GeneratedKind] = {
    "stored": GeneratedKind.STORED,
    "virtual": GeneratedKind.VIRTUAL,
}

# Convention-based primary key field name
ID_FIELD_NAME = "id"


def _remove_argument_fix(annotation: Annotation, argument: Argument) -> FixIt:
    return FixIt(
        message=f"Remove '{argument.source()}'",
        replacement=annotation.source(without=argument),
        span=annotation.span,
    )


def _non_empty_string(
    argument: Argument, bag: DiagnosticBag, field_name: str | None = None
) -> str | None:
    """Return the argument's string value, diagnosing anything else."""
    if isinstance(argument.value, StringLiteral) and argument.value.value:
        return argument.value.value
    bag.error(
        DiagnosticKind.VALUE,
        "Argument must be a non-empty string literal",
        span=argument.span,
        field_name=field_name,
    )
    return None


def resolve_table_options(
    record: RecordDescriptor, bag: DiagnosticBag
) -> tuple[str | None, str | None]:
    """Resolve record-level ``tableName`` and ``schema`` overrides.

    Returns:
        ``(table_name, schema_name)``; either is None when not overridden.
    """
    table_name: str | None = None
    schema_name: str | None = None
    annotation = record.annotation("Table")
    if annotation is None:
        selection = record.annotation("Selection")
        if selection is not None:
            for argument in selection.arguments:
                bag.error(
                    DiagnosticKind.ATTRIBUTE_CONFLICT,
                    f"Unsupported argument '{argument.source()}' in '@Selection'",
                    span=argument.span,
                    fix_its=(_remove_argument_fix(selection, argument),),
                )
        return None, None

    for argument in annotation.arguments:
        if argument.label is None:
            table_name = _non_empty_string(argument, bag)
        elif argument.label == "schema":
            schema_name = _non_empty_string(argument, bag)
        else:
            bag.error(
                DiagnosticKind.ATTRIBUTE_CONFLICT,
                f"Unsupported argument '{argument.label}' in '@Table'",
                span=argument.span,
                fix_its=(_remove_argument_fix(annotation, argument),),
            )
    return table_name, schema_name


def resolve_field(
    descriptor: FieldDescriptor, bag: DiagnosticBag, *, macro: str = "@Table"
) -> FieldSpec | None:
    """Normalize one field's declaration and annotations into a FieldSpec.

    Args:
        descriptor: The raw field.
        bag: Accumulator for diagnostics.
        macro: ``"@Table"`` or ``"@Selection"``; selections forbid custom
            column names and primary keys.

    Returns:
        The resolved spec, or None when the field is not a stored property
        or could not be resolved at all.
    """
    if descriptor.is_static or descriptor.is_computed:
        return None

    name = descriptor.name
    if descriptor.binding_count != 1:
        bag.error(
            DiagnosticKind.STRUCTURAL,
            f"'{macro}' does not support a property that declares more than one binding",
            span=descriptor.span,
            field_name=name,
        )
        return None

    if descriptor.declared_type is not None and descriptor.declared_type.is_variadic:
        bag.error(
            DiagnosticKind.STRUCTURAL,
            f"Variadic field '{name}' is not supported",
            span=descriptor.span,
            field_name=name,
        )
        return None

    declared_type = descriptor.declared_type
    if declared_type is None and descriptor.default is not None:
        declared_type = descriptor.default.literal_type()

    if descriptor.has_annotation("Ephemeral"):
        return FieldSpec(
            name=name,
            declared_type=declared_type,
            is_ephemeral=True,
            default=descriptor.default,
            span=descriptor.span,
        )

    group_annotation = descriptor.annotation("Columns")
    column_annotation = descriptor.annotation("Column")
    if group_annotation is not None:
        for argument in group_annotation.arguments:
            bag.error(
                DiagnosticKind.ATTRIBUTE_CONFLICT,
                f"Unsupported argument '{argument.source()}' in '@Columns'",
                span=argument.span,
                field_name=name,
                fix_its=(_remove_argument_fix(group_annotation, argument),),
            )
        if column_annotation is not None:
            bag.error(
                DiagnosticKind.ATTRIBUTE_CONFLICT,
                f"'@Columns' and '@Column' cannot both be applied to '{name}'",
                span=column_annotation.span,
                field_name=name,
                fix_its=(
                    FixIt(
                        message=f"Remove '{column_annotation.source()}'",
                        replacement="",
                        span=column_annotation.span,
                    ),
                ),
            )
        return FieldSpec(
            name=name,
            declared_type=declared_type,
            is_column_group=True,
            default=descriptor.default,
            span=descriptor.span,
        )

    column_name: str | None = None
    representation = None
    primary_key_explicit: bool | None = None
    primary_key_argument: Argument | None = None
    generated = GeneratedKind.NONE

    arguments = column_annotation.arguments if column_annotation is not None else ()
    for argument in arguments:
        label = argument.label
        if label is None:
            if macro == "@Selection":
                bag.error(
                    DiagnosticKind.ATTRIBUTE_CONFLICT,
                    "'@Selection' column names are not supported",
                    span=argument.span,
                    field_name=name,
                    fix_its=(_remove_argument_fix(column_annotation, argument),),
                )
                continue
            column_name = _non_empty_string(argument, bag, name) or column_name

        elif label == "as":
            if not isinstance(argument.value, TypeLiteral):
                bag.error(
                    DiagnosticKind.VALUE,
                    "Argument 'as' must be a type literal",
                    span=argument.span,
                    field_name=name,
                )
                continue
            representation = argument.value.type_ref

        elif label == "primaryKey":
            if macro == "@Selection":
                bag.error(
                    DiagnosticKind.ATTRIBUTE_CONFLICT,
                    "'@Selection' primary keys are not supported",
                    span=argument.span,
                    field_name=name,
                    fix_its=(_remove_argument_fix(column_annotation, argument),),
                )
                continue
            if not isinstance(argument.value, BoolLiteral):
                bag.error(
                    DiagnosticKind.VALUE,
                    "Argument 'primaryKey' must be a boolean literal",
                    span=argument.span,
                    field_name=name,
                )
                continue
            if argument.value.value:
                primary_key_explicit = True
                primary_key_argument = argument
            else:
                primary_key_explicit = False
                if name != ID_FIELD_NAME:
                    bag.warning(
                        DiagnosticKind.ATTRIBUTE_CONFLICT,
                        f"'primaryKey: false' has no effect on '{name}'",
                        span=argument.span,
                        field_name=name,
                        fix_its=(_remove_argument_fix(column_annotation, argument),),
                    )

        elif label == "generated":
            if macro == "@Selection":
                bag.error(
                    DiagnosticKind.ATTRIBUTE_CONFLICT,
                    "'@Selection' generated columns are not supported",
                    span=argument.span,
                    field_name=name,
                    fix_its=(_remove_argument_fix(column_annotation, argument),),
                )
                continue
            member = argument.value.member if isinstance(argument.value, MemberAccess) else None
            kind = GENERATED_KINDS.get(member or "")
            if kind is None:
                bag.warning(
                    DiagnosticKind.VALUE,
                    "Argument 'generated' must be '.stored' or '.virtual'; ignoring it",
                    span=argument.span,
                    field_name=name,
                )
                continue
            if descriptor.is_mutable:
                fix_its = ()
                if descriptor.binding_span is not None:
                    fix_its = (
                        FixIt(
                            message="Replace 'var' with 'let'",
                            replacement="let",
                            span=descriptor.binding_span,
                        ),
                    )
                bag.error(
                    DiagnosticKind.ATTRIBUTE_CONFLICT,
                    "Generated column property must be declared with a 'let'",
                    span=descriptor.binding_span or descriptor.span,
                    field_name=name,
                    fix_its=fix_its,
                )
                continue
            generated = kind

        else:
            bag.error(
                DiagnosticKind.ATTRIBUTE_CONFLICT,
                f"Unsupported argument '{label}' in '@Column'",
                span=argument.span,
                field_name=name,
                fix_its=(_remove_argument_fix(column_annotation, argument),),
            )

    return FieldSpec(
        name=name,
        declared_type=declared_type,
        representation_type=representation,
        column_name=column_name,
        is_primary_key=bool(primary_key_explicit),
        generated=generated,
        default=descriptor.default,
        primary_key_explicit=primary_key_explicit,
        primary_key_argument=primary_key_argument,
        column_annotation=column_annotation,
        span=descriptor.span,
    )


def resolve_case(case: CaseDescriptor, bag: DiagnosticBag) -> FieldSpec | None:
    """Normalize an enum case and its payload into a FieldSpec.

    A case with no payload resolves to a spec without a type; it
    contributes no columns.
    """
    if len(case.payloads) > 1:
        bag.error(
            DiagnosticKind.STRUCTURAL,
            f"Enum case '{case.name}' must have at most one associated value",
            span=case.span,
            field_name=case.name,
        )
        return None

    payload = case.payloads[0] if case.payloads else None
    if payload is not None and payload.type_ref.is_variadic:
        bag.error(
            DiagnosticKind.STRUCTURAL,
            f"Variadic associated value of case '{case.name}' is not supported",
            span=payload.span or case.span,
            field_name=case.name,
        )
        return None

    column_name: str | None = None
    representation = None
    annotation = case.annotation("Column")
    arguments = annotation.arguments if annotation is not None else ()
    for argument in arguments:
        if argument.label is None:
            column_name = _non_empty_string(argument, bag, case.name) or column_name
        elif argument.label == "as":
            if not isinstance(argument.value, TypeLiteral):
                bag.error(
                    DiagnosticKind.VALUE,
                    "Argument 'as' must be a type literal",
                    span=argument.span,
                    field_name=case.name,
                )
                continue
            representation = argument.value.type_ref
        elif argument.label in ("primaryKey", "generated"):
            bag.error(
                DiagnosticKind.ATTRIBUTE_CONFLICT,
                f"Enum case '{case.name}' does not support the '{argument.label}' argument",
                span=argument.span,
                field_name=case.name,
                fix_its=(_remove_argument_fix(annotation, argument),),
            )
        else:
            bag.error(
                DiagnosticKind.ATTRIBUTE_CONFLICT,
                f"Unsupported argument '{argument.label}' in '@Column'",
                span=argument.span,
                field_name=case.name,
                fix_its=(_remove_argument_fix(annotation, argument),),
            )

    return FieldSpec(
        name=case.name,
        declared_type=payload.type_ref if payload is not None else None,
        representation_type=representation,
        column_name=column_name,
        default=payload.default if payload is not None else None,
        arg_label=payload.label if payload is not None else None,
        column_annotation=annotation,
        span=case.span,
    )


def duplicate_primary_key(
    spec: FieldSpec, first: FieldSpec, bag: DiagnosticBag, *, macro: str = "@Table"
) -> None:
    """Diagnose a second explicit ``primaryKey: true`` claim."""
    argument = spec.primary_key_argument
    fix_its: tuple[FixIt, ...] = ()
    if spec.column_annotation is not None and argument is not None:
        fix_its = (
            FixIt(
                message="Remove 'primaryKey: true'",
                replacement=spec.column_annotation.source(without=argument),
                span=spec.column_annotation.span,
            ),
        )
    first_span = first.primary_key_argument.span if first.primary_key_argument else first.span
    bag.error(
        DiagnosticKind.ATTRIBUTE_CONFLICT,
        f"'{macro}' only supports a single primary key",
        span=argument.span if argument is not None else spec.span,
        field_name=spec.name,
        notes=(Note(f"Primary key already applied to '{first.name}'", first_span),),
        fix_its=fix_its,
    )
    logger.debug("Rejected second primary key %r (first: %r)", spec.name, first.name)
