"""Record declarations reflected from Python dataclasses.

Column options are attached with ``typing.Annotated``::

    @table("users")
    @dataclass(frozen=True)
    class User:
        id: int
        email: Annotated[str, column("email_address")]
        nickname: Optional[str] = None
        scratch: Annotated[str, ephemeral()] = ""

The decorated class gains a lazily derived ``__table__`` and a ``decode``
classmethod that builds instances from rows.
"""

from __future__ import annotations

import dataclasses
import datetime
import decimal
import types
import uuid
from dataclasses import dataclass
from typing import (
    Annotated,
    Any,
    Callable,
    Mapping,
    Sequence,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from structured_tables.decoding import DecodePolicy
from structured_tables.diagnostics import Derivation
from structured_tables.schema import AnyDerivation, Schema
from structured_tables.types import (
    Annotation,
    Argument,
    BoolLiteral,
    Expression,
    FactoryValue,
    FieldDescriptor,
    MemberAccess,
    PythonValue,
    RecordDescriptor,
    StringLiteral,
    TypeLiteral,
    TypeRef,
)

PYTHON_TYPE_NAMES: dict[Any, str] = {
    int: "Int",
    float: "Double",
    str: "String",
    bool: "Bool",
    bytes: "Data",
    datetime.datetime: "Date",
    datetime.date: "Date",
    uuid.UUID: "UUID",
    decimal.Decimal: "Decimal",
}

_UNION_TYPES = (Union, types.UnionType)

# Registry used by the decorators when none is given
default_schema = Schema()


@dataclass(frozen=True)
class ColumnOptions:
    """Per-field column options, the reflected form of ``@Column(...)``."""

    name: str | None = None
    as_: type | None = None
    primary_key: bool | None = None
    generated: str | None = None

    def annotation(self) -> Annotation:
        arguments: list[Argument] = []
        if self.name is not None:
            arguments.append(Argument(None, StringLiteral(self.name)))
        if self.as_ is not None:
            arguments.append(Argument("as", TypeLiteral(TypeRef(python_type_name(self.as_)))))
        if self.primary_key is not None:
            arguments.append(Argument("primaryKey", BoolLiteral(self.primary_key)))
        if self.generated is not None:
            arguments.append(Argument("generated", MemberAccess(self.generated)))
        return Annotation("Column", tuple(arguments))


@dataclass(frozen=True)
class EphemeralMarker:
    """Marks a field that is never persisted."""


@dataclass(frozen=True)
class ColumnsMarker:
    """Marks a field whose record type is spliced in as a column group."""


def column(
    name: str | None = None,
    *,
    as_: type | None = None,
    primary_key: bool | None = None,
    generated: str | None = None,
) -> ColumnOptions:
    """Column options for use inside ``Annotated[T, column(...)]``."""
    return ColumnOptions(name=name, as_=as_, primary_key=primary_key, generated=generated)


def ephemeral() -> EphemeralMarker:
    return EphemeralMarker()


def columns() -> ColumnsMarker:
    return ColumnsMarker()


def python_type_name(tp: Any) -> str:
    """Map a Python type to its declaration type name."""
    if tp in PYTHON_TYPE_NAMES:
        return PYTHON_TYPE_NAMES[tp]
    return getattr(tp, "__name__", str(tp))


def _unwrap(hint: Any) -> tuple[Any, bool, list[Any]]:
    """Strip Annotated and Optional wrappers, collecting Annotated metadata."""
    optional = False
    metadata: list[Any] = []
    while True:
        origin = get_origin(hint)
        if origin is Annotated:
            args = get_args(hint)
            hint = args[0]
            metadata.extend(args[1:])
            continue
        if origin in _UNION_TYPES:
            args = get_args(hint)
            non_none = [a for a in args if a is not type(None)]
            if len(non_none) == 1 and len(args) == 2:
                optional = True
                hint = non_none[0]
                continue
        return hint, optional, metadata


def type_ref(hint: Any) -> tuple[TypeRef, Any, list[Any]]:
    """Resolve a field's type hint.

    Returns:
        ``(type_ref, base_type, metadata)`` where ``base_type`` is the Python
        type left after unwrapping and ``metadata`` the Annotated extras.
    """
    base, optional, metadata = _unwrap(hint)
    if get_origin(base) in (list, tuple) and get_args(base):
        element, _, _ = _unwrap(get_args(base)[0])
        ref = TypeRef(python_type_name(element), is_optional=optional, is_array=True)
        return ref, base, metadata
    return TypeRef(python_type_name(base), is_optional=optional), base, metadata


def _default(f: dataclasses.Field) -> Expression | None:
    if f.default is not dataclasses.MISSING:
        return PythonValue(f.default)
    if f.default_factory is not dataclasses.MISSING:
        return FactoryValue(f.default_factory)
    return None


def describe(
    cls: type,
    annotation: Annotation,
    registry: Schema | None = None,
) -> RecordDescriptor:
    """Build the record descriptor of a dataclass.

    Fields whose type is a dataclass already registered in ``registry``
    become column groups unless they carry explicit column options.

    Raises:
        TypeError: If ``cls`` is not a dataclass or an ephemeral field has
            no default.
    """
    if not dataclasses.is_dataclass(cls):
        raise TypeError(f"'{cls.__name__}' must be a dataclass")
    hints = get_type_hints(cls, include_extras=True)
    frozen = cls.__dataclass_params__.frozen  # type: ignore[attr-defined]

    fields: list[FieldDescriptor] = []
    for f in dataclasses.fields(cls):
        ref, base, metadata = type_ref(hints.get(f.name, f.type))
        annotations: list[Annotation] = []
        for marker in metadata:
            if isinstance(marker, ColumnOptions):
                annotations.append(marker.annotation())
            elif isinstance(marker, EphemeralMarker):
                annotations.append(Annotation("Ephemeral"))
            elif isinstance(marker, ColumnsMarker):
                annotations.append(Annotation("Columns"))
        if (
            not annotations
            and registry is not None
            and isinstance(base, type)
            and dataclasses.is_dataclass(base)
            and base in registry
        ):
            annotations.append(Annotation("Columns"))

        group_type = None
        if any(a.name == "Columns" for a in annotations) and isinstance(base, type):
            group_type = base

        default = _default(f)
        if default is None and any(a.name == "Ephemeral" for a in annotations):
            raise TypeError(f"Ephemeral field '{f.name}' of '{cls.__name__}' needs a default")

        fields.append(
            FieldDescriptor(
                name=f.name,
                declared_type=ref,
                annotations=tuple(annotations),
                default=default,
                is_mutable=not frozen,
                is_computed=not f.init,
                group_type=group_type,
            )
        )

    return RecordDescriptor(
        name=cls.__name__,
        kind="struct",
        annotations=(annotation,),
        fields=tuple(fields),
        factory=cls,
    )


class _DerivationAccessor:
    """Class attribute deriving the owning class on first access."""

    def __get__(self, instance: Any, owner: type) -> AnyDerivation:
        return derivation(owner).unwrap()


def derivation(cls: type) -> Derivation[AnyDerivation]:
    """Return the (memoized) derivation of a decorated class with diagnostics."""
    registry: Schema = cls.__table_registry__  # type: ignore[attr-defined]
    return registry.derive(cls)


def _decode(
    cls: type,
    row: Sequence[Any],
    *,
    converters: Mapping[str, Callable[[Any], Any]] | None = None,
    policy: DecodePolicy | None = None,
) -> Any:
    derived = cls.__table__  # type: ignore[attr-defined]
    return derived.decode(row, converters=converters, policy=policy)


def _install(cls: type, annotation: Annotation, registry: Schema) -> type:
    registry.register(describe(cls, annotation, registry))
    cls.__table_registry__ = registry  # type: ignore[attr-defined]
    cls.__table__ = _DerivationAccessor()  # type: ignore[attr-defined]
    cls.decode = classmethod(_decode)  # type: ignore[attr-defined]
    return cls


def table(
    name: Any = None,
    *,
    schema: str | None = None,
    registry: Schema | None = None,
) -> Any:
    """Declare a dataclass as a table.

    Usable bare (``@table``) or with options (``@table("users", schema="main")``).
    """
    target = registry if registry is not None else default_schema
    if isinstance(name, type):
        return _install(name, Annotation("Table"), target)

    arguments: list[Argument] = []
    if name is not None:
        arguments.append(Argument(None, StringLiteral(name)))
    if schema is not None:
        arguments.append(Argument("schema", StringLiteral(schema)))

    def wrap(cls: type) -> type:
        return _install(cls, Annotation("Table", tuple(arguments)), target)

    return wrap


def selection(cls: type | None = None, *, registry: Schema | None = None) -> Any:
    """Declare a dataclass as a selection (a column set without a table)."""
    # An empty Schema is falsy, so compare against None
    target = registry if registry is not None else default_schema
    if cls is not None:
        return _install(cls, Annotation("Selection"), target)

    def wrap(inner: type) -> type:
        return _install(inner, Annotation("Selection"), target)

    return wrap
