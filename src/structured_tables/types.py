"""Declaration and column definitions for the structured_tables library."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from structured_tables.variants import VariantCatalog


class GeneratedKind(Enum):
    """How a column's value is produced by the database."""

    NONE = "none"
    STORED = "stored"
    VIRTUAL = "virtual"

    @property
    def is_generated(self) -> bool:
        return self is not GeneratedKind.NONE


@dataclass(frozen=True)
class Span:
    """Half-open byte range ``[start, end)`` into declaration source text."""

    start: int
    end: int

    def __len__(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class TypeRef:
    """Reference to a declared type, e.g. ``Int``, ``String?`` or ``[Tag]``."""

    name: str
    is_optional: bool = False
    is_array: bool = False
    is_variadic: bool = False

    def optional(self) -> TypeRef:
        """Return this type wrapped in an optional."""
        return replace(self, is_optional=True)

    def non_optional(self) -> TypeRef:
        """Return this type with any optional wrapper removed."""
        return replace(self, is_optional=False)

    def __str__(self) -> str:
        text = f"[{self.name}]" if self.is_array else self.name
        if self.is_variadic:
            text += "..."
        if self.is_optional:
            text += "?"
        return text


INT = TypeRef("Int")
DOUBLE = TypeRef("Double")
STRING = TypeRef("String")
BOOL = TypeRef("Bool")


# ---------------------------------------------------------------------------
# Expressions appearing as annotation arguments and default values
# ---------------------------------------------------------------------------


class Expression:
    """Base class for expressions attached to declarations."""

    def literal_type(self) -> TypeRef | None:
        """Return the type a literal of this kind infers, or None."""
        return None

    @property
    def is_evaluable(self) -> bool:
        """Return whether ``evaluate`` can produce a Python value."""
        return False

    def evaluate(self) -> Any:
        raise ValueError(f"Expression '{self.source()}' cannot be evaluated")

    def source(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class StringLiteral(Expression):
    value: str

    def literal_type(self) -> TypeRef | None:
        return STRING

    @property
    def is_evaluable(self) -> bool:
        return True

    def evaluate(self) -> Any:
        return self.value

    def source(self) -> str:
        escaped = self.value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'


@dataclass(frozen=True)
class BoolLiteral(Expression):
    value: bool

    def literal_type(self) -> TypeRef | None:
        return BOOL

    @property
    def is_evaluable(self) -> bool:
        return True

    def evaluate(self) -> Any:
        return self.value

    def source(self) -> str:
        return "true" if self.value else "false"


@dataclass(frozen=True)
class IntegerLiteral(Expression):
    value: int

    def literal_type(self) -> TypeRef | None:
        return INT

    @property
    def is_evaluable(self) -> bool:
        return True

    def evaluate(self) -> Any:
        return self.value

    def source(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class FloatLiteral(Expression):
    value: float

    def literal_type(self) -> TypeRef | None:
        return DOUBLE

    @property
    def is_evaluable(self) -> bool:
        return True

    def evaluate(self) -> Any:
        return self.value

    def source(self) -> str:
        return repr(self.value)


@dataclass(frozen=True)
class NilLiteral(Expression):
    @property
    def is_evaluable(self) -> bool:
        return True

    def evaluate(self) -> Any:
        return None

    def source(self) -> str:
        return "nil"


@dataclass(frozen=True)
class ArrayLiteral(Expression):
    elements: tuple[Expression, ...] = ()

    @property
    def is_evaluable(self) -> bool:
        return all(e.is_evaluable for e in self.elements)

    def evaluate(self) -> Any:
        return [e.evaluate() for e in self.elements]

    def source(self) -> str:
        return "[" + ", ".join(e.source() for e in self.elements) + "]"


@dataclass(frozen=True)
class MemberAccess(Expression):
    """Implicit member expression such as ``.stored``."""

    member: str

    def source(self) -> str:
        return f".{self.member}"


@dataclass(frozen=True)
class TypeLiteral(Expression):
    """Type literal expression such as ``ISO8601.self``."""

    type_ref: TypeRef

    def source(self) -> str:
        return f"{self.type_ref}.self"


@dataclass(frozen=True)
class Reference(Expression):
    """Arbitrary named reference such as ``Defaults.timeout``."""

    path: str

    def source(self) -> str:
        return self.path


@dataclass(frozen=True)
class Call(Expression):
    """Arbitrary call expression such as ``Date()``."""

    callee: str
    arguments: tuple[Argument, ...] = ()

    def source(self) -> str:
        return f"{self.callee}(" + ", ".join(a.source() for a in self.arguments) + ")"


@dataclass(frozen=True)
class PythonValue(Expression):
    """A concrete Python value, used for defaults of reflected dataclasses."""

    value: Any

    def literal_type(self) -> TypeRef | None:
        # bool first: bool is a subclass of int
        if isinstance(self.value, bool):
            return BOOL
        if isinstance(self.value, int):
            return INT
        if isinstance(self.value, float):
            return DOUBLE
        if isinstance(self.value, str):
            return STRING
        return None

    @property
    def is_evaluable(self) -> bool:
        return True

    def evaluate(self) -> Any:
        return self.value

    def source(self) -> str:
        return repr(self.value)


@dataclass(frozen=True)
class FactoryValue(Expression):
    """A zero-argument factory producing a fresh default on each evaluation."""

    factory: Callable[[], Any]

    @property
    def is_evaluable(self) -> bool:
        return True

    def evaluate(self) -> Any:
        return self.factory()

    def source(self) -> str:
        return f"{getattr(self.factory, '__name__', 'factory')}()"


# ---------------------------------------------------------------------------
# Declarations (input of the derivation engine)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Argument:
    """A single annotation argument, labeled (``as: X.self``) or positional."""

    label: str | None
    value: Expression
    span: Span | None = None

    def source(self) -> str:
        if self.label is None:
            return self.value.source()
        return f"{self.label}: {self.value.source()}"


@dataclass(frozen=True)
class Annotation:
    """An attribute applied to a declaration, e.g. ``@Column("name")``."""

    name: str
    arguments: tuple[Argument, ...] = ()
    span: Span | None = None

    def argument(self, label: str | None) -> Argument | None:
        """Get the first argument with the given label (None for positional)."""
        for arg in self.arguments:
            if arg.label == label:
                return arg
        return None

    def source(self, without: Argument | None = None) -> str:
        """Render the annotation, optionally leaving one argument out."""
        args = [a for a in self.arguments if a is not without]
        if not args:
            return f"@{self.name}"
        return f"@{self.name}(" + ", ".join(a.source() for a in args) + ")"


@dataclass(frozen=True)
class FieldDescriptor:
    """A raw field of a record declaration before resolution."""

    name: str
    declared_type: TypeRef | None = None
    annotations: tuple[Annotation, ...] = ()
    default: Expression | None = None
    is_mutable: bool = True
    is_static: bool = False
    is_computed: bool = False
    binding_count: int = 1
    span: Span | None = None
    binding_span: Span | None = None  # the 'let'/'var' keyword
    name_span: Span | None = None
    group_type: type | None = field(default=None, compare=False)

    def annotation(self, name: str) -> Annotation | None:
        for annotation in self.annotations:
            if annotation.name == name:
                return annotation
        return None

    def has_annotation(self, name: str) -> bool:
        return self.annotation(name) is not None


@dataclass(frozen=True)
class PayloadDescriptor:
    """The associated value of an enum case."""

    type_ref: TypeRef
    label: str | None = None
    default: Expression | None = None
    span: Span | None = None


@dataclass(frozen=True)
class CaseDescriptor:
    """A single case of a sum-typed record."""

    name: str
    payloads: tuple[PayloadDescriptor, ...] = ()
    annotations: tuple[Annotation, ...] = ()
    span: Span | None = None

    def annotation(self, name: str) -> Annotation | None:
        for annotation in self.annotations:
            if annotation.name == name:
                return annotation
        return None


@dataclass(frozen=True)
class RecordDescriptor:
    """A record (``struct``) or sum type (``enum``) declaration.

    ``factory`` builds decoded values; when it is None decoded records are
    plain dicts keyed by field name.
    """

    name: str
    kind: str = "struct"
    annotations: tuple[Annotation, ...] = ()
    fields: tuple[FieldDescriptor, ...] = ()
    cases: tuple[CaseDescriptor, ...] = ()
    factory: Callable[..., Any] | None = field(default=None, compare=False)
    span: Span | None = None

    def annotation(self, name: str) -> Annotation | None:
        for annotation in self.annotations:
            if annotation.name == name:
                return annotation
        return None

    @property
    def is_table(self) -> bool:
        return self.annotation("Table") is not None

    @property
    def is_selection(self) -> bool:
        return self.annotation("Selection") is not None

    @property
    def is_enum(self) -> bool:
        return self.kind == "enum"

    @property
    def macro_name(self) -> str:
        """Name of the driving annotation, used in diagnostic messages."""
        if self.is_table:
            return "@Table"
        if self.is_selection:
            return "@Selection"
        return "@Table"

    @property
    def key(self) -> Any:
        """Identity used for memoization: the Python class when reflected."""
        return self.factory if isinstance(self.factory, type) else self.name


# ---------------------------------------------------------------------------
# Resolved fields and columns (output of the derivation engine)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldSpec:
    """A field's canonical column intent after annotation resolution."""

    name: str
    declared_type: TypeRef | None
    representation_type: TypeRef | None = None
    column_name: str | None = None
    is_primary_key: bool = False
    generated: GeneratedKind = GeneratedKind.NONE
    is_ephemeral: bool = False
    is_column_group: bool = False
    default: Expression | None = None
    arg_label: str | None = None
    # True/False when 'primaryKey:' was given explicitly, None otherwise
    primary_key_explicit: bool | None = None
    primary_key_argument: Argument | None = None
    column_annotation: Annotation | None = None
    span: Span | None = None

    @property
    def resolved_column_name(self) -> str:
        return self.column_name if self.column_name is not None else self.name

    @property
    def semantic_type(self) -> TypeRef | None:
        """Representation type if overridden, else the declared type."""
        return self.representation_type or self.declared_type

    @property
    def is_generated(self) -> bool:
        return self.generated.is_generated


@dataclass(frozen=True)
class Column:
    """A single catalog entry.

    Column groups are one entry whose ``group`` holds the spliced member
    catalog; their ``width`` is the number of member columns.
    """

    name: str
    field_name: str
    semantic_type: TypeRef | None
    width: int = 1
    default: Expression | None = None
    is_primary_key: bool = False
    generated: GeneratedKind = GeneratedKind.NONE
    representation_type: TypeRef | None = None
    group: ColumnCatalog | VariantCatalog | None = None

    @property
    def is_writable(self) -> bool:
        return not self.generated.is_generated

    @property
    def is_group(self) -> bool:
        return self.group is not None

    @property
    def is_nullable(self) -> bool:
        return self.semantic_type is not None and self.semantic_type.is_optional

    def nullable(self) -> Column:
        """Return a copy whose type is forced optional.

        A group keeps its member catalog unchanged so that it still decodes
        to None as a whole; its leaf columns report as nullable.
        """
        if self.semantic_type is None:
            return self
        return replace(self, semantic_type=self.semantic_type.optional())

    def leaf_columns(self) -> list[Column]:
        if self.group is None:
            return [self]
        leaves = self.group.leaf_columns()
        if self.is_nullable:
            return [c.nullable() for c in leaves]
        return leaves


@dataclass(frozen=True)
class ColumnCatalog:
    """Ordered column model for a record type."""

    type_name: str
    columns: tuple[Column, ...]
    table_name: str | None = None
    schema_name: str | None = None
    factory: Callable[..., Any] | None = field(default=None, compare=False)

    @property
    def primary_key(self) -> Column | None:
        for column in self.columns:
            if column.is_primary_key:
                return column
        return None

    @property
    def width(self) -> int:
        return sum(c.width for c in self.columns)

    def column(self, name: str) -> Column | None:
        """Get a top-level entry by column name or field name."""
        for c in self.columns:
            if c.name == name or c.field_name == name:
                return c
        return None

    def leaf_columns(self) -> list[Column]:
        """Return every persisted column, recursing into column groups."""
        result: list[Column] = []
        for column in self.columns:
            result.extend(column.leaf_columns())
        return result

    def writable_columns(self) -> list[Column]:
        return [c for c in self.leaf_columns() if c.is_writable]

    def as_group(self) -> ColumnCatalog:
        """Return a copy suitable for splicing into an enclosing catalog."""
        columns = tuple(replace(c, is_primary_key=False) for c in self.columns)
        return replace(self, columns=columns, table_name=None, schema_name=None)

    def nullable(self) -> ColumnCatalog:
        return replace(self, columns=tuple(c.nullable() for c in self.columns))

    def __iter__(self):
        return iter(self.columns)

    def __len__(self) -> int:
        return len(self.columns)
