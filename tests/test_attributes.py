"""Tests for field and case annotation resolution."""

from structured_tables.attributes import resolve_case, resolve_field, resolve_table_options
from structured_tables.diagnostics import DiagnosticBag, DiagnosticKind, Severity
from structured_tables.types import (
    Annotation,
    Argument,
    BoolLiteral,
    CaseDescriptor,
    FieldDescriptor,
    GeneratedKind,
    IntegerLiteral,
    MemberAccess,
    PayloadDescriptor,
    RecordDescriptor,
    Reference,
    Span,
    StringLiteral,
    TypeLiteral,
    TypeRef,
)

INT = TypeRef("Int")


def column(*arguments: Argument) -> Annotation:
    return Annotation("Column", tuple(arguments), span=Span(0, 10))


class TestResolveField:
    """Tests for resolving field annotations."""

    def test_plain_field(self):
        """An unannotated field maps to a column of the same name."""
        bag = DiagnosticBag("A")
        spec = resolve_field(FieldDescriptor("bar", INT), bag)

        assert spec.name == "bar"
        assert spec.resolved_column_name == "bar"
        assert spec.declared_type == INT
        assert not spec.is_primary_key
        assert spec.primary_key_explicit is None
        assert len(bag) == 0

    def test_static_and_computed_skipped(self):
        """Static and computed properties are not fields."""
        bag = DiagnosticBag("A")

        assert resolve_field(FieldDescriptor("v", INT, is_static=True), bag) is None
        assert resolve_field(FieldDescriptor("c", INT, is_computed=True), bag) is None
        assert len(bag) == 0

    def test_type_inferred_from_literal(self):
        """A literal default supplies the semantic type."""
        bag = DiagnosticBag("A")
        spec = resolve_field(FieldDescriptor("title", default=StringLiteral("")), bag)

        assert spec.declared_type == TypeRef("String")

    def test_type_not_inferred_from_call(self):
        """Non-literal defaults leave the type undeclared."""
        bag = DiagnosticBag("A")
        spec = resolve_field(FieldDescriptor("title", default=Reference("x")), bag)

        assert spec.declared_type is None

    def test_column_name(self):
        """A positional argument renames the column."""
        bag = DiagnosticBag("A")
        field = FieldDescriptor(
            "email", annotations=(column(Argument(None, StringLiteral("email_address"))),)
        )

        spec = resolve_field(field, bag)

        assert spec.resolved_column_name == "email_address"

    def test_empty_column_name(self):
        """An empty column name is a value error."""
        bag = DiagnosticBag("A")
        field = FieldDescriptor("email", INT, annotations=(column(Argument(None, StringLiteral(""))),))

        spec = resolve_field(field, bag)

        assert spec.resolved_column_name == "email"
        assert bag.errors[0].kind is DiagnosticKind.VALUE
        assert "non-empty string literal" in bag.errors[0].message

    def test_non_string_column_name(self):
        """A column name must be a string literal."""
        bag = DiagnosticBag("A")
        field = FieldDescriptor("email", INT, annotations=(column(Argument(None, IntegerLiteral(1))),))

        resolve_field(field, bag)

        assert bag.errors[0].kind is DiagnosticKind.VALUE

    def test_representation(self):
        """The as: argument sets the representation type."""
        bag = DiagnosticBag("A")
        field = FieldDescriptor(
            "createdAt",
            TypeRef("Date"),
            annotations=(column(Argument("as", TypeLiteral(TypeRef("ISO8601")))),),
        )

        spec = resolve_field(field, bag)

        assert spec.representation_type == TypeRef("ISO8601")
        assert spec.semantic_type == TypeRef("ISO8601")

    def test_representation_requires_type_literal(self):
        """The as: argument must name a type."""
        bag = DiagnosticBag("A")
        field = FieldDescriptor(
            "createdAt", TypeRef("Date"), annotations=(column(Argument("as", StringLiteral("x"))),)
        )

        resolve_field(field, bag)

        assert bag.errors[0].message == "Argument 'as' must be a type literal"

    def test_explicit_primary_key(self):
        """primaryKey: true marks any field as the key."""
        bag = DiagnosticBag("A")
        field = FieldDescriptor(
            "code", INT, annotations=(column(Argument("primaryKey", BoolLiteral(True))),)
        )

        spec = resolve_field(field, bag)

        assert spec.is_primary_key
        assert spec.primary_key_explicit is True
        assert spec.primary_key_argument is not None

    def test_primary_key_false_on_id_is_silent(self):
        """primaryKey: false on id is accepted without a warning."""
        bag = DiagnosticBag("A")
        field = FieldDescriptor(
            "id", INT, annotations=(column(Argument("primaryKey", BoolLiteral(False))),)
        )

        spec = resolve_field(field, bag)

        assert spec.primary_key_explicit is False
        assert len(bag) == 0

    def test_redundant_primary_key_false_warns(self):
        """primaryKey: false on a non-id field is only a warning."""
        bag = DiagnosticBag("A")
        key = Argument("primaryKey", BoolLiteral(False))
        field = FieldDescriptor(
            "name", INT, annotations=(column(Argument(None, StringLiteral("n")), key),)
        )

        spec = resolve_field(field, bag)

        assert spec is not None
        assert not bag.has_errors
        warning = bag.warnings[0]
        assert warning.severity is Severity.WARNING
        assert warning.fix_its[0].replacement == '@Column("n")'

    def test_primary_key_requires_bool(self):
        """primaryKey needs a boolean literal."""
        bag = DiagnosticBag("A")
        field = FieldDescriptor(
            "id", INT, annotations=(column(Argument("primaryKey", StringLiteral("yes"))),)
        )

        resolve_field(field, bag)

        assert bag.errors[0].kind is DiagnosticKind.VALUE

    def test_generated_let(self):
        """A generated let field resolves to a generated column."""
        bag = DiagnosticBag("A")
        field = FieldDescriptor(
            "total",
            INT,
            annotations=(column(Argument("generated", MemberAccess("virtual"))),),
            is_mutable=False,
        )

        spec = resolve_field(field, bag)

        assert spec.generated is GeneratedKind.VIRTUAL
        assert spec.is_generated

    def test_generated_var_is_conflict(self):
        """A generated column declared with var offers a let fix-it."""
        bag = DiagnosticBag("A")
        field = FieldDescriptor(
            "total",
            INT,
            annotations=(column(Argument("generated", MemberAccess("stored"))),),
            is_mutable=True,
            binding_span=Span(20, 23),
        )

        spec = resolve_field(field, bag)

        assert spec.generated is GeneratedKind.NONE
        error = bag.errors[0]
        assert error.kind is DiagnosticKind.ATTRIBUTE_CONFLICT
        assert error.message == "Generated column property must be declared with a 'let'"
        assert error.span == Span(20, 23)
        fix = error.fix_its[0]
        assert fix.message == "Replace 'var' with 'let'"
        assert fix.replacement == "let"
        assert fix.span == Span(20, 23)

    def test_unknown_generated_member_warns(self):
        """An unknown generated member is ignored with a warning."""
        bag = DiagnosticBag("A")
        field = FieldDescriptor(
            "total",
            INT,
            annotations=(column(Argument("generated", MemberAccess("always"))),),
            is_mutable=False,
        )

        spec = resolve_field(field, bag)

        assert spec.generated is GeneratedKind.NONE
        assert not bag.has_errors
        assert len(bag.warnings) == 1

    def test_unknown_label(self):
        """Unsupported @Column arguments are rejected."""
        bag = DiagnosticBag("A")
        field = FieldDescriptor("a", INT, annotations=(column(Argument("unique", BoolLiteral(True))),))

        resolve_field(field, bag)

        assert bag.errors[0].message == "Unsupported argument 'unique' in '@Column'"
        assert bag.errors[0].fix_its[0].replacement == "@Column"

    def test_variadic_rejected(self):
        """Variadic types cannot be stored."""
        bag = DiagnosticBag("A")

        spec = resolve_field(FieldDescriptor("a", TypeRef("Int", is_variadic=True)), bag)

        assert spec is None
        assert bag.errors[0].kind is DiagnosticKind.STRUCTURAL

    def test_multiple_bindings_rejected(self):
        """A property with several bindings is rejected."""
        bag = DiagnosticBag("A")

        spec = resolve_field(FieldDescriptor("a", INT, binding_count=2), bag)

        assert spec is None
        assert "more than one binding" in bag.errors[0].message

    def test_ephemeral(self):
        """@Ephemeral fields are marked as ephemeral."""
        bag = DiagnosticBag("A")
        field = FieldDescriptor(
            "scratch",
            annotations=(Annotation("Ephemeral"),),
            default=StringLiteral(""),
        )

        spec = resolve_field(field, bag)

        assert spec.is_ephemeral

    def test_columns_group(self):
        """@Columns marks the field as a column group."""
        bag = DiagnosticBag("A")
        field = FieldDescriptor("location", TypeRef("Point"), annotations=(Annotation("Columns"),))

        spec = resolve_field(field, bag)

        assert spec.is_column_group

    def test_columns_and_column_conflict(self):
        """@Columns cannot be combined with @Column."""
        bag = DiagnosticBag("A")
        field = FieldDescriptor(
            "location",
            TypeRef("Point"),
            annotations=(Annotation("Columns"), column()),
        )

        resolve_field(field, bag)

        assert bag.errors[0].kind is DiagnosticKind.ATTRIBUTE_CONFLICT


class TestSelectionRestrictions:
    """Tests for options forbidden in selections."""

    def test_column_name_forbidden(self):
        """Selections cannot rename columns."""
        bag = DiagnosticBag("P")
        field = FieldDescriptor("a", INT, annotations=(column(Argument(None, StringLiteral("b"))),))

        spec = resolve_field(field, bag, macro="@Selection")

        assert spec.resolved_column_name == "a"
        assert bag.errors[0].message == "'@Selection' column names are not supported"
        assert bag.errors[0].fix_its

    def test_primary_key_forbidden(self):
        """Selections cannot declare primary keys."""
        bag = DiagnosticBag("P")
        field = FieldDescriptor(
            "id", INT, annotations=(column(Argument("primaryKey", BoolLiteral(True))),)
        )

        spec = resolve_field(field, bag, macro="@Selection")

        assert not spec.is_primary_key
        assert bag.errors[0].kind is DiagnosticKind.ATTRIBUTE_CONFLICT

    def test_representation_allowed(self):
        """Selections may still set a representation type."""
        bag = DiagnosticBag("P")
        field = FieldDescriptor(
            "at", TypeRef("Date"), annotations=(column(Argument("as", TypeLiteral(TypeRef("Unix")))),)
        )

        resolve_field(field, bag, macro="@Selection")

        assert len(bag) == 0


class TestResolveCase:
    """Tests for resolving enum cases."""

    def test_scalar_payload(self):
        """An unlabeled payload takes its type from the declaration."""
        bag = DiagnosticBag("E")
        case = CaseDescriptor(
            "note", (PayloadDescriptor(TypeRef("String"), default=StringLiteral("")),)
        )

        spec = resolve_case(case, bag)

        assert spec.declared_type == TypeRef("String")
        assert spec.default == StringLiteral("")

    def test_labeled_payload(self):
        """A labeled payload names its column after the label."""
        bag = DiagnosticBag("E")
        case = CaseDescriptor("link", (PayloadDescriptor(TypeRef("String"), label="url"),))

        spec = resolve_case(case, bag)

        assert spec.arg_label == "url"

    def test_no_payload(self):
        """A case without a payload has no type."""
        bag = DiagnosticBag("E")

        spec = resolve_case(CaseDescriptor("none"), bag)

        assert spec.declared_type is None

    def test_several_payloads_rejected(self):
        """A case may carry at most one payload."""
        bag = DiagnosticBag("E")
        case = CaseDescriptor(
            "pair", (PayloadDescriptor(TypeRef("Int")), PayloadDescriptor(TypeRef("Int")))
        )

        assert resolve_case(case, bag) is None
        assert "at most one associated value" in bag.errors[0].message

    def test_primary_key_unsupported(self):
        """Cases cannot declare a primary key."""
        bag = DiagnosticBag("E")
        case = CaseDescriptor(
            "note",
            (PayloadDescriptor(TypeRef("String")),),
            annotations=(column(Argument("primaryKey", BoolLiteral(True))),),
        )

        resolve_case(case, bag)

        assert bag.errors[0].kind is DiagnosticKind.ATTRIBUTE_CONFLICT
        assert "does not support the 'primaryKey' argument" in bag.errors[0].message


class TestTableOptions:
    """Tests for record-level table options."""

    def test_table_name_and_schema(self):
        """Table name and schema come from @Table arguments."""
        bag = DiagnosticBag("User")
        record = RecordDescriptor(
            "User",
            annotations=(
                Annotation(
                    "Table",
                    (
                        Argument(None, StringLiteral("people")),
                        Argument("schema", StringLiteral("main")),
                    ),
                ),
            ),
        )

        assert resolve_table_options(record, bag) == ("people", "main")

    def test_empty_table_name(self):
        """An empty table name is a value error."""
        bag = DiagnosticBag("User")
        record = RecordDescriptor(
            "User", annotations=(Annotation("Table", (Argument(None, StringLiteral("")),)),)
        )

        assert resolve_table_options(record, bag) == (None, None)
        assert bag.errors[0].kind is DiagnosticKind.VALUE

    def test_selection_arguments_rejected(self):
        """@Selection takes no arguments."""
        bag = DiagnosticBag("P")
        record = RecordDescriptor(
            "P", annotations=(Annotation("Selection", (Argument(None, StringLiteral("p")),)),)
        )

        resolve_table_options(record, bag)

        assert bag.errors[0].kind is DiagnosticKind.ATTRIBUTE_CONFLICT
