"""Tests for declaration, expression, column and diagnostic types."""

import pytest

from structured_tables.diagnostics import (
    Derivation,
    DerivationError,
    DiagnosticBag,
    DiagnosticKind,
    Severity,
)
from structured_tables.types import (
    Annotation,
    Argument,
    ArrayLiteral,
    BoolLiteral,
    Call,
    Column,
    ColumnCatalog,
    FactoryValue,
    FloatLiteral,
    GeneratedKind,
    IntegerLiteral,
    MemberAccess,
    NilLiteral,
    PythonValue,
    RecordDescriptor,
    Reference,
    StringLiteral,
    TypeRef,
)


class TestTypeRef:
    """Tests for TypeRef."""

    def test_str(self):
        """Type references render in declaration syntax."""
        assert str(TypeRef("Int")) == "Int"
        assert str(TypeRef("Int", is_optional=True)) == "Int?"
        assert str(TypeRef("Int", is_array=True)) == "[Int]"
        assert str(TypeRef("Int", is_variadic=True)) == "Int..."

    def test_optional_roundtrip(self):
        """Wrapping and unwrapping optionality returns the original reference."""
        ref = TypeRef("String")

        assert ref.optional().is_optional
        assert ref.optional().non_optional() == ref


class TestExpressions:
    """Tests for default-value expressions."""

    def test_literal_types(self):
        """Scalar literals infer Int, Double, String and Bool."""
        assert IntegerLiteral(1).literal_type() == TypeRef("Int")
        assert FloatLiteral(1.0).literal_type() == TypeRef("Double")
        assert StringLiteral("").literal_type() == TypeRef("String")
        assert BoolLiteral(False).literal_type() == TypeRef("Bool")
        assert NilLiteral().literal_type() is None
        assert Call("Date").literal_type() is None

    def test_evaluate(self):
        """Literal expressions evaluate to Python values."""
        assert StringLiteral("x").evaluate() == "x"
        assert NilLiteral().evaluate() is None
        assert ArrayLiteral((IntegerLiteral(1), IntegerLiteral(2))).evaluate() == [1, 2]

    def test_not_evaluable(self):
        """References and calls cannot be evaluated."""
        for expression in (Call("Date"), Reference("Defaults.x"), MemberAccess("stored")):
            assert not expression.is_evaluable
            with pytest.raises(ValueError, match="cannot be evaluated"):
                expression.evaluate()

    def test_array_with_call_not_evaluable(self):
        """An array literal holding a call is not evaluable."""
        assert not ArrayLiteral((Call("Date"),)).is_evaluable

    def test_python_value_literal_types(self):
        """Python values infer their literal types."""
        assert PythonValue(True).literal_type() == TypeRef("Bool")
        assert PythonValue(3).literal_type() == TypeRef("Int")
        assert PythonValue(None).literal_type() is None

    def test_factory_value_is_fresh(self):
        """Factory defaults produce a new value on each evaluation."""
        factory = FactoryValue(list)

        first = factory.evaluate()
        first.append(1)

        assert factory.evaluate() == []
        assert factory.source() == "list()"

    def test_source(self):
        """Expressions render back to declaration source."""
        assert StringLiteral('a"b').source() == '"a\\"b"'
        assert Call("Date", (Argument("x", IntegerLiteral(1)),)).source() == "Date(x: 1)"

    def test_annotation_source_without_argument(self):
        """An annotation can be rendered with one argument left out."""
        name = Argument(None, StringLiteral("n"))
        key = Argument("primaryKey", BoolLiteral(True))
        annotation = Annotation("Column", (name, key))

        assert annotation.source() == '@Column("n", primaryKey: true)'
        assert annotation.source(without=key) == '@Column("n")'
        assert Annotation("Column", (key,)).source(without=key) == "@Column"


class TestRecordDescriptor:
    """Tests for RecordDescriptor."""

    def test_key_is_name_without_class(self):
        """Declared records are keyed by name."""
        record = RecordDescriptor("User", annotations=(Annotation("Table"),))

        assert record.key == "User"
        assert record.is_table
        assert record.macro_name == "@Table"

    def test_key_is_class_when_reflected(self):
        """Reflected records are keyed by their class."""
        class User:
            pass

        record = RecordDescriptor("User", factory=User)

        assert record.key is User

    def test_selection_macro_name(self):
        """The macro name follows the annotation."""
        record = RecordDescriptor("P", annotations=(Annotation("Selection"),))

        assert record.macro_name == "@Selection"


class TestColumnCatalog:
    """Tests for ColumnCatalog helpers."""

    def _catalog(self):
        inner = ColumnCatalog(
            "Point",
            (
                Column("x", "x", TypeRef("Double")),
                Column("y", "y", TypeRef("Double")),
            ),
        )
        return ColumnCatalog(
            "Place",
            (
                Column("id", "id", TypeRef("Int"), is_primary_key=True),
                Column(
                    "location", "location", TypeRef("Point", is_optional=True), width=2, group=inner
                ),
                Column("total", "total", TypeRef("Int"), generated=GeneratedKind.STORED),
            ),
            table_name="places",
        )

    def test_width_counts_group_members(self):
        """Catalog width counts every member of a column group."""
        assert self._catalog().width == 4

    def test_leaf_columns(self):
        """Leaf columns flatten nested groups in order."""
        leaves = self._catalog().leaf_columns()

        assert [c.name for c in leaves] == ["id", "x", "y", "total"]

    def test_optional_group_leaves_are_nullable(self):
        """Members of an optional group report as nullable."""
        leaves = self._catalog().leaf_columns()

        assert leaves[1].is_nullable and leaves[2].is_nullable
        assert not leaves[0].is_nullable

    def test_group_keeps_member_types(self):
        """Group members keep their own nullability."""
        group = self._catalog().column("location").group

        assert not group.columns[0].is_nullable

    def test_writable_columns(self):
        """Writable columns leave out generated columns."""
        writable = self._catalog().writable_columns()

        assert [c.name for c in writable] == ["id", "x", "y"]

    def test_primary_key(self):
        """A catalog used as a group drops its key and table."""
        catalog = self._catalog()

        assert catalog.primary_key.name == "id"
        assert catalog.as_group().primary_key is None
        assert catalog.as_group().table_name is None

    def test_column_lookup(self):
        """Columns can be looked up by column or field name."""
        catalog = ColumnCatalog("A", (Column("email_address", "email", TypeRef("String")),))

        assert catalog.column("email") is catalog.column("email_address")
        assert catalog.column("missing") is None

    def test_generated_not_writable(self):
        """Generated columns are read-only."""
        assert not Column("t", "t", TypeRef("Int"), generated=GeneratedKind.VIRTUAL).is_writable


class TestDiagnostics:
    """Tests for diagnostics and derivation results."""

    def test_bag_collects(self):
        """The bag keeps every diagnostic in order."""
        bag = DiagnosticBag("User")
        bag.warning(DiagnosticKind.VALUE, "just a warning")
        assert not bag.has_errors

        bag.error(DiagnosticKind.STRUCTURAL, "broken", field_name="id")

        assert bag.has_errors
        assert len(bag) == 2
        assert len(bag.errors) == 1
        assert len(bag.warnings) == 1
        assert bag.errors[0].type_name == "User"

    def test_diagnostic_str(self):
        """Diagnostics render with their subject."""
        bag = DiagnosticBag("User")
        diagnostic = bag.error(DiagnosticKind.STRUCTURAL, "broken", field_name="id")

        assert str(diagnostic) == "User.id: error: broken"
        assert diagnostic.severity is Severity.ERROR

    def test_derivation_fails_closed(self):
        """Any error drops the derivation result."""
        bag = DiagnosticBag("User")
        bag.error(DiagnosticKind.VALUE, "bad")

        derivation = Derivation.from_bag("User", object(), bag)

        assert derivation.result is None
        assert not derivation.ok

    def test_derivation_keeps_warnings(self):
        """Warnings alone keep the result."""
        bag = DiagnosticBag("User")
        bag.warning(DiagnosticKind.VALUE, "meh")
        result = object()

        derivation = Derivation.from_bag("User", result, bag)

        assert derivation.unwrap() is result
        assert len(derivation.warnings) == 1

    def test_unwrap_raises(self):
        """Unwrapping a failed derivation raises DerivationError."""
        bag = DiagnosticBag("User")
        bag.error(DiagnosticKind.VALUE, "bad value")
        derivation = Derivation.from_bag("User", None, bag)

        with pytest.raises(DerivationError, match="bad value") as exc_info:
            derivation.unwrap()
        assert exc_info.value.type_name == "User"
        assert len(exc_info.value.diagnostics) == 1
