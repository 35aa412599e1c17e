"""Tests for insertable draft synthesis."""

import inspect
from dataclasses import dataclass

import pytest

from structured_tables.diagnostics import DiagnosticKind
from structured_tables.schema import Schema
from structured_tables.types import NilLiteral, Span, TypeRef

USER = '@Table struct User { var id: Int; var email: String? = ""; var age: Int }'


def derive(source: str, name: str):
    schema = Schema()
    schema.parse(source)
    return schema.derive(name)


class TestSynthesizeDraft:
    """Tests for draft synthesis."""

    def test_primary_key_becomes_optional(self):
        """The draft primary key is optional and defaults to nil."""
        draft = derive(USER, "User").unwrap().draft

        assert draft.type_name == "User.Draft"
        id_param = draft.parameter("id")
        assert id_param.type_ref == TypeRef("Int", is_optional=True)
        assert id_param.default == NilLiteral()
        assert not id_param.is_required
        assert draft.primary_key.name == "id"
        assert draft.primary_key.is_nullable

    def test_other_fields_unchanged(self):
        """Non-key fields keep their types and order."""
        draft = derive(USER, "User").unwrap().draft

        assert draft.parameter("email").type_ref == TypeRef("String", is_optional=True)
        assert draft.parameter("age").type_ref == TypeRef("Int")
        assert draft.parameter("age").is_required
        assert [p.name for p in draft.parameters] == ["id", "email", "age"]

    def test_mirrors_table(self):
        """The draft targets the same table and schema."""
        derivation = derive(
            '@Table("people", schema: "main") struct User { let id: Int; var name: String }',
            "User",
        ).unwrap()

        assert derivation.draft.table_name == "people"
        assert derivation.draft.schema_name == "main"

    def test_generated_columns_removed(self):
        """Generated columns are not part of the draft."""
        derivation = derive(
            """
            @Table struct Order {
                let id: Int
                var quantity: Int
                var price: Double
                @Column(generated: .stored) let total: Double
                @Column(generated: .virtual) let label: String
            }
            """,
            "Order",
        ).unwrap()
        draft = derivation.draft

        assert [p.name for p in draft.parameters] == ["id", "quantity", "price"]
        assert len(draft.catalog.columns) == len(derivation.catalog.columns) - 2

    def test_no_draft_without_primary_key(self):
        """Tables without a primary key have no draft."""
        derivation = derive("@Table struct Log { var message: String }", "Log").unwrap()

        assert derivation.draft is None

    def test_no_draft_for_selection(self):
        """Selections have no draft."""
        derivation = derive("@Selection struct P { var id: Int }", "P").unwrap()

        assert derivation.draft is None

    def test_type_from_literal_default(self):
        """Draft members take their type from a literal default."""
        draft = derive('@Table struct A { let id: Int; var title = "x" }', "A").unwrap().draft

        assert draft.parameter("title").type_ref == TypeRef("String")

    def test_missing_type_fails_derivation(self):
        """A field with no inferable type fails with a fix-it."""
        source = "@Table struct A {\n  let id: Int\n  var createdAt = Date()\n}"
        derivation = derive(source, "A")

        assert derivation.result is None
        error = derivation.errors[0]
        assert error.kind is DiagnosticKind.TYPE_INFERENCE
        assert error.message == (
            "'@Table' requires 'createdAt' to have a type annotation in order to "
            "generate a memberwise initializer"
        )
        fix = error.fix_its[0]
        assert fix.message == "Insert ': <#Type#>'"
        assert fix.replacement == ": <#Type#>"
        name_end = source.index("createdAt") + len("createdAt")
        assert fix.span == Span(name_end, name_end)

    def test_missing_type_ignored_without_primary_key(self):
        """Untyped fields are fine when no draft is built."""
        derivation = derive("@Table struct A { var createdAt = Date() }", "A")

        assert derivation.ok

    def test_generated_primary_key(self):
        """A generated primary key still yields a draft, without its column."""
        derivation = derive(
            """
            @Table struct Item {
                @Column(primaryKey: true, generated: .stored) let id: Int
                var title: String
            }
            """,
            "Item",
        ).unwrap()
        draft = derivation.draft

        assert derivation.catalog.primary_key.name == "id"
        assert draft is not None
        assert [p.name for p in draft.parameters] == ["title"]
        assert draft.primary_key.name == "id"
        assert draft.primary_key.is_nullable
        assert draft.make(title="x") == {"title": "x"}

    def test_generated_id_by_convention(self):
        """The id convention also applies when the id column is generated."""
        draft = derive(
            "@Table struct Item { @Column(generated: .virtual) let id: Int; var title: String }",
            "Item",
        ).unwrap().draft

        assert draft is not None
        assert draft.primary_key.name == "id"
        assert [c.name for c in draft.catalog.columns] == ["title"]


class TestDraftValues:
    """Tests for building draft values."""

    def test_make_with_defaults(self):
        """make fills declared defaults."""
        draft = derive(USER, "User").unwrap().draft

        assert draft.make(age=30) == {"id": None, "email": "", "age": 30}

    def test_make_overrides(self):
        """Arguments override defaults."""
        draft = derive(USER, "User").unwrap().draft

        assert draft.make(id=5, email=None, age=30) == {"id": 5, "email": None, "age": 30}

    def test_make_optional_without_default(self):
        """Optional members without a default are None."""
        draft = derive(
            "@Table struct A { let id: Int; var note: String? }", "A"
        ).unwrap().draft

        assert draft.make() == {"id": None, "note": None}

    def test_make_missing_argument(self):
        """make requires every required member."""
        draft = derive(USER, "User").unwrap().draft

        with pytest.raises(TypeError, match="missing required arguments: 'age'"):
            draft.make()

    def test_make_unexpected_argument(self):
        """Unknown arguments raise TypeError."""
        draft = derive(USER, "User").unwrap().draft

        with pytest.raises(TypeError, match="unexpected keyword argument 'name'"):
            draft.make(age=1, name="x")

    def test_signature(self):
        """The signature is keyword-only and shows defaults."""
        draft = derive(USER, "User").unwrap().draft
        signature = draft.signature

        assert list(signature.parameters) == ["id", "email", "age"]
        assert signature.parameters["id"].default is None
        assert signature.parameters["email"].default == ""
        assert signature.parameters["age"].default is inspect.Parameter.empty
        assert signature.parameters["age"].kind is inspect.Parameter.KEYWORD_ONLY

    def test_from_record_mapping(self):
        """from_record copies non-generated fields from a mapping."""
        derivation = derive(
            """
            @Table struct Order {
                let id: Int
                var quantity: Int
                @Column(generated: .stored) let total: Int
            }
            """,
            "Order",
        ).unwrap()
        record = derivation.decode([7, 2, 20])

        assert derivation.draft.from_record(record) == {"id": 7, "quantity": 2}

    def test_from_record_object(self):
        """from_record reads attributes of an object."""
        @dataclass
        class User:
            id: int
            email: str
            age: int

        draft = derive(USER, "User").unwrap().draft

        assert draft.from_record(User(1, "a", 2)) == {"id": 1, "email": "a", "age": 2}

    def test_draft_decode_plan(self):
        """Drafts decode rows with their own plan."""
        draft = derive(USER, "User").unwrap().draft

        assert draft.decode_plan.decode_row([None, None, 30]) == {
            "id": None,
            "email": "",
            "age": 30,
        }
