"""Tests for record declarations reflected from dataclasses."""

import datetime
import uuid
from dataclasses import dataclass, field
from typing import Annotated, Optional

import pytest

from structured_tables.diagnostics import DerivationError
from structured_tables.reflect import (
    column,
    columns,
    default_schema,
    derivation,
    describe,
    ephemeral,
    python_type_name,
    selection,
    table,
    type_ref,
)
from structured_tables.schema import Schema
from structured_tables.types import Annotation, TypeRef


class TestTypeNames:
    """Tests for Python type mapping."""

    def test_builtin_types(self):
        """Builtin Python types map to declaration names."""
        assert python_type_name(int) == "Int"
        assert python_type_name(float) == "Double"
        assert python_type_name(str) == "String"
        assert python_type_name(bool) == "Bool"
        assert python_type_name(datetime.datetime) == "Date"
        assert python_type_name(uuid.UUID) == "UUID"

    def test_class_name(self):
        """Other classes map to their own name."""
        class Cents:
            pass

        assert python_type_name(Cents) == "Cents"

    def test_optional(self):
        """Optional unwraps to an optional reference."""
        ref, base, metadata = type_ref(Optional[int])

        assert ref == TypeRef("Int", is_optional=True)
        assert base is int
        assert metadata == []

    def test_annotated(self):
        """Annotated metadata is collected while unwrapping."""
        marker = column("n")
        ref, base, metadata = type_ref(Annotated[Optional[str], marker])

        assert ref == TypeRef("String", is_optional=True)
        assert metadata == [marker]

    def test_list(self):
        """list maps to an array reference."""
        ref, _, _ = type_ref(list[str])

        assert ref == TypeRef("String", is_array=True)


class TestDescribe:
    """Tests for describe."""

    def test_requires_dataclass(self):
        """Only dataclasses can be described."""
        class Plain:
            id: int

        with pytest.raises(TypeError, match="'Plain' must be a dataclass"):
            describe(Plain, Annotation("Table"))

    def test_fields(self):
        """Dataclass fields become field descriptors."""
        @dataclass(frozen=True)
        class User:
            id: int
            email: Annotated[str, column("email_address")]
            nickname: Optional[str] = None

        record = describe(User, Annotation("Table"))

        assert record.name == "User"
        assert record.factory is User
        assert record.key is User
        assert [f.name for f in record.fields] == ["id", "email", "nickname"]
        assert record.fields[1].annotations[0].source() == '@Column("email_address")'
        assert all(not f.is_mutable for f in record.fields)

    def test_ephemeral_needs_default(self):
        """An ephemeral field without a default is rejected."""
        @dataclass
        class Draft:
            id: int
            scratch: Annotated[str, ephemeral()]

        with pytest.raises(TypeError, match="Ephemeral field 'scratch' of 'Draft' needs a default"):
            describe(Draft, Annotation("Table"))

    def test_init_false_is_computed(self):
        """init=False fields are treated as computed."""
        @dataclass
        class Row:
            id: int
            label: str = field(init=False, default="x")

        record = describe(Row, Annotation("Table"))

        assert record.fields[1].is_computed


class TestTableDecorator:
    """Tests for the table decorator."""

    def test_empty_registry_is_used(self):
        """A registry passed while still empty receives the class."""
        schema = Schema()

        @table(registry=schema)
        @dataclass(frozen=True)
        class Gadget:
            id: int

        @selection(registry=schema)
        @dataclass(frozen=True)
        class Size:
            width: int

        assert Gadget in schema
        assert Size in schema
        assert Gadget not in default_schema
        assert Size not in default_schema
        assert schema.derive(Gadget) is derivation(Gadget)

    def test_columns_and_decode(self):
        """Annotated column options shape the catalog and decode builds instances."""
        schema = Schema()

        @table("users", registry=schema)
        @dataclass(frozen=True)
        class User:
            id: int
            email: Annotated[str, column("email_address")]
            nickname: Optional[str] = None
            scratch: Annotated[str, ephemeral()] = ""

        derived = User.__table__

        assert derived.table_name == "users"
        assert [c.name for c in derived.catalog.columns] == ["id", "email_address", "nickname"]
        assert derived.catalog.primary_key.name == "id"
        assert User.decode([1, "a@b.c", None]) == User(1, "a@b.c", None)
        assert User in schema

    def test_derivation_memoized(self):
        """The class derivation is computed once."""
        schema = Schema()

        @table(registry=schema)
        @dataclass(frozen=True)
        class Tag:
            id: int
            title: str

        assert Tag.__table__ is Tag.__table__
        assert derivation(Tag) is schema.derive(Tag)
        assert Tag.__table__.table_name == "tags"

    def test_schema_option(self):
        """The schema option sets the schema name."""
        schema = Schema()

        @table("events", schema="audit", registry=schema)
        @dataclass(frozen=True)
        class Event:
            id: int

        assert Event.__table__.schema_name == "audit"

    def test_bare_decorator(self):
        """The decorator works without arguments."""
        @table
        @dataclass(frozen=True)
        class Widget:
            id: int
            name: str

        assert Widget.__table__.table_name == "widgets"
        assert Widget.decode([3, "knob"]) == Widget(3, "knob")

    def test_representation_type(self):
        """column(as_=...) selects the converter."""
        schema = Schema()

        @table(registry=schema)
        @dataclass(frozen=True)
        class Event:
            id: int
            at: Annotated[datetime.datetime, column(as_=str)]

        derived = Event.__table__
        at = derived.catalog.column("at")

        assert at.representation_type == TypeRef("String")
        value = Event.decode(
            [1, "2024-01-02T00:00:00"], converters={"String": datetime.datetime.fromisoformat}
        )
        assert value.at == datetime.datetime(2024, 1, 2)

    def test_default_factory(self):
        """default_factory defaults are fresh on every decode."""
        schema = Schema()

        @table(registry=schema)
        @dataclass(frozen=True)
        class Post:
            id: int
            tags: list[str] = field(default_factory=list)

        first = Post.decode([1, None])
        second = Post.decode([2, None])

        assert first.tags == []
        assert first.tags is not second.tags

    def test_init_false_field_skipped(self):
        """init=False fields get no column."""
        schema = Schema()

        @table(registry=schema)
        @dataclass
        class Row:
            id: int
            label: str = field(init=False, default="x")

        assert [c.name for c in Row.__table__.catalog.columns] == ["id"]
        assert Row.decode([4]).label == "x"

    def test_generated_column_requires_frozen(self):
        """Generated columns need a frozen dataclass."""
        schema = Schema()

        @table(registry=schema)
        @dataclass
        class Order:
            id: int
            total: Annotated[int, column(generated="stored")] = 0

        result = derivation(Order)

        assert result.result is None
        assert result.errors[0].message == "Generated column property must be declared with a 'let'"
        with pytest.raises(DerivationError):
            Order.__table__

    def test_generated_column_left_out_of_draft(self):
        """Generated columns are left out of the draft."""
        schema = Schema()

        @table(registry=schema)
        @dataclass(frozen=True)
        class Order:
            id: int
            quantity: int
            total: Annotated[int, column(generated="virtual")] = 0

        draft = Order.__table__.draft

        assert [p.name for p in draft.parameters] == ["id", "quantity"]
        assert draft.make(quantity=2) == {"id": None, "quantity": 2}


class TestColumnGroups:
    """Tests for dataclass column groups."""

    def test_registered_dataclass_becomes_group(self):
        """A registered dataclass field becomes a column group."""
        schema = Schema()

        @selection(registry=schema)
        @dataclass(frozen=True)
        class Coordinates:
            latitude: float
            longitude: float

        @table(registry=schema)
        @dataclass(frozen=True)
        class Place:
            id: int
            location: Coordinates
            previous: Optional[Coordinates] = None

        assert Place.__table__.width == 5
        assert Place.decode([1, 1.0, 2.0, None, None]) == Place(1, Coordinates(1.0, 2.0), None)
        assert Place.decode([1, 1.0, 2.0, 3.0, 4.0]).previous == Coordinates(3.0, 4.0)

    def test_explicit_columns_marker(self):
        """columns() marks a group explicitly."""
        schema = Schema()

        @selection(registry=schema)
        @dataclass(frozen=True)
        class Money:
            amount: int
            currency: str

        @table(registry=schema)
        @dataclass(frozen=True)
        class Invoice:
            id: int
            price: Annotated[Money, columns()]

        assert [c.name for c in Invoice.__table__.catalog.leaf_columns()] == [
            "id",
            "amount",
            "currency",
        ]

    def test_selection_has_no_draft(self):
        """Selections have neither draft nor table name."""
        @selection
        @dataclass(frozen=True)
        class Summary:
            total: int

        assert Summary.__table__.draft is None
        assert Summary.__table__.table_name is None

    def test_same_named_groups_resolved_by_class(self):
        """Two group classes sharing a name each keep their own columns."""
        schema = Schema()

        @selection(registry=schema)
        @dataclass(frozen=True)
        class Address:
            street: str

        street_address = Address

        @selection(registry=schema)
        @dataclass(frozen=True)
        class Address:  # noqa: F811
            zip: str
            country: str

        postal_address = Address

        @table(registry=schema)
        @dataclass(frozen=True)
        class Home:
            id: int
            address: street_address

        @table(registry=schema)
        @dataclass(frozen=True)
        class Office:
            id: int
            address: postal_address

        home_columns = [c.name for c in Home.__table__.catalog.leaf_columns()]
        office_columns = [c.name for c in Office.__table__.catalog.leaf_columns()]

        assert home_columns == ["id", "street"]
        assert office_columns == ["id", "zip", "country"]
        assert Home.decode([1, "Main St"]) == Home(1, street_address("Main St"))
