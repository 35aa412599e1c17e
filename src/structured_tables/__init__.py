"""Structured Tables - Column catalogs, decode plans, drafts and selections derived from records."""

from structured_tables.config import DerivationOptions
from structured_tables.decoding import (
    DecodePlan,
    DecodePolicy,
    MissingRequiredColumnError,
    QueryDecodingError,
    RowDecoder,
)
from structured_tables.diagnostics import (
    Derivation,
    DerivationError,
    Diagnostic,
    DiagnosticKind,
    FixIt,
    Note,
    Severity,
)
from structured_tables.draft import Draft
from structured_tables.parsing import DeclarationParser
from structured_tables.reflect import column, columns, ephemeral, selection, table
from structured_tables.schema import Schema, TableDerivation, VariantDerivation
from structured_tables.selection import Projection, Selection, VariantSelection
from structured_tables.types import (
    Column,
    ColumnCatalog,
    FieldDescriptor,
    GeneratedKind,
    RecordDescriptor,
    TypeRef,
)
from structured_tables.variants import VariantCatalog, VariantValue

__all__ = [
    # Main API
    "Schema",
    "DerivationOptions",
    "DeclarationParser",
    # Dataclass declarations
    "table",
    "selection",
    "column",
    "columns",
    "ephemeral",
    # Derived artifacts
    "TableDerivation",
    "VariantDerivation",
    "ColumnCatalog",
    "Column",
    "VariantCatalog",
    "VariantValue",
    "DecodePlan",
    "Draft",
    "Selection",
    "VariantSelection",
    "Projection",
    # Decoding
    "RowDecoder",
    "DecodePolicy",
    "QueryDecodingError",
    "MissingRequiredColumnError",
    # Declarations
    "RecordDescriptor",
    "FieldDescriptor",
    "TypeRef",
    "GeneratedKind",
    # Diagnostics
    "Derivation",
    "DerivationError",
    "Diagnostic",
    "DiagnosticKind",
    "Severity",
    "Note",
    "FixIt",
]

__version__ = "0.1.0"
