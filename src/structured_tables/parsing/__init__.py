"""Parsing module for the record declaration DSL."""

from structured_tables.parsing.declaration_lexer import DeclarationLexer
from structured_tables.parsing.declaration_parser import DeclarationParser

__all__ = [
    "DeclarationLexer",
    "DeclarationParser",
]
