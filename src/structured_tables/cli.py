"""Command line interface: derive and print schemas for a declaration file."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from structured_tables.config import DerivationOptions
from structured_tables.decoding import DecodePolicy
from structured_tables.diagnostics import Derivation, Diagnostic
from structured_tables.schema import AnyDerivation, Schema, TableDerivation
from structured_tables.types import Column, ColumnCatalog, Span
from structured_tables.variants import VariantCatalog


def line_column(source: str, offset: int) -> tuple[int, int]:
    """Convert a byte offset into a 1-based ``(line, column)`` pair."""
    line = source.count("\n", 0, offset) + 1
    last_nl = source.rfind("\n", 0, offset)
    return line, offset - last_nl


def format_diagnostic(diagnostic: Diagnostic, source: str, path: str) -> str:
    """Render a diagnostic as ``path:line:col: severity: message`` plus notes."""
    location = path
    if diagnostic.span is not None:
        line, col = line_column(source, diagnostic.span.start)
        location = f"{path}:{line}:{col}"
    subject = diagnostic.type_name or ""
    if diagnostic.field_name:
        subject = f"{subject}.{diagnostic.field_name}" if subject else diagnostic.field_name
    lines = [
        f"{location}: {diagnostic.severity.value}: {diagnostic.message}"
        + (f" [{subject}]" if subject else "")
    ]
    for note in diagnostic.notes:
        lines.append(f"  note: {note.message}{_at(note.span, source)}")
    for fix in diagnostic.fix_its:
        lines.append(f"  fix-it: {fix.message} -> {fix.replacement!r}{_at(fix.span, source)}")
    return "\n".join(lines)


def _at(span: Span | None, source: str) -> str:
    if span is None:
        return ""
    line, col = line_column(source, span.start)
    return f" (at {line}:{col})"


def _qualified_table(table: str | None, schema: str | None) -> str:
    if table is None:
        return "no table"
    if schema is None:
        return f'table "{table}"'
    return f'table "{schema}"."{table}"'


def _column_lines(catalog: ColumnCatalog | VariantCatalog, indent: str) -> list[str]:
    lines: list[str] = []
    for column in catalog.columns:
        lines.append(indent + _describe_column(column))
        if column.group is not None:
            lines.extend(_column_lines(column.group, indent + "    "))
    return lines


def _describe_column(column: Column) -> str:
    type_text = str(column.semantic_type) if column.semantic_type is not None else "<inferred>"
    parts = [f"{column.name:<16} {type_text:<12}"]
    if column.field_name != column.name:
        parts.append(f"field {column.field_name}")
    if column.is_primary_key:
        parts.append("primary key")
    if column.generated.is_generated:
        parts.append(f"generated {column.generated.value}")
    if column.default is not None:
        parts.append(f"default {column.default.source()}")
    if column.group is not None:
        parts.append(f"group width {column.width}")
    return " ".join(parts).rstrip()


def describe_derivation(result: AnyDerivation) -> str:
    """Human-readable summary of every derived artifact."""
    catalog = result.catalog
    kind = "enum" if isinstance(catalog, VariantCatalog) else "struct"
    header = (
        f"{result.type_name} ({kind}, "
        f"{_qualified_table(result.table_name, result.schema_name)}, width {result.width})"
    )
    lines = [header]
    if isinstance(result, TableDerivation):
        lines.extend(_column_lines(catalog, "  "))
        required = [step.column.name for step in result.decode_plan if step.required]
        lines.append(f"  decode: required {', '.join(required) if required else 'nothing'}")
        if result.draft is not None:
            params = ", ".join(
                f"{p.name}: {p.type_ref}"
                + (f" = {p.default.source()}" if p.default is not None else "")
                for p in result.draft.parameters
            )
            lines.append(f"  draft: {result.draft.type_name}({params})")
    else:
        for case in catalog.cases:
            label = f"{case.arg_label}: " if case.arg_label else ""
            payload = case.payload
            if payload is None:
                lines.append(f"  case {case.name}")
                continue
            lines.append(f"  case {case.name}({label}{payload.semantic_type})")
            lines.extend(_column_lines(case.catalog, "    "))
    lines.append(f"  select: {result.columns().sql}")
    return "\n".join(lines)


def _column_to_dict(column: Column) -> dict[str, Any]:
    data: dict[str, Any] = {
        "name": column.name,
        "field": column.field_name,
        "type": str(column.semantic_type) if column.semantic_type is not None else None,
        "width": column.width,
        "primary_key": column.is_primary_key,
        "writable": column.is_writable,
        "generated": column.generated.value,
        "default": column.default.source() if column.default is not None else None,
    }
    if column.group is not None:
        data["group"] = [_column_to_dict(c) for c in column.group.columns]
    return data


def derivation_to_dict(derivation: Derivation[AnyDerivation]) -> dict[str, Any]:
    """JSON-ready representation of a derivation and its diagnostics."""
    data: dict[str, Any] = {
        "type": derivation.type_name,
        "ok": derivation.ok,
        "diagnostics": [
            {
                "kind": d.kind.value,
                "severity": d.severity.value,
                "message": d.message,
                "field": d.field_name,
                "span": [d.span.start, d.span.end] if d.span is not None else None,
                "fix_its": [
                    {"message": f.message, "replacement": f.replacement} for f in d.fix_its
                ],
            }
            for d in derivation.diagnostics
        ],
    }
    result = derivation.result
    if result is None:
        return data
    data.update(
        {
            "table": result.table_name,
            "schema": result.schema_name,
            "width": result.width,
            "select": result.columns().sql,
        }
    )
    if isinstance(result, TableDerivation):
        data["columns"] = [_column_to_dict(c) for c in result.catalog.columns]
        data["required"] = [step.column.name for step in result.decode_plan if step.required]
        if result.draft is not None:
            data["draft"] = [
                {
                    "name": p.name,
                    "type": str(p.type_ref),
                    "default": p.default.source() if p.default is not None else None,
                }
                for p in result.draft.parameters
            ]
    else:
        data["cases"] = [
            {
                "name": case.name,
                "label": case.arg_label,
                "columns": [_column_to_dict(c) for c in case.catalog.columns],
            }
            for case in result.catalog.cases
        ]
    return data


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Derive column catalogs, decode plans, drafts and selections "
        "from record declarations"
    )
    parser.add_argument(
        "file",
        help="Declaration file to read ('-' for standard input)",
    )
    parser.add_argument(
        "-t", "--type",
        action="append",
        dest="types",
        help="Only derive the named type (may be repeated)",
    )
    parser.add_argument(
        "-j", "--json",
        action="store_true",
        help="Output as JSON",
    )
    parser.add_argument(
        "--collect-all",
        action="store_true",
        help="Report every missing required column when decoding",
    )
    parser.add_argument(
        "--no-id-convention",
        action="store_true",
        help="Do not treat a field named 'id' as the primary key",
    )
    parser.add_argument(
        "--no-pluralize",
        action="store_true",
        help="Do not pluralize default table names",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s"
        )

    if args.file == "-":
        source = sys.stdin.read()
        path = "<stdin>"
    else:
        file_path = Path(args.file)
        if not file_path.exists():
            print(f"Error: File not found: {file_path}", file=sys.stderr)
            return 1
        source = file_path.read_text()
        path = str(file_path)

    options = DerivationOptions(
        decode_policy=DecodePolicy.COLLECT_ALL if args.collect_all else DecodePolicy.FAIL_FAST,
        infer_id_primary_key=not args.no_id_convention,
        pluralize_table_names=not args.no_pluralize,
    )
    schema = Schema(options)
    try:
        schema.parse(source)
    except (SyntaxError, ValueError) as e:
        print(f"{path}: error: {e}", file=sys.stderr)
        return 1

    names = args.types or schema.list_types()
    for name in names:
        if name not in schema:
            print(f"Error: Unknown type: {name}", file=sys.stderr)
            return 1

    derivations = [schema.derive(name) for name in names]
    failed = False
    if args.json:
        print(json.dumps([derivation_to_dict(d) for d in derivations], indent=2))
        failed = any(not d.ok for d in derivations)
    else:
        blocks: list[str] = []
        for derivation in derivations:
            for diagnostic in derivation.diagnostics:
                print(format_diagnostic(diagnostic, source, path), file=sys.stderr)
            if derivation.result is None:
                failed = True
                continue
            blocks.append(describe_derivation(derivation.result))
        if blocks:
            print("\n\n".join(blocks))

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
