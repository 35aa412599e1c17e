"""Declaration Language Server — diagnostics, quick fixes, completion, hover via pygls."""

from __future__ import annotations

import re
from typing import Any

from lsprotocol import types
from pygls.lsp.server import LanguageServer

from structured_tables.cli import describe_derivation
from structured_tables.diagnostics import Diagnostic, Severity
from structured_tables.schema import Schema
from structured_tables.types import Span

# ---------------------------------------------------------------------------
# Static data
# ---------------------------------------------------------------------------

BUILTIN_TYPES: dict[str, str] = {
    "Int": "Signed integer column",
    "Double": "Floating point column",
    "String": "Text column",
    "Bool": "Boolean column (stored as 0 or 1)",
    "Data": "Binary column",
    "Date": "Date/time column; pair with `@Column(as:)` to pick a representation",
    "UUID": "UUID column",
    "Decimal": "Exact decimal column",
}

ANNOTATIONS: dict[str, str] = {
    "Table": "Derive a table: column catalog, decode plan, draft and selection. "
    'Arguments: optional table name, `schema: "name"`',
    "Selection": "Derive a column set without a table, e.g. for partial selects",
    "Column": 'Column options: `"name"`, `as: Type.self`, `primaryKey: Bool`, '
    "`generated: .stored | .virtual`",
    "Columns": "Splice the fields of another record in as a column group",
    "Ephemeral": "Field is not persisted",
}

KEYWORDS: dict[str, str] = {
    "struct": "Record type: one column per stored field",
    "enum": "Sum type: every case owns nullable columns; decoding picks the first present case",
    "case": "Enum case with at most one associated value",
    "let": "Immutable field; required for generated columns",
    "var": "Mutable field",
    "static": "Static property; never a column",
}

COLUMN_ARGUMENTS: dict[str, str] = {
    "as": "Alternate representation type, e.g. `as: ISO8601.self`",
    "primaryKey": "Mark (or unmark) the primary key",
    "generated": "Generated column: `.stored` or `.virtual`",
}

GENERATED_MEMBERS: dict[str, str] = {
    "stored": "Computed on write and stored",
    "virtual": "Computed on read",
}

# Regex to extract position from DeclarationParser error messages
_POSITION_RE = re.compile(r"(?:at position|\(position) (\d+)")

# Regex to find user-defined record names in source
_USER_TYPE_RE = re.compile(r"\b(?:struct|enum|class)\s+(\w+)")

_SEVERITIES = {
    Severity.ERROR: types.DiagnosticSeverity.Error,
    Severity.WARNING: types.DiagnosticSeverity.Warning,
}

# ---------------------------------------------------------------------------
# Helpers (module-level so they are easy to unit-test)
# ---------------------------------------------------------------------------


def lexpos_to_position(source: str, lexpos: int) -> types.Position:
    """Convert a byte offset into an LSP ``Position(line, character)``."""
    line = source.count("\n", 0, lexpos)
    last_nl = source.rfind("\n", 0, lexpos)
    character = lexpos if last_nl == -1 else lexpos - last_nl - 1
    return types.Position(line=line, character=character)


def span_to_range(source: str, span: Span) -> types.Range:
    return types.Range(
        start=lexpos_to_position(source, span.start),
        end=lexpos_to_position(source, span.end),
    )


def _extract_position_from_error(message: str) -> int | None:
    """Return the integer position embedded in a SyntaxError message, or None."""
    m = _POSITION_RE.search(message)
    return int(m.group(1)) if m else None


def _find_user_types(source: str) -> list[str]:
    """Return user-defined record names found in *source*."""
    return [m.group(1) for m in _USER_TYPE_RE.finditer(source)]


def _word_at_position(line_text: str, character: int) -> str:
    """Return the contiguous identifier-like word surrounding *character*."""
    if character < 0 or character >= len(line_text):
        return ""
    ch = line_text[character]
    if not (ch.isalnum() or ch == "_"):
        return ""
    # Scan left
    left = character
    while left > 0 and (line_text[left - 1].isalnum() or line_text[left - 1] == "_"):
        left -= 1
    # Scan right
    right = character
    while right < len(line_text) and (line_text[right].isalnum() or line_text[right] == "_"):
        right += 1
    return line_text[left:right]


def _end_of_document(source: str) -> types.Position:
    lines = source.split("\n")
    return types.Position(line=max(len(lines) - 1, 0), character=0)


def _to_lsp(source: str, diagnostic: Diagnostic) -> types.Diagnostic:
    if diagnostic.span is not None:
        rng = span_to_range(source, diagnostic.span)
    else:
        start = _end_of_document(source)
        rng = types.Range(start=start, end=start)
    fixes: list[dict[str, Any]] = [
        {
            "title": fix.message,
            "newText": fix.replacement,
            "start": fix.span.start,
            "end": fix.span.end,
        }
        for fix in diagnostic.fix_its
        if fix.span is not None
    ]
    related = [
        types.DiagnosticRelatedInformation(
            location=types.Location(uri="", range=span_to_range(source, note.span)),
            message=note.message,
        )
        for note in diagnostic.notes
        if note.span is not None
    ]
    return types.Diagnostic(
        range=rng,
        severity=_SEVERITIES[diagnostic.severity],
        source="stc",
        code=diagnostic.kind.value,
        message=diagnostic.message,
        related_information=related or None,
        data={"fixes": fixes} if fixes else None,
    )


def collect_diagnostics(source: str, uri: str = "") -> list[types.Diagnostic]:
    """Parse and derive every record in *source*, returning LSP diagnostics."""
    schema = Schema()
    try:
        schema.parse(source)
    except SyntaxError as exc:
        msg = str(exc)
        pos_int = _extract_position_from_error(msg)
        if pos_int is not None:
            start = lexpos_to_position(source, pos_int)
        else:
            # Fallback: end of document
            start = _end_of_document(source)
        end = types.Position(line=start.line, character=start.character + 1)
        return [
            types.Diagnostic(
                range=types.Range(start=start, end=end),
                severity=types.DiagnosticSeverity.Error,
                source="stc",
                message=msg,
            )
        ]
    except ValueError as exc:
        start = _end_of_document(source)
        return [
            types.Diagnostic(
                range=types.Range(start=start, end=start),
                severity=types.DiagnosticSeverity.Error,
                source="stc",
                message=str(exc),
            )
        ]

    diagnostics: list[types.Diagnostic] = []
    for derivation in schema.derive_all().values():
        for diagnostic in derivation.diagnostics:
            lsp_diagnostic = _to_lsp(source, diagnostic)
            for info in lsp_diagnostic.related_information or []:
                info.location.uri = uri
            diagnostics.append(lsp_diagnostic)
    return diagnostics


def code_actions_for(
    uri: str, source: str, diagnostics: list[types.Diagnostic]
) -> list[types.CodeAction]:
    """Turn the fix-its carried on *diagnostics* into quick-fix code actions."""
    actions: list[types.CodeAction] = []
    for diagnostic in diagnostics:
        data = diagnostic.data if isinstance(diagnostic.data, dict) else {}
        for fix in data.get("fixes", []):
            edit = types.TextEdit(
                range=span_to_range(source, Span(fix["start"], fix["end"])),
                new_text=fix["newText"],
            )
            actions.append(
                types.CodeAction(
                    title=fix["title"],
                    kind=types.CodeActionKind.QuickFix,
                    diagnostics=[diagnostic],
                    edit=types.WorkspaceEdit(changes={uri: [edit]}),
                )
            )
    return actions


def completion_items(source: str, prefix: str) -> list[types.CompletionItem]:
    """Completion candidates for the text of the current line up to the cursor."""
    items: list[types.CompletionItem] = []
    stripped = prefix.rstrip()

    if re.search(r"@\w*$", prefix):
        for name, desc in ANNOTATIONS.items():
            items.append(
                types.CompletionItem(
                    label=name, kind=types.CompletionItemKind.Keyword, detail=desc
                )
            )
    elif re.search(r"generated:\s*\.\w*$", prefix):
        for name, desc in GENERATED_MEMBERS.items():
            items.append(
                types.CompletionItem(
                    label=name, kind=types.CompletionItemKind.EnumMember, detail=desc
                )
            )
    elif re.search(r"@Column\([^)]*$", prefix) and stripped.endswith(("(", ",")):
        for name, desc in COLUMN_ARGUMENTS.items():
            items.append(
                types.CompletionItem(
                    label=name,
                    kind=types.CompletionItemKind.Property,
                    detail=desc,
                    insert_text=f"{name}: ",
                )
            )
    elif stripped.endswith(":") or stripped.endswith("("):
        # Type context — offer built-in types + user-defined records
        for name, desc in BUILTIN_TYPES.items():
            items.append(
                types.CompletionItem(
                    label=name,
                    kind=types.CompletionItemKind.TypeParameter,
                    detail=desc,
                )
            )
        for name in _find_user_types(source):
            items.append(
                types.CompletionItem(
                    label=name,
                    kind=types.CompletionItemKind.Class,
                    detail="User-defined record",
                )
            )
    return items


def hover_text(source: str, word: str) -> str | None:
    """Markdown hover content for *word*, or None."""
    if word in ANNOTATIONS:
        return f"**@{word}** — {ANNOTATIONS[word]}"
    if word in BUILTIN_TYPES:
        return f"**{word}** — {BUILTIN_TYPES[word]}"
    if word in KEYWORDS:
        return f"**{word}** — {KEYWORDS[word]}"
    if word in _find_user_types(source):
        schema = Schema()
        try:
            schema.parse(source)
        except (SyntaxError, ValueError):
            return f"**{word}** — User-defined record"
        if word not in schema:
            return None
        derivation = schema.derive(word)
        if derivation.result is None:
            errors = "\n".join(f"- {d.message}" for d in derivation.errors)
            return f"**{word}** — derivation failed\n\n{errors}"
        return f"```\n{describe_derivation(derivation.result)}\n```"
    return None


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

server = LanguageServer("stc-language-server", "0.1.0")


@server.feature(types.TEXT_DOCUMENT_DID_OPEN)
def did_open(params: types.DidOpenTextDocumentParams) -> None:
    _validate_document(params.text_document.uri)


@server.feature(types.TEXT_DOCUMENT_DID_CHANGE)
def did_change(params: types.DidChangeTextDocumentParams) -> None:
    _validate_document(params.text_document.uri)


def _validate_document(uri: str) -> None:
    doc = server.workspace.get_text_document(uri)
    diagnostics = collect_diagnostics(doc.source, uri)
    server.text_document_publish_diagnostics(
        types.PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics)
    )


@server.feature(
    types.TEXT_DOCUMENT_CODE_ACTION,
    types.CodeActionOptions(code_action_kinds=[types.CodeActionKind.QuickFix]),
)
def code_actions(params: types.CodeActionParams) -> list[types.CodeAction]:
    doc = server.workspace.get_text_document(params.text_document.uri)
    return code_actions_for(params.text_document.uri, doc.source, params.context.diagnostics)


@server.feature(
    types.TEXT_DOCUMENT_COMPLETION,
    types.CompletionOptions(trigger_characters=[":", "@", ".", "(", " "]),
)
def completions(params: types.CompletionParams) -> types.CompletionList:
    doc = server.workspace.get_text_document(params.text_document.uri)
    line_text = doc.lines[params.position.line] if params.position.line < len(doc.lines) else ""
    prefix = line_text[: params.position.character]
    return types.CompletionList(is_incomplete=False, items=completion_items(doc.source, prefix))


@server.feature(types.TEXT_DOCUMENT_HOVER)
def hover(params: types.HoverParams) -> types.Hover | None:
    doc = server.workspace.get_text_document(params.text_document.uri)
    if params.position.line >= len(doc.lines):
        return None
    line_text = doc.lines[params.position.line]
    word = _word_at_position(line_text, params.position.character)
    if not word:
        return None

    content = hover_text(doc.source, word)
    if content is None:
        return None
    return types.Hover(
        contents=types.MarkupContent(
            kind=types.MarkupKind.Markdown,
            value=content,
        )
    )


def main() -> None:
    server.start_io()


if __name__ == "__main__":
    main()
