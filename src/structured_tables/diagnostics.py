"""Diagnostics collected while deriving schemas from declarations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Iterator, TypeVar

from structured_tables.types import Span

T = TypeVar("T")


class DiagnosticKind(Enum):
    """Category of a derivation problem."""

    STRUCTURAL = "structural"
    ATTRIBUTE_CONFLICT = "attribute-conflict"
    VALUE = "value"
    TYPE_INFERENCE = "type-inference"


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Note:
    """Secondary location attached to a diagnostic."""

    message: str
    span: Span | None = None


@dataclass(frozen=True)
class FixIt:
    """A suggested textual edit: replace ``span`` with ``replacement``."""

    message: str
    replacement: str
    span: Span | None = None


@dataclass(frozen=True)
class Diagnostic:
    """A single problem found in a declaration."""

    kind: DiagnosticKind
    message: str
    severity: Severity = Severity.ERROR
    span: Span | None = None
    type_name: str | None = None
    field_name: str | None = None
    notes: tuple[Note, ...] = ()
    fix_its: tuple[FixIt, ...] = ()

    @property
    def is_fatal(self) -> bool:
        return self.severity is Severity.ERROR

    def __str__(self) -> str:
        subject = self.type_name or ""
        if self.field_name:
            subject = f"{subject}.{self.field_name}" if subject else self.field_name
        prefix = f"{subject}: " if subject else ""
        return f"{prefix}{self.severity.value}: {self.message}"


class DiagnosticBag:
    """Accumulator passed through a single derivation pass."""

    def __init__(self, type_name: str | None = None) -> None:
        self.type_name = type_name
        self._diagnostics: list[Diagnostic] = []

    def error(
        self,
        kind: DiagnosticKind,
        message: str,
        *,
        span: Span | None = None,
        field_name: str | None = None,
        notes: tuple[Note, ...] = (),
        fix_its: tuple[FixIt, ...] = (),
    ) -> Diagnostic:
        return self._add(kind, message, Severity.ERROR, span, field_name, notes, fix_its)

    def warning(
        self,
        kind: DiagnosticKind,
        message: str,
        *,
        span: Span | None = None,
        field_name: str | None = None,
        notes: tuple[Note, ...] = (),
        fix_its: tuple[FixIt, ...] = (),
    ) -> Diagnostic:
        return self._add(kind, message, Severity.WARNING, span, field_name, notes, fix_its)

    def _add(
        self,
        kind: DiagnosticKind,
        message: str,
        severity: Severity,
        span: Span | None,
        field_name: str | None,
        notes: tuple[Note, ...],
        fix_its: tuple[FixIt, ...],
    ) -> Diagnostic:
        diagnostic = Diagnostic(
            kind=kind,
            message=message,
            severity=severity,
            span=span,
            type_name=self.type_name,
            field_name=field_name,
            notes=notes,
            fix_its=fix_its,
        )
        self._diagnostics.append(diagnostic)
        return diagnostic

    def extend(self, diagnostics: list[Diagnostic] | tuple[Diagnostic, ...]) -> None:
        self._diagnostics.extend(diagnostics)

    @property
    def has_errors(self) -> bool:
        return any(d.is_fatal for d in self._diagnostics)

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self._diagnostics if d.is_fatal]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self._diagnostics if not d.is_fatal]

    def to_tuple(self) -> tuple[Diagnostic, ...]:
        return tuple(self._diagnostics)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self._diagnostics)

    def __len__(self) -> int:
        return len(self._diagnostics)


class DerivationError(Exception):
    """Raised when unwrapping a derivation that failed."""

    def __init__(self, type_name: str, diagnostics: tuple[Diagnostic, ...]) -> None:
        self.type_name = type_name
        self.diagnostics = diagnostics
        lines = [f"Cannot derive schema for '{type_name}':"]
        lines.extend(f"  {d}" for d in diagnostics if d.is_fatal)
        super().__init__("\n".join(lines))


@dataclass(frozen=True)
class Derivation(Generic[T]):
    """Outcome of deriving one record type.

    ``result`` is None whenever any fatal diagnostic was produced; no partial
    artifacts are ever exposed.
    """

    type_name: str
    result: T | None
    diagnostics: tuple[Diagnostic, ...] = field(default=())

    @property
    def ok(self) -> bool:
        return self.result is not None

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.is_fatal]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if not d.is_fatal]

    def unwrap(self) -> T:
        """Return the result or raise DerivationError with every diagnostic."""
        if self.result is None:
            raise DerivationError(self.type_name, self.diagnostics)
        return self.result

    @classmethod
    def from_bag(cls, type_name: str, result: T | None, bag: DiagnosticBag) -> Derivation[T]:
        if bag.has_errors:
            return cls(type_name=type_name, result=None, diagnostics=bag.to_tuple())
        return cls(type_name=type_name, result=result, diagnostics=bag.to_tuple())
