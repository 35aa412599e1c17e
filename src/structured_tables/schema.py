"""Schema registry and memoized derivation of record declarations."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence, Union

from structured_tables.catalog import build_catalog
from structured_tables.config import DEFAULT_OPTIONS, DerivationOptions
from structured_tables.decoding import DecodePlan, DecodePolicy, build_decode_plan
from structured_tables.diagnostics import Derivation, DiagnosticBag, DiagnosticKind, Note
from structured_tables.draft import Draft, synthesize_draft
from structured_tables.parsing import DeclarationParser
from structured_tables.selection import (
    Projection,
    Selection,
    VariantSelection,
    build_selection,
    build_variant_selection,
    table_columns,
)
from structured_tables.types import ColumnCatalog, FieldSpec, RecordDescriptor
from structured_tables.variants import VariantCatalog, build_variant_catalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableDerivation:
    """Every artifact derived for a struct record."""

    descriptor: RecordDescriptor
    catalog: ColumnCatalog
    decode_plan: DecodePlan
    selection: Selection
    draft: Draft | None = None
    decode_policy: DecodePolicy = DecodePolicy.FAIL_FAST

    @property
    def type_name(self) -> str:
        return self.catalog.type_name

    @property
    def table_name(self) -> str | None:
        return self.catalog.table_name

    @property
    def schema_name(self) -> str | None:
        return self.catalog.schema_name

    @property
    def width(self) -> int:
        return self.catalog.width

    def columns(self, alias: str | None = None) -> Projection:
        return table_columns(self.catalog, alias)

    def decode(
        self,
        row: Sequence[Any],
        *,
        converters: Mapping[str, Callable[[Any], Any]] | None = None,
        policy: DecodePolicy | None = None,
    ) -> Any:
        return self.decode_plan.decode_row(
            row, converters=converters, policy=policy or self.decode_policy
        )


@dataclass(frozen=True)
class VariantDerivation:
    """Every artifact derived for an enum record."""

    descriptor: RecordDescriptor
    catalog: VariantCatalog
    selection: VariantSelection
    decode_policy: DecodePolicy = DecodePolicy.FAIL_FAST

    @property
    def type_name(self) -> str:
        return self.catalog.type_name

    @property
    def table_name(self) -> str | None:
        return self.catalog.table_name

    @property
    def schema_name(self) -> str | None:
        return self.catalog.schema_name

    @property
    def width(self) -> int:
        return self.catalog.width

    @property
    def draft(self) -> None:
        return None

    def columns(self, alias: str | None = None) -> Projection:
        return table_columns(self.catalog, alias)

    def decode(
        self,
        row: Sequence[Any],
        *,
        converters: Mapping[str, Callable[[Any], Any]] | None = None,
        policy: DecodePolicy | None = None,
    ) -> Any:
        return self.catalog.decode_row(
            row, converters=converters, policy=policy or self.decode_policy
        )


AnyDerivation = Union[TableDerivation, VariantDerivation]


class Schema:
    """Registry of record declarations with a per-type derivation cache.

    Types are identified by their Python class when reflected from a
    dataclass and by name otherwise. Each type is derived at most once per
    Schema; concurrent callers converge on the first stored result.
    """

    def __init__(self, options: DerivationOptions = DEFAULT_OPTIONS) -> None:
        self.options = options
        self._descriptors: dict[Any, RecordDescriptor] = {}
        self._names: dict[str, Any] = {}
        self._cache: dict[Any, Derivation[AnyDerivation]] = {}
        self._lock = threading.Lock()
        self._parser: DeclarationParser | None = None

    # -- Registration --------------------------------------------------------

    def parse(self, source: str) -> list[RecordDescriptor]:
        """Parse DSL source and register every declared record.

        Raises:
            SyntaxError: If the source is malformed.
        """
        if self._parser is None:
            self._parser = DeclarationParser()
        records = self._parser.parse(source)
        for record in records:
            self.register(record)
        return records

    def register(self, descriptor: RecordDescriptor) -> RecordDescriptor:
        """Add a record declaration.

        Raises:
            ValueError: If a different declaration is already registered
                under the same name-keyed identity.
        """
        key = descriptor.key
        with self._lock:
            existing = self._descriptors.get(key)
            if existing is not None and existing != descriptor:
                raise ValueError(f"Type '{descriptor.name}' is already registered")
            self._descriptors[key] = descriptor
            previous = self._names.get(descriptor.name)
            if previous is not None and previous != key:
                logger.debug("Name %r now refers to %r", descriptor.name, key)
            self._names[descriptor.name] = key
        logger.debug("Registered %s %r", descriptor.kind, descriptor.name)
        return descriptor

    def _key(self, type_or_name: Any) -> Any:
        if type_or_name in self._descriptors:
            return type_or_name
        if isinstance(type_or_name, str):
            return self._names.get(type_or_name)
        return None

    def get_descriptor(self, type_or_name: Any) -> RecordDescriptor | None:
        key = self._key(type_or_name)
        return self._descriptors.get(key) if key is not None else None

    def list_types(self) -> list[str]:
        """Names of every registered record, in registration order."""
        return [d.name for d in self._descriptors.values()]

    def __contains__(self, type_or_name: Any) -> bool:
        return self._key(type_or_name) is not None

    def __len__(self) -> int:
        return len(self._descriptors)

    # -- Derivation ----------------------------------------------------------

    def derive(self, type_or_name: Any) -> Derivation[AnyDerivation]:
        """Derive (or fetch the cached derivation of) a registered record.

        Raises:
            KeyError: If the type is not registered.
        """
        descriptor = self.get_descriptor(type_or_name)
        if descriptor is None:
            raise KeyError(f"Unknown type: {type_or_name!r}")
        return self._derive_cached(descriptor, ())

    def derive_all(self) -> dict[str, Derivation[AnyDerivation]]:
        return {d.name: self._derive_cached(d, ()) for d in list(self._descriptors.values())}

    def is_cached(self, type_or_name: Any) -> bool:
        key = self._key(type_or_name)
        return key is not None and key in self._cache

    def _derive_cached(
        self, descriptor: RecordDescriptor, stack: tuple[Any, ...]
    ) -> Derivation[AnyDerivation]:
        key = descriptor.key
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for %r", descriptor.name)
            return cached

        derivation = self._derive(descriptor, stack + (key,))
        with self._lock:
            # First writer wins; a concurrent loser discards its own result
            stored = self._cache.setdefault(key, derivation)
        if stored is derivation:
            logger.debug(
                "Cached derivation of %r (%d diagnostics)",
                descriptor.name,
                len(derivation.diagnostics),
            )
        return stored

    def _derive(
        self, descriptor: RecordDescriptor, stack: tuple[Any, ...]
    ) -> Derivation[AnyDerivation]:
        bag = DiagnosticBag(descriptor.name)
        if not (descriptor.is_table or descriptor.is_selection):
            bag.error(
                DiagnosticKind.STRUCTURAL,
                f"'{descriptor.name}' must be annotated with '@Table' or '@Selection'",
                span=descriptor.span,
            )
            return Derivation.from_bag(descriptor.name, None, bag)

        resolve_group = self._group_resolver(descriptor, stack)
        result: AnyDerivation | None = None
        if descriptor.is_enum:
            variant = build_variant_catalog(
                descriptor,
                bag,
                resolve_group=resolve_group,
                is_group_type=self._is_group_type,
                options=self.options,
            )
            if variant is not None and not bag.has_errors:
                result = VariantDerivation(
                    descriptor=descriptor,
                    catalog=variant,
                    selection=build_variant_selection(variant),
                    decode_policy=self.options.decode_policy,
                )
        else:
            build = build_catalog(
                descriptor, bag, resolve_group=resolve_group, options=self.options
            )
            if build is not None and not bag.has_errors:
                draft = None
                if descriptor.is_table and build.primary_key is not None:
                    name_spans = {
                        f.name: f.name_span for f in descriptor.fields if f.name_span is not None
                    }
                    draft = synthesize_draft(build, bag, name_spans=name_spans)
                result = TableDerivation(
                    descriptor=descriptor,
                    catalog=build.catalog,
                    decode_plan=build_decode_plan(build.catalog),
                    selection=build_selection(build.catalog),
                    draft=draft,
                    decode_policy=self.options.decode_policy,
                )

        derivation: Derivation[AnyDerivation] = Derivation.from_bag(descriptor.name, result, bag)
        if derivation.ok:
            logger.debug("Derived %r", descriptor.name)
        else:
            logger.debug(
                "Derivation of %r failed with %d errors", descriptor.name, len(derivation.errors)
            )
        return derivation

    def _is_group_type(self, name: str) -> bool:
        return self.get_descriptor(name) is not None

    def _group_resolver(self, owner: RecordDescriptor, stack: tuple[Any, ...]):
        # Reflected groups are looked up by class, DSL groups by name
        group_types = {f.name: f.group_type for f in owner.fields if f.group_type is not None}

        def resolve(
            name: str, bag: DiagnosticBag, spec: FieldSpec
        ) -> ColumnCatalog | VariantCatalog | None:
            descriptor = self.get_descriptor(group_types.get(spec.name, name))
            if descriptor is None:
                bag.error(
                    DiagnosticKind.STRUCTURAL,
                    f"'{name}' is not a declared record type and cannot be used as a column group",
                    span=spec.span,
                    field_name=spec.name,
                )
                return None
            if descriptor.key in stack:
                bag.error(
                    DiagnosticKind.STRUCTURAL,
                    f"Recursive column group '{spec.name}' is not supported: '{name}' "
                    f"contains '{owner.name}'",
                    span=spec.span,
                    field_name=spec.name,
                )
                return None
            nested = self._derive_cached(descriptor, stack)
            if nested.result is None:
                bag.error(
                    DiagnosticKind.STRUCTURAL,
                    f"Column group '{spec.name}' has invalid type '{name}'",
                    span=spec.span,
                    field_name=spec.name,
                    notes=tuple(Note(str(d), d.span) for d in nested.errors),
                )
                return None
            return nested.result.catalog

        return resolve
