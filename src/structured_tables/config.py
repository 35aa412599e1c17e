"""Options controlling schema derivation."""

from __future__ import annotations

from dataclasses import dataclass

from structured_tables.decoding import DecodePolicy


@dataclass(frozen=True)
class DerivationOptions:
    """Settings shared by every derivation performed through one Schema.

    Attributes:
        decode_policy: Whether decoding stops at the first missing required
            column or reports all of them.
        infer_id_primary_key: Treat a field named ``id`` as the primary key
            when no field claims it explicitly.
        pluralize_table_names: Pluralize the lower-camel-cased type name when
            deriving a default table name.
    """

    decode_policy: DecodePolicy = DecodePolicy.FAIL_FAST
    infer_id_primary_key: bool = True
    pluralize_table_names: bool = True


DEFAULT_OPTIONS = DerivationOptions()
