"""
Contract domain types (``clm_kernel.domain.contract``).

Responsibility
--------------
Pure value objects for contracts and their version snapshots: the status
lifecycle, tracked-field definitions, the frozen ``Contract`` and
``ContractVersion`` DTOs, and ``Snapshot`` (the unit the diff engine
compares).

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* Contracts are created in ``DRAFT`` and edited only while ``DRAFT``.
* ``REJECTED``, ``EXPIRED`` and ``TERMINATED`` are terminal.
* A snapshot never contains a field whose value is None.
* Snapshot field names are unique: a ``field_data`` key that collides with
  a top-level tracked field is namespaced as ``fieldData.<key>``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

from clm_kernel.domain.fields import FieldKind, FieldValue, coerce_field_value
from clm_kernel.utils.hashing import hash_snapshot


class ContractStatus(str, Enum):
    """Contract lifecycle states."""

    DRAFT = "DRAFT"
    PENDING_LEGAL = "PENDING_LEGAL"
    PENDING_FINANCE = "PENDING_FINANCE"
    APPROVED = "APPROVED"
    SENT_TO_COUNTERPARTY = "SENT_TO_COUNTERPARTY"
    COUNTERSIGNED = "COUNTERSIGNED"
    ACTIVE = "ACTIVE"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    TERMINATED = "TERMINATED"


TERMINAL_CONTRACT_STATUSES: frozenset[ContractStatus] = frozenset({
    ContractStatus.REJECTED,
    ContractStatus.EXPIRED,
    ContractStatus.TERMINATED,
})

EDITABLE_CONTRACT_STATUSES: frozenset[ContractStatus] = frozenset({
    ContractStatus.DRAFT,
})


# =========================================================================
# Tracked fields
# =========================================================================


FIELD_DATA_PREFIX = "fieldData."


@dataclass(frozen=True)
class TrackedField:
    """A top-level contract attribute that participates in versioning."""

    name: str
    label: str
    kind: FieldKind


DEFAULT_TRACKED_FIELDS: tuple[TrackedField, ...] = (
    TrackedField("title", "Contract Title", FieldKind.TEXT),
    TrackedField("counterparty_name", "Counterparty Name", FieldKind.TEXT),
    TrackedField("counterparty_email", "Counterparty Email", FieldKind.TEXT),
    TrackedField("start_date", "Start Date", FieldKind.DATE),
    TrackedField("end_date", "End Date", FieldKind.DATE),
    TrackedField("amount", "Contract Value", FieldKind.MONEY),
    TrackedField("description", "Description", FieldKind.TEXT),
)


def humanize_field_name(name: str) -> str:
    """``payment_terms`` / ``paymentTerms`` -> ``Payment Terms``."""
    if name.startswith(FIELD_DATA_PREFIX):
        name = name[len(FIELD_DATA_PREFIX):]
    words: list[str] = []
    current = ""
    for ch in name:
        if ch in "_- .":
            if current:
                words.append(current)
            current = ""
        elif ch.isupper() and current and not current[-1].isupper():
            words.append(current)
            current = ch
        else:
            current += ch
    if current:
        words.append(current)
    return " ".join(w[:1].upper() + w[1:] for w in words) or name


# =========================================================================
# Snapshot
# =========================================================================


@dataclass(frozen=True)
class Snapshot:
    """The versioned state of a contract: body plus tracked field values.

    ``fields`` is exposed as a read-only mapping; absent fields are simply
    missing (never mapped to None).
    """

    body: str
    fields: Mapping[str, FieldValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.body is None:
            object.__setattr__(self, "body", "")
        cleaned = {k: v for k, v in dict(self.fields).items() if v is not None}
        object.__setattr__(self, "fields", MappingProxyType(cleaned))

    def fields_json(self) -> dict[str, dict[str, Any]]:
        return {name: value.to_json() for name, value in sorted(self.fields.items())}

    def compute_hash(self) -> str:
        return hash_snapshot(self.body, self.fields_json())

    @classmethod
    def from_json(cls, body: str, fields: Mapping[str, Mapping[str, Any]]) -> Snapshot:
        return cls(
            body=body or "",
            fields={name: FieldValue.from_json(data) for name, data in fields.items()},
        )

    def same_as(self, other: Snapshot) -> bool:
        """True when body (exact string) and every field are equal."""
        return self.body == other.body and dict(self.fields) == dict(other.fields)


def build_snapshot(
    body: str | None,
    values: Mapping[str, Any],
    field_data: Mapping[str, Any] | None = None,
    tracked_fields: tuple[TrackedField, ...] = DEFAULT_TRACKED_FIELDS,
) -> Snapshot:
    """Assemble a Snapshot from raw contract attributes.

    Args:
        body: The contract body (annexure data); None is treated as "".
        values: Top-level attribute values keyed by tracked field name.
            Keys that are not tracked are ignored.
        field_data: Free-form extra fields; each key becomes a snapshot
            field with an inferred kind, under its own name.  Only a key
            whose tracked column of the same name is also set in this
            snapshot is stored as ``fieldData.<key>``.
        tracked_fields: Tracked top-level field definitions.

    Raises:
        ValueError: if a value cannot be represented as its declared kind.
    """
    fields: dict[str, FieldValue] = {}

    for tf in tracked_fields:
        value = coerce_field_value(values.get(tf.name), tf.kind)
        if value is not None:
            fields[tf.name] = value

    for key, raw in (field_data or {}).items():
        value = coerce_field_value(raw)
        if value is None:
            continue
        name = f"{FIELD_DATA_PREFIX}{key}" if key in fields else key
        fields[name] = value

    return Snapshot(body=body or "", fields=fields)


# =========================================================================
# DTOs
# =========================================================================


@dataclass(frozen=True)
class Contract:
    """Immutable view of a contract row."""

    id: UUID
    organization_id: UUID
    reference: str
    title: str
    status: ContractStatus
    counterparty_name: str | None = None
    counterparty_email: str | None = None
    amount: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None
    description: str | None = None
    field_data: Mapping[str, Any] = field(default_factory=dict)
    annexure_data: str = ""
    created_by_user_id: UUID | None = None
    created_at: datetime | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    sent_at: datetime | None = None
    signed_at: datetime | None = None
    activated_at: datetime | None = None
    closed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_CONTRACT_STATUSES

    @property
    def is_editable(self) -> bool:
        return self.status in EDITABLE_CONTRACT_STATUSES


@dataclass(frozen=True)
class ContractVersion:
    """Immutable, hash-verified version of a contract."""

    id: UUID
    contract_id: UUID
    sequence: int
    snapshot: Snapshot
    snapshot_hash: str
    created_by_user_id: UUID
    created_at: datetime
