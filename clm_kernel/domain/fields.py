"""
Typed contract field values (``clm_kernel.domain.fields``).

Responsibility
--------------
Replaces loosely typed ``field_data`` JSON with a small tagged union so the
diff engine can compare the fields it must understand structurally (dates,
money, free text) while anything else is carried, untouched, in an explicit
extension bag.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Every value has exactly one ``FieldKind``.
* MONEY values are ``Decimal`` (never float) and compare numerically.
* EXTENSION values compare by canonical JSON, so ``1`` and ``True`` differ.
* ``None`` is never wrapped: an absent field is simply missing from a
  snapshot.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping

from clm_kernel.utils.hashing import canonicalize_json


class FieldKind(str, Enum):
    """Categories of tracked field the diff engine understands."""

    TEXT = "text"
    DATE = "date"
    MONEY = "money"
    EXTENSION = "extension"


@dataclass(frozen=True, eq=False)
class FieldValue:
    """A single tracked field value tagged with its kind."""

    kind: FieldKind
    value: Any

    @classmethod
    def text(cls, value: str) -> FieldValue:
        return cls(FieldKind.TEXT, str(value))

    @classmethod
    def date(cls, value: date | datetime | str) -> FieldValue:
        if isinstance(value, datetime):
            value = value.date()
        elif isinstance(value, str):
            value = date.fromisoformat(value[:10])
        return cls(FieldKind.DATE, value)

    @classmethod
    def money(cls, value: Decimal | int | float | str) -> FieldValue:
        try:
            amount = value if isinstance(value, Decimal) else Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"Not a monetary amount: {value!r}") from exc
        return cls(FieldKind.MONEY, amount)

    @classmethod
    def extension(cls, value: Any) -> FieldValue:
        # Normalise through canonical JSON so stored and loaded values match
        return cls(FieldKind.EXTENSION, json.loads(canonicalize_json(value)))

    def _identity(self) -> tuple[str, str]:
        if self.kind == FieldKind.MONEY:
            return (self.kind.value, str(self.value.normalize()))
        if self.kind == FieldKind.DATE:
            return (self.kind.value, self.value.isoformat())
        if self.kind == FieldKind.TEXT:
            return (self.kind.value, self.value)
        return (self.kind.value, canonicalize_json(self.value))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldValue):
            return NotImplemented
        return self._identity() == other._identity()

    def __hash__(self) -> int:
        return hash(self._identity())

    def to_json(self) -> dict[str, Any]:
        """Serialise to a JSON-compatible ``{"kind", "value"}`` dict."""
        if self.kind == FieldKind.MONEY:
            return {"kind": self.kind.value, "value": str(self.value)}
        if self.kind == FieldKind.DATE:
            return {"kind": self.kind.value, "value": self.value.isoformat()}
        return {"kind": self.kind.value, "value": self.value}

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> FieldValue:
        kind = FieldKind(data["kind"])
        raw = data["value"]
        if kind == FieldKind.MONEY:
            return cls.money(raw)
        if kind == FieldKind.DATE:
            return cls.date(raw)
        if kind == FieldKind.TEXT:
            return cls.text(raw)
        return cls.extension(raw)

    def to_plain(self) -> Any:
        """The underlying Python value (Decimal, date, str or JSON value)."""
        return self.value


def infer_kind(raw: Any) -> FieldKind:
    """Classify a raw value whose field name has no declared kind."""
    if isinstance(raw, str):
        return FieldKind.TEXT
    if isinstance(raw, (date, datetime)):
        return FieldKind.DATE
    if isinstance(raw, Decimal):
        return FieldKind.MONEY
    return FieldKind.EXTENSION


def coerce_field_value(
    raw: Any,
    kind: FieldKind | None = None,
) -> FieldValue | None:
    """Wrap ``raw`` as a FieldValue of ``kind`` (inferred when None).

    Returns None for ``None`` so absent values never appear in snapshots.

    Raises:
        ValueError: if ``raw`` cannot be represented as ``kind``.
    """
    if raw is None:
        return None
    if isinstance(raw, FieldValue):
        return raw
    kind = kind or infer_kind(raw)
    if kind == FieldKind.TEXT:
        return FieldValue.text(raw)
    if kind == FieldKind.DATE:
        return FieldValue.date(raw)
    if kind == FieldKind.MONEY:
        return FieldValue.money(raw)
    return FieldValue.extension(raw)
