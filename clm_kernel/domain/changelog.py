"""
Changelog domain types (``clm_kernel.domain.changelog``).

Responsibility
--------------
Pure value objects produced by the diff engine: field-level changes, the
single content change with line statistics, line edit scripts, unified
diff hunks, and the assembled ``ChangeLog`` / ``VersionComparison``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``ChangeLog.field_changes`` is sorted by field name.
* A ChangeLog holds at most one ``ContentChange`` and it is always last in
  ``ChangeLog.changes``.
* ``DiffStats`` counts lines, never bytes or characters.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from clm_kernel.domain.fields import FieldValue


class ChangeType(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    CONTENT_MODIFIED = "content_modified"


@dataclass(frozen=True)
class FieldChange:
    """A single tracked field that differs between two snapshots."""

    field: str
    label: str
    change_type: ChangeType
    old_value: FieldValue | None
    new_value: FieldValue | None

    def to_json(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "label": self.label,
            "change_type": self.change_type.value,
            "old_value": self.old_value.to_json() if self.old_value else None,
            "new_value": self.new_value.to_json() if self.new_value else None,
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> FieldChange:
        old = data.get("old_value")
        new = data.get("new_value")
        return cls(
            field=data["field"],
            label=data["label"],
            change_type=ChangeType(data["change_type"]),
            old_value=FieldValue.from_json(old) if old else None,
            new_value=FieldValue.from_json(new) if new else None,
        )


@dataclass(frozen=True)
class DiffStats:
    additions: int = 0
    deletions: int = 0

    @property
    def is_empty(self) -> bool:
        return self.additions == 0 and self.deletions == 0


@dataclass(frozen=True)
class ContentChange:
    """Line-level change to the contract body."""

    stats: DiffStats
    change_type: ChangeType = ChangeType.CONTENT_MODIFIED

    def to_json(self) -> dict[str, Any]:
        return {
            "change_type": self.change_type.value,
            "diff_stats": {
                "additions": self.stats.additions,
                "deletions": self.stats.deletions,
            },
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> ContentChange:
        stats = data.get("diff_stats") or {}
        return cls(
            stats=DiffStats(
                additions=int(stats.get("additions", 0)),
                deletions=int(stats.get("deletions", 0)),
            ),
        )


@dataclass(frozen=True)
class ChangeLog:
    """Structured difference between two consecutive versions."""

    from_sequence: int | None
    to_sequence: int
    field_changes: tuple[FieldChange, ...]
    content_change: ContentChange | None
    summary: str

    @property
    def changes(self) -> tuple[FieldChange | ContentChange, ...]:
        if self.content_change is None:
            return self.field_changes
        return self.field_changes + (self.content_change,)

    @property
    def change_count(self) -> int:
        return len(self.changes)


# =========================================================================
# Line-level diff
# =========================================================================


class LineOp(str, Enum):
    EQUAL = "equal"
    INSERT = "insert"
    DELETE = "delete"


@dataclass(frozen=True)
class LineEdit:
    """One step of an edit script turning old lines into new lines."""

    op: LineOp
    text: str

    def to_unified(self) -> str:
        prefix = {LineOp.EQUAL: " ", LineOp.INSERT: "+", LineOp.DELETE: "-"}[self.op]
        return f"{prefix}{self.text}"


@dataclass(frozen=True)
class DiffHunk:
    """Contiguous edits plus surrounding context, as in unified diff output.

    ``old_start``/``new_start`` are 1-based line numbers; a count of zero
    means the hunk is empty on that side.
    """

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: tuple[LineEdit, ...]

    @property
    def header(self) -> str:
        return (
            f"@@ -{self.old_start},{self.old_count} "
            f"+{self.new_start},{self.new_count} @@"
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "header": self.header,
            "old_start": self.old_start,
            "old_count": self.old_count,
            "new_start": self.new_start,
            "new_count": self.new_count,
            "lines": [line.to_unified() for line in self.lines],
        }


@dataclass(frozen=True)
class VersionComparison:
    """Result of comparing any two versions of one contract."""

    from_sequence: int
    to_sequence: int
    field_changes: tuple[FieldChange, ...]
    content_change: ContentChange | None
    hunks: tuple[DiffHunk, ...]
    summary: str
