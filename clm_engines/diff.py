"""
clm_engines.diff -- Pure snapshot diffing and changelog construction.

Responsibility:
    Turn two contract snapshots into a structured ``ChangeLog``: sorted
    field-level changes plus at most one line-level content change.  Also
    groups line edits into unified-diff hunks for version comparison and
    writes the human-readable summary.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import clm_kernel/domain/ types.

Invariants enforced:
    - Field changes are sorted by field name; equal fields are omitted.
    - The content change, when present, is appended last.
    - Content statistics count lines: ``\\r\\n`` is normalised to ``\\n``,
      an empty body has zero lines, and a whitespace-only edit counts as
      one deletion plus one addition.
    - ``apply_line_diff(old, myers_diff(old, new)) == new``.
    - Deterministic: the same inputs always produce the same ChangeLog.
"""

from __future__ import annotations

import re
from typing import Mapping, Sequence

from clm_kernel.domain.changelog import (
    ChangeLog,
    ChangeType,
    ContentChange,
    DiffHunk,
    DiffStats,
    FieldChange,
    LineEdit,
    LineOp,
    VersionComparison,
)
from clm_kernel.domain.contract import (
    DEFAULT_TRACKED_FIELDS,
    Snapshot,
    humanize_field_name,
)
from clm_kernel.domain.fields import FieldValue

INITIAL_SUMMARY = "Initial version created"
NO_CHANGE_SUMMARY = "No changes made"
CONTENT_ONLY_SUMMARY = "Content updated"

DEFAULT_LABELS: dict[str, str] = {tf.name: tf.label for tf in DEFAULT_TRACKED_FIELDS}

_BLOCK_TAG = re.compile(
    r"(</?(?:p|div|h[1-6]|li|ul|ol|table|thead|tbody|tr|td|th|blockquote|"
    r"section|article|header|footer|pre|br|hr)\b[^>]*>)",
    re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# Lines
# ---------------------------------------------------------------------------


def split_lines(body: str | None, split_html_blocks: bool = False) -> list[str]:
    """Split a body into lines.

    With ``split_html_blocks`` every block-level tag is moved onto its own
    line and blank lines are dropped, so edits inside one paragraph of
    single-line HTML do not count as a whole-document change.
    """
    if not body:
        return []
    text = body.replace("\r\n", "\n")
    if split_html_blocks:
        text = _BLOCK_TAG.sub(r"\n\1\n", text)
        return [line for line in text.split("\n") if line.strip()]
    return text.split("\n")


def myers_diff(old: Sequence[str], new: Sequence[str]) -> list[LineEdit]:
    """Shortest edit script from ``old`` to ``new`` (Myers, O(ND) time).

    Lines that occur on only one side can never match, so the search runs
    over the shared lines alone and the rest are re-inserted as plain
    deletions and insertions.  The search itself is the linear-space
    variant: it bisects on the middle snake of each sub-problem instead of
    keeping one frontier per edit distance, so memory stays O(N + M).
    """
    shared = set(old) & set(new)
    old_idx = [i for i, line in enumerate(old) if line in shared]
    new_idx = [j for j, line in enumerate(new) if line in shared]

    matches: list[tuple[int, int]] = []
    _match_lines(
        [old[i] for i in old_idx], 0, len(old_idx),
        [new[j] for j in new_idx], 0, len(new_idx),
        matches,
    )

    edits: list[LineEdit] = []
    i = j = 0
    for fi, fj in matches:
        mi, mj = old_idx[fi], new_idx[fj]
        edits.extend(LineEdit(LineOp.DELETE, line) for line in old[i:mi])
        edits.extend(LineEdit(LineOp.INSERT, line) for line in new[j:mj])
        edits.append(LineEdit(LineOp.EQUAL, old[mi]))
        i, j = mi + 1, mj + 1
    edits.extend(LineEdit(LineOp.DELETE, line) for line in old[i:])
    edits.extend(LineEdit(LineOp.INSERT, line) for line in new[j:])
    return edits


def _match_lines(
    a: Sequence[str], a_lo: int, a_hi: int,
    b: Sequence[str], b_lo: int, b_hi: int,
    out: list[tuple[int, int]],
) -> None:
    """Append the matched ``(i, j)`` pairs of a longest common subsequence."""
    while a_lo < a_hi and b_lo < b_hi and a[a_lo] == b[b_lo]:
        out.append((a_lo, b_lo))
        a_lo += 1
        b_lo += 1
    suffix = 0
    while a_lo < a_hi - suffix and b_lo < b_hi - suffix and (
        a[a_hi - 1 - suffix] == b[b_hi - 1 - suffix]
    ):
        suffix += 1
    a_hi -= suffix
    b_hi -= suffix

    if a_lo < a_hi and b_lo < b_hi:
        x, y, u, v = _middle_snake(a, a_lo, a_hi, b, b_lo, b_hi)
        _match_lines(a, a_lo, x, b, b_lo, y, out)
        out.extend((x + t, y + t) for t in range(u - x))
        _match_lines(a, u, a_hi, b, v, b_hi, out)

    out.extend((a_hi + t, b_hi + t) for t in range(suffix))


def _middle_snake(
    a: Sequence[str], a_lo: int, a_hi: int,
    b: Sequence[str], b_lo: int, b_hi: int,
) -> tuple[int, int, int, int]:
    """Start and end of the snake in the middle of a shortest edit path.

    Runs the greedy search forwards from the top-left corner and backwards
    from the bottom-right one, one edit distance at a time, until the two
    frontiers overlap on a diagonal.  Returns absolute ``(x, y, u, v)``.
    """
    n, m = a_hi - a_lo, b_hi - b_lo
    delta = n - m
    odd = delta % 2 == 1
    max_d = (n + m + 1) // 2
    offset = max_d + 1
    forward = [0] * (2 * max_d + 3)
    # Reverse frontier, measured in lines consumed from the end
    backward = [0] * (2 * max_d + 3)

    for d in range(max_d + 1):
        for k in range(-d, d + 1, 2):
            if k == -d or (k != d and forward[offset + k - 1] < forward[offset + k + 1]):
                x = forward[offset + k + 1]
            else:
                x = forward[offset + k - 1] + 1
            y = x - k
            x0, y0 = x, y
            while x < n and y < m and a[a_lo + x] == b[b_lo + y]:
                x += 1
                y += 1
            forward[offset + k] = x
            c = delta - k
            if odd and -(d - 1) <= c <= d - 1 and x + backward[offset + c] >= n:
                return a_lo + x0, b_lo + y0, a_lo + x, b_lo + y

        for c in range(-d, d + 1, 2):
            if c == -d or (c != d and backward[offset + c - 1] < backward[offset + c + 1]):
                x = backward[offset + c + 1]
            else:
                x = backward[offset + c - 1] + 1
            y = x - c
            x0, y0 = x, y
            while x < n and y < m and a[a_hi - 1 - x] == b[b_hi - 1 - y]:
                x += 1
                y += 1
            backward[offset + c] = x
            k = delta - c
            if not odd and -d <= k <= d and x + forward[offset + k] >= n:
                return a_hi - x, b_hi - y, a_hi - x0, b_hi - y0

    raise AssertionError("frontiers never met")


def apply_line_diff(old_lines: Sequence[str], ops: Sequence[LineEdit]) -> list[str]:
    """Replay an edit script against ``old_lines``.

    Raises:
        ValueError: if an EQUAL or DELETE step does not match ``old_lines``.
    """
    result: list[str] = []
    i = 0
    for edit in ops:
        if edit.op == LineOp.INSERT:
            result.append(edit.text)
            continue
        if i >= len(old_lines) or old_lines[i] != edit.text:
            raise ValueError(f"Edit script does not match line {i + 1}")
        if edit.op == LineOp.EQUAL:
            result.append(edit.text)
        i += 1
    if i != len(old_lines):
        raise ValueError("Edit script does not consume every old line")
    return result


def line_stats(ops: Sequence[LineEdit]) -> DiffStats:
    return DiffStats(
        additions=sum(1 for e in ops if e.op == LineOp.INSERT),
        deletions=sum(1 for e in ops if e.op == LineOp.DELETE),
    )


def build_hunks(ops: Sequence[LineEdit], context: int = 3) -> tuple[DiffHunk, ...]:
    """Group an edit script into unified-diff hunks with ``context`` lines."""
    if context < 0:
        raise ValueError("context must be >= 0")
    changes = [i for i, e in enumerate(ops) if e.op != LineOp.EQUAL]
    if not changes:
        return ()

    groups: list[tuple[int, int]] = []
    start = end = changes[0]
    for i in changes[1:]:
        if i - end - 1 <= 2 * context:
            end = i
        else:
            groups.append((start, end))
            start = end = i
    groups.append((start, end))

    # Lines consumed before each op, on each side
    positions: list[tuple[int, int]] = []
    old_pos = new_pos = 0
    for e in ops:
        positions.append((old_pos, new_pos))
        if e.op != LineOp.INSERT:
            old_pos += 1
        if e.op != LineOp.DELETE:
            new_pos += 1

    hunks = []
    for start, end in groups:
        lo = max(0, start - context)
        hi = min(len(ops), end + context + 1)
        lines = tuple(ops[lo:hi])
        old_count = sum(1 for e in lines if e.op != LineOp.INSERT)
        new_count = sum(1 for e in lines if e.op != LineOp.DELETE)
        old_before, new_before = positions[lo]
        hunks.append(
            DiffHunk(
                old_start=old_before + 1 if old_count else old_before,
                old_count=old_count,
                new_start=new_before + 1 if new_count else new_before,
                new_count=new_count,
                lines=lines,
            )
        )
    return tuple(hunks)


# ---------------------------------------------------------------------------
# Fields
# ---------------------------------------------------------------------------


def diff_fields(
    previous: Mapping[str, FieldValue],
    current: Mapping[str, FieldValue],
    labels: Mapping[str, str] | None = None,
) -> tuple[FieldChange, ...]:
    """Field changes over the union of keys, sorted by key."""
    labels = DEFAULT_LABELS if labels is None else labels
    changes = []
    for name in sorted(set(previous) | set(current)):
        old = previous.get(name)
        new = current.get(name)
        if old == new:
            continue
        if old is None:
            change_type = ChangeType.ADDED
        elif new is None:
            change_type = ChangeType.REMOVED
        else:
            change_type = ChangeType.MODIFIED
        changes.append(
            FieldChange(
                field=name,
                label=labels.get(name) or humanize_field_name(name),
                change_type=change_type,
                old_value=old,
                new_value=new,
            )
        )
    return tuple(changes)


def diff_content(
    previous_body: str | None,
    current_body: str,
    split_html_blocks: bool = False,
) -> ContentChange | None:
    """Line statistics between two bodies; None when no line differs."""
    ops = myers_diff(
        split_lines(previous_body, split_html_blocks),
        split_lines(current_body, split_html_blocks),
    )
    stats = line_stats(ops)
    if stats.is_empty:
        return None
    return ContentChange(stats=stats)


def summarize(
    field_changes: Sequence[FieldChange],
    content_change: ContentChange | None,
    initial: bool = False,
) -> str:
    """Human-readable one-line summary of a changelog."""
    if initial:
        return INITIAL_SUMMARY
    if not field_changes:
        return CONTENT_ONLY_SUMMARY if content_change else NO_CHANGE_SUMMARY

    names = [fc.label.lower() for fc in field_changes]
    if len(names) == 1:
        return f"Updated {names[0]}"
    if len(names) == 2:
        return f"Updated {names[0]} and {names[1]}"
    remaining = len(names) - 2
    noun = "field" if remaining == 1 else "fields"
    return f"Updated {names[0]}, {names[1]} and {remaining} other {noun}"


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def diff(
    previous: Snapshot | None,
    current: Snapshot,
    *,
    from_sequence: int | None = None,
    to_sequence: int = 1,
    labels: Mapping[str, str] | None = None,
    split_html_blocks: bool = False,
) -> ChangeLog:
    """Changelog from ``previous`` (None for the first version) to ``current``.

    For a first version no field changes are produced and the whole body
    counts as additions.
    """
    if previous is None:
        content = diff_content(None, current.body, split_html_blocks)
        return ChangeLog(
            from_sequence=None,
            to_sequence=to_sequence,
            field_changes=(),
            content_change=content,
            summary=summarize((), content, initial=True),
        )

    field_changes = diff_fields(previous.fields, current.fields, labels)
    content = diff_content(previous.body, current.body, split_html_blocks)
    return ChangeLog(
        from_sequence=from_sequence,
        to_sequence=to_sequence,
        field_changes=field_changes,
        content_change=content,
        summary=summarize(field_changes, content),
    )


def compare(
    older: Snapshot,
    newer: Snapshot,
    *,
    from_sequence: int,
    to_sequence: int,
    labels: Mapping[str, str] | None = None,
    context_lines: int = 3,
    split_html_blocks: bool = False,
) -> VersionComparison:
    """Compare any two snapshots, including unified-diff hunks."""
    ops = myers_diff(
        split_lines(older.body, split_html_blocks),
        split_lines(newer.body, split_html_blocks),
    )
    stats = line_stats(ops)
    content = None if stats.is_empty else ContentChange(stats=stats)
    field_changes = diff_fields(older.fields, newer.fields, labels)
    return VersionComparison(
        from_sequence=from_sequence,
        to_sequence=to_sequence,
        field_changes=field_changes,
        content_change=content,
        hunks=build_hunks(ops, context_lines),
        summary=summarize(field_changes, content),
    )


class DiffEngine:
    """Configured front end over the module functions.

    Holds the label map and line-splitting options so callers do not have
    to thread them through every call.
    """

    def __init__(
        self,
        labels: Mapping[str, str] | None = None,
        context_lines: int = 3,
        split_html_blocks: bool = False,
    ):
        self._labels = dict(DEFAULT_LABELS if labels is None else labels)
        self._context_lines = context_lines
        self._split_html_blocks = split_html_blocks

    def diff(
        self,
        previous: Snapshot | None,
        current: Snapshot,
        from_sequence: int | None = None,
        to_sequence: int = 1,
    ) -> ChangeLog:
        return diff(
            previous,
            current,
            from_sequence=from_sequence,
            to_sequence=to_sequence,
            labels=self._labels,
            split_html_blocks=self._split_html_blocks,
        )

    def compare(
        self,
        older: Snapshot,
        newer: Snapshot,
        from_sequence: int,
        to_sequence: int,
    ) -> VersionComparison:
        return compare(
            older,
            newer,
            from_sequence=from_sequence,
            to_sequence=to_sequence,
            labels=self._labels,
            context_lines=self._context_lines,
            split_html_blocks=self._split_html_blocks,
        )
