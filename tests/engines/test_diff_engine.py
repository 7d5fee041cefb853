"""
Tests for the pure snapshot diff engine.

Tests cover:
- Field diff: added / removed / modified, sorted by key, equal fields omitted
- Content diff: line counting, CRLF normalisation, empty bodies, first version
- Myers edit scripts and hunk grouping
- Changelog summaries
"""

import tracemalloc

import pytest

from clm_engines.diff import (
    CONTENT_ONLY_SUMMARY,
    INITIAL_SUMMARY,
    NO_CHANGE_SUMMARY,
    DiffEngine,
    apply_line_diff,
    build_hunks,
    diff,
    diff_content,
    line_stats,
    myers_diff,
    split_lines,
    summarize,
)
from clm_kernel.domain.changelog import ChangeType, ContentChange, DiffStats, LineOp
from clm_kernel.domain.contract import build_snapshot
from clm_kernel.domain.fields import FieldValue


def snap(body="", **fields):
    field_data = fields.pop("field_data", None)
    return build_snapshot(body, fields, field_data=field_data)


class TestSplitLines:
    def test_empty_body_has_no_lines(self):
        assert split_lines("") == []
        assert split_lines(None) == []

    def test_crlf_is_normalised(self):
        assert split_lines("a\r\nb") == ["a", "b"]

    def test_trailing_newline_yields_empty_last_line(self):
        assert split_lines("a\n") == ["a", ""]

    def test_html_blocks_split_onto_own_lines(self):
        lines = split_lines("<p>One</p><p>Two</p>", split_html_blocks=True)
        assert lines == ["<p>", "One", "</p>", "<p>", "Two", "</p>"]


class TestMyersDiff:
    def test_identical(self):
        ops = myers_diff(["a", "b"], ["a", "b"])
        assert all(op.op == LineOp.EQUAL for op in ops)

    def test_single_replacement(self):
        ops = myers_diff(["a", "b", "c"], ["a", "x", "c"])
        assert line_stats(ops) == DiffStats(additions=1, deletions=1)

    def test_insertion_in_middle(self):
        ops = myers_diff(["a", "c"], ["a", "b", "c"])
        assert [op.op for op in ops] == [LineOp.EQUAL, LineOp.INSERT, LineOp.EQUAL]

    def test_shortest_script_on_interleaved_input(self):
        old = list("abcabba")
        new = list("cbabac")
        ops = myers_diff(old, new)
        # Classic Myers example: edit distance 5
        stats = line_stats(ops)
        assert stats.additions + stats.deletions == 5
        assert apply_line_diff(old, ops) == new

    def test_disjoint_inputs(self):
        ops = myers_diff(["a", "b"], ["c"])
        assert line_stats(ops) == DiffStats(additions=1, deletions=2)

    def test_apply_rejects_mismatched_script(self):
        ops = myers_diff(["a"], ["b"])
        with pytest.raises(ValueError):
            apply_line_diff(["z"], ops)


class TestMyersDiffMemory:
    """Large rewrites stay in linear memory."""

    @staticmethod
    def _peak_bytes(old, new):
        tracemalloc.start()
        try:
            ops = myers_diff(old, new)
            _, peak = tracemalloc.get_traced_memory()
        finally:
            tracemalloc.stop()
        return ops, peak

    def test_rewrite_sharing_one_blank_line(self):
        old = [f"old clause {i}" for i in range(5000)] + [""]
        new = [""] + [f"new clause {i}" for i in range(5000)]
        ops, peak = self._peak_bytes(old, new)

        assert line_stats(ops) == DiffStats(additions=5000, deletions=5000)
        assert apply_line_diff(old, ops) == new
        assert peak < 20 * 1024 * 1024

    def test_swapped_sections(self):
        first = [f"section a line {i}" for i in range(600)]
        second = [f"section b line {i}" for i in range(600)]
        old, new = first + second, second + first
        ops, peak = self._peak_bytes(old, new)

        assert line_stats(ops) == DiffStats(additions=600, deletions=600)
        assert apply_line_diff(old, ops) == new
        assert peak < 20 * 1024 * 1024


class TestContentDiff:
    def test_whitespace_only_change_counts_as_one_each(self):
        change = diff_content("clause one\nclause two", "clause one \nclause two")
        assert change.stats == DiffStats(additions=1, deletions=1)

    def test_crlf_only_change_is_no_content_change(self):
        assert diff_content("a\nb", "a\r\nb") is None

    def test_clearing_body_deletes_every_line(self):
        change = diff_content("a\nb\nc", "")
        assert change.stats == DiffStats(additions=0, deletions=3)

    def test_serialised_shape(self):
        change = diff_content("a", "b")
        assert change.to_json() == {
            "change_type": "content_modified",
            "diff_stats": {"additions": 1, "deletions": 1},
        }


class TestDiff:
    def test_first_version(self):
        current = snap("1. Scope\n2. Fees", title="MSA", amount="10")
        changelog = diff(None, current, to_sequence=1)
        assert changelog.from_sequence is None
        assert changelog.field_changes == ()
        assert changelog.content_change.stats == DiffStats(additions=2, deletions=0)
        assert changelog.summary == INITIAL_SUMMARY

    def test_first_version_with_empty_body_has_no_content_change(self):
        changelog = diff(None, snap("", title="MSA"))
        assert changelog.content_change is None
        assert changelog.changes == ()

    def test_field_changes_sorted_and_typed(self):
        previous = snap("body", title="MSA", description="Old", field_data={"sla": "99.5"})
        current = snap("body", title="MSA v2", amount="5000", field_data={"sla": "99.5"})
        changelog = diff(previous, current, from_sequence=1, to_sequence=2)

        assert [fc.field for fc in changelog.field_changes] == ["amount", "description", "title"]
        kinds = {fc.field: fc.change_type for fc in changelog.field_changes}
        assert kinds == {
            "amount": ChangeType.ADDED,
            "description": ChangeType.REMOVED,
            "title": ChangeType.MODIFIED,
        }
        title = changelog.field_changes[2]
        assert title.label == "Contract Title"
        assert title.old_value == FieldValue.text("MSA")
        assert title.new_value == FieldValue.text("MSA v2")
        assert changelog.content_change is None

    def test_content_change_is_last(self):
        previous = snap("a", title="MSA")
        current = snap("b", title="NDA")
        changelog = diff(previous, current, from_sequence=1, to_sequence=2)
        assert isinstance(changelog.changes[-1], ContentChange)
        assert changelog.change_count == 2

    def test_equal_money_in_different_notation_is_unchanged(self):
        changelog = diff(snap("", amount="100.00"), snap("", amount="100"))
        assert changelog.field_changes == ()
        assert changelog.summary == NO_CHANGE_SUMMARY

    def test_unknown_field_label_is_humanised(self):
        changelog = diff(
            snap("", field_data={"governing_law": "NY"}),
            snap("", field_data={"governing_law": "DE"}),
        )
        assert changelog.field_changes[0].label == "Governing Law"


class TestSummarize:
    def _changes(self, *labels):
        previous = snap("")
        current = snap("", field_data={label: "x" for label in labels})
        return diff(previous, current).field_changes

    def test_content_only(self):
        assert summarize((), ContentChange(DiffStats(1, 0))) == CONTENT_ONLY_SUMMARY

    def test_one_field(self):
        assert summarize(self._changes("alpha"), None) == "Updated alpha"

    def test_two_fields(self):
        assert summarize(self._changes("alpha", "beta"), None) == "Updated alpha and beta"

    def test_many_fields(self):
        summary = summarize(self._changes("alpha", "beta", "gamma", "delta"), None)
        assert summary == "Updated alpha, beta and 2 other fields"

    def test_three_fields_singular(self):
        summary = summarize(self._changes("alpha", "beta", "gamma"), None)
        assert summary == "Updated alpha, beta and 1 other field"


class TestHunks:
    def test_no_changes_no_hunks(self):
        assert build_hunks(myers_diff(["a"], ["a"])) == ()

    def test_single_change_with_context(self):
        old = [str(i) for i in range(1, 11)]
        new = list(old)
        new[4] = "five"
        hunks = build_hunks(myers_diff(old, new), context=2)
        assert len(hunks) == 1
        hunk = hunks[0]
        assert hunk.header == "@@ -3,5 +3,5 @@"
        assert [line.to_unified() for line in hunk.lines] == [" 3", " 4", "-5", "+five", " 6", " 7"]

    def test_distant_changes_split_into_two_hunks(self):
        old = [str(i) for i in range(1, 21)]
        new = list(old)
        new[1] = "two"
        new[17] = "eighteen"
        hunks = build_hunks(myers_diff(old, new), context=3)
        assert len(hunks) == 2

    def test_close_changes_merge(self):
        old = [str(i) for i in range(1, 11)]
        new = list(old)
        new[2] = "three"
        new[6] = "seven"
        hunks = build_hunks(myers_diff(old, new), context=2)
        assert len(hunks) == 1

    def test_insert_into_empty(self):
        hunks = build_hunks(myers_diff([], ["a", "b"]))
        assert hunks[0].header == "@@ -0,0 +1,2 @@"

    def test_negative_context_rejected(self):
        with pytest.raises(ValueError):
            build_hunks([], context=-1)


class TestDiffEngine:
    def test_compare_includes_hunks(self):
        engine = DiffEngine(context_lines=1)
        comparison = engine.compare(
            snap("a\nb\nc", title="MSA"),
            snap("a\nB\nc", title="MSA"),
            from_sequence=1,
            to_sequence=3,
        )
        assert comparison.content_change.stats == DiffStats(1, 1)
        assert comparison.hunks[0].header == "@@ -1,3 +1,3 @@"
        assert comparison.summary == CONTENT_ONLY_SUMMARY

    def test_custom_labels(self):
        engine = DiffEngine(labels={"title": "Agreement Name"})
        changelog = engine.diff(snap("", title="A"), snap("", title="B"), 1, 2)
        assert changelog.summary == "Updated agreement name"
