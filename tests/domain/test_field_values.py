"""
Tests for typed contract field values and snapshots.

Covers ``clm_kernel.domain.fields`` and the snapshot helpers in
``clm_kernel.domain.contract``.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from clm_kernel.domain.contract import (
    FIELD_DATA_PREFIX,
    Snapshot,
    build_snapshot,
    humanize_field_name,
)
from clm_kernel.domain.fields import (
    FieldKind,
    FieldValue,
    coerce_field_value,
    infer_kind,
)


class TestFieldValue:
    def test_money_compares_numerically(self):
        assert FieldValue.money("100.0") == FieldValue.money(Decimal("100"))
        assert hash(FieldValue.money("100.0")) == hash(FieldValue.money("100"))

    def test_money_rejects_garbage(self):
        with pytest.raises(ValueError):
            FieldValue.money("twelve")

    def test_date_accepts_iso_string_and_datetime(self):
        assert FieldValue.date("2024-03-01") == FieldValue.date(date(2024, 3, 1))
        assert FieldValue.date(datetime(2024, 3, 1, 15, 30)) == FieldValue.date(date(2024, 3, 1))

    def test_kinds_never_compare_equal(self):
        assert FieldValue.text("1") != FieldValue.extension(1)

    def test_extension_distinguishes_bool_from_int(self):
        assert FieldValue.extension(1) != FieldValue.extension(True)

    def test_extension_ignores_key_order(self):
        assert FieldValue.extension({"a": 1, "b": 2}) == FieldValue.extension({"b": 2, "a": 1})

    @pytest.mark.parametrize("value", [
        FieldValue.text("Net 30"),
        FieldValue.date("2024-12-31"),
        FieldValue.money("1500.25"),
        FieldValue.extension({"tiers": [1, 2, 3]}),
    ])
    def test_json_form_reloads_equal(self, value):
        assert FieldValue.from_json(value.to_json()) == value


class TestCoercion:
    def test_none_is_never_wrapped(self):
        assert coerce_field_value(None) is None
        assert coerce_field_value(None, FieldKind.MONEY) is None

    def test_declared_kind_wins(self):
        assert coerce_field_value("250", FieldKind.MONEY) == FieldValue.money("250")

    @pytest.mark.parametrize("raw, kind", [
        ("text", FieldKind.TEXT),
        (date(2024, 1, 1), FieldKind.DATE),
        (Decimal("1"), FieldKind.MONEY),
        (42, FieldKind.EXTENSION),
        ([1, 2], FieldKind.EXTENSION),
    ])
    def test_infer_kind(self, raw, kind):
        assert infer_kind(raw) == kind


class TestSnapshot:
    def test_none_values_are_dropped(self):
        snapshot = build_snapshot("body", {"title": "MSA", "description": None})
        assert "description" not in snapshot.fields
        assert snapshot.fields["title"] == FieldValue.text("MSA")

    def test_untracked_top_level_keys_are_ignored(self):
        snapshot = build_snapshot("", {"title": "MSA", "status": "DRAFT"})
        assert set(snapshot.fields) == {"title"}

    def test_colliding_field_data_key_is_namespaced(self):
        snapshot = build_snapshot("", {"title": "MSA"}, field_data={"title": "Alt"})
        assert snapshot.fields["title"] == FieldValue.text("MSA")
        assert snapshot.fields[f"{FIELD_DATA_PREFIX}title"] == FieldValue.text("Alt")

    def test_field_data_key_keeps_its_name_when_column_unset(self):
        snapshot = build_snapshot("", {"title": "MSA"}, field_data={"amount": 1000})
        assert snapshot.fields["amount"] == FieldValue.extension(1000)
        assert f"{FIELD_DATA_PREFIX}amount" not in snapshot.fields

    def test_fields_are_read_only(self):
        snapshot = build_snapshot("", {"title": "MSA"})
        with pytest.raises(TypeError):
            snapshot.fields["title"] = FieldValue.text("x")

    def test_hash_is_stable_across_reload(self):
        snapshot = build_snapshot("a\nb", {"amount": "10.50", "end_date": "2025-01-31"})
        reloaded = Snapshot.from_json(snapshot.body, snapshot.fields_json())
        assert reloaded.compute_hash() == snapshot.compute_hash()
        assert reloaded.same_as(snapshot)

    def test_body_difference_breaks_sameness(self):
        a = build_snapshot("line\n", {"title": "MSA"})
        b = build_snapshot("line\r\n", {"title": "MSA"})
        assert not a.same_as(b)


class TestHumanizeFieldName:
    @pytest.mark.parametrize("name, label", [
        ("payment_terms", "Payment Terms"),
        ("paymentTerms", "Payment Terms"),
        ("fieldData.governing_law", "Governing Law"),
        ("sla", "Sla"),
    ])
    def test_labels(self, name, label):
        assert humanize_field_name(name) == label
