"""Tests for the value model helpers."""

from __future__ import annotations

import pytest

from worldvar.domain.values import (
    ValueKind,
    cleared,
    is_metadata_key,
    is_number,
    kind_of,
    normalize_number,
    values_equal,
    visible_keys,
)


class TestKindOf:
    @pytest.mark.parametrize(
        ("value", "kind"),
        [
            (None, ValueKind.NULL),
            (True, ValueKind.BOOL),
            (0, ValueKind.NUMBER),
            (1.5, ValueKind.NUMBER),
            ("", ValueKind.TEXT),
            ([], ValueKind.ARRAY),
            ({}, ValueKind.OBJECT),
        ],
    )
    def test_classifies_json_values(self, value: object, kind: ValueKind) -> None:
        assert kind_of(value) is kind

    def test_bool_is_not_number(self) -> None:
        assert kind_of(False) is ValueKind.BOOL
        assert not is_number(True)

    def test_rejects_non_json(self) -> None:
        with pytest.raises(TypeError, match="Unsupported value type"):
            kind_of(object())


class TestValuesEqual:
    def test_kind_aware(self) -> None:
        assert not values_equal(1, True)
        assert not values_equal(0, None)
        assert values_equal(1, 1.0)

    def test_deep(self) -> None:
        assert values_equal({"a": [1, {"b": "x"}]}, {"a": [1, {"b": "x"}]})
        assert not values_equal({"a": [1, 2]}, {"a": [1, 2, 3]})
        assert not values_equal({"a": 1}, {"b": 1})


class TestCleared:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [([1, 2], []), ({"k": 1}, {}), ("text", ""), (42, 0), (True, None), (None, None)],
    )
    def test_empty_of_same_kind(self, value: object, expected: object) -> None:
        assert cleared(value) == expected

    def test_idempotent(self) -> None:
        once = cleared(["x"])
        assert cleared(once) == once


class TestMetadataKeys:
    def test_sigil(self) -> None:
        assert is_metadata_key("$meta")
        assert not is_metadata_key("meta")

    def test_visible_keys_hide_metadata(self) -> None:
        assert visible_keys({"$meta": {}, "MC": {}, "b": 1}) == ["MC", "b"]


class TestNormalizeNumber:
    def test_integral_float_becomes_int(self) -> None:
        result = normalize_number(150.0)
        assert result == 150
        assert isinstance(result, int)

    def test_fraction_kept(self) -> None:
        assert normalize_number(2.5) == 2.5
