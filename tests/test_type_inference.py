"""Tests for cell tagging, numeric coercion and first-row column typing."""

import math

import pytest

from backend.lumina.utils.type_inference import ValueKind, infer_column_types, kind_of, to_number


class TestKindOf:
    def test_booleans_are_not_numbers(self):
        assert kind_of(True) is ValueKind.BOOLEAN
        assert kind_of(False) is ValueKind.BOOLEAN

    @pytest.mark.parametrize("value", [0, 3, -2.5, 1e10])
    def test_numbers(self, value):
        assert kind_of(value) is ValueKind.NUMBER

    def test_text_and_null(self):
        assert kind_of("abc") is ValueKind.TEXT
        assert kind_of("") is ValueKind.TEXT
        assert kind_of(None) is ValueKind.NULL


class TestToNumber:
    def test_finite_numbers_pass_through(self):
        assert to_number(3) == 3.0
        assert to_number(-1.25) == -1.25

    def test_non_finite_numbers_are_missing(self):
        assert to_number(math.nan) is None
        assert to_number(math.inf) is None

    def test_numeric_text_is_parsed(self):
        assert to_number("42") == 42.0
        assert to_number(" 1.5e2 ") == 150.0

    @pytest.mark.parametrize("text", ["", "   ", "abc", "1_000", "nan", "Infinity", "12abc"])
    def test_malformed_text_is_missing(self, text):
        assert to_number(text) is None

    def test_booleans_coerce_to_one_and_zero(self):
        assert to_number(True) == 1.0
        assert to_number(False) == 0.0

    def test_null_is_missing(self):
        assert to_number(None) is None


class TestInferColumnTypes:
    def test_classifies_from_first_row(self):
        header = ["x", "city", "flag", "empty"]
        rows = [
            {"x": 1, "city": "Boston", "flag": True, "empty": None},
            {"x": "oops", "city": 5, "flag": 1, "empty": 3},
        ]
        numeric, categorical = infer_column_types(header, rows)
        assert numeric == ["x"]
        assert categorical == ["city"]

    def test_first_row_null_drops_column_even_if_rest_is_numeric(self):
        rows = [{"v": None}] + [{"v": i} for i in range(10)]
        numeric, categorical = infer_column_types(["v"], rows)
        assert numeric == []
        assert categorical == []

    def test_missing_key_in_first_row_is_excluded(self):
        numeric, categorical = infer_column_types(["a", "b"], [{"a": 1}, {"a": 2, "b": 3}])
        assert numeric == ["a"]
        assert categorical == []

    def test_empty_rows_give_empty_lists(self):
        assert infer_column_types(["a", "b"], []) == ([], [])

    def test_header_order_is_kept(self):
        header = ["z", "a", "m"]
        numeric, _ = infer_column_types(header, [{"z": 1, "a": 2.5, "m": 0}])
        assert numeric == ["z", "a", "m"]
