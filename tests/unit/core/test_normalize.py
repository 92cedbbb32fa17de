# tests/unit/core/test_normalize.py
"""Tests for deep normalization and truncation."""

import datetime
import enum
import re

from tracelight.core.normalize import (
    CIRCULAR,
    INFINITY_TAG,
    NAN_TAG,
    NEGATIVE_INFINITY_TAG,
    OBJECT_TAG,
    normalize,
    truncate,
)


class Color(enum.Enum):
    RED = "red"


class TestTruncate:
    def test_short_string_unchanged(self) -> None:
        assert truncate("hello", 10) == "hello"

    def test_exact_length_unchanged(self) -> None:
        assert truncate("abcde", 5) == "abcde"

    def test_long_string_ends_with_ellipsis(self) -> None:
        result = truncate("x" * 300, 250)
        assert len(result) == 250
        assert result.endswith("...")


class TestPrimitives:
    def test_json_primitives_pass_through(self) -> None:
        assert normalize({"s": "a", "i": 1, "f": 1.5, "b": True, "n": None}) == {
            "s": "a",
            "i": 1,
            "f": 1.5,
            "b": True,
            "n": None,
        }

    def test_special_values(self) -> None:
        def handler() -> None:
            pass

        result = normalize(
            {
                "when": datetime.datetime(2024, 1, 2, 3, 4, 5),
                "color": Color.RED,
                "raw": b"bytes",
                "pattern": re.compile(r"\d+"),
                "fn": handler,
                "cls": ValueError,
            }
        )
        assert result == {
            "when": "2024-01-02T03:04:05",
            "color": "red",
            "raw": "bytes",
            "pattern": "/\\d+/",
            "fn": "[Function: handler]",
            "cls": "[Class: ValueError]",
        }

    def test_non_finite_floats_are_tagged(self) -> None:
        assert normalize([float("nan"), float("inf"), float("-inf")]) == ["[NaN]", "[Infinity]", "[-Infinity]"]

    def test_non_finite_float_subclass_is_tagged(self) -> None:
        class Measurement(float):
            def __repr__(self) -> str:
                return f"Measurement({float(self)})"

        assert normalize([Measurement("nan"), Measurement("inf"), Measurement("-inf")]) == [
            NAN_TAG,
            INFINITY_TAG,
            NEGATIVE_INFINITY_TAG,
        ]

    def test_non_string_keys_are_stringified(self) -> None:
        assert normalize({1: "a", None: "b"}) == {"1": "a", "None": "b"}


class TestStructure:
    def test_depth_limit_collapses_to_tags(self) -> None:
        data = {"a": {"b": {"c": {"d": 1}, "items": [1, 2, 3]}}}
        assert normalize(data, depth=3) == {"a": {"b": {"c": OBJECT_TAG, "items": "[Array(3)]"}}}

    def test_list_breadth_marker(self) -> None:
        assert normalize(list(range(5)), max_breadth=3) == [0, 1, 2, "... 2 more items"]

    def test_mapping_breadth_marker(self) -> None:
        result = normalize({f"k{i}": i for i in range(5)}, max_breadth=2)
        assert result == {"k0": 0, "k1": 1, "__truncated__": "3 more keys"}

    def test_tuple_becomes_list(self) -> None:
        assert normalize((1, 2)) == [1, 2]

    def test_set_is_tagged(self) -> None:
        assert normalize({"s": {7}}) == {"s": {"__type__": "Set", "values": [7]}}

    def test_cycle_replaced_with_sentinel(self) -> None:
        data: dict[str, object] = {"name": "root"}
        data["self"] = data
        assert normalize(data) == {"name": "root", "self": CIRCULAR}

    def test_shared_sibling_reference_is_not_circular(self) -> None:
        shared = {"v": 1}
        assert normalize({"a": shared, "b": shared}) == {"a": {"v": 1}, "b": {"v": 1}}

    def test_unknown_object_uses_str(self) -> None:
        class Thing:
            def __str__(self) -> str:
                return "a thing"

        assert normalize({"t": Thing()}) == {"t": "a thing"}


class TestExceptions:
    def test_exception_fields(self) -> None:
        exc = ValueError("bad input")
        exc.code = 7  # type: ignore[attr-defined]
        result = normalize(exc)
        assert result["name"] == "ValueError"
        assert result["message"] == "bad input"
        assert result["code"] == 7
        assert "stack" not in result

    def test_raised_exception_has_stack_and_cause(self) -> None:
        try:
            try:
                raise KeyError("inner")
            except KeyError as inner:
                raise RuntimeError("outer") from inner
        except RuntimeError as e:
            result = normalize(e, depth=5)
        assert "RuntimeError: outer" in result["stack"]
        assert result["cause"]["name"] == "KeyError"
