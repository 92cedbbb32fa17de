# tests/unit/core/test_ids.py
"""Tests for id generation and validation."""

import pytest

from tracelight.core.ids import (
    generate_event_id,
    generate_span_id,
    generate_trace_id,
    is_valid_span_id,
    is_valid_trace_id,
)


class TestGeneration:
    def test_trace_id_is_32_hex(self) -> None:
        trace_id = generate_trace_id()
        assert len(trace_id) == 32
        assert is_valid_trace_id(trace_id)

    def test_span_id_is_16_hex(self) -> None:
        span_id = generate_span_id()
        assert len(span_id) == 16
        assert is_valid_span_id(span_id)

    def test_event_id_is_32_hex_without_dashes(self) -> None:
        event_id = generate_event_id()
        assert len(event_id) == 32
        assert "-" not in event_id
        int(event_id, 16)

    def test_ids_are_unique(self) -> None:
        assert len({generate_trace_id() for _ in range(200)}) == 200
        assert len({generate_span_id() for _ in range(200)}) == 200


class TestValidation:
    @pytest.mark.parametrize("value", ["a" * 32, "ABCDEF0123456789abcdef0123456789"])
    def test_valid_trace_ids(self, value: str) -> None:
        assert is_valid_trace_id(value)

    @pytest.mark.parametrize("value", ["a" * 31, "a" * 33, "g" * 32, "", None, 123])
    def test_invalid_trace_ids(self, value: object) -> None:
        assert not is_valid_trace_id(value)

    def test_span_id_length_is_exact(self) -> None:
        assert is_valid_span_id("b" * 16)
        assert not is_valid_span_id("b" * 15)
        assert not is_valid_span_id("b" * 32)
