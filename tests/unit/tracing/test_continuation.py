# tests/unit/tracing/test_continuation.py
"""Tests for continuing incoming distributed traces."""

import httpx
import pytest

from tracelight.tracing.context import TraceContext
from tracelight.tracing.continuation import (
    DEFAULT_CONTINUED_NAME,
    ContinuedTrace,
    IncomingTraceData,
    continue_trace_from_data,
    continue_trace_from_headers,
    continue_trace_with_options,
    extract_incoming_trace_data,
    extract_trace_data_from_headers,
    trace_propagation_context,
)
from tracelight.tracing.span import Span

TRACE_ID = "a" * 32
SPAN_ID = "b" * 16
SENTRY_TRACE = f"{TRACE_ID}-{SPAN_ID}-1"


class TestExtraction:
    def test_from_raw_values(self) -> None:
        data = extract_incoming_trace_data(sentry_trace=SENTRY_TRACE, baggage=f"sentry-trace_id={TRACE_ID},sentry-public_key=pk")
        assert data is not None
        assert data.span_context() == {
            "trace_id": TRACE_ID,
            "parent_span_id": SPAN_ID,
            "sampled": True,
            "trace_flags": 1,
        }
        assert data.dsc is not None
        assert data.dsc.public_key == "pk"

    def test_nothing_decodable(self) -> None:
        assert extract_incoming_trace_data(sentry_trace="garbage", baggage="sentry-public_key=pk") is None

    @pytest.mark.parametrize(
        "headers",
        [
            {"sentry-trace": SENTRY_TRACE},
            {"Sentry-Trace": SENTRY_TRACE},
            {"sentry-trace": [SENTRY_TRACE]},
            {"sentry-trace": SENTRY_TRACE.encode("latin-1")},
            httpx.Headers({"Sentry-Trace": SENTRY_TRACE}),
        ],
    )
    def test_header_shapes(self, headers: object) -> None:
        data = extract_trace_data_from_headers(headers)  # type: ignore[arg-type]
        assert data is not None
        assert data.trace_id == TRACE_ID

    def test_traceparent_fallback(self) -> None:
        data = trace_propagation_context({"traceparent": f"00-{TRACE_ID}-{SPAN_ID}-00"})
        assert data is not None
        assert data.sampled is False


class TestContinue:
    def test_from_data_activates_continuing_span(self) -> None:
        context = TraceContext()
        data = IncomingTraceData(trace_id=TRACE_ID, parent_span_id=SPAN_ID, sampled=True)

        def callback(span: Span) -> tuple[Span | None, object]:
            assert span.trace_id == TRACE_ID
            assert span.parent_span_id == SPAN_ID
            assert span.sampled is True
            return context.get_active_span(), context.get_propagation_data()

        active, propagation = continue_trace_from_data(context, data, "GET /", callback)
        assert active is not None
        assert active.name == "GET /"
        assert propagation is data
        assert context.get_active_span() is None
        assert context.get_propagation_data() is None

    def test_from_headers_without_trace_starts_new(self) -> None:
        context = TraceContext()
        span = continue_trace_from_headers(context, {}, "job", lambda s: s)
        assert span.parent_span_id is None
        assert span.sampled is None

    @pytest.mark.asyncio
    async def test_async_callback_keeps_span_active(self) -> None:
        context = TraceContext()

        async def handler(span: Span) -> Span | None:
            return context.get_active_span()

        active = await continue_trace_from_headers(context, {"sentry-trace": SENTRY_TRACE}, "GET /", handler)
        assert active is not None
        assert active.trace_id == TRACE_ID

    def test_with_options(self) -> None:
        context = TraceContext()
        continued = continue_trace_with_options(context, lambda c: c, sentry_trace=SENTRY_TRACE, op="http.server")
        assert isinstance(continued, ContinuedTrace)
        assert continued.trace_id == TRACE_ID
        assert continued.parent_span_id == SPAN_ID
        assert continued.sampled is True
        assert continued.span.name == DEFAULT_CONTINUED_NAME
        assert continued.span.op == "http.server"

    def test_with_options_fresh_trace(self) -> None:
        context = TraceContext()
        continued = continue_trace_with_options(context, lambda c: c, name="cron")
        assert continued.parent_span_id is None
        assert continued.trace_id == continued.span.trace_id
