"""Resume an incoming distributed trace.

Incoming headers may arrive as an ``httpx.Headers``, a plain dict with any
key casing, or a dict whose values are lists (WSGI/ASGI adapters). All of
them reduce to IncomingTraceData, or None when nothing decodes, in which
case the caller starts a fresh trace.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from tracelight.tracing.context import TraceContext
from tracelight.tracing.propagation import (
    BAGGAGE_HEADER,
    SENTRY_TRACE_HEADER,
    TRACEPARENT_HEADER,
    DynamicSamplingContext,
    parse_baggage_header,
    parse_sentry_trace_header,
    parse_traceparent_header,
)
from tracelight.tracing.span import Span

T = TypeVar("T")

DEFAULT_CONTINUED_NAME = "continued-trace"

HeaderSource = Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class IncomingTraceData:
    trace_id: str
    parent_span_id: str
    sampled: bool | None = None
    dsc: DynamicSamplingContext | None = None

    def span_context(self) -> dict[str, Any]:
        return {
            "trace_id": self.trace_id,
            "parent_span_id": self.parent_span_id,
            "sampled": self.sampled,
            "trace_flags": 1 if self.sampled else 0,
        }


@dataclass(frozen=True, slots=True)
class ContinuedTrace:
    """What continue_trace_with_options() hands to its callback."""

    span: Span
    trace_id: str
    parent_span_id: str | None = None
    sampled: bool | None = None
    dsc: DynamicSamplingContext | None = None


def extract_incoming_trace_data(
    sentry_trace: str | None = None,
    baggage: str | None = None,
    traceparent: str | None = None,
) -> IncomingTraceData | None:
    """Decode correlation header values.

    sentry-trace wins over traceparent. Returns None unless a trace id and
    parent span id were decoded.
    """
    parsed = parse_sentry_trace_header(sentry_trace) if sentry_trace else None
    if parsed is None and traceparent:
        parsed = parse_traceparent_header(traceparent)
    if parsed is None:
        return None
    return IncomingTraceData(
        trace_id=parsed.trace_id,
        parent_span_id=parsed.parent_span_id,
        sampled=parsed.sampled,
        dsc=parse_baggage_header(baggage) if baggage else None,
    )


def _header_value(headers: HeaderSource, name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if isinstance(key, str) and key.lower() == lowered:
                value = candidate
                break
    if isinstance(value, list | tuple):
        value = value[0] if value else None
    if isinstance(value, bytes):
        value = value.decode("latin-1")
    return value if isinstance(value, str) else None


def extract_trace_data_from_headers(headers: HeaderSource) -> IncomingTraceData | None:
    """Decode correlation headers from any mapping of header name to value(s)."""
    return extract_incoming_trace_data(
        sentry_trace=_header_value(headers, SENTRY_TRACE_HEADER),
        baggage=_header_value(headers, BAGGAGE_HEADER),
        traceparent=_header_value(headers, TRACEPARENT_HEADER),
    )


def span_from_trace_data(name: str, data: IncomingTraceData | None, op: str | None = None) -> Span:
    """Root span continuing data's trace, or starting a new one."""
    if data is None:
        return Span(name=name, op=op)
    return Span(
        name=name,
        op=op,
        trace_id=data.trace_id,
        parent_span_id=data.parent_span_id,
        sampled=data.sampled,
    )


def continue_trace_from_data(
    context: TraceContext,
    data: IncomingTraceData,
    name: str,
    callback: Callable[[Span], T],
) -> T:
    """Run callback with a span continuing data's trace set as active.

    Async callbacks are supported: the returned coroutine keeps the span
    (and the incoming data) active across its awaits.
    """
    span = span_from_trace_data(name, data)
    return context.run_with_propagation(data, lambda: context.run_with_span(span, lambda: callback(span)))


def continue_trace_from_headers(
    context: TraceContext,
    headers: HeaderSource,
    name: str,
    callback: Callable[[Span], T],
) -> T:
    """Like continue_trace_from_data, starting a new trace when headers carry none."""
    data = extract_trace_data_from_headers(headers)
    if data is None:
        span = span_from_trace_data(name, None)
        return context.run_with_span(span, lambda: callback(span))
    return continue_trace_from_data(context, data, name, callback)


def continue_trace_with_options(
    context: TraceContext,
    callback: Callable[[ContinuedTrace], T],
    *,
    sentry_trace: str | None = None,
    baggage: str | None = None,
    name: str | None = None,
    op: str | None = None,
) -> T:
    """Continue from raw header values, passing the full trace description to callback."""
    data = extract_incoming_trace_data(sentry_trace=sentry_trace, baggage=baggage)
    span = span_from_trace_data(name or DEFAULT_CONTINUED_NAME, data, op=op)
    if data is None:
        continued = ContinuedTrace(span=span, trace_id=span.trace_id)
        return context.run_with_span(span, lambda: callback(continued))
    continued = ContinuedTrace(
        span=span,
        trace_id=data.trace_id,
        parent_span_id=data.parent_span_id,
        sampled=data.sampled,
        dsc=data.dsc,
    )
    return context.run_with_propagation(data, lambda: context.run_with_span(span, lambda: callback(continued)))


def trace_propagation_context(headers: HeaderSource) -> IncomingTraceData | None:
    """Decode headers without creating or activating a span."""
    return extract_trace_data_from_headers(headers)
