"""Distributed tracing: spans, active-span context, sampling and header propagation."""

from tracelight.tracing.api import Tracer
from tracelight.tracing.context import (
    ContextBackend,
    ContextStorage,
    ContextVarStorage,
    SingleSlotStorage,
    TraceContext,
)
from tracelight.tracing.continuation import (
    ContinuedTrace,
    IncomingTraceData,
    continue_trace_from_data,
    continue_trace_from_headers,
    continue_trace_with_options,
    extract_incoming_trace_data,
    extract_trace_data_from_headers,
    trace_propagation_context,
)
from tracelight.tracing.injection import (
    TracingHeaderInjector,
    inject_tracing_headers,
    is_same_origin,
    should_inject_headers,
    should_propagate_to,
)
from tracelight.tracing.propagation import (
    DynamicSamplingContext,
    extract_trace_context,
    generate_baggage_header,
    generate_sentry_trace_header,
    generate_traceparent_header,
    parse_baggage_header,
    parse_sentry_trace_header,
    parse_traceparent_header,
    propagation_headers,
)
from tracelight.tracing.sampling import (
    SamplingContext,
    SamplingDecision,
    SamplingStats,
    deterministic_sample,
    should_sample_event,
    should_sample_transaction,
)
from tracelight.tracing.span import (
    Span,
    SpanOptions,
    SpanStatus,
    create_transaction,
    finish_transaction,
    is_transaction,
    register_span,
    span_to_json,
)

__all__ = [
    "ContextBackend",
    "ContextStorage",
    "ContextVarStorage",
    "ContinuedTrace",
    "DynamicSamplingContext",
    "IncomingTraceData",
    "SamplingContext",
    "SamplingDecision",
    "SamplingStats",
    "SingleSlotStorage",
    "Span",
    "SpanOptions",
    "SpanStatus",
    "TraceContext",
    "Tracer",
    "TracingHeaderInjector",
    "continue_trace_from_data",
    "continue_trace_from_headers",
    "continue_trace_with_options",
    "create_transaction",
    "deterministic_sample",
    "extract_incoming_trace_data",
    "extract_trace_context",
    "extract_trace_data_from_headers",
    "finish_transaction",
    "generate_baggage_header",
    "generate_sentry_trace_header",
    "generate_traceparent_header",
    "inject_tracing_headers",
    "is_same_origin",
    "is_transaction",
    "parse_baggage_header",
    "parse_sentry_trace_header",
    "parse_traceparent_header",
    "propagation_headers",
    "register_span",
    "should_inject_headers",
    "should_propagate_to",
    "should_sample_event",
    "should_sample_transaction",
    "span_to_json",
    "trace_propagation_context",
]
