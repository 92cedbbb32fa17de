"""Correlation header codecs.

Three headers carry a trace across process boundaries:

    sentry-trace   "{trace_id}-{span_id}[-{0|1}]"
    baggage        "sentry-trace_id=...,sentry-public_key=...,..."
    traceparent    "00-{trace_id}-{span_id}-{flags}"  (W3C fallback)

Every parse function returns None for malformed input and never raises.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import quote, unquote

from tracelight.core.ids import is_valid_span_id, is_valid_trace_id
from tracelight.tracing.span import Span

SENTRY_TRACE_HEADER = "sentry-trace"
BAGGAGE_HEADER = "baggage"
TRACEPARENT_HEADER = "traceparent"

_BAGGAGE_PREFIX = "sentry-"
# Characters encodeURIComponent leaves alone.
_URI_COMPONENT_SAFE = "-_.!~*'()"

_DSC_KEYS: tuple[str, ...] = (
    "trace_id",
    "public_key",
    "release",
    "environment",
    "transaction",
    "sample_rate",
    "sampled",
)


@dataclass(frozen=True, slots=True)
class DynamicSamplingContext:
    """Per-trace metadata propagated through the baggage header."""

    trace_id: str
    public_key: str
    release: str | None = None
    environment: str | None = None
    transaction: str | None = None
    sample_rate: str | None = None
    sampled: str | None = None

    def to_dict(self) -> dict[str, str]:
        """Only the populated keys."""
        return {key: value for key in _DSC_KEYS if (value := getattr(self, key))}


@dataclass(frozen=True, slots=True)
class ParsedTraceHeader:
    trace_id: str
    parent_span_id: str
    sampled: bool | None = None


@dataclass(frozen=True, slots=True)
class ExtractedTraceContext:
    """Result of reading all correlation headers from a request."""

    trace_id: str | None = None
    parent_span_id: str | None = None
    sampled: bool | None = None
    dsc: DynamicSamplingContext | None = None


# =============================================================================
# sentry-trace
# =============================================================================


def generate_sentry_trace_header(span: Span) -> str:
    """``trace-span`` plus ``-1``/``-0`` when the sampling decision is known."""
    if span.sampled is None:
        return f"{span.trace_id}-{span.span_id}"
    return f"{span.trace_id}-{span.span_id}-{'1' if span.sampled else '0'}"


def parse_sentry_trace_header(header: object) -> ParsedTraceHeader | None:
    if not isinstance(header, str) or not header:
        return None
    parts = header.strip().split("-")
    if len(parts) < 2:
        return None
    trace_id, parent_span_id = parts[0], parts[1]
    if not is_valid_trace_id(trace_id) or not is_valid_span_id(parent_span_id):
        return None
    sampled: bool | None = None
    if len(parts) >= 3:
        # Anything other than 1/0 means the decision is deferred.
        sampled = {"1": True, "0": False}.get(parts[2])
    return ParsedTraceHeader(trace_id=trace_id, parent_span_id=parent_span_id, sampled=sampled)


# =============================================================================
# baggage
# =============================================================================


def generate_baggage_header(dsc: DynamicSamplingContext) -> str:
    return ",".join(
        f"{_BAGGAGE_PREFIX}{key}={quote(value, safe=_URI_COMPONENT_SAFE)}" for key, value in dsc.to_dict().items()
    )


def parse_baggage_header(header: object) -> DynamicSamplingContext | None:
    """Read the sentry- members of a baggage header.

    Non-sentry members are ignored. Returns None unless both trace_id and
    public_key are present.
    """
    if not isinstance(header, str) or not header:
        return None
    values: dict[str, str] = {}
    for item in header.split(","):
        key, sep, raw_value = item.strip().partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key.startswith(_BAGGAGE_PREFIX):
            continue
        name = key[len(_BAGGAGE_PREFIX) :]
        if name in _DSC_KEYS:
            values[name] = unquote(raw_value.strip())
    if not values.get("trace_id") or not values.get("public_key"):
        return None
    return DynamicSamplingContext(**values)


# =============================================================================
# traceparent (W3C)
# =============================================================================


def generate_traceparent_header(span: Span) -> str:
    return f"00-{span.trace_id}-{span.span_id}-{'01' if span.sampled else '00'}"


def parse_traceparent_header(header: object) -> ParsedTraceHeader | None:
    if not isinstance(header, str) or not header:
        return None
    parts = header.strip().split("-")
    if len(parts) != 4:
        return None
    version, trace_id, span_id, flags = parts
    if version != "00" or not is_valid_trace_id(trace_id) or not is_valid_span_id(span_id):
        return None
    if len(flags) != 2:
        return None
    try:
        flag_bits = int(flags, 16)
    except ValueError:
        return None
    return ParsedTraceHeader(trace_id=trace_id, parent_span_id=span_id, sampled=bool(flag_bits & 0x01))


# =============================================================================
# Combined
# =============================================================================


def build_dsc(span: Span, dsc: Mapping[str, str | None] | DynamicSamplingContext | None = None) -> DynamicSamplingContext:
    """DSC for an outgoing request from span, filling gaps from dsc.

    ``transaction`` defaults to the span name and ``sampled`` always reflects
    the span's own decision.
    """
    given: Mapping[str, str | None]
    if isinstance(dsc, DynamicSamplingContext):
        given = dsc.to_dict()
    else:
        given = dsc or {}
    return DynamicSamplingContext(
        trace_id=span.trace_id,
        public_key=given.get("public_key") or "",
        release=given.get("release"),
        environment=given.get("environment"),
        transaction=given.get("transaction") or span.name,
        sample_rate=given.get("sample_rate"),
        sampled=None if span.sampled is None else str(span.sampled).lower(),
    )


def get_traceparent_data(
    span: Span,
    dsc: Mapping[str, str | None] | DynamicSamplingContext | None = None,
) -> tuple[str, str]:
    """The (sentry-trace, baggage) pair for span."""
    return generate_sentry_trace_header(span), generate_baggage_header(build_dsc(span, dsc))


def propagation_headers(
    span: Span,
    dsc: Mapping[str, str | None] | DynamicSamplingContext | None = None,
) -> dict[str, str]:
    """Outgoing header dict: sentry-trace always, baggage when non-empty."""
    sentry_trace, baggage = get_traceparent_data(span, dsc)
    headers = {SENTRY_TRACE_HEADER: sentry_trace}
    if baggage:
        headers[BAGGAGE_HEADER] = baggage
    return headers


def extract_trace_context(headers: Mapping[str, str | None]) -> ExtractedTraceContext:
    """Read correlation headers, preferring sentry-trace over traceparent.

    Keys are matched exactly; use continuation.extract_trace_data_from_headers
    for case-insensitive or list-valued header collections.
    """
    parsed = parse_sentry_trace_header(headers.get(SENTRY_TRACE_HEADER))
    if parsed is None:
        parsed = parse_traceparent_header(headers.get(TRACEPARENT_HEADER))
    dsc = parse_baggage_header(headers.get(BAGGAGE_HEADER))
    if parsed is None:
        return ExtractedTraceContext(dsc=dsc)
    return ExtractedTraceContext(
        trace_id=parsed.trace_id,
        parent_span_id=parsed.parent_span_id,
        sampled=parsed.sampled,
        dsc=dsc,
    )
