"""Span and transaction records.

A transaction is a span that carries a TransactionState: there is one
record type, and transaction-only behaviour (span registration, trimmed
end, one-shot finish, transaction serialization) lives in module
functions that check the variant explicitly.

Lifecycle:
    recording -> ended

The first end() wins; later calls are ignored. Once ended, attribute,
tag and data setters are silent no-ops.
"""

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from tracelight.contracts.enums import EventType, SpanStatusCode, TransactionSource
from tracelight.contracts.events import Event, TraceContextPayload
from tracelight.core.ids import generate_event_id, generate_span_id, generate_trace_id

logger = structlog.get_logger(__name__)

AttributeValue = str | int | float | bool | list[str] | list[int] | list[float] | list[bool] | None

CaptureCallback = Callable[[Event], object]
"""Receives the finished transaction event (the client routes it into the pipeline)."""


@dataclass(frozen=True, slots=True)
class SpanStatus:
    """Status of a span: a code plus optional human-readable message."""

    code: str = SpanStatusCode.UNSET
    message: str | None = None

    @property
    def is_set(self) -> bool:
        return self.code != SpanStatusCode.UNSET


@dataclass(frozen=True, slots=True)
class SpanOptions:
    """Options for starting a span or transaction.

    ``trace_id``/``parent_span_id``/``sampled`` come from a parent span or
    from continued incoming trace data; when absent a new trace starts.
    """

    name: str
    op: str | None = None
    attributes: Mapping[str, AttributeValue] = field(default_factory=dict)
    tags: Mapping[str, str] = field(default_factory=dict)
    data: Mapping[str, Any] = field(default_factory=dict)
    start_time: float | None = None
    trace_id: str | None = None
    parent_span_id: str | None = None
    sampled: bool | None = None
    origin: str | None = None
    # Transaction-only
    source: str = TransactionSource.CUSTOM
    metadata: Mapping[str, Any] = field(default_factory=dict)
    trim_end: bool = False
    # Tracer behaviour
    force_transaction: bool = False
    only_if_parent: bool = False


@dataclass(slots=True)
class TransactionState:
    """Transaction-only fields attached to a root span."""

    name: str
    metadata: dict[str, Any] = field(default_factory=dict)
    spans: list["Span"] = field(default_factory=list)
    trim_end: bool = False
    capture: CaptureCallback | None = None

    @property
    def source(self) -> str:
        return str(self.metadata.get("source", TransactionSource.CUSTOM))


@dataclass(slots=True, eq=False)
class Span:
    """A timed unit of work. Identity comparison only (eq=False)."""

    name: str
    trace_id: str = field(default_factory=generate_trace_id)
    span_id: str = field(default_factory=generate_span_id)
    parent_span_id: str | None = None
    op: str | None = None
    status: SpanStatus = field(default_factory=SpanStatus)
    start_timestamp: float = field(default_factory=time.time)
    end_timestamp: float | None = None
    attributes: dict[str, AttributeValue] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)
    sampled: bool | None = None
    origin: str | None = None
    children: list["Span"] = field(default_factory=list)
    parent: "Span | None" = field(default=None, repr=False)
    transaction: TransactionState | None = field(default=None, repr=False)

    @classmethod
    def from_options(cls, options: SpanOptions) -> "Span":
        return cls(
            name=options.name,
            trace_id=options.trace_id or generate_trace_id(),
            parent_span_id=options.parent_span_id,
            op=options.op,
            start_timestamp=time.time() if options.start_time is None else options.start_time,
            attributes=dict(options.attributes),
            tags=dict(options.tags),
            data=dict(options.data),
            sampled=options.sampled,
            origin=options.origin,
        )

    # === Lifecycle ===

    def end(self, end_timestamp: float | None = None) -> None:
        """End the span. Only the first call sets the end time."""
        if self.end_timestamp is not None:
            return
        self.end_timestamp = time.time() if end_timestamp is None else end_timestamp

    def is_recording(self) -> bool:
        return self.end_timestamp is None

    @property
    def duration(self) -> float | None:
        """Seconds between start and end; None while recording."""
        if self.end_timestamp is None:
            return None
        return self.end_timestamp - self.start_timestamp

    # === Mutators (no-ops once ended) ===

    def set_attribute(self, key: str, value: AttributeValue) -> "Span":
        if self.is_recording():
            self.attributes[key] = value
        return self

    def set_attributes(self, attributes: Mapping[str, AttributeValue]) -> "Span":
        if self.is_recording():
            self.attributes.update(attributes)
        return self

    def set_tag(self, key: str, value: str) -> "Span":
        if self.is_recording():
            self.tags[key] = value
        return self

    def set_data(self, key: str, value: Any) -> "Span":
        if self.is_recording():
            self.data[key] = value
        return self

    def set_status(self, status: SpanStatus | str) -> "Span":
        self.status = status if isinstance(status, SpanStatus) else SpanStatus(code=status)
        return self

    def update_name(self, name: str) -> "Span":
        self.name = name
        return self

    # === Relationships ===

    def add_child(self, child: "Span") -> None:
        """Attach child to this span, re-parenting it into this span's trace."""
        self.children.append(child)
        child.parent = self
        child.parent_span_id = self.span_id
        child.trace_id = self.trace_id

    def start_child(self, options: SpanOptions) -> "Span":
        """Create a child sharing this span's trace.

        ``sampled`` is inherited unless the options set it explicitly. Children
        of a transaction are registered in its span list.
        """
        child = Span.from_options(options)
        child.trace_id = self.trace_id
        child.parent_span_id = self.span_id
        child.sampled = options.sampled if options.sampled is not None else self.sampled
        self.add_child(child)
        if self.transaction is not None:
            self.transaction.spans.append(child)
        return child

    def span_context(self) -> dict[str, Any]:
        return {
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "parent_span_id": self.parent_span_id,
            "sampled": self.sampled,
            "trace_flags": 1 if self.sampled else 0,
        }

    def trace_context(self) -> TraceContextPayload:
        """The ``contexts.trace`` entry for events raised under this span."""
        context: TraceContextPayload = {"trace_id": self.trace_id, "span_id": self.span_id}
        if self.parent_span_id:
            context["parent_span_id"] = self.parent_span_id
        if self.op:
            context["op"] = self.op
        if self.status.is_set:
            context["status"] = str(self.status.code)
        return context


# =============================================================================
# Variant functions
# =============================================================================


def is_transaction(span: Span) -> bool:
    return span.transaction is not None


def create_transaction(options: SpanOptions, capture: CaptureCallback | None = None) -> Span:
    """Create a root span carrying transaction state."""
    span = Span.from_options(options)
    span.transaction = TransactionState(
        name=options.name,
        metadata={"source": options.source, **options.metadata},
        trim_end=options.trim_end,
        capture=capture,
    )
    return span


def register_span(transaction: Span, span: Span) -> None:
    """Record span as belonging to the transaction (for serialization and trim_end)."""
    state = _require_transaction(transaction)
    state.spans.append(span)


def set_transaction_name(transaction: Span, name: str, source: str | None = None) -> None:
    state = _require_transaction(transaction)
    state.name = name
    transaction.name = name
    if source:
        state.metadata["source"] = source


def finish_transaction(transaction: Span, end_timestamp: float | None = None) -> str | None:
    """Finish a transaction and emit its event.

    One-shot: returns None if already ended. With ``trim_end`` the end time
    becomes the latest child end. Unsampled (``sampled is False``)
    transactions end without emitting.

    Returns:
        The emitted event id, or None when nothing was emitted.
    """
    state = _require_transaction(transaction)
    if transaction.end_timestamp is not None:
        return None

    final_end = end_timestamp
    if state.trim_end and state.spans:
        child_ends = [s.end_timestamp for s in state.spans if s.end_timestamp is not None]
        if child_ends:
            final_end = max(child_ends)

    transaction.end(final_end)

    if transaction.sampled is False:
        return None

    event_id = generate_event_id()
    event: Event = {**span_to_json(transaction), "event_id": event_id, "type": EventType.TRANSACTION.value}
    if state.capture is not None:
        try:
            state.capture(event)
        except Exception as e:
            logger.warning("Failed to capture transaction", transaction=state.name, error=str(e))
    return event_id


def span_to_json(span: Span) -> dict[str, Any]:
    """Wire form of a span, or of a transaction when the span carries one."""
    result: dict[str, Any] = {
        "span_id": span.span_id,
        "trace_id": span.trace_id,
        "start_timestamp": span.start_timestamp,
    }
    if span.parent_span_id:
        result["parent_span_id"] = span.parent_span_id
    if span.op:
        result["op"] = span.op
    if span.name:
        result["description"] = span.name
    if span.status.is_set:
        result["status"] = str(span.status.code)
    if span.end_timestamp is not None:
        result["timestamp"] = span.end_timestamp
    if span.tags:
        result["tags"] = dict(span.tags)
    combined = dict(span.data)
    combined.update({k: v for k, v in span.attributes.items() if v is not None})
    if combined:
        result["data"] = combined
    if span.origin:
        result["origin"] = span.origin

    state = span.transaction
    if state is None:
        return result

    spans_json = [s for s in state.spans if s.end_timestamp is not None]
    spans_json.extend(
        c for c in span.children if c.end_timestamp is not None and not any(c is s for s in state.spans)
    )
    result.update(
        {
            "type": EventType.TRANSACTION.value,
            "transaction": state.name,
            "spans": [span_to_json(s) for s in spans_json],
            "contexts": {"trace": span.trace_context()},
            "transaction_info": {"source": state.source},
        }
    )
    return result


def _require_transaction(span: Span) -> TransactionState:
    if span.transaction is None:
        raise TypeError(f"Span {span.span_id} is not a transaction")
    return span.transaction


# =============================================================================
# Span utilities
# =============================================================================

_HTTP_STATUS_MESSAGES: dict[int, str] = {
    400: SpanStatusCode.INVALID_ARGUMENT,
    401: SpanStatusCode.UNAUTHENTICATED,
    403: SpanStatusCode.PERMISSION_DENIED,
    404: SpanStatusCode.NOT_FOUND,
    409: "already_exists",
    429: SpanStatusCode.RESOURCE_EXHAUSTED,
    499: SpanStatusCode.CANCELLED,
    500: SpanStatusCode.INTERNAL_ERROR,
    501: "unimplemented",
    503: SpanStatusCode.UNAVAILABLE,
    504: SpanStatusCode.DEADLINE_EXCEEDED,
}


def span_status_from_http_code(http_status: int) -> SpanStatus:
    """Map an HTTP response status onto a span status."""
    if 200 <= http_status < 400:
        return SpanStatus(code=SpanStatusCode.OK)
    if http_status in _HTTP_STATUS_MESSAGES:
        return SpanStatus(code=SpanStatusCode.ERROR, message=str(_HTTP_STATUS_MESSAGES[http_status]))
    if 400 <= http_status < 500:
        return SpanStatus(code=SpanStatusCode.ERROR, message=SpanStatusCode.INVALID_ARGUMENT.value)
    if http_status >= 500:
        return SpanStatus(code=SpanStatusCode.ERROR, message=SpanStatusCode.INTERNAL_ERROR.value)
    return SpanStatus()


def set_http_status(span: Span, http_status: int) -> None:
    span.set_attribute("http.response.status_code", http_status)
    span.set_status(span_status_from_http_code(http_status))


def get_root_span(span: Span) -> Span:
    current = span
    while current.parent is not None:
        current = current.parent
    return current


def is_descendant_of(span: Span, ancestor: Span) -> bool:
    current = span.parent
    while current is not None:
        if current is ancestor:
            return True
        current = current.parent
    return False


def get_all_spans(root: Span) -> list[Span]:
    """root followed by every descendant, depth first."""
    spans = [root]
    for child in root.children:
        spans.extend(get_all_spans(child))
    return spans
