"""Span creation APIs.

The Tracer decides where a new span goes:

    tracing suppressed           -> detached span, sampled=False
    active span exists           -> child of the active span
    no active transaction, or
    options.force_transaction    -> new sampled-or-not transaction
    otherwise                    -> child of the active transaction

New transactions continue incoming trace data installed by
continue_trace_* (trace id, parent span id, parent sampling decision).
"""

import inspect
from collections.abc import Callable
from typing import Any, TypeVar

import structlog

from tracelight.contracts.enums import SpanStatusCode
from tracelight.tracing.context import TraceContext
from tracelight.tracing.continuation import IncomingTraceData
from tracelight.tracing.sampling import (
    SamplingContext,
    SamplingStats,
    TracesSampler,
    should_sample_transaction,
)
from tracelight.tracing.span import (
    CaptureCallback,
    Span,
    SpanOptions,
    SpanStatus,
    create_transaction,
    finish_transaction,
    is_transaction,
    register_span,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class Tracer:
    """Creates spans and transactions against one TraceContext.

    Args:
        context: Where active spans live.
        traces_sample_rate: Rate for new root transactions (None: tracing off
            unless a sampler or parent decision says otherwise).
        traces_sampler: Optional per-transaction sampler.
        capture: Receives finished transaction events.
        stats: Optional counters fed with every transaction decision.
    """

    def __init__(
        self,
        context: TraceContext,
        *,
        traces_sample_rate: float | None = None,
        traces_sampler: TracesSampler | None = None,
        capture: CaptureCallback | None = None,
        stats: SamplingStats | None = None,
    ) -> None:
        self.context = context
        self.traces_sample_rate = traces_sample_rate
        self.traces_sampler = traces_sampler
        self.capture = capture
        self.stats = stats

    # === Creation ===

    def _new_transaction(self, options: SpanOptions) -> Span:
        incoming = self.context.get_propagation_data()
        if options.trace_id is None and isinstance(incoming, IncomingTraceData):
            trace_id, parent_span_id, parent_sampled = incoming.trace_id, incoming.parent_span_id, incoming.sampled
        else:
            trace_id, parent_span_id, parent_sampled = options.trace_id, options.parent_span_id, None

        transaction = create_transaction(options, capture=self.capture)
        if trace_id:
            transaction.trace_id = trace_id
        transaction.parent_span_id = parent_span_id

        if options.sampled is not None:
            transaction.sampled = options.sampled
            return transaction

        decision = should_sample_transaction(
            SamplingContext(
                name=options.name,
                op=options.op,
                parent_sampled=parent_sampled,
                attributes=dict(options.attributes),
                source=options.source,
                request_url=str(options.attributes.get("url.full") or "") or None,
            ),
            self.traces_sample_rate,
            self.traces_sampler,
        )
        transaction.sampled = decision.sampled
        if decision.sample_rate is not None:
            transaction.set_data("sentry.sample_rate", decision.sample_rate)
        if self.stats is not None:
            self.stats.record_decision("transaction", decision)
        logger.debug(
            "Transaction sampling decision",
            transaction=options.name,
            sampled=decision.sampled,
            reason=str(decision.reason),
        )
        return transaction

    def _create(self, options: SpanOptions) -> tuple[Span, Span | None]:
        """Returns (span, transaction the span belongs to)."""
        parent_span = self.context.get_active_span()
        parent_transaction = self.context.get_active_transaction()

        if parent_span is not None and not options.force_transaction:
            span = parent_span.start_child(options)
            if parent_transaction is not None and parent_transaction is not parent_span:
                register_span(parent_transaction, span)
            return span, parent_transaction

        if options.force_transaction or parent_transaction is None:
            transaction = self._new_transaction(options)
            return transaction, transaction

        return parent_transaction.start_child(options), parent_transaction

    def _detached(self, options: SpanOptions) -> Span:
        span = Span.from_options(options)
        span.sampled = False
        return span

    def _has_parent(self) -> bool:
        return self.context.get_active_span_or_transaction() is not None

    # === Public API ===

    def finish(self, span: Span, end_timestamp: float | None = None) -> str | None:
        """End a span; transactions are finished (and emitted when sampled)."""
        if is_transaction(span):
            return finish_transaction(span, end_timestamp)
        span.end(end_timestamp)
        return None

    def start_span(self, options: SpanOptions, callback: Callable[[Span], T]) -> T:
        """Run callback inside a new active span, ending it afterwards.

        Status becomes ``ok`` on success and ``internal_error`` if the
        callback raises (the exception propagates). Async callbacks return a
        coroutine; the span ends when that coroutine settles.
        """
        if self.context.is_tracing_suppressed() or (options.only_if_parent and not self._has_parent()):
            return callback(self._detached(options))

        span, transaction = self._create(options)
        return self.context.run_with_context(span, transaction, lambda: self._run_and_finish(span, callback))

    def _run_and_finish(self, span: Span, callback: Callable[[Span], Any]) -> Any:
        try:
            result = callback(span)
        except BaseException as e:
            self._fail(span, e)
            raise
        if inspect.isawaitable(result):
            return self._await_and_finish(span, result)
        self._succeed(span)
        return result

    async def _await_and_finish(self, span: Span, awaitable: Any) -> Any:
        try:
            value = await awaitable
        except BaseException as e:
            self._fail(span, e)
            raise
        self._succeed(span)
        return value

    def _succeed(self, span: Span) -> None:
        if not span.status.is_set:
            span.set_status(SpanStatusCode.OK)
        self.finish(span)

    def _fail(self, span: Span, error: BaseException) -> None:
        span.set_status(SpanStatus(code=SpanStatusCode.INTERNAL_ERROR, message=str(error)))
        self.finish(span)

    def start_span_manual(self, options: SpanOptions, callback: Callable[[Span, Callable[[], None]], T]) -> T:
        """Run callback inside a new active span that the callback ends itself.

        The callback receives the span and a ``finish`` function.
        """
        if self.context.is_tracing_suppressed() or (options.only_if_parent and not self._has_parent()):
            return callback(self._detached(options), lambda: None)

        span, transaction = self._create(options)

        def finish() -> None:
            self.finish(span)

        return self.context.run_with_context(span, transaction, lambda: callback(span, finish))

    def start_inactive_span(self, options: SpanOptions) -> Span:
        """Create a span without activating it. The caller must finish() it."""
        if self.context.is_tracing_suppressed() or (options.only_if_parent and not self._has_parent()):
            return self._detached(options)
        span, _ = self._create(options)
        return span

    def start_transaction(self, options: SpanOptions) -> Span:
        """Create and sample a new root transaction without activating it.

        Activate it with ``tracer.context.run_with_context(tx, tx, fn)``.
        """
        return self._new_transaction(options)

    def suppress_tracing(self, fn: Callable[[], T]) -> T:
        return self.context.run_with_suppression(fn)

    def start_new_trace(self, fn: Callable[[], T]) -> T:
        """Run fn detached from any active span, transaction or incoming trace."""
        return self.context.run_with_propagation(None, lambda: self.context.run_with_context(None, None, fn))

    def with_active_span(self, span: Span | None, fn: Callable[[Span | None], T]) -> T:
        return self.context.run_with_span(span, lambda: fn(span))
