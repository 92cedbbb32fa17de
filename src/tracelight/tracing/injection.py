"""Outgoing request header injection.

Decides which outgoing requests receive correlation headers and merges
those headers into whatever header collection the caller holds:

- ``dict`` (or None): copied, ``sentry-trace`` set, baggage appended to
  any existing baggage key regardless of its casing.
- ``httpx.Headers``: copied and updated the same way.
- list of ``(name, value)`` pairs: an existing sentry-trace pair is
  removed, baggage merged in place, sentry-trace appended last.

Unrelated headers are never dropped.
"""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, overload
from urllib.parse import urlsplit

import httpx
import structlog

from tracelight.core.filtering import Pattern, matches_pattern
from tracelight.tracing.context import TraceContext
from tracelight.tracing.propagation import (
    BAGGAGE_HEADER,
    SENTRY_TRACE_HEADER,
    DynamicSamplingContext,
    get_traceparent_data,
)
from tracelight.tracing.span import Span

logger = structlog.get_logger(__name__)

DscInput = Mapping[str, str | None] | DynamicSamplingContext | None
HeaderPairs = list[tuple[str, str]]


def should_propagate_to(url: str, targets: Sequence[Pattern] | None) -> bool:
    """True iff targets is non-empty and url matches one (substring or regex)."""
    if not targets:
        return False
    return any(matches_pattern(url, target) for target in targets)


def is_same_origin(url: str, origin: str | None) -> bool:
    """Whether url shares scheme and host:port with origin.

    Relative URLs (no scheme or host) are same-origin by definition. Without
    an origin there is nothing to compare against and the answer is False.
    """
    if not origin:
        return False
    try:
        target = urlsplit(url)
        base = urlsplit(origin)
    except ValueError:
        return False
    if not target.scheme and not target.netloc:
        return True
    return target.scheme == base.scheme and target.netloc == base.netloc


def should_inject_headers(
    url: str,
    targets: Sequence[Pattern] | None,
    allow_same_origin: bool = True,
    origin: str | None = None,
) -> bool:
    """Configured targets decide when present; otherwise same-origin requests qualify."""
    if targets:
        return should_propagate_to(url, targets)
    if allow_same_origin:
        return is_same_origin(url, origin)
    return False


def create_trace_headers(span: Span, dsc: DscInput = None) -> dict[str, str]:
    sentry_trace, baggage = get_traceparent_data(span, dsc)
    return {SENTRY_TRACE_HEADER: sentry_trace, BAGGAGE_HEADER: baggage}


def _merge_baggage(existing: str | None, generated: str) -> str:
    if existing and generated:
        return f"{existing},{generated}"
    return existing or generated


@overload
def inject_tracing_headers(headers: httpx.Headers, span: Span, dsc: DscInput = None) -> httpx.Headers: ...
@overload
def inject_tracing_headers(headers: HeaderPairs, span: Span, dsc: DscInput = None) -> HeaderPairs: ...
@overload
def inject_tracing_headers(headers: Mapping[str, str] | None, span: Span, dsc: DscInput = None) -> dict[str, str]: ...


def inject_tracing_headers(headers: Any, span: Span, dsc: DscInput = None) -> Any:
    """Return a copy of headers with correlation headers merged in."""
    trace_headers = create_trace_headers(span, dsc)
    sentry_trace = trace_headers[SENTRY_TRACE_HEADER]
    baggage = trace_headers[BAGGAGE_HEADER]

    if isinstance(headers, httpx.Headers):
        merged = httpx.Headers(headers)
        merged[SENTRY_TRACE_HEADER] = sentry_trace
        merged[BAGGAGE_HEADER] = _merge_baggage(merged.get(BAGGAGE_HEADER), baggage)
        return merged

    if isinstance(headers, list | tuple):
        pairs: HeaderPairs = [(k, v) for k, v in headers if k.lower() != SENTRY_TRACE_HEADER]
        for index, (key, value) in enumerate(pairs):
            if key.lower() == BAGGAGE_HEADER:
                pairs[index] = (key, _merge_baggage(value, baggage))
                break
        else:
            pairs.append((BAGGAGE_HEADER, baggage))
        pairs.append((SENTRY_TRACE_HEADER, sentry_trace))
        return pairs

    result: dict[str, str] = dict(headers or {})
    result[SENTRY_TRACE_HEADER] = sentry_trace
    baggage_key = next((k for k in result if k.lower() == BAGGAGE_HEADER), None)
    if baggage_key is not None:
        result[baggage_key] = _merge_baggage(result[baggage_key], baggage)
    else:
        result[BAGGAGE_HEADER] = baggage
    return result


@dataclass(frozen=True, slots=True)
class TracingHeaderInjector:
    """Bundles propagation policy with the DSC to send.

    Example:
        >>> injector = TracingHeaderInjector(targets=("api.internal",))
        >>> client = httpx.AsyncClient(event_hooks={"request": [injector.request_hook(context)]})
    """

    targets: Sequence[Pattern] = field(default_factory=tuple)
    allow_same_origin: bool = True
    origin: str | None = None
    dsc: Mapping[str, str | None] | None = None

    def should_inject(self, url: str) -> bool:
        return should_inject_headers(url, self.targets, self.allow_same_origin, self.origin)

    def inject(self, headers: Any, span: Span) -> Any:
        return inject_tracing_headers(headers, span, self.dsc)

    def request_hook(self, context: TraceContext) -> Callable[[httpx.Request], Any]:
        """httpx request event hook injecting headers for the active span.

        The returned hook is a coroutine function, for httpx.AsyncClient.
        Use sync_request_hook() with httpx.Client.
        """

        async def hook(request: httpx.Request) -> None:
            self._inject_request(context, request)

        return hook

    def sync_request_hook(self, context: TraceContext) -> Callable[[httpx.Request], None]:
        def hook(request: httpx.Request) -> None:
            self._inject_request(context, request)

        return hook

    def _inject_request(self, context: TraceContext, request: httpx.Request) -> None:
        span = context.get_active_span_or_transaction()
        if span is None:
            return
        url = str(request.url)
        if not self.should_inject(url):
            return
        injected = inject_tracing_headers(request.headers, span, self.dsc)
        request.headers[SENTRY_TRACE_HEADER] = injected[SENTRY_TRACE_HEADER]
        request.headers[BAGGAGE_HEADER] = injected[BAGGAGE_HEADER]
        logger.debug("Injected tracing headers", url=url, trace_id=span.trace_id)
