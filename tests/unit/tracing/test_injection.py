# tests/unit/tracing/test_injection.py
"""Tests for outgoing header injection."""

import re

import httpx
import pytest
import respx

from tracelight.tracing.context import TraceContext
from tracelight.tracing.injection import (
    TracingHeaderInjector,
    inject_tracing_headers,
    is_same_origin,
    should_inject_headers,
    should_propagate_to,
)
from tracelight.tracing.span import Span

TRACE_ID = "a" * 32
SPAN_ID = "b" * 16


@pytest.fixture
def span() -> Span:
    return Span(name="checkout", trace_id=TRACE_ID, span_id=SPAN_ID, sampled=True)


class TestTargets:
    def test_no_targets_never_propagates(self) -> None:
        assert not should_propagate_to("https://api.example.com", None)
        assert not should_propagate_to("https://api.example.com", [])

    def test_substring_and_regex(self) -> None:
        targets = ["api.internal", re.compile(r"^https://billing\.")]
        assert should_propagate_to("https://api.internal/v1", targets)
        assert should_propagate_to("https://billing.example.com", targets)
        assert not should_propagate_to("https://cdn.example.com", targets)

    def test_same_origin(self) -> None:
        origin = "https://app.example.com"
        assert is_same_origin("/api/users", origin)
        assert is_same_origin("https://app.example.com/api", origin)
        assert not is_same_origin("http://app.example.com/api", origin)
        assert not is_same_origin("https://app.example.com:8443/api", origin)
        assert not is_same_origin("/api", None)

    def test_targets_take_precedence_over_origin(self) -> None:
        origin = "https://app.example.com"
        assert not should_inject_headers("https://app.example.com/x", ["api.internal"], origin=origin)
        assert should_inject_headers("https://app.example.com/x", None, origin=origin)
        assert not should_inject_headers("https://app.example.com/x", None, allow_same_origin=False, origin=origin)


class TestInjection:
    def test_dict_concatenates_existing_baggage(self, span: Span) -> None:
        headers = {"Baggage": "vendor=1", "Accept": "application/json"}
        result = inject_tracing_headers(headers, span, {"public_key": "pk"})

        assert result["sentry-trace"] == f"{TRACE_ID}-{SPAN_ID}-1"
        assert result["Baggage"].startswith("vendor=1,sentry-trace_id=")
        assert "baggage" not in result
        assert result["Accept"] == "application/json"
        assert headers == {"Baggage": "vendor=1", "Accept": "application/json"}

    def test_none_headers(self, span: Span) -> None:
        result = inject_tracing_headers(None, span)
        assert set(result) == {"sentry-trace", "baggage"}

    def test_httpx_headers(self, span: Span) -> None:
        headers = httpx.Headers({"baggage": "vendor=1", "x-request-id": "r1"})
        result = inject_tracing_headers(headers, span)
        assert isinstance(result, httpx.Headers)
        assert result["baggage"].startswith("vendor=1,sentry-")
        assert result["x-request-id"] == "r1"
        assert "sentry-trace" not in headers

    def test_pair_list(self, span: Span) -> None:
        pairs = [("Sentry-Trace", "stale"), ("Baggage", "vendor=1"), ("Accept", "*/*")]
        result = inject_tracing_headers(pairs, span)
        assert result[0][0] == "Baggage"
        assert result[0][1].startswith("vendor=1,sentry-")
        assert result[1] == ("Accept", "*/*")
        assert result[-1] == ("sentry-trace", f"{TRACE_ID}-{SPAN_ID}-1")
        assert len(result) == 3

    def test_pair_list_without_baggage(self, span: Span) -> None:
        result = inject_tracing_headers([("Accept", "*/*")], span)
        assert [name for name, _ in result] == ["Accept", "baggage", "sentry-trace"]


class TestRequestHook:
    @respx.mock
    @pytest.mark.asyncio
    async def test_async_hook_injects_for_targets(self, span: Span) -> None:
        route = respx.get("https://api.internal/users").mock(return_value=httpx.Response(200))
        respx.get("https://cdn.example.com/logo.png").mock(return_value=httpx.Response(200))
        context = TraceContext()
        injector = TracingHeaderInjector(targets=("api.internal",), dsc={"public_key": "pk"})

        async def call() -> None:
            async with httpx.AsyncClient(event_hooks={"request": [injector.request_hook(context)]}) as client:
                await client.get("https://api.internal/users")
                await client.get("https://cdn.example.com/logo.png")

        await context.run_with_span(span, call)

        sent = route.calls.last.request
        assert sent.headers["sentry-trace"] == f"{TRACE_ID}-{SPAN_ID}-1"
        assert "sentry-public_key=pk" in sent.headers["baggage"]
        cdn_request = respx.calls[-1].request
        assert "sentry-trace" not in cdn_request.headers

    @respx.mock
    def test_sync_hook_without_active_span(self) -> None:
        route = respx.get("https://api.internal/users").mock(return_value=httpx.Response(200))
        injector = TracingHeaderInjector(targets=("api.internal",))
        with httpx.Client(event_hooks={"request": [injector.sync_request_hook(TraceContext())]}) as client:
            client.get("https://api.internal/users")
        assert "sentry-trace" not in route.calls.last.request.headers
