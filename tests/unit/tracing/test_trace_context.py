# tests/unit/tracing/test_trace_context.py
"""Tests for active-span tracking on both context backends."""

import asyncio

import pytest

from tracelight.tracing.context import (
    ContextBackend,
    ContextStorage,
    ContextVarStorage,
    SingleSlotStorage,
    TraceContext,
    create_storage,
)
from tracelight.tracing.span import Span

BACKENDS = [ContextBackend.CONTEXTVARS, ContextBackend.SINGLE_SLOT]


class TestStorageFactory:
    def test_backends(self) -> None:
        assert isinstance(create_storage("contextvars", "x"), ContextVarStorage)
        assert isinstance(create_storage(ContextBackend.SINGLE_SLOT, "x"), SingleSlotStorage)
        assert isinstance(create_storage("contextvars", "x"), ContextStorage)

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError):
            create_storage("thread_local", "x")


@pytest.mark.parametrize("backend", BACKENDS)
class TestRunSemantics:
    def test_run_restores_previous(self, backend: ContextBackend) -> None:
        context = TraceContext(backend)
        outer, inner = Span(name="outer"), Span(name="inner")

        def nested() -> Span | None:
            return context.run_with_span(inner, context.get_active_span)

        assert context.run_with_span(outer, nested) is inner
        assert context.get_active_span() is None

    def test_restored_after_exception(self, backend: ContextBackend) -> None:
        context = TraceContext(backend)

        def explode() -> None:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            context.run_with_span(Span(name="s"), explode)
        assert context.get_active_span() is None

    def test_suppression_hides_spans(self, backend: ContextBackend) -> None:
        context = TraceContext(backend)
        span = Span(name="s")

        def read() -> tuple[Span | None, Span | None]:
            return context.get_active_span(), context.get_active_transaction()

        seen = context.run_with_context(span, span, lambda: context.run_with_suppression(read))
        assert seen == (None, None)

    def test_span_or_transaction(self, backend: ContextBackend) -> None:
        context = TraceContext(backend)
        transaction = Span(name="tx")
        assert context.run_with_transaction(transaction, context.get_active_span_or_transaction) is transaction

    @pytest.mark.asyncio
    async def test_value_active_across_awaits(self, backend: ContextBackend) -> None:
        context = TraceContext(backend)
        span = Span(name="async")

        async def work() -> Span | None:
            await asyncio.sleep(0)
            return context.get_active_span()

        assert await context.run_with_span(span, work) is span
        assert context.get_active_span() is None

    def test_clear(self, backend: ContextBackend) -> None:
        context = TraceContext(backend)
        context._span.set(Span(name="leaked"))
        context.clear()
        assert context.get_active_span() is None


class TestIsolation:
    @pytest.mark.asyncio
    async def test_contextvars_isolate_concurrent_tasks(self) -> None:
        context = TraceContext(ContextBackend.CONTEXTVARS)
        first, second = Span(name="first"), Span(name="second")
        started = asyncio.Event()

        async def observe(span: Span, wait: bool) -> Span | None:
            async def body() -> Span | None:
                if wait:
                    await started.wait()
                else:
                    started.set()
                await asyncio.sleep(0)
                return context.get_active_span()

            return await context.run_with_span(span, body)

        results = await asyncio.gather(observe(first, True), observe(second, False))
        assert results[0] is first
        assert results[1] is second

    def test_separate_contexts_do_not_share(self) -> None:
        a, b = TraceContext(), TraceContext()
        span = Span(name="only-a")
        assert a.run_with_span(span, b.get_active_span) is None
