"""Active span / transaction tracking across sync and async call chains.

TraceContext never touches module-level globals: it is constructed with a
backend and handed to whatever needs it (the Tracer, the Client).

Backends:
    CONTEXTVARS (default): one contextvars.ContextVar per slot. Each
        asyncio task runs in a copy of the context, so concurrently
        in-flight tasks never see each other's active span.
    SINGLE_SLOT: one plain attribute per slot. For runtimes where context
        variables are unavailable or not propagated (some embedded
        interpreters and callback-driven event loops). Interleaved async
        operations CAN observe each other's active span with this backend;
        this is a known limitation, not a bug.

run() semantics are identical for both backends: the value is installed
for the duration of the callable and the previous value is restored when
it returns or raises. If the callable returns an awaitable, the returned
value is a coroutine that re-installs the value around the await so the
value stays active across every suspension point.
"""

import inspect
from collections.abc import Awaitable, Callable
from contextvars import ContextVar
from enum import StrEnum
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from tracelight.tracing.span import Span

T = TypeVar("T")


class ContextBackend(StrEnum):
    """Selects the ContextStorage implementation."""

    CONTEXTVARS = "contextvars"
    SINGLE_SLOT = "single_slot"


@runtime_checkable
class ContextStorage(Protocol[T]):
    """One slot of ambient state: get/set plus scoped run()."""

    def get(self) -> T | None: ...

    def set(self, value: T | None) -> None: ...

    def run(self, value: T | None, fn: Callable[[], Any]) -> Any: ...


class ContextVarStorage(Generic[T]):
    """Slot backed by a ContextVar (per-task isolation under asyncio)."""

    def __init__(self, name: str) -> None:
        self._var: ContextVar[T | None] = ContextVar(name, default=None)

    def get(self) -> T | None:
        return self._var.get()

    def set(self, value: T | None) -> None:
        self._var.set(value)

    def run(self, value: T | None, fn: Callable[[], Any]) -> Any:
        token = self._var.set(value)
        try:
            result = fn()
        finally:
            self._var.reset(token)
        if inspect.isawaitable(result):
            return self._run_awaitable(value, result)
        return result

    async def _run_awaitable(self, value: T | None, awaitable: Awaitable[Any]) -> Any:
        token = self._var.set(value)
        try:
            return await awaitable
        finally:
            self._var.reset(token)


class SingleSlotStorage(Generic[T]):
    """Slot backed by a single shared attribute (no per-task isolation)."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._value: T | None = None

    def get(self) -> T | None:
        return self._value

    def set(self, value: T | None) -> None:
        self._value = value

    def run(self, value: T | None, fn: Callable[[], Any]) -> Any:
        previous = self._value
        self._value = value
        try:
            result = fn()
        finally:
            self._value = previous
        if inspect.isawaitable(result):
            return self._run_awaitable(value, result)
        return result

    async def _run_awaitable(self, value: T | None, awaitable: Awaitable[Any]) -> Any:
        previous = self._value
        self._value = value
        try:
            return await awaitable
        finally:
            self._value = previous


def create_storage(backend: ContextBackend | str, name: str) -> ContextStorage[Any]:
    """Build one storage slot for the given backend."""
    match ContextBackend(backend):
        case ContextBackend.CONTEXTVARS:
            return ContextVarStorage(name)
        case ContextBackend.SINGLE_SLOT:
            return SingleSlotStorage(name)


class TraceContext:
    """Active span, active transaction, incoming trace data and suppression.

    Example:
        >>> context = TraceContext()
        >>> context.run_with_span(span, lambda: context.get_active_span() is span)
        True
    """

    def __init__(self, backend: ContextBackend | str = ContextBackend.CONTEXTVARS) -> None:
        self.backend = ContextBackend(backend)
        # Instance-unique names keep ContextVars of separate TraceContexts apart in debug output.
        prefix = f"tracelight_{id(self):x}"
        self._span: ContextStorage[Span] = create_storage(self.backend, f"{prefix}_span")
        self._transaction: ContextStorage[Span] = create_storage(self.backend, f"{prefix}_transaction")
        self._suppressed: ContextStorage[bool] = create_storage(self.backend, f"{prefix}_suppressed")
        self._propagation: ContextStorage[Any] = create_storage(self.backend, f"{prefix}_propagation")

    # === Reads ===

    def is_tracing_suppressed(self) -> bool:
        return bool(self._suppressed.get())

    def get_active_span(self) -> Span | None:
        """The active span, or None while tracing is suppressed."""
        if self.is_tracing_suppressed():
            return None
        return self._span.get()

    def get_active_transaction(self) -> Span | None:
        """The active transaction, or None while tracing is suppressed."""
        if self.is_tracing_suppressed():
            return None
        return self._transaction.get()

    def get_active_span_or_transaction(self) -> Span | None:
        return self.get_active_span() or self.get_active_transaction()

    def get_propagation_data(self) -> Any:
        """Incoming trace data installed by trace continuation, if any."""
        return self._propagation.get()

    # === Scoped runs ===

    def run_with_span(self, span: Span | None, fn: Callable[[], T]) -> T:
        return self._span.run(span, fn)

    def run_with_transaction(self, transaction: Span | None, fn: Callable[[], T]) -> T:
        return self._transaction.run(transaction, fn)

    def run_with_context(self, span: Span | None, transaction: Span | None, fn: Callable[[], T]) -> T:
        """Install both span and transaction for the duration of fn."""
        return self._span.run(span, lambda: self._transaction.run(transaction, fn))

    def run_with_suppression(self, fn: Callable[[], T]) -> T:
        """Run fn with tracing suppressed (active span reads return None)."""
        return self._suppressed.run(True, fn)

    def run_with_propagation(self, data: Any, fn: Callable[[], T]) -> T:
        return self._propagation.run(data, fn)

    def clear(self) -> None:
        """Reset every slot in the current context."""
        self._span.set(None)
        self._transaction.set(None)
        self._suppressed.set(None)
        self._propagation.set(None)
