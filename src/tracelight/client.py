"""Client facade tying options, scope, tracing, pipeline and transport together.

Capture APIs are fail-safe: they log and return instead of raising into
the instrumented application.

Example:
    options = ClientOptions(dsn="https://key@o0.ingest.example.com/42", traces_sample_rate=1.0)
    async with Client(options) as client:
        try:
            handle()
        except Exception as e:
            await client.capture_exception(e)
"""

import asyncio
from types import TracebackType
from typing import Any

import structlog

from tracelight.contracts.enums import Level
from tracelight.contracts.events import Event, EventHint, EventProcessor
from tracelight.core.config import ClientOptions
from tracelight.core.eventbuilder import event_from_exception, event_from_message
from tracelight.core.ids import generate_event_id
from tracelight.core.integrations import IntegrationManager
from tracelight.core.logging import set_sdk_debug
from tracelight.core.pipeline import EventPipeline, EventSender, PipelineResult
from tracelight.core.scope import Scope
from tracelight.core.storage import StorageProtocol
from tracelight.tracing.api import Tracer
from tracelight.tracing.context import TraceContext
from tracelight.tracing.injection import TracingHeaderInjector
from tracelight.tracing.sampling import SamplingStats
from tracelight.transport.client import IngestionClient

logger = structlog.get_logger(__name__)


class Client:
    """Captures errors, messages and transactions for one configuration.

    Args:
        options: Validated client options.
        storage: Optional storage collaborator for finalized events.
        transport: Optional sender. When omitted and the options carry a DSN
            with forwarding enabled, an IngestionClient is created (and closed
            by close()).
        integrations: Integrations to register instead of the built-in ones.
    """

    def __init__(
        self,
        options: ClientOptions,
        storage: StorageProtocol | None = None,
        transport: EventSender | None = None,
        integrations: list[Any] | None = None,
    ) -> None:
        self.options = options
        set_sdk_debug(options.debug)

        self._owned_transport: IngestionClient | None = None
        dsn = options.parsed_dsn
        if transport is None and dsn is not None and options.forward_to_backend:
            self._owned_transport = IngestionClient(
                dsn,
                tunnel=options.tunnel,
                timeout=options.transport_timeout,
                max_retries=options.max_retries,
                retry_delay=options.retry_delay,
            )
            transport = self._owned_transport

        self.integrations = IntegrationManager()
        if integrations is None:
            self.integrations.register_builtin_integrations()
        else:
            for integration in integrations:
                self.integrations.register(integration)

        self.stats = SamplingStats()
        self.scope = Scope(max_breadcrumbs=options.max_breadcrumbs)
        self.pipeline = EventPipeline(
            options,
            storage=storage,
            transport=transport,
            processors=self.integrations.get_event_processors(options),
            stats=self.stats,
        )
        self.trace_context = TraceContext(options.context_backend)
        self.tracer = Tracer(
            self.trace_context,
            traces_sample_rate=options.traces_sample_rate,
            traces_sampler=options.traces_sampler,
            capture=self._capture_transaction,
            stats=self.stats,
        )
        self._tasks: set[asyncio.Task[PipelineResult]] = set()
        self._queued_transactions: list[Event] = []

    # === Capture ===

    async def capture_exception(
        self,
        error: object,
        hint: EventHint | None = None,
        scope: Scope | None = None,
    ) -> str:
        """Capture an exception (or any raised value). Returns the event id."""
        hint = {**(hint or {}), "original_exception": error}
        hint.setdefault("event_id", generate_event_id())
        try:
            event = event_from_exception(error, hint, rules=self.options.in_app_rules)
        except Exception as e:
            logger.warning("Failed to build exception event", error=str(e))
            return hint["event_id"]
        await self._process(event, hint, scope)
        return hint["event_id"]

    async def capture_message(
        self,
        message: str,
        level: Level | str = Level.INFO,
        hint: EventHint | None = None,
        scope: Scope | None = None,
    ) -> str:
        """Capture a message event. Returns the event id."""
        hint = dict(hint or {})
        hint.setdefault("event_id", generate_event_id())
        try:
            event = event_from_message(
                message,
                level=level,
                hint=hint,
                attach_stacktrace=self.options.attach_stacktrace,
                rules=self.options.in_app_rules,
            )
        except Exception as e:
            logger.warning("Failed to build message event", error=str(e))
            return hint["event_id"]
        await self._process(event, hint, scope)
        return hint["event_id"]

    async def capture_event(self, event: Event, hint: EventHint | None = None, scope: Scope | None = None) -> PipelineResult:
        """Run a caller-built event through the pipeline."""
        return await self._process(dict(event), hint or {}, scope)

    async def _process(self, event: Event, hint: EventHint, scope: Scope | None) -> PipelineResult:
        result = await self.pipeline.process_event(event, hint, self._scope_for_event(scope))
        if result.dropped:
            logger.debug("Event dropped", reason=str(result.reason), details=result.details)
        return result

    def _scope_for_event(self, scope: Scope | None) -> Scope:
        """The given (or client) scope, carrying the active span if it has none."""
        base = scope or self.scope
        active = self.trace_context.get_active_span_or_transaction()
        if active is None or base.span is not None:
            return base
        scoped = base.clone()
        scoped.set_span(active)
        return scoped

    def _capture_transaction(self, event: Event) -> None:
        """Capture callback for finished transactions.

        Inside a running event loop the transaction is processed as a task;
        otherwise it is queued until flush().
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._queued_transactions.append(event)
            return
        task = loop.create_task(self.pipeline.process_event(event, {}, self.scope, presampled=True))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def add_event_processor(self, processor: EventProcessor) -> None:
        self.pipeline.add_event_processor(processor)

    def header_injector(self) -> TracingHeaderInjector:
        """Injector configured from ``trace_propagation_targets`` and the DSN."""
        dsn = self.options.parsed_dsn
        dsc = {
            "public_key": dsn.public_key if dsn else None,
            "release": self.options.release,
            "environment": self.options.environment,
        }
        return TracingHeaderInjector(targets=self.options.trace_propagation_targets, dsc=dsc)

    # === Lifecycle ===

    async def flush(self) -> None:
        """Wait for in-flight transaction processing and drain queued transactions."""
        queued, self._queued_transactions = self._queued_transactions, []
        for event in queued:
            await self.pipeline.process_event(event, {}, self.scope, presampled=True)
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.flush()
        if self._owned_transport is not None:
            await self._owned_transport.aclose()

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
