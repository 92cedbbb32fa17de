"""Event processing pipeline.

Every captured event runs through these stages, strictly in order:

    1. pre-process      id, timestamp, platform, default level
    2. scope            merge contextual data; scope may drop
    3. processors       integration/user processors; None drops
    4. sampling         sample_rate (errors) / traces_sample_rate (transactions)
    5. filtering        ignore_errors, ignore_transactions, allow_urls, deny_urls
    6. before_send      user hook; None or raising drops
    7. finalize         normalization and truncation
    8. store            storage collaborator (failures logged, never raised)
    9. forward          transport, when relaying to the backend

Only stages 2-6 drop events. Anything that raises outside a stage's own
isolation is caught at the top of process_event and reported as
DropReason.ERROR; process_event never raises.
"""

import inspect
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import structlog

from tracelight.contracts.enums import DropReason, EventType, Level
from tracelight.contracts.events import Event, EventHint, EventProcessor
from tracelight.core.config import ClientOptions
from tracelight.core.eventbuilder import PLATFORM, finalize_event, timestamp_in_seconds
from tracelight.core.ids import generate_event_id
from tracelight.core.scope import Scope
from tracelight.core.storage import StorageProtocol
from tracelight.tracing.sampling import SamplingStats, should_sample_event

logger = structlog.get_logger(__name__)

SCOPE_DROPPED = "Scope returned None"


class EventSender(Protocol):
    """What the pipeline needs from a transport."""

    async def send(self, event: Event) -> Any: ...


@dataclass(frozen=True, slots=True)
class PipelineResult:
    """Outcome of process_event.

    ``event`` is the finalized event when it was kept, otherwise None with
    ``reason`` (and possibly ``details``) explaining the drop.
    """

    event: Event | None
    reason: DropReason | None = None
    details: str | None = None

    @property
    def dropped(self) -> bool:
        return self.event is None


def _processor_name(processor: Any) -> str:
    return getattr(processor, "__qualname__", None) or type(processor).__name__


class EventPipeline:
    """Runs events through the processing stages.

    Args:
        options: Client options (rates, filters, hooks, normalization limits).
        storage: Optional storage collaborator.
        transport: Optional sender; used only when ``options.forward_to_backend``.
        processors: Initial event processors, run in order.
        stats: Optional counters fed with every sampling decision.
    """

    def __init__(
        self,
        options: ClientOptions,
        storage: StorageProtocol | None = None,
        transport: EventSender | None = None,
        processors: Sequence[EventProcessor] = (),
        stats: SamplingStats | None = None,
    ) -> None:
        self.options = options
        self.storage = storage
        self.transport = transport
        self.stats = stats
        self._processors: list[EventProcessor] = list(processors)
        self._event_filter = options.event_filter

    # === Processor registry ===

    def add_event_processor(self, processor: EventProcessor) -> None:
        self._processors.append(processor)

    def clear_event_processors(self) -> None:
        self._processors.clear()

    def get_event_processors(self) -> list[EventProcessor]:
        return list(self._processors)

    # === Entry point ===

    async def process_event(
        self,
        event: Event,
        hint: EventHint | None = None,
        scope: Scope | None = None,
        *,
        presampled: bool = False,
    ) -> PipelineResult:
        """Run event through every stage.

        Args:
            event: The raw event (mutated by pre-processing).
            hint: Out-of-band data for processors and hooks.
            scope: Contextual data merged in stage 2.
            presampled: Skip stage 4; the tracer already sampled this transaction.

        Returns:
            PipelineResult with the finalized event or the drop reason.
        """
        hint = hint or {}
        try:
            processed = self._pre_process(event, hint)

            if scope is not None:
                scoped = await scope.apply_to_event(processed, hint)
                if scoped is None:
                    return PipelineResult(event=None, reason=DropReason.EVENT_PROCESSOR, details=SCOPE_DROPPED)
                processed = scoped

            after_processors = await self._run_event_processors(processed, hint)
            if after_processors is None:
                return PipelineResult(event=None, reason=DropReason.EVENT_PROCESSOR)
            processed = after_processors

            if not presampled and not self._apply_sampling(processed):
                return PipelineResult(event=None, reason=DropReason.SAMPLED)

            filter_detail = self._event_filter.check(processed)
            if filter_detail is not None:
                logger.debug("Event filtered", event_id=processed.get("event_id"), detail=filter_detail)
                return PipelineResult(event=None, reason=DropReason.FILTERED, details=filter_detail)

            after_hook = await self._run_before_send(processed, hint)
            if after_hook is None:
                return PipelineResult(event=None, reason=DropReason.BEFORE_SEND)
            processed = after_hook

            processed = finalize_event(
                processed,
                max_value_length=self.options.max_value_length,
                depth=self.options.normalize_depth,
                max_breadth=self.options.normalize_max_breadth,
            )

            await self._store(processed)

            if self.options.forward_to_backend and self.transport is not None:
                await self._forward(processed)

            return PipelineResult(event=processed)
        except Exception as e:
            logger.warning("Event pipeline failed", event_id=event.get("event_id"), error=str(e))
            return PipelineResult(event=None, reason=DropReason.ERROR, details=str(e))

    # === Stages ===

    def _pre_process(self, event: Event, hint: EventHint) -> Event:
        if not event.get("event_id"):
            event["event_id"] = hint.get("event_id") or generate_event_id()
        if not event.get("timestamp"):
            event["timestamp"] = timestamp_in_seconds()
        if not event.get("platform"):
            event["platform"] = PLATFORM
        if not event.get("level") and event.get("type") != EventType.TRANSACTION:
            event["level"] = Level.ERROR.value
        return event

    async def _run_event_processors(self, event: Event, hint: EventHint) -> Event | None:
        current = event
        for processor in self._processors:
            try:
                result = processor(current, hint)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                # Continue with the last good value
                logger.warning("Event processor failed", processor=_processor_name(processor), error=str(e))
                continue
            if result is None:
                logger.debug("Event dropped by processor", processor=_processor_name(processor))
                return None
            current = result
        return current

    def _apply_sampling(self, event: Event) -> bool:
        is_transaction = event.get("type") == EventType.TRANSACTION
        rate = self.options.traces_sample_rate if is_transaction else self.options.sample_rate
        sampled = should_sample_event(rate)
        if self.stats is not None:
            self.stats.record("transaction" if is_transaction else "error", sampled)
        return sampled

    async def _run_before_send(self, event: Event, hint: EventHint) -> Event | None:
        is_transaction = event.get("type") == EventType.TRANSACTION
        callback = self.options.before_send_transaction if is_transaction else self.options.before_send
        if callback is None:
            return event
        try:
            result = callback(event, hint)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.warning("before_send hook failed, dropping event", event_id=event.get("event_id"), error=str(e))
            return None
        return result

    async def _store(self, event: Event) -> None:
        if self.storage is None:
            return
        try:
            await self.storage.save_event(event)
            if event.get("type") == EventType.TRANSACTION:
                for span in event.get("spans") or []:
                    await self.storage.save_span(span)
        except Exception as e:
            logger.warning("Failed to store event", event_id=event.get("event_id"), error=str(e))

    async def _forward(self, event: Event) -> None:
        response = await self.transport.send(event)  # type: ignore[union-attr]
        status = getattr(response, "status_code", None)
        if status is not None and not 200 <= status < 300:
            logger.warning("Event not accepted by backend", event_id=event.get("event_id"), status_code=status)
