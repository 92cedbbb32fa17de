"""Contextual data merged into every event.

Event values win over scope values for user, tags, extra and contexts;
scope breadcrumbs are prepended; a non-empty scope fingerprint replaces
the event's. ``contexts.trace`` of error and message events comes from the
scope span when one is set, otherwise from the propagation context.
"""

import copy
import inspect
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any

import structlog

from tracelight.contracts.enums import EventType
from tracelight.contracts.events import Breadcrumb, Event, EventHint, EventProcessor
from tracelight.core.ids import generate_span_id, generate_trace_id
from tracelight.tracing.span import Span

logger = structlog.get_logger(__name__)

DEFAULT_MAX_BREADCRUMBS = 100


@dataclass(slots=True)
class PropagationContext:
    """Trace identity used for events raised outside any span."""

    trace_id: str = field(default_factory=generate_trace_id)
    span_id: str = field(default_factory=generate_span_id)
    parent_span_id: str | None = None
    sampled: bool | None = None
    dsc: dict[str, str] = field(default_factory=dict)

    def trace_context(self) -> dict[str, Any]:
        context: dict[str, Any] = {"trace_id": self.trace_id, "span_id": self.span_id}
        if self.parent_span_id:
            context["parent_span_id"] = self.parent_span_id
        return context


class Scope:
    """Mutable bag of user, tags, extra, contexts and breadcrumbs.

    Args:
        max_breadcrumbs: Oldest breadcrumbs are evicted beyond this bound.
    """

    def __init__(self, max_breadcrumbs: int = DEFAULT_MAX_BREADCRUMBS) -> None:
        self.max_breadcrumbs = max_breadcrumbs
        self.event_processors: list[EventProcessor] = []
        self._reset()

    def _reset(self) -> None:
        self.user: dict[str, Any] | None = None
        self.tags: dict[str, str] = {}
        self.extra: dict[str, Any] = {}
        self.contexts: dict[str, dict[str, Any]] = {}
        self.breadcrumbs: deque[Breadcrumb] = deque(maxlen=self.max_breadcrumbs or None)
        self.fingerprint: list[str] = []
        self.level: str | None = None
        self.transaction_name: str | None = None
        self.span: Span | None = None
        self.propagation_context: PropagationContext = PropagationContext()

    # === Setters ===

    def set_user(self, user: dict[str, Any] | None) -> None:
        self.user = dict(user) if user else None

    def set_tag(self, key: str, value: str) -> None:
        self.tags[key] = value

    def set_tags(self, tags: dict[str, str]) -> None:
        self.tags.update(tags)

    def set_extra(self, key: str, value: Any) -> None:
        self.extra[key] = value

    def set_extras(self, extras: dict[str, Any]) -> None:
        self.extra.update(extras)

    def set_context(self, name: str, context: dict[str, Any] | None) -> None:
        if context is None:
            self.contexts.pop(name, None)
        else:
            self.contexts[name] = dict(context)

    def add_breadcrumb(self, breadcrumb: Breadcrumb) -> None:
        if self.max_breadcrumbs <= 0:
            return
        entry: Breadcrumb = {"timestamp": time.time(), **breadcrumb}
        self.breadcrumbs.append(entry)

    def clear_breadcrumbs(self) -> None:
        self.breadcrumbs.clear()

    def set_fingerprint(self, fingerprint: list[str]) -> None:
        self.fingerprint = list(fingerprint)

    def set_level(self, level: str | None) -> None:
        self.level = level

    def set_transaction_name(self, name: str | None) -> None:
        self.transaction_name = name

    def set_span(self, span: Span | None) -> None:
        self.span = span

    def set_propagation_context(self, context: PropagationContext) -> None:
        self.propagation_context = context

    def add_event_processor(self, processor: EventProcessor) -> None:
        self.event_processors.append(processor)

    def clone(self) -> "Scope":
        """Independent copy; the span is shared, everything else is copied."""
        other = Scope(self.max_breadcrumbs)
        other.user = copy.deepcopy(self.user)
        other.tags = dict(self.tags)
        other.extra = copy.deepcopy(self.extra)
        other.contexts = copy.deepcopy(self.contexts)
        other.breadcrumbs.extend(copy.deepcopy(list(self.breadcrumbs)))
        other.fingerprint = list(self.fingerprint)
        other.level = self.level
        other.transaction_name = self.transaction_name
        other.span = self.span
        other.propagation_context = copy.deepcopy(self.propagation_context)
        other.event_processors = list(self.event_processors)
        return other

    def clear(self) -> None:
        """Reset all data; event processors stay registered."""
        self._reset()

    # === Application ===

    async def apply_to_event(self, event: Event, hint: EventHint | None = None) -> Event | None:
        """Merge scope data into a copy of event, then run scope processors.

        Returns None when a scope processor drops the event. A processor
        that raises is logged and skipped.
        """
        result: Event = dict(event)

        if self.user:
            result["user"] = {**self.user, **(result.get("user") or {})}
        if self.tags:
            result["tags"] = {**self.tags, **(result.get("tags") or {})}
        if self.extra:
            result["extra"] = {**self.extra, **(result.get("extra") or {})}
        if self.contexts:
            result["contexts"] = {**self.contexts, **(result.get("contexts") or {})}
        if self.breadcrumbs:
            result["breadcrumbs"] = [*self.breadcrumbs, *(result.get("breadcrumbs") or [])]
        if self.fingerprint:
            result["fingerprint"] = list(self.fingerprint)
        if self.level and not result.get("level"):
            result["level"] = self.level
        if self.transaction_name and not result.get("transaction"):
            result["transaction"] = self.transaction_name

        # Transactions carry their own trace context.
        if result.get("type") != EventType.TRANSACTION:
            trace = dict(self.span.trace_context()) if self.span is not None else self.propagation_context.trace_context()
            contexts = dict(result.get("contexts") or {})
            contexts["trace"] = {**(contexts.get("trace") or {}), **trace}
            result["contexts"] = contexts

        for processor in self.event_processors:
            try:
                processed = processor(result, hint or {})
                if inspect.isawaitable(processed):
                    processed = await processed
            except Exception as e:
                logger.warning("Scope event processor failed", processor=_name(processor), error=str(e))
                continue
            if processed is None:
                return None
            result = processed
        return result


def _name(fn: Any) -> str:
    return getattr(fn, "__qualname__", None) or type(fn).__name__
