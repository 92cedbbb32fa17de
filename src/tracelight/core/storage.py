"""Storage collaborator for captured events, sessions and spans.

The pipeline hands finalized events to a StorageProtocol implementation
and never waits on its success: storage failures are logged by the
caller. All reads return deep copies so callers cannot mutate stored
records.
"""

import copy
import json
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from tracelight.contracts.events import Event

DEFAULT_MAX_EVENTS = 1000
DEFAULT_MAX_SPANS = 5000
DEFAULT_MAX_SESSIONS = 100


@dataclass(frozen=True, slots=True)
class RecordFilter:
    """Query over stored records.

    ``start_time``/``end_time`` bound the record timestamp (seconds,
    inclusive). ``search`` is a case-insensitive substring match over the
    record's JSON text. ``offset``/``limit`` apply after filtering.
    """

    level: str | None = None
    start_time: float | None = None
    end_time: float | None = None
    search: str | None = None
    trace_id: str | None = None
    limit: int | None = None
    offset: int = 0


@runtime_checkable
class StorageProtocol(Protocol):
    """What the pipeline needs from a storage backend."""

    async def save_event(self, event: Event) -> None: ...

    async def get_events(self, query: RecordFilter | None = None) -> list[Event]: ...

    async def clear_events(self) -> None: ...

    async def save_session(self, session: dict[str, Any]) -> None: ...

    async def get_sessions(self, query: RecordFilter | None = None) -> list[dict[str, Any]]: ...

    async def save_span(self, span: dict[str, Any]) -> None: ...

    async def get_spans(self, query: RecordFilter | None = None) -> list[dict[str, Any]]: ...

    async def clear_spans(self) -> None: ...


def _timestamp(record: dict[str, Any]) -> float | None:
    for key in ("timestamp", "start_timestamp", "started"):
        value = record.get(key)
        if isinstance(value, int | float):
            return float(value)
    return None


def _matches(record: dict[str, Any], query: RecordFilter) -> bool:
    if query.level is not None and record.get("level") != query.level:
        return False
    if query.trace_id is not None:
        trace = (record.get("contexts") or {}).get("trace") or {}
        if query.trace_id not in (record.get("trace_id"), trace.get("trace_id")):
            return False
    if query.start_time is not None or query.end_time is not None:
        ts = _timestamp(record)
        if ts is None:
            return False
        if query.start_time is not None and ts < query.start_time:
            return False
        if query.end_time is not None and ts > query.end_time:
            return False
    if query.search:
        text = json.dumps(record, default=str).lower()
        if query.search.lower() not in text:
            return False
    return True


def apply_filter(records: Iterable[dict[str, Any]], query: RecordFilter | None) -> list[dict[str, Any]]:
    """Filter, paginate and deep-copy records."""
    if query is None:
        return [copy.deepcopy(r) for r in records]
    selected = [r for r in records if _matches(r, query)]
    end = None if query.limit is None else query.offset + query.limit
    return [copy.deepcopy(r) for r in selected[query.offset : end]]


class MemoryStorage:
    """Bounded in-process storage; the oldest records are evicted first."""

    def __init__(
        self,
        max_events: int = DEFAULT_MAX_EVENTS,
        max_spans: int = DEFAULT_MAX_SPANS,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
    ) -> None:
        self._events: deque[Event] = deque(maxlen=max_events)
        self._spans: deque[dict[str, Any]] = deque(maxlen=max_spans)
        self._sessions: deque[dict[str, Any]] = deque(maxlen=max_sessions)

    async def save_event(self, event: Event) -> None:
        self._events.append(copy.deepcopy(event))

    async def get_events(self, query: RecordFilter | None = None) -> list[Event]:
        return apply_filter(self._events, query)

    async def clear_events(self) -> None:
        self._events.clear()

    async def save_session(self, session: dict[str, Any]) -> None:
        sid = session.get("sid")
        if sid is not None:
            # Session updates replace the stored record for the same sid.
            for existing in list(self._sessions):
                if existing.get("sid") == sid:
                    self._sessions.remove(existing)
        self._sessions.append(copy.deepcopy(session))

    async def get_sessions(self, query: RecordFilter | None = None) -> list[dict[str, Any]]:
        return apply_filter(self._sessions, query)

    async def save_span(self, span: dict[str, Any]) -> None:
        self._spans.append(copy.deepcopy(span))

    async def get_spans(self, query: RecordFilter | None = None) -> list[dict[str, Any]]:
        return apply_filter(self._spans, query)

    async def clear_spans(self) -> None:
        self._spans.clear()

    def __len__(self) -> int:
        return len(self._events)
