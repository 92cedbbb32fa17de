"""Event payload schema contracts.

Events are plain dicts because every pipeline stage (scope, processors,
before_send hooks supplied by users) reads and rewrites them freely and
the finished value is serialized verbatim into an envelope. The
TypedDicts below document the keys the SDK itself reads or writes.
"""

from collections.abc import Awaitable, Callable
from typing import Any, NotRequired, TypedDict

Event = dict[str, Any]
"""A single event payload (error, message, transaction or feedback)."""


class SdkInfo(TypedDict):
    """SDK identification stamped on events and envelope headers."""

    name: str
    version: str


class Mechanism(TypedDict, total=False):
    """How an exception was captured."""

    type: str
    handled: bool
    synthetic: bool
    data: dict[str, Any]


class StackFramePayload(TypedDict, total=False):
    """Wire form of a single stack frame."""

    filename: str
    abs_path: str
    function: str
    module: str
    lineno: int
    colno: int
    context_line: str
    in_app: bool


class ExceptionPayload(TypedDict, total=False):
    """Wire form of one entry of ``exception.values``."""

    type: str
    value: str
    module: str
    stacktrace: dict[str, list[StackFramePayload]]
    mechanism: Mechanism


class Breadcrumb(TypedDict, total=False):
    """A trail entry recorded before an event."""

    timestamp: float
    type: str
    category: str
    message: str
    level: str
    data: dict[str, Any]


class EventHint(TypedDict, total=False):
    """Out-of-band information passed alongside an event through the pipeline.

    Never serialized. ``original_exception`` is the raw value handed to
    capture_exception. ``synthetic_stack`` is formatted traceback text used
    for the frames of non-exception captures.
    """

    event_id: str
    original_exception: Any
    synthetic_stack: str
    mechanism: Mechanism
    data: dict[str, Any]


class TraceContextPayload(TypedDict):
    """The ``contexts.trace`` entry attached to events."""

    trace_id: str
    span_id: str
    parent_span_id: NotRequired[str]
    op: NotRequired[str]
    status: NotRequired[str]


EventProcessor = Callable[[Event, EventHint], Event | None | Awaitable[Event | None]]
"""A (possibly async) transform; returning None drops the event."""

BeforeSendHook = Callable[[Event, EventHint], Event | None | Awaitable[Event | None]]
"""User hook run after filtering; returning None (or raising) drops the event."""


SDK_NAME = "tracelight"
SDK_VERSION = "0.1.0"
DEFAULT_SDK_INFO: SdkInfo = {"name": SDK_NAME, "version": SDK_VERSION}
