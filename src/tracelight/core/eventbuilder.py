"""Builds event payloads from exceptions and messages.

Captured values are classified once (classify_error) and the builder
matches over the variants:

- KnownError: real exception; its traceback supplies the frames and its
  ``__cause__``/``__context__`` chain becomes additional exception values.
- StringMessage / UnknownValue: synthetic exception of type ``Error``
  flagged ``mechanism.synthetic``; frames come from the hint's synthetic
  stack text or from the caller's current stack.
"""

import time
import traceback
from collections.abc import Mapping, Sequence
from typing import Any

from tracelight.contracts.enums import Level
from tracelight.contracts.errors import KnownError, StringMessage, UnknownValue, classify_error
from tracelight.contracts.events import (
    DEFAULT_SDK_INFO,
    Event,
    EventHint,
    ExceptionPayload,
    Mechanism,
    StackFramePayload,
)
from tracelight.core.ids import generate_event_id
from tracelight.core.normalize import DEFAULT_DEPTH, DEFAULT_MAX_BREADTH, normalize, truncate
from tracelight.core.stacktrace import (
    InAppRules,
    frames_from_summary,
    frames_from_traceback,
    is_sdk_frame,
    parse_stack_text,
)

PLATFORM = "python"
DEFAULT_MAX_VALUE_LENGTH = 250
MAX_TAG_VALUE_LENGTH = 200

# Guard against pathological __context__ chains.
_MAX_CHAINED_EXCEPTIONS = 10

_CONTEXT_BAGS = frozenset({"extra", "contexts", "user", "tags"})
# Payload sections built by the SDK itself; depth-limiting these would
# collapse stack frames and child spans into type tags.
_SDK_STRUCTURES = frozenset({"exception", "spans", "breadcrumbs", "stacktrace", "threads", "sdk"})
_SDK_STRUCTURE_DEPTH = 16


def timestamp_in_seconds() -> float:
    return time.time()


def _base_event(hint: EventHint | None, level: str) -> Event:
    return {
        "event_id": (hint or {}).get("event_id") or generate_event_id(),
        "timestamp": timestamp_in_seconds(),
        "platform": PLATFORM,
        "level": level,
        "sdk": dict(DEFAULT_SDK_INFO),
    }


def _current_stack_frames(rules: InAppRules | None) -> list[StackFramePayload]:
    summary = traceback.extract_stack()
    # Drop the SDK's own frames at the top of the stack.
    while summary and is_sdk_frame(summary[-1].filename):
        summary.pop()
    return frames_from_summary(summary, rules)


def _synthetic_frames(hint: EventHint | None, rules: InAppRules | None) -> list[StackFramePayload]:
    stack_text = (hint or {}).get("synthetic_stack")
    if stack_text:
        return parse_stack_text(stack_text, rules=rules)
    return _current_stack_frames(rules)


def _exception_chain(exc: BaseException) -> list[BaseException]:
    """Oldest cause first, the raised exception last."""
    chain: list[BaseException] = []
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen and len(chain) < _MAX_CHAINED_EXCEPTIONS:
        seen.add(id(current))
        chain.append(current)
        if current.__cause__ is not None:
            current = current.__cause__
        elif current.__suppress_context__:
            current = None
        else:
            current = current.__context__
    chain.reverse()
    return chain


def _payload_from_exception(
    exc: BaseException,
    attach_stacktrace: bool,
    rules: InAppRules | None,
) -> ExceptionPayload:
    exc_type = type(exc)
    payload: ExceptionPayload = {
        "type": exc_type.__name__,
        "value": str(exc) or "Unknown error",
        "mechanism": {"type": "generic", "handled": True, "synthetic": False},
    }
    if exc_type.__module__ not in ("builtins", "__main__"):
        payload["module"] = exc_type.__module__
    if attach_stacktrace:
        frames = frames_from_traceback(exc.__traceback__, rules)
        if frames:
            payload["stacktrace"] = {"frames": frames}
    return payload


def exceptions_from_error(
    error: Any,
    hint: EventHint | None = None,
    attach_stacktrace: bool = True,
    rules: InAppRules | None = None,
) -> list[ExceptionPayload]:
    """Convert any captured value to ``exception.values`` entries.

    Args:
        error: Exception instance, string or arbitrary value.
        hint: Optional hint carrying a synthetic stack.
        attach_stacktrace: Whether to include frames.
        rules: in_app overrides.

    Returns:
        One entry per exception in the chain; the primary one is last.
    """
    match classify_error(error):
        case KnownError(exc=exc):
            return [_payload_from_exception(e, attach_stacktrace, rules) for e in _exception_chain(exc)]
        case StringMessage(text=text):
            value = text
        case UnknownValue() as unknown:
            value = unknown.describe()

    payload: ExceptionPayload = {
        "type": "Error",
        "value": value or "Unknown error",
        "mechanism": {"type": "generic", "handled": True, "synthetic": True},
    }
    if attach_stacktrace:
        frames = _synthetic_frames(hint, rules)
        if frames:
            payload["stacktrace"] = {"frames": frames}
    return [payload]


def event_from_exception(
    error: Any,
    hint: EventHint | None = None,
    attach_stacktrace: bool = True,
    rules: InAppRules | None = None,
) -> Event:
    """Build an error event from a captured exception (or exception-like value).

    A mechanism supplied in the hint is merged over the primary exception's
    default mechanism.
    """
    event = _base_event(hint, Level.ERROR)
    values = exceptions_from_error(error, hint, attach_stacktrace, rules)
    hint_mechanism = (hint or {}).get("mechanism")
    if hint_mechanism:
        primary = values[-1]
        merged: Mechanism = {**primary.get("mechanism", {}), **hint_mechanism}
        primary["mechanism"] = merged
    event["exception"] = {"values": values}
    return event


def event_from_message(
    message: str,
    level: str = Level.INFO,
    hint: EventHint | None = None,
    attach_stacktrace: bool = False,
    rules: InAppRules | None = None,
) -> Event:
    """Build a message event, optionally with a synthetic stack trace."""
    event = _base_event(hint, level)
    event["message"] = message
    if attach_stacktrace:
        frames = _synthetic_frames(hint, rules)
        if frames:
            event["exception"] = {
                "values": [
                    {
                        "type": "Message",
                        "value": message,
                        "stacktrace": {"frames": frames},
                        "mechanism": {"type": "generic", "handled": True, "synthetic": True},
                    }
                ]
            }
    return event


def add_fingerprint(event: Event, fingerprint: Sequence[str]) -> Event:
    event["fingerprint"] = list(fingerprint)
    return event


def add_tags(event: Event, tags: Mapping[str, str]) -> Event:
    event["tags"] = {**event.get("tags", {}), **tags}
    return event


def add_extra(event: Event, extra: Mapping[str, Any], max_depth: int = DEFAULT_DEPTH) -> Event:
    """Merge normalized extra data into the event."""
    event["extra"] = {**event.get("extra", {}), **normalize(dict(extra), max_depth)}
    return event


def create_minimal_event(event_id: str, message: str) -> Event:
    """An error event carrying only identity and a short explanatory message.

    Used when the original payload had to be discarded (e.g. it could not
    be serialized) but the occurrence itself should still be reported.
    """
    return {
        "event_id": event_id,
        "timestamp": timestamp_in_seconds(),
        "platform": PLATFORM,
        "level": Level.ERROR.value,
        "message": message,
        "sdk": dict(DEFAULT_SDK_INFO),
    }


def finalize_event(
    event: Event,
    *,
    max_value_length: int = DEFAULT_MAX_VALUE_LENGTH,
    depth: int = DEFAULT_DEPTH,
    max_breadth: int = DEFAULT_MAX_BREADTH,
) -> Event:
    """Normalize every event field and truncate long strings.

    Context bags (``extra``, ``contexts``, ``user``, ``tags``) are limited
    per entry; SDK-built sections (exception, spans, breadcrumbs) are kept
    structurally intact. Truncates the message, exception values and tag
    values. The event is copied, not mutated.

    Args:
        event: Event leaving the pipeline.
        max_value_length: Cap for message and exception values.
        depth: Normalization depth for context bags.
        max_breadth: Normalization breadth for context bags.

    Returns:
        The finalized copy.
    """
    result: Event = {}
    for key, value in event.items():
        if key in _CONTEXT_BAGS and isinstance(value, Mapping):
            # The bag itself does not count against depth; its entries do.
            result[key] = {str(k): normalize(v, depth, max_breadth) for k, v in value.items()}
        elif key in _SDK_STRUCTURES:
            result[key] = normalize(value, _SDK_STRUCTURE_DEPTH, max_breadth)
        else:
            result[key] = normalize(value, depth, max_breadth)

    message = result.get("message")
    if isinstance(message, str):
        result["message"] = truncate(message, max_value_length)
    elif isinstance(message, Mapping) and isinstance(message.get("message"), str):
        result["message"] = {**message, "message": truncate(message["message"], max_value_length)}

    exception = result.get("exception")
    if isinstance(exception, Mapping) and isinstance(exception.get("values"), list):
        values = []
        for entry in exception["values"]:
            if isinstance(entry, Mapping) and isinstance(entry.get("value"), str):
                entry = {**entry, "value": truncate(entry["value"], max_value_length)}
            values.append(entry)
        result["exception"] = {**exception, "values": values}

    tags = result.get("tags")
    if isinstance(tags, Mapping):
        result["tags"] = {
            str(k): truncate(v, MAX_TAG_VALUE_LENGTH) if isinstance(v, str) else v for k, v in tags.items()
        }

    return result
