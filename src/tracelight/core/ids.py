"""Random identifiers for traces, spans and events.

All ids are lowercase hex drawn from ``secrets`` (the OS CSPRNG). Trace
and event ids are 32 characters, span ids 16.
"""

import re
import secrets
import uuid

_TRACE_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$", re.IGNORECASE)
_SPAN_ID_PATTERN = re.compile(r"^[0-9a-f]{16}$", re.IGNORECASE)


def generate_trace_id() -> str:
    """Return a new 32-character hex trace id."""
    return secrets.token_hex(16)


def generate_span_id() -> str:
    """Return a new 16-character hex span id."""
    return secrets.token_hex(8)


def generate_event_id() -> str:
    """Return a new event id: a UUID4 rendered as 32 hex chars without dashes."""
    return uuid.uuid4().hex


def is_valid_trace_id(value: object) -> bool:
    """Whether value is exactly 32 hex characters."""
    return isinstance(value, str) and _TRACE_ID_PATTERN.fullmatch(value) is not None


def is_valid_span_id(value: object) -> bool:
    """Whether value is exactly 16 hex characters."""
    return isinstance(value, str) and _SPAN_ID_PATTERN.fullmatch(value) is not None
