"""All status codes, kinds and reasons used across subsystem boundaries.

Values are the exact strings that appear on the wire (event payloads,
envelope item headers, rate-limit categories), so StrEnum members can be
dropped straight into JSON.
"""

from enum import StrEnum


class EventType(StrEnum):
    """Classification of an event payload.

    Error events carry no explicit ``type`` on the wire; ERROR is the
    in-process name for "anything that is not a transaction or feedback".
    """

    ERROR = "error"
    TRANSACTION = "transaction"
    FEEDBACK = "feedback"


class Level(StrEnum):
    """Severity level of an event or breadcrumb."""

    FATAL = "fatal"
    ERROR = "error"
    WARNING = "warning"
    LOG = "log"
    INFO = "info"
    DEBUG = "debug"


class DropReason(StrEnum):
    """Why the pipeline dropped an event."""

    SAMPLED = "sampled"
    FILTERED = "filtered"
    BEFORE_SEND = "beforeSend"
    EVENT_PROCESSOR = "eventProcessor"
    ERROR = "error"


class SamplingReason(StrEnum):
    """Reason attached to a sampling decision (for debugging and stats)."""

    EXPLICIT_RATE = "explicit_rate"
    SAMPLER_FUNCTION = "sampler_function"
    PARENT_SAMPLED = "parent_sampled"
    PARENT_NOT_SAMPLED = "parent_not_sampled"
    NO_RATE_CONFIGURED = "no_rate_configured"
    RATE_ZERO = "rate_zero"
    RATE_ONE = "rate_one"
    RANDOM = "random"
    DISABLED = "disabled"


class DataCategory(StrEnum):
    """Rate-limit categories recognised by the ingestion backend."""

    DEFAULT = "default"
    ERROR = "error"
    TRANSACTION = "transaction"
    REPLAY = "replay"
    ATTACHMENT = "attachment"
    SESSION = "session"
    INTERNAL = "internal"


class SpanStatusCode(StrEnum):
    """Span status codes.

    UNSET is never serialized; the remaining codes follow the backend's
    span status vocabulary.
    """

    UNSET = "unset"
    OK = "ok"
    ERROR = "error"
    INTERNAL_ERROR = "internal_error"
    CANCELLED = "cancelled"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    UNAUTHENTICATED = "unauthenticated"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    INVALID_ARGUMENT = "invalid_argument"
    UNAVAILABLE = "unavailable"
    UNKNOWN_ERROR = "unknown_error"


class TransactionSource(StrEnum):
    """How a transaction name was derived."""

    CUSTOM = "custom"
    URL = "url"
    ROUTE = "route"
    VIEW = "view"
    COMPONENT = "component"
    TASK = "task"


class ItemType(StrEnum):
    """Envelope item types."""

    EVENT = "event"
    TRANSACTION = "transaction"
    SESSION = "session"
    ATTACHMENT = "attachment"
    CLIENT_REPORT = "client_report"
    USER_REPORT = "user_report"
    PROFILE = "profile"
    REPLAY_EVENT = "replay_event"
    REPLAY_RECORDING = "replay_recording"
    CHECK_IN = "check_in"
    FEEDBACK = "feedback"
    SPAN = "span"
    SESSIONS = "sessions"


class SessionStatus(StrEnum):
    """Release-health session status."""

    OK = "ok"
    EXITED = "exited"
    CRASHED = "crashed"
    ABNORMAL = "abnormal"
