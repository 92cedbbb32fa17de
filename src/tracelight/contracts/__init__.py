"""Shared contracts: enums, payload shapes and error types.

This is a leaf package: it imports nothing from the rest of tracelight so
every subsystem can depend on it without cycles.
"""

from tracelight.contracts.enums import (
    DataCategory,
    DropReason,
    EventType,
    ItemType,
    Level,
    SamplingReason,
    SessionStatus,
    SpanStatusCode,
    TransactionSource,
)
from tracelight.contracts.errors import (
    ClassifiedError,
    KnownError,
    StringMessage,
    TracelightConfigError,
    UnknownValue,
    classify_error,
)
from tracelight.contracts.events import (
    DEFAULT_SDK_INFO,
    SDK_NAME,
    SDK_VERSION,
    BeforeSendHook,
    Breadcrumb,
    Event,
    EventHint,
    EventProcessor,
    ExceptionPayload,
    Mechanism,
    SdkInfo,
    StackFramePayload,
    TraceContextPayload,
)

__all__ = [
    "DEFAULT_SDK_INFO",
    "SDK_NAME",
    "SDK_VERSION",
    "BeforeSendHook",
    "Breadcrumb",
    "ClassifiedError",
    "DataCategory",
    "DropReason",
    "Event",
    "EventHint",
    "EventProcessor",
    "EventType",
    "ExceptionPayload",
    "ItemType",
    "KnownError",
    "Level",
    "Mechanism",
    "SamplingReason",
    "SdkInfo",
    "SessionStatus",
    "SpanStatusCode",
    "StackFramePayload",
    "StringMessage",
    "TraceContextPayload",
    "TracelightConfigError",
    "TransactionSource",
    "UnknownValue",
    "classify_error",
]
