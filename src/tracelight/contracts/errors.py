"""Error classification and SDK exceptions.

Anything handed to capture_exception is classified exactly once into a
closed sum type. Event building then matches over the variants instead
of probing attributes on an arbitrary value.
"""

import json
from dataclasses import dataclass
from typing import Any


class TracelightConfigError(ValueError):
    """Raised when client configuration is invalid.

    This is raised only while building options or loading a config file,
    NOT from capture or tracing calls, which must never raise into the
    instrumented application.
    """


@dataclass(frozen=True, slots=True)
class KnownError:
    """A real exception instance."""

    exc: BaseException


@dataclass(frozen=True, slots=True)
class StringMessage:
    """A bare string passed where an exception was expected."""

    text: str


@dataclass(frozen=True, slots=True)
class UnknownValue:
    """Any other value (dict, None, number, arbitrary object)."""

    value: Any

    def describe(self) -> str:
        """Best-effort human-readable message for the wrapped value."""
        value = self.value
        if value is None:
            return "None"
        if isinstance(value, dict):
            for key in ("message", "error"):
                candidate = value.get(key)
                if isinstance(candidate, str):
                    return candidate
            try:
                return json.dumps(value, default=repr)
            except (TypeError, ValueError):
                return "[Object]"
        return repr(value)


ClassifiedError = KnownError | StringMessage | UnknownValue


def classify_error(value: Any) -> ClassifiedError:
    """Classify a captured value into the error sum type.

    Args:
        value: Whatever the caller passed as "the error".

    Returns:
        KnownError for exception instances, StringMessage for strings,
        UnknownValue for everything else.
    """
    if isinstance(value, BaseException):
        return KnownError(value)
    if isinstance(value, str):
        return StringMessage(value)
    return UnknownValue(value)
