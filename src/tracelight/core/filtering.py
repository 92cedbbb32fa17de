"""Event filtering: ignore lists and URL allow/deny lists.

Patterns are either plain strings (case-sensitive substring match) or
compiled regular expressions (``re.Pattern.search``).
"""

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from tracelight.contracts.enums import EventType
from tracelight.contracts.events import Event

Pattern = str | re.Pattern[str]

IGNORE_ERRORS_MATCHED = "Matched ignoreErrors pattern"
IGNORE_TRANSACTIONS_MATCHED = "Matched ignoreTransactions pattern"
URL_NOT_ALLOWED = "URL not in allowUrls"
URL_DENIED = "URL matched denyUrls"


def matches_pattern(value: str, pattern: Pattern) -> bool:
    if not value:
        return False
    if isinstance(pattern, str):
        return bool(pattern) and pattern in value
    return pattern.search(value) is not None


def matches_any(values: Iterable[str], patterns: Sequence[Pattern]) -> bool:
    """True if any value matches any pattern."""
    return any(matches_pattern(value, pattern) for value in values for pattern in patterns)


def error_texts(event: Event) -> list[str]:
    """Strings checked against ignore_errors: the message plus each exception's type and value."""
    texts: list[str] = []
    message = event.get("message")
    if isinstance(message, str):
        texts.append(message)
    elif isinstance(message, Mapping) and isinstance(message.get("message"), str):
        texts.append(message["message"])
    for entry in _exception_values(event):
        for key in ("type", "value"):
            text = entry.get(key)
            if isinstance(text, str) and text:
                texts.append(text)
    return texts


def get_event_url(event: Event) -> str | None:
    """URL used for allow/deny checks.

    Taken from ``request.url``, otherwise from the first stack frame whose
    filename or abs_path is an http(s) URL.
    """
    request = event.get("request")
    if isinstance(request, Mapping) and isinstance(request.get("url"), str) and request["url"]:
        return request["url"]
    for entry in _exception_values(event):
        stacktrace = entry.get("stacktrace")
        if not isinstance(stacktrace, Mapping):
            continue
        for frame in stacktrace.get("frames") or ():
            for key in ("filename", "abs_path"):
                candidate = frame.get(key) if isinstance(frame, Mapping) else None
                if isinstance(candidate, str) and candidate.startswith("http"):
                    return candidate
    return None


def _exception_values(event: Event) -> list[Mapping]:
    exception = event.get("exception")
    if not isinstance(exception, Mapping):
        return []
    values = exception.get("values")
    if not isinstance(values, list):
        return []
    return [entry for entry in values if isinstance(entry, Mapping)]


@dataclass(frozen=True, slots=True)
class EventFilter:
    """Bundled filter lists; check() returns a drop reason or None."""

    ignore_errors: Sequence[Pattern] = field(default_factory=tuple)
    ignore_transactions: Sequence[Pattern] = field(default_factory=tuple)
    allow_urls: Sequence[Pattern] = field(default_factory=tuple)
    deny_urls: Sequence[Pattern] = field(default_factory=tuple)

    def check(self, event: Event) -> str | None:
        """Return the filter detail string if the event must be dropped.

        Order: ignore_errors, ignore_transactions, allow_urls, deny_urls.
        """
        if self.ignore_errors and matches_any(error_texts(event), self.ignore_errors):
            return IGNORE_ERRORS_MATCHED

        if self.ignore_transactions and event.get("type") == EventType.TRANSACTION:
            name = event.get("transaction")
            if isinstance(name, str) and matches_any([name], self.ignore_transactions):
                return IGNORE_TRANSACTIONS_MATCHED

        if not (self.allow_urls or self.deny_urls):
            return None
        url = get_event_url(event)
        if url is None:
            return None
        if self.allow_urls and not matches_any([url], self.allow_urls):
            return URL_NOT_ALLOWED
        if self.deny_urls and matches_any([url], self.deny_urls):
            return URL_DENIED
        return None
