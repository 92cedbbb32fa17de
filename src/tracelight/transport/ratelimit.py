"""Per-category backoff windows driven by ingestion response headers.

State is a map from category (or ``ALL_CATEGORIES`` = "") to an absolute
expiry time. Updates overwrite existing entries; nothing is merged.

Headers understood:
    x-sentry-rate-limits: "60:error;transaction:key:reason, 120::org:quota"
        Each group is ``seconds:categories:scope:reason``. An empty
        categories segment limits every category.
    retry-after: "30" or an HTTP date. Applies to every category.
"""

import email.utils
import time
from collections.abc import Callable, Mapping
from typing import Any

import structlog

from tracelight.contracts.enums import DataCategory, EventType

logger = structlog.get_logger(__name__)

ALL_CATEGORIES = ""
DEFAULT_RETRY_AFTER_SECONDS = 60.0

RATE_LIMITS_HEADER = "x-sentry-rate-limits"
RETRY_AFTER_HEADER = "retry-after"

_CATEGORY_ALIASES: dict[str, str] = {
    "event": DataCategory.ERROR,
    "span": DataCategory.TRANSACTION,
    "metric_bucket": DataCategory.INTERNAL,
}


def normalize_category(category: str) -> str:
    """Map backend category aliases onto the canonical category names."""
    lowered = category.strip().lower()
    return str(_CATEGORY_ALIASES.get(lowered, lowered))


def event_category(event_type: str | None) -> str:
    """Rate-limit category for an event of the given ``type``."""
    if event_type == EventType.TRANSACTION:
        return DataCategory.TRANSACTION.value
    if event_type == "replay_event":
        return DataCategory.REPLAY.value
    return DataCategory.ERROR.value


def parse_retry_after(value: str, now: float) -> float:
    """Seconds to wait for a retry-after value (integer seconds or HTTP date)."""
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        moment = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER_SECONDS
    return max(moment.timestamp() - now, 0.0)


def _header(headers: Mapping[str, Any], name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        for key, candidate in headers.items():
            if isinstance(key, str) and key.lower() == name:
                value = candidate
                break
    return value if isinstance(value, str) and value else None


class RateLimiter:
    """Tracks backoff windows per data category.

    Args:
        clock: Returns the current time in seconds; injectable for tests.

    Example:
        >>> limiter = RateLimiter()
        >>> limiter.update_from_headers({"x-sentry-rate-limits": "60::"})
        >>> limiter.is_rate_limited("error")
        True
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._limits: dict[str, float] = {}

    def update_from_headers(self, headers: Mapping[str, Any]) -> None:
        """Apply rate-limit headers from a response.

        x-sentry-rate-limits takes precedence; retry-after is consulted only
        when it is absent.
        """
        now = self._clock()
        rate_limits = _header(headers, RATE_LIMITS_HEADER)
        if rate_limits is not None:
            self._apply_rate_limits(rate_limits, now)
            return
        retry_after = _header(headers, RETRY_AFTER_HEADER)
        if retry_after is not None:
            self._limits[ALL_CATEGORIES] = now + parse_retry_after(retry_after, now)
            logger.debug("Rate limited by retry-after", seconds=self._limits[ALL_CATEGORIES] - now)

    def _apply_rate_limits(self, header: str, now: float) -> None:
        for group in header.split(","):
            group = group.strip()
            if not group:
                continue
            parts = group.split(":")
            try:
                seconds = float(parts[0])
            except ValueError:
                seconds = DEFAULT_RETRY_AFTER_SECONDS
            expiry = now + seconds
            categories = parts[1].strip() if len(parts) > 1 else ""
            if not categories:
                self._limits[ALL_CATEGORIES] = expiry
                logger.debug("Rate limited all categories", seconds=seconds)
                continue
            for category in categories.split(";"):
                if category.strip():
                    self._limits[normalize_category(category)] = expiry
                    logger.debug("Rate limited category", category=normalize_category(category), seconds=seconds)

    def disabled_until(self, category: str) -> float:
        """Absolute expiry limiting category, or 0.0 when not limited."""
        now = self._clock()
        for key in (normalize_category(category), ALL_CATEGORIES):
            expiry = self._limits.get(key)
            if expiry is not None and now < expiry:
                return expiry
        return 0.0

    def is_rate_limited(self, category: str) -> bool:
        """Checks the specific category first, then the all-categories entry."""
        return self.disabled_until(category) > 0.0

    def retry_after(self, category: str) -> float:
        """Seconds remaining until category may send again (0.0 if not limited)."""
        until = self.disabled_until(category)
        if until == 0.0:
            return 0.0
        return max(until - self._clock(), 0.0)

    def state(self) -> dict[str, float]:
        """Copy of the category -> expiry map."""
        return dict(self._limits)

    def clear(self) -> None:
        self._limits.clear()
