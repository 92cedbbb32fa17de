"""HTTP ingestion client.

Sends envelopes to the ingestion endpoint with bounded retries. Transport
failures never raise: every outcome is a TransportResponse.

    status_code 429  rate limited locally, no request made
    status_code 408  request timed out (not retried)
    status_code 0    retries exhausted (network errors, 5xx, or any other
                     request failure such as a closed client);
                     ``headers["x-error"]`` carries the last error message
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from types import TracebackType

import httpx
import structlog

from tracelight.contracts.events import SDK_NAME, SDK_VERSION, Event, SdkInfo
from tracelight.core.dsn import Dsn
from tracelight.transport.envelope import Session, create_envelope, create_session_envelope
from tracelight.transport.ratelimit import RateLimiter, event_category

logger = structlog.get_logger(__name__)

RATE_LIMITED_STATUS = 429
TIMEOUT_STATUS = 408
EXHAUSTED_STATUS = 0


@dataclass(frozen=True, slots=True)
class TransportResponse:
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class IngestionClient:
    """Posts envelopes to the DSN's envelope endpoint (or a tunnel URL).

    Args:
        dsn: Parsed DSN identifying project and credentials.
        tunnel: Optional URL used verbatim instead of the DSN endpoint.
        timeout: Per-request timeout in seconds.
        max_retries: Total number of attempts for network errors and 5xx.
        retry_delay: Fixed delay between attempts in seconds.
        rate_limiter: Shared limiter; a private one is created if omitted.
        http_client: Injected httpx.AsyncClient (closed by aclose() only if
            this client created it).
    """

    def __init__(
        self,
        dsn: Dsn,
        *,
        tunnel: str | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        sdk_name: str = SDK_NAME,
        sdk_version: str = SDK_VERSION,
        rate_limiter: RateLimiter | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._dsn = dsn
        self._tunnel = tunnel
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._retry_delay = retry_delay
        self._sdk_name = sdk_name
        self._sdk_version = sdk_version
        self.rate_limiter = rate_limiter or RateLimiter()
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def endpoint(self) -> str:
        return self._dsn.envelope_endpoint(self._tunnel)

    @property
    def sdk_info(self) -> SdkInfo:
        return {"name": self._sdk_name, "version": self._sdk_version}

    # === Sending ===

    async def send(self, event: Event) -> TransportResponse:
        """Send one event or transaction."""
        category = event_category(event.get("type"))
        if self.rate_limiter.is_rate_limited(category):
            return self._rate_limited(category)
        return await self.send_envelope(create_envelope(event, self._dsn, self.sdk_info), category=category)

    async def send_session(self, session: Session) -> TransportResponse:
        if self.rate_limiter.is_rate_limited("session"):
            return self._rate_limited("session")
        return await self.send_envelope(create_session_envelope(session, self._dsn), category="session")

    async def send_envelope(self, envelope: str | bytes, *, category: str | None = None) -> TransportResponse:
        """POST a serialized envelope, retrying network errors and 5xx responses."""
        last_error = "Unknown error"
        headers = self._dsn.auth_headers(self._sdk_name, self._sdk_version)
        body = envelope.encode("utf-8") if isinstance(envelope, str) else envelope

        for attempt in range(1, self._max_retries + 1):
            if category is not None and self.rate_limiter.is_rate_limited(category):
                return self._rate_limited(category)
            try:
                response = await self._http.post(self.endpoint, content=body, headers=headers, timeout=self._timeout)
            except httpx.TimeoutException as e:
                logger.warning("Ingestion request timed out", endpoint=self.endpoint, error=str(e))
                return TransportResponse(status_code=TIMEOUT_STATUS, headers={"x-error": "Request timeout"})
            except Exception as e:
                # Network errors, and also a closed client or malformed tunnel URL
                last_error = str(e) or type(e).__name__
                logger.debug("Ingestion request failed", attempt=attempt, error=last_error)
            else:
                response_headers = {k.lower(): v for k, v in response.headers.items()}
                self.rate_limiter.update_from_headers(response_headers)
                if response.status_code < 500:
                    return TransportResponse(
                        status_code=response.status_code,
                        headers=response_headers,
                        body=response.text,
                    )
                last_error = f"API returned {response.status_code}"
                logger.debug("Ingestion server error", attempt=attempt, status_code=response.status_code)

            if attempt < self._max_retries:
                await asyncio.sleep(self._retry_delay)

        logger.warning("Ingestion retries exhausted", attempts=self._max_retries, error=last_error)
        return TransportResponse(status_code=EXHAUSTED_STATUS, headers={"x-error": last_error})

    def _rate_limited(self, category: str) -> TransportResponse:
        retry_after = self.rate_limiter.retry_after(category)
        logger.debug("Dropping envelope, category rate limited", category=category, retry_after=retry_after)
        return TransportResponse(
            status_code=RATE_LIMITED_STATUS,
            headers={"retry-after": str(int(retry_after + 0.999))},
        )

    def clear_rate_limits(self) -> None:
        self.rate_limiter.clear()

    # === Lifecycle ===

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> IngestionClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


class BatchSender:
    """Queues events and sends them when the batch fills or the interval elapses.

    ``add`` flushes when ``batch_size`` events are queued or when
    ``flush_interval`` seconds have passed since the last flush. ``flush``
    sends everything queued and returns one response per event.
    """

    def __init__(
        self,
        client: IngestionClient,
        *,
        batch_size: int = 10,
        flush_interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._batch_size = batch_size
        self._flush_interval = flush_interval
        self._clock = clock
        self._queue: list[Event] = []
        self._last_flush = clock()

    def __len__(self) -> int:
        return len(self._queue)

    async def add(self, event: Event) -> list[TransportResponse]:
        self._queue.append(event)
        if len(self._queue) >= self._batch_size or self._clock() - self._last_flush >= self._flush_interval:
            return await self.flush()
        return []

    async def flush(self) -> list[TransportResponse]:
        pending, self._queue = self._queue, []
        self._last_flush = self._clock()
        responses = [await self._client.send(event) for event in pending]
        failed = sum(1 for r in responses if not r.ok)
        if failed:
            logger.warning("Batch flush had failures", sent=len(responses), failed=failed)
        return responses
