"""Wire format, rate limiting and HTTP delivery to the ingestion backend."""

from tracelight.transport.client import BatchSender, IngestionClient, TransportResponse
from tracelight.transport.envelope import (
    Envelope,
    EnvelopeItem,
    ParsedEnvelope,
    Session,
    build_event_envelope,
    create_envelope,
    parse_envelope,
)
from tracelight.transport.ratelimit import RateLimiter, event_category

__all__ = [
    "BatchSender",
    "Envelope",
    "EnvelopeItem",
    "IngestionClient",
    "ParsedEnvelope",
    "RateLimiter",
    "Session",
    "TransportResponse",
    "build_event_envelope",
    "create_envelope",
    "event_category",
    "parse_envelope",
]
