"""Envelope wire format.

An envelope is newline-delimited:

    {envelope header JSON}
    {item header JSON}
    {item payload}
    ...

Each item header declares ``type`` and ``length``, the UTF-8 byte length
of its payload. Length is computed when an item is built and is not
re-validated on parse.
"""

import base64
import datetime
import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from tracelight.contracts.enums import EventType, ItemType, SessionStatus
from tracelight.contracts.events import Event, SdkInfo
from tracelight.core.dsn import Dsn
from tracelight.core.ids import generate_event_id

MAX_ENVELOPE_SIZE = 65536


def iso_now() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a ``Z`` suffix."""
    return _iso(datetime.datetime.now(datetime.UTC))


def _iso(moment: datetime.datetime) -> str:
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _iso_from(value: float | str | None) -> str:
    if value is None:
        return iso_now()
    if isinstance(value, str):
        return value
    return _iso(datetime.datetime.fromtimestamp(value, datetime.UTC))


def dumps(value: Any) -> str:
    """Compact JSON; non-ASCII kept as-is so byte length differs from char length."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


# =============================================================================
# Value types
# =============================================================================


@dataclass(frozen=True, slots=True)
class EnvelopeItem:
    """One item: header dict plus raw payload bytes.

    Build with json_item()/bytes_item() so ``header["length"]`` always
    matches ``len(payload)``.
    """

    header: dict[str, Any]
    payload: bytes

    @property
    def type(self) -> str:
        return str(self.header.get("type", ""))


def json_item(item_type: str, data: Any, **extra_headers: Any) -> EnvelopeItem:
    payload = dumps(data).encode("utf-8")
    return EnvelopeItem(header={"type": item_type, "length": len(payload), **extra_headers}, payload=payload)


def bytes_item(item_type: str, data: bytes | str, **extra_headers: Any) -> EnvelopeItem:
    payload = data.encode("utf-8") if isinstance(data, str) else bytes(data)
    return EnvelopeItem(header={"type": item_type, "length": len(payload), **extra_headers}, payload=payload)


@dataclass(frozen=True, slots=True)
class Envelope:
    headers: dict[str, Any]
    items: tuple[EnvelopeItem, ...] = ()

    def with_item(self, item: EnvelopeItem) -> "Envelope":
        return Envelope(headers=self.headers, items=(*self.items, item))

    def to_bytes(self) -> bytes:
        """Exact wire bytes (binary payloads included verbatim)."""
        parts = [dumps(self.headers).encode("utf-8")]
        for item in self.items:
            parts.append(dumps(item.header).encode("utf-8"))
            parts.append(item.payload)
        return b"\n".join(parts)

    def serialize(self) -> str:
        """Text form. Payloads that are not valid UTF-8 are base64 encoded."""
        lines = [dumps(self.headers)]
        for item in self.items:
            lines.append(dumps(item.header))
            try:
                lines.append(item.payload.decode("utf-8"))
            except UnicodeDecodeError:
                lines.append(base64.b64encode(item.payload).decode("ascii"))
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class ParsedItem:
    header: dict[str, Any]
    payload: Any


@dataclass(frozen=True, slots=True)
class ParsedEnvelope:
    header: dict[str, Any]
    items: list[ParsedItem] = field(default_factory=list)


@dataclass(slots=True)
class Session:
    """Release-health session update."""

    sid: str
    started: float | str
    did: str | None = None
    init: bool = True
    timestamp: float | str | None = None
    status: str = SessionStatus.OK
    errors: int = 0
    duration: float | None = None
    attrs: dict[str, str] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "sid": self.sid,
            "init": self.init,
            "started": _iso_from(self.started),
            "timestamp": _iso_from(self.timestamp),
            "status": str(self.status),
            "errors": self.errors,
        }
        if self.did is not None:
            payload["did"] = self.did
        if self.duration is not None:
            payload["duration"] = self.duration
        if self.attrs:
            payload["attrs"] = dict(self.attrs)
        return payload


# =============================================================================
# Builders
# =============================================================================


def _envelope_header(dsn: Dsn, sdk_info: SdkInfo | None, event_id: str | None = None) -> dict[str, Any]:
    header: dict[str, Any] = {}
    if event_id is not None:
        header["event_id"] = event_id
    header["sent_at"] = iso_now()
    header["dsn"] = dsn.to_string()
    if sdk_info:
        header["sdk"] = dict(sdk_info)
    return header


def event_item_type(event: Event) -> str:
    return ItemType.TRANSACTION if event.get("type") == EventType.TRANSACTION else ItemType.EVENT


def build_event_envelope(event: Event, dsn: Dsn, sdk_info: SdkInfo | None = None) -> Envelope:
    """Envelope carrying one event or transaction.

    A ``trace`` header (trace id plus public key, environment and release)
    is added when the event has ``contexts.trace``.
    """
    event_id = event.get("event_id") or generate_event_id()
    headers = _envelope_header(dsn, sdk_info, event_id=event_id)
    contexts = event.get("contexts")
    trace = contexts.get("trace") if isinstance(contexts, Mapping) else None
    if isinstance(trace, Mapping):
        trace_header: dict[str, Any] = {"trace_id": trace.get("trace_id"), "public_key": dsn.public_key}
        for key in ("environment", "release"):
            if event.get(key) is not None:
                trace_header[key] = event[key]
        headers["trace"] = trace_header
    return Envelope(headers=headers, items=(json_item(event_item_type(event), event),))


def create_envelope(event: Event, dsn: Dsn, sdk_info: SdkInfo | None = None) -> str:
    """Serialized single-event envelope."""
    return build_event_envelope(event, dsn, sdk_info).serialize()


def create_session_envelope(session: Session, dsn: Dsn) -> str:
    headers = _envelope_header(dsn, None)
    return Envelope(headers=headers, items=(json_item(ItemType.SESSION, session.to_payload()),)).serialize()


def create_multi_item_envelope(
    items: Iterable[tuple[str, Any]],
    dsn: Dsn,
    sdk_info: SdkInfo | None = None,
) -> str:
    """Serialized envelope with one JSON item per (type, data) pair."""
    built = tuple(json_item(item_type, data) for item_type, data in items)
    return Envelope(headers=_envelope_header(dsn, sdk_info), items=built).serialize()


def create_attachment_item(
    filename: str,
    data: bytes | str,
    content_type: str = "application/octet-stream",
    attachment_type: str = "event.attachment",
) -> EnvelopeItem:
    return bytes_item(
        ItemType.ATTACHMENT,
        data,
        filename=filename,
        content_type=content_type,
        attachment_type=attachment_type,
    )


def create_client_report_item(discarded_events: Sequence[Mapping[str, Any]]) -> EnvelopeItem:
    """Item reporting events the client dropped (category, reason, quantity)."""
    return json_item(
        ItemType.CLIENT_REPORT,
        {"timestamp": iso_now(), "discarded_events": [dict(entry) for entry in discarded_events]},
    )


# =============================================================================
# Parsing and size
# =============================================================================


def parse_envelope(text: str | bytes) -> ParsedEnvelope | None:
    """Parse serialized envelope text.

    Blank lines between items are skipped. Returns None for fewer than
    three lines, malformed JSON, or an item header without a payload.
    Payloads that are not JSON are returned as strings.
    """
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    lines = text.split("\n")
    if len(lines) < 3:
        return None
    try:
        header = json.loads(lines[0])
    except json.JSONDecodeError:
        return None
    if not isinstance(header, dict):
        return None

    items: list[ParsedItem] = []
    index = 1
    while index < len(lines):
        if not lines[index].strip():
            index += 1
            continue
        try:
            item_header = json.loads(lines[index])
        except json.JSONDecodeError:
            return None
        index += 1
        if index >= len(lines) or not isinstance(item_header, dict):
            return None
        raw = lines[index]
        index += 1
        try:
            payload: Any = json.loads(raw)
        except json.JSONDecodeError:
            payload = raw
        items.append(ParsedItem(header=item_header, payload=payload))
    return ParsedEnvelope(header=header, items=items)


def envelope_size(envelope: str | bytes) -> int:
    """UTF-8 byte size."""
    return len(envelope.encode("utf-8") if isinstance(envelope, str) else envelope)


def exceeds_max_size(envelope: str | bytes, max_size: int = MAX_ENVELOPE_SIZE) -> bool:
    return envelope_size(envelope) > max_size
