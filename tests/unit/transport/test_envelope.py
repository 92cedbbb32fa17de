# tests/unit/transport/test_envelope.py
"""Tests for the envelope wire format."""

import base64
import datetime
import json
from collections.abc import Callable

import pytest

from tracelight.core.config import ClientOptions
from tracelight.core.dsn import Dsn
from tracelight.core.eventbuilder import event_from_exception, event_from_message
from tracelight.core.pipeline import EventPipeline
from tracelight.core.scope import Scope
from tracelight.transport.envelope import (
    Envelope,
    Session,
    build_event_envelope,
    bytes_item,
    create_attachment_item,
    create_client_report_item,
    create_envelope,
    create_multi_item_envelope,
    create_session_envelope,
    envelope_size,
    exceeds_max_size,
    json_item,
    parse_envelope,
)


class TestEventEnvelope:
    def test_parse_recovers_payload(self, dsn: Dsn) -> None:
        event = {"event_id": "e" * 32, "message": "Checkout failed", "level": "error"}
        text = create_envelope(event, dsn, {"name": "tracelight.python", "version": "0.1.0"})

        parsed = parse_envelope(text)
        assert parsed is not None
        assert parsed.header["event_id"] == "e" * 32
        assert parsed.header["dsn"] == dsn.to_string()
        assert parsed.header["sdk"]["name"] == "tracelight.python"
        assert parsed.header["sent_at"].endswith("Z")
        assert len(parsed.items) == 1
        assert parsed.items[0].header["type"] == "event"
        assert parsed.items[0].payload == event

    def test_length_is_utf8_bytes(self, dsn: Dsn) -> None:
        event = {"event_id": "e" * 32, "message": "héllo wörld ✓"}
        text = create_envelope(event, dsn)
        _, item_header, payload = text.split("\n")
        declared = json.loads(item_header)["length"]
        assert declared == len(payload.encode("utf-8"))
        assert declared > len(payload)

    def test_transaction_item_and_trace_header(self, dsn: Dsn) -> None:
        event = {
            "event_id": "e" * 32,
            "type": "transaction",
            "environment": "production",
            "contexts": {"trace": {"trace_id": "a" * 32, "span_id": "b" * 16}},
        }
        envelope = build_event_envelope(event, dsn)
        assert envelope.items[0].type == "transaction"
        assert envelope.headers["trace"] == {
            "trace_id": "a" * 32,
            "public_key": dsn.public_key,
            "environment": "production",
        }

    def test_generates_missing_event_id(self, dsn: Dsn) -> None:
        envelope = build_event_envelope({"message": "x"}, dsn)
        assert len(envelope.headers["event_id"]) == 32


class TestOtherItems:
    def test_session_envelope(self, dsn: Dsn) -> None:
        session = Session(sid="s1", started=0.0, errors=1, attrs={"release": "web@1.0"})
        parsed = parse_envelope(create_session_envelope(session, dsn))
        assert parsed is not None
        payload = parsed.items[0].payload
        assert parsed.items[0].header["type"] == "session"
        assert payload["started"] == "1970-01-01T00:00:00.000Z"
        assert payload["status"] == "ok"
        assert payload["attrs"] == {"release": "web@1.0"}
        assert "event_id" not in parsed.header

    def test_multi_item(self, dsn: Dsn) -> None:
        text = create_multi_item_envelope([("event", {"a": 1}), ("client_report", {"b": 2})], dsn)
        parsed = parse_envelope(text)
        assert parsed is not None
        assert [item.header["type"] for item in parsed.items] == ["event", "client_report"]

    def test_binary_attachment_serialized_as_base64(self) -> None:
        data = b"\xff\xfe\x00binary"
        item = create_attachment_item("dump.bin", data)
        assert item.header["length"] == len(data)
        assert item.header["filename"] == "dump.bin"

        envelope = Envelope(headers={}, items=(item,))
        assert envelope.to_bytes().endswith(data)
        assert envelope.serialize().split("\n")[-1] == base64.b64encode(data).decode("ascii")

    def test_client_report(self) -> None:
        item = create_client_report_item([{"reason": "sample_rate", "category": "error", "quantity": 3}])
        payload = json.loads(item.payload)
        assert payload["discarded_events"][0]["quantity"] == 3

    def test_with_item_is_immutable(self) -> None:
        base = Envelope(headers={"x": 1})
        extended = base.with_item(json_item("event", {}))
        assert base.items == ()
        assert len(extended.items) == 1


class TestParsing:
    def test_too_few_lines(self) -> None:
        assert parse_envelope('{"a":1}\n{"type":"event"}') is None

    def test_bad_json_header(self) -> None:
        assert parse_envelope("not json\n{}\n{}") is None

    def test_item_without_payload(self) -> None:
        assert parse_envelope('{}\n{"type":"event"}\n{}\n{"type":"event"}') is None

    def test_blank_lines_skipped_and_text_payload(self) -> None:
        parsed = parse_envelope('{}\n\n{"type":"attachment"}\nplain text')
        assert parsed is not None
        assert parsed.items[0].payload == "plain text"

    def test_bytes_input(self) -> None:
        parsed = parse_envelope(b'{}\n{"type":"event"}\n{"a":1}')
        assert parsed is not None
        assert parsed.items[0].payload == {"a": 1}


class TestSize:
    def test_size_counts_bytes(self) -> None:
        assert envelope_size("✓") == 3
        assert envelope_size(b"abc") == 3

    def test_exceeds(self) -> None:
        text = bytes_item("attachment", "x" * 100).payload
        assert exceeds_max_size(text, max_size=99)
        assert not exceeds_max_size(text, max_size=100)


def _fail_checkout() -> None:
    raise ValueError("Checkout failed: ünïcode total ✓")


class TestPipelineEventRoundTrip:
    @pytest.mark.asyncio
    async def test_finalized_exception_event(self, dsn: Dsn, make_options: Callable[..., ClientOptions]) -> None:
        scope = Scope()
        scope.set_user({"id": "42", "signed_up": datetime.datetime(2024, 5, 1, 12, 0)})
        scope.set_extras({"ratio": float("nan"), "skus": {"A1"}, "nested": {"a": {"b": {"c": {"d": 1}}}}})
        scope.set_tag("region", "eu-west")
        scope.add_breadcrumb({"category": "ui", "message": "clicked pay"})
        try:
            _fail_checkout()
        except ValueError as e:
            event = event_from_exception(e, {"original_exception": e})

        result = await EventPipeline(make_options()).process_event(event, {}, scope)
        assert result.event is not None

        parsed = parse_envelope(create_envelope(result.event, dsn))
        assert parsed is not None
        (item,) = parsed.items
        assert item.header["type"] == "event"
        assert item.payload == result.event
        assert item.payload["extra"]["ratio"] == "[NaN]"
        assert item.payload["user"]["signed_up"] == "2024-05-01T12:00:00"
        assert item.payload["exception"]["values"][-1]["stacktrace"]["frames"][-1]["function"] == "_fail_checkout"

    @pytest.mark.asyncio
    async def test_finalized_message_event_with_truncation(
        self, dsn: Dsn, make_options: Callable[..., ClientOptions]
    ) -> None:
        event = event_from_message("x" * 500, level="warning", attach_stacktrace=True)
        options = make_options(max_value_length=100)

        result = await EventPipeline(options).process_event(event, {}, Scope())
        assert result.event is not None

        text = create_envelope(result.event, dsn)
        parsed = parse_envelope(text.encode("utf-8"))
        assert parsed is not None
        assert parsed.items[0].payload == json.loads(json.dumps(result.event))
        assert len(parsed.items[0].payload["message"]) == 100
