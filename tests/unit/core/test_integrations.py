# tests/unit/core/test_integrations.py
"""Tests for the pluggy-based integration manager and built-in integrations."""

from collections.abc import Callable

import pytest

from tracelight.contracts.events import Event, EventHint, EventProcessor
from tracelight.core.config import ClientOptions
from tracelight.core.hookspecs import hookimpl
from tracelight.core.integrations import DedupeIntegration, EnvironmentIntegration, IntegrationManager


class _TaggingIntegration:
    def __init__(self, name: str) -> None:
        self.name = name

    @hookimpl
    def tracelight_get_event_processors(self, options: ClientOptions) -> list[EventProcessor]:
        def tag(event: Event, hint: EventHint) -> Event:
            event.setdefault("order", []).append(self.name)
            return event

        return [tag]


class TestIntegrationManager:
    def test_builtins_registered(self) -> None:
        manager = IntegrationManager()
        manager.register_builtin_integrations()
        assert manager.names == ["environment", "dedupe"]

    def test_duplicate_name_rejected(self) -> None:
        manager = IntegrationManager()
        manager.register(_TaggingIntegration("a"))
        with pytest.raises(ValueError, match="Duplicate integration name"):
            manager.register(_TaggingIntegration("a"))

    def test_processors_follow_registration_order(self, make_options: Callable[..., ClientOptions]) -> None:
        manager = IntegrationManager()
        for name in ("first", "second", "third"):
            manager.register(_TaggingIntegration(name))

        event: Event = {}
        for processor in manager.get_event_processors(make_options()):
            event = processor(event, {})  # type: ignore[assignment]
        assert event["order"] == ["first", "second", "third"]


class TestEnvironmentIntegration:
    def test_stamps_missing_values(self, make_options: Callable[..., ClientOptions]) -> None:
        options = make_options(release="web@1.0", environment="production")
        (stamp,) = EnvironmentIntegration().tracelight_get_event_processors(options)
        assert stamp({}, {}) == {"release": "web@1.0", "environment": "production"}

    def test_keeps_event_values(self, make_options: Callable[..., ClientOptions]) -> None:
        options = make_options(release="web@1.0", environment="production")
        (stamp,) = EnvironmentIntegration().tracelight_get_event_processors(options)
        event = stamp({"release": "web@0.9", "environment": "staging"}, {})
        assert event == {"release": "web@0.9", "environment": "staging"}


class TestDedupeIntegration:
    def _error(self, value: str) -> Event:
        frames = [{"filename": "app.py", "function": "handler", "lineno": 10}]
        return {"exception": {"values": [{"type": "ValueError", "value": value, "stacktrace": {"frames": frames}}]}}

    def test_drops_consecutive_duplicate(self) -> None:
        dedupe = DedupeIntegration()
        assert dedupe.process(self._error("boom"), {}) is not None
        assert dedupe.process(self._error("boom"), {}) is None

    def test_different_error_kept(self) -> None:
        dedupe = DedupeIntegration()
        dedupe.process(self._error("boom"), {})
        assert dedupe.process(self._error("other"), {}) is not None
        assert dedupe.process(self._error("boom"), {}) is not None

    def test_duplicate_messages(self) -> None:
        dedupe = DedupeIntegration()
        assert dedupe.process({"message": "hello"}, {}) is not None
        assert dedupe.process({"message": "hello"}, {}) is None

    def test_transactions_never_deduplicated(self) -> None:
        dedupe = DedupeIntegration()
        transaction: Event = {"type": "transaction", "transaction": "GET /"}
        assert dedupe.process(transaction, {}) is transaction
        assert dedupe.process(transaction, {}) is transaction
