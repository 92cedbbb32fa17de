"""Integration manager and built-in integrations.

Uses pluggy for hook-based registration. Processors are collected in
integration registration order.
"""

from typing import Any

import pluggy
import structlog

from tracelight.contracts.enums import EventType
from tracelight.contracts.events import Event, EventHint, EventProcessor
from tracelight.core.config import ClientOptions
from tracelight.core.hookspecs import PROJECT_NAME, TracelightIntegrationSpec, hookimpl

logger = structlog.get_logger(__name__)


# =============================================================================
# Built-in integrations
# =============================================================================


def _fingerprint(event: Event) -> tuple[Any, ...] | None:
    """Identity of an error event for duplicate detection."""
    exception = event.get("exception")
    if isinstance(exception, dict) and exception.get("values"):
        last = exception["values"][-1]
        frames = (last.get("stacktrace") or {}).get("frames") or []
        frame_keys = tuple((f.get("filename"), f.get("function"), f.get("lineno")) for f in frames)
        return ("exception", last.get("type"), last.get("value"), frame_keys)
    message = event.get("message")
    if message:
        return ("message", str(message), tuple(event.get("fingerprint") or ()))
    return None


class DedupeIntegration:
    """Drops an error event identical to the one captured immediately before it."""

    name = "dedupe"

    def __init__(self) -> None:
        self._previous: tuple[Any, ...] | None = None

    def process(self, event: Event, hint: EventHint) -> Event | None:
        if event.get("type") == EventType.TRANSACTION:
            return event
        current = _fingerprint(event)
        if current is not None and current == self._previous:
            logger.debug("Dropping duplicate event", event_id=event.get("event_id"))
            return None
        self._previous = current
        return event

    @hookimpl
    def tracelight_get_event_processors(self, options: ClientOptions) -> list[EventProcessor]:
        return [self.process]


class EnvironmentIntegration:
    """Stamps ``release`` and ``environment`` from options onto events that lack them."""

    name = "environment"

    @hookimpl
    def tracelight_get_event_processors(self, options: ClientOptions) -> list[EventProcessor]:
        release = options.release
        environment = options.environment

        def stamp(event: Event, hint: EventHint) -> Event:
            if release and not event.get("release"):
                event["release"] = release
            if environment and not event.get("environment"):
                event["environment"] = environment
            return event

        return [stamp]


def default_integrations() -> list[Any]:
    return [EnvironmentIntegration(), DedupeIntegration()]


# =============================================================================
# Manager
# =============================================================================


class IntegrationManager:
    """Registers integrations and collects their event processors.

    Usage:
        manager = IntegrationManager()
        manager.register(MyIntegration())
        processors = manager.get_event_processors(options)
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(TracelightIntegrationSpec)
        self._names: list[str] = []

    def register(self, integration: Any) -> None:
        """Register an integration instance.

        Raises:
            ValueError: If an integration with the same name is already registered.
        """
        name = getattr(integration, "name", None) or type(integration).__name__
        if name in self._names:
            raise ValueError(f"Duplicate integration name: '{name}'")
        self._pm.register(integration, name=name)
        self._names.append(name)

    def register_builtin_integrations(self) -> None:
        for integration in default_integrations():
            self.register(integration)

    @property
    def names(self) -> list[str]:
        return list(self._names)

    def get_event_processors(self, options: ClientOptions) -> list[EventProcessor]:
        # pluggy calls implementations last-registered first
        results = self._pm.hook.tracelight_get_event_processors(options=options)
        processors: list[EventProcessor] = []
        for contributed in reversed(results):
            processors.extend(contributed)
        return processors
