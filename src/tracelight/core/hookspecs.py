"""pluggy hook specifications for tracelight integrations.

Integrations implement these hooks to contribute event processors to
the pipeline.

Usage (implementing an integration):
    from tracelight.core.hookspecs import hookimpl

    class MyIntegration:
        @hookimpl  # NOT @hookspec - that's for defining specs
        def tracelight_get_event_processors(self, options):
            return [my_processor]
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from tracelight.contracts.events import EventProcessor
    from tracelight.core.config import ClientOptions

PROJECT_NAME = "tracelight"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)

hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class TracelightIntegrationSpec:
    """Hook specifications for integrations."""

    @hookspec
    def tracelight_get_event_processors(self, options: "ClientOptions") -> list["EventProcessor"]:  # type: ignore[empty-body]
        """Return event processors to append to the pipeline.

        Args:
            options: The client's options.

        Returns:
            Processors, in the order they should run.
        """
