"""Diagnostic logging for the tracelight SDK.

SDK modules log through ``structlog.get_logger(__name__)``. A host that
configures structlog keeps its configuration; otherwise the client routes
structlog into stdlib so SDK records land on the ``tracelight`` logger
instead of stdout. configure_logging() attaches a handler to that logger
only, leaving the root logger untouched. The client's ``debug`` option
calls it through set_sdk_debug().

Stdlib records and structlog events share one ProcessorFormatter, so both
render as the same JSON or console lines.
"""

import logging
import sys
from typing import Any, TextIO

import structlog
from structlog.stdlib import ProcessorFormatter

SDK_LOGGER_NAME = "tracelight"
SDK_HANDLER_NAME = "tracelight-sdk"

# HTTP client internals emit connection-pool chatter at DEBUG.
_NOISY_LOGGERS: tuple[str, ...] = (
    "httpx",
    "httpcore",
)

_SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.StackInfoRenderer(),
]


def _remove_internal_fields(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Drop the ``_record``/``_from_structlog`` keys ProcessorFormatter adds."""
    event_dict.pop("_record", None)
    event_dict.pop("_from_structlog", None)
    return event_dict


def route_structlog_to_stdlib() -> None:
    """Send structlog events to stdlib loggers unless the host configured structlog."""
    if structlog.is_configured():
        return
    structlog.configure(
        processors=[*_SHARED_PROCESSORS, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Caching would pin loggers to the first configuration seen in tests
        cache_logger_on_first_use=False,
    )


def _sdk_handler(sdk_logger: logging.Logger) -> logging.Handler | None:
    for handler in sdk_logger.handlers:
        if handler.get_name() == SDK_HANDLER_NAME:
            return handler
    return None


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Send SDK diagnostics to ``stream`` (stderr by default).

    Calling it again replaces the previous SDK handler. structlog itself is
    only configured when the host application has not configured it.

    Args:
        json_output: If True, output JSON. If False, human-readable.
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        stream: Destination for the SDK handler.
    """
    log_level = getattr(logging, level.upper())
    route_structlog_to_stdlib()

    if json_output:
        final_processors: list[Any] = [
            _remove_internal_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        final_processors = [
            _remove_internal_fields,
            structlog.dev.ConsoleRenderer(colors=False),
        ]

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.set_name(SDK_HANDLER_NAME)
    handler.setFormatter(ProcessorFormatter(processors=final_processors, foreign_pre_chain=_SHARED_PROCESSORS))

    sdk_logger = logging.getLogger(SDK_LOGGER_NAME)
    previous = _sdk_handler(sdk_logger)
    if previous is not None:
        sdk_logger.removeHandler(previous)
    sdk_logger.addHandler(handler)
    sdk_logger.setLevel(log_level)
    # Records stay on the SDK handler.
    sdk_logger.propagate = False

    noisy_level = max(log_level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(noisy_level)


def reset_logging() -> None:
    """Detach the SDK handler and hand the ``tracelight`` logger back to the host."""
    sdk_logger = logging.getLogger(SDK_LOGGER_NAME)
    handler = _sdk_handler(sdk_logger)
    if handler is not None:
        sdk_logger.removeHandler(handler)
    sdk_logger.setLevel(logging.NOTSET)
    sdk_logger.propagate = True


def set_sdk_debug(enabled: bool) -> None:
    """Map the client's ``debug`` option onto the SDK logger.

    Enabling attaches the SDK handler at DEBUG unless one is already
    attached, in which case only the level changes. Disabling restores
    the inherited level and keeps any handler the caller configured.
    """
    route_structlog_to_stdlib()
    sdk_logger = logging.getLogger(SDK_LOGGER_NAME)
    if not enabled:
        sdk_logger.setLevel(logging.NOTSET)
        return
    if _sdk_handler(sdk_logger) is None:
        configure_logging(level="DEBUG")
    sdk_logger.setLevel(logging.DEBUG)
