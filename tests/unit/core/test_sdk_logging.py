# tests/unit/core/test_sdk_logging.py
"""Tests for SDK diagnostic logging."""

import io
import json
import logging
from collections.abc import Iterator

import pytest
import structlog

from tracelight.client import Client
from tracelight.core.config import ClientOptions
from tracelight.core.logging import SDK_HANDLER_NAME, SDK_LOGGER_NAME, configure_logging, reset_logging, set_sdk_debug


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    structlog.reset_defaults()
    yield
    reset_logging()
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def _last_json_line(stream: io.StringIO) -> dict[str, object]:
    return json.loads(stream.getvalue().strip().splitlines()[-1])


def _sdk_handlers() -> list[logging.Handler]:
    return [h for h in logging.getLogger(SDK_LOGGER_NAME).handlers if h.get_name() == SDK_HANDLER_NAME]


class TestConfigureLogging:
    def test_json_output(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, level="INFO", stream=stream)
        structlog.get_logger("tracelight.test").info("Event dropped", reason="sampled")

        payload = _last_json_line(stream)
        assert payload["event"] == "Event dropped"
        assert payload["reason"] == "sampled"
        assert payload["level"] == "info"
        assert "_record" not in payload

    def test_stdlib_records_share_format(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, level="INFO", stream=stream)
        logging.getLogger("tracelight.stdlib").warning("plain record")

        assert _last_json_line(stream)["event"] == "plain record"

    def test_level_threshold(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, level="WARNING", stream=stream)
        structlog.get_logger("tracelight.test").info("hidden")
        assert stream.getvalue() == ""

    def test_root_logger_untouched(self) -> None:
        root = logging.getLogger()
        before = list(root.handlers)
        configure_logging(level="DEBUG", stream=io.StringIO())
        assert root.handlers == before
        assert logging.getLogger(SDK_LOGGER_NAME).propagate is False

    def test_reconfigure_replaces_handler(self) -> None:
        configure_logging(stream=io.StringIO())
        configure_logging(stream=io.StringIO())
        assert len(_sdk_handlers()) == 1

    def test_other_loggers_not_captured(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, level="DEBUG", stream=stream)
        logging.getLogger("host.app").warning("not ours")
        assert stream.getvalue() == ""

    def test_http_loggers_quieted(self) -> None:
        configure_logging(level="DEBUG", stream=io.StringIO())
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_reset_restores_propagation(self) -> None:
        configure_logging(stream=io.StringIO())
        reset_logging()
        sdk_logger = logging.getLogger(SDK_LOGGER_NAME)
        assert _sdk_handlers() == []
        assert sdk_logger.propagate is True
        assert sdk_logger.level == logging.NOTSET


class TestSdkDebug:
    def test_enable_attaches_handler(self) -> None:
        set_sdk_debug(True)
        assert logging.getLogger(SDK_LOGGER_NAME).level == logging.DEBUG
        assert len(_sdk_handlers()) == 1

    def test_enable_keeps_existing_handler(self) -> None:
        configure_logging(level="WARNING", stream=io.StringIO())
        (handler,) = _sdk_handlers()
        set_sdk_debug(True)
        assert _sdk_handlers() == [handler]
        assert logging.getLogger(SDK_LOGGER_NAME).level == logging.DEBUG

    def test_disable_restores_inherited_level(self) -> None:
        set_sdk_debug(True)
        set_sdk_debug(False)
        assert logging.getLogger(SDK_LOGGER_NAME).level == logging.NOTSET

    @pytest.mark.asyncio
    async def test_client_debug_option_logs_drops(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, level="WARNING", stream=stream)

        client = Client(ClientOptions(debug=True, sample_rate=0.0))
        await client.capture_message("Cache warmed")

        payload = _last_json_line(stream)
        assert payload["event"] == "Event dropped"
        assert payload["reason"] == "sampled"
        assert payload["level"] == "debug"

    @pytest.mark.asyncio
    async def test_client_without_debug_stays_quiet(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, level="WARNING", stream=stream)

        client = Client(ClientOptions(sample_rate=0.0))
        await client.capture_message("Cache warmed")

        assert stream.getvalue() == ""


class TestStructlogRouting:
    def test_client_routes_unconfigured_structlog_to_stdlib(self) -> None:
        assert not structlog.is_configured()
        Client(ClientOptions())
        assert structlog.is_configured()
        assert isinstance(structlog.get_config()["logger_factory"], structlog.stdlib.LoggerFactory)

    def test_host_structlog_configuration_kept(self) -> None:
        factory = structlog.PrintLoggerFactory()
        structlog.configure(logger_factory=factory)
        Client(ClientOptions())
        configure_logging(stream=io.StringIO())
        assert structlog.get_config()["logger_factory"] is factory
