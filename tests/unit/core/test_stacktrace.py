# tests/unit/core/test_stacktrace.py
"""Tests for frame extraction and in_app detection."""

import os
import sysconfig

from tracelight.core.stacktrace import (
    InAppRules,
    frames_from_traceback,
    is_in_app,
    is_sdk_frame,
    parse_stack_text,
)

SAMPLE_TRACEBACK = """Traceback (most recent call last):
  File "/srv/app/handlers.py", line 12, in handle
    result = process(payload)
  File "/usr/lib/python3.12/site-packages/requests/api.py", line 59, in get
    return request("get", url)
             ^^^^^^^^^^^^^^^^^^
  File "/srv/app/client.py", line 30, in process
    raise ConnectionError("Network request failed")
ConnectionError: Network request failed
"""


def _raise_nested() -> None:
    def inner() -> None:
        raise ValueError("deep")

    inner()


class TestIsInApp:
    def test_application_path_is_in_app(self) -> None:
        assert is_in_app("/srv/app/handlers.py")

    def test_site_packages_is_not_in_app(self) -> None:
        assert not is_in_app(f"{os.sep}venv{os.sep}site-packages{os.sep}lib.py")
        assert not is_in_app(f"{os.sep}usr{os.sep}dist-packages{os.sep}lib.py")

    def test_stdlib_is_not_in_app(self) -> None:
        stdlib = sysconfig.get_paths()["stdlib"]
        assert not is_in_app(os.path.join(stdlib, "json", "decoder.py"))

    def test_synthetic_filenames_are_not_in_app(self) -> None:
        assert not is_in_app("<string>")
        assert not is_in_app(None)

    def test_sdk_frames_are_not_in_app(self) -> None:
        import tracelight.core.stacktrace as module

        assert is_sdk_frame(module.__file__)
        assert not is_in_app(module.__file__, "tracelight.core.stacktrace")

    def test_include_rule_wins(self) -> None:
        rules = InAppRules(include=("vendored",), exclude=("vendored",))
        assert is_in_app("/venv/site-packages/vendored/x.py", "vendored.x", rules)

    def test_exclude_rule(self) -> None:
        rules = InAppRules(exclude=("myapp.generated",))
        assert not is_in_app("/srv/myapp/generated/models.py", "myapp.generated.models", rules)
        assert is_in_app("/srv/myapp/views.py", "myapp.views", rules)


class TestFramesFromTraceback:
    def test_frames_are_oldest_first(self) -> None:
        try:
            _raise_nested()
        except ValueError as e:
            frames = frames_from_traceback(e.__traceback__)

        functions = [f["function"] for f in frames]
        assert functions == ["test_frames_are_oldest_first", "_raise_nested", "inner"]
        assert frames[-1]["context_line"] == 'raise ValueError("deep")'
        assert frames[-1]["filename"] == "test_stacktrace.py"
        assert all(isinstance(f["lineno"], int) for f in frames)

    def test_none_traceback_gives_no_frames(self) -> None:
        assert frames_from_traceback(None) == []


class TestParseStackText:
    def test_parses_frames_in_order(self) -> None:
        frames = parse_stack_text(SAMPLE_TRACEBACK)
        assert [f["function"] for f in frames] == ["handle", "get", "process"]
        assert [f["lineno"] for f in frames] == [12, 59, 30]
        assert frames[0]["filename"] == "handlers.py"
        assert frames[0]["context_line"] == "result = process(payload)"
        assert frames[1]["context_line"] == 'return request("get", url)'

    def test_in_app_flags(self) -> None:
        frames = parse_stack_text(SAMPLE_TRACEBACK)
        assert [f["in_app"] for f in frames] == [True, False, True]

    def test_skip_frames_drops_innermost(self) -> None:
        frames = parse_stack_text(SAMPLE_TRACEBACK, skip_frames=1)
        assert [f["function"] for f in frames] == ["handle", "get"]

    def test_garbage_gives_empty_list(self) -> None:
        assert parse_stack_text("not a traceback\nat all") == []
