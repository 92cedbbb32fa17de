"""Stack frame extraction from live tracebacks and formatted traceback text.

Frames are always returned oldest to newest (outermost call first), the
order the ingestion backend expects.
"""

import linecache
import os
import re
import sysconfig
import traceback
from collections.abc import Sequence
from dataclasses import dataclass
from types import TracebackType

from tracelight.contracts.events import StackFramePayload

_PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

_THIRD_PARTY_MARKERS: tuple[str, ...] = (
    f"{os.sep}site-packages{os.sep}",
    f"{os.sep}dist-packages{os.sep}",
)

_FRAME_LINE = re.compile(r'^\s*File "(?P<path>[^"]+)", line (?P<lineno>\d+)(?:, in (?P<function>.+))?\s*$')


def _stdlib_prefixes() -> tuple[str, ...]:
    paths = sysconfig.get_paths()
    prefixes = {paths[key] for key in ("stdlib", "platstdlib") if paths.get(key)}
    return tuple(sorted(prefixes))


_STDLIB_PREFIXES = _stdlib_prefixes()


@dataclass(frozen=True, slots=True)
class InAppRules:
    """Module-prefix overrides for in_app detection.

    ``include`` wins over ``exclude``; both win over the path heuristics.
    """

    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()


def is_in_app(filename: str | None, module: str | None = None, rules: InAppRules | None = None) -> bool:
    """Decide whether a frame belongs to application code.

    Args:
        filename: Absolute or relative source path.
        module: Dotted module name, when known.
        rules: Optional include/exclude module prefixes.

    Returns:
        False for third-party, stdlib, SDK-internal and synthetic frames.
    """
    if rules is not None and module:
        if any(module == p or module.startswith(f"{p}.") for p in rules.include):
            return True
        if any(module == p or module.startswith(f"{p}.") for p in rules.exclude):
            return False
    if not filename or filename.startswith("<"):
        return False
    if any(marker in filename for marker in _THIRD_PARTY_MARKERS):
        return False
    absolute = os.path.abspath(filename)
    if absolute.startswith(_PACKAGE_DIR + os.sep):
        return False
    return not any(absolute.startswith(prefix + os.sep) for prefix in _STDLIB_PREFIXES)


def _module_name(filename: str, module: object | None = None) -> str | None:
    if isinstance(module, str) and module:
        return module
    base = os.path.basename(filename)
    stem, ext = os.path.splitext(base)
    return stem if ext == ".py" else None


def frames_from_traceback(tb: TracebackType | None, rules: InAppRules | None = None) -> list[StackFramePayload]:
    """Build wire frames from a live traceback."""
    frames: list[StackFramePayload] = []
    for frame, lineno in traceback.walk_tb(tb):
        code = frame.f_code
        filename = code.co_filename
        module = _module_name(filename, frame.f_globals.get("__name__"))
        payload: StackFramePayload = {
            "filename": os.path.basename(filename),
            "abs_path": filename,
            "function": code.co_name,
            "lineno": lineno,
            "in_app": is_in_app(filename, module, rules),
        }
        if module:
            payload["module"] = module
        context_line = _source_line(filename, lineno)
        if context_line:
            payload["context_line"] = context_line
        frames.append(payload)
    return frames


def frames_from_summary(summary: Sequence[traceback.FrameSummary], rules: InAppRules | None = None) -> list[StackFramePayload]:
    """Build wire frames from traceback.extract_stack() output (synthetic stacks)."""
    frames: list[StackFramePayload] = []
    for entry in summary:
        module = _module_name(entry.filename)
        payload: StackFramePayload = {
            "filename": os.path.basename(entry.filename),
            "abs_path": entry.filename,
            "function": entry.name,
            "in_app": is_in_app(entry.filename, module, rules),
        }
        if entry.lineno is not None:
            payload["lineno"] = entry.lineno
        if entry.line:
            payload["context_line"] = entry.line
        frames.append(payload)
    return frames


def parse_stack_text(text: str, skip_frames: int = 0, rules: InAppRules | None = None) -> list[StackFramePayload]:
    """Parse formatted Python traceback text into frames.

    Lines that are not ``File "...", line N, in func`` entries are treated
    as the source line of the preceding frame or ignored.

    Args:
        text: Output of traceback.format_exc() / format_stack().
        skip_frames: Number of innermost frames to drop.
        rules: Optional in_app overrides.

    Returns:
        Frames oldest to newest; empty list for unparseable input.
    """
    frames: list[StackFramePayload] = []
    for line in text.splitlines():
        match = _FRAME_LINE.match(line)
        if match is None:
            stripped = line.strip()
            if frames and stripped and "context_line" not in frames[-1] and _is_source_line(line):
                frames[-1]["context_line"] = stripped
            continue
        path = match["path"]
        module = _module_name(path)
        frame: StackFramePayload = {
            "filename": os.path.basename(path),
            "abs_path": path,
            "function": (match["function"] or "<module>").strip(),
            "lineno": int(match["lineno"]),
            "in_app": is_in_app(path, module, rules),
        }
        frames.append(frame)
    if skip_frames > 0:
        frames = frames[: max(len(frames) - skip_frames, 0)]
    return frames


def _is_source_line(line: str) -> bool:
    # Source lines are indented deeper than frame headers and are not caret markers.
    return line.startswith("    ") and not set(line.strip()) <= {"^", "~"}


def _source_line(filename: str, lineno: int) -> str | None:
    line = linecache.getline(filename, lineno)
    return line.strip() or None


def is_sdk_frame(filename: str | None) -> bool:
    """Whether a path lies inside the tracelight package itself."""
    return bool(filename) and os.path.abspath(filename).startswith(_PACKAGE_DIR + os.sep)
