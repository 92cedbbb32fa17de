"""Deep normalization and truncation of event payloads.

Everything attached to an event (extra, contexts, user data) is reduced
to JSON-safe primitives before it leaves the pipeline:

- Reference cycles become ``"[Circular]"``.
- Containers below the depth limit collapse to a type tag
  (``"[Array(n)]"`` / ``"[Object]"``).
- Lists longer than the breadth limit are cut and end with a
  ``"... N more items"`` marker; mappings get a ``__truncated__`` key.
- Strings are capped with an ellipsis by truncate().
- NaN and infinite floats become ``"[NaN]"`` / ``"[Infinity]"`` tags.
"""

import datetime
import enum
import math
import re
import traceback
import types
from collections.abc import Mapping, Set
from typing import Any

CIRCULAR = "[Circular]"
OBJECT_TAG = "[Object]"
ELLIPSIS = "..."

NAN_TAG = "[NaN]"
INFINITY_TAG = "[Infinity]"
NEGATIVE_INFINITY_TAG = "[-Infinity]"

DEFAULT_DEPTH = 3
DEFAULT_MAX_BREADTH = 1000


def truncate(value: str, max_length: int) -> str:
    """Cap a string at max_length characters, ending with an ellipsis.

    Strings already within the limit are returned unchanged.
    """
    if len(value) <= max_length:
        return value
    return value[: max(max_length - len(ELLIPSIS), 0)] + ELLIPSIS


def normalize(
    data: Any,
    depth: int = DEFAULT_DEPTH,
    max_breadth: int = DEFAULT_MAX_BREADTH,
) -> Any:
    """Reduce arbitrary data to a JSON-safe structure.

    Args:
        data: Value to normalize.
        depth: Container levels to descend before collapsing to a tag.
        max_breadth: Maximum items/keys kept per container.

    Returns:
        A structure made only of dict/list/str/int/float/bool/None.
    """
    return _normalize_value(data, depth, max_breadth, set())


def _normalize_value(value: Any, depth: int, max_breadth: int, ancestors: set[int]) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        if math.isnan(value):
            return NAN_TAG
        return INFINITY_TAG if value > 0 else NEGATIVE_INFINITY_TAG
    if value is None or isinstance(value, bool | int | float | str):
        return value
    if isinstance(value, enum.Enum):
        return _normalize_value(value.value, depth, max_breadth, ancestors)
    if isinstance(value, bytes | bytearray):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, datetime.datetime | datetime.date | datetime.time):
        return value.isoformat()
    if isinstance(value, re.Pattern):
        return f"/{value.pattern}/"
    if isinstance(value, types.FunctionType | types.BuiltinFunctionType | types.MethodType):
        return f"[Function: {getattr(value, '__name__', '') or 'anonymous'}]"
    if isinstance(value, type):
        return f"[Class: {value.__name__}]"

    is_container = isinstance(value, BaseException | Mapping | Set | list | tuple)
    if not is_container:
        return str(value)

    marker = id(value)
    if marker in ancestors:
        return CIRCULAR

    if isinstance(value, BaseException):
        ancestors.add(marker)
        try:
            return _normalize_exception(value, depth, max_breadth, ancestors)
        finally:
            ancestors.discard(marker)

    if depth <= 0:
        if isinstance(value, list | tuple):
            return f"[Array({len(value)})]"
        return OBJECT_TAG

    ancestors.add(marker)
    try:
        if isinstance(value, list | tuple):
            result: list[Any] = [
                _normalize_value(item, depth - 1, max_breadth, ancestors) for item in value[:max_breadth]
            ]
            if len(value) > max_breadth:
                result.append(f"... {len(value) - max_breadth} more items")
            return result

        if isinstance(value, Set):
            items: list[Any] = []
            for count, item in enumerate(value):
                if count >= max_breadth:
                    items.append(f"... {len(value) - count} more items")
                    break
                items.append(_normalize_value(item, depth - 1, max_breadth, ancestors))
            return {"__type__": "Set", "values": items}

        mapped: dict[str, Any] = {}
        for count, (key, item) in enumerate(value.items()):
            if count >= max_breadth:
                mapped["__truncated__"] = f"{len(value) - max_breadth} more keys"
                break
            mapped[key if isinstance(key, str) else str(key)] = _normalize_value(
                item, depth - 1, max_breadth, ancestors
            )
        return mapped
    finally:
        ancestors.discard(marker)


def _normalize_exception(exc: BaseException, depth: int, max_breadth: int, ancestors: set[int]) -> dict[str, Any]:
    result: dict[str, Any] = {"name": type(exc).__name__, "message": str(exc)}
    if exc.__traceback__ is not None:
        result["stack"] = "".join(traceback.format_exception(exc)).rstrip()
    for key, item in vars(exc).items() if hasattr(exc, "__dict__") else ():
        if not key.startswith("_"):
            result[key] = _normalize_value(item, depth - 1, max_breadth, ancestors)
    cause = exc.__cause__ or exc.__context__
    if cause is not None:
        result["cause"] = _normalize_value(cause, depth - 1, max_breadth, ancestors)
    return result
