"""Core infrastructure: ids, DSN, event building, scope, configuration, pipeline, logging.

Only the leaf modules are re-exported here. The tracing package imports
``tracelight.core.ids`` while core's higher layers (scope, config,
pipeline) import tracing, so those are imported from their own modules.
"""

from tracelight.core.dsn import Dsn, is_valid_dsn, parse_dsn
from tracelight.core.ids import (
    generate_event_id,
    generate_span_id,
    generate_trace_id,
    is_valid_span_id,
    is_valid_trace_id,
)

__all__ = [
    "Dsn",
    "generate_event_id",
    "generate_span_id",
    "generate_trace_id",
    "is_valid_dsn",
    "is_valid_span_id",
    "is_valid_trace_id",
    "parse_dsn",
]
