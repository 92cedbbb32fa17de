"""
Tracelight: error capture, distributed tracing and envelope transport.

Captured events pass through a staged pipeline (scope, processors,
sampling, filtering, hooks, normalization) before being stored and
relayed to a Sentry-compatible ingestion endpoint.
"""

__version__ = "0.1.0"
