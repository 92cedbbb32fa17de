"""Client configuration schema and loading.

Uses Pydantic for validation and Dynaconf for file + environment loading.
Options are frozen (immutable) after construction.
"""

import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from tracelight.contracts.errors import TracelightConfigError
from tracelight.contracts.events import BeforeSendHook
from tracelight.core.dsn import Dsn, parse_dsn
from tracelight.core.eventbuilder import DEFAULT_MAX_VALUE_LENGTH
from tracelight.core.filtering import EventFilter, Pattern
from tracelight.core.normalize import DEFAULT_DEPTH, DEFAULT_MAX_BREADTH
from tracelight.core.scope import DEFAULT_MAX_BREADCRUMBS
from tracelight.core.stacktrace import InAppRules
from tracelight.tracing.context import ContextBackend
from tracelight.tracing.sampling import TracesSampler

ENV_PREFIX = "TRACELIGHT"

_RATE_FIELDS = (
    "sample_rate",
    "traces_sample_rate",
    "profiles_sample_rate",
    "replays_session_sample_rate",
    "replays_on_error_sample_rate",
)


class ClientOptions(BaseModel):
    """Everything the Client needs to capture, sample, filter and send.

    Example YAML:
        dsn: https://public@o0.ingest.example.com/42
        environment: production
        sample_rate: 1.0
        traces_sample_rate: 0.2
        ignore_errors:
          - "Network"
    """

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    dsn: str | None = Field(default=None, description="Endpoint descriptor; None disables forwarding")
    debug: bool = Field(default=False, description="Raise SDK log level to DEBUG")
    environment: str | None = Field(default=None, description="Deployment environment name")
    release: str | None = Field(default=None, description="Release identifier")

    sample_rate: float | None = Field(default=None, description="Error event sample rate (None = keep all)")
    traces_sample_rate: float | None = Field(default=None, description="Transaction sample rate")
    traces_sampler: TracesSampler | None = Field(default=None, description="Per-transaction sampler; overrides the rate")
    profiles_sample_rate: float | None = Field(default=None, description="Profile rate for sampled transactions")
    replays_session_sample_rate: float | None = Field(default=None, description="Replay rate for every session")
    replays_on_error_sample_rate: float | None = Field(default=None, description="Replay rate for sessions with an error")

    before_send: BeforeSendHook | None = Field(default=None, description="Hook for error events")
    before_send_transaction: BeforeSendHook | None = Field(default=None, description="Hook for transactions")

    ignore_errors: tuple[Pattern, ...] = Field(default=(), description="Drop errors whose text matches")
    ignore_transactions: tuple[Pattern, ...] = Field(default=(), description="Drop transactions whose name matches")
    deny_urls: tuple[Pattern, ...] = Field(default=(), description="Drop events originating from matching URLs")
    allow_urls: tuple[Pattern, ...] = Field(default=(), description="Keep only events from matching URLs")

    max_value_length: int = Field(default=DEFAULT_MAX_VALUE_LENGTH, gt=3, description="String cap on finalize")
    normalize_depth: int = Field(default=DEFAULT_DEPTH, ge=0, description="Normalization depth")
    normalize_max_breadth: int = Field(default=DEFAULT_MAX_BREADTH, ge=0, description="Keys/items kept per level")
    max_breadcrumbs: int = Field(default=DEFAULT_MAX_BREADCRUMBS, ge=0, description="Scope breadcrumb bound")
    attach_stacktrace: bool = Field(default=False, description="Attach a synthetic stack to message events")
    in_app_include: tuple[str, ...] = Field(default=(), description="Module/path prefixes forced in-app")
    in_app_exclude: tuple[str, ...] = Field(default=(), description="Module/path prefixes forced out of app")

    trace_propagation_targets: tuple[Pattern, ...] = Field(default=(), description="Outgoing URLs to inject into")
    context_backend: ContextBackend = Field(default=ContextBackend.CONTEXTVARS, description="Active-span storage")

    tunnel: str | None = Field(default=None, description="URL used verbatim instead of the DSN endpoint")
    forward_to_backend: bool = Field(default=True, description="Relay finalized events to the ingestion endpoint")
    transport_timeout: float = Field(default=30.0, gt=0, description="Per-request timeout in seconds")
    max_retries: int = Field(default=3, ge=1, description="Total send attempts for network errors and 5xx")
    retry_delay: float = Field(default=1.0, ge=0, description="Seconds between send attempts")

    @field_validator(*_RATE_FIELDS)
    @classmethod
    def validate_rate(cls, v: float | None) -> float | None:
        if v is not None and not 0.0 <= v <= 1.0:
            raise ValueError(f"sample rate must be between 0 and 1, got {v}")
        return v

    @field_validator("dsn")
    @classmethod
    def validate_dsn(cls, v: str | None) -> str | None:
        if v is not None and parse_dsn(v) is None:
            raise ValueError(f"invalid DSN: {v!r}")
        return v

    @field_validator("ignore_errors", "ignore_transactions", "deny_urls", "allow_urls", "trace_propagation_targets")
    @classmethod
    def validate_patterns(cls, v: tuple[Any, ...]) -> tuple[Pattern, ...]:
        for pattern in v:
            if not isinstance(pattern, str | re.Pattern):
                raise ValueError(f"pattern must be a string or compiled regex, got {type(pattern).__name__}")
        return v

    # === Derived views ===

    @property
    def parsed_dsn(self) -> Dsn | None:
        return parse_dsn(self.dsn) if self.dsn else None

    @property
    def event_filter(self) -> EventFilter:
        return EventFilter(
            ignore_errors=self.ignore_errors,
            ignore_transactions=self.ignore_transactions,
            allow_urls=self.allow_urls,
            deny_urls=self.deny_urls,
        )

    @property
    def in_app_rules(self) -> InAppRules:
        return InAppRules(include=self.in_app_include, exclude=self.in_app_exclude)

    # === Construction ===

    @classmethod
    def build(cls, **values: Any) -> "ClientOptions":
        """Construct options, converting validation failures to TracelightConfigError."""
        try:
            return cls(**values)
        except ValidationError as e:
            raise TracelightConfigError(f"Invalid client options: {e}") from e

    @classmethod
    def from_yaml(cls, config_path: Path | str, **overrides: Any) -> "ClientOptions":
        """Load options from YAML with environment variable overrides.

        Precedence, highest first:
        1. Keyword overrides
        2. Environment variables (TRACELIGHT_*)
        3. Config file
        4. Field defaults

        Raises:
            TracelightConfigError: Missing file, invalid YAML, or invalid values.
        """
        from dynaconf import Dynaconf

        path = Path(config_path)
        # Dynaconf silently accepts missing files
        if not path.exists():
            raise TracelightConfigError(f"Config file not found: {path}")

        try:
            settings = Dynaconf(
                envvar_prefix=ENV_PREFIX,
                settings_files=[str(path)],
                environments=False,
                load_dotenv=False,
            )
            raw = settings.as_dict()
        except yaml.YAMLError as e:
            raise TracelightConfigError(f"Invalid YAML in config file: {e}") from e

        internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
        known = set(cls.model_fields)
        values = {k.lower(): v for k, v in raw.items() if k not in internal_keys and k.lower() in known}
        values.update(overrides)
        return cls.build(**values)
