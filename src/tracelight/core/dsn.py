"""Endpoint descriptor (DSN) parsing and derived ingestion URLs.

Format:
    {http|https}://{public_key}[:{secret_key}]@{host}[:{port}][/{path}]/{project_id}

Usage:
    dsn = parse_dsn("https://abc123@o456.ingest.example.io/789")
    dsn.envelope_endpoint()
    # "https://o456.ingest.example.io/api/789/envelope/"

Malformed descriptors never raise: parse_dsn() returns None so callers
treat "invalid" and "absent" the same way.
"""

import re
import time
from dataclasses import dataclass

_DSN_PATTERN = re.compile(
    r"^(?P<protocol>https?)://"
    r"(?P<public_key>[A-Za-z0-9]+)(?::(?P<secret_key>[A-Za-z0-9]+))?"
    r"@(?P<host>[^/:@\s]+)(?::(?P<port>\d+))?"
    r"(?:/(?P<path>.+?))?"
    r"/(?P<project_id>\d+)/?$"
)


@dataclass(frozen=True, slots=True)
class Dsn:
    """Parsed endpoint descriptor.

    ``path`` is stored without leading/trailing slashes ("" when absent).
    Use parse_dsn() to construct from a string.
    """

    protocol: str
    public_key: str
    host: str
    project_id: str
    secret_key: str | None = None
    port: str | None = None
    path: str = ""

    def to_string(self) -> str:
        """Render back to descriptor string form."""
        result = f"{self.protocol}://{self.public_key}"
        if self.secret_key:
            result += f":{self.secret_key}"
        result += f"@{self.host}"
        if self.port:
            result += f":{self.port}"
        if self.path:
            result += f"/{self.path}"
        return f"{result}/{self.project_id}"

    @property
    def base_url(self) -> str:
        """``proto://host[:port][/path]``."""
        url = f"{self.protocol}://{self.host}"
        if self.port:
            url += f":{self.port}"
        if self.path:
            url += f"/{self.path}"
        return url

    @property
    def base_api_url(self) -> str:
        return f"{self.base_url}/api/{self.project_id}"

    def envelope_endpoint(self, tunnel: str | None = None) -> str:
        """Ingestion URL for envelopes; a tunnel URL is used verbatim."""
        if tunnel:
            return tunnel
        return f"{self.base_api_url}/envelope/"

    @property
    def store_endpoint(self) -> str:
        """Legacy single-event endpoint."""
        return f"{self.base_api_url}/store/"

    def auth_headers(
        self,
        sdk_name: str,
        sdk_version: str,
        *,
        timestamp: int | None = None,
    ) -> dict[str, str]:
        """Authentication and content-type headers for an envelope POST.

        Args:
            sdk_name: Client name reported to the backend.
            sdk_version: Client version reported to the backend.
            timestamp: Override for the auth timestamp (tests).

        Returns:
            Headers dict with ``X-Sentry-Auth`` and ``Content-Type``.
        """
        ts = int(time.time()) if timestamp is None else timestamp
        auth = (
            f"Sentry sentry_version=7, sentry_client={sdk_name}/{sdk_version}, "
            f"sentry_timestamp={ts}, sentry_key={self.public_key}"
        )
        if self.secret_key:
            auth += f", sentry_secret={self.secret_key}"
        return {
            "X-Sentry-Auth": auth,
            "Content-Type": "application/x-sentry-envelope",
        }


def parse_dsn(value: object) -> Dsn | None:
    """Parse a descriptor string.

    Args:
        value: Candidate descriptor (non-strings are rejected).

    Returns:
        Dsn, or None if the value is not a valid descriptor.
    """
    if not isinstance(value, str) or not value:
        return None
    match = _DSN_PATTERN.match(value.strip())
    if match is None:
        return None
    return Dsn(
        protocol=match["protocol"],
        public_key=match["public_key"],
        secret_key=match["secret_key"] or None,
        host=match["host"],
        port=match["port"] or None,
        path=(match["path"] or "").strip("/"),
        project_id=match["project_id"],
    )


def is_valid_dsn(value: object) -> bool:
    return parse_dsn(value) is not None
