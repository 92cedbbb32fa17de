# tests/conftest.py
"""Shared test fixtures.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import os
from collections.abc import Callable

import pytest
from hypothesis import Phase, Verbosity, settings

from tracelight.contracts.events import Event
from tracelight.core.config import ClientOptions
from tracelight.core.dsn import Dsn, parse_dsn
from tracelight.core.storage import MemoryStorage

TEST_DSN = "https://public123@o1.ingest.example.com/42"


class FakeClock:
    """Manually advanced clock for rate-limit and batching tests."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSender:
    """Transport double that records every event it is asked to send."""

    def __init__(self) -> None:
        self.sent: list[Event] = []

    async def send(self, event: Event) -> object:
        self.sent.append(event)
        return None


@pytest.fixture
def dsn() -> Dsn:
    parsed = parse_dsn(TEST_DSN)
    assert parsed is not None
    return parsed


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def make_options() -> Callable[..., ClientOptions]:
    """Build ClientOptions with forwarding off unless a test opts in."""

    def _make(**overrides: object) -> ClientOptions:
        values: dict[str, object] = {"forward_to_backend": False}
        values.update(overrides)
        return ClientOptions(**values)  # type: ignore[arg-type]

    return _make


# =============================================================================
# Hypothesis Configuration
# =============================================================================

# CI profile: Fast tests for continuous integration
settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

# Nightly profile: Thorough testing for scheduled runs
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Debug profile: Minimal examples with verbose output for debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Load profile from environment, default to "ci"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))
