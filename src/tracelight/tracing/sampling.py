"""Sampling decisions for errors, transactions, replays and profiles.

Rate semantics shared by every decision:
    None or NaN -> sampled (nothing configured)
    rate <= 0   -> never
    rate >= 1   -> always
    otherwise   -> Bernoulli draw from the OS CSPRNG

Transactions additionally honour a user sampler and the parent's decision
so a distributed trace is never partially sampled.
"""

import math
import random
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

import structlog

from tracelight.contracts.enums import SamplingReason

logger = structlog.get_logger(__name__)

_random = random.SystemRandom()

SamplingKind = Literal["error", "transaction", "replay", "profile"]


@dataclass(frozen=True, slots=True)
class SamplingDecision:
    sampled: bool
    reason: SamplingReason
    sample_rate: float | None = None


@dataclass(frozen=True, slots=True)
class SamplingContext:
    """What a traces sampler sees when a transaction starts."""

    name: str
    op: str | None = None
    parent_sampled: bool | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict)
    source: str | None = None
    request_url: str | None = None


TracesSampler = Callable[[SamplingContext], float | bool]


class SamplingConfig(Protocol):
    """Subset of client options consulted by apply_sampling()."""

    sample_rate: float | None
    traces_sample_rate: float | None
    traces_sampler: TracesSampler | None
    replays_session_sample_rate: float | None
    replays_on_error_sample_rate: float | None
    profiles_sample_rate: float | None


def generate_random() -> float:
    """Uniform float in [0, 1) from the OS CSPRNG."""
    return _random.random()


def should_sample_event(sample_rate: float | None = None) -> bool:
    if sample_rate is None or math.isnan(sample_rate):
        return True
    if sample_rate <= 0:
        return False
    if sample_rate >= 1:
        return True
    return generate_random() < sample_rate


def get_sampling_decision(sample_rate: float | None = None) -> SamplingDecision:
    """Rate-based decision with the reason that produced it."""
    if sample_rate is None or math.isnan(sample_rate):
        return SamplingDecision(sampled=True, reason=SamplingReason.NO_RATE_CONFIGURED)
    if sample_rate <= 0:
        return SamplingDecision(sampled=False, sample_rate=0.0, reason=SamplingReason.RATE_ZERO)
    if sample_rate >= 1:
        return SamplingDecision(sampled=True, sample_rate=1.0, reason=SamplingReason.RATE_ONE)
    return SamplingDecision(
        sampled=generate_random() < sample_rate,
        sample_rate=sample_rate,
        reason=SamplingReason.RANDOM,
    )


def _decision_from_sampler(result: float | bool) -> SamplingDecision | None:
    if isinstance(result, bool):
        return SamplingDecision(
            sampled=result,
            sample_rate=1.0 if result else 0.0,
            reason=SamplingReason.SAMPLER_FUNCTION,
        )
    if isinstance(result, int | float) and not math.isnan(result):
        if result <= 0:
            return SamplingDecision(sampled=False, sample_rate=0.0, reason=SamplingReason.SAMPLER_FUNCTION)
        if result >= 1:
            return SamplingDecision(sampled=True, sample_rate=1.0, reason=SamplingReason.SAMPLER_FUNCTION)
        return SamplingDecision(
            sampled=generate_random() < result,
            sample_rate=float(result),
            reason=SamplingReason.SAMPLER_FUNCTION,
        )
    return None


def should_sample_transaction(
    context: SamplingContext,
    traces_sample_rate: float | None = None,
    traces_sampler: TracesSampler | None = None,
) -> SamplingDecision:
    """Decide whether a new transaction is sampled.

    Precedence:
        1. traces_sampler (it receives parent_sampled and may defer to it).
           A sampler that raises or returns a non-number is ignored.
        2. The parent's decision, when the context carries one.
        3. traces_sample_rate; None means "tracing not configured" and
           yields an unsampled decision.
    """
    if traces_sampler is not None:
        try:
            decision = _decision_from_sampler(traces_sampler(context))
        except Exception as e:
            logger.warning("Traces sampler raised, ignoring it", transaction=context.name, error=str(e))
            decision = None
        if decision is not None:
            return decision

    if context.parent_sampled is not None:
        return SamplingDecision(
            sampled=context.parent_sampled,
            reason=SamplingReason.PARENT_SAMPLED if context.parent_sampled else SamplingReason.PARENT_NOT_SAMPLED,
        )

    if traces_sample_rate is None:
        return SamplingDecision(sampled=False, reason=SamplingReason.NO_RATE_CONFIGURED)

    decision = get_sampling_decision(traces_sample_rate)
    if decision.reason == SamplingReason.NO_RATE_CONFIGURED:
        return SamplingDecision(sampled=decision.sampled, sample_rate=decision.sample_rate, reason=SamplingReason.EXPLICIT_RATE)
    return decision


def should_sample_replay(
    is_error: bool,
    session_sample_rate: float | None = None,
    on_error_sample_rate: float | None = None,
) -> SamplingDecision:
    """Error sessions use the on-error rate when configured, else the session rate."""
    if is_error and on_error_sample_rate is not None:
        return get_sampling_decision(on_error_sample_rate)
    return get_sampling_decision(session_sample_rate)


def should_sample_profile(transaction_sampled: bool, profiles_sample_rate: float | None = None) -> SamplingDecision:
    """Profiles are only taken for sampled transactions with a configured rate."""
    if not transaction_sampled:
        return SamplingDecision(sampled=False, reason=SamplingReason.PARENT_NOT_SAMPLED)
    if profiles_sample_rate is None:
        return SamplingDecision(sampled=False, reason=SamplingReason.NO_RATE_CONFIGURED)
    return get_sampling_decision(profiles_sample_rate)


def apply_sampling(
    kind: SamplingKind,
    options: SamplingConfig,
    *,
    sampling_context: SamplingContext | None = None,
    is_error: bool = False,
    transaction_sampled: bool = False,
) -> bool:
    """One-call sampling dispatch by payload kind."""
    match kind:
        case "error":
            return should_sample_event(options.sample_rate)
        case "transaction":
            if sampling_context is None:
                return should_sample_event(options.traces_sample_rate)
            return should_sample_transaction(
                sampling_context, options.traces_sample_rate, options.traces_sampler
            ).sampled
        case "replay":
            return should_sample_replay(
                is_error, options.replays_session_sample_rate, options.replays_on_error_sample_rate
            ).sampled
        case "profile":
            return should_sample_profile(transaction_sampled, options.profiles_sample_rate).sampled
    return True


def deterministic_sample(identifier: str, sample_rate: float) -> bool:
    """Stable decision for an id: the same id always gets the same answer.

    The id is hashed with a 31-multiplier rolling hash (32-bit wraparound)
    and mapped onto [0, 1].
    """
    if sample_rate <= 0:
        return False
    if sample_rate >= 1:
        return True
    h = 0
    for char in identifier:
        h = ((h << 5) - h + ord(char)) & 0xFFFFFFFF
    normalized = (h & 0x7FFFFFFF) / 0x7FFFFFFF
    return normalized < sample_rate


# =============================================================================
# Sampler combinators
# =============================================================================


def operation_based_sampler(operation_rates: Mapping[str, float], default_rate: float = 0.0) -> TracesSampler:
    """Sampler choosing a rate by transaction op."""

    def sampler(context: SamplingContext) -> float:
        if context.op and context.op in operation_rates:
            return operation_rates[context.op]
        return default_rate

    return sampler


def url_pattern_sampler(
    patterns: Sequence[tuple[re.Pattern[str] | str, float]],
    default_rate: float = 0.0,
) -> TracesSampler:
    """Sampler choosing a rate by the first pattern matching the request URL (or name)."""
    compiled = [(re.compile(p) if isinstance(p, str) else p, rate) for p, rate in patterns]

    def sampler(context: SamplingContext) -> float:
        url = context.request_url or context.name
        if not url:
            return default_rate
        for pattern, rate in compiled:
            if pattern.search(url):
                return rate
        return default_rate

    return sampler


def combine_samplers(samplers: Sequence[TracesSampler]) -> TracesSampler:
    """Sampler returning the minimum rate of all samplers (0 short-circuits)."""

    def sampler(context: SamplingContext) -> float:
        min_rate = 1.0
        for inner in samplers:
            result = inner(context)
            rate = (1.0 if result else 0.0) if isinstance(result, bool) else float(result)
            min_rate = min(min_rate, rate)
            if min_rate <= 0:
                return 0.0
        return min_rate

    return sampler


# =============================================================================
# Statistics
# =============================================================================


@dataclass(slots=True)
class CategoryStats:
    total: int = 0
    sampled: int = 0
    dropped: int = 0
    by_reason: dict[str, dict[str, int]] = field(default_factory=dict)

    @property
    def sample_rate(self) -> float:
        return self.sampled / self.total if self.total else 0.0

    @property
    def drop_rate(self) -> float:
        return self.dropped / self.total if self.total else 0.0


class SamplingStats:
    """Counters of sampling outcomes, per category and per reason."""

    def __init__(self) -> None:
        self._categories: dict[str, CategoryStats] = {}
        self.reset()

    def record(self, category: str, sampled: bool, reason: str = "rate") -> None:
        stats = self._categories.setdefault(category, CategoryStats())
        stats.total += 1
        outcome = "sampled" if sampled else "dropped"
        if sampled:
            stats.sampled += 1
        else:
            stats.dropped += 1
        bucket = stats.by_reason.setdefault(str(reason), {"sampled": 0, "dropped": 0})
        bucket[outcome] += 1

    def record_decision(self, category: str, decision: SamplingDecision) -> None:
        self.record(category, decision.sampled, decision.reason)

    def category(self, category: str) -> CategoryStats:
        """Snapshot copy of one category's counters."""
        stats = self._categories.get(category, CategoryStats())
        return CategoryStats(
            total=stats.total,
            sampled=stats.sampled,
            dropped=stats.dropped,
            by_reason={k: dict(v) for k, v in stats.by_reason.items()},
        )

    @property
    def total_sampled(self) -> int:
        return sum(s.sampled for s in self._categories.values())

    @property
    def total_dropped(self) -> int:
        return sum(s.dropped for s in self._categories.values())

    @property
    def total_events(self) -> int:
        return sum(s.total for s in self._categories.values())

    def overall_sample_rate(self) -> float:
        total = self.total_events
        return self.total_sampled / total if total else 0.0

    def reset(self) -> None:
        self._categories = {"error": CategoryStats(), "transaction": CategoryStats()}
