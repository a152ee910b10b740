"""Daily aggregation: fold timestamped samples into one summary per day.

One generic routine does the work for every metric:

1. ``bucket_by_date`` groups a metric's samples by the calendar date of
   their *start* timestamp, dropping anything outside the window.
2. The metric's ``ReductionPolicy`` reduces each non-empty bucket into
   ``DailySummary`` field values.

Empty buckets never reach a policy, so a day without samples keeps ``None``
for that metric; the null-vs-zero rule lives here and nowhere else.

Sleep sessions that cross midnight are attributed entirely to the date they
started on (the evening the user went to bed).

All arithmetic is floating point; rounding is applied once per finished
field, half-up, never mid-accumulation.  The module is pure: no I/O, no
clock, no suspension points.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Protocol

from src.healthsync.base import DailySummary, DateWindow, MetricType, Sample, SleepStage
from src.healthsync.config_loader import SyncConfig, get_sync_config

logger = logging.getLogger("healthsync.aggregator")


# ---------------------------------------------------------------------------
# Rounding
# ---------------------------------------------------------------------------


def round_half_up(value: float, digits: int = 0) -> float:
    """Round half away from zero (``2.5 → 3``), unlike Python's ``round``."""
    exponent = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(value)).quantize(exponent, rounding=ROUND_HALF_UP))


def _finish(value: float, digits: int) -> int | float:
    rounded = round_half_up(value, digits)
    return int(rounded) if digits == 0 else rounded


# ---------------------------------------------------------------------------
# Reduction policies
# ---------------------------------------------------------------------------


class ReductionPolicy(Protocol):
    """Reduce one day's samples of one metric into summary field values."""

    def reduce(self, samples: list[Sample]) -> dict[str, int | float]: ...


@dataclass(frozen=True)
class MeanPolicy:
    """Arithmetic mean of sample values, e.g. HRV or resting heart rate."""

    target: str
    digits: int = 0

    def reduce(self, samples: list[Sample]) -> dict[str, int | float]:
        values = [float(s.value) for s in samples]
        return {self.target: _finish(sum(values) / len(values), self.digits)}


@dataclass(frozen=True)
class SumPolicy:
    """Sum of sample values, e.g. steps or active energy."""

    target: str
    digits: int = 0

    def reduce(self, samples: list[Sample]) -> dict[str, int | float]:
        return {self.target: _finish(sum(float(s.value) for s in samples), self.digits)}


@dataclass(frozen=True)
class StageRule:
    """Where one sleep stage's duration is credited.

    Attributes:
        target:          Stage-specific field, or None for un-staged sleep.
        scale:           Multiplier applied to the duration in hours.
        counts_as_sleep: Whether the duration also adds to the total.
    """

    target: str | None
    scale: float = 1.0
    counts_as_sleep: bool = True


DEFAULT_STAGE_RULES: dict[SleepStage, StageRule] = {
    SleepStage.DEEP: StageRule("deep_sleep_hours"),
    SleepStage.REM: StageRule("rem_sleep_hours"),
    SleepStage.CORE: StageRule("core_sleep_hours"),
    SleepStage.AWAKE: StageRule("awake_minutes", scale=60.0, counts_as_sleep=False),
    SleepStage.ASLEEP: StageRule(None),
}


@dataclass(frozen=True)
class CategoricalSumPolicy:
    """Sum sample durations per category (sleep stage).

    The total is accumulated from exactly the same durations as the stage
    breakdown, so ``total == deep + rem + core + un-staged asleep`` holds by
    construction.  Fields no sample touched stay absent (→ ``None``).
    """

    total_field: str = "total_sleep_hours"
    rules: Mapping[SleepStage, StageRule] = field(
        default_factory=lambda: dict(DEFAULT_STAGE_RULES)
    )

    def reduce(self, samples: list[Sample]) -> dict[str, int | float]:
        totals: dict[str, float] = {}
        for sample in samples:
            rule = self.rules.get(sample.value)  # type: ignore[arg-type]
            if rule is None:
                logger.debug("Ignoring sleep sample with unknown stage %r", sample.value)
                continue
            hours = sample.duration_hours
            if rule.target is not None:
                totals[rule.target] = totals.get(rule.target, 0.0) + hours * rule.scale
            if rule.counts_as_sleep:
                totals[self.total_field] = totals.get(self.total_field, 0.0) + hours
        return totals


#: MetricType → (policy class, summary field) for the numeric metrics.
_NUMERIC_POLICIES: dict[MetricType, tuple[type, str]] = {
    MetricType.HRV: (MeanPolicy, "avg_hrv"),
    MetricType.RESTING_HEART_RATE: (MeanPolicy, "resting_heart_rate"),
    MetricType.RESPIRATORY_RATE: (MeanPolicy, "respiratory_rate"),
    MetricType.STEPS: (SumPolicy, "steps"),
    MetricType.ACTIVE_ENERGY: (SumPolicy, "active_calories"),
    MetricType.WRIST_TEMPERATURE: (MeanPolicy, "wrist_temperature_delta"),
}


def build_policies(config: SyncConfig | None = None) -> dict[MetricType, ReductionPolicy]:
    """Instantiate one reduction policy per metric using configured rounding."""
    config = config or get_sync_config()
    policies: dict[MetricType, ReductionPolicy] = {MetricType.SLEEP: CategoricalSumPolicy()}
    for metric, (policy_cls, field_name) in _NUMERIC_POLICIES.items():
        digits = config.digits_for(metric) if metric in config.metrics else 0
        policies[metric] = policy_cls(target=field_name, digits=digits)
    return policies


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def bucket_by_date(samples: Iterable[Sample], window: DateWindow) -> dict[date, list[Sample]]:
    """Group samples by start date, keeping only dates inside the window."""
    buckets: dict[date, list[Sample]] = defaultdict(list)
    dropped = 0
    for sample in samples:
        day = sample.start_date
        if day in window:
            buckets[day].append(sample)
        else:
            dropped += 1
    if dropped:
        logger.debug("Dropped %d samples outside %s..%s", dropped, window.start, window.end)
    return buckets


def aggregate(
    sample_sets: Mapping[MetricType, Iterable[Sample]],
    window: DateWindow,
    policies: Mapping[MetricType, ReductionPolicy] | None = None,
) -> list[DailySummary]:
    """Fold per-metric sample sets into one DailySummary per day.

    Args:
        sample_sets: MetricType → samples.  Missing metrics are treated as
                     empty; each iterable is consumed exactly once.
        window:      Days to produce summaries for.
        policies:    Override reduction policies (defaults from config).

    Returns:
        Exactly ``window.days`` summaries in ascending date order.
    """
    policies = policies if policies is not None else build_policies()
    summaries = {day: DailySummary(date=day) for day in window.dates()}

    for metric, samples in sample_sets.items():
        policy = policies.get(metric)
        if policy is None:
            logger.warning("No reduction policy for %s; skipping", metric.value)
            continue
        for day, bucket in bucket_by_date(samples, window).items():
            for field_name, value in policy.reduce(bucket).items():
                setattr(summaries[day], field_name, value)

    return [summaries[day] for day in sorted(summaries)]
