"""Canonical data models for the healthsync aggregation engine.

Every health-store provider yields raw ``{startDate, endDate, value}``
records; the source adapters turn those into ``Sample`` objects, and the
aggregator folds samples into one ``DailySummary`` per calendar day.  These
types are the single source of truth shared by the adapters, aggregator,
orchestrator and remote client.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, fields
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import Enum
from typing import Iterator

logger = logging.getLogger("healthsync.base")


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class MetricType(str, Enum):
    """Biometric stream read from the health store."""

    SLEEP = "sleep"
    HRV = "hrv"
    RESTING_HEART_RATE = "resting_heart_rate"
    STEPS = "steps"
    ACTIVE_ENERGY = "active_energy"
    RESPIRATORY_RATE = "respiratory_rate"
    # Series 8+ only; opt-in via sync_config.yaml
    WRIST_TEMPERATURE = "wrist_temperature"


class SleepStage(str, Enum):
    """Sleep stage classification of a sleep sample."""

    DEEP = "deep"
    REM = "rem"
    CORE = "core"
    AWAKE = "awake"
    ASLEEP = "asleep"  # unspecified / legacy un-staged sleep


#: The six read scopes requested in one permission prompt.
READ_SCOPES: tuple[MetricType, ...] = (
    MetricType.SLEEP,
    MetricType.HRV,
    MetricType.RESTING_HEART_RATE,
    MetricType.STEPS,
    MetricType.ACTIVE_ENERGY,
    MetricType.RESPIRATORY_RATE,
)


# ---------------------------------------------------------------------------
# Samples
# ---------------------------------------------------------------------------


_SPACED_OFFSET = re.compile(r"\s*([+-]\d{2}):?(\d{2})$")


def parse_timestamp(value: object, default_tz: tzinfo = timezone.utc) -> datetime | None:
    """Parse a health-store timestamp into an aware datetime.

    Accepts ISO-8601 (``2024-01-02T01:00:00.000-08:00``, ``...Z``) and the
    Apple Health export form (``2024-01-02 01:00:00 -0800``).  Naive values
    are assumed to be in ``default_tz``.  The original UTC offset is kept so
    the calendar date stays the device-local one.

    Returns None if the value is empty or unparseable.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        text = _SPACED_OFFSET.sub(r"\1:\2", value.strip().replace("Z", "+00:00"))
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            logger.debug("Could not parse timestamp: %r", value)
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=default_tz)
    return dt


@dataclass(frozen=True)
class Sample:
    """One raw observation from a health store.

    Attributes:
        metric_type: Stream the sample belongs to.
        start_time:  Timezone-aware start timestamp.
        end_time:    Timezone-aware end timestamp (== start_time for
                     instantaneous readings such as HRV).
        value:       Numeric magnitude, or a ``SleepStage`` for sleep samples.
    """

    metric_type: MetricType
    start_time: datetime
    end_time: datetime
    value: float | SleepStage

    @property
    def start_date(self) -> date:
        """Calendar date of the start timestamp, in the sample's own offset."""
        return self.start_time.date()

    @property
    def duration_hours(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 3600.0


# ---------------------------------------------------------------------------
# Date window
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DateWindow:
    """Inclusive range of calendar days covered by one sync.

    Attributes:
        start: First day of the window.
        end:   Last day of the window (usually "today").
        tz:    Device-local timezone used to turn days into datetimes.
    """

    start: date
    end: date
    tz: tzinfo = timezone.utc

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"Window start {self.start} is after end {self.end}")

    @classmethod
    def ending(cls, today: date, days: int, tz: tzinfo = timezone.utc) -> "DateWindow":
        """Build the window ``[today - days + 1, today]``."""
        if days < 1:
            raise ValueError(f"Window must cover at least one day, got {days}")
        return cls(start=today - timedelta(days=days - 1), end=today, tz=tz)

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def dates(self) -> Iterator[date]:
        """Yield every day in the window, oldest first."""
        for offset in range(self.days):
            yield self.start + timedelta(days=offset)

    def __contains__(self, day: object) -> bool:
        return isinstance(day, date) and self.start <= day <= self.end

    def query_range(self) -> tuple[datetime, datetime]:
        """Half-open datetime range handed to the source adapters.

        Starts at local midnight one day before ``start`` and ends at the
        local midnight after ``end``.
        """
        range_start = datetime.combine(self.start - timedelta(days=1), time.min, tzinfo=self.tz)
        range_end = datetime.combine(self.end + timedelta(days=1), time.min, tzinfo=self.tz)
        return range_start, range_end


# ---------------------------------------------------------------------------
# Daily summary
# ---------------------------------------------------------------------------


@dataclass
class DailySummary:
    """Per-calendar-day aggregate, the unit of storage and sync.

    Every metric field is nullable: ``None`` means "no data observed",
    never zero.

    Attributes:
        date:                    Device-local calendar date.
        total_sleep_hours:       Deep + REM + core + un-staged asleep hours.
        deep_sleep_hours:        Deep sleep hours.
        rem_sleep_hours:         REM sleep hours.
        core_sleep_hours:        Core (light) sleep hours.
        awake_minutes:           Minutes awake during sleep sessions.
        resting_heart_rate:      Mean resting heart rate (bpm, integer).
        avg_hrv:                 Mean HRV SDNN (ms, integer).
        respiratory_rate:        Mean breaths per minute (one decimal).
        steps:                   Step count.
        active_calories:         Active energy burned (kcal).
        wrist_temperature_delta: Mean sleeping wrist temperature delta (°C).
    """

    date: date
    total_sleep_hours: float | None = None
    deep_sleep_hours: float | None = None
    rem_sleep_hours: float | None = None
    core_sleep_hours: float | None = None
    awake_minutes: float | None = None
    resting_heart_rate: int | None = None
    avg_hrv: int | None = None
    respiratory_rate: float | None = None
    steps: int | None = None
    active_calories: int | None = None
    wrist_temperature_delta: float | None = None

    @classmethod
    def metric_fields(cls) -> tuple[str, ...]:
        """Names of every nullable metric field (everything but ``date``)."""
        return tuple(f.name for f in fields(cls) if f.name != "date")

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in self.metric_fields())


@dataclass
class SyncOutcome:
    """Successful result of one sync cycle.

    Attributes:
        days_synced:   Days the backend reported as stored.
        window:        Window that was read and aggregated.
        empty_metrics: Metrics that produced no samples (no data, failure,
                       or timeout), for diagnostics.
    """

    days_synced: int
    window: DateWindow
    empty_metrics: list[MetricType] = field(default_factory=list)
