"""Per-metric sample source adapters.

A ``SampleSource`` wraps one provider read with the engine's failure policy:
a store error (permission revoked, store unavailable, unreadable export) is
logged and turned into an empty result so one missing metric never blocks
the others.  Raw ``{startDate, endDate, value}`` records become immutable
``Sample`` objects lazily, as the aggregator iterates.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone, tzinfo
from typing import Iterable, Iterator

from src.healthsync.adapters.provider import HealthStoreProvider, RawRecord
from src.healthsync.base import MetricType, Sample, parse_timestamp
from src.healthsync.config_loader import SyncConfig, get_sync_config

logger = logging.getLogger("healthsync.adapters.sources")


class SampleSource:
    """Read one metric from a health store as typed samples."""

    def __init__(
        self,
        store: HealthStoreProvider,
        metric: MetricType,
        config: SyncConfig | None = None,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self.store = store
        self.metric = metric
        self._config = config or get_sync_config()
        self._tz = tz

    def __repr__(self) -> str:
        return f"SampleSource({self.store.SOURCE_ID!r}, {self.metric.value!r})"

    async def fetch(self, start: datetime, end: datetime) -> Iterator[Sample]:
        """Read samples with ``start <= startTime < end``.

        Args:
            start: Inclusive range start (timezone-aware).
            end:   Exclusive range end (timezone-aware).

        Returns:
            A one-shot iterator of samples; empty when the store has no data
            or the read failed.

        Raises:
            ValueError: If ``start`` is after ``end``.
        """
        if start > end:
            raise ValueError(f"{self.metric.value}: range start {start} is after end {end}")

        try:
            records = await self.store.read(self.metric, start, end)
        except Exception as exc:
            logger.warning(
                "%s: %s unavailable, continuing without it: %s",
                self.store.DISPLAY_NAME, self.metric.value, exc,
            )
            return iter(())

        logger.info(
            "%s: fetched %d %s samples", self.store.DISPLAY_NAME, len(records), self.metric.value
        )
        return self._samples(records or [], start, end)

    def _samples(
        self, records: Iterable[RawRecord], start: datetime, end: datetime
    ) -> Iterator[Sample]:
        for record in records:
            sample = self._to_sample(record)
            if sample is not None and start <= sample.start_time < end:
                yield sample

    def _to_sample(self, record: RawRecord) -> Sample | None:
        """Convert one raw record, or return None if it is malformed."""
        start_time = parse_timestamp(record.get("startDate"), self._tz)
        if start_time is None:
            logger.debug("%s: skipping record without startDate: %r", self.metric.value, record)
            return None
        end_time = parse_timestamp(record.get("endDate"), self._tz) or start_time
        if end_time < start_time:
            logger.debug("%s: skipping record ending before it starts: %r", self.metric.value, record)
            return None

        raw_value = record.get("value")
        if self.metric is MetricType.SLEEP:
            value = self._config.stage_for(raw_value)
            if value is None:
                logger.debug("Ignoring sleep sample with tag %r", raw_value)
                return None
        else:
            try:
                value = float(raw_value)
            except (TypeError, ValueError):
                logger.debug("%s: non-numeric value %r", self.metric.value, raw_value)
                return None
            if not math.isfinite(value):
                logger.debug("%s: non-finite value %r", self.metric.value, raw_value)
                return None

        return Sample(
            metric_type=self.metric,
            start_time=start_time,
            end_time=end_time,
            value=value,
        )


def build_sources(
    store: HealthStoreProvider,
    config: SyncConfig | None = None,
    tz: tzinfo = timezone.utc,
) -> list[SampleSource]:
    """One source per enabled metric, in MetricType order."""
    config = config or get_sync_config()
    return [SampleSource(store, metric, config, tz) for metric in config.enabled_metrics()]
