"""Sync orchestrator: fan out to the health store, fan in to one upload.

One sync cycle:
1. Check the platform can supply biometric data at all
2. Check a bearer credential exists (no network)
3. Ask once for read permission on every scope
4. Read every enabled metric concurrently, each with its own timeout
5. Aggregate the samples into one summary per day
6. Upload the batch and report how many days the backend stored

Steps 1–3 abort before any read.  A metric that fails or times out in
step 4 contributes nothing; the other metrics still sync.  Upload errors in
step 6 are the terminal result; there is no retry loop here.

A preview (``collect``) runs steps 1 and 3–5 and needs no credential.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone, tzinfo
from typing import Iterable

from src.healthsync.adapters.provider import HealthStoreProvider
from src.healthsync.adapters.sources import SampleSource, build_sources
from src.healthsync.aggregator import aggregate, build_policies
from src.healthsync.base import (
    READ_SCOPES,
    DailySummary,
    DateWindow,
    MetricType,
    Sample,
    SyncOutcome,
)
from src.healthsync.config_loader import SyncConfig, get_sync_config
from src.healthsync.errors import PermissionDenied, UnsupportedPlatform
from src.healthsync.sync.client import RemoteSyncClient

logger = logging.getLogger("healthsync.sync.orchestrator")


class SyncOrchestrator:
    """Coordinate one read → aggregate → upload cycle.

    Usage::

        orchestrator = SyncOrchestrator(store, client)
        outcome = await orchestrator.sync(window_days=7)
        logger.info("Synced %d days", outcome.days_synced)
    """

    def __init__(
        self,
        store: HealthStoreProvider,
        client: RemoteSyncClient,
        config: SyncConfig | None = None,
        tz: tzinfo = timezone.utc,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store:  Health-store provider selected for this platform.
            client: Remote sync client used for the upload.
            config: Sync tuning; defaults to the bundled sync_config.yaml.
            tz:     Device-local timezone for calendar days (default UTC).
        """
        self._store = store
        self._client = client
        self._config = config or get_sync_config()
        self._tz = tz
        self._policies = build_policies(self._config)

    def window_for(self, window_days: int | None = None, today: date | None = None) -> DateWindow:
        """Build the window ending today, validating its size.

        Raises:
            ValueError: If ``window_days`` is outside ``1..max_days``.
        """
        days = self._config.window.default_days if window_days is None else window_days
        if not 1 <= days <= self._config.window.max_days:
            raise ValueError(
                f"window_days must be between 1 and {self._config.window.max_days}, got {days}"
            )
        today = today or datetime.now(self._tz).date()
        return DateWindow.ending(today, days, tz=self._tz)

    async def sync(self, window_days: int | None = None, today: date | None = None) -> SyncOutcome:
        """Run one full sync cycle.

        Args:
            window_days: Days to aggregate and upload (default from config).
            today:       Last day of the window (default: today, device-local).

        Returns:
            SyncOutcome with the number of days the backend stored.

        Raises:
            UnsupportedPlatform: No biometric source on this runtime.
            NotAuthenticated:    No bearer credential stored.
            SessionExpired:      Credential expired or rejected (401).
            PermissionDenied:    Health-data read permission declined.
            UploadFailed:        The batch upload failed.
        """
        window = self.window_for(window_days, today)
        self._check_platform()
        # Signed-out users never see a permission prompt
        self._client.require_token()
        summaries, empty = await self.collect(window)

        response = await self._client.upload(summaries)
        logger.info(
            "Sync complete: %s..%s → %d days stored, %d metrics empty",
            window.start, window.end, response.days_synced, len(empty),
        )
        return SyncOutcome(days_synced=response.days_synced, window=window, empty_metrics=empty)

    async def collect(self, window: DateWindow) -> tuple[list[DailySummary], list[MetricType]]:
        """Read every metric and aggregate, without touching the backend.

        Works without a stored credential, so it also backs the preview.

        Returns:
            (summaries, metrics that produced no samples)

        Raises:
            UnsupportedPlatform: No biometric source on this runtime.
            PermissionDenied:    Health-data read permission declined.
        """
        self._check_platform()

        if not await self._store.request_permissions(READ_SCOPES):
            raise PermissionDenied(f"{self._store.DISPLAY_NAME}: read permission denied")

        sources = build_sources(self._store, self._config, self._tz)
        logger.info(
            "Reading %d metrics for %s..%s from %s",
            len(sources), window.start, window.end, self._store.DISPLAY_NAME,
        )
        sample_sets = await self._fetch_all(sources, window)

        # Aggregation consumes the lazy iterators; record which came back empty
        empty: list[MetricType] = []
        materialized: dict[MetricType, list[Sample]] = {}
        for metric, samples in sample_sets.items():
            materialized[metric] = list(samples)
            if not materialized[metric]:
                empty.append(metric)

        summaries = aggregate(materialized, window, self._policies)
        logger.info(
            "Aggregated %d days (%d with data)",
            len(summaries), sum(1 for s in summaries if not s.is_empty()),
        )
        return summaries, empty

    def _check_platform(self) -> None:
        if not self._store.is_available():
            raise UnsupportedPlatform(f"{self._store.DISPLAY_NAME} has no health data")

    async def _fetch_all(
        self, sources: Iterable[SampleSource], window: DateWindow
    ) -> dict[MetricType, Iterable[Sample]]:
        start, end = window.query_range()
        sources = list(sources)
        results = await asyncio.gather(*(self._fetch_one(src, start, end) for src in sources))
        return {src.metric: samples for src, samples in zip(sources, results)}

    async def _fetch_one(
        self, source: SampleSource, start: datetime, end: datetime
    ) -> Iterable[Sample]:
        """Fetch one metric; a hung or failing read degrades to empty."""
        timeout = self._config.timeout_for(source.metric)
        try:
            return await asyncio.wait_for(source.fetch(start, end), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "%s read timed out after %.1fs, continuing without it",
                source.metric.value, timeout,
            )
        except Exception as exc:
            logger.warning("%s read failed, continuing without it: %s", source.metric.value, exc)
        return ()
