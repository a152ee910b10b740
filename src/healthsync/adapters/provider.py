"""Health-store capability provider interface.

A provider is the one seam between the sync engine and wherever biometric
data physically lives.  It exposes a capability check, a single up-front
permission request covering every read scope, and one range-query read per
metric.  Reads return raw ``{"startDate", "endDate", "value"}`` dicts; typing
and failure handling happen in ``src.healthsync.adapters.sources``.

Exactly one provider is selected per process (see ``get_health_store``).
Platforms with no biometric source get ``UnsupportedHealthStore``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable

from src.healthsync.base import MetricType
from src.healthsync.errors import SourceUnavailable

logger = logging.getLogger("healthsync.adapters.provider")

RawRecord = dict


class HealthStoreProvider(ABC):
    """Abstract base class for all health-store providers.

    Subclasses must implement:
        - is_available()
        - request_permissions()
        - get_sleep_samples()
        - get_hrv_samples()
        - get_resting_heart_rate_samples()
        - get_step_count_samples()
        - get_active_energy_samples()
        - get_respiratory_rate_samples()

    Optional override (returns [] by default):
        - get_wrist_temperature_samples()

    Every read takes a half-open ``[start, end)`` range and must not modify
    the underlying store.  Providers raise ``SourceUnavailable`` when a read
    cannot be served.
    """

    #: Unique slug used by the provider registry.
    SOURCE_ID: str = "unknown"

    #: Human-readable name for logging and UI.
    DISPLAY_NAME: str = "Unknown Health Store"

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if this runtime can supply biometric data at all."""

    @abstractmethod
    async def request_permissions(self, scopes: Iterable[MetricType]) -> bool:
        """Ask for read access to every scope at once.

        Returns:
            True if the whole scope set was granted, False otherwise.
        """

    @abstractmethod
    async def get_sleep_samples(self, start: datetime, end: datetime) -> list[RawRecord]:
        """Sleep analysis records; ``value`` is the raw stage tag."""

    @abstractmethod
    async def get_hrv_samples(self, start: datetime, end: datetime) -> list[RawRecord]:
        """Heart-rate variability (SDNN, ms) records."""

    @abstractmethod
    async def get_resting_heart_rate_samples(
        self, start: datetime, end: datetime
    ) -> list[RawRecord]:
        """Resting heart rate (bpm) records."""

    @abstractmethod
    async def get_step_count_samples(self, start: datetime, end: datetime) -> list[RawRecord]:
        """Step count records."""

    @abstractmethod
    async def get_active_energy_samples(self, start: datetime, end: datetime) -> list[RawRecord]:
        """Active energy burned (kcal) records."""

    @abstractmethod
    async def get_respiratory_rate_samples(
        self, start: datetime, end: datetime
    ) -> list[RawRecord]:
        """Respiratory rate (breaths/min) records; measured during sleep."""

    async def get_wrist_temperature_samples(
        self, start: datetime, end: datetime
    ) -> list[RawRecord]:
        """Sleeping wrist temperature deviation (°C).  Series 8+ only."""
        return []

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def read(self, metric: MetricType, start: datetime, end: datetime) -> list[RawRecord]:
        """Dispatch to the range-query function for ``metric``."""
        reader = {
            MetricType.SLEEP: self.get_sleep_samples,
            MetricType.HRV: self.get_hrv_samples,
            MetricType.RESTING_HEART_RATE: self.get_resting_heart_rate_samples,
            MetricType.STEPS: self.get_step_count_samples,
            MetricType.ACTIVE_ENERGY: self.get_active_energy_samples,
            MetricType.RESPIRATORY_RATE: self.get_respiratory_rate_samples,
            MetricType.WRIST_TEMPERATURE: self.get_wrist_temperature_samples,
        }[metric]
        return await reader(start, end)


class UnsupportedHealthStore(HealthStoreProvider):
    """No-op provider for runtimes without a biometric source.

    ``is_available()`` is False, so the orchestrator stops before ever
    calling a read.  Reads raise ``SourceUnavailable`` if called anyway.
    """

    SOURCE_ID = "unsupported"
    DISPLAY_NAME = "Unsupported Platform"

    def is_available(self) -> bool:
        return False

    async def request_permissions(self, scopes: Iterable[MetricType]) -> bool:
        logger.warning("Health data is not available on this platform")
        return False

    async def _unavailable(self, start: datetime, end: datetime) -> list[RawRecord]:
        raise SourceUnavailable("No health store on this platform")

    get_sleep_samples = _unavailable
    get_hrv_samples = _unavailable
    get_resting_heart_rate_samples = _unavailable
    get_step_count_samples = _unavailable
    get_active_energy_samples = _unavailable
    get_respiratory_rate_samples = _unavailable
