"""Apple Health export providers.

Apple does not expose HealthKit off-device, so a Python process reads the
data in one of the two forms it leaves the phone in:

1. **XML export** (``export.xml`` from Health → Export All Health Data):
   ``<Record type="HK…" startDate="…" endDate="…" value="…"/>`` elements.
2. **JSON export** (iOS Shortcuts / Health Auto Export)::

       {
           "sleep": [{"startDate": "...", "endDate": "...", "value": "ASLEEP_DEEP"}],
           "hrv": [{"startDate": "...", "value": 52.1}],
           "restingHeartRate": [...],
           "steps": [...],
           ...
       }

Both are parsed once per provider instance (off the event loop) and then
served through the range-query reads of ``HealthStoreProvider``.  Neither
provider ever writes to the export.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from abc import abstractmethod
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import Iterable
from xml.etree import ElementTree as ET

from src.healthsync.adapters.provider import HealthStoreProvider, RawRecord
from src.healthsync.base import MetricType, parse_timestamp
from src.healthsync.errors import SourceUnavailable

logger = logging.getLogger("healthsync.adapters.export")

# HK type identifier → metric
_HK_TYPE_MAP: dict[str, MetricType] = {
    "HKCategoryTypeIdentifierSleepAnalysis": MetricType.SLEEP,
    "HKQuantityTypeIdentifierHeartRateVariabilitySDNN": MetricType.HRV,
    "HKQuantityTypeIdentifierRestingHeartRate": MetricType.RESTING_HEART_RATE,
    "HKQuantityTypeIdentifierStepCount": MetricType.STEPS,
    "HKQuantityTypeIdentifierActiveEnergyBurned": MetricType.ACTIVE_ENERGY,
    "HKQuantityTypeIdentifierRespiratoryRate": MetricType.RESPIRATORY_RATE,
    "HKQuantityTypeIdentifierAppleSleepingWristTemperature": MetricType.WRIST_TEMPERATURE,
}

# JSON export key → metric
_JSON_KEY_MAP: dict[str, MetricType] = {
    "sleep": MetricType.SLEEP,
    "sleepAnalysis": MetricType.SLEEP,
    "hrv": MetricType.HRV,
    "heartRateVariability": MetricType.HRV,
    "restingHeartRate": MetricType.RESTING_HEART_RATE,
    "steps": MetricType.STEPS,
    "stepCount": MetricType.STEPS,
    "activeEnergy": MetricType.ACTIVE_ENERGY,
    "activeEnergyBurned": MetricType.ACTIVE_ENERGY,
    "respiratoryRate": MetricType.RESPIRATORY_RATE,
    "wristTemperature": MetricType.WRIST_TEMPERATURE,
}


class RecordFileHealthStore(HealthStoreProvider):
    """Shared behaviour for providers backed by a single export file.

    Subclasses implement ``_parse()`` to turn the file into
    ``MetricType → [raw record]``.
    """

    def __init__(self, path: str | Path | None, tz: tzinfo = timezone.utc) -> None:
        """Initialize the provider.

        Args:
            path: Export file location.  None means "nothing configured".
            tz:   Timezone assumed for timestamps without an offset.
        """
        self._path = Path(path) if path else None
        self._tz = tz
        self._load_task: asyncio.Future | None = None

    @property
    def path(self) -> Path | None:
        return self._path

    def is_available(self) -> bool:
        return self._path is not None and self._path.is_file()

    async def request_permissions(self, scopes: Iterable[MetricType]) -> bool:
        requested = ", ".join(s.value for s in scopes)
        if not self.is_available():
            logger.error("%s: no export file at %s", self.DISPLAY_NAME, self._path)
            return False
        if not os.access(self._path, os.R_OK):
            logger.error("%s: export %s is not readable", self.DISPLAY_NAME, self._path)
            return False
        logger.info("%s: read access granted for %s", self.DISPLAY_NAME, requested)
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_sleep_samples(self, start: datetime, end: datetime) -> list[RawRecord]:
        return await self._query(MetricType.SLEEP, start, end)

    async def get_hrv_samples(self, start: datetime, end: datetime) -> list[RawRecord]:
        return await self._query(MetricType.HRV, start, end)

    async def get_resting_heart_rate_samples(
        self, start: datetime, end: datetime
    ) -> list[RawRecord]:
        return await self._query(MetricType.RESTING_HEART_RATE, start, end)

    async def get_step_count_samples(self, start: datetime, end: datetime) -> list[RawRecord]:
        return await self._query(MetricType.STEPS, start, end)

    async def get_active_energy_samples(self, start: datetime, end: datetime) -> list[RawRecord]:
        return await self._query(MetricType.ACTIVE_ENERGY, start, end)

    async def get_respiratory_rate_samples(
        self, start: datetime, end: datetime
    ) -> list[RawRecord]:
        return await self._query(MetricType.RESPIRATORY_RATE, start, end)

    async def get_wrist_temperature_samples(
        self, start: datetime, end: datetime
    ) -> list[RawRecord]:
        return await self._query(MetricType.WRIST_TEMPERATURE, start, end)

    async def _query(self, metric: MetricType, start: datetime, end: datetime) -> list[RawRecord]:
        records = await self._load()
        matched = []
        for record in records.get(metric, []):
            ts = parse_timestamp(record.get("startDate"), self._tz)
            if ts is not None and start <= ts < end:
                matched.append(record)
        logger.debug(
            "%s: %d/%d %s records in range",
            self.DISPLAY_NAME, len(matched), len(records.get(metric, [])), metric.value,
        )
        return matched

    async def _load(self) -> dict[MetricType, list[RawRecord]]:
        """Parse the export on first use; every read shares one parse.

        The parse runs as its own task and readers await it through
        ``asyncio.shield``, so a reader that times out does not cancel it.
        The next read picks up the finished result.
        """
        if self._load_task is None:
            if not self.is_available():
                raise SourceUnavailable(f"Export file not found: {self._path}")
            self._load_task = asyncio.ensure_future(self._read_export())
        return await asyncio.shield(self._load_task)

    async def _read_export(self) -> dict[MetricType, list[RawRecord]]:
        try:
            records = await asyncio.to_thread(self._parse, self._path)
        except (OSError, ValueError, ET.ParseError) as exc:
            # Allow a later read to retry once the file is fixed
            self._load_task = None
            raise SourceUnavailable(
                f"Could not read {self.DISPLAY_NAME} export {self._path}: {exc}"
            ) from exc
        logger.info(
            "%s: loaded %d records from %s",
            self.DISPLAY_NAME, sum(len(v) for v in records.values()), self._path,
        )
        return records

    @abstractmethod
    def _parse(self, path: Path) -> dict[MetricType, list[RawRecord]]:
        """Read ``path`` into ``MetricType → [raw record]`` (blocking)."""


class AppleHealthXmlStore(RecordFileHealthStore):
    """Provider backed by Apple Health's native ``export.xml``."""

    SOURCE_ID = "apple_xml"
    DISPLAY_NAME = "Apple Health XML export"

    def _parse(self, path: Path) -> dict[MetricType, list[RawRecord]]:
        records: dict[MetricType, list[RawRecord]] = {}
        # iterparse keeps memory flat on multi-GB exports
        for _, elem in ET.iterparse(path, events=("end",)):
            if elem.tag != "Record":
                continue
            metric = _HK_TYPE_MAP.get(elem.get("type", ""))
            start = elem.get("startDate")
            if metric is not None and start:
                records.setdefault(metric, []).append({
                    "startDate": start,
                    "endDate": elem.get("endDate") or start,
                    "value": elem.get("value"),
                    "unit": elem.get("unit"),
                })
            elem.clear()
        return records


class JsonExportStore(RecordFileHealthStore):
    """Provider backed by a JSON export keyed by metric name."""

    SOURCE_ID = "json"
    DISPLAY_NAME = "Health JSON export"

    def _parse(self, path: Path) -> dict[MetricType, list[RawRecord]]:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("JSON export must be an object keyed by metric")

        records: dict[MetricType, list[RawRecord]] = {}
        for key, items in data.items():
            metric = _JSON_KEY_MAP.get(key)
            if metric is None or not isinstance(items, list):
                logger.debug("JSON export: skipping key %r", key)
                continue
            for item in items:
                if not isinstance(item, dict):
                    continue
                start = item.get("startDate") or item.get("date")
                if not start:
                    continue
                records.setdefault(metric, []).append({
                    "startDate": start,
                    "endDate": item.get("endDate") or start,
                    "value": item.get("value"),
                })
        return records
