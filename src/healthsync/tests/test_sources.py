"""Tests for per-metric sample sources and the provider interface."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest

from src.healthsync.adapters.provider import UnsupportedHealthStore
from src.healthsync.adapters.sources import SampleSource, build_sources
from src.healthsync.base import MetricType, SleepStage
from src.healthsync.errors import SourceUnavailable
from src.healthsync.tests.conftest import FakeHealthStore, record

START = datetime(2024, 1, 1, tzinfo=timezone.utc)
END = datetime(2024, 1, 8, tzinfo=timezone.utc)


class TestFetch:
    @pytest.mark.asyncio
    async def test_converts_records_to_samples(self, sync_config):
        store = FakeHealthStore({MetricType.HRV: [record("2024-01-02T01:00:00+00:00", "52.5")]})
        source = SampleSource(store, MetricType.HRV, sync_config)

        samples = list(await source.fetch(START, END))

        assert len(samples) == 1
        assert samples[0].metric_type == MetricType.HRV
        assert samples[0].value == 52.5
        assert samples[0].start_time == datetime(2024, 1, 2, 1, tzinfo=timezone.utc)
        assert samples[0].end_time == samples[0].start_time

    @pytest.mark.asyncio
    async def test_filters_to_half_open_range(self, sync_config):
        store = FakeHealthStore({
            MetricType.STEPS: [
                record("2023-12-31T23:59:59+00:00", 1),
                record("2024-01-01T00:00:00+00:00", 2),
                record("2024-01-07T23:59:59+00:00", 3),
                record("2024-01-08T00:00:00+00:00", 4),
            ]
        })
        source = SampleSource(store, MetricType.STEPS, sync_config)

        values = [s.value for s in await source.fetch(START, END)]

        assert values == [2.0, 3.0]

    @pytest.mark.asyncio
    async def test_store_failure_yields_empty(self, sync_config, caplog):
        store = FakeHealthStore(failing=[MetricType.HRV])
        source = SampleSource(store, MetricType.HRV, sync_config)

        with caplog.at_level(logging.WARNING, logger="healthsync.adapters.sources"):
            samples = list(await source.fetch(START, END))

        assert samples == []
        assert "permission revoked" in caplog.text

    @pytest.mark.asyncio
    async def test_unsupported_store_yields_empty(self, sync_config):
        source = SampleSource(UnsupportedHealthStore(), MetricType.STEPS, sync_config)
        assert list(await source.fetch(START, END)) == []

    @pytest.mark.asyncio
    async def test_inverted_range_raises(self, sync_config):
        source = SampleSource(FakeHealthStore(), MetricType.STEPS, sync_config)
        with pytest.raises(ValueError):
            await source.fetch(END, START)

    @pytest.mark.asyncio
    async def test_empty_store(self, sync_config):
        source = SampleSource(FakeHealthStore(), MetricType.STEPS, sync_config)
        assert list(await source.fetch(START, END)) == []

    @pytest.mark.asyncio
    async def test_result_is_single_pass(self, sync_config):
        store = FakeHealthStore({MetricType.STEPS: [record("2024-01-02T10:00:00+00:00", 5)]})
        samples = await SampleSource(store, MetricType.STEPS, sync_config).fetch(START, END)

        assert len(list(samples)) == 1
        assert list(samples) == []


class TestMalformedRecords:
    @pytest.mark.asyncio
    async def test_skips_bad_records(self, sync_config):
        store = FakeHealthStore({
            MetricType.STEPS: [
                {"endDate": "2024-01-02T10:00:00+00:00", "value": 1},
                record("not a date", 2),
                record("2024-01-02T10:00:00+00:00", "lots"),
                record("2024-01-02T10:00:00+00:00", None),
                record("2024-01-02T10:00:00+00:00", 5, "2024-01-02T09:00:00+00:00"),
                record("2024-01-02T11:00:00+00:00", 6),
            ]
        })
        source = SampleSource(store, MetricType.STEPS, sync_config)

        assert [s.value for s in await source.fetch(START, END)] == [6.0]

    @pytest.mark.asyncio
    async def test_skips_non_finite_values(self, sync_config, caplog):
        store = FakeHealthStore({
            MetricType.HRV: [
                record("2024-01-02T01:00:00+00:00", "nan"),
                record("2024-01-02T02:00:00+00:00", float("nan")),
                record("2024-01-02T03:00:00+00:00", "inf"),
                record("2024-01-02T04:00:00+00:00", float("-inf")),
                record("2024-01-02T05:00:00+00:00", 48.0),
            ]
        })
        source = SampleSource(store, MetricType.HRV, sync_config)

        with caplog.at_level(logging.DEBUG, logger="healthsync.adapters.sources"):
            values = [s.value for s in await source.fetch(START, END)]

        assert values == [48.0]
        assert "non-finite value" in caplog.text

    @pytest.mark.asyncio
    async def test_naive_timestamps_use_device_zone(self, sync_config):
        tz = timezone(timedelta(hours=-8))
        store = FakeHealthStore({MetricType.STEPS: [record("2024-01-02T23:30:00", 10)]})
        source = SampleSource(store, MetricType.STEPS, sync_config, tz=tz)

        (sample,) = list(await source.fetch(START, END))

        assert sample.start_time.utcoffset() == timedelta(hours=-8)
        assert sample.start_date.isoformat() == "2024-01-02"

    @pytest.mark.asyncio
    async def test_apple_export_timestamp_format(self, sync_config):
        store = FakeHealthStore({
            MetricType.STEPS: [record("2024-01-02 09:00:00 -0800", 10, "2024-01-02 09:30:00 -0800")]
        })
        source = SampleSource(store, MetricType.STEPS, sync_config)

        (sample,) = list(await source.fetch(START, END))

        assert sample.start_time == datetime(2024, 1, 2, 17, tzinfo=timezone.utc)


class TestSleepTags:
    @pytest.mark.asyncio
    async def test_maps_aliases_and_drops_unknown(self, sync_config):
        store = FakeHealthStore({
            MetricType.SLEEP: [
                record("2024-01-02T23:00:00+00:00", "ASLEEP_DEEP", "2024-01-03T00:00:00+00:00"),
                record("2024-01-03T00:00:00+00:00", "HKCategoryValueSleepAnalysisAsleepREM",
                       "2024-01-03T01:00:00+00:00"),
                record("2024-01-03T01:00:00+00:00", "INBED", "2024-01-03T02:00:00+00:00"),
                record("2024-01-03T02:00:00+00:00", "core", "2024-01-03T03:00:00+00:00"),
            ]
        })
        source = SampleSource(store, MetricType.SLEEP, sync_config)

        stages = [s.value for s in await source.fetch(START, END)]

        assert stages == [SleepStage.DEEP, SleepStage.REM, SleepStage.CORE]


class TestBuildSources:
    def test_one_source_per_enabled_metric(self, sync_config):
        sources = build_sources(FakeHealthStore(), sync_config)
        assert [s.metric for s in sources] == [
            MetricType.SLEEP,
            MetricType.HRV,
            MetricType.RESTING_HEART_RATE,
            MetricType.STEPS,
            MetricType.ACTIVE_ENERGY,
            MetricType.RESPIRATORY_RATE,
        ]

    def test_wrist_temperature_opt_in(self, sync_config):
        sync_config.metrics[MetricType.WRIST_TEMPERATURE].enabled = True
        sources = build_sources(FakeHealthStore(), sync_config)
        assert sources[-1].metric == MetricType.WRIST_TEMPERATURE


class TestProviderDispatch:
    @pytest.mark.asyncio
    async def test_read_dispatches_per_metric(self):
        store = FakeHealthStore()
        for metric in MetricType:
            await store.read(metric, START, END)
        # Wrist temperature falls back to the base class default
        assert store.reads == [m for m in MetricType if m != MetricType.WRIST_TEMPERATURE]

    @pytest.mark.asyncio
    async def test_unsupported_store_raises_on_read(self):
        store = UnsupportedHealthStore()
        assert store.is_available() is False
        assert await store.request_permissions([MetricType.STEPS]) is False
        with pytest.raises(SourceUnavailable):
            await store.get_sleep_samples(START, END)
