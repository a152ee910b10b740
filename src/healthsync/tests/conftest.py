"""Shared fixtures, fakes and a fake backend for healthsync tests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from src.healthsync.adapters.provider import HealthStoreProvider, RawRecord
from src.healthsync.base import DateWindow, MetricType, Sample, SleepStage, parse_timestamp
from src.healthsync.config_loader import SyncConfig, load_sync_config
from src.healthsync.errors import SourceUnavailable
from src.healthsync.sync.client import RemoteSyncClient
from src.healthsync.sync.credentials import StaticCredentialStore

# Fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"

TEST_TODAY = date(2024, 1, 7)
TEST_TOKEN = "test-session-token"
BACKEND_URL = "http://backend.test"


# ---------------------------------------------------------------------------
# Sample helpers
# ---------------------------------------------------------------------------


def make_sample(
    metric: MetricType,
    start: str,
    value: float | SleepStage,
    end: str | None = None,
) -> Sample:
    """Build a Sample from ISO strings (naive strings are UTC)."""
    start_time = parse_timestamp(start)
    end_time = parse_timestamp(end) if end else start_time
    return Sample(metric_type=metric, start_time=start_time, end_time=end_time, value=value)


def sleep(start: str, end: str, stage: SleepStage) -> Sample:
    return make_sample(MetricType.SLEEP, start, stage, end)


def record(start: str, value: Any, end: str | None = None) -> RawRecord:
    """A raw health-store record as a provider returns it."""
    return {"startDate": start, "endDate": end or start, "value": value}


# ---------------------------------------------------------------------------
# Fake health store
# ---------------------------------------------------------------------------


class FakeHealthStore(HealthStoreProvider):
    """In-memory provider that records every call.

    Returns every stored record regardless of range, so range filtering in
    the source adapters is exercised.
    """

    SOURCE_ID = "fake"
    DISPLAY_NAME = "Fake Health Store"

    def __init__(
        self,
        records: dict[MetricType, list[RawRecord]] | None = None,
        available: bool = True,
        granted: bool = True,
        failing: Iterable[MetricType] = (),
        hanging: Iterable[MetricType] = (),
    ) -> None:
        self.records = records or {}
        self.available = available
        self.granted = granted
        self.failing = set(failing)
        self.hanging = set(hanging)
        self.reads: list[MetricType] = []
        self.permission_requests: list[list[MetricType]] = []
        self.read_started = asyncio.Event()
        self.release = asyncio.Event()

    def is_available(self) -> bool:
        return self.available

    async def request_permissions(self, scopes: Iterable[MetricType]) -> bool:
        self.permission_requests.append(list(scopes))
        return self.granted

    async def _read(self, metric: MetricType) -> list[RawRecord]:
        self.reads.append(metric)
        self.read_started.set()
        if metric in self.hanging:
            await self.release.wait()
        if metric in self.failing:
            raise SourceUnavailable(f"{metric.value} permission revoked")
        return list(self.records.get(metric, []))

    async def get_sleep_samples(self, start: datetime, end: datetime) -> list[RawRecord]:
        return await self._read(MetricType.SLEEP)

    async def get_hrv_samples(self, start: datetime, end: datetime) -> list[RawRecord]:
        return await self._read(MetricType.HRV)

    async def get_resting_heart_rate_samples(
        self, start: datetime, end: datetime
    ) -> list[RawRecord]:
        return await self._read(MetricType.RESTING_HEART_RATE)

    async def get_step_count_samples(self, start: datetime, end: datetime) -> list[RawRecord]:
        return await self._read(MetricType.STEPS)

    async def get_active_energy_samples(self, start: datetime, end: datetime) -> list[RawRecord]:
        return await self._read(MetricType.ACTIVE_ENERGY)

    async def get_respiratory_rate_samples(
        self, start: datetime, end: datetime
    ) -> list[RawRecord]:
        return await self._read(MetricType.RESPIRATORY_RATE)


# ---------------------------------------------------------------------------
# Fake backend
# ---------------------------------------------------------------------------


@dataclass
class RecordedRequest:
    method: str
    path: str
    authorization: str | None
    body: Any = None


@dataclass
class BackendState:
    """Knobs and call log for the fake backend.

    ``overrides`` maps a path to ``(status_code, content)``; string content
    is sent as a non-JSON body.
    """

    requests: list[RecordedRequest] = field(default_factory=list)
    overrides: dict[str, tuple[int, Any]] = field(default_factory=dict)
    connected: bool = True
    sync_needed: bool = False
    reason: str = "Data is fresh"

    def calls_to(self, path: str) -> list[RecordedRequest]:
        return [r for r in self.requests if r.path == path]


WEEK_SUMMARY = {
    "avgSleep": 7.2,
    "avgReadiness": 81,
    "avgHRV": 48,
    "avgSteps": 9120,
    "avgRestingHR": 57,
    "dataAvailable": True,
}


def create_fake_backend(state: BackendState) -> FastAPI:
    """A FastAPI app implementing the /apple-watch endpoints."""
    app = FastAPI()

    async def handle(request: Request, default: Callable[[Any], Any]) -> Response:
        raw = await request.body()
        body = await request.json() if raw else None
        state.requests.append(
            RecordedRequest(
                method=request.method,
                path=request.url.path,
                authorization=request.headers.get("authorization"),
                body=body,
            )
        )
        if request.url.path in state.overrides:
            status_code, content = state.overrides[request.url.path]
            if isinstance(content, str):
                return Response(content=content, status_code=status_code, media_type="text/plain")
            return JSONResponse(status_code=status_code, content=content)
        return JSONResponse({"success": True, "data": default(body)})

    @app.post("/apple-watch/sync")
    async def sync(request: Request) -> Response:
        return await handle(request, lambda body: {"daysSynced": len(body["data"])})

    @app.get("/apple-watch/status")
    async def status(request: Request) -> Response:
        return await handle(
            request,
            lambda _: {
                "connected": state.connected,
                "weekSummary": WEEK_SUMMARY if state.connected else None,
            },
        )

    @app.post("/apple-watch/auto-sync")
    async def auto_sync(request: Request) -> Response:
        return await handle(
            request, lambda _: {"syncNeeded": state.sync_needed, "reason": state.reason}
        )

    @app.get("/apple-watch/summary")
    async def summary(request: Request) -> Response:
        return await handle(request, lambda _: WEEK_SUMMARY)

    @app.post("/apple-watch/disconnect")
    async def disconnect(request: Request) -> Response:
        return await handle(request, lambda _: {"disconnected": True})

    return app


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sync_config() -> SyncConfig:
    """A fresh copy of the bundled config, safe to mutate."""
    return load_sync_config()


@pytest.fixture
def window() -> DateWindow:
    """2024-01-01 .. 2024-01-07, UTC."""
    return DateWindow.ending(TEST_TODAY, 7, tz=timezone.utc)


@pytest.fixture
def backend_state() -> BackendState:
    return BackendState()


@pytest_asyncio.fixture
async def http_client(backend_state: BackendState):
    transport = httpx.ASGITransport(app=create_fake_backend(backend_state))
    async with httpx.AsyncClient(transport=transport, base_url=BACKEND_URL) as client:
        yield client


@pytest.fixture
def remote_client(http_client: httpx.AsyncClient) -> RemoteSyncClient:
    return RemoteSyncClient(
        StaticCredentialStore(TEST_TOKEN), BACKEND_URL, http_client=http_client
    )


@pytest.fixture
def anonymous_client(http_client: httpx.AsyncClient) -> RemoteSyncClient:
    return RemoteSyncClient(StaticCredentialStore(None), BACKEND_URL, http_client=http_client)


@pytest.fixture
def week_records() -> dict[MetricType, list[RawRecord]]:
    """A realistic couple of days of raw store records."""
    return {
        MetricType.SLEEP: [
            record("2024-01-02T23:00:00+00:00", "ASLEEP_CORE", "2024-01-03T01:00:00+00:00"),
            record("2024-01-03T01:00:00+00:00", "ASLEEP_DEEP", "2024-01-03T02:30:00+00:00"),
            record("2024-01-03T02:30:00+00:00", "AWAKE", "2024-01-03T02:45:00+00:00"),
            record("2024-01-03T02:45:00+00:00", "ASLEEP_REM", "2024-01-03T04:15:00+00:00"),
            record("2024-01-03T04:15:00+00:00", "INBED", "2024-01-03T06:00:00+00:00"),
        ],
        MetricType.HRV: [
            record("2024-01-02T01:00:00+00:00", 40),
            record("2024-01-02T05:00:00+00:00", 60),
        ],
        MetricType.RESTING_HEART_RATE: [
            record("2024-01-03T08:00:00+00:00", 58),
            record("2024-01-03T20:00:00+00:00", 62),
        ],
        MetricType.STEPS: [
            record("2024-01-03T09:00:00+00:00", 4000.4, "2024-01-03T10:00:00+00:00"),
            record("2024-01-03T17:00:00+00:00", 3500.3, "2024-01-03T18:00:00+00:00"),
        ],
        MetricType.ACTIVE_ENERGY: [
            record("2024-01-03T09:00:00+00:00", 210.6, "2024-01-03T10:00:00+00:00"),
        ],
        MetricType.RESPIRATORY_RATE: [
            record("2024-01-03T02:00:00+00:00", 14.0),
            record("2024-01-03T03:00:00+00:00", 15.1),
        ],
    }
