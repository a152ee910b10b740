"""Pydantic models for the /apple-watch backend endpoints."""

from __future__ import annotations

from dataclasses import asdict
from datetime import date

from pydantic import Field

from src.healthsync.base import DailySummary
from src.models.base import HealthSyncBase


# ---------- Daily summaries (upload) ----------

class DailySummaryPayload(HealthSyncBase):
    date: date
    total_sleep_hours: float | None = None
    deep_sleep_hours: float | None = None
    rem_sleep_hours: float | None = None
    core_sleep_hours: float | None = None
    awake_minutes: float | None = Field(default=None, alias="awakeTimeMinutes")
    resting_heart_rate: int | None = None
    avg_hrv: int | None = Field(default=None, alias="avgHRV")
    steps: int | None = None
    active_calories: int | None = None
    respiratory_rate: float | None = None
    wrist_temperature_delta: float | None = None

    @classmethod
    def from_summary(cls, summary: DailySummary) -> "DailySummaryPayload":
        return cls(**asdict(summary))


class SyncRequest(HealthSyncBase):
    data: list[DailySummaryPayload]


class SyncResponse(HealthSyncBase):
    days_synced: int = 0


# ---------- Status / summary ----------

class WeekSummary(HealthSyncBase):
    avg_sleep: float = 0
    avg_readiness: float = 0
    avg_hrv: float | None = Field(default=None, alias="avgHRV")
    avg_steps: float = 0
    avg_resting_hr: float | None = Field(default=None, alias="avgRestingHR")
    data_available: bool = False


class AppleWatchStatus(HealthSyncBase):
    connected: bool = False
    week_summary: WeekSummary | None = None


# ---------- Auto-sync ----------

class AutoSyncCheck(HealthSyncBase):
    sync_needed: bool = False
    reason: str = ""
