"""healthsync — wearable biometric sync and daily-aggregation engine.

Reads sleep, HRV, resting heart rate, steps, active energy and respiratory
rate samples from a health store, folds them into one summary per calendar
day, and uploads idempotent batches to the backend.

Subpackages:
    adapters/ — Health-store providers and per-metric sample sources
    sync/     — Orchestrator, staleness gate, remote client, credentials

Core modules:
    base          — Sample / DailySummary / DateWindow models
    aggregator    — Bucket-by-date, reduce-with-policy aggregation
    config_loader — Load/validate/hot-reload sync_config.yaml
    errors        — SyncError taxonomy
"""

from src.healthsync.aggregator import aggregate
from src.healthsync.base import (
    DailySummary,
    DateWindow,
    MetricType,
    Sample,
    SleepStage,
    SyncOutcome,
)
from src.healthsync.config_loader import SyncConfig, get_sync_config

__all__ = [
    "aggregate",
    "DailySummary",
    "DateWindow",
    "MetricType",
    "Sample",
    "SleepStage",
    "SyncOutcome",
    "SyncConfig",
    "get_sync_config",
]
