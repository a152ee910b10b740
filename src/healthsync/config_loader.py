"""Load, validate, and hot-reload the healthsync tuning configuration.

The config lives in ``sync_config.yaml`` alongside this module.  At startup
it is loaded once and cached.  Call ``reload_sync_config()`` to re-read from
disk after editing it; no restart required.

Usage::

    from src.healthsync.config_loader import get_sync_config

    config = get_sync_config()
    config.timeout_for(MetricType.SLEEP)        # 15.0
    config.digits_for(MetricType.RESPIRATORY_RATE)  # 1
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from src.healthsync.base import MetricType, SleepStage

logger = logging.getLogger("healthsync.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "sync_config.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class WindowConfig:
    """How many days one sync covers."""

    default_days: int
    max_days: int


@dataclass
class MetricConfig:
    """Per-metric read and reduction settings."""

    enabled: bool
    timeout_seconds: float
    digits: int | None = None


@dataclass
class SyncConfig:
    """Complete, validated sync configuration.

    Attributes:
        version:             Config schema version string.
        window:              Default and maximum window sizes.
        metrics:             MetricType → MetricConfig.
        sleep_stage_aliases: Raw store sleep tag → SleepStage.
    """

    version: str
    window: WindowConfig
    metrics: dict[MetricType, MetricConfig]
    sleep_stage_aliases: dict[str, SleepStage]

    def enabled_metrics(self) -> list[MetricType]:
        """Metrics to read, in MetricType declaration order."""
        return [m for m in MetricType if m in self.metrics and self.metrics[m].enabled]

    def timeout_for(self, metric: MetricType) -> float:
        return self.metrics[metric].timeout_seconds

    def digits_for(self, metric: MetricType) -> int:
        digits = self.metrics[metric].digits
        return 0 if digits is None else digits

    def stage_for(self, raw_value: Any) -> SleepStage | None:
        """Map a raw sleep tag to a stage, or None if the tag is ignored."""
        if isinstance(raw_value, SleepStage):
            return raw_value
        return self.sleep_stage_aliases.get(str(raw_value))


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when sync_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Sync config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> SyncConfig:
    """Validate the raw YAML dict and construct a SyncConfig.

    All problems are collected and reported together.

    Raises:
        ConfigValidationError: If required fields are missing or invalid.
    """
    errors: list[str] = []

    version = str(raw.get("version", "1.0"))

    # ── Window ──
    win_raw = raw.get("window") or {}
    try:
        window = WindowConfig(
            default_days=int(win_raw.get("default_days", 7)),
            max_days=int(win_raw.get("max_days", 90)),
        )
    except (TypeError, ValueError):
        errors.append("window.default_days and window.max_days must be integers")
        window = WindowConfig(default_days=7, max_days=90)
    if window.default_days < 1:
        errors.append(f"window.default_days = {window.default_days} must be >= 1")
    if window.max_days < window.default_days:
        errors.append(
            f"window.max_days = {window.max_days} is smaller than "
            f"window.default_days = {window.default_days}"
        )

    # ── Metrics ──
    adapters_raw = raw.get("adapters") or {}
    default_timeout = adapters_raw.get("default_timeout_seconds", 10)

    metrics_raw = raw.get("metrics")
    if not metrics_raw:
        errors.append("'metrics' section is missing or empty")
        metrics_raw = {}

    metrics: dict[MetricType, MetricConfig] = {}
    for key, cfg in metrics_raw.items():
        try:
            metric = MetricType(key)
        except ValueError:
            errors.append(f"metrics.{key} is not a known metric")
            continue
        if not isinstance(cfg, dict):
            errors.append(f"metrics.{key} must be a mapping")
            continue

        try:
            timeout = float(cfg.get("timeout_seconds", default_timeout))
        except (TypeError, ValueError):
            errors.append(f"metrics.{key}.timeout_seconds must be a number")
            continue
        if timeout <= 0:
            errors.append(f"metrics.{key}.timeout_seconds = {timeout} must be > 0")

        digits = cfg.get("digits")
        if digits is not None and (not isinstance(digits, int) or digits < 0):
            errors.append(f"metrics.{key}.digits must be a non-negative integer, got {digits!r}")
            digits = None

        metrics[metric] = MetricConfig(
            enabled=bool(cfg.get("enabled", True)),
            timeout_seconds=timeout,
            digits=digits,
        )

    # ── Sleep stage aliases ──
    aliases: dict[str, SleepStage] = {}
    for tag, stage in (raw.get("sleep_stage_aliases") or {}).items():
        try:
            aliases[str(tag)] = SleepStage(stage)
        except ValueError:
            errors.append(f"sleep_stage_aliases.{tag} = {stage!r} is not a sleep stage")
    # Canonical names always map to themselves
    for stage in SleepStage:
        aliases.setdefault(stage.value, stage)

    if errors:
        raise ConfigValidationError(
            f"sync_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return SyncConfig(
        version=version,
        window=window,
        metrics=metrics,
        sleep_stage_aliases=aliases,
    )


def load_sync_config(path: Path | None = None) -> SyncConfig:
    """Load and validate the sync config from disk.

    Args:
        path: Override path to YAML. Uses the bundled sync_config.yaml by default.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded sync config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: SyncConfig | None = None
_config_lock = threading.Lock()


def get_sync_config() -> SyncConfig:
    """Return the global SyncConfig singleton, loading it on first call."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_sync_config()
    return _config


def reload_sync_config(path: Path | None = None) -> SyncConfig:
    """Reload the sync config from disk and replace the global singleton.

    If validation fails, the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_sync_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded sync config: %s → %s", old_version, new_config.version)
    return new_config
