"""Health-store providers and per-metric sample sources.

Each provider implements the HealthStoreProvider ABC and handles:
- Reporting whether this runtime has biometric data at all
- A single permission request for every read scope
- One range-query read per metric

Available providers:
    AppleHealthXmlStore    — Apple Health export.xml
    JsonExportStore        — JSON export (Shortcuts / Health Auto Export)
    UnsupportedHealthStore — no-op, for platforms without health data
"""

from __future__ import annotations

from datetime import timezone, tzinfo
from typing import TYPE_CHECKING

from src.healthsync.adapters.export import AppleHealthXmlStore, JsonExportStore
from src.healthsync.adapters.provider import HealthStoreProvider, UnsupportedHealthStore
from src.healthsync.adapters.sources import SampleSource, build_sources

if TYPE_CHECKING:
    from src.config import Settings

__all__ = [
    "HealthStoreProvider",
    "AppleHealthXmlStore",
    "JsonExportStore",
    "UnsupportedHealthStore",
    "SampleSource",
    "build_sources",
    "get_health_store",
]

# Registry: source_id → provider class
PROVIDER_REGISTRY: dict[str, type[HealthStoreProvider]] = {
    "apple_xml": AppleHealthXmlStore,
    "json": JsonExportStore,
    "unsupported": UnsupportedHealthStore,
}


def get_provider(source_id: str) -> type[HealthStoreProvider]:
    """Return the provider class for a given slug.

    Raises:
        KeyError: If the source_id is not registered.
    """
    if source_id not in PROVIDER_REGISTRY:
        raise KeyError(
            f"No health store registered for '{source_id}'. "
            f"Available: {list(PROVIDER_REGISTRY)}"
        )
    return PROVIDER_REGISTRY[source_id]


def get_health_store(settings: "Settings", tz: tzinfo = timezone.utc) -> HealthStoreProvider:
    """Instantiate the provider selected by ``settings.health_store``."""
    provider_cls = get_provider(settings.health_store)
    if provider_cls is UnsupportedHealthStore:
        return UnsupportedHealthStore()
    return provider_cls(settings.export_path, tz=tz)
