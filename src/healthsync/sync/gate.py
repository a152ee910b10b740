"""Staleness gate: decide whether a sync is worth running at all.

Only the backend knows when the last successful sync happened, so the
decision is delegated to ``POST /apple-watch/auto-sync``.  Called on app
launch; when a sync is needed it is started in the background and the call
returns immediately.

Any problem reaching the gate counts as "no sync needed" so a flaky
connection never turns into surprise battery or network use.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from src.healthsync.adapters.provider import HealthStoreProvider
from src.healthsync.errors import NotAuthenticated, SessionExpired, SyncError
from src.healthsync.sync.client import RemoteSyncClient
from src.healthsync.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger("healthsync.sync.gate")


@dataclass
class SyncCheck:
    """Result of a staleness check.

    Attributes:
        sync_needed:    Backend says stored data is stale.
        reason:         Human-readable explanation, kept for diagnostics.
        sync_triggered: A background sync was started by this call.
    """

    sync_needed: bool
    reason: str
    sync_triggered: bool = False


class StalenessGate:
    """Gate in front of the sync orchestrator."""

    def __init__(
        self,
        client: RemoteSyncClient,
        orchestrator: SyncOrchestrator,
        store: HealthStoreProvider,
    ) -> None:
        self._client = client
        self._orchestrator = orchestrator
        self._store = store
        self._background: set[asyncio.Task] = set()

    async def check_sync_needed(self) -> SyncCheck:
        """Ask the backend whether a sync is needed.  Never raises."""
        if not self._store.is_available():
            return SyncCheck(sync_needed=False, reason=f"{self._store.DISPLAY_NAME} not available")

        try:
            result = await self._client.check_staleness()
        except NotAuthenticated:
            return SyncCheck(sync_needed=False, reason="Not authenticated")
        except SessionExpired:
            return SyncCheck(sync_needed=False, reason="Session expired")
        except Exception as exc:
            logger.error("Auto-sync check error: %s", exc)
            return SyncCheck(sync_needed=False, reason=f"Error checking sync status: {exc}")

        return SyncCheck(
            sync_needed=result.sync_needed,
            reason=result.reason or ("Sync needed" if result.sync_needed else "Data is fresh"),
        )

    async def auto_sync(self, window_days: int | None = None) -> SyncCheck:
        """Check staleness and, if needed, start a sync without waiting for it."""
        check = await self.check_sync_needed()
        if not check.sync_needed:
            logger.info("Auto-sync skipped: %s", check.reason)
            return check

        task = asyncio.create_task(self._run_sync(window_days), name="healthsync-auto-sync")
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        logger.info("Auto-sync triggered")
        return SyncCheck(sync_needed=True, reason="Background sync started", sync_triggered=True)

    async def wait_for_background(self) -> None:
        """Wait for background syncs started by ``auto_sync`` to finish."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._background)

    async def _run_sync(self, window_days: int | None) -> None:
        try:
            outcome = await self._orchestrator.sync(window_days)
        except SyncError as exc:
            logger.error("Auto-sync failed: %s", exc)
        except Exception:
            logger.exception("Auto-sync crashed")
        else:
            logger.info("Auto-sync stored %d days", outcome.days_synced)
