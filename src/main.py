"""healthsync command-line entry point.

Drives the same operations the mobile app triggers from its settings
screen and on launch.

Run locally:
    python -m src.main sync --days 7
    python -m src.main auto-sync
    python -m src.main status
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass

import httpx

from src.config import Settings, get_settings
from src.healthsync.adapters import get_health_store
from src.healthsync.adapters.provider import HealthStoreProvider
from src.healthsync.base import READ_SCOPES
from src.healthsync.errors import SyncError
from src.healthsync.sync.client import RemoteSyncClient
from src.healthsync.sync.credentials import credentials_from_settings
from src.healthsync.sync.gate import StalenessGate
from src.healthsync.sync.orchestrator import SyncOrchestrator
from src.models.apple_watch import DailySummaryPayload

logger = logging.getLogger("healthsync")


# ---------- Logging ----------

def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


# ---------- Wiring ----------

@dataclass
class Components:
    store: HealthStoreProvider
    client: RemoteSyncClient
    orchestrator: SyncOrchestrator
    gate: StalenessGate


def build_components(settings: Settings, http_client: httpx.AsyncClient | None = None) -> Components:
    """Wire the provider, client, orchestrator and gate from settings."""
    store = get_health_store(settings, tz=settings.tz)
    client = RemoteSyncClient(
        credentials_from_settings(settings),
        settings.api_url,
        http_client=http_client,
        timeout=settings.http_timeout_seconds,
    )
    orchestrator = SyncOrchestrator(store, client, tz=settings.tz)
    gate = StalenessGate(client, orchestrator, store)
    return Components(store=store, client=client, orchestrator=orchestrator, gate=gate)


# ---------- Commands ----------

def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, default=str))


async def run_command(args: argparse.Namespace, settings: Settings) -> int:
    days = args.days if getattr(args, "days", None) is not None else settings.window_days

    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as http_client:
        c = build_components(settings, http_client)

        if args.command == "sync":
            outcome = await c.orchestrator.sync(window_days=days)
            _print_json({
                "daysSynced": outcome.days_synced,
                "window": [outcome.window.start, outcome.window.end],
                "emptyMetrics": [m.value for m in outcome.empty_metrics],
            })

        elif args.command == "preview":
            window = c.orchestrator.window_for(days)
            summaries, empty = await c.orchestrator.collect(window)
            _print_json({
                "data": [DailySummaryPayload.from_summary(s).to_wire() for s in summaries],
                "emptyMetrics": [m.value for m in empty],
            })

        elif args.command == "auto-sync":
            check = await c.gate.auto_sync(window_days=days)
            _print_json({
                "syncNeeded": check.sync_needed,
                "syncTriggered": check.sync_triggered,
                "reason": check.reason,
            })
            # A CLI process would exit under the background task
            await c.gate.wait_for_background()

        elif args.command == "status":
            status = await c.client.get_status()
            _print_json(status.to_wire())

        elif args.command == "summary":
            summary = await c.client.get_summary()
            _print_json(summary.to_wire() if summary else None)

        elif args.command == "disconnect":
            await c.client.disconnect()
            print("Apple Watch disconnected.")

        elif args.command == "permissions":
            granted = c.store.is_available() and await c.store.request_permissions(READ_SCOPES)
            print("Permissions granted." if granted else "Permissions denied.")
            return 0 if granted else 1

    return 0


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="healthsync",
        description="Sync Apple Watch biometrics into daily summaries on the backend.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("sync", "Read, aggregate and upload the sync window"),
        ("preview", "Read and aggregate without uploading; print the batch (no sign-in needed)"),
        ("auto-sync", "Sync only if the backend says data is stale"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--days", type=int, default=None, help="Window size in days")

    sub.add_parser("status", help="Show connection status and 7-day summary")
    sub.add_parser("summary", help="Show the rolling 7-day summary")
    sub.add_parser("disconnect", help="Disconnect the watch on the backend")
    sub.add_parser("permissions", help="Request health-data read permissions")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = create_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("healthsync v%s [%s]", settings.app_version, settings.environment)

    try:
        return asyncio.run(run_command(args, settings))
    except SyncError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        print(exc.message, file=sys.stderr)
        return 1
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
