"""Sync infrastructure for healthsync.

Modules:
    orchestrator — Fan-out reads, aggregation and batch upload
    gate         — Staleness gate / background auto-sync trigger
    client       — Authenticated HTTP client for /apple-watch endpoints
    credentials  — Bearer token sources
"""
