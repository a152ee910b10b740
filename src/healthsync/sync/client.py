"""Authenticated HTTP client for the ``/apple-watch`` backend endpoints.

Endpoints used:
    POST /apple-watch/sync        — Upload a batch of daily summaries
    GET  /apple-watch/status      — Connection flag + 7-day summary
    POST /apple-watch/auto-sync   — Server-side staleness check
    GET  /apple-watch/summary     — Rolling 7-day aggregate
    POST /apple-watch/disconnect  — Drop the stored linkage

Every call needs a bearer token.  A missing token short-circuits locally
with ``NotAuthenticated``; a 401 becomes ``SessionExpired`` so the caller
can re-authenticate instead of blindly retrying.  Responses arrive wrapped
in ``{success, data, error}``.

The upload is one batch; the backend upserts per date, so re-sending a day
is harmless and the client never retries individual days.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx
from pydantic import ValidationError

from src.healthsync.base import DailySummary
from src.healthsync.errors import (
    NotAuthenticated,
    RemoteCallFailed,
    SessionExpired,
    UploadFailed,
)
from src.healthsync.sync.credentials import CredentialStore, token_expired
from src.models.apple_watch import (
    AppleWatchStatus,
    AutoSyncCheck,
    DailySummaryPayload,
    SyncRequest,
    SyncResponse,
    WeekSummary,
)
from src.models.base import ApiEnvelope

logger = logging.getLogger("healthsync.sync.client")


class RemoteSyncClient:
    """Client for the backend's Apple Watch endpoints."""

    def __init__(
        self,
        credentials: CredentialStore,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the client.

        Args:
            credentials: Source of the bearer token (read-only).
            base_url:    Backend root, e.g. ``https://api.example.com``.
            http_client: Optional pre-configured httpx client (for testing).
            timeout:     Per-request timeout in seconds.
        """
        self._credentials = credentials
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client
        self._timeout = timeout

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def require_token(self) -> str:
        """Return the bearer token or fail without touching the network.

        Raises:
            NotAuthenticated: No token is stored.
            SessionExpired:   The token is a JWT that has already expired.
        """
        token = self._credentials.get_token()
        if not token:
            raise NotAuthenticated("No auth token stored")
        if token_expired(token):
            raise SessionExpired("Stored auth token has expired")
        return token

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def upload(self, summaries: Sequence[DailySummary]) -> SyncResponse:
        """Upload one batch of daily summaries.

        Raises:
            NotAuthenticated, SessionExpired: Credential problems.
            UploadFailed: Network, server, or envelope failure.
        """
        token = self.require_token()
        body = SyncRequest(data=[DailySummaryPayload.from_summary(s) for s in summaries])
        logger.info("Uploading %d daily summaries", len(summaries))

        data = await self._request(
            "POST", "/apple-watch/sync", token, json=body.to_wire(), error_cls=UploadFailed
        )
        result = self._parse(SyncResponse, data, UploadFailed)
        logger.info("Backend stored %d days", result.days_synced)
        return result

    async def get_status(self) -> AppleWatchStatus:
        """Connection status and 7-day summary.

        A missing or rejected credential reads as "not connected" rather
        than an error.
        """
        try:
            token = self.require_token()
            data = await self._request("GET", "/apple-watch/status", token)
        except (NotAuthenticated, SessionExpired) as exc:
            logger.warning("Status check without a valid session: %s", exc)
            return AppleWatchStatus(connected=False)
        return self._parse(AppleWatchStatus, data)

    async def get_summary(self) -> WeekSummary | None:
        """Rolling 7-day aggregate, or None when the backend has none."""
        token = self.require_token()
        data = await self._request("GET", "/apple-watch/summary", token)
        if data is None:
            return None
        return self._parse(WeekSummary, data)

    async def check_staleness(self) -> AutoSyncCheck:
        """Ask the backend whether the stored data is stale enough to sync."""
        token = self.require_token()
        data = await self._request("POST", "/apple-watch/auto-sync", token)
        return self._parse(AutoSyncCheck, data or {})

    async def disconnect(self) -> None:
        """Invalidate the stored watch linkage server-side."""
        token = self.require_token()
        await self._request("POST", "/apple-watch/disconnect", token)
        logger.info("Apple Watch disconnected")

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _build_headers(self, token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        json: Any = None,
        error_cls: type[RemoteCallFailed] = RemoteCallFailed,
    ) -> Any:
        """Send one request and unwrap the response envelope.

        Returns:
            The envelope's ``data`` member.

        Raises:
            SessionExpired: HTTP 401.
            error_cls:      Any other failure.
        """
        url = f"{self._base_url}{path}"
        headers = self._build_headers(token)

        try:
            if self._http_client:
                response = await self._http_client.request(
                    method, url, json=json, headers=headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(method, url, json=json, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise error_cls(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 401:
            raise SessionExpired(f"{method} {path} returned 401")

        try:
            envelope = ApiEnvelope.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise error_cls(
                f"{method} {path} returned an unreadable body (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from exc

        if response.is_error or not envelope.success:
            detail = envelope.error or f"HTTP {response.status_code}"
            logger.warning("%s %s rejected: %s", method, path, detail)
            raise error_cls(
                f"{method} {path} failed: {detail}", status_code=response.status_code
            )
        return envelope.data

    @staticmethod
    def _parse(model: type, data: Any, error_cls: type[RemoteCallFailed] = RemoteCallFailed):
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise error_cls(f"Unexpected {model.__name__} payload: {exc}") from exc
