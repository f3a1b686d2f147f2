"""Leaderboard HTTP API client.

Snapshot fetches back the fallback poller; batched requests fetch a page of
the leaderboard together with the caller's neighbourhood ("around me") in a
single round trip.

Example:
    async with SnapshotClient("http://localhost:5000/api/leaderboard") as client:
        entries = await client.fetch_snapshot(SyncParameters(language="es"), limit=50)
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ranksync.leaderboard.config import SyncParameters, Timeframe
from ranksync.leaderboard.exceptions import (
    MessageDecodeError,
    SnapshotFetchError,
    TransientFetchError,
)
from ranksync.leaderboard.models import LeaderboardEntry
from ranksync.leaderboard.validators import (
    normalize_language,
    validate_limit,
    validate_offset,
    validate_range,
    validate_timeframe,
)
from ranksync.resilience import MaxRetriesExceeded, RetryConfig, retry

logger = logging.getLogger(__name__)

DEFAULT_BATCH_RETRY = RetryConfig(
    max_retries=2,
    base_delay=0.5,
    retryable_exceptions=(TransientFetchError,),
)


@dataclass
class BatchRequest:
    """One item of a batched leaderboard request."""

    type: str = "leaderboard"  # leaderboard | aroundMe
    timeframe: Optional[str] = None
    language: Optional[str] = None
    limit: Optional[int] = None
    offset: Optional[int] = None
    user_id: Optional[str] = None
    range: Optional[int] = None

    def sanitized(self) -> dict:
        out: dict[str, Any] = {
            "type": self.type,
            "timeframe": validate_timeframe(self.timeframe).value,
            "limit": validate_limit(self.limit),
            "offset": validate_offset(self.offset),
            "range": validate_range(self.range),
        }
        if self.language is not None:
            out["language"] = self.language
        if self.user_id:
            out["userId"] = self.user_id
        return out


@dataclass
class BatchResult:
    """One item of a batched leaderboard response."""

    type: str
    data: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SnapshotClient:
    """Async client for the leaderboard snapshot and batch endpoints."""

    def __init__(
        self,
        base_url: str,
        snapshot_path: str = "/snapshot",
        batch_path: str = "/batch",
        timeout: float = 15.0,
        retry_config: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._snapshot_path = snapshot_path
        self._batch_path = batch_path
        self._retry_config = retry_config or DEFAULT_BATCH_RETRY
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> "SnapshotClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Snapshot ──────────────────────────────────────────────────────

    async def fetch_snapshot(
        self, parameters: SyncParameters, limit: int = 50
    ) -> list[LeaderboardEntry]:
        """Fetch the top ``limit`` entries for a scope.

        Raises:
            SnapshotFetchError: on HTTP, transport or body errors.
        """
        params = {**parameters.scope(), "limit": str(limit)}
        data = await self._request("GET", self._snapshot_path, params=params)

        if not isinstance(data, dict) or not isinstance(data.get("entries", []), list):
            raise TransientFetchError("Invalid snapshot response format")
        try:
            return [LeaderboardEntry.from_api(item) for item in data.get("entries", [])]
        except MessageDecodeError as exc:
            raise TransientFetchError(f"Invalid snapshot entry: {exc}") from exc

    # ── Batch ─────────────────────────────────────────────────────────

    async def fetch_batch(self, requests: list[BatchRequest]) -> list[BatchResult]:
        """Fetch several leaderboard views in one request.

        Server errors, transport errors and malformed bodies are retried with
        exponential backoff; client errors and timeouts are not.
        """
        payload = {"requests": [req.sanitized() for req in requests]}
        post = retry(self._retry_config)(self._post_batch)
        try:
            return await post(payload)
        except MaxRetriesExceeded as exc:
            raise exc.last_exception

    async def fetch_with_rank(
        self,
        user_id: Optional[str],
        timeframe: Any = Timeframe.ALL,
        language: Any = "en",
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[Any, Any]:
        """Fetch a leaderboard page plus the user's surrounding ranks.

        Returns ``(leaderboard, around_me)``; either side is None when it
        failed, and both are None when the request as a whole failed.
        """
        safe_timeframe = validate_timeframe(timeframe).value
        safe_language = normalize_language(language)
        requests = [
            BatchRequest(
                type="leaderboard",
                timeframe=safe_timeframe,
                language=safe_language,
                limit=limit,
                offset=offset,
            )
        ]
        if isinstance(user_id, str) and user_id:
            requests.append(
                BatchRequest(
                    type="aroundMe",
                    timeframe=safe_timeframe,
                    language=safe_language,
                    user_id=user_id,
                    range=3,
                )
            )

        try:
            results = await self.fetch_batch(requests)
        except SnapshotFetchError as exc:
            logger.error("Failed to fetch leaderboard batch: %s", exc)
            return None, None

        leaderboard = results[0] if results else None
        around_me = results[1] if len(results) > 1 else None
        return (
            leaderboard.data if leaderboard and leaderboard.ok else None,
            around_me.data if around_me and around_me.ok else None,
        )

    async def _post_batch(self, payload: dict) -> list[BatchResult]:
        data = await self._request("POST", self._batch_path, json=payload)
        if not isinstance(data, dict) or not isinstance(data.get("results"), list):
            raise TransientFetchError("Invalid batch response format")
        return [
            BatchResult(
                type=str(item.get("type", "")),
                data=item.get("data"),
                error=item.get("error"),
            )
            for item in data["results"]
            if isinstance(item, dict)
        ]

    # ── Transport ─────────────────────────────────────────────────────

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise SnapshotFetchError(f"Request to {path} timed out") from exc
        except httpx.TransportError as exc:
            raise TransientFetchError(f"Transport error for {path}: {exc}") from exc

        if 400 <= response.status_code < 500:
            raise SnapshotFetchError(
                f"Request to {path} failed: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if response.status_code >= 500:
            raise TransientFetchError(
                f"Server error: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise TransientFetchError(f"Response from {path} is not JSON") from exc
