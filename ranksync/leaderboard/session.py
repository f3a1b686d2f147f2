"""Leaderboard sync session.

The session is the one object the presentation layer talks to. It wires the
reconciler, snapshot client, fallback poller and connection manager
together around a shared ``SessionState`` and owns their teardown.

Example:
    config = SyncConfig(timeframe="daily", enable_http_fallback=True)
    async with LeaderboardSession(config, SyncCallbacks(on_update=render)) as session:
        await session.refresh()
        ...
"""

import logging
from typing import Any, Optional

from ranksync.leaderboard.api import SnapshotClient
from ranksync.leaderboard.channel import ChannelFactory, websocket_channel_factory
from ranksync.leaderboard.config import (
    ConnectionQuality,
    ConnectionState,
    SyncConfig,
    SyncParameters,
)
from ranksync.leaderboard.connection import ConnectionManager, SyncCallbacks
from ranksync.leaderboard.exceptions import SnapshotFetchError
from ranksync.leaderboard.models import LeaderboardEntry, SessionState, UpdateEvent
from ranksync.leaderboard.poller import FallbackPoller
from ranksync.leaderboard.reconciler import UpdateReconciler
from ranksync.leaderboard.timers import AsyncioScheduler, Scheduler
from ranksync.logging_config.context import SessionContext, generate_session_id

logger = logging.getLogger(__name__)


class LeaderboardSession:
    """Parameter-scoped façade over one push channel and its fallback."""

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        callbacks: Optional[SyncCallbacks] = None,
        scheduler: Optional[Scheduler] = None,
        channel_factory: Optional[ChannelFactory] = None,
        snapshot_client: Optional[SnapshotClient] = None,
        session_id: Optional[str] = None,
    ):
        self.config = config or SyncConfig()
        self.session_id = session_id or generate_session_id()
        self._scheduler = scheduler or AsyncioScheduler()

        self.state = SessionState(
            parameters=self.config.parameters,
            history_limit=self.config.history_limit,
        )
        self.reconciler = UpdateReconciler(
            self._scheduler,
            highlight_ms=self.config.highlight_ms,
            default_test_mode=self.config.default_test_mode,
        )

        self._owns_client = snapshot_client is None
        self.client = snapshot_client or SnapshotClient(
            self.config.api_base_url,
            snapshot_path=self.config.snapshot_path,
            batch_path=self.config.batch_path,
            timeout=self.config.request_timeout,
        )

        self.manager = ConnectionManager(
            self.state,
            self.config,
            self._scheduler,
            channel_factory or websocket_channel_factory(self._scheduler),
            self.reconciler,
            callbacks=callbacks,
            log_context=self.log_context,
        )
        self.poller = FallbackPoller(
            self.state,
            self.client,
            self._scheduler,
            self.manager.deliver,
            interval_ms=self.config.http_polling_interval_ms,
            limit=self.config.snapshot_limit,
            log_context=self.log_context,
        )
        self.manager.attach_poller(self.poller)

    def log_context(self) -> SessionContext:
        return SessionContext(self.session_id, self.state.parameters.scope())

    async def __aenter__(self) -> "LeaderboardSession":
        self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ── State ─────────────────────────────────────────────────────────

    @property
    def parameters(self) -> SyncParameters:
        return self.state.parameters

    @property
    def connection_state(self) -> ConnectionState:
        return self.state.connection_state

    @property
    def connection_quality(self) -> ConnectionQuality:
        return self.state.connection_quality

    @property
    def reconnect_attempt(self) -> int:
        return self.state.reconnect_attempt

    @property
    def is_using_fallback(self) -> bool:
        return self.state.is_using_fallback

    @property
    def is_connected(self) -> bool:
        return self.state.is_connected

    @property
    def is_reconnecting(self) -> bool:
        return self.state.is_reconnecting

    @property
    def latency_ms(self) -> Optional[float]:
        return self.state.latency_ms

    @property
    def last_update(self) -> Optional[UpdateEvent]:
        return self.state.last_update

    @property
    def last_error(self) -> Optional[BaseException]:
        return self.state.last_error

    @property
    def history(self) -> list[UpdateEvent]:
        return list(self.state.history)

    @property
    def entries(self) -> list[LeaderboardEntry]:
        return self.reconciler.entries

    @property
    def recently_updated(self) -> set[str]:
        return self.reconciler.recently_updated

    def status(self) -> dict:
        return self.state.to_dict()

    # ── Lifecycle ─────────────────────────────────────────────────────

    def connect(self) -> None:
        with self.log_context():
            self.manager.connect()

    def disconnect(self) -> None:
        with self.log_context():
            self.manager.disconnect()

    def reconnect(self) -> None:
        """Drop the current channel and start over with a fresh retry budget."""
        with self.log_context():
            self.manager.disconnect()
            self.state.reconnect_attempt = 0
            self.manager.connect()

    async def close(self) -> None:
        """Disconnect and release timers and the HTTP client."""
        self.disconnect()
        self.reconciler.close()
        if self._owns_client:
            await self.client.aclose()

    def update_parameters(self, **changes: Any) -> bool:
        with self.log_context():
            return self.manager.update_parameters(**changes)

    def notify_visible(self) -> None:
        with self.log_context():
            self.manager.resume()

    def notify_online(self) -> None:
        with self.log_context():
            self.manager.resume()

    async def refresh(self) -> list[LeaderboardEntry]:
        """Seed the entry collection from a fresh snapshot.

        On failure the current entries are kept and returned unchanged.
        """
        with self.log_context():
            try:
                snapshot = await self.client.fetch_snapshot(
                    self.state.parameters, limit=self.config.snapshot_limit
                )
            except SnapshotFetchError as exc:
                logger.error("Failed to load snapshot: %s", exc)
                return self.reconciler.entries
            self.reconciler.reset(snapshot)
            logger.info("Loaded %d entries", len(snapshot))
            return self.reconciler.entries
