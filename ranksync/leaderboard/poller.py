"""HTTP polling fallback.

When the push channel is structurally unreachable, the poller fetches a full
ranked snapshot on an interval, diffs it against the previous one and
synthesizes the update events the channel would have pushed.
"""

import logging
from typing import Callable, Iterable, Mapping, Optional

from ranksync.leaderboard.api import SnapshotClient
from ranksync.leaderboard.config import (
    ConnectionQuality,
    ConnectionState,
    EventSource,
    MessageKind,
    SyncParameters,
)
from ranksync.leaderboard.exceptions import SnapshotFetchError
from ranksync.leaderboard.models import LeaderboardEntry, SessionState, UpdateEvent
from ranksync.leaderboard.timers import Scheduler, TimerSlot
from ranksync.logging_config.context import SessionContext

logger = logging.getLogger(__name__)


def diff_snapshot(
    baseline: Mapping[str, LeaderboardEntry],
    snapshot: Iterable[LeaderboardEntry],
    parameters: SyncParameters,
    timestamp: int,
) -> list[UpdateEvent]:
    """Synthesize update events for entries that differ from ``baseline``.

    New user ids yield ``new_entry``; a moved rank yields ``rank_change``
    carrying ``old_rank``; changed wpm or accuracy alone yields
    ``score_update``. Unchanged entries yield nothing.
    """
    scope = parameters.scope()
    events = []
    for entry in snapshot:
        previous = baseline.get(entry.user_id)
        if previous is None:
            kind = MessageKind.NEW_ENTRY
            synthesized = entry.copy()
        elif previous.same_standing(entry):
            continue
        elif previous.rank != entry.rank:
            kind = MessageKind.RANK_CHANGE
            synthesized = entry.copy(old_rank=previous.rank)
        else:
            kind = MessageKind.SCORE_UPDATE
            synthesized = entry.copy(old_rank=previous.rank)

        events.append(
            UpdateEvent(
                kind=kind,
                entry=synthesized,
                timestamp=timestamp,
                source=EventSource.POLL,
                **scope,
            )
        )
    return events


class FallbackPoller:
    """Periodic snapshot fetch + diff, feeding the session's delivery path.

    The poller writes ``state.baseline`` and ``state.is_using_fallback``;
    every synthesized event goes through ``deliver`` exactly like a
    channel-delivered one.
    """

    def __init__(
        self,
        state: SessionState,
        client: SnapshotClient,
        scheduler: Scheduler,
        deliver: Callable[[UpdateEvent], None],
        interval_ms: int,
        limit: int = 50,
        log_context: Optional[Callable[[], SessionContext]] = None,
    ):
        self._state = state
        self._client = client
        self._scheduler = scheduler
        self._deliver = deliver
        self._interval_ms = interval_ms
        self._limit = limit
        self._log_context = log_context or SessionContext
        self._timer = TimerSlot(scheduler, "poll")
        self._in_flight = False
        self._generation = 0

    @property
    def is_running(self) -> bool:
        return self._timer.active

    def start(self) -> None:
        """Enter polling mode: poll now, then every interval. No-op if running."""
        if self._timer.active:
            return

        logger.info("Starting HTTP polling fallback every %dms", self._interval_ms)
        self._state.is_using_fallback = True
        self._state.connection_state = ConnectionState.POLLING
        self._state.connection_quality = ConnectionQuality.DEGRADED

        self._timer.schedule_interval(self._interval_ms, self._tick)
        self._tick()

    def stop(self) -> None:
        """Leave polling mode. A poll still in flight is discarded when it lands."""
        if self._timer.active:
            logger.info("Stopping HTTP polling fallback")
        self._timer.cancel()
        self._generation += 1
        self._in_flight = False
        self._state.is_using_fallback = False

    def _tick(self) -> None:
        if self._in_flight:
            logger.debug("Previous poll still in flight, skipping this tick")
            return
        self._in_flight = True
        self._scheduler.spawn(self._poll(self._generation))

    async def poll(self) -> int:
        """Fetch one snapshot and deliver its diff. Returns the event count.

        Failures are logged and swallowed; the next scheduled poll runs as usual.
        """
        return await self._poll(self._generation)

    async def _poll(self, generation: int) -> int:
        # ``generation`` is the one current when the poll was requested;
        # stop() bumps it, so a poll outliving its polling run is discarded.
        if generation != self._generation:
            logger.debug("Polling stopped before fetch, skipping")
            return 0

        parameters = self._state.parameters
        with self._log_context():
            try:
                snapshot = await self._client.fetch_snapshot(parameters, limit=self._limit)
            except SnapshotFetchError as exc:
                logger.error("HTTP polling error: %s", exc)
                return 0
            finally:
                if generation == self._generation:
                    self._in_flight = False

            if generation != self._generation:
                logger.info("Polling stopped during fetch, discarding snapshot")
                return 0
            if self._state.parameters != parameters:
                logger.info("Parameters changed during poll, discarding snapshot")
                return 0

            events = diff_snapshot(
                self._state.baseline, snapshot, parameters, self._scheduler.now()
            )
            for event in events:
                self._deliver(event)

            self._state.baseline = {entry.user_id: entry for entry in snapshot}
            logger.debug(
                "Polled %d entries, %d changed", len(snapshot), len(events)
            )
            return len(events)
