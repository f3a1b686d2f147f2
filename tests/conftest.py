"""Pytest configuration and shared fixtures."""

import json
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from ranksync.leaderboard.channel import ChannelState  # noqa: E402
from ranksync.leaderboard.config import SyncParameters  # noqa: E402
from ranksync.leaderboard.exceptions import TransientFetchError  # noqa: E402
from ranksync.leaderboard.models import LeaderboardEntry  # noqa: E402

START_MS = 1_700_000_000_000


# ── Manual clock ─────────────────────────────────────────────────────


class ManualTimer:
    def __init__(self, when: int, seq: int, callback):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic scheduler: time only moves when a test calls ``advance``.

    Spawned coroutines are collected, not run, until ``run_pending`` awaits
    them in spawn order.
    """

    def __init__(self, start_ms: int = START_MS):
        self.time = start_ms
        self.timers: list[ManualTimer] = []
        self.spawned: list = []
        self._seq = 0

    def now(self) -> int:
        return self.time

    def call_later(self, delay_ms, callback) -> ManualTimer:
        timer = ManualTimer(self.time + max(delay_ms, 0), self._seq, callback)
        self._seq += 1
        self.timers.append(timer)
        return timer

    def spawn(self, coro):
        self.spawned.append(coro)
        return coro

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, ms: int) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self.time + ms
        while True:
            due = [t for t in self.pending if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self.timers.remove(timer)
            self.time = timer.when
            timer.callback()
        self.time = target

    async def run_pending(self) -> list:
        results = []
        while self.spawned:
            results.append(await self.spawned.pop(0))
        return results

    def discard_pending(self) -> None:
        for coro in self.spawned:
            if hasattr(coro, "close"):
                coro.close()
        self.spawned.clear()


# ── Fake channel ─────────────────────────────────────────────────────


class FakeChannel:
    """In-memory channel driven by the test."""

    def __init__(self, url: str, listener):
        self.url = url
        self.listener = listener
        self.state = ChannelState.CONNECTING
        self.opened = False
        self.sent: list[dict] = []
        self.closed_with = None

    # Channel interface
    def open(self) -> None:
        self.opened = True

    def send(self, text: str) -> None:
        self.sent.append(json.loads(text))

    def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed_with = (code, reason)
        self.state = ChannelState.CLOSING

    # Test drivers
    def accept(self) -> None:
        self.state = ChannelState.OPEN
        self.listener.on_open()

    def receive(self, payload) -> None:
        raw = payload if isinstance(payload, (str, bytes)) else json.dumps(payload)
        self.listener.on_message(raw)

    def error(self, exc: BaseException) -> None:
        self.listener.on_error(exc)

    def drop(self, code: int = 1006, reason: str = "") -> None:
        self.state = ChannelState.CLOSED
        self.listener.on_close(code, reason)

    def finish_close(self) -> None:
        code, reason = self.closed_with
        self.drop(code, reason)


class FakeChannelFactory:
    def __init__(self):
        self.channels: list[FakeChannel] = []
        self.error = None

    def __call__(self, url: str, listener) -> FakeChannel:
        if self.error is not None:
            raise self.error
        channel = FakeChannel(url, listener)
        self.channels.append(channel)
        return channel

    @property
    def latest(self) -> FakeChannel:
        return self.channels[-1]


# ── Fake snapshot client ─────────────────────────────────────────────


class FakeSnapshotClient:
    """Returns queued snapshots in order; repeats the last one when drained."""

    def __init__(self, *snapshots):
        self.snapshots = list(snapshots)
        self.calls: list[SyncParameters] = []
        self.fail_next = False
        self.on_fetch = None
        self.closed = False

    async def fetch_snapshot(self, parameters, limit=50):
        self.calls.append(parameters)
        if self.on_fetch is not None:
            self.on_fetch()
        if self.fail_next:
            self.fail_next = False
            raise TransientFetchError("Server error: HTTP 503", status_code=503)
        if len(self.snapshots) > 1:
            return self.snapshots.pop(0)
        return list(self.snapshots[0]) if self.snapshots else []

    async def aclose(self):
        self.closed = True


# ── Helpers ──────────────────────────────────────────────────────────


def make_entry(user_id="u1", rank=1, wpm=80.0, accuracy=97.0, **kwargs) -> LeaderboardEntry:
    return LeaderboardEntry(
        user_id=user_id,
        username=kwargs.pop("username", f"user-{user_id}"),
        rank=rank,
        wpm=wpm,
        accuracy=accuracy,
        **kwargs,
    )


def update_message(user_id="u1", rank=1, wpm=80.0, accuracy=97.0, update_type=None, **scope) -> dict:
    message = {
        "type": "leaderboard_update",
        "mode": scope.get("mode", "global"),
        "timeframe": scope.get("timeframe", "all"),
        "language": scope.get("language", "en"),
        "entry": {
            "userId": user_id,
            "username": f"user-{user_id}",
            "rank": rank,
            "wpm": wpm,
            "accuracy": accuracy,
        },
        "timestamp": START_MS,
    }
    if update_type:
        message["updateType"] = update_type
    return message


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture
def scheduler():
    sched = ManualScheduler()
    yield sched
    sched.discard_pending()


@pytest.fixture
def channel_factory():
    return FakeChannelFactory()


@pytest.fixture
def snapshot_client():
    return FakeSnapshotClient([])
