"""Merging update events into the displayed entry collection.

The reconciler applies one event at a time with last-write-wins semantics
per field. It never reorders entries: ascending rank is the order callers
seed it with, and any other ordering is the presentation layer's business
(see ``sort_entries``).
"""

import logging
from collections import OrderedDict
from enum import Enum
from typing import Iterable, Optional

from ranksync.leaderboard.config import DEFAULT_HIGHLIGHT_MS, DEFAULT_TEST_MODE
from ranksync.leaderboard.models import LeaderboardEntry, UpdateEvent
from ranksync.leaderboard.timers import Scheduler, TimerSlot

logger = logging.getLogger(__name__)


class SortField(str, Enum):
    """Columns the presentation layer may sort by."""
    RANK = "rank"
    WPM = "wpm"
    ACCURACY = "accuracy"
    TESTS = "tests"


class UpdateReconciler:
    """Maintains the ordered entry list and the recently-updated markers.

    Markers live in one time-ordered map of ``user_id -> expiry`` that a
    single sweep timer drains, so the number of live timers stays at one
    however many entries change.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        highlight_ms: int = DEFAULT_HIGHLIGHT_MS,
        default_test_mode: int = DEFAULT_TEST_MODE,
    ):
        self._scheduler = scheduler
        self._highlight_ms = highlight_ms
        self._default_test_mode = default_test_mode
        self._entries: list[LeaderboardEntry] = []
        self._index: dict[str, LeaderboardEntry] = {}
        self._recent: "OrderedDict[str, int]" = OrderedDict()
        self._sweep = TimerSlot(scheduler, "highlight-sweep")

    @property
    def entries(self) -> list[LeaderboardEntry]:
        """Current entries in their merge order (a shallow copy of the list)."""
        return list(self._entries)

    @property
    def recently_updated(self) -> set[str]:
        now = self._scheduler.now()
        return {uid for uid, expiry in self._recent.items() if expiry > now}

    def is_recently_updated(self, user_id: str) -> bool:
        expiry = self._recent.get(user_id)
        return expiry is not None and expiry > self._scheduler.now()

    def get(self, user_id: str) -> Optional[LeaderboardEntry]:
        return self._index.get(user_id)

    def reset(self, entries: Iterable[LeaderboardEntry] = ()) -> None:
        """Replace the collection, e.g. with a freshly fetched first page."""
        self._entries = [entry.copy() for entry in entries]
        self._index = {entry.user_id: entry for entry in self._entries}

    def apply(self, event: UpdateEvent) -> Optional[LeaderboardEntry]:
        """Merge one event. Returns the affected entry, or None if ignored."""
        incoming = event.entry
        existing = self._index.get(incoming.user_id)

        if existing is not None:
            if existing.rank != incoming.rank:
                existing.old_rank = existing.rank
            existing.rank = incoming.rank
            existing.wpm = incoming.wpm
            existing.accuracy = incoming.accuracy
            affected = existing
        elif event.is_new_entry:
            affected = LeaderboardEntry(
                user_id=incoming.user_id,
                username=incoming.username,
                rank=incoming.rank,
                wpm=incoming.wpm,
                accuracy=incoming.accuracy,
                mode=incoming.mode or self._default_test_mode,
                avatar_color=incoming.avatar_color,
                is_verified=incoming.is_verified,
                total_tests=1,
            )
            self._entries.append(affected)
            self._index[affected.user_id] = affected
        else:
            logger.debug(
                "Ignoring %s for unknown entry %s", event.kind.value, incoming.user_id
            )
            return None

        self._mark(affected.user_id)
        return affected

    def close(self) -> None:
        """Cancel the sweep timer and drop all markers."""
        self._sweep.cancel()
        self._recent.clear()

    # ── Recently-updated markers ──────────────────────────────────────

    def _mark(self, user_id: str) -> None:
        self._recent.pop(user_id, None)
        self._recent[user_id] = self._scheduler.now() + self._highlight_ms
        if not self._sweep.active:
            self._schedule_sweep()

    def _schedule_sweep(self) -> None:
        if not self._recent:
            return
        oldest_expiry = next(iter(self._recent.values()))
        delay = max(oldest_expiry - self._scheduler.now(), 0)
        self._sweep.schedule(delay, self._run_sweep)

    def _run_sweep(self) -> None:
        now = self._scheduler.now()
        while self._recent:
            user_id, expiry = next(iter(self._recent.items()))
            if expiry > now:
                break
            del self._recent[user_id]
        self._schedule_sweep()


def sort_entries(
    entries: Iterable[LeaderboardEntry],
    by: SortField = SortField.RANK,
    descending: bool = False,
) -> list[LeaderboardEntry]:
    """Return a sorted copy of ``entries``; the input is left untouched."""
    keys = {
        SortField.RANK: lambda e: e.rank,
        SortField.WPM: lambda e: e.wpm,
        SortField.ACCURACY: lambda e: e.accuracy,
        SortField.TESTS: lambda e: e.total_tests or 0,
    }
    return sorted(entries, key=keys[SortField(by)], reverse=descending)
