"""Follow one user's position as updates arrive."""

from datetime import datetime, timezone
from typing import Iterable, Optional

from ranksync.leaderboard.models import LeaderboardEntry, UpdateEvent


class UserRankTracker:
    """Tracks the current and previous rank of a single user.

    Feed it every update event (e.g. from ``on_update``); events for other
    users are ignored. ``rank_change`` is positive when the user moved up.
    """

    def __init__(self, user_id: str):
        self.user_id = user_id
        self.current_rank: Optional[int] = None
        self.previous_rank: Optional[int] = None
        self.last_update: Optional[datetime] = None

    @property
    def rank_change(self) -> int:
        if self.current_rank is None or self.previous_rank is None:
            return 0
        return self.previous_rank - self.current_rank

    def seed(self, entries: Iterable[LeaderboardEntry]) -> None:
        """Initialise from a snapshot without recording a change."""
        for entry in entries:
            if entry.user_id == self.user_id:
                self.current_rank = entry.rank
                self.previous_rank = None
                return

    def observe(self, event: UpdateEvent) -> bool:
        """Record the user's rank from ``event``. Returns True if it concerned them."""
        if event.entry.user_id != self.user_id:
            return False
        if self.current_rank != event.entry.rank:
            self.previous_rank = self.current_rank
            self.current_rank = event.entry.rank
        self.last_update = datetime.fromtimestamp(event.timestamp / 1000, tz=timezone.utc)
        return True
