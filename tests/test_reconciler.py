"""Tests for the update reconciler and the single-timer timer slots."""

from ranksync.leaderboard.config import MessageKind
from ranksync.leaderboard.models import UpdateEvent
from ranksync.leaderboard.reconciler import SortField, UpdateReconciler, sort_entries
from ranksync.leaderboard.timers import TimerSlot

from conftest import START_MS, make_entry


def _event(user_id, rank, wpm=80.0, accuracy=97.0, kind=MessageKind.RANK_CHANGE):
    return UpdateEvent(
        kind=kind,
        entry=make_entry(user_id, rank, wpm, accuracy),
        mode="global",
        timeframe="all",
        language="en",
        timestamp=START_MS,
    )


class TestApply:
    def test_updates_existing_entry_in_place(self, scheduler):
        reconciler = UpdateReconciler(scheduler)
        reconciler.reset([make_entry("u1", 1), make_entry("u2", 2)])
        original = reconciler.get("u2")

        affected = reconciler.apply(_event("u2", 1, wpm=120.0))

        assert affected is original
        assert original.rank == 1
        assert original.old_rank == 2
        assert original.wpm == 120.0
        assert [e.user_id for e in reconciler.entries] == ["u1", "u2"]

    def test_other_entries_untouched(self, scheduler):
        reconciler = UpdateReconciler(scheduler)
        reconciler.reset([make_entry("u1", 1), make_entry("u2", 2)])
        before = reconciler.get("u1").copy()

        reconciler.apply(_event("u2", 3))

        assert reconciler.get("u1") == before

    def test_appends_new_entrant_with_defaults(self, scheduler):
        reconciler = UpdateReconciler(scheduler, default_test_mode=30)
        reconciler.reset([make_entry("u1", 1)])

        affected = reconciler.apply(_event("u9", 7, kind=MessageKind.NEW_ENTRY))

        assert affected.user_id == "u9"
        assert affected.mode == 30
        assert affected.total_tests == 1
        assert reconciler.entries[-1] is affected

    def test_unknown_entry_without_new_entry_kind_ignored(self, scheduler):
        reconciler = UpdateReconciler(scheduler)
        assert reconciler.apply(_event("ghost", 4)) is None
        assert reconciler.entries == []
        assert reconciler.recently_updated == set()

    def test_idempotent(self, scheduler):
        once = UpdateReconciler(scheduler)
        twice = UpdateReconciler(scheduler)
        for reconciler in (once, twice):
            reconciler.reset([make_entry("u1", 4), make_entry("u2", 5)])

        events = [
            _event("u1", 2, wpm=101.0),
            _event("u3", 9, kind=MessageKind.NEW_ENTRY),
        ]
        for event in events:
            once.apply(event)
            twice.apply(event)
            twice.apply(event)

        assert once.entries == twice.entries

    def test_never_reorders(self, scheduler):
        reconciler = UpdateReconciler(scheduler)
        reconciler.reset([make_entry("u1", 1), make_entry("u2", 2), make_entry("u3", 3)])
        reconciler.apply(_event("u3", 1))
        assert [e.user_id for e in reconciler.entries] == ["u1", "u2", "u3"]

    def test_entries_returns_copy(self, scheduler):
        reconciler = UpdateReconciler(scheduler)
        reconciler.reset([make_entry("u1", 1)])
        reconciler.entries.clear()
        assert len(reconciler.entries) == 1


class TestRecentlyUpdated:
    def test_marker_expires_after_highlight_window(self, scheduler):
        reconciler = UpdateReconciler(scheduler)
        reconciler.reset([make_entry("u1", 5)])
        reconciler.apply(_event("u1", 3))

        assert reconciler.recently_updated == {"u1"}
        scheduler.advance(2999)
        assert reconciler.is_recently_updated("u1")
        scheduler.advance(1)
        assert reconciler.recently_updated == set()
        assert not reconciler.is_recently_updated("u1")

    def test_single_sweep_timer_for_many_entries(self, scheduler):
        reconciler = UpdateReconciler(scheduler)
        reconciler.reset([make_entry(f"u{i}", i + 1) for i in range(20)])
        for i in range(20):
            reconciler.apply(_event(f"u{i}", i + 2))
            scheduler.advance(10)

        assert len(scheduler.pending) == 1
        assert len(reconciler.recently_updated) == 20

    def test_staggered_expiry(self, scheduler):
        reconciler = UpdateReconciler(scheduler)
        reconciler.reset([make_entry("u1", 1), make_entry("u2", 2)])
        reconciler.apply(_event("u1", 2))
        scheduler.advance(1000)
        reconciler.apply(_event("u2", 1))

        scheduler.advance(2000)
        assert reconciler.recently_updated == {"u2"}
        scheduler.advance(1000)
        assert reconciler.recently_updated == set()
        assert scheduler.pending == []

    def test_reapply_extends_marker(self, scheduler):
        reconciler = UpdateReconciler(scheduler)
        reconciler.reset([make_entry("u1", 1)])
        reconciler.apply(_event("u1", 2))
        scheduler.advance(2000)
        reconciler.apply(_event("u1", 3))
        scheduler.advance(2000)
        assert reconciler.is_recently_updated("u1")
        scheduler.advance(1000)
        assert not reconciler.is_recently_updated("u1")

    def test_close_cancels_sweep(self, scheduler):
        reconciler = UpdateReconciler(scheduler)
        reconciler.reset([make_entry("u1", 1)])
        reconciler.apply(_event("u1", 2))
        reconciler.close()
        assert scheduler.pending == []
        assert reconciler.recently_updated == set()


class TestSortEntries:
    def test_sort_by_wpm_descending(self):
        entries = [make_entry("a", 1, wpm=90), make_entry("b", 2, wpm=110), make_entry("c", 3, wpm=70)]
        ordered = sort_entries(entries, SortField.WPM, descending=True)
        assert [e.user_id for e in ordered] == ["b", "a", "c"]
        assert [e.user_id for e in entries] == ["a", "b", "c"]

    def test_sort_by_tests_treats_missing_as_zero(self):
        entries = [make_entry("a", 1, total_tests=4), make_entry("b", 2)]
        assert [e.user_id for e in sort_entries(entries, "tests")] == ["b", "a"]


class TestTimerSlot:
    def test_schedule_replaces_prior_timer(self, scheduler):
        slot = TimerSlot(scheduler, "reconnect")
        fired = []
        slot.schedule(1000, lambda: fired.append("first"))
        slot.schedule(500, lambda: fired.append("second"))

        assert len(scheduler.pending) == 1
        scheduler.advance(1000)
        assert fired == ["second"]
        assert not slot.active

    def test_interval_repeats_until_cancelled(self, scheduler):
        slot = TimerSlot(scheduler, "heartbeat")
        ticks = []
        slot.schedule_interval(100, lambda: ticks.append(scheduler.now()))
        scheduler.advance(350)
        assert len(ticks) == 3
        slot.cancel()
        scheduler.advance(1000)
        assert len(ticks) == 3
        assert scheduler.pending == []
