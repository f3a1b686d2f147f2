"""CLI entry point: python main.py --mode global --timeframe daily --language en"""

import argparse
import asyncio
import sys

from ranksync.leaderboard import (
    LeaderboardSession,
    SyncCallbacks,
    SyncConfig,
    Timeframe,
    UpdateEvent,
    UserRankTracker,
)
from ranksync.logging_config import LoggingConfig, configure_logging
from ranksync.settings import get_settings


def format_event(event: UpdateEvent) -> str:
    entry = event.entry
    moved = ""
    if entry.old_rank is not None and entry.old_rank != entry.rank:
        moved = f" (was #{entry.old_rank})"
    return (
        f"[{event.source.value:7s}] {event.kind.value:13s} "
        f"#{entry.rank:<4d}{moved} {entry.username or entry.user_id:20s} "
        f"{entry.wpm:6.1f} wpm  {entry.accuracy:5.1f}%"
    )


async def run(config: SyncConfig, user_id: str = None) -> None:
    tracker = UserRankTracker(user_id) if user_id else None

    def on_update(event: UpdateEvent) -> None:
        print(format_event(event))
        if tracker and tracker.observe(event) and tracker.rank_change:
            print(f"  -> your rank: #{tracker.current_rank} ({tracker.rank_change:+d})")

    def on_connect() -> None:
        print("Connected.")

    def on_disconnect() -> None:
        print("Disconnected.")

    callbacks = SyncCallbacks(
        on_update=on_update,
        on_connect=on_connect,
        on_disconnect=on_disconnect,
        on_error=lambda exc: print(f"Error: {exc}", file=sys.stderr),
    )

    async with LeaderboardSession(config, callbacks) as session:
        entries = await session.refresh()
        if tracker:
            tracker.seed(entries)
        print(f"Loaded {len(entries)} entries. Waiting for updates (Ctrl-C to stop)...")
        while True:
            await asyncio.sleep(60)
            status = session.status()
            print(
                f"  status: {status['connection_state']} / {status['connection_quality']}"
                f"  fallback={status['is_using_fallback']}  latency={status['latency_ms']}"
            )


def main():
    parser = argparse.ArgumentParser(
        description="ranksync - real-time leaderboard synchronization client"
    )
    parser.add_argument(
        "--mode", default="global",
        help="Leaderboard mode (default: global)"
    )
    parser.add_argument(
        "--timeframe", default=Timeframe.ALL.value,
        choices=[t.value for t in Timeframe],
        help="Leaderboard timeframe (default: all)"
    )
    parser.add_argument(
        "--language", default="en",
        help="Language filter (default: en)"
    )
    parser.add_argument(
        "--user-id", default=None,
        help="Subscribe as this user and track their rank"
    )
    parser.add_argument(
        "--fallback", action="store_true",
        help="Enable HTTP polling when the push channel is unreachable"
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Log at DEBUG level in console format"
    )
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(LoggingConfig.from_settings(settings, verbose=args.verbose))

    overrides = {
        "mode": args.mode,
        "timeframe": args.timeframe,
        "language": args.language,
        "user_id": args.user_id,
    }
    if args.fallback:
        overrides["enable_http_fallback"] = True
    config = SyncConfig.from_settings(settings, **overrides)

    print("=" * 60)
    print("RANKSYNC - LEADERBOARD SYNC")
    print(f"Scope: {args.mode} / {args.timeframe} / {args.language}")
    print("=" * 60)

    try:
        asyncio.run(run(config, user_id=args.user_id))
    except KeyboardInterrupt:
        print("\nStopped.")


if __name__ == "__main__":
    main()
