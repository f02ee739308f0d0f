#!/usr/bin/env python3
"""
Seed the database with realistic demo focus sessions.

Generates sessions for the last N days with weekday-weighted counts:
weekends are light and mostly reading/learning, midweek days are the
busiest. About a fifth of sessions have no note.

Run with --dry-run first to see what would be written. The script imports
the deepwork package, so install the project first (pip install -e .) or
run it with the repository root on PYTHONPATH.

Usage:
    pip install -e .
    python scripts/seed_sessions.py --dry-run
    python scripts/seed_sessions.py --apply --days 90 --seed 42
"""

import argparse
import random
from datetime import datetime, timedelta

from deepwork.config import ConfigManager
from deepwork.storage import InsightStorage

ACTIVITIES = ["deep-work", "reading", "learning", "writing", "planning"]
WEEKEND_ACTIVITIES = ["reading", "learning"]
SAMPLE_NOTES = [
    "Worked on mobile app project",
    "Read technical documentation",
    "Studied new framework",
    "Wrote blog post",
    "Planned next sprint",
    "Fixed critical bugs",
    "Designed new feature",
    "Code review session",
    None,
    None,
]

# (probability threshold, session count) per weekday, Monday = 0
SESSIONS_PER_DAY = {
    0: [(0.2, 0), (0.6, 1), (1.0, 2)],
    1: [(0.1, 0), (0.3, 1), (0.7, 2), (1.0, 3)],
    2: [(0.1, 0), (0.3, 1), (0.7, 2), (1.0, 3)],
    3: [(0.1, 0), (0.3, 1), (0.7, 2), (1.0, 3)],
    4: [(0.3, 0), (0.7, 1), (1.0, 2)],
    5: [(0.4, 0), (0.7, 1), (1.0, 2)],
    6: [(0.4, 0), (0.7, 1), (1.0, 2)],
}


def sessions_for_day(rng: random.Random, weekday: int) -> int:
    roll = rng.random()
    for threshold, count in SESSIONS_PER_DAY[weekday]:
        if roll < threshold:
            return count
    return 1


def generate_session(rng: random.Random, day: datetime, index: int) -> dict:
    """Build one session starting at 9:00, 12:00 or 15:00 of a day."""
    if day.weekday() >= 5:
        minutes = rng.randint(30, 60)
        activity = rng.choice(WEEKEND_ACTIVITIES)
    else:
        minutes = rng.randint(45, 120)
        activity = rng.choice(ACTIVITIES)

    start = day.replace(hour=9 + index * 3)
    start_ts = int(start.timestamp())
    duration = minutes * 60
    return {
        "activity_type": activity,
        "duration": duration,
        "start_time": start_ts,
        "end_time": start_ts + duration,
        "description": rng.choice(SAMPLE_NOTES),
        "created_at": start_ts + duration,
    }


def build_sessions(days: int, seed: int = None) -> list:
    rng = random.Random(seed)
    today = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
    sessions = []
    for days_ago in range(days - 1, -1, -1):
        day = today - timedelta(days=days_ago)
        for i in range(sessions_for_day(rng, day.weekday())):
            sessions.append(generate_session(rng, day, i))
    return sessions


def main():
    parser = argparse.ArgumentParser(description="Seed demo focus sessions")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--dry-run", action="store_true", help="Show what would be written")
    group.add_argument("--apply", action="store_true", help="Write the sessions")
    parser.add_argument("--days", type=int, default=90, help="Days of history (default: 90)")
    parser.add_argument("--seed", type=int, help="Random seed for reproducible data")
    parser.add_argument("--db", help="Database path (default: from config)")

    args = parser.parse_args()

    sessions = build_sessions(args.days, args.seed)
    total_hours = sum(s["duration"] for s in sessions) / 3600
    active_days = len({datetime.fromtimestamp(s["start_time"]).date() for s in sessions})

    print("=== Seed summary ===")
    print(f"Sessions: {len(sessions)}")
    print(f"Days with sessions: {active_days} of {args.days}")
    print(f"Total focus time: {total_hours:.1f} hours")
    if active_days:
        print(f"Average per active day: {len(sessions) / active_days:.1f} sessions")

    if args.dry_run:
        print()
        print("Dry run complete. Use --apply to write sessions.")
        return

    db_path = args.db or ConfigManager().config.storage.db_path
    if args.db is None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    storage = InsightStorage(str(db_path))
    for session in sessions:
        storage.save_session(**session)

    print()
    print(f"Wrote {len(sessions)} sessions to {storage.db_path}")


if __name__ == "__main__":
    main()
