"""Command line interface for Deep Work Insights.

Example:
    $ python -m deepwork.cli insight weekly
    $ python -m deepwork.cli insight activity --activity writing --force
    $ python -m deepwork.cli summary daily --date 2025-12-09
    $ python -m deepwork.cli add-session writing 45 --note "Drafted chapter 3"
"""

import argparse
import asyncio
import logging
import sys
import time
from dataclasses import asdict
from pathlib import Path

import yaml

from .config import ConfigManager
from .errors import GenerationUnavailable
from .models import INSIGHT_KINDS
from .service import build_service
from .timeparser import TimeParser

logger = logging.getLogger(__name__)


def _reference(args):
    """Return (reference datetime, containing flag) for --date."""
    if not args.date:
        return None, False
    return TimeParser().parse_date(args.date), True


def cmd_insight(service, args) -> int:
    reference, containing = _reference(args)
    try:
        result = asyncio.run(service.insight_for(
            args.kind,
            reference_time=reference,
            activity=args.activity,
            force=args.force,
            containing=containing,
        ))
    except GenerationUnavailable as e:
        print(f"Insight unavailable: {e}", file=sys.stderr)
        return 2

    source = "cached" if result.from_cache else "generated"
    if result.stale:
        source = "stale cache"
    print(f"{result.window.label} ({source})")
    print()
    print(result.text)
    return 0


def cmd_summary(service, args) -> int:
    reference, containing = _reference(args)
    summary = asyncio.run(service.summary_for(
        args.kind,
        reference_time=reference,
        activity=args.activity,
        containing=containing,
    ))
    print(yaml.safe_dump(asdict(summary), sort_keys=False), end="")
    return 0


def cmd_add_session(service, args) -> int:
    duration = int(args.minutes * 60)
    end_time = int(time.time()) if args.ended is None else args.ended
    session_id = service.storage.save_session(
        args.activity, duration, end_time - duration, end_time, args.note
    )
    print(f"Saved session {session_id}")
    return 0


def cmd_purge_cache(service, args) -> int:
    deleted = asyncio.run(service.purge_cache(args.days))
    print(f"Deleted {deleted} cached insights")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Focus session insights")
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (("insight", "Show the insight for a period"),
                            ("summary", "Show the aggregated statistics for a period")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("kind", choices=INSIGHT_KINDS)
        p.add_argument("--date", help="Use the period containing this date (e.g. 2025-12-09, yesterday)")
        p.add_argument("--activity", help="Activity name (required for 'activity')")
        if name == "insight":
            p.add_argument("--force", action="store_true", help="Regenerate even if cached")

    p = sub.add_parser("add-session", help="Record a completed focus session")
    p.add_argument("activity")
    p.add_argument("minutes", type=float)
    p.add_argument("--note", help="Session description")
    p.add_argument("--ended", type=int, help="Unix timestamp when the session ended (default: now)")

    p = sub.add_parser("purge-cache", help="Delete cached insights for old windows")
    p.add_argument("--days", type=int, help="Retention in days (default: from config)")

    sub.add_parser("init-config", help="Write the default config file")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config_mgr = ConfigManager(args.config)

    if args.command == "init-config":
        if config_mgr.create_default_file():
            print(f"Created {config_mgr.path}")
        else:
            print(f"{config_mgr.path} already exists")
        return 0

    if args.command in ("insight", "summary") and args.kind == "activity" and not args.activity:
        parser.error("--activity is required for activity insights")

    if args.command == "add-session" and int(args.minutes * 60) <= 0:
        parser.error("minutes must be positive")

    if args.command == "purge-cache" and args.days is None:
        args.days = config_mgr.config.insights.cache_retention_days

    service = build_service(config_mgr)
    commands = {
        "insight": cmd_insight,
        "summary": cmd_summary,
        "add-session": cmd_add_session,
        "purge-cache": cmd_purge_cache,
    }
    return commands[args.command](service, args)


if __name__ == "__main__":
    sys.exit(main())
