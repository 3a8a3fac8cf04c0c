"""
One-shot sync script.

Usage:
    python -m asanadw.scripts.sync                      # every monitored entity
    python -m asanadw.scripts.sync --entity project:1201234567890
    python -m asanadw.scripts.sync --entity https://app.asana.com/0/1201234567890/list --full
    python -m asanadw.scripts.sync --days 30
    python -m asanadw.scripts.sync --since 2025-01-01

Projects go incremental when they have a live event cursor unless --full is
given. Users are backfilled month by month; months already synced are
skipped unless --full is given.
"""
import argparse
import asyncio
import logging
import sys
from datetime import date
from typing import List, Optional

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sync Asana data into the local mirror")
    parser.add_argument(
        "--entity",
        help="Entity key (type:gid) or Asana URL. Default: all monitored entities",
    )
    window = parser.add_mutually_exclusive_group()
    window.add_argument("--days", type=int, help="Lookback in days (default: 90)")
    window.add_argument("--since", type=_parse_date, help="Lookback start date, YYYY-MM-DD")
    parser.add_argument(
        "--full",
        action="store_true",
        help="Skip incremental sync and re-fetch the whole window",
    )
    return parser


async def _sync(entity: Optional[str], options) -> int:
    from asanadw.db.engine import get_engine
    from asanadw.sync.orchestrator import open_orchestrator
    from asanadw.sync.progress import LoggingProgress

    async with open_orchestrator(get_engine(), progress=LoggingProgress()) as orchestrator:
        if entity:
            reports = [await orchestrator.sync_one(entity, options)]
        else:
            reports = await orchestrator.sync_all(options)

    synced = sum(r.items_synced for r in reports)
    failed = sum(r.items_failed for r in reports)
    logger.info(
        "Sync complete. Entities: %d, items synced: %d, failed: %d",
        len(reports), synced, failed,
    )
    for report in reports:
        if report.error:
            logger.warning("%s: %s", report.entity_key, report.error)
    return 1 if failed else 0


def main(argv: Optional[List[str]] = None) -> None:
    from asanadw.sync.report import SyncOptions

    args = build_parser().parse_args(argv)
    options = SyncOptions(since=args.since, days=args.days, force_full=args.full)
    sys.exit(asyncio.run(_sync(args.entity, options)))


if __name__ == "__main__":
    main()
