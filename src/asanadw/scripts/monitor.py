"""
Manage the set of monitored entities.

Usage:
    python -m asanadw.scripts.monitor list
    python -m asanadw.scripts.monitor add project https://app.asana.com/0/1201234567890/list
    python -m asanadw.scripts.monitor add user 1200000000001
    python -m asanadw.scripts.monitor remove project:1201234567890
    python -m asanadw.scripts.monitor favorites
"""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from asanadw.refs import ENTITY_TYPES

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage monitored Asana entities")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Start monitoring an entity")
    add.add_argument("entity_type", choices=ENTITY_TYPES)
    add.add_argument("ref", help="gid, entity key, or Asana URL")

    remove = sub.add_parser("remove", help="Stop monitoring an entity")
    remove.add_argument("entity_key")

    sub.add_parser("list", help="List monitored entities")
    sub.add_parser("favorites", help="Monitor your favorite projects and portfolios")
    return parser


async def _run(args) -> int:
    from asanadw.db.engine import get_engine
    from asanadw.sync.orchestrator import open_orchestrator

    async with open_orchestrator(get_engine()) as orchestrator:
        if args.command == "add":
            key = await orchestrator.monitor_add(args.entity_type, args.ref)
            print(f"Monitoring {key}")
        elif args.command == "remove":
            if not orchestrator.monitor_remove(args.entity_key):
                print(f"{args.entity_key} is not monitored")
                return 1
            print(f"Removed {args.entity_key}")
        elif args.command == "list":
            for entity in orchestrator.monitor_list():
                state = "" if entity.sync_enabled else " (incidental)"
                last = entity.last_sync_at.isoformat() if entity.last_sync_at else "never"
                print(f"{entity.entity_key}\t{entity.display_name or ''}\tlast sync: {last}{state}")
        elif args.command == "favorites":
            keys = await orchestrator.monitor_add_favorites()
            print(f"Added {len(keys)} favorites")
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
