#!/usr/bin/env python3
"""
Operator CLI for the duplicate engine.

Finds likely duplicates, previews a merge, or executes a merge the operator
has already reviewed. Prints the admin API's JSON shape to stdout.

Usage:
    PYTHONPATH=. python3 scripts/find_duplicates.py find venues --threshold 0.8 --group
    PYTHONPATH=. python3 scripts/find_duplicates.py preview vendors <primary-id> <duplicate-id>
    PYTHONPATH=. python3 scripts/find_duplicates.py merge vendors <primary-id> <duplicate-id> --confirm
"""

import argparse
import asyncio
import json
import logging
import sys

from services.listings.db.engine import standalone_session
from services.listings.duplicates.errors import DuplicateEngineError
from services.listings.duplicates.service import DuplicateService
from services.listings.duplicates.sql_repository import SqlEntityRepository
from services.listings.duplicates.types import EntityKind
from services.listings.error_log import ErrorLogger

logger = logging.getLogger("find_duplicates")

KINDS = [k.value for k in EntityKind]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find, preview and merge duplicate listings")
    parser.add_argument(
        "--database-url",
        default=None,
        help="PostgreSQL connection string (default: DATABASE_URL from settings)",
    )
    parser.add_argument("--verbose", "-v", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    find = sub.add_parser("find", help="List probable duplicate pairs")
    find.add_argument("kind", choices=KINDS)
    find.add_argument("--threshold", type=float, default=None, help="0.5-1.0 (default 0.7)")
    find.add_argument("--group", action="store_true", help="Also cluster pairs into groups")

    for name, help_text in (
        ("preview", "Show what merging duplicate into primary would do"),
        ("merge", "Merge duplicate into primary and delete the duplicate"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("kind", choices=KINDS)
        cmd.add_argument("primary_id")
        cmd.add_argument("duplicate_id")
        if name == "merge":
            cmd.add_argument(
                "--confirm",
                action="store_true",
                help="Required: confirms the preview was reviewed",
            )

    return parser


async def run(args: argparse.Namespace) -> dict:
    async with standalone_session(args.database_url) as session:
        service = DuplicateService(
            SqlEntityRepository(session),
            error_logger=ErrorLogger(session),
        )
        if args.command == "find":
            result = await service.find_duplicates(args.kind, args.threshold, group=args.group)
        elif args.command == "preview":
            result = await service.preview_merge(args.kind, args.primary_id, args.duplicate_id)
        else:
            result = await service.execute_merge(args.kind, args.primary_id, args.duplicate_id)
        return result.to_dict()


async def main() -> None:
    """CLI entry point."""
    args = build_parser().parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.command == "merge" and not args.confirm:
        print("ERROR: merge requires --confirm. Run preview first.", file=sys.stderr)
        sys.exit(2)

    try:
        output = await run(args)
    except DuplicateEngineError as e:
        logger.error("%s failed [%s]: %s", args.command, e.code, e)
        sys.exit(1)

    print(json.dumps(output, default=str, indent=2))


if __name__ == "__main__":
    asyncio.run(main())
