"""Ladderwatch — Command-line job runner.

    ladderwatch poll [--snapshot-date YYYY-MM-DD]
    ladderwatch digest [--send] [--snapshot-date YYYY-MM-DD]
    ladderwatch rebuild
    ladderwatch daily [--dry-run]
    ladderwatch release-delivery --delivery-date YYYY-MM-DD

Each command prints its result as JSON and exits non-zero on failure.
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from ladderwatch.config import settings
from ladderwatch.core.exceptions import DigestSendDisabledError, serialize_error
from ladderwatch.core.logging import get_logger

logger = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ladderwatch", description="Run Ladderwatch jobs.")
    sub = parser.add_subparsers(dest="command", required=True)

    poll = sub.add_parser("poll", help="Poll every active tracked character")
    poll.add_argument("--snapshot-date", help="UTC snapshot date (YYYY-MM-DD)")

    digest = sub.add_parser("digest", help="Preview (default) or send the daily digest")
    digest.add_argument("--send", action="store_true", help="Send to Telegram instead of previewing")
    digest.add_argument("--snapshot-date", help="UTC snapshot date (YYYY-MM-DD)")

    sub.add_parser("rebuild", help="Re-score the latest snapshot date without re-fetching")

    daily = sub.add_parser("daily", help="Poll, then send the digest")
    daily.add_argument(
        "--dry-run", "--dryRun", dest="dry_run", action="store_true",
        help="Preview the digest instead of sending (the poll still writes)",
    )

    release = sub.add_parser(
        "release-delivery", help="Move a digest delivery stuck in PENDING to FAILED"
    )
    release.add_argument("--delivery-date", required=True, help="Slot date (YYYY-MM-DD)")
    return parser


async def _run(args: argparse.Namespace) -> dict:
    from ladderwatch.analyzer.pipeline import run_poll
    from ladderwatch.analyzer.rebuild import run_rebuild
    from ladderwatch.core.dates import parse_snapshot_date
    from ladderwatch.database import init_db, open_session
    from ladderwatch.digest.delivery import release_pending_delivery
    from ladderwatch.digest.service import run_digest
    from ladderwatch.scheduler.daily import run_daily

    init_db()
    with open_session() as session:
        if args.command == "poll":
            result = await run_poll(session, snapshot_date=args.snapshot_date)
            return {"ok": True, "poll": result.model_dump(mode="json")}

        if args.command == "digest":
            result = await run_digest(
                session,
                mode="send" if args.send else "preview",
                snapshot_date=args.snapshot_date,
            )
            return {"ok": True, "digest": result.model_dump(mode="json")}

        if args.command == "rebuild":
            result = await run_rebuild(session)
            return {"ok": True, "rebuild": result.model_dump(mode="json")}

        if args.command == "daily":
            result = await run_daily(session, dry_run=args.dry_run)
            return result.model_dump(mode="json")

        if args.command == "release-delivery":
            if not settings.telegram_chat_id:
                raise DigestSendDisabledError("TELEGRAM_CHAT_ID is not configured.")
            row = release_pending_delivery(
                session, settings.telegram_chat_id, parse_snapshot_date(args.delivery_date)
            )
            return {
                "ok": True,
                "delivery": {"id": row.id, "delivery_date": row.delivery_date, "status": row.status},
            }

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        body = asyncio.run(_run(args))
    except Exception as e:
        logger.error(f"❌ {args.command} failed: {e}")
        print(json.dumps({"ok": False, "error": serialize_error(e)}, indent=2, default=str))
        return 1

    print(json.dumps(body, indent=2, default=str))
    return 0 if body.get("ok", False) else 1


if __name__ == "__main__":
    sys.exit(main())
