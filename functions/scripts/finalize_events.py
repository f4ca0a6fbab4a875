"""
Close auctions whose bidding window has ended and create meets for the winners.

Runs once by default; pass --watch to keep polling.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fanmeet.config import get_settings
from fanmeet.dependencies import get_db_client
from fanmeet.lifecycle import finalize_events

logger = logging.getLogger(__name__)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Finalize ended auctions")
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Keep running and finalize on an interval",
    )
    parser.add_argument(
        "--interval-seconds",
        type=int,
        default=60,
        help="Seconds between runs in watch mode",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    settings = get_settings()
    if not settings.database_configured:
        logger.error("Missing database configuration (set DATABASE_URL)")
        return 1

    db = get_db_client()
    while True:
        try:
            summary = finalize_events(db)
            logger.info(
                "Checked %d events, finalized %d, created %d meets",
                summary.checked,
                summary.finalized,
                summary.meets_created,
            )
        except Exception as exc:
            logger.exception("Finalize run failed: %s", exc)
            if not args.watch:
                return 1

        if not args.watch:
            return 0

        logger.info("Sleeping for %ds", args.interval_seconds)
        time.sleep(args.interval_seconds)


if __name__ == "__main__":
    raise SystemExit(main())
