#!/usr/bin/env python3
"""
Run one inbox sync pass for a mailbox from the command line (no Celery, no HTTP).

Usage (from backend/; use the project venv):
  ./.venv/bin/python scripts/run_sync.py --mailbox-id alice@example.com

  # Only look at emails after a date
  ./.venv/bin/python scripts/run_sync.py --mailbox-id alice@example.com --after 2025-01-01

  # Every mailbox with stored tokens
  ./.venv/bin/python scripts/run_sync.py --all
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from datetime import datetime

# Ensure backend packages are importable when run as script from backend or project root
_script_dir = os.path.dirname(os.path.abspath(__file__))
_backend = os.path.dirname(_script_dir)
if _backend not in sys.path:
    sys.path.insert(0, _backend)

from tracker.config import settings
from tracker.database import SessionLocal, init_db
from tracker.errors import SyncError
from tracker.models import MailboxToken
from tracker.services.sync_runner import run_sync_and_record


def _parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    s = value.strip().replace("/", "-")
    if not s:
        return None
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo:
        dt = dt.replace(tzinfo=None)
    return dt


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Sync job emails from Gmail into tracked applications.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--mailbox-id", type=str, default=None, help="Mailbox to sync")
    parser.add_argument("--all", action="store_true", help="Sync every mailbox with stored Gmail tokens")
    parser.add_argument("--after", type=str, default=None, help="Only emails after YYYY-MM-DD")
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    after_date = _parse_dt(args.after)
    if args.after and after_date is None:
        print(f"ERROR: could not parse --after {args.after!r}", file=sys.stderr)
        return 2

    init_db()
    db = SessionLocal()
    try:
        if args.all:
            mailbox_ids = [row[0] for row in db.query(MailboxToken.mailbox_id).all()]
        elif args.mailbox_id:
            mailbox_ids = [args.mailbox_id.strip()]
        else:
            print("ERROR: --mailbox-id (or --all) is required", file=sys.stderr)
            return 2

        def on_progress(processed: int, total: int, message: str):
            print(f"[{processed}/{total}] {message}", flush=True)

        exit_code = 0
        for mailbox_id in mailbox_ids:
            try:
                summary = run_sync_and_record(db, mailbox_id, on_progress=on_progress, after_date=after_date)
            except SyncError as e:
                print(f"{mailbox_id}: {e.kind}: {e}", file=sys.stderr)
                exit_code = 1
                continue
            print(f"{mailbox_id}: {summary.digest()}")
            if summary.errors:
                exit_code = 1
        return exit_code
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
