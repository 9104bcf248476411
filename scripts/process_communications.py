#!/usr/bin/env python
"""
Send queued workflow communications whose scheduled time has passed.

Usage:
    python scripts/process_communications.py [--limit 10]
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scripts._db_utils import job_session  # noqa: E402
from app.jury.modules.lifecycle.workflow import DEFAULT_PROCESS_LIMIT, process_pending_communications  # noqa: E402


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--limit", type=int, default=DEFAULT_PROCESS_LIMIT, help="Max attempts to send this run")
    args = parser.parse_args(argv)

    with job_session() as (_app, s):
        counts = process_pending_communications(s, limit=args.limit)
    print(f"Processed {counts['processed']} attempt(s): sent={counts.get('sent', 0)} failed={counts.get('failed', 0)}")
    return 1 if counts.get("failed") else 0


if __name__ == "__main__":
    sys.exit(main())
