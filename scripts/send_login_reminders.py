#!/usr/bin/env python
"""
Registration reminder job.

Emails jurors who were invited at least 3 days ago, have not signed up yet and
still hold an unexpired invitation. Each juror gets at most one reminder every 2 days.

Usage:
    python scripts/send_login_reminders.py
"""
from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scripts._db_utils import job_session  # noqa: E402
from app.jury.modules.communications.reminders import send_login_reminders  # noqa: E402


def main() -> int:
    with job_session() as (app, s):
        run = send_login_reminders(s, app.config)
        summary = run.as_dict()
    print(f"Login reminders: sent={summary['sent']} skipped={summary['skipped']} errors={summary['errors']}")
    for err in run.errors:
        print(f"  - {err}")
    return 1 if run.errors else 0


if __name__ == "__main__":
    sys.exit(main())
