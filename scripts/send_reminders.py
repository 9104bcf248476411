#!/usr/bin/env python
"""
Evaluation reminder job.

Emails every juror of the active round who still has pending evaluations.
Jurors reminded within the last 7 days are skipped unless TEST_MODE is on.

Usage:
    python scripts/send_reminders.py
"""
from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scripts._db_utils import job_session  # noqa: E402
from app.jury.modules.communications.reminders import send_evaluation_reminders  # noqa: E402


def main() -> int:
    with job_session() as (app, s):
        run = send_evaluation_reminders(s, app.config)
        summary = run.as_dict()
    print(f"Reminders: round={summary['round'] or '(none active)'} sent={summary['sent']} skipped={summary['skipped']} errors={summary['errors']}")
    for err in run.errors:
        print(f"  - {err}")
    return 1 if run.errors else 0


if __name__ == "__main__":
    sys.exit(main())
