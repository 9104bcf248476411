"""
Per-juror progress for a round, shown on the jurors list and used by reminders.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.jury.modules.assignments.models import Assignment
from app.jury.modules.evaluations.models import Evaluation
from app.jury.modules.jurors.models import Juror

STATUS_INACTIVE = "inactive"
STATUS_NOT_STARTED = "not_started"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"


@dataclass(frozen=True)
class JurorProgress:
    juror_id: int
    juror_name: str
    assigned: int
    completed: int
    in_progress: int

    @property
    def not_started(self) -> int:
        return max(self.assigned - self.completed - self.in_progress, 0)

    @property
    def completion_rate(self) -> int:
        if not self.assigned:
            return 0
        return round(self.completed / self.assigned * 100)


def status_for(juror: Juror, progress: JurorProgress) -> str:
    """Jurors without an account or without assignments are inactive."""
    if juror.user_id is None or progress.assigned == 0:
        return STATUS_INACTIVE
    if progress.completed == progress.assigned:
        return STATUS_COMPLETED
    if progress.completed or progress.in_progress:
        return STATUS_IN_PROGRESS
    return STATUS_NOT_STARTED


def round_progress(s: Session, round_name: str, jurors: list[Juror] | None = None) -> list[tuple[Juror, JurorProgress, str]]:
    jurors = jurors if jurors is not None else s.query(Juror).order_by(Juror.name.asc()).all()
    assignments = s.query(Assignment).filter(Assignment.round_name == round_name).all()
    assigned_pairs = {(a.juror_id, a.startup_id) for a in assignments}
    assigned = Counter(a.juror_id for a in assignments)

    completed: Counter = Counter()
    drafts: Counter = Counter()
    for ev in s.query(Evaluation).filter(Evaluation.round_name == round_name).all():
        # Evaluations whose assignment was removed do not count.
        if (ev.juror_id, ev.startup_id) not in assigned_pairs:
            continue
        if ev.status == "submitted":
            completed[ev.juror_id] += 1
        else:
            drafts[ev.juror_id] += 1

    out = []
    for j in jurors:
        p = JurorProgress(
            juror_id=j.id,
            juror_name=j.name,
            assigned=assigned.get(j.id, 0),
            completed=completed.get(j.id, 0),
            in_progress=drafts.get(j.id, 0),
        )
        out.append((j, p, status_for(j, p)))
    return out


def juror_progress(s: Session, juror: Juror, round_name: str) -> tuple[JurorProgress, str]:
    _, progress, status = round_progress(s, round_name, [juror])[0]
    return progress, status


def status_summary(rows: list[tuple[Juror, JurorProgress, str]]) -> dict[str, int]:
    counts = Counter(status for _, _, status in rows)
    return {
        STATUS_COMPLETED: counts.get(STATUS_COMPLETED, 0),
        STATUS_IN_PROGRESS: counts.get(STATUS_IN_PROGRESS, 0),
        STATUS_NOT_STARTED: counts.get(STATUS_NOT_STARTED, 0),
        STATUS_INACTIVE: counts.get(STATUS_INACTIVE, 0),
        "total": len(rows),
    }
