"""
Screening funnel shown on the admin dashboard: upload, matchmaking, evaluations,
selection and communication, each with a completion percentage.
"""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.jury.constants import JURORS_PER_STARTUP, ROUND_SCREENING


@dataclass(frozen=True)
class FunnelStep:
    key: str
    label: str
    done: int
    total: int
    percentage: int
    status: str  # completed, in-progress, pending


def _step(key: str, label: str, done: int, total: int) -> FunnelStep:
    pct = int(round(done / total * 100)) if total else 0
    pct = min(pct, 100)
    if pct >= 100:
        status = "completed"
    elif pct > 0:
        status = "in-progress"
    else:
        status = "pending"
    return FunnelStep(key=key, label=label, done=done, total=total, percentage=pct, status=status)


def screening_funnel(s: Session) -> list[FunnelStep]:
    from app.jury.modules.assignments.models import Assignment
    from app.jury.modules.communications.models import EmailCommunication
    from app.jury.modules.evaluations.models import Evaluation
    from app.jury.modules.startups.models import Startup

    startups = int(s.query(func.count(Startup.id)).scalar() or 0)

    per_startup = (
        s.query(Assignment.startup_id, func.count(Assignment.id))
        .filter(Assignment.round_name == ROUND_SCREENING)
        .group_by(Assignment.startup_id)
        .all()
    )
    fully_matched = sum(1 for _sid, n in per_startup if n >= JURORS_PER_STARTUP)
    assignments = sum(int(n) for _sid, n in per_startup)

    submitted = int(
        s.query(func.count(Evaluation.id))
        .filter(Evaluation.round_name == ROUND_SCREENING, Evaluation.status == "submitted")
        .scalar()
        or 0
    )

    decided = int(
        s.query(func.count(Startup.id)).filter(Startup.status.in_(("shortlisted", "rejected"))).scalar() or 0
    )

    emailed = int(
        s.query(func.count(func.distinct(EmailCommunication.recipient_id)))
        .filter(
            EmailCommunication.recipient_type == "startup",
            EmailCommunication.communication_type.in_(("selection", "rejection")),
            EmailCommunication.status != "failed",
        )
        .scalar()
        or 0
    )

    return [
        _step("upload", "Startups uploaded", startups, startups),
        _step("matchmaking", "Matchmaking", fully_matched, startups),
        _step("evaluations", "Evaluations", submitted, assignments),
        _step("selection", "Selection", decided, startups),
        _step("communication", "Communication", emailed, startups),
    ]
