from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.jury.audit import record_event
from app.jury.constants import ROUND_LABELS, ROUND_ORDER, ROUND_PITCHING, ROUND_SCREENING
from app.jury.modules.cohort.models import CohortSettings, Round

if TYPE_CHECKING:
    from app.jury.models import User

logger = logging.getLogger(__name__)

# Screening can only close once this share of assignments has a submitted evaluation.
SCREENING_COMPLETION_THRESHOLD = 0.8
ENDING_SOON_DAYS = 3


class RoundCompletionError(RuntimeError):
    pass


@dataclass(frozen=True)
class DeadlineInfo:
    deadline: date | None
    days_remaining: int | None
    is_ending_soon: bool
    is_passed: bool


def parse_date(s: str | None) -> date | None:
    """Parse YYYY-MM-DD date string."""
    if not s:
        return None
    s = s.strip()
    if not s:
        return None
    return date.fromisoformat(s)


# ---------- Cohort settings ----------
def get_settings(s: Session) -> CohortSettings:
    row = s.query(CohortSettings).order_by(CohortSettings.id.asc()).first()
    if row is None:
        now = datetime.utcnow()
        row = CohortSettings(cohort_name="Current Cohort", created_at=now, updated_at=now)
        s.add(row)
        s.flush()
    return row


def validate_settings_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("cohort_name") or "").strip():
        errors.append("Cohort name is required.")
    parsed: dict[str, date | None] = {}
    for key, label in (("screening_deadline", "Screening deadline"), ("pitching_deadline", "Pitching deadline")):
        try:
            parsed[key] = parse_date(payload.get(key))
        except ValueError:
            errors.append(f"{label} must be a date (YYYY-MM-DD).")
    sd, pd = parsed.get("screening_deadline"), parsed.get("pitching_deadline")
    if sd and pd and pd < sd:
        errors.append("Pitching deadline cannot be before the screening deadline.")
    return errors


def update_settings(s: Session, payload: dict, user: "User") -> CohortSettings:
    row = get_settings(s)
    changes = {}
    new_name = (payload.get("cohort_name") or "").strip()
    if new_name and new_name != row.cohort_name:
        changes["cohort_name"] = {"old": row.cohort_name, "new": new_name}
        row.cohort_name = new_name
    for key in ("screening_deadline", "pitching_deadline"):
        new_value = parse_date(payload.get(key))
        if new_value != getattr(row, key):
            changes[key] = {"old": str(getattr(row, key)), "new": str(new_value)}
            setattr(row, key, new_value)
    row.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="cohort.settings_edit",
        entity_type="CohortSettings",
        entity_id=str(row.id),
        metadata={"changes": changes},
    )
    return row


def deadline_info(deadline: date | None, today: date | None = None) -> DeadlineInfo:
    if deadline is None:
        return DeadlineInfo(deadline=None, days_remaining=None, is_ending_soon=False, is_passed=False)
    today = today or date.today()
    days = (deadline - today).days
    return DeadlineInfo(
        deadline=deadline,
        days_remaining=days,
        is_ending_soon=0 <= days <= ENDING_SOON_DAYS,
        is_passed=days < 0,
    )


def cohort_deadlines(s: Session, today: date | None = None) -> dict[str, DeadlineInfo]:
    row = get_settings(s)
    return {
        ROUND_SCREENING: deadline_info(row.screening_deadline, today),
        ROUND_PITCHING: deadline_info(row.pitching_deadline, today),
    }


# ---------- Rounds ----------
def ensure_rounds(s: Session) -> list[Round]:
    """Create the screening (active) and pitching (pending) rounds if missing."""
    existing = {r.name: r for r in s.query(Round).all()}
    now = datetime.utcnow()
    for name in ROUND_ORDER:
        if name in existing:
            continue
        is_first = name == ROUND_ORDER[0]
        r = Round(
            name=name,
            status="active" if is_first else "pending",
            started_at=now if is_first else None,
            created_at=now,
            updated_at=now,
        )
        s.add(r)
        existing[name] = r
    s.flush()
    return [existing[n] for n in ROUND_ORDER]


def reset_rounds(s: Session) -> list[Round]:
    rounds = ensure_rounds(s)
    now = datetime.utcnow()
    for r in rounds:
        is_first = r.name == ROUND_ORDER[0]
        r.status = "active" if is_first else "pending"
        r.started_at = now if is_first else None
        r.completed_at = None
        r.updated_at = now
    return rounds


def get_round(s: Session, name: str) -> Round | None:
    return s.query(Round).filter(Round.name == name).one_or_none()


def get_active_round(s: Session) -> Round | None:
    return s.query(Round).filter(Round.status == "active").order_by(Round.id.asc()).first()


def can_modify_round(s: Session, name: str) -> bool:
    r = get_round(s, name)
    return bool(r and r.status == "active")


def _count_assignments(s: Session, round_name: str) -> int:
    from app.jury.modules.assignments.models import Assignment

    return int(s.query(func.count(Assignment.id)).filter(Assignment.round_name == round_name).scalar() or 0)


def _count_submitted(s: Session, round_name: str) -> int:
    from app.jury.modules.evaluations.models import Evaluation

    return int(
        s.query(func.count(Evaluation.id))
        .filter(Evaluation.round_name == round_name, Evaluation.status == "submitted")
        .scalar()
        or 0
    )


def _shortlisted_startups(s: Session):
    from app.jury.modules.startups.models import Startup

    return s.query(Startup).filter(Startup.status == "shortlisted").order_by(Startup.id.asc()).all()


def validate_round_completion(s: Session, name: str) -> tuple[bool, str | None]:
    """Returns (can_complete, reason)."""
    if name == ROUND_SCREENING:
        if not _shortlisted_startups(s):
            return False, "No startups selected for pitching round"
        total = _count_assignments(s, name)
        submitted = _count_submitted(s, name)
        if total and submitted / total < SCREENING_COMPLETION_THRESHOLD:
            return False, "Not enough evaluations completed (need 80% completion)"
        return True, None
    if name == ROUND_PITCHING:
        return True, None
    return False, f"Unknown round: {name}"


def notify_jurors_of_round_transition(s: Session, from_round: str, to_round: str, user: "User | None") -> int:
    """Email every juror with assignments in from_round that it has closed. Returns how many were sent."""
    from app.jury.modules.assignments.models import Assignment
    from app.jury.modules.communications.defaults import CATEGORY_JUROR_PHASE_TRANSITION
    from app.jury.modules.communications.service import send_email
    from app.jury.modules.evaluations.models import Evaluation
    from app.jury.modules.jurors.models import Juror

    juror_ids = select(Assignment.juror_id).where(Assignment.round_name == from_round)
    jurors = s.query(Juror).filter(Juror.id.in_(juror_ids)).order_by(Juror.id.asc()).all()
    submitted = dict(
        s.query(Evaluation.juror_id, func.count(Evaluation.id))
        .filter(Evaluation.round_name == from_round, Evaluation.status == "submitted")
        .group_by(Evaluation.juror_id)
        .all()
    )
    config = current_app.config
    login_link = (config.get("FRONTEND_URL") or "").rstrip("/") + "/auth/login"

    sent = 0
    for juror in jurors:
        result = send_email(
            s,
            recipient_email=juror.email,
            recipient_type="juror",
            recipient_id=juror.id,
            template_category=CATEGORY_JUROR_PHASE_TRANSITION,
            variables={
                "juror_name": juror.name,
                "from_round": ROUND_LABELS.get(from_round, from_round),
                "to_round": ROUND_LABELS.get(to_round, to_round),
                "evaluation_count": submitted.get(juror.id, 0),
                "login_link": login_link,
            },
            actor=user,
            config=config,
        )
        if result.sent:
            sent += 1
        elif not result.ok:
            logger.warning("Round transition email to juror id=%s failed: %s", juror.id, result.error)
    logger.info("Round transition %s -> %s: notified %s of %s juror(s)", from_round, to_round, sent, len(jurors))
    return sent


def complete_round(s: Session, name: str, user: "User | None") -> Round:
    ok, reason = validate_round_completion(s, name)
    if not ok:
        raise RoundCompletionError(reason or "Round cannot be completed")
    r = get_round(s, name)
    if r is None:
        raise RoundCompletionError(f"Round not found: {name}")
    if r.status == "completed":
        raise RoundCompletionError(f"{ROUND_LABELS.get(name, name)} round is already completed")

    now = datetime.utcnow()
    r.status = "completed"
    r.completed_at = now
    r.updated_at = now

    idx = ROUND_ORDER.index(name)
    next_name = ROUND_ORDER[idx + 1] if idx + 1 < len(ROUND_ORDER) else None
    if next_name:
        nxt = get_round(s, next_name)
        if nxt is not None and nxt.status == "pending":
            nxt.status = "active"
            nxt.started_at = now
            nxt.updated_at = now

    record_event(
        s,
        actor=user,
        action="round.complete",
        entity_type="Round",
        entity_id=name,
        metadata={"next_round": next_name},
    )

    if name == ROUND_SCREENING:
        from app.jury.modules.lifecycle.orchestrator import handle_lifecycle_event

        for startup in _shortlisted_startups(s):
            handle_lifecycle_event(
                s,
                "startup",
                startup.id,
                "screening_results_ready",
                {"startup_name": startup.name, "round_name": ROUND_LABELS[ROUND_SCREENING]},
                actor=user,
            )
        if next_name:
            notify_jurors_of_round_transition(s, name, next_name, user)
    logger.info("Round %s completed; next=%s", name, next_name)
    return r


def get_round_progress(s: Session, name: str) -> dict[str, int | float]:
    total = _count_assignments(s, name)
    completed = _count_submitted(s, name)
    progress: dict[str, int | float] = {
        "assignments_total": total,
        "evaluations_completed": completed,
        "completion_rate": round(completed / total * 100, 1) if total else 0.0,
    }
    if name == ROUND_SCREENING:
        progress["startups_selected"] = len(_shortlisted_startups(s))
    elif name == ROUND_PITCHING:
        from app.jury.modules.assignments.models import PitchRequest

        progress["pitches_completed"] = int(
            s.query(func.count(PitchRequest.id)).filter(PitchRequest.status == "completed").scalar() or 0
        )
    return progress
