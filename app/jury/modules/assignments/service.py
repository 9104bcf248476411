from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.jury.audit import record_event
from app.jury.constants import ROUND_LABELS, ROUND_ORDER

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.jury.models import User
    from app.jury.modules.assignments.matchmaking import AutoAssignmentPlan
    from app.jury.modules.assignments.models import Assignment, PitchRequest
    from app.jury.modules.jurors.models import Juror
    from app.jury.modules.startups.models import Startup

logger = logging.getLogger(__name__)

PITCH_STATUSES = ("pending", "scheduled", "completed")


def _require_open_round(s: "Session", round_name: str) -> None:
    from app.jury.modules.cohort.service import can_modify_round

    if round_name not in ROUND_ORDER:
        raise ValueError(f"Unknown round: {round_name}")
    if not can_modify_round(s, round_name):
        raise ValueError(f"The {ROUND_LABELS[round_name]} round is not active; assignments are locked.")


def find_assignment(s: "Session", juror_id: int, startup_id: int, round_name: str) -> "Assignment | None":
    from app.jury.modules.assignments.models import Assignment

    return (
        s.query(Assignment)
        .filter(
            Assignment.juror_id == juror_id,
            Assignment.startup_id == startup_id,
            Assignment.round_name == round_name,
        )
        .one_or_none()
    )


def round_assignments(s: "Session", round_name: str) -> list["Assignment"]:
    from app.jury.modules.assignments.models import Assignment

    return s.query(Assignment).filter(Assignment.round_name == round_name).order_by(Assignment.id.asc()).all()


def juror_assignments(s: "Session", juror_id: int, round_name: str) -> list["Assignment"]:
    from app.jury.modules.assignments.models import Assignment

    return (
        s.query(Assignment)
        .filter(Assignment.juror_id == juror_id, Assignment.round_name == round_name)
        .order_by(Assignment.id.asc())
        .all()
    )


def assign_juror(
    s: "Session",
    juror: "Juror",
    startup: "Startup",
    round_name: str,
    user: "User | None",
    *,
    source: str = "manual",
) -> "Assignment":
    from app.jury.modules.assignments.models import Assignment

    _require_open_round(s, round_name)
    if find_assignment(s, juror.id, startup.id, round_name):
        raise ValueError(f"{juror.name} is already assigned to {startup.name}.")
    a = Assignment(
        juror_id=juror.id,
        startup_id=startup.id,
        round_name=round_name,
        status="assigned",
        source=source,
        created_at=datetime.utcnow(),
        created_by_user_id=user.id if user else None,
    )
    s.add(a)
    s.flush()
    record_event(
        s,
        actor=user,
        action="assignment.create",
        entity_type="Assignment",
        entity_id=str(a.id),
        metadata={"juror_id": juror.id, "startup_id": startup.id, "round": round_name, "source": source},
    )
    return a


def unassign_juror(s: "Session", assignment: "Assignment", user: "User") -> None:
    """Remove an assignment. Draft evaluations go with it; submitted ones block the removal."""
    from app.jury.modules.evaluations.models import Evaluation

    _require_open_round(s, assignment.round_name)
    ev = (
        s.query(Evaluation)
        .filter(
            Evaluation.juror_id == assignment.juror_id,
            Evaluation.startup_id == assignment.startup_id,
            Evaluation.round_name == assignment.round_name,
        )
        .one_or_none()
    )
    if ev is not None and ev.status == "submitted":
        raise ValueError("This juror already submitted an evaluation for the startup; it cannot be unassigned.")
    if ev is not None:
        s.delete(ev)
    record_event(
        s,
        actor=user,
        action="assignment.delete",
        entity_type="Assignment",
        entity_id=str(assignment.id),
        metadata={"juror_id": assignment.juror_id, "startup_id": assignment.startup_id, "round": assignment.round_name},
    )
    s.delete(assignment)


def apply_auto_assignments(s: "Session", plan: "AutoAssignmentPlan", user: "User | None") -> int:
    """Persist a proposal plan, then notify each juror that received new startups."""
    from app.jury.modules.jurors.models import Juror
    from app.jury.modules.lifecycle.workflow import trigger_workflow_event
    from app.jury.modules.startups.models import Startup

    _require_open_round(s, plan.round_name)
    new_per_juror: dict[int, int] = defaultdict(int)
    created = 0
    for proposal in plan.proposals:
        startup = s.get(Startup, proposal.startup_id)
        if startup is None:
            continue
        for pj in proposal.proposed_jurors:
            juror = s.get(Juror, pj.juror_id)
            if juror is None or find_assignment(s, juror.id, startup.id, plan.round_name):
                continue
            assign_juror(s, juror, startup, plan.round_name, user, source="auto")
            new_per_juror[juror.id] += 1
            created += 1

    for juror_id, count in sorted(new_per_juror.items()):
        juror = s.get(Juror, juror_id)
        trigger_workflow_event(
            s,
            "juror",
            juror_id,
            "assignments_created",
            {
                "juror_name": juror.name if juror else "",
                "assignment_count": count,
                "round_name": ROUND_LABELS[plan.round_name],
            },
            actor=user,
        )
    logger.info("Applied auto-assignment for %s: %d assignment(s)", plan.round_name, created)
    return created


# ---------- Pitch requests ----------
def parse_datetime(value: str | None) -> datetime | None:
    """Accepts YYYY-MM-DD, YYYY-MM-DDTHH:MM (datetime-local) or full ISO."""
    if not value or not value.strip():
        return None
    return datetime.fromisoformat(value.strip())


def validate_pitch_payload(payload: dict) -> list[str]:
    errors = []
    status = (payload.get("status") or "").strip()
    if status and status not in PITCH_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(PITCH_STATUSES)}")
    try:
        when = parse_datetime(payload.get("meeting_scheduled_date"))
    except ValueError:
        errors.append("Meeting date must be a valid date/time.")
        when = None
    if status == "scheduled" and when is None:
        errors.append("A scheduled pitch needs a meeting date.")
    return errors


def create_pitch_request(s: "Session", juror: "Juror", startup: "Startup", user: "User | None", notes: str | None = None) -> "PitchRequest":
    from app.jury.modules.assignments.models import PitchRequest
    from app.jury.modules.lifecycle.workflow import trigger_workflow_event

    existing = (
        s.query(PitchRequest)
        .filter(PitchRequest.juror_id == juror.id, PitchRequest.startup_id == startup.id)
        .one_or_none()
    )
    if existing:
        raise ValueError(f"{juror.name} already has a pitch call with {startup.name}.")
    if juror.meeting_limit is not None:
        count = int(s.query(func.count(PitchRequest.id)).filter(PitchRequest.juror_id == juror.id).scalar() or 0)
        if count >= juror.meeting_limit:
            raise ValueError(f"{juror.name} has reached their meeting limit ({juror.meeting_limit}).")

    now = datetime.utcnow()
    pr = PitchRequest(
        juror_id=juror.id,
        startup_id=startup.id,
        status="pending",
        notes=(notes or "").strip() or None,
        created_at=now,
        updated_at=now,
    )
    s.add(pr)
    s.flush()
    record_event(
        s,
        actor=user,
        action="pitch_request.create",
        entity_type="PitchRequest",
        entity_id=str(pr.id),
        metadata={"juror_id": juror.id, "startup_id": startup.id},
    )
    trigger_workflow_event(
        s,
        "juror",
        juror.id,
        "pitch_selected",
        {"juror_name": juror.name, "startup_name": startup.name, "calendly_link": juror.calendly_link or ""},
        actor=user,
    )
    return pr


def update_pitch_request(s: "Session", pr: "PitchRequest", payload: dict, user: "User") -> "PitchRequest":
    changes = {}
    status = (payload.get("status") or "").strip()
    if status and status != pr.status:
        changes["status"] = {"old": pr.status, "new": status}
        pr.status = status
    if "meeting_scheduled_date" in payload:
        when = parse_datetime(payload.get("meeting_scheduled_date"))
        if when != pr.meeting_scheduled_date:
            changes["meeting_scheduled_date"] = {"old": str(pr.meeting_scheduled_date), "new": str(when)}
            pr.meeting_scheduled_date = when
    if "notes" in payload:
        notes = (payload.get("notes") or "").strip() or None
        if notes != pr.notes:
            changes["notes"] = {"old": pr.notes, "new": notes}
            pr.notes = notes
    pr.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="pitch_request.edit",
        entity_type="PitchRequest",
        entity_id=str(pr.id),
        metadata={"changes": changes},
    )
    return pr
