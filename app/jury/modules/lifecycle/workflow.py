"""
Workflow orchestrator: moves a participant's workflow to the stage mapped from an event and,
for stages that notify, queues a CommunicationAttempt driven by the matching WorkflowTrigger.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from app.jury.audit import record_event
from app.jury.modules.communications.service import send_email
from app.jury.modules.lifecycle.models import CommunicationAttempt, ParticipantWorkflow, WorkflowTrigger
from app.jury.modules.lifecycle.orchestrator import participant_contact

if TYPE_CHECKING:
    from app.jury.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageMapping:
    next_stage: str
    should_trigger_email: bool
    delay_hours: int = 0


WORKFLOW_EVENTS: dict[str, StageMapping] = {
    "juror_created": StageMapping("juror_onboarding", True),
    "juror_signup_completed": StageMapping("assignment_notification", False),
    "assignments_created": StageMapping("assignment_notification", True),
    "evaluation_overdue": StageMapping("evaluation_reminders", True),
    "screening_completed": StageMapping("screening_results", False),
    "pitch_selected": StageMapping("pitching_assignment", True),
    "pitch_not_scheduled": StageMapping("pitch_reminders", True),
    "final_selection_complete": StageMapping("final_results", False),
}

WORKFLOW_STAGES = sorted({m.next_stage for m in WORKFLOW_EVENTS.values()})

DEFAULT_PROCESS_LIMIT = 10


def get_or_create_workflow(s: Session, participant_type: str, participant_id: int) -> ParticipantWorkflow:
    wf = (
        s.query(ParticipantWorkflow)
        .filter(
            ParticipantWorkflow.participant_type == participant_type,
            ParticipantWorkflow.participant_id == participant_id,
        )
        .one_or_none()
    )
    if wf is None:
        now = datetime.utcnow()
        wf = ParticipantWorkflow(
            participant_type=participant_type,
            participant_id=participant_id,
            current_stage="juror_onboarding",
            stage_status="pending",
            stage_data={},
            created_at=now,
            updated_at=now,
        )
        s.add(wf)
        s.flush()
    return wf


def active_trigger(s: Session, stage: str, participant_type: str) -> WorkflowTrigger | None:
    return (
        s.query(WorkflowTrigger)
        .filter(
            WorkflowTrigger.stage == stage,
            WorkflowTrigger.participant_type == participant_type,
            WorkflowTrigger.is_active.is_(True),
        )
        .order_by(WorkflowTrigger.id.asc())
        .first()
    )


def trigger_workflow_event(
    s: Session,
    participant_type: str,
    participant_id: int,
    event_type: str,
    event_data: dict[str, Any] | None = None,
    *,
    actor: "User | None" = None,
    now: datetime | None = None,
) -> ParticipantWorkflow:
    mapping = WORKFLOW_EVENTS.get(event_type)
    if mapping is None:
        raise ValueError(f"Unknown workflow event: {event_type}")
    now = now or datetime.utcnow()

    wf = get_or_create_workflow(s, participant_type, participant_id)
    previous = wf.current_stage
    wf.current_stage = mapping.next_stage
    wf.stage_status = "pending"
    wf.stage_data = {**(wf.stage_data or {}), **(event_data or {})}
    wf.next_action_due = now + timedelta(hours=mapping.delay_hours)
    wf.updated_at = now

    record_event(
        s,
        actor=actor,
        action="workflow.event",
        entity_type=participant_type.capitalize(),
        entity_id=str(participant_id),
        metadata={"event": event_type, "from": previous, "to": mapping.next_stage},
    )

    if mapping.should_trigger_email:
        attempt = queue_communication(s, wf, event_type, now=now)
        if attempt is not None and attempt.scheduled_at <= now:
            send_attempt(s, attempt, actor=actor)
    return wf


def queue_communication(
    s: Session, wf: ParticipantWorkflow, event_type: str, *, now: datetime | None = None
) -> CommunicationAttempt | None:
    trigger = active_trigger(s, wf.current_stage, wf.participant_type)
    if trigger is None:
        logger.info("No active trigger for stage=%s type=%s", wf.current_stage, wf.participant_type)
        return None
    now = now or datetime.utcnow()
    attempt = CommunicationAttempt(
        workflow_id=wf.id,
        participant_type=wf.participant_type,
        participant_id=wf.participant_id,
        trigger_event=event_type,
        template_category=trigger.email_template_category,
        variables=dict(wf.stage_data or {}),
        status="pending",
        scheduled_at=now + timedelta(hours=trigger.delay_hours or 0),
        created_at=now,
    )
    s.add(attempt)
    s.flush()
    return attempt


def send_attempt(s: Session, attempt: CommunicationAttempt, *, actor: "User | None" = None) -> CommunicationAttempt:
    attempt.attempted_at = datetime.utcnow()
    name, email = participant_contact(s, attempt.participant_type, attempt.participant_id)
    if not email:
        attempt.status = "failed"
        attempt.error_message = "Participant not found or has no email"
        return attempt

    variables = {"participant_name": name or "", "participant_email": email, **(attempt.variables or {})}
    if attempt.participant_type == "juror":
        variables.setdefault("juror_name", name or "")
    else:
        variables.setdefault("startup_name", name or "")

    result = send_email(
        s,
        recipient_email=email,
        recipient_type=attempt.participant_type,
        recipient_id=attempt.participant_id,
        template_category=attempt.template_category,
        variables=variables,
        actor=actor,
    )
    if result.sent or result.duplicate_of:
        attempt.status = "sent"
        attempt.communication_id = result.communication.id if result.communication else None
        attempt.error_message = None
    else:
        attempt.status = "failed"
        attempt.communication_id = result.communication.id if result.communication else None
        attempt.error_message = result.error
    return attempt


def process_pending_communications(
    s: Session, *, limit: int = DEFAULT_PROCESS_LIMIT, now: datetime | None = None
) -> dict[str, int]:
    """Send due pending attempts. Returns counts processed/sent/failed."""
    now = now or datetime.utcnow()
    due = (
        s.query(CommunicationAttempt)
        .filter(CommunicationAttempt.status == "pending", CommunicationAttempt.scheduled_at <= now)
        .order_by(CommunicationAttempt.scheduled_at.asc(), CommunicationAttempt.id.asc())
        .limit(limit)
        .all()
    )
    counts = {"processed": 0, "sent": 0, "failed": 0}
    for attempt in due:
        send_attempt(s, attempt)
        counts["processed"] += 1
        counts[attempt.status] = counts.get(attempt.status, 0) + 1
    if due:
        logger.info("Processed %d pending communication attempt(s): %s", len(due), counts)
    return counts


# ---------- Trigger configuration ----------
def validate_trigger_payload(payload: dict) -> list[str]:
    errors = []
    stage = (payload.get("stage") or "").strip()
    if stage not in WORKFLOW_STAGES:
        errors.append(f"Stage must be one of: {', '.join(WORKFLOW_STAGES)}")
    if (payload.get("participant_type") or "").strip() not in ("startup", "juror"):
        errors.append("Participant type must be startup or juror.")
    if not (payload.get("email_template_category") or "").strip():
        errors.append("Template category is required.")
    delay = str(payload.get("delay_hours") or "0").strip()
    if not delay.isdigit():
        errors.append("Delay must be a whole number of hours.")
    return errors


def save_trigger(s: Session, payload: dict, user: "User", trigger: WorkflowTrigger | None = None) -> WorkflowTrigger:
    is_new = trigger is None
    if trigger is None:
        trigger = WorkflowTrigger(created_at=datetime.utcnow())
        s.add(trigger)
    trigger.stage = (payload.get("stage") or "").strip()
    trigger.participant_type = (payload.get("participant_type") or "").strip()
    trigger.email_template_category = (payload.get("email_template_category") or "").strip()
    trigger.delay_hours = int(str(payload.get("delay_hours") or "0").strip())
    trigger.is_active = bool(payload.get("is_active"))
    s.flush()
    record_event(
        s,
        actor=user,
        action="workflow_trigger.create" if is_new else "workflow_trigger.edit",
        entity_type="WorkflowTrigger",
        entity_id=str(trigger.id),
        metadata={
            "stage": trigger.stage,
            "participant_type": trigger.participant_type,
            "category": trigger.email_template_category,
            "delay_hours": trigger.delay_hours,
            "is_active": trigger.is_active,
        },
    )
    return trigger
