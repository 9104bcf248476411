"""
Lifecycle orchestrator.

A participant (startup or juror) sits in one lifecycle stage: screening, pitching or finals.
When an event happens, every active template for that stage listing the event in its
auto_trigger_events is sent to the participant, then the stage advances if the event is
one of the advancing events below.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from app.jury.audit import record_event
from app.jury.modules.communications.models import EmailTemplate
from app.jury.modules.communications.service import send_email
from app.jury.modules.lifecycle.models import LifecycleParticipant

if TYPE_CHECKING:
    from app.jury.models import User

logger = logging.getLogger(__name__)

LIFECYCLE_STAGES = ("screening", "pitching", "finals")
PARTICIPANT_TYPES = ("startup", "juror")

STAGE_TRANSITIONS: dict[str, dict[str, str]] = {
    "screening": {
        "screening_results_ready": "pitching",
        "startup_selected_for_pitching": "pitching",
    },
    "pitching": {
        "pitch_evaluations_complete": "finals",
        "final_results_ready": "finals",
    },
}

ADVANCING_EVENTS = frozenset(e for events in STAGE_TRANSITIONS.values() for e in events)


@dataclass
class LifecycleResult:
    participant_type: str
    participant_id: int
    event_type: str
    stage_before: str
    stage_after: str
    emails_sent: int = 0
    emails_skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def advanced(self) -> bool:
        return self.stage_before != self.stage_after


def next_stage(current_stage: str, event_type: str) -> str | None:
    return STAGE_TRANSITIONS.get(current_stage, {}).get(event_type)


def participant_contact(s: Session, participant_type: str, participant_id: int) -> tuple[str | None, str | None]:
    """Return (name, email). Startups are reached on contact_email, jurors on email."""
    if participant_type == "startup":
        from app.jury.modules.startups.models import Startup

        startup = s.get(Startup, participant_id)
        return (startup.name, startup.contact_email) if startup else (None, None)
    if participant_type == "juror":
        from app.jury.modules.jurors.models import Juror

        juror = s.get(Juror, participant_id)
        return (juror.name, juror.email) if juror else (None, None)
    raise ValueError(f"Unknown participant type: {participant_type}")


def get_or_create_participant(s: Session, participant_type: str, participant_id: int) -> LifecycleParticipant:
    if participant_type not in PARTICIPANT_TYPES:
        raise ValueError(f"Unknown participant type: {participant_type}")
    p = (
        s.query(LifecycleParticipant)
        .filter(
            LifecycleParticipant.participant_type == participant_type,
            LifecycleParticipant.participant_id == participant_id,
        )
        .one_or_none()
    )
    if p is None:
        now = datetime.utcnow()
        p = LifecycleParticipant(
            participant_type=participant_type,
            participant_id=participant_id,
            lifecycle_stage="screening",
            stage_metadata={},
            created_at=now,
            updated_at=now,
        )
        s.add(p)
        s.flush()
    return p


def triggered_templates(s: Session, stage: str, event_type: str) -> list[EmailTemplate]:
    # auto_trigger_events is a JSON list; filter in Python so sqlite and Postgres behave the same.
    candidates = (
        s.query(EmailTemplate)
        .filter(EmailTemplate.is_active.is_(True), EmailTemplate.lifecycle_stage == stage)
        .order_by(EmailTemplate.display_order.asc(), EmailTemplate.id.asc())
        .all()
    )
    return [t for t in candidates if event_type in (t.auto_trigger_events or [])]


def advance_stage(
    s: Session,
    participant: LifecycleParticipant,
    new_stage: str,
    *,
    event_type: str,
    actor: "User | None" = None,
) -> None:
    if new_stage not in LIFECYCLE_STAGES:
        raise ValueError(f"Unknown lifecycle stage: {new_stage}")
    old_stage = participant.lifecycle_stage
    now = datetime.utcnow()
    meta = dict(participant.stage_metadata or {})
    meta.update(
        {
            "previous_stage": old_stage,
            "transitioned_at": now.isoformat(),
            "trigger_event": event_type,
        }
    )
    participant.lifecycle_stage = new_stage
    participant.stage_metadata = meta
    participant.updated_at = now
    record_event(
        s,
        actor=actor,
        action="lifecycle.advance",
        entity_type=participant.participant_type.capitalize(),
        entity_id=str(participant.participant_id),
        metadata={"from": old_stage, "to": new_stage, "event": event_type},
    )


def handle_lifecycle_event(
    s: Session,
    participant_type: str,
    participant_id: int,
    event_type: str,
    event_data: dict[str, Any] | None = None,
    *,
    actor: "User | None" = None,
) -> LifecycleResult:
    participant = get_or_create_participant(s, participant_type, participant_id)
    stage = participant.lifecycle_stage
    result = LifecycleResult(
        participant_type=participant_type,
        participant_id=participant_id,
        event_type=event_type,
        stage_before=stage,
        stage_after=stage,
    )

    name, email = participant_contact(s, participant_type, participant_id)
    templates = triggered_templates(s, stage, event_type)
    if templates and not email:
        logger.info("Lifecycle %s %s has no email; skipping %d template(s)", participant_type, participant_id, len(templates))
        result.emails_skipped += len(templates)
    elif templates:
        variables = {"participant_name": name or "", "participant_email": email, **(event_data or {})}
        for tpl in templates:
            sent = send_email(
                s,
                recipient_email=email,
                recipient_type=participant_type,
                recipient_id=participant_id,
                template_id=tpl.id,
                template_category=tpl.category,
                variables=variables,
                actor=actor,
            )
            if sent.sent:
                result.emails_sent += 1
            elif sent.error:
                result.errors.append(f"{tpl.name}: {sent.error}")
            else:
                result.emails_skipped += 1

    target = next_stage(stage, event_type)
    if target:
        advance_stage(s, participant, target, event_type=event_type, actor=actor)
        result.stage_after = target

    logger.info(
        "Lifecycle event %s for %s %s: sent=%d stage %s -> %s",
        event_type,
        participant_type,
        participant_id,
        result.emails_sent,
        result.stage_before,
        result.stage_after,
    )
    return result
