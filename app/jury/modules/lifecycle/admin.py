from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.jury.db import db_session
from app.jury.models import User
from app.jury.modules.lifecycle.models import CommunicationAttempt, LifecycleParticipant, ParticipantWorkflow, WorkflowTrigger
from app.jury.modules.lifecycle.orchestrator import (
    ADVANCING_EVENTS,
    LIFECYCLE_STAGES,
    PARTICIPANT_TYPES,
    handle_lifecycle_event,
    participant_contact,
)
from app.jury.modules.lifecycle.workflow import (
    WORKFLOW_EVENTS,
    WORKFLOW_STAGES,
    process_pending_communications,
    save_trigger,
    trigger_workflow_event,
    validate_trigger_payload,
)
from app.jury.rbac import require_permission

bp = Blueprint("lifecycle", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _trigger_payload() -> dict:
    return {
        "stage": request.form.get("stage"),
        "participant_type": request.form.get("participant_type"),
        "email_template_category": request.form.get("email_template_category"),
        "delay_hours": request.form.get("delay_hours"),
        "is_active": request.form.get("is_active") == "1",
    }


# ---------- Overview ----------
@bp.get("/lifecycle")
@require_permission("lifecycle.manage")
def lifecycle_index():
    s = db_session()
    type_filter = (request.args.get("type") or "").strip()

    q = s.query(LifecycleParticipant)
    if type_filter:
        q = q.filter(LifecycleParticipant.participant_type == type_filter)
    participants = q.order_by(LifecycleParticipant.updated_at.desc()).all()
    names = {
        (p.participant_type, p.participant_id): participant_contact(s, p.participant_type, p.participant_id)[0]
        for p in participants
    }
    workflows = s.query(ParticipantWorkflow).order_by(ParticipantWorkflow.updated_at.desc()).all()
    attempts = s.query(CommunicationAttempt).order_by(CommunicationAttempt.created_at.desc()).limit(50).all()
    pending_count = s.query(CommunicationAttempt).filter(CommunicationAttempt.status == "pending").count()

    return render_template(
        "admin/lifecycle/index.html",
        participants=participants,
        names=names,
        workflows=workflows,
        attempts=attempts,
        pending_count=pending_count,
        type_filter=type_filter,
        lifecycle_stages=LIFECYCLE_STAGES,
        participant_types=PARTICIPANT_TYPES,
        lifecycle_events=sorted(ADVANCING_EVENTS),
        workflow_events=sorted(WORKFLOW_EVENTS),
    )


# ---------- Manual events ----------
@bp.post("/lifecycle/event")
@require_permission("lifecycle.manage")
def lifecycle_event_post():
    s = db_session()
    u = _current_user()
    participant_type = (request.form.get("participant_type") or "").strip()
    participant_id = (request.form.get("participant_id") or "").strip()
    event_type = (request.form.get("event_type") or "").strip()
    kind = (request.form.get("kind") or "lifecycle").strip()

    if participant_type not in PARTICIPANT_TYPES or not participant_id.isdigit() or not event_type:
        flash("Participant type, id and event are required.", "danger")
        return redirect(url_for("lifecycle.lifecycle_index"))

    name, _ = participant_contact(s, participant_type, int(participant_id))
    if name is None:
        flash("Participant not found.", "danger")
        return redirect(url_for("lifecycle.lifecycle_index"))

    try:
        if kind == "workflow":
            wf = trigger_workflow_event(s, participant_type, int(participant_id), event_type, actor=u)
            message = f"{name}: workflow moved to {wf.current_stage}."
        else:
            result = handle_lifecycle_event(s, participant_type, int(participant_id), event_type, actor=u)
            message = f"{name}: {result.emails_sent} email(s) sent, stage {result.stage_before} -> {result.stage_after}."
            for err in result.errors:
                flash(err, "danger")
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("lifecycle.lifecycle_index"))
    s.commit()
    flash(message, "success")
    return redirect(url_for("lifecycle.lifecycle_index"))


@bp.post("/lifecycle/process")
@require_permission("lifecycle.manage")
def process_pending_post():
    s = db_session()
    counts = process_pending_communications(s)
    s.commit()
    flash(f"Processed {counts['processed']} queued email(s): {counts['sent']} sent, {counts['failed']} failed.", "success")
    return redirect(url_for("lifecycle.lifecycle_index"))


# ---------- Workflow triggers ----------
@bp.get("/lifecycle/triggers")
@require_permission("lifecycle.manage")
def triggers_list():
    s = db_session()
    triggers = s.query(WorkflowTrigger).order_by(WorkflowTrigger.stage.asc(), WorkflowTrigger.id.asc()).all()
    return render_template(
        "admin/lifecycle/triggers.html",
        triggers=triggers,
        workflow_stages=WORKFLOW_STAGES,
        participant_types=PARTICIPANT_TYPES,
    )


@bp.post("/lifecycle/triggers/new")
@require_permission("lifecycle.manage")
def trigger_new_post():
    s = db_session()
    u = _current_user()
    payload = _trigger_payload()
    errors = validate_trigger_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("lifecycle.triggers_list"))
    save_trigger(s, payload, u)
    s.commit()
    flash("Trigger created.", "success")
    return redirect(url_for("lifecycle.triggers_list"))


@bp.post("/lifecycle/triggers/<int:trigger_id>/edit")
@require_permission("lifecycle.manage")
def trigger_edit_post(trigger_id: int):
    s = db_session()
    u = _current_user()
    trigger = s.get(WorkflowTrigger, trigger_id)
    if not trigger:
        abort(404)
    payload = _trigger_payload()
    errors = validate_trigger_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("lifecycle.triggers_list"))
    save_trigger(s, payload, u, trigger=trigger)
    s.commit()
    flash("Trigger updated.", "success")
    return redirect(url_for("lifecycle.triggers_list"))
