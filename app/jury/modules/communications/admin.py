from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, url_for

from app.jury.db import db_session
from app.jury.models import User
from app.jury.modules.communications.defaults import COMMUNICATION_TYPES, DEFAULT_CONTENT
from app.jury.modules.communications.models import EmailCommunication, EmailTemplate
from app.jury.modules.communications.reminders import send_evaluation_reminders, send_login_reminders
from app.jury.modules.communications.service import (
    communication_stats,
    save_template,
    send_email,
    send_result_notifications,
    validate_template_payload,
)
from app.jury.modules.lifecycle.orchestrator import LIFECYCLE_STAGES, participant_contact
from app.jury.rbac import require_permission

bp = Blueprint("communications", __name__)

PAGE_SIZE = 100


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _template_payload() -> dict:
    return {
        "name": request.form.get("name"),
        "category": request.form.get("category"),
        "subject_template": request.form.get("subject_template"),
        "body_template": request.form.get("body_template"),
        "variables": request.form.get("variables"),
        "lifecycle_stage": request.form.get("lifecycle_stage"),
        "auto_trigger_events": request.form.get("auto_trigger_events"),
        "is_active": request.form.get("is_active") == "1",
    }


# ---------- Sent emails ----------
@bp.get("/communications")
@require_permission("communications.view")
def communications_list():
    s = db_session()
    status_filter = (request.args.get("status") or "").strip()
    type_filter = (request.args.get("type") or "").strip()
    search = (request.args.get("q") or "").strip()

    q = s.query(EmailCommunication)
    if status_filter:
        q = q.filter(EmailCommunication.status == status_filter)
    if type_filter:
        q = q.filter(EmailCommunication.communication_type == type_filter)
    if search:
        like = f"%{search}%"
        q = q.filter(EmailCommunication.recipient_email.ilike(like) | EmailCommunication.subject.ilike(like))
    communications = q.order_by(EmailCommunication.created_at.desc()).limit(PAGE_SIZE).all()

    return render_template(
        "admin/communications/list.html",
        communications=communications,
        stats=communication_stats(s),
        status_filter=status_filter,
        type_filter=type_filter,
        search=search,
        communication_types=COMMUNICATION_TYPES,
    )


@bp.get("/communications/<int:communication_id>")
@require_permission("communications.view")
def communication_detail(communication_id: int):
    s = db_session()
    comm = s.get(EmailCommunication, communication_id)
    if not comm:
        abort(404)
    return render_template("admin/communications/detail.html", communication=comm)


# ---------- Templates ----------
@bp.get("/communications/templates")
@require_permission("communications.view")
def templates_list():
    s = db_session()
    templates = s.query(EmailTemplate).order_by(EmailTemplate.category.asc(), EmailTemplate.name.asc()).all()
    return render_template(
        "admin/communications/templates.html",
        templates=templates,
        default_categories=sorted(DEFAULT_CONTENT),
    )


@bp.get("/communications/templates/new")
@require_permission("communications.send")
def template_new_get():
    category = (request.args.get("category") or "").strip()
    prefill = DEFAULT_CONTENT.get(category, {})
    return render_template(
        "admin/communications/template_form.html",
        template=None,
        category=category,
        prefill=prefill,
        lifecycle_stages=LIFECYCLE_STAGES,
    )


@bp.post("/communications/templates/new")
@require_permission("communications.send")
def template_new_post():
    s = db_session()
    u = _current_user()
    payload = _template_payload()
    errors = validate_template_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("communications.template_new_get", category=payload.get("category") or ""))
    save_template(s, payload, u)
    s.commit()
    flash("Template created.", "success")
    return redirect(url_for("communications.templates_list"))


@bp.get("/communications/templates/<int:template_id>/edit")
@require_permission("communications.send")
def template_edit_get(template_id: int):
    s = db_session()
    tpl = s.get(EmailTemplate, template_id)
    if not tpl:
        abort(404)
    return render_template(
        "admin/communications/template_form.html",
        template=tpl,
        category=tpl.category,
        prefill={},
        lifecycle_stages=LIFECYCLE_STAGES,
    )


@bp.post("/communications/templates/<int:template_id>/edit")
@require_permission("communications.send")
def template_edit_post(template_id: int):
    s = db_session()
    u = _current_user()
    tpl = s.get(EmailTemplate, template_id)
    if not tpl:
        abort(404)
    payload = _template_payload()
    errors = validate_template_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("communications.template_edit_get", template_id=template_id))
    save_template(s, payload, u, template=tpl)
    s.commit()
    flash("Template updated.", "success")
    return redirect(url_for("communications.templates_list"))


# ---------- Send ----------
@bp.get("/communications/send")
@require_permission("communications.send")
def send_get():
    s = db_session()
    templates = (
        s.query(EmailTemplate).filter(EmailTemplate.is_active.is_(True)).order_by(EmailTemplate.name.asc()).all()
    )
    return render_template(
        "admin/communications/send.html",
        templates=templates,
        recipient_type=(request.args.get("recipient_type") or "").strip(),
        recipient_id=(request.args.get("recipient_id") or "").strip(),
    )


@bp.post("/communications/send")
@require_permission("communications.send")
def send_post():
    s = db_session()
    u = _current_user()
    recipient_type = (request.form.get("recipient_type") or "").strip()
    recipient_id_raw = (request.form.get("recipient_id") or "").strip()
    template_id_raw = (request.form.get("template_id") or "").strip()
    subject = (request.form.get("subject") or "").strip()
    body = request.form.get("body") or ""

    if recipient_type not in ("startup", "juror") or not recipient_id_raw.isdigit():
        flash("Choose a startup or juror recipient.", "danger")
        return redirect(url_for("communications.send_get"))
    if not template_id_raw and not (subject and body.strip()):
        flash("Pick a template or write a subject and body.", "danger")
        return redirect(url_for("communications.send_get", recipient_type=recipient_type, recipient_id=recipient_id_raw))

    recipient_id = int(recipient_id_raw)
    name, email = participant_contact(s, recipient_type, recipient_id)
    if not email:
        flash("That recipient has no email address on file.", "danger")
        return redirect(url_for("communications.send_get"))

    result = send_email(
        s,
        recipient_email=email,
        recipient_type=recipient_type,
        recipient_id=recipient_id,
        template_id=int(template_id_raw) if template_id_raw.isdigit() else None,
        subject=subject or None,
        body=body or None,
        variables={
            "participant_name": name,
            "juror_name": name if recipient_type == "juror" else None,
            "startup_name": name if recipient_type == "startup" else None,
        },
        actor=u,
    )
    s.commit()
    for w in result.warnings or []:
        flash(w, "warning")
    if result.sent:
        flash(f"Email sent to {email}.", "success")
    elif result.duplicate_of:
        flash("The same email was already sent in the last 24 hours; nothing was sent.", "warning")
    else:
        flash(f"Email failed: {result.error}", "danger")
    return redirect(url_for("communications.communications_list"))


@bp.post("/communications/results")
@require_permission("communications.send")
def send_results_post():
    s = db_session()
    u = _current_user()
    counts = send_result_notifications(s, actor=u)
    s.commit()
    flash(
        f"Result emails: {counts['sent']} sent, {counts['skipped']} skipped, {counts['failed']} failed.",
        "success" if not counts["failed"] else "warning",
    )
    return redirect(url_for("communications.communications_list"))


@bp.post("/communications/reminders")
@require_permission("communications.send")
def send_reminders_post():
    s = db_session()
    u = _current_user()
    run = send_evaluation_reminders(s, current_app.config, actor=u)
    s.commit()
    if run.round_name is None:
        flash("No round is active; no reminders sent.", "warning")
    else:
        flash(f"Reminders: {run.sent} sent, {run.skipped} skipped, {len(run.errors)} error(s).", "success")
        for err in run.errors:
            flash(err, "danger")
    return redirect(url_for("communications.communications_list"))


@bp.post("/communications/login-reminders")
@require_permission("communications.send")
def send_login_reminders_post():
    s = db_session()
    u = _current_user()
    run = send_login_reminders(s, current_app.config, actor=u)
    s.commit()
    flash(f"Registration reminders: {run.sent} sent, {run.skipped} skipped, {len(run.errors)} error(s).", "success")
    for err in run.errors:
        flash(err, "danger")
    return redirect(url_for("communications.communications_list"))
