from __future__ import annotations

from collections import defaultdict

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.jury.constants import ROUND_LABELS, ROUND_ORDER, ROUND_SCREENING
from app.jury.db import db_session
from app.jury.models import User
from app.jury.modules.assignments.matchmaking import (
    calculate_compatibility,
    detect_data_inconsistencies,
    generate_auto_assignments,
    round_startups,
)
from app.jury.modules.assignments.models import Assignment, PitchRequest
from app.jury.modules.assignments.service import (
    PITCH_STATUSES,
    apply_auto_assignments,
    assign_juror,
    create_pitch_request,
    round_assignments,
    unassign_juror,
    update_pitch_request,
    validate_pitch_payload,
)
from app.jury.modules.assignments.validation import (
    juror_workloads,
    over_limit_summary,
    startup_coverage,
    under_assigned_summary,
)
from app.jury.modules.cohort.service import can_modify_round, get_active_round
from app.jury.modules.jurors.models import Juror
from app.jury.modules.startups.models import Startup
from app.jury.rbac import require_permission

bp = Blueprint("assignments", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _selected_round(s) -> str:
    round_name = (request.values.get("round") or "").strip()
    if not round_name:
        active = get_active_round(s)
        round_name = active.name if active else ROUND_SCREENING
    if round_name not in ROUND_ORDER:
        abort(404)
    return round_name


# ---------- Matrix ----------
@bp.get("/assignments")
@require_permission("assignments.view")
def assignments_index():
    s = db_session()
    round_name = _selected_round(s)
    startups = round_startups(s, round_name)
    jurors = s.query(Juror).order_by(Juror.name.asc()).all()
    assignments = round_assignments(s, round_name)

    by_startup: dict[int, list[Assignment]] = defaultdict(list)
    for a in assignments:
        by_startup[a.startup_id].append(a)

    coverage = startup_coverage(startups, assignments)
    workloads = juror_workloads(jurors, assignments, len(startups))
    compat = {
        (j.id, st.id): calculate_compatibility(j, st).score
        for st in startups
        for j in jurors
    }

    return render_template(
        "admin/assignments/index.html",
        round_name=round_name,
        round_labels=ROUND_LABELS,
        startups=startups,
        jurors=jurors,
        by_startup=by_startup,
        coverage={c.startup_id: c for c in coverage},
        workloads=workloads,
        under_summary=under_assigned_summary(coverage),
        over_summary=over_limit_summary(workloads),
        inconsistencies=detect_data_inconsistencies(startups, jurors),
        compat=compat,
        editable=can_modify_round(s, round_name),
    )


@bp.post("/assignments/assign")
@require_permission("assignments.manage")
def assign_post():
    s = db_session()
    u = _current_user()
    round_name = _selected_round(s)
    juror = s.get(Juror, int(request.form.get("juror_id") or 0))
    startup = s.get(Startup, int(request.form.get("startup_id") or 0))
    if not juror or not startup:
        flash("Choose a juror and a startup.", "danger")
        return redirect(url_for("assignments.assignments_index", round=round_name))
    try:
        assign_juror(s, juror, startup, round_name, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("assignments.assignments_index", round=round_name))
    s.commit()
    flash(f"{juror.name} assigned to {startup.name}.", "success")
    return redirect(url_for("assignments.assignments_index", round=round_name))


@bp.post("/assignments/<int:assignment_id>/unassign")
@require_permission("assignments.manage")
def unassign_post(assignment_id: int):
    s = db_session()
    u = _current_user()
    a = s.get(Assignment, assignment_id)
    if not a:
        abort(404)
    round_name = a.round_name
    try:
        unassign_juror(s, a, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("assignments.assignments_index", round=round_name))
    s.commit()
    flash("Assignment removed.", "success")
    return redirect(url_for("assignments.assignments_index", round=round_name))


# ---------- Auto-assignment ----------
@bp.get("/assignments/auto")
@require_permission("assignments.manage")
def auto_preview():
    s = db_session()
    round_name = _selected_round(s)
    plan = generate_auto_assignments(s, round_name)
    return render_template(
        "admin/assignments/auto.html",
        plan=plan,
        round_name=round_name,
        round_label=ROUND_LABELS[round_name],
        editable=can_modify_round(s, round_name),
    )


@bp.post("/assignments/auto")
@require_permission("assignments.manage")
def auto_apply():
    s = db_session()
    u = _current_user()
    round_name = _selected_round(s)
    # The plan is deterministic for unchanged data, so regenerating reproduces the preview.
    plan = generate_auto_assignments(s, round_name)
    try:
        created = apply_auto_assignments(s, plan, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("assignments.auto_preview", round=round_name))
    s.commit()
    flash(f"Created {created} assignment(s).", "success")
    return redirect(url_for("assignments.assignments_index", round=round_name))


# ---------- Pitch requests ----------
@bp.get("/pitch-requests")
@require_permission("assignments.view")
def pitch_requests_list():
    s = db_session()
    status_filter = (request.args.get("status") or "").strip()
    q = s.query(PitchRequest)
    if status_filter:
        q = q.filter(PitchRequest.status == status_filter)
    pitch_requests = q.order_by(PitchRequest.created_at.desc()).all()
    jurors = s.query(Juror).order_by(Juror.name.asc()).all()
    startups = round_startups(s, "pitching")
    return render_template(
        "admin/assignments/pitch_requests.html",
        pitch_requests=pitch_requests,
        jurors=jurors,
        startups=startups,
        statuses=PITCH_STATUSES,
        status_filter=status_filter,
    )


@bp.post("/pitch-requests/new")
@require_permission("assignments.manage")
def pitch_request_new_post():
    s = db_session()
    u = _current_user()
    juror = s.get(Juror, int(request.form.get("juror_id") or 0))
    startup = s.get(Startup, int(request.form.get("startup_id") or 0))
    if not juror or not startup:
        flash("Choose a juror and a startup.", "danger")
        return redirect(url_for("assignments.pitch_requests_list"))
    try:
        create_pitch_request(s, juror, startup, u, request.form.get("notes"))
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("assignments.pitch_requests_list"))
    s.commit()
    flash(f"Pitch call requested: {juror.name} x {startup.name}.", "success")
    return redirect(url_for("assignments.pitch_requests_list"))


@bp.post("/pitch-requests/<int:pitch_request_id>/edit")
@require_permission("assignments.manage")
def pitch_request_edit_post(pitch_request_id: int):
    s = db_session()
    u = _current_user()
    pr = s.get(PitchRequest, pitch_request_id)
    if not pr:
        abort(404)
    payload = {
        "status": request.form.get("status"),
        "meeting_scheduled_date": request.form.get("meeting_scheduled_date"),
        "notes": request.form.get("notes"),
    }
    errors = validate_pitch_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("assignments.pitch_requests_list"))
    update_pitch_request(s, pr, payload, u)
    s.commit()
    flash("Pitch request updated.", "success")
    return redirect(url_for("assignments.pitch_requests_list"))
