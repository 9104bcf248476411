from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.jury.constants import BUSINESS_MODELS, CURRENCIES, REGIONS, ROUND_LABELS, STAGES, VERTICALS
from app.jury.db import db_session
from app.jury.models import User
from app.jury.modules.assignments.models import Assignment
from app.jury.modules.evaluations.models import Evaluation
from app.jury.modules.startups.models import Startup
from app.jury.modules.startups.service import (
    INT_FIELDS,
    TEXT_FIELDS,
    VALID_STATUSES,
    create_startup,
    delete_startup,
    update_startup,
    validate_startup_payload,
)
from app.jury.rbac import require_permission

bp = Blueprint("startups", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _form_payload() -> dict:
    payload: dict = {k: request.form.get(k) for k in TEXT_FIELDS + INT_FIELDS}
    payload["status"] = request.form.get("status")
    payload["regions"] = request.form.getlist("regions")
    payload["verticals"] = request.form.getlist("verticals")
    payload["founder_names"] = request.form.get("founder_names")
    return payload


def _form_context() -> dict:
    return {
        "stages": STAGES,
        "regions": REGIONS,
        "verticals": VERTICALS,
        "business_models": BUSINESS_MODELS,
        "currencies": CURRENCIES,
        "statuses": VALID_STATUSES,
    }


# ---------- List ----------
@bp.get("/startups")
@require_permission("startups.view")
def startups_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    status_filter = (request.args.get("status") or "").strip()
    stage_filter = (request.args.get("stage") or "").strip()

    q = s.query(Startup)
    if search:
        like = f"%{search}%"
        q = q.filter(Startup.name.ilike(like) | Startup.description.ilike(like) | Startup.industry.ilike(like))
    if status_filter:
        q = q.filter(Startup.status == status_filter)
    if stage_filter:
        q = q.filter(Startup.stage == stage_filter)
    startups = q.order_by(Startup.name.asc()).all()

    return render_template(
        "admin/startups/list.html",
        startups=startups,
        search=search,
        status_filter=status_filter,
        stage_filter=stage_filter,
        **_form_context(),
    )


# ---------- New ----------
@bp.get("/startups/new")
@require_permission("startups.create")
def startups_new_get():
    return render_template("admin/startups/form.html", startup=None, **_form_context())


@bp.post("/startups/new")
@require_permission("startups.create")
def startups_new_post():
    s = db_session()
    u = _current_user()
    payload = _form_payload()
    errors = validate_startup_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("startups.startups_new_get"))

    startup = create_startup(s, payload, u)
    s.commit()
    flash("Startup created.", "success")
    return redirect(url_for("startups.startup_detail", startup_id=startup.id))


# ---------- Detail ----------
@bp.get("/startups/<int:startup_id>")
@require_permission("startups.view")
def startup_detail(startup_id: int):
    s = db_session()
    startup = s.get(Startup, startup_id)
    if not startup:
        abort(404)
    assignments = s.query(Assignment).filter(Assignment.startup_id == startup.id).order_by(Assignment.round_name).all()
    evaluations = (
        s.query(Evaluation)
        .filter(Evaluation.startup_id == startup.id)
        .order_by(Evaluation.round_name.asc(), Evaluation.updated_at.desc())
        .all()
    )
    return render_template(
        "admin/startups/detail.html",
        startup=startup,
        assignments=assignments,
        evaluations=evaluations,
        round_labels=ROUND_LABELS,
    )


# ---------- Edit ----------
@bp.get("/startups/<int:startup_id>/edit")
@require_permission("startups.edit")
def startup_edit_get(startup_id: int):
    s = db_session()
    startup = s.get(Startup, startup_id)
    if not startup:
        abort(404)
    return render_template("admin/startups/form.html", startup=startup, **_form_context())


@bp.post("/startups/<int:startup_id>/edit")
@require_permission("startups.edit")
def startup_edit_post(startup_id: int):
    s = db_session()
    u = _current_user()
    startup = s.get(Startup, startup_id)
    if not startup:
        abort(404)
    payload = _form_payload()
    errors = validate_startup_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("startups.startup_edit_get", startup_id=startup_id))

    update_startup(s, startup, payload, u)
    s.commit()
    flash("Startup updated.", "success")
    return redirect(url_for("startups.startup_detail", startup_id=startup_id))


@bp.post("/startups/<int:startup_id>/status")
@require_permission("startups.edit")
def startup_status_post(startup_id: int):
    """Quick status change from the list/detail page (shortlist, reject, ...)."""
    s = db_session()
    u = _current_user()
    startup = s.get(Startup, startup_id)
    if not startup:
        abort(404)
    status = (request.form.get("status") or "").strip()
    if status not in VALID_STATUSES:
        flash(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}", "danger")
        return redirect(url_for("startups.startup_detail", startup_id=startup_id))
    update_startup(s, startup, {"status": status}, u)
    s.commit()
    flash(f"{startup.name} marked {status.replace('_', ' ')}.", "success")
    nxt = (request.form.get("next") or "").strip()
    if nxt.startswith("/") and not nxt.startswith("//"):
        return redirect(nxt)
    return redirect(url_for("startups.startup_detail", startup_id=startup_id))


@bp.post("/startups/<int:startup_id>/delete")
@require_permission("startups.edit")
def startup_delete_post(startup_id: int):
    s = db_session()
    u = _current_user()
    startup = s.get(Startup, startup_id)
    if not startup:
        abort(404)
    name = startup.name
    delete_startup(s, startup, u)
    s.commit()
    flash(f"Startup {name} deleted.", "success")
    return redirect(url_for("startups.startups_list"))
