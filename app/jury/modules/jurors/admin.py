from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.jury.constants import REGIONS, ROUND_LABELS, ROUND_SCREENING, STAGES, VERTICALS
from app.jury.db import db_session
from app.jury.models import User
from app.jury.modules.assignments.service import juror_assignments
from app.jury.modules.cohort.service import get_active_round
from app.jury.modules.evaluations.jury_status import round_progress, status_summary
from app.jury.modules.jurors.models import Juror
from app.jury.modules.jurors.service import (
    LIMIT_FIELDS,
    TEXT_FIELDS,
    InvitationError,
    complete_cm_signup,
    complete_juror_signup,
    create_juror,
    delete_juror,
    invitation_link,
    resend_invitation,
    send_invitation,
    update_juror,
    validate_cm_token,
    validate_invitation_token,
    validate_juror_payload,
)
from app.jury.rbac import require_permission

bp = Blueprint("jurors", __name__)
signup_bp = Blueprint("signup", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _form_payload() -> dict:
    payload: dict = {k: request.form.get(k) for k in TEXT_FIELDS + LIMIT_FIELDS}
    payload["preferred_stages"] = request.form.getlist("preferred_stages")
    payload["target_verticals"] = request.form.getlist("target_verticals")
    payload["preferred_regions"] = request.form.getlist("preferred_regions")
    return payload


def _form_context() -> dict:
    return {"stages": STAGES, "regions": REGIONS, "verticals": VERTICALS}


# ---------- List ----------
@bp.get("/jurors")
@require_permission("jurors.view")
def jurors_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()

    q = s.query(Juror)
    if search:
        like = f"%{search}%"
        q = q.filter(Juror.name.ilike(like) | Juror.email.ilike(like) | Juror.company.ilike(like))
    jurors = q.order_by(Juror.name.asc()).all()

    active = get_active_round(s)
    round_name = active.name if active else ROUND_SCREENING
    rows = round_progress(s, round_name, jurors)
    return render_template(
        "admin/jurors/list.html",
        rows=rows,
        summary=status_summary(rows),
        round_label=ROUND_LABELS[round_name],
        search=search,
    )


# ---------- New ----------
@bp.get("/jurors/new")
@require_permission("jurors.create")
def jurors_new_get():
    return render_template("admin/jurors/form.html", juror=None, **_form_context())


@bp.post("/jurors/new")
@require_permission("jurors.create")
def jurors_new_post():
    s = db_session()
    u = _current_user()
    payload = _form_payload()
    errors = validate_juror_payload(s, payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("jurors.jurors_new_get"))

    juror = create_juror(s, payload, u)
    s.commit()
    flash("Juror created.", "success")
    return redirect(url_for("jurors.juror_detail", juror_id=juror.id))


# ---------- Detail ----------
@bp.get("/jurors/<int:juror_id>")
@require_permission("jurors.view")
def juror_detail(juror_id: int):
    s = db_session()
    juror = s.get(Juror, juror_id)
    if not juror:
        abort(404)
    assignments = {name: juror_assignments(s, juror.id, name) for name in ROUND_LABELS}
    link = invitation_link(juror.invitation_token) if juror.invitation_pending else None
    return render_template(
        "admin/jurors/detail.html",
        juror=juror,
        assignments=assignments,
        round_labels=ROUND_LABELS,
        invitation_url=link,
    )


# ---------- Edit ----------
@bp.get("/jurors/<int:juror_id>/edit")
@require_permission("jurors.edit")
def juror_edit_get(juror_id: int):
    s = db_session()
    juror = s.get(Juror, juror_id)
    if not juror:
        abort(404)
    return render_template("admin/jurors/form.html", juror=juror, **_form_context())


@bp.post("/jurors/<int:juror_id>/edit")
@require_permission("jurors.edit")
def juror_edit_post(juror_id: int):
    s = db_session()
    u = _current_user()
    juror = s.get(Juror, juror_id)
    if not juror:
        abort(404)
    payload = _form_payload()
    errors = validate_juror_payload(s, payload, juror)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("jurors.juror_edit_get", juror_id=juror_id))
    update_juror(s, juror, payload, u)
    s.commit()
    flash("Juror updated.", "success")
    return redirect(url_for("jurors.juror_detail", juror_id=juror_id))


@bp.post("/jurors/<int:juror_id>/delete")
@require_permission("jurors.edit")
def juror_delete_post(juror_id: int):
    s = db_session()
    u = _current_user()
    juror = s.get(Juror, juror_id)
    if not juror:
        abort(404)
    name = juror.name
    delete_juror(s, juror, u)
    s.commit()
    flash(f"Juror {name} deleted.", "success")
    return redirect(url_for("jurors.jurors_list"))


# ---------- Invitations ----------
@bp.post("/jurors/<int:juror_id>/invite")
@require_permission("jurors.invite")
def juror_invite_post(juror_id: int):
    s = db_session()
    u = _current_user()
    juror = s.get(Juror, juror_id)
    if not juror:
        abort(404)
    resend = request.form.get("resend") == "1"
    try:
        result = resend_invitation(s, juror, u) if resend else send_invitation(s, juror, u)
    except InvitationError as e:
        # Keep the token and the failed communication row for troubleshooting.
        s.commit()
        flash(f"Invitation not sent: {e}", "danger")
        return redirect(url_for("jurors.juror_detail", juror_id=juror_id))
    s.commit()
    for w in result.warnings or []:
        flash(w, "warning")
    flash(f"Invitation {'re-sent' if resend else 'sent'} to {juror.email}.", "success")
    return redirect(url_for("jurors.juror_detail", juror_id=juror_id))


# ---------- Public signup ----------
@signup_bp.get("/signup/juror")
def juror_signup_get():
    s = db_session()
    token = (request.args.get("token") or "").strip()
    check = validate_invitation_token(s, token)
    # An expired token gets renewed and re-sent; persist that.
    s.commit()
    return render_template("signup/juror.html", token=token, check=check, stages=STAGES, verticals=VERTICALS)


@signup_bp.post("/signup/juror")
def juror_signup_post():
    s = db_session()
    token = (request.form.get("token") or "").strip()
    password = request.form.get("password") or ""
    if password != (request.form.get("password_confirm") or ""):
        flash("Passwords do not match.", "danger")
        return redirect(url_for("signup.juror_signup_get", token=token))

    profile = {
        "full_name": request.form.get("full_name"),
        "company": request.form.get("company"),
        "calendly_link": request.form.get("calendly_link"),
        "expertise": request.form.getlist("expertise"),
        "preferred_stages": request.form.getlist("preferred_stages"),
    }
    try:
        complete_juror_signup(s, token, password, profile)
    except InvitationError as e:
        # Nothing is created before the checks pass; this only keeps a renewed invitation.
        s.commit()
        flash(str(e), "danger")
        return redirect(url_for("signup.juror_signup_get", token=token))
    s.commit()
    flash("Your account is ready. Please sign in.", "success")
    return redirect(url_for("auth.login_get"))


@signup_bp.get("/signup/cm")
def cm_signup_get():
    s = db_session()
    token = (request.args.get("token") or "").strip()
    return render_template("signup/cm.html", token=token, check=validate_cm_token(s, token))


@signup_bp.post("/signup/cm")
def cm_signup_post():
    s = db_session()
    token = (request.form.get("token") or "").strip()
    password = request.form.get("password") or ""
    if password != (request.form.get("password_confirm") or ""):
        flash("Passwords do not match.", "danger")
        return redirect(url_for("signup.cm_signup_get", token=token))
    profile = {"full_name": request.form.get("full_name"), "linkedin_url": request.form.get("linkedin_url")}
    try:
        complete_cm_signup(s, token, password, profile)
    except InvitationError as e:
        flash(str(e), "danger")
        return redirect(url_for("signup.cm_signup_get", token=token))
    s.commit()
    flash("Your account is ready. Please sign in.", "success")
    return redirect(url_for("auth.login_get"))
