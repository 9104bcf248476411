from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.jury.constants import ROUND_LABELS, ROUND_ORDER
from app.jury.db import db_session
from app.jury.models import User
from app.jury.modules.cohort.reset import CONFIRMATION_PHRASE, reset_cohort_data
from app.jury.modules.cohort.service import (
    RoundCompletionError,
    cohort_deadlines,
    complete_round,
    ensure_rounds,
    get_round_progress,
    get_settings,
    update_settings,
    validate_round_completion,
    validate_settings_payload,
)
from app.jury.rbac import require_permission

bp = Blueprint("cohort", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# ---------- Settings ----------
@bp.get("/cohort")
@require_permission("rounds.manage")
def settings_get():
    s = db_session()
    settings = get_settings(s)
    s.commit()
    return render_template("admin/cohort/settings.html", settings=settings, deadlines=cohort_deadlines(s))


@bp.post("/cohort")
@require_permission("rounds.manage")
def settings_post():
    s = db_session()
    u = _current_user()
    payload = {
        "cohort_name": request.form.get("cohort_name"),
        "screening_deadline": request.form.get("screening_deadline"),
        "pitching_deadline": request.form.get("pitching_deadline"),
    }
    errors = validate_settings_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("cohort.settings_get"))
    update_settings(s, payload, u)
    s.commit()
    flash("Cohort settings saved.", "success")
    return redirect(url_for("cohort.settings_get"))


# ---------- Rounds ----------
@bp.get("/rounds")
@require_permission("rounds.manage")
def rounds_list():
    s = db_session()
    rounds = ensure_rounds(s)
    s.commit()
    rows = []
    for r in rounds:
        can_complete, reason = validate_round_completion(s, r.name) if r.status == "active" else (False, None)
        rows.append(
            {
                "round": r,
                "label": ROUND_LABELS[r.name],
                "progress": get_round_progress(s, r.name),
                "can_complete": can_complete,
                "blocked_reason": reason,
            }
        )
    return render_template("admin/cohort/rounds.html", rows=rows)


@bp.post("/rounds/<round_name>/complete")
@require_permission("rounds.manage")
def round_complete_post(round_name: str):
    s = db_session()
    u = _current_user()
    if round_name not in ROUND_ORDER:
        abort(404)
    try:
        complete_round(s, round_name, u)
    except RoundCompletionError as e:
        flash(str(e), "danger")
        return redirect(url_for("cohort.rounds_list"))
    s.commit()
    flash(f"{ROUND_LABELS[round_name]} round completed.", "success")
    return redirect(url_for("cohort.rounds_list"))


# ---------- Reset ----------
@bp.get("/cohort/reset")
@require_permission("cohort.reset")
def reset_get():
    return render_template("admin/cohort/reset.html", confirmation_phrase=CONFIRMATION_PHRASE)


@bp.post("/cohort/reset")
@require_permission("cohort.reset")
def reset_post():
    s = db_session()
    u = _current_user()
    confirmation = request.form.get("confirmation") or ""
    try:
        counts = reset_cohort_data(s, confirmation, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("cohort.reset_get"))
    s.commit()
    total = sum(counts.values())
    flash(f"Cohort data reset ({total} rows removed).", "success")
    return redirect(url_for("admin.index"))
