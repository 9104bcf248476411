from __future__ import annotations

import io

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, send_file, session, url_for

from app.jury.audit import record_event
from app.jury.constants import ROUND_LABELS, ROUND_ORDER, ROUND_SCREENING
from app.jury.db import db_session
from app.jury.models import User
from app.jury.modules.assignments.service import find_assignment, juror_assignments
from app.jury.modules.cohort.service import can_modify_round, cohort_deadlines, get_active_round
from app.jury.modules.evaluations.criteria import GUIDED_FEEDBACK_OPTIONS, RECOMMENDATIONS, sections_for
from app.jury.modules.evaluations.jury_status import juror_progress, round_progress, status_summary
from app.jury.modules.evaluations.models import Evaluation
from app.jury.modules.evaluations.report import (
    XLSX_MIMETYPE,
    archive_report,
    archived_reports,
    build_decision_rows,
    decision_report_csv,
    decision_report_xlsx,
    format_scores,
    open_archived_report,
    report_filename,
)
from app.jury.modules.evaluations.service import (
    NotAssignedError,
    find_evaluation,
    save_evaluation,
    validate_evaluation_payload,
)
from app.jury.modules.jurors.models import Juror
from app.jury.modules.startups.models import Startup
from app.jury.rbac import is_admin, require_permission
from app.jury.storage import StorageError

bp = Blueprint("evaluations", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _acting_juror(s) -> tuple[Juror | None, bool]:
    """
    The juror whose screens are shown, and whether this is an admin preview.
    Admins in view mode see the selected juror's screens read-only.
    """
    u = _current_user()
    view_as = session.get("view_as_juror_id")
    if view_as and is_admin(u):
        juror = s.get(Juror, int(view_as))
        if juror is None:
            session.pop("view_as_juror_id", None)
        return juror, True
    juror = s.query(Juror).filter(Juror.user_id == u.id).one_or_none()
    return juror, False


def _round_or_404(round_name: str) -> str:
    if round_name not in ROUND_ORDER:
        abort(404)
    return round_name


# ---------- Juror home ----------
@bp.get("/evaluations")
@require_permission("evaluations.submit")
def juror_home():
    s = db_session()
    juror, view_mode = _acting_juror(s)
    if juror is None:
        if view_mode:
            flash("That juror no longer exists.", "warning")
            return redirect(url_for("routes.dashboard"))
        flash("Your account is not linked to a juror profile. Contact the programme team.", "warning")
        return redirect(url_for("routes.index"))

    active = get_active_round(s)
    rounds = []
    for round_name in ROUND_ORDER:
        assignments = juror_assignments(s, juror.id, round_name)
        if not assignments and (active is None or active.name != round_name):
            continue
        items = []
        for a in assignments:
            ev = find_evaluation(s, juror.id, a.startup_id, round_name)
            items.append({"assignment": a, "startup": a.startup, "evaluation": ev})
        progress, status = juror_progress(s, juror, round_name)
        rounds.append(
            {
                "name": round_name,
                "label": ROUND_LABELS[round_name],
                "is_active": bool(active and active.name == round_name),
                "items": items,
                "progress": progress,
                "status": status,
            }
        )

    return render_template(
        "juror/home.html",
        juror=juror,
        view_mode=view_mode,
        rounds=rounds,
        deadlines=cohort_deadlines(s),
    )


# ---------- Evaluation form ----------
@bp.get("/evaluations/<round_name>/<int:startup_id>")
@require_permission("evaluations.submit")
def evaluation_form(round_name: str, startup_id: int):
    s = db_session()
    round_name = _round_or_404(round_name)
    juror, view_mode = _acting_juror(s)
    startup = s.get(Startup, startup_id)
    if juror is None or startup is None:
        abort(404)
    if find_assignment(s, juror.id, startup.id, round_name) is None:
        abort(403)
    ev = find_evaluation(s, juror.id, startup.id, round_name)
    return render_template(
        "juror/evaluation_form.html",
        juror=juror,
        startup=startup,
        evaluation=ev,
        round_name=round_name,
        round_label=ROUND_LABELS[round_name],
        sections=sections_for(round_name),
        guided_options=GUIDED_FEEDBACK_OPTIONS,
        recommendations=RECOMMENDATIONS,
        read_only=view_mode or not can_modify_round(s, round_name),
        view_mode=view_mode,
    )


@bp.post("/evaluations/<round_name>/<int:startup_id>")
@require_permission("evaluations.submit")
def evaluation_save(round_name: str, startup_id: int):
    s = db_session()
    u = _current_user()
    round_name = _round_or_404(round_name)
    juror, view_mode = _acting_juror(s)
    startup = s.get(Startup, startup_id)
    if juror is None or startup is None:
        abort(404)
    if view_mode:
        flash("View mode is read-only.", "warning")
        return redirect(url_for("evaluations.evaluation_form", round_name=round_name, startup_id=startup_id))

    submit = request.form.get("action") == "submit"
    payload = {k: v for k, v in request.form.items() if k.startswith("score_")}
    payload.update(
        {
            "strengths": request.form.getlist("strengths"),
            "improvement_areas": request.form.get("improvement_areas"),
            "pitch_development_aspects": request.form.get("pitch_development_aspects"),
            "overall_notes": request.form.get("overall_notes"),
            "guided_feedback": request.form.getlist("guided_feedback"),
            "recommendation": request.form.get("recommendation"),
            "wants_pitch_session": request.form.get("wants_pitch_session"),
            "investment_amount": request.form.get("investment_amount"),
        }
    )

    errors = validate_evaluation_payload(round_name, payload, submit=submit)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("evaluations.evaluation_form", round_name=round_name, startup_id=startup_id))

    try:
        save_evaluation(s, juror, startup, round_name, payload, u, submit=submit)
    except NotAssignedError as e:
        flash(str(e), "danger")
        return redirect(url_for("evaluations.juror_home"))
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("evaluations.evaluation_form", round_name=round_name, startup_id=startup_id))
    s.commit()

    if submit:
        flash(f"Evaluation for {startup.name} submitted.", "success")
        return redirect(url_for("evaluations.juror_home"))
    flash("Draft saved.", "success")
    return redirect(url_for("evaluations.evaluation_form", round_name=round_name, startup_id=startup_id))


# ---------- Staff: evaluations ----------
@bp.get("/admin/evaluations")
@require_permission("evaluations.view")
def evaluations_list():
    s = db_session()
    round_name = (request.args.get("round") or ROUND_SCREENING).strip()
    round_name = _round_or_404(round_name)
    status_filter = (request.args.get("status") or "").strip()

    q = s.query(Evaluation).filter(Evaluation.round_name == round_name)
    if status_filter:
        q = q.filter(Evaluation.status == status_filter)
    evaluations = q.order_by(Evaluation.updated_at.desc()).all()

    return render_template(
        "admin/evaluations/list.html",
        evaluations=evaluations,
        round_name=round_name,
        round_labels=ROUND_LABELS,
        status_filter=status_filter,
    )


@bp.get("/admin/evaluations/<int:evaluation_id>")
@require_permission("evaluations.view")
def evaluation_detail(evaluation_id: int):
    s = db_session()
    ev = s.get(Evaluation, evaluation_id)
    if not ev:
        abort(404)
    return render_template(
        "admin/evaluations/detail.html",
        evaluation=ev,
        sections=sections_for(ev.round_name),
        guided_options=GUIDED_FEEDBACK_OPTIONS,
        round_label=ROUND_LABELS.get(ev.round_name, ev.round_name),
    )


@bp.get("/admin/jury-status")
@require_permission("evaluations.view")
def jury_status():
    s = db_session()
    active = get_active_round(s)
    round_name = (request.args.get("round") or (active.name if active else ROUND_SCREENING)).strip()
    round_name = _round_or_404(round_name)
    rows = round_progress(s, round_name)
    return render_template(
        "admin/evaluations/jury_status.html",
        rows=rows,
        summary=status_summary(rows),
        round_name=round_name,
        round_labels=ROUND_LABELS,
    )


# ---------- Decision report ----------
@bp.get("/admin/reports/decision")
@require_permission("evaluations.view")
def decision_report():
    s = db_session()
    rows = build_decision_rows(s)
    return render_template(
        "admin/reports/decision.html",
        rows=rows,
        format_scores=format_scores,
        archives=archived_reports(current_app.config),
    )


@bp.get("/admin/reports/decision.<fmt>")
@require_permission("reports.export")
def decision_report_download(fmt: str):
    s = db_session()
    u = _current_user()
    if fmt not in ("csv", "xlsx"):
        abort(404)
    rows = build_decision_rows(s)
    if fmt == "csv":
        data, mimetype = decision_report_csv(rows), "text/csv"
    else:
        data, mimetype = decision_report_xlsx(rows), XLSX_MIMETYPE
    filename = report_filename(fmt)
    key = archive_report(current_app.config, filename, data, mimetype)

    record_event(
        s,
        actor=u,
        action="report.decision_export",
        entity_type="Report",
        entity_id=key,
        metadata={"format": fmt, "rows": len(rows)},
    )
    s.commit()
    return send_file(
        io.BytesIO(data),
        mimetype=mimetype,
        as_attachment=True,
        download_name=filename,
        max_age=0,
    )


@bp.get("/admin/reports/archive/<path:key>")
@require_permission("reports.export")
def decision_report_archived(key: str):
    try:
        fh = open_archived_report(current_app.config, key)
    except StorageError:
        abort(404)
    filename = key.rsplit("/", 1)[-1]
    mimetype = XLSX_MIMETYPE if filename.endswith(".xlsx") else "text/csv"
    return send_file(fh, mimetype=mimetype, as_attachment=True, download_name=filename, max_age=0)
