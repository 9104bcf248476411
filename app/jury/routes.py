from flask import Blueprint, abort, flash, g, redirect, render_template, session, url_for

from app.jury.audit import record_event
from app.jury.db import db_session
from app.jury.rbac import ROLE_VC, is_admin, is_staff, require_login

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return render_template("public/index.html")


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """Fast liveness check. No DB access."""
    return "ok", 200


@bp.get("/dashboard")
@require_login
def dashboard():
    """Send each role to its home screen."""
    user = g.current_user
    if session.get("view_as_juror_id") and is_admin(user):
        return redirect(url_for("evaluations.juror_home"))
    if is_staff(user):
        return redirect(url_for("admin.index"))
    if user.has_role(ROLE_VC):
        return redirect(url_for("evaluations.juror_home"))
    flash("Your account has no role assigned yet. Contact an administrator.", "warning")
    return redirect(url_for("routes.index"))


@bp.post("/view-as/<int:juror_id>")
@require_login
def view_as_juror(juror_id: int):
    """Admin-only preview of the juror experience."""
    from app.jury.modules.jurors.models import Juror

    user = g.current_user
    if not is_admin(user):
        abort(403)
    s = db_session()
    juror = s.get(Juror, juror_id)
    if not juror:
        abort(404)
    session["view_as_juror_id"] = juror.id
    record_event(s, actor=user, action="view_mode.enter", entity_type="Juror", entity_id=str(juror.id))
    s.commit()
    flash(f"Viewing the platform as {juror.name}.", "info")
    return redirect(url_for("evaluations.juror_home"))


@bp.post("/view-as/exit")
@require_login
def view_as_exit():
    juror_id = session.pop("view_as_juror_id", None)
    if juror_id:
        s = db_session()
        record_event(s, actor=g.current_user, action="view_mode.exit", entity_type="Juror", entity_id=str(juror_id))
        s.commit()
    return redirect(url_for("routes.dashboard"))
