from flask import Blueprint, flash, g, redirect, render_template, request, url_for
from werkzeug.security import generate_password_hash

from app.jury.audit import AuditFilters, event_metadata, parse_filter_date, query_events, record_event
from app.jury.constants import ROUND_LABELS
from app.jury.db import db_session
from app.jury.models import Role, User
from app.jury.rbac import require_permission

bp = Blueprint("admin", __name__)

MIN_PASSWORD_LENGTH = 8


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/")
@require_permission("admin.view")
def index():
    from app.jury.modules.cohort.funnel import screening_funnel
    from app.jury.modules.cohort.service import cohort_deadlines, ensure_rounds, get_active_round, get_round_progress, get_settings
    from app.jury.modules.communications.service import communication_stats
    from app.jury.modules.jurors.models import Juror
    from app.jury.modules.startups.models import Startup

    s = db_session()
    settings = get_settings(s)
    ensure_rounds(s)
    s.commit()

    active = get_active_round(s)
    active_round = None
    if active is not None:
        active_round = {
            "name": active.name,
            "label": ROUND_LABELS[active.name],
            "progress": get_round_progress(s, active.name),
        }

    return render_template(
        "admin/index.html",
        settings=settings,
        deadlines=cohort_deadlines(s),
        round_labels=ROUND_LABELS,
        active_round=active_round,
        funnel=screening_funnel(s),
        email_stats=communication_stats(s),
        counts={
            "startups": s.query(Startup).count(),
            "jurors": s.query(Juror).count(),
            "active_jurors": s.query(Juror).filter(Juror.user_id.isnot(None)).count(),
        },
    )


@bp.get("/me")
@require_permission("admin.view")
def me():
    user = _current_user()
    role_keys = sorted({r.key for r in (user.roles or [])})
    perm_keys = sorted({p.key for r in (user.roles or []) for p in (r.permissions or [])})
    return render_template("admin/me.html", user=user, role_keys=role_keys, perm_keys=perm_keys)


# ---------- Users ----------
@bp.get("/users")
@require_permission("users.manage")
def users_list():
    from app.jury.modules.jurors.models import CommunityManager

    s = db_session()
    users = s.query(User).order_by(User.email.asc()).all()
    roles = s.query(Role).order_by(Role.key.asc()).all()
    managers = s.query(CommunityManager).order_by(CommunityManager.created_at.desc()).all()
    return render_template("admin/users/list.html", users=users, roles=roles, managers=managers)


@bp.post("/users/new")
@require_permission("users.manage")
def users_new_post():
    s = db_session()
    u = _current_user()
    email = (request.form.get("email") or "").strip().lower()
    full_name = (request.form.get("full_name") or "").strip() or None
    password = request.form.get("password") or ""
    role_key = (request.form.get("role") or "").strip()

    errors = []
    if not email or "@" not in email:
        errors.append("A valid email is required.")
    elif s.query(User).filter(User.email == email).one_or_none():
        errors.append("A user with this email already exists.")
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    role = s.query(Role).filter(Role.key == role_key).one_or_none()
    if role is None:
        errors.append("Choose a role.")
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("admin.users_list"))

    user = User(email=email, full_name=full_name, password_hash=generate_password_hash(password), is_active=True)
    user.roles.append(role)
    s.add(user)
    s.flush()
    record_event(
        s,
        actor=u,
        action="user.create",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": email, "role": role_key},
    )
    s.commit()
    flash("User created.", "success")
    return redirect(url_for("admin.users_list"))


@bp.post("/users/<int:user_id>/toggle")
@require_permission("users.manage")
def users_toggle_post(user_id: int):
    s = db_session()
    u = _current_user()
    user = s.get(User, user_id)
    if not user:
        flash("User not found.", "danger")
        return redirect(url_for("admin.users_list"))
    if user.id == u.id:
        flash("You cannot deactivate your own account.", "danger")
        return redirect(url_for("admin.users_list"))
    user.is_active = not user.is_active
    record_event(
        s,
        actor=u,
        action="user.activate" if user.is_active else "user.deactivate",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email},
    )
    s.commit()
    flash(f"{user.email} {'activated' if user.is_active else 'deactivated'}.", "success")
    return redirect(url_for("admin.users_list"))


# ---------- Community managers ----------
@bp.post("/community-managers/invite")
@require_permission("users.manage")
def community_manager_invite_post():
    from app.jury.modules.jurors.service import CM_TEXT_FIELDS, InvitationError, invite_community_manager, validate_cm_payload

    s = db_session()
    u = _current_user()
    payload = {k: request.form.get(k) for k in CM_TEXT_FIELDS}
    errors = validate_cm_payload(s, payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("admin.users_list"))
    try:
        cm = invite_community_manager(s, payload, u)
    except InvitationError as e:
        # The record stays so the invitation can be re-sent.
        s.commit()
        flash(f"Invitation not sent: {e}", "danger")
        return redirect(url_for("admin.users_list"))
    s.commit()
    flash(f"Invitation sent to {cm.email}.", "success")
    return redirect(url_for("admin.users_list"))


@bp.post("/community-managers/<int:cm_id>/resend")
@require_permission("users.manage")
def community_manager_resend_post(cm_id: int):
    from app.jury.modules.jurors.models import CommunityManager
    from app.jury.modules.jurors.service import InvitationError, resend_cm_invitation

    s = db_session()
    u = _current_user()
    cm = s.get(CommunityManager, cm_id)
    if cm is None:
        flash("Community manager not found.", "danger")
        return redirect(url_for("admin.users_list"))
    try:
        resend_cm_invitation(s, cm, u)
    except InvitationError as e:
        s.commit()
        flash(f"Invitation not sent: {e}", "danger")
        return redirect(url_for("admin.users_list"))
    s.commit()
    flash(f"Invitation re-sent to {cm.email}.", "success")
    return redirect(url_for("admin.users_list"))


@bp.get("/audit")
@require_permission("admin.view")
def audit_list():
    s = db_session()
    raw_from = (request.args.get("date_from") or "").strip()
    raw_to = (request.args.get("date_to") or "").strip()
    filters = AuditFilters(
        action=(request.args.get("action") or "").strip(),
        actor_email=(request.args.get("actor_email") or "").strip(),
        date_from=parse_filter_date(raw_from),
        date_to=parse_filter_date(raw_to),
    )
    if raw_from and not filters.date_from:
        flash("date_from must be YYYY-MM-DD", "danger")
    if raw_to and not filters.date_to:
        flash("date_to must be YYYY-MM-DD", "danger")

    events = query_events(s, filters)
    return render_template(
        "admin/audit/list.html",
        events=events,
        event_metadata=event_metadata,
        action=filters.action,
        actor_email=filters.actor_email,
        date_from=raw_from,
        date_to=raw_to,
    )
