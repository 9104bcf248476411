from __future__ import annotations

import hashlib
import logging
import secrets
import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for
from sqlalchemy import func
from werkzeug.security import check_password_hash, generate_password_hash

from app.jury.audit import record_event
from app.jury.db import db_session
from app.jury.models import PasswordResetToken, User

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

bp = Blueprint("auth", __name__)
logger = logging.getLogger(__name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds

PASSWORD_RESET_TTL = timedelta(hours=1)
MIN_PASSWORD_LENGTH = 8
RESET_REQUESTED_MESSAGE = "If an account exists with that email, a reset link has been sent."


class PasswordResetError(ValueError):
    pass


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    if request.path.startswith(("/static/", "/health", "/healthz", "/webhooks/")):
        return

    user_id = session.get("user_id")
    if not user_id:
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        return

    if not user or not user.is_active:
        session.pop("user_id", None)
        session.pop("view_as_juror_id", None)
        return
    g.current_user = user


def login_user(user: User) -> None:
    session.pop("view_as_juror_id", None)
    session["user_id"] = user.id


@bp.get("/login")
def login_get():
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt)


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get"))

    _record_attempt(ip)

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        current_app.logger.info("Login failed for %s (request_id=%s)", email, getattr(g, "request_id", None))
        flash("Invalid credentials.", "danger")
        return redirect(url_for("auth.login_get"))

    login_user(user)
    _login_attempts[ip].clear()
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    # Only allow local paths to avoid open redirects.
    if nxt.startswith("/") and not nxt.startswith("//"):
        return redirect(nxt)
    return redirect(url_for("routes.dashboard"))


@bp.get("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    session.pop("view_as_juror_id", None)
    return redirect(url_for("routes.index"))


# ---------- Password reset ----------
def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def password_reset_link(token: str, config: dict | None = None) -> str:
    config = config if config is not None else current_app.config
    base = (config.get("FRONTEND_URL") or "").rstrip("/")
    return f"{base}/auth/reset-password?token={token}"


def request_password_reset(s: "Session", email: str, config: dict | None = None, *, now: datetime | None = None) -> bool:
    """
    Email a one-hour reset link to the active account for this email.

    Returns whether an email went out. Callers must show the same message either way
    so the form cannot be used to discover accounts.
    """
    from app.jury.modules.communications.defaults import CATEGORY_PASSWORD_RESET
    from app.jury.modules.communications.service import send_email

    email = (email or "").strip().lower()
    user = s.query(User).filter(func.lower(User.email) == email).one_or_none() if email else None
    if user is None or not user.is_active:
        logger.info("Password reset requested for unknown or inactive account")
        return False

    now = now or datetime.utcnow()
    # Only the newest link works.
    s.query(PasswordResetToken).filter(
        PasswordResetToken.user_id == user.id, PasswordResetToken.used_at.is_(None)
    ).update({PasswordResetToken.used_at: now}, synchronize_session=False)

    token = secrets.token_urlsafe(32)
    s.add(PasswordResetToken(user_id=user.id, token_hash=_hash_token(token), expires_at=now + PASSWORD_RESET_TTL, created_at=now))
    s.flush()
    record_event(s, actor=None, action="auth.password_reset_requested", entity_type="User", entity_id=str(user.id))

    result = send_email(
        s,
        recipient_email=user.email,
        recipient_type="user",
        recipient_id=user.id,
        template_category=CATEGORY_PASSWORD_RESET,
        variables={
            "user_name": user.full_name or user.email.split("@")[0],
            "user_email": user.email,
            "reset_link": password_reset_link(token, config),
            "expiration_time": "1 hour",
        },
        prevent_duplicates=False,
        config=config,
    )
    if not result.ok:
        logger.warning("Password reset email for user id=%s failed: %s", user.id, result.error)
    return result.ok


def find_reset_token(s: "Session", token: str, *, now: datetime | None = None) -> PasswordResetToken:
    """Return the usable reset token row or raise PasswordResetError."""
    token = (token or "").strip()
    if not token:
        raise PasswordResetError("Reset link is missing its token.")
    row = s.query(PasswordResetToken).filter(PasswordResetToken.token_hash == _hash_token(token)).one_or_none()
    if row is None:
        raise PasswordResetError("This reset link is not valid.")
    if row.used_at is not None:
        raise PasswordResetError("This reset link has already been used.")
    if row.expires_at < (now or datetime.utcnow()):
        raise PasswordResetError("This reset link has expired. Please request a new one.")
    if not row.user.is_active:
        raise PasswordResetError("This account is deactivated.")
    return row


def reset_password(s: "Session", token: str, new_password: str, *, now: datetime | None = None) -> User:
    now = now or datetime.utcnow()
    row = find_reset_token(s, token, now=now)
    if len(new_password or "") < MIN_PASSWORD_LENGTH:
        raise PasswordResetError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    user = row.user
    user.password_hash = generate_password_hash(new_password)
    row.used_at = now
    record_event(s, actor=user, action="auth.password_reset", entity_type="User", entity_id=str(user.id))
    logger.info("Password reset completed for user id=%s", user.id)
    return user


@bp.get("/forgot-password")
def forgot_password_get():
    return render_template("auth/forgot_password.html")


@bp.post("/forgot-password")
def forgot_password_post():
    ip = request.remote_addr or "unknown"
    if _check_rate_limit(ip):
        flash("Too many attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.forgot_password_get"))
    _record_attempt(ip)

    s = db_session()
    request_password_reset(s, request.form.get("email") or "")
    s.commit()
    flash(RESET_REQUESTED_MESSAGE, "info")
    return redirect(url_for("auth.login_get"))


@bp.get("/reset-password")
def reset_password_get():
    s = db_session()
    token = (request.args.get("token") or "").strip()
    error = None
    try:
        find_reset_token(s, token)
    except PasswordResetError as e:
        error = str(e)
    return render_template("auth/reset_password.html", token=token, error=error)


@bp.post("/reset-password")
def reset_password_post():
    s = db_session()
    token = (request.form.get("token") or "").strip()
    password = request.form.get("password") or ""
    if password != (request.form.get("password_confirm") or ""):
        flash("Passwords do not match.", "danger")
        return redirect(url_for("auth.reset_password_get", token=token))
    try:
        reset_password(s, token, password)
    except PasswordResetError as e:
        flash(str(e), "danger")
        return redirect(url_for("auth.reset_password_get", token=token))
    s.commit()
    flash("Your password has been updated. Please sign in.", "success")
    return redirect(url_for("auth.login_get"))
