from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from flask import current_app
from sqlalchemy import func
from werkzeug.security import generate_password_hash

from app.jury.audit import record_event
from app.jury.modules.communications.defaults import CATEGORY_CM_INVITATION, CATEGORY_JUROR_INVITATION
from app.jury.modules.startups.service import is_valid_email, parse_int, parse_list

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.jury.models import User
    from app.jury.modules.communications.service import SendResult
    from app.jury.modules.jurors.models import CommunityManager, Juror

logger = logging.getLogger(__name__)

INVITATION_TTL = timedelta(days=7)
MIN_PASSWORD_LENGTH = 8

TEXT_FIELDS = ("name", "email", "job_title", "company", "linkedin_url", "calendly_link")
LIST_FIELDS = ("preferred_stages", "target_verticals", "preferred_regions")
LIMIT_FIELDS = ("evaluation_limit", "meeting_limit")


class InvitationError(RuntimeError):
    pass


@dataclass(frozen=True)
class TokenCheck:
    valid: bool
    juror: "Juror | None" = None
    expired_renewed: bool = False
    error: str | None = None


def find_juror_by_email(s: "Session", email: str) -> "Juror | None":
    from app.jury.modules.jurors.models import Juror

    return s.query(Juror).filter(func.lower(Juror.email) == (email or "").strip().lower()).first()


def validate_juror_payload(s: "Session", payload: dict, juror: "Juror | None" = None) -> list[str]:
    """Validate juror creation/update payload. Returns list of errors."""
    errors = []
    if not (payload.get("name") or "").strip():
        errors.append("Name is required.")
    email = (payload.get("email") or "").strip()
    if not email:
        errors.append("Email is required.")
    elif not is_valid_email(email):
        errors.append("Email is not a valid email address.")
    else:
        existing = find_juror_by_email(s, email)
        if existing is not None and (juror is None or existing.id != juror.id):
            errors.append("A juror with this email already exists.")
    for key in LIMIT_FIELDS:
        label = key.replace("_", " ").capitalize()
        try:
            value = parse_int(payload.get(key))
        except ValueError:
            errors.append(f"{label} must be a whole number.")
            continue
        if value is not None and value < 1:
            errors.append(f"{label} must be at least 1 (leave empty for the default).")
    return errors


def _apply_payload(juror: "Juror", payload: dict) -> dict[str, dict[str, Any]]:
    changes: dict[str, dict[str, Any]] = {}
    for key in TEXT_FIELDS:
        if key not in payload:
            continue
        new = (payload.get(key) or "").strip() or None
        if key == "email" and new:
            new = new.lower()
        if key in ("name", "email") and not new:
            continue
        if new != getattr(juror, key):
            changes[key] = {"old": getattr(juror, key), "new": new}
            setattr(juror, key, new)
    for key in LIST_FIELDS:
        if key not in payload:
            continue
        new_list = parse_list(payload.get(key))
        if new_list != (getattr(juror, key) or []):
            changes[key] = {"old": getattr(juror, key), "new": new_list}
            setattr(juror, key, new_list)
    for key in LIMIT_FIELDS:
        if key not in payload:
            continue
        new_int = parse_int(payload.get(key))
        if new_int != getattr(juror, key):
            changes[key] = {"old": getattr(juror, key), "new": new_int}
            setattr(juror, key, new_int)
    return changes


def create_juror(s: "Session", payload: dict, user: "User | None") -> "Juror":
    from app.jury.modules.jurors.models import Juror
    from app.jury.modules.lifecycle.workflow import trigger_workflow_event

    now = datetime.utcnow()
    juror = Juror(
        name=(payload.get("name") or "").strip(),
        email=(payload.get("email") or "").strip().lower(),
        created_at=now,
        updated_at=now,
    )
    _apply_payload(juror, payload)
    s.add(juror)
    s.flush()

    record_event(
        s,
        actor=user,
        action="juror.create",
        entity_type="Juror",
        entity_id=str(juror.id),
        metadata={"name": juror.name, "email": juror.email},
    )
    trigger_workflow_event(s, "juror", juror.id, "juror_created", {"juror_name": juror.name}, actor=user)
    return juror


def update_juror(s: "Session", juror: "Juror", payload: dict, user: "User") -> "Juror":
    changes = _apply_payload(juror, payload)
    juror.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="juror.edit",
        entity_type="Juror",
        entity_id=str(juror.id),
        metadata={"name": juror.name, "changes": changes},
    )
    return juror


def delete_juror(s: "Session", juror: "Juror", user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="juror.delete",
        entity_type="Juror",
        entity_id=str(juror.id),
        metadata={"name": juror.name, "email": juror.email},
    )
    s.delete(juror)


# ---------- Invitations ----------
def invitation_link(token: str, config: dict | None = None, *, path: str = "/signup/juror") -> str:
    config = config if config is not None else current_app.config
    base = (config.get("FRONTEND_URL") or "").rstrip("/")
    return f"{base}{path}?token={token}"


def _send_invitation_email(s: "Session", juror: "Juror", user: "User | None") -> "SendResult":
    from app.jury.modules.communications.service import send_email

    result = send_email(
        s,
        recipient_email=juror.email,
        recipient_type="juror",
        recipient_id=juror.id,
        template_category=CATEGORY_JUROR_INVITATION,
        variables={
            "juror_name": juror.name,
            "invitation_link": invitation_link(juror.invitation_token or ""),
            "invitation_expires_at": juror.invitation_expires_at.strftime("%B %d, %Y") if juror.invitation_expires_at else "",
        },
        # A re-sent invitation carries the same link, so it must not be blocked as a duplicate.
        prevent_duplicates=False,
        actor=user,
    )
    if not result.ok:
        raise InvitationError(result.error or "Invitation email could not be sent.")
    return result


def send_invitation(s: "Session", juror: "Juror", user: "User | None") -> "SendResult":
    """Issue a fresh token valid for 7 days and email the signup link."""
    if juror.user_id is not None:
        raise InvitationError(f"{juror.name} already has an account.")
    now = datetime.utcnow()
    juror.invitation_token = str(uuid.uuid4())
    juror.invitation_sent_at = now
    juror.invitation_expires_at = now + INVITATION_TTL
    juror.updated_at = now
    s.flush()
    record_event(s, actor=user, action="juror.invite", entity_type="Juror", entity_id=str(juror.id), metadata={"email": juror.email})
    return _send_invitation_email(s, juror, user)


def resend_invitation(s: "Session", juror: "Juror", user: "User | None") -> "SendResult":
    """Keep the existing token (so old links keep working) and push the expiry out 7 days."""
    if juror.user_id is not None:
        raise InvitationError(f"{juror.name} already has an account.")
    now = datetime.utcnow()
    if not juror.invitation_token:
        juror.invitation_token = str(uuid.uuid4())
    juror.invitation_sent_at = now
    juror.invitation_expires_at = now + INVITATION_TTL
    juror.updated_at = now
    s.flush()
    record_event(
        s, actor=user, action="juror.invite_resend", entity_type="Juror", entity_id=str(juror.id), metadata={"email": juror.email}
    )
    return _send_invitation_email(s, juror, user)


def validate_invitation_token(s: "Session", token: str, *, now: datetime | None = None) -> TokenCheck:
    from app.jury.modules.jurors.models import Juror

    token = (token or "").strip()
    if not token:
        return TokenCheck(valid=False, error="Invitation token is missing.")
    juror = s.query(Juror).filter(Juror.invitation_token == token).one_or_none()
    if juror is None:
        return TokenCheck(valid=False, error="Invalid invitation link.")
    if juror.user_id is not None:
        return TokenCheck(valid=False, juror=juror, error="This invitation has already been used.")
    now = now or datetime.utcnow()
    if juror.invitation_expires_at and juror.invitation_expires_at < now:
        try:
            resend_invitation(s, juror, None)
        except InvitationError as e:
            logger.warning("Could not renew expired invitation for juror id=%s: %s", juror.id, e)
            return TokenCheck(valid=False, juror=juror, error="This invitation has expired.")
        return TokenCheck(
            valid=False,
            juror=juror,
            expired_renewed=True,
            error="This invitation had expired. We've sent you a new one; please check your email.",
        )
    return TokenCheck(valid=True, juror=juror)


def complete_juror_signup(s: "Session", token: str, password: str, profile: dict | None = None) -> "User":
    """Create the juror's login, link it, and clear the invitation token."""
    from app.jury.models import Role, User
    from app.jury.modules.lifecycle.workflow import trigger_workflow_event
    from app.jury.rbac import ROLE_VC

    check = validate_invitation_token(s, token)
    if not check.valid or check.juror is None:
        raise InvitationError(check.error or "Invalid invitation.")
    juror = check.juror
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise InvitationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if s.query(User).filter(func.lower(User.email) == juror.email.lower()).one_or_none():
        raise InvitationError("An account with this email already exists. Please sign in instead.")
    role = s.query(Role).filter(Role.key == ROLE_VC).one_or_none()
    if role is None:
        raise InvitationError("Juror role is not configured. Contact an administrator.")

    profile = profile or {}
    now = datetime.utcnow()
    user = User(
        email=juror.email.lower(),
        password_hash=generate_password_hash(password),
        full_name=(profile.get("full_name") or "").strip() or juror.name,
        is_active=True,
        created_at=now,
    )
    user.roles.append(role)
    s.add(user)
    s.flush()

    juror.user_id = user.id
    juror.invitation_token = None
    juror.invitation_expires_at = None
    if "calendly_link" in profile:
        juror.calendly_link = (profile.get("calendly_link") or "").strip() or juror.calendly_link
    if "company" in profile:
        juror.company = (profile.get("company") or "").strip() or juror.company
    if "expertise" in profile:
        juror.target_verticals = parse_list(profile.get("expertise")) or juror.target_verticals
    if "preferred_stages" in profile:
        juror.preferred_stages = parse_list(profile.get("preferred_stages")) or juror.preferred_stages
    juror.updated_at = now

    record_event(s, actor=user, action="juror.signup", entity_type="Juror", entity_id=str(juror.id), metadata={"user_id": user.id})
    trigger_workflow_event(s, "juror", juror.id, "juror_signup_completed", {"juror_name": juror.name}, actor=user)
    logger.info("Juror id=%s completed signup (user id=%s)", juror.id, user.id)
    return user


# ---------- Community manager invitations ----------
CM_TEXT_FIELDS = ("name", "email", "organization", "job_title", "linkedin_url")


@dataclass(frozen=True)
class CmTokenCheck:
    valid: bool
    manager: "CommunityManager | None" = None
    error: str | None = None


def find_community_manager_by_email(s: "Session", email: str) -> "CommunityManager | None":
    from app.jury.modules.jurors.models import CommunityManager

    return s.query(CommunityManager).filter(func.lower(CommunityManager.email) == (email or "").strip().lower()).first()


def validate_cm_payload(s: "Session", payload: dict) -> list[str]:
    from app.jury.models import User

    errors = []
    if not (payload.get("name") or "").strip():
        errors.append("Name is required.")
    email = (payload.get("email") or "").strip().lower()
    if not email:
        errors.append("Email is required.")
    elif not is_valid_email(email):
        errors.append("Email is not a valid email address.")
    elif find_community_manager_by_email(s, email) is not None:
        errors.append("A community manager with this email already exists.")
    elif s.query(User).filter(func.lower(User.email) == email).first() is not None:
        errors.append("A user with this email already exists.")
    return errors


def _send_cm_invitation_email(s: "Session", cm: "CommunityManager", user: "User | None") -> "SendResult":
    from app.jury.modules.communications.service import send_email

    result = send_email(
        s,
        recipient_email=cm.email,
        recipient_type="community_manager",
        recipient_id=cm.id,
        template_category=CATEGORY_CM_INVITATION,
        variables={
            "cm_name": cm.name,
            "invitation_link": invitation_link(cm.invitation_token or "", path="/signup/cm"),
            "invitation_expires_at": cm.invitation_expires_at.strftime("%B %d, %Y") if cm.invitation_expires_at else "",
            "organization": cm.organization or "the programme",
            "job_title": cm.job_title or "",
        },
        prevent_duplicates=False,
        actor=user,
    )
    if not result.ok:
        raise InvitationError(result.error or "Invitation email could not be sent.")
    return result


def invite_community_manager(s: "Session", payload: dict, user: "User | None") -> "CommunityManager":
    """Create the community manager record and email a 7-day signup link."""
    from app.jury.modules.jurors.models import CommunityManager

    errors = validate_cm_payload(s, payload)
    if errors:
        raise InvitationError(" ".join(errors))
    now = datetime.utcnow()
    cm = CommunityManager(
        invitation_token=str(uuid.uuid4()),
        invitation_sent_at=now,
        invitation_expires_at=now + INVITATION_TTL,
        created_at=now,
        updated_at=now,
    )
    for key in CM_TEXT_FIELDS:
        setattr(cm, key, (payload.get(key) or "").strip() or None)
    cm.email = cm.email.lower()
    s.add(cm)
    s.flush()
    record_event(
        s, actor=user, action="cm.invite", entity_type="CommunityManager", entity_id=str(cm.id), metadata={"email": cm.email}
    )
    _send_cm_invitation_email(s, cm, user)
    return cm


def resend_cm_invitation(s: "Session", cm: "CommunityManager", user: "User | None") -> "SendResult":
    """Same token, expiry pushed out 7 days."""
    if cm.user_id is not None:
        raise InvitationError("Community manager already activated; no invitation needed.")
    now = datetime.utcnow()
    if not cm.invitation_token:
        cm.invitation_token = str(uuid.uuid4())
    cm.invitation_sent_at = now
    cm.invitation_expires_at = now + INVITATION_TTL
    cm.updated_at = now
    s.flush()
    record_event(
        s, actor=user, action="cm.invite_resend", entity_type="CommunityManager", entity_id=str(cm.id), metadata={"email": cm.email}
    )
    return _send_cm_invitation_email(s, cm, user)


def validate_cm_token(s: "Session", token: str, *, now: datetime | None = None) -> CmTokenCheck:
    from app.jury.modules.jurors.models import CommunityManager

    token = (token or "").strip()
    if not token:
        return CmTokenCheck(valid=False, error="Invitation token is missing.")
    cm = s.query(CommunityManager).filter(CommunityManager.invitation_token == token).one_or_none()
    if cm is None:
        return CmTokenCheck(valid=False, error="Invalid invitation token.")
    if cm.user_id is not None:
        return CmTokenCheck(valid=False, manager=cm, error="This invitation has already been used.")
    if cm.invitation_expires_at and cm.invitation_expires_at < (now or datetime.utcnow()):
        return CmTokenCheck(valid=False, manager=cm, error="This invitation has expired.")
    return CmTokenCheck(valid=True, manager=cm)


def complete_cm_signup(s: "Session", token: str, password: str, profile: dict | None = None) -> "User":
    """Create the cm-role login for an invited community manager."""
    from app.jury.models import Role, User
    from app.jury.rbac import ROLE_CM

    check = validate_cm_token(s, token)
    if not check.valid or check.manager is None:
        raise InvitationError(check.error or "Invalid invitation.")
    cm = check.manager
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise InvitationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if s.query(User).filter(func.lower(User.email) == cm.email.lower()).one_or_none():
        raise InvitationError("An account with this email already exists. Please sign in instead.")
    role = s.query(Role).filter(Role.key == ROLE_CM).one_or_none()
    if role is None:
        raise InvitationError("Community manager role is not configured. Contact an administrator.")

    profile = profile or {}
    now = datetime.utcnow()
    user = User(
        email=cm.email.lower(),
        password_hash=generate_password_hash(password),
        full_name=(profile.get("full_name") or "").strip() or cm.name,
        is_active=True,
        created_at=now,
    )
    user.roles.append(role)
    s.add(user)
    s.flush()

    cm.user_id = user.id
    cm.invitation_token = None
    cm.invitation_expires_at = None
    if "linkedin_url" in profile:
        cm.linkedin_url = (profile.get("linkedin_url") or "").strip() or cm.linkedin_url
    cm.updated_at = now

    record_event(s, actor=user, action="cm.signup", entity_type="CommunityManager", entity_id=str(cm.id), metadata={"user_id": user.id})
    logger.info("Community manager id=%s completed signup (user id=%s)", cm.id, user.id)
    return user
