"""
Evaluation reminders for jurors with outstanding work in the active round, and
registration reminders for invited jurors who never signed up.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.jury.constants import ROUND_LABELS
from app.jury.modules.communications.defaults import CATEGORY_JUROR_LOGIN_REMINDER, CATEGORY_JUROR_REMINDER
from app.jury.modules.communications.models import EmailCommunication
from app.jury.modules.communications.service import send_email
from app.jury.modules.evaluations.jury_status import STATUS_COMPLETED, STATUS_INACTIVE, round_progress

if TYPE_CHECKING:
    from app.jury.models import User

logger = logging.getLogger(__name__)

REMINDER_THROTTLE = timedelta(days=7)
LOGIN_REMINDER_AFTER = timedelta(days=3)
LOGIN_REMINDER_COOLDOWN = timedelta(days=2)


@dataclass
class ReminderRun:
    round_name: str | None
    sent: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"round": self.round_name, "sent": self.sent, "skipped": self.skipped, "errors": len(self.errors)}


def recently_reminded(s: Session, email: str, now: datetime) -> bool:
    lowered = func.lower(EmailCommunication.subject)
    hit = (
        s.query(EmailCommunication.id)
        .filter(
            EmailCommunication.recipient_email == email,
            EmailCommunication.created_at >= now - REMINDER_THROTTLE,
            EmailCommunication.status != "failed",
            or_(lowered.contains("reminder"), lowered.contains("evaluation")),
        )
        .first()
    )
    return hit is not None


def send_evaluation_reminders(
    s: Session,
    config: dict,
    *,
    actor: "User | None" = None,
    now: datetime | None = None,
) -> ReminderRun:
    from app.jury.modules.cohort.service import get_active_round

    now = now or datetime.utcnow()
    active = get_active_round(s)
    if active is None:
        logger.info("No active round; no reminders sent")
        return ReminderRun(round_name=None)

    run = ReminderRun(round_name=active.name)
    test_mode = bool(config.get("TEST_MODE"))
    login_link = (config.get("FRONTEND_URL") or "").rstrip("/") + "/auth/login"

    for juror, progress, status in round_progress(s, active.name):
        if status in (STATUS_INACTIVE, STATUS_COMPLETED):
            run.skipped += 1
            continue
        if not test_mode and recently_reminded(s, juror.email, now):
            logger.info("Reminder throttled for juror id=%s", juror.id)
            run.skipped += 1
            continue

        result = send_email(
            s,
            recipient_email=juror.email,
            recipient_type="juror",
            recipient_id=juror.id,
            template_category=CATEGORY_JUROR_REMINDER,
            variables={
                "juror_name": juror.name,
                "round_name": ROUND_LABELS[active.name],
                "completion_rate": progress.completion_rate,
                "pending_count": progress.assigned - progress.completed,
                "login_link": login_link,
            },
            actor=actor,
            config=config,
        )
        if result.sent:
            run.sent += 1
        elif result.duplicate_of is not None:
            run.skipped += 1
        else:
            run.errors.append(f"{juror.email}: {result.error}")

    logger.info("Reminders for %s: %s", active.name, run.as_dict())
    return run


def login_reminder_candidates(s: Session, now: datetime) -> list:
    """Invited at least 3 days ago, still not signed up, invitation not yet expired."""
    from app.jury.modules.jurors.models import Juror

    return (
        s.query(Juror)
        .filter(
            Juror.user_id.is_(None),
            Juror.invitation_token.isnot(None),
            Juror.invitation_sent_at <= now - LOGIN_REMINDER_AFTER,
            Juror.invitation_expires_at > now,
        )
        .order_by(Juror.invitation_sent_at.asc())
        .all()
    )


def recently_sent_login_reminder(s: Session, email: str, now: datetime) -> bool:
    hit = (
        s.query(EmailCommunication.id)
        .filter(
            EmailCommunication.recipient_email == email,
            EmailCommunication.template_category == CATEGORY_JUROR_LOGIN_REMINDER,
            EmailCommunication.created_at >= now - LOGIN_REMINDER_COOLDOWN,
            EmailCommunication.status != "failed",
        )
        .first()
    )
    return hit is not None


def send_login_reminders(
    s: Session,
    config: dict,
    *,
    actor: "User | None" = None,
    now: datetime | None = None,
) -> ReminderRun:
    """Nudge invited jurors to finish registration, at most once every 2 days each."""
    from app.jury.modules.jurors.service import invitation_link

    now = now or datetime.utcnow()
    run = ReminderRun(round_name=None)
    for juror in login_reminder_candidates(s, now):
        if recently_sent_login_reminder(s, juror.email, now):
            run.skipped += 1
            continue
        result = send_email(
            s,
            recipient_email=juror.email,
            recipient_type="juror",
            recipient_id=juror.id,
            template_category=CATEGORY_JUROR_LOGIN_REMINDER,
            variables={
                "juror_name": juror.name,
                "days_since_invitation": (now - juror.invitation_sent_at).days,
                "magic_link": invitation_link(juror.invitation_token or "", config),
                "expiry_date": juror.invitation_expires_at.strftime("%B %d, %Y"),
            },
            prevent_duplicates=False,
            actor=actor,
            config=config,
        )
        if result.sent:
            run.sent += 1
        else:
            run.errors.append(f"{juror.email}: {result.error}")

    logger.info("Login reminders: %s", run.as_dict())
    return run
