"""
Communications service layer.
Resolves templates, renders variables, prevents duplicates and sends through Resend.
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from flask import current_app
from sqlalchemy.orm import Session

from app.jury.audit import record_event
from app.jury.modules.communications import resend_client
from app.jury.modules.communications.defaults import default_content_for, map_category_to_communication_type
from app.jury.modules.communications.models import EmailCommunication, EmailDeliveryEvent, EmailTemplate
from app.jury.modules.communications.variables import (
    detect_unreplaced_placeholders,
    normalize_variables,
    render_template_string,
    validate_template_variables,
)

if TYPE_CHECKING:
    from app.jury.models import User

logger = logging.getLogger(__name__)

SANDBOX_RECIPIENT = "delivered@resend.dev"
DUPLICATE_WINDOW = timedelta(hours=24)


@dataclass
class SendResult:
    communication: EmailCommunication | None
    sent: bool
    duplicate_of: int | None = None
    error: str | None = None
    warnings: list[str] | None = None

    @property
    def ok(self) -> bool:
        return self.sent or self.duplicate_of is not None


def content_hash(recipient_email: str, subject: str, body: str) -> str:
    return hashlib.sha256(f"{recipient_email}:{subject}:{body}".encode("utf-8")).hexdigest()


def get_from_address(config: dict) -> str:
    if config.get("TEST_MODE"):
        return config.get("RESEND_FROM_SANDBOX") or "Jury Evaluation <onboarding@resend.dev>"
    prod_from = (config.get("RESEND_FROM") or "").strip()
    if not prod_from:
        raise resend_client.ResendError("RESEND_FROM must be set for production email sending")
    return prod_from


def find_template(s: Session, *, template_id: int | None = None, category: str | None = None) -> EmailTemplate | None:
    if template_id:
        tpl = s.get(EmailTemplate, template_id)
        return tpl if tpl and tpl.is_active else None
    if category:
        return (
            s.query(EmailTemplate)
            .filter(EmailTemplate.category == category, EmailTemplate.is_active.is_(True))
            .order_by(EmailTemplate.created_at.desc(), EmailTemplate.id.desc())
            .first()
        )
    return None


def find_recent_duplicate(s: Session, recipient_email: str, digest: str, now: datetime | None = None) -> EmailCommunication | None:
    now = now or datetime.utcnow()
    return (
        s.query(EmailCommunication)
        .filter(
            EmailCommunication.content_hash == digest,
            EmailCommunication.recipient_email == recipient_email,
            EmailCommunication.created_at >= now - DUPLICATE_WINDOW,
            EmailCommunication.status != "failed",
        )
        .order_by(EmailCommunication.created_at.desc())
        .first()
    )


def _sandbox_html(original_recipient: str, body: str) -> str:
    return (
        '<div style="background-color:#fff3cd;border:1px solid #ffeaa7;padding:12px;margin-bottom:20px;border-radius:4px;">'
        f"<strong>SANDBOX MODE:</strong> This email would normally be sent to: <strong>{original_recipient}</strong>"
        f"</div>{body}"
    )


def send_email(
    s: Session,
    *,
    recipient_email: str,
    recipient_type: str | None = None,
    recipient_id: int | None = None,
    template_id: int | None = None,
    template_category: str | None = None,
    subject: str | None = None,
    body: str | None = None,
    variables: dict[str, Any] | None = None,
    communication_type: str | None = None,
    prevent_duplicates: bool = True,
    actor: "User | None" = None,
    config: dict | None = None,
) -> SendResult:
    """
    Render and send one email, tracking it as an EmailCommunication.

    Template resolution: explicit template id, then the newest active template of the category,
    then built-in default content for the category. Explicit subject/body win when no template
    is requested.
    """
    config = config if config is not None else current_app.config
    recipient_email = (recipient_email or "").strip()
    if not recipient_email:
        return SendResult(communication=None, sent=False, error="Recipient email is required.")

    template: EmailTemplate | None = None
    subject_t = subject or ""
    body_t = body or ""
    if template_id or template_category:
        template = find_template(s, template_id=template_id, category=template_category)
        if template:
            subject_t, body_t = template.subject_template, template.body_template
        else:
            logger.info("No active template for category=%s id=%s; using default content", template_category, template_id)
            fallback = default_content_for(template_category)
            subject_t, body_t = fallback["subject"], fallback["body"]

    vars_ = normalize_variables(variables)
    warnings: list[str] = []
    if template and template.variables:
        check = validate_template_variables(template.variables, vars_)
        warnings.extend(check.warnings)
        if check.missing:
            warnings.append("Missing variables: " + ", ".join(check.missing))

    rendered_subject = render_template_string(subject_t, vars_)
    rendered_body = render_template_string(body_t, vars_)
    leftovers = detect_unreplaced_placeholders(rendered_subject + rendered_body)
    if leftovers:
        warnings.append("Unreplaced placeholders: " + ", ".join(sorted(set(leftovers))))
        logger.warning("Email to %s has unreplaced placeholders: %s", recipient_email, leftovers)

    digest = content_hash(recipient_email, rendered_subject, rendered_body)
    test_mode = bool(config.get("TEST_MODE"))
    if prevent_duplicates and not test_mode:
        existing = find_recent_duplicate(s, recipient_email, digest)
        if existing:
            logger.info("Duplicate email prevented (existing id=%s)", existing.id)
            return SendResult(communication=existing, sent=False, duplicate_of=existing.id, warnings=warnings)

    now = datetime.utcnow()
    comm = EmailCommunication(
        recipient_email=recipient_email,
        recipient_type=recipient_type,
        recipient_id=recipient_id,
        template_id=template.id if template else None,
        template_category=template_category,
        subject=rendered_subject,
        body=rendered_body,
        communication_type=communication_type or map_category_to_communication_type(template_category),
        content_hash=digest,
        status="pending",
        created_at=now,
        updated_at=now,
    )
    s.add(comm)
    s.flush()

    actual_recipient = SANDBOX_RECIPIENT if test_mode else recipient_email
    try:
        from_address = get_from_address(config)
        client = resend_client.client_from_config(config)
        message_id = client.send_email(
            from_address=from_address,
            to=[actual_recipient],
            subject=f"[SANDBOX] {rendered_subject}" if test_mode else rendered_subject,
            html=_sandbox_html(recipient_email, rendered_body) if test_mode else rendered_body,
            idempotency_key=resend_client.idempotency_key_for(comm.id, digest),
        )
    except resend_client.ResendError as e:
        logger.error("Email send failed for communication id=%s: %s", comm.id, e)
        comm.status = "failed"
        comm.error_message = str(e)
        comm.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=actor,
            action="email.send_failed",
            entity_type="EmailCommunication",
            entity_id=str(comm.id),
            metadata={"recipient": recipient_email, "category": template_category, "error": str(e)},
        )
        return SendResult(communication=comm, sent=False, error=str(e), warnings=warnings)

    sent_at = datetime.utcnow()
    comm.status = "sent"
    comm.resend_email_id = message_id
    comm.sent_at = sent_at
    comm.updated_at = sent_at
    s.add(
        EmailDeliveryEvent(
            communication_id=comm.id,
            event_type="sent",
            raw_payload={"resend_id": message_id, "to": actual_recipient},
            timestamp=sent_at,
        )
    )
    record_event(
        s,
        actor=actor,
        action="email.send",
        entity_type="EmailCommunication",
        entity_id=str(comm.id),
        metadata={"recipient": recipient_email, "category": template_category, "test_mode": test_mode},
    )
    return SendResult(communication=comm, sent=True, warnings=warnings)


def communication_stats(s: Session) -> dict[str, int]:
    """Email counts by status (dashboard card)."""
    from sqlalchemy import func

    rows = s.query(EmailCommunication.status, func.count(EmailCommunication.id)).group_by(EmailCommunication.status).all()
    stats = {status: int(count) for status, count in rows}
    stats["total"] = sum(stats.values())
    return stats


def validate_template_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("name") or "").strip():
        errors.append("Name is required.")
    if not (payload.get("category") or "").strip():
        errors.append("Category is required.")
    if not (payload.get("subject_template") or "").strip():
        errors.append("Subject is required.")
    if not (payload.get("body_template") or "").strip():
        errors.append("Body is required.")
    stage = (payload.get("lifecycle_stage") or "").strip()
    if stage and stage not in ("screening", "pitching", "finals"):
        errors.append("Lifecycle stage must be screening, pitching or finals.")
    return errors


def _split_list(raw: Any) -> list[str]:
    if isinstance(raw, list):
        return [str(v).strip() for v in raw if str(v).strip()]
    return [v.strip() for v in str(raw or "").replace(";", ",").split(",") if v.strip()]


def save_template(s: Session, payload: dict, user: "User", template: EmailTemplate | None = None) -> EmailTemplate:
    """Create or update an email template."""
    now = datetime.utcnow()
    is_new = template is None
    if template is None:
        template = EmailTemplate(created_at=now)
        s.add(template)
    template.name = (payload.get("name") or "").strip()
    template.category = (payload.get("category") or "").strip()
    template.subject_template = (payload.get("subject_template") or "").strip()
    template.body_template = payload.get("body_template") or ""
    template.variables = _split_list(payload.get("variables"))
    template.lifecycle_stage = (payload.get("lifecycle_stage") or "").strip() or None
    template.auto_trigger_events = _split_list(payload.get("auto_trigger_events"))
    template.is_active = bool(payload.get("is_active"))
    template.updated_at = now
    s.flush()
    record_event(
        s,
        actor=user,
        action="email_template.create" if is_new else "email_template.edit",
        entity_type="EmailTemplate",
        entity_id=str(template.id),
        metadata={"name": template.name, "category": template.category, "is_active": template.is_active},
    )
    return template


def send_result_notifications(s: Session, *, actor: "User | None" = None, config: dict | None = None) -> dict[str, int]:
    """
    Email screening outcomes: shortlisted startups get the selection email, rejected ones the
    rejection email. Duplicate prevention keeps a second run from re-sending the same content.
    """
    from app.jury.modules.communications.defaults import CATEGORY_FOUNDER_REJECTION, CATEGORY_FOUNDER_SELECTION
    from app.jury.modules.startups.models import Startup

    counts = {"sent": 0, "skipped": 0, "failed": 0}
    categories = {"shortlisted": CATEGORY_FOUNDER_SELECTION, "rejected": CATEGORY_FOUNDER_REJECTION}
    startups = s.query(Startup).filter(Startup.status.in_(tuple(categories))).order_by(Startup.name.asc()).all()
    for st in startups:
        if not st.contact_email:
            counts["skipped"] += 1
            continue
        founders = st.founder_names or []
        result = send_email(
            s,
            recipient_email=st.contact_email,
            recipient_type="startup",
            recipient_id=st.id,
            template_category=categories[st.status],
            variables={
                "startup_name": st.name,
                "founder_name": founders[0] if founders else st.name,
                "feedback_summary": "",
            },
            actor=actor,
            config=config,
        )
        if result.sent:
            counts["sent"] += 1
        elif result.duplicate_of is not None:
            counts["skipped"] += 1
        else:
            counts["failed"] += 1
    logger.info("Result notifications: %s", counts)
    return counts
