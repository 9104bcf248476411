"""
Audit trail: every mutation appends an AuditEvent, and the admin audit page reads them back.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.jury.models import AuditEvent, User

AUDIT_PAGE_LIMIT = 200


def _request_context() -> tuple[str | None, str | None]:
    # Scripts and scheduled jobs record events without a request.
    if not has_request_context():
        return None, None
    return getattr(g, "request_id", None), request.remote_addr


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """Append an audit event; actor is None for system actions (webhooks, jobs, lifecycle sends)."""
    rid, client_ip = _request_context()
    ev = AuditEvent(
        request_id=request_id or rid,
        client_ip=client_ip,
        actor_user_id=actor.id if actor else None,
        actor_user_email=actor.email if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
    )
    s.add(ev)
    return ev


@dataclass(frozen=True)
class AuditFilters:
    action: str = ""
    actor_email: str = ""
    date_from: date | None = None
    date_to: date | None = None


def parse_filter_date(raw: str | None) -> date | None:
    raw = (raw or "").strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        return None


def query_events(s: Session, filters: AuditFilters, *, limit: int = AUDIT_PAGE_LIMIT) -> list[AuditEvent]:
    """Newest first. action and actor_email match as substrings; date_to is inclusive."""
    q = s.query(AuditEvent)
    if filters.action:
        q = q.filter(AuditEvent.action.like(f"%{filters.action}%"))
    if filters.actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{filters.actor_email.lower()}%"))
    if filters.date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(filters.date_from, time.min))
    if filters.date_to:
        q = q.filter(AuditEvent.created_at < datetime.combine(filters.date_to + timedelta(days=1), time.min))
    return q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(limit).all()


def event_metadata(ev: AuditEvent) -> dict[str, Any]:
    if not ev.metadata_json:
        return {}
    return json.loads(ev.metadata_json)
