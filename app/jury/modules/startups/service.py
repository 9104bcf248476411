from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.jury.audit import record_event
from app.jury.constants import CURRENCIES, STAGES

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.jury.models import User
    from app.jury.modules.startups.models import Startup


VALID_STATUSES = (
    "pending",
    "under_review",
    "shortlisted",
    "selected",
    "rejected",
    "waitlisted",
    "finalist",
    "winner",
)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

INT_FIELDS = ("founded_year", "team_size", "funding_goal", "funding_raised", "internal_score")
TEXT_FIELDS = (
    "name",
    "description",
    "contact_email",
    "contact_phone",
    "industry",
    "stage",
    "location",
    "country",
    "region",
    "other_vertical_description",
    "business_model",
    "investment_currency",
    "website",
    "pitch_deck_url",
    "demo_url",
    "linkedin_url",
)
LIST_FIELDS = ("regions", "verticals", "founder_names")


def is_valid_email(value: str | None) -> bool:
    return bool(value and EMAIL_RE.match(value.strip()))


def parse_int(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    value = str(value).strip()
    if not value:
        return None
    return int(value)


def parse_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    text = str(value)
    parts = text.split(";") if ";" in text else text.split(",")
    return [v.strip() for v in parts if v.strip()]


def validate_startup_payload(payload: dict) -> list[str]:
    """Validate startup creation/update payload. Returns list of errors."""
    errors = []
    if not (payload.get("name") or "").strip():
        errors.append("Name is required.")
    email = (payload.get("contact_email") or "").strip()
    if not email:
        errors.append("Contact email is required.")
    elif not is_valid_email(email):
        errors.append("Contact email is not a valid email address.")
    if not (payload.get("description") or "").strip():
        errors.append("Description is required.")

    stage = (payload.get("stage") or "").strip()
    if stage and stage not in STAGES:
        errors.append(f"Invalid stage. Must be one of: {', '.join(STAGES)}")
    status = (payload.get("status") or "").strip()
    if status and status not in VALID_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    currency = (payload.get("investment_currency") or "").strip()
    if currency and currency not in CURRENCIES:
        errors.append(f"Invalid currency. Must be one of: {', '.join(CURRENCIES)}")

    for key in INT_FIELDS:
        try:
            parse_int(payload.get(key))
        except ValueError:
            errors.append(f"{key.replace('_', ' ').capitalize()} must be a whole number.")
    return errors


def _apply_payload(startup: "Startup", payload: dict) -> dict[str, dict[str, Any]]:
    changes: dict[str, dict[str, Any]] = {}
    for key in TEXT_FIELDS:
        if key not in payload:
            continue
        new = (payload.get(key) or "").strip() or None
        if key == "contact_email" and new:
            new = new.lower()
        if key == "name" and not new:
            continue
        if new != getattr(startup, key):
            changes[key] = {"old": getattr(startup, key), "new": new}
            setattr(startup, key, new)
    for key in INT_FIELDS:
        if key not in payload:
            continue
        new = parse_int(payload.get(key))
        if new != getattr(startup, key):
            changes[key] = {"old": getattr(startup, key), "new": new}
            setattr(startup, key, new)
    for key in LIST_FIELDS:
        if key not in payload:
            continue
        new = parse_list(payload.get(key))
        if new != (getattr(startup, key) or []):
            changes[key] = {"old": getattr(startup, key), "new": new}
            setattr(startup, key, new)
    return changes


def create_startup(s: "Session", payload: dict, user: "User | None") -> "Startup":
    """Create a new startup."""
    from app.jury.modules.startups.models import Startup

    now = datetime.utcnow()
    startup = Startup(
        name=(payload.get("name") or "").strip(),
        status=(payload.get("status") or "pending").strip() or "pending",
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id if user else None,
        updated_by_user_id=user.id if user else None,
    )
    _apply_payload(startup, {k: v for k, v in payload.items() if k != "status"})
    s.add(startup)
    s.flush()

    record_event(
        s,
        actor=user,
        action="startup.create",
        entity_type="Startup",
        entity_id=str(startup.id),
        metadata={"name": startup.name, "status": startup.status},
    )
    return startup


def update_startup(s: "Session", startup: "Startup", payload: dict, user: "User | None") -> "Startup":
    """Update an existing startup. Moving to shortlisted notifies the founders."""
    changes = _apply_payload(startup, payload)

    old_status = startup.status
    new_status = (payload.get("status") or "").strip()
    if new_status and new_status != old_status:
        changes["status"] = {"old": old_status, "new": new_status}
        startup.status = new_status

    startup.updated_at = datetime.utcnow()
    startup.updated_by_user_id = user.id if user else None

    record_event(
        s,
        actor=user,
        action="startup.edit",
        entity_type="Startup",
        entity_id=str(startup.id),
        metadata={"name": startup.name, "changes": changes},
    )

    if new_status == "shortlisted" and old_status != "shortlisted":
        from app.jury.modules.lifecycle.orchestrator import handle_lifecycle_event

        handle_lifecycle_event(
            s,
            "startup",
            startup.id,
            "startup_selected_for_pitching",
            {"startup_name": startup.name},
            actor=user,
        )
    return startup


def delete_startup(s: "Session", startup: "Startup", user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="startup.delete",
        entity_type="Startup",
        entity_id=str(startup.id),
        metadata={"name": startup.name},
    )
    s.delete(startup)


def find_startup_by_name(s: "Session", name: str) -> "Startup | None":
    from sqlalchemy import func

    from app.jury.modules.startups.models import Startup

    return s.query(Startup).filter(func.lower(Startup.name) == name.strip().lower()).first()
