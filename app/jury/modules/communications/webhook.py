"""
Resend delivery webhook receiver.

Resend signs webhooks with the Standard Webhooks scheme (svix-id / svix-timestamp /
svix-signature headers, HMAC-SHA256 over "{id}.{timestamp}.{body}").
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import time
from datetime import datetime, timezone
from typing import Any

from flask import Blueprint, current_app, request
from sqlalchemy.orm import Session

from app.jury.db import db_session
from app.jury.modules.communications.models import EmailCommunication, EmailDeliveryEvent

bp = Blueprint("webhooks", __name__)
logger = logging.getLogger(__name__)

TIMESTAMP_TOLERANCE_SECONDS = 5 * 60

EVENT_STATUS_MAP = {
    "email.sent": "sent",
    "email.delivered": "delivered",
    "email.delivery_delayed": "delivery_delayed",
    "email.bounced": "bounced",
    "email.complained": "complained",
    "email.opened": "opened",
    "email.clicked": "clicked",
}


class WebhookVerificationError(ValueError):
    pass


def _secret_bytes(secret: str) -> bytes:
    secret = secret.strip()
    if secret.startswith("whsec_"):
        try:
            return base64.b64decode(secret[len("whsec_"):], validate=True)
        except binascii.Error as e:
            raise WebhookVerificationError("Malformed webhook secret") from e
    return secret.encode("utf-8")


def sign_payload(secret: str, msg_id: str, timestamp: str, body: bytes) -> str:
    to_sign = f"{msg_id}.{timestamp}.".encode("utf-8") + body
    digest = hmac.new(_secret_bytes(secret), to_sign, hashlib.sha256).digest()
    return "v1," + base64.b64encode(digest).decode("ascii")


def verify_signature(secret: str, headers: Any, body: bytes, *, now: float | None = None) -> None:
    """Raise WebhookVerificationError unless one of the v1 signatures matches."""
    msg_id = headers.get("svix-id") or headers.get("webhook-id")
    timestamp = headers.get("svix-timestamp") or headers.get("webhook-timestamp")
    signature_header = headers.get("svix-signature") or headers.get("webhook-signature")
    if not msg_id or not timestamp or not signature_header:
        raise WebhookVerificationError("Missing webhook signature headers")
    try:
        ts = int(timestamp)
    except ValueError as e:
        raise WebhookVerificationError("Invalid webhook timestamp") from e
    now = time.time() if now is None else now
    if abs(now - ts) > TIMESTAMP_TOLERANCE_SECONDS:
        raise WebhookVerificationError("Webhook timestamp outside tolerance")

    expected = sign_payload(secret, msg_id, timestamp, body).split(",", 1)[1]
    for candidate in signature_header.split():
        version, _, sig = candidate.partition(",")
        if version == "v1" and hmac.compare_digest(sig, expected):
            return
    raise WebhookVerificationError("No matching webhook signature")


def event_time(payload: dict) -> datetime:
    """Naive UTC time of the event from its created_at, or now when absent/unparseable."""
    raw = payload.get("created_at")
    if isinstance(raw, str) and raw.strip():
        try:
            parsed = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
        except ValueError:
            logger.warning("Unparseable Resend created_at %r", raw)
        else:
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
            return parsed
    return datetime.utcnow()


def apply_delivery_event(s: Session, comm: EmailCommunication, event_type: str, payload: dict) -> str:
    """
    Record the event and move the communication's status/timestamps. Returns the resulting status.
    sent and delivery_delayed are recorded only; they arrive out of order and must not regress status.
    """
    status = EVENT_STATUS_MAP[event_type]
    data = payload.get("data") or {}
    at = event_time(payload)

    s.add(EmailDeliveryEvent(communication_id=comm.id, event_type=status, raw_payload=payload, timestamp=at))

    if status == "delivered":
        comm.status = status
        comm.delivered_at = at
    elif status == "bounced":
        comm.status = status
        comm.bounced_at = at
        bounce = data.get("bounce") or {}
        comm.error_message = bounce.get("message") or data.get("reason") or "Email bounced"
    elif status == "complained":
        comm.status = status
        comm.error_message = "Recipient marked as spam"
    elif status == "opened":
        # Never downgrade a click back to an open.
        if comm.status != "clicked":
            comm.status = status
        comm.opened_at = comm.opened_at or at
    elif status == "clicked":
        comm.status = status
        comm.clicked_at = at
        if not comm.opened_at:
            comm.opened_at = at
    else:
        return comm.status
    comm.updated_at = datetime.utcnow()
    return comm.status


@bp.post("/resend")
def resend_webhook():
    body = request.get_data(cache=True) or b""
    secret = (current_app.config.get("RESEND_WEBHOOK_SECRET") or "").strip()
    if secret:
        try:
            verify_signature(secret, request.headers, body)
        except WebhookVerificationError as e:
            logger.warning("Rejected Resend webhook: %s", e)
            return {"error": "Invalid signature"}, 401

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return {"error": "Invalid JSON payload"}, 400

    event_type = payload.get("type") or ""
    if event_type not in EVENT_STATUS_MAP:
        logger.info("Ignoring unhandled Resend event type %r", event_type)
        return {"message": "ignored", "type": event_type}, 200

    email_id = (payload.get("data") or {}).get("email_id")
    s = db_session()
    comm = None
    if email_id:
        comm = s.query(EmailCommunication).filter(EmailCommunication.resend_email_id == email_id).one_or_none()
    if comm is None:
        logger.info("Resend webhook for unknown email_id=%s", email_id)
        return {"message": "Communication not found"}, 200

    new_status = apply_delivery_event(s, comm, event_type, payload)
    s.commit()
    logger.info("Communication id=%s -> %s (%s)", comm.id, new_status, event_type)
    return {"success": True, "communication_id": comm.id, "status": new_status}, 200
