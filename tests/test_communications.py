"""Tests for email sending, templates, result notifications, reminders and the Resend webhook."""
import base64
import json
import time
from datetime import datetime, timedelta

import pytest
from conftest import csrf, login, make_juror, make_juror_user, make_startup

from app.jury.db import session_scope
from app.jury.modules.assignments.service import assign_juror
from app.jury.modules.cohort.service import ensure_rounds
from app.jury.modules.communications import resend_client
from app.jury.modules.communications.models import EmailCommunication, EmailDeliveryEvent, EmailTemplate
from app.jury.modules.communications.reminders import send_evaluation_reminders, send_login_reminders
from app.jury.modules.communications.service import (
    get_from_address,
    save_template,
    send_email,
    send_result_notifications,
)
from app.jury.modules.communications.variables import (
    normalize_variables,
    render_template_string,
    validate_template_variables,
)
from app.jury.modules.communications.webhook import WebhookVerificationError, event_time, sign_payload, verify_signature

WEBHOOK_SECRET = "whsec_" + base64.b64encode(b"super-secret-signing-key").decode("ascii")


def test_render_leaves_unknown_placeholders():
    out = render_template_string("Hi {{ juror_name }}, see {{login_link}} and {{missing}}", {"juror_name": "Ana", "login_link": "/x"})
    assert out == "Hi Ana, see /x and {{missing}}"


def test_normalize_variables_fills_aliases():
    out = normalize_variables({"vc_name": "Ana", "founder_name": "Li"})
    assert out["juror_name"] == "Ana"
    assert out["founder_first_name"] == "Li"


def test_validate_template_variables():
    check = validate_template_variables(["juror_name", "round_name", "vc_count"], {"juror_name": "", "juror_count": 3})
    assert check.missing == ["round_name"]
    assert check.warnings == ["Variable 'juror_name' is empty"]
    assert not check.is_valid


def test_from_address_requires_config():
    assert get_from_address({"RESEND_FROM": "Jury <j@x.test>"}) == "Jury <j@x.test>"
    assert "resend.dev" in get_from_address({"TEST_MODE": True})
    with pytest.raises(resend_client.ResendError):
        get_from_address({})


def test_send_email_uses_default_content_and_records_delivery(app, fake_resend):
    with app.app_context(), session_scope(app) as s:
        result = send_email(
            s,
            recipient_email="ana@fund.test",
            recipient_type="juror",
            template_category="juror-reminder",
            variables={"juror_name": "Ana", "round_name": "Screening", "completion_rate": 50, "pending_count": 2, "login_link": "http://jury.test/auth/login"},
        )
        assert result.sent
        comm = result.communication
        assert comm.status == "sent"
        assert comm.resend_email_id == "re_1"
        assert comm.subject == "Reminder: 2 evaluations pending - Screening"
        assert comm.communication_type == "under-review"
        assert s.query(EmailDeliveryEvent).filter_by(communication_id=comm.id, event_type="sent").count() == 1
    assert fake_resend.sent[0]["to"] == ["ana@fund.test"]
    assert fake_resend.sent[0]["from"] == "Jury <jury@example.com>"


def test_duplicate_within_24h_is_not_resent(app, fake_resend):
    with app.app_context(), session_scope(app) as s:
        first = send_email(s, recipient_email="a@x.test", subject="Hello", body="<p>Same</p>")
        second = send_email(s, recipient_email="a@x.test", subject="Hello", body="<p>Same</p>")
        assert not second.sent
        assert second.duplicate_of == first.communication.id
        assert second.ok
        third = send_email(s, recipient_email="a@x.test", subject="Hello", body="<p>Same</p>", prevent_duplicates=False)
        assert third.sent
    assert len(fake_resend.sent) == 2


def test_failed_send_is_marked_and_retry_allowed(app, fake_resend):
    fake_resend.fail_with = "HTTP 422 from Resend: invalid to"
    with app.app_context(), session_scope(app) as s:
        result = send_email(s, recipient_email="a@x.test", subject="Hello", body="Body")
        assert not result.sent
        assert result.communication.status == "failed"
        assert "422" in result.communication.error_message
        fake_resend.fail_with = None
        retry = send_email(s, recipient_email="a@x.test", subject="Hello", body="Body")
        assert retry.sent


class _Response:
    def __init__(self, payload):
        self._raw = json.dumps(payload).encode()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def read(self):
        return self._raw


def test_resend_client_wraps_timeouts(monkeypatch):
    calls = []

    def timeout(req, timeout):
        calls.append(req)
        raise TimeoutError("The read operation timed out")

    monkeypatch.setattr(resend_client.urllib.request, "urlopen", timeout)
    monkeypatch.setattr(resend_client.time, "sleep", lambda _s: None)
    client = resend_client.ResendClient(api_key="re_test")
    with pytest.raises(resend_client.ResendError, match="timed out"):
        client.send_email(from_address="a@x.test", to=["b@x.test"], subject="S", html="H", idempotency_key="comm-1-abc")
    assert len(calls) == 3
    assert {r.get_header("Idempotency-key") for r in calls} == {"comm-1-abc"}


def test_resend_client_sends_idempotency_key(monkeypatch):
    seen = {}

    def ok(req, timeout):
        seen["key"] = req.get_header("Idempotency-key")
        seen["body"] = json.loads(req.data)
        return _Response({"id": "re_123"})

    monkeypatch.setattr(resend_client.urllib.request, "urlopen", ok)
    client = resend_client.ResendClient(api_key="re_test")
    assert client.send_email(from_address="a@x.test", to=["b@x.test"], subject="S", html="H", idempotency_key="k1") == "re_123"
    assert seen == {"key": "k1", "body": {"from": "a@x.test", "to": ["b@x.test"], "subject": "S", "html": "H"}}


def test_send_timeout_marks_communication_failed(app, monkeypatch):
    def timeout(req, timeout):
        raise TimeoutError("The read operation timed out")

    monkeypatch.setattr(resend_client, "client_from_config", lambda config: resend_client.ResendClient(api_key="re_test"))
    monkeypatch.setattr(resend_client.urllib.request, "urlopen", timeout)
    monkeypatch.setattr(resend_client.time, "sleep", lambda _s: None)
    with app.app_context(), session_scope(app) as s:
        result = send_email(s, recipient_email="a@x.test", subject="Hello", body="Body")
        assert not result.sent
        assert result.communication.status == "failed"
        assert "timed out" in result.communication.error_message


def test_send_passes_idempotency_key_per_communication(app, fake_resend):
    with app.app_context(), session_scope(app) as s:
        result = send_email(s, recipient_email="a@x.test", subject="Hello", body="Body")
        key = fake_resend.sent[0]["idempotency_key"]
        assert key == f"comm-{result.communication.id}-{result.communication.content_hash[:32]}"


def test_test_mode_redirects_to_sandbox(app, fake_resend):
    app.config["TEST_MODE"] = True
    with app.app_context(), session_scope(app) as s:
        send_email(s, recipient_email="founder@startup.test", subject="Results", body="<p>Hi</p>")
        send_email(s, recipient_email="founder@startup.test", subject="Results", body="<p>Hi</p>")
        comms = s.query(EmailCommunication).all()
        assert [c.recipient_email for c in comms] == ["founder@startup.test"] * 2
    # Duplicate prevention is off in test mode.
    assert len(fake_resend.sent) == 2
    assert fake_resend.sent[0]["to"] == ["delivered@resend.dev"]
    assert fake_resend.sent[0]["subject"] == "[SANDBOX] Results"
    assert "founder@startup.test" in fake_resend.sent[0]["html"]


def test_active_template_overrides_default(app, fake_resend):
    with app.app_context(), session_scope(app) as s:
        save_template(
            s,
            {
                "name": "Selection v2",
                "category": "founder_selection",
                "subject_template": "{{startup_name}} made the pitch round",
                "body_template": "<p>Dear {{founder_name}}</p>",
                "variables": "startup_name, founder_name",
                "is_active": True,
            },
            None,
        )
        result = send_email(
            s,
            recipient_email="f@x.test",
            template_category="founder_selection",
            variables={"startup_name": "Orbit", "founder_first_name": "Ana"},
        )
        assert result.communication.subject == "Orbit made the pitch round"
        assert result.communication.template_id is not None
    assert fake_resend.sent[0]["html"] == "<p>Dear Ana</p>"


def test_save_template_splits_lists(app):
    with session_scope(app) as s:
        tpl = save_template(
            s,
            {
                "name": "Pitch invite",
                "category": "pitch_scheduling",
                "subject_template": "Pitch",
                "body_template": "Body",
                "variables": "startup_name; founder_name",
                "lifecycle_stage": "pitching",
                "auto_trigger_events": "screening_results_ready, pitch_scheduled",
                "is_active": False,
            },
            None,
        )
        assert tpl.variables == ["startup_name", "founder_name"]
        assert tpl.auto_trigger_events == ["screening_results_ready", "pitch_scheduled"]
        assert tpl.is_active is False


def test_result_notifications(app, fake_resend):
    with app.app_context(), session_scope(app) as s:
        make_startup(s, "Chosen", status="shortlisted", founder_names=["Ana Costa"])
        make_startup(s, "Declined", status="rejected")
        make_startup(s, "Waiting", status="pending")
        counts = send_result_notifications(s)
        assert counts == {"sent": 2, "skipped": 0, "failed": 0}
        again = send_result_notifications(s)
        assert again == {"sent": 0, "skipped": 2, "failed": 0}
        cats = sorted(c.template_category for c in s.query(EmailCommunication).all())
        assert cats == ["founder_rejection", "founder_selection"]
    assert {m["to"][0] for m in fake_resend.sent} == {"chosen@startup.test", "declined@startup.test"}


def _reminder_setup(s):
    ensure_rounds(s)
    a, b = make_startup(s, "A"), make_startup(s, "B")
    pending = make_juror(s, "Pending Juror")
    make_juror_user(s, pending)
    no_account = make_juror(s, "No Account")
    for j in (pending, no_account):
        assign_juror(s, j, a, "screening", None)
        assign_juror(s, j, b, "screening", None)
    return pending


def test_reminders_skip_inactive_and_throttle(app, fake_resend):
    with app.app_context(), session_scope(app) as s:
        _reminder_setup(s)
        run = send_evaluation_reminders(s, app.config)
        assert run.round_name == "screening"
        assert (run.sent, run.skipped, run.errors) == (1, 1, [])
        assert fake_resend.sent[0]["subject"] == "Reminder: 2 evaluations pending - Screening"
        assert "http://jury.test/auth/login" in fake_resend.sent[0]["html"]

        again = send_evaluation_reminders(s, app.config)
        assert (again.sent, again.skipped) == (0, 2)

        for comm in s.query(EmailCommunication).all():
            comm.created_at = datetime.utcnow() - timedelta(days=8)
        s.flush()
        later = send_evaluation_reminders(s, app.config)
        assert later.sent == 1


def test_reminders_without_active_round(app):
    with app.app_context(), session_scope(app) as s:
        run = send_evaluation_reminders(s, app.config)
        assert run.round_name is None
        assert run.as_dict()["sent"] == 0


def _invited(s, name, sent_days_ago, expires_in_days=4):
    now = datetime.utcnow()
    j = make_juror(s, name)
    j.invitation_token = f"tok-{name.split()[0].lower()}"
    j.invitation_sent_at = now - timedelta(days=sent_days_ago)
    j.invitation_expires_at = now + timedelta(days=expires_in_days)
    s.flush()
    return j


def test_login_reminders_target_stale_invitations(app, fake_resend):
    with app.app_context(), session_scope(app) as s:
        _invited(s, "Stale Juror", sent_days_ago=4)
        _invited(s, "Fresh Juror", sent_days_ago=1)
        _invited(s, "Expired Juror", sent_days_ago=8, expires_in_days=-1)
        signed_up = _invited(s, "Active Juror", sent_days_ago=5)
        make_juror_user(s, signed_up)

        run = send_login_reminders(s, app.config)
        assert (run.sent, run.skipped, run.errors) == (1, 0, [])
        msg = fake_resend.sent[0]
        assert msg["to"] == ["stale.juror@fund.test"]
        assert msg["subject"] == "Complete Your Registration"
        assert "http://jury.test/signup/juror?token=tok-stale" in msg["html"]
        assert "4 days ago" in msg["html"]


def test_login_reminders_cool_down_for_two_days(app, fake_resend):
    with app.app_context(), session_scope(app) as s:
        _invited(s, "Stale Juror", sent_days_ago=4)
        assert send_login_reminders(s, app.config).sent == 1
        again = send_login_reminders(s, app.config)
        assert (again.sent, again.skipped) == (0, 1)

        later = send_login_reminders(s, app.config, now=datetime.utcnow() + timedelta(days=2, hours=1))
        assert later.sent == 1
    assert len(fake_resend.sent) == 2


def test_login_reminder_route(app, client, fake_resend):
    with session_scope(app) as s:
        _invited(s, "Stale Juror", sent_days_ago=4)
    login(client)
    r = client.post("/admin/communications/login-reminders", data={"csrf_token": csrf(client)}, follow_redirects=True)
    assert b"Registration reminders: 1 sent, 0 skipped, 0 error(s)." in r.data
    assert len(fake_resend.sent) == 1


def test_send_route_with_custom_body(app, client, fake_resend):
    with session_scope(app) as s:
        jid = make_juror(s).id
    login(client)
    r = client.post(
        "/admin/communications/send",
        data={"csrf_token": csrf(client), "recipient_type": "juror", "recipient_id": str(jid), "subject": "Hello {{juror_name}}", "body": "<p>Hi</p>"},
        follow_redirects=True,
    )
    assert b"Email sent to jane.investor@fund.test" in r.data
    assert fake_resend.sent[0]["subject"] == "Hello Jane Investor"


def test_send_route_validates_input(client):
    login(client)
    r = client.post(
        "/admin/communications/send",
        data={"csrf_token": csrf(client), "recipient_type": "investor", "recipient_id": "1"},
        follow_redirects=True,
    )
    assert b"Choose a startup or juror recipient." in r.data


def test_template_routes(app, client):
    login(client)
    assert client.get("/admin/communications/templates").status_code == 200
    assert client.get("/admin/communications/templates/new?category=founder_selection").status_code == 200
    r = client.post(
        "/admin/communications/templates/new",
        data={"csrf_token": csrf(client), "name": "", "category": "x", "subject_template": "s", "body_template": "b"},
        follow_redirects=True,
    )
    assert b"Name is required." in r.data
    r = client.post(
        "/admin/communications/templates/new",
        data={"csrf_token": csrf(client), "name": "Reminder", "category": "juror-reminder", "subject_template": "s", "body_template": "b", "is_active": "1"},
        follow_redirects=True,
    )
    assert b"Template created." in r.data
    with session_scope(app) as s:
        tpl = s.query(EmailTemplate).one()
        assert tpl.is_active
    assert client.get(f"/admin/communications/templates/{tpl.id}/edit").status_code == 200
    assert client.get("/admin/communications").status_code == 200


def test_result_route_requires_send_permission(app, client):
    from conftest import make_juror_user as _user

    with session_scope(app) as s:
        _user(s, make_juror(s))
    login(client, "jane.investor@fund.test", "juror-pass")
    assert client.post("/admin/communications/results", data={"csrf_token": csrf(client)}).status_code == 403


# ---------- Webhook ----------
def _sent_comm(app):
    with app.app_context(), session_scope(app) as s:
        result = send_email(s, recipient_email="a@x.test", subject="Hello", body="Body")
        return result.communication.id, result.communication.resend_email_id


def _post_event(client, event_type, email_id, secret=None, **data):
    body = json.dumps({"type": event_type, "created_at": "2026-01-01T00:00:00Z", "data": {"email_id": email_id, **data}}).encode()
    headers = {}
    if secret:
        ts = str(int(time.time()))
        headers = {"svix-id": "msg_1", "svix-timestamp": ts, "svix-signature": sign_payload(secret, "msg_1", ts, body)}
    return client.post("/webhooks/resend", data=body, headers=headers, content_type="application/json")


def test_verify_signature():
    body = b'{"type":"email.sent"}'
    ts = str(int(time.time()))
    headers = {"svix-id": "msg_1", "svix-timestamp": ts, "svix-signature": "v1,bogus " + sign_payload(WEBHOOK_SECRET, "msg_1", ts, body)}
    verify_signature(WEBHOOK_SECRET, headers, body)
    with pytest.raises(WebhookVerificationError, match="tolerance"):
        verify_signature(WEBHOOK_SECRET, headers, body, now=time.time() + 600)
    with pytest.raises(WebhookVerificationError, match="No matching"):
        verify_signature(WEBHOOK_SECRET, headers, body + b" ")
    with pytest.raises(WebhookVerificationError, match="Missing"):
        verify_signature(WEBHOOK_SECRET, {}, body)


def test_webhook_rejects_bad_signature(app, client):
    app.config["RESEND_WEBHOOK_SECRET"] = WEBHOOK_SECRET
    r = client.post(
        "/webhooks/resend",
        data=b"{}",
        headers={"svix-id": "m", "svix-timestamp": str(int(time.time())), "svix-signature": "v1,nope"},
        content_type="application/json",
    )
    assert r.status_code == 401
    assert r.get_json() == {"error": "Invalid signature"}


def test_webhook_updates_status(app, client):
    app.config["RESEND_WEBHOOK_SECRET"] = WEBHOOK_SECRET
    comm_id, email_id = _sent_comm(app)

    r = _post_event(client, "email.delivered", email_id, WEBHOOK_SECRET)
    assert r.status_code == 200
    assert r.get_json() == {"success": True, "communication_id": comm_id, "status": "delivered"}

    _post_event(client, "email.clicked", email_id, WEBHOOK_SECRET)
    r = _post_event(client, "email.opened", email_id, WEBHOOK_SECRET)
    assert r.get_json()["status"] == "clicked"
    with session_scope(app) as s:
        comm = s.get(EmailCommunication, comm_id)
        assert comm.status == "clicked"
        assert comm.delivered_at and comm.opened_at and comm.clicked_at
        assert s.query(EmailDeliveryEvent).filter_by(communication_id=comm_id).count() == 4


def test_webhook_bounce_records_reason(app, client):
    comm_id, email_id = _sent_comm(app)
    _post_event(client, "email.bounced", email_id, bounce={"message": "Mailbox does not exist"})
    with session_scope(app) as s:
        comm = s.get(EmailCommunication, comm_id)
        assert comm.status == "bounced"
        assert comm.error_message == "Mailbox does not exist"


def test_late_sent_and_delayed_events_keep_status(app, client):
    comm_id, email_id = _sent_comm(app)
    _post_event(client, "email.delivered", email_id)
    _post_event(client, "email.opened", email_id)

    r = _post_event(client, "email.sent", email_id)
    assert r.get_json()["status"] == "opened"
    r = _post_event(client, "email.delivery_delayed", email_id)
    assert r.get_json()["status"] == "opened"
    with session_scope(app) as s:
        comm = s.get(EmailCommunication, comm_id)
        assert comm.status == "opened"
        events = [e.event_type for e in s.query(EmailDeliveryEvent).filter_by(communication_id=comm_id).order_by(EmailDeliveryEvent.id)]
        assert events == ["sent", "delivered", "opened", "sent", "delivery_delayed"]


def test_webhook_stamps_event_time(app, client):
    comm_id, email_id = _sent_comm(app)
    _post_event(client, "email.delivered", email_id)
    with session_scope(app) as s:
        assert s.get(EmailCommunication, comm_id).delivered_at == datetime(2026, 1, 1, 0, 0, 0)


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"created_at": "2026-03-04T10:20:30.500Z"}, datetime(2026, 3, 4, 10, 20, 30, 500000)),
        ({"created_at": "2026-03-04T12:20:30+02:00"}, datetime(2026, 3, 4, 10, 20, 30)),
    ],
)
def test_event_time_parses_created_at(payload, expected):
    assert event_time(payload) == expected


def test_event_time_falls_back_to_now():
    before = datetime.utcnow()
    assert event_time({"created_at": "yesterday"}) >= before
    assert event_time({}) >= before


def test_malformed_secret_is_rejected(app, client):
    app.config["RESEND_WEBHOOK_SECRET"] = "whsec_not*base64!"
    body = b'{"type":"email.sent"}'
    headers = {"svix-id": "m", "svix-timestamp": str(int(time.time())), "svix-signature": "v1,abc"}
    with pytest.raises(WebhookVerificationError, match="Malformed"):
        verify_signature(app.config["RESEND_WEBHOOK_SECRET"], headers, body)
    r = client.post("/webhooks/resend", data=body, headers=headers, content_type="application/json")
    assert r.status_code == 401


def test_webhook_edge_cases(client):
    r = client.post("/webhooks/resend", data=b"not json", content_type="application/json")
    assert r.status_code == 400
    r = _post_event(client, "contact.created", "re_1")
    assert r.get_json()["message"] == "ignored"
    r = _post_event(client, "email.delivered", "re_unknown")
    assert r.status_code == 200
    assert r.get_json() == {"message": "Communication not found"}
