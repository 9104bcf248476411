"""Tests for jurors, invitations and juror sign-up."""
from datetime import datetime, timedelta

import pytest
from conftest import csrf, login, make_juror
from werkzeug.security import check_password_hash

from app.jury.db import session_scope
from app.jury.models import User
from app.jury.modules.communications.models import EmailCommunication
from app.jury.modules.jurors.models import Juror
from app.jury.modules.jurors.service import (
    InvitationError,
    complete_juror_signup,
    send_invitation,
    validate_invitation_token,
)
from app.jury.modules.lifecycle.models import CommunicationAttempt, ParticipantWorkflow, WorkflowTrigger


def _new_juror_form(client, **overrides):
    data = {
        "csrf_token": csrf(client),
        "name": "Maria Lopez",
        "email": "Maria@Northwind.vc",
        "job_title": "Partner",
        "company": "Northwind Capital",
        "preferred_stages": ["Seed", "Series A"],
        "target_verticals": ["Fintech"],
        "preferred_regions": ["Europe"],
        "evaluation_limit": "5",
        "meeting_limit": "",
    }
    data.update(overrides)
    return data


def test_jurors_list_ok(client):
    login(client)
    r = client.get("/admin/jurors")
    assert r.status_code == 200


def test_juror_create(app, client):
    login(client)
    r = client.post("/admin/jurors/new", data=_new_juror_form(client), follow_redirects=True)
    assert r.status_code == 200
    assert b"Maria Lopez" in r.data
    with session_scope(app) as s:
        j = s.query(Juror).one()
        assert j.email == "maria@northwind.vc"
        assert j.preferred_stages == ["Seed", "Series A"]
        assert j.evaluation_limit == 5
        assert j.meeting_limit is None
        wf = s.query(ParticipantWorkflow).filter_by(participant_type="juror", participant_id=j.id).one()
        assert wf.current_stage == "juror_onboarding"
        # No active trigger configured, so nothing is queued.
        assert s.query(CommunicationAttempt).count() == 0


def test_juror_create_duplicate_email(app, client):
    with session_scope(app) as s:
        make_juror(s, "Maria Lopez", email="maria@northwind.vc")
    login(client)
    r = client.post("/admin/jurors/new", data=_new_juror_form(client), follow_redirects=True)
    assert b"already exists" in r.data
    with session_scope(app) as s:
        assert s.query(Juror).count() == 1


def test_juror_create_rejects_zero_limit(app, client):
    login(client)
    r = client.post("/admin/jurors/new", data=_new_juror_form(client, evaluation_limit="0"), follow_redirects=True)
    assert b"must be at least 1" in r.data


def test_juror_created_onboarding_email_when_trigger_active(app, client, fake_resend):
    with session_scope(app) as s:
        s.add(WorkflowTrigger(stage="juror_onboarding", participant_type="juror", email_template_category="juror_invitation", delay_hours=0, is_active=True))
    login(client)
    client.post("/admin/jurors/new", data=_new_juror_form(client))
    with session_scope(app) as s:
        attempt = s.query(CommunicationAttempt).one()
        assert attempt.status == "sent"
    assert fake_resend.sent[0]["to"] == ["maria@northwind.vc"]


def test_invite_sends_email_with_signup_link(app, client, fake_resend):
    with session_scope(app) as s:
        jid = make_juror(s).id
    login(client)
    r = client.post(f"/admin/jurors/{jid}/invite", data={"csrf_token": csrf(client)}, follow_redirects=True)
    assert b"Invitation sent" in r.data
    with session_scope(app) as s:
        j = s.get(Juror, jid)
        assert j.invitation_token
        assert j.invitation_expires_at - j.invitation_sent_at == timedelta(days=7)
        token = j.invitation_token
        comm = s.query(EmailCommunication).one()
        assert comm.status == "sent"
        assert comm.template_category == "juror_invitation"
    assert len(fake_resend.sent) == 1
    assert f"http://jury.test/signup/juror?token={token}" in fake_resend.sent[0]["html"]


def test_resend_keeps_token_and_is_not_blocked_as_duplicate(app, client, fake_resend):
    with session_scope(app) as s:
        jid = make_juror(s).id
    login(client)
    client.post(f"/admin/jurors/{jid}/invite", data={"csrf_token": csrf(client)})
    with session_scope(app) as s:
        token = s.get(Juror, jid).invitation_token
    r = client.post(f"/admin/jurors/{jid}/invite", data={"csrf_token": csrf(client), "resend": "1"}, follow_redirects=True)
    assert b"Invitation re-sent" in r.data
    with session_scope(app) as s:
        assert s.get(Juror, jid).invitation_token == token
    assert len(fake_resend.sent) == 2


def test_invite_failure_is_reported(app, client, fake_resend):
    fake_resend.fail_with = "HTTP 500 from Resend"
    with session_scope(app) as s:
        jid = make_juror(s).id
    login(client)
    r = client.post(f"/admin/jurors/{jid}/invite", data={"csrf_token": csrf(client)}, follow_redirects=True)
    assert b"Invitation not sent" in r.data
    with session_scope(app) as s:
        comm = s.query(EmailCommunication).one()
        assert comm.status == "failed"
        assert "HTTP 500" in comm.error_message


def _invited_juror(app, **kw):
    with app.app_context(), session_scope(app) as s:
        j = make_juror(s, "Tom Reed", **kw)
        send_invitation(s, j, None)
        return j.id, j.invitation_token


def test_signup_page_for_valid_token(app, client):
    _jid, token = _invited_juror(app)
    r = client.get(f"/signup/juror?token={token}")
    assert r.status_code == 200
    assert b"Welcome, Tom Reed" in r.data


def test_signup_page_invalid_token(client):
    r = client.get("/signup/juror?token=nope")
    assert b"Invalid invitation link" in r.data


def test_signup_completes_and_juror_can_login(app, client):
    jid, token = _invited_juror(app)
    r = client.post(
        "/signup/juror",
        data={
            "token": token,
            "password": "long-enough-pw",
            "password_confirm": "long-enough-pw",
            "full_name": "Tom Reed",
            "company": "Reed Ventures",
            "expertise": ["Fintech", "Enterprise Software"],
            "preferred_stages": ["Seed"],
        },
    )
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]
    with session_scope(app) as s:
        j = s.get(Juror, jid)
        assert j.user_id is not None
        assert j.invitation_token is None
        assert j.company == "Reed Ventures"
        assert j.target_verticals == ["Fintech", "Enterprise Software"]
        u = s.get(User, j.user_id)
        assert u.has_role("vc")
        assert check_password_hash(u.password_hash, "long-enough-pw")

    login(client, "tom.reed@fund.test", "long-enough-pw")
    assert client.get("/evaluations").status_code == 200


def test_signup_password_mismatch(app, client):
    jid, token = _invited_juror(app)
    r = client.post(
        "/signup/juror",
        data={"token": token, "password": "long-enough-pw", "password_confirm": "different-pw"},
        follow_redirects=True,
    )
    assert b"Passwords do not match" in r.data
    with session_scope(app) as s:
        assert s.get(Juror, jid).user_id is None


def test_signup_rejects_short_password(app):
    _jid, token = _invited_juror(app)
    with app.app_context(), session_scope(app) as s:
        with pytest.raises(InvitationError, match="at least 8"):
            complete_juror_signup(s, token, "short")


def test_signup_rejects_existing_account(app):
    _jid, token = _invited_juror(app, email="admin@example.com")
    with app.app_context(), session_scope(app) as s:
        with pytest.raises(InvitationError, match="already exists"):
            complete_juror_signup(s, token, "long-enough-pw")


def test_expired_token_is_renewed_and_resent(app, fake_resend):
    jid, token = _invited_juror(app)
    with app.app_context(), session_scope(app) as s:
        j = s.get(Juror, jid)
        j.invitation_expires_at = datetime.utcnow() - timedelta(hours=1)
    with app.app_context(), session_scope(app) as s:
        check = validate_invitation_token(s, token)
        assert not check.valid
        assert check.expired_renewed
        j = s.get(Juror, jid)
        assert j.invitation_token == token
        assert j.invitation_expires_at > datetime.utcnow() + timedelta(days=6)
    assert len(fake_resend.sent) == 2


def test_cannot_invite_juror_with_account(app):
    with app.app_context(), session_scope(app) as s:
        from conftest import make_juror_user

        j = make_juror(s)
        make_juror_user(s, j)
        with pytest.raises(InvitationError, match="already has an account"):
            send_invitation(s, j, None)
