"""Tests for the admin dashboard, user management, community manager invitations and the audit trail."""
from datetime import datetime, timedelta

import pytest
from conftest import csrf, login, make_startup

from app.jury.db import session_scope
from app.jury.models import AuditEvent, User
from app.jury.modules.jurors.models import CommunityManager
from app.jury.modules.jurors.service import InvitationError, complete_cm_signup, resend_cm_invitation, validate_cm_token


def test_dashboard_shows_funnel(app, client):
    with session_scope(app) as s:
        make_startup(s, "Orbit Labs")
    login(client)
    r = client.get("/admin/")
    assert r.status_code == 200
    assert b"Matchmaking" in r.data
    assert client.get("/admin/me").status_code == 200


def test_create_user(app, client):
    login(client)
    assert client.get("/admin/users").status_code == 200
    r = client.post(
        "/admin/users/new",
        data={"csrf_token": csrf(client), "email": "New.CM@Example.com", "full_name": "New CM", "password": "longpassword", "role": "cm"},
        follow_redirects=True,
    )
    assert b"User created." in r.data
    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "new.cm@example.com").one()
        assert u.has_role("cm")
        assert s.query(AuditEvent).filter(AuditEvent.action == "user.create").count() == 1


def test_create_user_validation(app, client):
    login(client)
    r = client.post(
        "/admin/users/new",
        data={"csrf_token": csrf(client), "email": "cm@example.com", "password": "short", "role": "wizard"},
        follow_redirects=True,
    )
    assert b"A user with this email already exists." in r.data
    assert b"Password must be at least 8 characters." in r.data
    assert b"Choose a role." in r.data
    with session_scope(app) as s:
        assert s.query(User).count() == 2


def test_toggle_user_blocks_login(app, client):
    with session_scope(app) as s:
        cm_id = s.query(User).filter(User.email == "cm@example.com").one().id
        admin_id = s.query(User).filter(User.email == "admin@example.com").one().id
    login(client)
    r = client.post(f"/admin/users/{cm_id}/toggle", data={"csrf_token": csrf(client)}, follow_redirects=True)
    assert b"cm@example.com deactivated." in r.data
    r = client.post(f"/admin/users/{admin_id}/toggle", data={"csrf_token": csrf(client)}, follow_redirects=True)
    assert b"You cannot deactivate your own account." in r.data
    client.get("/auth/logout")

    r = login(client, "cm@example.com")
    assert b"Invalid credentials" in r.data


def test_audit_filters(app, client):
    login(client)
    client.post(
        "/admin/startups/new",
        data={"csrf_token": csrf(client), "name": "Orbit Labs", "description": "Satellite data.", "contact_email": "hi@orbit.test"},
    )
    r = client.get("/admin/audit?action=startup.create")
    assert r.status_code == 200
    assert b"startup.create" in r.data
    assert b"auth.login" not in r.data

    r = client.get("/admin/audit?actor_email=ADMIN@")
    assert b"startup.create" in r.data
    r = client.get("/admin/audit?actor_email=nobody")
    assert b"startup.create" not in r.data

    r = client.get("/admin/audit?date_from=yesterday")
    assert b"date_from must be YYYY-MM-DD" in r.data
    r = client.get("/admin/audit?date_from=2000-01-01&date_to=2000-01-02")
    assert b"startup.create" not in r.data


def test_users_page_is_admin_only(client):
    login(client, "cm@example.com")
    assert client.get("/admin/users").status_code == 403
    assert client.get("/admin/audit").status_code == 200


def _invite_cm(client, **overrides):
    data = {
        "csrf_token": csrf(client),
        "name": "Priya Shah",
        "email": "Priya@Hub.example",
        "organization": "Founders Hub",
        "job_title": "Programme Lead",
    }
    data.update(overrides)
    return client.post("/admin/community-managers/invite", data=data, follow_redirects=True)


def test_invite_community_manager(app, client, fake_resend):
    login(client)
    r = _invite_cm(client)
    assert b"Invitation sent to priya@hub.example." in r.data
    assert b"Priya Shah" in r.data
    with session_scope(app) as s:
        cm = s.query(CommunityManager).one()
        assert cm.email == "priya@hub.example"
        assert cm.invitation_expires_at > datetime.utcnow() + timedelta(days=6)
        token = cm.invitation_token
    msg = fake_resend.sent[0]
    assert msg["subject"] == "You're invited to join the Startup Awards as a Community Manager"
    assert f"http://jury.test/signup/cm?token={token}" in msg["html"]
    assert "Founders Hub" in msg["html"]


def test_invite_community_manager_validation(app, client, fake_resend):
    login(client)
    _invite_cm(client)
    r = _invite_cm(client, email="priya@hub.example")
    assert b"A community manager with this email already exists." in r.data
    r = _invite_cm(client, name="", email="cm@example.com")
    assert b"Name is required." in r.data
    assert b"A user with this email already exists." in r.data
    with session_scope(app) as s:
        assert s.query(CommunityManager).count() == 1
    assert len(fake_resend.sent) == 1


def test_resend_cm_invitation_keeps_token(app, client, fake_resend):
    login(client)
    _invite_cm(client)
    with session_scope(app) as s:
        cm = s.query(CommunityManager).one()
        cm_id, token = cm.id, cm.invitation_token
        cm.invitation_expires_at = datetime.utcnow() + timedelta(days=1)
    r = client.post(f"/admin/community-managers/{cm_id}/resend", data={"csrf_token": csrf(client)}, follow_redirects=True)
    assert b"Invitation re-sent to priya@hub.example." in r.data
    with session_scope(app) as s:
        cm = s.get(CommunityManager, cm_id)
        assert cm.invitation_token == token
        assert cm.invitation_expires_at > datetime.utcnow() + timedelta(days=6)
    assert len(fake_resend.sent) == 2


def test_cm_signup_creates_cm_user(app, client, fake_resend):
    login(client)
    _invite_cm(client)
    client.get("/auth/logout")
    with session_scope(app) as s:
        cm_id, token = s.query(CommunityManager.id, CommunityManager.invitation_token).one()

    r = client.get(f"/signup/cm?token={token}")
    assert b"Welcome, Priya Shah" in r.data
    r = client.post(
        "/signup/cm",
        data={
            "token": token,
            "full_name": "Priya Shah",
            "linkedin_url": "https://linkedin.com/in/priya",
            "password": "long-enough-pw",
            "password_confirm": "long-enough-pw",
        },
    )
    assert r.status_code == 302
    with session_scope(app) as s:
        cm = s.get(CommunityManager, cm_id)
        assert cm.invitation_token is None
        assert cm.linkedin_url == "https://linkedin.com/in/priya"
        user = s.get(User, cm.user_id)
        assert user.has_role("cm")
        assert not user.has_role("admin")

    login(client, "priya@hub.example", "long-enough-pw")
    assert client.get("/admin/").status_code == 200
    assert client.get("/admin/users").status_code == 403


def test_cm_token_checks(app, client, fake_resend):
    login(client)
    _invite_cm(client)
    with session_scope(app) as s:
        token = s.query(CommunityManager).one().invitation_token
        assert validate_cm_token(s, token).valid
        assert validate_cm_token(s, "nope").error == "Invalid invitation token."
        expired = validate_cm_token(s, token, now=datetime.utcnow() + timedelta(days=8))
        assert expired.error == "This invitation has expired."
        with pytest.raises(InvitationError, match="at least 8"):
            complete_cm_signup(s, token, "short")
        complete_cm_signup(s, token, "long-enough-pw")
    with session_scope(app) as s:
        cm = s.query(CommunityManager).one()
        with pytest.raises(InvitationError, match="already activated"):
            resend_cm_invitation(s, cm, None)
    assert b"Invalid invitation token." in client.get(f"/signup/cm?token={token}").data


def test_community_manager_routes_are_admin_only(client):
    login(client, "cm@example.com")
    assert _invite_cm(client).status_code == 403
