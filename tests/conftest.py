"""Shared fixtures: a fresh sqlite-backed app per test, seeded with the real roles and permissions."""
import itertools

import pytest
from werkzeug.security import generate_password_hash

from app.jury import auth as auth_module
from app.jury import create_app
from app.jury.db import session_scope
from app.jury.models import Base, Permission, Role, User
from app.jury.modules.communications import resend_client
from scripts.init_db import PERMISSIONS, ROLES, role_permission_keys


class FakeResend:
    """Records outgoing emails instead of calling the Resend API."""

    def __init__(self):
        self.sent: list[dict] = []
        self.fail_with: str | None = None
        self._ids = itertools.count(1)

    def send_email(self, *, from_address, to, subject, html, idempotency_key=None):
        if self.fail_with:
            raise resend_client.ResendError(self.fail_with)
        self.sent.append({"from": from_address, "to": list(to), "subject": subject, "html": html, "idempotency_key": idempotency_key})
        return f"re_{next(self._ids)}"


@pytest.fixture()
def fake_resend(monkeypatch):
    fake = FakeResend()
    monkeypatch.setattr(resend_client, "client_from_config", lambda config: fake)
    return fake


@pytest.fixture()
def app(tmp_path, monkeypatch, fake_resend):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("RESEND_FROM", "Jury <jury@example.com>")
    monkeypatch.setenv("FRONTEND_URL", "http://jury.test")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "TEST_MODE", "RESEND_WEBHOOK_SECRET"):
        monkeypatch.delenv(k, raising=False)
    auth_module._login_attempts.clear()

    app = create_app()
    app.config["STORAGE_ROOT"] = str(tmp_path / "storage")
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        perms = {key: Permission(key=key, name=name) for key, name in PERMISSIONS}
        s.add_all(perms.values())
        roles = {}
        for key, name in ROLES:
            role = Role(key=key, name=name)
            for perm_key in role_permission_keys(key):
                role.permissions.append(perms[perm_key])
            roles[key] = role
            s.add(role)

        admin = User(email="admin@example.com", full_name="Admin", password_hash=generate_password_hash("pw"), is_active=True)
        admin.roles.append(roles["admin"])
        cm = User(email="cm@example.com", full_name="Community Manager", password_hash=generate_password_hash("pw"), is_active=True)
        cm.roles.append(roles["cm"])
        s.add_all([admin, cm])

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def login(client, email="admin@example.com", password="pw"):
    return client.post("/auth/login", data={"email": email, "password": password}, follow_redirects=True)


def csrf(client) -> str:
    with client.session_transaction() as sess:
        return sess["csrf_token"]


def make_startup(s, name="Acme Robotics", **kw):
    from app.jury.modules.startups.models import Startup

    fields = {
        "description": "Warehouse robots for small retailers.",
        "contact_email": f"{name.lower().replace(' ', '.')}@startup.test",
        "status": "pending",
    }
    fields.update(kw)
    st = Startup(name=name, **fields)
    s.add(st)
    s.flush()
    return st


def make_juror(s, name="Jane Investor", email=None, **kw):
    from app.jury.modules.jurors.models import Juror

    j = Juror(name=name, email=email or f"{name.lower().replace(' ', '.')}@fund.test", **kw)
    s.add(j)
    s.flush()
    return j


def make_juror_user(s, juror, password="juror-pass"):
    """Give a juror a login with the vc role, as a completed signup would."""
    role = s.query(Role).filter(Role.key == "vc").one()
    u = User(email=juror.email, full_name=juror.name, password_hash=generate_password_hash(password), is_active=True)
    u.roles.append(role)
    s.add(u)
    s.flush()
    juror.user_id = u.id
    return u
