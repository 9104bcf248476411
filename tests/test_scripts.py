"""Tests for the release/seed helpers and the scheduled job entry points."""
import pytest
from sqlalchemy import create_engine

from app.jury.models import Base, Permission, Role, User
from scripts import init_db, process_communications, send_login_reminders, send_reminders
from scripts._db_utils import script_session
from scripts.release import resolve_release_url, run_release
from scripts.start import gunicorn_argv, resolve_port


@pytest.mark.parametrize("raw,expected", [(None, 8080), ("", 8080), (" 5000 ", 5000), ("65535", 65535)])
def test_resolve_port(raw, expected):
    assert resolve_port(raw) == expected


@pytest.mark.parametrize("raw", ["0", "70000", "http"])
def test_resolve_port_rejects_invalid(raw):
    with pytest.raises(ValueError):
        resolve_port(raw)


def test_gunicorn_argv():
    argv = gunicorn_argv(9000)
    assert argv[:2] == ["gunicorn", "app.wsgi:app"]
    assert argv[argv.index("--bind") + 1] == "0.0.0.0:9000"


def test_role_permissions():
    all_keys = {k for k, _ in init_db.PERMISSIONS}
    assert set(init_db.role_permission_keys("admin")) == all_keys
    cm = set(init_db.role_permission_keys("cm"))
    assert "cohort.reset" not in cm
    assert "users.manage" not in cm
    assert "rounds.manage" in cm
    assert init_db.role_permission_keys("vc") == ["evaluations.submit"]
    assert init_db.role_permission_keys("nobody") == []


def test_seed_only_is_idempotent(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path/'seed.db'}"
    Base.metadata.create_all(bind=create_engine(db_url))
    monkeypatch.setenv("ADMIN_EMAIL", "Boss@Example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "first-password")

    init_db.seed_only(database_url=db_url)
    with script_session(db_url) as s:
        original_hash = s.query(User).one().password_hash

    monkeypatch.setenv("ADMIN_PASSWORD", "second-password")
    init_db.seed_only(database_url=db_url)

    with script_session(db_url) as s:
        assert s.query(Permission).count() == len(init_db.PERMISSIONS)
        assert s.query(Role).count() == 3
        user = s.query(User).one()
        assert user.email == "boss@example.com"
        assert user.password_hash == original_hash
        assert user.has_role("admin")
        assert len(s.query(Role).filter(Role.key == "vc").one().permissions) == 1


def test_release_requires_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        run_release()


def test_release_refuses_sqlite_in_production(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")
    monkeypatch.setenv("ENV", "production")
    with pytest.raises(RuntimeError, match="Refusing"):
        run_release()


def test_release_url_normalizes_postgres_scheme(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", " postgres://u:p@db/jury ")
    monkeypatch.setenv("ENV", "production")
    assert resolve_release_url() == "postgresql://u:p@db/jury"


def test_job_entry_points(app, capsys):
    assert process_communications.main(["--limit", "5"]) == 0
    assert "Processed 0 attempt(s)" in capsys.readouterr().out
    assert send_reminders.main() == 0
    assert "round=(none active)" in capsys.readouterr().out
    assert send_login_reminders.main() == 0
    assert "Login reminders: sent=0 skipped=0 errors=0" in capsys.readouterr().out
