from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.jury.config import normalize_database_url


@contextmanager
def script_session(db_url: str) -> Iterator[Session]:
    """Engine-backed session for the release/seed step, which runs before the app can boot."""
    engine = create_engine(normalize_database_url(db_url), future=True, pool_pre_ping=True)
    s = sessionmaker(bind=engine, class_=Session, autoflush=False, expire_on_commit=False, future=True)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()


@contextmanager
def job_session():
    """
    App + session for scheduled jobs (reminders, queued emails).
    Jobs need the app context because sending email reads Resend settings from app.config.
    """
    from app.jury import create_app
    from app.jury.db import session_scope

    app = create_app()
    with app.app_context(), session_scope(app) as s:
        yield app, s
