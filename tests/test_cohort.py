"""Tests for cohort settings, round completion, the cohort reset and the screening funnel."""
from datetime import date

import pytest
from conftest import csrf, login, make_juror, make_startup

from app.jury.db import session_scope
from app.jury.models import User
from app.jury.modules.assignments.models import Assignment
from app.jury.modules.assignments.service import assign_juror
from app.jury.modules.cohort.funnel import screening_funnel
from app.jury.modules.cohort.models import CohortSettings
from app.jury.modules.cohort.reset import reset_cohort_data
from app.jury.modules.cohort.service import (
    RoundCompletionError,
    complete_round,
    deadline_info,
    ensure_rounds,
    get_round,
    get_round_progress,
    validate_settings_payload,
)
from app.jury.modules.communications.models import EmailCommunication
from app.jury.modules.evaluations.models import Evaluation
from app.jury.modules.jurors.models import Juror
from app.jury.modules.lifecycle.models import LifecycleParticipant
from app.jury.modules.startups.models import Startup


def test_validate_settings_payload():
    assert validate_settings_payload({"cohort_name": "Spring 2026", "screening_deadline": "2026-03-01", "pitching_deadline": "2026-04-01"}) == []
    errors = validate_settings_payload({"cohort_name": "", "screening_deadline": "2026-03-01", "pitching_deadline": "2026-02-01"})
    assert "Cohort name is required." in errors
    assert "Pitching deadline cannot be before the screening deadline." in errors
    assert validate_settings_payload({"cohort_name": "X", "screening_deadline": "March"}) == ["Screening deadline must be a date (YYYY-MM-DD)."]


def test_deadline_info():
    today = date(2026, 3, 1)
    info = deadline_info(date(2026, 3, 3), today)
    assert info.days_remaining == 2
    assert info.is_ending_soon and not info.is_passed
    info = deadline_info(date(2026, 2, 27), today)
    assert info.is_passed and not info.is_ending_soon
    assert not deadline_info(date(2026, 4, 1), today).is_ending_soon
    assert deadline_info(None, today).days_remaining is None


def test_settings_route(app, client):
    login(client)
    assert client.get("/admin/cohort").status_code == 200
    r = client.post(
        "/admin/cohort",
        data={"csrf_token": csrf(client), "cohort_name": "Spring 2026", "screening_deadline": "2026-03-01", "pitching_deadline": "2026-04-15"},
        follow_redirects=True,
    )
    assert b"Cohort settings saved." in r.data
    with session_scope(app) as s:
        row = s.query(CohortSettings).one()
        assert row.cohort_name == "Spring 2026"
        assert row.pitching_deadline == date(2026, 4, 15)
    r = client.post(
        "/admin/cohort",
        data={"csrf_token": csrf(client), "cohort_name": "Spring 2026", "screening_deadline": "2026-03-01", "pitching_deadline": "2026-01-01"},
        follow_redirects=True,
    )
    assert b"Pitching deadline cannot be before the screening deadline." in r.data


def _screening_with_results(s, submitted=5, total=5):
    ensure_rounds(s)
    chosen = make_startup(s, "Chosen", status="shortlisted")
    for i in range(total):
        j = make_juror(s, f"Juror {i}")
        assign_juror(s, j, chosen, "screening", None)
        if i < submitted:
            s.add(Evaluation(juror_id=j.id, startup_id=chosen.id, round_name="screening", status="submitted", overall_score=7.0))
    s.flush()
    return chosen


def test_complete_round_requires_shortlist(app):
    with session_scope(app) as s:
        ensure_rounds(s)
        make_startup(s)
        with pytest.raises(RoundCompletionError, match="No startups selected"):
            complete_round(s, "screening", None)


def test_complete_round_requires_80_percent(app):
    with session_scope(app) as s:
        _screening_with_results(s, submitted=3, total=5)
        progress = get_round_progress(s, "screening")
        assert progress["completion_rate"] == 60.0
        assert progress["startups_selected"] == 1
        with pytest.raises(RoundCompletionError, match="80%"):
            complete_round(s, "screening", None)


def test_complete_screening_opens_pitching(app):
    with app.app_context(), session_scope(app) as s:
        chosen = _screening_with_results(s, submitted=4, total=5)
        complete_round(s, "screening", None)
        assert get_round(s, "screening").status == "completed"
        pitching = get_round(s, "pitching")
        assert pitching.status == "active"
        assert pitching.started_at is not None
        p = s.query(LifecycleParticipant).filter_by(participant_type="startup", participant_id=chosen.id).one()
        assert p.lifecycle_stage == "pitching"
        with pytest.raises(RoundCompletionError, match="already completed"):
            complete_round(s, "screening", None)
        # Screening is locked once completed.
        with pytest.raises(ValueError, match="not active"):
            assign_juror(s, make_juror(s, "Late Juror"), chosen, "screening", None)


def test_complete_screening_notifies_assigned_jurors(app, fake_resend):
    with app.app_context(), session_scope(app) as s:
        _screening_with_results(s, submitted=4, total=5)
        make_juror(s, "Unassigned Juror")
        complete_round(s, "screening", None)
        comms = (
            s.query(EmailCommunication)
            .filter(EmailCommunication.template_category == "juror-phase-transition")
            .order_by(EmailCommunication.recipient_id.asc())
            .all()
        )
        assert [c.recipient_email for c in comms] == [f"juror.{i}@fund.test" for i in range(5)]
        assert all(c.communication_type == "under-review" for c in comms)
        assert "Thank you for your 1 evaluation(s)" in comms[0].body
        assert "Thank you for your 0 evaluation(s)" in comms[4].body
    transition = [m for m in fake_resend.sent if m["subject"] == "Screening complete - Pitching assignments coming soon"]
    assert len(transition) == 5


def test_round_transition_email_failure_does_not_block_completion(app, fake_resend):
    with app.app_context(), session_scope(app) as s:
        _screening_with_results(s, submitted=5, total=5)
        fake_resend.fail_with = "HTTP 503 from Resend"
        complete_round(s, "screening", None)
        assert get_round(s, "screening").status == "completed"
        assert get_round(s, "pitching").status == "active"
        failed = s.query(EmailCommunication).filter(EmailCommunication.template_category == "juror-phase-transition").all()
        assert len(failed) == 5
        assert {c.status for c in failed} == {"failed"}


def test_round_routes(app, client):
    login(client)
    r = client.get("/admin/rounds")
    assert r.status_code == 200
    r = client.post("/admin/rounds/screening/complete", data={"csrf_token": csrf(client)}, follow_redirects=True)
    assert b"No startups selected for pitching round" in r.data
    assert client.post("/admin/rounds/finals/complete", data={"csrf_token": csrf(client)}).status_code == 404


def test_reset_requires_confirmation(app):
    with session_scope(app) as s:
        admin = s.query(User).filter(User.email == "admin@example.com").one()
        with pytest.raises(ValueError, match="RESET"):
            reset_cohort_data(s, "reset please", admin)


def test_reset_wipes_cohort_but_keeps_test_jurors(app):
    with app.app_context(), session_scope(app) as s:
        _screening_with_results(s, submitted=2, total=2)
        make_juror(s, "QA Juror", email="qa@test.com")
        complete_round(s, "screening", None)
        admin = s.query(User).filter(User.email == "admin@example.com").one()

        counts = reset_cohort_data(s, "RESET", admin)
        assert counts["startups"] == 1
        assert counts["assignments"] == 2
        assert counts["evaluations"] == 2
        assert counts["jurors"] == 2

    with session_scope(app) as s:
        assert s.query(Startup).count() == 0
        assert s.query(Assignment).count() == 0
        assert [j.email for j in s.query(Juror).all()] == ["qa@test.com"]
        assert get_round(s, "screening").status == "active"
        assert get_round(s, "pitching").status == "pending"
        # Accounts are not touched.
        assert s.query(User).count() == 2


def test_reset_route_is_admin_only(app, client):
    with session_scope(app) as s:
        make_startup(s)
    login(client, "cm@example.com")
    assert client.post("/admin/cohort/reset", data={"csrf_token": csrf(client), "confirmation": "RESET"}).status_code == 403
    client.get("/auth/logout")
    login(client)
    assert client.get("/admin/cohort/reset").status_code == 200
    r = client.post("/admin/cohort/reset", data={"csrf_token": csrf(client), "confirmation": "nope"}, follow_redirects=True)
    assert b"to confirm the cohort reset" in r.data
    r = client.post("/admin/cohort/reset", data={"csrf_token": csrf(client), "confirmation": "RESET"}, follow_redirects=True)
    assert b"Cohort data reset" in r.data
    with session_scope(app) as s:
        assert s.query(Startup).count() == 0


def test_screening_funnel(app):
    with session_scope(app) as s:
        ensure_rounds(s)
        a = make_startup(s, "A", status="shortlisted")
        make_startup(s, "B", status="rejected")
        make_startup(s, "C")
        make_startup(s, "D")
        jurors = [make_juror(s, f"Juror {i}") for i in range(3)]
        for j in jurors:
            assign_juror(s, j, a, "screening", None)
        s.add(Evaluation(juror_id=jurors[0].id, startup_id=a.id, round_name="screening", status="submitted"))
        s.flush()

        steps = {step.key: step for step in screening_funnel(s)}
        assert list(steps) == ["upload", "matchmaking", "evaluations", "selection", "communication"]
        assert steps["upload"].status == "completed"
        assert (steps["matchmaking"].done, steps["matchmaking"].total, steps["matchmaking"].percentage) == (1, 4, 25)
        assert steps["evaluations"].percentage == 33
        assert steps["selection"].percentage == 50
        assert steps["communication"].status == "pending"
