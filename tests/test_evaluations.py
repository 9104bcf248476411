"""Tests for scoring, juror evaluations, jury status and the decision report."""
import codecs
import csv
import io
from pathlib import Path

import pytest
from conftest import csrf, login, make_juror, make_juror_user, make_startup
from openpyxl import load_workbook

from app.jury.db import session_scope
from app.jury.modules.assignments.models import Assignment
from app.jury.modules.assignments.service import assign_juror
from app.jury.modules.cohort.service import ensure_rounds, get_round
from app.jury.modules.evaluations.criteria import calculate_overall_score, criterion_keys
from app.jury.modules.evaluations.jury_status import round_progress, status_summary
from app.jury.modules.evaluations.models import Evaluation
from app.jury.modules.evaluations.report import (
    REPORT_HEADERS,
    build_decision_rows,
    decision_report_csv,
    decision_report_xlsx,
    format_scores,
)
from app.jury.modules.evaluations.service import NotAssignedError, save_evaluation, validate_evaluation_payload

LONG = "Clear articulation of a painful, well-evidenced problem."
LONG_2 = "Market sizing needs bottom-up numbers and sources."
LONG_3 = "Tighten the story around the first paying customers."


def _complete_payload(round_name="screening", score=2):
    payload = {f"score_{k}": str(score) for k in criterion_keys(round_name)}
    payload.update(
        {
            "strengths": [LONG],
            "improvement_areas": LONG_2,
            "pitch_development_aspects": LONG_3,
            "recommendation": "Fund",
        }
    )
    return payload


def test_criteria_counts():
    assert len(criterion_keys("screening")) == 38
    assert criterion_keys("pitching") == [
        "founder_team_score",
        "profitability_market_score",
        "prize_money_usage_score",
        "information_delivery_score",
        "qa_performance_score",
    ]
    with pytest.raises(ValueError):
        criterion_keys("finals")


def test_overall_score():
    keys = criterion_keys("pitching")
    assert calculate_overall_score("pitching", {k: 2 for k in keys}) == 10.0
    assert calculate_overall_score("pitching", {keys[0]: 2, keys[1]: 1}) == 3.0
    assert calculate_overall_score("screening", {}) == 0.0
    assert calculate_overall_score("screening", {"problem_logical": 1}) == round(1 / 76 * 10, 2)


def test_validate_draft_allows_partial():
    assert validate_evaluation_payload("screening", {"score_problem_logical": "1"}, submit=False) == []


def test_validate_rejects_bad_input():
    errors = validate_evaluation_payload(
        "screening",
        {
            "score_problem_logical": "3",
            "score_made_up": "1",
            "strengths": [LONG, LONG, LONG, LONG],
            "improvement_areas": "too short",
            "recommendation": "Maybe",
            "investment_amount": "lots",
        },
        submit=False,
    )
    assert "Scores must be 0, 1 or 2." in errors
    assert "Unknown criteria: made_up" in errors
    assert "Add at most 3 strengths." in errors
    assert any(e.startswith("Areas for improvement:") for e in errors)
    assert any("Invalid recommendation" in e for e in errors)
    assert "Investment amount must be a whole number." in errors


def test_validate_submit_needs_everything():
    errors = validate_evaluation_payload("pitching", {"score_founder_team_score": "2"}, submit=True)
    assert "Please score every criterion (4 missing)." in errors
    assert "Please add at least one strength." in errors
    assert "Areas for improvement are required." in errors
    assert "Pitch development aspects are required." in errors
    assert validate_evaluation_payload("pitching", _complete_payload("pitching"), submit=True) == []


def _assigned(s, startup_name="Acme Robotics", juror=None):
    ensure_rounds(s)
    st = make_startup(s, startup_name)
    juror = juror or make_juror(s)
    assign_juror(s, juror, st, "screening", None)
    return juror, st


def test_save_draft_then_submit(app):
    with session_scope(app) as s:
        juror, st = _assigned(s)
        ev = save_evaluation(s, juror, st, "screening", {"score_problem_logical": "2"}, None, submit=False)
        assert ev.status == "draft"
        assert ev.criteria_scores == {"problem_logical": 2}
        ev2 = save_evaluation(s, juror, st, "screening", _complete_payload(score=1), None, submit=True)
        assert ev2.id == ev.id
        assert ev2.status == "submitted"
        assert ev2.overall_score == 5.0
        assert ev2.submitted_at is not None
        assert s.query(Assignment).one().status == "completed"


def test_save_requires_assignment_and_open_round(app):
    with session_scope(app) as s:
        juror, st = _assigned(s)
        other = make_startup(s, "Not Mine")
        with pytest.raises(NotAssignedError):
            save_evaluation(s, juror, other, "screening", {}, None, submit=False)
        get_round(s, "screening").status = "completed"
        s.flush()
        with pytest.raises(ValueError, match="closed"):
            save_evaluation(s, juror, st, "screening", {}, None, submit=False)


def _juror_login(app, client):
    with session_scope(app) as s:
        juror, st = _assigned(s)
        make_juror_user(s, juror)
        ids = juror.id, st.id
    login(client, "jane.investor@fund.test", "juror-pass")
    return ids


def test_juror_evaluation_flow(app, client):
    _jid, sid = _juror_login(app, client)
    r = client.get("/evaluations")
    assert b"Acme Robotics" in r.data
    r = client.get(f"/evaluations/screening/{sid}")
    assert r.status_code == 200

    data = {"csrf_token": csrf(client), "action": "save", "score_problem_logical": "1"}
    r = client.post(f"/evaluations/screening/{sid}", data=data, follow_redirects=True)
    assert b"Draft saved." in r.data

    data = {"csrf_token": csrf(client), "action": "submit", **_complete_payload()}
    r = client.post(f"/evaluations/screening/{sid}", data=data, follow_redirects=True)
    assert b"Evaluation for Acme Robotics submitted." in r.data
    with session_scope(app) as s:
        ev = s.query(Evaluation).one()
        assert ev.status == "submitted"
        assert ev.overall_score == 10.0
        assert ev.recommendation == "Fund"


def test_juror_submit_with_short_feedback_is_rejected(app, client):
    _jid, sid = _juror_login(app, client)
    data = {"csrf_token": csrf(client), "action": "submit", **_complete_payload()}
    data["strengths"] = ["Nice"]
    r = client.post(f"/evaluations/screening/{sid}", data=data, follow_redirects=True)
    assert b"at least 30 characters" in r.data
    with session_scope(app) as s:
        assert s.query(Evaluation).count() == 0


def test_juror_cannot_open_unassigned_startup(app, client):
    _juror_login(app, client)
    with session_scope(app) as s:
        other = make_startup(s, "Someone Else's").id
    assert client.get(f"/evaluations/screening/{other}").status_code == 403
    assert client.get("/evaluations/finals/1").status_code == 404


def test_admin_view_mode_is_read_only(app, client):
    with session_scope(app) as s:
        juror, st = _assigned(s)
        jid, sid = juror.id, st.id
    login(client)
    r = client.post(f"/view-as/{jid}", data={"csrf_token": csrf(client)}, follow_redirects=True)
    assert b"Welcome, Jane Investor" in r.data
    r = client.post(
        f"/evaluations/screening/{sid}",
        data={"csrf_token": csrf(client), "action": "save", "score_problem_logical": "1"},
        follow_redirects=True,
    )
    assert b"View mode is read-only." in r.data
    with session_scope(app) as s:
        assert s.query(Evaluation).count() == 0
    client.post("/view-as/exit", data={"csrf_token": csrf(client)})
    assert client.get("/dashboard").headers["Location"].endswith("/admin/")


def test_view_mode_is_admin_only(app, client):
    with session_scope(app) as s:
        jid = make_juror(s, "Jane Investor").id
    login(client, "cm@example.com")
    r = client.post(f"/view-as/{jid}", data={"csrf_token": csrf(client)})
    assert r.status_code == 403
    with client.session_transaction() as sess:
        assert "view_as_juror_id" not in sess


def test_round_progress_statuses(app):
    with session_scope(app) as s:
        ensure_rounds(s)
        a, b = make_startup(s, "A"), make_startup(s, "B")
        done = make_juror(s, "Done Juror")
        busy = make_juror(s, "Busy Juror")
        idle = make_juror(s, "Idle Juror")
        no_account = make_juror(s, "No Account")
        for j in (done, busy, idle):
            make_juror_user(s, j)
        for j in (done, busy, idle, no_account):
            assign_juror(s, j, a, "screening", None)
            assign_juror(s, j, b, "screening", None)
        save_evaluation(s, done, a, "screening", _complete_payload(), None, submit=True)
        save_evaluation(s, done, b, "screening", _complete_payload(), None, submit=True)
        save_evaluation(s, busy, a, "screening", {}, None, submit=False)

        rows = round_progress(s, "screening")
        statuses = {j.name: status for j, _p, status in rows}
        assert statuses == {
            "Busy Juror": "in_progress",
            "Done Juror": "completed",
            "Idle Juror": "not_started",
            "No Account": "inactive",
        }
        progress = {j.name: p for j, p, _status in rows}
        assert progress["Done Juror"].completion_rate == 100
        assert progress["Busy Juror"].not_started == 1
        assert status_summary(rows) == {"completed": 1, "in_progress": 1, "not_started": 1, "inactive": 1, "total": 4}


def test_format_scores():
    assert format_scores([]) == "N/A"
    assert format_scores([(6.0, "Atlas"), (8.5, "Northwind Capital")]) == "8.5 (Northwind Capital), 6.0 (Atlas)"


def _scored_cohort(s):
    ensure_rounds(s)
    top = make_startup(s, "Top Co", founder_names=["Ana Costa"], regions=["Europe"], verticals=["Fintech"], stage="Seed")
    mid = make_startup(s, "Mid Co")
    make_startup(s, "Unscored Co")
    vc1 = make_juror(s, "Vera Chen", company="Northwind Capital")
    vc2 = make_juror(s, "Sam Ode")
    for j in (vc1, vc2):
        assign_juror(s, j, top, "screening", None)
        assign_juror(s, j, mid, "screening", None)
    high = _complete_payload(score=2)
    high["wants_pitch_session"] = "on"
    save_evaluation(s, vc1, top, "screening", high, None, submit=True)
    save_evaluation(s, vc2, top, "screening", _complete_payload(score=1), None, submit=True)
    save_evaluation(s, vc1, mid, "screening", _complete_payload(score=1), None, submit=True)
    # Drafts never count.
    save_evaluation(s, vc2, mid, "screening", {"score_problem_logical": "2"}, None, submit=False)


def test_build_decision_rows(app):
    with session_scope(app) as s:
        _scored_cohort(s)
        rows = build_decision_rows(s)
        assert [r.startup_name for r in rows] == ["Top Co", "Mid Co", "Unscored Co"]
        top = rows[0]
        assert top.screening_avg == 7.5
        assert format_scores(top.screening_scores) == "10.0 (Northwind Capital), 5.0 (Sam Ode)"
        assert top.pitch_requests == ["Vera Chen"]
        assert rows[1].screening_count == 1
        assert rows[2].screening_avg is None


def test_decision_report_exports(app):
    with session_scope(app) as s:
        _scored_cohort(s)
        rows = build_decision_rows(s)
    data = decision_report_csv(rows)
    assert data.startswith(codecs.BOM_UTF8)
    parsed = list(csv.reader(io.StringIO(data.decode("utf-8-sig"))))
    assert tuple(parsed[0]) == REPORT_HEADERS
    assert parsed[1][0] == "Top Co"
    assert parsed[1][8] == "7.50"
    assert parsed[1][11] == "Vera Chen"
    assert parsed[3][8] == "N/A"

    wb = load_workbook(io.BytesIO(decision_report_xlsx(rows)))
    ws = wb.active
    assert ws["A1"].value == "Startup Name"
    assert ws["I2"].value == 7.5


def test_decision_report_download_is_archived(app, client):
    with session_scope(app) as s:
        _scored_cohort(s)
    login(client)
    assert client.get("/admin/reports/decision").status_code == 200
    r = client.get("/admin/reports/decision.csv")
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    assert "attachment" in r.headers["Content-Disposition"]
    archived = list((Path(app.config["STORAGE_ROOT"]) / "reports" / "decision").rglob("*.csv"))
    assert len(archived) == 1
    assert archived[0].read_bytes() == r.data
    assert client.get("/admin/reports/decision.pdf").status_code == 404

    page = client.get("/admin/reports/decision")
    assert b"Archived exports" in page.data
    key = archived[0].relative_to(app.config["STORAGE_ROOT"]).as_posix()
    again = client.get(f"/admin/reports/archive/{key}")
    assert again.status_code == 200
    assert again.data == r.data
    assert client.get("/admin/reports/archive/reports/decision/missing.csv").status_code == 404
    assert client.get("/admin/reports/archive/other/secret.csv").status_code == 404


def test_staff_evaluation_pages(app, client):
    with session_scope(app) as s:
        _scored_cohort(s)
        ev_id = s.query(Evaluation).filter(Evaluation.status == "submitted").first().id
    login(client)
    assert client.get("/admin/evaluations?round=screening&status=submitted").status_code == 200
    assert client.get(f"/admin/evaluations/{ev_id}").status_code == 200
    r = client.get("/admin/jury-status")
    assert r.status_code == 200
    assert b"Vera Chen" in r.data
