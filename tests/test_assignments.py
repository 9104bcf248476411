"""Tests for matchmaking, assignments and pitch requests."""
import pytest
from conftest import csrf, login, make_juror, make_startup

from app.jury.db import session_scope
from app.jury.modules.assignments.matchmaking import (
    calculate_compatibility,
    calculate_fit_score,
    detect_data_inconsistencies,
    generate_auto_assignments,
    round_startups,
    workload_penalty,
)
from app.jury.modules.assignments.models import Assignment, PitchRequest
from app.jury.modules.assignments.service import (
    apply_auto_assignments,
    assign_juror,
    create_pitch_request,
    unassign_juror,
    validate_pitch_payload,
)
from app.jury.modules.assignments.validation import (
    JurorWorkload,
    StartupCoverage,
    dynamic_limit,
    effective_limit,
    juror_workloads,
    over_limit_summary,
    startup_coverage,
    under_assigned_summary,
)
from app.jury.modules.cohort.service import ensure_rounds
from app.jury.modules.evaluations.models import Evaluation
from app.jury.modules.jurors.models import Juror
from app.jury.modules.lifecycle.models import ParticipantWorkflow
from app.jury.modules.startups.models import Startup


def test_compatibility_normalizes_synonyms():
    juror = Juror(id=1, name="J", email="j@x.test", target_verticals=["AI"], preferred_stages=["preseed"], preferred_regions=["APAC"])
    startup = Startup(
        id=2,
        name="S",
        verticals=["Artificial Intelligence (AI/ML)"],
        stage="Pre-Seed",
        regions=["Asia Pacific (APAC)"],
    )
    c = calculate_compatibility(juror, startup)
    assert c.score == 100
    assert c.vertical_matches == ("Artificial Intelligence (AI/ML)",)
    assert c.matches == {"vertical": True, "stage": True, "region": True}


@pytest.mark.parametrize("startups,jurors,expected", [(10, 4, 8), (9, 3, 9), (1, 2, 2), (5, 0, 4), (0, 3, 0)])
def test_dynamic_limit(startups, jurors, expected):
    assert dynamic_limit(startups, jurors) == expected


def test_effective_limit_and_workloads():
    custom = Juror(id=1, name="Custom", email="c@x.test", evaluation_limit=2)
    default = Juror(id=2, name="Default", email="d@x.test")
    assert effective_limit(custom, 10, 4) == 2
    assert effective_limit(default, 10, 4) == 8

    assignments = [Assignment(juror_id=1, startup_id=n) for n in (1, 2, 3)] + [Assignment(juror_id=2, startup_id=1)]
    by_name = {w.juror_name: w for w in juror_workloads([custom, default], assignments, total_startups=2)}
    assert by_name["Custom"].is_custom_limit
    assert by_name["Custom"].is_over_limit and not by_name["Custom"].is_at_limit
    assert not by_name["Default"].is_custom_limit
    assert by_name["Default"].limit == 3
    assert not by_name["Default"].is_over_limit


def test_startup_coverage_severity():
    startups = [Startup(id=n, name=f"S{n}") for n in (1, 2, 3)]
    assignments = [Assignment(juror_id=j, startup_id=2) for j in (1, 2)] + [Assignment(juror_id=j, startup_id=3) for j in (1, 2, 3)]
    coverage = {c.startup_name: c for c in startup_coverage(startups, assignments)}
    assert coverage["S1"].severity == "critical"
    assert coverage["S2"].severity == "warning"
    assert coverage["S3"].severity == "none"
    assert not coverage["S3"].is_under_assigned
    assert under_assigned_summary(list(coverage.values())) == "2 startup(s) below minimum: S1 (0/3), S2 (2/3)"


def test_summaries_truncate_after_five():
    coverage = [StartupCoverage(n, f"S{n}", 0) for n in range(1, 8)]
    summary = under_assigned_summary(coverage)
    assert summary.startswith("7 startup(s) below minimum: S1 (0/3), S2 (0/3)")
    assert summary.endswith("S5 (0/3) and 2 more")
    assert "S6" not in summary

    workloads = [JurorWorkload(n, f"J{n}", 5, 3, False) for n in range(1, 7)]
    assert over_limit_summary(workloads).endswith("J5 (5/3) and 1 more")
    assert over_limit_summary([JurorWorkload(1, "J1", 3, 3, False)]) == ""


def test_detect_data_inconsistencies():
    jurors = [
        Juror(id=1, name="Ana", email="a@x.test", target_verticals=["Fintech"], preferred_stages=["Seed"], preferred_regions=["Europe"]),
        Juror(id=2, name="Ben", email="b@x.test", target_verticals=[], preferred_stages=["Series A"]),
    ]
    startups = [
        Startup(id=1, name="PayCo", verticals=["Payments"], stage="seed", regions=["EU"]),
        Startup(id=2, name="LearnCo", verticals=["EdTech"], stage="Series B", regions=["LATAM"]),
        Startup(id=3, name="Blank", verticals=[]),
    ]
    by_type = {}
    for issue in detect_data_inconsistencies(startups, jurors):
        by_type.setdefault(issue.type, []).append(issue)

    assert [i.items for i in by_type["vertical_mismatch"]] == [("LearnCo",)]
    assert by_type["vertical_mismatch"][0].severity == "high"
    assert [i.items for i in by_type["stage_mismatch"]] == [("LearnCo",)]
    assert [i.items for i in by_type["region_mismatch"]] == [("LearnCo",)]
    assert sorted(i.items for i in by_type["missing_data"]) == [("Ben",), ("Blank",)]


def test_detect_data_inconsistencies_clean():
    jurors = [Juror(id=1, name="Ana", email="a@x.test", target_verticals=["AI"], preferred_stages=["Seed"], preferred_regions=["Global"])]
    startups = [Startup(id=1, name="BotCo", verticals=["Machine Learning"], stage="Seed", regions=["Worldwide"])]
    assert detect_data_inconsistencies(startups, jurors) == []


def test_compatibility_partial_match():
    juror = Juror(id=1, name="J", email="j@x.test", target_verticals=["Fintech"], preferred_stages=["Series A"], preferred_regions=["Europe"])
    startup = Startup(id=2, name="S", verticals=["Payments"], stage="Seed", region="EU")
    c = calculate_compatibility(juror, startup)
    assert c.score == 70
    assert c.stage_match is None


def test_fit_score_reasons():
    juror = Juror(id=1, name="J", email="j@x.test", target_verticals=["Healthcare"], preferred_stages=["Seed"], preferred_regions=["Europe"])
    startup = Startup(id=2, name="S", industry="HealthTech & MedTech", stage="Seed", regions=["Europe"])
    score, reasons = calculate_fit_score(juror, startup)
    assert score == 10
    assert reasons == ["Region match (Europe)", "Industry match (HealthTech & MedTech)", "Stage match (Seed)"]


def test_workload_penalty():
    assert workload_penalty(2, 5, 3) == 0
    assert workload_penalty(4, 5, 3) == -2
    assert workload_penalty(5, 5, 3) == -5
    assert workload_penalty(6, 5, 3) == -10


def test_round_startups(app):
    with session_scope(app) as s:
        make_startup(s, "A", status="pending")
        make_startup(s, "B", status="shortlisted")
        make_startup(s, "C", status="rejected")
        make_startup(s, "D", status="finalist")
        assert [st.name for st in round_startups(s, "screening")] == ["A", "B", "D"]
        assert [st.name for st in round_startups(s, "pitching")] == ["B", "D"]


def _cohort(s, n_startups=4, n_jurors=4):
    ensure_rounds(s)
    startups = [make_startup(s, f"Startup {i}", verticals=["Fintech"] if i % 2 else ["Healthcare"]) for i in range(n_startups)]
    jurors = [make_juror(s, f"Juror {i}", target_verticals=["Fintech"] if i % 2 else ["Healthcare"]) for i in range(n_jurors)]
    return startups, jurors


def test_auto_assignment_plan_balances_load(app):
    with session_scope(app) as s:
        _cohort(s)
        plan = generate_auto_assignments(s, "screening")
        assert len(plan.proposals) == 4
        assert all(len(p.proposed_jurors) == 3 for p in plan.proposals)
        assert plan.total_proposed == 12
        # floor(4 startups * 3 / 4 jurors)
        assert {w.target_assignments for w in plan.workload} == {3}
        assert sum(w.proposed_assignments for w in plan.workload) == 12
        assert not any(w.is_overloaded for w in plan.workload)
        # Nothing is written until the plan is applied.
        assert s.query(Assignment).count() == 0


def test_auto_assignment_tops_up_existing(app):
    with session_scope(app) as s:
        startups, jurors = _cohort(s, n_startups=1, n_jurors=4)
        assign_juror(s, jurors[0], startups[0], "screening", None)
        plan = generate_auto_assignments(s, "screening")
        proposed = [pj.juror_id for pj in plan.proposals[0].proposed_jurors]
        assert len(proposed) == 2
        assert jurors[0].id not in proposed


def test_auto_assignment_prefers_explicit_pitch_interest(app):
    with session_scope(app) as s:
        startups, jurors = _cohort(s, n_startups=1, n_jurors=4)
        startups[0].status = "shortlisted"
        s.add(Evaluation(juror_id=jurors[2].id, startup_id=startups[0].id, round_name="screening", status="submitted", wants_pitch_session=True))
        s.flush()
        plan = generate_auto_assignments(s, "pitching")
        top = plan.proposals[0].proposed_jurors[0]
        assert top.juror_id == jurors[2].id
        assert "Explicit interest (+15)" in top.reasoning


def test_apply_auto_assignments_notifies_jurors(app):
    with app.app_context(), session_scope(app) as s:
        _cohort(s, n_startups=2, n_jurors=3)
        plan = generate_auto_assignments(s, "screening")
        created = apply_auto_assignments(s, plan, None)
        assert created == 6
        assert s.query(Assignment).filter(Assignment.source == "auto").count() == 6
        stages = {wf.current_stage for wf in s.query(ParticipantWorkflow).all()}
        assert stages == {"assignment_notification"}


def test_assign_requires_active_round(app):
    with session_scope(app) as s:
        startups, jurors = _cohort(s, n_startups=1, n_jurors=1)
        with pytest.raises(ValueError, match="not active"):
            assign_juror(s, jurors[0], startups[0], "pitching", None)
        assign_juror(s, jurors[0], startups[0], "screening", None)
        with pytest.raises(ValueError, match="already assigned"):
            assign_juror(s, jurors[0], startups[0], "screening", None)


def test_unassign_deletes_draft_but_not_submitted(app):
    with session_scope(app) as s:
        startups, jurors = _cohort(s, n_startups=2, n_jurors=1)
        a1 = assign_juror(s, jurors[0], startups[0], "screening", None)
        a2 = assign_juror(s, jurors[0], startups[1], "screening", None)
        s.add(Evaluation(juror_id=jurors[0].id, startup_id=startups[0].id, round_name="screening", status="draft"))
        s.add(Evaluation(juror_id=jurors[0].id, startup_id=startups[1].id, round_name="screening", status="submitted"))
        s.flush()

        unassign_juror(s, a1, None)
        s.flush()
        assert s.query(Evaluation).filter(Evaluation.startup_id == startups[0].id).count() == 0

        with pytest.raises(ValueError, match="already submitted"):
            unassign_juror(s, a2, None)


def test_assign_and_unassign_routes(app, client):
    login(client)
    with session_scope(app) as s:
        startups, jurors = _cohort(s, n_startups=1, n_jurors=1)
        sid, jid = startups[0].id, jurors[0].id
    r = client.post(
        "/admin/assignments/assign",
        data={"csrf_token": csrf(client), "juror_id": jid, "startup_id": sid, "round": "screening"},
        follow_redirects=True,
    )
    assert b"Juror 0 assigned to Startup 0" in r.data
    with session_scope(app) as s:
        aid = s.query(Assignment).one().id
    client.post(f"/admin/assignments/{aid}/unassign", data={"csrf_token": csrf(client)})
    with session_scope(app) as s:
        assert s.query(Assignment).count() == 0


def test_assignments_pages_render(app, client):
    login(client)
    with session_scope(app) as s:
        _cohort(s, n_startups=3, n_jurors=2)
    assert client.get("/admin/assignments").status_code == 200
    r = client.get("/admin/assignments/auto?round=screening")
    assert r.status_code == 200
    r = client.post("/admin/assignments/auto", data={"csrf_token": csrf(client), "round": "screening"}, follow_redirects=True)
    assert b"Created 6 assignment(s)" in r.data
    assert client.get("/admin/assignments?round=finals").status_code == 404


def test_pitch_request_limits(app):
    with app.app_context(), session_scope(app) as s:
        a = make_startup(s, "A", status="shortlisted")
        b = make_startup(s, "B", status="shortlisted")
        j = make_juror(s, meeting_limit=1)
        pr = create_pitch_request(s, j, a, None, "Keen on this one")
        assert pr.status == "pending"
        with pytest.raises(ValueError, match="already has a pitch call"):
            create_pitch_request(s, j, a, None)
        with pytest.raises(ValueError, match="meeting limit"):
            create_pitch_request(s, j, b, None)
        wf = s.query(ParticipantWorkflow).filter_by(participant_id=j.id).one()
        assert wf.current_stage == "pitching_assignment"


def test_validate_pitch_payload():
    assert validate_pitch_payload({"status": "scheduled"}) == ["A scheduled pitch needs a meeting date."]
    assert validate_pitch_payload({"status": "scheduled", "meeting_scheduled_date": "2026-03-01T10:30"}) == []
    assert "Meeting date must be a valid date/time." in validate_pitch_payload({"meeting_scheduled_date": "soon"})
    assert any("Invalid status" in e for e in validate_pitch_payload({"status": "cancelled"}))


def test_pitch_request_routes(app, client):
    login(client)
    with session_scope(app) as s:
        sid = make_startup(s, status="shortlisted").id
        jid = make_juror(s).id
    r = client.post(
        "/admin/pitch-requests/new",
        data={"csrf_token": csrf(client), "juror_id": jid, "startup_id": sid, "notes": ""},
        follow_redirects=True,
    )
    assert b"Pitch call requested" in r.data
    with session_scope(app) as s:
        prid = s.query(PitchRequest).one().id
    client.post(
        f"/admin/pitch-requests/{prid}/edit",
        data={"csrf_token": csrf(client), "status": "scheduled", "meeting_scheduled_date": "2026-03-01T10:30", "notes": "Zoom"},
    )
    with session_scope(app) as s:
        pr = s.get(PitchRequest, prid)
        assert pr.status == "scheduled"
        assert pr.meeting_scheduled_date.hour == 10
        assert pr.notes == "Zoom"
