from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.jury.audit import record_event
from app.jury.constants import ROUND_LABELS
from app.jury.modules.evaluations.criteria import (
    GUIDED_FEEDBACK_OPTIONS,
    RECOMMENDATIONS,
    SCORE_VALUES,
    calculate_overall_score,
    criterion_keys,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.jury.models import User
    from app.jury.modules.evaluations.models import Evaluation
    from app.jury.modules.jurors.models import Juror
    from app.jury.modules.startups.models import Startup

logger = logging.getLogger(__name__)

MIN_FEEDBACK_LENGTH = 30
MAX_STRENGTHS = 3
SHORT_FEEDBACK_MESSAGE = "Please add at least 30 characters so your feedback is specific and useful."

TEXT_FIELDS = {
    "improvement_areas": "Areas for improvement",
    "pitch_development_aspects": "Pitch development aspects",
    "overall_notes": "Overall notes",
}


class NotAssignedError(ValueError):
    pass


def parse_scores(payload: dict) -> dict[str, int]:
    """
    Scores come either as a dict under "criteria_scores" or as flat "score_<criterion>" form fields.
    Blank values are dropped so that drafts can be partially filled.
    """
    raw: dict[str, Any] = dict(payload.get("criteria_scores") or {})
    for k, v in payload.items():
        if k.startswith("score_"):
            raw[k[len("score_"):]] = v
    out: dict[str, int] = {}
    for k, v in raw.items():
        if v is None or str(v).strip() == "":
            continue
        out[k] = int(str(v).strip())
    return out


def _clean_strengths(value: Any) -> list[str]:
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple)) else [value]
    return [str(v).strip() for v in items if v is not None and str(v).strip()]


def _guided_ids(value: Any) -> list[int]:
    items = value if isinstance(value, (list, tuple)) else ([value] if value else [])
    out: list[int] = []
    for v in items:
        if str(v).strip().isdigit() and int(v) in GUIDED_FEEDBACK_OPTIONS and int(v) not in out:
            out.append(int(v))
    return out


def validate_evaluation_payload(round_name: str, payload: dict, *, submit: bool) -> list[str]:
    """Drafts only need well-formed values; submission also needs a complete evaluation."""
    errors: list[str] = []
    try:
        scores = parse_scores(payload)
    except ValueError:
        return ["Scores must be 0, 1 or 2."]
    keys = criterion_keys(round_name)
    unknown = sorted(set(scores) - set(keys))
    if unknown:
        errors.append(f"Unknown criteria: {', '.join(unknown)}")
    if any(v not in SCORE_VALUES for v in scores.values()):
        errors.append("Scores must be 0, 1 or 2.")

    strengths = _clean_strengths(payload.get("strengths"))
    if len(strengths) > MAX_STRENGTHS:
        errors.append(f"Add at most {MAX_STRENGTHS} strengths.")
    for i, strength in enumerate(strengths, start=1):
        if len(strength) < MIN_FEEDBACK_LENGTH:
            errors.append(f"Strength {i}: {SHORT_FEEDBACK_MESSAGE}")
    for key, label in TEXT_FIELDS.items():
        text = (payload.get(key) or "").strip()
        if text and len(text) < MIN_FEEDBACK_LENGTH:
            errors.append(f"{label}: {SHORT_FEEDBACK_MESSAGE}")

    recommendation = (payload.get("recommendation") or "").strip()
    if recommendation and recommendation not in RECOMMENDATIONS:
        errors.append(f"Invalid recommendation. Must be one of: {', '.join(RECOMMENDATIONS)}")
    amount = payload.get("investment_amount")
    if amount not in (None, "") and not str(amount).strip().isdigit():
        errors.append("Investment amount must be a whole number.")

    if submit:
        missing = [k for k in keys if k not in scores]
        if missing:
            errors.append(f"Please score every criterion ({len(missing)} missing).")
        if not strengths:
            errors.append("Please add at least one strength.")
        if not (payload.get("improvement_areas") or "").strip():
            errors.append("Areas for improvement are required.")
        if not (payload.get("pitch_development_aspects") or "").strip():
            errors.append("Pitch development aspects are required.")
    return errors


def find_evaluation(s: "Session", juror_id: int, startup_id: int, round_name: str) -> "Evaluation | None":
    from app.jury.modules.evaluations.models import Evaluation

    return (
        s.query(Evaluation)
        .filter(
            Evaluation.juror_id == juror_id,
            Evaluation.startup_id == startup_id,
            Evaluation.round_name == round_name,
        )
        .one_or_none()
    )


def ensure_assigned(s: "Session", juror: "Juror", startup: "Startup", round_name: str):
    from app.jury.modules.assignments.service import find_assignment

    assignment = find_assignment(s, juror.id, startup.id, round_name)
    if assignment is None:
        raise NotAssignedError(f"You are not assigned to {startup.name} for the {ROUND_LABELS.get(round_name, round_name)} round.")
    return assignment


def save_evaluation(
    s: "Session",
    juror: "Juror",
    startup: "Startup",
    round_name: str,
    payload: dict,
    user: "User | None",
    *,
    submit: bool,
) -> "Evaluation":
    """
    Save a draft or submit an evaluation.

    Callers validate first with validate_evaluation_payload(); this raises NotAssignedError for
    startups outside the juror's assignments and ValueError once the round is closed.
    """
    from app.jury.modules.cohort.service import can_modify_round
    from app.jury.modules.evaluations.models import Evaluation

    assignment = ensure_assigned(s, juror, startup, round_name)
    if not can_modify_round(s, round_name):
        raise ValueError(f"The {ROUND_LABELS.get(round_name, round_name)} round is closed; evaluations can no longer change.")

    now = datetime.utcnow()
    ev = find_evaluation(s, juror.id, startup.id, round_name)
    is_new = ev is None
    if ev is None:
        ev = Evaluation(juror_id=juror.id, startup_id=startup.id, round_name=round_name, status="draft", created_at=now)
        s.add(ev)

    scores = parse_scores(payload)
    ev.criteria_scores = scores
    ev.overall_score = calculate_overall_score(round_name, scores)
    ev.strengths = _clean_strengths(payload.get("strengths"))
    for key in TEXT_FIELDS:
        setattr(ev, key, (payload.get(key) or "").strip() or None)
    ev.guided_feedback = _guided_ids(payload.get("guided_feedback"))
    ev.recommendation = (payload.get("recommendation") or "").strip() or None
    ev.wants_pitch_session = str(payload.get("wants_pitch_session") or "").lower() in ("1", "true", "on", "yes")
    amount = payload.get("investment_amount")
    ev.investment_amount = int(str(amount).strip()) if amount not in (None, "") else None
    ev.updated_at = now

    if submit:
        ev.status = "submitted"
        ev.submitted_at = now
        assignment.status = "completed"
    s.flush()

    record_event(
        s,
        actor=user,
        action="evaluation.submit" if submit else ("evaluation.create" if is_new else "evaluation.save_draft"),
        entity_type="Evaluation",
        entity_id=str(ev.id),
        metadata={
            "juror_id": juror.id,
            "startup_id": startup.id,
            "round": round_name,
            "overall_score": ev.overall_score,
        },
    )
    logger.info("Evaluation id=%s %s (juror=%s startup=%s)", ev.id, ev.status, juror.id, startup.id)
    return ev
