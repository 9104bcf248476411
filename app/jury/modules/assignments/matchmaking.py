"""
Matchmaking between startups and jurors.

Two scorings live here:
- compatibility (0-100): vertical 50, stage 30, region 20; used for the match grid.
- fit score (0-10, plus bonuses/penalties): drives the auto-assignment proposals.

Values are compared after mapping known synonyms onto canonical labels, so "APAC" and
"Asia Pacific" or "Preseed" and "Pre-Seed" count as the same thing.
"""
from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

from sqlalchemy.orm import Session

from app.jury.constants import JURORS_PER_STARTUP, ROUND_PITCHING, ROUND_SCREENING

if TYPE_CHECKING:
    from app.jury.modules.jurors.models import Juror
    from app.jury.modules.startups.models import Startup

logger = logging.getLogger(__name__)

CANONICAL_REGIONS: dict[str, tuple[str, ...]] = {
    "Europe": ("EU", "Europe", "European Union", "EMEA"),
    "North America": ("NA", "North America", "USA", "US", "United States", "Canada"),
    "Asia Pacific (APAC)": ("Asia", "APAC", "Asia Pacific", "Asia Pacific (APAC)", "SEA", "Southeast Asia"),
    "Middle East & North Africa (MENA)": ("ME", "Middle East", "MENA", "Gulf", "Middle East & North Africa (MENA)"),
    "Africa": ("Africa", "Sub-Saharan Africa", "North Africa"),
    "Latin America (LATAM)": ("LATAM", "Latin America", "South America", "Central America", "Latin America (LATAM)"),
    "Global": ("Global", "Worldwide", "International"),
}

CANONICAL_STAGES: dict[str, tuple[str, ...]] = {
    "Pre-Seed": ("Pre-Seed", "Preseed", "Pre Seed", "Idea", "Concept"),
    "Seed": ("Seed", "Early Seed", "Late Seed"),
    "Series A": ("Series A", "A", "Post-Seed"),
    "Series B": ("Series B", "B"),
    "Series C": ("Series C", "Series C+", "C", "Series D", "D", "Late Stage"),
}

CANONICAL_VERTICALS: dict[str, tuple[str, ...]] = {
    "Fintech": ("Fintech", "Financial Technology", "Finance", "Banking", "Payments"),
    "HealthTech & MedTech": ("HealthTech & MedTech", "Healthcare", "Health", "MedTech", "Digital Health", "Biotech"),
    "Enterprise Software": ("Enterprise Software", "Enterprise", "B2B", "SaaS"),
    "RetailTech & E-commerce": ("RetailTech & E-commerce", "Consumer", "B2C", "E-commerce", "Retail"),
    "Energy & Sustainability": ("Energy & Sustainability", "Climate", "CleanTech", "Green Tech", "Sustainability"),
    "Artificial Intelligence (AI/ML)": (
        "Artificial Intelligence (AI/ML)",
        "AI/ML",
        "AI",
        "ML",
        "Artificial Intelligence",
        "Machine Learning",
        "Deep Learning",
    ),
    "Education Technology (EdTech)": ("Education Technology (EdTech)", "EdTech", "Education", "Learning", "E-learning"),
    "Real Estate & PropTech": ("Real Estate & PropTech", "PropTech", "Real Estate", "Property Technology"),
    "Transportation & Mobility": ("Transportation & Mobility", "Mobility", "Transportation", "Automotive"),
}

COMPATIBILITY_WEIGHTS = {"vertical": 50, "stage": 30, "region": 20}

FIT_REGION = 4
FIT_INDUSTRY = 3
FIT_STAGE = 3
EXPLICIT_INTEREST_BONUS = 15


def _lookup(table: dict[str, tuple[str, ...]]) -> dict[str, str]:
    return {variant.lower(): canonical for canonical, variants in table.items() for variant in variants}


_REGION_LOOKUP = _lookup(CANONICAL_REGIONS)
_STAGE_LOOKUP = _lookup(CANONICAL_STAGES)
_VERTICAL_LOOKUP = _lookup(CANONICAL_VERTICALS)


def _normalize(value: str | None, lookup: dict[str, str]) -> str | None:
    if not value or not value.strip():
        return None
    v = value.strip()
    return lookup.get(v.lower(), v)


def normalize_region(value: str | None) -> str | None:
    return _normalize(value, _REGION_LOOKUP)


def normalize_stage(value: str | None) -> str | None:
    return _normalize(value, _STAGE_LOOKUP)


def normalize_vertical(value: str | None) -> str | None:
    return _normalize(value, _VERTICAL_LOOKUP)


def _normalized_set(values: Iterable[str] | None, fn) -> set[str]:
    return {n for n in (fn(v) for v in (values or [])) if n}


# ---------- Compatibility ----------
@dataclass(frozen=True)
class Compatibility:
    juror_id: int
    startup_id: int
    score: int
    vertical_matches: tuple[str, ...]
    stage_match: str | None
    region_match: str | None

    @property
    def matches(self) -> dict[str, bool]:
        return {
            "vertical": bool(self.vertical_matches),
            "stage": self.stage_match is not None,
            "region": self.region_match is not None,
        }


def calculate_compatibility(juror: "Juror", startup: "Startup") -> Compatibility:
    startup_verticals = _normalized_set(startup.verticals, normalize_vertical)
    juror_verticals = _normalized_set(juror.target_verticals, normalize_vertical)
    vertical_matches = tuple(sorted(startup_verticals & juror_verticals))

    stage = normalize_stage(startup.stage)
    stage_match = stage if stage and stage in _normalized_set(juror.preferred_stages, normalize_stage) else None

    juror_regions = _normalized_set(juror.preferred_regions, normalize_region)
    region_match = next((r for r in (normalize_region(x) for x in startup.all_regions) if r and r in juror_regions), None)

    score = (
        (COMPATIBILITY_WEIGHTS["vertical"] if vertical_matches else 0)
        + (COMPATIBILITY_WEIGHTS["stage"] if stage_match else 0)
        + (COMPATIBILITY_WEIGHTS["region"] if region_match else 0)
    )
    return Compatibility(juror.id, startup.id, score, vertical_matches, stage_match, region_match)


@dataclass(frozen=True)
class DataInconsistency:
    type: str  # vertical_mismatch, stage_mismatch, region_mismatch, missing_data
    severity: str  # high, medium, low
    message: str
    items: tuple[str, ...]


def detect_data_inconsistencies(startups: list["Startup"], jurors: list["Juror"]) -> list[DataInconsistency]:
    out: list[DataInconsistency] = []
    juror_verticals = set().union(*(_normalized_set(j.target_verticals, normalize_vertical) for j in jurors)) if jurors else set()
    juror_stages = set().union(*(_normalized_set(j.preferred_stages, normalize_stage) for j in jurors)) if jurors else set()
    juror_regions = set().union(*(_normalized_set(j.preferred_regions, normalize_region) for j in jurors)) if jurors else set()

    no_vertical_match = [
        st.name
        for st in startups
        if st.verticals and not (_normalized_set(st.verticals, normalize_vertical) & juror_verticals)
    ]
    no_stage_match = [st.name for st in startups if st.stage and normalize_stage(st.stage) not in juror_stages]
    no_region_match = [
        st.name
        for st in startups
        if st.all_regions and not (_normalized_set(st.all_regions, normalize_region) & juror_regions)
    ]
    if no_vertical_match:
        out.append(
            DataInconsistency(
                "vertical_mismatch",
                "high",
                f"{len(no_vertical_match)} startup(s) have verticals with no matching juror preferences",
                tuple(no_vertical_match),
            )
        )
    if no_stage_match:
        out.append(
            DataInconsistency(
                "stage_mismatch",
                "medium",
                f"{len(no_stage_match)} startup(s) have stages with no matching juror preferences",
                tuple(no_stage_match),
            )
        )
    if no_region_match:
        out.append(
            DataInconsistency(
                "region_mismatch",
                "low",
                f"{len(no_region_match)} startup(s) have regions with no matching juror preferences",
                tuple(no_region_match),
            )
        )

    startups_missing = [st.name for st in startups if not st.verticals]
    jurors_missing = [j.name for j in jurors if not j.target_verticals]
    if startups_missing:
        out.append(
            DataInconsistency(
                "missing_data", "high", f"{len(startups_missing)} startup(s) have no verticals defined", tuple(startups_missing)
            )
        )
    if jurors_missing:
        out.append(
            DataInconsistency(
                "missing_data", "high", f"{len(jurors_missing)} juror(s) have no target verticals defined", tuple(jurors_missing)
            )
        )
    return out


# ---------- Auto-assignment ----------
@dataclass(frozen=True)
class ProposedJuror:
    juror_id: int
    juror_name: str
    fit_score: int
    reasoning: str


@dataclass
class Proposal:
    startup_id: int
    startup_name: str
    proposed_jurors: list[ProposedJuror] = field(default_factory=list)


@dataclass(frozen=True)
class WorkloadDistribution:
    juror_id: int
    juror_name: str
    current_assignments: int
    proposed_assignments: int
    target_assignments: int
    evaluation_limit: int
    is_custom_limit: bool

    @property
    def is_overloaded(self) -> bool:
        return self.proposed_assignments > self.target_assignments + 1

    @property
    def exceeds_limit(self) -> bool:
        return self.proposed_assignments > self.evaluation_limit


@dataclass
class AutoAssignmentPlan:
    round_name: str
    proposals: list[Proposal] = field(default_factory=list)
    workload: list[WorkloadDistribution] = field(default_factory=list)

    @property
    def total_proposed(self) -> int:
        return sum(len(p.proposed_jurors) for p in self.proposals)


def calculate_fit_score(juror: "Juror", startup: "Startup") -> tuple[int, list[str]]:
    score = 0
    reasons: list[str] = []

    juror_regions = _normalized_set(juror.preferred_regions, normalize_region)
    region = next((r for r in (normalize_region(x) for x in startup.all_regions) if r and r in juror_regions), None)
    if region:
        score += FIT_REGION
        reasons.append(f"Region match ({region})")

    juror_verticals = _normalized_set(juror.target_verticals, normalize_vertical)
    startup_verticals = _normalized_set([startup.industry] if startup.industry else [], normalize_vertical)
    startup_verticals |= _normalized_set(startup.verticals, normalize_vertical)
    industry = next(iter(sorted(startup_verticals & juror_verticals)), None)
    if industry:
        score += FIT_INDUSTRY
        reasons.append(f"Industry match ({industry})")

    stage = normalize_stage(startup.stage)
    if stage and stage in _normalized_set(juror.preferred_stages, normalize_stage):
        score += FIT_STAGE
        reasons.append(f"Stage match ({stage})")
    return score, reasons


def workload_penalty(current_load: int, limit: int, target: int) -> int:
    if current_load >= limit:
        return -5 * (current_load - limit + 1)
    if current_load > target:
        return -2 * (current_load - target)
    return 0


def round_startups(s: Session, round_name: str) -> list["Startup"]:
    """Startups taking part in a round: everyone not rejected for screening, the shortlist for pitching."""
    from app.jury.modules.startups.models import Startup

    q = s.query(Startup)
    if round_name == ROUND_PITCHING:
        q = q.filter(Startup.status.in_(("shortlisted", "selected", "finalist", "winner")))
    else:
        q = q.filter(Startup.status != "rejected")
    return q.order_by(Startup.name.asc(), Startup.id.asc()).all()


def _interested_pairs(s: Session) -> set[tuple[int, int]]:
    """(juror_id, startup_id) pairs where a submitted screening evaluation asked for a pitch session."""
    from app.jury.modules.evaluations.models import Evaluation

    rows = (
        s.query(Evaluation.juror_id, Evaluation.startup_id)
        .filter(
            Evaluation.round_name == ROUND_SCREENING,
            Evaluation.status == "submitted",
            Evaluation.wants_pitch_session.is_(True),
        )
        .all()
    )
    return {(int(j), int(st)) for j, st in rows}


def generate_auto_assignments(s: Session, round_name: str) -> AutoAssignmentPlan:
    """
    Propose jurors for every startup in the round that has fewer than three.

    Nothing is written; apply_auto_assignments() persists an accepted plan.
    """
    from app.jury.modules.assignments.models import Assignment
    from app.jury.modules.jurors.models import Juror

    plan = AutoAssignmentPlan(round_name=round_name)
    startups = round_startups(s, round_name)
    jurors = s.query(Juror).order_by(Juror.name.asc(), Juror.id.asc()).all()
    if not startups or not jurors:
        return plan

    existing = s.query(Assignment).filter(Assignment.round_name == round_name).all()
    assigned_pairs = {(a.juror_id, a.startup_id) for a in existing}
    current = Counter(a.juror_id for a in existing)
    per_startup = Counter(a.startup_id for a in existing)
    running = Counter(current)

    target = math.floor(len(startups) * JURORS_PER_STARTUP / len(jurors))
    interested = _interested_pairs(s)
    wanted_per_startup = min(JURORS_PER_STARTUP, len(jurors))

    for startup in startups:
        needed = wanted_per_startup - per_startup.get(startup.id, 0)
        if needed <= 0:
            continue
        scored: list[tuple[int, str, "Juror"]] = []
        for juror in jurors:
            if (juror.id, startup.id) in assigned_pairs:
                continue
            fit, reasons = calculate_fit_score(juror, startup)
            bonus = EXPLICIT_INTEREST_BONUS if (juror.id, startup.id) in interested else 0
            limit = juror.evaluation_limit if juror.evaluation_limit is not None else target
            penalty = workload_penalty(running[juror.id], limit, target)
            reasoning = ", ".join(reasons) if reasons else "No criteria matches found"
            if bonus:
                reasoning += f", Explicit interest (+{bonus})"
            if penalty:
                reasoning += f", Overloaded ({penalty})"
            scored.append((fit + bonus + penalty, reasoning, juror))

        # Stable on ties: jurors keep their alphabetical order.
        scored.sort(key=lambda t: t[0], reverse=True)
        proposal = Proposal(startup_id=startup.id, startup_name=startup.name)
        for total, reasoning, juror in scored[:needed]:
            proposal.proposed_jurors.append(ProposedJuror(juror.id, juror.name, total, reasoning))
            running[juror.id] += 1
        if proposal.proposed_jurors:
            plan.proposals.append(proposal)

    plan.workload = [
        WorkloadDistribution(
            juror_id=j.id,
            juror_name=j.name,
            current_assignments=current.get(j.id, 0),
            proposed_assignments=running.get(j.id, 0),
            target_assignments=target,
            evaluation_limit=j.evaluation_limit if j.evaluation_limit is not None else target,
            is_custom_limit=j.evaluation_limit is not None,
        )
        for j in jurors
    ]
    logger.info("Auto-assignment plan for %s: %d proposal(s), %d pair(s)", round_name, len(plan.proposals), plan.total_proposed)
    return plan
