"""
Scoring rubric for both rounds. Every criterion is scored 0, 1 or 2.
"""
from __future__ import annotations

from dataclasses import dataclass

from app.jury.constants import ROUND_PITCHING, ROUND_SCREENING

SCORE_VALUES = (0, 1, 2)
MAX_CRITERION_SCORE = 2


@dataclass(frozen=True)
class Criterion:
    key: str
    label: str


@dataclass(frozen=True)
class Section:
    key: str
    title: str
    criteria: tuple[Criterion, ...]


def _section(key: str, title: str, *criteria: tuple[str, str]) -> Section:
    return Section(key, title, tuple(Criterion(k, label) for k, label in criteria))


SCREENING_SECTIONS: tuple[Section, ...] = (
    _section(
        "problem_statement",
        "Problem Statement",
        ("problem_logical", "The problem is presented logically and compellingly"),
        ("pain_point_clear", "The pain point is clearly articulated"),
        ("issue_size_explained", "The size/significance of the issue is explained"),
        ("sources_cited", "Sources for claims are cited"),
        ("sources_accurate", "Sources are accurate and verifiable"),
        ("target_segment_defined", "Target client segment is clearly defined"),
        ("current_solutions_limitations", "Limitations of current/alternative solutions are included"),
    ),
    _section(
        "solution",
        "Solution",
        ("solution_addresses_problem", "The solution directly addresses the problem"),
        ("impact_measurable", "Impact on clients is measurable with results"),
        ("solution_clearly_described", "The solution is clearly described"),
        ("use_case_provided", "A use case or product visualization is provided"),
        ("website_app_aligns", "A website or app is available and aligns with the description"),
    ),
    _section(
        "market",
        "Market",
        ("market_size_presented", "Market size is presented"),
        ("market_large_enough", "Market is large enough to show venture potential"),
        ("figures_realistic", "Figures and logic are realistic (no exaggeration)"),
        ("market_aligns_problem", "Market aligns with the defined problem and client segments"),
        ("reliable_sources_market", "Reliable sources are cited for market trends"),
        ("competitors_listed", "Competitors are listed"),
    ),
    _section(
        "competitive_advantage",
        "Competitive Advantage",
        ("comparative_analysis", "A comparative analysis of competitors is conducted"),
        ("advantage_clearly_defined", "Competitive advantage is clearly defined"),
    ),
    _section(
        "business_model",
        "Business Model",
        ("monetization_described", "Monetisation model is clearly described"),
        ("unit_economics_positive", "Unit economics are provided and positive"),
        ("business_model_coherent", "Business model is coherent and data-backed"),
    ),
    _section(
        "traction_scalability",
        "Traction & Scalability",
        ("positive_traction", "Company shows positive traction"),
        ("key_metrics_presented", "Key metrics are presented"),
        ("growth_plan_3_5_years", "3-5 year growth plan is included"),
        ("key_milestones_provided", "Key milestones are provided for 3-5 years"),
        ("revenue_targets_align", "Revenue targets align with SOM"),
    ),
    _section(
        "team",
        "Team",
        ("team_members_introduced", "Core team members are introduced with roles"),
        ("achievements_highlighted", "Achievements and relevant experience are highlighted"),
        ("relevant_business_experience", "Team has relevant business experience"),
        ("relevant_technical_expertise", "Team has relevant technical expertise"),
    ),
    _section(
        "impact",
        "Impact",
        ("social_problem_described", "A clear description of the social or sustainability problem is provided"),
        ("links_societal_challenge", "The problem links to a broader societal challenge"),
        ("factual_information_included", "Problem description includes factual information"),
        ("impact_sources_accurate", "Sources are cited and accurate"),
    ),
    _section(
        "investment",
        "Investment",
        ("investment_clearly_stated", "The investment request is clearly stated"),
        ("use_of_funds_outlined", "Intended use of funds is outlined with defined goals"),
    ),
)

PITCHING_SECTIONS: tuple[Section, ...] = (
    _section("founder_team", "Founder & Team", ("founder_team_score", "Founder & Team Assessment")),
    _section("profitability_market", "Profitability / Market Potential", ("profitability_market_score", "Market Potential & Profitability")),
    _section("prize_money_usage", "Usage of Prize Money", ("prize_money_usage_score", "Prize Money Allocation")),
    _section("information_delivery", "Information Delivery (Pitch Quality)", ("information_delivery_score", "Pitch Quality & Delivery")),
    _section("qa_performance", "Q&A Performance", ("qa_performance_score", "Q&A Session Performance")),
)

GUIDED_FEEDBACK_OPTIONS: dict[int, str] = {
    1: "Overall storytelling in the pitch deck",
    2: "Level of detail and factual evidence is insufficient",
    3: "Problem does not seem real/significant enough",
    4: "Clarity of the problem-solution fit is weak",
    5: "Market estimates are unclear/incorrect",
    6: "Business model unclear or not scalable",
    7: "Competitive analysis needs more attention",
    8: "Competitive advantage not strong enough",
    9: "Missing relevant team experience",
    10: "Insufficient information on team roles/functions",
    11: "No track record to support forecasts",
    12: "Company stage unclear",
    13: "3-5 year plan lacks milestones/evidence",
    14: "Plan appears over-optimistic",
    15: "Plan not ambitious enough given track record",
    16: "Investment thesis unclear",
    17: "Investment ask does not align with company stage",
    18: "Business does not appear VC-investable",
}

RECOMMENDATIONS = ("Fund", "Consider", "Pass")


def sections_for(round_name: str) -> tuple[Section, ...]:
    if round_name == ROUND_SCREENING:
        return SCREENING_SECTIONS
    if round_name == ROUND_PITCHING:
        return PITCHING_SECTIONS
    raise ValueError(f"Unknown round: {round_name}")


def criterion_keys(round_name: str) -> list[str]:
    return [c.key for section in sections_for(round_name) for c in section.criteria]


def calculate_overall_score(round_name: str, scores: dict[str, int] | None) -> float:
    """Sum of scores over the maximum possible, on a 0-10 scale."""
    keys = criterion_keys(round_name)
    scores = scores or {}
    total = sum(int(scores[k]) for k in keys if scores.get(k) is not None)
    return round(total / (len(keys) * MAX_CRITERION_SCORE) * 10, 2)
