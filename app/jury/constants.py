"""
Canonical data standards shared by forms, imports and matchmaking.
"""
from __future__ import annotations

REGIONS = (
    "Africa",
    "Asia Pacific (APAC)",
    "Europe",
    "Latin America (LATAM)",
    "Middle East & North Africa (MENA)",
    "North America",
    "Other",
)

VERTICALS = (
    "Artificial Intelligence (AI/ML)",
    "Fintech",
    "HealthTech & MedTech",
    "Wellbeing, Longevity & Life Sciences",
    "PharmTech",
    "RetailTech & E-commerce",
    "Enterprise Software",
    "Cybersecurity",
    "Productivity Tools",
    "Transportation & Mobility",
    "Energy & Sustainability",
    "AgriTech & Food Tech",
    "Media & Entertainment",
    "AdTech & MarTech",
    "Real Estate & PropTech",
    "Education Technology (EdTech)",
    "Logistics & Supply Chain",
    "Construction Tech",
    "Space Technology",
    "Semiconductors & Hardware",
    "Data Infrastructure & Analytics",
    "Industrial Automation & Robotics",
    "Aerospace & Defense",
    "Gaming & Visual Assets",
    "SportTech",
    "Web3 / Blockchain / Crypto",
    "TravelTech",
    "No Tech, not a Venture Business",
    "Others (Specify)",
)

STAGES = ("Pre-Seed", "Seed", "Series A", "Series B", "Series C", "Growth", "IPO")

BUSINESS_MODELS = (
    "B2C – Business to Consumer",
    "B2B2C – Business to Business to Consumer",
    "B2B – Business to Business (Enterprise & SMEs)",
    "B2B – Business to Business (Enterprise)",
    "B2B – Business to Business (SMEs)",
    "D2C – Direct to Consumer",
    "C2C – Consumer to Consumer (incl. Marketplaces/Platforms)",
)

CURRENCIES = {"GBP": "£", "EUR": "€", "USD": "$"}

ROUND_SCREENING = "screening"
ROUND_PITCHING = "pitching"
ROUND_ORDER = (ROUND_SCREENING, ROUND_PITCHING)
ROUND_LABELS = {ROUND_SCREENING: "Screening", ROUND_PITCHING: "Pitching"}

# Every startup should be reviewed by this many jurors per round.
JURORS_PER_STARTUP = 3
