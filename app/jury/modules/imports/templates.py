"""
Downloadable CSV import templates.

Layout: "#" documentation lines, a blank line, the header row, then three example rows
(full, minimal, partial) with every cell quoted.
"""
from __future__ import annotations

import csv
import io

from app.jury.constants import REGIONS, STAGES

STARTUP_TEMPLATE_FILENAME = "startup_template.csv"
JUROR_TEMPLATE_FILENAME = "jurors_template.csv"

STARTUP_HEADERS = (
    "name",
    "description",
    "contact_email",
    "industry",
    "stage",
    "location",
    "country",
    "regions",
    "founded_year",
    "team_size",
    "funding_goal",
    "funding_raised",
    "business_model",
    "verticals",
    "other_vertical_description",
    "website",
    "pitch_deck_url",
    "demo_url",
    "linkedin_url",
    "founder_names",
    "status",
)

JUROR_HEADERS = (
    "name",
    "email",
    "job_title",
    "company",
    "linkedin_url",
    "calendly_link",
    "preferred_stages",
    "target_verticals",
    "preferred_regions",
    "evaluation_limit",
    "meeting_limit",
)

_REGION_LIST = ", ".join(r for r in REGIONS if r != "Other")

STARTUP_REQUIRED_FIELDS = ("name", "contact_email", "description")

STARTUP_DOC_ROWS = (
    "# REQUIRED FIELDS: " + ", ".join(STARTUP_REQUIRED_FIELDS),
    "# OPTIONAL FIELDS: All other fields are optional",
    "# ARRAY FIELDS (semicolon-separated): founder_names, regions, verticals",
    f"# VALID STAGES: {', '.join(STAGES)}",
    "# VALID STATUS: pending, under_review, shortlisted, rejected, waitlisted",
    "# VALID CURRENCIES: GBP, USD, EUR",
    f"# VALID REGIONS: {_REGION_LIST}",
)

JUROR_DOC_ROWS = (
    "# REQUIRED FIELDS: name, email",
    "# OPTIONAL FIELDS: " + ", ".join(JUROR_HEADERS[2:]),
    "# ARRAY FIELDS (semicolon-separated): preferred_stages, target_verticals, preferred_regions",
    f"# VALID STAGES: {', '.join(STAGES)}",
    f"# VALID REGIONS: {_REGION_LIST}",
    '# VALID VERTICALS: See startup template (e.g. "Artificial Intelligence (AI/ML);Fintech")',
    "# evaluation_limit: Number of startups this juror should evaluate (leave empty for the default)",
    "# meeting_limit: Number of pitching calls this juror should conduct (leave empty for no limit)",
)

STARTUP_EXAMPLES = (
    (
        "Northwind Robotics",
        "Autonomous picking robots for mid-size warehouses",
        "founders@northwind.example",
        "Logistics",
        "Seed",
        "Rotterdam",
        "Netherlands",
        "Europe",
        "2022",
        "9",
        "2000000",
        "400000",
        "B2B – Business to Business (Enterprise)",
        "Industrial Automation & Robotics;Logistics & Supply Chain",
        "",
        "https://northwind.example",
        "https://drive.example.com/northwind-deck",
        "https://demo.northwind.example",
        "https://linkedin.com/company/northwind-robotics",
        "Ana Costa;Pieter de Vries",
        "pending",
    ),
    ("GreenBasket", "Marketplace connecting local farms with city households", "hello@greenbasket.example")
    + ("",) * (len(STARTUP_HEADERS) - 3),
    (
        "PulseCheck",
        "Wearable-based early warning for cardiac events",
        "team@pulsecheck.example",
        "Healthcare",
        "Pre-Seed",
        "Lisbon",
        "Portugal",
        "Europe",
        "2023",
        "4",
        "1200000",
        "150000",
        "B2C – Business to Consumer",
        "HealthTech & MedTech;Artificial Intelligence (AI/ML)",
        "",
        "https://pulsecheck.example",
        "",
        "",
        "",
        "Dr. Rui Alves;Mia Torres",
        "under_review",
    ),
)

JUROR_EXAMPLES = (
    (
        "Sofia Lindqvist",
        "sofia@nordicventures.example",
        "Partner",
        "Nordic Ventures",
        "https://linkedin.com/in/sofialindqvist",
        "https://calendly.com/sofia/30min",
        "Seed;Series A",
        "Artificial Intelligence (AI/ML);Enterprise Software;Fintech",
        "Europe;North America",
        "10",
        "5",
    ),
    ("Daniel Okafor", "daniel@savannahcap.example", "", "", "", "", "", "", "", "", ""),
    (
        "Laura Medina",
        "laura@andesgrowth.example",
        "Principal",
        "Andes Growth",
        "https://linkedin.com/in/lauramedina",
        "",
        "Pre-Seed;Seed",
        "HealthTech & MedTech;RetailTech & E-commerce",
        "Latin America (LATAM)",
        "12",
        "",
    ),
)


def _render(doc_rows: tuple[str, ...], headers: tuple[str, ...], examples: tuple[tuple[str, ...], ...]) -> str:
    out = io.StringIO()
    for line in doc_rows:
        out.write(line + "\n")
    out.write("\n")
    out.write(",".join(headers) + "\n")
    w = csv.writer(out, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in examples:
        w.writerow(row)
    return out.getvalue()


def startup_template_csv() -> str:
    return _render(STARTUP_DOC_ROWS, STARTUP_HEADERS, STARTUP_EXAMPLES)


def juror_template_csv() -> str:
    return _render(JUROR_DOC_ROWS, JUROR_HEADERS, JUROR_EXAMPLES)
