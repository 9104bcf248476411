from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable

from app.jury.modules.imports.templates import JUROR_HEADERS, STARTUP_HEADERS, STARTUP_REQUIRED_FIELDS

KIND_STARTUPS = "startups"
KIND_JURORS = "jurors"

_YEAR_RE = re.compile(r"\b(19|20)\d{2}\b")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_STAGE_ALIASES = {
    "pre-seed": "Pre-Seed",
    "preseed": "Pre-Seed",
    "pre seed": "Pre-Seed",
    "pre-seed (with functionable mvp)": "Pre-Seed",
    "pre seed (with functionable mvp)": "Pre-Seed",
    "seed": "Seed",
    "series-a": "Series A",
    "series a": "Series A",
    "seriesa": "Series A",
    "series-b": "Series B",
    "series b": "Series B",
    "seriesb": "Series B",
    "series-c": "Series C",
    "series c": "Series C",
    "seriesc": "Series C",
    "growth": "Growth",
    "ipo": "IPO",
}


@dataclass(frozen=True)
class CsvRowError:
    row_number: int
    message: str


# ---------- Value helpers ----------
def normalize_text(value: Any) -> str:
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip()


def normalize_stage(stage: str | None) -> str | None:
    """Canonical Title Case stage; unknown stages only get their first letter capitalised."""
    if not stage or not stage.strip():
        return None
    key = stage.strip().lower()
    if key in _STAGE_ALIASES:
        return _STAGE_ALIASES[key]
    stage = stage.strip()
    return stage[0].upper() + stage[1:].lower()


def parse_array_field(value: Any) -> list[str]:
    """
    Split a multi-value cell.

    Semicolons are the documented separator; a cell without any falls back to commas.
    Some canonical verticals ("Wellbeing, Longevity & Life Sciences") contain a comma.
    """
    text = normalize_text(value)
    if not text:
        return []
    parts = text.split(";") if ";" in text else text.split(",")
    return [p.strip() for p in parts if p.strip()]


def parse_numeric_field(value: Any) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    digits = re.sub(r"[^0-9]", "", str(value))
    return int(digits) if digits else None


def parse_year_field(value: Any) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, (datetime, date)):
        return value.year
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value) if 1900 < value < 2100 else None
    m = _YEAR_RE.search(str(value))
    return int(m.group(0)) if m else None


# ---------- Header mapping ----------
def map_juror_column(column_name: str) -> str | None:
    lower = column_name.strip().lower()
    if lower in JUROR_HEADERS:
        return lower
    if "name" in lower and "fund" not in lower and "company" not in lower:
        return "name"
    if "email" in lower or "e-mail" in lower:
        return "email"
    if "position" in lower or "role" in lower or "title" in lower:
        return "job_title"
    if any(k in lower for k in ("fund", "company", "organization", "firm")):
        return "company"
    if "linkedin" in lower:
        return "linkedin_url"
    if "calendly" in lower or "scheduling" in lower:
        return "calendly_link"
    if "stage" in lower:
        return "preferred_stages"
    if "vertical" in lower or "industr" in lower:
        return "target_verticals"
    if "region" in lower:
        return "preferred_regions"
    if "evaluate" in lower and "willing" in lower:
        return "evaluation_limit"
    if "meeting" in lower or ("pitch" in lower and "open" in lower):
        return "meeting_limit"
    return None


def map_startup_column(column_name: str) -> str | None:
    """Specific rules first so that e.g. "Startup website" never lands on the generic URL rule."""
    lower = column_name.strip().lower()
    if lower in STARTUP_HEADERS or lower in ("region", "contact_phone", "internal_score"):
        return lower

    def has(*words: str) -> bool:
        return all(w in lower for w in words)

    if has("startup", "name"):
        return "name"
    if has("startup", "website"):
        return "website"
    if has("company", "linkedin") or has("startup", "linkedin"):
        return "linkedin_url"
    if lower == "first name" or ("first" in lower and "contact" not in lower):
        return "founder_first_name"
    if lower == "last name" or ("last" in lower and "contact" not in lower):
        return "founder_last_name"
    if has("your", "linkedin") or has("founder", "linkedin") or (has("linkedin", "profile") and "company" not in lower):
        return "founder_linkedin"
    if has("value", "proposition"):
        return "description"
    if ("startup" in lower or "funding" in lower) and "stage" in lower:
        return "stage"
    if "capital" in lower and ("raising" in lower or "raise" in lower):
        return "funding_goal"
    if has("where", "company") or ("registered" in lower and "when" not in lower):
        return "location"
    if lower in ("choose region", "select region"):
        return "region"
    if "what industry" in lower or "industries does your startup" in lower:
        return "verticals"
    if has("business", "model"):
        return "business_model"
    if has("how", "many", "people"):
        return "team_size"
    if "when" in lower and ("company" in lower or "registered" in lower):
        return "founded_year"
    if has("pitch", "deck") or lower == "pitch+deck":
        return "pitch_deck_url"
    if "demo" in lower:
        return "demo_url"
    if "internal" in lower and "score" in lower:
        return "internal_score"
    if "phone" in lower:
        return "contact_phone"
    if any(k in lower for k in ("description", "about", "summary")):
        return "description"
    if any(k in lower for k in ("industr", "sector", "vertical")):
        return "verticals"
    if "stage" in lower:
        return "stage"
    if "regions" in lower:
        return "regions"
    if any(k in lower for k in ("location", "region", "based")):
        return "location"
    if "country" in lower:
        return "country"
    if "founded" in lower or "year" in lower:
        return "founded_year"
    if has("team", "size"):
        return "team_size"
    if "raised" in lower:
        return "funding_raised"
    if "goal" in lower or "funding" in lower:
        return "funding_goal"
    if "website" in lower or ("url" in lower and "linkedin" not in lower):
        return "website"
    if "email" in lower or "e-mail" in lower:
        return "contact_email"
    if "linkedin" in lower:
        return "linkedin_url"
    if "founder" in lower:
        return "founder_names"
    if "name" in lower and "contact" not in lower:
        return "name"
    if "status" in lower:
        return "status"
    return None


def map_headers(headers: list[Any], mapper: Callable[[str], str | None]) -> dict[int, str]:
    """Column index -> field. The first column mapped to a field wins."""
    col_map: dict[int, str] = {}
    taken: set[str] = set()
    for i, h in enumerate(headers):
        if h is None or str(h).strip() == "":
            continue
        field = mapper(str(h))
        if field and field not in taken:
            col_map[i] = field
            taken.add(field)
    return col_map


# ---------- Raw readers ----------
def _is_skippable(values: list[Any]) -> bool:
    if not values or all(normalize_text(v) == "" for v in values):
        return True
    first = values[0]
    return isinstance(first, str) and first.lstrip().startswith("#")


def read_csv_rows(file_bytes: bytes) -> list[tuple[int, list[Any]]]:
    text = file_bytes.decode("utf-8-sig", errors="replace")
    reader = csv.reader(io.StringIO(text))
    out: list[tuple[int, list[Any]]] = []
    for values in reader:
        if _is_skippable(values):
            continue
        out.append((reader.line_num, list(values)))
    return out


def read_xlsx_rows(file_bytes: bytes) -> list[tuple[int, list[Any]]]:
    from openpyxl import load_workbook

    wb = load_workbook(io.BytesIO(file_bytes), data_only=True, read_only=True)
    try:
        ws = wb.active
        out: list[tuple[int, list[Any]]] = []
        for idx, row in enumerate(ws.iter_rows(values_only=True), start=1):
            values = list(row)
            if _is_skippable(values):
                continue
            out.append((idx, values))
        return out
    finally:
        wb.close()


def read_rows(filename: str, file_bytes: bytes) -> list[tuple[int, list[Any]]]:
    name = (filename or "").lower()
    if name.endswith((".xlsx", ".xlsm")):
        return read_xlsx_rows(file_bytes)
    if name.endswith(".csv") or not name:
        return read_csv_rows(file_bytes)
    raise ValueError("Unsupported file type. Upload a .csv or .xlsx file.")


# ---------- Row builders ----------
def _cell(values: list[Any], col_map: dict[int, str]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for idx, field in col_map.items():
        if idx < len(values):
            out[field] = values[idx]
    return out


def _startup_row(raw: dict[str, Any]) -> dict[str, Any]:
    row: dict[str, Any] = {}
    for key in (
        "name",
        "description",
        "industry",
        "location",
        "country",
        "region",
        "business_model",
        "other_vertical_description",
        "website",
        "pitch_deck_url",
        "demo_url",
        "linkedin_url",
        "contact_phone",
    ):
        row[key] = normalize_text(raw.get(key)) or None
    row["contact_email"] = normalize_text(raw.get("contact_email")).lower() or None
    row["stage"] = normalize_stage(normalize_text(raw.get("stage")))
    row["status"] = normalize_text(raw.get("status")).lower() or "pending"
    row["verticals"] = parse_array_field(raw.get("verticals"))
    regions = parse_array_field(raw.get("regions"))
    if row["region"] and row["region"] not in regions:
        regions.insert(0, row["region"])
    row["regions"] = regions

    founders = parse_array_field(raw.get("founder_names"))
    if not founders:
        full = " ".join(
            p for p in (normalize_text(raw.get("founder_first_name")), normalize_text(raw.get("founder_last_name"))) if p
        )
        if full:
            founders = [full]
    row["founder_names"] = founders

    row["founded_year"] = parse_year_field(raw.get("founded_year"))
    for key in ("team_size", "funding_goal", "funding_raised", "internal_score"):
        row[key] = parse_numeric_field(raw.get(key))
    return row


def _juror_row(raw: dict[str, Any]) -> dict[str, Any]:
    row: dict[str, Any] = {}
    for key in ("name", "job_title", "company", "linkedin_url", "calendly_link"):
        row[key] = normalize_text(raw.get(key)) or None
    row["email"] = normalize_text(raw.get("email")).lower() or None
    row["preferred_stages"] = [s for s in (normalize_stage(v) for v in parse_array_field(raw.get("preferred_stages"))) if s]
    row["target_verticals"] = parse_array_field(raw.get("target_verticals"))
    row["preferred_regions"] = parse_array_field(raw.get("preferred_regions"))
    for key in ("evaluation_limit", "meeting_limit"):
        value = parse_numeric_field(raw.get(key))
        row[key] = value if value else None
    return row


def parse_import(kind: str, filename: str, file_bytes: bytes) -> tuple[list[dict], list[CsvRowError]]:
    """
    Parse an uploaded startups or jurors sheet.

    Returns:
      (rows, errors)
    Each row carries "_row_number" (1-based line/row in the source file) for error reporting.
    """
    from app.jury.modules.startups.service import VALID_STATUSES

    if kind == KIND_STARTUPS:
        mapper, build = map_startup_column, _startup_row
    elif kind == KIND_JURORS:
        mapper, build = map_juror_column, _juror_row
    else:
        raise ValueError(f"Unknown import kind: {kind}")

    raw_rows = read_rows(filename, file_bytes)
    if not raw_rows:
        raise ValueError("File has no header row.")
    _header_line, headers = raw_rows[0]
    col_map = map_headers(headers, mapper)
    if "name" not in col_map.values():
        raise ValueError("Could not find a name column in the header row.")
    if kind == KIND_JURORS and "email" not in col_map.values():
        raise ValueError("Could not find an email column in the header row.")

    rows: list[dict] = []
    errors: list[CsvRowError] = []
    for line_no, values in raw_rows[1:]:
        row = build(_cell(values, col_map))
        if not row.get("name"):
            errors.append(CsvRowError(line_no, "Name is required."))
            continue
        if kind == KIND_JURORS:
            if not row.get("email"):
                errors.append(CsvRowError(line_no, "Email is required."))
                continue
            if not _EMAIL_RE.match(row["email"]):
                errors.append(CsvRowError(line_no, f"Invalid email {row['email']!r}."))
                continue
        else:
            missing = [f for f in STARTUP_REQUIRED_FIELDS if f != "name" and not row.get(f)]
            if missing:
                errors.append(CsvRowError(line_no, f"Missing required field(s): {', '.join(missing)}."))
                continue
            if not _EMAIL_RE.match(row["contact_email"]):
                errors.append(CsvRowError(line_no, f"Invalid contact email {row['contact_email']!r}."))
                continue
            if row["status"] not in VALID_STATUSES:
                errors.append(CsvRowError(line_no, f"Invalid status {row['status']!r}. Must be one of: {', '.join(VALID_STATUSES)}"))
                continue
        row["_row_number"] = line_no
        rows.append(row)
    return rows, errors
