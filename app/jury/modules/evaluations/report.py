"""
Decision report: one row per startup with screening and pitching results side by side.
"""
from __future__ import annotations

import csv
import io
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.orm import Session

from app.jury.constants import ROUND_PITCHING, ROUND_SCREENING
from app.jury.modules.evaluations.models import Evaluation
from app.jury.modules.startups.models import Startup
from app.jury.storage import StorageError, StoredObject, build_export_key, export_prefix, normalize_key, storage_from_config

logger = logging.getLogger(__name__)

REPORT_HEADERS = (
    "Startup Name",
    "Founder Name",
    "Region",
    "Country",
    "Vertical",
    "Funding Stage",
    "Business Model",
    "Screening Scores",
    "Screening Avg",
    "Pitching Scores",
    "Pitching Avg",
    "VC Pitch Requests",
)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass
class DecisionRow:
    startup_id: int
    startup_name: str
    founder_name: str
    region: str
    country: str
    vertical: str
    stage: str
    business_model: str
    status: str
    screening_scores: list[tuple[float, str]] = field(default_factory=list)
    pitching_scores: list[tuple[float, str]] = field(default_factory=list)
    pitch_requests: list[str] = field(default_factory=list)

    @staticmethod
    def _avg(scores: list[tuple[float, str]]) -> float | None:
        if not scores:
            return None
        return round(sum(v for v, _ in scores) / len(scores), 2)

    @property
    def screening_avg(self) -> float | None:
        return self._avg(self.screening_scores)

    @property
    def pitching_avg(self) -> float | None:
        return self._avg(self.pitching_scores)

    @property
    def screening_count(self) -> int:
        return len(self.screening_scores)

    @property
    def pitching_count(self) -> int:
        return len(self.pitching_scores)


def format_scores(scores: list[tuple[float, str]]) -> str:
    """Compact per-juror scores, highest first: "8.5 (Northwind Capital), 6.0 (Atlas)"."""
    if not scores:
        return "N/A"
    ordered = sorted(scores, key=lambda x: x[0], reverse=True)
    return ", ".join(f"{v:.1f} ({label})" for v, label in ordered)


def _fmt_avg(value: float | None) -> str:
    return "N/A" if value is None else f"{value:.2f}"


def _sort_key(row: DecisionRow):
    # Highest screening first, ties broken by pitching; unscored rows last.
    s_avg, p_avg = row.screening_avg, row.pitching_avg
    return (
        s_avg is None,
        -(s_avg or 0.0),
        p_avg is None,
        -(p_avg or 0.0),
        row.startup_name.lower(),
    )


def build_decision_rows(s: Session) -> list[DecisionRow]:
    startups = s.query(Startup).order_by(Startup.name.asc()).all()
    evaluations = (
        s.query(Evaluation)
        .filter(Evaluation.status == "submitted")
        .order_by(Evaluation.id.asc())
        .all()
    )
    by_startup: dict[int, list[Evaluation]] = defaultdict(list)
    for ev in evaluations:
        by_startup[ev.startup_id].append(ev)

    rows: list[DecisionRow] = []
    for st in startups:
        row = DecisionRow(
            startup_id=st.id,
            startup_name=st.name,
            founder_name=", ".join(st.founder_names or []),
            region=", ".join(st.all_regions),
            country=st.country or "",
            vertical=", ".join(st.verticals or []) or (st.industry or ""),
            stage=st.stage or "",
            business_model=st.business_model or "",
            status=st.status,
        )
        for ev in by_startup.get(st.id, []):
            juror = ev.juror
            label = (juror.company or juror.name) if juror else "Unknown"
            score = float(ev.overall_score or 0.0)
            if ev.round_name == ROUND_SCREENING:
                row.screening_scores.append((score, label))
                if ev.wants_pitch_session and juror and juror.name not in row.pitch_requests:
                    row.pitch_requests.append(juror.name)
            elif ev.round_name == ROUND_PITCHING:
                row.pitching_scores.append((score, label))
        rows.append(row)

    rows.sort(key=_sort_key)
    return rows


def _row_values(row: DecisionRow) -> list[str]:
    return [
        row.startup_name,
        row.founder_name,
        row.region,
        row.country,
        row.vertical,
        row.stage,
        row.business_model,
        format_scores(row.screening_scores),
        _fmt_avg(row.screening_avg),
        format_scores(row.pitching_scores),
        _fmt_avg(row.pitching_avg),
        ", ".join(row.pitch_requests) or "None",
    ]


def decision_report_csv(rows: list[DecisionRow]) -> bytes:
    buf = io.StringIO()
    w = csv.writer(buf)
    w.writerow(REPORT_HEADERS)
    for row in rows:
        w.writerow(_row_values(row))
    # utf-8-sig so Excel picks up the encoding.
    return buf.getvalue().encode("utf-8-sig")


def decision_report_xlsx(rows: list[DecisionRow], *, title: str = "Decision Report") -> bytes:
    from openpyxl import Workbook
    from openpyxl.styles import Font

    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]
    ws.append(list(REPORT_HEADERS))
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in rows:
        values: list[object] = _row_values(row)
        # Averages stay numeric so they can be sorted in Excel.
        values[8] = row.screening_avg
        values[10] = row.pitching_avg
        ws.append(values)
    ws.freeze_panes = "A2"
    for col, header in zip(ws.columns, REPORT_HEADERS):
        width = max([len(header)] + [len(str(c.value or "")) for c in col])
        ws.column_dimensions[col[0].column_letter].width = min(width + 2, 60)

    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()


def report_filename(ext: str, when: datetime | None = None) -> str:
    when = when or datetime.utcnow()
    return f"decision_report_{when.strftime('%Y%m%d')}.{ext}"


def archive_report(config: dict, filename: str, data: bytes, content_type: str) -> str:
    """Keep a copy of every generated report in storage; returns the storage key."""
    key = build_export_key("decision", filename)
    storage_from_config(config).put_bytes(key, data, content_type=content_type)
    logger.info("Decision report archived at %s (%d bytes)", key, len(data))
    return key


def archived_reports(config: dict, *, limit: int = 20) -> list[StoredObject]:
    return storage_from_config(config).list_objects(export_prefix("decision"))[:limit]


def open_archived_report(config: dict, key: str):
    """Only keys under the decision export prefix can be read back."""
    key = normalize_key(key)
    if not key.startswith(export_prefix("decision") + "/"):
        raise StorageError(f"Not a decision report: {key}")
    return storage_from_config(config).open(key)
