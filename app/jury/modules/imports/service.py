from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from app.jury.audit import record_event
from app.jury.modules.imports.parsers import KIND_JURORS, KIND_STARTUPS, CsvRowError, parse_import

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.jury.models import User

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    created: int = 0
    skipped: int = 0
    errors: list[CsvRowError] = field(default_factory=list)


def import_startups(s: "Session", filename: str, file_bytes: bytes, user: "User") -> ImportResult:
    """Create startups from an uploaded sheet. Names that already exist are skipped, never updated."""
    from app.jury.modules.startups.service import create_startup, find_startup_by_name

    rows, errors = parse_import(KIND_STARTUPS, filename, file_bytes)
    result = ImportResult(errors=list(errors))
    seen: set[str] = set()
    for row in rows:
        key = row["name"].strip().lower()
        if key in seen or find_startup_by_name(s, row["name"]):
            result.skipped += 1
            continue
        seen.add(key)
        payload = {k: v for k, v in row.items() if not k.startswith("_")}
        create_startup(s, payload, user)
        result.created += 1

    record_event(
        s,
        actor=user,
        action="startup.import",
        entity_type="Startup",
        metadata={"filename": filename, "created": result.created, "skipped": result.skipped, "errors": len(result.errors)},
    )
    logger.info("Startup import %s: created=%d skipped=%d errors=%d", filename, result.created, result.skipped, len(result.errors))
    return result


def import_jurors(s: "Session", filename: str, file_bytes: bytes, user: "User") -> ImportResult:
    """Create jurors from an uploaded sheet. Emails that already exist are skipped."""
    from app.jury.modules.jurors.service import create_juror, find_juror_by_email

    rows, errors = parse_import(KIND_JURORS, filename, file_bytes)
    result = ImportResult(errors=list(errors))
    seen: set[str] = set()
    for row in rows:
        email = row["email"]
        if email in seen or find_juror_by_email(s, email):
            result.skipped += 1
            continue
        seen.add(email)
        payload = {k: v for k, v in row.items() if not k.startswith("_")}
        create_juror(s, payload, user)
        result.created += 1

    record_event(
        s,
        actor=user,
        action="juror.import",
        entity_type="Juror",
        metadata={"filename": filename, "created": result.created, "skipped": result.skipped, "errors": len(result.errors)},
    )
    logger.info("Juror import %s: created=%d skipped=%d errors=%d", filename, result.created, result.skipped, len(result.errors))
    return result
