from __future__ import annotations

import io

from flask import Blueprint, abort, flash, g, redirect, render_template, request, send_file, url_for

from app.jury.db import db_session
from app.jury.models import User
from app.jury.modules.imports.parsers import KIND_JURORS, KIND_STARTUPS
from app.jury.modules.imports.service import import_jurors, import_startups
from app.jury.modules.imports.templates import (
    JUROR_TEMPLATE_FILENAME,
    STARTUP_TEMPLATE_FILENAME,
    juror_template_csv,
    startup_template_csv,
)
from app.jury.rbac import require_permission

bp = Blueprint("imports", __name__)

ALLOWED_EXTENSIONS = (".csv", ".xlsx", ".xls")
MAX_ERRORS_SHOWN = 20


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _uploaded_file():
    f = request.files.get("file")
    if not f or not f.filename:
        flash("Choose a CSV or Excel file to upload.", "danger")
        return None, None
    if not f.filename.lower().endswith(ALLOWED_EXTENSIONS):
        flash("Unsupported file type. Upload a .csv or .xlsx file.", "danger")
        return None, None
    return f.filename, f.read()


def _flash_result(result, noun: str) -> None:
    flash(f"Imported {result.created} {noun}; {result.skipped} skipped as duplicates.", "success")
    for err in result.errors[:MAX_ERRORS_SHOWN]:
        flash(f"Row {err.row_number}: {err.message}", "danger")
    if len(result.errors) > MAX_ERRORS_SHOWN:
        flash(f"... and {len(result.errors) - MAX_ERRORS_SHOWN} more row error(s).", "danger")


# ---------- Upload ----------
@bp.get("/import")
@require_permission("startups.import")
def import_get():
    return render_template("admin/imports/upload.html")


@bp.post("/import/startups")
@require_permission("startups.import")
def import_startups_post():
    s = db_session()
    u = _current_user()
    filename, data = _uploaded_file()
    if filename is None:
        return redirect(url_for("imports.import_get"))
    try:
        result = import_startups(s, filename, data, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("imports.import_get"))
    s.commit()
    _flash_result(result, "startup(s)")
    return redirect(url_for("startups.startups_list"))


@bp.post("/import/jurors")
@require_permission("jurors.import")
def import_jurors_post():
    s = db_session()
    u = _current_user()
    filename, data = _uploaded_file()
    if filename is None:
        return redirect(url_for("imports.import_get"))
    try:
        result = import_jurors(s, filename, data, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("imports.import_get"))
    s.commit()
    _flash_result(result, "juror(s)")
    return redirect(url_for("jurors.jurors_list"))


# ---------- Templates ----------
@bp.get("/import/template/<kind>.csv")
@require_permission("startups.import")
def template_download(kind: str):
    if kind == KIND_STARTUPS:
        content, filename = startup_template_csv(), STARTUP_TEMPLATE_FILENAME
    elif kind == KIND_JURORS:
        content, filename = juror_template_csv(), JUROR_TEMPLATE_FILENAME
    else:
        abort(404)
    return send_file(
        io.BytesIO(content.encode("utf-8")),
        mimetype="text/csv",
        as_attachment=True,
        download_name=filename,
        max_age=0,
    )
