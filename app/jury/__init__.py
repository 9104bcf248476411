import logging
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, render_template, request, session

from app.jury.admin import bp as admin_bp
from app.jury.auth import bp as auth_bp, load_current_user
from app.jury.config import load_config
from app.jury.db import init_db, teardown_db_session
from app.jury.modules.assignments.admin import bp as assignments_bp
from app.jury.modules.cohort.admin import bp as cohort_bp
from app.jury.modules.communications.admin import bp as communications_bp
from app.jury.modules.communications.webhook import bp as webhooks_bp
from app.jury.modules.evaluations.admin import bp as evaluations_bp
from app.jury.modules.imports.admin import bp as imports_bp
from app.jury.modules.jurors.admin import bp as jurors_bp, signup_bp
from app.jury.modules.lifecycle.admin import bp as lifecycle_bp
from app.jury.modules.startups.admin import bp as startups_bp
from app.jury.routes import bp as routes_bp

logger = logging.getLogger(__name__)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    from app.jury.security import csrf_exempt, ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_permissions() -> dict:
        from app.jury.rbac import is_admin, user_has_permission

        def has_perm(key: str) -> bool:
            return user_has_permission(getattr(g, "current_user", None), key)

        return {
            "has_perm": has_perm,
            "is_admin_user": is_admin(getattr(g, "current_user", None)),
            "view_as_juror_id": session.get("view_as_juror_id"),
        }

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz", "/webhooks/")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if csrf_exempt(request.endpoint):
                return None
            if not validate_csrf(request):
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not str(app.config.get("DATABASE_URL") or "").strip():
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if str(app.config.get("SECRET_KEY") or "") in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if not app.config.get("RESEND_FROM") and not app.config.get("TEST_MODE"):
            raise RuntimeError("RESEND_FROM is required in production unless TEST_MODE is on.")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os

        if hasattr(os, "register_at_fork"):

            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Storage health check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [k for k in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY") if not app.config.get(k)]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))
        else:
            try:
                from app.jury.storage import S3Storage, storage_from_config

                storage = storage_from_config(app.config)
                if isinstance(storage, S3Storage):
                    storage._client().head_bucket(Bucket=storage.bucket)
                    app.logger.info("Storage health check PASSED: S3 bucket '%s' accessible", storage.bucket)
            except Exception as e:
                app.logger.error("STORAGE CONFIG ERROR: Cannot access S3 bucket: %s", e)

    if not app.config.get("RESEND_API_KEY"):
        app.logger.warning("RESEND_API_KEY not set; outgoing email will be recorded as failed.")

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(signup_bp)
    app.register_blueprint(evaluations_bp)
    app.register_blueprint(webhooks_bp, url_prefix="/webhooks")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(cohort_bp, url_prefix="/admin")
    app.register_blueprint(startups_bp, url_prefix="/admin")
    app.register_blueprint(jurors_bp, url_prefix="/admin")
    app.register_blueprint(imports_bp, url_prefix="/admin")
    app.register_blueprint(assignments_bp, url_prefix="/admin")
    app.register_blueprint(communications_bp, url_prefix="/admin")
    app.register_blueprint(lifecycle_bp, url_prefix="/admin")

    def _load_user_wrapper():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return render_template("errors/500.html"), 500

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return render_template("errors/404.html"), 404

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return render_template("errors/403.html", missing_permission=missing), 403

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        from flask import flash, redirect, url_for

        flash("File too large. Maximum size is 10MB.", "danger")
        referrer = request.referrer
        if referrer and referrer.startswith(request.host_url):
            return redirect(referrer), 302
        return redirect(url_for("admin.index")), 302

    logger.info("create_app() complete; app ready to serve")
    return app
