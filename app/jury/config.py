import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    storage_backend: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    resend_api_key: str
    resend_from: str
    resend_from_sandbox: str
    resend_webhook_secret: str
    test_mode: bool
    frontend_url: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getflag(name: str) -> bool:
    return _getenv(name).lower() in ("1", "true", "yes", "on")


def normalize_database_url(url: str) -> str:
    # Some hosts hand out postgres://, which SQLAlchemy no longer accepts.
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=normalize_database_url(_getenv("DATABASE_URL", "sqlite:///jury.db")),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        resend_api_key=_getenv("RESEND_API_KEY", ""),
        resend_from=_getenv("RESEND_FROM", ""),
        resend_from_sandbox=_getenv("RESEND_FROM_SANDBOX", "Jury Evaluation <onboarding@resend.dev>"),
        resend_webhook_secret=_getenv("RESEND_WEBHOOK_SECRET", ""),
        test_mode=_getflag("TEST_MODE"),
        frontend_url=_getenv("FRONTEND_URL", "http://localhost:8080").rstrip("/"),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "STORAGE_BACKEND": s.storage_backend,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        # email (Resend)
        "RESEND_API_KEY": s.resend_api_key,
        "RESEND_FROM": s.resend_from,
        "RESEND_FROM_SANDBOX": s.resend_from_sandbox,
        "RESEND_WEBHOOK_SECRET": s.resend_webhook_secret,
        "TEST_MODE": s.test_mode,
        "FRONTEND_URL": s.frontend_url,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,
        # CSV/XLSX uploads
        "MAX_CONTENT_LENGTH": 10 * 1024 * 1024,
    }
