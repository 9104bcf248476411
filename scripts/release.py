"""
Release step for the jury app, run once per deploy before the web process starts.

Fails fast when DATABASE_URL is missing, upgrades the schema to head, then seeds
roles/permissions and the bootstrap admin. Seeding never overwrites an existing password.

Usage:
  python scripts/release.py [--skip-seed]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _require_env(name: str) -> str:
    v = (os.environ.get(name) or "").strip()
    if not v:
        raise RuntimeError(f"Missing required environment variable {name}.")
    return v


def _is_production() -> bool:
    return (os.environ.get("ENV") or "").strip().lower() in ("prod", "production")


def resolve_release_url() -> str:
    from app.jury.config import normalize_database_url

    db_url = normalize_database_url(_require_env("DATABASE_URL"))
    if _is_production() and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to run release on sqlite DATABASE_URL in production. Set DATABASE_URL to Postgres.")
    return db_url


def upgrade_schema(db_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, "head")


def run_release(*, seed: bool = True) -> None:
    db_url = resolve_release_url()
    print(f"[release] env={'production' if _is_production() else 'development'}", flush=True)

    print("[release] upgrading schema to head", flush=True)
    upgrade_schema(db_url)

    if seed:
        from scripts import init_db

        print("[release] seeding roles, permissions and admin", flush=True)
        init_db.seed_only(database_url=db_url)
    print("[release] done", flush=True)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Migrate and seed the jury database.")
    parser.add_argument("--skip-seed", action="store_true", help="Only run migrations")
    args = parser.parse_args(argv)
    run_release(seed=not args.skip_seed)
    return 0


if __name__ == "__main__":
    sys.exit(main())
