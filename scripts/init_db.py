import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.jury.models import Permission, Role, User  # noqa: E402
from app.jury.rbac import ROLE_ADMIN, ROLE_CM, ROLE_VC  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402

PERMISSIONS: tuple[tuple[str, str], ...] = (
    ("admin.view", "Admin: view dashboard"),
    # Startups
    ("startups.view", "Startups: view"),
    ("startups.create", "Startups: create"),
    ("startups.edit", "Startups: edit"),
    ("startups.import", "Startups: import CSV/XLSX"),
    # Jurors
    ("jurors.view", "Jurors: view"),
    ("jurors.create", "Jurors: create"),
    ("jurors.edit", "Jurors: edit"),
    ("jurors.import", "Jurors: import CSV/XLSX"),
    ("jurors.invite", "Jurors: send invitations"),
    # Assignments / evaluations
    ("assignments.view", "Assignments: view"),
    ("assignments.manage", "Assignments: manage"),
    ("evaluations.submit", "Evaluations: submit own"),
    ("evaluations.view", "Evaluations: view all"),
    ("reports.export", "Reports: export"),
    # Cohort
    ("rounds.manage", "Rounds: activate/complete, deadlines"),
    ("cohort.reset", "Cohort: reset for a new cohort"),
    # Communications / lifecycle
    ("communications.view", "Communications: view"),
    ("communications.send", "Communications: send, manage templates"),
    ("lifecycle.manage", "Lifecycle: manage stages and triggers"),
    # Users
    ("users.manage", "Users: manage logins"),
)

ROLES: tuple[tuple[str, str], ...] = (
    (ROLE_ADMIN, "Administrator"),
    (ROLE_CM, "Community Manager"),
    (ROLE_VC, "Juror"),
)

CM_EXCLUDED = frozenset({"cohort.reset", "evaluations.submit", "users.manage"})


def role_permission_keys(role_key: str) -> list[str]:
    keys = [k for k, _ in PERMISSIONS]
    if role_key == ROLE_ADMIN:
        return keys
    if role_key == ROLE_CM:
        return [k for k in keys if k not in CM_EXCLUDED]
    if role_key == ROLE_VC:
        return ["evaluations.submit"]
    return []


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles/admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@example.com").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///jury.db").strip()

    # Direct engine/session so release can seed without building the app.
    with script_session(db_url) as s:
        perms: dict[str, Permission] = {}
        for key, name in PERMISSIONS:
            p = s.query(Permission).filter(Permission.key == key).one_or_none()
            if not p:
                p = Permission(key=key, name=name)
                s.add(p)
            perms[key] = p

        roles: dict[str, Role] = {}
        for key, name in ROLES:
            role = s.query(Role).filter(Role.key == key).one_or_none()
            if not role:
                role = Role(key=key, name=name)
                s.add(role)
            for perm_key in role_permission_keys(key):
                if perms[perm_key] not in role.permissions:
                    role.permissions.append(perms[perm_key])
            roles[key] = role

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                full_name="Administrator",
                password_hash=generate_password_hash(admin_password),
                is_active=True,
            )
            s.add(user)
        if roles[ROLE_ADMIN] not in user.roles:
            user.roles.append(roles[ROLE_ADMIN])

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
