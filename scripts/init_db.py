"""
Create tables (dev) and seed the first platform admin.

Usage:
  python scripts/init_db.py

ADMIN_EMAIL / ADMIN_PASSWORD control the seeded account. An existing account's
password is never overwritten.
"""
import sys
from pathlib import Path
import os

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.civic.constants import ROLE_ADMIN
from app.civic.models import Base, Profile, User
from scripts._db_utils import create_script_engine, script_db_url, script_session


def create_tables(*, database_url: str | None = None) -> None:
    engine = create_script_engine(script_db_url(database_url))
    try:
        Base.metadata.create_all(engine)
    finally:
        engine.dispose()


def seed_only(*, database_url: str | None = None) -> None:
    admin_email = (os.environ.get("ADMIN_EMAIL") or "").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or ""
    if not admin_email or not admin_password:
        print("ADMIN_EMAIL/ADMIN_PASSWORD not set; skipping admin seed.")
        return

    # Direct engine/session so release can run without importing app.wsgi.
    with script_session(script_db_url(database_url)) as s:
        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(email=admin_email, password_hash=generate_password_hash(admin_password), is_active=True)
            s.add(user)
            s.flush()
        profile = s.get(Profile, user.id)
        if not profile:
            profile = Profile(id=user.id, full_name="Administrador", role=ROLE_ADMIN)
            s.add(profile)
        elif profile.role != ROLE_ADMIN:
            profile.role = ROLE_ADMIN

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    create_tables()
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
