#!/usr/bin/env python3
"""Print every profile and the distinct roles in use.

Handy after a deploy to spot rows still carrying the legacy "user" role.

Usage:
  python scripts/audit_profiles.py
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.civic.constants import KNOWN_ROLES
from app.civic.models import Profile
from scripts._db_utils import script_db_url, script_session


def main() -> None:
    with script_session(script_db_url()) as s:
        profiles = s.query(Profile).order_by(Profile.id.asc()).all()
        print(f"{len(profiles)} profiles")
        for p in profiles:
            print(f"  {p.id:>6}  {p.role:<10}  {p.full_name or '-':<30}  {p.username or '-'}")

        roles = sorted({p.role for p in profiles})
        print(f"Distinct roles: {', '.join(roles) or '(none)'}")
        unknown = [r for r in roles if r not in KNOWN_ROLES]
        if unknown:
            print(f"WARNING: unknown roles present: {', '.join(unknown)}")


if __name__ == "__main__":
    main()
