#!/usr/bin/env python3
"""Give a citizen the platform admin role (idempotent).

Usage:
  python scripts/promote_admin.py --email someone@example.org
"""

import sys
import argparse
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.civic.constants import ROLE_ADMIN
from app.civic.models import Profile, User
from scripts._db_utils import script_db_url, script_session


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="Email of the account to promote")
    args = parser.parse_args()

    with script_session(script_db_url()) as s:
        user = s.query(User).filter(User.email.ilike(args.email)).one_or_none()
        if not user:
            print(f"User not found: {args.email}")
            return
        profile = s.get(Profile, user.id)
        if not profile:
            profile = Profile(id=user.id, role=ROLE_ADMIN)
            s.add(profile)
        elif profile.role == ROLE_ADMIN:
            print(f"User is already an admin: {args.email}")
            return
        else:
            profile.role = ROLE_ADMIN
    print(f"Admin role granted to {args.email}")


if __name__ == "__main__":
    main()
