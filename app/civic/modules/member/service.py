from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.civic.constants import ROLE_CITIZEN
from app.civic.db import commit_or_raise
from app.civic.errors import NotFound, StoreError, ValidationError
from app.civic.models import Profile
from app.civic.rbac import require_caller

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.civic.models import User


USERNAME_RE = re.compile(r"[A-Za-z0-9_.-]{3,32}")
POSTAL_CODE_RE = re.compile(r"\d{5}")


def ensure_profile(s: "Session", user: "User", *, full_name: str | None = None) -> Profile:
    """First-login upsert: every identity gets exactly one profile."""
    profile = s.get(Profile, user.id)
    if profile is None:
        profile = Profile(id=user.id, full_name=full_name, role=ROLE_CITIZEN)
        s.add(profile)
        s.flush()
    return profile


def _own_profile(s: "Session", caller: "User | None") -> Profile:
    user = require_caller(caller)
    profile = s.get(Profile, user.id)
    if profile is None:
        raise NotFound("Profile not found")
    return profile


def register_in_census(s: "Session", caller: "User | None") -> dict:
    profile = _own_profile(s, caller)
    profile.census_registered_at = datetime.utcnow()
    profile.updated_at = datetime.utcnow()
    commit_or_raise(s, "Census registration")
    return {"success": True}


def unregister_from_census(s: "Session", caller: "User | None") -> dict:
    profile = _own_profile(s, caller)
    profile.census_registered_at = None
    profile.updated_at = datetime.utcnow()
    commit_or_raise(s, "Census unregistration")
    return {"success": True}


def update_district(
    s: "Session",
    caller: "User | None",
    *,
    region: str | None,
    locality: str | None,
    zip_code: str | None,
    district_id: str | None = None,
) -> dict:
    profile = _own_profile(s, caller)
    zip_code = (zip_code or "").strip()
    if zip_code and not POSTAL_CODE_RE.fullmatch(zip_code):
        raise ValidationError("Postal code must be 5 digits.")

    profile.region = (region or "").strip() or None
    profile.locality = (locality or "").strip() or None
    profile.zip_code = zip_code or None
    profile.district_id = (district_id or "").strip() or None
    profile.updated_at = datetime.utcnow()
    commit_or_raise(s, "District update")
    return {"success": True}


def update_profile(s: "Session", caller: "User | None", *, full_name: str | None, username: str | None) -> dict:
    profile = _own_profile(s, caller)
    username = (username or "").strip() or None
    if username is not None:
        if not USERNAME_RE.fullmatch(username):
            raise ValidationError("Username must be 3-32 letters, digits, '.', '_' or '-'.")
        taken = s.scalar(select(Profile.id).where(Profile.username == username, Profile.id != profile.id))
        if taken is not None:
            raise ValidationError("Username is already taken.")

    profile.full_name = (full_name or "").strip() or None
    profile.username = username
    profile.updated_at = datetime.utcnow()
    try:
        commit_or_raise(s, "Profile update")
    except StoreError as e:
        # Lost a race on the unique username index.
        if isinstance(e.__cause__, IntegrityError):
            raise ValidationError("Username is already taken.") from e
        raise
    return {"success": True}
