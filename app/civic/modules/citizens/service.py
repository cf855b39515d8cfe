from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.civic.audit import record_activity
from app.civic.constants import ACTION_ROLE_CHANGE, ACTION_USER_BAN, ASSIGNABLE_ROLES, ROLE_BANNED
from app.civic.db import commit_or_raise
from app.civic.errors import NotFound, ValidationError
from app.civic.models import Profile
from app.civic.rbac import require_admin

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.civic.models import User


def validate_role(new_role: str | None) -> str:
    role = (new_role or "").strip().lower()
    if role not in ASSIGNABLE_ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(sorted(ASSIGNABLE_ROLES))}")
    return role


def _target_profile(s: "Session", user_id: int) -> Profile:
    target = s.get(Profile, user_id, populate_existing=True)
    if not target:
        raise NotFound(f"Profile {user_id} not found")
    return target


def update_user_role(s: "Session", caller: "User | None", user_id: int, new_role: str) -> dict:
    """Admin-only: set another profile's platform role."""
    admin = require_admin(s, caller)
    role = validate_role(new_role)
    target = _target_profile(s, user_id)

    old_role = target.role
    target.role = role
    target.updated_at = datetime.utcnow()
    commit_or_raise(s, "Role update")

    record_activity(
        s,
        actor=admin,
        action=ACTION_ROLE_CHANGE,
        entity_id=target.id,
        details={"old_role": old_role, "new_role": role, "target_username": target.username},
    )
    return {"success": True}


def ban_user(s: "Session", caller: "User | None", user_id: int) -> dict:
    """Admin-only: suspend a profile. Banning is a role value, never a deletion."""
    admin = require_admin(s, caller)
    target = _target_profile(s, user_id)

    target.role = ROLE_BANNED
    target.updated_at = datetime.utcnow()
    commit_or_raise(s, "Ban")

    record_activity(
        s,
        actor=admin,
        action=ACTION_USER_BAN,
        entity_id=target.id,
        details={"target_username": target.username},
    )
    return {"success": True}
