from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.civic.audit import record_activity
from app.civic.constants import (
    ACTION_NUCLEUS_CREATE,
    ACTION_NUCLEUS_DELETE,
    ACTION_NUCLEUS_MEMBER_REMOVE,
    ACTION_NUCLEUS_UPDATE,
    NUCLEUS_ROLE_ADMIN,
    NUCLEUS_ROLE_MEMBER,
    NUCLEUS_ROLE_MODERATOR,
)
from app.civic.db import commit_or_raise
from app.civic.errors import AlreadyMember, NotFound, PrivilegeRequired, StoreError, ValidationError
from app.civic.models import Profile
from app.civic.modules.nuclei.models import Nucleus, NucleusMember
from app.civic.rbac import is_admin, require_admin, require_caller, require_member

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.civic.models import User


ACTING_ROLE_ADMIN = "admin"
ACTING_ROLE_SELF_SERVICE = "self_service"


@dataclass(frozen=True)
class CreationPolicy:
    requires_platform_admin: bool
    creator_membership_role: str | None  # None → creator does not join
    audited: bool


# Platform admins create chapters on behalf of no one; self-service creators run
# the chapter they open.
CREATION_POLICIES: dict[str, CreationPolicy] = {
    ACTING_ROLE_ADMIN: CreationPolicy(requires_platform_admin=True, creator_membership_role=None, audited=True),
    ACTING_ROLE_SELF_SERVICE: CreationPolicy(
        requires_platform_admin=False, creator_membership_role=NUCLEUS_ROLE_ADMIN, audited=False
    ),
}

EDITABLE_FIELDS = ("name", "description", "city", "region", "lat", "lng", "is_active")


def _text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


def _map_percent(value: Any, label: str, errors: list[str]) -> float | None:
    """Map placement as a percentage of the map box (0 = top/left edge, 100 = bottom/right)."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        errors.append(f"{label} must be a number.")
        return None
    if not 0 <= number <= 100:
        errors.append(f"{label} must be a map percentage between 0 and 100.")
        return None
    return number


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def clean_nucleus_payload(payload: dict, *, partial: bool = False) -> dict[str, Any]:
    """
    Validate and normalize nucleus fields.
    partial=True keeps only keys present in payload (PATCH semantics).
    Raises ValidationError listing every problem.
    """
    errors: list[str] = []
    cleaned: dict[str, Any] = {}

    for key in ("name", "city"):
        if partial and key not in payload:
            continue
        value = _text(payload.get(key))
        if not value:
            errors.append(f"{key.capitalize()} is required.")
        cleaned[key] = value

    for key in ("description", "region"):
        if partial and key not in payload:
            continue
        cleaned[key] = _text(payload.get(key))

    if not partial or "lat" in payload:
        cleaned["lat"] = _map_percent(payload.get("lat"), "Lat", errors)
    if not partial or "lng" in payload:
        cleaned["lng"] = _map_percent(payload.get("lng"), "Lng", errors)

    if partial and "is_active" in payload:
        cleaned["is_active"] = _flag(payload.get("is_active"))

    unknown = sorted(set(payload) - set(EDITABLE_FIELDS))
    if partial and unknown:
        errors.append(f"Unknown fields: {', '.join(unknown)}")

    if errors:
        raise ValidationError(" ".join(errors))
    return cleaned


def get_nucleus(s: "Session", nucleus_id: int) -> Nucleus:
    nucleus = s.get(Nucleus, nucleus_id)
    if not nucleus:
        raise NotFound(f"Nucleus {nucleus_id} not found")
    return nucleus


def create_nucleus(
    s: "Session",
    caller: "User | None",
    payload: dict,
    *,
    acting_role: str = ACTING_ROLE_SELF_SERVICE,
) -> Nucleus:
    """
    Create a nucleus under the policy for `acting_role`.
    The nucleus and the creator's membership commit together or not at all.
    """
    policy = CREATION_POLICIES.get(acting_role)
    if policy is None:
        raise ValidationError(f"Unknown acting role: {acting_role}")

    user = require_admin(s, caller) if policy.requires_platform_admin else require_member(s, caller)
    fields = clean_nucleus_payload(payload)

    nucleus = Nucleus(**fields, created_by=user.id)
    s.add(nucleus)
    try:
        s.flush()
        if policy.creator_membership_role:
            s.add(NucleusMember(nucleus_id=nucleus.id, user_id=user.id, role=policy.creator_membership_role))
    except SQLAlchemyError as e:
        s.rollback()
        raise StoreError(f"Nucleus creation failed: {e.__class__.__name__}") from e
    commit_or_raise(s, "Nucleus creation")

    if policy.audited:
        record_activity(
            s,
            actor=user,
            action=ACTION_NUCLEUS_CREATE,
            entity_id=nucleus.id,
            details={"name": nucleus.name, "city": nucleus.city},
        )
    return nucleus


def update_nucleus(s: "Session", caller: "User | None", nucleus_id: int, payload: dict) -> Nucleus:
    """Admin-only partial update. The audit row echoes the fields that changed."""
    admin = require_admin(s, caller)
    nucleus = get_nucleus(s, nucleus_id)
    cleaned = clean_nucleus_payload(payload, partial=True)

    changes: dict[str, Any] = {}
    for key, value in cleaned.items():
        if getattr(nucleus, key) != value:
            changes[key] = value
            setattr(nucleus, key, value)
    if not changes:
        return nucleus
    commit_or_raise(s, "Nucleus update")

    record_activity(s, actor=admin, action=ACTION_NUCLEUS_UPDATE, entity_id=nucleus.id, details=changes)
    return nucleus


def delete_nucleus(s: "Session", caller: "User | None", nucleus_id: int) -> dict:
    admin = require_admin(s, caller)
    nucleus = get_nucleus(s, nucleus_id)
    entity_id = nucleus.id

    s.delete(nucleus)
    commit_or_raise(s, "Nucleus delete")

    record_activity(s, actor=admin, action=ACTION_NUCLEUS_DELETE, entity_id=entity_id)
    return {"success": True}


def join_nucleus(s: "Session", caller: "User | None", nucleus_id: int) -> NucleusMember:
    """Not audited. One row per (user, nucleus) is enforced by the unique constraint."""
    user = require_member(s, caller)
    nucleus = get_nucleus(s, nucleus_id)
    if not nucleus.is_active:
        raise ValidationError("Nucleus is not active.")

    membership = NucleusMember(nucleus_id=nucleus.id, user_id=user.id, role=NUCLEUS_ROLE_MEMBER)
    s.add(membership)
    try:
        s.commit()
    except IntegrityError as e:
        s.rollback()
        raise AlreadyMember(f"User {user.id} already belongs to nucleus {nucleus.id}") from e
    except SQLAlchemyError as e:
        s.rollback()
        raise StoreError(f"Join failed: {e.__class__.__name__}") from e
    return membership


def leave_nucleus(s: "Session", caller: "User | None", nucleus_id: int) -> dict:
    """Not audited. Leaving a nucleus you are not in is a no-op."""
    user = require_caller(caller)
    rows = s.scalars(
        select(NucleusMember).where(NucleusMember.nucleus_id == nucleus_id, NucleusMember.user_id == user.id)
    ).all()
    for row in rows:
        s.delete(row)
    commit_or_raise(s, "Leave")
    return {"success": True, "removed": len(rows)}


def _membership(s: "Session", nucleus_id: int, user_id: int) -> NucleusMember | None:
    return s.scalars(
        select(NucleusMember).where(NucleusMember.nucleus_id == nucleus_id, NucleusMember.user_id == user_id)
    ).first()


def manager_role(s: "Session", user: "User", nucleus_id: int) -> str | None:
    """
    How `user` may manage the nucleus roster: "platform" for platform admins,
    the nucleus role for its own admins and moderators, None otherwise.
    """
    if is_admin(s, user):
        return "platform"
    own = _membership(s, nucleus_id, user.id)
    if own and own.role in (NUCLEUS_ROLE_ADMIN, NUCLEUS_ROLE_MODERATOR):
        return own.role
    return None


def can_remove(manager: str | None, target_role: str) -> bool:
    if manager in ("platform", NUCLEUS_ROLE_ADMIN):
        return True
    return manager == NUCLEUS_ROLE_MODERATOR and target_role != NUCLEUS_ROLE_ADMIN


def require_roster_manager(s: "Session", caller: "User | None", nucleus_id: int) -> tuple[Nucleus, str]:
    """Nucleus plus the caller's manager role; PrivilegeRequired for anyone who cannot manage it."""
    user = require_member(s, caller)
    nucleus = get_nucleus(s, nucleus_id)
    manager = manager_role(s, user, nucleus.id)
    if manager is None:
        raise PrivilegeRequired("Nucleus admin or moderator privileges required")
    return nucleus, manager


def remove_member(s: "Session", caller: "User | None", nucleus_id: int, user_id: int) -> dict:
    """
    Kick a member out of a nucleus.

    Allowed for platform admins, and for the nucleus' own admins/moderators.
    Moderators cannot remove nucleus admins. Audited.
    """
    user = require_member(s, caller)
    nucleus = get_nucleus(s, nucleus_id)
    if user_id == user.id:
        raise ValidationError("Use leave to remove yourself.")

    target = _membership(s, nucleus.id, user_id)
    if target is None:
        raise NotFound(f"User {user_id} is not a member of nucleus {nucleus.id}")

    manager = manager_role(s, user, nucleus.id)
    if manager is None:
        raise PrivilegeRequired("Nucleus admin or moderator privileges required")
    if not can_remove(manager, target.role):
        raise PrivilegeRequired("Moderators cannot remove nucleus admins")

    target_profile = s.get(Profile, user_id)
    s.delete(target)
    commit_or_raise(s, "Member removal")

    record_activity(
        s,
        actor=user,
        action=ACTION_NUCLEUS_MEMBER_REMOVE,
        entity_id=nucleus.id,
        details={
            "nucleus_name": nucleus.name,
            "target_user_id": user_id,
            "target_username": target_profile.username if target_profile else None,
        },
    )
    return {"success": True}
